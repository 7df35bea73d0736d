"""
Authentication endpoints: signup, signin, password reset, email verification
and profile management on top of Firebase Authentication.
"""

import logging
from typing import Dict, Any, Optional

from fastapi import APIRouter, HTTPException, Depends, Request, status
from fastapi.security import HTTPAuthorizationCredentials
from pydantic import BaseModel, EmailStr, Field, field_validator

from ..database.models import UserProfile, UserRole, UserStatus
from ..marketplace import validation
from ..security.firebase_auth import FirebaseAuthError
from .dependencies import (
    Services,
    get_services,
    get_current_identity,
    get_current_user,
    limiter,
    security,
)

logger = logging.getLogger(__name__)

# Create router for authentication endpoints
auth_router = APIRouter(prefix="/auth", tags=["authentication"])

ACCOUNT_CLOSED_REASON = "Seller account closed"

SIGNUP_ROLES = (UserRole.BUYER, UserRole.SELLER, UserRole.BOTH)

# Pydantic models for request/response validation


class SignUpRequest(BaseModel):
    """User signup request model."""
    email: EmailStr = Field(..., description="User email address")
    password: str = Field(..., description="User password")
    display_name: Optional[str] = Field(None, max_length=100, description="Public display name")
    username: Optional[str] = Field(None, description="Unique username; derived from the name when omitted")
    role: UserRole = Field(default=UserRole.BUYER, description="buyer (Explorer), seller (Creator) or both (Visionary)")
    age_verified: bool = Field(..., description="User confirms they are 18 or older")

    @field_validator('password')
    @classmethod
    def validate_password(cls, v):
        """Validate password strength."""
        errors = validation.validate_password(v)
        if errors:
            raise ValueError(errors[0])
        return v

    @field_validator('role')
    @classmethod
    def validate_role(cls, v):
        if v not in SIGNUP_ROLES:
            raise ValueError('Role must be buyer, seller or both')
        return v

    @field_validator('age_verified')
    @classmethod
    def validate_age(cls, v):
        if not v:
            raise ValueError('You must be 18 or older to join')
        return v


class SignInRequest(BaseModel):
    """User signin request model."""
    email: EmailStr = Field(..., description="User email address")
    password: str = Field(..., description="User password")


class PasswordResetRequest(BaseModel):
    """Password reset request model."""
    email: EmailStr = Field(..., description="User email address")


class ProfileUpdateRequest(BaseModel):
    """Profile update request model."""
    display_name: Optional[str] = Field(None, min_length=1, max_length=100, description="Display name")
    username: Optional[str] = Field(None, description="New username")
    bio: Optional[str] = Field(None, max_length=500, description="Short biography")
    avatar: Optional[str] = Field(None, description="Avatar URL")


class AuthResponse(BaseModel):
    """Authentication response model."""
    access_token: str = Field(..., description="Firebase ID token")
    refresh_token: str = Field(..., description="Firebase refresh token")
    expires_in: int = Field(..., description="Token expiration time in seconds")
    user: Dict[str, Any] = Field(..., description="User profile")


class MessageResponse(BaseModel):
    """Generic message response model."""
    message: str = Field(..., description="Response message")
    success: bool = Field(default=True, description="Operation success status")


def profile_response(user: UserProfile, services: Services) -> Dict[str, Any]:
    data = user.model_dump(mode="json", exclude={"username_lower"})
    data["subscription_status"] = services.subscriptions.describe_subscription(user)
    return data


def _raise_for_auth_error(e: FirebaseAuthError) -> None:
    if e.is_invalid_credentials:
        raise HTTPException(status_code=401, detail="Invalid email or password")
    if e.code.startswith("USER_DISABLED"):
        raise HTTPException(status_code=403, detail="Account is disabled")
    if e.code.startswith("TOO_MANY_ATTEMPTS_TRY_LATER"):
        raise HTTPException(status_code=429, detail="Too many attempts, try again later")
    raise HTTPException(status_code=400, detail=f"Authentication failed: {e.code}")


# API Endpoints

@auth_router.post("/signup", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("5/minute")
async def signup(
    request: Request,
    signup_data: SignUpRequest,
    services: Services = Depends(get_services),
) -> AuthResponse:
    """
    Register a new user account.

    Creates the Firebase Auth user, stores the marketplace profile and role,
    sends the verification email and signs the user in.
    """
    email = signup_data.email.lower()
    display_name = signup_data.display_name or email.split("@")[0]

    if signup_data.username:
        errors = validation.validate_username(signup_data.username)
        if errors:
            raise HTTPException(status_code=400, detail=errors[0])
        if await services.users.is_username_taken(signup_data.username):
            raise HTTPException(status_code=400, detail="Username is already taken")
        username = signup_data.username
    else:
        username = await services.users.suggest_username(display_name)

    if await services.users.is_email_taken(email):
        raise HTTPException(status_code=400, detail="An account with this email already exists")

    uid = await services.auth.create_user(email, signup_data.password, display_name)
    try:
        user = await services.users.create_profile(
            uid=uid,
            email=email,
            username=username,
            display_name=display_name,
            role=signup_data.role,
            age_verified=signup_data.age_verified,
        )
        await services.auth.set_custom_user_claims(uid, {"role": signup_data.role.value})
    except Exception:
        # Do not leave an auth account without a profile behind.
        await services.auth.delete_user(uid)
        raise

    try:
        tokens = await services.auth.sign_in_with_password(email, signup_data.password)
    except FirebaseAuthError as e:
        _raise_for_auth_error(e)

    try:
        await services.auth.send_email_verification(tokens["id_token"])
    except FirebaseAuthError as e:
        logger.warning(f"Could not send verification email to {uid}: {e.code}")

    logger.info(f"New user registered: {uid} ({signup_data.role.value})")

    return AuthResponse(
        access_token=tokens["id_token"],
        refresh_token=tokens["refresh_token"],
        expires_in=tokens["expires_in"],
        user=profile_response(user, services),
    )


@auth_router.post("/signin", response_model=AuthResponse)
@limiter.limit("10/minute")
async def signin(
    request: Request,
    signin_data: SignInRequest,
    services: Services = Depends(get_services),
) -> AuthResponse:
    """
    Sign in an existing user.

    Authenticates user with email and password and returns Firebase tokens.
    """
    try:
        tokens = await services.auth.sign_in_with_password(signin_data.email.lower(), signin_data.password)
    except FirebaseAuthError as e:
        _raise_for_auth_error(e)

    user = await services.users.get_user(tokens["uid"])
    if user is None:
        raise HTTPException(status_code=404, detail="User profile not found")
    if user.status == UserStatus.SUSPENDED:
        raise HTTPException(status_code=403, detail="Account is suspended")

    logger.info(f"User signed in: {user.uid}")

    return AuthResponse(
        access_token=tokens["id_token"],
        refresh_token=tokens["refresh_token"],
        expires_in=tokens["expires_in"],
        user=profile_response(user, services),
    )


@auth_router.post("/password-reset", response_model=MessageResponse)
@limiter.limit("3/minute")
async def request_password_reset(
    request: Request,
    reset_data: PasswordResetRequest,
    services: Services = Depends(get_services),
) -> MessageResponse:
    """
    Request a password reset email.

    The response is the same whether or not the address has an account.
    """
    try:
        await services.auth.send_password_reset_email(reset_data.email.lower())
    except FirebaseAuthError as e:
        logger.info(f"Password reset not sent: {e.code}")

    return MessageResponse(message="If an account exists for this email, a password reset link has been sent")


@auth_router.post("/resend-verification", response_model=MessageResponse)
@limiter.limit("3/minute")
async def resend_verification(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security),
    identity: Dict[str, Any] = Depends(get_current_identity),
    services: Services = Depends(get_services),
) -> MessageResponse:
    if identity.get("email_verified"):
        return MessageResponse(message="Email is already verified")

    try:
        await services.auth.send_email_verification(credentials.credentials)
    except FirebaseAuthError as e:
        _raise_for_auth_error(e)
    return MessageResponse(message="Verification email sent")


@auth_router.get("/profile")
async def get_profile(
    identity: Dict[str, Any] = Depends(get_current_identity),
    user: UserProfile = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    """Get the caller's profile; syncs the verified-email flag from the token."""
    if identity.get("email_verified") and not user.email_verified:
        await services.users.set_email_verified(user.uid, True)
        user.email_verified = True
    return profile_response(user, services)


@auth_router.put("/profile")
async def update_profile(
    profile_data: ProfileUpdateRequest,
    user: UserProfile = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    updated = await services.users.update_profile(
        user.uid,
        display_name=profile_data.display_name,
        username=profile_data.username,
        bio=profile_data.bio,
        avatar=profile_data.avatar,
    )
    logger.info(f"Profile updated for user: {user.uid}")
    return profile_response(updated, services)


@auth_router.delete("/account", response_model=MessageResponse)
async def delete_account(
    user: UserProfile = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> MessageResponse:
    """Delete the caller's profile and Firebase account; their listings leave the marketplace."""
    earnings = await services.payments.get_seller_earnings(user.uid) if user.is_seller else None
    if earnings is not None and earnings.pending_payout > 0:
        raise HTTPException(status_code=400, detail="Cannot delete an account with pending payouts")

    await services.listings.delist_user_models(user.uid, ACCOUNT_CLOSED_REASON)
    await services.users.delete_profile(user.uid)
    await services.auth.delete_user(user.uid)
    logger.info(f"Account deleted: {user.uid}")
    return MessageResponse(message="Account deleted")


@auth_router.get("/verify-token")
async def verify_token(identity: Dict[str, Any] = Depends(get_current_identity)) -> Dict[str, Any]:
    """Check that the bearer token is valid."""
    return {"valid": True, "uid": identity["uid"], "email": identity.get("email")}
