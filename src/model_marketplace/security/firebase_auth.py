"""
Firebase Authentication module for The Elite Vibe.

Token verification and account management go through the Firebase Admin
SDK. Password sign-in, password reset and verification emails are only
available through the Firebase Auth REST API, which is called with aiohttp.
"""

import asyncio
import logging
from typing import Optional, Dict, Any

import aiohttp
import firebase_admin
from firebase_admin import credentials, auth as firebase_auth

logger = logging.getLogger(__name__)

IDENTITY_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1"

# REST API error codes that mean "wrong email or password".
INVALID_CREDENTIAL_CODES = {"EMAIL_NOT_FOUND", "INVALID_PASSWORD", "INVALID_LOGIN_CREDENTIALS"}


class FirebaseAuthError(Exception):
    """Error reported by the Firebase Auth REST API."""

    def __init__(self, code: str):
        super().__init__(code)
        self.code = code

    @property
    def is_invalid_credentials(self) -> bool:
        return self.code.split(" ")[0] in INVALID_CREDENTIAL_CODES


class FirebaseAuthService:
    """Firebase Authentication service for user management and token validation."""

    def __init__(
        self,
        firebase_config: Optional[Dict[str, Any]] = None,
        web_api_key: Optional[str] = None,
        storage_bucket: Optional[str] = None,
        app: Optional[Any] = None,
    ):
        """
        Initialize the Firebase Admin SDK (once per process).

        Args:
            firebase_config: Service account credentials; default credentials are used if None
            web_api_key: Web API key for the REST password flows
            storage_bucket: Default Cloud Storage bucket for the app
            app: Already initialized firebase_admin App
        """
        self.web_api_key = web_api_key
        self.app = app or self._initialize_firebase(firebase_config, storage_bucket)

    def _initialize_firebase(self, firebase_config: Optional[Dict[str, Any]], storage_bucket: Optional[str]):
        if firebase_admin._apps:
            return firebase_admin.get_app()

        options = {"storageBucket": storage_bucket} if storage_bucket else None
        if firebase_config:
            app = firebase_admin.initialize_app(credentials.Certificate(firebase_config), options)
        else:
            # Application default credentials (local development, Cloud Run)
            app = firebase_admin.initialize_app(options=options)
        logger.info("Firebase initialized successfully")
        return app

    def is_initialized(self) -> bool:
        return self.app is not None

    async def verify_token(self, token: str) -> Optional[Dict[str, Any]]:
        """
        Verify Firebase ID token and return the caller's identity.

        Args:
            token: Firebase ID token

        Returns:
            User information dict or None if invalid
        """
        try:
            decoded_token = await asyncio.to_thread(firebase_auth.verify_id_token, token)
            return {
                'uid': decoded_token['uid'],
                'email': decoded_token.get('email'),
                'email_verified': decoded_token.get('email_verified', False),
                'name': decoded_token.get('name'),
                'role': decoded_token.get('role'),
            }
        except firebase_auth.ExpiredIdTokenError:
            logger.warning("Expired Firebase ID token")
            return None
        except firebase_auth.InvalidIdTokenError:
            logger.warning("Invalid Firebase ID token")
            return None

    async def get_user_by_uid(self, uid: str) -> Optional[Dict[str, Any]]:
        """
        Get user information by UID.

        Returns:
            User information dict or None if not found
        """
        try:
            user_record = await asyncio.to_thread(firebase_auth.get_user, uid)
        except firebase_auth.UserNotFoundError:
            logger.warning(f"User not found: {uid}")
            return None

        return {
            'uid': user_record.uid,
            'email': user_record.email,
            'email_verified': user_record.email_verified,
            'display_name': user_record.display_name,
            'photo_url': user_record.photo_url,
            'disabled': user_record.disabled,
            'custom_claims': user_record.custom_claims or {},
        }

    async def create_user(self, email: str, password: str, display_name: Optional[str] = None) -> str:
        """
        Create a Firebase Auth account.

        Returns:
            The new user's UID

        Raises:
            ValueError: an account with this email already exists
        """
        try:
            user_record = await asyncio.to_thread(
                firebase_auth.create_user,
                email=email,
                password=password,
                display_name=display_name,
                email_verified=False,
            )
        except firebase_auth.EmailAlreadyExistsError:
            raise ValueError("An account with this email already exists")

        logger.info(f"Created Firebase user {user_record.uid}")
        return user_record.uid

    async def delete_user(self, uid: str) -> None:
        await asyncio.to_thread(firebase_auth.delete_user, uid)
        logger.info(f"Deleted Firebase user {uid}")

    async def set_custom_user_claims(self, uid: str, custom_claims: Dict[str, Any]) -> None:
        """Store the marketplace role on the token so clients can read it without a lookup."""
        await asyncio.to_thread(firebase_auth.set_custom_user_claims, uid, custom_claims)
        logger.info(f"Updated custom claims for user {uid}")

    async def revoke_refresh_tokens(self, uid: str) -> None:
        await asyncio.to_thread(firebase_auth.revoke_refresh_tokens, uid)

    async def _post_identity_toolkit(self, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        if not self.web_api_key:
            raise RuntimeError("FIREBASE_WEB_API_KEY is not configured")

        url = f"{IDENTITY_TOOLKIT_URL}/{endpoint}"
        timeout = aiohttp.ClientTimeout(total=10)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(url, params={"key": self.web_api_key}, json=payload) as response:
                data = await response.json()
                if response.status != 200:
                    code = data.get("error", {}).get("message", "UNKNOWN_ERROR")
                    logger.warning(f"Firebase Auth REST call {endpoint} failed: {code}")
                    raise FirebaseAuthError(code)
                return data

    async def sign_in_with_password(self, email: str, password: str) -> Dict[str, Any]:
        """
        Exchange email and password for Firebase tokens.

        Raises:
            FirebaseAuthError: wrong credentials, disabled user or throttling
        """
        data = await self._post_identity_toolkit("accounts:signInWithPassword", {
            "email": email,
            "password": password,
            "returnSecureToken": True,
        })
        return {
            "uid": data["localId"],
            "id_token": data["idToken"],
            "refresh_token": data["refreshToken"],
            "expires_in": int(data.get("expiresIn", 3600)),
        }

    async def send_password_reset_email(self, email: str) -> None:
        await self._post_identity_toolkit("accounts:sendOobCode", {
            "requestType": "PASSWORD_RESET",
            "email": email,
        })
        logger.info("Password reset email requested")

    async def send_email_verification(self, id_token: str) -> None:
        await self._post_identity_toolkit("accounts:sendOobCode", {
            "requestType": "VERIFY_EMAIL",
            "idToken": id_token,
        })
