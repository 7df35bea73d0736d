"""Informational page content, help center FAQ and the contact form."""

import logging
from typing import Dict, Any, Optional, List

from ..database.models import ContactMessage, ContactCategory, ContactUrgency, to_document
from ..database.repository import FirestoreRepository, Collections
from ..payments.plans import PLANS
from . import validation
from .id_system import UnifiedIDSystem

logger = logging.getLogger(__name__)

LAST_UPDATED = "2025-01-15"


def _revenue_share_lines() -> List[str]:
    return [
        f"{plan.name}: {plan.revenue_share}% revenue share"
        for plan in PLANS.values() if plan.revenue_share
    ]


PAGES: Dict[str, Dict[str, Any]] = {
    "about": {
        "title": "About The Elite Vibe",
        "sections": [
            {
                "heading": "Our Mission",
                "body": "The Elite Vibe connects AI model creators with the people who want to use their work. "
                        "Creators list trained models with sample media, buyers purchase them once and keep "
                        "lifetime access.",
            },
            {
                "heading": "For Creators",
                "body": "Pick a creator plan, list your models and keep up to 90% of every sale. "
                        "Earnings can be paid out once they reach $50.",
            },
            {
                "heading": "For Explorers",
                "body": "Browse approved models by niche, preview their media and buy through Stripe Checkout.",
            },
        ],
    },
    "terms": {
        "title": "Terms of Service",
        "sections": [
            {"heading": "1. Agreement to Terms",
             "body": "By creating an account or using the marketplace you agree to these terms."},
            {"heading": "2. Definitions",
             "body": "Creators (sellers) list AI models for sale. Explorers (buyers) purchase them. "
                     "Visionaries hold both roles."},
            {"heading": "3. Account Registration",
             "body": "You must be at least 18 years old, provide accurate information and keep your "
                     "credentials secure."},
            {"heading": "4. User Responsibilities",
             "body": "Creators must own the rights to the models and media they list. Buyers must respect "
                     "the license terms that come with each model."},
            {"heading": "5. Content Guidelines",
             "body": "Every listing is reviewed before it is published. Listings that violate the content "
                     "guidelines are rejected or removed."},
            {"heading": "6. Payments, Fees, and Revenue Share",
             "body": "Model prices range from $50 to $10,000. Payments are processed by Stripe. "
                     + "; ".join(_revenue_share_lines())
                     + ". Creators without an active plan pay a 20% platform commission. "
                       "Subscriptions renew monthly until cancelled."},
            {"heading": "7. Intellectual Property",
             "body": "Creators keep ownership of their models. A purchase grants the buyer a license to use "
                     "the model, not ownership of it."},
            {"heading": "8. Privacy and Data Protection",
             "body": "Our handling of personal data is described in the Privacy Policy."},
            {"heading": "9. Termination",
             "body": "We may suspend accounts that violate these terms. Suspended creators cannot list "
                     "new models."},
            {"heading": "10. Disclaimers",
             "body": "Models are provided by their creators as described in each listing."},
            {"heading": "11. Limitation of Liability",
             "body": "Our liability is limited to the amount you paid in the twelve months before a claim."},
            {"heading": "12. Changes to Terms",
             "body": "We will announce material changes before they take effect."},
            {"heading": "13. Governing Law",
             "body": "These terms are governed by the laws of the jurisdiction where the company is registered."},
            {"heading": "14. Contact Information",
             "body": "Questions about these terms can be sent through the contact form."},
        ],
    },
    "privacy": {
        "title": "Privacy Policy",
        "sections": [
            {"heading": "1. Introduction",
             "body": "This policy explains what we collect and how we use it."},
            {"heading": "2. Information We Collect",
             "body": "Account details (name, email, username), listing content you upload, purchase and "
                     "payout records, and basic usage information."},
            {"heading": "3. How We Use Your Information",
             "body": "To run the marketplace, process payments and payouts, review listings and provide support."},
            {"heading": "4. Information Sharing and Disclosure",
             "body": "We share data with the payment processor and hosting providers needed to run the "
                     "service. We do not sell your personal information to third parties."},
            {"heading": "5. Data Security",
             "body": "Card details are entered on Stripe-hosted pages and never reach our servers."},
            {"heading": "6. Data Retention",
             "body": "Transaction records are kept as long as required for accounting and tax purposes."},
            {"heading": "7. Your Rights and Choices",
             "body": "You can update your profile at any time and request deletion of your account."},
            {"heading": "8. Cookies and Tracking Technologies",
             "body": "We use cookies required for sign-in and basic analytics."},
            {"heading": "9. Third-Party Services",
             "body": "Stripe processes payments. Firebase provides authentication, database and file storage."},
            {"heading": "10. International Data Transfers",
             "body": "Your data may be processed in countries other than your own."},
            {"heading": "11. Children's Privacy",
             "body": "The marketplace is not intended for anyone under 18."},
            {"heading": "12. Changes to This Privacy Policy",
             "body": "Updates are published on this page with a new revision date."},
            {"heading": "13. Contact Us",
             "body": "Privacy questions can be sent through the contact form."},
            {"heading": "14. Compliance with Regulations",
             "body": "We honour GDPR and CCPA requests for access and deletion."},
        ],
    },
}

FAQ: List[Dict[str, str]] = [
    {"category": "account", "question": "How do I create an account?",
     "answer": "Sign up with your email, pick a role (Explorer, Creator or Visionary) and verify your email address."},
    {"category": "account", "question": "Can I change my account type later?",
     "answer": "Yes. Contact support to switch between Explorer, Creator and Visionary."},
    {"category": "account", "question": "How do I reset my password?",
     "answer": "Use \"Forgot Password\" on the login page and follow the link we email you."},
    {"category": "billing", "question": "What subscription plans are available?",
     "answer": "; ".join(f"{plan.name}: ${plan.monthly_price}/month" for plan in PLANS.values()) + "."},
    {"category": "billing", "question": "How do I cancel my subscription?",
     "answer": "Open the billing portal from your dashboard. Your plan stays active until the end of the "
               "billing period."},
    {"category": "billing", "question": "What payment methods do you accept?",
     "answer": "All major credit cards through Stripe."},
    {"category": "creator", "question": "How do I upload my first AI model?",
     "answer": "Create a listing with name, description, niche and price (minimum $50), then upload its media. "
               "New listings are reviewed before they go live."},
    {"category": "creator", "question": "What are the file requirements for uploads?",
     "answer": "Exactly 4 SFW images, 4 NSFW images, 1 SFW video and 1 NSFW video. Images: JPEG, PNG or WebP up "
               "to 10MB. Videos: MP4, WebM or QuickTime up to 100MB."},
    {"category": "creator", "question": "How long does model approval take?",
     "answer": "Typically 12-24 hours."},
    {"category": "payouts", "question": "When will I receive my earnings?",
     "answer": "You can request a payout once your available balance reaches $50."},
    {"category": "payouts", "question": "What is the revenue share for creators?",
     "answer": "; ".join(_revenue_share_lines()) + "."},
    {"category": "payouts", "question": "How do I request a payout?",
     "answer": "Open Earnings & Payouts in your dashboard, enter an amount of at least $50 and submit."},
    {"category": "buyer", "question": "How do I purchase an AI model?",
     "answer": "Open a model in the marketplace, click \"Buy Now\" and pay through Stripe Checkout."},
    {"category": "buyer", "question": "Can I get a refund for a purchased model?",
     "answer": "If a model does not match its description, open a dispute from \"My Purchases\" within 7 days."},
    {"category": "buyer", "question": "Where can I find my purchased models?",
     "answer": "In \"My Purchases\". Downloads never expire."},
]

FAQ_CATEGORIES = sorted({entry["category"] for entry in FAQ})


def list_pages() -> List[Dict[str, str]]:
    return [{"slug": slug, "title": page["title"]} for slug, page in PAGES.items()]


def get_page(slug: str) -> Optional[Dict[str, Any]]:
    page = PAGES.get(slug)
    if page is None:
        return None
    return {"slug": slug, "last_updated": LAST_UPDATED, **page}


def search_faq(term: Optional[str] = None, category: Optional[str] = None) -> List[Dict[str, str]]:
    entries = FAQ
    if category and category != "all":
        entries = [entry for entry in entries if entry["category"] == category]
    if term:
        needle = term.lower()
        entries = [
            entry for entry in entries
            if needle in entry["question"].lower() or needle in entry["answer"].lower()
        ]
    return entries


class ContactService:
    """Stores contact form submissions for the support team."""

    def __init__(self, repository: FirestoreRepository):
        self.repository = repository

    async def submit(
        self,
        name: str,
        email: str,
        subject: str,
        message: str,
        category: ContactCategory = ContactCategory.GENERAL,
        urgency: ContactUrgency = ContactUrgency.NORMAL,
    ) -> ContactMessage:
        if not validation.validate_email(email):
            raise ValueError("Please enter a valid email address")

        contact = ContactMessage(
            id=UnifiedIDSystem.generate_id("contact", 6),
            name=name.strip(),
            email=email.strip(),
            subject=subject.strip(),
            category=category,
            message=message.strip(),
            urgency=urgency,
        )
        await self.repository.set(Collections.CONTACT_MESSAGES, contact.id, to_document(contact))
        logger.info(f"Contact message {contact.id} received ({category.value}, {urgency.value})")
        return contact
