"""
VibeAgent, the platform assistant.

Questions are answered from the help center FAQ, the informational pages and
the plan catalog. Open-ended questions ("which plan should I pick?") go to
the Gemini REST API when a key is configured; if that call fails the
knowledge base answer is used instead.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Dict, Any, Optional, List, Tuple

import aiohttp
from pydantic import BaseModel, Field

from ..database.models import UserProfile
from ..payments.plans import PLANS
from .pages import FAQ, PAGES

logger = logging.getLogger(__name__)

ASSISTANT_NAME = "VibeAgent"
GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
DEFAULT_GEMINI_MODEL = "gemini-1.5-flash"
MAX_SENTENCES = 2

COMPLEX_TRIGGERS = (
    "compare", "difference between", "which is better", "should i", "recommend", "suggest",
    "advice on", "how to choose", "best way to", "strategies for", "tips for",
)
GREETINGS = ("hello", "hi", "hey", "greetings", "good morning", "good afternoon", "good evening", "howdy")
ASSISTANT_QUESTIONS = ("who are you", "what are you", "your name", "are you a bot", "are you ai", "what can you do")
PLATFORM_QUESTIONS = (
    "what is the elite vibe", "what is elite vibe", "what is this platform", "what is this site",
    "what is this website", "tell me about the elite vibe", "about the elite vibe",
)
PLATFORM_KEYWORDS = (
    "ai", "model", "models", "upload", "buy", "purchase", "download", "creator", "seller", "buyer",
    "explorer", "visionary", "marketplace", "price", "cost", "subscription", "plan", "plans", "revenue",
    "earnings", "sell", "elite vibe", "platform", "website", "pricing", "help", "support", "contact",
    "about", "terms", "privacy", "payout", "account", "dashboard", "refund",
)

# Ordered: the first matching topic answers the question.
TOPICS: List[Tuple[Tuple[str, ...], str]] = [
    (("requirement", "requirements", "file size", "file types", "what do i need"),
     "What are the file requirements for uploads?"),
    (("payout", "payouts", "withdraw", "get paid"), "How do I request a payout?"),
    (("refund", "dispute"), "Can I get a refund for a purchased model?"),
    (("revenue", "revenue share", "earn", "earnings", "income", "commission"),
     "What is the revenue share for creators?"),
    (("approval", "approved", "review"), "How long does model approval take?"),
    (("cancel",), "How do I cancel my subscription?"),
    (("reset my password", "forgot password", "password"), "How do I reset my password?"),
    (("price", "pricing", "cost", "plan", "plans", "subscription"), "What subscription plans are available?"),
    (("my purchases", "download", "downloads"), "Where can I find my purchased models?"),
    (("buy", "purchase"), "How do I purchase an AI model?"),
    (("sign up", "signup", "register", "create an account"), "How do I create an account?"),
]

UPLOAD_PHRASES = ("upload", "sell", "create model", "list a model", "list my model", "become a creator")

STOPWORDS = {
    "what", "when", "where", "which", "with", "that", "this", "have", "does", "from", "your", "about",
    "there", "will", "would", "could", "should", "into", "they", "them", "their", "much", "many",
}


@dataclass(frozen=True)
class Destination:
    """A frontend page the assistant can send the user to."""
    path: str
    purpose: str
    needs_account: bool = False
    needs_seller: bool = False


DESTINATIONS: Dict[str, Destination] = {
    "marketplace": Destination("/marketplace", "the marketplace"),
    "upload": Destination("/upload", "model uploads", needs_account=True, needs_seller=True),
    "seller": Destination("/seller", "the creator dashboard", needs_account=True, needs_seller=True),
    "buyer": Destination("/buyer", "the explorer dashboard", needs_account=True),
    "my-purchases": Destination("/my-purchases", "your purchased models", needs_account=True),
    "pricing": Destination("/pricing", "the subscription plans"),
    "signup": Destination("/signup", "sign up"),
    "login": Destination("/login", "sign in"),
    "contact": Destination("/contact", "the contact form"),
    "help": Destination("/help", "the help center"),
    "about": Destination("/about", PAGES["about"]["title"]),
    "terms": Destination("/terms", PAGES["terms"]["title"]),
    "privacy": Destination("/privacy", PAGES["privacy"]["title"]),
}

# Ordered: longer phrases first so "creator dashboard" wins over "dashboard".
NAVIGATION_PHRASES: List[Tuple[str, str]] = [
    ("my purchases", "my-purchases"),
    ("creator dashboard", "seller"),
    ("seller dashboard", "seller"),
    ("explorer dashboard", "buyer"),
    ("buyer dashboard", "buyer"),
    ("marketplace", "marketplace"),
    ("browse", "marketplace"),
    ("upload", "upload"),
    ("sell", "upload"),
    ("purchases", "my-purchases"),
    ("pricing", "pricing"),
    ("plans", "pricing"),
    ("sign up", "signup"),
    ("signup", "signup"),
    ("register", "signup"),
    ("log in", "login"),
    ("login", "login"),
    ("sign in", "login"),
    ("contact", "contact"),
    ("support", "contact"),
    ("faq", "help"),
    ("help", "help"),
    ("terms", "terms"),
    ("privacy", "privacy"),
    ("about", "about"),
]

OFF_TOPIC_REPLY = (
    "I can only help with The Elite Vibe. Ask me about uploading models, buying in the marketplace "
    "or our subscription plans."
)
EXPLORE_REPLY = (
    "Would you like to browse the marketplace, learn how to sell your own models or compare our "
    "subscription plans?"
)


class AssistantError(Exception):
    """The language model call failed or returned nothing usable."""


class AssistantReply(BaseModel):
    """Answer shown in the chat widget."""
    response: str = Field(..., description="Short answer text")
    action: Optional[Dict[str, Any]] = Field(None, description="Suggested navigation, e.g. {'type': 'navigate', 'path': '/pricing'}")
    source: str = Field(default="knowledge", description="knowledge or gemini")


def _mentions(text: str, phrases) -> bool:
    return any(re.search(rf"\b{re.escape(phrase)}\b", text) for phrase in phrases)


def _faq_answer(question: str) -> str:
    return next(entry["answer"] for entry in FAQ if entry["question"] == question)


def _words(text: str) -> set:
    return {word for word in re.findall(r"[a-z]+", text.lower()) if len(word) > 3 and word not in STOPWORDS}


def best_faq_match(text: str) -> Optional[Dict[str, str]]:
    """FAQ entry sharing the most significant words with the question (at least two)."""
    needle = _words(text)
    best, best_score = None, 1
    for entry in FAQ:
        score = len(needle & _words(entry["question"]))
        if score > best_score:
            best, best_score = entry, score
    return best


def shorten(text: str, max_sentences: int = MAX_SENTENCES) -> str:
    sentences = [sentence for sentence in re.split(r"(?<=[.!?])\s+", text.strip()) if sentence]
    return " ".join(sentences[:max_sentences])


def navigate(page_key: str, user: Optional[UserProfile] = None) -> Tuple[str, Dict[str, Any]]:
    """
    Message and navigation action for a page, honouring sign-in and role gates.

    Anonymous users are sent to sign up for account pages; non-sellers are
    sent to the plans for creator pages.
    """
    destination = DESTINATIONS[page_key]
    if destination.needs_account and user is None:
        return (
            f"You'll need an account to open {destination.purpose}. Let's get you signed up first!",
            {"type": "navigate", "path": "/signup", "requires_auth": True},
        )
    if destination.needs_seller and not user.is_seller:
        return (
            f"To use {destination.purpose} you'll need a Creator or Visionary account with a creator plan. "
            "Here are the plans.",
            {"type": "navigate", "path": "/pricing", "requires_auth": True},
        )
    return f"Taking you to {destination.purpose}.", {"type": "navigate", "path": destination.path}


def _upload_answer(user: Optional[UserProfile]) -> str:
    if user is None:
        return ("To sell models, create an account as a Creator or Visionary and pick a creator plan. "
                + _faq_answer("How do I upload my first AI model?"))
    if not user.is_seller:
        return ("Uploading models needs a Creator or Visionary account with a creator plan. "
                + _faq_answer("What subscription plans are available?"))
    return _faq_answer("How do I upload my first AI model?")


def _platform_summary() -> str:
    return PAGES["about"]["sections"][0]["body"]


def knowledge_reply(message: str, user: Optional[UserProfile] = None) -> AssistantReply:
    """Answer a question from the FAQ, pages and plan catalog only."""
    text = message.lower().strip()

    action = None
    for phrase, page_key in NAVIGATION_PHRASES:
        if _mentions(text, (phrase,)):
            navigation_message, action = navigate(page_key, user)
            break
    else:
        navigation_message = None

    if _mentions(text, ASSISTANT_QUESTIONS):
        response = (f"I'm {ASSISTANT_NAME}, the assistant of The Elite Vibe. I can explain plans, uploads, "
                    "purchases and payouts, and point you to the right page.")
    elif _mentions(text, PLATFORM_QUESTIONS):
        response = _platform_summary()
    elif _mentions(text, UPLOAD_PHRASES) and not _mentions(text, TOPICS[0][0]):
        response = _upload_answer(user)
    else:
        response = next(
            (_faq_answer(question) for keywords, question in TOPICS if _mentions(text, keywords)),
            None,
        )
        if response is None:
            entry = best_faq_match(text)
            if entry is not None:
                response = entry["answer"]
            elif navigation_message:
                response = navigation_message
            elif _mentions(text, GREETINGS):
                response = (f"Welcome to The Elite Vibe! I'm {ASSISTANT_NAME}. "
                            "Ready to explore AI models or start selling your own?")
            elif not _mentions(text, PLATFORM_KEYWORDS) and len(text) > 3:
                response = OFF_TOPIC_REPLY
            else:
                response = EXPLORE_REPLY

    return AssistantReply(response=response, action=action)


def build_prompt(message: str) -> str:
    plans = "; ".join(f"{plan.name} ${plan.monthly_price}/month" for plan in PLANS.values())
    return "\n".join([
        f"You are {ASSISTANT_NAME}, the assistant of The Elite Vibe AI model marketplace.",
        "Only discuss The Elite Vibe and how to use it. Answer in at most two short sentences.",
        "Redirect any other topic back to the platform.",
        "",
        "PLATFORM FACTS:",
        f"- {_platform_summary()}",
        "- Roles: Explorer (buyer), Creator (seller), Visionary (both).",
        f"- Plans: {plans}.",
        f"- Revenue share: {_faq_answer('What is the revenue share for creators?')}",
        f"- Uploads: {_faq_answer('What are the file requirements for uploads?')}",
        "- Model prices range from $50 to $10,000. Payouts start at $50.",
        "",
        f'USER QUESTION: "{message}"',
    ])


class PlatformAssistant:
    """Answers platform questions; uses Gemini for open-ended ones when configured."""

    def __init__(self, api_key: Optional[str] = None, model: str = DEFAULT_GEMINI_MODEL):
        self.api_key = api_key
        self.model = model

    @property
    def model_enabled(self) -> bool:
        return bool(self.api_key)

    def needs_model(self, message: str, reply: AssistantReply) -> bool:
        text = message.lower()
        return _mentions(text, COMPLEX_TRIGGERS) or reply.response == EXPLORE_REPLY

    async def answer(self, message: str, user: Optional[UserProfile] = None) -> AssistantReply:
        reply = knowledge_reply(message, user)
        if not self.model_enabled or not self.needs_model(message, reply):
            return reply

        try:
            text = await self._ask_gemini(build_prompt(message))
        except (AssistantError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Gemini unavailable, answering from the knowledge base: {e}")
            return reply

        return AssistantReply(response=shorten(text), action=reply.action, source="gemini")

    async def _ask_gemini(self, prompt: str) -> str:
        data = await self._post_gemini({
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {"temperature": 0.7, "topK": 40, "topP": 0.95, "maxOutputTokens": 150},
        })
        candidates = data.get("candidates") or [{}]
        parts = candidates[0].get("content", {}).get("parts") or [{}]
        text = (parts[0].get("text") or "").strip()
        if not text:
            raise AssistantError("Empty response from Gemini")
        return text

    async def _post_gemini(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = GEMINI_URL.format(model=self.model)
        timeout = aiohttp.ClientTimeout(total=15)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(url, params={"key": self.api_key}, json=payload) as response:
                data = await response.json()
                if response.status != 200:
                    message = data.get("error", {}).get("message", "UNKNOWN_ERROR")
                    raise AssistantError(f"Gemini request failed ({response.status}): {message}")
                return data
