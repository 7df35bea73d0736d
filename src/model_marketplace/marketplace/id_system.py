"""
Unified ID generation.

Every record id has the form ``<prefix>_<epoch-ms>_<random base36>``. Model ids
are also used as Firestore document ids, so the same value identifies a
listing everywhere.
"""

import re
import secrets
import string
import time
from typing import Optional

_ALPHABET = string.digits + string.ascii_lowercase
_TIMESTAMP_PATTERN = re.compile(r"^[a-z]+_(\d+)_")


def _random_suffix(length: int) -> str:
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))


def _now_ms() -> int:
    return int(time.time() * 1000)


class UnifiedIDSystem:
    """Generates and inspects marketplace ids."""

    MODEL_PREFIX = "model"
    USER_PREFIX = "user"
    PURCHASE_PREFIX = "purchase"

    @staticmethod
    def generate_id(prefix: str, length: int = 8) -> str:
        return f"{prefix}_{_now_ms()}_{_random_suffix(length)}"

    @classmethod
    def generate_model_id(cls) -> str:
        return cls.generate_id(cls.MODEL_PREFIX, 8)

    @classmethod
    def generate_user_id(cls) -> str:
        return cls.generate_id(cls.USER_PREFIX, 6)

    @classmethod
    def generate_purchase_id(cls) -> str:
        return cls.generate_id(cls.PURCHASE_PREFIX, 10)

    @staticmethod
    def normalize_model_id(model_id: str) -> str:
        # Ids are canonical at creation time.
        return model_id

    @classmethod
    def is_valid_model_id(cls, model_id: Optional[str]) -> bool:
        return bool(model_id) and model_id.startswith(f"{cls.MODEL_PREFIX}_") and len(model_id) > 20

    @staticmethod
    def get_timestamp_from_id(record_id: str) -> int:
        """Epoch milliseconds embedded in the id, or the current time if there is none."""
        match = _TIMESTAMP_PATTERN.match(record_id or "")
        if match:
            return int(match.group(1))
        return _now_ms()
