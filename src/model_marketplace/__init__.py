"""The Elite Vibe: an AI model marketplace API."""

__version__ = "1.0.0"
