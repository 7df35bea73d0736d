"""Admin analytics and moderation."""
