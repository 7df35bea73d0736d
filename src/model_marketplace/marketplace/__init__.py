"""Marketplace listings, user profiles, validation and informational content."""
