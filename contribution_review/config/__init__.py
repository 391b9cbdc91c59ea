"""
Configuration management for the contribution review service.

Loads settings from environment variables and an optional .env file at the
project root. get_settings() is the single source of truth for service configuration.
"""

from contribution_review.config.settings import Settings, get_settings  # noqa: F401

__all__ = ["Settings", "get_settings"]
