"""
Django app configuration for authentication.
"""

from django.apps import AppConfig


class AuthenticationConfig(AppConfig):
    """Configuration for the authentication application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "authentication"
    verbose_name = "Authentication & Profiles"

    def ready(self):
        """Connect signal handlers (profile creation, cache invalidation)."""
        from authentication import signals  # noqa: F401
