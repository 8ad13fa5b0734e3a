"""
Django signals for authentication.

This module defines signal handlers for:
- Auto-creating Profile when User is created
- Dropping cached display identities when a Profile changes

Related files:
    - models.py: User and Profile models
    - apps.py: Signal import in ready()
    - services.py: ProfileLookupService (shared display cache)
"""

import logging

from django.conf import settings
from django.db.models.signals import post_save
from django.dispatch import receiver

logger = logging.getLogger(__name__)


@receiver(post_save, sender=settings.AUTH_USER_MODEL)
def create_user_profile(sender, instance, created, **kwargs):
    """
    Create a Profile for newly created users.

    Profile starts with a blank username until the user completes it.
    """
    if created:
        from authentication.models import Profile

        Profile.objects.get_or_create(user=instance)
        logger.debug(f"Profile created for user: {instance.id}")


@receiver(post_save, sender="authentication.Profile")
def invalidate_display_identity(sender, instance, created, **kwargs):
    """Evict the shared display-identity cache entry for this user."""
    if created:
        return

    from authentication.services import ProfileLookupService

    ProfileLookupService.invalidate(instance.user_id)
