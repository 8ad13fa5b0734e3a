"""
Tests for authentication signal handlers.

- create_user_profile: Profile auto-created for new users
- invalidate_display_identity: Shared identity cache evicted on profile change
"""

from django.core.cache import cache

from authentication.models import Profile
from authentication.services import ProfileLookupService
from authentication.tests.factories import ProfileFactory, UserFactory


class TestCreateUserProfileSignal:
    """Tests for the create_user_profile signal handler."""

    def test_profile_created_when_user_is_created(self, db):
        user = UserFactory()

        assert Profile.objects.filter(user=user).exists()

    def test_profile_not_duplicated_on_user_update(self, user):
        user.is_staff = True
        user.save()

        assert Profile.objects.filter(user=user).count() == 1


class TestInvalidateDisplayIdentitySignal:
    """Tests for the invalidate_display_identity signal handler."""

    def test_profile_update_evicts_cached_identity(self, db):
        """
        Renaming a user is visible on the next lookup.

        Why it matters: found identities are cached across sessions, so a
        stale name would otherwise linger until the cache timeout.
        """
        profile = ProfileFactory(username="before")
        uid = str(profile.user_id)
        assert ProfileLookupService.resolve(uid).username == "before"
        assert cache.get(ProfileLookupService._cache_key(uid)) is not None

        profile.username = "after"
        profile.save()

        assert cache.get(ProfileLookupService._cache_key(uid)) is None
        assert ProfileLookupService.resolve(uid).username == "after"
