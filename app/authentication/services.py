"""
Profile services.

This module turns raw user ids into display identities for the chat
subsystem and backs the user search used when starting a new chat.

Services:
    ProfileService: Profile access and username-prefix search
    ProfileLookupService: Stateless id -> DisplayIdentity resolution with fallbacks
    ProfileLookupSession: Request-deduplicating cache scoped to one rendering session

Failure Policy:
    Lookups never raise into the caller. A missing profile (or a profile
    without a username) yields a synthesized name such as "User 3f2a";
    a backend failure yields a generic placeholder ("Error loading").
    The developer-facing context uses "Dev-3f2a" / "Unknown Dev" instead.

Usage:
    from authentication.services import ProfileLookupSession

    lookup = ProfileLookupSession()
    identities = lookup.resolve_many([message.sender_id for message in messages])
    header = lookup.resolve(other_user_id)
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING

from django.conf import settings
from django.core.cache import cache
from django.core.exceptions import ValidationError as DjangoValidationError

from authentication.models import Profile
from core.services import BaseService

if TYPE_CHECKING:
    from collections.abc import Iterable

    from authentication.models import User

logger = logging.getLogger(__name__)


class LookupContext:
    """
    Rendering context a lookup is made for.

    CHAT: conversation lists, message bubbles, chat headers
    DEVELOPER: developer-facing cards (app listings, feedback)
    """

    CHAT = "chat"
    DEVELOPER = "developer"


FALLBACK_PREFIXES = {
    LookupContext.CHAT: "User ",
    LookupContext.DEVELOPER: "Dev-",
}

ERROR_PLACEHOLDERS = {
    LookupContext.CHAT: "Error loading",
    LookupContext.DEVELOPER: "Unknown Dev",
}


@dataclass(frozen=True)
class DisplayIdentity:
    """
    What a UI needs to render a user: a name and an avatar.

    Attributes:
        user_id: String user id the identity was resolved for
        username: Profile username or a synthesized fallback
        avatar_url: Avatar URL or None
        found: True only when a profile with a username was found
    """

    user_id: str
    username: str
    avatar_url: str | None = None
    found: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


def fallback_name(user_id: str, context: str = LookupContext.CHAT) -> str:
    """Synthesize a display name from the first four characters of the id."""
    prefix = FALLBACK_PREFIXES.get(context, FALLBACK_PREFIXES[LookupContext.CHAT])
    return f"{prefix}{str(user_id)[:4]}"


class ProfileService(BaseService):
    """
    Profile access for the owning user and for user search.

    Methods:
        get_or_create_profile: Profile for a user, created on demand
        search_profiles: Username-prefix search for the new-chat dialog
    """

    SEARCH_MIN_QUERY_LENGTH = 2
    SEARCH_DEFAULT_LIMIT = 10

    @classmethod
    def get_or_create_profile(cls, user: User) -> Profile:
        profile, created = Profile.objects.get_or_create(user=user)
        if created:
            cls.get_logger().debug(f"Created missing profile for user {user.id}")
        return profile

    @classmethod
    def search_profiles(
        cls,
        query: str,
        exclude_user_id=None,
        limit: int = SEARCH_DEFAULT_LIMIT,
    ) -> list[Profile]:
        """
        Find profiles whose username starts with ``query``.

        Queries shorter than two characters return nothing rather than the
        whole user table. Matching is case-insensitive (usernames are stored
        lowercase) and results are ordered by username.

        Args:
            query: Username prefix typed by the user
            exclude_user_id: Caller's id, never included in results
            limit: Maximum number of profiles returned

        Returns:
            List of Profile instances
        """
        query = (query or "").strip().lower()
        if len(query) < cls.SEARCH_MIN_QUERY_LENGTH:
            return []

        profiles = Profile.objects.filter(username__startswith=query).exclude(
            username=""
        )
        if exclude_user_id is not None:
            profiles = profiles.exclude(user_id=exclude_user_id)

        return list(profiles.select_related("user").order_by("username")[:limit])


class ProfileLookupService(BaseService):
    """
    Resolve user ids to display identities.

    Found identities are shared across sessions through the Django cache for
    ``PROFILE_LOOKUP_CACHE_TIMEOUT`` seconds; fallbacks are never cached
    there, so a profile completed later shows up on the next lookup. The
    ``invalidate`` hook is called by a Profile post_save signal.
    """

    CACHE_KEY_PREFIX = "profile_identity"

    @classmethod
    def _cache_key(cls, user_id: str) -> str:
        return f"{cls.CACHE_KEY_PREFIX}:{user_id}"

    @classmethod
    def invalidate(cls, user_id) -> None:
        cache.delete(cls._cache_key(str(user_id)))

    @classmethod
    def _identity_from_profile(cls, user_id: str, profile: Profile | None, context: str):
        if profile is None or not profile.username:
            return DisplayIdentity(
                user_id=user_id,
                username=fallback_name(user_id, context),
                avatar_url=profile.avatar_url if profile else None,
                found=False,
            )
        return DisplayIdentity(
            user_id=user_id,
            username=profile.username,
            avatar_url=profile.avatar_url,
            found=True,
        )

    @classmethod
    def _error_identity(cls, user_id: str, context: str) -> DisplayIdentity:
        return DisplayIdentity(
            user_id=user_id,
            username=ERROR_PLACEHOLDERS.get(
                context, ERROR_PLACEHOLDERS[LookupContext.CHAT]
            ),
            avatar_url=None,
            found=False,
        )

    @classmethod
    def resolve(cls, user_id, context: str = LookupContext.CHAT) -> DisplayIdentity:
        """
        Resolve a single user id.

        Args:
            user_id: User id (UUID or its string form)
            context: LookupContext value selecting fallback wording

        Returns:
            DisplayIdentity; never raises
        """
        uid = str(user_id)
        return cls.resolve_many([uid], context=context)[uid]

    @classmethod
    def resolve_many(
        cls,
        user_ids: Iterable,
        context: str = LookupContext.CHAT,
    ) -> dict[str, DisplayIdentity]:
        """
        Resolve several user ids with at most one database query.

        Ids that are not valid UUIDs cannot have a profile and resolve to the
        not-found fallback. Any backend failure degrades every unresolved id
        to the error placeholder.

        Returns:
            Dict keyed by string user id
        """
        uids = list(dict.fromkeys(str(user_id) for user_id in user_ids))
        identities: dict[str, DisplayIdentity] = {}

        cached = cache.get_many([cls._cache_key(uid) for uid in uids])
        pending = []
        for uid in uids:
            entry = cached.get(cls._cache_key(uid))
            if entry:
                identities[uid] = DisplayIdentity(**entry)
            else:
                pending.append(uid)

        if not pending:
            return identities

        try:
            profiles = cls._fetch_profiles(pending)
        except Exception:
            cls.get_logger().exception(
                f"Profile lookup failed for {len(pending)} user(s)"
            )
            for uid in pending:
                identities[uid] = cls._error_identity(uid, context)
            return identities

        to_cache = {}
        for uid in pending:
            identity = cls._identity_from_profile(uid, profiles.get(uid), context)
            identities[uid] = identity
            if identity.found:
                to_cache[cls._cache_key(uid)] = identity.to_dict()

        if to_cache:
            cache.set_many(to_cache, timeout=settings.PROFILE_LOOKUP_CACHE_TIMEOUT)

        return identities

    @classmethod
    def _fetch_profiles(cls, uids: list[str]) -> dict[str, Profile]:
        valid = []
        for uid in uids:
            try:
                valid.append(Profile._meta.pk.to_python(uid))
            except DjangoValidationError:
                # Not a UUID: no profile can exist for it
                continue

        if not valid:
            return {}

        profiles = Profile.objects.filter(user_id__in=valid).only(
            "user_id", "username", "avatar_url"
        )
        return {str(profile.user_id): profile for profile in profiles}


class ProfileLookupSession:
    """
    Request-deduplicating lookup cache for one rendering session.

    One session lives as long as one HTTP request or one WebSocket
    connection. Every id is fetched at most once per session, including
    fallbacks; error placeholders are not remembered so the next render
    retries.

    Attributes:
        context: LookupContext used for fallbacks
        fetch_count: Number of ids sent to ProfileLookupService
    """

    def __init__(self, context: str = LookupContext.CHAT):
        self.context = context
        self.fetch_count = 0
        self._identities: dict[str, DisplayIdentity] = {}

    def __contains__(self, user_id) -> bool:
        return str(user_id) in self._identities

    def _remember(self, identities: dict[str, DisplayIdentity]) -> None:
        error_names = set(ERROR_PLACEHOLDERS.values())
        for uid, identity in identities.items():
            if identity.found or identity.username not in error_names:
                self._identities[uid] = identity

    def resolve(self, user_id) -> DisplayIdentity:
        uid = str(user_id)
        return self.resolve_many([uid])[uid]

    def resolve_many(self, user_ids: Iterable) -> dict[str, DisplayIdentity]:
        uids = list(dict.fromkeys(str(user_id) for user_id in user_ids))
        missing = [uid for uid in uids if uid not in self._identities]

        fetched = {}
        if missing:
            self.fetch_count += len(missing)
            fetched = ProfileLookupService.resolve_many(missing, context=self.context)
            self._remember(fetched)

        return {uid: self._identities.get(uid) or fetched[uid] for uid in uids}
