"""
Tests for authentication models.

This module tests:
- User: Custom user model with email login and UUID key
- Profile: Public identity with username validation and normalization

Test Organization:
    - Each model has its own test class
    - Each test validates ONE specific behavior
"""

import uuid

import pytest
from django.core.exceptions import ValidationError
from django.db import IntegrityError

from authentication.models import (
    RESERVED_USERNAMES,
    Profile,
    validate_username_format,
    validate_username_not_reserved,
)
from authentication.tests.factories import ProfileFactory, UserFactory


# =============================================================================
# User Model Tests
# =============================================================================


class TestUserModel:
    """Tests for the User model."""

    def test_primary_key_is_uuid(self, db):
        """User ids are UUIDs; chat uses their string form."""
        user = UserFactory()

        assert isinstance(user.id, uuid.UUID)
        assert user.uid == str(user.id)

    def test_str_returns_email(self, db):
        user = UserFactory(email="str@example.com")

        assert str(user) == "str@example.com"

    def test_email_is_unique(self, db):
        UserFactory(email="dup@example.com")

        with pytest.raises(IntegrityError):
            UserFactory(email="dup@example.com")


# =============================================================================
# Profile Model Tests
# =============================================================================


class TestProfileModel:
    """Tests for the Profile model."""

    def test_profile_defaults(self, user):
        """A fresh profile is a blank tester profile."""
        profile = user.profile

        assert profile.username == ""
        assert profile.avatar_url is None
        assert profile.role == Profile.Role.TESTER
        assert profile.skills == []
        assert profile.links == []

    def test_username_lowercased_on_save(self, user):
        profile = user.profile
        profile.username = "MixedCase"
        profile.save()

        profile.refresh_from_db()
        assert profile.username == "mixedcase"

    def test_username_unique_case_insensitive(self, db):
        """
        Two profiles cannot share a username, whatever the casing.

        Why it matters: search and display rely on usernames identifying
        exactly one user.
        """
        ProfileFactory(username="alice")
        other = UserFactory().profile

        other.username = "ALICE"
        with pytest.raises(IntegrityError):
            other.save()

    def test_blank_usernames_do_not_collide(self, db):
        """Many users may still have an incomplete (blank) profile."""
        first = UserFactory().profile
        second = UserFactory().profile

        assert first.username == second.username == ""

    def test_is_developer(self, db):
        dev = ProfileFactory(role=Profile.Role.DEVELOPER)
        tester = ProfileFactory(role=Profile.Role.TESTER)

        assert dev.is_developer is True
        assert tester.is_developer is False

    def test_str_falls_back_to_user(self, user):
        assert str(user.profile) == user.email

    def test_full_clean_rejects_reserved_username(self, user):
        profile = user.profile
        profile.username = "admin"

        with pytest.raises(ValidationError):
            profile.full_clean()


# =============================================================================
# Validator Tests
# =============================================================================


class TestUsernameValidators:
    """Tests for username validators."""

    @pytest.mark.parametrize("value", ["abc", "a_b-c", "User123", "x" * 30])
    def test_valid_formats(self, value):
        validate_username_format(value)

    @pytest.mark.parametrize("value", ["ab", "x" * 31, "has space", "bad!char", ""])
    def test_invalid_formats(self, value):
        with pytest.raises(ValidationError):
            validate_username_format(value)

    def test_reserved_names_rejected_case_insensitively(self):
        assert "chat" in RESERVED_USERNAMES

        with pytest.raises(ValidationError):
            validate_username_not_reserved("Chat")
