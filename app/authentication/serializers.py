"""
Serializers for authentication models.

This module provides DRF serializers for:
- Profile model (read/update operations with conditional username validation)
- Display identities resolved by ProfileLookupService
- User search results for the new-chat dialog

Related files:
    - models.py: User and Profile models
    - views.py: Views that use these serializers
    - services.py: ProfileLookupService, ProfileService
"""

from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import serializers

from authentication.models import (
    Profile,
    validate_username_format,
    validate_username_not_reserved,
)


class ProfileSerializer(serializers.ModelSerializer):
    """
    Serializer for Profile model (read operations).

    Provides complete profile data including computed fields.
    """

    user_id = serializers.UUIDField(source="user.id", read_only=True)
    user_email = serializers.EmailField(source="user.email", read_only=True)
    is_complete = serializers.SerializerMethodField()

    class Meta:
        model = Profile
        fields = [
            "user_id",
            "user_email",
            "username",
            "avatar_url",
            "role",
            "bio",
            "skills",
            "links",
            "is_complete",
            "created_at",
            "updated_at",
        ]
        read_only_fields = [
            "user_id",
            "user_email",
            "created_at",
            "updated_at",
        ]

    def get_is_complete(self, obj):
        """Return whether the profile is complete (has username set)."""
        return bool(obj.username)


class ProfileUpdateSerializer(serializers.ModelSerializer):
    """
    Serializer for updating profile information.

    Handles both initial profile completion and subsequent updates:
    - If profile has no username, username is REQUIRED
    - If profile has a username, username is optional (can update or omit)
    """

    username = serializers.CharField(
        min_length=3,
        max_length=30,
        required=False,  # Dynamic requirement handled in __init__
        help_text="Unique username (3-30 chars, alphanumeric + _ + -)",
    )

    class Meta:
        model = Profile
        fields = [
            "username",
            "avatar_url",
            "role",
            "bio",
            "skills",
            "links",
        ]

    def __init__(self, *args, **kwargs):
        """Make username required if profile doesn't have one set."""
        super().__init__(*args, **kwargs)
        if self.instance and not self.instance.username:
            self.fields["username"].required = True

    def validate(self, attrs):
        """Ensure username is provided when profile has no username set."""
        # Partial updates skip the required check for missing fields
        if self.instance and not self.instance.username:
            if "username" not in attrs:
                raise serializers.ValidationError(
                    {"username": "Username is required to complete your profile."}
                )
        return super().validate(attrs)

    def validate_username(self, value):
        """Validate username format, uniqueness, and reserved names."""
        username = value.lower().strip()

        try:
            validate_username_format(username)
            validate_username_not_reserved(username)
        except DjangoValidationError as exc:
            raise serializers.ValidationError(exc.messages[0])

        user = self.context.get("user")
        existing = Profile.objects.filter(username__iexact=username)
        if user:
            existing = existing.exclude(user=user)
        if existing.exists():
            raise serializers.ValidationError("This username is already taken.")

        return username

    def validate_skills(self, value):
        if not isinstance(value, list) or not all(isinstance(s, str) for s in value):
            raise serializers.ValidationError("Skills must be a list of strings.")
        return [skill.strip() for skill in value if skill.strip()]

    def validate_links(self, value):
        if not isinstance(value, list):
            raise serializers.ValidationError("Links must be a list of URLs.")
        url_field = serializers.URLField()
        return [url_field.run_validation(link) for link in value]


class DisplayIdentitySerializer(serializers.Serializer):
    """
    Display identity of a user as resolved by ProfileLookupService.

    ``found`` is false when the username is a synthesized fallback or an
    error placeholder.
    """

    user_id = serializers.CharField(read_only=True)
    username = serializers.CharField(read_only=True)
    avatar_url = serializers.CharField(read_only=True, allow_null=True)
    found = serializers.BooleanField(read_only=True)


class ProfileSearchResultSerializer(serializers.ModelSerializer):
    """Compact profile row shown in the new-chat user search."""

    user_id = serializers.CharField(source="user.uid", read_only=True)

    class Meta:
        model = Profile
        fields = ["user_id", "username", "avatar_url", "role"]
        read_only_fields = fields
