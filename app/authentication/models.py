"""
Authentication models.

This module defines the identity models the chat subsystem decorates ids with:
- User: Custom user model with email-based authentication and a UUID key
- Profile: Public identity (username, avatar, role, bio) keyed by the user

Related files:
    - managers.py: Custom user manager for email-based creation
    - services.py: Profile lookup and search
    - signals.py: Auto-create profile on user creation

Note:
    The string form of ``User.id`` is the "user id" used across chat:
    conversation ids, chat index ownership and channel group names.
"""

import re

from django.conf import settings
from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models.functions import Lower

from authentication.managers import UserManager
from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


# Reserved usernames that cannot be used
RESERVED_USERNAMES = frozenset([
    "admin", "administrator", "root", "system", "api", "www",
    "support", "help", "security", "account", "login", "logout",
    "signup", "signin", "auth", "user", "users", "profile", "profiles",
    "settings", "dashboard", "null", "undefined", "anonymous", "guest",
    "developer", "developers", "tester", "testers", "staff", "mod",
    "moderator", "bot", "chat", "chats", "messages",
])


def validate_username_not_reserved(value):
    """Validate that username is not in the reserved list."""
    if value.lower() in RESERVED_USERNAMES:
        raise ValidationError(
            f"The username '{value}' is reserved and cannot be used."
        )


def validate_username_format(value):
    """Validate username format: 3-30 chars, alphanumeric + _ + -."""
    if not re.match(r"^[a-zA-Z0-9_-]{3,30}$", value):
        raise ValidationError(
            "Username must be 3-30 characters and contain only "
            "letters, numbers, underscores, and hyphens."
        )


class User(UUIDPrimaryKeyMixin, AbstractBaseUser, PermissionsMixin):
    """
    Custom User model using email as the login identifier.

    Profile data (username, avatar, role) is stored in the Profile model.

    Fields:
        id: UUID primary key (the chat "user id")
        email: Login identifier, unique
        is_active: Whether the user account is active
        is_staff: Whether the user can access Django admin
        date_joined: When the user account was created
        updated_at: When the user record was last modified
    """

    email = models.EmailField(
        unique=True,
        db_index=True,
        max_length=254,
        help_text="User's email address (login identifier)",
    )

    is_active = models.BooleanField(
        default=True,
        help_text="Whether this user account is active. Deselect instead of deleting.",
    )
    is_staff = models.BooleanField(
        default=False,
        help_text="Whether the user can access the admin site.",
    )

    date_joined = models.DateTimeField(
        auto_now_add=True,
        help_text="When the user account was created",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="When the user record was last modified",
    )

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = []

    objects = UserManager()

    class Meta:
        verbose_name = "user"
        verbose_name_plural = "users"
        ordering = ["-date_joined"]

    def __str__(self):
        return self.email

    @property
    def uid(self) -> str:
        """String user id as used by the chat subsystem."""
        return str(self.id)


class Profile(BaseModel):
    """
    Public identity record for a user.

    Fields:
        user: OneToOne link to User (also serves as primary key)
        username: Unique (case-insensitive), stored lowercase
        avatar_url: Public URL of the user's avatar (nullable)
        role: developer or tester
        bio: Free-text biography
        skills: List of skill labels
        links: List of external profile URLs

    Note:
        Profile is automatically created via signals when a User is created,
        with a blank username until the user completes it.
    """

    class Role(models.TextChoices):
        DEVELOPER = "developer", "Developer"
        TESTER = "tester", "Tester"

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="profile",
        primary_key=True,
        help_text="User this profile belongs to",
    )

    username = models.CharField(
        max_length=30,
        blank=True,
        db_index=True,
        validators=[validate_username_format, validate_username_not_reserved],
        help_text="Unique username (3-30 chars, alphanumeric + _ + -)",
    )

    avatar_url = models.URLField(
        max_length=500,
        blank=True,
        null=True,
        help_text="Public URL of the user's avatar image",
    )

    role = models.CharField(
        max_length=10,
        choices=Role.choices,
        default=Role.TESTER,
        db_index=True,
        help_text="Marketplace role (developer uploads apps, tester reviews them)",
    )

    bio = models.TextField(blank=True, default="")

    skills = models.JSONField(
        default=list,
        blank=True,
        help_text='Skill labels, e.g. ["android", "accessibility"]',
    )

    links = models.JSONField(
        default=list,
        blank=True,
        help_text="External profile URLs (portfolio, GitHub, ...)",
    )

    class Meta:
        db_table = "authentication_profile"
        verbose_name = "profile"
        verbose_name_plural = "profiles"
        constraints = [
            # Case-insensitive unique constraint for username
            models.UniqueConstraint(
                Lower("username"),
                name="unique_username_case_insensitive",
                condition=models.Q(username__gt=""),  # Only for non-empty usernames
            ),
        ]

    def __str__(self):
        return self.username or str(self.user)

    @property
    def is_developer(self) -> bool:
        return self.role == self.Role.DEVELOPER

    def clean(self):
        """Validate and normalize username."""
        super().clean()
        if self.username:
            self.username = self.username.lower()

    def save(self, *args, **kwargs):
        """Normalize username before saving."""
        if self.username:
            self.username = self.username.lower()
        super().save(*args, **kwargs)
