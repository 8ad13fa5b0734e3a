"""
Authentication application.

This app provides user accounts, JWT issuance and the public profile
identity that the chat subsystem decorates user ids with.

Key components:
    - User model: Custom email-based user with a UUID key
    - Profile model: Username, avatar and role shown in chat
    - ProfileLookupService: id -> display identity with fallbacks

Usage:
    from authentication.models import User, Profile
    from authentication.services import ProfileLookupService
"""
