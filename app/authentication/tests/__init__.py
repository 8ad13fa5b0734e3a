"""
Tests for authentication app.

This package contains test modules for:
- test_models.py: User and Profile model tests
- test_managers.py: UserManager tests
- test_signals.py: Profile creation and identity cache invalidation
- test_services.py: ProfileLookupService, ProfileLookupSession, search
- test_views.py: API endpoint tests

Usage:
    pytest authentication/tests/
    pytest authentication/tests/test_services.py
"""
