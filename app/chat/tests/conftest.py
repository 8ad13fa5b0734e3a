"""
Test configuration and fixtures for chat tests.

This module provides:
- Users with and without complete profiles
- Direct and group conversations created through ConversationService
- API client and JWT helpers for REST and WebSocket tests
- A clean in-memory channel layer per test

Usage:
    def test_example(direct_conversation, alice_client):
        response = alice_client.get(f'/api/v1/chat/conversations/{direct_conversation.id}/')
        assert response.status_code == 200
"""

import pytest
from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import AccessToken

from authentication.tests.factories import ProfileFactory, UserFactory
from chat.models import Conversation
from chat.services import ConversationService


@pytest.fixture(autouse=True)
def _fresh_channel_layer():
    """Drop groups and queued events left over from earlier tests."""
    layer = get_channel_layer()
    async_to_sync(layer.flush)()
    yield
    async_to_sync(layer.flush)()


# =============================================================================
# User Fixtures
# =============================================================================


@pytest.fixture
def alice(db):
    return ProfileFactory(
        username="alice",
        avatar_url="https://cdn.example.com/avatars/alice.png",
    ).user


@pytest.fixture
def bob(db):
    return ProfileFactory(
        username="bob",
        avatar_url="https://cdn.example.com/avatars/bob.png",
    ).user


@pytest.fixture
def carol(db):
    return ProfileFactory(username="carol", avatar_url=None).user


@pytest.fixture
def nameless_user(db):
    """User whose profile was never completed (blank username)."""
    return UserFactory()


@pytest.fixture
def outsider(db):
    """User who is not a member of any test conversation."""
    return ProfileFactory(username="mallory").user


# =============================================================================
# Conversation Fixtures
# =============================================================================


@pytest.fixture
def direct_conversation(alice, bob) -> Conversation:
    """Direct conversation between alice and bob, started by alice."""
    result = ConversationService.start_direct(alice.id, bob.id)
    assert result.success, result.error
    return Conversation.objects.get(pk=result.data.conversation_id)


@pytest.fixture
def group_conversation(alice, bob, carol) -> Conversation:
    """Group "Beta testers" created by alice with bob and carol."""
    result = ConversationService.create_group(alice.id, "Beta testers", [bob.id, carol.id])
    assert result.success, result.error
    return result.data


# =============================================================================
# Client Fixtures
# =============================================================================


def access_token_for(user) -> str:
    return str(AccessToken.for_user(user))


@pytest.fixture
def client_for(db):
    """
    Factory to create JWT-authenticated API clients.

    Usage:
        def test_example(client_for, bob):
            response = client_for(bob).get('/api/v1/chat/chats/')
    """

    def _make_client(user):
        client = APIClient()
        client.credentials(HTTP_AUTHORIZATION=f"Bearer {access_token_for(user)}")
        return client

    return _make_client


@pytest.fixture
def alice_client(client_for, alice):
    return client_for(alice)


@pytest.fixture
def api_client():
    """Unauthenticated API client."""
    return APIClient()
