"""
Tests for the chat WebSocket consumers.

Drives the real middleware and routing with channels' WebsocketCommunicator.

Covers:
- JWT authentication (query string, "jwt" subprotocol, bad tokens)
- Close codes: 4001 unauthenticated, 4003 not a member, 4004 not found
- ChatConsumer: snapshot, sending, live delivery, typing, older history
- ChatIndexConsumer: initial list and live updates
"""

from datetime import timedelta

import pytest
from channels.db import database_sync_to_async
from channels.routing import URLRouter
from channels.testing import WebsocketCommunicator
from django.utils import timezone
from rest_framework_simplejwt.tokens import AccessToken

from authentication.tests.factories import UserFactory
from chat.constants import CLOSE_CODES, MESSAGE_CONFIG, ErrorCode
from chat.middleware import JWTAuthMiddlewareStack
from chat.models import Message
from chat.routing import websocket_urlpatterns
from chat.services import ConversationService
from chat.tests.factories import MessageFactory

pytestmark = [pytest.mark.django_db(transaction=True), pytest.mark.asyncio]


def access_token_for(user):
    return str(AccessToken.for_user(user))


def build_application():
    return JWTAuthMiddlewareStack(URLRouter(websocket_urlpatterns))


def chat_path(conversation_id, user=None):
    path = f"/ws/chat/{conversation_id}/"
    if user is not None:
        path += f"?token={access_token_for(user)}"
    return path


async def connect(path, **kwargs):
    communicator = WebsocketCommunicator(build_application(), path, **kwargs)
    connected, detail = await communicator.connect()
    return communicator, connected, detail


async def connect_to_chat(conversation_id, user):
    """Connect and consume the initial snapshot."""
    communicator, connected, _ = await connect(chat_path(conversation_id, user))
    assert connected
    snapshot = await communicator.receive_json_from()
    assert snapshot["type"] == "snapshot"
    return communicator, snapshot


# =============================================================================
# Authentication and authorization
# =============================================================================


class TestChatConsumerConnect:
    async def test_no_token(self, direct_conversation):
        communicator, connected, code = await connect(chat_path(direct_conversation.pk))

        assert not connected
        assert code == CLOSE_CODES.UNAUTHENTICATED

    async def test_invalid_token(self, direct_conversation):
        communicator, connected, code = await connect(
            f"/ws/chat/{direct_conversation.pk}/?token=not-a-jwt"
        )

        assert not connected
        assert code == CLOSE_CODES.UNAUTHENTICATED

    async def test_inactive_user(self, direct_conversation):
        inactive = await database_sync_to_async(UserFactory)(is_active=False)

        communicator, connected, code = await connect(
            chat_path(direct_conversation.pk, inactive)
        )

        assert code == CLOSE_CODES.UNAUTHENTICATED

    async def test_unknown_conversation(self, alice):
        communicator, connected, code = await connect(chat_path("missing", alice))

        assert not connected
        assert code == CLOSE_CODES.NOT_FOUND

    async def test_not_a_member(self, outsider, direct_conversation):
        communicator, connected, code = await connect(
            chat_path(direct_conversation.pk, outsider)
        )

        assert not connected
        assert code == CLOSE_CODES.NOT_A_MEMBER

    async def test_jwt_subprotocol(self, alice, direct_conversation):
        communicator, connected, subprotocol = await connect(
            chat_path(direct_conversation.pk),
            subprotocols=["jwt", access_token_for(alice)],
        )

        assert connected
        assert subprotocol == "jwt"
        snapshot = await communicator.receive_json_from()
        assert snapshot["type"] == "snapshot"
        await communicator.disconnect()

    async def test_query_token_accepts_without_subprotocol(self, alice, direct_conversation):
        communicator, connected, subprotocol = await connect(
            chat_path(direct_conversation.pk, alice)
        )

        assert connected
        assert subprotocol is None
        await communicator.disconnect()


# =============================================================================
# ChatConsumer
# =============================================================================


class TestChatConsumerSnapshot:
    async def test_snapshot_contents(self, alice, bob, direct_conversation):
        start = timezone.now() - timedelta(minutes=5)
        for i in range(3):
            await database_sync_to_async(MessageFactory)(
                conversation=direct_conversation,
                sender=bob,
                text=f"earlier {i}",
                timestamp=start + timedelta(seconds=i),
            )

        communicator, snapshot = await connect_to_chat(direct_conversation.pk, alice)

        assert snapshot["loading"] is False
        assert snapshot["error"] is None
        assert snapshot["is_empty"] is False
        assert snapshot["header"]["title"] == "bob"
        assert snapshot["header"]["other_user_id"] == str(bob.id)
        assert snapshot["conversation"]["id"] == direct_conversation.pk
        assert [m["text"] for m in snapshot["messages"]] == [
            "earlier 0",
            "earlier 1",
            "earlier 2",
        ]
        await communicator.disconnect()

    async def test_empty_conversation(self, alice, direct_conversation):
        communicator, snapshot = await connect_to_chat(direct_conversation.pk, alice)

        assert snapshot["messages"] == []
        assert snapshot["is_empty"] is True
        await communicator.disconnect()

    async def test_group_header(self, carol, group_conversation):
        communicator, snapshot = await connect_to_chat(group_conversation.pk, carol)

        assert snapshot["header"]["title"] == "Beta testers"
        assert snapshot["header"]["is_group"] is True
        await communicator.disconnect()


class TestChatConsumerMessages:
    async def test_message_reaches_every_member(self, alice, bob, direct_conversation):
        alice_ws, _ = await connect_to_chat(direct_conversation.pk, alice)
        bob_ws, _ = await connect_to_chat(direct_conversation.pk, bob)

        await alice_ws.send_json_to({"type": "message", "text": "  Hi Bob  "})

        for communicator in (alice_ws, bob_ws):
            event = await communicator.receive_json_from()
            assert event["type"] == "message"
            assert event["message"]["text"] == "Hi Bob"
            assert event["message"]["sender_id"] == str(alice.id)

        assert await database_sync_to_async(Message.objects.count)() == 1
        await alice_ws.disconnect()
        await bob_ws.disconnect()

    async def test_blank_message_ignored(self, alice, direct_conversation):
        communicator, _ = await connect_to_chat(direct_conversation.pk, alice)

        await communicator.send_json_to({"type": "message", "text": "   "})

        assert await communicator.receive_nothing(timeout=0.2)
        assert await database_sync_to_async(Message.objects.count)() == 0
        await communicator.disconnect()

    async def test_too_long_message_error(self, alice, direct_conversation):
        communicator, _ = await connect_to_chat(direct_conversation.pk, alice)

        await communicator.send_json_to(
            {"type": "message", "text": "x" * (MESSAGE_CONFIG.MAX_CONTENT_LENGTH + 1)}
        )

        event = await communicator.receive_json_from()
        assert event["type"] == "error"
        assert event["code"] == ErrorCode.MESSAGE_TOO_LONG
        await communicator.disconnect()

    async def test_typing_goes_to_others_only(self, alice, bob, direct_conversation):
        alice_ws, _ = await connect_to_chat(direct_conversation.pk, alice)
        bob_ws, _ = await connect_to_chat(direct_conversation.pk, bob)

        await alice_ws.send_json_to({"type": "typing", "is_typing": True})

        event = await bob_ws.receive_json_from()
        assert event == {"type": "typing", "user_id": str(alice.id), "is_typing": True}
        assert await alice_ws.receive_nothing(timeout=0.2)
        await alice_ws.disconnect()
        await bob_ws.disconnect()

    async def test_load_older(self, alice, direct_conversation, settings):
        settings.CHAT_HISTORY_LIMIT = 2
        start = timezone.now() - timedelta(minutes=5)
        for i in range(4):
            await database_sync_to_async(MessageFactory)(
                conversation=direct_conversation,
                sender=alice,
                text=f"m{i}",
                timestamp=start + timedelta(seconds=i),
            )
        communicator, snapshot = await connect_to_chat(direct_conversation.pk, alice)
        assert [m["text"] for m in snapshot["messages"]] == ["m2", "m3"]

        await communicator.send_json_to({"type": "load_older", "limit": 5})

        event = await communicator.receive_json_from()
        assert event["type"] == "older"
        assert [m["text"] for m in event["messages"]] == ["m0", "m1"]
        await communicator.disconnect()

    async def test_negative_limit_is_rejected(self, alice, direct_conversation):
        communicator, _ = await connect_to_chat(direct_conversation.pk, alice)

        await communicator.send_json_to({"type": "load_older", "limit": -5})

        event = await communicator.receive_json_from()
        assert event["type"] == "error"
        assert event["code"] == ErrorCode.INVALID_PAYLOAD
        assert "limit" in event["errors"]
        await communicator.disconnect()

    async def test_non_numeric_limit_is_rejected(self, alice, direct_conversation):
        communicator, _ = await connect_to_chat(direct_conversation.pk, alice)

        await communicator.send_json_to({"type": "load_older", "limit": "lots"})

        event = await communicator.receive_json_from()
        assert event["code"] == ErrorCode.INVALID_PAYLOAD
        await communicator.disconnect()

    async def test_non_string_text_is_rejected(self, alice, direct_conversation):
        communicator, _ = await connect_to_chat(direct_conversation.pk, alice)

        await communicator.send_json_to({"type": "message", "text": ["not", "text"]})

        event = await communicator.receive_json_from()
        assert event["type"] == "error"
        assert event["code"] == ErrorCode.INVALID_PAYLOAD
        assert "text" in event["errors"]
        assert await database_sync_to_async(Message.objects.count)() == 0
        await communicator.disconnect()

    async def test_numeric_text_is_sent_as_text(self, alice, direct_conversation):
        communicator, _ = await connect_to_chat(direct_conversation.pk, alice)

        await communicator.send_json_to({"type": "message", "text": 123})

        event = await communicator.receive_json_from()
        assert event["type"] == "message"
        assert event["message"]["text"] == "123"
        await communicator.disconnect()

    async def test_connection_survives_invalid_frames(self, alice, direct_conversation):
        communicator, _ = await connect_to_chat(direct_conversation.pk, alice)

        await communicator.send_json_to(["not", "an", "object"])
        assert (await communicator.receive_json_from())["code"] == ErrorCode.INVALID_PAYLOAD
        await communicator.send_json_to({"type": "load_older", "limit": -1})
        assert (await communicator.receive_json_from())["code"] == ErrorCode.INVALID_PAYLOAD

        await communicator.send_json_to({"type": "message", "text": "still here"})

        event = await communicator.receive_json_from()
        assert event["type"] == "message"
        assert event["message"]["text"] == "still here"
        await communicator.disconnect()

    async def test_unknown_type(self, alice, direct_conversation):
        communicator, _ = await connect_to_chat(direct_conversation.pk, alice)

        await communicator.send_json_to({"type": "react", "emoji": "+1"})

        event = await communicator.receive_json_from()
        assert event["type"] == "error"
        assert "react" in event["message"]
        await communicator.disconnect()

    async def test_other_member_disconnecting_does_not_break_stream(
        self, alice, bob, direct_conversation
    ):
        alice_ws, _ = await connect_to_chat(direct_conversation.pk, alice)
        bob_ws, _ = await connect_to_chat(direct_conversation.pk, bob)
        await bob_ws.disconnect()

        await alice_ws.send_json_to({"type": "message", "text": "anyone?"})

        assert (await alice_ws.receive_json_from())["type"] == "message"
        await alice_ws.disconnect()


# =============================================================================
# ChatIndexConsumer
# =============================================================================


class TestChatIndexConsumer:
    async def test_no_token(self, db):
        communicator, connected, code = await connect("/ws/chats/")

        assert not connected
        assert code == CLOSE_CODES.UNAUTHENTICATED

    async def test_empty_list(self, alice):
        communicator, connected, _ = await connect(f"/ws/chats/?token={access_token_for(alice)}")
        assert connected

        event = await communicator.receive_json_from()

        assert event == {"type": "chats", "entries": [], "is_empty": True}
        await communicator.disconnect()

    async def test_live_updates(self, alice, bob):
        communicator, _, _ = await connect(f"/ws/chats/?token={access_token_for(alice)}")
        await communicator.receive_json_from()

        result = await database_sync_to_async(ConversationService.start_direct)(bob.id, alice.id)

        event = await communicator.receive_json_from()
        assert event["type"] == "chats"
        assert event["is_empty"] is False
        assert [e["conversation_id"] for e in event["entries"]] == [
            result.data.conversation_id
        ]
        assert event["entries"][0]["title"] == "bob"
        await communicator.disconnect()

    async def test_read_only(self, alice):
        communicator, _, _ = await connect(f"/ws/chats/?token={access_token_for(alice)}")
        await communicator.receive_json_from()

        await communicator.send_json_to({"type": "message", "text": "hi"})

        event = await communicator.receive_json_from()
        assert event["type"] == "error"
        await communicator.disconnect()
