"""
Tests for the chat REST API.

Endpoints:
    GET  /api/v1/chat/chats/
    POST /api/v1/chat/chats/start/
    POST /api/v1/chat/chats/groups/
    GET  /api/v1/chat/conversations/{id}/
    GET  /api/v1/chat/conversations/{id}/messages/
    POST /api/v1/chat/conversations/{id}/messages/

Each test class covers one endpoint: success shape, validation, 401 for
anonymous callers, 403 for non-members and 404 for unknown ids.
"""

import uuid
from datetime import timedelta

from django.db import DatabaseError
from django.utils import timezone
from rest_framework import status

from chat.fanout import FanoutExecutor
from chat.models import ChatIndexEntry, Conversation, Message
from chat.services import (
    ConversationService,
    MessageService,
    ReconciliationService,
    conversation_id,
)
from chat.tests.factories import MessageFactory

CHATS_URL = "/api/v1/chat/chats/"
START_URL = "/api/v1/chat/chats/start/"
GROUPS_URL = "/api/v1/chat/chats/groups/"


def conversation_url(cid):
    return f"/api/v1/chat/conversations/{cid}/"


def messages_url(cid):
    return f"/api/v1/chat/conversations/{cid}/messages/"


# =============================================================================
# Chat list and conversation starter
# =============================================================================


class TestChatListView:
    def test_requires_authentication(self, api_client, db):
        response = api_client.get(CHATS_URL)

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_empty_list(self, alice_client):
        response = alice_client.get(CHATS_URL)

        assert response.status_code == status.HTTP_200_OK
        assert response.data == []

    def test_lists_own_chats_most_recent_first(self, alice, bob, carol, alice_client):
        with_bob = ConversationService.start_direct(alice.id, bob.id).data.conversation_id
        with_carol = ConversationService.start_direct(alice.id, carol.id).data.conversation_id
        MessageService.send_message(with_bob, bob.id, "newest")

        response = alice_client.get(CHATS_URL)

        assert [row["conversation_id"] for row in response.data] == [with_bob, with_carol]
        top = response.data[0]
        assert top["title"] == "bob"
        assert top["other_user_id"] == str(bob.id)
        assert top["last_message_snippet"] == "newest"
        assert top["last_message_sender_id"] == str(bob.id)
        assert response.data[1]["last_message_snippet"] == "Chat created"
        assert response.data[1]["last_message_sender_id"] is None


class TestStartChatView:
    def test_creates_conversation(self, alice, bob, alice_client):
        response = alice_client.post(START_URL, {"target_user_id": str(bob.id)}, format="json")

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data == {
            "conversation_id": conversation_id(alice.id, bob.id),
            "created": True,
        }

    def test_existing_conversation_returns_200(self, bob, alice_client, direct_conversation):
        response = alice_client.post(START_URL, {"target_user_id": str(bob.id)}, format="json")

        assert response.status_code == status.HTTP_200_OK
        assert response.data["conversation_id"] == direct_conversation.pk
        assert response.data["created"] is False

    def test_self_chat_rejected(self, alice, alice_client):
        response = alice_client.post(START_URL, {"target_user_id": str(alice.id)}, format="json")

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data["error_code"] == "SAME_USER"

    def test_unknown_user(self, alice_client):
        response = alice_client.post(
            START_URL, {"target_user_id": str(uuid.uuid4())}, format="json"
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.data["error_code"] == "USER_NOT_FOUND"

    def test_missing_target(self, alice_client):
        response = alice_client.post(START_URL, {}, format="json")

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert "target_user_id" in response.data

    def test_requires_authentication(self, api_client, bob):
        response = api_client.post(START_URL, {"target_user_id": str(bob.id)}, format="json")

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert Conversation.objects.count() == 0


class TestCreateGroupView:
    def test_creates_group(self, alice, bob, carol, alice_client):
        response = alice_client.post(
            GROUPS_URL,
            {"group_name": "Beta testers", "member_ids": [str(bob.id), str(carol.id)]},
            format="json",
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data["is_group"] is True
        assert response.data["group_name"] == "Beta testers"
        assert response.data["members"] == sorted(str(u.id) for u in (alice, bob, carol))
        assert ChatIndexEntry.objects.filter(conversation_id=response.data["id"]).count() == 3

    def test_blank_name(self, bob, alice_client):
        response = alice_client.post(
            GROUPS_URL, {"group_name": "  ", "member_ids": [str(bob.id)]}, format="json"
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data["error_code"] == "GROUP_NAME_REQUIRED"

    def test_no_other_members(self, alice_client):
        response = alice_client.post(
            GROUPS_URL, {"group_name": "Solo", "member_ids": []}, format="json"
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data["error_code"] == "NOT_ENOUGH_MEMBERS"

    def test_unknown_member(self, bob, alice_client):
        missing = str(uuid.uuid4())

        response = alice_client.post(
            GROUPS_URL,
            {"group_name": "Beta", "member_ids": [str(bob.id), missing]},
            format="json",
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.data["details"] == {"member_ids": [missing]}


# =============================================================================
# Conversation metadata
# =============================================================================


class TestConversationDetailView:
    def test_direct_header(self, bob, alice_client, direct_conversation):
        response = alice_client.get(conversation_url(direct_conversation.pk))

        assert response.status_code == status.HTTP_200_OK
        assert response.data["conversation"]["id"] == direct_conversation.pk
        assert response.data["conversation"]["last_message_snippet"] == "Chat created"
        assert response.data["header"] == {
            "title": "bob",
            "avatar_url": "https://cdn.example.com/avatars/bob.png",
            "other_user_id": str(bob.id),
            "is_group": False,
        }

    def test_group_header(self, alice_client, group_conversation):
        response = alice_client.get(conversation_url(group_conversation.pk))

        assert response.data["header"]["title"] == "Beta testers"
        assert response.data["header"]["is_group"] is True

    def test_non_member_forbidden(self, client_for, outsider, direct_conversation):
        response = client_for(outsider).get(conversation_url(direct_conversation.pk))

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_unknown_conversation(self, alice_client):
        response = alice_client.get(conversation_url("missing"))

        assert response.status_code == status.HTTP_404_NOT_FOUND


# =============================================================================
# Messages
# =============================================================================


class TestMessageListView:
    def test_recent_history_oldest_first(self, alice, alice_client, direct_conversation, settings):
        settings.CHAT_HISTORY_LIMIT = 3
        start = timezone.now() - timedelta(minutes=5)
        for i in range(5):
            MessageFactory(
                conversation=direct_conversation,
                sender=alice,
                text=f"m{i}",
                timestamp=start + timedelta(seconds=i),
            )

        response = alice_client.get(messages_url(direct_conversation.pk))

        assert response.status_code == status.HTTP_200_OK
        assert [m["text"] for m in response.data] == ["m2", "m3", "m4"]
        assert response.data[0]["sender_id"] == str(alice.id)
        assert response.data[0]["conversation_id"] == direct_conversation.pk

    def test_before_pages_back(self, alice, alice_client, direct_conversation):
        start = timezone.now() - timedelta(minutes=5)
        messages = [
            MessageFactory(
                conversation=direct_conversation,
                sender=alice,
                text=f"m{i}",
                timestamp=start + timedelta(seconds=i),
            )
            for i in range(5)
        ]

        response = alice_client.get(
            messages_url(direct_conversation.pk), {"before": messages[3].id, "limit": 2}
        )

        assert [m["text"] for m in response.data] == ["m1", "m2"]

    def test_invalid_limit(self, alice_client, direct_conversation):
        response = alice_client.get(messages_url(direct_conversation.pk), {"limit": 0})

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_empty(self, alice_client, direct_conversation):
        response = alice_client.get(messages_url(direct_conversation.pk))

        assert response.data == []

    def test_non_member_forbidden(self, client_for, outsider, direct_conversation):
        response = client_for(outsider).get(messages_url(direct_conversation.pk))

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_unknown_conversation(self, alice_client):
        response = alice_client.get(messages_url("missing"))

        assert response.status_code == status.HTTP_404_NOT_FOUND


class TestMessageCreateView:
    def test_sends_message(self, alice, bob, alice_client, direct_conversation):
        response = alice_client.post(
            messages_url(direct_conversation.pk), {"text": " Hello Bob "}, format="json"
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data["text"] == "Hello Bob"
        assert response.data["sender_id"] == str(alice.id)
        bob_row = ChatIndexEntry.objects.get(user=bob, conversation=direct_conversation)
        assert bob_row.last_message_snippet == "Hello Bob"

    def test_blank_text_no_content(self, alice_client, direct_conversation):
        response = alice_client.post(
            messages_url(direct_conversation.pk), {"text": "   "}, format="json"
        )

        assert response.status_code == status.HTTP_204_NO_CONTENT
        assert Message.objects.count() == 0

    def test_too_long(self, alice_client, direct_conversation):
        response = alice_client.post(
            messages_url(direct_conversation.pk), {"text": "x" * 10001}, format="json"
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data["error_code"] == "MESSAGE_TOO_LONG"

    def test_non_member_forbidden(self, client_for, outsider, direct_conversation):
        response = client_for(outsider).post(
            messages_url(direct_conversation.pk), {"text": "let me in"}, format="json"
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert Message.objects.count() == 0

    def test_write_failure_is_conflict(self, alice_client, direct_conversation, mocker):
        mocker.patch.object(FanoutExecutor, "execute", side_effect=DatabaseError("down"))
        mocker.patch.object(ReconciliationService, "schedule")

        response = alice_client.post(
            messages_url(direct_conversation.pk), {"text": "hi"}, format="json"
        )

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data["error_code"] == "WRITE_FAILED"

    def test_requires_authentication(self, api_client, direct_conversation):
        response = api_client.post(
            messages_url(direct_conversation.pk), {"text": "hi"}, format="json"
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
