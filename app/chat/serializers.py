"""
Serializers for chat API.

This module provides serializers for the chat system:
- Message serializers (read, create)
- Chat index entry serializer (chat list rows)
- Conversation metadata and header serializers
- Conversation starter request/response serializers

Serializer Hierarchy:
    MessageSerializer: Message as delivered over REST and WebSocket
    MessageCreateSerializer: Send new message
    ChatIndexEntrySerializer: One row of a user's chat list
    ConversationSerializer: Conversation metadata
    ChatHeaderSerializer: Title/avatar shown above a message stream
    StartChatSerializer / CreateGroupSerializer: Conversation starter input

Design Decisions:
    - Read and write serializers are separate for clarity
    - User ids are always rendered as strings
    - Read serializers never touch related rows, so they are safe to call
      inside on_commit hooks and from consumers
"""

from __future__ import annotations

from rest_framework import serializers

from chat.constants import CONVERSATION_CONFIG
from chat.models import ChatIndexEntry, Conversation, Message


class UserIdField(serializers.CharField):
    """Renders a UUID foreign key (``<field>_id``) as a string or None."""

    def __init__(self, **kwargs):
        kwargs.setdefault("read_only", True)
        kwargs.setdefault("allow_null", True)
        super().__init__(**kwargs)

    def to_representation(self, value):
        return None if value is None else str(value)


# =============================================================================
# Message Serializers
# =============================================================================


class MessageSerializer(serializers.ModelSerializer):
    """Message as rendered in a message stream."""

    conversation_id = serializers.CharField(read_only=True)
    sender_id = UserIdField()

    class Meta:
        model = Message
        fields = [
            "id",
            "conversation_id",
            "sender_id",
            "text",
            "timestamp",
            "message_type",
        ]
        read_only_fields = fields


class MessageCreateSerializer(serializers.Serializer):
    """
    Serializer for sending messages.

    Blank text is accepted here; the service treats it as a no-op. Length
    is checked by the service after trimming.
    """

    text = serializers.CharField(
        allow_blank=True,
        trim_whitespace=False,
        help_text="Message text (max 10,000 characters after trimming)",
    )


class MessageHistoryQuerySerializer(serializers.Serializer):
    """Query parameters for reading history."""

    before = serializers.IntegerField(
        required=False,
        min_value=1,
        help_text="Only return messages older than this message id",
    )
    limit = serializers.IntegerField(
        required=False,
        min_value=1,
        max_value=100,
        help_text="Maximum number of messages (defaults to the history window)",
    )


# =============================================================================
# Chat Index Serializers
# =============================================================================


class ChatIndexEntrySerializer(serializers.ModelSerializer):
    """One row of a user's chat list."""

    conversation_id = serializers.CharField(read_only=True)
    other_user_id = UserIdField()
    last_message_sender_id = UserIdField()
    title = serializers.CharField(read_only=True)

    class Meta:
        model = ChatIndexEntry
        fields = [
            "conversation_id",
            "is_group",
            "title",
            "other_user_id",
            "other_user_name",
            "other_user_avatar",
            "group_name",
            "last_message_timestamp",
            "last_message_snippet",
            "last_message_sender_id",
        ]
        read_only_fields = fields


# =============================================================================
# Conversation Serializers
# =============================================================================


class ConversationSerializer(serializers.ModelSerializer):
    """Conversation metadata."""

    members = serializers.SerializerMethodField()
    last_message_sender_id = UserIdField()

    class Meta:
        model = Conversation
        fields = [
            "id",
            "is_group",
            "group_name",
            "members",
            "created_at",
            "last_message_timestamp",
            "last_message_snippet",
            "last_message_sender_id",
        ]
        read_only_fields = fields

    def get_members(self, obj: Conversation) -> list[str]:
        return obj.member_ids()


class ChatHeaderSerializer(serializers.Serializer):
    """What the top of a chat window shows."""

    title = serializers.CharField()
    avatar_url = serializers.CharField(allow_null=True)
    other_user_id = serializers.CharField(allow_null=True)
    is_group = serializers.BooleanField()


class ConversationDetailSerializer(serializers.Serializer):
    conversation = ConversationSerializer()
    header = ChatHeaderSerializer()


class StartChatSerializer(serializers.Serializer):
    """Start (or reopen) a direct conversation with another user."""

    target_user_id = serializers.CharField(
        max_length=64,
        help_text="Id of the user to chat with",
    )


class CreateGroupSerializer(serializers.Serializer):
    """Create a named group conversation."""

    group_name = serializers.CharField(
        max_length=CONVERSATION_CONFIG.GROUP_NAME_MAX_LENGTH,
        allow_blank=True,
        help_text="Display name of the group",
    )
    member_ids = serializers.ListField(
        child=serializers.CharField(max_length=64),
        allow_empty=True,
        help_text="Ids of the members besides the creator",
    )


class StartedConversationSerializer(serializers.Serializer):
    conversation_id = serializers.CharField()
    created = serializers.BooleanField()
