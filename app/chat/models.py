"""
Chat system models.

This module defines the data models for the chat system supporting:
- Direct (1:1) conversations between exactly two users
- Named group conversations

Models:
    Conversation: Shared metadata of one conversation (members, last message)
    Message: Individual immutable message within a conversation
    ChatIndexEntry: One row per (user, conversation) backing a user's chat list

Design Decisions:
    - Conversation ids are strings. A direct conversation's id is derived
      from its two member ids (see chat.services.conversation_id), so both
      participants address the same record without a lookup table.
    - The last-message fields are denormalized onto Conversation and onto
      every ChatIndexEntry so a chat list renders from one table.
    - Conversations and messages are never deleted by the chat subsystem.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone

from core.models import BaseModel


class MessageType(models.TextChoices):
    """
    Type of message content.

    TEXT: User-authored text message (the only type composed today)
    """

    TEXT = "text", "Text"


class LastMessageFields(models.Model):
    """
    Denormalized summary of a conversation's most recent message.

    Fields:
        last_message_timestamp: Server time of the last message (seed time on creation)
        last_message_snippet: Display snippet of the last message
        last_message_sender: Sender of the last message (null for the seed)
    """

    last_message_timestamp = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        help_text="Server timestamp of the most recent message",
    )
    last_message_snippet = models.CharField(
        max_length=100,
        blank=True,
        default="",
        help_text="Snippet of the most recent message",
    )
    last_message_sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        help_text="Sender of the most recent message (null when seeded)",
    )

    class Meta:
        abstract = True

    @property
    def last_message_sender_uid(self) -> str | None:
        if self.last_message_sender_id is None:
            return None
        return str(self.last_message_sender_id)


class Conversation(LastMessageFields, BaseModel):
    """
    Shared metadata of a conversation.

    Conversation Kinds:
        Direct: is_group=False, exactly two distinct members, id derived from
                the member ids. Created once, never re-created.

        Group: is_group=True, a group_name and two or more members, random id.

    Fields:
        id: Conversation id string
        is_group: Whether this is a group conversation
        members: Set of participating users
        group_name: Display name for groups (empty for direct)
        last_message_*: Denormalized last-message summary

    Relationships:
        messages: All Message records for this conversation
        index_entries: One ChatIndexEntry per member
    """

    id = models.CharField(
        primary_key=True,
        max_length=100,
        editable=False,
        help_text="Conversation id (derived from member ids for direct chats)",
    )

    is_group = models.BooleanField(
        default=False,
        db_index=True,
        help_text="Whether this is a group conversation",
    )

    members = models.ManyToManyField(
        settings.AUTH_USER_MODEL,
        related_name="conversations",
        help_text="Users participating in this conversation",
    )

    group_name = models.CharField(
        max_length=100,
        blank=True,
        default="",
        help_text="Title for group conversations (empty for direct)",
    )

    class Meta:
        db_table = "chat_conversation"
        ordering = ["-last_message_timestamp", "-created_at"]

    def __str__(self) -> str:
        if self.is_group:
            return f"Group: {self.group_name or self.pk}"
        return f"Direct({self.pk})"

    def member_ids(self) -> list[str]:
        """String ids of all members, sorted."""
        return sorted(str(pk) for pk in self.members.values_list("pk", flat=True))

    def has_member(self, user_id) -> bool:
        return self.members.filter(pk=user_id).exists()

    def other_member_id(self, user_id) -> str | None:
        """
        The counterpart of ``user_id`` in a direct conversation.

        Returns:
            String id of the other member, or None for groups
        """
        if self.is_group:
            return None
        others = [uid for uid in self.member_ids() if uid != str(user_id)]
        return others[0] if others else None


class Message(models.Model):
    """
    A message within a conversation.

    Messages are immutable once written. ``timestamp`` is assigned by the
    server and is not unique, so ordering always tie-breaks on ``id``.

    Fields:
        id: Opaque auto-increment id
        conversation: Conversation this message belongs to
        sender: User who sent the message
        text: Message text (non-empty after trimming)
        timestamp: Server time the message was written
        message_type: Always TEXT
    """

    id = models.BigAutoField(primary_key=True)

    conversation = models.ForeignKey(
        Conversation,
        on_delete=models.CASCADE,
        related_name="messages",
        help_text="Conversation this message belongs to",
    )

    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="chat_messages",
        help_text="User who sent the message",
    )

    text = models.TextField(help_text="Message text")

    timestamp = models.DateTimeField(
        default=timezone.now,
        db_index=True,
        help_text="Server timestamp of the message",
    )

    message_type = models.CharField(
        max_length=10,
        choices=MessageType.choices,
        default=MessageType.TEXT,
        help_text="Type of message",
    )

    class Meta:
        db_table = "chat_message"
        ordering = ["timestamp", "id"]
        indexes = [
            # Recent history of a conversation
            models.Index(
                fields=["conversation", "-timestamp", "-id"],
                name="chat_msg_conv_recent_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"Message {self.pk} in {self.conversation_id}"


class ChatIndexEntry(LastMessageFields, BaseModel):
    """
    One user's view of one conversation in their chat list.

    Direct conversations carry the counterpart's identity as it was resolved
    when the entry was written; groups carry the group name.

    Fields:
        user: Owner of this chat list row
        conversation: Conversation the row points at
        is_group: Mirrors Conversation.is_group
        other_user: Counterpart in a direct conversation
        other_user_name: Counterpart display name (possibly a fallback)
        other_user_avatar: Counterpart avatar URL
        group_name: Group title (empty for direct)
        last_message_*: Mirror of the conversation's last-message summary

    Constraints:
        - UniqueConstraint(user, conversation): One row per user per conversation
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="chat_index_entries",
        help_text="User whose chat list this row belongs to",
    )

    conversation = models.ForeignKey(
        Conversation,
        on_delete=models.CASCADE,
        related_name="index_entries",
        help_text="Conversation this row points at",
    )

    is_group = models.BooleanField(default=False)

    other_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        help_text="Other participant of a direct conversation",
    )

    other_user_name = models.CharField(
        max_length=100,
        blank=True,
        default="",
        help_text="Display name of the other participant",
    )

    other_user_avatar = models.URLField(
        max_length=500,
        blank=True,
        null=True,
        help_text="Avatar URL of the other participant",
    )

    group_name = models.CharField(max_length=100, blank=True, default="")

    class Meta:
        db_table = "chat_index_entry"
        ordering = ["-last_message_timestamp"]
        verbose_name_plural = "chat index entries"
        indexes = [
            # A user's chat list, most recent first
            models.Index(
                fields=["user", "-last_message_timestamp"],
                name="chat_index_user_recent_idx",
            ),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["user", "conversation"],
                name="unique_chat_index_entry",
            ),
        ]

    def __str__(self) -> str:
        return f"ChatIndexEntry: {self.user_id} -> {self.conversation_id}"

    @property
    def title(self) -> str:
        """Name shown in the chat list."""
        return self.group_name if self.is_group else self.other_user_name
