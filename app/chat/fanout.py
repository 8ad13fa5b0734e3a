"""
Multi-location write fan-out for sending a message.

Sending one message touches several records: the message itself, the
conversation's last-message summary and one chat list row per participant.
The write set is described as data first (``SendMessageCommand.writes``),
then applied by ``FanoutExecutor`` inside a single database transaction, so
readers see either all of it or none of it.

Write Order:
    1. Message append                      conversations/<cid>/messages
    2. Conversation summary patch          conversations/<cid>
    3. Sender's chat list row              chat_index/<sender>/<cid>
    4. Every other participant's row       chat_index/<uid>/<cid>

After commit the executor runs its audit hooks with the applied writes and
publishes the new message and the chat list changes on the channel layer.

Usage:
    command = SendMessageCommand(conversation, sender_id, "Hello", participant_ids)
    message = FanoutExecutor().execute(command)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from chat import realtime
from chat.models import ChatIndexEntry, Conversation, Message, MessageType

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from datetime import datetime
    from typing import Any

logger = logging.getLogger(__name__)


def build_snippet(text: str) -> str:
    """
    Shorten message text for chat lists.

    Text longer than ``CHAT_SNIPPET_MAX_LENGTH`` (50) is cut to its first
    ``CHAT_SNIPPET_TRUNCATE_AT`` (47) characters plus "...", so a snippet is
    never longer than the limit.
    """
    if len(text) > settings.CHAT_SNIPPET_MAX_LENGTH:
        return text[: settings.CHAT_SNIPPET_TRUNCATE_AT] + "..."
    return text


# =============================================================================
# Write descriptions
# =============================================================================


class LocationKind:
    MESSAGE = "message"
    CONVERSATION = "conversation"
    CHAT_INDEX = "chat_index"


@dataclass(frozen=True)
class Location:
    """Address of one record touched by a fan-out."""

    kind: str
    conversation_id: str
    user_id: str | None = None

    @classmethod
    def message(cls, conversation_id) -> Location:
        return cls(LocationKind.MESSAGE, str(conversation_id))

    @classmethod
    def conversation(cls, conversation_id) -> Location:
        return cls(LocationKind.CONVERSATION, str(conversation_id))

    @classmethod
    def chat_index(cls, user_id, conversation_id) -> Location:
        return cls(LocationKind.CHAT_INDEX, str(conversation_id), str(user_id))

    def __str__(self) -> str:
        if self.kind == LocationKind.MESSAGE:
            return f"conversations/{self.conversation_id}/messages"
        if self.kind == LocationKind.CONVERSATION:
            return f"conversations/{self.conversation_id}"
        return f"chat_index/{self.user_id}/{self.conversation_id}"


# (location, field values) applied as one unit
Write = tuple[Location, dict]


class SendMessageCommand:
    """
    Everything one send writes, described as ordered (location, patch) pairs.

    Attributes:
        conversation: Conversation being written to
        sender_id: String id of the sender
        text: Trimmed, non-empty message text
        recipient_ids: Other participants, de-duplicated, sender excluded
    """

    def __init__(
        self,
        conversation: Conversation,
        sender_id,
        text: str,
        participant_ids: Iterable | None = None,
    ):
        self.conversation = conversation
        self.sender_id = str(sender_id)
        self.text = text

        if participant_ids is None:
            participant_ids = conversation.member_ids()

        seen = {self.sender_id}
        self.recipient_ids: list[str] = []
        for uid in map(str, participant_ids):
            if uid not in seen:
                seen.add(uid)
                self.recipient_ids.append(uid)

    @property
    def conversation_id(self) -> str:
        return self.conversation.pk

    @property
    def index_owner_ids(self) -> list[str]:
        """Users whose chat list row is patched, sender first."""
        return [self.sender_id, *self.recipient_ids]

    def writes(self, timestamp: datetime) -> list[Write]:
        """
        Build the ordered write set for a send stamped at ``timestamp``.

        The same summary (timestamp, snippet, sender) goes to the
        conversation and to every chat list row.
        """
        summary = {
            "last_message_timestamp": timestamp,
            "last_message_snippet": build_snippet(self.text),
            "last_message_sender_id": self.sender_id,
        }

        writes: list[Write] = [
            (
                Location.message(self.conversation_id),
                {
                    "sender_id": self.sender_id,
                    "text": self.text,
                    "timestamp": timestamp,
                    "message_type": MessageType.TEXT,
                },
            ),
            (Location.conversation(self.conversation_id), dict(summary)),
        ]
        writes.extend(
            (Location.chat_index(uid, self.conversation_id), dict(summary))
            for uid in self.index_owner_ids
        )
        return writes


# =============================================================================
# Executor
# =============================================================================


class FanoutExecutor:
    """
    Applies a SendMessageCommand atomically, then publishes it.

    The conversation row is locked for the duration of the transaction and
    the server timestamp is taken under the lock, so concurrent sends to the
    same conversation commit in timestamp order and the denormalized
    summaries always end on the latest message.

    A chat list row that does not exist yet (a member whose row was never
    written or was lost) is created from the conversation instead of being
    skipped.

    Args:
        audit_hooks: Callables run after commit with (command, writes).
            Failures in a hook are logged, never raised.
        publish: Broadcast on the channel layer after commit
    """

    def __init__(
        self,
        audit_hooks: Iterable[Callable[[SendMessageCommand, list[Write]], None]] = (),
        publish: bool = True,
    ):
        self.audit_hooks = list(audit_hooks)
        self.publish = publish

    def execute(self, command: SendMessageCommand) -> Message:
        """
        Apply every write of ``command`` in one transaction.

        Raises:
            Conversation.DoesNotExist: The conversation vanished
            DatabaseError: Any write failed; nothing was written
        """
        with transaction.atomic():
            Conversation.objects.select_for_update().only("pk").get(
                pk=command.conversation_id
            )
            timestamp = timezone.now()
            writes = command.writes(timestamp)

            message = None
            for location, values in writes:
                applied = self._apply(command, location, values)
                if location.kind == LocationKind.MESSAGE:
                    message = applied

            transaction.on_commit(lambda: self._after_commit(command, message, writes))

        logger.debug(
            f"Fan-out for message {message.pk} in {command.conversation_id} "
            f"applied {len(writes)} writes"
        )
        return message

    def _apply(self, command: SendMessageCommand, location: Location, values: dict):
        if location.kind == LocationKind.MESSAGE:
            message = Message.objects.create(conversation_id=location.conversation_id, **values)
            # Values arrive as strings; hand back the typed row
            message.refresh_from_db()
            return message

        if location.kind == LocationKind.CONVERSATION:
            return Conversation.objects.filter(pk=location.conversation_id).update(
                updated_at=timezone.now(), **values
            )

        if location.kind == LocationKind.CHAT_INDEX:
            updated = ChatIndexEntry.objects.filter(
                user_id=location.user_id,
                conversation_id=location.conversation_id,
            ).update(updated_at=timezone.now(), **values)
            if updated:
                return updated
            return ChatIndexEntry.objects.create(
                user_id=location.user_id,
                conversation_id=location.conversation_id,
                **index_entry_identity(command.conversation, location.user_id),
                **values,
            )

        raise ValueError(f"Unknown fan-out location: {location}")

    def _after_commit(
        self, command: SendMessageCommand, message: Message, writes: list[Write]
    ) -> None:
        for hook in self.audit_hooks:
            try:
                hook(command, writes)
            except Exception:
                logger.exception(
                    f"Fan-out audit hook {hook!r} failed for message {message.pk}"
                )

        if not self.publish:
            return

        from chat.serializers import MessageSerializer

        realtime.publish_message(
            command.conversation_id, MessageSerializer(message).data
        )
        for uid in command.index_owner_ids:
            realtime.publish_index_changed(uid, command.conversation_id)


def index_entry_identity(conversation: Conversation, user_id) -> dict[str, Any]:
    """
    Identity fields of a chat list row for ``user_id``.

    Direct conversations carry the counterpart's display identity as
    resolved now; groups carry the group name.
    """
    if conversation.is_group:
        return {"is_group": True, "group_name": conversation.group_name}

    from authentication.services import ProfileLookupService

    other_id = conversation.other_member_id(user_id)
    if other_id is None:
        return {"is_group": False}

    identity = ProfileLookupService.resolve(other_id)
    return {
        "is_group": False,
        "other_user_id": other_id,
        "other_user_name": identity.username,
        "other_user_avatar": identity.avatar_url,
    }
