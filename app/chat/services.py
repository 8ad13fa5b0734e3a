"""
Chat services.

This module contains the business logic of the chat subsystem:

Services:
    ConversationService: Start direct chats, create groups, read metadata
    ChatIndexService: A user's chat list, most recent first
    MessageService: Send messages (atomic fan-out) and read history
    ReconciliationService: Detect and repair drift between messages,
        conversation summaries and chat list rows

Helpers:
    conversation_id: Deterministic id of the direct chat between two users
    build_snippet: Chat list snippet of a message text

Transaction Model:
    Every multi-record write (conversation creation, message fan-out,
    reconciliation repair) runs in one database transaction. Realtime
    events are published only after commit.

Usage:
    from chat.services import ConversationService, MessageService

    result = ConversationService.start_direct(me.id, other_id)
    if result.success:
        MessageService.send_message(result.data.conversation_id, me.id, "Hi!")
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import TYPE_CHECKING

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import F, Q
from django.utils import timezone

from authentication.models import User
from authentication.services import ProfileLookupSession
from chat import realtime
from chat.constants import CONVERSATION_CONFIG, MESSAGE_CONFIG, ErrorCode
from chat.fanout import (
    FanoutExecutor,
    SendMessageCommand,
    build_snippet,
    index_entry_identity,
)
from chat.models import ChatIndexEntry, Conversation, Message
from core.services import BaseService, ServiceResult

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from chat.fanout import Write

__all__ = [
    "ChatHeader",
    "ChatIndexService",
    "ConversationService",
    "MessageService",
    "ReconciliationService",
    "StartedConversation",
    "build_snippet",
    "conversation_id",
]

# Fan-out audit trail, routed to the log file only (see LOGGING)
audit_logger = logging.getLogger("chat.audit")


def conversation_id(user_a, user_b, separator: str | None = None) -> str:
    """
    Id of the direct conversation between two users.

    The smaller id (by string comparison) comes first, so both users derive
    the same id without coordination.

    Raises:
        ValueError: If either id is empty or both ids are equal
    """
    if separator is None:
        separator = settings.CHAT_CONVERSATION_ID_SEPARATOR

    a, b = str(user_a or ""), str(user_b or "")
    if not a or not b:
        raise ValueError("Both user ids are required")
    if a == b:
        raise ValueError("A direct conversation needs two different users")

    low, high = sorted((a, b))
    return f"{low}{separator}{high}"


def _existing_user_ids(user_ids: Iterable[str]) -> set[str]:
    """String ids among ``user_ids`` that belong to active users."""
    valid = []
    for uid in user_ids:
        try:
            valid.append(User._meta.pk.to_python(uid))
        except DjangoValidationError:
            continue
    found = User.objects.filter(pk__in=valid, is_active=True).values_list("pk", flat=True)
    return {str(pk) for pk in found}


def _publish_index_changes(user_ids: Iterable[str], conversation_id: str) -> None:
    for uid in user_ids:
        realtime.publish_index_changed(uid, conversation_id)


def _page_size(limit: int | None) -> int:
    """History page size: the configured window unless a positive limit is given."""
    if not limit or limit < 1:
        return min(settings.CHAT_HISTORY_LIMIT, MESSAGE_CONFIG.MAX_PAGE_SIZE)
    return min(limit, MESSAGE_CONFIG.MAX_PAGE_SIZE)


# =============================================================================
# Conversation Starter
# =============================================================================


@dataclass(frozen=True)
class StartedConversation:
    """Outcome of starting a direct chat."""

    conversation_id: str
    created: bool


@dataclass(frozen=True)
class ChatHeader:
    """Title and avatar shown above a conversation."""

    title: str
    avatar_url: str | None = None
    other_user_id: str | None = None
    is_group: bool = False


class ConversationService(BaseService):
    """
    Service for creating and reading conversations.

    Methods:
        start_direct: Open the direct chat with another user, creating it once
        create_group: Create a named group conversation
        get_metadata: Conversation or None
        get_header: Title/avatar for a viewer
    """

    @classmethod
    def start_direct(
        cls,
        current_user_id,
        target_user_id,
        on_started: Callable[[str], None] | None = None,
    ) -> ServiceResult[StartedConversation]:
        """
        Start (or reopen) the direct conversation between two users.

        When the conversation already exists nothing is written. Otherwise
        the conversation and both chat list rows are created in one
        transaction, each row carrying the other user's display identity
        and a "Chat created" snippet. A concurrent creator that loses the
        insert race resolves to the winner's conversation.

        Args:
            current_user_id: Id of the user starting the chat
            target_user_id: Id of the user to chat with
            on_started: Called with the conversation id once it is known

        Returns:
            ServiceResult with StartedConversation, or a failure with
            SAME_USER, USER_NOT_FOUND or WRITE_FAILED
        """
        current, target = str(current_user_id or ""), str(target_user_id or "")
        logger = cls.get_logger()

        if current and current == target:
            return ServiceResult.failure(
                "Cannot start a chat with yourself",
                error_code=ErrorCode.SAME_USER,
            )

        existing_users = _existing_user_ids([current, target])
        missing = [uid for uid in (current, target) if uid not in existing_users]
        if missing:
            return ServiceResult.failure(
                "User not found",
                error_code=ErrorCode.USER_NOT_FOUND,
                errors={"user_id": missing},
            )

        cid = conversation_id(current, target)
        created = False

        if not Conversation.objects.filter(pk=cid).exists():
            identities = ProfileLookupSession().resolve_many([current, target])
            try:
                with cls.atomic():
                    seeded_at = timezone.now()
                    conversation = Conversation.objects.create(
                        id=cid,
                        is_group=False,
                        last_message_timestamp=seeded_at,
                        last_message_snippet=CONVERSATION_CONFIG.SEED_SNIPPET,
                    )
                    conversation.members.add(current, target)
                    ChatIndexEntry.objects.bulk_create(
                        [
                            ChatIndexEntry(
                                user_id=owner,
                                conversation=conversation,
                                is_group=False,
                                other_user_id=other,
                                other_user_name=identities[other].username,
                                other_user_avatar=identities[other].avatar_url,
                                last_message_timestamp=seeded_at,
                                last_message_snippet=CONVERSATION_CONFIG.SEED_SNIPPET,
                            )
                            for owner, other in ((current, target), (target, current))
                        ]
                    )
                    transaction.on_commit(
                        lambda: _publish_index_changes([current, target], cid)
                    )
                created = True
            except IntegrityError as exc:
                if not Conversation.objects.filter(pk=cid).exists():
                    return cls.handle_exception(
                        exc, f"Creating conversation {cid} failed", ErrorCode.WRITE_FAILED
                    )
                logger.info(f"Conversation {cid} was created concurrently, reusing it")
            except DatabaseError as exc:
                return cls.handle_exception(
                    exc, f"Creating conversation {cid} failed", ErrorCode.WRITE_FAILED
                )

        if created:
            logger.info(f"Started direct conversation {cid}")

        if on_started is not None:
            on_started(cid)

        return ServiceResult.success(StartedConversation(conversation_id=cid, created=created))

    @classmethod
    def create_group(
        cls,
        creator_id,
        group_name: str,
        member_ids: Iterable,
    ) -> ServiceResult[Conversation]:
        """
        Create a named group conversation.

        The creator is always a member; duplicate member ids are ignored.
        Every member gets a chat list row carrying the group name.

        Returns:
            ServiceResult with the Conversation, or a failure with
            GROUP_NAME_REQUIRED, NOT_ENOUGH_MEMBERS, USER_NOT_FOUND or
            WRITE_FAILED
        """
        group_name = (group_name or "").strip()
        if not group_name:
            return ServiceResult.failure(
                "Group name is required",
                error_code=ErrorCode.GROUP_NAME_REQUIRED,
            )

        creator = str(creator_id)
        members = list(dict.fromkeys([creator, *map(str, member_ids or [])]))
        if len(members) - 1 < CONVERSATION_CONFIG.GROUP_MIN_OTHER_MEMBERS:
            return ServiceResult.failure(
                "A group needs at least one other member",
                error_code=ErrorCode.NOT_ENOUGH_MEMBERS,
            )

        existing_users = _existing_user_ids(members)
        missing = [uid for uid in members if uid not in existing_users]
        if missing:
            return ServiceResult.failure(
                "User not found",
                error_code=ErrorCode.USER_NOT_FOUND,
                errors={"member_ids": missing},
            )

        cid = secrets.token_hex(CONVERSATION_CONFIG.GROUP_ID_HEX_LENGTH // 2)
        try:
            with cls.atomic():
                seeded_at = timezone.now()
                conversation = Conversation.objects.create(
                    id=cid,
                    is_group=True,
                    group_name=group_name,
                    last_message_timestamp=seeded_at,
                    last_message_snippet=CONVERSATION_CONFIG.SEED_SNIPPET,
                )
                conversation.members.add(*members)
                ChatIndexEntry.objects.bulk_create(
                    [
                        ChatIndexEntry(
                            user_id=uid,
                            conversation=conversation,
                            is_group=True,
                            group_name=group_name,
                            last_message_timestamp=seeded_at,
                            last_message_snippet=CONVERSATION_CONFIG.SEED_SNIPPET,
                        )
                        for uid in members
                    ]
                )
                transaction.on_commit(lambda: _publish_index_changes(members, cid))
        except DatabaseError as exc:
            return cls.handle_exception(
                exc, f"Creating group {group_name!r} failed", ErrorCode.WRITE_FAILED
            )

        cls.get_logger().info(
            f"Created group conversation {cid} with {len(members)} members"
        )
        return ServiceResult.success(conversation)

    @classmethod
    def get_metadata(cls, conversation_id) -> Conversation | None:
        """Conversation metadata, or None when it does not exist."""
        return Conversation.objects.filter(pk=str(conversation_id)).first()

    @classmethod
    def get_header(
        cls,
        conversation: Conversation,
        viewer_id,
        lookup: ProfileLookupSession | None = None,
    ) -> ChatHeader:
        """
        Header for ``viewer_id`` looking at ``conversation``.

        Groups show their name. Direct chats show the other member's display
        identity, falling back to "User xxxx" when they have no profile.
        """
        if conversation.is_group:
            return ChatHeader(title=conversation.group_name, is_group=True)

        other_id = conversation.other_member_id(viewer_id)
        if other_id is None:
            return ChatHeader(title=conversation.pk)

        identity = (lookup or ProfileLookupSession()).resolve(other_id)
        return ChatHeader(
            title=identity.username,
            avatar_url=identity.avatar_url,
            other_user_id=other_id,
        )


# =============================================================================
# Chat Index
# =============================================================================


class ChatIndexService(BaseService):
    """Read side of a user's chat list."""

    @classmethod
    def get_snapshot(cls, user_id) -> list[ChatIndexEntry]:
        """
        All chat list rows of ``user_id``, most recent message first.

        Rows without a timestamp sort last.
        """
        return list(
            ChatIndexEntry.objects.filter(user_id=user_id).order_by(
                F("last_message_timestamp").desc(nulls_last=True),
                "-created_at",
            )
        )


# =============================================================================
# Message Composer / Stream reads
# =============================================================================


def audit_fanout(command: SendMessageCommand, writes: list[Write]) -> None:
    """Default fan-out audit hook: one audit log line per applied send."""
    audit_logger.info(
        f"send {command.conversation_id} by {command.sender_id}: "
        + ", ".join(str(location) for location, _ in writes)
    )


class MessageService(BaseService):
    """
    Service for sending and reading messages.

    Methods:
        send_message: Validate and fan out one message atomically
        get_recent_messages: Last N messages, oldest first
        load_older: Messages before a given message, oldest first
    """

    @classmethod
    def send_message(
        cls,
        conversation_id,
        sender_id,
        text: str,
        participant_ids: Iterable | None = None,
        executor: FanoutExecutor | None = None,
    ) -> ServiceResult[Message | None]:
        """
        Send a text message.

        Whitespace-only text is a no-op: the result is successful with no
        data and nothing is written. Otherwise the message, the
        conversation summary and every participant's chat list row are
        written in one transaction.

        Args:
            conversation_id: Target conversation
            sender_id: Sending user; must be a member
            text: Raw text, trimmed before use
            participant_ids: Users whose chat list rows are updated
                (defaults to the conversation members; non-members are ignored)
            executor: FanoutExecutor to apply the writes with

        Returns:
            ServiceResult with the Message (or None for a no-op), or a failure
            with CONVERSATION_NOT_FOUND, NOT_PARTICIPANT, MESSAGE_TOO_LONG
            or WRITE_FAILED
        """
        text = (text or "").strip()
        if not text:
            return ServiceResult.success(None)

        if len(text) > MESSAGE_CONFIG.MAX_CONTENT_LENGTH:
            return ServiceResult.failure(
                f"Message exceeds {MESSAGE_CONFIG.MAX_CONTENT_LENGTH} characters",
                error_code=ErrorCode.MESSAGE_TOO_LONG,
            )

        conversation = ConversationService.get_metadata(conversation_id)
        if conversation is None:
            return ServiceResult.failure(
                "Conversation not found",
                error_code=ErrorCode.CONVERSATION_NOT_FOUND,
            )

        sender = str(sender_id)
        member_ids = conversation.member_ids()
        if sender not in member_ids:
            return ServiceResult.failure(
                "You are not a participant in this conversation",
                error_code=ErrorCode.NOT_PARTICIPANT,
            )

        if participant_ids is None:
            participants = member_ids
        else:
            participants = [uid for uid in map(str, participant_ids) if uid in member_ids]
            ignored = set(map(str, participant_ids)) - set(member_ids)
            if ignored:
                cls.get_logger().warning(
                    f"Ignoring non-members {sorted(ignored)} in send to {conversation.pk}"
                )

        command = SendMessageCommand(conversation, sender, text, participants)
        executor = executor or FanoutExecutor(audit_hooks=[audit_fanout])

        try:
            message = executor.execute(command)
        except DatabaseError as exc:
            ReconciliationService.schedule(conversation.pk)
            return cls.handle_exception(
                exc, f"Send to {conversation.pk} failed", ErrorCode.WRITE_FAILED
            )

        return ServiceResult.success(message)

    @classmethod
    def get_recent_messages(cls, conversation_id, limit: int | None = None) -> list[Message]:
        """Last ``limit`` messages (default CHAT_HISTORY_LIMIT), oldest first."""
        limit = _page_size(limit)
        recent = Message.objects.filter(conversation_id=conversation_id).order_by(
            "-timestamp", "-id"
        )[:limit]
        return list(reversed(recent))

    @classmethod
    def load_older(
        cls, conversation_id, before_id: int, limit: int | None = None
    ) -> list[Message]:
        """
        Up to ``limit`` messages older than message ``before_id``, oldest first.

        Unknown ``before_id`` (or one from another conversation) yields [].
        """
        limit = _page_size(limit)
        anchor = (
            Message.objects.filter(pk=before_id, conversation_id=conversation_id)
            .values("timestamp")
            .first()
        )
        if anchor is None:
            return []

        ts = anchor["timestamp"]
        older = (
            Message.objects.filter(conversation_id=conversation_id)
            .filter(Q(timestamp__lt=ts) | Q(timestamp=ts, id__lt=before_id))
            .order_by("-timestamp", "-id")[:limit]
        )
        return list(reversed(older))


# =============================================================================
# Reconciliation
# =============================================================================


class DiscrepancyType(str, Enum):
    """Kinds of drift reconciliation detects."""

    STALE_CONVERSATION_SUMMARY = "stale_conversation_summary"
    MISSING_INDEX_ENTRY = "missing_index_entry"
    STALE_INDEX_ENTRY = "stale_index_entry"
    MISSING_COUNTERPART = "missing_counterpart"


@dataclass
class Discrepancy:
    discrepancy_type: DiscrepancyType
    conversation_id: str
    user_id: str | None = None
    details: dict = field(default_factory=dict)


@dataclass
class ReconciliationRunResult:
    """Summary of a reconciliation pass."""

    conversations_checked: int = 0
    discrepancies_found: int = 0
    repaired: int = 0
    discrepancies: list[Discrepancy] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "conversations_checked": self.conversations_checked,
            "discrepancies_found": self.discrepancies_found,
            "repaired": self.repaired,
        }


class ReconciliationService(BaseService):
    """
    Detect and repair drift in denormalized chat state.

    The latest message of a conversation is the source of truth for its
    summary; the conversation summary is the source of truth for every
    member's chat list row. Repairs run under the conversation row lock,
    the same lock the fan-out takes, so they never interleave with a send.

    Usage:
        result = ReconciliationService.reconcile_conversation(cid)
        result = ReconciliationService.run_reconciliation(lookback_hours=24)
    """

    DEFAULT_LOOKBACK_HOURS = 24
    DEFAULT_MAX_CONVERSATIONS = 500

    @classmethod
    def schedule(cls, conversation_id) -> None:
        """Queue a background reconciliation of one conversation."""
        from chat.tasks import reconcile_conversation

        try:
            reconcile_conversation.delay(str(conversation_id))
        except Exception:
            cls.get_logger().exception(
                f"Could not queue reconciliation for {conversation_id}"
            )

    @classmethod
    def reconcile_conversation(
        cls, conversation_id, repair: bool = True
    ) -> ServiceResult[ReconciliationRunResult]:
        if not Conversation.objects.filter(pk=str(conversation_id)).exists():
            return ServiceResult.failure(
                "Conversation not found",
                error_code=ErrorCode.CONVERSATION_NOT_FOUND,
            )

        result = ReconciliationRunResult()
        cls._reconcile(str(conversation_id), result, repair)
        return ServiceResult.success(result)

    @classmethod
    def run_reconciliation(
        cls,
        lookback_hours: int | None = DEFAULT_LOOKBACK_HOURS,
        max_conversations: int = DEFAULT_MAX_CONVERSATIONS,
        repair: bool = True,
    ) -> ServiceResult[ReconciliationRunResult]:
        """
        Reconcile recently active conversations.

        Args:
            lookback_hours: Only conversations updated within this window
                (None checks every conversation)
            max_conversations: Upper bound on conversations checked
            repair: Fix what is found (False only reports)
        """
        conversations = Conversation.objects.order_by("-updated_at")
        if lookback_hours is not None:
            since = timezone.now() - timedelta(hours=lookback_hours)
            conversations = conversations.filter(updated_at__gte=since)

        result = ReconciliationRunResult()
        for cid in conversations.values_list("pk", flat=True)[:max_conversations]:
            cls._reconcile(cid, result, repair)

        cls.get_logger().info(
            f"Reconciliation checked {result.conversations_checked} conversations, "
            f"found {result.discrepancies_found}, repaired {result.repaired}"
        )
        return ServiceResult.success(result)

    @classmethod
    def _reconcile(cls, cid: str, result: ReconciliationRunResult, repair: bool) -> None:
        with transaction.atomic():
            conversation = Conversation.objects.select_for_update().get(pk=cid)
            expected = cls._expected_summary(conversation)
            found = cls._detect(conversation, expected)

            result.conversations_checked += 1
            result.discrepancies_found += len(found)
            result.discrepancies.extend(found)

            if not (repair and found):
                return

            touched = cls._repair(conversation, expected, found)
            result.repaired += len(found)
            transaction.on_commit(lambda: _publish_index_changes(touched, cid))

        cls.get_logger().warning(
            f"Repaired {len(found)} discrepancies in conversation {cid}: "
            + ", ".join(d.discrepancy_type.value for d in found)
        )

    @classmethod
    def _expected_summary(cls, conversation: Conversation) -> dict:
        latest = conversation.messages.order_by("-timestamp", "-id").first()
        if latest is None:
            # Only the seed so far
            return cls._summary_of(conversation)
        return {
            "last_message_timestamp": latest.timestamp,
            "last_message_snippet": build_snippet(latest.text),
            "last_message_sender_id": str(latest.sender_id),
        }

    @staticmethod
    def _summary_of(row) -> dict:
        return {
            "last_message_timestamp": row.last_message_timestamp,
            "last_message_snippet": row.last_message_snippet,
            "last_message_sender_id": row.last_message_sender_uid,
        }

    @classmethod
    def _detect(cls, conversation: Conversation, expected: dict) -> list[Discrepancy]:
        cid = conversation.pk
        found = []

        if cls._summary_of(conversation) != expected:
            found.append(
                Discrepancy(
                    DiscrepancyType.STALE_CONVERSATION_SUMMARY,
                    cid,
                    details={"actual": cls._summary_of(conversation)},
                )
            )

        entries = {str(e.user_id): e for e in conversation.index_entries.all()}
        for uid in conversation.member_ids():
            entry = entries.get(uid)
            if entry is None:
                found.append(Discrepancy(DiscrepancyType.MISSING_INDEX_ENTRY, cid, uid))
                continue
            if cls._summary_of(entry) != expected:
                found.append(
                    Discrepancy(
                        DiscrepancyType.STALE_INDEX_ENTRY,
                        cid,
                        uid,
                        details={"actual": cls._summary_of(entry)},
                    )
                )
            if not conversation.is_group and entry.other_user_id is None:
                found.append(Discrepancy(DiscrepancyType.MISSING_COUNTERPART, cid, uid))

        return found

    @classmethod
    def _repair(
        cls, conversation: Conversation, expected: dict, found: list[Discrepancy]
    ) -> list[str]:
        now = timezone.now()
        touched = []

        for discrepancy in found:
            uid = discrepancy.user_id
            kind = discrepancy.discrepancy_type

            if kind == DiscrepancyType.STALE_CONVERSATION_SUMMARY:
                Conversation.objects.filter(pk=conversation.pk).update(
                    updated_at=now, **expected
                )
            elif kind == DiscrepancyType.MISSING_INDEX_ENTRY:
                ChatIndexEntry.objects.create(
                    user_id=uid,
                    conversation=conversation,
                    **index_entry_identity(conversation, uid),
                    **expected,
                )
            elif kind == DiscrepancyType.STALE_INDEX_ENTRY:
                ChatIndexEntry.objects.filter(
                    user_id=uid, conversation=conversation
                ).update(updated_at=now, **expected)
            elif kind == DiscrepancyType.MISSING_COUNTERPART:
                ChatIndexEntry.objects.filter(
                    user_id=uid, conversation=conversation
                ).update(updated_at=now, **index_entry_identity(conversation, uid))

            if uid and uid not in touched:
                touched.append(uid)

        return touched
