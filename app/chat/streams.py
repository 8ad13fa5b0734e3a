"""
Stream controllers for live chat views.

A controller owns a subscription and keeps a small, self-consistent state
object that its owner renders. Two controllers exist:

    MessageStream: one conversation (header, history, live messages)
    ChatIndex: one user's chat list

Both are used by the WebSocket consumers and can be driven directly in
tests. Every result that arrives after ``close()`` is discarded.

Usage:
    stream = MessageStream(cid, viewer_id, on_message=send)
    state = await stream.open()
    ...
    await stream.close()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from channels.db import database_sync_to_async
from django.utils.dateparse import parse_datetime

from authentication.services import ProfileLookupSession
from chat.serializers import ChatHeaderSerializer, ConversationSerializer, MessageSerializer
from chat.services import ConversationService, MessageService
from chat.subscriptions import (
    ChatIndexSubscription,
    MessageStreamSubscription,
    call_callback,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

logger = logging.getLogger(__name__)

METADATA_MISSING_ERROR = "Chat not found or metadata missing."
HISTORY_ERROR = "Could not load messages."
CHAT_INDEX_ERROR = "Could not load chats."


def message_sort_key(message: dict):
    timestamp = message["timestamp"]
    if isinstance(timestamp, str):
        timestamp = parse_datetime(timestamp)
    return (timestamp, message["id"])


def merge_messages(current: Iterable[dict], incoming: Iterable[dict]) -> list[dict]:
    """
    Union of two message lists, de-duplicated by id, ordered by (timestamp, id).

    A message already present is kept as is.
    """
    by_id = {m["id"]: m for m in current}
    for message in incoming:
        by_id.setdefault(message["id"], message)
    return sorted(by_id.values(), key=message_sort_key)


# =============================================================================
# Message Stream
# =============================================================================


@dataclass
class MessageStreamState:
    messages: list[dict] = field(default_factory=list)
    loading: bool = True
    error: str | None = None
    conversation: dict | None = None
    header: dict | None = None

    @property
    def is_empty(self) -> bool:
        return not self.loading and self.error is None and not self.messages

    def to_dict(self) -> dict:
        return {
            "conversation": self.conversation,
            "header": self.header,
            "messages": list(self.messages),
            "loading": self.loading,
            "error": self.error,
            "is_empty": self.is_empty,
        }


class MessageStream:
    """
    Live view of one conversation.

    ``open()`` reads the metadata (and the counterpart's display identity
    for the header), subscribes to new messages, then reads the most recent
    history window. Subscribing before the history read means no message
    falls between the two; the merge drops the overlap. A conversation with
    no messages resolves to an empty, non-loading state as soon as the
    history read returns.

    Live messages that arrive after the history load are merged and passed
    to ``on_message`` exactly once. A subscription or history failure sets
    ``error``, stops loading and ends the live subscription; nothing is
    retried.

    Args:
        conversation_id: Conversation to show
        viewer_id: User looking at it (decides the header)
        on_message: Called with each new live message
        on_typing: Called with (user_id, is_typing)
        on_error: Called with the error text
        history_limit: Size of the initial window (CHAT_HISTORY_LIMIT)
        lookup: Shared ProfileLookupSession for the header
    """

    def __init__(
        self,
        conversation_id,
        viewer_id,
        on_message: Callable | None = None,
        on_typing: Callable | None = None,
        on_error: Callable | None = None,
        history_limit: int | None = None,
        lookup: ProfileLookupSession | None = None,
        channel_layer=None,
    ):
        self.conversation_id = str(conversation_id)
        self.viewer_id = str(viewer_id)
        self.on_message = on_message
        self.on_typing = on_typing
        self.on_error = on_error
        self.history_limit = history_limit
        self.lookup = lookup or ProfileLookupSession()
        self.state = MessageStreamState()
        self.subscription: MessageStreamSubscription | None = None
        self._channel_layer = channel_layer
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def open(self) -> MessageStreamState:
        if self._closed:
            return self.state

        metadata = await database_sync_to_async(self._load_metadata)()
        if self._closed:
            return self.state
        if metadata is None:
            self.state.loading = False
            self.state.error = METADATA_MISSING_ERROR
            return self.state
        self.state.conversation, self.state.header = metadata

        self.subscription = MessageStreamSubscription(
            self.conversation_id,
            on_message=self._on_live_message,
            on_typing=self._on_typing,
            on_error=self._on_subscription_error,
            channel_layer=self._channel_layer,
        )
        try:
            await self.subscription.start()
            history = await database_sync_to_async(self._load_history)()
        except Exception:
            logger.exception(f"Opening message stream {self.conversation_id} failed")
            await self._fail(HISTORY_ERROR)
            return self.state

        if self._closed:
            return self.state
        self.state.messages = merge_messages(self.state.messages, history)
        self.state.loading = False
        return self.state

    async def load_older(self, limit: int | None = None) -> list[dict]:
        """Prepend the page before the oldest loaded message; returns that page."""
        if self._closed or not self.state.messages:
            return []

        oldest_id = self.state.messages[0]["id"]
        page = await database_sync_to_async(self._load_older)(oldest_id, limit)
        if self._closed:
            return []
        self.state.messages = merge_messages(self.state.messages, page)
        return page

    async def close(self) -> None:
        self._closed = True
        if self.subscription is not None:
            await self.subscription.stop()

    # Loaders (sync, run in a worker thread)

    def _load_metadata(self):
        conversation = ConversationService.get_metadata(self.conversation_id)
        if conversation is None:
            return None
        header = ConversationService.get_header(conversation, self.viewer_id, lookup=self.lookup)
        return (
            ConversationSerializer(conversation).data,
            ChatHeaderSerializer(header).data,
        )

    def _load_history(self) -> list[dict]:
        messages = MessageService.get_recent_messages(self.conversation_id, self.history_limit)
        return MessageSerializer(messages, many=True).data

    def _load_older(self, before_id: int, limit: int | None) -> list[dict]:
        messages = MessageService.load_older(self.conversation_id, before_id, limit)
        return MessageSerializer(messages, many=True).data

    # Subscription callbacks

    async def _on_live_message(self, message: dict) -> None:
        if self._closed:
            return
        known = any(m["id"] == message["id"] for m in self.state.messages)
        self.state.messages = merge_messages(self.state.messages, [message])
        # Messages that land while history is loading are part of the snapshot
        if known or self.state.loading:
            return
        await call_callback(self.on_message, message)

    async def _on_typing(self, user_id: str, is_typing: bool) -> None:
        if not self._closed:
            await call_callback(self.on_typing, user_id, is_typing)

    async def _on_subscription_error(self, exc: Exception) -> None:
        await self._fail(HISTORY_ERROR)

    async def _fail(self, error: str) -> None:
        if self._closed:
            return
        self.state.loading = False
        self.state.error = error
        # A failed stream goes quiet; the client reopens to recover
        if self.subscription is not None:
            await self.subscription.stop()
        await call_callback(self.on_error, error)


# =============================================================================
# Chat Index
# =============================================================================


@dataclass
class ChatIndexState:
    entries: list[dict] = field(default_factory=list)
    loading: bool = True
    error: str | None = None

    @property
    def is_empty(self) -> bool:
        return not self.loading and self.error is None and not self.entries

    def to_dict(self) -> dict:
        return {
            "entries": list(self.entries),
            "loading": self.loading,
            "error": self.error,
            "is_empty": self.is_empty,
        }


class ChatIndex:
    """
    Live chat list of one user.

    Each change replaces ``entries`` with the full re-sorted snapshot and
    calls ``on_change(state)``. An empty list is a normal, empty state.
    """

    def __init__(
        self,
        user_id,
        on_change: Callable | None = None,
        on_error: Callable | None = None,
        snapshot_loader: Callable | None = None,
        channel_layer=None,
    ):
        self.user_id = str(user_id)
        self.on_change = on_change
        self.on_error = on_error
        self.state = ChatIndexState()
        self.subscription = ChatIndexSubscription(
            self.user_id,
            on_change=self._on_snapshot,
            on_error=self._on_subscription_error,
            snapshot_loader=snapshot_loader,
            channel_layer=channel_layer,
        )
        self._closed = False

    async def open(self) -> ChatIndexState:
        if self._closed:
            return self.state
        try:
            await self.subscription.start()
        except Exception as exc:
            logger.exception(f"Chat list subscription failed for {self.user_id}")
            await self._on_subscription_error(exc)
        return self.state

    async def close(self) -> None:
        self._closed = True
        await self.subscription.stop()

    async def _on_snapshot(self, entries: list[dict]) -> None:
        if self._closed:
            return
        self.state.entries = entries
        self.state.loading = False
        self.state.error = None
        await call_callback(self.on_change, self.state)

    async def _on_subscription_error(self, exc: Exception) -> None:
        if self._closed:
            return
        self.state.loading = False
        self.state.error = CHAT_INDEX_ERROR
        await call_callback(self.on_error, CHAT_INDEX_ERROR)
