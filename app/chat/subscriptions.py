"""
Live subscriptions on the channel layer.

A subscription owns a private channel, joins one channel group and runs a
receive loop that turns group events into callbacks. It is an explicit
object with ``start()`` and ``stop()``, so its owner (a stream controller,
a consumer, a test) decides exactly when callbacks may happen.

Subscriptions:
    MessageStreamSubscription: New messages of one conversation
    ChatIndexSubscription: Full chat list snapshot of one user, re-read on
        every change

Guarantees:
    - ``stop()`` may be called at any time, including before ``start()``,
      and never raises.
    - No callback runs after ``stop()`` returns.
    - A failure in the receive loop is reported once through ``on_error``;
      the subscription does not retry.

Usage:
    sub = MessageStreamSubscription(cid, on_message=handle)
    await sub.start()
    ...
    await sub.stop()
"""

from __future__ import annotations

import asyncio
import contextlib
from collections import deque
import inspect
import logging
from typing import TYPE_CHECKING

from channels.db import database_sync_to_async
from channels.layers import get_channel_layer

from chat import realtime
from chat.constants import REALTIME_CONFIG

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


class SubscriptionError(Exception):
    """The subscription could not be established."""


async def call_callback(callback, *args) -> None:
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class GroupSubscription:
    """
    Base class: one private channel joined to one channel group.

    Subclasses implement ``handle_event`` and may override ``on_started``
    to deliver an initial state once the group is joined.
    """

    def __init__(self, group: str, on_error: Callable | None = None, channel_layer=None):
        self.group = group
        self.on_error = on_error
        self.error: Exception | None = None
        self._channel_layer = channel_layer
        self._channel: str | None = None
        self._task: asyncio.Task | None = None
        self._stopped = False

    @property
    def active(self) -> bool:
        return self._task is not None and not self._stopped

    @property
    def stopped(self) -> bool:
        return self._stopped

    async def start(self) -> None:
        """
        Join the group and begin delivering events.

        Raises:
            SubscriptionError: No channel layer is configured
        """
        if self._stopped or self._task is not None:
            return

        layer = self._channel_layer or get_channel_layer()
        if layer is None:
            raise SubscriptionError("No channel layer configured")
        self._channel_layer = layer

        self._channel = await layer.new_channel()
        await layer.group_add(self.group, self._channel)
        if self._stopped:
            await self._leave()
            return

        self._task = asyncio.create_task(self._receive_loop())
        await self.on_started()

    async def stop(self) -> None:
        """Leave the group; no callbacks run after this returns."""
        if self._stopped:
            return
        self._stopped = True

        task, self._task = self._task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        await self._leave()

    async def _leave(self) -> None:
        if self._channel is None:
            return
        channel, self._channel = self._channel, None
        try:
            await self._channel_layer.group_discard(self.group, channel)
        except Exception:
            logger.exception(f"Failed to leave {self.group}")

    async def _receive_loop(self) -> None:
        try:
            while not self._stopped:
                event = await self._channel_layer.receive(self._channel)
                if self._stopped:
                    break
                await self.handle_event(event)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception(f"Subscription on {self.group} failed")
            self.error = exc
            if not self._stopped:
                await self.deliver(self.on_error, exc)

    async def deliver(self, callback, *args) -> None:
        """Run ``callback`` unless the subscription has been stopped."""
        if self._stopped:
            return
        await call_callback(callback, *args)

    async def on_started(self) -> None:
        pass

    async def handle_event(self, event: dict) -> None:
        raise NotImplementedError


class MessageStreamSubscription(GroupSubscription):
    """
    New messages of one conversation.

    Each message id is delivered to ``on_message`` at most once, even if
    the same event reaches the channel twice. Only the most recent
    ``delivered_window`` ids are remembered.

    Args:
        conversation_id: Conversation to follow
        on_message: Called with each serialized message
        on_typing: Called with (user_id, is_typing)
        on_error: Called once with the exception if the loop fails
    """

    def __init__(
        self,
        conversation_id,
        on_message: Callable,
        on_typing: Callable | None = None,
        on_error: Callable | None = None,
        channel_layer=None,
        delivered_window: int = REALTIME_CONFIG.DELIVERED_ID_WINDOW,
    ):
        super().__init__(
            realtime.conversation_group(conversation_id),
            on_error=on_error,
            channel_layer=channel_layer,
        )
        self.conversation_id = str(conversation_id)
        self.on_message = on_message
        self.on_typing = on_typing
        self._delivered: set = set()
        self._delivered_order: deque = deque()
        self._delivered_window = delivered_window

    async def handle_event(self, event: dict) -> None:
        event_type = event.get("type")

        if event_type == realtime.MESSAGE_EVENT:
            message = event["message"]
            if message["id"] in self._delivered:
                return
            self._remember(message["id"])
            await self.deliver(self.on_message, message)
        elif event_type == realtime.TYPING_EVENT:
            await self.deliver(self.on_typing, event["user_id"], event["is_typing"])

    def _remember(self, message_id) -> None:
        self._delivered.add(message_id)
        self._delivered_order.append(message_id)
        while len(self._delivered_order) > self._delivered_window:
            self._delivered.discard(self._delivered_order.popleft())


def load_chat_index_snapshot(user_id) -> list[dict]:
    """Serialized chat list of ``user_id``, most recent first."""
    from chat.serializers import ChatIndexEntrySerializer
    from chat.services import ChatIndexService

    return ChatIndexEntrySerializer(ChatIndexService.get_snapshot(user_id), many=True).data


class ChatIndexSubscription(GroupSubscription):
    """
    Chat list of one user.

    Delivers the full, re-sorted snapshot to ``on_change`` once after
    joining and again after every change event for that user.

    Args:
        user_id: Owner of the chat list
        on_change: Called with the list of serialized entries
        on_error: Called once with the exception if loading fails
        snapshot_loader: Sync callable ``user_id -> entries``
    """

    def __init__(
        self,
        user_id,
        on_change: Callable,
        on_error: Callable | None = None,
        snapshot_loader: Callable | None = None,
        channel_layer=None,
    ):
        super().__init__(
            realtime.chat_index_group(user_id),
            on_error=on_error,
            channel_layer=channel_layer,
        )
        self.user_id = str(user_id)
        self.on_change = on_change
        self._load = database_sync_to_async(snapshot_loader or load_chat_index_snapshot)

    async def on_started(self) -> None:
        try:
            await self._push_snapshot()
        except Exception as exc:
            logger.exception(f"Initial chat list load failed for {self.user_id}")
            self.error = exc
            await self.deliver(self.on_error, exc)

    async def handle_event(self, event: dict) -> None:
        if event.get("type") == realtime.INDEX_CHANGED_EVENT:
            await self._push_snapshot()

    async def _push_snapshot(self) -> None:
        entries = await self._load(self.user_id)
        await self.deliver(self.on_change, list(entries))
