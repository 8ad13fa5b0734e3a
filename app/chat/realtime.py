"""
Channel layer plumbing for live chat updates.

Every conversation has a channel group ``chat.<conversation_id>`` that
receives new messages and typing indicators. Every user has a group
``chat_index.<user_id>`` that is told when one of their chat list rows
changed. Publishers only send small events; subscribers re-read what they
need from the database, so a missed event never leaves a client with
half-applied state.

Events:
    chat.message        {"message": {...serialized Message...}}
    chat.typing         {"user_id": str, "is_typing": bool}
    chat_index.changed  {"user_id": str, "conversation_id": str}

Usage:
    from chat import realtime

    transaction.on_commit(lambda: realtime.publish_message(conversation_id, payload))
"""

from __future__ import annotations

import logging

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

from chat.constants import REALTIME_CONFIG

logger = logging.getLogger(__name__)


MESSAGE_EVENT = "chat.message"
TYPING_EVENT = "chat.typing"
INDEX_CHANGED_EVENT = "chat_index.changed"


def conversation_group(conversation_id) -> str:
    """Channel group receiving live messages of one conversation."""
    return f"{REALTIME_CONFIG.CONVERSATION_GROUP_PREFIX}.{conversation_id}"


def chat_index_group(user_id) -> str:
    """Channel group receiving chat list changes of one user."""
    return f"{REALTIME_CONFIG.CHAT_INDEX_GROUP_PREFIX}.{user_id}"


def _group_send(group: str, event: dict) -> None:
    channel_layer = get_channel_layer()
    if channel_layer is None:
        logger.debug(f"No channel layer configured, dropping {event['type']} for {group}")
        return

    try:
        async_to_sync(channel_layer.group_send)(group, event)
    except Exception:
        # Data is already committed; clients catch up on their next read
        logger.exception(f"Failed to publish {event['type']} to {group}")


def publish_message(conversation_id, payload: dict) -> None:
    """Broadcast a committed message to the conversation's subscribers."""
    _group_send(
        conversation_group(conversation_id),
        {"type": MESSAGE_EVENT, "message": dict(payload)},
    )


def publish_index_changed(user_id, conversation_id) -> None:
    """Tell a user's chat list subscribers that one of their rows changed."""
    _group_send(
        chat_index_group(user_id),
        {
            "type": INDEX_CHANGED_EVENT,
            "user_id": str(user_id),
            "conversation_id": str(conversation_id),
        },
    )


async def publish_typing(conversation_id, user_id, is_typing: bool = True) -> None:
    channel_layer = get_channel_layer()
    if channel_layer is None:
        return
    await channel_layer.group_send(
        conversation_group(conversation_id),
        {"type": TYPING_EVENT, "user_id": str(user_id), "is_typing": bool(is_typing)},
    )
