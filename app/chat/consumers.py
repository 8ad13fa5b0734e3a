"""
WebSocket consumers for the chat application.

Consumers:
    ChatConsumer: Live message stream of one conversation
    ChatIndexConsumer: Live chat list of the connected user

Authentication:
    Users are authenticated via JWT (query string or "jwt" subprotocol).
    The JWTAuthMiddlewareStack attaches the user to self.scope["user"].

Close Codes:
    4001: Not authenticated
    4003: Not a member of the conversation
    4004: Conversation not found

Message Types (from client, ChatConsumer):
    - message: Send a new message {"type": "message", "text": "Hello!"}
    - typing: Typing indicator {"type": "typing", "is_typing": true}
    - load_older: Older history {"type": "load_older", "limit": 25}

Message Types (to client):
    - snapshot: Conversation, header and recent messages, sent once on connect
    - message: New message in conversation
    - older: Page of older messages
    - typing: Another member is typing
    - chats: Full chat list (ChatIndexConsumer)
    - error: Error response
"""

from __future__ import annotations

import logging

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncJsonWebsocketConsumer
from django.contrib.auth.models import AnonymousUser

from authentication.services import ProfileLookupSession
from chat import realtime
from chat.constants import CLOSE_CODES, ErrorCode
from chat.middleware import JWT_SUBPROTOCOL
from chat.models import Conversation
from chat.serializers import MessageCreateSerializer, MessageHistoryQuerySerializer
from chat.services import MessageService
from chat.streams import ChatIndex, MessageStream

logger = logging.getLogger(__name__)


def _authenticated_user(scope):
    user = scope.get("user")
    if not user or isinstance(user, AnonymousUser) or not user.is_authenticated:
        return None
    return user


class JWTSubprotocolMixin:
    """Accept with the "jwt" subprotocol when the client authenticated with it."""

    async def accept_connection(self):
        subprotocol = JWT_SUBPROTOCOL if self.scope.get("jwt_subprotocol") else None
        await self.accept(subprotocol=subprotocol)


class ChatConsumer(JWTSubprotocolMixin, AsyncJsonWebsocketConsumer):
    """
    WebSocket consumer for one conversation.

    Handles:
        - Connection authentication and authorization
        - Initial snapshot followed by live messages (via MessageStream)
        - Sending messages and typing indicators

    Attributes:
        conversation_id: Id of the connected conversation
        stream: MessageStream owned by this connection
        user: Authenticated user
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.conversation_id: str | None = None
        self.stream: MessageStream | None = None
        self.user = None

    async def connect(self):
        """
        Handle WebSocket connection.

        Validates:
            1. User is authenticated
            2. Conversation exists
            3. User is a member of the conversation

        On success, accepts the connection and sends the snapshot.
        """
        self.conversation_id = self.scope["url_route"]["kwargs"]["conversation_id"]
        self.user = _authenticated_user(self.scope)

        if self.user is None:
            logger.warning(
                f"Rejected unauthenticated connection to conversation {self.conversation_id}"
            )
            await self.close(code=CLOSE_CODES.UNAUTHENTICATED)
            return

        membership = await self._get_membership()
        if membership is None:
            logger.warning(
                f"User {self.user.id} tried to connect to non-existent "
                f"conversation {self.conversation_id}"
            )
            await self.close(code=CLOSE_CODES.NOT_FOUND)
            return

        if not membership:
            logger.warning(
                f"User {self.user.id} is not a member of "
                f"conversation {self.conversation_id}"
            )
            await self.close(code=CLOSE_CODES.NOT_A_MEMBER)
            return

        await self.accept_connection()

        self.stream = MessageStream(
            self.conversation_id,
            self.user.id,
            on_message=self._send_live_message,
            on_typing=self._send_typing,
            on_error=self._send_error,
            lookup=ProfileLookupSession(),
        )
        state = await self.stream.open()
        await self.send_json({"type": "snapshot", **state.to_dict()})

        logger.info(f"User {self.user.id} connected to conversation {self.conversation_id}")

    async def disconnect(self, close_code):
        if self.stream is not None:
            await self.stream.close()
            logger.info(
                f"User {self.user.id} disconnected from conversation {self.conversation_id}"
            )

    async def receive_json(self, content):
        """
        Handle incoming WebSocket messages.

        Expected message format:
            {"type": "message", "text": "Hello!"}
            {"type": "typing", "is_typing": true}
            {"type": "load_older", "limit": 25}
        """
        if not isinstance(content, dict):
            await self._send_invalid({"non_field_errors": ["Expected a JSON object."]})
            return

        message_type = content.get("type")

        if message_type == "message":
            await self._handle_message(content)
        elif message_type == "typing":
            await realtime.publish_typing(
                self.conversation_id, self.user.id, content.get("is_typing", True)
            )
        elif message_type == "load_older":
            await self._handle_load_older(content)
        else:
            await self.send_json(
                {
                    "type": "error",
                    "message": f"Unknown message type: {message_type}",
                }
            )

    async def _handle_message(self, content):
        """
        Send a message through MessageService.

        Empty text is ignored. The new message reaches this client through
        the live stream like every other member.
        """
        serializer = MessageCreateSerializer(data=content)
        if not serializer.is_valid():
            await self._send_invalid(serializer.errors)
            return

        result = await self._send_message(serializer.validated_data["text"])

        if not result.success:
            await self.send_json(
                {
                    "type": "error",
                    "code": result.error_code,
                    "message": result.error,
                }
            )

    async def _handle_load_older(self, content):
        serializer = MessageHistoryQuerySerializer(data=content)
        if not serializer.is_valid():
            await self._send_invalid(serializer.errors)
            return

        page = await self.stream.load_older(serializer.validated_data.get("limit"))
        await self.send_json({"type": "older", "messages": page})

    async def _send_invalid(self, errors):
        await self.send_json(
            {
                "type": "error",
                "code": ErrorCode.INVALID_PAYLOAD,
                "message": "Invalid payload",
                "errors": errors,
            }
        )

    async def _send_live_message(self, message: dict):
        await self.send_json({"type": "message", "message": message})

    async def _send_typing(self, user_id: str, is_typing: bool):
        if user_id == str(self.user.id):
            return
        await self.send_json({"type": "typing", "user_id": user_id, "is_typing": is_typing})

    async def _send_error(self, error: str):
        await self.send_json({"type": "error", "message": error})

    @database_sync_to_async
    def _get_membership(self) -> bool | None:
        """None when the conversation does not exist, else whether the user is a member."""
        conversation = Conversation.objects.filter(pk=self.conversation_id).first()
        if conversation is None:
            return None
        return conversation.has_member(self.user.pk)

    @database_sync_to_async
    def _send_message(self, text: str):
        return MessageService.send_message(self.conversation_id, self.user.id, text)


class ChatIndexConsumer(JWTSubprotocolMixin, AsyncJsonWebsocketConsumer):
    """
    WebSocket consumer for the connected user's chat list.

    Sends {"type": "chats", "entries": [...]} on connect and after every
    change, most recent conversation first.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.chat_index: ChatIndex | None = None

    async def connect(self):
        user = _authenticated_user(self.scope)
        if user is None:
            logger.warning("Rejected unauthenticated chat list connection")
            await self.close(code=CLOSE_CODES.UNAUTHENTICATED)
            return

        await self.accept_connection()

        self.chat_index = ChatIndex(
            user.id,
            on_change=self._send_entries,
            on_error=self._send_error,
        )
        await self.chat_index.open()

    async def disconnect(self, close_code):
        if self.chat_index is not None:
            await self.chat_index.close()

    async def receive_json(self, content):
        await self.send_json(
            {
                "type": "error",
                "message": "The chat list is read-only",
            }
        )

    async def _send_entries(self, state):
        await self.send_json(
            {
                "type": "chats",
                "entries": state.entries,
                "is_empty": state.is_empty,
            }
        )

    async def _send_error(self, error: str):
        await self.send_json({"type": "error", "message": error})
