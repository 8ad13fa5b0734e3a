"""
Permission classes for chat API.

This module provides DRF permission classes for the chat system:
- IsConversationMember: User is a member of the conversation

Design Decisions:
    - Membership is the conversation's ``members`` set; there are no roles
    - Objects that belong to a conversation (messages, chat list rows) are
      checked against their conversation
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rest_framework import permissions

from chat.models import ChatIndexEntry, Conversation, Message

if TYPE_CHECKING:
    from rest_framework.request import Request
    from rest_framework.views import APIView


class IsConversationMember(permissions.BasePermission):
    """
    Allows access only to members of the conversation.

    This is the base permission for every conversation endpoint.
    """

    message = "You are not a participant in this conversation."

    def has_object_permission(
        self, request: Request, view: APIView, obj: Conversation | Message | ChatIndexEntry
    ) -> bool:
        if not request.user.is_authenticated:
            return False

        if isinstance(obj, (Message, ChatIndexEntry)):
            conversation = obj.conversation
        else:
            conversation = obj

        return conversation.has_member(request.user.pk)
