"""
Views for chat API.

This module provides REST API endpoints for the chat system:
- ChatListView: The current user's chat list (Chat Index snapshot)
- StartChatView / CreateGroupView: Conversation starter
- ConversationViewSet: Conversation metadata and header
- MessageViewSet: Message history and sending (nested under conversation)

URL Structure:
    /api/v1/chat/chats/                               GET
    /api/v1/chat/chats/start/                         POST
    /api/v1/chat/chats/groups/                        POST
    /api/v1/chat/conversations/{id}/                  GET
    /api/v1/chat/conversations/{id}/messages/         GET, POST

Design Decisions:
    - All operations use service layer for business logic
    - Service failures are raised as core.exceptions errors and rendered
      by core.exceptions.api_exception_handler
    - Membership is enforced by IsConversationMember on every conversation
      endpoint
"""

from __future__ import annotations

from django.shortcuts import get_object_or_404
from drf_spectacular.utils import (
    OpenApiParameter,
    OpenApiResponse,
    extend_schema,
    extend_schema_view,
)
from rest_framework import status, viewsets
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from authentication.services import ProfileLookupSession
from chat.constants import ErrorCode
from chat.models import Conversation
from chat.permissions import IsConversationMember
from chat.serializers import (
    ChatHeaderSerializer,
    ChatIndexEntrySerializer,
    ConversationDetailSerializer,
    ConversationSerializer,
    CreateGroupSerializer,
    MessageCreateSerializer,
    MessageHistoryQuerySerializer,
    MessageSerializer,
    StartChatSerializer,
    StartedConversationSerializer,
)
from chat.services import (
    ChatIndexService,
    ConversationService,
    MessageService,
)
from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

# Service error code -> exception rendered by the API exception handler
ERROR_EXCEPTIONS = {
    ErrorCode.SAME_USER: ValidationError,
    ErrorCode.GROUP_NAME_REQUIRED: ValidationError,
    ErrorCode.NOT_ENOUGH_MEMBERS: ValidationError,
    ErrorCode.MESSAGE_TOO_LONG: ValidationError,
    ErrorCode.USER_NOT_FOUND: NotFoundError,
    ErrorCode.CONVERSATION_NOT_FOUND: NotFoundError,
    ErrorCode.NOT_PARTICIPANT: PermissionDeniedError,
    ErrorCode.WRITE_FAILED: ConflictError,
}


def raise_for_failure(result) -> None:
    """Raise the application error matching a failed ServiceResult."""
    if result.success:
        return
    error_class = ERROR_EXCEPTIONS.get(result.error_code, BaseApplicationError)
    raise error_class(result.error, error_code=result.error_code, details=result.errors)


# =============================================================================
# Chat list and conversation starter
# =============================================================================


class ChatListView(APIView):
    """
    The current user's chat list, most recent conversation first.

    GET: /api/v1/chat/chats/

    An empty list is a normal response, not an error.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="List chats",
        tags=["Chat - Chats"],
        responses={200: ChatIndexEntrySerializer(many=True)},
    )
    def get(self, request):
        entries = ChatIndexService.get_snapshot(request.user.id)
        return Response(ChatIndexEntrySerializer(entries, many=True).data)


class StartChatView(APIView):
    """
    Start (or reopen) the direct chat with another user.

    POST: /api/v1/chat/chats/start/

    Returns 201 when the conversation was created and 200 when it already
    existed. Either way the response carries the conversation id to open.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Start a direct chat",
        tags=["Chat - Chats"],
        request=StartChatSerializer,
        responses={
            200: StartedConversationSerializer,
            201: StartedConversationSerializer,
            400: OpenApiResponse(description="Cannot chat with yourself"),
            404: OpenApiResponse(description="User not found"),
        },
    )
    def post(self, request):
        serializer = StartChatSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = ConversationService.start_direct(
            request.user.id,
            serializer.validated_data["target_user_id"],
        )
        raise_for_failure(result)

        return Response(
            StartedConversationSerializer(result.data).data,
            status=status.HTTP_201_CREATED if result.data.created else status.HTTP_200_OK,
        )


class CreateGroupView(APIView):
    """
    Create a named group conversation.

    POST: /api/v1/chat/chats/groups/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Create a group chat",
        tags=["Chat - Chats"],
        request=CreateGroupSerializer,
        responses={201: ConversationSerializer},
    )
    def post(self, request):
        serializer = CreateGroupSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = ConversationService.create_group(
            request.user.id,
            serializer.validated_data["group_name"],
            serializer.validated_data["member_ids"],
        )
        raise_for_failure(result)

        return Response(
            ConversationSerializer(result.data).data,
            status=status.HTTP_201_CREATED,
        )


# =============================================================================
# Conversations and messages
# =============================================================================


@extend_schema_view(
    retrieve=extend_schema(
        summary="Get conversation metadata",
        description="Conversation metadata plus the header (title, avatar) for the caller.",
        tags=["Chat - Conversations"],
        responses={200: ConversationDetailSerializer},
    ),
)
class ConversationViewSet(viewsets.GenericViewSet):
    """
    Conversation metadata.

    Only members can read a conversation; everyone else gets 403, unknown
    ids get 404.
    """

    permission_classes = [IsAuthenticated, IsConversationMember]
    serializer_class = ConversationSerializer
    queryset = Conversation.objects.all()
    lookup_value_regex = "[^/]+"

    def retrieve(self, request, pk=None):
        conversation = self.get_object()
        header = ConversationService.get_header(
            conversation, request.user.id, lookup=ProfileLookupSession()
        )
        return Response(
            {
                "conversation": ConversationSerializer(conversation).data,
                "header": ChatHeaderSerializer(header).data,
            }
        )


@extend_schema_view(
    list=extend_schema(
        summary="List messages",
        description=(
            "Most recent messages, oldest first. Pass `before` (a message id) "
            "to page further back."
        ),
        tags=["Chat - Messages"],
        parameters=[
            OpenApiParameter(name="before", type=int, required=False),
            OpenApiParameter(name="limit", type=int, required=False),
        ],
        responses={200: MessageSerializer(many=True)},
    ),
    create=extend_schema(
        summary="Send a message",
        description="Whitespace-only text is accepted and ignored (204).",
        tags=["Chat - Messages"],
        request=MessageCreateSerializer,
        responses={
            201: MessageSerializer,
            204: OpenApiResponse(description="Empty message, nothing sent"),
        },
    ),
)
class MessageViewSet(viewsets.GenericViewSet):
    """
    Messages of one conversation (nested under the conversation URL).
    """

    permission_classes = [IsAuthenticated, IsConversationMember]
    serializer_class = MessageSerializer

    def get_conversation(self) -> Conversation:
        conversation = get_object_or_404(Conversation, pk=self.kwargs["conversation_pk"])
        self.check_object_permissions(self.request, conversation)
        return conversation

    def list(self, request, conversation_pk=None):
        conversation = self.get_conversation()

        query = MessageHistoryQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        before = query.validated_data.get("before")
        limit = query.validated_data.get("limit")

        if before is None:
            messages = MessageService.get_recent_messages(conversation.pk, limit)
        else:
            messages = MessageService.load_older(conversation.pk, before, limit)

        return Response(MessageSerializer(messages, many=True).data)

    def create(self, request, conversation_pk=None):
        conversation = self.get_conversation()

        serializer = MessageCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = MessageService.send_message(
            conversation.pk,
            request.user.id,
            serializer.validated_data["text"],
        )
        raise_for_failure(result)

        if result.data is None:
            return Response(status=status.HTTP_204_NO_CONTENT)

        return Response(MessageSerializer(result.data).data, status=status.HTTP_201_CREATED)
