"""
URL configuration for chat API.

URL Structure:
    Chat list:
        /chats/                           GET
        /chats/start/                     POST
        /chats/groups/                    POST

    Conversations:
        /conversations/{id}/              GET

    Messages:
        /conversations/{id}/messages/     GET, POST

All URLs are prefixed with /api/v1/chat/ in the main URL configuration.
"""

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from chat.views import (
    ChatListView,
    ConversationViewSet,
    CreateGroupView,
    MessageViewSet,
    StartChatView,
)

router = DefaultRouter()
router.register(r"conversations", ConversationViewSet, basename="conversation")

app_name = "chat"

urlpatterns = [
    path("chats/", ChatListView.as_view(), name="chat-list"),
    path("chats/start/", StartChatView.as_view(), name="chat-start"),
    path("chats/groups/", CreateGroupView.as_view(), name="chat-group-create"),
    path("", include(router.urls)),
    # Nested routes for messages
    path(
        "conversations/<str:conversation_pk>/messages/",
        MessageViewSet.as_view({"get": "list", "post": "create"}),
        name="conversation-message-list",
    ),
]
