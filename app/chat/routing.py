"""
WebSocket URL routing for the chat application.

URL Patterns:
    ws/chat/<conversation_id>/ - Live message stream of one conversation
    ws/chats/                  - Live chat list of the connected user

Authentication:
    JWT token passed as query parameter (?token=<jwt_access_token>) or as
    the "jwt" subprotocol. The JWTAuthMiddlewareStack validates the token
    and attaches the user to the consumer's scope.
"""

from django.urls import path

from chat import consumers

websocket_urlpatterns = [
    path(
        "ws/chat/<str:conversation_id>/",
        consumers.ChatConsumer.as_asgi(),
    ),
    path(
        "ws/chats/",
        consumers.ChatIndexConsumer.as_asgi(),
    ),
]
