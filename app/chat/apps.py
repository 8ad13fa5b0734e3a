"""
Chat application configuration.

This app provides the chat system with:
- Direct (1:1) and named group conversations
- Per-user chat lists kept in step with every message
- Live message streams and chat lists over WebSockets
"""

from django.apps import AppConfig


class ChatConfig(AppConfig):
    """Configuration for the chat application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "chat"
    verbose_name = "Chat"
