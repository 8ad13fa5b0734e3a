"""
Chat app for real-time messaging.

This app handles:
- Conversations (direct and group)
- Message sending with atomic fan-out to every member's chat list
- Message history and live message streams
- WebSocket real-time updates and typing indicators

Related apps:
    - authentication: User model and display identities (Profile Lookup)

WebSocket Support:
    Uses Django Channels for real-time communication.
    See consumers.py for WebSocket handlers.
    See routing.py for WebSocket URL patterns.

Usage:
    from chat.services import ConversationService, MessageService

    # Open the direct chat with another user
    result = ConversationService.start_direct(user.id, other_user.id)

    # Send message
    MessageService.send_message(
        result.data.conversation_id,
        user.id,
        "Hello!",
    )
"""
