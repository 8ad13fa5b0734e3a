"""
Constants and configuration for chat module features.

This module centralizes fixed values for:
- Message composition (content limits, message types)
- Conversation creation (seed snippet, group limits)
- Realtime delivery (channel group prefixes, WebSocket close codes)

Tunable values (history window, snippet limits, id separator) live in
Django settings as ``CHAT_*`` and are read by the services.

Import example:
    from chat.constants import MESSAGE_CONFIG, CLOSE_CODES
"""

from typing import Final


# =============================================================================
# Message Configuration
# =============================================================================


class MESSAGE_CONFIG:
    """Configuration for message operations."""

    # Content limits
    MAX_CONTENT_LENGTH: Final[int] = 10000  # Characters, after trimming

    # Older-history pagination bounds
    MAX_PAGE_SIZE: Final[int] = 100


# =============================================================================
# Conversation Configuration
# =============================================================================


class CONVERSATION_CONFIG:
    """Configuration for conversation creation."""

    # Snippet written into a fresh conversation and both index entries
    SEED_SNIPPET: Final[str] = "Chat created"

    GROUP_NAME_MAX_LENGTH: Final[int] = 100

    # Members besides the creator
    GROUP_MIN_OTHER_MEMBERS: Final[int] = 1

    # Length of the random hex id given to group conversations
    GROUP_ID_HEX_LENGTH: Final[int] = 20


# =============================================================================
# Realtime Configuration
# =============================================================================


class REALTIME_CONFIG:
    """Channel layer group naming and per-connection limits."""

    CONVERSATION_GROUP_PREFIX: Final[str] = "chat"
    CHAT_INDEX_GROUP_PREFIX: Final[str] = "chat_index"
    # Recent message ids a live subscription remembers for de-duplication
    DELIVERED_ID_WINDOW: Final[int] = 1000


class CLOSE_CODES:
    """Application WebSocket close codes."""

    UNAUTHENTICATED: Final[int] = 4001
    NOT_A_MEMBER: Final[int] = 4003
    NOT_FOUND: Final[int] = 4004


# =============================================================================
# Error codes
# =============================================================================


class ErrorCode:
    """Machine-readable error codes of chat services and WebSocket replies."""

    SAME_USER = "SAME_USER"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    WRITE_FAILED = "WRITE_FAILED"
    GROUP_NAME_REQUIRED = "GROUP_NAME_REQUIRED"
    NOT_ENOUGH_MEMBERS = "NOT_ENOUGH_MEMBERS"
    CONVERSATION_NOT_FOUND = "CONVERSATION_NOT_FOUND"
    NOT_PARTICIPANT = "NOT_PARTICIPANT"
    MESSAGE_TOO_LONG = "MESSAGE_TOO_LONG"
    INVALID_PAYLOAD = "INVALID_PAYLOAD"
