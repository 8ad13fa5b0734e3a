"""
Django admin configuration for chat models.

Provides admin interfaces for:
- Conversation inspection
- Message moderation
- Chat list rows (for diagnosing drift)
"""

from django.contrib import admin

from chat.models import ChatIndexEntry, Conversation, Message


class ChatIndexEntryInline(admin.TabularInline):
    """Inline display of chat list rows in conversation admin."""

    model = ChatIndexEntry
    extra = 0
    fields = [
        "user",
        "other_user_name",
        "last_message_timestamp",
        "last_message_snippet",
    ]
    readonly_fields = fields


@admin.register(Conversation)
class ConversationAdmin(admin.ModelAdmin):
    """Admin interface for Conversation model."""

    list_display = [
        "id",
        "is_group",
        "group_name",
        "last_message_snippet",
        "last_message_timestamp",
        "created_at",
    ]
    list_filter = ["is_group", "created_at"]
    search_fields = ["id", "group_name"]
    readonly_fields = [
        "created_at",
        "updated_at",
        "last_message_timestamp",
        "last_message_snippet",
        "last_message_sender",
    ]
    filter_horizontal = ["members"]
    inlines = [ChatIndexEntryInline]
    ordering = ["-created_at"]


@admin.register(Message)
class MessageAdmin(admin.ModelAdmin):
    """Admin interface for Message model."""

    list_display = [
        "id",
        "conversation",
        "sender",
        "message_type",
        "text_preview",
        "timestamp",
    ]
    list_filter = ["message_type", "timestamp"]
    search_fields = ["text", "sender__email"]
    readonly_fields = ["timestamp"]
    raw_id_fields = ["conversation", "sender"]
    ordering = ["-timestamp"]

    @admin.display(description="Text Preview")
    def text_preview(self, obj: Message) -> str:
        """Return truncated text for list display."""
        max_length = 50
        if len(obj.text) > max_length:
            return obj.text[:max_length] + "..."
        return obj.text


@admin.register(ChatIndexEntry)
class ChatIndexEntryAdmin(admin.ModelAdmin):
    """Admin interface for ChatIndexEntry model."""

    list_display = [
        "user",
        "conversation",
        "is_group",
        "title",
        "last_message_timestamp",
    ]
    list_filter = ["is_group"]
    search_fields = ["user__email", "conversation__id", "other_user_name", "group_name"]
    raw_id_fields = ["user", "conversation", "other_user"]
    ordering = ["-last_message_timestamp"]
