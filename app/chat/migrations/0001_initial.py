"""
Create Conversation, Message and ChatIndexEntry.

Tables created:
    - chat_conversation: Shared conversation metadata and last-message summary
    - chat_conversation_members: Conversation membership
    - chat_message: Immutable messages
    - chat_index_entry: One chat list row per (user, conversation)
"""

import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


def last_message_fields():
    return [
        (
            "last_message_timestamp",
            models.DateTimeField(
                blank=True,
                db_index=True,
                help_text="Server timestamp of the most recent message",
                null=True,
            ),
        ),
        (
            "last_message_snippet",
            models.CharField(
                blank=True,
                default="",
                help_text="Snippet of the most recent message",
                max_length=100,
            ),
        ),
        (
            "last_message_sender",
            models.ForeignKey(
                blank=True,
                help_text="Sender of the most recent message (null when seeded)",
                null=True,
                on_delete=django.db.models.deletion.SET_NULL,
                related_name="+",
                to=settings.AUTH_USER_MODEL,
            ),
        ),
    ]


def timestamp_fields():
    return [
        (
            "created_at",
            models.DateTimeField(
                auto_now_add=True,
                db_index=True,
                help_text="Timestamp when this record was created",
            ),
        ),
        (
            "updated_at",
            models.DateTimeField(
                auto_now=True,
                help_text="Timestamp when this record was last modified",
            ),
        ),
    ]


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Conversation",
            fields=[
                *last_message_fields(),
                *timestamp_fields(),
                (
                    "id",
                    models.CharField(
                        editable=False,
                        help_text="Conversation id (derived from member ids for direct chats)",
                        max_length=100,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "is_group",
                    models.BooleanField(
                        db_index=True,
                        default=False,
                        help_text="Whether this is a group conversation",
                    ),
                ),
                (
                    "group_name",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Title for group conversations (empty for direct)",
                        max_length=100,
                    ),
                ),
                (
                    "members",
                    models.ManyToManyField(
                        help_text="Users participating in this conversation",
                        related_name="conversations",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "db_table": "chat_conversation",
                "ordering": ["-last_message_timestamp", "-created_at"],
            },
        ),
        migrations.CreateModel(
            name="Message",
            fields=[
                ("id", models.BigAutoField(primary_key=True, serialize=False)),
                ("text", models.TextField(help_text="Message text")),
                (
                    "timestamp",
                    models.DateTimeField(
                        db_index=True,
                        default=django.utils.timezone.now,
                        help_text="Server timestamp of the message",
                    ),
                ),
                (
                    "message_type",
                    models.CharField(
                        choices=[("text", "Text")],
                        default="text",
                        help_text="Type of message",
                        max_length=10,
                    ),
                ),
                (
                    "conversation",
                    models.ForeignKey(
                        help_text="Conversation this message belongs to",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="messages",
                        to="chat.conversation",
                    ),
                ),
                (
                    "sender",
                    models.ForeignKey(
                        help_text="User who sent the message",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="chat_messages",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "db_table": "chat_message",
                "ordering": ["timestamp", "id"],
                "indexes": [
                    models.Index(
                        fields=["conversation", "-timestamp", "-id"],
                        name="chat_msg_conv_recent_idx",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="ChatIndexEntry",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                *last_message_fields(),
                *timestamp_fields(),
                ("is_group", models.BooleanField(default=False)),
                (
                    "other_user_name",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Display name of the other participant",
                        max_length=100,
                    ),
                ),
                (
                    "other_user_avatar",
                    models.URLField(
                        blank=True,
                        help_text="Avatar URL of the other participant",
                        max_length=500,
                        null=True,
                    ),
                ),
                (
                    "group_name",
                    models.CharField(blank=True, default="", max_length=100),
                ),
                (
                    "conversation",
                    models.ForeignKey(
                        help_text="Conversation this row points at",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="index_entries",
                        to="chat.conversation",
                    ),
                ),
                (
                    "other_user",
                    models.ForeignKey(
                        blank=True,
                        help_text="Other participant of a direct conversation",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        help_text="User whose chat list this row belongs to",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="chat_index_entries",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "db_table": "chat_index_entry",
                "ordering": ["-last_message_timestamp"],
                "verbose_name_plural": "chat index entries",
                "indexes": [
                    models.Index(
                        fields=["user", "-last_message_timestamp"],
                        name="chat_index_user_recent_idx",
                    ),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("user", "conversation"),
                        name="unique_chat_index_entry",
                    ),
                ],
            },
        ),
    ]
