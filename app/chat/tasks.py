"""
Celery tasks for chat app.

This module provides tasks that keep denormalized chat state consistent:
- run_scheduled_reconciliation: Periodic pass over recently active conversations
- reconcile_conversation: On-demand repair of one conversation, queued
  automatically after a failed send

Usage:
    from chat.tasks import reconcile_conversation

    reconcile_conversation.delay(conversation_id)

Celery Beat Schedule:
    CELERY_BEAT_SCHEDULE = {
        "chat-reconciliation": {
            "task": "chat.tasks.run_scheduled_reconciliation",
            "schedule": CHAT_RECONCILE_INTERVAL_SECONDS,
        },
    }
"""

from __future__ import annotations

import logging

from celery import shared_task
from django.core.cache import cache

logger = logging.getLogger(__name__)

DEFAULT_LOOKBACK_HOURS = 24
DEFAULT_MAX_CONVERSATIONS = 500

# Only one scheduled pass at a time
RECONCILIATION_LOCK_KEY = "chat:reconciliation:lock"
RECONCILIATION_LOCK_TIMEOUT = 30 * 60


@shared_task(bind=True)
def run_scheduled_reconciliation(
    self,
    lookback_hours: int = DEFAULT_LOOKBACK_HOURS,
    max_conversations: int = DEFAULT_MAX_CONVERSATIONS,
) -> dict:
    """
    Reconcile recently active conversations.

    Args:
        lookback_hours: How far back to look for activity (default: 24)
        max_conversations: Maximum conversations per run (default: 500)

    Returns:
        Dict with:
        - status: "completed", "skipped" (another run holds the lock) or "failed"
        - conversations_checked, discrepancies_found, repaired
        - error: Error message if failed

    Note:
        If another run is in progress this returns "skipped" immediately
        instead of waiting, so slow runs never pile up in the queue.
    """
    from chat.services import ReconciliationService

    if not cache.add(RECONCILIATION_LOCK_KEY, self.request.id or "local", RECONCILIATION_LOCK_TIMEOUT):
        logger.info(
            "Chat reconciliation skipped - another run in progress",
            extra={"task_id": self.request.id},
        )
        return {
            "status": "skipped",
            "reason": "Another reconciliation run is in progress",
        }

    logger.info(
        "Starting scheduled chat reconciliation",
        extra={
            "lookback_hours": lookback_hours,
            "max_conversations": max_conversations,
        },
    )

    try:
        result = ReconciliationService.run_reconciliation(
            lookback_hours=lookback_hours,
            max_conversations=max_conversations,
        )
    except Exception as e:
        logger.exception(
            f"Unexpected error during chat reconciliation: {e}",
            extra={"error": str(e)},
        )
        return {
            "status": "failed",
            "error": str(e),
            "error_code": "UNEXPECTED_ERROR",
        }
    finally:
        cache.delete(RECONCILIATION_LOCK_KEY)

    if not result.success:
        logger.error(
            f"Chat reconciliation failed: {result.error}",
            extra={"error": result.error, "error_code": result.error_code},
        )
        return {
            "status": "failed",
            "error": result.error,
            "error_code": result.error_code,
        }

    logger.info("Scheduled chat reconciliation completed", extra=result.data.as_dict())
    return {"status": "completed", **result.data.as_dict()}


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_kwargs={"max_retries": 3},
)
def reconcile_conversation(self, conversation_id: str) -> dict:
    """
    Reconcile one conversation.

    Returns:
        Dict with:
        - status: "ok" (nothing to fix), "repaired" or "not_found"
        - conversation_id: The id processed
        - discrepancies: Types of the discrepancies found
    """
    from chat.constants import ErrorCode
    from chat.services import ReconciliationService

    logger.info(
        "Reconciling conversation",
        extra={"conversation_id": conversation_id},
    )

    result = ReconciliationService.reconcile_conversation(conversation_id)

    if not result.success:
        if result.error_code == ErrorCode.CONVERSATION_NOT_FOUND:
            return {
                "status": "not_found",
                "conversation_id": conversation_id,
                "error": result.error,
            }
        return {
            "status": "failed",
            "conversation_id": conversation_id,
            "error": result.error,
            "error_code": result.error_code,
        }

    run = result.data
    return {
        "status": "repaired" if run.repaired else "ok",
        "conversation_id": conversation_id,
        "discrepancies": [d.discrepancy_type.value for d in run.discrepancies],
    }
