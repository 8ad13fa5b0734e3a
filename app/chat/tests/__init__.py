"""
Tests for chat app.

This package contains test modules for:
- test_models.py: Conversation, Message, ChatIndexEntry model tests
- test_services.py: Conversation starter, chat list and message service tests
- test_fanout.py: Send fan-out (write set, atomicity, publishing)
- test_reconciliation.py: Drift detection and repair
- test_subscriptions.py / test_streams.py: Live subscriptions and stream controllers
- test_consumers.py: WebSocket consumer tests
- test_views.py: REST API endpoint tests
- test_tasks.py: Celery task tests

Usage:
    pytest chat/tests/
    pytest chat/tests/test_consumers.py
"""
