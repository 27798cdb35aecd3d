"""
Tests for payments app.

This package contains test modules for:
- test_models.py: Refund model fields, constraints and numbering
- test_state_transitions.py: Refund FSM transitions
- test_locks.py: DistributedLock
- test_refund_service.py: RefundService initiation, processing and recovery
- test_tasks.py: Celery tasks
- test_views.py: API endpoint tests

Usage:
    pytest payments/tests/
    pytest payments/tests/test_refund_service.py
"""
