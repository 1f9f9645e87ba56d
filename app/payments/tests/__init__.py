"""
Tests for payments app.

This package contains test modules for:
- test_models.py: Order, Refund and WebhookEvent model tests
- test_refund_ledger.py, test_refund_processor.py: refund service tests
- test_reconciliation_service.py, test_reconciliation_worker.py: reconciliation
- test_views.py, test_integration.py: API endpoint tests and refund journeys

Usage:
    pytest payments/tests/
    pytest payments/tests/test_refund_processor.py
"""
