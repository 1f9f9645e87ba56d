"""
Pytest fixtures for refund tests.

Provides administrators, paid orders with SKU-backed lines, refunds in
each state, a mocked Redis connection for the distributed locks and a
fake Stripe adapter injected into the refund services.

Usage:
    def test_process(admin_caller, approved_refund, fake_stripe):
        fake_stripe.create_refund.return_value = make_refund_result(...)
        result = RefundProcessingService.process(admin_caller, approved_refund.id)
"""

from unittest.mock import MagicMock

import pytest

from payments.adapters import RefundResult
from payments.services import (
    CallerContext,
    RefundProcessingService,
    RefundReconciliationService,
)
from payments.state_machines import RefundStatus
from payments.tests.factories import (
    AdminUserFactory,
    OrderFactory,
    OrderItemFactory,
    RefundFactory,
    RefundItemFactory,
    SkuFactory,
    UserFactory,
)


def make_refund_result(
    id: str = "re_test123",
    status: str = "succeeded",
    amount_cents: int = 5000,
    failure_reason: str | None = None,
    metadata: dict | None = None,
) -> RefundResult:
    """Build a RefundResult as returned by the Stripe adapter."""
    return RefundResult(
        id=id,
        amount_cents=amount_cents,
        currency="usd",
        status=status,
        payment_intent_id="pi_test",
        failure_reason=failure_reason,
        metadata=metadata or {},
    )


# =============================================================================
# Users and Callers
# =============================================================================


@pytest.fixture
def admin_user(db):
    return AdminUserFactory()


@pytest.fixture
def regular_user(db):
    return UserFactory()


@pytest.fixture
def admin_caller(admin_user):
    return CallerContext.from_user(admin_user)


@pytest.fixture
def customer_caller(regular_user):
    return CallerContext.from_user(regular_user)


# =============================================================================
# Orders
# =============================================================================


@pytest.fixture
def sku(db):
    """SKU with 10 units in stock."""
    return SkuFactory(inventory=10)


@pytest.fixture
def paid_order(db):
    """Paid $100 order."""
    return OrderFactory(total_cents=10000)


@pytest.fixture
def order_line(paid_order, sku):
    """Two units at $50 each, backed by sku."""
    return OrderItemFactory(order=paid_order, sku=sku, quantity=2, unit_price_cents=5000)


# =============================================================================
# Refunds
# =============================================================================


@pytest.fixture
def pending_refund(paid_order, order_line):
    """PENDING $50 refund of one restockable unit."""
    refund = RefundFactory(order=paid_order, amount_cents=5000)
    RefundItemFactory(refund=refund, order_item=order_line, quantity=1, restock=True)
    return refund


@pytest.fixture
def approved_refund(paid_order, order_line):
    """APPROVED $50 refund of one restockable unit."""
    refund = RefundFactory(order=paid_order, amount_cents=5000, status=RefundStatus.APPROVED)
    RefundItemFactory(refund=refund, order_item=order_line, quantity=1, restock=True)
    return refund


@pytest.fixture
def completed_refund(paid_order, order_line):
    refund = RefundFactory(
        order=paid_order,
        amount_cents=5000,
        status=RefundStatus.COMPLETED,
        stripe_refund_id="re_completed",
    )
    RefundItemFactory(refund=refund, order_item=order_line, quantity=1)
    return refund


@pytest.fixture
def failed_refund(paid_order):
    return RefundFactory(
        order=paid_order,
        amount_cents=5000,
        status=RefundStatus.FAILED,
        failure_reason="charge_already_refunded",
    )


# =============================================================================
# Infrastructure Mocks
# =============================================================================


@pytest.fixture
def mock_redis(mocker):
    """
    Mock Redis client for the distributed locks.

    Every lock is available by default; set mock_redis.set.return_value
    to False to simulate a lock held elsewhere.
    """
    mock_client = MagicMock()
    mock_client.set.return_value = True
    mock_client.eval.return_value = 1

    mocker.patch("payments.locks.get_redis_connection", return_value=mock_client)
    return mock_client


@pytest.fixture
def fake_stripe(mock_redis):
    """
    Stripe adapter double injected into the refund services.

    create_refund succeeds by default with a "succeeded" Stripe refund.
    """
    adapter = MagicMock()
    adapter.create_refund.return_value = make_refund_result()
    adapter.retrieve_refund.return_value = make_refund_result()
    adapter.find_refund_by_metadata.return_value = None

    RefundProcessingService.set_stripe_adapter(adapter)
    RefundReconciliationService.set_stripe_adapter(adapter)
    yield adapter
    RefundProcessingService.set_stripe_adapter(None)
    RefundReconciliationService.set_stripe_adapter(None)
