"""
Tests for RefundLedgerService.

Covers refund creation caps, administrator checks, the PENDING-only
transitions, cancellation by deletion and the filtered listing.
"""

import uuid
from datetime import timedelta

import pytest
from django.utils import timezone

from payments.exceptions import RefundValidationError
from payments.messages import RefundMessages
from payments.models import Refund, RefundHistory, RefundItem
from payments.services import (
    ActionStatus,
    RefundItemInput,
    RefundLedgerService,
    RefundListParams,
    refund_ordering,
    should_restock_by_default,
)
from payments.state_machines import (
    OrderPaymentStatus,
    RefundHistoryAction,
    RefundReason,
    RefundStatus,
)
from payments.tests.factories import (
    OrderFactory,
    OrderItemFactory,
    RefundFactory,
)


class TestRestockDefaults:
    @pytest.mark.parametrize(
        "reason,expected",
        [
            (RefundReason.CUSTOMER_REQUEST, True),
            (RefundReason.WRONG_ITEM, True),
            (RefundReason.OTHER, True),
            (RefundReason.DEFECTIVE, False),
            (RefundReason.LOST_IN_TRANSIT, False),
            (RefundReason.FRAUD, False),
        ],
    )
    def test_should_restock_by_default(self, reason, expected):
        assert should_restock_by_default(reason) is expected


@pytest.mark.django_db
class TestCreateRefund:
    def test_amount_defaults_to_item_total(self, admin_caller, paid_order, order_line):
        result = RefundLedgerService.create_refund(
            admin_caller,
            order_id=paid_order.id,
            items=[RefundItemInput(order_item_id=order_line.id, quantity=1)],
        )

        assert result.status == ActionStatus.SUCCESS
        refund = result.data
        assert refund.status == RefundStatus.PENDING
        assert refund.amount_cents == 5000
        assert refund.created_by_id == admin_caller.user_id

        item = refund.items.get()
        assert (item.quantity, item.amount_cents, item.restock) == (1, 5000, True)
        assert list(refund.history.values_list("action", flat=True)) == [RefundHistoryAction.CREATED]

    def test_explicit_amount_without_items(self, admin_caller, paid_order):
        result = RefundLedgerService.create_refund(
            admin_caller,
            order_id=str(paid_order.id),
            amount_cents=1234,
            note="Goodwill",
        )

        assert result.ok
        assert result.data.amount_cents == 1234
        assert result.data.note == "Goodwill"
        assert result.data.items.count() == 0

    def test_non_restock_reason_sets_item_default(self, admin_caller, paid_order, order_line):
        result = RefundLedgerService.create_refund(
            admin_caller,
            order_id=paid_order.id,
            reason=RefundReason.DEFECTIVE,
            items=[RefundItemInput(order_item_id=order_line.id, quantity=1)],
        )

        assert result.ok
        assert result.data.items.get().restock is False

    def test_per_item_restock_override(self, admin_caller, paid_order, order_line):
        result = RefundLedgerService.create_refund(
            admin_caller,
            order_id=paid_order.id,
            reason=RefundReason.DEFECTIVE,
            items=[RefundItemInput(order_item_id=order_line.id, quantity=1, restock=True)],
        )

        assert result.ok
        assert result.data.items.get().restock is True

    def test_item_amount_capped_at_line_value(self, admin_caller, paid_order, order_line):
        result = RefundLedgerService.create_refund(
            admin_caller,
            order_id=paid_order.id,
            items=[RefundItemInput(order_item_id=order_line.id, quantity=1, amount_cents=9999)],
        )

        assert result.ok
        assert result.data.amount_cents == 5000

    def test_explicit_amount_within_items_total(self, admin_caller, paid_order, order_line):
        result = RefundLedgerService.create_refund(
            admin_caller,
            order_id=paid_order.id,
            amount_cents=3000,
            items=[RefundItemInput(order_item_id=order_line.id, quantity=1)],
        )

        assert result.ok
        assert result.data.amount_cents == 3000

    def test_explicit_amount_above_items_total(self, admin_caller, paid_order, order_line):
        result = RefundLedgerService.create_refund(
            admin_caller,
            order_id=paid_order.id,
            amount_cents=5001,
            items=[RefundItemInput(order_item_id=order_line.id, quantity=1)],
        )

        assert result.status == ActionStatus.VALIDATION_ERROR
        assert result.error_code == "AMOUNT_EXCEEDS_ITEMS"
        assert result.message == RefundMessages.AMOUNT_EXCEEDS_ITEMS
        assert not Refund.objects.exists()

    def test_rejects_non_administrator(self, customer_caller, paid_order):
        result = RefundLedgerService.create_refund(
            customer_caller,
            order_id=paid_order.id,
            amount_cents=1000,
        )

        assert result.status == ActionStatus.UNAUTHORIZED
        assert result.message == RefundMessages.UNAUTHORIZED
        assert not Refund.objects.exists()

    def test_rejects_malformed_order_id(self, admin_caller):
        result = RefundLedgerService.create_refund(admin_caller, order_id="not-a-uuid", amount_cents=1000)

        assert result.status == ActionStatus.VALIDATION_ERROR
        assert result.error_code == "INVALID_ID"

    def test_unknown_order(self, admin_caller):
        result = RefundLedgerService.create_refund(admin_caller, order_id=uuid.uuid4(), amount_cents=1000)

        assert result.status == ActionStatus.NOT_FOUND
        assert result.message == RefundMessages.ORDER_NOT_FOUND

    def test_unpaid_order_not_refundable(self, admin_caller):
        order = OrderFactory(payment_status=OrderPaymentStatus.PENDING)

        result = RefundLedgerService.create_refund(admin_caller, order_id=order.id, amount_cents=1000)

        assert result.status == ActionStatus.VALIDATION_ERROR
        assert result.error_code == "ORDER_NOT_REFUNDABLE"

    @pytest.mark.parametrize("amount", [0, -500])
    def test_non_positive_amount(self, admin_caller, paid_order, amount):
        result = RefundLedgerService.create_refund(admin_caller, order_id=paid_order.id, amount_cents=amount)

        assert result.status == ActionStatus.VALIDATION_ERROR
        assert result.error_code == "INVALID_AMOUNT"

    def test_no_amount_and_no_items(self, admin_caller, paid_order):
        result = RefundLedgerService.create_refund(admin_caller, order_id=paid_order.id)

        assert result.status == ActionStatus.VALIDATION_ERROR
        assert result.error_code == "INVALID_AMOUNT"

    def test_unknown_reason(self, admin_caller, paid_order):
        result = RefundLedgerService.create_refund(
            admin_caller,
            order_id=paid_order.id,
            amount_cents=1000,
            reason="changed_my_mind",
        )

        assert result.error_code == "INVALID_REASON"

    def test_zero_quantity_rejected(self, admin_caller, paid_order, order_line):
        result = RefundLedgerService.create_refund(
            admin_caller,
            order_id=paid_order.id,
            items=[RefundItemInput(order_item_id=order_line.id, quantity=0)],
        )

        assert result.error_code == "INVALID_QUANTITY"

    def test_item_from_another_order(self, admin_caller, paid_order):
        foreign_line = OrderItemFactory()

        result = RefundLedgerService.create_refund(
            admin_caller,
            order_id=paid_order.id,
            items=[RefundItemInput(order_item_id=foreign_line.id, quantity=1)],
        )

        assert result.error_code == "INVALID_ITEMS"

    def test_amount_exceeds_remaining(self, admin_caller, paid_order, pending_refund):
        result = RefundLedgerService.create_refund(admin_caller, order_id=paid_order.id, amount_cents=5001)

        assert result.status == ActionStatus.VALIDATION_ERROR
        assert result.error_code == "AMOUNT_EXCEEDS_REMAINING"
        assert Refund.objects.count() == 1

    def test_remaining_amount_can_be_claimed_exactly(self, admin_caller, paid_order, pending_refund):
        result = RefundLedgerService.create_refund(admin_caller, order_id=paid_order.id, amount_cents=5000)

        assert result.ok

    def test_failed_and_rejected_refunds_free_their_amount(self, admin_caller, paid_order, failed_refund):
        RefundFactory(order=paid_order, amount_cents=5000, status=RefundStatus.REJECTED)

        result = RefundLedgerService.create_refund(admin_caller, order_id=paid_order.id, amount_cents=10000)

        assert result.ok

    def test_quantity_exceeds_available(self, admin_caller, paid_order, order_line, pending_refund):
        # pending_refund already claims 1 of the 2 units
        result = RefundLedgerService.create_refund(
            admin_caller,
            order_id=paid_order.id,
            items=[RefundItemInput(order_item_id=order_line.id, quantity=2)],
        )

        assert result.error_code == "QUANTITY_EXCEEDS_AVAILABLE"

    def test_repeated_lines_are_summed(self, admin_caller, paid_order, order_line):
        result = RefundLedgerService.create_refund(
            admin_caller,
            order_id=paid_order.id,
            items=[
                RefundItemInput(order_item_id=order_line.id, quantity=2),
                RefundItemInput(order_item_id=order_line.id, quantity=1),
            ],
        )

        assert result.error_code == "QUANTITY_EXCEEDS_AVAILABLE"
        assert not RefundItem.objects.exists()

    def test_partially_refunded_order_still_refundable(self, admin_caller):
        order = OrderFactory(total_cents=10000, payment_status=OrderPaymentStatus.PARTIALLY_REFUNDED)
        RefundFactory(order=order, amount_cents=4000, status=RefundStatus.COMPLETED)

        result = RefundLedgerService.create_refund(admin_caller, order_id=order.id, amount_cents=6000)

        assert result.ok


@pytest.mark.django_db
class TestApprove:
    def test_approves_pending_refund(self, admin_caller, pending_refund):
        result = RefundLedgerService.approve(admin_caller, pending_refund.id)

        assert result.ok
        assert result.message == RefundMessages.APPROVED
        refund = Refund.objects.get(pk=pending_refund.pk)
        assert refund.status == RefundStatus.APPROVED
        assert refund.approved_by_id == admin_caller.user_id
        assert refund.history.filter(action=RefundHistoryAction.APPROVED).exists()

    def test_approving_twice_is_reported(self, admin_caller, pending_refund):
        RefundLedgerService.approve(admin_caller, pending_refund.id)

        result = RefundLedgerService.approve(admin_caller, pending_refund.id)

        assert result.status == ActionStatus.VALIDATION_ERROR
        assert result.message == RefundMessages.ALREADY_APPROVED
        assert result.error_code == "INVALID_STATE_TRANSITION"

    def test_completed_reports_already_approved(self, admin_caller, completed_refund):
        result = RefundLedgerService.approve(admin_caller, completed_refund.id)
        assert result.message == RefundMessages.ALREADY_APPROVED

    def test_failed_reports_already_processed(self, admin_caller, failed_refund):
        result = RefundLedgerService.approve(admin_caller, failed_refund.id)
        assert result.message == RefundMessages.ALREADY_PROCESSED

    def test_unknown_refund(self, admin_caller):
        result = RefundLedgerService.approve(admin_caller, uuid.uuid4())
        assert result.status == ActionStatus.NOT_FOUND

    def test_non_administrator(self, customer_caller, pending_refund):
        result = RefundLedgerService.approve(customer_caller, pending_refund.id)

        assert result.status == ActionStatus.UNAUTHORIZED
        assert Refund.objects.get(pk=pending_refund.pk).status == RefundStatus.PENDING


@pytest.mark.django_db
class TestReject:
    def test_rejects_pending_refund(self, admin_caller, pending_refund):
        result = RefundLedgerService.reject(admin_caller, pending_refund.id, reason="Not eligible")

        assert result.ok
        refund = Refund.objects.get(pk=pending_refund.pk)
        assert refund.status == RefundStatus.REJECTED
        assert refund.rejection_reason == "Not eligible"
        assert refund.history.filter(action=RefundHistoryAction.REJECTED, note="Not eligible").exists()

    def test_cannot_reject_approved(self, admin_caller, approved_refund):
        result = RefundLedgerService.reject(admin_caller, approved_refund.id)

        assert result.status == ActionStatus.VALIDATION_ERROR
        assert result.message == RefundMessages.CANNOT_REJECT


@pytest.mark.django_db
@pytest.mark.usefixtures("mock_redis")
class TestCancel:
    def test_cancel_pending_deletes_refund(self, admin_caller, pending_refund):
        refund_id = pending_refund.id

        result = RefundLedgerService.cancel(admin_caller, refund_id)

        assert result.ok
        assert result.data == {"id": str(refund_id)}
        assert not Refund.objects.filter(id=refund_id).exists()
        assert not RefundItem.objects.filter(refund_id=refund_id).exists()
        assert not RefundHistory.objects.filter(refund_id=refund_id).exists()

    def test_cancel_approved_frees_amount(self, admin_caller, paid_order, approved_refund):
        RefundLedgerService.cancel(admin_caller, approved_refund.id)

        result = RefundLedgerService.create_refund(admin_caller, order_id=paid_order.id, amount_cents=10000)
        assert result.ok

    def test_takes_processing_lock(self, admin_caller, approved_refund, mock_redis):
        RefundLedgerService.cancel(admin_caller, approved_refund.id)

        assert mock_redis.set.call_args[0][0] == f"lock:refund:process:{approved_refund.id}"
        mock_redis.eval.assert_called_once()

    def test_busy_while_processing(self, admin_caller, approved_refund, mock_redis):
        mock_redis.set.return_value = False

        result = RefundLedgerService.cancel(admin_caller, approved_refund.id)

        assert result.status == ActionStatus.VALIDATION_ERROR
        assert result.error_code == "REFUND_BUSY"
        assert Refund.objects.filter(id=approved_refund.id).exists()

    @pytest.mark.parametrize("fixture_name", ["completed_refund", "failed_refund"])
    def test_terminal_refunds_cannot_be_cancelled(self, request, admin_caller, fixture_name):
        refund = request.getfixturevalue(fixture_name)

        result = RefundLedgerService.cancel(admin_caller, refund.id)

        assert result.status == ActionStatus.VALIDATION_ERROR
        assert result.message == RefundMessages.CANNOT_CANCEL
        assert Refund.objects.filter(id=refund.id).exists()

    def test_pending_at_stripe_cannot_be_cancelled(self, admin_caller, approved_refund):
        Refund.objects.filter(pk=approved_refund.pk).update(stripe_refund_id="re_pending")

        result = RefundLedgerService.cancel(admin_caller, approved_refund.id)

        assert result.status == ActionStatus.VALIDATION_ERROR
        assert result.error_code == "CANNOT_CANCEL"
        assert result.message == RefundMessages.CANNOT_CANCEL_SUBMITTED
        assert Refund.objects.filter(id=approved_refund.id).exists()

    def test_flagged_for_reconciliation_cannot_be_cancelled(self, admin_caller, approved_refund):
        Refund.objects.filter(pk=approved_refund.pk).update(
            metadata={"reconciliation_required": True}
        )

        result = RefundLedgerService.cancel(admin_caller, approved_refund.id)

        assert result.error_code == "CANNOT_CANCEL"
        assert Refund.objects.filter(id=approved_refund.id).exists()

    def test_processed_with_unknown_outcome_cannot_be_cancelled(self, admin_caller, approved_refund):
        RefundHistory.objects.create(refund=approved_refund, action=RefundHistoryAction.PROCESSED)

        result = RefundLedgerService.cancel(admin_caller, approved_refund.id)

        assert result.error_code == "CANNOT_CANCEL"
        assert Refund.objects.filter(id=approved_refund.id).exists()

    def test_malformed_id(self, admin_caller):
        result = RefundLedgerService.cancel(admin_caller, "42")
        assert result.error_code == "INVALID_ID"


@pytest.mark.django_db
class TestGet:
    def test_returns_refund(self, admin_caller, pending_refund):
        result = RefundLedgerService.get(admin_caller, str(pending_refund.id))

        assert result.ok
        assert result.data.id == pending_refund.id

    def test_unknown(self, admin_caller):
        result = RefundLedgerService.get(admin_caller, uuid.uuid4())

        assert result.status == ActionStatus.NOT_FOUND
        assert result.message == RefundMessages.NOT_FOUND

    def test_non_administrator_checked_before_id(self, customer_caller):
        result = RefundLedgerService.get(customer_caller, "garbage")
        assert result.status == ActionStatus.UNAUTHORIZED


@pytest.mark.django_db
class TestListRefunds:
    @pytest.fixture
    def refunds(self):
        refunds = [
            RefundFactory(amount_cents=1000, status=RefundStatus.PENDING),
            RefundFactory(amount_cents=2000, status=RefundStatus.APPROVED),
            RefundFactory(amount_cents=3000, status=RefundStatus.COMPLETED, reason=RefundReason.DEFECTIVE),
        ]
        # Distinct creation times, oldest first
        base = timezone.now() - timedelta(hours=1)
        for offset, refund in enumerate(refunds):
            Refund.objects.filter(pk=refund.pk).update(created_at=base + timedelta(minutes=offset))
        return refunds

    def _list(self, caller, **kwargs):
        result = RefundLedgerService.list_refunds(caller, RefundListParams(**kwargs))
        assert result.ok, result.message
        return list(result.data)

    def test_default_newest_first(self, admin_caller, refunds):
        rows = self._list(admin_caller)
        assert [r.id for r in rows] == [r.id for r in reversed(refunds)]

    def test_status_filter(self, admin_caller, refunds):
        rows = self._list(admin_caller, statuses=[RefundStatus.PENDING, RefundStatus.APPROVED])
        assert {r.amount_cents for r in rows} == {1000, 2000}

    def test_reason_filter(self, admin_caller, refunds):
        rows = self._list(admin_caller, reasons=[RefundReason.DEFECTIVE])
        assert [r.amount_cents for r in rows] == [3000]

    def test_amount_range(self, admin_caller, refunds):
        rows = self._list(admin_caller, amount_min=1500, amount_max=2500)
        assert [r.amount_cents for r in rows] == [2000]

    def test_order_filter(self, admin_caller, refunds):
        rows = self._list(admin_caller, order_id=str(refunds[1].order_id))
        assert [r.id for r in rows] == [refunds[1].id]

    def test_search_by_order_number(self, admin_caller, refunds):
        rows = self._list(admin_caller, search=refunds[0].order.order_number)
        assert [r.id for r in rows] == [refunds[0].id]

    @pytest.mark.parametrize(
        "sort,expected",
        [
            ("amount-ascending", [1000, 2000, 3000]),
            ("amount-descending", [3000, 2000, 1000]),
            ("created-ascending", [1000, 2000, 3000]),
        ],
    )
    def test_sort(self, admin_caller, refunds, sort, expected):
        rows = self._list(admin_caller, sort=sort)
        assert [r.amount_cents for r in rows] == expected

    def test_equal_sort_values_ordered_by_id(self, admin_caller, paid_order):
        refunds = [RefundFactory(order=paid_order, amount_cents=500) for _ in range(3)]

        rows = self._list(admin_caller, sort="amount-ascending")

        assert [r.id for r in rows] == sorted(r.id for r in refunds)

    @pytest.mark.parametrize(
        "kwargs,error_code",
        [
            ({"sort": "amount-sideways"}, "INVALID_SORT"),
            ({"sort": "customer-ascending"}, "INVALID_SORT"),
            ({"statuses": ["cancelled"]}, "INVALID_FILTER"),
            ({"reasons": ["whim"]}, "INVALID_FILTER"),
            ({"order_id": "abc"}, "INVALID_ID"),
        ],
    )
    def test_invalid_params(self, admin_caller, kwargs, error_code):
        result = RefundLedgerService.list_refunds(admin_caller, RefundListParams(**kwargs))

        assert result.status == ActionStatus.VALIDATION_ERROR
        assert result.error_code == error_code

    def test_non_administrator(self, customer_caller, refunds):
        result = RefundLedgerService.list_refunds(customer_caller)
        assert result.status == ActionStatus.UNAUTHORIZED


class TestRefundOrdering:
    @pytest.mark.parametrize(
        "sort,expected",
        [
            (None, ("-created_at", "-id")),
            ("created-ascending", ("created_at", "id")),
            ("amount-descending", ("-amount_cents", "-id")),
            ("status-ascending", ("status", "id")),
        ],
    )
    def test_maps_sort_to_fields(self, sort, expected):
        assert refund_ordering(sort) == expected

    def test_unknown_sort(self):
        with pytest.raises(RefundValidationError) as exc_info:
            refund_ordering("amount-up")
        assert exc_info.value.error_code == "INVALID_SORT"
