"""
Refund processing service.

RefundProcessingService moves an APPROVED refund to COMPLETED or FAILED.
It is the only component that writes to more than one aggregate at a
time: the refund, SKU inventory and the order's payment status.

Processing Flow:
    1. Acquire a per-refund Redis lock (non-blocking)
    2. Validate the refund is APPROVED and the order has a charge reference
    3. If an earlier attempt reached Stripe, retrieve that refund and
       apply its status instead of creating another
    4. Otherwise call Stripe OUTSIDE any transaction, idempotency key "refund_<id>"
    5. On success, one transaction with the order row locked:
       a. refund -> COMPLETED with the Stripe refund id
       b. restore inventory for restockable items
       c. recompute the order's payment status
    6. On a permanent Stripe error, refund -> FAILED; nothing else changes

Outcome Mapping:
    succeeded                  -> COMPLETED
    pending / requires_action  -> stays APPROVED, Stripe id stored
    failed / canceled          -> FAILED
    timeout, rate limit, 5xx   -> stays APPROVED (outcome unknown)
    commit fails after success -> stays APPROVED, RECONCILIATION_REQUIRED

Usage:
    from payments.services import CallerContext, RefundProcessingService

    result = RefundProcessingService.process(caller, refund_id)
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from django.db import DatabaseError
from django.db.models import F

from core.services import BaseService
from payments.adapters import StripeAdapter
from payments.exceptions import (
    InvalidStateTransitionError,
    LockAcquisitionError,
    ReconciliationRequiredError,
    RefundNotFoundError,
    RefundValidationError,
    StripeError,
)
from payments.locks import refund_process_lock
from payments.messages import RefundMessages
from payments.models import (
    DiscrepancyResolution,
    Order,
    ReconciliationDiscrepancy,
    Refund,
    RefundHistory,
)
from payments.services.payment_status import PaymentStatusAggregator
from payments.services.refund_ledger import parse_identifier
from payments.services.results import ActionResult, CallerContext, is_administrator
from payments.services.stock_restorer import StockRestorer
from payments.state_machines import RefundHistoryAction, RefundReason, RefundStatus

if TYPE_CHECKING:
    from payments.adapters import RefundResult


# =============================================================================
# Constants
# =============================================================================

STRIPE_REASONS = {
    RefundReason.FRAUD: "fraudulent",
    RefundReason.CUSTOMER_REQUEST: "requested_by_customer",
}

UNKNOWN_FAILURE = "Unknown failure"


def stripe_reason_for(reason: str) -> str | None:
    """Stripe only accepts a few reason codes; everything else is sent without one."""
    return STRIPE_REASONS.get(reason)


# =============================================================================
# Refund Processing Service
# =============================================================================


class RefundProcessingService(BaseService):
    """
    Sequences the Stripe refund, ledger update, restock and status recompute.

    finalize() and mark_failed() are shared with the reconciliation job
    and the webhook handlers so that every path applies outcomes the same
    way.
    """

    # Stripe adapter - can be injected for testing
    _stripe_adapter: type | None = None

    @classmethod
    def get_stripe_adapter(cls) -> type:
        """Get the Stripe adapter class."""
        return cls._stripe_adapter or StripeAdapter

    @classmethod
    def set_stripe_adapter(cls, adapter: type | None) -> None:
        """Set the Stripe adapter class (for testing)."""
        cls._stripe_adapter = adapter

    # =========================================================================
    # Entry Point
    # =========================================================================

    @classmethod
    def process(cls, caller: CallerContext, refund_id: uuid.UUID | str) -> ActionResult:
        """
        Send an APPROVED refund to Stripe and apply the outcome.

        Safe to call again after any failure. A retry first looks for the
        Stripe refund of the earlier attempt and applies its status; only
        when Stripe has none is a new refund created, under the same
        idempotency key.

        Returns:
            ActionResult; SUCCESS carries the completed Refund, or a dict
            with the Stripe id and pending=True while Stripe settles it
        """
        if not is_administrator(caller):
            return ActionResult.unauthorized()

        logger = cls.get_logger()

        try:
            refund_uuid = parse_identifier(refund_id)
            with refund_process_lock(refund_uuid):
                return cls._process_locked(caller, refund_uuid)
        except LockAcquisitionError:
            logger.warning(
                "Refund is already being processed",
                extra={"refund_id": str(refund_id)},
            )
            return ActionResult.validation_error(RefundMessages.BUSY, "REFUND_BUSY")
        except Exception as e:
            return ActionResult.from_exception(e, logger)

    @classmethod
    def _process_locked(cls, caller: CallerContext, refund_id: uuid.UUID) -> ActionResult:
        logger = cls.get_logger()

        try:
            refund = Refund.objects.select_related("order").get(id=refund_id)
        except Refund.DoesNotExist:
            raise RefundNotFoundError(
                RefundMessages.NOT_FOUND,
                details={"refund_id": str(refund_id)},
            )

        if refund.status == RefundStatus.COMPLETED:
            raise InvalidStateTransitionError(
                RefundMessages.ALREADY_PROCESSED,
                error_code="INVALID_STATE_TRANSITION",
                details={"current_state": refund.status, "transition": "process"},
            )
        if refund.status != RefundStatus.APPROVED:
            raise InvalidStateTransitionError(
                RefundMessages.NOT_APPROVED,
                error_code="INVALID_STATE_TRANSITION",
                details={"current_state": refund.status, "transition": "process"},
            )

        order = refund.order
        if not order.charge_reference:
            raise RefundValidationError(
                RefundMessages.NO_CHARGE_ID,
                error_code="NO_CHARGE_REFERENCE",
                details={"order_id": str(order.id)},
            )

        submitted_before = refund.was_submitted_to_stripe

        RefundHistory.objects.create(
            refund=refund,
            action=RefundHistoryAction.PROCESSED,
            actor_id=caller.user_id,
        )

        if submitted_before:
            # Stripe prunes idempotency keys after 24 hours
            try:
                existing = cls._find_existing_stripe_refund(refund, order)
            except StripeError as e:
                logger.warning(
                    f"Could not look up earlier Stripe refund: {type(e).__name__}",
                    extra={
                        "refund_id": str(refund.id),
                        "stripe_refund_id": refund.stripe_refund_id,
                        "error": e.message,
                    },
                )
                return ActionResult.error(RefundMessages.OUTCOME_UNKNOWN, "OUTCOME_UNKNOWN")

            if existing is not None:
                logger.info(
                    "Applying status of earlier Stripe refund",
                    extra={
                        "refund_id": str(refund.id),
                        "stripe_refund_id": existing.id,
                        "stripe_status": existing.status,
                    },
                )
                return cls.apply_stripe_result(refund, existing, actor_id=caller.user_id)

        logger.info(
            "Calling Stripe create_refund",
            extra={
                "refund_id": str(refund.id),
                "order_id": str(order.id),
                "amount_cents": refund.amount_cents,
                "payment_intent_id": order.stripe_payment_intent_id,
            },
        )

        try:
            stripe_result = cls._create_stripe_refund(refund, order)
        except StripeError as e:
            if e.is_retryable:
                # The request may have reached Stripe; leave it APPROVED
                logger.warning(
                    f"Transient Stripe error, refund outcome unknown: {type(e).__name__}",
                    extra={
                        "refund_id": str(refund.id),
                        "error": e.message,
                        "error_code": e.error_code,
                    },
                )
                return ActionResult.error(RefundMessages.OUTCOME_UNKNOWN, "OUTCOME_UNKNOWN")

            logger.error(
                "Stripe rejected refund",
                extra={
                    "refund_id": str(refund.id),
                    "error": e.message,
                    "error_code": e.error_code,
                },
            )
            cls.mark_failed(refund.id, e.message, actor_id=caller.user_id)
            return ActionResult.error(e.message, e.error_code)

        return cls.apply_stripe_result(refund, stripe_result, actor_id=caller.user_id)

    @classmethod
    def _create_stripe_refund(cls, refund: Refund, order: Order) -> RefundResult:
        payment_intent_id = order.stripe_payment_intent_id or None
        return cls.get_stripe_adapter().create_refund(
            idempotency_key=refund.idempotency_key,
            amount_cents=refund.amount_cents,
            payment_intent_id=payment_intent_id,
            charge_id=None if payment_intent_id else order.stripe_charge_id,
            reason=stripe_reason_for(refund.reason),
            metadata={
                "refund_id": str(refund.id),
                "order_id": str(order.id),
                "order_number": order.order_number,
            },
        )

    @classmethod
    def _find_existing_stripe_refund(cls, refund: Refund, order: Order) -> RefundResult | None:
        """Stripe refund left by an earlier attempt, or None if Stripe has none."""
        adapter = cls.get_stripe_adapter()
        if refund.stripe_refund_id:
            return adapter.retrieve_refund(refund.stripe_refund_id)
        return adapter.find_refund_by_metadata(
            refund_id=str(refund.id),
            payment_intent_id=order.stripe_payment_intent_id or None,
            charge_id=order.stripe_charge_id or None,
        )

    # =========================================================================
    # Outcome Application
    # =========================================================================

    @classmethod
    def apply_stripe_result(
        cls,
        refund: Refund,
        stripe_result: RefundResult,
        actor_id: int | None = None,
    ) -> ActionResult:
        """
        Apply a Stripe refund status to a local APPROVED refund.

        Used by process() with the created or earlier Stripe refund.
        """
        if stripe_result.is_failed:
            reason = stripe_result.failure_reason or UNKNOWN_FAILURE
            cls.mark_failed(refund.id, reason, actor_id=actor_id)
            return ActionResult.error(reason, "STRIPE_REFUND_FAILED")

        if stripe_result.is_pending:
            cls.record_stripe_refund_id(refund.id, stripe_result.id)
            return ActionResult.success(
                RefundMessages.STRIPE_PENDING,
                {"stripe_refund_id": stripe_result.id, "pending": True},
            )

        try:
            completed, _ = cls.finalize(refund.id, stripe_result.id, actor_id=actor_id)
        except Exception as e:
            error = cls.flag_for_reconciliation(refund, stripe_result.id, e)
            return ActionResult.from_exception(error, cls.get_logger())

        return ActionResult.success(RefundMessages.COMPLETED, completed)

    @classmethod
    def finalize(
        cls,
        refund_id: uuid.UUID,
        stripe_refund_id: str,
        actor_id: int | None = None,
        history_action: str = RefundHistoryAction.COMPLETED,
        note: str = "",
    ) -> tuple[Refund, bool]:
        """
        Complete a refund that Stripe reports as succeeded.

        One transaction with the order row locked first, then the refund
        row. A refund already COMPLETED is returned unchanged with False,
        so callers racing on the same outcome never restock twice.

        Raises:
            InvalidStateTransitionError: The refund is neither APPROVED nor COMPLETED
        """
        logger = cls.get_logger()

        with cls.atomic():
            order_id = Refund.objects.values_list("order_id", flat=True).get(id=refund_id)
            order = Order.all_objects.select_for_update().get(id=order_id)
            refund = Refund.objects.select_for_update().get(id=refund_id)

            if refund.status == RefundStatus.COMPLETED:
                return refund, False
            if refund.status != RefundStatus.APPROVED:
                raise InvalidStateTransitionError(
                    RefundMessages.NOT_APPROVED,
                    error_code="INVALID_STATE_TRANSITION",
                    details={"current_state": refund.status, "transition": "complete"},
                )

            refund.complete(stripe_refund_id=stripe_refund_id)
            refund.save()

            restored = StockRestorer.restore_items(refund)
            payment_status = PaymentStatusAggregator.recompute(order)

            RefundHistory.objects.create(
                refund=refund,
                action=history_action,
                actor_id=actor_id,
                note=note or f"Stripe refund {stripe_refund_id}",
            )

        logger.info(
            "Refund completed",
            extra={
                "refund_id": str(refund.id),
                "order_id": str(order.id),
                "stripe_refund_id": stripe_refund_id,
                "units_restocked": restored,
                "payment_status": payment_status,
            },
        )
        return refund, True

    @classmethod
    def mark_failed(
        cls,
        refund_id: uuid.UUID,
        reason: str,
        actor_id: int | None = None,
        history_action: str = RefundHistoryAction.FAILED,
    ) -> tuple[Refund, bool]:
        """
        Mark an APPROVED refund FAILED. Money and stock are untouched.

        A refund no longer APPROVED is returned unchanged with False.
        """
        with cls.atomic():
            refund = Refund.objects.select_for_update().get(id=refund_id)
            if refund.status != RefundStatus.APPROVED:
                return refund, False

            refund.fail(reason=reason)
            refund.save()
            RefundHistory.objects.create(
                refund=refund,
                action=history_action,
                actor_id=actor_id,
                note=reason,
            )

        cls.get_logger().warning(
            "Refund failed",
            extra={"refund_id": str(refund.id), "failure_reason": reason},
        )
        return refund, True

    @classmethod
    def record_stripe_refund_id(cls, refund_id: uuid.UUID, stripe_refund_id: str) -> None:
        """Store the Stripe id of a refund Stripe has accepted but not settled."""
        Refund.objects.filter(id=refund_id, status=RefundStatus.APPROVED).update(
            stripe_refund_id=stripe_refund_id,
            version=F("version") + 1,
        )
        cls.get_logger().info(
            "Refund pending at Stripe",
            extra={"refund_id": str(refund_id), "stripe_refund_id": stripe_refund_id},
        )

    @classmethod
    def flag_for_reconciliation(
        cls,
        refund: Refund,
        stripe_refund_id: str,
        error: Exception,
    ) -> ReconciliationRequiredError:
        """
        Record that Stripe moved money we could not record locally.

        The refund stays APPROVED. The Stripe id is stored so that the
        reconciliation job can retrieve it directly.

        Returns:
            The ReconciliationRequiredError to surface to the caller
        """
        logger = cls.get_logger()
        logger.critical(
            "Stripe refund succeeded but local commit failed - reconciliation required",
            extra={
                "refund_id": str(refund.id),
                "order_id": str(refund.order_id),
                "stripe_refund_id": stripe_refund_id,
                "amount_cents": refund.amount_cents,
                "error": str(error),
                "error_type": type(error).__name__,
            },
            exc_info=error,
        )

        try:
            Refund.objects.filter(id=refund.id, status=RefundStatus.APPROVED).update(
                stripe_refund_id=stripe_refund_id,
                metadata={
                    **(refund.metadata or {}),
                    "reconciliation_required": True,
                    "stripe_refund_id": stripe_refund_id,
                },
                version=F("version") + 1,
            )
            ReconciliationDiscrepancy.objects.create(
                refund_id=refund.id,
                stripe_refund_id=stripe_refund_id,
                local_state=RefundStatus.APPROVED,
                stripe_state="succeeded",
                resolution=DiscrepancyResolution.FLAGGED_FOR_REVIEW,
                action_taken="Local commit failed after Stripe refund succeeded",
                error_message=str(error),
            )
        except DatabaseError:
            logger.exception(
                "Could not record reconciliation discrepancy",
                extra={"refund_id": str(refund.id), "stripe_refund_id": stripe_refund_id},
            )

        return ReconciliationRequiredError(
            RefundMessages.RECONCILIATION_REQUIRED,
            details={"refund_id": str(refund.id), "stripe_refund_id": stripe_refund_id},
        )
