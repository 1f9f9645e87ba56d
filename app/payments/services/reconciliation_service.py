"""
Reconciliation service for APPROVED refunds.

A refund stays APPROVED whenever its Stripe outcome is unknown locally:
the Stripe call timed out, Stripe reported it pending, or Stripe
succeeded but the local commit failed. This service cross-checks such
refunds against Stripe's own record and applies the outcome through the
same finalize/mark_failed paths as RefundProcessingService.

Outcome Mapping:
    succeeded                  -> COMPLETED (restock + payment status)
    failed / canceled          -> FAILED with Stripe's failure reason
    pending / requires_action  -> unchanged
    no Stripe refund found     -> unchanged (never reached Stripe)
    Stripe error               -> unchanged, counted as an error

Usage:
    from payments.services.reconciliation_service import RefundReconciliationService

    result = RefundReconciliationService.reconcile_approved_refunds(
        min_age_minutes=60,
        batch_size=25,
    )
    if result.success:
        print(result.data.to_dict())
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

from django.conf import settings
from django.utils import timezone

from core.services import BaseService, ServiceResult
from payments.adapters import StripeAdapter
from payments.exceptions import ReconciliationLockError, StripeError
from payments.locks import DistributedLock
from payments.models import (
    DiscrepancyResolution,
    ReconciliationDiscrepancy,
    ReconciliationRun,
    Refund,
)
from payments.services.refund_processor import UNKNOWN_FAILURE, RefundProcessingService
from payments.state_machines import (
    RefundHistoryAction,
    RefundStatus,
    ReconciliationRunStatus,
)

if TYPE_CHECKING:
    from payments.adapters import RefundResult


# =============================================================================
# Constants
# =============================================================================

RECONCILIATION_LOCK_KEY = "reconciliation:refunds"
RECONCILIATION_LOCK_TTL = 900  # 15 minutes, one schedule interval
RECONCILIATION_LOCK_TIMEOUT = 5.0

OUTCOME_COMPLETED = "completed"
OUTCOME_FAILED = "failed"
OUTCOME_UNCHANGED = "unchanged"


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class RefundReconciliationResult:
    """Summary of one reconciliation run."""

    run_id: uuid.UUID
    checked: int
    updated: int
    errors: int
    has_more: bool

    def to_dict(self) -> dict:
        data = asdict(self)
        data["run_id"] = str(self.run_id)
        return data


# =============================================================================
# Refund Reconciliation Service
# =============================================================================


class RefundReconciliationService(BaseService):
    """
    Converges APPROVED refunds with Stripe.

    Runs under a global Redis lock so that scheduled runs never overlap.
    Each refund is handled independently: one failure is logged and
    counted, and the run moves on.
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
    # Public API
    # =========================================================================

    @classmethod
    def reconcile_approved_refunds(
        cls,
        min_age_minutes: int | None = None,
        batch_size: int | None = None,
    ) -> ServiceResult[RefundReconciliationResult]:
        """
        Check APPROVED refunds untouched for min_age_minutes against Stripe.

        Args:
            min_age_minutes: Only refunds last updated before now - this
            batch_size: Maximum refunds checked in this run

        Returns:
            ServiceResult containing RefundReconciliationResult

        Raises:
            ReconciliationLockError: If another run is already in progress
        """
        if min_age_minutes is None:
            min_age_minutes = settings.REFUND_RECONCILIATION_MIN_AGE_MINUTES
        if batch_size is None:
            batch_size = settings.REFUND_RECONCILIATION_BATCH_SIZE

        logger = cls.get_logger()
        logger.info(
            "Starting refund reconciliation run",
            extra={"min_age_minutes": min_age_minutes, "batch_size": batch_size},
        )

        lock = DistributedLock(
            RECONCILIATION_LOCK_KEY,
            ttl=RECONCILIATION_LOCK_TTL,
            timeout=RECONCILIATION_LOCK_TIMEOUT,
            error_class=ReconciliationLockError,
        )
        try:
            lock.acquire()
        except ReconciliationLockError:
            logger.warning(
                "Another refund reconciliation run is in progress",
                extra={"lock_key": RECONCILIATION_LOCK_KEY},
            )
            raise

        try:
            return cls._reconcile_with_lock(lock, min_age_minutes, batch_size)
        finally:
            lock.release()

    @classmethod
    def reconcile_refund(cls, refund_id: uuid.UUID) -> ServiceResult[str]:
        """
        Reconcile a single APPROVED refund against Stripe, regardless of age.

        Use this for on-demand reconciliation after a RECONCILIATION_REQUIRED
        result.

        Returns:
            ServiceResult containing the outcome string
        """
        cls.get_logger().info(
            "Reconciling single refund",
            extra={"refund_id": str(refund_id)},
        )

        try:
            refund = Refund.objects.select_related("order").get(id=refund_id)
        except Refund.DoesNotExist:
            return ServiceResult.failure(
                f"Refund {refund_id} not found",
                error_code="REFUND_NOT_FOUND",
            )

        if refund.status != RefundStatus.APPROVED:
            return ServiceResult.success(OUTCOME_UNCHANGED)

        run = ReconciliationRun.objects.create(
            started_at=timezone.now(),
            min_age_minutes=0,
            status=ReconciliationRunStatus.RUNNING,
        )
        try:
            outcome = cls._reconcile_refund(refund, run)
        except StripeError as e:
            run.completed_at = timezone.now()
            run.refunds_checked = 1
            run.errors = 1
            run.status = ReconciliationRunStatus.FAILED
            run.error_message = e.message
            run.save()
            return ServiceResult.from_exception(e)

        run.completed_at = timezone.now()
        run.refunds_checked = 1
        run.refunds_updated = 0 if outcome == OUTCOME_UNCHANGED else 1
        run.status = ReconciliationRunStatus.COMPLETED
        run.save()
        return ServiceResult.success(outcome)

    @classmethod
    def apply_remote_status(
        cls,
        refund: Refund,
        stripe_result: RefundResult,
        run: ReconciliationRun | None = None,
        source: str = "reconciliation",
    ) -> str:
        """
        Apply Stripe's view of a refund to a local APPROVED refund.

        Shared by the reconciliation run and the webhook handlers.
        A discrepancy is recorded only when this call changed the refund,
        so a refund settled concurrently by process() reports unchanged.

        Returns:
            OUTCOME_COMPLETED, OUTCOME_FAILED or OUTCOME_UNCHANGED
        """
        if refund.status != RefundStatus.APPROVED:
            return OUTCOME_UNCHANGED

        if stripe_result.is_succeeded:
            _, changed = RefundProcessingService.finalize(
                refund.id,
                stripe_result.id,
                history_action=RefundHistoryAction.RECONCILED,
                note=f"Completed from {source}: Stripe refund {stripe_result.id} succeeded",
            )
            if not changed:
                return OUTCOME_UNCHANGED
            cls._record_discrepancy(
                refund,
                stripe_result,
                run,
                resolution=DiscrepancyResolution.AUTO_HEALED,
                action_taken=f"Marked completed from {source}",
            )
            return OUTCOME_COMPLETED

        if stripe_result.is_failed:
            reason = stripe_result.failure_reason or UNKNOWN_FAILURE
            _, changed = RefundProcessingService.mark_failed(
                refund.id,
                reason,
                history_action=RefundHistoryAction.RECONCILED,
            )
            if not changed:
                return OUTCOME_UNCHANGED
            cls._record_discrepancy(
                refund,
                stripe_result,
                run,
                resolution=DiscrepancyResolution.AUTO_HEALED,
                action_taken=f"Marked failed from {source}: {reason}",
            )
            return OUTCOME_FAILED

        if not refund.stripe_refund_id:
            RefundProcessingService.record_stripe_refund_id(refund.id, stripe_result.id)
        return OUTCOME_UNCHANGED

    # =========================================================================
    # Internal: Run Orchestration
    # =========================================================================

    @classmethod
    def _reconcile_with_lock(
        cls,
        lock: DistributedLock,
        min_age_minutes: int,
        batch_size: int,
    ) -> ServiceResult[RefundReconciliationResult]:
        logger = cls.get_logger()
        started_at = timezone.now()
        cutoff = started_at - timedelta(minutes=min_age_minutes)

        run = ReconciliationRun.objects.create(
            started_at=started_at,
            min_age_minutes=min_age_minutes,
            status=ReconciliationRunStatus.RUNNING,
        )

        checked = 0
        updated = 0
        errors = 0

        try:
            candidates = list(
                Refund.objects.select_related("order")
                .filter(status=RefundStatus.APPROVED, updated_at__lt=cutoff)
                .order_by("updated_at", "id")[: batch_size + 1]
            )
            has_more = len(candidates) > batch_size
            candidates = candidates[:batch_size]

            for refund in candidates:
                checked += 1
                try:
                    outcome = cls._reconcile_refund(refund, run)
                except StripeError as e:
                    errors += 1
                    logger.warning(
                        "Stripe error while reconciling refund",
                        extra={
                            "run_id": str(run.id),
                            "refund_id": str(refund.id),
                            "error": e.message,
                            "error_code": e.error_code,
                        },
                    )
                    continue
                except Exception as e:
                    errors += 1
                    logger.exception(
                        "Failed to reconcile refund",
                        extra={"run_id": str(run.id), "refund_id": str(refund.id)},
                    )
                    cls._record_failed_heal(refund, run, e)
                    continue
                finally:
                    lock.extend()

                if outcome != OUTCOME_UNCHANGED:
                    updated += 1

        except Exception as e:
            run.completed_at = timezone.now()
            run.status = ReconciliationRunStatus.FAILED
            run.error_message = str(e)
            run.refunds_checked = checked
            run.refunds_updated = updated
            run.errors = errors
            run.save()
            logger.error(
                "Refund reconciliation run failed",
                extra={"run_id": str(run.id), "error": str(e)},
                exc_info=True,
            )
            raise

        completed_at = timezone.now()
        run.completed_at = completed_at
        run.refunds_checked = checked
        run.refunds_updated = updated
        run.errors = errors
        run.has_more = has_more
        run.status = ReconciliationRunStatus.COMPLETED
        run.save()

        logger.info(
            "Refund reconciliation run completed",
            extra={
                "run_id": str(run.id),
                "checked": checked,
                "updated": updated,
                "errors": errors,
                "has_more": has_more,
                "duration_seconds": (completed_at - started_at).total_seconds(),
            },
        )

        return ServiceResult.success(
            RefundReconciliationResult(
                run_id=run.id,
                checked=checked,
                updated=updated,
                errors=errors,
                has_more=has_more,
            )
        )

    @classmethod
    def _reconcile_refund(cls, refund: Refund, run: ReconciliationRun) -> str:
        adapter = cls.get_stripe_adapter()
        order = refund.order

        if refund.stripe_refund_id:
            stripe_result = adapter.retrieve_refund(refund.stripe_refund_id)
        else:
            stripe_result = adapter.find_refund_by_metadata(
                refund_id=str(refund.id),
                payment_intent_id=order.stripe_payment_intent_id or None,
                charge_id=order.stripe_charge_id or None,
            )
            if stripe_result is None:
                cls.get_logger().info(
                    "No Stripe refund found; refund never reached Stripe",
                    extra={"run_id": str(run.id), "refund_id": str(refund.id)},
                )
                return OUTCOME_UNCHANGED

        return cls.apply_remote_status(refund, stripe_result, run=run)

    @classmethod
    def _record_discrepancy(
        cls,
        refund: Refund,
        stripe_result: RefundResult,
        run: ReconciliationRun | None,
        resolution: str,
        action_taken: str,
    ) -> None:
        ReconciliationDiscrepancy.objects.create(
            run=run,
            refund=refund,
            stripe_refund_id=stripe_result.id,
            local_state=RefundStatus.APPROVED,
            stripe_state=stripe_result.status,
            resolution=resolution,
            action_taken=action_taken,
        )

    @classmethod
    def _record_failed_heal(cls, refund: Refund, run: ReconciliationRun, error: Exception) -> None:
        ReconciliationDiscrepancy.objects.create(
            run=run,
            refund=refund,
            stripe_refund_id=refund.stripe_refund_id or "",
            local_state=refund.status,
            resolution=DiscrepancyResolution.FAILED_TO_HEAL,
            error_message=str(error),
        )
