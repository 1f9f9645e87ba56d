"""
Refund ledger service.

Owns the refund lifecycle up to processing:

    create_refund -> PENDING
    approve       PENDING -> APPROVED
    reject        PENDING -> REJECTED
    cancel        PENDING/APPROVED -> deleted (never once sent to Stripe)

Processing (APPROVED -> COMPLETED/FAILED) spans the gateway, inventory
and the order aggregate and lives in RefundProcessingService.

Every operation takes an explicit CallerContext and returns an
ActionResult. A non-administrator caller is rejected before anything is
read; a malformed identifier is rejected before the database is hit.

Usage:
    from payments.services import CallerContext, RefundLedgerService

    caller = CallerContext.from_request(request)
    result = RefundLedgerService.create_refund(
        caller,
        order_id=order.id,
        reason=RefundReason.DEFECTIVE,
        items=[RefundItemInput(order_item_id=line.id, quantity=1)],
    )
"""

from __future__ import annotations

import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from django.db.models import Q, Sum
from django_fsm import TransitionNotAllowed

from core.services import BaseService
from payments.exceptions import (
    InvalidStateTransitionError,
    LockAcquisitionError,
    RefundNotFoundError,
    RefundValidationError,
)
from payments.locks import refund_process_lock
from payments.messages import RefundMessages
from payments.models import Order, Refund, RefundHistory, RefundItem
from payments.services.payment_status import PaymentStatusAggregator
from payments.services.results import ActionResult, CallerContext, is_administrator
from payments.state_machines import (
    OrderPaymentStatus,
    RefundHistoryAction,
    RefundReason,
    RefundStatus,
)

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Constants
# =============================================================================

# Reasons where the returned goods are not resellable
NON_RESTOCK_REASONS = frozenset(
    [
        RefundReason.DEFECTIVE,
        RefundReason.LOST_IN_TRANSIT,
        RefundReason.FRAUD,
    ]
)

SORT_FIELDS = {
    "created": "created_at",
    "amount": "amount_cents",
    "status": "status",
}

DEFAULT_SORT = "created-descending"


def refund_ordering(sort: str | None) -> tuple[str, str]:
    """
    Map a sort parameter such as "amount-descending" to order_by fields.

    id breaks ties, so rows with equal sort values keep a stable order.

    Raises:
        RefundValidationError: Unknown sort key or direction
    """
    key, _, direction = (sort or DEFAULT_SORT).partition("-")
    if key not in SORT_FIELDS or direction not in ("ascending", "descending"):
        raise RefundValidationError(
            f"Unknown sort: {sort}",
            error_code="INVALID_SORT",
        )
    prefix = "-" if direction == "descending" else ""
    return f"{prefix}{SORT_FIELDS[key]}", f"{prefix}id"


def should_restock_by_default(reason: str) -> bool:
    """Whether items refunded for this reason go back to inventory unless overridden."""
    return reason not in NON_RESTOCK_REASONS


def parse_identifier(value: Any) -> uuid.UUID:
    """
    Parse a refund or order identifier.

    Raises:
        RefundValidationError: The value is not a UUID
    """
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        raise RefundValidationError(
            RefundMessages.INVALID_ID,
            error_code="INVALID_ID",
            details={"id": str(value)},
        )


# =============================================================================
# Input / Output Types
# =============================================================================


@dataclass
class RefundItemInput:
    """
    One requested refund line.

    Attributes:
        order_item_id: OrderItem being refunded
        quantity: Units refunded
        amount_cents: Amount for this line; defaults to unit price x quantity
        restock: Per-line override of the reason's restock default
    """

    order_item_id: int
    quantity: int
    amount_cents: int | None = None
    restock: bool | None = None


@dataclass
class RefundListParams:
    """Filters and sort for list_refunds."""

    order_id: uuid.UUID | str | None = None
    statuses: list[str] = field(default_factory=list)
    reasons: list[str] = field(default_factory=list)
    amount_min: int | None = None
    amount_max: int | None = None
    created_after: datetime | None = None
    created_before: datetime | None = None
    search: str = ""
    sort: str = DEFAULT_SORT


# =============================================================================
# Refund Ledger Service
# =============================================================================


class RefundLedgerService(BaseService):
    """
    Administrator operations on the refund ledger.

    State conflicts (approving twice, cancelling a completed refund) are
    returned as VALIDATION_ERROR with a user-safe message, never as a
    silent no-op.
    """

    # =========================================================================
    # Creation
    # =========================================================================

    @classmethod
    def create_refund(
        cls,
        caller: CallerContext,
        order_id: uuid.UUID | str,
        amount_cents: int | None = None,
        reason: str = RefundReason.CUSTOMER_REQUEST,
        note: str = "",
        items: list[RefundItemInput] | None = None,
        restock: bool | None = None,
    ) -> ActionResult:
        """
        Create a PENDING refund for an order.

        Args:
            caller: Who is creating the refund
            order_id: Order to refund
            amount_cents: Refund amount; defaults to the sum of item amounts
            reason: RefundReason value
            note: Internal note
            items: Lines being refunded
            restock: Default restock flag for items; derived from the reason if None

        Returns:
            ActionResult with the created Refund as data
        """
        if not is_administrator(caller):
            return ActionResult.unauthorized()

        logger = cls.get_logger()
        items = items or []

        try:
            order_uuid = parse_identifier(order_id)
            cls._validate_create_input(amount_cents, reason, items)

            with cls.atomic():
                try:
                    order = Order.objects.select_for_update().get(id=order_uuid)
                except Order.DoesNotExist:
                    raise RefundNotFoundError(
                        RefundMessages.ORDER_NOT_FOUND,
                        error_code="ORDER_NOT_FOUND",
                        details={"order_id": str(order_uuid)},
                    )

                if order.payment_status not in OrderPaymentStatus.refundable():
                    raise RefundValidationError(
                        RefundMessages.ORDER_NOT_REFUNDABLE,
                        error_code="ORDER_NOT_REFUNDABLE",
                        details={"payment_status": order.payment_status},
                    )

                default_restock = (
                    restock if restock is not None else should_restock_by_default(reason)
                )
                lines = cls._resolve_items(order, items, default_restock)

                items_total = sum(line["amount_cents"] for line in lines)
                if amount_cents is None:
                    amount_cents = items_total
                elif lines and amount_cents > items_total:
                    raise RefundValidationError(
                        RefundMessages.AMOUNT_EXCEEDS_ITEMS,
                        error_code="AMOUNT_EXCEEDS_ITEMS",
                        details={"amount_cents": amount_cents, "items_total_cents": items_total},
                    )
                if amount_cents <= 0:
                    raise RefundValidationError(
                        RefundMessages.INVALID_AMOUNT,
                        error_code="INVALID_AMOUNT",
                        details={"amount_cents": amount_cents},
                    )

                remaining = PaymentStatusAggregator.get_refundable_amount(order)
                if amount_cents > remaining:
                    raise RefundValidationError(
                        RefundMessages.AMOUNT_EXCEEDS_REMAINING,
                        error_code="AMOUNT_EXCEEDS_REMAINING",
                        details={"amount_cents": amount_cents, "remaining_cents": remaining},
                    )

                refund = Refund.objects.create(
                    order=order,
                    amount_cents=amount_cents,
                    currency=order.currency,
                    reason=reason,
                    note=note or "",
                    created_by_id=caller.user_id,
                )
                for line in lines:
                    RefundItem.objects.create(refund=refund, **line)
                RefundHistory.objects.create(
                    refund=refund,
                    action=RefundHistoryAction.CREATED,
                    actor_id=caller.user_id,
                    note=note or "",
                )

        except Exception as e:
            return ActionResult.from_exception(e, logger)

        logger.info(
            "Refund created",
            extra={
                "refund_id": str(refund.id),
                "order_id": str(order.id),
                "amount_cents": refund.amount_cents,
                "reason": refund.reason,
                "item_count": len(lines),
                "actor_id": caller.user_id,
            },
        )
        return ActionResult.success(RefundMessages.CREATED, refund)

    @classmethod
    def _validate_create_input(
        cls,
        amount_cents: int | None,
        reason: str,
        items: list[RefundItemInput],
    ) -> None:
        if amount_cents is not None and amount_cents <= 0:
            raise RefundValidationError(
                RefundMessages.INVALID_AMOUNT,
                error_code="INVALID_AMOUNT",
                details={"amount_cents": amount_cents},
            )
        if reason not in RefundReason.values:
            raise RefundValidationError(
                f"Unknown refund reason: {reason}",
                error_code="INVALID_REASON",
                details={"reason": reason},
            )
        for item in items:
            if item.quantity is None or item.quantity <= 0:
                raise RefundValidationError(
                    RefundMessages.INVALID_QUANTITY,
                    error_code="INVALID_QUANTITY",
                    details={"order_item_id": item.order_item_id},
                )
            if item.amount_cents is not None and item.amount_cents < 0:
                raise RefundValidationError(
                    RefundMessages.INVALID_AMOUNT,
                    error_code="INVALID_AMOUNT",
                    details={"order_item_id": item.order_item_id},
                )

    @classmethod
    def _resolve_items(
        cls,
        order: Order,
        items: list[RefundItemInput],
        default_restock: bool,
    ) -> list[dict[str, Any]]:
        """
        Check requested lines against the order and build RefundItem kwargs.

        A line's refundable quantity is the ordered quantity minus what
        PENDING, APPROVED and COMPLETED refunds already claim.
        """
        if not items:
            return []

        order_items = {line.id: line for line in order.items.all()}

        already_refunded = dict(
            RefundItem.objects.filter(
                order_item__order=order,
                refund__status__in=RefundStatus.active(),
            )
            .values_list("order_item_id")
            .annotate(total=Sum("quantity"))
        )

        requested: dict[int, int] = defaultdict(int)
        lines = []
        for item in items:
            order_item = order_items.get(item.order_item_id)
            if order_item is None:
                raise RefundValidationError(
                    RefundMessages.INVALID_ITEMS,
                    error_code="INVALID_ITEMS",
                    details={"order_item_id": item.order_item_id},
                )

            requested[order_item.id] += item.quantity
            available = order_item.quantity - already_refunded.get(order_item.id, 0)
            if requested[order_item.id] > available:
                raise RefundValidationError(
                    RefundMessages.QUANTITY_EXCEEDS_AVAILABLE,
                    error_code="QUANTITY_EXCEEDS_AVAILABLE",
                    details={
                        "order_item_id": order_item.id,
                        "requested": requested[order_item.id],
                        "available": available,
                    },
                )

            line_cap = order_item.unit_price_cents * item.quantity
            line_amount = line_cap if item.amount_cents is None else min(item.amount_cents, line_cap)

            lines.append(
                {
                    "order_item": order_item,
                    "quantity": item.quantity,
                    "amount_cents": line_amount,
                    "restock": default_restock if item.restock is None else item.restock,
                }
            )
        return lines

    # =========================================================================
    # Transitions
    # =========================================================================

    @classmethod
    def approve(cls, caller: CallerContext, refund_id: uuid.UUID | str) -> ActionResult:
        """
        Approve a PENDING refund.

        APPROVED or COMPLETED refunds get "already approved"; any other
        state gets "already processed".
        """
        if not is_administrator(caller):
            return ActionResult.unauthorized()

        try:
            refund_uuid = parse_identifier(refund_id)
            with cls.atomic():
                refund = cls._get_for_update(refund_uuid)

                if refund.status != RefundStatus.PENDING:
                    message = (
                        RefundMessages.ALREADY_APPROVED
                        if refund.status in (RefundStatus.APPROVED, RefundStatus.COMPLETED)
                        else RefundMessages.ALREADY_PROCESSED
                    )
                    raise InvalidStateTransitionError(
                        message,
                        error_code="INVALID_STATE_TRANSITION",
                        details={"current_state": refund.status, "transition": "approve"},
                    )

                cls._transition(refund, "approve", actor_id=caller.user_id)
                refund.save()
                RefundHistory.objects.create(
                    refund=refund,
                    action=RefundHistoryAction.APPROVED,
                    actor_id=caller.user_id,
                )
        except Exception as e:
            return ActionResult.from_exception(e, cls.get_logger())

        cls.get_logger().info(
            "Refund approved",
            extra={"refund_id": str(refund.id), "actor_id": caller.user_id},
        )
        return ActionResult.success(RefundMessages.APPROVED, refund)

    @classmethod
    def reject(
        cls,
        caller: CallerContext,
        refund_id: uuid.UUID | str,
        reason: str = "",
    ) -> ActionResult:
        """Reject a PENDING refund. The row is kept for audit."""
        if not is_administrator(caller):
            return ActionResult.unauthorized()

        try:
            refund_uuid = parse_identifier(refund_id)
            with cls.atomic():
                refund = cls._get_for_update(refund_uuid)

                if refund.status != RefundStatus.PENDING:
                    raise InvalidStateTransitionError(
                        RefundMessages.CANNOT_REJECT,
                        error_code="INVALID_STATE_TRANSITION",
                        details={"current_state": refund.status, "transition": "reject"},
                    )

                cls._transition(refund, "reject", reason=reason)
                refund.save()
                RefundHistory.objects.create(
                    refund=refund,
                    action=RefundHistoryAction.REJECTED,
                    actor_id=caller.user_id,
                    note=reason or "",
                )
        except Exception as e:
            return ActionResult.from_exception(e, cls.get_logger())

        cls.get_logger().info(
            "Refund rejected",
            extra={"refund_id": str(refund.id), "actor_id": caller.user_id},
        )
        return ActionResult.success(RefundMessages.REJECTED, refund)

    @classmethod
    def cancel(cls, caller: CallerContext, refund_id: uuid.UUID | str) -> ActionResult:
        """
        Cancel a PENDING or APPROVED refund.

        The refund, its items and its history are deleted in one
        transaction. COMPLETED, FAILED and REJECTED refunds are kept, and
        so is an APPROVED refund that processing has already sent to
        Stripe. Cancel takes the processing lock, so a refund whose Stripe
        call is in flight is reported busy.
        """
        if not is_administrator(caller):
            return ActionResult.unauthorized()

        logger = cls.get_logger()

        try:
            refund_uuid = parse_identifier(refund_id)
            with refund_process_lock(refund_uuid), cls.atomic():
                refund = cls._get_for_update(refund_uuid)

                if not refund.is_cancellable:
                    raise InvalidStateTransitionError(
                        RefundMessages.CANNOT_CANCEL,
                        error_code="INVALID_STATE_TRANSITION",
                        details={"current_state": refund.status, "transition": "cancel"},
                    )
                if refund.was_submitted_to_stripe:
                    raise InvalidStateTransitionError(
                        RefundMessages.CANNOT_CANCEL_SUBMITTED,
                        error_code="CANNOT_CANCEL",
                        details={
                            "current_state": refund.status,
                            "stripe_refund_id": refund.stripe_refund_id,
                        },
                    )

                order_id = refund.order_id
                previous_status = refund.status
                refund.delete()
        except LockAcquisitionError:
            logger.warning(
                "Cancel refused, refund is being processed",
                extra={"refund_id": str(refund_id)},
            )
            return ActionResult.validation_error(RefundMessages.BUSY, "REFUND_BUSY")
        except Exception as e:
            return ActionResult.from_exception(e, cls.get_logger())

        cls.get_logger().info(
            "Refund cancelled",
            extra={
                "refund_id": str(refund_uuid),
                "order_id": str(order_id),
                "previous_status": previous_status,
                "actor_id": caller.user_id,
            },
        )
        return ActionResult.success(RefundMessages.CANCELLED, {"id": str(refund_uuid)})

    # =========================================================================
    # Reads
    # =========================================================================

    @classmethod
    def get(cls, caller: CallerContext, refund_id: uuid.UUID | str) -> ActionResult:
        if not is_administrator(caller):
            return ActionResult.unauthorized()

        try:
            refund_uuid = parse_identifier(refund_id)
            try:
                refund = (
                    Refund.objects.select_related("order")
                    .prefetch_related("items__order_item", "history")
                    .get(id=refund_uuid)
                )
            except Refund.DoesNotExist:
                raise RefundNotFoundError(
                    RefundMessages.NOT_FOUND,
                    details={"refund_id": str(refund_uuid)},
                )
        except Exception as e:
            return ActionResult.from_exception(e, cls.get_logger())

        return ActionResult.success("", refund)

    @classmethod
    def list_refunds(cls, caller: CallerContext, params: RefundListParams | None = None) -> ActionResult:
        """
        List refunds matching the filters, in the requested sort order.

        Returns an unevaluated queryset ordered by the sort field and then
        by id. The API paginates it with RefundCursorPagination, which
        applies the same ordering.

        Returns:
            ActionResult with a Refund queryset as data
        """
        if not is_administrator(caller):
            return ActionResult.unauthorized()

        params = params or RefundListParams()

        try:
            ordering = refund_ordering(params.sort)
            queryset = cls._filtered_queryset(params).order_by(*ordering)
        except Exception as e:
            return ActionResult.from_exception(e, cls.get_logger())

        return ActionResult.success("", queryset)

    @classmethod
    def _filtered_queryset(cls, params: RefundListParams):
        queryset = Refund.objects.select_related("order")

        if params.order_id:
            queryset = queryset.filter(order_id=parse_identifier(params.order_id))

        if params.statuses:
            invalid = [s for s in params.statuses if s not in RefundStatus.values]
            if invalid:
                raise RefundValidationError(
                    f"Unknown refund status: {', '.join(invalid)}",
                    error_code="INVALID_FILTER",
                )
            queryset = queryset.filter(status__in=params.statuses)

        if params.reasons:
            invalid = [r for r in params.reasons if r not in RefundReason.values]
            if invalid:
                raise RefundValidationError(
                    f"Unknown refund reason: {', '.join(invalid)}",
                    error_code="INVALID_FILTER",
                )
            queryset = queryset.filter(reason__in=params.reasons)

        if params.amount_min is not None:
            queryset = queryset.filter(amount_cents__gte=params.amount_min)
        if params.amount_max is not None:
            queryset = queryset.filter(amount_cents__lte=params.amount_max)
        if params.created_after is not None:
            queryset = queryset.filter(created_at__gte=params.created_after)
        if params.created_before is not None:
            queryset = queryset.filter(created_at__lte=params.created_before)

        search = (params.search or "").strip()
        if search:
            queryset = queryset.filter(
                Q(order__order_number__icontains=search)
                | Q(order__customer_email__icontains=search)
                | Q(stripe_refund_id__icontains=search)
            )

        return queryset

    # =========================================================================
    # Helpers
    # =========================================================================

    @classmethod
    def _get_for_update(cls, refund_id: uuid.UUID) -> Refund:
        try:
            return Refund.objects.select_for_update().get(id=refund_id)
        except Refund.DoesNotExist:
            raise RefundNotFoundError(
                RefundMessages.NOT_FOUND,
                details={"refund_id": str(refund_id)},
            )

    @staticmethod
    def _transition(refund: Refund, name: str, **kwargs) -> None:
        """Run a django-fsm transition, translating TransitionNotAllowed."""
        try:
            getattr(refund, name)(**kwargs)
        except TransitionNotAllowed:
            raise InvalidStateTransitionError(
                RefundMessages.ALREADY_PROCESSED,
                error_code="INVALID_STATE_TRANSITION",
                details={"current_state": refund.status, "transition": name},
            )
