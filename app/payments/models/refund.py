"""
Refund models for tracking money returned to customers.

A Refund represents money going back to the customer for all or part of an
Order. One Order can have multiple Refunds composed over time.

Usage:
    from payments.models import Refund
    from payments.state_machines import RefundStatus

    refund = Refund.objects.create(order=order, amount_cents=2500)

    # State transitions using django-fsm
    refund.approve(actor_id=admin.id)  # pending -> approved
    refund.save()

    # After Stripe confirms the refund
    refund.complete(stripe_refund_id="re_123")  # approved -> completed
    refund.save()
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.db.models import F
from django.utils import timezone

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from payments.state_machines import RefundHistoryAction, RefundReason, RefundStatus


class Refund(UUIDPrimaryKeyMixin, BaseModel):
    """
    Represents money returned to a customer.

    State Flow:
        PENDING -> APPROVED -> COMPLETED
        APPROVED -> FAILED
        PENDING -> REJECTED
        PENDING/APPROVED -> deleted (cancellation)

    Fields:
        order: Order being refunded
        amount_cents: Refund amount in smallest currency unit, fixed at creation
        currency: ISO 4217 currency code
        status: Current FSM state
        reason: Refund reason category
        note: Internal note from the administrator
        stripe_refund_id: Stripe Refund ID (re_xxx)
        processed_at: When Stripe confirmed the refund
        failure_reason: Error details if failed
        version: Optimistic locking version

    Note:
        The status field is protected: it only changes through the
        transition methods below. COMPLETED refunds are never deleted.
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    order = models.ForeignKey(
        "payments.Order",
        on_delete=models.PROTECT,
        related_name="refunds",
        help_text="Order being refunded",
    )

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        help_text="Administrator who created the refund",
    )

    approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        help_text="Administrator who approved the refund",
    )

    # ==========================================================================
    # Amount & Currency
    # ==========================================================================

    amount_cents = models.PositiveBigIntegerField(
        help_text="Refund amount in smallest currency unit (e.g., cents)",
    )

    currency = models.CharField(
        max_length=3,
        default="usd",
        help_text="ISO 4217 currency code (lowercase)",
    )

    # ==========================================================================
    # Refund Details
    # ==========================================================================

    reason = models.CharField(
        max_length=32,
        choices=RefundReason.choices,
        default=RefundReason.CUSTOMER_REQUEST,
        db_index=True,
        help_text="Refund reason category",
    )

    note = models.TextField(
        blank=True,
        default="",
        help_text="Internal note from the administrator",
    )

    rejection_reason = models.TextField(
        blank=True,
        default="",
        help_text="Why the refund was rejected",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=RefundStatus.PENDING,
        choices=RefundStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the refund (managed by FSM)",
    )

    # ==========================================================================
    # Stripe Integration
    # ==========================================================================

    stripe_refund_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Stripe Refund ID (re_xxx)",
    )

    # ==========================================================================
    # Concurrency Control
    # ==========================================================================

    version = models.PositiveIntegerField(
        default=1,
        help_text="Version for optimistic locking - incremented on each save",
    )

    # ==========================================================================
    # Timestamps & Error Info
    # ==========================================================================

    approved_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the refund was approved",
    )

    processed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When Stripe confirmed the refund",
    )

    failure_reason = models.TextField(
        null=True,
        blank=True,
        help_text="Gateway error message if the refund failed",
    )

    metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="Arbitrary JSON metadata (gateway status, reconciliation notes)",
    )

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Refund"
        verbose_name_plural = "Refunds"
        indexes = [
            models.Index(
                fields=["order", "status"],
                name="payments_re_order_i_5b0e3d_idx",
            ),
            models.Index(
                fields=["status", "updated_at"],
                name="payments_re_status_8d41c7_idx",
            ),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount_cents__gt=0),
                name="refund_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        amount_display = f"{self.amount_cents / 100:.2f} {self.currency.upper()}"
        return f"Refund({self.id}, {self.status}, {amount_display})"

    def save(self, *args, **kwargs):
        """
        Save with version auto-increment for optimistic locking.
        """
        is_update = not self._state.adding and not kwargs.get("force_insert", False)
        if is_update:
            self.version = F("version") + 1
            update_fields = kwargs.get("update_fields")
            if update_fields is not None and "version" not in update_fields:
                kwargs["update_fields"] = [*update_fields, "version"]
        super().save(*args, **kwargs)
        if is_update:
            self.refresh_from_db(fields=["version"])

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=RefundStatus.PENDING,
        target=RefundStatus.APPROVED,
    )
    def approve(self, actor_id=None):
        """
        Approve the refund for processing.

        Transition: PENDING -> APPROVED
        """
        self.approved_at = timezone.now()
        self.approved_by_id = actor_id

    @transition(
        field=status,
        source=RefundStatus.PENDING,
        target=RefundStatus.REJECTED,
    )
    def reject(self, reason: str = ""):
        """
        Reject the refund request.

        Transition: PENDING -> REJECTED
        """
        self.rejection_reason = reason or ""

    @transition(
        field=status,
        source=RefundStatus.APPROVED,
        target=RefundStatus.COMPLETED,
    )
    def complete(self, stripe_refund_id: str):
        """
        Mark refund as completed.

        Transition: APPROVED -> COMPLETED

        Called inside the atomic unit of work that also restocks items and
        recomputes the order's payment status.
        """
        self.stripe_refund_id = stripe_refund_id
        self.processed_at = timezone.now()
        self.failure_reason = None

    @transition(
        field=status,
        source=RefundStatus.APPROVED,
        target=RefundStatus.FAILED,
    )
    def fail(self, reason: str | None = None):
        """
        Mark refund as failed.

        Transition: APPROVED -> FAILED

        Called when Stripe rejects the refund. Money and stock are untouched.
        """
        if reason:
            self.failure_reason = reason

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_complete(self) -> bool:
        return self.status == RefundStatus.COMPLETED

    @property
    def is_cancellable(self) -> bool:
        return self.status in RefundStatus.cancellable()

    @property
    def was_submitted_to_stripe(self) -> bool:
        """
        Whether processing has ever sent this refund to Stripe.

        True once a Stripe id is stored, the refund is flagged for
        reconciliation, or a processing attempt was recorded, even if that
        attempt timed out before Stripe answered.
        """
        if self.stripe_refund_id or (self.metadata or {}).get("reconciliation_required"):
            return True
        return self.history.filter(action=RefundHistoryAction.PROCESSED).exists()

    @property
    def idempotency_key(self) -> str:
        """Stripe idempotency key, identical for every attempt on this refund."""
        return f"refund_{self.id}"


class RefundItem(BaseModel):
    """
    A line within a refund.

    References one order line, a quantity, and whether the returned
    quantity goes back to sellable inventory. Owned by its Refund and
    deleted with it.
    """

    refund = models.ForeignKey(
        Refund,
        on_delete=models.CASCADE,
        related_name="items",
        help_text="Refund this line belongs to",
    )

    order_item = models.ForeignKey(
        "payments.OrderItem",
        on_delete=models.PROTECT,
        related_name="refund_items",
        help_text="Order line being refunded",
    )

    quantity = models.PositiveIntegerField(
        help_text="Units refunded",
    )

    amount_cents = models.PositiveBigIntegerField(
        default=0,
        help_text="Portion of the refund amount attributed to this line, in cents",
    )

    restock = models.BooleanField(
        default=True,
        help_text="Return the refunded quantity to sellable inventory on completion",
    )

    class Meta:
        ordering = ["created_at"]
        verbose_name = "Refund Item"
        verbose_name_plural = "Refund Items"
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gt=0),
                name="refund_item_quantity_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"RefundItem({self.order_item_id} x{self.quantity}, restock={self.restock})"


class RefundHistory(BaseModel):
    """
    Append-only audit trail of refund actions.
    """

    refund = models.ForeignKey(
        Refund,
        on_delete=models.CASCADE,
        related_name="history",
        help_text="Refund this entry belongs to",
    )

    action = models.CharField(
        max_length=20,
        choices=RefundHistoryAction.choices,
        help_text="What happened",
    )

    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        help_text="User who performed the action (null for automation)",
    )

    note = models.TextField(
        blank=True,
        default="",
        help_text="Free-form detail (gateway message, reconciliation outcome)",
    )

    class Meta:
        ordering = ["created_at"]
        verbose_name = "Refund History Entry"
        verbose_name_plural = "Refund History"

    def __str__(self) -> str:
        return f"RefundHistory({self.refund_id}, {self.action})"
