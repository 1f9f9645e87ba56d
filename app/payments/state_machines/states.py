"""
State enums for order and refund models.

These are Django TextChoices for database storage and admin integration.
Refund.status is driven by django-fsm transitions; the other enums are
plain status fields.

State Machines Overview:

Order payment status:
    pending → paid → partially_refunded → refunded
    pending → failed

Refund States:
    pending → approved → completed
    approved → failed
    pending → rejected
    pending/approved → (cancelled: the record is deleted)
"""

from django.db import models


class OrderPaymentStatus(models.TextChoices):
    """
    Aggregate payment status of an Order.

    PARTIALLY_REFUNDED and REFUNDED are derived from the sum of COMPLETED
    refunds by PaymentStatusAggregator and never set by hand.
    """

    PENDING = "pending", "Pending"
    PAID = "paid", "Paid"
    PARTIALLY_REFUNDED = "partially_refunded", "Partially Refunded"
    REFUNDED = "refunded", "Refunded"
    FAILED = "failed", "Failed"

    @classmethod
    def refundable(cls) -> list[str]:
        """Statuses that allow new refunds to be created."""
        return [cls.PAID, cls.PARTIALLY_REFUNDED, cls.REFUNDED]


class RefundStatus(models.TextChoices):
    """
    States for the Refund model lifecycle.

    Terminal states: COMPLETED, FAILED, REJECTED

    State Flow:
        PENDING → APPROVED → COMPLETED
        APPROVED → FAILED
        PENDING → REJECTED

    Cancellation deletes PENDING and APPROVED refunds, so there is no
    stored CANCELLED state.
    """

    PENDING = "pending", "Pending"
    APPROVED = "approved", "Approved"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"
    REJECTED = "rejected", "Rejected"

    @classmethod
    def active(cls) -> list[str]:
        """Statuses whose amounts count against the refundable balance."""
        return [cls.PENDING, cls.APPROVED, cls.COMPLETED]

    @classmethod
    def cancellable(cls) -> list[str]:
        return [cls.PENDING, cls.APPROVED]


class RefundReason(models.TextChoices):
    """Why a refund was issued."""

    CUSTOMER_REQUEST = "customer_request", "Customer Request"
    DEFECTIVE = "defective", "Defective"
    WRONG_ITEM = "wrong_item", "Wrong Item"
    LOST_IN_TRANSIT = "lost_in_transit", "Lost In Transit"
    FRAUD = "fraud", "Fraud"
    OTHER = "other", "Other"


class RefundHistoryAction(models.TextChoices):
    """Audit actions recorded in RefundHistory."""

    CREATED = "created", "Created"
    APPROVED = "approved", "Approved"
    REJECTED = "rejected", "Rejected"
    PROCESSED = "processed", "Processed"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"
    RECONCILED = "reconciled", "Reconciled"


class DiscountType(models.TextChoices):
    """
    Discount calculation modes.

    PERCENTAGE values are whole percents (0-100); FIXED_AMOUNT values are
    cents.
    """

    PERCENTAGE = "percentage", "Percentage"
    FIXED_AMOUNT = "fixed_amount", "Fixed Amount"


class WebhookEventStatus(models.TextChoices):
    """
    Processing status for WebhookEvent.

    State Flow:
        PENDING → PROCESSING → PROCESSED
        PENDING → PROCESSING → FAILED (can retry)
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    PROCESSED = "processed", "Processed"
    FAILED = "failed", "Failed"


class ReconciliationRunStatus(models.TextChoices):
    """Status of a refund reconciliation run."""

    RUNNING = "running", "Running"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"
