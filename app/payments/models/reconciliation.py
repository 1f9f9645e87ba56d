"""
Reconciliation models for tracking refund reconciliation runs.

- ReconciliationRun: one execution of the refund reconciliation job
- ReconciliationDiscrepancy: a refund whose local state disagreed with
  Stripe (or whose local commit failed after Stripe succeeded), and how it
  was resolved

Discrepancies flagged for review form the manual reconciliation queue in
the Django admin.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel
from payments.state_machines import ReconciliationRunStatus


class DiscrepancyResolution(models.TextChoices):
    """How a discrepancy was resolved."""

    AUTO_HEALED = "auto_healed", "Auto Healed"
    FLAGGED_FOR_REVIEW = "flagged_for_review", "Flagged for Review"
    MANUALLY_RESOLVED = "manually_resolved", "Manually Resolved"
    FAILED_TO_HEAL = "failed_to_heal", "Failed to Heal"


class ReconciliationRun(UUIDPrimaryKeyMixin, BaseModel):
    """
    Tracks a refund reconciliation run.

    Example:
        run = ReconciliationRun.objects.create(
            started_at=timezone.now(),
            min_age_minutes=60,
        )
        ...
        run.refunds_checked = 12
        run.status = ReconciliationRunStatus.COMPLETED
        run.save()
    """

    started_at = models.DateTimeField(
        help_text="When this reconciliation run started",
    )
    completed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When this reconciliation run completed (or failed)",
    )

    min_age_minutes = models.PositiveIntegerField(
        help_text="Minimum age of APPROVED refunds checked by this run",
    )

    refunds_checked = models.PositiveIntegerField(
        default=0,
        help_text="Number of APPROVED refunds checked against Stripe",
    )
    refunds_updated = models.PositiveIntegerField(
        default=0,
        help_text="Refunds moved to COMPLETED or FAILED",
    )
    errors = models.PositiveIntegerField(
        default=0,
        help_text="Refunds that could not be checked or updated",
    )
    has_more = models.BooleanField(
        default=False,
        help_text="Whether eligible refunds remained beyond the batch size",
    )

    status = models.CharField(
        max_length=20,
        choices=ReconciliationRunStatus.choices,
        default=ReconciliationRunStatus.RUNNING,
        db_index=True,
        help_text="Current status of this reconciliation run",
    )
    error_message = models.TextField(
        null=True,
        blank=True,
        help_text="Error message if the run failed",
    )

    class Meta:
        ordering = ["-started_at"]
        verbose_name = "Reconciliation Run"
        verbose_name_plural = "Reconciliation Runs"

    def __str__(self) -> str:
        return f"ReconciliationRun({self.started_at:%Y-%m-%d %H:%M}, {self.status})"


class ReconciliationDiscrepancy(UUIDPrimaryKeyMixin, BaseModel):
    """
    A refund whose local state disagreed with Stripe.

    run is null for discrepancies raised by the refund processing path
    itself (Stripe succeeded but the local commit failed).
    """

    run = models.ForeignKey(
        ReconciliationRun,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="discrepancies",
        help_text="Run that found this discrepancy",
    )

    refund = models.ForeignKey(
        "payments.Refund",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="discrepancies",
        help_text="Refund concerned",
    )

    stripe_refund_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Stripe Refund ID (re_xxx), when known",
    )

    local_state = models.CharField(
        max_length=20,
        help_text="Local refund status when the discrepancy was detected",
    )
    stripe_state = models.CharField(
        max_length=30,
        blank=True,
        default="",
        help_text="Stripe refund status when the discrepancy was detected",
    )

    resolution = models.CharField(
        max_length=20,
        choices=DiscrepancyResolution.choices,
        db_index=True,
        help_text="How the discrepancy was resolved",
    )
    action_taken = models.TextField(
        blank=True,
        default="",
        help_text="Description of the corrective action",
    )
    error_message = models.TextField(
        null=True,
        blank=True,
        help_text="Error raised while healing, if any",
    )

    reviewed = models.BooleanField(
        default=False,
        help_text="Whether an administrator has reviewed this discrepancy",
    )
    reviewed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When it was reviewed",
    )
    reviewed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        help_text="Administrator who reviewed it",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Reconciliation Discrepancy"
        verbose_name_plural = "Reconciliation Discrepancies"
        indexes = [
            models.Index(
                fields=["resolution", "reviewed"],
                name="payments_re_resolut_e6b2d4_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"Discrepancy({self.refund_id}, {self.local_state}->{self.stripe_state}, {self.resolution})"
