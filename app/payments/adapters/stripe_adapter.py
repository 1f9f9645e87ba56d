"""
Stripe API adapter for refund operations.

This module provides the StripeAdapter class which encapsulates all
Stripe API interactions. All Stripe calls go through this adapter to
ensure consistent error handling, timeouts, idempotency, and
observability.

Features:
- Configurable timeouts on all API calls
- Automatic error translation to domain exceptions
- Structured logging with timing metrics
- Idempotency keys derived from the local refund id

Configuration (via settings):
- STRIPE_SECRET_KEY: Stripe API secret key
- STRIPE_WEBHOOK_SECRET: Webhook signing secret
- STRIPE_API_TIMEOUT_SECONDS: API call timeout (default: 10)
- STRIPE_MAX_RETRIES: Network retries performed by the Stripe client (default: 3)

Usage:
    from payments.adapters import StripeAdapter

    result = StripeAdapter.create_refund(
        payment_intent_id="pi_xxx",
        amount_cents=4000,
        idempotency_key=f"refund_{refund.id}",
        metadata={"refund_id": str(refund.id)},
    )
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any

import stripe
from django.conf import settings

from payments.exceptions import (
    StripeAPIUnavailableError,
    StripeAuthenticationError,
    StripeCardDeclinedError,
    StripeInvalidRequestError,
    StripeRateLimitError,
    StripeTimeoutError,
)


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class RefundResult:
    """
    Result from Stripe Refund operations.

    Attributes:
        id: Refund ID (re_xxx)
        amount_cents: Refunded amount in cents
        currency: Currency code
        status: Refund status (pending, requires_action, succeeded, failed, canceled)
        payment_intent_id: Original PaymentIntent ID, if any
        charge_id: Original Charge ID, if any
        failure_reason: Stripe's failure reason when status is failed
        metadata: Attached metadata
        raw_response: Full Stripe response dict
    """

    id: str
    amount_cents: int
    currency: str
    status: str
    payment_intent_id: str | None = None
    charge_id: str | None = None
    failure_reason: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    raw_response: dict[str, Any] = field(default_factory=dict)

    @property
    def is_succeeded(self) -> bool:
        return self.status == "succeeded"

    @property
    def is_failed(self) -> bool:
        return self.status in ("failed", "canceled")

    @property
    def is_pending(self) -> bool:
        return self.status in ("pending", "requires_action")

    @classmethod
    def from_stripe(cls, refund: Any) -> RefundResult:
        return cls(
            id=refund.id,
            amount_cents=refund.amount,
            currency=refund.currency,
            status=refund.status,
            payment_intent_id=getattr(refund, "payment_intent", None),
            charge_id=getattr(refund, "charge", None),
            failure_reason=getattr(refund, "failure_reason", None),
            metadata=dict(refund.metadata or {}),
            raw_response=refund.to_dict(),
        )

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> RefundResult:
        """Build from a refund object embedded in a webhook event payload."""
        return cls(
            id=data.get("id", ""),
            amount_cents=data.get("amount") or 0,
            currency=data.get("currency") or "",
            status=data.get("status") or "",
            payment_intent_id=data.get("payment_intent"),
            charge_id=data.get("charge"),
            failure_reason=data.get("failure_reason"),
            metadata=dict(data.get("metadata") or {}),
            raw_response=data,
        )


# =============================================================================
# Stripe Adapter
# =============================================================================


class StripeAdapter:
    """
    Adapter for Stripe refund operations.

    All methods are classmethods - no instance state is maintained.
    Thread-safe for use from Celery workers.

    Usage:
        result = StripeAdapter.create_refund(...)
        result = StripeAdapter.retrieve_refund("re_xxx")
    """

    # =========================================================================
    # Configuration
    # =========================================================================

    @staticmethod
    def _configure_stripe() -> None:
        """Configure Stripe client with API key, timeout and network retries."""
        stripe.api_key = settings.STRIPE_SECRET_KEY
        stripe.max_network_retries = getattr(settings, "STRIPE_MAX_RETRIES", 3)
        timeout = getattr(settings, "STRIPE_API_TIMEOUT_SECONDS", 10)
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Get logger for this adapter."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    # =========================================================================
    # Refund Operations
    # =========================================================================

    @classmethod
    def create_refund(
        cls,
        idempotency_key: str,
        amount_cents: int,
        payment_intent_id: str | None = None,
        charge_id: str | None = None,
        reason: str | None = None,
        metadata: dict[str, str] | None = None,
        trace_id: str | None = None,
    ) -> RefundResult:
        """
        Create a refund against a PaymentIntent or, failing that, a Charge.

        Retrying with the same idempotency key returns the original refund
        instead of moving money twice.

        Args:
            idempotency_key: Unique key for idempotent refund
            amount_cents: Amount to refund in cents
            payment_intent_id: Stripe PaymentIntent ID (pi_xxx)
            charge_id: Stripe Charge ID (ch_xxx), used if no PaymentIntent
            reason: Stripe reason (duplicate, fraudulent, requested_by_customer)
            metadata: Metadata attached to the Stripe refund
            trace_id: Optional trace ID for distributed tracing

        Returns:
            RefundResult with refund details

        Raises:
            ValueError: Neither payment_intent_id nor charge_id given
            StripeError: Any Stripe failure, translated
        """
        if not payment_intent_id and not charge_id:
            raise ValueError("payment_intent_id or charge_id is required")

        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "create_refund",
            "payment_intent_id": payment_intent_id,
            "charge_id": charge_id,
            "amount_cents": amount_cents,
            "idempotency_key": idempotency_key,
            "trace_id": trace_id,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            refund_params: dict[str, Any] = {
                "amount": amount_cents,
                "metadata": metadata or {},
            }
            if payment_intent_id:
                refund_params["payment_intent"] = payment_intent_id
            else:
                refund_params["charge"] = charge_id
            if reason:
                refund_params["reason"] = reason

            refund = stripe.Refund.create(
                idempotency_key=idempotency_key,
                **refund_params,
            )

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "stripe_refund_id": refund.id,
                    "stripe_status": refund.status,
                    "duration_ms": duration_ms,
                },
            )

            return RefundResult.from_stripe(refund)

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    @classmethod
    def retrieve_refund(
        cls,
        stripe_refund_id: str,
        trace_id: str | None = None,
    ) -> RefundResult:
        """
        Retrieve a Refund by ID.

        Used by the reconciliation job to learn the final outcome of a
        refund that was left APPROVED locally.
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "retrieve_refund",
            "stripe_refund_id": stripe_refund_id,
            "trace_id": trace_id,
        }

        start_time = time.time()
        logger.debug("Starting Stripe operation", extra=log_context)

        try:
            refund = stripe.Refund.retrieve(stripe_refund_id)

            duration_ms = (time.time() - start_time) * 1000
            logger.debug(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "stripe_status": refund.status,
                    "duration_ms": duration_ms,
                },
            )
            return RefundResult.from_stripe(refund)

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    @classmethod
    def find_refund_by_metadata(
        cls,
        refund_id: str,
        payment_intent_id: str | None = None,
        charge_id: str | None = None,
        trace_id: str | None = None,
    ) -> RefundResult | None:
        """
        Find the Stripe refund created for a local refund id.

        Lists the refunds of the order's PaymentIntent (or Charge) and
        matches metadata["refund_id"]. Covers the case where Stripe
        accepted the refund but the response never reached us, so no
        stripe_refund_id was stored.

        Returns:
            The matching RefundResult, or None if Stripe has no such refund
        """
        if not payment_intent_id and not charge_id:
            return None

        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "find_refund_by_metadata",
            "refund_id": refund_id,
            "payment_intent_id": payment_intent_id,
            "charge_id": charge_id,
            "trace_id": trace_id,
        }

        start_time = time.time()
        logger.debug("Starting Stripe operation", extra=log_context)

        try:
            params: dict[str, Any] = {"limit": 100}
            if payment_intent_id:
                params["payment_intent"] = payment_intent_id
            else:
                params["charge"] = charge_id
            refunds = stripe.Refund.list(**params)

            match = None
            for refund in refunds.data:
                if (refund.metadata or {}).get("refund_id") == str(refund_id):
                    match = RefundResult.from_stripe(refund)
                    break

            duration_ms = (time.time() - start_time) * 1000
            logger.debug(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "found": match is not None,
                    "duration_ms": duration_ms,
                },
            )
            return match

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    @classmethod
    def verify_webhook_signature(
        cls,
        payload: bytes,
        signature: str,
    ) -> dict[str, Any]:
        """
        Verify and parse a Stripe webhook event.

        Raises:
            StripeInvalidRequestError: Invalid signature or payload
        """
        try:
            event = stripe.Webhook.construct_event(
                payload,
                signature,
                settings.STRIPE_WEBHOOK_SECRET,
            )
            return event.to_dict()
        except stripe.SignatureVerificationError as e:
            raise StripeInvalidRequestError(
                "Invalid webhook signature",
                stripe_code="signature_verification_failed",
                details={"error": str(e)},
            )
        except ValueError as e:
            raise StripeInvalidRequestError(
                "Invalid webhook payload",
                stripe_code="invalid_payload",
                details={"error": str(e)},
            )

    # =========================================================================
    # Error Handling
    # =========================================================================

    @classmethod
    def _handle_stripe_error(
        cls,
        error: Exception,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """
        Translate Stripe exceptions to domain exceptions.

        Permanent errors keep Stripe's own message so that it can be shown
        to the administrator verbatim. Transient errors mean the outcome of
        the refund is unknown.

        Raises:
            StripeCardDeclinedError: Refund refused by the card network
            StripeInvalidRequestError: Invalid request parameters
            StripeAuthenticationError: Invalid API key
            StripeRateLimitError: Rate limited
            StripeTimeoutError: Request timed out
            StripeAPIUnavailableError: API unavailable or unexpected error
        """
        logger = cls.get_logger()

        log_context = {**log_context, "duration_ms": duration_ms}

        if isinstance(error, stripe.CardError):
            decline_code = getattr(error, "decline_code", None)
            logger.warning(
                "Card error from Stripe",
                extra={**log_context, "decline_code": decline_code},
            )
            raise StripeCardDeclinedError(
                str(error.user_message or error),
                stripe_code=error.code,
                decline_code=decline_code,
            )

        elif isinstance(error, stripe.InvalidRequestError):
            logger.error(
                "Invalid request to Stripe",
                extra={**log_context, "stripe_code": error.code},
            )
            raise StripeInvalidRequestError(
                str(error.user_message or error),
                stripe_code=error.code,
            )

        elif isinstance(error, stripe.RateLimitError):
            logger.warning("Rate limited by Stripe", extra=log_context)
            raise StripeRateLimitError(
                "Stripe rate limit exceeded. Please retry.",
                stripe_code="rate_limit",
            )

        elif isinstance(error, stripe.APIConnectionError):
            # The request may have reached Stripe
            timed_out = "timeout" in str(error).lower() or "timed out" in str(error).lower()
            logger.error(
                "Timed out waiting for Stripe" if timed_out else "Connection error to Stripe",
                extra=log_context,
                exc_info=True,
            )
            if timed_out:
                raise StripeTimeoutError(
                    "Stripe did not respond in time. Please retry.",
                    stripe_code="timeout",
                )
            raise StripeAPIUnavailableError(
                "Could not connect to Stripe. Please retry.",
                stripe_code="api_connection_error",
            )

        elif isinstance(error, stripe.APIError):
            logger.error("Stripe API error", extra=log_context, exc_info=True)
            raise StripeAPIUnavailableError(
                "Stripe service error. Please retry.",
                stripe_code="api_error",
            )

        elif isinstance(error, stripe.AuthenticationError):
            logger.critical(
                "Stripe authentication failed - check API key",
                extra=log_context,
            )
            raise StripeAuthenticationError(
                "Stripe authentication failed",
                stripe_code="authentication_error",
            )

        else:
            logger.error(
                f"Unexpected error from Stripe: {type(error).__name__}",
                extra=log_context,
                exc_info=True,
            )
            raise StripeAPIUnavailableError(
                f"Unexpected Stripe error: {error}",
                stripe_code="unknown_error",
            )
