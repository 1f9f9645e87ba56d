"""
Tests for StripeAdapter.

The Stripe SDK is patched at module level, so no request leaves the
process. Each test checks how the adapter calls the SDK or how it
translates SDK errors into payments exceptions.
"""

import pytest
import stripe

from payments.adapters import RefundResult, StripeAdapter
from payments.adapters.tests.conftest import MockStripeList
from payments.exceptions import (
    StripeAPIUnavailableError,
    StripeAuthenticationError,
    StripeCardDeclinedError,
    StripeInvalidRequestError,
    StripeRateLimitError,
    StripeTimeoutError,
)


# =============================================================================
# RefundResult
# =============================================================================


class TestRefundResult:
    def test_from_stripe(self, mock_refund):
        result = RefundResult.from_stripe(
            mock_refund(id="re_1", amount=1200, metadata={"refund_id": "abc"})
        )

        assert result.id == "re_1"
        assert result.amount_cents == 1200
        assert result.payment_intent_id == "pi_test123"
        assert result.metadata == {"refund_id": "abc"}
        assert result.raw_response["object"] == "refund"
        assert result.is_succeeded

    def test_from_payload(self):
        result = RefundResult.from_payload(
            {"id": "re_2", "amount": 300, "status": "failed", "failure_reason": "expired_or_canceled_card"}
        )

        assert result.amount_cents == 300
        assert result.is_failed
        assert result.failure_reason == "expired_or_canceled_card"
        assert result.metadata == {}

    @pytest.mark.parametrize(
        "status,succeeded,failed,pending",
        [
            ("succeeded", True, False, False),
            ("failed", False, True, False),
            ("canceled", False, True, False),
            ("pending", False, False, True),
            ("requires_action", False, False, True),
        ],
    )
    def test_status_flags(self, status, succeeded, failed, pending):
        result = RefundResult(id="re_x", amount_cents=1, currency="usd", status=status)

        assert (result.is_succeeded, result.is_failed, result.is_pending) == (succeeded, failed, pending)


# =============================================================================
# create_refund
# =============================================================================


class TestCreateRefund:
    def test_against_payment_intent(self, mock_stripe_refund, mock_refund):
        mock_stripe_refund.create.return_value = mock_refund(id="re_pi", amount=4000)

        result = StripeAdapter.create_refund(
            idempotency_key="refund_abc",
            amount_cents=4000,
            payment_intent_id="pi_original",
            reason="requested_by_customer",
            metadata={"refund_id": "abc"},
        )

        assert result.id == "re_pi"
        assert result.amount_cents == 4000
        mock_stripe_refund.create.assert_called_once_with(
            idempotency_key="refund_abc",
            amount=4000,
            metadata={"refund_id": "abc"},
            payment_intent="pi_original",
            reason="requested_by_customer",
        )

    def test_against_charge(self, mock_stripe_refund):
        StripeAdapter.create_refund(
            idempotency_key="refund_abc",
            amount_cents=500,
            charge_id="ch_legacy",
        )

        call_kwargs = mock_stripe_refund.create.call_args.kwargs
        assert call_kwargs["charge"] == "ch_legacy"
        assert "payment_intent" not in call_kwargs
        assert "reason" not in call_kwargs

    def test_payment_intent_preferred_over_charge(self, mock_stripe_refund):
        StripeAdapter.create_refund(
            idempotency_key="k",
            amount_cents=500,
            payment_intent_id="pi_1",
            charge_id="ch_1",
        )

        call_kwargs = mock_stripe_refund.create.call_args.kwargs
        assert call_kwargs["payment_intent"] == "pi_1"
        assert "charge" not in call_kwargs

    def test_requires_reference(self, mock_stripe_refund):
        with pytest.raises(ValueError):
            StripeAdapter.create_refund(idempotency_key="k", amount_cents=500)

        mock_stripe_refund.create.assert_not_called()

    def test_configures_client(self, mock_stripe_refund, mock_stripe_http_client, settings):
        settings.STRIPE_SECRET_KEY = "sk_test_configured"
        settings.STRIPE_API_TIMEOUT_SECONDS = 7

        StripeAdapter.create_refund(idempotency_key="k", amount_cents=1, payment_intent_id="pi_1")

        assert stripe.api_key == "sk_test_configured"
        mock_stripe_http_client.assert_called_once_with(timeout=7)


# =============================================================================
# retrieve_refund / find_refund_by_metadata
# =============================================================================


class TestRetrieveRefund:
    def test_retrieve(self, mock_stripe_refund, mock_refund):
        mock_stripe_refund.retrieve.return_value = mock_refund(id="re_9", status="pending")

        result = StripeAdapter.retrieve_refund("re_9")

        mock_stripe_refund.retrieve.assert_called_once_with("re_9")
        assert result.is_pending

    def test_not_found(self, mock_stripe_refund):
        mock_stripe_refund.retrieve.side_effect = stripe.InvalidRequestError(
            message="No such refund: 're_missing'",
            param="id",
            code="resource_missing",
        )

        with pytest.raises(StripeInvalidRequestError) as exc_info:
            StripeAdapter.retrieve_refund("re_missing")

        assert exc_info.value.stripe_code == "resource_missing"


class TestFindRefundByMetadata:
    def test_matches_refund_id(self, mock_stripe_refund, mock_refund):
        mock_stripe_refund.list.return_value = MockStripeList(
            items=[
                mock_refund(id="re_other", metadata={"refund_id": "other"}),
                mock_refund(id="re_match", metadata={"refund_id": "abc"}),
            ]
        )

        result = StripeAdapter.find_refund_by_metadata(refund_id="abc", payment_intent_id="pi_1")

        assert result.id == "re_match"
        mock_stripe_refund.list.assert_called_once_with(limit=100, payment_intent="pi_1")

    def test_lists_by_charge(self, mock_stripe_refund):
        StripeAdapter.find_refund_by_metadata(refund_id="abc", charge_id="ch_1")

        mock_stripe_refund.list.assert_called_once_with(limit=100, charge="ch_1")

    def test_no_match(self, mock_stripe_refund, mock_refund):
        mock_stripe_refund.list.return_value = MockStripeList(items=[mock_refund(metadata={})])

        assert StripeAdapter.find_refund_by_metadata(refund_id="abc", payment_intent_id="pi_1") is None

    def test_without_reference(self, mock_stripe_refund):
        assert StripeAdapter.find_refund_by_metadata(refund_id="abc") is None
        mock_stripe_refund.list.assert_not_called()


# =============================================================================
# Error Translation
# =============================================================================


class TestErrorTranslation:
    def create(self):
        return StripeAdapter.create_refund(idempotency_key="k", amount_cents=100, payment_intent_id="pi_1")

    def test_card_error(self, mock_stripe_refund, card_error):
        mock_stripe_refund.create.side_effect = card_error

        with pytest.raises(StripeCardDeclinedError) as exc_info:
            self.create()

        assert exc_info.value.decline_code == "expired_card"
        assert exc_info.value.stripe_code == "expired_or_canceled_card"
        assert exc_info.value.is_retryable is False

    def test_invalid_request_keeps_stripe_message(self, mock_stripe_refund, invalid_request_error):
        mock_stripe_refund.create.side_effect = invalid_request_error

        with pytest.raises(StripeInvalidRequestError) as exc_info:
            self.create()

        assert "already been refunded" in exc_info.value.message
        assert exc_info.value.stripe_code == "charge_already_refunded"

    def test_rate_limit(self, mock_stripe_refund):
        mock_stripe_refund.create.side_effect = stripe.RateLimitError(message="Too many requests")

        with pytest.raises(StripeRateLimitError):
            self.create()

    def test_timeout(self, mock_stripe_refund):
        mock_stripe_refund.create.side_effect = stripe.APIConnectionError(
            message="Request to Stripe timed out"
        )

        with pytest.raises(StripeTimeoutError) as exc_info:
            self.create()

        assert exc_info.value.is_retryable is True

    def test_connection_error(self, mock_stripe_refund):
        mock_stripe_refund.create.side_effect = stripe.APIConnectionError(
            message="Could not connect to Stripe."
        )

        with pytest.raises(StripeAPIUnavailableError) as exc_info:
            self.create()

        assert exc_info.value.stripe_code == "api_connection_error"

    def test_api_error(self, mock_stripe_refund):
        mock_stripe_refund.create.side_effect = stripe.APIError(message="Something went wrong")

        with pytest.raises(StripeAPIUnavailableError) as exc_info:
            self.create()

        assert exc_info.value.stripe_code == "api_error"

    def test_authentication_error(self, mock_stripe_refund):
        mock_stripe_refund.create.side_effect = stripe.AuthenticationError(message="Invalid API Key")

        with pytest.raises(StripeAuthenticationError):
            self.create()

    def test_unknown_error(self, mock_stripe_refund):
        mock_stripe_refund.create.side_effect = RuntimeError("socket closed")

        with pytest.raises(StripeAPIUnavailableError) as exc_info:
            self.create()

        assert exc_info.value.stripe_code == "unknown_error"


# =============================================================================
# Webhook Verification
# =============================================================================


class TestVerifyWebhookSignature:
    def test_valid(self, mock_stripe_webhook, settings):
        settings.STRIPE_WEBHOOK_SECRET = "whsec_test"

        event = StripeAdapter.verify_webhook_signature(b"{}", "t=1,v1=abc")

        assert event["id"] == "evt_test123"
        mock_stripe_webhook.construct_event.assert_called_once_with(b"{}", "t=1,v1=abc", "whsec_test")

    def test_bad_signature(self, mock_stripe_webhook, signature_verification_error):
        mock_stripe_webhook.construct_event.side_effect = signature_verification_error

        with pytest.raises(StripeInvalidRequestError) as exc_info:
            StripeAdapter.verify_webhook_signature(b"{}", "bad")

        assert exc_info.value.stripe_code == "signature_verification_failed"

    def test_bad_payload(self, mock_stripe_webhook):
        mock_stripe_webhook.construct_event.side_effect = ValueError("Invalid JSON")

        with pytest.raises(StripeInvalidRequestError) as exc_info:
            StripeAdapter.verify_webhook_signature(b"not json", "sig")

        assert exc_info.value.stripe_code == "invalid_payload"
