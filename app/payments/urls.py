"""
URL configuration for the payments app.

Routes:
    - /refunds/ and /refunds/<id>/... - Refund administration
    - POST /discounts/preview/ - Discount preview
    - POST /webhooks/stripe/ - Stripe webhook endpoint

All routes are prefixed with /api/v1/payments/ when included in the main URLconf.
Refund ids are matched as plain strings so that malformed ids reach the
service and come back as a validation error.
"""

from django.urls import path

from payments.views import (
    DiscountPreviewView,
    RefundApproveView,
    RefundCancelView,
    RefundDetailView,
    RefundListCreateView,
    RefundProcessView,
    RefundRejectView,
)
from payments.webhooks.views import stripe_webhook

app_name = "payments"

urlpatterns = [
    # Refunds
    path("refunds/", RefundListCreateView.as_view(), name="refund-list"),
    path("refunds/<str:refund_id>/", RefundDetailView.as_view(), name="refund-detail"),
    path("refunds/<str:refund_id>/approve/", RefundApproveView.as_view(), name="refund-approve"),
    path("refunds/<str:refund_id>/reject/", RefundRejectView.as_view(), name="refund-reject"),
    path("refunds/<str:refund_id>/cancel/", RefundCancelView.as_view(), name="refund-cancel"),
    path("refunds/<str:refund_id>/process/", RefundProcessView.as_view(), name="refund-process"),
    # Discounts
    path("discounts/preview/", DiscountPreviewView.as_view(), name="discount-preview"),
    # Webhook endpoints
    path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
]
