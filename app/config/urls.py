"""
URL configuration for the order refund service.

URL Structure:
    /                                   - ReDoc API documentation
    /admin/                             - Django admin interface
    /health/                            - Health check endpoint
    /schema/                            - OpenAPI schema (YAML)
    /api/v1/payments/                   - Refund and discount endpoints
        refunds/                        - Refund list (GET) / create (POST)
        refunds/{id}/                   - Refund detail
        refunds/{id}/approve/           - PENDING -> APPROVED
        refunds/{id}/reject/            - PENDING -> REJECTED
        refunds/{id}/cancel/            - Delete a PENDING/APPROVED refund
        refunds/{id}/process/           - Send an APPROVED refund to Stripe
        discounts/preview/              - Compute a discount for line snapshots
        webhooks/stripe/                - Stripe webhook endpoint (POST)
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
api_v1_patterns = [
    path("payments/", include("payments.urls")),
]

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    path("admin/", admin.site.urls),
    path("health/", health_check, name="health_check"),
    path("api/v1/", include(api_v1_patterns)),
]

admin.site.site_header = "Refund Administration"
admin.site.site_title = "Refund Admin"
admin.site.index_title = "Orders and refunds"
