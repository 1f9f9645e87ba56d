"""
DRF views for refund administration.

This module provides API views for:
- Refund listing and creation
- Refund detail
- Refund transitions (approve, reject, cancel, process)
- Discount previews

Related files:
    - services/: RefundLedgerService, RefundProcessingService, discount calculator
    - serializers.py: Request/response serializers
    - urls.py: URL routing

Endpoints:
    GET  /api/v1/payments/refunds/                - List refunds
    POST /api/v1/payments/refunds/                - Create a refund
    GET  /api/v1/payments/refunds/<id>/           - Refund detail
    POST /api/v1/payments/refunds/<id>/approve/   - Approve
    POST /api/v1/payments/refunds/<id>/reject/    - Reject
    POST /api/v1/payments/refunds/<id>/cancel/    - Cancel (deletes the refund)
    POST /api/v1/payments/refunds/<id>/process/   - Send to Stripe
    POST /api/v1/payments/discounts/preview/      - Compute a discount

Security:
    - All endpoints require authentication
    - Refund services reject non-administrators with 403
"""

from __future__ import annotations

import logging

from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.exceptions import NotFound
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from payments.messages import RefundMessages
from payments.models import Discount, Refund
from payments.pagination import RefundCursorPagination
from payments.serializers import (
    DiscountPreviewResponseSerializer,
    DiscountPreviewSerializer,
    RefundCreateSerializer,
    RefundDetailSerializer,
    RefundListQuerySerializer,
    RefundRejectSerializer,
    RefundSerializer,
)
from payments.services import (
    ActionResult,
    ActionStatus,
    CallerContext,
    LineSnapshot,
    RefundLedgerService,
    RefundListParams,
    RefundProcessingService,
    compute_discount,
    compute_eligible_subtotal,
)

logger = logging.getLogger(__name__)

ACTION_STATUS_HTTP = {
    ActionStatus.SUCCESS: status.HTTP_200_OK,
    ActionStatus.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
    ActionStatus.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ActionStatus.UNAUTHORIZED: status.HTTP_403_FORBIDDEN,
    ActionStatus.ERROR: status.HTTP_502_BAD_GATEWAY,
}


class RefundActionView(APIView):
    """
    Base view rendering an ActionResult as an HTTP response.

    Refund payloads are serialized with serializer_class; any other data
    is returned as-is.
    """

    permission_classes = [IsAuthenticated]
    serializer_class = RefundSerializer

    def render_result(self, result: ActionResult, success_status: int = status.HTTP_200_OK) -> Response:
        if isinstance(result.data, Refund):
            result.data = self.serializer_class(result.data).data

        http_status = success_status if result.ok else ACTION_STATUS_HTTP[result.status]
        return Response(result.to_response(), status=http_status)


# =============================================================================
# Refund Collection & Detail
# =============================================================================


class RefundListCreateView(RefundActionView):
    """
    GET: List refunds with filters and cursor pagination
    POST: Create a PENDING refund

    URL: /api/v1/payments/refunds/
    """

    pagination_class = RefundCursorPagination

    @extend_schema(
        summary="List refunds",
        description=(
            "Filter by order, status, reason, amount range, creation date and "
            "search text. Results are paginated with an opaque cursor; follow "
            "the next and previous links to move between pages."
        ),
        tags=["Payments - Refunds"],
        parameters=[RefundListQuerySerializer],
        responses={200: RefundSerializer(many=True)},
    )
    def get(self, request):
        query = RefundListQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        data = query.validated_data

        params = RefundListParams(
            order_id=data.get("order"),
            statuses=data.get("status", []),
            reasons=data.get("reason", []),
            amount_min=data.get("amount_min"),
            amount_max=data.get("amount_max"),
            created_after=data.get("created_after"),
            created_before=data.get("created_before"),
            search=data.get("search", ""),
            sort=data["sort"],
        )
        result = RefundLedgerService.list_refunds(CallerContext.from_request(request), params)
        if not result.ok:
            return self.render_result(result)

        paginator = self.pagination_class()
        try:
            page = paginator.paginate_queryset(result.data, request, view=self)
        except NotFound:
            return self.render_result(
                ActionResult.validation_error(RefundMessages.INVALID_CURSOR, error_code="INVALID_CURSOR")
            )

        result.data = {
            "results": RefundSerializer(page, many=True).data,
            "next": paginator.get_next_link(),
            "previous": paginator.get_previous_link(),
            "limit": paginator.page_size,
        }
        return self.render_result(result)

    @extend_schema(
        summary="Create a refund",
        description=(
            "Create a PENDING refund for an order. Item quantities are capped by "
            "what earlier refunds already claim; the amount defaults to the item sum."
        ),
        tags=["Payments - Refunds"],
        request=RefundCreateSerializer,
        responses={201: RefundSerializer},
    )
    def post(self, request):
        serializer = RefundCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = RefundLedgerService.create_refund(
            CallerContext.from_request(request),
            **serializer.to_service_kwargs(),
        )
        return self.render_result(result, success_status=status.HTTP_201_CREATED)


class RefundDetailView(RefundActionView):
    """
    GET: Refund with items, history and the order's refund totals

    URL: /api/v1/payments/refunds/<id>/
    """

    serializer_class = RefundDetailSerializer

    @extend_schema(
        summary="Get a refund",
        tags=["Payments - Refunds"],
        responses={200: RefundDetailSerializer},
    )
    def get(self, request, refund_id):
        result = RefundLedgerService.get(CallerContext.from_request(request), refund_id)
        return self.render_result(result)


# =============================================================================
# Refund Transitions
# =============================================================================


class RefundApproveView(RefundActionView):
    """POST /api/v1/payments/refunds/<id>/approve/"""

    @extend_schema(
        summary="Approve a refund",
        description="Only PENDING refunds can be approved.",
        tags=["Payments - Refunds"],
        request=None,
        responses={200: RefundSerializer},
    )
    def post(self, request, refund_id):
        result = RefundLedgerService.approve(CallerContext.from_request(request), refund_id)
        return self.render_result(result)


class RefundRejectView(RefundActionView):
    """POST /api/v1/payments/refunds/<id>/reject/"""

    @extend_schema(
        summary="Reject a refund",
        description="Only PENDING refunds can be rejected. The refund is kept for audit.",
        tags=["Payments - Refunds"],
        request=RefundRejectSerializer,
        responses={200: RefundSerializer},
    )
    def post(self, request, refund_id):
        serializer = RefundRejectSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = RefundLedgerService.reject(
            CallerContext.from_request(request),
            refund_id,
            reason=serializer.validated_data["reason"],
        )
        return self.render_result(result)


class RefundCancelView(RefundActionView):
    """POST /api/v1/payments/refunds/<id>/cancel/"""

    @extend_schema(
        summary="Cancel a refund",
        description="PENDING and APPROVED refunds are deleted with their items.",
        tags=["Payments - Refunds"],
        request=None,
    )
    def post(self, request, refund_id):
        result = RefundLedgerService.cancel(CallerContext.from_request(request), refund_id)
        return self.render_result(result)


class RefundProcessView(RefundActionView):
    """
    POST /api/v1/payments/refunds/<id>/process/

    Sends an APPROVED refund to Stripe. Safe to retry: every attempt for a
    refund uses the same idempotency key.
    """

    @extend_schema(
        summary="Process a refund",
        description=(
            "Send an APPROVED refund to Stripe, then restock returned items and "
            "update the order's payment status. A 502 with error_code "
            "OUTCOME_UNKNOWN leaves the refund APPROVED and can be retried."
        ),
        tags=["Payments - Refunds"],
        request=None,
        responses={200: RefundSerializer},
    )
    def post(self, request, refund_id):
        result = RefundProcessingService.process(CallerContext.from_request(request), refund_id)
        return self.render_result(result)


# =============================================================================
# Discounts
# =============================================================================


class DiscountPreviewView(APIView):
    """
    POST: Compute the discount for a set of lines

    URL: /api/v1/payments/discounts/preview/
    """

    permission_classes = [IsAdminUser]

    @extend_schema(
        summary="Preview a discount",
        description=(
            "Compute a discount against cart lines, either from an active discount "
            "code or from an ad-hoc type and value."
        ),
        tags=["Payments - Discounts"],
        request=DiscountPreviewSerializer,
        responses={200: DiscountPreviewResponseSerializer},
    )
    def post(self, request):
        serializer = DiscountPreviewSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        if data.get("code"):
            discount = Discount.objects.filter(code=data["code"], is_active=True).first()
            if discount is None:
                return Response(
                    {"detail": "Discount not found"},
                    status=status.HTTP_404_NOT_FOUND,
                )
            discount_type = discount.discount_type
            value = discount.value
            exclude_sale_items = discount.exclude_sale_items
        else:
            discount_type = data["discount_type"]
            value = data["value"]
            exclude_sale_items = data["exclude_sale_items"]

        lines = [LineSnapshot(**line) for line in data["lines"]]
        subtotal = compute_eligible_subtotal(lines, exclude_sale_items)
        amount = compute_discount(discount_type, value, subtotal.eligible_subtotal)

        response = DiscountPreviewResponseSerializer(
            {
                "total_subtotal": subtotal.total_subtotal,
                "eligible_subtotal": subtotal.eligible_subtotal,
                "discount_cents": amount,
                "total_after_discount_cents": subtotal.total_subtotal - amount,
            }
        )
        return Response(response.data)
