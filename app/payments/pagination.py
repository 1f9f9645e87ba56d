"""
Pagination classes for the refund API.

This module provides cursor-based pagination for refund listings:
- RefundCursorPagination: For GET /refunds/ (newest first by default)

Design Decisions:
    - Ordering follows the sort query parameter (created, amount, status)
    - id is the tiebreak, so equal sort values never reorder between pages
    - Page size defaults to REFUND_LIST_DEFAULT_LIMIT and is capped at
      REFUND_LIST_MAX_LIMIT
"""

from django.conf import settings
from rest_framework.pagination import CursorPagination

from payments.services.refund_ledger import DEFAULT_SORT, refund_ordering


class RefundCursorPagination(CursorPagination):
    """
    Cursor pagination for refund lists.

    Query parameters:
        cursor: Encoded cursor for position
        limit: Number of refunds (optional override)
        sort: created/amount/status with -ascending or -descending
    """

    page_size_query_param = "limit"
    cursor_query_param = "cursor"
    ordering = refund_ordering(DEFAULT_SORT)

    def get_ordering(self, request, queryset, view):
        return refund_ordering(request.query_params.get("sort") or DEFAULT_SORT)

    def get_page_size(self, request):
        self.page_size = settings.REFUND_LIST_DEFAULT_LIMIT
        self.max_page_size = settings.REFUND_LIST_MAX_LIMIT
        return super().get_page_size(request)
