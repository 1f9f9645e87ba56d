"""
User-facing messages for refund operations.

Business-rule failures are shown to administrators verbatim; anything
unexpected is masked behind PROCESS_FAILED.
"""


class RefundMessages:
    NOT_FOUND = "Refund not found."
    ORDER_NOT_FOUND = "Order not found."
    INVALID_ID = "Invalid identifier."
    UNAUTHORIZED = "Administrator access is required."
    INVALID_CURSOR = "Invalid cursor."

    ALREADY_APPROVED = "This refund is already approved."
    ALREADY_PROCESSED = "This refund has already been processed."
    NOT_APPROVED = "This refund must be approved before it can be processed."
    CANNOT_CANCEL = "This refund can no longer be cancelled."
    CANNOT_REJECT = "Only pending refunds can be rejected."
    CANNOT_CANCEL_SUBMITTED = (
        "This refund has already been sent to Stripe and cannot be cancelled."
    )

    ORDER_NOT_REFUNDABLE = "This order has not been paid and cannot be refunded."
    INVALID_AMOUNT = "The refund amount must be greater than zero."
    AMOUNT_EXCEEDS_REMAINING = "The refund amount exceeds the remaining refundable amount."
    INVALID_ITEMS = "One or more items do not belong to this order."
    QUANTITY_EXCEEDS_AVAILABLE = "The refunded quantity exceeds the quantity still refundable."
    AMOUNT_EXCEEDS_ITEMS = "The refund amount exceeds the total of the refunded items."
    INVALID_QUANTITY = "Item quantities must be greater than zero."

    NO_CHARGE_ID = "Cannot refund: no payment reference found for this order."
    STRIPE_ERROR = "Stripe refund failed."
    OUTCOME_UNKNOWN = (
        "Stripe did not respond in time. The refund remains approved and can "
        "be processed again safely."
    )
    STRIPE_PENDING = "Refund submitted to Stripe and awaiting confirmation."
    RECONCILIATION_REQUIRED = (
        "Stripe issued the refund but it could not be recorded. The refund "
        "has been flagged for reconciliation; do not issue it again manually."
    )
    PROCESS_FAILED = "An error occurred while processing the refund."
    BUSY = "This refund is already being processed."

    CREATED = "Refund created."
    APPROVED = "Refund approved."
    REJECTED = "Refund rejected."
    CANCELLED = "Refund cancelled."
    COMPLETED = "Refund completed."
