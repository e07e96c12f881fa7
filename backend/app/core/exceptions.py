class BillingError(Exception):
    """Base exception for the billing service."""

    pass


class WebhookNotConfiguredError(BillingError):
    """Raised when the Paddle webhook secret is not configured."""

    pass


class WebhookSignatureError(BillingError):
    """Raised when a webhook signature is missing, stale, or does not match."""

    pass


class WebhookPayloadError(BillingError):
    """Raised when a webhook body cannot be decoded or lacks event metadata."""

    pass


class WebhookClaimError(BillingError):
    """Raised when the event claim could not be written to the ledger."""

    def __init__(self, event_id: str, cause: Exception):
        self.event_id = event_id
        self.cause = cause
        super().__init__(f"Failed to track webhook event '{event_id}': {cause}")


class WebhookProcessingError(BillingError):
    """Raised when reconciliation of a claimed event fails."""

    def __init__(self, event_id: str, event_type: str, cause: Exception):
        self.event_id = event_id
        self.event_type = event_type
        self.cause = cause
        super().__init__(f"Failed to process {event_type} event '{event_id}': {cause}")


class PaddleAPIError(BillingError):
    """Raised when a Paddle API call fails or returns an unusable response."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)
