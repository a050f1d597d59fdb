"""Guarantee domain errors, rendered as JSON by the API exception handler"""

from typing import Any, Dict, Optional


class GuaranteeError(Exception):
    status_code = 400
    code = "guarantee_error"
    message = "Guarantee request failed"

    def __init__(self, message: Optional[str] = None, **extra: Any):
        self.message = message or self.message
        self.extra: Dict[str, Any] = extra
        super().__init__(self.message)


class SessionNotFound(GuaranteeError):
    status_code = 404
    code = "session_not_found"
    message = "Session not found"


class SessionExpired(GuaranteeError):
    status_code = 410
    code = "session_expired"
    message = "Session expired"


class InvalidSessionState(GuaranteeError):
    code = "invalid_session_state"
    message = "Session is not in a state that allows this action"


class StripeNotConnected(GuaranteeError):
    code = "stripe_not_connected"
    message = "Stripe account not connected"


class InvalidCheckoutSession(GuaranteeError):
    code = "invalid_checkout_session"
    message = "Invalid checkout session"


class CheckoutNotComplete(GuaranteeError):
    code = "checkout_not_complete"
    message = "Checkout session not completed"


class PaymentProviderError(Exception):
    """A call to the payment processor failed"""

    def __init__(self, message: str, code: Optional[str] = None):
        self.code = code
        super().__init__(message)
