"""
Domain Errors

Error taxonomy shared by the booking and finance domains. Each error
carries the HTTP status the API layer should answer with, so callers can
tell an authorization problem (403) from an invalid transition (400).
"""


class DomainError(Exception):
    """Base class for all domain errors."""

    status_code = 400
    default_code = 'domain_error'

    def __init__(self, message: str = '', *, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code

    def __str__(self) -> str:
        return self.message


class NotFoundError(DomainError):
    """Booking, payment, refund or settlement id could not be resolved."""

    status_code = 404
    default_code = 'not_found'


class ForbiddenError(DomainError):
    """Actor is not allowed to perform this action on the resource."""

    status_code = 403
    default_code = 'forbidden'


class InvalidTransitionError(DomainError):
    """The booking state machine rejected the requested transition."""

    default_code = 'invalid_transition'


class InvalidOperationError(DomainError):
    """The resource is not in a state that allows the operation."""

    default_code = 'invalid_operation'


class DuplicateRequestError(DomainError):
    """The request was already applied; callers treat it as success."""

    status_code = 409
    default_code = 'duplicate_request'


class GatewayError(DomainError):
    """
    The payment provider failed or rejected the operation.

    The message shown to API clients is always generic; provider details
    are kept in ``detail`` for logs and payment metadata.
    """

    status_code = 502
    default_code = 'gateway_error'
    public_message = 'Payment could not be processed'

    def __init__(self, detail: str = '', *, code: str | None = None):
        super().__init__(self.public_message, code=code)
        self.detail = detail


class GatewayTimeoutError(GatewayError):
    """The payment provider did not answer within the configured timeout."""

    status_code = 504
    default_code = 'gateway_timeout'


class SettlementError(DomainError):
    """The settlement ledger could not record a booking's contribution."""

    status_code = 409
    default_code = 'settlement_error'
