from typing import Optional


# Conflict reasons
ALREADY_REQUESTED = "AlreadyRequested"
ALREADY_FAVORITED = "AlreadyFavorited"
DONATION_LOCKED = "DonationLocked"
DONATION_CLOSED = "DonationClosed"
ACCEPT_RACE = "AcceptRace"
REQUEST_CLOSED = "RequestClosed"
NOT_ACCEPTED = "NotAccepted"
PAYMENT_REQUIRED = "PaymentRequired"
NO_PENDING_ROLE_REQUEST = "NoPendingRoleRequest"
DUPLICATE_TRANSACTION = "DuplicateTransaction"


class DomainError(Exception):
    """Base class for errors raised by the managers.

    Routers never catch these; the handler registered in ``main.py``
    turns them into JSON responses using ``status_code``.
    """

    status_code = 400

    def __init__(self, detail: str, reason: Optional[str] = None):
        super().__init__(detail)
        self.detail = detail
        self.reason = reason


class UnauthorizedError(DomainError):
    status_code = 401


class ForbiddenError(DomainError):
    status_code = 403


class NotFoundError(DomainError):
    status_code = 404


class ConflictError(DomainError):
    """Uniqueness or lock-race violation. Callers may re-fetch and retry."""

    status_code = 409


class InvalidInputError(DomainError):
    status_code = 400


class UpstreamError(DomainError):
    """The identity provider or the payment processor failed."""

    status_code = 502
