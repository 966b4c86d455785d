"""Failure taxonomy shared by the ledger and fulfillment services.

Every error carries a stable ``kind`` so callers (checkout, admin console,
maker tooling) can present a specific message, and an ``http_status`` used by
the API layer when rendering the failure envelope.
"""

from __future__ import annotations

from typing import Any


class ServiceError(RuntimeError):
    """Base class for failures surfaced to callers."""

    kind: str = "service_error"
    http_status: int = 500

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"kind": self.kind, "message": self.message}
        if self.context:
            payload["context"] = {key: str(value) for key, value in self.context.items()}
        return payload


# Validation: rejected before the store is touched.


class ValidationFailed(ServiceError):
    kind = "validation_failed"
    http_status = 400


class InvalidGiftCardCode(ValidationFailed):
    kind = "invalid_gift_card_code"


class MissingTrackingInfo(ValidationFailed):
    kind = "missing_tracking_info"


# Lookups.


class NotFound(ServiceError):
    kind = "not_found"
    http_status = 404


class WalletNotFound(NotFound):
    kind = "wallet_not_found"


class GiftCardNotFound(NotFound):
    kind = "gift_card_not_found"


class OrderNotFound(NotFound):
    kind = "order_not_found"


# Business-rule conflicts: no partial state change.


class Conflict(ServiceError):
    kind = "conflict"
    http_status = 409


class InsufficientBalance(Conflict):
    kind = "insufficient_balance"


class IdempotencyConflict(Conflict):
    kind = "idempotency_conflict"


class GiftCardAlreadyRedeemed(Conflict):
    kind = "gift_card_already_redeemed"


class GiftCardExpired(Conflict):
    kind = "gift_card_expired"


class GiftCardVoid(Conflict):
    kind = "gift_card_void"


class InvalidTransition(Conflict):
    """Raised when a transition does not match the current state."""

    kind = "invalid_transition"

    def __init__(self, current_status: str, requested_status: str, message: str | None = None) -> None:
        super().__init__(
            message or f"Cannot transition from {current_status} to {requested_status}",
            current_status=current_status,
            requested_status=requested_status,
        )
        self.current_status = current_status
        self.requested_status = requested_status


# Authorization at the service layer.


class Forbidden(ServiceError):
    kind = "forbidden"
    http_status = 403


class TransitionNotPermitted(Forbidden):
    kind = "transition_not_permitted"


class AdminRequired(Forbidden):
    kind = "admin_required"


class Unauthenticated(ServiceError):
    kind = "unauthenticated"
    http_status = 401


# Transient and infrastructure failures.


class ConcurrencyConflict(ServiceError):
    """Retries were exhausted on a lock/version conflict; safe for the caller to retry."""

    kind = "concurrency_conflict"
    http_status = 503


class ServiceUnavailable(ServiceError):
    kind = "service_unavailable"
    http_status = 503


class LedgerInvariantViolation(ServiceError):
    """Recorded balance disagrees with transaction history. Never auto-corrected."""

    kind = "ledger_invariant_violation"
    http_status = 500


class ImmutableRecordError(ServiceError):
    kind = "immutable_record"
    http_status = 500
