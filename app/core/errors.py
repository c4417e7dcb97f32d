"""Typed errors raised by the date order engine.

Every error carries a stable ``code`` and an HTTP ``status_code`` so the API
layer can surface the reason verbatim (e.g. insufficient funds vs. already
matched).
"""


class DateOrderError(Exception):
    code = "date_order_error"
    status_code = 400

    def __init__(self, message: str = None, **details):
        self.message = message or self.__class__.__doc__ or self.code
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> dict:
        payload = {"error": self.code, "message": self.message}
        if self.details:
            payload["details"] = {k: str(v) for k, v in self.details.items()}
        return payload


# ---- Validation -----------------------------------------------------------

class ValidationError(DateOrderError):
    """Invalid input."""
    code = "validation_error"
    status_code = 422


class InvalidSchedule(ValidationError):
    """Date must be in the future."""
    code = "invalid_schedule"


class LimitExceeded(DateOrderError):
    """Active order limit reached for your plan."""
    code = "limit_exceeded"
    status_code = 409


class OrderNotOpen(DateOrderError):
    """Order is not accepting applications."""
    code = "order_not_open"
    status_code = 409


class DuplicateApplication(DateOrderError):
    """You already applied to this order."""
    code = "duplicate_application"
    status_code = 409


class SelfApplication(ValidationError):
    """You cannot apply to your own order."""
    code = "self_application"


class DuplicateReview(DateOrderError):
    """You already reviewed this date."""
    code = "duplicate_review"
    status_code = 409


# ---- Funds ----------------------------------------------------------------

class InsufficientFunds(DateOrderError):
    """Insufficient wallet balance."""
    code = "insufficient_funds"
    status_code = 402


class WalletNotFound(DateOrderError):
    """Wallet account not found."""
    code = "wallet_not_found"
    status_code = 404


# ---- Concurrency ----------------------------------------------------------

class StateConflict(DateOrderError):
    """Order state changed; reload and retry."""
    code = "state_conflict"
    status_code = 409


# ---- Lookup / permission --------------------------------------------------

class OrderNotFound(DateOrderError):
    """Date order not found."""
    code = "order_not_found"
    status_code = 404


class ApplicationNotFound(DateOrderError):
    """Application not found."""
    code = "application_not_found"
    status_code = 404


class PermissionDenied(DateOrderError):
    """Not allowed."""
    code = "permission_denied"
    status_code = 403
