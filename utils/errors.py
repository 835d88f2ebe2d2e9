# utils/errors.py


class BookingError(ValueError):
    """Base error for booking, pricing and lifecycle failures.

    `code` is the stable machine value surfaced to API callers, `reason`
    narrows it further (e.g. LOCKED for a status-lock conflict).
    """
    code = "BOOKING_ERROR"
    http_status = 400

    def __init__(self, message, reason=None):
        super().__init__(message)
        self.message = message
        self.reason = reason

    def to_dict(self):
        payload = {"error": self.code, "message": self.message}
        if self.reason:
            payload["reason"] = self.reason
        return payload


class ValidationError(BookingError):
    code = "VALIDATION_ERROR"
    http_status = 400


class NotFoundError(BookingError):
    code = "NOT_FOUND"
    http_status = 404


class ConflictError(BookingError):
    code = "CONFLICT"
    http_status = 409


class PermissionDeniedError(BookingError):
    code = "FORBIDDEN"
    http_status = 403


class PaymentError(BookingError):
    code = "PAYMENT_FAILED"
    http_status = 402


# Conflict reasons
LOCKED = "LOCKED"
INVALID_TRANSITION = "INVALID_TRANSITION"
DATE_CONFLICT = "DATE_CONFLICT"
# lost a compare-and-set race with another writer
STALE_STATUS = "STALE_STATUS"

# Payment reasons
AMOUNT_MISMATCH = "AMOUNT_MISMATCH"
PAYMENT_REUSED = "PAYMENT_REUSED"
