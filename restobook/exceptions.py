from typing import Optional


class BookingError(Exception):
    status_code = 400
    code = "booking_error"

    def __init__(self, message: str, **extra):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message, **self.extra}


class ValidationError(BookingError):
    """Malformed input, rejected before any collaborator call."""

    status_code = 422
    code = "validation_error"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, field=field)
        self.field = field


class ConflictError(BookingError):
    """Table no longer free or status transition not allowed."""

    status_code = 409
    code = "conflict"

    def __init__(self, message: str, current_status: Optional[str] = None):
        super().__init__(message, current_status=current_status)
        self.current_status = current_status


class VoucherInvalid(BookingError):
    status_code = 400
    code = "voucher_invalid"

    def __init__(self, reason: str, code: Optional[str] = None):
        super().__init__(f"Voucher rejected: {reason}", reason=reason, voucher_code=code)
        self.reason = reason
        self.voucher_code = code


class NotFoundError(BookingError):
    status_code = 404
    code = "not_found"

    def __init__(self, entity: str, key: str):
        super().__init__(f"{entity} {key} not found", entity=entity, key=key)
        self.entity = entity
        self.key = key


class PaymentProviderError(BookingError):
    """Non-success response code from the payment gateway."""

    status_code = 402
    code = "payment_failed"

    def __init__(self, provider_code: str, booking_id: Optional[str] = None):
        super().__init__(
            f"Payment provider returned code {provider_code}",
            provider_code=provider_code,
            booking_id=booking_id,
        )
        self.provider_code = provider_code
        self.booking_id = booking_id
