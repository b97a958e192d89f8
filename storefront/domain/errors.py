# storefront/domain/errors.py


class AppError(Exception):
    """Base for failures that reach the caller with a stable code."""

    code = "APP_ERROR"
    status_code = 400

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class ValidationError(AppError):
    code = "VALIDATION_ERROR"
    status_code = 400


class NotFoundError(AppError):
    code = "NOT_FOUND"
    status_code = 404


class InvalidProductError(NotFoundError):
    code = "INVALID_PRODUCT"

    def __init__(self, product_id: int):
        super().__init__(f"Product with ID {product_id} not found or invalid")
        self.product_id = product_id


class PriceNotFoundError(NotFoundError):
    code = "PRICE_NOT_FOUND"

    def __init__(self, product_id: int, currency: str):
        super().__init__(f"Price not found for product {product_id} in currency {currency}")
        self.product_id = product_id
        self.currency = currency


class ConflictError(AppError):
    code = "CONFLICT"
    status_code = 409


class StateConflictError(AppError):
    code = "ORDER_STATE_CONFLICT"
    status_code = 409


class ExternalServiceError(AppError):
    code = "EXTERNAL_SERVICE_ERROR"
    status_code = 502


class InvalidSignatureError(AppError):
    code = "INVALID_SIGNATURE"
    status_code = 400


class InternalError(AppError):
    code = "INTERNAL_ERROR"
    status_code = 500
