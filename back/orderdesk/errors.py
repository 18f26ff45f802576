"""
Typed failures raised by the ordering core.

Every error carries a stable ``kind`` string (returned to clients as
``error``) and the HTTP status the API renders it with. Routes never catch
these; ``main.py`` registers a single handler for ``OrderingError``.
"""


class OrderingError(Exception):
    kind = "ordering_error"
    status_code = 400
    retryable = False

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFound(OrderingError):
    """Restaurant, menu item, variation, add-on, order or booking is missing or unavailable"""
    kind = "not_found"
    status_code = 404


class InvalidCoupon(OrderingError):
    """A coupon code was supplied but matches no active coupon of the restaurant"""
    kind = "invalid_coupon"
    status_code = 422

    def __init__(self, code: str):
        self.code = code
        super().__init__(f"Coupon code '{code}' is not valid for this restaurant")


class DeliveryIneligible(OrderingError):
    kind = "delivery_ineligible"
    status_code = 422


class BelowMinimumOrder(OrderingError):
    kind = "below_minimum_order"
    status_code = 422


class OrderTypeUnavailable(OrderingError):
    """The restaurant has switched off the requested fulfillment path"""
    kind = "order_type_unavailable"
    status_code = 422


class ValidationFailed(OrderingError):
    kind = "validation_failed"
    status_code = 400


class CatalogMismatch(OrderingError):
    """An item became unavailable between pricing and persisting"""
    kind = "catalog_mismatch"
    status_code = 409


class StorageUnavailable(OrderingError):
    """Transient database failure; nothing was written"""
    kind = "storage_unavailable"
    status_code = 503
    retryable = True


class ConstraintViolation(OrderingError):
    kind = "constraint_violation"
    status_code = 500


class InvalidTransition(OrderingError):
    kind = "invalid_transition"
    status_code = 409


class AlreadyTransitioned(OrderingError):
    """Another staff action moved the row first"""
    kind = "already_transitioned"
    status_code = 409
