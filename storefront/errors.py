"""Checkout error taxonomy.

Every error renders as a discriminated result::

    {"success": False, "kind": "PaymentRejected", "message": "...", "code": "R102"}

so the HTTP layer never has to guess what went wrong.
"""


class StorefrontError(Exception):
    kind = "StorefrontError"
    status_code = 500

    def __init__(self, message, code=None, details=None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details

    def to_dict(self):
        data = {"success": False, "kind": self.kind, "message": self.message}
        if self.code is not None:
            data["code"] = self.code
        return data


class ConfigError(StorefrontError):
    kind = "ConfigError"


class GatewayConfigError(ConfigError):
    kind = "GatewayConfigError"


class ValidationError(StorefrontError):
    kind = "ValidationError"
    status_code = 400


class InvalidDeliveryMethod(ValidationError):
    kind = "InvalidDeliveryMethod"


class NotFound(StorefrontError):
    kind = "NotFound"
    status_code = 404


class GatewayRejected(StorefrontError):
    """The provider refused a registration/intent/token request."""

    kind = "GatewayRejected"
    status_code = 502


class PaymentRejected(StorefrontError):
    """The provider did not confirm the payment."""

    kind = "PaymentRejected"
    status_code = 402


class PersistenceError(StorefrontError):
    kind = "PersistenceError"


class InsufficientStock(StorefrontError):
    kind = "InsufficientStock"
    status_code = 409
    reason = "Insufficient stock"

    def __init__(self, message, variant_id=None, requested=None, available=None):
        super().__init__(message)
        self.variant_id = variant_id
        self.requested = requested
        self.available = available

    def to_warning(self):
        warning = {
            "variantId": self.variant_id,
            "reason": self.reason,
            "requested": self.requested,
        }
        if self.available is not None:
            warning["available"] = self.available
        return warning


class StockRecordMissing(InsufficientStock):
    reason = "Stock record not found"


class InventoryConflict(InsufficientStock):
    """Compare-and-swap kept losing to concurrent checkouts."""

    kind = "InventoryConflict"
    reason = "Failed to update inventory"
