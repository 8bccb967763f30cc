# Overview: Error taxonomy shared by the permission, inventory and sales services.

"""
Every failure leaving the core is a PosError with a machine-readable kind
and a human-readable message. The transport layer maps kinds to HTTP
statuses; services never know about HTTP.

Kinds:
- validation_error   malformed input, fix the request
- not_found          referenced product/customer/branch/sale does not exist
- insufficient_stock requested quantity exceeds stock (details carry available)
- permission_denied  evaluator said no (details carry resource/action only)
- conflict           lost a race (receipt number, stock version); retryable
- transient          storage unavailable or timed out
"""

from __future__ import annotations


class PosError(Exception):
    """Base class for all core failures."""

    kind = "internal_error"
    http_status = 500

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(PosError):
    """400-level input problem."""

    kind = "validation_error"
    http_status = 400


class NotFoundError(PosError):
    kind = "not_found"
    http_status = 404


class InsufficientStockError(PosError):
    """Requested quantity exceeds the product's stock on hand."""

    kind = "insufficient_stock"
    http_status = 409

    def __init__(self, product_id: int, requested: int, available: int, product_name: str | None = None):
        label = product_name or f"product {product_id}"
        super().__init__(
            f"Insufficient stock for {label}. Available: {available}, Required: {requested}",
            details={
                "product_id": product_id,
                "requested_quantity": requested,
                "available_quantity": available,
            },
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


class PermissionDeniedError(PosError):
    kind = "permission_denied"
    http_status = 403

    def __init__(self, resource: str, action: str, message: str | None = None):
        super().__init__(
            message or f"Insufficient permissions for {action} on {resource}",
            details={"resource": resource, "action": action},
        )
        self.resource = resource
        self.action = action


class ConflictError(PosError):
    """409-level race lost (duplicate receipt number, stale stock version)."""

    kind = "conflict"
    http_status = 409


class TransientError(PosError):
    """Storage unavailable or timed out. Retry only with an idempotency key."""

    kind = "transient"
    http_status = 503
