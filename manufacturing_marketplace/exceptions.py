"""
Error taxonomy for the manufacturing marketplace.

Exception Hierarchy:
    MarketplaceError (base)
    ├── UnauthorizedError - no valid identity supplied
    ├── ForbiddenError    - identity lacks the role or is not a party to the order
    ├── NotFoundError     - order/offer/assembly/part does not exist
    ├── ValidationError   - missing payload, duplicate part assignment, incomplete assembly
    ├── ConflictError     - competing writers (second acceptance, stale selection)
    └── PersistenceError  - store unavailable or a write failed mid-operation

Every error carries its ``kind`` so callers (and the web layer) can react to
the category without matching on message text.
"""

from typing import Any, Dict, Optional


class MarketplaceError(Exception):
    """Base exception for all marketplace errors."""

    kind = "marketplace_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class UnauthorizedError(MarketplaceError):
    """The caller did not present a usable identity."""

    kind = "unauthorized"

    def __init__(self, message: str = "A signed-in user is required"):
        super().__init__(message)


class ForbiddenError(MarketplaceError):
    """The caller is known but may not perform the operation."""

    kind = "forbidden"


class NotFoundError(MarketplaceError):
    """A referenced record does not exist."""

    kind = "not_found"

    def __init__(self, entity: str, entity_id: str):
        super().__init__(
            f"{entity} {entity_id!r} not found",
            {"entity": entity, "id": entity_id},
        )
        self.entity = entity
        self.entity_id = entity_id


class ValidationError(MarketplaceError):
    """The request is well-formed but violates a business rule."""

    kind = "validation_error"


class ConflictError(MarketplaceError):
    """A concurrent or earlier write makes the request impossible."""

    kind = "conflict"


class PersistenceError(MarketplaceError):
    """
    The store failed while applying an operation.

    Raised for multi-step operations after the partial work has been rolled
    back; the caller must re-issue the whole operation.
    """

    kind = "persistence_error"

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        details: Dict[str, Any] = {
            "operation": operation,
            "resolution": "No changes were applied. Re-issue the whole operation.",
        }
        if cause is not None:
            details["cause"] = f"{type(cause).__name__}: {cause}"
        super().__init__(f"Failed to {operation}", details)
        self.operation = operation


__all__ = [
    "MarketplaceError",
    "UnauthorizedError",
    "ForbiddenError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "PersistenceError",
]
