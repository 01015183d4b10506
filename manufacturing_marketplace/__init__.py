"""Core of a manufacturing marketplace.

Creators upload a CAD assembly, decompose it into parts and manufacturing
assemblies, record per-part specifications and receive competing offers from
manufacturers. The accepted offer assigns a manufacturer, who then moves the
order through production to completion.
"""

from .domain import (
    AccountType,
    Actor,
    Assembly,
    AssemblyWithParts,
    Chat,
    ChatMessage,
    Offer,
    Order,
    OrderStatus,
    Part,
    PartSpecification,
    ShippingAddress,
    ShippingInfo,
    SplitPart,
)
from .exceptions import (
    ConflictError,
    ForbiddenError,
    MarketplaceError,
    NotFoundError,
    PersistenceError,
    UnauthorizedError,
    ValidationError,
)
from .offers import OfferDecision, OfferTerms
from .services import MarketplaceService
from .specifications import PartSpecificationContent, parse_specification

__all__ = [
    "AccountType",
    "Actor",
    "Assembly",
    "AssemblyWithParts",
    "Chat",
    "ChatMessage",
    "Offer",
    "Order",
    "OrderStatus",
    "Part",
    "PartSpecification",
    "ShippingAddress",
    "ShippingInfo",
    "SplitPart",
    "MarketplaceError",
    "UnauthorizedError",
    "ForbiddenError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "PersistenceError",
    "OfferTerms",
    "OfferDecision",
    "MarketplaceService",
    "PartSpecificationContent",
    "parse_specification",
]
