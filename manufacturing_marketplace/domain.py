"""Core data structures for the manufacturing marketplace."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import List, Optional, Tuple

from .specifications import PartSpecificationContent


class OrderStatus(str, Enum):
    """Lifecycle stages an order moves through, in strict forward order."""

    ORDER_CREATED = "Order Created"
    MANUFACTURER_OFFER = "Manufacturer Offer"
    ORDER_ACCEPTED = "Order Accepted"
    MACHINE_SETUP = "Machine Setup"
    STARTED_MANUFACTURING = "Started Manufacturing"
    QUALITY_CHECK = "Quality Check"
    SHIPPED = "Shipping"
    COMPLETED = "Completed"


class AccountType(str, Enum):
    """Actor roles supplied by the identity provider."""

    CREATOR = "creator"
    MANUFACTURER = "manufacturer"
    ADMIN = "admin"


class EventType(str, Enum):
    """Categories of activity-feed entries."""

    ORDER = "order"
    USER = "user"
    SYSTEM = "system"
    ERROR = "error"
    SUCCESS = "success"
    SHIPMENT = "shipment"
    OFFER = "offer"


class NotificationType(str, Enum):
    """Lifecycle events handed to the notification dispatcher."""

    ORDER_CREATED = "order.created"
    ORDER_UPDATED = "order.updated"
    ORDER_SHIPPED = "order.shipped"
    OFFER_CREATED = "offer.created"
    OFFER_ACCEPTED = "offer.accepted"


@dataclass(slots=True, frozen=True)
class Actor:
    """Identity and role of the caller of a guarded operation."""

    user_id: str
    role: AccountType
    display_name: str = ""
    email: str = ""


@dataclass(slots=True)
class PriceSnapshot:
    """Pricing copied from the accepted offer."""

    unit_cost: float = 0.0
    projected_cost: float = 0.0
    projected_units: int = 0
    shipping_cost: float = 0.0


@dataclass(slots=True)
class ShippingInfo:
    """Carrier tracking data supplied on the transition to Shipped."""

    tracking_number: str
    carrier: str

    @property
    def is_complete(self) -> bool:
        return bool(self.tracking_number.strip()) and bool(self.carrier.strip())


@dataclass(slots=True)
class Order:
    """A manufacturing request from a creator."""

    id: str
    title: str
    creator: str
    quantity: int
    description: str = ""
    creator_name: str = ""
    status: OrderStatus = OrderStatus.ORDER_CREATED
    manufacturer: Optional[str] = None
    manufacturer_name: str = ""
    offers: List[str] = field(default_factory=list)
    selected_offer: Optional[str] = None
    is_archived: bool = False
    price: PriceSnapshot = field(default_factory=PriceSnapshot)
    shipping_info: Optional[ShippingInfo] = None
    due_date: Optional[date] = None
    file_urls: Tuple[str, ...] = tuple()
    tags: Tuple[str, ...] = tuple()
    delivery_address: str = ""
    created_at: datetime = field(default_factory=datetime.utcnow)
    last_update: datetime = field(default_factory=datetime.utcnow)

    @property
    def is_claimed(self) -> bool:
        return self.manufacturer is not None


@dataclass(slots=True)
class Offer:
    """A manufacturer's competing bid against an order."""

    id: str
    order_id: str
    offerer: str
    unit_cost: float
    projected_cost: float
    projected_units: int
    shipping_cost: float
    lead_time: int
    manufacturer_name: str = ""
    manufacturer_email: str = ""
    is_accepted: bool = False
    is_declined: bool = False
    superseded_by: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    last_update: datetime = field(default_factory=datetime.utcnow)

    @property
    def is_pending(self) -> bool:
        return not self.is_accepted and not self.is_declined


@dataclass(slots=True, frozen=True)
class SplitPart:
    """One derived file returned by the external CAD splitting service."""

    name: str
    storage_path: str
    hierarchy: Tuple[str, ...] = tuple()


@dataclass(slots=True)
class Part:
    """An individual CAD-derived component of an order."""

    id: str
    order_id: str
    name: str
    storage_path: str
    hierarchy: Tuple[str, ...] = tuple()
    created_at: datetime = field(default_factory=datetime.utcnow)


@dataclass(slots=True)
class Assembly:
    """A named grouping of parts slated for sequential manufacture."""

    id: str
    order_id: str
    name: str
    build_order: Optional[int] = None
    specifications_completed: bool = False
    created_at: datetime = field(default_factory=datetime.utcnow)


@dataclass(slots=True)
class AssemblyPart:
    """Link row placing a part inside an assembly."""

    id: str
    order_id: str
    assembly_id: str
    part_id: str


@dataclass(slots=True)
class AssemblyWithParts:
    """Read model of an assembly together with its linked part ids."""

    assembly: Assembly
    part_ids: List[str]


@dataclass(slots=True)
class PartSpecification:
    """Manufacturing requirements for one part within one assembly."""

    id: str
    order_id: str
    assembly_id: str
    part_id: str
    quantity: int
    specifications: PartSpecificationContent
    updated_at: datetime = field(default_factory=datetime.utcnow)


@dataclass(slots=True)
class ShippingAddress:
    """Delivery address the manufacturer ships the finished order to."""

    order_id: str
    recipient_name: str
    street1: str
    city: str
    state: str
    postal_code: str
    country: str
    phone_number: str
    company_name: Optional[str] = None
    street2: str = ""


@dataclass(slots=True)
class Chat:
    """Conversation between marketplace users, usually a creator and a manufacturer."""

    id: str
    members: Tuple[str, ...]
    is_direct_message: bool = True
    order_id: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    last_activity: Optional[datetime] = None

    @property
    def activity_at(self) -> datetime:
        return self.last_activity or self.created_at


@dataclass(slots=True)
class ChatMessage:
    id: str
    chat_id: str
    sender_id: str
    content: str
    time_sent: datetime = field(default_factory=datetime.utcnow)
    read_by: Tuple[str, ...] = tuple()


@dataclass(slots=True)
class ActivityEvent:
    """Entry in a user's activity feed."""

    id: str
    event_type: EventType
    description: str
    user_id: str
    order_id: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)


__all__ = [
    "OrderStatus",
    "AccountType",
    "EventType",
    "NotificationType",
    "Actor",
    "PriceSnapshot",
    "ShippingInfo",
    "Order",
    "Offer",
    "SplitPart",
    "Part",
    "Assembly",
    "AssemblyPart",
    "AssemblyWithParts",
    "PartSpecification",
    "ShippingAddress",
    "Chat",
    "ChatMessage",
    "ActivityEvent",
]
