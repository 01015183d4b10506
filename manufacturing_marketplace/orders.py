"""Order creation and the order lifecycle state machine."""

from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional, Sequence, Tuple
from uuid import uuid4

from .base import (
    MarketplaceComponent,
    require_identity,
    require_order_creator,
    require_order_party,
    require_role,
)
from .domain import (
    AccountType,
    Actor,
    EventType,
    NotificationType,
    Order,
    OrderStatus,
    ShippingAddress,
    ShippingInfo,
)
from .exceptions import ForbiddenError, ValidationError
from .logging_config import get_logger
from .notifications import NotificationEvent, dispatch, format_order_id, order_snapshot

logger = get_logger(__name__)

ORDER_STATUS_SEQUENCE: Tuple[OrderStatus, ...] = (
    OrderStatus.ORDER_CREATED,
    OrderStatus.MANUFACTURER_OFFER,
    OrderStatus.ORDER_ACCEPTED,
    OrderStatus.MACHINE_SETUP,
    OrderStatus.STARTED_MANUFACTURING,
    OrderStatus.QUALITY_CHECK,
    OrderStatus.SHIPPED,
    OrderStatus.COMPLETED,
)

TERMINAL_STATUS = OrderStatus.COMPLETED

# Steps owned by the offer ledger rather than by advance().
OFFER_DRIVEN_STATUSES = frozenset(
    {OrderStatus.MANUFACTURER_OFFER, OrderStatus.ORDER_ACCEPTED}
)

# Title, description and due date stay editable while bidding is open.
EDITABLE_STATUSES = frozenset(
    {OrderStatus.ORDER_CREATED, OrderStatus.MANUFACTURER_OFFER}
)


def get_next_status(current: OrderStatus) -> Optional[OrderStatus]:
    """Return the status after ``current``, or None once the order is Completed."""
    index = ORDER_STATUS_SEQUENCE.index(current)
    if index + 1 >= len(ORDER_STATUS_SEQUENCE):
        return None
    return ORDER_STATUS_SEQUENCE[index + 1]


class OrderStateMachine(MarketplaceComponent):
    """Creates orders and moves them through the fixed status sequence."""

    # ------------------------------------------------------------------
    # Creation and reads
    # ------------------------------------------------------------------
    def create_order(
        self,
        actor: Actor,
        title: str,
        *,
        quantity: int,
        description: str = "",
        due_date: Optional[date] = None,
        file_urls: Sequence[str] = (),
        tags: Sequence[str] = (),
        delivery_address: str = "",
    ) -> Order:
        require_role(actor, (AccountType.CREATOR, AccountType.ADMIN))
        if not title or not title.strip():
            raise ValidationError("Order title is required")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise ValidationError("Order quantity must be at least 1", {"quantity": quantity})
        now = datetime.utcnow()
        order = Order(
            id=str(uuid4()),
            title=title.strip(),
            creator=actor.user_id,
            creator_name=actor.display_name,
            quantity=quantity,
            description=description,
            due_date=due_date,
            file_urls=tuple(file_urls),
            tags=tuple(dict.fromkeys(tags)),
            delivery_address=delivery_address,
            created_at=now,
            last_update=now,
        )
        with self._unit_of_work("create order"):
            self.store.orders.add(order.id, order)
            self.feed.record(
                EventType.SUCCESS,
                f"Order #{format_order_id(order.id)} created",
                actor.user_id,
                order.id,
            )
        logger.info("Order %s created by %s", order.id, actor.user_id)
        dispatch(
            self.dispatcher,
            NotificationEvent(
                type=NotificationType.ORDER_CREATED,
                recipient_id=order.creator,
                order_id=order.id,
                payload={"order": order_snapshot(order)},
            ),
        )
        return order

    def get_order(self, actor: Actor, order_id: str) -> Order:
        actor = require_identity(actor)
        order = self._load_order(order_id)
        if (
            actor.role == AccountType.MANUFACTURER
            and order.manufacturer is None
            and not order.is_archived
        ):
            # Unclaimed orders are open for bidding.
            return order
        require_order_party(actor, order)
        return order

    def list_orders(self, actor: Actor) -> List[Order]:
        actor = require_identity(actor)
        if actor.role == AccountType.ADMIN:
            orders = self.store.orders.list()
        elif actor.role == AccountType.MANUFACTURER:
            orders = self.store.orders.filter(lambda order: order.manufacturer == actor.user_id)
        else:
            orders = self.store.orders.filter(lambda order: order.creator == actor.user_id)
        orders.sort(key=lambda order: order.created_at)
        return orders

    def list_unclaimed_orders(self, actor: Actor) -> List[Order]:
        require_role(actor, (AccountType.MANUFACTURER, AccountType.ADMIN))
        orders = self.store.orders.filter(
            lambda order: order.manufacturer is None and not order.is_archived
        )
        orders.sort(key=lambda order: order.created_at)
        return orders

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def advance(
        self,
        actor: Actor,
        order_id: str,
        shipping: Optional[ShippingInfo] = None,
    ) -> Order:
        """Move the order one step forward.

        Only manufacturers (the one assigned to the order) and admins may
        advance. The step into Shipped requires ``shipping``; without it
        nothing changes.
        """
        actor = require_role(actor, (AccountType.MANUFACTURER, AccountType.ADMIN))
        with self._unit_of_work("advance order"):
            order = self._load_order(order_id)
            if actor.role == AccountType.MANUFACTURER and order.manufacturer != actor.user_id:
                raise ForbiddenError(
                    f"Only the assigned manufacturer may advance order {order_id!r}",
                    {"order_id": order_id},
                )
            next_status = get_next_status(order.status)
            if next_status is None:
                raise ValidationError(
                    f"Order {order_id!r} is {order.status.value!r}; no further transition",
                    {"status": order.status.value},
                )
            if next_status in OFFER_DRIVEN_STATUSES:
                raise ValidationError(
                    f"Transition to {next_status.value!r} happens through the offer process",
                    {"status": order.status.value, "next_status": next_status.value},
                )
            if next_status == OrderStatus.SHIPPED:
                if shipping is None or not shipping.is_complete:
                    logger.warning("Rejected shipping transition for order %s without tracking data", order_id)
                    raise ValidationError(
                        "Tracking number and carrier are required to mark the order shipped",
                        {"order_id": order_id},
                    )
                order.shipping_info = ShippingInfo(
                    tracking_number=shipping.tracking_number.strip(),
                    carrier=shipping.carrier.strip(),
                )
            previous = order.status
            order.status = next_status
            order.last_update = datetime.utcnow()
            self.store.orders.upsert(order.id, order)
            if next_status == OrderStatus.SHIPPED:
                self.feed.record(
                    EventType.SHIPMENT,
                    f"Order #{format_order_id(order.id)} has been shipped",
                    order.creator,
                    order.id,
                )
            else:
                self.feed.record(
                    EventType.ORDER,
                    f"Order #{format_order_id(order.id)} is now {next_status.value}",
                    order.creator,
                    order.id,
                )

        logger.info(
            "Order %s advanced from %s to %s by %s",
            order.id,
            previous.value,
            next_status.value,
            actor.user_id,
        )
        notification_type = (
            NotificationType.ORDER_SHIPPED
            if next_status == OrderStatus.SHIPPED
            else NotificationType.ORDER_UPDATED
        )
        dispatch(
            self.dispatcher,
            NotificationEvent(
                type=notification_type,
                recipient_id=order.creator,
                order_id=order.id,
                payload={"order": order_snapshot(order)},
            ),
        )
        return order

    def update_order_details(
        self,
        actor: Actor,
        order_id: str,
        *,
        title: Optional[str] = None,
        description: Optional[str] = None,
        due_date: Optional[date] = None,
        clear_due_date: bool = False,
    ) -> Order:
        """Edit the descriptive fields of an order that has no manufacturer yet.

        Fields left as None keep their value; ``clear_due_date`` removes the
        due date.
        """
        require_order_creator(actor, self._load_order(order_id))
        if title is not None and not title.strip():
            raise ValidationError("Order title is required")
        with self._unit_of_work("update order details"):
            order = self._load_order(order_id)
            if order.is_claimed or order.status not in EDITABLE_STATUSES:
                raise ValidationError(
                    "Order details are fixed once a manufacturer is assigned",
                    {"status": order.status.value},
                )
            changed = []
            if title is not None and title.strip() != order.title:
                order.title = title.strip()
                changed.append("title")
            if description is not None and description != order.description:
                order.description = description
                changed.append("description")
            if clear_due_date and order.due_date is not None:
                order.due_date = None
                changed.append("due_date")
            elif due_date is not None and due_date != order.due_date:
                order.due_date = due_date
                changed.append("due_date")
            if changed:
                order.last_update = datetime.utcnow()
                self.store.orders.upsert(order.id, order)
                self.feed.record(
                    EventType.ORDER,
                    f"Order #{format_order_id(order.id)} details updated",
                    order.creator,
                    order.id,
                )
        if not changed:
            return order
        logger.info("Order %s updated (%s)", order_id, ", ".join(changed))
        dispatch(
            self.dispatcher,
            NotificationEvent(
                type=NotificationType.ORDER_UPDATED,
                recipient_id=order.creator,
                order_id=order.id,
                payload={"order": order_snapshot(order), "changed": changed},
            ),
        )
        return order

    def archive_order(self, actor: Actor, order_id: str, archived: bool = True) -> Order:
        require_order_party(actor, self._load_order(order_id))
        with self._unit_of_work("archive order"):
            order = self._load_order(order_id)
            if archived and order.status != TERMINAL_STATUS:
                raise ValidationError(
                    "Only completed orders can be archived", {"status": order.status.value}
                )
            order.is_archived = archived
            order.last_update = datetime.utcnow()
            self.store.orders.upsert(order.id, order)
        logger.info("Order %s %s", order_id, "archived" if archived else "unarchived")
        return order

    # ------------------------------------------------------------------
    # Shipping address
    # ------------------------------------------------------------------
    def save_shipping_address(self, actor: Actor, address: ShippingAddress) -> ShippingAddress:
        order = self._load_order(address.order_id)
        require_order_creator(actor, order)
        required = {
            "recipient_name": address.recipient_name,
            "street1": address.street1,
            "city": address.city,
            "state": address.state,
            "postal_code": address.postal_code,
            "country": address.country,
            "phone_number": address.phone_number,
        }
        missing = [name for name, value in required.items() if not value or not value.strip()]
        if missing:
            raise ValidationError("All shipping fields are required", {"missing": missing})
        with self._unit_of_work("save shipping address"):
            self.store.shipping_addresses.upsert(address.order_id, address)
        logger.info("Saved shipping address for order %s", address.order_id)
        return address

    def get_shipping_address(self, actor: Actor, order_id: str) -> Optional[ShippingAddress]:
        order = self._load_order(order_id)
        require_order_party(actor, order)
        if order_id not in self.store.shipping_addresses:
            return None
        return self.store.shipping_addresses.get(order_id)


__all__ = [
    "OrderStateMachine",
    "ORDER_STATUS_SEQUENCE",
    "OFFER_DRIVEN_STATUSES",
    "EDITABLE_STATUSES",
    "TERMINAL_STATUS",
    "get_next_status",
]
