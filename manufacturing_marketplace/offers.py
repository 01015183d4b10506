"""Competitive offers against an order and single-winner selection."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional
from uuid import uuid4

from .base import (
    MarketplaceComponent,
    require_order_creator,
    require_order_party,
    require_role,
)
from .domain import (
    AccountType,
    Actor,
    EventType,
    NotificationType,
    Offer,
    Order,
    OrderStatus,
    PriceSnapshot,
)
from .exceptions import ConflictError, ValidationError
from .logging_config import get_logger
from .notifications import (
    NotificationEvent,
    dispatch,
    format_order_id,
    offer_snapshot,
    order_snapshot,
)

logger = get_logger(__name__)


@dataclass(slots=True)
class OfferTerms:
    """Commercial terms a manufacturer submits with an offer."""

    unit_cost: float
    shipping_cost: float
    projected_units: int
    lead_time: int
    projected_cost: Optional[float] = None

    def validate(self) -> None:
        if self.unit_cost < 0 or self.shipping_cost < 0:
            raise ValidationError("Offer costs cannot be negative")
        if self.projected_cost is not None and self.projected_cost < 0:
            raise ValidationError("Projected cost cannot be negative")
        if isinstance(self.projected_units, bool) or int(self.projected_units) != self.projected_units:
            raise ValidationError("Projected units must be a whole number")
        if self.projected_units < 1:
            raise ValidationError("Projected units must be at least 1")
        if self.lead_time < 0:
            raise ValidationError("Lead time cannot be negative")

    @property
    def total_projected_cost(self) -> float:
        if self.projected_cost is not None:
            return self.projected_cost
        return self.unit_cost * self.projected_units


@dataclass(slots=True)
class OfferDecision:
    """Outcome of accepting or declining an offer."""

    offer: Offer
    order: Order
    superseded: List[Offer] = field(default_factory=list)


class OfferLedger(MarketplaceComponent):
    """Accepts competing offers and enforces single-winner selection."""

    def _offer(self, offer_id: str) -> Offer:
        return self._load(self.store.offers, offer_id, "Offer")

    def _offers_for(self, order_id: str) -> List[Offer]:
        offers = self.store.offers.for_order(order_id)
        offers.sort(key=lambda offer: offer.created_at)
        return offers

    def create_offer(self, actor: Actor, order_id: str, terms: OfferTerms) -> Offer:
        require_role(actor, (AccountType.MANUFACTURER, AccountType.ADMIN))
        terms.validate()
        now = datetime.utcnow()
        with self._unit_of_work("create offer"):
            order = self._load_order(order_id)
            if order.is_archived:
                raise ValidationError("Archived orders do not accept offers", {"order_id": order_id})
            if order.selected_offer is not None:
                raise ValidationError(
                    "Order already has an accepted offer",
                    {"order_id": order_id, "selected_offer": order.selected_offer},
                )
            offer = Offer(
                id=str(uuid4()),
                order_id=order_id,
                offerer=actor.user_id,
                unit_cost=terms.unit_cost,
                projected_cost=terms.total_projected_cost,
                projected_units=int(terms.projected_units),
                shipping_cost=terms.shipping_cost,
                lead_time=terms.lead_time,
                manufacturer_name=actor.display_name,
                manufacturer_email=actor.email,
                created_at=now,
                last_update=now,
            )
            self.store.offers.add(offer.id, offer)
            order.offers.append(offer.id)
            if order.status == OrderStatus.ORDER_CREATED:
                order.status = OrderStatus.MANUFACTURER_OFFER
            order.last_update = now
            self.store.orders.upsert(order.id, order)
            label = format_order_id(order_id)
            self.feed.record(
                EventType.OFFER, f"New offer received for order #{label}", order.creator, order_id
            )
            self.feed.record(
                EventType.SUCCESS, f"New offer created for order #{label}", actor.user_id, order_id
            )

        logger.info("Offer %s created by manufacturer %s for order %s", offer.id, actor.user_id, order_id)
        dispatch(
            self.dispatcher,
            NotificationEvent(
                type=NotificationType.OFFER_CREATED,
                recipient_id=order.creator,
                order_id=order_id,
                offer_id=offer.id,
                payload={"offer": offer_snapshot(offer), "order": order_snapshot(order)},
            ),
        )
        return offer

    def list_offers(self, actor: Actor, order_id: str) -> List[Offer]:
        """Every offer ever submitted for the order, oldest first."""
        order = self._load_order(order_id)
        require_order_party(actor, order)
        return self._offers_for(order_id)

    def list_pending_offers(self, actor: Actor, order_id: str) -> List[Offer]:
        return [offer for offer in self.list_offers(actor, order_id) if offer.is_pending]

    def accept_offer(self, actor: Actor, offer_id: str) -> OfferDecision:
        """Select the winning offer and decline every other pending offer.

        The offer flag, the sibling declines and the order update are applied
        in one unit of work.
        """
        offer = self._offer(offer_id)
        require_order_creator(actor, self._load_order(offer.order_id))
        now = datetime.utcnow()
        superseded: List[Offer] = []
        with self._unit_of_work("accept offer"):
            # Re-read inside the unit of work so competing acceptances see each other.
            offer = self._offer(offer_id)
            order = self._load_order(offer.order_id)
            if order.selected_offer is not None:
                raise ConflictError(
                    "Order already has an accepted offer",
                    {"order_id": order.id, "selected_offer": order.selected_offer},
                )
            if not offer.is_pending:
                raise ConflictError(
                    f"Offer {offer_id!r} is no longer open for acceptance",
                    {"is_accepted": offer.is_accepted, "is_declined": offer.is_declined},
                )
            if order.status != OrderStatus.MANUFACTURER_OFFER:
                raise ValidationError(
                    f"Offers can only be accepted while the order is in "
                    f"{OrderStatus.MANUFACTURER_OFFER.value!r}",
                    {"status": order.status.value},
                )

            offer.is_accepted = True
            offer.last_update = now
            self.store.offers.upsert(offer.id, offer)

            for sibling in self._offers_for(order.id):
                if sibling.id == offer.id or not sibling.is_pending:
                    continue
                sibling.is_declined = True
                sibling.superseded_by = offer.id
                sibling.last_update = now
                self.store.offers.upsert(sibling.id, sibling)
                superseded.append(sibling)

            order.price = PriceSnapshot(
                unit_cost=offer.unit_cost,
                projected_cost=offer.projected_cost,
                projected_units=offer.projected_units,
                shipping_cost=offer.shipping_cost,
            )
            order.manufacturer = offer.offerer
            order.manufacturer_name = offer.manufacturer_name
            order.selected_offer = offer.id
            order.offers = [offer.id]
            order.status = OrderStatus.ORDER_ACCEPTED
            order.last_update = now
            self.store.orders.upsert(order.id, order)
            self.feed.record(
                EventType.OFFER,
                f"Your offer for order #{format_order_id(order.id)} was accepted",
                offer.offerer,
                order.id,
            )

        logger.info(
            "Offer %s accepted for order %s by %s; %d competing offer(s) declined",
            offer.id,
            order.id,
            actor.user_id,
            len(superseded),
        )
        dispatch(
            self.dispatcher,
            NotificationEvent(
                type=NotificationType.OFFER_ACCEPTED,
                recipient_id=offer.offerer,
                order_id=order.id,
                offer_id=offer.id,
                payload={"offer": offer_snapshot(offer), "order": order_snapshot(order)},
            ),
        )
        return OfferDecision(offer=offer, order=order, superseded=superseded)

    def decline_offer(self, actor: Actor, offer_id: str) -> OfferDecision:
        """Decline one offer. The order keeps its status even if no offers remain."""
        offer = self._offer(offer_id)
        require_order_creator(actor, self._load_order(offer.order_id))
        now = datetime.utcnow()
        with self._unit_of_work("decline offer"):
            offer = self._offer(offer_id)
            order = self._load_order(offer.order_id)
            if not offer.is_pending:
                raise ConflictError(
                    f"Offer {offer_id!r} has already been decided",
                    {"is_accepted": offer.is_accepted, "is_declined": offer.is_declined},
                )
            offer.is_declined = True
            offer.last_update = now
            self.store.offers.upsert(offer.id, offer)
            order.offers = [item for item in order.offers if item != offer.id]
            order.last_update = now
            self.store.orders.upsert(order.id, order)

        logger.info("Offer %s declined for order %s by %s", offer.id, order.id, actor.user_id)
        return OfferDecision(offer=offer, order=order)


__all__ = ["OfferLedger", "OfferTerms", "OfferDecision"]
