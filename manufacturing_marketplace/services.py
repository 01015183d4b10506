"""Service facade that exposes the marketplace use-cases to clients."""

from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional, Sequence

from .assemblies import AssemblyDecomposer, PartTreeNode, SplitPartInput
from .base import require_identity
from .chats import ChatBoard, ChatSummary
from .domain import (
    ActivityEvent,
    Actor,
    Assembly,
    AssemblyWithParts,
    Chat,
    ChatMessage,
    Offer,
    Order,
    Part,
    PartSpecification,
    ShippingAddress,
    ShippingInfo,
)
from .notifications import ActivityFeed, NotificationDispatcher, RecordingNotificationDispatcher
from .offers import OfferDecision, OfferLedger, OfferTerms
from .orders import OrderStateMachine
from .repository import MarketplaceStore
from .tracking import (
    ReadinessReport,
    SpecificationPayload,
    SpecificationProgress,
    SpecificationTracker,
)


class MarketplaceService:
    """Facade wiring every component to one store and one dispatcher.

    ``store`` may be a :class:`MarketplaceStore` (in memory) or a
    :class:`~manufacturing_marketplace.storage.MarketplaceDatabase`.
    """

    def __init__(
        self,
        store=None,
        dispatcher: Optional[NotificationDispatcher] = None,
    ) -> None:
        self.store = store if store is not None else MarketplaceStore()
        self.dispatcher = dispatcher if dispatcher is not None else RecordingNotificationDispatcher()
        self.feed = ActivityFeed(self.store)
        self.lifecycle = OrderStateMachine(self.store, self.dispatcher, self.feed)
        self.ledger = OfferLedger(self.store, self.dispatcher, self.feed)
        self.decomposer = AssemblyDecomposer(self.store, self.dispatcher, self.feed)
        self.tracker = SpecificationTracker(self.store, self.dispatcher, self.feed)
        self.chats = ChatBoard(self.store, self.dispatcher, self.feed)

    # ------------------------------------------------------------------
    # Orders
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
        return self.lifecycle.create_order(
            actor,
            title,
            quantity=quantity,
            description=description,
            due_date=due_date,
            file_urls=file_urls,
            tags=tags,
            delivery_address=delivery_address,
        )

    def get_order(self, actor: Actor, order_id: str) -> Order:
        return self.lifecycle.get_order(actor, order_id)

    def list_orders(self, actor: Actor) -> List[Order]:
        return self.lifecycle.list_orders(actor)

    def list_unclaimed_orders(self, actor: Actor) -> List[Order]:
        return self.lifecycle.list_unclaimed_orders(actor)

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
        return self.lifecycle.update_order_details(
            actor,
            order_id,
            title=title,
            description=description,
            due_date=due_date,
            clear_due_date=clear_due_date,
        )

    def advance_order(
        self, actor: Actor, order_id: str, shipping: Optional[ShippingInfo] = None
    ) -> Order:
        return self.lifecycle.advance(actor, order_id, shipping)

    def archive_order(self, actor: Actor, order_id: str, archived: bool = True) -> Order:
        return self.lifecycle.archive_order(actor, order_id, archived)

    def save_shipping_address(self, actor: Actor, address: ShippingAddress) -> ShippingAddress:
        return self.lifecycle.save_shipping_address(actor, address)

    def get_shipping_address(self, actor: Actor, order_id: str) -> Optional[ShippingAddress]:
        return self.lifecycle.get_shipping_address(actor, order_id)

    # ------------------------------------------------------------------
    # Parts and assemblies
    # ------------------------------------------------------------------
    def register_parts(
        self, actor: Actor, order_id: str, split_parts: Sequence[SplitPartInput]
    ) -> List[Part]:
        return self.decomposer.register_parts(actor, order_id, split_parts)

    def part_tree(self, actor: Actor, order_id: str) -> List[PartTreeNode]:
        self.get_order(actor, order_id)
        return self.decomposer.part_tree(order_id)

    def unassigned_parts(self, actor: Actor, order_id: str) -> List[Part]:
        self.get_order(actor, order_id)
        return self.decomposer.unassigned_parts(order_id)

    def create_assembly(
        self, actor: Actor, order_id: str, name: str, part_ids: Sequence[str]
    ) -> AssemblyWithParts:
        return self.decomposer.create_assembly(actor, order_id, name, part_ids)

    def list_assemblies(self, actor: Actor, order_id: str) -> List[AssemblyWithParts]:
        self.get_order(actor, order_id)
        return self.decomposer.list_assemblies(order_id)

    def add_parts_to_assembly(
        self, actor: Actor, assembly_id: str, part_ids: Sequence[str]
    ) -> AssemblyWithParts:
        return self.decomposer.add_parts_to_assembly(actor, assembly_id, part_ids)

    def remove_parts_from_assembly(
        self, actor: Actor, assembly_id: str, part_ids: Sequence[str]
    ) -> AssemblyWithParts:
        return self.decomposer.remove_parts_from_assembly(actor, assembly_id, part_ids)

    def reorder_assemblies(
        self, actor: Actor, order_id: str, ordered_ids: Sequence[str]
    ) -> List[Assembly]:
        return self.decomposer.reorder_assemblies(actor, order_id, ordered_ids)

    # ------------------------------------------------------------------
    # Specifications
    # ------------------------------------------------------------------
    def save_part_specification(
        self,
        actor: Actor,
        order_id: str,
        assembly_id: str,
        part_id: str,
        quantity: int,
        specifications: SpecificationPayload,
    ) -> PartSpecification:
        return self.tracker.save_part_specification(
            actor, order_id, assembly_id, part_id, quantity, specifications
        )

    def _assembly_order(self, actor: Actor, assembly_id: str) -> Order:
        assembly = self.decomposer.get_assembly(assembly_id)
        return self.get_order(actor, assembly.order_id)

    def get_part_specification(
        self, actor: Actor, assembly_id: str, part_id: str
    ) -> PartSpecification:
        self._assembly_order(actor, assembly_id)
        return self.tracker.get_part_specification(assembly_id, part_id)

    def list_part_specifications(self, actor: Actor, assembly_id: str) -> List[PartSpecification]:
        self._assembly_order(actor, assembly_id)
        return self.tracker.list_part_specifications(assembly_id)

    def mark_assembly_complete(self, actor: Actor, assembly_id: str) -> Assembly:
        return self.tracker.mark_assembly_complete(actor, assembly_id)

    def reopen_assembly(self, actor: Actor, assembly_id: str) -> Assembly:
        return self.tracker.reopen_assembly(actor, assembly_id)

    def specification_progress(self, actor: Actor, assembly_id: str) -> SpecificationProgress:
        self._assembly_order(actor, assembly_id)
        return self.tracker.specification_progress(assembly_id)

    def order_readiness(self, actor: Actor, order_id: str) -> ReadinessReport:
        return self.tracker.order_readiness(actor, order_id)

    # ------------------------------------------------------------------
    # Offers
    # ------------------------------------------------------------------
    def create_offer(self, actor: Actor, order_id: str, terms: OfferTerms) -> Offer:
        return self.ledger.create_offer(actor, order_id, terms)

    def list_offers(self, actor: Actor, order_id: str) -> List[Offer]:
        return self.ledger.list_offers(actor, order_id)

    def list_pending_offers(self, actor: Actor, order_id: str) -> List[Offer]:
        return self.ledger.list_pending_offers(actor, order_id)

    def accept_offer(self, actor: Actor, offer_id: str) -> OfferDecision:
        return self.ledger.accept_offer(actor, offer_id)

    def decline_offer(self, actor: Actor, offer_id: str) -> OfferDecision:
        return self.ledger.decline_offer(actor, offer_id)

    # ------------------------------------------------------------------
    # Chats
    # ------------------------------------------------------------------
    def start_direct_chat(
        self, actor: Actor, target_user_id: str, order_id: Optional[str] = None
    ) -> Chat:
        return self.chats.start_direct_chat(actor, target_user_id, order_id)

    def list_chats(self, actor: Actor) -> List[ChatSummary]:
        return self.chats.list_chats(actor)

    def get_chat_messages(
        self,
        actor: Actor,
        chat_id: str,
        *,
        limit: Optional[int] = None,
        before: Optional[datetime] = None,
    ) -> List[ChatMessage]:
        return self.chats.get_messages(actor, chat_id, limit=limit, before=before)

    def send_chat_message(self, actor: Actor, chat_id: str, content: str) -> ChatMessage:
        return self.chats.send_message(actor, chat_id, content)

    # ------------------------------------------------------------------
    # Activity feed
    # ------------------------------------------------------------------
    def recent_events(self, actor: Actor, *, limit: int = 10) -> List[ActivityEvent]:
        actor = require_identity(actor)
        return self.feed.recent(actor.user_id, limit=limit)

    def close(self) -> None:
        self.store.close()


__all__ = ["MarketplaceService"]
