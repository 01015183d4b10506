"""Shared plumbing for the marketplace components: identity checks and units of work."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from typing import Iterable, Iterator, Optional, TypeVar

from .domain import AccountType, Actor, Order
from .exceptions import ForbiddenError, NotFoundError, PersistenceError, UnauthorizedError
from .logging_config import get_logger
from .notifications import ActivityFeed, NotificationDispatcher
from .repository import RecordNotFoundError, RepositoryError

T = TypeVar("T")

logger = get_logger(__name__)


def require_identity(actor: Optional[Actor]) -> Actor:
    if actor is None or not actor.user_id or not actor.user_id.strip():
        raise UnauthorizedError()
    return actor


def require_role(actor: Optional[Actor], roles: Iterable[AccountType]) -> Actor:
    actor = require_identity(actor)
    allowed = tuple(roles)
    if actor.role not in allowed:
        raise ForbiddenError(
            f"Role {actor.role.value!r} may not perform this operation",
            {"allowed_roles": [role.value for role in allowed]},
        )
    return actor


def is_order_party(actor: Actor, order: Order) -> bool:
    return (
        actor.role == AccountType.ADMIN
        or actor.user_id == order.creator
        or (order.manufacturer is not None and actor.user_id == order.manufacturer)
    )


def require_order_party(actor: Optional[Actor], order: Order) -> Actor:
    actor = require_identity(actor)
    if not is_order_party(actor, order):
        raise ForbiddenError(
            f"User {actor.user_id!r} is not a party to order {order.id!r}",
            {"order_id": order.id},
        )
    return actor


def require_order_creator(actor: Optional[Actor], order: Order) -> Actor:
    actor = require_identity(actor)
    if actor.role != AccountType.ADMIN and actor.user_id != order.creator:
        raise ForbiddenError(
            f"Only the creator of order {order.id!r} may perform this operation",
            {"order_id": order.id},
        )
    return actor


class MarketplaceComponent:
    """Base for components that share one store, dispatcher and activity feed."""

    def __init__(
        self,
        store,
        dispatcher: Optional[NotificationDispatcher] = None,
        feed: Optional[ActivityFeed] = None,
    ) -> None:
        self.store = store
        self.dispatcher = dispatcher
        self.feed = feed or ActivityFeed(store)

    @staticmethod
    def _load(repository, item_id: str, entity: str) -> T:
        try:
            return repository.get(item_id)
        except RecordNotFoundError as exc:
            raise NotFoundError(entity, item_id) from exc

    def _load_order(self, order_id: str) -> Order:
        return self._load(self.store.orders, order_id, "Order")

    @contextmanager
    def _unit_of_work(self, operation: str) -> Iterator[None]:
        """Run a block atomically, reporting store failures as PersistenceError."""
        try:
            with self.store.atomic():
                yield
        except (RepositoryError, sqlite3.Error) as exc:
            logger.error("Store failure during %s: %s", operation, exc)
            raise PersistenceError(operation, exc) from exc


__all__ = [
    "MarketplaceComponent",
    "require_identity",
    "require_role",
    "require_order_party",
    "require_order_creator",
    "is_order_party",
]
