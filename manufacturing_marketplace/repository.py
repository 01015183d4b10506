"""Simple in-memory repositories used by the marketplace service layer."""

from __future__ import annotations

import copy
import threading
from contextlib import contextmanager
from typing import (
    Callable,
    Dict,
    Generic,
    Iterator,
    List,
    MutableMapping,
    Optional,
    TypeVar,
)

from .domain import (
    ActivityEvent,
    Assembly,
    AssemblyPart,
    Chat,
    ChatMessage,
    Offer,
    Order,
    Part,
    PartSpecification,
    ShippingAddress,
)

T = TypeVar("T")


class RepositoryError(RuntimeError):
    """Base exception for repository errors."""


class DuplicateRecordError(RepositoryError):
    """Raised when attempting to insert a record that already exists."""


class RecordNotFoundError(RepositoryError):
    """Raised when a requested record is missing."""


_ABSENT = object()


class InMemoryRepository(Generic[T]):
    """Generic repository backed by a simple dictionary.

    Records are copied on the way in and on the way out, so callers never
    hold a reference to stored state and every change goes through ``add``,
    ``upsert`` or ``remove``. While a transaction is open those writes are
    journaled: ``rollback`` puts back the previous value of each touched key
    without copying the rest of the repository.
    """

    def __init__(self) -> None:
        self._items: MutableMapping[str, T] = {}
        self._journal: Optional[Dict[str, object]] = None
        self._key_order: Optional[List[str]] = None

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._items

    def __len__(self) -> int:
        return len(self._items)

    def _remember(self, item_id: str) -> None:
        if self._journal is not None and item_id not in self._journal:
            self._journal[item_id] = self._items.get(item_id, _ABSENT)

    def add(self, item_id: str, item: T) -> None:
        if item_id in self._items:
            raise DuplicateRecordError(f"Record with id {item_id!r} already exists")
        self._remember(item_id)
        self._items[item_id] = copy.deepcopy(item)

    def upsert(self, item_id: str, item: T) -> None:
        self._remember(item_id)
        self._items[item_id] = copy.deepcopy(item)

    def get(self, item_id: str) -> T:
        try:
            return copy.deepcopy(self._items[item_id])
        except KeyError as exc:
            raise RecordNotFoundError(f"Record with id {item_id!r} not found") from exc

    def remove(self, item_id: str) -> None:
        if item_id not in self._items:
            raise RecordNotFoundError(f"Record with id {item_id!r} not found")
        if self._journal is not None and self._key_order is None:
            # Deleting and re-inserting would move the key to the end.
            self._key_order = list(self._items)
        self._remember(item_id)
        del self._items[item_id]

    def list(self) -> List[T]:
        return copy.deepcopy(list(self._items.values()))

    def filter(self, predicate: Callable[[T], bool]) -> List[T]:
        return copy.deepcopy([item for item in self._items.values() if predicate(item)])

    def for_order(self, order_id: str) -> List[T]:
        """Records whose ``order_id`` matches, in insertion order."""
        return self.filter(lambda item: getattr(item, "order_id", None) == order_id)

    def __iter__(self) -> Iterator[T]:
        return iter(self.list())

    # ------------------------------------------------------------------
    # Transaction support
    # ------------------------------------------------------------------
    def begin(self) -> None:
        self._journal = {}
        self._key_order = None

    def commit(self) -> None:
        self._journal = None
        self._key_order = None

    def rollback(self) -> None:
        for item_id, previous in (self._journal or {}).items():
            if previous is _ABSENT:
                self._items.pop(item_id, None)
            else:
                self._items[item_id] = previous
        if self._key_order is not None:
            self._items = {
                item_id: self._items[item_id]
                for item_id in self._key_order
                if item_id in self._items
            }
        self.commit()


class MarketplaceStore:
    """In-memory bundle of every marketplace repository.

    ``atomic()`` serialises writers behind a re-entrant lock and undoes every
    write made inside the block if it raises.
    """

    def __init__(self) -> None:
        self.orders: InMemoryRepository[Order] = InMemoryRepository()
        self.offers: InMemoryRepository[Offer] = InMemoryRepository()
        self.parts: InMemoryRepository[Part] = InMemoryRepository()
        self.assemblies: InMemoryRepository[Assembly] = InMemoryRepository()
        self.assembly_parts: InMemoryRepository[AssemblyPart] = InMemoryRepository()
        self.part_specifications: InMemoryRepository[PartSpecification] = InMemoryRepository()
        self.shipping_addresses: InMemoryRepository[ShippingAddress] = InMemoryRepository()
        self.chats: InMemoryRepository[Chat] = InMemoryRepository()
        self.chat_messages: InMemoryRepository[ChatMessage] = InMemoryRepository()
        self.events: InMemoryRepository[ActivityEvent] = InMemoryRepository()
        self._lock = threading.RLock()
        self._depth = 0

    def _repositories(self) -> List[InMemoryRepository]:
        return [
            self.orders,
            self.offers,
            self.parts,
            self.assemblies,
            self.assembly_parts,
            self.part_specifications,
            self.shipping_addresses,
            self.chats,
            self.chat_messages,
            self.events,
        ]

    @contextmanager
    def atomic(self) -> Iterator["MarketplaceStore"]:
        with self._lock:
            if self._depth:
                # Nested blocks join the outer unit of work.
                self._depth += 1
                try:
                    yield self
                finally:
                    self._depth -= 1
                return
            repositories = self._repositories()
            for repo in repositories:
                repo.begin()
            self._depth = 1
            try:
                yield self
            except BaseException:
                for repo in repositories:
                    repo.rollback()
                raise
            else:
                for repo in repositories:
                    repo.commit()
            finally:
                self._depth = 0

    def close(self) -> None:
        """In-memory stores hold no external resources."""


__all__ = [
    "InMemoryRepository",
    "MarketplaceStore",
    "RepositoryError",
    "DuplicateRecordError",
    "RecordNotFoundError",
]
