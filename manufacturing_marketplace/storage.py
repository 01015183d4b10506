"""SQLite-backed persistence helpers for the marketplace."""

from __future__ import annotations

import pickle
import sqlite3
import threading
from contextlib import contextmanager
from typing import Callable, Generic, Iterator, List, Optional, TypeVar

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
from .logging_config import get_logger
from .repository import DuplicateRecordError, RecordNotFoundError

T = TypeVar("T")

logger = get_logger(__name__)


class SQLiteRepository(Generic[T]):
    """Pickled records keyed by id, with the owning order id indexed.

    Rows keep their rowid on update, so ``list`` and ``for_order`` return
    records in the order they were first stored.
    """

    def __init__(
        self,
        connection: sqlite3.Connection,
        table: str,
        commit: Optional[Callable[[], None]] = None,
    ) -> None:
        self._connection = connection
        self._table = table
        self._commit = commit or connection.commit
        connection.execute(
            f"CREATE TABLE IF NOT EXISTS {table} ("  # nosec - static table names
            "id TEXT PRIMARY KEY, order_id TEXT, payload BLOB NOT NULL)"
        )
        connection.execute(
            f"CREATE INDEX IF NOT EXISTS {table}_order_id ON {table} (order_id)"
        )
        connection.commit()

    @staticmethod
    def _order_key(item: T) -> Optional[str]:
        return getattr(item, "order_id", None)

    def _load_rows(self, where: str = "", params: tuple = ()) -> List[T]:
        cursor = self._connection.execute(
            f"SELECT payload FROM {self._table} {where} ORDER BY rowid", params
        )
        return [pickle.loads(row["payload"]) for row in cursor.fetchall()]

    def __contains__(self, item_id: object) -> bool:
        if not isinstance(item_id, str):
            return False
        row = self._connection.execute(
            f"SELECT 1 FROM {self._table} WHERE id = ?", (item_id,)
        ).fetchone()
        return row is not None

    def __iter__(self) -> Iterator[T]:
        return iter(self.list())

    def __len__(self) -> int:
        row = self._connection.execute(f"SELECT COUNT(*) FROM {self._table}").fetchone()
        return row[0]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def add(self, item_id: str, item: T) -> None:
        try:
            self._connection.execute(
                f"INSERT INTO {self._table} (id, order_id, payload) VALUES (?, ?, ?)",
                (item_id, self._order_key(item), pickle.dumps(item)),
            )
        except sqlite3.IntegrityError as exc:
            raise DuplicateRecordError(f"Record with id {item_id!r} already exists") from exc
        self._commit()

    def upsert(self, item_id: str, item: T) -> None:
        self._connection.execute(
            f"INSERT INTO {self._table} (id, order_id, payload) VALUES (?, ?, ?) "
            "ON CONFLICT(id) DO UPDATE SET order_id = excluded.order_id, payload = excluded.payload",
            (item_id, self._order_key(item), pickle.dumps(item)),
        )
        self._commit()

    def remove(self, item_id: str) -> None:
        deleted = self._connection.execute(
            f"DELETE FROM {self._table} WHERE id = ?", (item_id,)
        ).rowcount
        if not deleted:
            raise RecordNotFoundError(f"Record with id {item_id!r} not found")
        self._commit()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def get(self, item_id: str) -> T:
        records = self._load_rows("WHERE id = ?", (item_id,))
        if not records:
            raise RecordNotFoundError(f"Record with id {item_id!r} not found")
        return records[0]

    def list(self) -> List[T]:
        return self._load_rows()

    def for_order(self, order_id: str) -> List[T]:
        return self._load_rows("WHERE order_id = ?", (order_id,))

    def filter(self, predicate: Callable[[T], bool]) -> List[T]:
        return [item for item in self.list() if predicate(item)]


class MarketplaceDatabase:
    """Convenience facade bundling SQLite repositories for all aggregates.

    Writes outside ``atomic()`` commit immediately; inside it they are held in
    one SQLite transaction that is committed when the outermost block exits
    and rolled back if it raises.
    """

    def __init__(self, path: str) -> None:
        connection = sqlite3.connect(path, check_same_thread=False)
        connection.row_factory = sqlite3.Row
        self._connection = connection
        self._lock = threading.RLock()
        self._depth = 0
        self.orders = self._repository(Order, "orders")
        self.offers = self._repository(Offer, "offers")
        self.parts = self._repository(Part, "parts")
        self.assemblies = self._repository(Assembly, "assemblies")
        self.assembly_parts = self._repository(AssemblyPart, "assembly_parts")
        self.part_specifications = self._repository(
            PartSpecification, "part_specifications"
        )
        self.shipping_addresses = self._repository(
            ShippingAddress, "shipping_addresses"
        )
        self.chats = self._repository(Chat, "chats")
        self.chat_messages = self._repository(ChatMessage, "chat_messages")
        self.events = self._repository(ActivityEvent, "events")

    def _repository(self, record_type: type, table: str) -> SQLiteRepository:
        return SQLiteRepository[record_type](  # type: ignore[valid-type]
            self._connection, table, commit=self._commit
        )

    def _commit(self) -> None:
        if self._depth == 0:
            self._connection.commit()

    @contextmanager
    def atomic(self) -> Iterator["MarketplaceDatabase"]:
        with self._lock:
            self._depth += 1
            try:
                yield self
            except BaseException:
                self._depth -= 1
                if self._depth == 0:
                    logger.warning("Rolling back marketplace transaction")
                    self._connection.rollback()
                raise
            else:
                self._depth -= 1
                if self._depth == 0:
                    self._connection.commit()

    def close(self) -> None:
        self._connection.close()

    def __enter__(self) -> "MarketplaceDatabase":
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        traceback: Optional[BaseException],
    ) -> None:
        self.close()


__all__ = ["SQLiteRepository", "MarketplaceDatabase"]
