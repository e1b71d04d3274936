"""
In-memory reference substrate.

A stand-in for the external ledger runtime, used by tests, the CLI and
the replay engine. It models just enough of that runtime to exercise
the programs honestly:

    WorldState          committed key → (bytes, version)
    MemoryTransaction   one operation: snapshot reads, buffered writes,
                        read-set tracking, buffered events

Commit validates the read set (MVCC): if any key the operation read has
a different version now, or a scanned range gained or lost keys, the
whole operation is rejected and nothing is applied. Concurrent writers of
one key therefore conflict; writers of disjoint keys do not.

Reads never observe the operation's own buffered writes.
"""

import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from acadledger.core.canonical import canonical_hash, decode
from acadledger.core.exceptions import LedgerError, MVCCReadConflictError
from acadledger.store.query import Selector
from acadledger.store.substrate import Substrate


@dataclass(frozen=True)
class VersionedValue:
    value:   bytes
    version: int


@dataclass(frozen=True)
class Event:
    name:    str
    payload: bytes

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "payload": decode(self.payload)}


@dataclass(frozen=True)
class WriteEntry:
    """One key in a write set. value None means delete."""
    key:   str
    value: Optional[bytes]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key":    self.key,
            "value":  self.value.decode("utf-8") if self.value is not None else None,
            "delete": self.value is None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WriteEntry":
        if data.get("delete"):
            return cls(key=data["key"], value=None)
        return cls(key=data["key"], value=data["value"].encode("utf-8"))


def _in_range(key: str, start_key: str, end_key: str) -> bool:
    return key >= start_key and (end_key == "" or key < end_key)


class MemoryTransaction(Substrate):
    """A single operation's view. Create through WorldState.begin()."""

    def __init__(
        self,
        world:      "WorldState",
        snapshot:   Dict[str, VersionedValue],
        tx_id:      str,
        timestamp:  datetime,
        credential: bytes,
    ) -> None:
        self._world      = world
        self._snapshot   = snapshot
        self._tx_id      = tx_id
        self._timestamp  = timestamp
        self._credential = credential or b""

        self._reads:       Dict[str, Optional[int]]                      = {}
        self._range_reads: List[Tuple[str, str, Tuple[Tuple[str, int], ...]]] = []
        self._writes:      Dict[str, Optional[bytes]]                    = {}
        self._events:      List[Event]                                   = []
        self.committed:    bool                                          = False

    # ── Substrate contract ────────────────────────────────────

    def get(self, key: str) -> Optional[bytes]:
        entry = self._snapshot.get(key)
        self._reads[key] = entry.version if entry else None
        return entry.value if entry else None

    def put(self, key: str, value: bytes) -> None:
        if not key:
            raise ValueError("key must be a non-empty string")
        self._writes[key] = bytes(value)

    def delete(self, key: str) -> None:
        self._writes[key] = None

    def range_scan(self, start_key: str, end_key: str) -> Iterator[Tuple[str, bytes]]:
        rows = [
            (key, entry)
            for key, entry in sorted(self._snapshot.items())
            if _in_range(key, start_key, end_key)
        ]
        self._range_reads.append(
            (start_key, end_key, tuple((key, entry.version) for key, entry in rows))
        )
        return iter([(key, entry.value) for key, entry in rows])

    def structured_query(self, query: Dict[str, Any]) -> Iterator[Tuple[str, bytes]]:
        if not self._world.structured_queries:
            return super().structured_query(query)
        selector = Selector.from_query(query)
        rows = []
        for key, entry in sorted(self._snapshot.items()):
            try:
                doc = decode(entry.value)
            except ValueError:
                continue
            if selector.matches(doc):
                rows.append((key, entry.value))
        return iter(rows)

    @property
    def supports_structured_query(self) -> bool:
        return self._world.structured_queries

    def current_timestamp(self) -> datetime:
        return self._timestamp

    def caller_credential(self) -> bytes:
        return self._credential

    def emit(self, event_name: str, payload: bytes) -> None:
        self._events.append(Event(event_name, bytes(payload)))

    def tx_id(self) -> str:
        return self._tx_id

    # ── Results ───────────────────────────────────────────────

    @property
    def write_set(self) -> List[WriteEntry]:
        return [WriteEntry(key, self._writes[key]) for key in sorted(self._writes)]

    @property
    def events(self) -> List[Event]:
        return list(self._events)

    @property
    def read_keys(self) -> Dict[str, Optional[int]]:
        return dict(self._reads)

    @property
    def range_reads(self):
        return list(self._range_reads)


class WorldState:
    """
    Committed state shared by every operation.

    Thread-safe via internal lock. The lock guards begin() snapshots and
    commit(); the programs themselves never take it.
    """

    def __init__(self, structured_queries: bool = True) -> None:
        self.structured_queries = structured_queries
        self._lock:      threading.Lock              = threading.Lock()
        self._state:     Dict[str, VersionedValue]   = {}
        self._height:    int                         = 0
        self._listeners: List[Callable[[str, Event], None]] = []

    # ── Operations ────────────────────────────────────────────

    def begin(self, tx_id: str, timestamp: datetime, credential: bytes) -> MemoryTransaction:
        with self._lock:
            snapshot = dict(self._state)
        return MemoryTransaction(self, snapshot, tx_id, timestamp, credential)

    def commit(self, tx: MemoryTransaction) -> int:
        """
        Validate tx's read set against current state and apply its writes.

        Returns the commit height.
        Raises MVCCReadConflictError if any read is stale; nothing is applied.
        """
        with self._lock:
            if tx.committed:
                raise LedgerError(f"Transaction {tx.tx_id()} already committed")
            self._validate(tx)
            self._height += 1
            self._apply(tx.write_set, self._height)
            tx.committed = True
            height = self._height

        for event in tx.events:
            self._notify(tx.tx_id(), event)
        return height

    def apply_write_set(self, write_set: List[WriteEntry]) -> int:
        """Apply writes without validation. Used to rebuild state from a log."""
        with self._lock:
            self._height += 1
            self._apply(write_set, self._height)
            return self._height

    def subscribe(self, listener: Callable[[str, Event], None]) -> None:
        """listener(tx_id, event) is called after each successful commit."""
        self._listeners.append(listener)

    # ── Inspection ────────────────────────────────────────────

    @property
    def height(self) -> int:
        return self._height

    def raw(self, key: str) -> Optional[bytes]:
        with self._lock:
            entry = self._state.get(key)
        return entry.value if entry else None

    def items(self) -> List[Tuple[str, bytes]]:
        with self._lock:
            return [(k, v.value) for k, v in sorted(self._state.items())]

    def state_hash(self) -> str:
        """SHA-256 over the canonical form of every committed key and value."""
        return canonical_hash({k: v.decode("utf-8") for k, v in self.items()})

    # ── Internal ──────────────────────────────────────────────

    def _validate(self, tx: MemoryTransaction) -> None:
        for key, version in tx.read_keys.items():
            current = self._state.get(key)
            current_version = current.version if current else None
            if current_version != version:
                raise MVCCReadConflictError(
                    f"Read conflict on key {key!r}",
                    {"tx_id": tx.tx_id(), "read": version, "current": current_version},
                )

        for start_key, end_key, seen in tx.range_reads:
            current = tuple(
                (key, entry.version)
                for key, entry in sorted(self._state.items())
                if _in_range(key, start_key, end_key)
            )
            if current != seen:
                raise MVCCReadConflictError(
                    f"Phantom read in range [{start_key!r}, {end_key!r})",
                    {"tx_id": tx.tx_id()},
                )

    def _apply(self, write_set: List[WriteEntry], version: int) -> None:
        for entry in write_set:
            if entry.value is None:
                self._state.pop(entry.key, None)
            else:
                self._state[entry.key] = VersionedValue(entry.value, version)

    def _notify(self, tx_id: str, event: Event) -> None:
        for listener in list(self._listeners):
            listener(tx_id, event)
