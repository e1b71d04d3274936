"""
Record storage.

- substrate: the contract the ledger runtime provides per operation
- memory:    in-memory reference substrate with MVCC commit
- query:     one query abstraction, structured and range-scan backends
- records:   typed record access on top of a substrate
"""

from acadledger.store.memory import Event, MemoryTransaction, WorldState, WriteEntry
from acadledger.store.query import QueryBackend, RangeScanBackend, Selector, StructuredQueryBackend
from acadledger.store.records import RecordStore
from acadledger.store.substrate import StructuredQueryUnsupported, Substrate

__all__ = [
    "Event",
    "MemoryTransaction",
    "WorldState",
    "WriteEntry",
    "QueryBackend",
    "RangeScanBackend",
    "Selector",
    "StructuredQueryBackend",
    "RecordStore",
    "StructuredQueryUnsupported",
    "Substrate",
]
