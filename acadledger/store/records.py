"""
Record Store Adapter.

Typed get/put/delete over a Substrate, plus listing queries that pick
the structured backend when the substrate offers one and fall back to a
range scan otherwise. Records are decoded here and nowhere else.
"""

import logging
from typing import List, Optional, Type, TypeVar

from acadledger.core.exceptions import NotFoundError
from acadledger.core.models import Record, decode_record, encode_record
from acadledger.store.query import (
    QueryBackend,
    RangeScanBackend,
    Selector,
    StructuredQueryBackend,
)
from acadledger.store.substrate import StructuredQueryUnsupported, Substrate

logger = logging.getLogger(__name__)

R = TypeVar("R")


class RecordStore:

    def __init__(self, substrate: Substrate, backend: Optional[QueryBackend] = None) -> None:
        self.substrate = substrate
        if backend is None:
            backend = (
                StructuredQueryBackend()
                if substrate.supports_structured_query
                else RangeScanBackend()
            )
        self.backend = backend

    # ── Point access ──────────────────────────────────────────

    def exists(self, key: str) -> bool:
        """True if any record (of any kind) occupies key."""
        value = self.substrate.get(key)
        return value is not None and len(value) > 0

    def get(self, key: str) -> Optional[Record]:
        value = self.substrate.get(key)
        if not value:
            return None
        return decode_record(value)

    def load(self, key: str, kind: Type[R], label: str) -> R:
        """
        The record of the given kind under key.
        Raises NotFoundError if absent or if key holds another kind.
        """
        record = self.get(key)
        if record is None:
            raise NotFoundError(f"{label} {key} does not exist", {"id": key})
        if not isinstance(record, kind):
            raise NotFoundError(f"{key} is not a {label.lower()}", {"id": key})
        return record

    def put(self, record: Record) -> None:
        self.substrate.put(record.id, encode_record(record))

    def delete(self, key: str) -> None:
        self.substrate.delete(key)

    # ── Queries ───────────────────────────────────────────────

    def find(self, selector: Selector) -> List[Record]:
        try:
            return self.backend.find(self.substrate, selector)
        except StructuredQueryUnsupported:
            logger.info("Structured query unavailable; falling back to range scan")
            self.backend = RangeScanBackend()
            return self.backend.find(self.substrate, selector)
