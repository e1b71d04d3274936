"""
Substrate contract consumed by the ledger programs.

One Substrate instance is one operation's view of the ledger runtime: a
snapshot to read from, a write buffer, the operation's timestamp and the
caller's credential. Nothing here survives past the operation.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Iterator, Optional, Tuple


class StructuredQueryUnsupported(Exception):
    """The substrate has no structured-query path. Fall back to range scans."""
    pass


class Substrate(ABC):

    @abstractmethod
    def get(self, key: str) -> Optional[bytes]:
        """Value under key, or None when absent."""

    @abstractmethod
    def put(self, key: str, value: bytes) -> None:
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass

    @abstractmethod
    def range_scan(self, start_key: str, end_key: str) -> Iterator[Tuple[str, bytes]]:
        """
        (key, value) pairs with start_key <= key < end_key, in key order.
        An empty end_key means unbounded. Finite and restartable per call.
        """

    def structured_query(self, query: Dict[str, Any]) -> Iterator[Tuple[str, bytes]]:
        """
        Optional predicate query ({"selector": {...}}).
        Substrates without one keep this default.
        """
        raise StructuredQueryUnsupported(
            f"{type(self).__name__} does not support structured queries"
        )

    @property
    def supports_structured_query(self) -> bool:
        return False

    @abstractmethod
    def current_timestamp(self) -> datetime:
        """Identical across all executing replicas for a given operation."""

    @abstractmethod
    def caller_credential(self) -> bytes:
        pass

    @abstractmethod
    def emit(self, event_name: str, payload: bytes) -> None:
        """Fire-and-forget notification."""

    @abstractmethod
    def tx_id(self) -> str:
        pass
