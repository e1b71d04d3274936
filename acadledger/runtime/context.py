"""
Operation context for ledger program execution.

One OperationContext exists per operation. It carries everything a
program may touch: the resolved caller, the operation's single instant,
typed record access and event emission. Programs receive it as their
first argument and never reach past it.
"""

from dataclasses import dataclass, field
from typing import Any, Dict

from acadledger.core.canonical import canonicalize
from acadledger.core.config import LedgerConfig
from acadledger.core.identity import Identity
from acadledger.core.time import DeterministicClock
from acadledger.store.records import RecordStore
from acadledger.store.substrate import Substrate


@dataclass
class OperationContext:
    """Runtime context for one ledger operation."""

    substrate: Substrate
    identity:  Identity
    clock:     DeterministicClock
    config:    LedgerConfig = field(default_factory=LedgerConfig)
    records:   RecordStore  = None

    def __post_init__(self) -> None:
        if self.records is None:
            self.records = RecordStore(self.substrate)

    @property
    def tx_id(self) -> str:
        return self.substrate.tx_id()

    def emit(self, event_name: str, payload: Dict[str, Any]) -> None:
        """Emit a notification with a canonical JSON payload."""
        self.substrate.emit(event_name, canonicalize(payload))

    def __repr__(self) -> str:
        return (
            f"OperationContext("
            f"tx_id={self.tx_id!r}, "
            f"caller={self.identity.describe()!r}, "
            f"at={self.clock.stamp()})"
        )
