"""
Transaction log and replay.

ReplayEngine lives in acadledger.ledger.replay; it depends on the
executor, which itself appends to TransactionLog.
"""

from acadledger.ledger.txlog import (
    GENESIS_HASH,
    LEDGER_VERSION,
    TransactionEnvelope,
    TransactionLog,
    read_envelopes,
)

__all__ = [
    "GENESIS_HASH",
    "LEDGER_VERSION",
    "TransactionEnvelope",
    "TransactionLog",
    "read_envelopes",
]
