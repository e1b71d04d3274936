"""
acadledger/__init__.py

acadledger: deterministic ledger programs for academic records.

Classes, enrollments, course materials, exams and grades are recorded as
entries of a replicated ledger. Every operation is a deterministic state
transition: the same inputs against the same state produce the same
record bytes on every executing node.
"""

__version__ = "0.1.0"

from acadledger.core.config import LedgerConfig
from acadledger.core.crypto import Ed25519KeyManager
from acadledger.core.exceptions import AcadLedgerError
from acadledger.core.identity import Identity, IdentityResolver, serialize_identity
from acadledger.core.models import (
    ClassRecord,
    ExamRecord,
    GradeRecord,
    MaterialKind,
    MaterialRecord,
    Organization,
)
from acadledger.ledger.txlog import TransactionLog
from acadledger.runtime.executor import OperationExecutor, OperationResult
from acadledger.store.memory import WorldState

__all__ = [
    # Entry point
    "OperationExecutor",
    "OperationResult",
    "WorldState",
    "TransactionLog",
    "LedgerConfig",
    # Identity
    "Identity",
    "IdentityResolver",
    "serialize_identity",
    "Ed25519KeyManager",
    # Records
    "ClassRecord",
    "MaterialRecord",
    "ExamRecord",
    "GradeRecord",
    "MaterialKind",
    "Organization",
    # Errors
    "AcadLedgerError",
]
