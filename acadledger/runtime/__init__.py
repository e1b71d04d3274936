"""
acadledger runtime: operation context and the executor that dispatches
named operations into the ledger programs.
"""

from acadledger.runtime.context import OperationContext
from acadledger.runtime.executor import OperationExecutor, OperationResult, Proposal

__all__ = [
    "OperationContext",
    "OperationExecutor",
    "OperationResult",
    "Proposal",
]
