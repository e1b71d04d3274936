"""
Operation executor.

The single entry point from callers into the ledger programs:

    endorse()   open a transaction against a snapshot, resolve the
                caller, run the program, return a Proposal
    commit()    validate the proposal's reads, apply its writes,
                append it to the transaction log, deliver events
    submit()    endorse() then commit()

A failing program leaves nothing behind: its transaction is simply
never committed. Proposals without writes are answered without a commit
and are not logged.
"""

import inspect
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Type

from acadledger.core.config import LedgerConfig
from acadledger.core.exceptions import (
    AcadLedgerError,
    InvalidArgumentError,
    UnknownOperationError,
)
from acadledger.core.identity import IdentityResolver
from acadledger.core.time import DeterministicClock, format_instant, normalize_instant
from acadledger.ledger.txlog import TransactionEnvelope, TransactionLog
from acadledger.policy.policy import AccessPolicy
from acadledger.programs import DEFAULT_PROGRAMS, LedgerProgram
from acadledger.runtime.context import OperationContext
from acadledger.store.memory import Event, MemoryTransaction, WorldState, WriteEntry
from acadledger.store.query import QueryBackend, RangeScanBackend, StructuredQueryBackend
from acadledger.store.records import RecordStore

logger = logging.getLogger(__name__)


_PRIMITIVES = (str, int, float, bool, type(None))


@dataclass
class Proposal:
    """An executed but uncommitted operation."""
    operation:  str
    args:       List[Any]
    credential: bytes
    timestamp:  datetime
    payload:    Any
    tx:         MemoryTransaction

    @property
    def tx_id(self) -> str:
        return self.tx.tx_id()

    @property
    def write_set(self) -> List[WriteEntry]:
        return self.tx.write_set

    @property
    def events(self) -> List[Event]:
        return self.tx.events


@dataclass
class OperationResult:
    """Result of a submitted operation."""
    tx_id:     str
    operation: str
    payload:   Any
    events:    List[Event]                   = field(default_factory=list)
    envelope:  Optional[TransactionEnvelope] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tx_id":     self.tx_id,
            "operation": self.operation,
            "payload":   self.payload,
            "events":    [e.to_dict() for e in self.events],
        }


class OperationExecutor:
    """
    Dispatches named operations into the ledger programs.

    Thread-safe: endorse() works on a private snapshot and commit() is
    serialized by the world state.
    """

    def __init__(
        self,
        world:    Optional[WorldState]               = None,
        config:   Optional[LedgerConfig]             = None,
        tx_log:   Optional[TransactionLog]           = None,
        programs: Iterable[Type[LedgerProgram]]      = DEFAULT_PROGRAMS,
        policy:   Optional[AccessPolicy]             = None,
    ) -> None:
        self.config   = config or LedgerConfig()
        self.world    = world if world is not None else WorldState()
        self.tx_log   = tx_log
        self.resolver = IdentityResolver(self.config)

        policy = policy or AccessPolicy()
        self._routes: Dict[str, Tuple[LedgerProgram, Callable, int]] = {}
        for program_cls in programs:
            program = program_cls(policy)
            for op_name, attr in program_cls.operations().items():
                if op_name in self._routes:
                    raise ValueError(f"Operation {op_name} registered twice")
                method = getattr(program, attr)
                # bound method: ctx is the first parameter
                arity = len(inspect.signature(method).parameters) - 1
                self._routes[op_name] = (program, method, arity)

    # ── Public API ────────────────────────────────────────────

    def operations(self) -> List[str]:
        return sorted(self._routes)

    def endorse(
        self,
        operation:  str,
        args:       Sequence[Any],
        credential: Optional[bytes],
        timestamp:  datetime,
        tx_id:      Optional[str] = None,
    ) -> Proposal:
        """
        Execute against a fresh snapshot without committing.

        Raises the program's AcadLedgerError unchanged on failure.
        """
        program, method, arity = self._route(operation)
        args = self._check_args(operation, args, arity)

        instant = normalize_instant(timestamp)
        tx = self.world.begin(tx_id or f"tx-{uuid.uuid4()}", instant, credential or b"")

        try:
            identity = self.resolver.resolve(tx.caller_credential())
            ctx = OperationContext(
                substrate= tx,
                identity=  identity,
                clock=     DeterministicClock(tx.current_timestamp()),
                config=    self.config,
                records=   RecordStore(tx, self._backend()),
            )
            payload = method(ctx, *args)
        except AcadLedgerError as exc:
            logger.info("%s rejected (%s): %s", operation, exc.kind, exc.message)
            raise

        logger.debug("%s endorsed as %s", operation, tx.tx_id())
        return Proposal(
            operation=  operation,
            args=       args,
            credential= credential or b"",
            timestamp=  instant,
            payload=    payload,
            tx=         tx,
        )

    def commit(self, proposal: Proposal) -> OperationResult:
        """
        Raises MVCCReadConflictError if another commit invalidated the
        proposal's reads; nothing is applied then.
        """
        result = OperationResult(
            tx_id=     proposal.tx_id,
            operation= proposal.operation,
            payload=   proposal.payload,
        )
        if not proposal.write_set:
            return result

        self.world.commit(proposal.tx)
        result.events = proposal.events

        if self.tx_log is not None:
            result.envelope = self.tx_log.append(
                tx_id=      proposal.tx_id,
                operation=  proposal.operation,
                args=       proposal.args,
                credential= proposal.credential,
                timestamp=  format_instant(proposal.timestamp),
                write_set=  proposal.write_set,
                events=     proposal.events,
            )

        logger.info("%s committed as %s", proposal.operation, proposal.tx_id)
        return result

    def submit(
        self,
        operation:  str,
        args:       Sequence[Any],
        credential: Optional[bytes],
        timestamp:  datetime,
        tx_id:      Optional[str] = None,
    ) -> OperationResult:
        return self.commit(self.endorse(operation, args, credential, timestamp, tx_id))

    # ── Internal ──────────────────────────────────────────────

    def _route(self, operation: str) -> Tuple[LedgerProgram, Callable, int]:
        try:
            return self._routes[operation]
        except KeyError:
            raise UnknownOperationError(
                f"Unknown operation {operation!r}", {"operation": operation}
            )

    @staticmethod
    def _check_args(operation: str, args: Sequence[Any], arity: int) -> List[Any]:
        args = list(args or [])
        if len(args) != arity:
            raise InvalidArgumentError(
                f"{operation} takes {arity} argument(s), got {len(args)}",
                {"operation": operation, "expected": arity, "got": len(args)},
            )
        for value in args:
            if not isinstance(value, _PRIMITIVES):
                raise InvalidArgumentError(
                    f"{operation} arguments must be primitive values, "
                    f"got {type(value).__name__}",
                    {"operation": operation},
                )
        return args

    def _backend(self) -> Optional[QueryBackend]:
        if self.config.query_backend == "range":
            return RangeScanBackend()
        if self.config.query_backend == "structured":
            return StructuredQueryBackend()
        return None
