"""
acadledger/ledger/replay.py

Replay engine for transaction logs.

Three passes, each independent of the others:

    verify()      sequence, causal chain and signature of every envelope
    rebuild()     apply logged write sets in order → WorldState
    reexecute()   run every logged operation again against the state
                  rebuilt from its predecessors and compare the produced
                  write set and events with the logged ones, byte for byte

A ledger program is deterministic iff reexecute() reports no divergence
on every log it produced.
"""

import json
import logging
from collections import defaultdict
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from acadledger.core.config import LedgerConfig
from acadledger.core.exceptions import AcadLedgerError, LedgerError
from acadledger.core.time import parse_instant
from acadledger.ledger.txlog import LEDGER_VERSION, TransactionEnvelope
from acadledger.store.memory import WorldState

logger = logging.getLogger(__name__)


@dataclass
class ChainViolation:
    """A single detected violation in the log."""
    at_sequence:    int
    tx_id:          str
    violation_type: str   # "sequence_gap" | "chain_break" | "invalid_signature" | "divergence" | "execution_failed"
    detail:         str

    def to_dict(self) -> Dict[str, object]:
        return {
            "at_sequence":    self.at_sequence,
            "tx_id":          self.tx_id,
            "violation_type": self.violation_type,
            "detail":         self.detail,
        }


@dataclass
class ReplaySummary:
    """Aggregate result of a verification pass."""
    total_entries:      int
    chain_valid:        bool
    violations:         List[ChainViolation]
    valid_signatures:   int
    invalid_signatures: int
    operation_counts:   Dict[str, int]
    signers_seen:       List[str]
    first_timestamp:    Optional[str]
    last_timestamp:     Optional[str]
    state_hash:         Optional[str] = None
    reexecuted:         bool          = False

    def to_dict(self) -> Dict[str, object]:
        return {
            "ledger_version":     LEDGER_VERSION,
            "total_entries":      self.total_entries,
            "chain_valid":        self.chain_valid,
            "valid_signatures":   self.valid_signatures,
            "invalid_signatures": self.invalid_signatures,
            "operation_counts":   dict(self.operation_counts),
            "signers_seen":       list(self.signers_seen),
            "first_timestamp":    self.first_timestamp,
            "last_timestamp":     self.last_timestamp,
            "state_hash":         self.state_hash,
            "reexecuted":         self.reexecuted,
            "violations":         [v.to_dict() for v in self.violations],
        }


class ReplayEngine:
    """
    Usage:
        engine = ReplayEngine()
        engine.load(Path("state/ledger.jsonl"))
        summary = engine.verify()
        world   = engine.rebuild()
        divergences = engine.reexecute(LedgerConfig())
    """

    def __init__(self) -> None:
        self.envelopes:  List[TransactionEnvelope] = []
        self.violations: List[ChainViolation]      = []
        self._log_path:  Optional[Path]            = None

    # ── Load ──────────────────────────────────────────────────

    def load(self, log_path: Path) -> None:
        """
        Raises:
            FileNotFoundError  log does not exist
            LedgerError        malformed JSON, missing field or schema violation
        """
        log_path = Path(log_path)
        if not log_path.exists():
            raise FileNotFoundError(f"Transaction log not found: {log_path}")

        self._log_path = log_path
        self.envelopes = []
        self.violations = []

        with open(log_path, "r", encoding="utf-8") as f:
            for line_num, raw in enumerate(f, 1):
                raw = raw.strip()
                if not raw:
                    continue
                try:
                    data = json.loads(raw)
                except json.JSONDecodeError as exc:
                    raise LedgerError(f"Malformed JSON at log line {line_num}: {exc}") from exc
                try:
                    envelope = TransactionEnvelope.from_dict(data)
                except (KeyError, TypeError) as exc:
                    raise LedgerError(
                        f"Missing required field at log line {line_num}: {exc}"
                    ) from exc

                schema = envelope.validate_schema()
                if not schema:
                    raise LedgerError(
                        f"Schema violation at log line {line_num} "
                        f"(tx_id={data.get('tx_id', '?')}): {schema.errors}"
                    )
                self.envelopes.append(envelope)

        self.envelopes.sort(key=lambda e: e.sequence)
        logger.debug("Loaded %d envelopes from %s", len(self.envelopes), log_path)

    # ── Verify ────────────────────────────────────────────────

    def verify(self) -> ReplaySummary:
        """Sequence, chain and signature of every loaded envelope."""
        self.violations = []
        if not self.envelopes:
            return self._empty_summary()

        valid_sigs = 0
        invalid_sigs = 0
        for i, env in enumerate(self.envelopes):
            prev = self.envelopes[i - 1] if i > 0 else None

            if not env.verify_sequence(i):
                self.violations.append(ChainViolation(
                    at_sequence=    i,
                    tx_id=          env.tx_id,
                    violation_type= "sequence_gap",
                    detail=         f"Expected sequence {i}, got {env.sequence}",
                ))

            if not env.verify_chain(prev):
                expected = env.expected_causal_hash_from(prev)
                self.violations.append(ChainViolation(
                    at_sequence=    env.sequence,
                    tx_id=          env.tx_id,
                    violation_type= "chain_break",
                    detail=(
                        f"causal_hash mismatch: expected ...{expected[-12:]}, "
                        f"got ...{env.causal_hash[-12:]}"
                    ),
                ))

            if env.verify_signature():
                valid_sigs += 1
            else:
                invalid_sigs += 1
                self.violations.append(ChainViolation(
                    at_sequence=    env.sequence,
                    tx_id=          env.tx_id,
                    violation_type= "invalid_signature",
                    detail=         f"Signature invalid (signer: {env.signer_public_key[:16]}...)",
                ))

        counts: Dict[str, int] = defaultdict(int)
        for env in self.envelopes:
            counts[env.operation] += 1

        return ReplaySummary(
            total_entries=      len(self.envelopes),
            chain_valid=        len(self.violations) == 0,
            violations=         list(self.violations),
            valid_signatures=   valid_sigs,
            invalid_signatures= invalid_sigs,
            operation_counts=   dict(counts),
            signers_seen=       sorted({e.signer_public_key for e in self.envelopes}),
            first_timestamp=    self.envelopes[0].timestamp,
            last_timestamp=     self.envelopes[-1].timestamp,
        )

    # ── Rebuild ───────────────────────────────────────────────

    def rebuild(self, world: Optional[WorldState] = None) -> WorldState:
        """Apply every logged write set in sequence order."""
        world = world if world is not None else WorldState()
        for env in self.envelopes:
            world.apply_write_set(env.write_entries())
        return world

    # ── Re-execute ────────────────────────────────────────────

    def reexecute(
        self,
        config: Optional[LedgerConfig] = None,
        world:  Optional[WorldState]   = None,
    ) -> List[ChainViolation]:
        """
        Run every logged operation again and compare its effects.

        After a divergence the logged write set is applied instead, so
        later envelopes are still checked against the logged history.
        """
        from acadledger.runtime.executor import OperationExecutor

        executor = OperationExecutor(
            world=  world if world is not None else WorldState(),
            config= config or LedgerConfig(),
        )
        divergences: List[ChainViolation] = []

        for env in self.envelopes:
            try:
                proposal = executor.endorse(
                    env.operation,
                    env.args,
                    env.credential_bytes,
                    parse_instant(env.timestamp, "timestamp"),
                    tx_id=env.tx_id,
                )
            except AcadLedgerError as exc:
                divergences.append(ChainViolation(
                    at_sequence=    env.sequence,
                    tx_id=          env.tx_id,
                    violation_type= "execution_failed",
                    detail=         f"{env.operation} failed on re-execution: {exc.kind}: {exc.message}",
                ))
                executor.world.apply_write_set(env.write_entries())
                continue

            produced_writes = [w.to_dict() for w in proposal.write_set]
            produced_events = [e.to_dict() for e in proposal.events]
            if produced_writes != env.write_set or produced_events != env.events:
                divergences.append(ChainViolation(
                    at_sequence=    env.sequence,
                    tx_id=          env.tx_id,
                    violation_type= "divergence",
                    detail=         f"{env.operation} produced a different write set or events",
                ))
                executor.world.apply_write_set(env.write_entries())
                continue

            executor.world.commit(proposal.tx)

        self.violations.extend(divergences)
        return divergences

    # ── Export JSON ───────────────────────────────────────────

    def export_json(self, output_path: Path, summary: Optional[ReplaySummary] = None) -> None:
        if summary is None:
            summary = self.verify()
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        report = {
            "acadledger_replay_report": {
                "log": str(self._log_path or "in-memory"),
                **summary.to_dict(),
            }
        }
        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(report, f, indent=2)

    # ── Internal ──────────────────────────────────────────────

    def _empty_summary(self) -> ReplaySummary:
        return ReplaySummary(
            total_entries=      0,
            chain_valid=        True,
            violations=         [],
            valid_signatures=   0,
            invalid_signatures= 0,
            operation_counts=   {},
            signers_seen=       [],
            first_timestamp=    None,
            last_timestamp=     None,
        )
