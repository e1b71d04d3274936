"""
acadledger/ledger/txlog.py

Transaction log: append-only evidence of committed operations.

═══════════════════════════════════════════════════════════════════
LOG CONTRACTS
═══════════════════════════════════════════════════════════════════

CONTRACT 1: One envelope per committed operation
    failed or read-only operations are never logged
    sequence is 0, 1, 2, ... with no gaps

CONTRACT 2: Signing
    signature = Ed25519(JCS(envelope without "signature"))
    base64url, no padding

CONTRACT 3: Chain
    causal_hash = SHA-256(JCS(prev envelope without "signature"))
    first envelope: GENESIS_HASH ("0" * 64)

CONTRACT 4: Re-executable
    operation, args, credential and timestamp are exactly the inputs the
    executor received, so replaying them against the state rebuilt from
    the preceding envelopes reproduces write_set byte for byte
═══════════════════════════════════════════════════════════════════
"""

import hashlib
import json
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from acadledger.core.canonical import canonicalize
from acadledger.core.crypto import Ed25519KeyManager
from acadledger.core.exceptions import LedgerError
from acadledger.core.time import is_wire_timestamp
from acadledger.store.memory import Event, WriteEntry

logger = logging.getLogger(__name__)


LEDGER_VERSION         = "1.0"
GENESIS_HASH           = "0" * 64
_PUBLIC_KEY_HEX_LENGTH = 64


@dataclass
class SchemaValidationResult:
    """
    Returned, not raised, so callers can choose hard fail vs report.
    bool(result) is True iff valid.
    """
    valid:  bool
    errors: List[str]

    def __bool__(self) -> bool:
        return self.valid


@dataclass
class TransactionEnvelope:
    """One committed operation."""

    ledger_version:    str
    tx_id:             str
    sequence:          int
    operation:         str
    args:              List[Any]
    credential:        str
    timestamp:         str
    write_set:         List[Dict[str, Any]]
    events:            List[Dict[str, Any]]
    causal_hash:       str
    signer_public_key: str
    signature:         Optional[str] = None

    # ── Constructor ───────────────────────────────────────────

    @classmethod
    def create(
        cls,
        tx_id:             str,
        sequence:          int,
        operation:         str,
        args:              List[Any],
        credential:        bytes,
        timestamp:         str,
        write_set:         List[WriteEntry],
        events:            List[Event],
        signer_public_key: str,
        prev:              Optional["TransactionEnvelope"] = None,
    ) -> "TransactionEnvelope":
        """Unsigned envelope with the correct causal_hash. Call .sign() next."""
        if not isinstance(sequence, int) or sequence < 0:
            raise ValueError(f"sequence must be non-negative int, got {sequence!r}")
        return cls(
            ledger_version=    LEDGER_VERSION,
            tx_id=             tx_id,
            sequence=          sequence,
            operation=         operation,
            args=              list(args),
            credential=        (credential or b"").decode("utf-8"),
            timestamp=         timestamp,
            write_set=         [entry.to_dict() for entry in write_set],
            events=            [event.to_dict() for event in events],
            causal_hash=       cls._compute_causal_hash(prev),
            signer_public_key= signer_public_key,
            signature=         None,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TransactionEnvelope":
        """
        Deserialize from a JSONL line dict. Trusts persisted data;
        callers run validate_schema() before relying on it.
        """
        return cls(
            ledger_version=    data["ledger_version"],
            tx_id=             data["tx_id"],
            sequence=          data["sequence"],
            operation=         data["operation"],
            args=              data.get("args", []),
            credential=        data.get("credential", ""),
            timestamp=         data["timestamp"],
            write_set=         data.get("write_set", []),
            events=            data.get("events", []),
            causal_hash=       data["causal_hash"],
            signer_public_key= data["signer_public_key"],
            signature=         data.get("signature"),
        )

    # ── Schema Validation ─────────────────────────────────────

    def validate_schema(self) -> SchemaValidationResult:
        errors: List[str] = []

        if self.ledger_version != LEDGER_VERSION:
            errors.append(
                f"ledger_version: expected '{LEDGER_VERSION}', got '{self.ledger_version}'"
            )
        if not isinstance(self.tx_id, str) or not self.tx_id:
            errors.append("tx_id must be a non-empty string")
        if not isinstance(self.sequence, int) or isinstance(self.sequence, bool) or self.sequence < 0:
            errors.append(f"sequence must be non-negative int, got {self.sequence!r}")
        if not isinstance(self.operation, str) or not self.operation:
            errors.append("operation must be a non-empty string")
        if not isinstance(self.args, list):
            errors.append(f"args must be list, got {type(self.args).__name__}")
        if not isinstance(self.credential, str):
            errors.append("credential must be str")
        if not is_wire_timestamp(self.timestamp):
            errors.append(
                f"timestamp {self.timestamp!r} does not match wire format "
                f"YYYY-MM-DDTHH:MM:SS.mmmZ"
            )
        if not isinstance(self.write_set, list) or not all(
            isinstance(w, dict) and isinstance(w.get("key"), str) for w in self.write_set
        ):
            errors.append("write_set must be a list of {key, value, delete} objects")
        if not isinstance(self.events, list):
            errors.append(f"events must be list, got {type(self.events).__name__}")

        if not isinstance(self.causal_hash, str) or len(self.causal_hash) != 64:
            errors.append("causal_hash must be 64 hex chars")
        else:
            try:
                bytes.fromhex(self.causal_hash)
            except ValueError:
                errors.append(f"causal_hash is not valid hex: {self.causal_hash!r}")

        if (
            not isinstance(self.signer_public_key, str)
            or len(self.signer_public_key) != _PUBLIC_KEY_HEX_LENGTH
        ):
            errors.append(
                f"signer_public_key must be exactly {_PUBLIC_KEY_HEX_LENGTH} hex chars"
            )
        else:
            try:
                bytes.fromhex(self.signer_public_key)
            except ValueError:
                errors.append(f"signer_public_key is not valid hex: {self.signer_public_key!r}")

        return SchemaValidationResult(valid=len(errors) == 0, errors=errors)

    # ── Canonical forms ───────────────────────────────────────

    def to_signing_dict(self) -> Dict[str, Any]:
        """Every field except signature. Also the chained form."""
        return {
            "args":              self.args,
            "causal_hash":       self.causal_hash,
            "credential":        self.credential,
            "events":            self.events,
            "ledger_version":    self.ledger_version,
            "operation":         self.operation,
            "sequence":          self.sequence,
            "signer_public_key": self.signer_public_key,
            "timestamp":         self.timestamp,
            "tx_id":             self.tx_id,
            "write_set":         self.write_set,
        }

    def to_dict(self) -> Dict[str, Any]:
        """Full serialization including signature. JSONL persistence only."""
        d = self.to_signing_dict().copy()
        d["signature"] = self.signature
        return d

    def canonical_bytes_for_signing(self) -> bytes:
        return canonicalize(self.to_signing_dict())

    def write_entries(self) -> List[WriteEntry]:
        return [WriteEntry.from_dict(w) for w in self.write_set]

    @property
    def credential_bytes(self) -> bytes:
        return self.credential.encode("utf-8")

    # ── Chain ─────────────────────────────────────────────────

    @staticmethod
    def _compute_causal_hash(prev: Optional["TransactionEnvelope"]) -> str:
        if prev is None:
            return GENESIS_HASH
        return hashlib.sha256(prev.canonical_bytes_for_signing()).hexdigest()

    def expected_causal_hash_from(self, prev: Optional["TransactionEnvelope"]) -> str:
        return TransactionEnvelope._compute_causal_hash(prev)

    # ── Signing / verification ────────────────────────────────

    def sign(self, key_manager: Ed25519KeyManager) -> "TransactionEnvelope":
        self.signature = key_manager.sign(self.canonical_bytes_for_signing())
        return self

    def verify_signature(self, override_public_key_hex: Optional[str] = None) -> bool:
        """False for an unsigned or tampered envelope. Never raises."""
        if not self.signature:
            return False
        pubkey_hex = override_public_key_hex or self.signer_public_key
        return Ed25519KeyManager.verify_detached(
            self.canonical_bytes_for_signing(), self.signature, pubkey_hex
        )

    def verify_chain(self, prev: Optional["TransactionEnvelope"]) -> bool:
        return self.causal_hash == self.expected_causal_hash_from(prev)

    def verify_sequence(self, expected: int) -> bool:
        return self.sequence == expected

    def is_signed(self) -> bool:
        return bool(self.signature)


class TransactionLog:
    """
    Append-only JSONL transaction log signed by one node key.

    Thread-safe via internal lock (single-process only).
    State survives process restart by reading the last line on __init__.
    """

    FILE_NAME = "ledger.jsonl"

    def __init__(self, key_manager: Ed25519KeyManager, path: Path) -> None:
        self.key_manager = key_manager

        path = Path(path)
        if path.suffix != ".jsonl":
            path.mkdir(parents=True, exist_ok=True)
            path = path / self.FILE_NAME
        else:
            path.parent.mkdir(parents=True, exist_ok=True)
        self.path = path

        self._lock:          threading.Lock                = threading.Lock()
        self._sequence:      int                           = 0
        self._last_envelope: Optional[TransactionEnvelope] = None

        self._restore_state()

    # ── Public API ────────────────────────────────────────────

    def append(
        self,
        tx_id:      str,
        operation:  str,
        args:       List[Any],
        credential: bytes,
        timestamp:  str,
        write_set:  List[WriteEntry],
        events:     List[Event],
    ) -> TransactionEnvelope:
        """
        Sign and append one envelope. Raises LedgerError on a chain
        invariant violation or write failure; state does not advance then.
        """
        with self._lock:
            envelope = TransactionEnvelope.create(
                tx_id=             tx_id,
                sequence=          self._sequence,
                operation=         operation,
                args=              args,
                credential=        credential,
                timestamp=         timestamp,
                write_set=         write_set,
                events=            events,
                signer_public_key= self.key_manager.public_key_hex,
                prev=              self._last_envelope,
            ).sign(self.key_manager)

            if not envelope.verify_chain(self._last_envelope):
                raise LedgerError("Chain invariant violated: causal_hash mismatch")

            try:
                with open(self.path, "a", encoding="utf-8") as f:
                    f.write(json.dumps(envelope.to_dict(), sort_keys=True) + "\n")
            except OSError as exc:
                raise LedgerError(f"Transaction log write failed: {exc}") from exc

            self._sequence      += 1
            self._last_envelope  = envelope
            return envelope

    def envelopes(self) -> List[TransactionEnvelope]:
        return read_envelopes(self.path)

    def __len__(self) -> int:
        return self._sequence

    def get_stats(self) -> Dict[str, Any]:
        return {
            "next_sequence":    self._sequence,
            "last_tx_id":       self._last_envelope.tx_id if self._last_envelope else None,
            "last_causal_hash": (
                self._last_envelope.causal_hash if self._last_envelope else GENESIS_HASH
            ),
            "log_file":         str(self.path),
            "ledger_version":   LEDGER_VERSION,
            "signer":           self.key_manager.public_key_hex,
        }

    # ── Internal ──────────────────────────────────────────────

    def _restore_state(self) -> None:
        if not self.path.exists():
            return

        last_line = None
        with open(self.path, "r", encoding="utf-8") as f:
            for line in f:
                stripped = line.strip()
                if stripped:
                    last_line = stripped
        if not last_line:
            return

        try:
            envelope = TransactionEnvelope.from_dict(json.loads(last_line))
        except (ValueError, KeyError, TypeError) as exc:
            raise LedgerError(
                f"Cannot restore transaction log {self.path}: last line is corrupted ({exc})"
            ) from exc
        schema = envelope.validate_schema()
        if not schema:
            raise LedgerError(
                f"Cannot restore transaction log {self.path}: {schema.errors}"
            )

        self._sequence      = envelope.sequence + 1
        self._last_envelope = envelope
        logger.debug("Restored transaction log at sequence %d", self._sequence)


def read_envelopes(path: Path) -> List[TransactionEnvelope]:
    """
    Parse every envelope in a JSONL log, in file order.
    Raises LedgerError naming the first line that cannot be parsed.
    """
    path = Path(path)
    envelopes: List[TransactionEnvelope] = []
    if not path.exists():
        return envelopes
    with open(path, "r", encoding="utf-8") as f:
        for line_no, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                envelopes.append(TransactionEnvelope.from_dict(json.loads(line)))
            except (ValueError, KeyError, TypeError) as exc:
                raise LedgerError(
                    f"Malformed envelope at line {line_no}: {exc}", {"line": line_no}
                ) from exc
    return envelopes
