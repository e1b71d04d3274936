"""
acadledger: Canonical JSON Encoding: RFC 8785 (JCS)

This is the ONLY canonicalization permitted in acadledger.
Record bytes, event payloads, transaction log envelopes and state
hashes all go through this module, so two nodes executing the same
operation write identical bytes.

RFC 8785: https://www.rfc-editor.org/rfc/rfc8785
"""

import hashlib
import json
from typing import Any

import jcs as _jcs


def canonicalize(obj: Any) -> bytes:
    """
    Encode a JSON-primitive value to RFC 8785 canonical JSON bytes.

    Output is deterministic regardless of key insertion order.
    Do NOT pass datetime objects: format them with core.time first.
    """
    return _jcs.canonicalize(obj)


def canonical_hash(obj: Any) -> str:
    """
    SHA-256 of the RFC 8785 canonical form.

    Returns:
        Lowercase hex-encoded SHA-256 digest (64 characters).
    """
    return hashlib.sha256(canonicalize(obj)).hexdigest()


def decode(data: bytes) -> Any:
    """Parse canonical (or any UTF-8 JSON) bytes back into Python values."""
    return json.loads(data.decode("utf-8"))
