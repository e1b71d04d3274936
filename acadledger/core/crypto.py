"""
acadledger/core/crypto.py

Node signing keys for the transaction log.

Every envelope the node appends is signed with its Ed25519 key. Anyone
holding the log can check it with only the signer's public key hex, so
verification is a static method and never needs the private key.

Ed25519 signatures are deterministic: the same node key signing the same
canonical bytes always yields the same signature.
"""

import base64
from pathlib import Path

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
    load_pem_private_key,
)


def _b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _unb64url(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


class Ed25519KeyManager:
    """
    The executing node's signing key.

        Ed25519KeyManager.load_or_create(path)   node key under the state dir
        key.public_key_hex                       64-char lowercase hex
        key.sign(data)                           base64url, no padding
        Ed25519KeyManager.verify_detached(...)   public key hex only
    """

    def __init__(self, private_key: Ed25519PrivateKey) -> None:
        self._private_key = private_key
        self._public_key_hex = (
            private_key.public_key()
            .public_bytes(Encoding.Raw, PublicFormat.Raw)
            .hex()
        )

    # ── Construction ──────────────────────────────────────────

    @classmethod
    def generate(cls) -> "Ed25519KeyManager":
        return cls(Ed25519PrivateKey.generate())

    @classmethod
    def from_file(cls, path: Path) -> "Ed25519KeyManager":
        """
        Load a PEM private key.
        Raises FileNotFoundError when absent, ValueError when not an Ed25519 key.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Node key not found: {path}")
        try:
            private_key = load_pem_private_key(path.read_bytes(), password=None)
        except (ValueError, TypeError) as exc:
            raise ValueError(f"Unreadable node key {path}: {exc}") from exc
        if not isinstance(private_key, Ed25519PrivateKey):
            raise ValueError(f"Node key {path} is not an Ed25519 private key")
        return cls(private_key)

    @classmethod
    def load_or_create(cls, path: Path) -> "Ed25519KeyManager":
        path = Path(path)
        if path.exists():
            return cls.from_file(path)
        key = cls.generate()
        key.save(path)
        return key

    # ── Signing ───────────────────────────────────────────────

    @property
    def public_key_hex(self) -> str:
        return self._public_key_hex

    def sign(self, data: bytes) -> str:
        """Sign already-canonicalized bytes."""
        return _b64url(self._private_key.sign(data))

    @staticmethod
    def verify_detached(data: bytes, signature_b64: str, public_key_hex: str) -> bool:
        """True only for a valid signature. Never raises."""
        if not signature_b64 or not public_key_hex:
            return False
        try:
            raw_pub = bytes.fromhex(public_key_hex)
            raw_sig = _unb64url(signature_b64)
            if len(raw_pub) != 32 or len(raw_sig) != 64:
                return False
            Ed25519PublicKey.from_public_bytes(raw_pub).verify(raw_sig, data)
            return True
        except (InvalidSignature, ValueError, TypeError):
            return False

    # ── Persistence ───────────────────────────────────────────

    def save(self, path: Path) -> None:
        """Write the private key as unencrypted PKCS8 PEM, creating parent dirs."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(self._private_key.private_bytes(
            encoding=             Encoding.PEM,
            format=               PrivateFormat.PKCS8,
            encryption_algorithm= NoEncryption(),
        ))

    def __repr__(self) -> str:
        return f"Ed25519KeyManager({self._public_key_hex[:16]}...)"
