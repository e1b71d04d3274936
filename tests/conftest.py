"""
tests/conftest.py

Shared fixtures: caller credentials, an executor harness, and a seeded
school (class, module, enrolled student, exam).

Program tests run once per query backend: "structured" gives the
in-memory substrate a structured query path, "range" takes it away so
every listing goes through the range-scan fallback.
"""

from datetime import datetime, timedelta, timezone
from typing import Dict

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.x509.oid import NameOID

from acadledger.core.config import LedgerConfig
from acadledger.core.exceptions import AcadLedgerError
from acadledger.core.identity import serialize_identity
from acadledger.runtime.executor import OperationExecutor
from acadledger.store.memory import WorldState


T0        = datetime(2024, 1, 10, 9, 0, 0, tzinfo=timezone.utc)
EXAM_DATE = datetime(2024, 2, 1, 10, 0, 0, tzinfo=timezone.utc)
EXAM_DATE_WIRE = "2024-02-01T10:00:00.000Z"


# ─────────────────────────────────────────────────────────────
# Credentials
# ─────────────────────────────────────────────────────────────

def certificate_pem(name_attributes) -> bytes:
    """Self-signed Ed25519 certificate with the given subject attributes."""
    key = Ed25519PrivateKey.generate()
    subject = x509.Name(name_attributes)
    now = datetime.now(timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(subject)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=365))
        .sign(key, None)
    )
    return cert.public_bytes(serialization.Encoding.PEM)


def make_credential(msp_id: str, common_name: str) -> bytes:
    pem = certificate_pem([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    return serialize_identity(msp_id, pem)


CALLERS = {
    "prof":    ("SchoolMSP",   "prof.martin"),
    "alice":   ("StudentsMSP", "alice"),
    "bob":     ("StudentsMSP", "bob"),
    "mallory": ("VisitorsMSP", "mallory"),
}


@pytest.fixture(scope="session")
def credentials() -> Dict[str, bytes]:
    creds = {name: make_credential(msp, cn) for name, (msp, cn) in CALLERS.items()}
    creds["anonymous"] = b""
    return creds


# ─────────────────────────────────────────────────────────────
# Executor harness
# ─────────────────────────────────────────────────────────────

class LedgerHarness:
    """Submits operations by caller name at a chosen instant."""

    def __init__(self, executor: OperationExecutor, credentials: Dict[str, bytes]) -> None:
        self.executor    = executor
        self.credentials = credentials

    @property
    def world(self) -> WorldState:
        return self.executor.world

    def run(self, operation, *args, caller="prof", at=T0):
        return self.submit(operation, *args, caller=caller, at=at).payload

    def submit(self, operation, *args, caller="prof", at=T0):
        return self.executor.submit(operation, list(args), self.credentials[caller], at)

    def reject(self, operation, *args, caller="prof", at=T0) -> AcadLedgerError:
        """Run an operation that must fail; returns the failure."""
        with pytest.raises(AcadLedgerError) as info:
            self.run(operation, *args, caller=caller, at=at)
        return info.value


@pytest.fixture(params=["structured", "range"])
def backend(request) -> str:
    return request.param


@pytest.fixture
def make_ledger(backend, credentials):
    """Factory for a fresh harness; config overrides are passed through."""
    def _make(**config_overrides) -> LedgerHarness:
        world = WorldState(structured_queries=(backend == "structured"))
        config = LedgerConfig(**config_overrides)
        return LedgerHarness(OperationExecutor(world=world, config=config), credentials)
    return _make


@pytest.fixture
def ledger(make_ledger) -> LedgerHarness:
    return make_ledger()


def seed_school(ledger: LedgerHarness) -> LedgerHarness:
    """Class C1 with module M1, alice enrolled, bob not; exam E1 on EXAM_DATE."""
    ledger.run("CreateClass", "C1", "Algorithms", "Second year algorithms")
    ledger.run("AddModule", "C1", "M1")
    ledger.run("EnrollStudent", "C1", "alice")
    ledger.run("CreateExam", "E1", "C1", "M1", "Midterm", EXAM_DATE_WIRE, "ipfs://exam-e1")
    return ledger


@pytest.fixture
def school(ledger) -> LedgerHarness:
    return seed_school(ledger)
