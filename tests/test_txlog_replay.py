"""
tests/test_txlog_replay.py

Transaction log and replay:

    - one signed, chained envelope per committed write operation
    - rebuilding from the log reproduces the world-state hash
    - re-executing the log reproduces every write set and event
    - tampering is detected: signature, chain, sequence, divergence
"""

import json
from datetime import timedelta

import pytest

from acadledger.core.config import LedgerConfig
from acadledger.core.crypto import Ed25519KeyManager
from acadledger.core.exceptions import LedgerError
from acadledger.ledger.replay import ReplayEngine
from acadledger.ledger.txlog import GENESIS_HASH, TransactionLog, read_envelopes
from acadledger.runtime.executor import OperationExecutor
from acadledger.store.memory import WorldState

from conftest import EXAM_DATE, LedgerHarness, seed_school


@pytest.fixture
def key():
    return Ed25519KeyManager.generate()


@pytest.fixture
def logged(tmp_path, key, credentials):
    """A seeded school whose executor appends to a transaction log."""
    tx_log = TransactionLog(key, tmp_path)
    executor = OperationExecutor(world=WorldState(), tx_log=tx_log)
    ledger = seed_school(LedgerHarness(executor, credentials))
    ledger.run("EnrollStudent", "C1", "bob", caller="bob")
    ledger.run("UploadMaterial", "MAT1", "C1", "M1", "Lecture 1", "COURS", "ipfs://l1")
    ledger.run("SubmitGrade", "G1", "E1", "alice", 15.5, "Good")
    ledger.run("UploadCorrection", "E1", "ipfs://c1", at=EXAM_DATE)
    ledger.run("PublishGrade", "G1", at=EXAM_DATE + timedelta(hours=1))
    ledger.run("UpdateGrade", "G1", 16, "", at=EXAM_DATE + timedelta(hours=2))
    ledger.run("DeleteMaterial", "MAT1", at=EXAM_DATE + timedelta(hours=3))
    # read-only and failed operations are not logged
    ledger.run("ListGradesForClass", "C1", caller="alice", at=EXAM_DATE + timedelta(hours=4))
    ledger.reject("GetGrade", "G1", caller="bob")
    return ledger


def _rewrite(path, mutate):
    lines = [json.loads(l) for l in path.read_text(encoding="utf-8").splitlines() if l.strip()]
    mutate(lines)
    path.write_text("".join(json.dumps(l) + "\n" for l in lines), encoding="utf-8")


class TestTransactionLog:

    def test_one_envelope_per_committed_write(self, logged):
        envelopes = logged.executor.tx_log.envelopes()
        assert [e.operation for e in envelopes] == [
            "CreateClass", "AddModule", "EnrollStudent", "CreateExam", "EnrollStudent",
            "UploadMaterial", "SubmitGrade", "UploadCorrection", "PublishGrade",
            "UpdateGrade", "DeleteMaterial",
        ]
        assert [e.sequence for e in envelopes] == list(range(len(envelopes)))

    def test_envelopes_are_signed_and_chained(self, logged, key):
        envelopes = logged.executor.tx_log.envelopes()
        assert envelopes[0].causal_hash == GENESIS_HASH
        for prev, env in zip(envelopes, envelopes[1:]):
            assert env.verify_chain(prev)
        assert all(e.verify_signature() for e in envelopes)
        assert {e.signer_public_key for e in envelopes} == {key.public_key_hex}

    def test_envelope_records_inputs(self, logged):
        env = logged.executor.tx_log.envelopes()[4]
        assert env.operation == "EnrollStudent"
        assert env.args == ["C1", "bob"]
        assert '"mspid": "StudentsMSP"' in env.credential
        assert env.timestamp == "2024-01-10T09:00:00.000Z"
        assert [w["key"] for w in env.write_set] == ["C1"]
        assert env.events[0]["name"] == "StudentEnrolled"

    def test_delete_is_logged(self, logged):
        env = logged.executor.tx_log.envelopes()[-1]
        assert env.write_set == [{"key": "MAT1", "value": None, "delete": True}]

    def test_schema_valid(self, logged):
        for env in logged.executor.tx_log.envelopes():
            assert env.validate_schema(), env.validate_schema().errors

    def test_restart_continues_chain(self, logged, key, tmp_path):
        reopened = TransactionLog(key, tmp_path)
        assert len(reopened) == 11
        stats = reopened.get_stats()
        assert stats["next_sequence"] == 11
        assert stats["log_file"].endswith("ledger.jsonl")

    def test_corrupted_last_line_refuses_restart(self, logged, key, tmp_path):
        path = tmp_path / "ledger.jsonl"
        with open(path, "a", encoding="utf-8") as f:
            f.write("{not json\n")
        with pytest.raises(LedgerError):
            TransactionLog(key, tmp_path)
        with pytest.raises(LedgerError):
            read_envelopes(path)

    def test_tampered_field_breaks_signature(self, logged):
        env = logged.executor.tx_log.envelopes()[2]
        env.args = ["C1", "mallory"]
        assert not env.verify_signature()


class TestReplay:

    def test_rebuild_reproduces_state_hash(self, logged, tmp_path):
        engine = ReplayEngine()
        engine.load(tmp_path / "ledger.jsonl")
        assert engine.rebuild().state_hash() == logged.world.state_hash()

    def test_verify_clean_log(self, logged, tmp_path):
        engine = ReplayEngine()
        engine.load(tmp_path / "ledger.jsonl")
        summary = engine.verify()
        assert summary.chain_valid
        assert summary.total_entries == 11
        assert summary.valid_signatures == 11
        assert summary.operation_counts["EnrollStudent"] == 2
        assert summary.first_timestamp == "2024-01-10T09:00:00.000Z"

    def test_reexecution_reproduces_every_write_set(self, logged, tmp_path):
        engine = ReplayEngine()
        engine.load(tmp_path / "ledger.jsonl")
        world = WorldState(structured_queries=False)
        assert engine.reexecute(LedgerConfig(), world) == []
        assert world.state_hash() == logged.world.state_hash()

    def test_reexecution_under_other_delay_diverges(self, logged, tmp_path):
        engine = ReplayEngine()
        engine.load(tmp_path / "ledger.jsonl")
        divergences = engine.reexecute(LedgerConfig(correction_delay_hours=24))
        assert [d.violation_type for d in divergences] == ["divergence"]
        assert divergences[0].tx_id == logged.executor.tx_log.envelopes()[7].tx_id

    def test_reexecution_detects_forged_write(self, logged, tmp_path, key):
        path = tmp_path / "ledger.jsonl"

        def forge(lines):
            entry = lines[6]["write_set"][0]
            entry["value"] = entry["value"].replace("15.5", "20")

        _rewrite(path, forge)
        engine = ReplayEngine()
        engine.load(path)
        summary = engine.verify()
        divergences = engine.reexecute()
        assert "invalid_signature" in [v.violation_type for v in summary.violations]
        assert divergences[0].at_sequence == 6

    def test_failed_reexecution_reported(self, logged, tmp_path):
        path = tmp_path / "ledger.jsonl"
        _rewrite(path, lambda lines: lines[2].update(args=["C9", "alice"]))
        engine = ReplayEngine()
        engine.load(path)
        kinds = [d.violation_type for d in engine.reexecute()]
        assert kinds[0] == "execution_failed"

    def test_chain_break_and_sequence_gap(self, logged, tmp_path):
        path = tmp_path / "ledger.jsonl"
        _rewrite(path, lambda lines: lines.pop(3))
        engine = ReplayEngine()
        engine.load(path)
        kinds = {v.violation_type for v in engine.verify().violations}
        assert {"sequence_gap", "chain_break"} <= kinds

    def test_missing_log(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            ReplayEngine().load(tmp_path / "absent.jsonl")

    def test_schema_violation_rejected(self, logged, tmp_path):
        path = tmp_path / "ledger.jsonl"
        _rewrite(path, lambda lines: lines[0].update(timestamp="2024-01-10T09:00:00Z"))
        with pytest.raises(LedgerError, match="Schema violation"):
            ReplayEngine().load(path)

    def test_export_report(self, logged, tmp_path):
        engine = ReplayEngine()
        engine.load(tmp_path / "ledger.jsonl")
        out = tmp_path / "reports" / "report.json"
        engine.export_json(out)
        report = json.loads(out.read_text(encoding="utf-8"))["acadledger_replay_report"]
        assert report["total_entries"] == 11
        assert report["chain_valid"] is True


class TestNodeKey:

    def test_load_or_create_persists(self, tmp_path):
        path = tmp_path / "state" / "node.key"
        created = Ed25519KeyManager.load_or_create(path)
        assert path.exists()
        loaded = Ed25519KeyManager.load_or_create(path)
        assert loaded.public_key_hex == created.public_key_hex

    def test_signatures_verify_across_reload(self, tmp_path, key):
        key.save(tmp_path / "node.key")
        reloaded = Ed25519KeyManager.from_file(tmp_path / "node.key")
        signature = key.sign(b"payload")
        verify = Ed25519KeyManager.verify_detached
        assert verify(b"payload", signature, reloaded.public_key_hex)
        assert not verify(b"other", signature, reloaded.public_key_hex)
        assert not verify(b"payload", signature, Ed25519KeyManager.generate().public_key_hex)
        assert not verify(b"payload", signature[:-4], reloaded.public_key_hex)

    def test_not_a_key(self, tmp_path):
        path = tmp_path / "node.key"
        path.write_text("garbage", encoding="utf-8")
        with pytest.raises(ValueError):
            Ed25519KeyManager.from_file(path)
        with pytest.raises(FileNotFoundError):
            Ed25519KeyManager.from_file(tmp_path / "absent.key")
