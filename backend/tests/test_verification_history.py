"""
Verification History Tests
Ring buffer, per-protocol latest result, summary and JSON persistence

Run: python -m pytest tests/test_verification_history.py -v
"""

import json
import os

import pytest

from infrastructure.config import StorageConfig, VerificationConfig
from infrastructure.errors import PersistenceError
from services.verification_history import VerificationHistory
from services.verification_models import (
    ProgramResult,
    ProgramStatus,
    VerificationResult,
    VerificationRun,
    VerificationStatus,
)


@pytest.fixture
def history(verification_config, storage_config):
    return VerificationHistory(verification_config, storage_config)


def make_run(timestamp, statuses):
    run = VerificationRun(timestamp=timestamp, total_protocols=len(statuses))
    for i, status in enumerate(statuses):
        programs = [ProgramResult(name="Main", address=f"addr{i}", status=ProgramStatus.VERIFIED)] \
            if status == VerificationStatus.VERIFIED else []
        run.tally(VerificationResult(protocol_id=f"p{i}", status=status, programs=programs))
    return run


class TestRingBuffer:

    def test_never_exceeds_capacity(self, history):
        for i in range(10):
            history.record(make_run(f"t{i}", [VerificationStatus.VERIFIED]))
            assert len(history.history()) <= history.max_history
        assert len(history.history()) == 3

    def test_oldest_evicted_first(self, history):
        for i in range(5):
            history.record(make_run(f"t{i}", []))
        assert [r.timestamp for r in history.history()] == ["t4", "t3", "t2"]
        assert history.latest().timestamp == "t4"

    def test_protocol_result_replaced_wholesale(self, history):
        history.record(make_run("t0", [VerificationStatus.VERIFIED]))
        history.record(make_run("t1", [VerificationStatus.PROGRAM_NOT_FOUND]))
        result = history.for_protocol("p0")
        assert result.status == VerificationStatus.PROGRAM_NOT_FOUND
        assert result.programs == []

    def test_unknown_protocol(self, history):
        assert history.for_protocol("missing") is None

    def test_reset(self, history):
        history.record(make_run("t0", [VerificationStatus.VERIFIED]))
        history.reset()
        assert history.latest() is None
        assert history.protocol_results() == {}


class TestRunCounters:

    def test_tally(self):
        run = make_run("t", [
            VerificationStatus.VERIFIED,
            VerificationStatus.PARTIAL,
            VerificationStatus.PLACEHOLDER,
            VerificationStatus.NO_PROGRAM_ID,
            VerificationStatus.DEVNET_ONLY,
            VerificationStatus.RPC_ERROR,
            VerificationStatus.PROGRAM_NOT_FOUND,
        ])
        data = run.to_dict(include_protocols=False)
        assert (data["verified"], data["partial"], data["placeholder"], data["noProgram"]) == (1, 1, 1, 1)
        assert (data["devnetOnly"], data["rpcError"], data["failed"]) == (1, 1, 1)
        assert (data["totalPrograms"], data["verifiedPrograms"]) == (1, 1)
        assert "protocols" not in data


class TestSummary:

    def test_no_data(self, history):
        assert history.summary()["status"] == "no_data"

    def test_operational(self, history):
        history.record(make_run("t0", [VerificationStatus.VERIFIED, VerificationStatus.PROGRAM_NOT_FOUND]))
        summary = history.summary()
        assert summary["status"] == "operational"
        assert summary["verifiedPercent"] == 50.0
        assert summary["programsVerifiedPercent"] == 100.0

    def test_zero_denominators_are_explicit(self, history):
        history.record(make_run("t0", []))
        summary = history.summary()
        assert summary["status"] == "degraded"
        assert summary["verifiedPercent"] is None
        assert summary["programsVerifiedPercent"] is None

    def test_uptime_window(self, verification_config, storage_config):
        verification_config.uptime_window = 2
        history = VerificationHistory(verification_config, storage_config)
        for i in range(3):
            history.record(make_run(f"t{i}", [VerificationStatus.VERIFIED]))
        uptime = history.summary()["uptimeHistory"]
        assert [u["timestamp"] for u in uptime] == ["t2", "t1"]
        assert uptime[0] == {"timestamp": "t2", "verified": 1, "total": 1, "programs": 1, "totalPrograms": 1}


class TestPersistence:

    def test_persist_and_load(self, history, verification_config, storage_config):
        history.record(make_run("t0", [VerificationStatus.VERIFIED]))
        history.record(make_run("t1", [VerificationStatus.PARTIAL]))
        history.persist()

        with open(storage_config.path_for(storage_config.history_file)) as f:
            persisted = json.load(f)
        assert [r["timestamp"] for r in persisted] == ["t1", "t0"]

        restored = VerificationHistory(verification_config, storage_config)
        assert restored.load() == 2
        assert restored.latest().timestamp == "t1"
        assert restored.for_protocol("p0").status == VerificationStatus.PARTIAL

    def test_persisted_history_has_its_own_cap(self, storage_config):
        history = VerificationHistory(VerificationConfig(max_history=2, persisted_history=4), storage_config)
        for i in range(6):
            history.record(make_run(f"t{i}", []))
        assert len(history.history()) == 2
        assert len(history.persisted_history()) == 4

    def test_load_without_files(self, history):
        assert history.load() == 0
        assert history.latest() is None

    def test_unwritable_directory(self, tmp_path, verification_config):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        history = VerificationHistory(verification_config, StorageConfig(data_dir=str(blocker / "data")))
        history.record(make_run("t0", []))
        with pytest.raises(PersistenceError):
            history.persist()
        assert history.latest().timestamp == "t0"
        assert not os.path.exists(blocker / "data")
