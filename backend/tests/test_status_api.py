"""
Status API Tests
Routes under /api/status against a verifier wired to a fake ledger

Run: python -m pytest tests/test_status_api.py -v
"""

import pytest
from fastapi.testclient import TestClient

from data_sources.idl_registry import IdlRegistry
from infrastructure.config import Network
from main import create_app
from services.idl_verifier import IdlVerifier
from services.verification_history import VerificationHistory
from conftest import FakeConnection, FakeGateway, PROGRAM_ID


@pytest.fixture
def verifier(registry_files, program_account, verification_config, storage_config):
    gateway = FakeGateway({
        Network.MAINNET: FakeConnection(accounts={PROGRAM_ID: program_account}),
        Network.DEVNET: FakeConnection(),
    })
    return IdlVerifier(
        gateway,
        VerificationHistory(verification_config, storage_config),
        idl_registry=IdlRegistry(storage_config),
        verification_config=verification_config,
    )


@pytest.fixture
def client(verifier):
    return TestClient(create_app(verifier))


class TestStatusRoutes:

    def test_before_first_run(self, client):
        response = client.get("/api/status")
        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "IDLHub"
        assert data["status"] == "no_data"
        assert data["verification"]["running"] is False
        assert data["history"] == []
        assert data["config"]["verified_threshold"] == 0.9

    def test_manual_run_then_read_back(self, client):
        response = client.post("/api/status/verify", json={})
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["result"]["verified"] == 1
        assert body["result"]["total"] == 3

        status = client.get("/api/status").json()
        assert status["status"] == "operational"
        assert status["verification"]["verifiedPercent"] == pytest.approx(33.3)
        assert len(status["history"]) == 1

        protocols = client.get("/api/status/protocols").json()["protocols"]
        assert set(protocols) == {"acme-dex", "future-protocol", "nameless-thing"}
        assert protocols["acme-dex"]["programs"][0]["programInfo"]["executable"] is True

        acme = client.get("/api/status/acme-dex").json()
        assert acme["status"] == "verified"
        assert acme["details"]["message"] == "All 1 program(s) verified on mainnet"

        assert client.get("/api/status/history").json()["totalRuns"] == 1

    def test_subset_run(self, client):
        body = client.post("/api/status/verify", json={"protocols": ["future-protocol"]}).json()
        assert body["result"]["total"] == 1
        assert body["result"]["verified"] == 0

    def test_unknown_protocol(self, client):
        response = client.get("/api/status/not-a-protocol")
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"

    def test_trigger_while_running(self, client, verifier):
        verifier._running = True
        body = client.post("/api/status/verify").json()
        assert body == {"success": False, "message": "already running"}
        assert verifier.history.latest() is None

    def test_no_transaction_run_yet(self, client):
        assert client.get("/api/status/tx").status_code == 404

    def test_health(self, client):
        assert client.get("/health").json()["status"] == "ok"


class TestErrorEnvelope:

    def test_malformed_verify_body(self, client, verifier):
        response = client.post("/api/status/verify", json={"protocols": "acme-dex"})
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"
        assert verifier.history.latest() is None

    def test_unknown_route(self, client):
        response = client.get("/api/nowhere")
        assert response.status_code == 404
        assert response.json()["success"] is False
        assert response.json()["error"]["code"] == "NOT_FOUND"
