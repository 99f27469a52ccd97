"""
Pytest Configuration for IDLHub Verifier Tests

Run all tests: python -m pytest tests/ -v
Run unit tests only: python -m pytest tests/ -v -m "not integration"
Run integration tests: python -m pytest tests/ -v -m integration
"""

import pytest
import sys
import hashlib
import json
import struct
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Load environment
from dotenv import load_dotenv
load_dotenv(Path(__file__).parent.parent / ".env")

import base58

from infrastructure.config import StorageConfig, VerificationConfig
from infrastructure.errors import LedgerConnectivityError, LedgerRequestError
from infrastructure.ledger import AccountInfo


# =============================================================================
# CONSTANTS
# =============================================================================

PROGRAM_ID = "9xQeWvG816bUx9EPjHmaT23yvVM2ZWbrrpZb9PusVFin"
SYSTEM_PROGRAM = "11111111111111111111111111111111"
PAYER = "JUP6LkbZbjS1jKKwapdHNy74zcZ3tLUZoi5QNyVTaV4"
OTHER_PROGRAM = "whirLbMiicVdio4qvUfM5KAg6Ct8VwpYzGff3uctyCc"


def swap_payload(amount_in: int = 1_000, min_out: int = 990) -> bytes:
    disc = hashlib.sha256(b"global:swap").digest()[:8]
    return disc + struct.pack("<QQ", amount_in, min_out)


def make_transaction(
    signature: str,
    static_keys,
    instructions,
    inner=None,
    loaded=None,
):
    """Hand-built getTransaction(json) response"""
    meta = {"err": None}
    if inner is not None:
        meta["innerInstructions"] = inner
    if loaded is not None:
        meta["loadedAddresses"] = loaded
    return {
        "slot": 1,
        "transaction": {
            "signatures": [signature],
            "message": {"accountKeys": list(static_keys), "instructions": list(instructions)},
        },
        "meta": meta,
    }


# =============================================================================
# FAKE LEDGER
# =============================================================================

class FakeConnection:
    """In-memory stand-in for LedgerConnection"""

    def __init__(self, accounts=None, transactions=None, failing=None):
        self.accounts = accounts or {}
        self.transactions = transactions or {}
        self.failing = set(failing or [])
        self.calls = []

    async def get_account_info(self, address):
        self.calls.append(("getAccountInfo", address))
        if address in self.failing:
            raise LedgerRequestError("getAccountInfo", "node is behind", "fake://rpc")
        return self.accounts.get(address)

    async def get_signatures_for_address(self, address, limit=20, before=None):
        self.calls.append(("getSignaturesForAddress", address))
        return [{"signature": sig} for sig in list(self.transactions)[:limit]]

    async def get_transaction(self, signature):
        self.calls.append(("getTransaction", signature))
        if signature in self.failing:
            raise LedgerRequestError("getTransaction", "rate limited", "fake://rpc")
        return self.transactions.get(signature)


class FakeGateway:
    """In-memory stand-in for LedgerGateway"""

    def __init__(self, connections=None, unreachable=None):
        self.connections = connections or {}
        self.unreachable = set(unreachable or [])
        self.connect_calls = []
        self.closed = False

    async def connect(self, network):
        self.connect_calls.append(network)
        if network in self.unreachable or network not in self.connections:
            raise LedgerConnectivityError(network.value, ["fake://rpc"])
        return self.connections[network]

    def reset(self):
        pass

    async def close(self):
        self.closed = True


# =============================================================================
# FIXTURES - Shared across all test files
# =============================================================================

@pytest.fixture
def program_account():
    return AccountInfo(
        executable=True,
        owner="BPFLoaderUpgradeab1e11111111111111111111111",
        lamports=1_141_440,
        data_len=36,
    )


@pytest.fixture
def swap_idl():
    """Schema with a single `swap` instruction"""
    return {
        "version": "0.1.0",
        "name": "acme_dex",
        "metadata": {"address": PROGRAM_ID},
        "instructions": [
            {
                "name": "swap",
                "accounts": [
                    {"name": "user", "isMut": True, "isSigner": True},
                    {"name": "pool", "isMut": True, "isSigner": False},
                ],
                "args": [
                    {"name": "amountIn", "type": "u64"},
                    {"name": "minimumAmountOut", "type": "u64"},
                ],
            }
        ],
        "accounts": [],
    }


@pytest.fixture
def swap_transactions():
    """10 transactions: 9 swaps and 1 unknown instruction"""
    txs = {}
    for i in range(9):
        sig = f"sig{i}"
        txs[sig] = make_transaction(
            sig,
            [PAYER, PROGRAM_ID],
            [{"programIdIndex": 1, "accounts": [0], "data": base58.b58encode(swap_payload(i + 1, i)).decode()}],
        )
    txs["sig9"] = make_transaction(
        "sig9",
        [PAYER, PROGRAM_ID],
        [{"programIdIndex": 1, "accounts": [0], "data": base58.b58encode(b"\xde\xad\xbe\xef" * 3).decode()}],
    )
    return txs


@pytest.fixture
def verification_config():
    """Default thresholds, no pauses"""
    return VerificationConfig(
        tx_delay_seconds=0,
        program_delay_seconds=0,
        protocol_delay_seconds=0,
        max_history=3,
    )


@pytest.fixture
def storage_config(tmp_path):
    return StorageConfig(
        data_dir=str(tmp_path / "data"),
        index_path=str(tmp_path / "index.json"),
        manifest_path=str(tmp_path / "manifest.json"),
    )


@pytest.fixture
def registry_files(tmp_path, swap_idl):
    """index.json with a live, a placeholder and an unmapped protocol, plus the manifest"""
    (tmp_path / "IDLs").mkdir()
    (tmp_path / "IDLs" / "acme-dexIDL.json").write_text(json.dumps(swap_idl))
    index = {"protocols": [
        {"id": "acme-dex", "name": "Acme DEX", "status": "available", "idlPath": "IDLs/acme-dexIDL.json"},
        {"id": "future-protocol", "name": "Future", "status": "placeholder", "idlPath": "IDLs/missing.json"},
        {"id": "nameless-thing", "name": "Nameless", "status": "available"},
    ]}
    (tmp_path / "index.json").write_text(json.dumps(index))
    manifest = {"idls": {
        "acme-dex": {"txId": "tx-acme"},
        "ghost": {"txId": "tx-ghost"},
        "pending": {"status": "uploading"},
    }}
    (tmp_path / "manifest.json").write_text(json.dumps(manifest))
    return tmp_path


# =============================================================================
# MARKERS
# =============================================================================

def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (use real APIs)"
    )
    config.addinivalue_line(
        "markers", "slow: marks tests as slow running"
    )
