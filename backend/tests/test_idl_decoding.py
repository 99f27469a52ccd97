"""
IDL Decoding Tests
Schema-derived instruction coder and the per-transaction instruction scan

Run: python -m pytest tests/test_idl_decoding.py -v
"""

import base64
import hashlib
import struct

import base58
import pytest

from infrastructure.errors import InstructionDecodeError, SchemaError
from services.idl_coder import IdlInstructionCoder, discriminator_hex, sighash, snake_case
from services.instruction_decoder import InstructionDecoder, payload_bytes
from services.verification_models import DecodeSource
from conftest import make_transaction, swap_payload, PAYER, PROGRAM_ID, OTHER_PROGRAM


@pytest.fixture
def market_idl():
    return {
        "name": "acme_market",
        "instructions": [
            {
                "name": "initializeMarket",
                "accounts": [],
                "args": [
                    {"name": "config", "type": {"defined": "MarketConfig"}},
                    {"name": "label", "type": "string"},
                    {"name": "side", "type": {"defined": {"name": "Side"}}},
                    {"name": "limit", "type": {"option": "u64"}},
                    {"name": "weights", "type": {"vec": "u16"}},
                    {"name": "seed", "type": {"array": ["u8", 4]}},
                    {"name": "authority", "type": "publicKey"},
                ],
            },
            {
                "name": "deposit",
                "discriminator": [1, 2, 3, 4, 5, 6, 7, 8],
                "accounts": [],
                "args": [{"name": "amount", "type": "u64"}],
            },
        ],
        "types": [
            {
                "name": "MarketConfig",
                "type": {"kind": "struct", "fields": [
                    {"name": "feeBps", "type": "u16"},
                    {"name": "tick", "type": "u32"},
                ]},
            },
            {
                "name": "Side",
                "type": {"kind": "enum", "variants": [
                    {"name": "Bid"},
                    {"name": "Ask", "fields": [{"name": "price", "type": "u64"}]},
                ]},
            },
        ],
    }


def initialize_market_payload():
    return (
        sighash("initializeMarket")
        + struct.pack("<HI", 30, 100)
        + struct.pack("<I", 4) + b"SOL/"
        + b"\x01" + struct.pack("<Q", 99)
        + b"\x01" + struct.pack("<Q", 5)
        + struct.pack("<I", 2) + struct.pack("<HH", 1, 2)
        + b"seed"
        + base58.b58decode(PROGRAM_ID)
    )


# =============================================================================
# TEST: Discriminators
# =============================================================================

class TestDiscriminators:

    def test_snake_case(self):
        assert snake_case("initializeMarket") == "initialize_market"
        assert snake_case("swapV2") == "swap_v2"
        assert snake_case("swap") == "swap"

    def test_sighash_matches_anchor(self):
        assert sighash("initializeMarket") == hashlib.sha256(b"global:initialize_market").digest()[:8]

    def test_discriminator_hex_is_fixed_width(self):
        assert discriminator_hex(b"\x01\x02") == "0102000000000000"
        assert discriminator_hex(b"") == "0000000000000000"
        assert discriminator_hex(bytes(range(12))) == "0001020304050607"


# =============================================================================
# TEST: Instruction coder
# =============================================================================

class TestInstructionCoder:

    def test_decodes_nested_types(self, market_idl):
        decoded = IdlInstructionCoder(market_idl).decode(initialize_market_payload())
        assert decoded.name == "initializeMarket"
        assert decoded.args["config"] == {"feeBps": 30, "tick": 100}
        assert decoded.args["label"] == "SOL/"
        assert decoded.args["side"] == {"variant": 1, "value": {"price": 99}}
        assert decoded.args["limit"] == 5
        assert decoded.args["weights"] == [1, 2]
        assert decoded.args["seed"] == b"seed"
        assert decoded.args["authority"] == PROGRAM_ID

    def test_explicit_discriminator(self, market_idl):
        decoded = IdlInstructionCoder(market_idl).decode(bytes(range(1, 9)) + struct.pack("<Q", 7))
        assert decoded.name == "deposit"
        assert decoded.args == {"amount": 7}

    def test_unknown_discriminator(self, market_idl):
        with pytest.raises(InstructionDecodeError) as exc_info:
            IdlInstructionCoder(market_idl).decode(b"\xff" * 16)
        assert exc_info.value.discriminator == "ffffffffffffffff"

    def test_truncated_payload(self, market_idl):
        with pytest.raises(InstructionDecodeError):
            IdlInstructionCoder(market_idl).decode(initialize_market_payload()[:20])

    def test_bad_enum_variant(self, market_idl):
        payload = bytearray(initialize_market_payload())
        # side tag follows config (6 bytes) and label (8 bytes)
        payload[8 + 6 + 8] = 7
        assert IdlInstructionCoder(market_idl).try_decode(bytes(payload)) is None

    def test_undefined_type_is_schema_error(self):
        idl = {"instructions": [{"name": "swap", "args": [{"name": "x", "type": {"defined": "Missing"}}]}]}
        with pytest.raises(SchemaError):
            IdlInstructionCoder(idl)

    def test_unsupported_primitive_is_schema_error(self):
        idl = {"instructions": [{"name": "swap", "args": [{"name": "x", "type": "u512"}]}]}
        with pytest.raises(SchemaError):
            IdlInstructionCoder(idl)

    def test_duplicate_discriminator_is_schema_error(self):
        idl = {"instructions": [{"name": "swapV2", "args": []}, {"name": "swap_v2", "args": []}]}
        with pytest.raises(SchemaError):
            IdlInstructionCoder(idl)


# =============================================================================
# TEST: Instruction scan
# =============================================================================

class TestInstructionDecoder:

    def test_payload_normalization(self):
        raw = swap_payload()
        assert payload_bytes(raw) == raw
        assert payload_bytes(list(raw)) == raw
        assert payload_bytes(base58.b58encode(raw).decode()) == raw
        assert payload_bytes([base64.b64encode(raw).decode(), "base64"]) == raw
        with pytest.raises(ValueError):
            payload_bytes(42)
        with pytest.raises(ValueError):
            payload_bytes(["not", "bytes", 1])
        with pytest.raises(ValueError):
            payload_bytes(["!!!notbase64", "base64"])

    def test_top_level_and_nested(self, swap_idl):
        tx = make_transaction(
            "sigA",
            [PAYER, OTHER_PROGRAM, PROGRAM_ID],
            [
                {"programIdIndex": 1, "accounts": [], "data": base58.b58encode(b"other").decode()},
                {"programIdIndex": 2, "accounts": [], "data": base58.b58encode(swap_payload()).decode()},
            ],
            inner=[{"index": 0, "instructions": [
                {"programIdIndex": 2, "accounts": [], "data": base58.b58encode(swap_payload(5, 4)).decode()},
                {"programIdIndex": 2, "accounts": [], "data": base58.b58encode(b"\x00" * 8).decode()},
            ]}],
        )
        attempts = InstructionDecoder(IdlInstructionCoder(swap_idl)).scan_for_program(tx, PROGRAM_ID)

        assert [a.source for a in attempts] == [DecodeSource.TOP_LEVEL, DecodeSource.NESTED, DecodeSource.NESTED]
        assert [a.instruction_name for a in attempts] == ["swap", "swap", None]
        assert attempts[2].discriminator == "0000000000000000"
        assert all(a.signature == "sigA" for a in attempts)

    def test_program_reached_through_lookup_table(self, swap_idl):
        tx = make_transaction(
            "sigB",
            [PAYER],
            [{"programIdIndex": 2, "accounts": [], "data": base58.b58encode(swap_payload()).decode()}],
            loaded={"writable": [OTHER_PROGRAM], "readonly": [PROGRAM_ID]},
        )
        attempts = InstructionDecoder(IdlInstructionCoder(swap_idl)).scan_for_program(tx, PROGRAM_ID)
        assert [a.instruction_name for a in attempts] == ["swap"]

    def test_program_absent_contributes_nothing(self, swap_idl):
        tx = make_transaction("sigC", [PAYER, OTHER_PROGRAM], [{"programIdIndex": 1, "data": "3vQB7B6MrGQZaxCuFg4oh"}])
        decoder = InstructionDecoder(IdlInstructionCoder(swap_idl))
        assert decoder.scan_for_program(tx, PROGRAM_ID) == []
        assert decoder.scan(tx, -1) == []

    def test_unreadable_payload_is_a_failure(self, swap_idl):
        tx = make_transaction("sigD", [PAYER, PROGRAM_ID], [{"programIdIndex": 1, "data": "0OIl"}])
        attempts = InstructionDecoder(IdlInstructionCoder(swap_idl)).scan_for_program(tx, PROGRAM_ID)
        assert len(attempts) == 1
        assert not attempts[0].success
        assert attempts[0].discriminator == ""

    def test_base64_pair_and_odd_lists_do_not_abort_scan(self, swap_idl):
        tx = make_transaction("sigE", [PAYER, PROGRAM_ID], [
            {"programIdIndex": 1, "data": ["AAAA", "base64"]},
            {"programIdIndex": 1, "data": [base64.b64encode(swap_payload()).decode(), "base64"]},
            {"programIdIndex": 1, "data": ["x", 1, None]},
        ])
        attempts = InstructionDecoder(IdlInstructionCoder(swap_idl)).scan_for_program(tx, PROGRAM_ID)
        assert [a.success for a in attempts] == [False, True, False]
        assert attempts[0].discriminator == "0000000000000000"
        assert attempts[2].discriminator == ""
