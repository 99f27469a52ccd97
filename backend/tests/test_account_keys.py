"""
Account Key Resolution Tests
static ++ lookup-table writable ++ lookup-table readonly

Run: python -m pytest tests/test_account_keys.py -v
"""

from services.account_keys import find_program_index, resolve_account_keys
from conftest import make_transaction, PAYER, PROGRAM_ID, SYSTEM_PROGRAM, OTHER_PROGRAM


class TestResolveAccountKeys:

    def test_static_then_writable_then_readonly(self):
        tx = make_transaction(
            "sig",
            [PAYER, SYSTEM_PROGRAM],
            [],
            loaded={"writable": ["W1", "W2"], "readonly": ["R1", PROGRAM_ID]},
        )
        assert resolve_account_keys(tx) == [PAYER, SYSTEM_PROGRAM, "W1", "W2", "R1", PROGRAM_ID]

    def test_program_index_counts_loaded_addresses(self):
        tx = make_transaction(
            "sig",
            [PAYER],
            [],
            loaded={"writable": [OTHER_PROGRAM], "readonly": [PROGRAM_ID]},
        )
        keys = resolve_account_keys(tx)
        assert find_program_index(keys, PROGRAM_ID) == 2
        assert find_program_index(keys, OTHER_PROGRAM) == 1

    def test_static_account_keys_field(self):
        tx = {"transaction": {"message": {"staticAccountKeys": [PAYER, PROGRAM_ID]}}, "meta": None}
        assert resolve_account_keys(tx) == [PAYER, PROGRAM_ID]

    def test_json_parsed_key_objects(self):
        tx = make_transaction(
            "sig",
            [{"pubkey": PAYER, "signer": True, "writable": True}, {"pubkey": PROGRAM_ID, "signer": False, "writable": False}],
            [],
        )
        assert resolve_account_keys(tx) == [PAYER, PROGRAM_ID]

    def test_legacy_transaction_without_loaded_addresses(self):
        tx = make_transaction("sig", [PAYER, PROGRAM_ID], [])
        assert resolve_account_keys(tx) == [PAYER, PROGRAM_ID]

    def test_missing_message(self):
        assert resolve_account_keys({"transaction": None}) == []
        assert resolve_account_keys(None) == []

    def test_absent_program(self):
        assert find_program_index([PAYER], PROGRAM_ID) == -1
