"""
Account key resolution for fetched transactions.

Instruction `programIdIndex` values index into the concatenation
    static keys ++ lookup-table writable ++ lookup-table readonly
so this order must not change.
"""

from typing import Any, Dict, List, Optional


def _key_to_str(key: Any) -> str:
    # jsonParsed encoding wraps keys as {"pubkey": ..., "signer": ..., "writable": ...}
    if isinstance(key, dict):
        return str(key.get("pubkey", ""))
    return str(key)


def get_message(transaction: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    tx = (transaction or {}).get("transaction")
    if not isinstance(tx, dict):
        return None
    message = tx.get("message")
    return message if isinstance(message, dict) else None


def resolve_account_keys(transaction: Dict[str, Any]) -> List[str]:
    """Authoritative, order-sensitive account list for a transaction."""
    message = get_message(transaction)
    if message is None:
        return []

    static_keys = message.get("staticAccountKeys") or message.get("accountKeys") or []
    keys = [_key_to_str(k) for k in static_keys]

    loaded = ((transaction.get("meta") or {}).get("loadedAddresses")) or {}
    keys.extend(_key_to_str(k) for k in loaded.get("writable") or [])
    keys.extend(_key_to_str(k) for k in loaded.get("readonly") or [])
    return keys


def find_program_index(account_keys: List[str], program_id: str) -> int:
    """Position of the program in the resolved key list, or -1."""
    try:
        return account_keys.index(program_id)
    except ValueError:
        return -1
