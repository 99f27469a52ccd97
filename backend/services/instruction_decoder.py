"""
Instruction Decoder - replays a transaction's instructions through the schema coder.

Looks at top-level instructions and at nested (CPI) instructions recorded in
meta.innerInstructions. Only instructions whose programIdIndex points at the
candidate program are attempted. A failed decode is an outcome, not an error.
"""

import base64
import logging
from typing import Any, Dict, Iterator, List, Tuple

import base58

from infrastructure.errors import InstructionDecodeError
from .account_keys import find_program_index, get_message, resolve_account_keys
from .idl_coder import IdlInstructionCoder, discriminator_hex
from .verification_models import DecodeAttempt, DecodeSource

logger = logging.getLogger("InstructionDecoder")


def payload_bytes(data: Any) -> bytes:
    """
    Normalize an instruction payload to raw bytes.
    RPC `json` encoding delivers base58 text, `base64` encoding a
    [text, "base64"] pair; other clients hand over byte arrays.

    Raises:
        ValueError: anything that cannot be read as bytes
    """
    if isinstance(data, (bytes, bytearray)):
        return bytes(data)
    if isinstance(data, str):
        return base58.b58decode(data)
    if isinstance(data, list):
        if len(data) == 2 and isinstance(data[0], str) and data[1] == "base64":
            return base64.b64decode(data[0], validate=True)
        try:
            return bytes(data)
        except TypeError as e:
            raise ValueError(f"Payload list is not a byte array: {e}") from e
    raise ValueError(f"Unsupported payload type: {type(data).__name__}")


def transaction_signature(transaction: Dict[str, Any]) -> str:
    signatures = ((transaction or {}).get("transaction") or {}).get("signatures") or []
    return signatures[0] if signatures else ""


class InstructionDecoder:
    """Schema-driven decode of one program's instructions inside a transaction"""

    def __init__(self, coder: IdlInstructionCoder):
        self.coder = coder

    def scan(self, transaction: Dict[str, Any], program_index: int, signature: str = "") -> List[DecodeAttempt]:
        if program_index < 0:
            return []
        signature = signature or transaction_signature(transaction)

        attempts = []
        for source, data in self._matching_payloads(transaction, program_index):
            attempts.append(self._attempt(signature, source, data))
        return attempts

    def scan_for_program(self, transaction: Dict[str, Any], program_id: str, signature: str = "") -> List[DecodeAttempt]:
        """Resolve the program's index in the full key list, then scan."""
        program_index = find_program_index(resolve_account_keys(transaction), program_id)
        return self.scan(transaction, program_index, signature)

    def _matching_payloads(self, transaction: Dict[str, Any], program_index: int) -> Iterator[Tuple[DecodeSource, Any]]:
        message = get_message(transaction) or {}

        top_level = message.get("compiledInstructions") or message.get("instructions") or []
        for ix in top_level:
            if ix.get("programIdIndex") == program_index:
                yield DecodeSource.TOP_LEVEL, ix.get("data", b"")

        # Inner instructions index into the same key list
        for group in ((transaction.get("meta") or {}).get("innerInstructions")) or []:
            for ix in group.get("instructions") or []:
                if ix.get("programIdIndex") == program_index:
                    yield DecodeSource.NESTED, ix.get("data", b"")

    def _attempt(self, signature: str, source: DecodeSource, data: Any) -> DecodeAttempt:
        try:
            raw = payload_bytes(data)
        except ValueError as e:
            logger.debug(f"Unreadable payload in {signature[:12]} ({source.value}): {e}")
            return DecodeAttempt.failed(signature, source, "")

        try:
            decoded = self.coder.decode(raw)
        except InstructionDecodeError as e:
            logger.debug(f"Failed ({source.value}, discriminator: {e.discriminator}): {e.message}")
            return DecodeAttempt.failed(signature, source, discriminator_hex(raw))

        logger.debug(f"Decoded ({source.value}): {decoded.name}")
        return DecodeAttempt.decoded(signature, source, decoded.name)
