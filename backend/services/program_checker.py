"""
Program existence checks.
Never raises: RPC and address errors are folded into the returned ProgramCheck.
"""

import logging
from typing import Any, Dict

from solders.pubkey import Pubkey

from infrastructure.errors import IdlHubError
from infrastructure.ledger import LedgerConnection
from .verification_models import ProgramCheck

logger = logging.getLogger("ProgramChecker")

ANCHOR_IDL_SEED = "anchor:idl"


def anchor_idl_address(program_id: str) -> str:
    """Address of the Anchor on-chain IDL account for a program."""
    program = Pubkey.from_string(program_id)
    base, _bump = Pubkey.find_program_address([], program)
    return str(Pubkey.create_with_seed(base, ANCHOR_IDL_SEED, program))


class ProgramExistenceChecker:
    """Is a candidate address a real, executable program?"""

    def __init__(self, connection: LedgerConnection):
        self.connection = connection

    async def check(self, address: str) -> ProgramCheck:
        try:
            Pubkey.from_string(address)
        except ValueError as e:
            return ProgramCheck(exists=False, error=f"Invalid address: {e}")

        try:
            info = await self.connection.get_account_info(address)
        except IdlHubError as e:
            logger.warning(f"Existence check failed for {address}: {e.message}")
            return ProgramCheck(exists=False, error=e.message)

        if info is None:
            return ProgramCheck(exists=False, executable=False, data_len=0)

        return ProgramCheck(
            exists=True,
            executable=info.executable,
            owner=info.owner,
            data_len=info.data_len,
            lamports=info.lamports,
        )

    async def fetch_on_chain_idl(self, address: str) -> Dict[str, Any]:
        """Look up the Anchor IDL account. Reports presence and size only."""
        try:
            idl_address = anchor_idl_address(address)
            info = await self.connection.get_account_info(idl_address)
        except (ValueError, IdlHubError) as e:
            return {"found": False, "error": str(e)}

        if info is None:
            return {"found": False}
        return {"found": True, "address": idl_address, "dataLen": info.data_len}
