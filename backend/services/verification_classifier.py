"""
Verification Classifier - turns counts into status tiers.

Status is always derived from the aggregated counts here, never set by callers.

Transaction replay tiers (success = decoded / attempted):
    no attempts      → no_program_instructions
    >= 0.90          → verified
    >= 0.50          → partial
    >  0             → outdated
    == 0             → invalid   (schemas with <= 5 instructions are called stubs)

Existence-only tiers:
    all mainnet programs live      → verified
    some mainnet programs live     → partial
    only devnet programs live      → devnet_only
    nothing live, a check errored  → rpc_error
    nothing live                   → program_not_found
"""

import math
from collections import Counter
from typing import Any, Dict, Iterable, List, Optional, Tuple

from infrastructure.config import Network, VerificationConfig, get_config
from .verification_models import (
    Classification,
    DecodeAttempt,
    ProgramResult,
    ProgramStatus,
    TxVerificationStatus,
    VerificationStatus,
)


def percent(numerator: int, denominator: int) -> Optional[int]:
    """Integer percent rounded half up. None when there is nothing to divide by."""
    if denominator <= 0:
        return None
    return int(math.floor(numerator * 100 / denominator + 0.5))


class VerificationClassifier:

    def __init__(self, verification_config: VerificationConfig = None):
        self.config = verification_config or get_config().verification

    def classify(self, attempts: Iterable[DecodeAttempt], idl: Dict[str, Any]) -> Classification:
        attempts = list(attempts)
        decoded = Counter(a.instruction_name for a in attempts if a.success)
        failed = Counter(a.discriminator for a in attempts if not a.success)

        idl_instructions = len((idl or {}).get("instructions") or [])
        coverage = percent(len(decoded), idl_instructions) or 0

        status, rate, message = self.tier(sum(decoded.values()), len(attempts), idl_instructions, len(failed))

        return Classification(
            status=status,
            success_rate=rate,
            coverage_percent=coverage,
            message=message,
            decoded_instructions=dict(decoded),
            failed_instructions=dict(failed),
        )

    def tier(
        self,
        success: int,
        total: int,
        idl_instructions: int = 0,
        unique_failed: int = 0,
    ) -> Tuple[TxVerificationStatus, Optional[int], str]:
        """(status, success rate percent, message) for raw counts."""
        if total == 0:
            return (
                TxVerificationStatus.NO_PROGRAM_INSTRUCTIONS,
                None,
                "No instructions found for this program in checked transactions",
            )

        ratio = success / total
        rate = percent(success, total)

        if ratio >= self.config.verified_threshold:
            return TxVerificationStatus.VERIFIED, rate, f"IDL verified: {rate}% decode success rate"
        if ratio >= self.config.partial_threshold:
            return TxVerificationStatus.PARTIAL, rate, f"IDL partially valid: {rate}% decode success rate"
        if ratio > 0:
            return TxVerificationStatus.OUTDATED, rate, f"IDL may be outdated: only {rate}% decode success rate"

        if idl_instructions <= self.config.stub_instruction_limit:
            message = (
                f"IDL appears to be a stub (only {idl_instructions} instructions, "
                f"none match on-chain)"
            )
        else:
            message = f"IDL invalid: 0% decode success, {unique_failed} unknown discriminators"
        return TxVerificationStatus.INVALID, rate, message

    def classify_programs(self, programs: List[ProgramResult]) -> Tuple[VerificationStatus, str]:
        """Existence-only tier for a protocol's checked programs."""
        total = len(programs)
        if total == 0:
            return VerificationStatus.NO_PROGRAM_ID, "No program ID found in IDL or known mappings"

        live = [p for p in programs if p.status == ProgramStatus.VERIFIED]
        mainnet = sum(1 for p in live if p.network == Network.MAINNET)
        devnet = len(live) - mainnet
        errored = any(p.status == ProgramStatus.ERROR for p in programs)

        if mainnet == total:
            return VerificationStatus.VERIFIED, f"All {total} program(s) verified on mainnet"
        if mainnet > 0:
            return VerificationStatus.PARTIAL, f"{mainnet}/{total} programs verified on mainnet"
        if devnet > 0:
            return VerificationStatus.DEVNET_ONLY, "Program(s) only available on devnet"
        if errored:
            return VerificationStatus.RPC_ERROR, "Existence checks failed for every program"
        return VerificationStatus.PROGRAM_NOT_FOUND, "No programs found on-chain"
