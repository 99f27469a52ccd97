"""
IDL Verifier - on-chain verification of registry IDLs.

Two passes over the registry:
  * existence: every candidate program for a protocol must exist and be executable
  * transaction replay: recent transactions for the program are decoded with the
    IDL; the decode success rate decides the tier

`run_once()` is the single entry point for schedulers and the status API.
Protocols are processed strictly one after another with pauses between ledger
calls. A trigger while a run is active is a no-op.

Usage:
    verifier = IdlVerifier(LedgerGateway(), VerificationHistory())
    run = await verifier.run_once()                  # whole registry
    run = await verifier.run_once(["drift", "orca"]) # named subset
"""

import asyncio
import hashlib
import json
import logging
import time
from typing import Any, Dict, Iterable, List, Optional

from infrastructure.config import Network, VerificationConfig, get_config
from infrastructure.errors import IdlHubError, LedgerConnectivityError, PersistenceError, SchemaError
from infrastructure.ledger import LedgerConnection, LedgerGateway
from data_sources.idl_registry import IdlRegistry
from .idl_coder import IdlInstructionCoder
from .instruction_decoder import InstructionDecoder
from .program_checker import ProgramExistenceChecker
from .program_registry import ProgramRegistry
from .verification_classifier import VerificationClassifier
from .verification_history import VerificationHistory
from .verification_models import (
    CandidateSource,
    ProgramCandidate,
    ProgramResult,
    ProgramStatus,
    ProtocolDescriptor,
    TxVerificationResult,
    TxVerificationRun,
    TxVerificationStatus,
    VerificationResult,
    VerificationRun,
    VerificationStatus,
)

logger = logging.getLogger("IdlVerifier")


def _compact_json(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"))


def hash_idl_signatures(idl: Optional[Dict[str, Any]]) -> Optional[str]:
    """
    Fingerprint of an IDL's instruction signatures.

    Covers instruction names, account flags and argument types, sorted by
    name so instruction order does not matter. 16 hex chars.
    """
    if not idl or not idl.get("instructions"):
        return None

    signatures = []
    for ix in idl["instructions"]:
        accounts = []
        for account in ix.get("accounts") or []:
            entry = {"name": account.get("name"), "isMut": account.get("isMut"), "isSigner": account.get("isSigner")}
            accounts.append({k: v for k, v in entry.items() if v is not None})
        args = [{"name": a.get("name"), "type": _compact_json(a.get("type"))} for a in ix.get("args") or []]
        signatures.append({"name": ix.get("name"), "accounts": accounts, "args": args})

    signatures.sort(key=lambda s: s["name"] or "")
    return hashlib.sha256(_compact_json(signatures).encode()).hexdigest()[:16]


def is_placeholder_idl(idl: Optional[Dict[str, Any]]) -> bool:
    instructions = (idl or {}).get("instructions") or []
    return len(instructions) == 1 and instructions[0].get("name") == "placeholder"


async def _pause(seconds: float):
    if seconds > 0:
        await asyncio.sleep(seconds)


class IdlVerifier:
    """
    Orchestrates verification runs.

    All collaborators are passed in; nothing here is module-level state.
    """

    def __init__(
        self,
        gateway: LedgerGateway,
        history: VerificationHistory,
        registry: ProgramRegistry = None,
        classifier: VerificationClassifier = None,
        idl_registry: IdlRegistry = None,
        artifact_store=None,
        verification_config: VerificationConfig = None,
    ):
        self.gateway = gateway
        self.history = history
        self.config = verification_config or get_config().verification
        self.registry = registry or ProgramRegistry()
        self.classifier = classifier or VerificationClassifier(self.config)
        self.idl_registry = idl_registry or IdlRegistry()
        # Anything with `async fetch(tx_id) -> dict`
        self.artifact_store = artifact_store

        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    # ============================================
    # EXISTENCE VERIFICATION
    # ============================================

    async def verify_protocol(
        self,
        protocol: ProtocolDescriptor,
        idl: Optional[Dict[str, Any]],
        connections: Dict[Network, Optional[LedgerConnection]],
    ) -> VerificationResult:
        """Existence-only verification of one protocol's programs."""
        result = VerificationResult(protocol_id=protocol.id, protocol_name=protocol.name)

        if protocol.is_placeholder:
            result.status = VerificationStatus.PLACEHOLDER
            result.details["message"] = "IDL is a placeholder, not yet available"
            return result

        candidates = self.registry.resolve(protocol.id, idl)
        if not candidates:
            result.status, result.details["message"] = self.classifier.classify_programs([])
            return result

        result.details.update({
            "programCount": len(candidates),
            "idlHash": hash_idl_signatures(idl),
            "instructionCount": len((idl or {}).get("instructions") or []),
            "accountCount": len((idl or {}).get("accounts") or []),
        })

        for candidate in candidates:
            result.programs.append(await self._check_program(candidate, connections.get(candidate.network)))
            await _pause(self.config.program_delay_seconds)

        status, message = self.classifier.classify_programs(result.programs)
        result.status = status
        result.details["message"] = message
        result.details["verified"] = sum(
            1 for p in result.programs
            if p.status == ProgramStatus.VERIFIED and p.network == Network.MAINNET
        )
        result.details["total"] = len(candidates)
        return result

    async def _check_program(
        self,
        candidate: ProgramCandidate,
        connection: Optional[LedgerConnection],
    ) -> ProgramResult:
        program = ProgramResult(name=candidate.name, address=candidate.address, network=candidate.network)

        if connection is None:
            program.status = ProgramStatus.ERROR
            program.message = f"No {candidate.network.value} connection available"
            return program

        checker = ProgramExistenceChecker(connection)
        check = await checker.check(candidate.address)
        program.program_info = check

        if check.error is not None:
            program.status = ProgramStatus.ERROR
            program.message = check.error
        elif not check.exists:
            program.status = ProgramStatus.NOT_FOUND
            program.message = "Program not found on-chain"
        elif not check.executable:
            program.status = ProgramStatus.NOT_EXECUTABLE
            program.message = "Account exists but is not executable"
        else:
            program.status = ProgramStatus.VERIFIED
            program.message = "Program exists and is executable"
            program.on_chain_idl = await checker.fetch_on_chain_idl(candidate.address)

        return program

    # ============================================
    # TRANSACTION REPLAY
    # ============================================

    def replay_candidate(self, protocol_id: str, idl: Optional[Dict[str, Any]]) -> Optional[ProgramCandidate]:
        """The program whose transactions are sampled: schema-declared first, then the mapping."""
        candidates = self.registry.resolve(protocol_id, idl)
        for candidate in candidates:
            if candidate.source == CandidateSource.EXPLICIT_METADATA:
                return candidate
        return candidates[0] if candidates else None

    async def verify_with_transactions(
        self,
        protocol_id: str,
        idl: Optional[Dict[str, Any]],
        connection: LedgerConnection = None,
    ) -> TxVerificationResult:
        """Decode recent on-chain transactions with the IDL and grade the result."""
        idl = idl or {}
        instructions = idl.get("instructions") or []
        result = TxVerificationResult(
            protocol_id=protocol_id,
            idl_name=idl.get("name") or (idl.get("metadata") or {}).get("name") or "unknown",
            idl_version=idl.get("version") or (idl.get("metadata") or {}).get("version") or "unknown",
            instruction_count=len(instructions),
        )

        candidate = self.replay_candidate(protocol_id, idl)
        if candidate is None:
            result.status = TxVerificationStatus.NO_PROGRAM_ID
            result.errors.append("No program ID found in IDL or known mappings")
            return result
        result.program_id = candidate.address

        if not instructions:
            result.status = TxVerificationStatus.INVALID_IDL
            result.errors.append("IDL has no instructions defined")
            return result

        if is_placeholder_idl(idl):
            result.status = TxVerificationStatus.PLACEHOLDER
            result.errors.append("IDL is a placeholder")
            return result

        try:
            coder = IdlInstructionCoder(idl)
        except SchemaError as e:
            result.status = TxVerificationStatus.CODER_ERROR
            result.errors.append(f"Failed to build instruction coder: {e.message}")
            return result

        try:
            connection = connection or await self.gateway.connect(candidate.network)
            await self._replay(result, coder, connection, idl)
        except IdlHubError as e:
            logger.warning(f"Transaction replay failed for {protocol_id}: {e.message}")
            result.status = TxVerificationStatus.ERROR
            result.errors.append(e.message)

        return result

    async def _replay(
        self,
        result: TxVerificationResult,
        coder: IdlInstructionCoder,
        connection: LedgerConnection,
        idl: Dict[str, Any],
    ):
        limit = self.config.max_tx_per_protocol
        signatures = await connection.get_signatures_for_address(result.program_id, limit=limit)
        signatures = signatures[:limit]

        if not signatures:
            result.status = TxVerificationStatus.NO_TRANSACTIONS
            result.details["message"] = "No recent transactions found for this program"
            return

        result.details["signaturesFound"] = len(signatures)
        decoder = InstructionDecoder(coder)
        attempts = []

        for sig_info in signatures:
            signature = sig_info.get("signature", "")
            result.tx_checked += 1

            try:
                transaction = await connection.get_transaction(signature)
            except IdlHubError as e:
                logger.warning(f"Fetch failed for {signature[:12]}: {e.message}")
                continue
            finally:
                await _pause(self.config.tx_delay_seconds)

            if not transaction:
                continue
            attempts.extend(decoder.scan_for_program(transaction, result.program_id, signature))

        classification = self.classifier.classify(attempts, idl)
        result.status = classification.status
        result.decoded_instructions = classification.decoded_instructions
        result.failed_instructions = classification.failed_instructions
        result.tx_decoded = sum(classification.decoded_instructions.values())
        result.tx_failed = sum(classification.failed_instructions.values())

        result.details.update({
            "totalInstructionsAttempted": len(attempts),
            "uniqueDecodedInstructions": len(classification.decoded_instructions),
            "uniqueFailedDiscriminators": len(classification.failed_instructions),
            "idlInstructionsCovered": len(classification.decoded_instructions),
            "idlInstructionsTotal": len(idl.get("instructions") or []),
            "coveragePercent": classification.coverage_percent,
            "message": classification.message,
        })
        if classification.success_rate is not None:
            result.details["successRate"] = classification.success_rate

    # ============================================
    # RUNS
    # ============================================

    async def run_once(
        self,
        protocols: Optional[Iterable[str]] = None,
        with_transactions: bool = False,
    ) -> Optional[VerificationRun]:
        """
        One verification pass over the registry (or the named protocol ids).

        Returns None without doing anything if a run is already active.
        """
        if self._running:
            logger.info("Verification already running, skipping")
            return None

        self._running = True
        started = time.monotonic()
        run = VerificationRun()
        try:
            logger.info("Starting IDL verification run...")
            await self._existence_pass(run, protocols)
            if with_transactions:
                await self.run_tx_verification()
        finally:
            run.duration_ms = int((time.monotonic() - started) * 1000)
            self._running = False

        self.history.record(run)
        logger.info(
            f"Verification complete: {run.verified}/{run.total_protocols} verified, "
            f"{run.verified_programs}/{run.total_programs} programs live ({run.duration_ms}ms)"
        )

        try:
            self.history.persist()
        except PersistenceError as e:
            logger.error(f"Failed to save verification results: {e.message}")

        return run

    async def _existence_pass(self, run: VerificationRun, protocol_ids: Optional[Iterable[str]]):
        try:
            protocols = self.idl_registry.load_protocols(protocol_ids)
        except IdlHubError as e:
            logger.error(f"Failed to load registry: {e.message}")
            run.error = e.message
            return
        run.total_protocols = len(protocols)

        connections = await self._connect_all(run)
        if connections.get(Network.MAINNET) is None:
            return

        for protocol in protocols:
            try:
                idl = self.idl_registry.load_idl(protocol)
                result = await self.verify_protocol(protocol, idl, connections)
            except Exception as e:
                logger.error(f"Error verifying {protocol.id}: {e}")
                run.failed += 1
                continue

            run.tally(result)
            logger.debug(f"{protocol.id}: {result.status.value}")
            await _pause(self.config.protocol_delay_seconds)

    async def _connect_all(self, run: VerificationRun) -> Dict[Network, Optional[LedgerConnection]]:
        """Fresh connections for this run. Devnet loss only affects devnet programs."""
        self.gateway.reset()
        connections: Dict[Network, Optional[LedgerConnection]] = {}
        errors: List[str] = []

        for network in (Network.MAINNET, Network.DEVNET):
            try:
                connections[network] = await self.gateway.connect(network)
            except LedgerConnectivityError as e:
                logger.error(f"{network.value}: {e.message}")
                connections[network] = None
                errors.append(f"{network.value}: {e.message}")
                if network == Network.MAINNET:
                    break

        if errors:
            run.error = "; ".join(errors)
        return connections

    async def run_tx_verification(self, protocol_ids: Optional[Iterable[str]] = None) -> TxVerificationRun:
        """Transaction replay for IDLs listed in the artifact manifest."""
        tx_run = TxVerificationRun()

        if self.artifact_store is None:
            tx_run.error = "No artifact store configured"
            self.history.record_tx_run(tx_run)
            return tx_run

        try:
            manifest = self.idl_registry.load_manifest()
        except IdlHubError as e:
            logger.error(f"Failed to load artifact manifest: {e.message}")
            tx_run.error = e.message
            self.history.record_tx_run(tx_run)
            return tx_run

        wanted = list(protocol_ids) if protocol_ids is not None else list(self.config.tx_verify_protocols)
        logger.info(f"Verifying {len(wanted)} IDLs via transaction parsing...")

        for protocol_id in wanted:
            tx_id = manifest.get(protocol_id)
            if not tx_id:
                continue

            try:
                idl = await self.artifact_store.fetch(tx_id)
                if is_placeholder_idl(idl):
                    logger.info(f"{protocol_id}: placeholder IDL, skipping")
                    continue
                result = await self.verify_with_transactions(protocol_id, idl)
            except Exception as e:
                logger.error(f"Error replaying {protocol_id}: {e}")
                tx_run.errors += 1
                continue

            tx_run.tally(result)
            logger.info(f"{protocol_id}: {result.status.value} ({result.details.get('successRate')}% success)")
            await _pause(self.config.protocol_delay_seconds)

        self.history.record_tx_run(tx_run)
        return tx_run

    async def close(self):
        await self.gateway.close()
