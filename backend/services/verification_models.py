"""
Verification data model.
Dataclasses shared by the registry, decoder, classifier and history store.
`to_dict()` produces the JSON shape served by the status API.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from infrastructure.config import Network


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


# ============================================
# ENUMS
# ============================================

class ProtocolStatus(str, Enum):
    AVAILABLE = "available"
    PLACEHOLDER = "placeholder"


class CandidateSource(str, Enum):
    EXPLICIT_METADATA = "explicit-metadata"
    KNOWN_MAPPING = "known-mapping"
    FUZZY_MATCH = "fuzzy-match"
    SCHEMA_CONSTANT = "schema-constant"


class DecodeSource(str, Enum):
    TOP_LEVEL = "top-level"
    NESTED = "nested"


class VerificationStatus(str, Enum):
    """Program-existence tiers. VERIFIED means exists and executable only."""
    VERIFIED = "verified"
    PARTIAL = "partial"
    PROGRAM_NOT_FOUND = "program_not_found"
    NO_PROGRAM_ID = "no_program_id"
    RPC_ERROR = "rpc_error"
    PENDING = "pending"
    PLACEHOLDER = "placeholder"
    DEVNET_ONLY = "devnet_only"


class TxVerificationStatus(str, Enum):
    """Transaction-replay tiers."""
    PENDING = "pending"
    VERIFIED = "verified"
    PARTIAL = "partial"
    OUTDATED = "outdated"
    INVALID = "invalid"
    NO_PROGRAM_INSTRUCTIONS = "no_program_instructions"
    NO_PROGRAM_ID = "no_program_id"
    INVALID_IDL = "invalid_idl"
    PLACEHOLDER = "placeholder"
    CODER_ERROR = "coder_error"
    NO_TRANSACTIONS = "no_transactions"
    ERROR = "error"


class ProgramStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    NOT_FOUND = "not_found"
    NOT_EXECUTABLE = "not_executable"
    ERROR = "error"


# ============================================
# REGISTRY INPUT
# ============================================

@dataclass
class ProtocolDescriptor:
    id: str
    name: str
    status: ProtocolStatus = ProtocolStatus.AVAILABLE
    idl_path: Optional[str] = None
    network: Network = Network.MAINNET

    @property
    def is_placeholder(self) -> bool:
        return self.status == ProtocolStatus.PLACEHOLDER

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProtocolDescriptor":
        status = data.get("status", "available")
        return cls(
            id=data["id"],
            name=data.get("name") or data["id"],
            status=ProtocolStatus.PLACEHOLDER if status == "placeholder" else ProtocolStatus.AVAILABLE,
            idl_path=data.get("idlPath") or data.get("idl_path"),
            network=Network.parse(data.get("network")),
        )


@dataclass
class ProgramCandidate:
    name: str
    address: str
    network: Network = Network.MAINNET
    source: CandidateSource = CandidateSource.KNOWN_MAPPING

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "address": self.address,
            "network": self.network.value,
            "source": self.source.value,
        }


# ============================================
# DECODING
# ============================================

@dataclass
class DecodeAttempt:
    signature: str
    source: DecodeSource
    instruction_name: Optional[str] = None
    discriminator: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.instruction_name is not None

    @classmethod
    def decoded(cls, signature: str, source: DecodeSource, name: str) -> "DecodeAttempt":
        return cls(signature=signature, source=source, instruction_name=name)

    @classmethod
    def failed(cls, signature: str, source: DecodeSource, discriminator: str) -> "DecodeAttempt":
        return cls(signature=signature, source=source, discriminator=discriminator)

    def to_dict(self) -> Dict[str, Any]:
        outcome = (
            {"success": self.instruction_name}
            if self.success
            else {"failure": self.discriminator}
        )
        return {"signature": self.signature, "source": self.source.value, "outcome": outcome}


@dataclass
class Classification:
    status: TxVerificationStatus
    success_rate: Optional[int] = None
    coverage_percent: int = 0
    message: str = ""
    decoded_instructions: Dict[str, int] = field(default_factory=dict)
    failed_instructions: Dict[str, int] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return sum(self.decoded_instructions.values()) + sum(self.failed_instructions.values())


# ============================================
# PROGRAM EXISTENCE
# ============================================

@dataclass
class ProgramCheck:
    exists: bool
    executable: bool = False
    owner: Optional[str] = None
    data_len: Optional[int] = None
    lamports: Optional[int] = None
    error: Optional[str] = None

    @property
    def live(self) -> bool:
        return self.exists and self.executable

    def to_dict(self) -> Dict[str, Any]:
        if self.error is not None:
            return {"exists": False, "error": self.error}
        data = {"exists": self.exists, "executable": self.executable}
        if self.exists:
            data.update({"owner": self.owner, "dataLen": self.data_len, "lamports": self.lamports})
        else:
            data["dataLen"] = 0
        return data


@dataclass
class ProgramResult:
    name: str
    address: str
    network: Network = Network.MAINNET
    status: ProgramStatus = ProgramStatus.PENDING
    message: str = ""
    program_info: Optional[ProgramCheck] = None
    on_chain_idl: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "name": self.name,
            "address": self.address,
            "network": self.network.value,
            "status": self.status.value,
            "message": self.message,
        }
        if self.program_info is not None:
            data["programInfo"] = self.program_info.to_dict()
        if self.on_chain_idl is not None:
            data["onChainIdl"] = self.on_chain_idl
        return data


# ============================================
# RESULTS
# ============================================

@dataclass
class VerificationResult:
    protocol_id: str
    protocol_name: str = ""
    status: VerificationStatus = VerificationStatus.PENDING
    programs: List[ProgramResult] = field(default_factory=list)
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=utc_now_iso)

    @property
    def verified_programs(self) -> int:
        return sum(1 for p in self.programs if p.status == ProgramStatus.VERIFIED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "protocolId": self.protocol_id,
            "protocolName": self.protocol_name,
            "status": self.status.value,
            "timestamp": self.timestamp,
            "programs": [p.to_dict() for p in self.programs],
            "details": dict(self.details),
        }


@dataclass
class TxVerificationResult:
    protocol_id: str
    program_id: Optional[str] = None
    idl_name: str = "unknown"
    idl_version: str = "unknown"
    instruction_count: int = 0
    status: TxVerificationStatus = TxVerificationStatus.PENDING
    tx_checked: int = 0
    tx_decoded: int = 0
    tx_failed: int = 0
    decoded_instructions: Dict[str, int] = field(default_factory=dict)
    failed_instructions: Dict[str, int] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "protocolId": self.protocol_id,
            "programId": self.program_id,
            "idlName": self.idl_name,
            "idlVersion": self.idl_version,
            "instructionCount": self.instruction_count,
            "timestamp": self.timestamp,
            "status": self.status.value,
            "txChecked": self.tx_checked,
            "txDecoded": self.tx_decoded,
            "txFailed": self.tx_failed,
            "decodedInstructions": dict(self.decoded_instructions),
            "failedInstructions": dict(self.failed_instructions),
            "errors": list(self.errors),
            "details": dict(self.details),
        }


# ============================================
# RUNS
# ============================================

# Status → run counter. Anything not listed lands in `failed`.
RUN_COUNTERS = {
    VerificationStatus.VERIFIED: "verified",
    VerificationStatus.PARTIAL: "partial",
    VerificationStatus.PLACEHOLDER: "placeholder",
    VerificationStatus.NO_PROGRAM_ID: "no_program",
    VerificationStatus.DEVNET_ONLY: "devnet_only",
    VerificationStatus.RPC_ERROR: "rpc_error",
}


@dataclass
class VerificationRun:
    timestamp: str = field(default_factory=utc_now_iso)
    total_protocols: int = 0
    verified: int = 0
    partial: int = 0
    failed: int = 0
    placeholder: int = 0
    no_program: int = 0
    devnet_only: int = 0
    rpc_error: int = 0
    total_programs: int = 0
    verified_programs: int = 0
    duration_ms: int = 0
    protocols: List[VerificationResult] = field(default_factory=list)
    error: Optional[str] = None

    def tally(self, result: VerificationResult):
        """Add one protocol's result to the run counters."""
        self.protocols.append(result)
        self.total_programs += len(result.programs)
        self.verified_programs += result.verified_programs
        counter = RUN_COUNTERS.get(result.status, "failed")
        setattr(self, counter, getattr(self, counter) + 1)

    def to_dict(self, include_protocols: bool = True) -> Dict[str, Any]:
        data = {
            "timestamp": self.timestamp,
            "totalProtocols": self.total_protocols,
            "verified": self.verified,
            "partial": self.partial,
            "failed": self.failed,
            "placeholder": self.placeholder,
            "noProgram": self.no_program,
            "devnetOnly": self.devnet_only,
            "rpcError": self.rpc_error,
            "totalPrograms": self.total_programs,
            "verifiedPrograms": self.verified_programs,
            "durationMs": self.duration_ms,
        }
        if include_protocols:
            data["protocols"] = [p.to_dict() for p in self.protocols]
        if self.error:
            data["error"] = self.error
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VerificationRun":
        """Rebuild counters from persisted JSON. Protocol detail is not restored."""
        return cls(
            timestamp=data.get("timestamp", utc_now_iso()),
            total_protocols=data.get("totalProtocols", data.get("total", 0)),
            verified=data.get("verified", 0),
            partial=data.get("partial", 0),
            failed=data.get("failed", 0),
            placeholder=data.get("placeholder", 0),
            no_program=data.get("noProgram", 0),
            devnet_only=data.get("devnetOnly", 0),
            rpc_error=data.get("rpcError", 0),
            total_programs=data.get("totalPrograms", 0),
            verified_programs=data.get("verifiedPrograms", 0),
            duration_ms=data.get("durationMs", 0),
            error=data.get("error"),
        )


# Tx status → run counter. Anything not listed lands in `errors`.
TX_RUN_COUNTERS = {
    TxVerificationStatus.VERIFIED: "verified",
    TxVerificationStatus.PARTIAL: "partial",
    TxVerificationStatus.OUTDATED: "outdated",
    TxVerificationStatus.INVALID: "invalid",
}


@dataclass
class TxVerificationRun:
    timestamp: str = field(default_factory=utc_now_iso)
    total_checked: int = 0
    verified: int = 0
    partial: int = 0
    outdated: int = 0
    invalid: int = 0
    errors: int = 0
    protocols: List[TxVerificationResult] = field(default_factory=list)
    error: Optional[str] = None

    def tally(self, result: TxVerificationResult):
        self.total_checked += 1
        self.protocols.append(result)
        counter = TX_RUN_COUNTERS.get(result.status, "errors")
        setattr(self, counter, getattr(self, counter) + 1)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "timestamp": self.timestamp,
            "totalChecked": self.total_checked,
            "verified": self.verified,
            "partial": self.partial,
            "outdated": self.outdated,
            "invalid": self.invalid,
            "errors": self.errors,
            "protocols": [p.to_dict() for p in self.protocols],
        }
        if self.error:
            data["error"] = self.error
        return data


# ============================================
# RESTORE FROM PERSISTED JSON
# ============================================

def program_result_from_dict(data: Dict[str, Any]) -> ProgramResult:
    info = data.get("programInfo")
    check = None
    if info is not None:
        check = ProgramCheck(
            exists=info.get("exists", False),
            executable=info.get("executable", False),
            owner=info.get("owner"),
            data_len=info.get("dataLen"),
            lamports=info.get("lamports"),
            error=info.get("error"),
        )
    return ProgramResult(
        name=data.get("name", ""),
        address=data["address"],
        network=Network.parse(data.get("network")),
        status=ProgramStatus(data.get("status", "pending")),
        message=data.get("message", ""),
        program_info=check,
        on_chain_idl=data.get("onChainIdl"),
    )


def verification_result_from_dict(data: Dict[str, Any]) -> VerificationResult:
    return VerificationResult(
        protocol_id=data["protocolId"],
        protocol_name=data.get("protocolName", ""),
        status=VerificationStatus(data.get("status", "pending")),
        programs=[program_result_from_dict(p) for p in data.get("programs") or []],
        details=dict(data.get("details") or {}),
        timestamp=data.get("timestamp", utc_now_iso()),
    )
