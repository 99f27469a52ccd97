"""
Program Registry - protocol id → candidate program addresses.

Resolution order (merged, deduplicated by address, first occurrence wins):
  1. Exact key in KNOWN_PROGRAM_IDS
  2. Lowercase key, then '-' / '_' swapped
  3. Substring match either way, also with separators stripped (first hit wins)
  4. Addresses embedded in the schema: metadata.address, address, then
     string constants that look like program ids

Usage:
    registry = ProgramRegistry()
    candidates = registry.resolve("raydium", idl)
"""

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from solders.pubkey import Pubkey

from infrastructure.config import Network
from .verification_models import CandidateSource, ProgramCandidate

logger = logging.getLogger("ProgramRegistry")

# ============================================
# KNOWN PROGRAM IDS
# ============================================
# One protocol may own several programs. `network` defaults to mainnet.

KNOWN_PROGRAM_IDS: Dict[str, List[Dict[str, str]]] = {
    # IDLHub's own programs
    "idl-protocol": [
        {"name": "IDL Protocol", "address": "BSn7neicVV2kEzgaZmd6tZEBm4tdgzBRyELov65Lq7dt", "network": "devnet"},
    ],
    "idl-stableswap": [
        {"name": "IDL StableSwap", "address": "EFsgmpbKifyA75ZY5NPHQxrtuAHHB6sYnoGkLi6xoTte", "network": "devnet"},
    ],

    # SPL / native
    "spl-token": [{"name": "SPL Token", "address": "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"}],
    "spl-token-2022": [{"name": "SPL Token 2022", "address": "TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb"}],
    "spl-associated-token-account": [
        {"name": "SPL Associated Token Account", "address": "ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL"},
    ],
    "spl-memo": [{"name": "SPL Memo", "address": "MemoSq4gqABAXKb96qnH8TysNcWxMyWCqXgDLGmfcHr"}],
    "spl-name-service": [{"name": "SPL Name Service", "address": "namesLPneVptA9Z5rqUDD9tMTWEJwofgaYwp8cawRkX"}],
    "spl-token-lending": [{"name": "SPL Token Lending", "address": "LendZqTs7gn5CTSJU1jWKhKuVpjJGom45nnwPb2AMTi"}],
    "spl-token-swap": [{"name": "SPL Token Swap", "address": "SwaPpA9LAaLfeLi3a68M4DjnLqgtticKg6CnyNwgAC8"}],
    "native-compute-budget": [{"name": "Compute Budget", "address": "ComputeBudget111111111111111111111111111111"}],

    # Jupiter
    "jupiter": [
        {"name": "Jupiter v6", "address": "JUP6LkbZbjS1jKKwapdHNy74zcZ3tLUZoi5QNyVTaV4"},
        {"name": "Jupiter Limit Order", "address": "jupoNjAxXgZ4rjzxzPMP4oxduvQsQtZzyknqvzYNrNu"},
        {"name": "Jupiter DCA", "address": "DCA265Vj8a9CEuX1eb1LWRnDT7uK6q1xMipnNyatn23M"},
    ],
    "jupiter-v6": [{"name": "Jupiter v6", "address": "JUP6LkbZbjS1jKKwapdHNy74zcZ3tLUZoi5QNyVTaV4"}],
    "jupiter-limit": [{"name": "Jupiter Limit Order", "address": "jupoNjAxXgZ4rjzxzPMP4oxduvQsQtZzyknqvzYNrNu"}],

    # Raydium
    "raydium": [
        {"name": "Raydium AMM v4", "address": "675kPX9MHTjS2zt1qfr1NYHuzeLXfQM9H24wFSUt1Mp8"},
        {"name": "Raydium CLMM", "address": "CAMMCzo5YL8w4VFF8KVHrK22GGUsp5VTaW7grrKgrWqK"},
        {"name": "Raydium CP-Swap", "address": "CPMMoo8L3F4NbTegBCKVNunggL7H1ZpdTHKxQB5qKP1C"},
    ],
    "raydium-amm": [{"name": "Raydium AMM v4", "address": "675kPX9MHTjS2zt1qfr1NYHuzeLXfQM9H24wFSUt1Mp8"}],
    "raydium-clmm": [{"name": "Raydium CLMM", "address": "CAMMCzo5YL8w4VFF8KVHrK22GGUsp5VTaW7grrKgrWqK"}],
    "raydium-amm_v3": [{"name": "Raydium CLMM", "address": "CAMMCzo5YL8w4VFF8KVHrK22GGUsp5VTaW7grrKgrWqK"}],
    "raydium-pool_v4": [{"name": "Raydium AMM v4", "address": "675kPX9MHTjS2zt1qfr1NYHuzeLXfQM9H24wFSUt1Mp8"}],

    # Orca
    "orca": [{"name": "Orca Whirlpool", "address": "whirLbMiicVdio4qvUfM5KAg6Ct8VwpYzGff3uctyCc"}],
    "orca-whirlpool": [{"name": "Orca Whirlpool", "address": "whirLbMiicVdio4qvUfM5KAg6Ct8VwpYzGff3uctyCc"}],
    "whirlpool": [{"name": "Orca Whirlpool", "address": "whirLbMiicVdio4qvUfM5KAg6Ct8VwpYzGff3uctyCc"}],

    # Staking / yield
    "marinade": [{"name": "Marinade Finance", "address": "MarBmsSgKXdrN1egZf5sqe1TMai9K1rChYNDJgjq7aD"}],
    "jito": [{"name": "Jito Stake Pool", "address": "Jito4APyf642JPZPx3hGc6WWJ8zPKtRbRs4P815Awbb"}],
    "sanctum": [{"name": "Sanctum", "address": "SP12tWFxD9oJsVWNavTTBZvMbA6gkAmxtVgxdqvyvhY"}],
    "quarry": [{"name": "Quarry", "address": "QMNeHCGYnLVDn1icRAfQhpbV9MBgtZNFqFLqejqhvPK"}],

    # Perpetuals / trading
    "drift": [{"name": "Drift Protocol", "address": "dRiftyHA39MWEi3m9aunc5MzRF1JYuBsbn6VPcn33UH"}],
    "mango": [{"name": "Mango v4", "address": "4MangoMjqJ2firMokCjjGgoK8d4MXcrgL7XJaL3w6fVg"}],
    "mango-v4": [{"name": "Mango v4", "address": "4MangoMjqJ2firMokCjjGgoK8d4MXcrgL7XJaL3w6fVg"}],
    "mango-v3": [{"name": "Mango v3", "address": "mv3ekLzLbnVPNxjSKvqBpU3ZeZXPQdEC3bp5MDEBG68"}],
    "phoenix": [{"name": "Phoenix DEX", "address": "PhoeNiXZ8ByJGLkxNfZRnkUfjvmuYqLR89jjFHGqdXY"}],
    "zeta": [{"name": "Zeta Markets", "address": "ZETAxsqBRek56DhiGXrn7PZgAGxnseodLXgLnqrFp6u"}],

    # Order books
    "openbook": [{"name": "OpenBook v2", "address": "opnb2LAfJYbRMAHHvqjCwQxanZn7ReEHp1k81EohpZb"}],
    "openbook-v2": [{"name": "OpenBook v2", "address": "opnb2LAfJYbRMAHHvqjCwQxanZn7ReEHp1k81EohpZb"}],
    "serum": [{"name": "Serum v3", "address": "9xQeWvG816bUx9EPjHmaT23yvVM2ZWbrrpZb9PusVFin"}],

    # Lending
    "marginfi": [{"name": "MarginFi", "address": "MFv2hWf31Z9kbCa1snEPYctwafyhdvnV7FZnsebVacA"}],
    "kamino": [
        {"name": "Kamino Lending", "address": "KLend2g3cP87ber41GRRMFjD2a44rFDPdxYf68LN5Un"},
        {"name": "Kamino Liquidity", "address": "6LtLpnUFNByNXLyCoK9wA2MykKAmQNZKBdY8s47dehDc"},
    ],
    "solend": [{"name": "Solend", "address": "So1endDq2YkqhipRh3WViPa8hdiSpxWy6z3Z6tMCpAo"}],
    "francium": [{"name": "Francium", "address": "FC81tbGt6JWRXidaWYFXeRaQKQCJc25JWD4RZGHwaqrz"}],
    "port": [{"name": "Port Finance", "address": "Port7uDYB3wk6GJAw4KT1WpTeMtSu9bTcChBHkX2LfR"}],

    # AMMs
    "meteora": [
        {"name": "Meteora DLMM", "address": "LBUZKhRxPF3XUpBCjp4YzTKgLccjZhTSDM9YuVaPwxo"},
        {"name": "Meteora Pools", "address": "Eo7WjKq67rjJQSZxS6z3YkapzY3eMj6Xy8X5EQVn5UaB"},
    ],
    "lifinity": [{"name": "Lifinity v1", "address": "EewxydAPCCVuNEyrVN68PuSYdQ7wKn27V9Gjeoi8dy3S"}],
    "lifinity-v2": [{"name": "Lifinity v2", "address": "2wT8Yq49kHgDzXuPxZSaeLkbYyJN8hAXNx7e3vP4qsEb"}],
    "aldrin": [{"name": "Aldrin AMM", "address": "AMM55ShdkoGRB5jVYPjWziwk8m5MpwyDgsMWHaMSQWH6"}],
    "saber": [{"name": "Saber Stable Swap", "address": "SSwpkEEcbUqx4vtoEByFjSkhKdCT862DNVb52nZg1UZ"}],
    "mercurial": [{"name": "Mercurial", "address": "MERLuDFBMmsHnsBPZw2sDQZHvXFMwp8EdjudcU2HKky"}],
    "invariant": [{"name": "Invariant", "address": "HyaB3W9q6XdA5xwpU4XnSZV94htfmbmqJXZcEbRaJutt"}],
    "goosefx": [{"name": "GooseFX", "address": "GFXsSL5sSaDfNFQUYsHekbWBW1TsFdjDYzACh62tEHxn"}],
    "crema": [{"name": "Crema", "address": "CLMM9tUoggJu2wagPkkqs9eFG4BWhVBZWkP1qv3Sp7tR"}],
    "cropper": [{"name": "Cropper", "address": "CTMAxxk34HjKWxQ3QLZK1HpaLXmBveao3ESePXbiyfzh"}],
    "saros": [{"name": "Saros", "address": "SSwapUtytfBdBn1b9NUGG6foMVPtcWgpRU32HToDUZr"}],
    "fluxbeam": [{"name": "FluxBeam", "address": "FLUXubRmkEi2q6K3Y9kBPgSpwfBDYxZqYBdRJg6mEZ1"}],
    "aex402-amm": [{"name": "AeX402 AMM", "address": "3AMM53MsJZy2Jvf7PeHHga3bsGjWV4TSaYz29WUtcdje"}],

    # NFT
    "metaplex-bubblegum": [{"name": "Bubblegum", "address": "BGUMAp9Gq7iTEuizy4pqaxsTyUCBK68MDfK752saRPUY"}],
    "magiceden": [{"name": "Magic Eden", "address": "M2mx93ekt1fmXSVkTrUL9xVFHkmME8HTUi5Cyc5aF7K"}],
    "tensor": [{"name": "Tensor Swap", "address": "TSWAPaqyCSx2KABk68Shruf4rp7CxcNi8hAsbdwmHbN"}],

    # Infra / governance
    "bonfida": [{"name": "Bonfida", "address": "namesLPneVptA9Z5rqUDD9tMTWEJwofgaYwp8cawRkX"}],
    "switchboard": [{"name": "Switchboard", "address": "SW1TCH7qEPTdLsDHRgPuMQjbQxKdH2aBStViMFnt64f"}],
    "tribeca": [{"name": "Tribeca", "address": "Govz1VyoyLD5BL6CSCxUx7PtmNyBL4pLPVXNHD9cLFb"}],
    "goki": [{"name": "Goki", "address": "GokivDYuQXPZCWRkwMhdH2h91KpDQXBEmpsPZ3DoPj24"}],
    "merkle-distributor": [{"name": "Merkle Distributor", "address": "MErKy6nZVoVAkryxAejJz2juifQ4ArgLgHmaJCQkU7N"}],
    "nosana": [{"name": "Nosana", "address": "nosJhNRqr2bc9g1nfGDcXXTXvYUmxD4cVwy2pMWhrYM"}],
    "uxd": [{"name": "UXD", "address": "UXD8m9cvwk4RcSxnX2HZ9VudQCEeDH6fGFteuHQ8pNq"}],
}

# Constants whose name matches any of these are not program ids
NON_PROGRAM_PATTERNS = [
    re.compile(term, re.IGNORECASE)
    for term in ("mint", "token", "pool", "vault", "treasury", "authority", "admin", "fee", "reward")
]

MIN_ADDRESS_LEN = 32
MAX_ADDRESS_LEN = 44


def is_valid_address(value: Any) -> bool:
    """True if value parses as a 32-byte base58 public key."""
    if not isinstance(value, str) or not (MIN_ADDRESS_LEN <= len(value) <= MAX_ADDRESS_LEN):
        return False
    try:
        Pubkey.from_string(value)
    except ValueError:
        return False
    return True


def _strip_separators(value: str) -> str:
    return value.replace("-", "").replace("_", "")


class ProgramRegistry:
    """Static + fuzzy mapping from protocol id to program addresses"""

    def __init__(
        self,
        known_programs: Dict[str, List[Dict[str, str]]] = None,
        fuzzy_matching: bool = True,
    ):
        self.known_programs = known_programs if known_programs is not None else KNOWN_PROGRAM_IDS
        self.fuzzy_matching = fuzzy_matching

    # ============================================
    # PUBLIC API
    # ============================================

    def resolve(self, protocol_id: str, idl: Optional[Dict[str, Any]] = None) -> List[ProgramCandidate]:
        """All candidate programs for a protocol. Empty list means no candidate."""
        candidates: List[ProgramCandidate] = []
        seen = set()

        def add(candidate: ProgramCandidate):
            if candidate.address not in seen:
                seen.add(candidate.address)
                candidates.append(candidate)

        key, source = self.lookup_key(protocol_id)
        if key is not None:
            for entry in self.known_programs[key]:
                add(ProgramCandidate(
                    name=entry.get("name", "Main"),
                    address=entry["address"],
                    network=Network.parse(entry.get("network")),
                    source=source,
                ))

        if idl:
            for candidate in self.extract_from_idl(idl):
                add(candidate)

        if not candidates:
            logger.debug(f"No program candidates for {protocol_id}")
        return candidates

    def lookup_key(self, protocol_id: str) -> Tuple[Optional[str], Optional[CandidateSource]]:
        """Which mapping key a protocol id resolves to, and how it was found."""
        if not protocol_id:
            return None, None

        if protocol_id in self.known_programs:
            return protocol_id, CandidateSource.KNOWN_MAPPING

        lower = protocol_id.lower()
        for variant in (lower, lower.replace("_", "-"), lower.replace("-", "_")):
            if variant in self.known_programs:
                return variant, CandidateSource.KNOWN_MAPPING

        if not self.fuzzy_matching:
            return None, None

        proto_norm = _strip_separators(lower)
        if not proto_norm:
            return None, None

        for key in self.known_programs:
            if key in lower or lower in key:
                return key, CandidateSource.FUZZY_MATCH
            key_norm = _strip_separators(key)
            if key_norm in proto_norm or proto_norm in key_norm:
                return key, CandidateSource.FUZZY_MATCH

        return None, None

    def extract_from_idl(self, idl: Dict[str, Any]) -> List[ProgramCandidate]:
        """Program addresses declared inside a schema document."""
        found: List[ProgramCandidate] = []
        name = idl.get("name") or (idl.get("metadata") or {}).get("name") or "Main Program"

        metadata_address = (idl.get("metadata") or {}).get("address")
        for address in (metadata_address, idl.get("address")):
            if is_valid_address(address) and all(c.address != address for c in found):
                found.append(ProgramCandidate(name, address, source=CandidateSource.EXPLICIT_METADATA))

        for constant in idl.get("constants") or []:
            value = constant.get("value")
            const_name = constant.get("name") or ""
            if constant.get("type") != "string" or not isinstance(value, str):
                continue
            # Constant values are often serialized with quotes
            value = value.strip('"')
            if any(p.search(const_name) for p in NON_PROGRAM_PATTERNS):
                continue
            if is_valid_address(value) and all(c.address != value for c in found):
                found.append(ProgramCandidate(const_name or "Program", value, source=CandidateSource.SCHEMA_CONSTANT))

        return found

    def protocol_ids(self) -> List[str]:
        return list(self.known_programs)
