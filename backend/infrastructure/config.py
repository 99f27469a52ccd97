"""
Configuration Management for IDLHub Verifier
Environment-based configuration for ledger access, verification heuristics and storage

Features:
- Environment-based config (dev/staging/prod)
- Explicit, orderable RPC endpoint priorities per network
- Tunable verification thresholds
- Dynamic reload
"""

import os
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from enum import Enum

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("Config")


class Environment(str, Enum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class Network(str, Enum):
    MAINNET = "mainnet"
    DEVNET = "devnet"

    @classmethod
    def parse(cls, value: Optional[str]) -> "Network":
        if not value:
            return cls.MAINNET
        value = value.lower().strip()
        if value in ("devnet", "testnet"):
            return cls.DEVNET
        return cls.MAINNET


@dataclass(frozen=True)
class RpcEndpoint:
    """A ledger endpoint. Lower priority is tried first."""
    url: str
    network: Network = Network.MAINNET
    priority: int = 0
    label: str = ""


def _default_endpoints() -> List[RpcEndpoint]:
    return [
        RpcEndpoint("https://solana-rpc-proxy.0xrinegade.workers.dev", Network.MAINNET, 0, "proxy"),
        RpcEndpoint("https://api.mainnet-beta.solana.com", Network.MAINNET, 10, "mainnet-beta"),
        RpcEndpoint("https://solana-api.projectserum.com", Network.MAINNET, 20, "projectserum"),
        RpcEndpoint("https://rpc.ankr.com/solana", Network.MAINNET, 30, "ankr"),
        RpcEndpoint("https://api.devnet.solana.com", Network.DEVNET, 0, "devnet"),
    ]


@dataclass
class LedgerConfig:
    """Ledger (JSON-RPC) configuration"""
    endpoints: List[RpcEndpoint] = field(default_factory=_default_endpoints)
    commitment: str = "confirmed"
    max_supported_transaction_version: int = 0
    request_timeout: float = 15.0

    def endpoints_for(self, network: Network) -> List[RpcEndpoint]:
        """Endpoints for a network in the order they should be tried."""
        indexed = [
            (ep.priority, i, ep)
            for i, ep in enumerate(self.endpoints)
            if ep.network == network
        ]
        return [ep for _, _, ep in sorted(indexed, key=lambda t: (t[0], t[1]))]


@dataclass
class VerificationConfig:
    """Verification heuristics and pacing"""
    # Success-rate tiers for transaction replay
    verified_threshold: float = 0.90
    partial_threshold: float = 0.50
    # Schemas with this many instructions or fewer are reported as stubs on 0% decode
    stub_instruction_limit: int = 5

    # Hard cap on sampled transactions per protocol
    max_tx_per_protocol: int = 20

    # Pauses between ledger calls (seconds)
    tx_delay_seconds: float = 0.05
    program_delay_seconds: float = 0.05
    protocol_delay_seconds: float = 0.1

    # History
    max_history: int = 24
    uptime_window: int = 24
    persisted_history: int = 168

    # Most active protocols get transaction replay on every run
    tx_verify_protocols: List[str] = field(default_factory=lambda: [
        "drift", "orca", "marginfi", "kamino", "lifinity",
        "meteora", "mango", "jupiter", "raydium", "phoenix",
        "openbook", "tensor", "solend", "jito", "marinade",
    ])


@dataclass
class StorageConfig:
    """Registry input and result persistence"""
    data_dir: str = "data"
    index_path: str = "index.json"
    manifest_path: str = "public/arweave/manifest.json"
    results_file: str = "verification-results.json"
    history_file: str = "verification-history.json"
    tx_results_file: str = "tx-verification-results.json"

    # Artifact store gateways (fallback order)
    artifact_gateways: List[str] = field(default_factory=lambda: [
        "https://arweave.net",
        "https://arweave.dev",
        "https://gateway.irys.xyz",
    ])
    artifact_timeout: float = 10.0
    artifact_retries: int = 3

    def path_for(self, filename: str) -> str:
        return os.path.join(self.data_dir, filename)


@dataclass
class MonitoringConfig:
    """Monitoring configuration"""
    log_level: str = "INFO"
    sentry_dsn: Optional[str] = None


@dataclass
class VerifierConfig:
    """Main application configuration"""
    environment: Environment = Environment.DEVELOPMENT
    debug: bool = True

    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    verification: VerificationConfig = field(default_factory=VerificationConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)

    @classmethod
    def from_env(cls) -> "VerifierConfig":
        """Create configuration from environment variables"""
        env = os.environ.get("IDLHUB_ENV", "development").lower()

        config = cls(
            environment=Environment(env) if env in [e.value for e in Environment] else Environment.DEVELOPMENT,
            debug=os.environ.get("DEBUG", "true").lower() == "true",
        )

        # Endpoint overrides jump the queue
        endpoints = _default_endpoints()
        mainnet_override = os.environ.get("SOLANA_RPC_URL")
        if mainnet_override:
            endpoints.append(RpcEndpoint(mainnet_override, Network.MAINNET, -1, "env"))
        devnet_override = os.environ.get("SOLANA_DEVNET_RPC_URL")
        if devnet_override:
            endpoints.append(RpcEndpoint(devnet_override, Network.DEVNET, -1, "env"))

        config.ledger = LedgerConfig(
            endpoints=endpoints,
            request_timeout=float(os.environ.get("RPC_TIMEOUT", "15")),
        )

        config.verification = VerificationConfig(
            verified_threshold=float(os.environ.get("VERIFIED_THRESHOLD", "0.90")),
            partial_threshold=float(os.environ.get("PARTIAL_THRESHOLD", "0.50")),
            max_tx_per_protocol=int(os.environ.get("MAX_TX_PER_PROTOCOL", "20")),
            max_history=int(os.environ.get("MAX_HISTORY", "24")),
        )

        config.storage = StorageConfig(
            data_dir=os.environ.get("IDLHUB_DATA_DIR", "data"),
            index_path=os.environ.get("IDLHUB_INDEX_PATH", "index.json"),
            manifest_path=os.environ.get("IDLHUB_MANIFEST_PATH", "public/arweave/manifest.json"),
        )

        config.monitoring = MonitoringConfig(
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
            sentry_dsn=os.environ.get("SENTRY_DSN"),
        )

        if config.environment == Environment.PRODUCTION:
            config.debug = False
            config.monitoring.log_level = "WARNING"

        return config

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (hiding secrets)"""
        def sanitize(obj):
            if isinstance(obj, dict):
                return {
                    k: sanitize(v) for k, v in obj.items()
                    if "dsn" not in k.lower() and "secret" not in k.lower()
                }
            elif isinstance(obj, (list, tuple)):
                return [sanitize(v) for v in obj]
            elif hasattr(obj, '__dataclass_fields__'):
                return sanitize({k: getattr(obj, k) for k in obj.__dataclass_fields__})
            elif isinstance(obj, Enum):
                return obj.value
            else:
                return obj

        return sanitize(self)


# ============================================
# GLOBAL INSTANCES
# ============================================

config = VerifierConfig.from_env()

logger.info(f"Configuration loaded for environment: {config.environment.value}")


def get_config() -> VerifierConfig:
    """Get the global configuration"""
    return config


def reload_config() -> VerifierConfig:
    """Reload configuration from environment"""
    global config
    config = VerifierConfig.from_env()
    logger.info("Configuration reloaded")
    return config
