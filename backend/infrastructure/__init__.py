"""
IDLHub Infrastructure Module
Configuration, error taxonomy and ledger access
"""

from .errors import (
    IdlHubError,
    ValidationError,
    NotFoundError,
    LedgerConnectivityError,
    LedgerRequestError,
    ArtifactFetchError,
    SchemaError,
    InstructionDecodeError,
    PersistenceError,
    ErrorCode,
    retry,
    register_exception_handlers,
)

from .config import (
    VerifierConfig,
    Environment,
    Network,
    RpcEndpoint,
    config,
    get_config,
    reload_config,
)

from .ledger import (
    AccountInfo,
    LedgerConnection,
    LedgerGateway,
)

__all__ = [
    # Errors
    "IdlHubError",
    "ValidationError",
    "NotFoundError",
    "LedgerConnectivityError",
    "LedgerRequestError",
    "ArtifactFetchError",
    "SchemaError",
    "InstructionDecodeError",
    "PersistenceError",
    "ErrorCode",
    "retry",
    "register_exception_handlers",

    # Config
    "VerifierConfig",
    "Environment",
    "Network",
    "RpcEndpoint",
    "config",
    "get_config",
    "reload_config",

    # Ledger
    "AccountInfo",
    "LedgerConnection",
    "LedgerGateway",
]
