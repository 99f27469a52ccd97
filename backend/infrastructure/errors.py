"""
Global Error Handling for IDLHub Verifier
Exception taxonomy with structured responses

Features:
- IdlHubError taxonomy (ledger, artifact, schema, persistence)
- One JSON error envelope for every failure
- Retry with backoff for ledger and artifact gateways
- FastAPI exception handlers
"""

import asyncio
import logging
import traceback
from datetime import datetime
from typing import Callable, Dict, List, Optional, TypeVar
from functools import wraps
from enum import Enum

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from fastapi.responses import JSONResponse

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("ErrorHandler")


# ============================================
# ERROR CODES
# ============================================

class ErrorCode(str, Enum):
    # Client errors (4xx)
    BAD_REQUEST = "BAD_REQUEST"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"

    # Server errors (5xx)
    INTERNAL_ERROR = "INTERNAL_ERROR"
    LEDGER_UNREACHABLE = "LEDGER_UNREACHABLE"
    LEDGER_REQUEST_FAILED = "LEDGER_REQUEST_FAILED"
    ARTIFACT_FETCH_FAILED = "ARTIFACT_FETCH_FAILED"
    PERSISTENCE_ERROR = "PERSISTENCE_ERROR"

    # Schema errors
    SCHEMA_ERROR = "SCHEMA_ERROR"
    DECODE_ERROR = "DECODE_ERROR"


# ============================================
# CUSTOM EXCEPTIONS
# ============================================

class IdlHubError(Exception):
    """Base exception for IDLHub"""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        details: Dict = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now()

    def to_dict(self) -> Dict:
        return {
            "success": False,
            "error": {
                "code": self.code.value,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp.isoformat()
            }
        }


class ValidationError(IdlHubError):
    """Input validation error"""
    def __init__(self, message: str, details: Dict = None):
        super().__init__(message, ErrorCode.VALIDATION_ERROR, 400, details)


class NotFoundError(IdlHubError):
    """Resource not found"""
    def __init__(self, resource: str, identifier: str = None):
        message = f"{resource} not found"
        if identifier:
            message = f"{resource} '{identifier}' not found"
        super().__init__(message, ErrorCode.NOT_FOUND, 404)


class LedgerConnectivityError(IdlHubError):
    """Every endpoint for a network failed its liveness check"""
    def __init__(self, network: str, tried: List[str] = None):
        super().__init__(
            "All RPC endpoints failed",
            ErrorCode.LEDGER_UNREACHABLE,
            503,
            {"network": network, "tried": tried or []}
        )
        self.network = network


class LedgerRequestError(IdlHubError):
    """A single JSON-RPC call failed"""
    def __init__(self, method: str, message: str, endpoint: str = None, rpc_code: int = None):
        details = {"method": method}
        if endpoint:
            details["endpoint"] = endpoint
        if rpc_code is not None:
            details["rpc_code"] = rpc_code
        super().__init__(message, ErrorCode.LEDGER_REQUEST_FAILED, 502, details)
        self.method = method


class ArtifactFetchError(IdlHubError):
    """Artifact store call failed"""
    def __init__(self, artifact_id: str, message: str = None, status_code: int = None):
        details = {"artifact_id": artifact_id}
        if status_code:
            details["gateway_status_code"] = status_code
        super().__init__(
            message or f"Failed to fetch artifact '{artifact_id}'",
            ErrorCode.ARTIFACT_FETCH_FAILED,
            502,
            details
        )


class SchemaError(IdlHubError):
    """Schema document cannot be turned into a coder"""
    def __init__(self, message: str, details: Dict = None):
        super().__init__(message, ErrorCode.SCHEMA_ERROR, 422, details)


class InstructionDecodeError(IdlHubError):
    """Instruction payload does not match the schema"""
    def __init__(self, message: str, discriminator: str = ""):
        super().__init__(message, ErrorCode.DECODE_ERROR, 422, {"discriminator": discriminator})
        self.discriminator = discriminator


class PersistenceError(IdlHubError):
    """Writing results or history to storage failed"""
    def __init__(self, path: str, original_error: Exception = None):
        details = {"path": path}
        if original_error:
            details["original_error"] = str(original_error)
        super().__init__(f"Failed to persist {path}", ErrorCode.PERSISTENCE_ERROR, 500, details)


# ============================================
# RETRY LOGIC
# ============================================

T = TypeVar('T')


def retry(
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    exceptions: tuple = (Exception,)
):
    """
    Decorator for automatic retry with exponential backoff.

    Usage:
        @retry(max_attempts=3, delay=1.0)
        async def fetch_data():
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            last_exception = None
            current_delay = delay

            for attempt in range(max_attempts):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    last_exception = e

                    if attempt < max_attempts - 1:
                        logger.warning(f"Retry {attempt + 1}/{max_attempts} for {func.__name__}: {e}")
                        await asyncio.sleep(current_delay)
                        current_delay *= backoff
                    else:
                        logger.error(f"All retries failed for {func.__name__}: {e}")

            raise last_exception

        return wrapper
    return decorator


# ============================================
# FASTAPI EXCEPTION HANDLERS
# ============================================

async def idlhub_exception_handler(request: Request, exc: IdlHubError) -> JSONResponse:
    """Handle IdlHubError exceptions"""
    if exc.status_code >= 500:
        logger.error(f"{exc.code.value} on {request.url.path}: {exc.message}")

    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )


def _error_response(status_code: int, code: ErrorCode, message: str, details: Dict = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": {
                "code": code.value,
                "message": message,
                "details": details or {},
                "timestamp": datetime.now().isoformat()
            }
        }
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Unknown routes and framework-raised HTTP errors, in the same envelope"""
    if exc.status_code == 404:
        code = ErrorCode.NOT_FOUND
    elif exc.status_code < 500:
        code = ErrorCode.BAD_REQUEST
    else:
        code = ErrorCode.INTERNAL_ERROR
    return _error_response(exc.status_code, code, str(exc.detail))


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies (e.g. POST /verify with protocols not a list)"""
    errors = [{"loc": list(e.get("loc", [])), "msg": e.get("msg", "")} for e in exc.errors()]
    return _error_response(422, ErrorCode.VALIDATION_ERROR, "Invalid request", {"errors": errors})


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled exception on {request.url.path}: {traceback.format_exc()}")
    return _error_response(500, ErrorCode.INTERNAL_ERROR, "An unexpected error occurred")


def register_exception_handlers(app):
    """Register all exception handlers with FastAPI app"""
    app.add_exception_handler(IdlHubError, idlhub_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
