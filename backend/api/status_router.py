"""
Verification Status API Router
Exposes verification results, run history and a manual trigger via REST API.

The verifier lives on app.state (set by main.create_app); routes reach it
through the `get_verifier` dependency.
"""

from fastapi import APIRouter, Depends, Request
from typing import Optional, List
from pydantic import BaseModel
import logging

from infrastructure.config import get_config
from infrastructure.errors import NotFoundError
from services.idl_verifier import IdlVerifier

logger = logging.getLogger("StatusRouter")

router = APIRouter(prefix="/api/status", tags=["IDL Verification"])


class VerifyRequest(BaseModel):
    protocols: Optional[List[str]] = None
    with_transactions: bool = False


def get_verifier(request: Request) -> IdlVerifier:
    return request.app.state.verifier


@router.get("")
async def get_status(verifier: IdlVerifier = Depends(get_verifier)):
    """Latest run summary with a rolling uptime window"""
    summary = verifier.history.summary()
    return {
        "service": "IDLHub",
        "status": summary["status"],
        "verification": {**summary, "running": verifier.is_running},
        "history": verifier.history.persisted_history()[:verifier.config.uptime_window],
        "config": get_config().to_dict()["verification"],
    }


@router.get("/protocols")
async def get_protocol_results(verifier: IdlVerifier = Depends(get_verifier)):
    """Latest result for every verified protocol"""
    latest = verifier.history.latest()
    return {
        "timestamp": latest.timestamp if latest else None,
        "protocols": {
            protocol_id: result.to_dict()
            for protocol_id, result in verifier.history.protocol_results().items()
        },
    }


@router.get("/history")
async def get_history(verifier: IdlVerifier = Depends(get_verifier)):
    """Run-level history, newest first"""
    history = verifier.history.persisted_history()
    return {"history": history, "totalRuns": len(history)}


@router.get("/tx")
async def get_tx_results(verifier: IdlVerifier = Depends(get_verifier)):
    """Most recent transaction-replay run"""
    tx_run = verifier.history.last_tx_run
    if tx_run is None:
        raise NotFoundError("Transaction verification run")
    return tx_run.to_dict()


@router.post("/verify")
async def trigger_verification(
    body: Optional[VerifyRequest] = None,
    verifier: IdlVerifier = Depends(get_verifier),
):
    """Run a verification pass now and wait for it"""
    body = body or VerifyRequest()
    logger.info("Manual verification triggered")

    run = await verifier.run_once(body.protocols, with_transactions=body.with_transactions)
    if run is None:
        return {"success": False, "message": "already running"}

    return {
        "success": True,
        "message": "Verification run completed",
        "result": {
            "verified": run.verified,
            "total": run.total_protocols,
            "durationMs": run.duration_ms,
            "error": run.error,
        },
    }


@router.get("/{protocol_id}")
async def get_protocol_result(protocol_id: str, verifier: IdlVerifier = Depends(get_verifier)):
    """Latest verification result for one protocol"""
    result = verifier.history.for_protocol(protocol_id)
    if result is None:
        raise NotFoundError("Verification result", protocol_id)
    return result.to_dict()
