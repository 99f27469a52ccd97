"""
Verification History - bounded store of runs plus the latest result per protocol.

Constructed once at start-up and handed to whatever needs it; there is no
module-level cache. `reset()` is the only way to clear it.
"""

import json
import logging
import os
from typing import Any, Dict, List, Optional

from infrastructure.config import StorageConfig, VerificationConfig, get_config
from infrastructure.errors import PersistenceError
from .verification_models import (
    TxVerificationRun,
    VerificationResult,
    VerificationRun,
    verification_result_from_dict,
)

logger = logging.getLogger("VerificationHistory")


def _ratio_percent(numerator: int, denominator: int) -> Optional[float]:
    """One-decimal percentage, or None when there is no data to divide by."""
    if not denominator:
        return None
    return round(numerator / denominator * 100, 1)


class VerificationHistory:

    def __init__(
        self,
        verification_config: VerificationConfig = None,
        storage_config: StorageConfig = None,
    ):
        cfg = get_config()
        self.config = verification_config or cfg.verification
        self.storage = storage_config or cfg.storage

        self._runs: List[VerificationRun] = []
        self._results: Dict[str, VerificationResult] = {}
        self._persisted_runs: List[Dict[str, Any]] = []
        self.last_tx_run: Optional[TxVerificationRun] = None

    @property
    def max_history(self) -> int:
        return self.config.max_history

    # ============================================
    # MUTATION
    # ============================================

    def record(self, run: VerificationRun):
        """Newest first; the oldest run is evicted once at capacity."""
        self._runs.insert(0, run)
        del self._runs[self.max_history:]

        for result in run.protocols:
            self._results[result.protocol_id] = result

        self._persisted_runs.insert(0, run.to_dict(include_protocols=False))
        del self._persisted_runs[self.config.persisted_history:]

    def record_tx_run(self, tx_run: TxVerificationRun):
        self.last_tx_run = tx_run

    def reset(self):
        self._runs.clear()
        self._results.clear()
        self._persisted_runs.clear()
        self.last_tx_run = None

    # ============================================
    # READ ACCESSORS
    # ============================================

    def latest(self) -> Optional[VerificationRun]:
        return self._runs[0] if self._runs else None

    def history(self) -> List[VerificationRun]:
        return list(self._runs)

    def persisted_history(self) -> List[Dict[str, Any]]:
        return list(self._persisted_runs)

    def for_protocol(self, protocol_id: str) -> Optional[VerificationResult]:
        return self._results.get(protocol_id)

    def protocol_results(self) -> Dict[str, VerificationResult]:
        return dict(self._results)

    def summary(self) -> Dict[str, Any]:
        latest = self.latest()
        if latest is None:
            return {
                "status": "no_data",
                "message": "No verification runs yet",
            }

        return {
            "status": "operational" if latest.verified > 0 else "degraded",
            "lastRun": latest.timestamp,
            "totalProtocols": latest.total_protocols,
            "verified": latest.verified,
            "partial": latest.partial,
            "verifiedPercent": _ratio_percent(latest.verified, latest.total_protocols),
            "placeholder": latest.placeholder,
            "noProgram": latest.no_program,
            "devnetOnly": latest.devnet_only,
            "rpcError": latest.rpc_error,
            "failed": latest.failed,
            "totalPrograms": latest.total_programs,
            "verifiedPrograms": latest.verified_programs,
            "programsVerifiedPercent": _ratio_percent(latest.verified_programs, latest.total_programs),
            "durationMs": latest.duration_ms,
            "error": latest.error,
            "uptimeHistory": [
                {
                    "timestamp": run.timestamp,
                    "verified": run.verified,
                    "total": run.total_protocols,
                    "programs": run.verified_programs,
                    "totalPrograms": run.total_programs,
                }
                for run in self._runs[:self.config.uptime_window]
            ],
        }

    # ============================================
    # PERSISTENCE
    # ============================================

    def persist(self):
        """Write latest results and history. Raises PersistenceError."""
        latest = self.latest()
        results = {
            "lastRun": latest.to_dict(include_protocols=False) if latest else None,
            "protocolResults": {pid: r.to_dict() for pid, r in self._results.items()},
        }
        self._write_json(self.storage.results_file, results)
        self._write_json(self.storage.history_file, self._persisted_runs)

        if self.last_tx_run is not None:
            self._write_json(self.storage.tx_results_file, self.last_tx_run.to_dict())

    def load(self) -> int:
        """Restore persisted state. Returns the number of runs restored."""
        history = self._read_json(self.storage.history_file) or []
        results = self._read_json(self.storage.results_file) or {}

        self._persisted_runs = list(history)[:self.config.persisted_history]
        self._runs = [VerificationRun.from_dict(r) for r in self._persisted_runs[:self.max_history]]

        for protocol_id, data in (results.get("protocolResults") or {}).items():
            try:
                self._results[protocol_id] = verification_result_from_dict(data)
            except (KeyError, ValueError) as e:
                logger.warning(f"Skipping persisted result for {protocol_id}: {e}")

        logger.info(f"Loaded {len(self._runs)} runs and {len(self._results)} protocol results")
        return len(self._runs)

    def _write_json(self, filename: str, data: Any):
        path = self.storage.path_for(filename)
        try:
            os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
            tmp_path = f"{path}.tmp"
            with open(tmp_path, "w") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, path)
        except OSError as e:
            raise PersistenceError(path, e) from e

    def _read_json(self, filename: str) -> Any:
        path = self.storage.path_for(filename)
        if not os.path.exists(path):
            return None
        try:
            with open(path, "r") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load {path}: {e}")
            return None
