# infrastructure/ledger.py
"""
Read-only ledger access for IDLHub.
JSON-RPC over httpx with per-network endpoint fallback.

Usage:
    gateway = LedgerGateway()
    conn = await gateway.connect(Network.MAINNET)
    info = await conn.get_account_info("JUP6LkbZbjS1jKKwapdHNy74zcZ3tLUZoi5QNyVTaV4")
"""
import base64
import itertools
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from .config import LedgerConfig, Network, RpcEndpoint, get_config
from .errors import LedgerConnectivityError, LedgerRequestError

logger = logging.getLogger("LedgerGateway")


@dataclass
class AccountInfo:
    """Subset of getAccountInfo we care about"""
    executable: bool
    owner: str
    lamports: int
    data_len: int

    @classmethod
    def from_rpc(cls, value: Dict[str, Any]) -> "AccountInfo":
        """
        Raises:
            ValueError: malformed account value (bad base64, non-numeric fields)
        """
        if not isinstance(value, dict):
            raise ValueError(f"Account value is not an object: {value!r}")
        try:
            data_len = value.get("space")
            if data_len is None:
                data = value.get("data") or ["", "base64"]
                raw = data[0] if isinstance(data, list) else data
                data_len = len(base64.b64decode(raw, validate=True)) if raw else 0
            return cls(
                executable=bool(value.get("executable", False)),
                owner=value.get("owner", ""),
                lamports=int(value.get("lamports", 0)),
                data_len=int(data_len),
            )
        except (TypeError, ValueError, KeyError, IndexError) as e:
            raise ValueError(f"Malformed account value: {e}") from e


class LedgerConnection:
    """A live connection to one endpoint"""

    def __init__(
        self,
        endpoint: RpcEndpoint,
        client: httpx.AsyncClient,
        commitment: str = "confirmed",
        max_supported_transaction_version: int = 0,
    ):
        self.endpoint = endpoint
        self.client = client
        self.commitment = commitment
        self.max_supported_transaction_version = max_supported_transaction_version
        self._ids = itertools.count(1)

    @property
    def url(self) -> str:
        return self.endpoint.url

    async def _call(self, method: str, params: Optional[List[Any]] = None) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params or [],
        }
        try:
            response = await self.client.post(self.url, json=payload)
        except httpx.HTTPError as e:
            raise LedgerRequestError(method, f"Transport error: {e}", self.url) from e

        if response.status_code != 200:
            raise LedgerRequestError(method, f"HTTP {response.status_code}", self.url)

        try:
            body = response.json()
        except ValueError as e:
            raise LedgerRequestError(method, "Invalid JSON-RPC response", self.url) from e

        if not isinstance(body, dict):
            raise LedgerRequestError(method, "Invalid JSON-RPC response", self.url)

        err = body.get("error")
        if err:
            if not isinstance(err, dict):
                raise LedgerRequestError(method, f"RPC error: {err}", self.url)
            raise LedgerRequestError(method, err.get("message", "RPC error"), self.url, err.get("code"))

        return body.get("result")

    async def get_slot(self) -> int:
        """Current slot. Used as the liveness check."""
        return await self._call("getSlot", [{"commitment": self.commitment}])

    async def get_account_info(self, address: str) -> Optional[AccountInfo]:
        result = await self._call(
            "getAccountInfo",
            [address, {"encoding": "base64", "commitment": self.commitment}],
        )
        value = result.get("value") if isinstance(result, dict) else None
        if value is None:
            return None
        try:
            return AccountInfo.from_rpc(value)
        except ValueError as e:
            raise LedgerRequestError("getAccountInfo", str(e), self.url) from e

    async def get_signatures_for_address(
        self,
        address: str,
        limit: int = 20,
        before: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Most recent signatures first. Page backwards with `before`."""
        opts: Dict[str, Any] = {"limit": limit, "commitment": self.commitment}
        if before:
            opts["before"] = before
        return await self._call("getSignaturesForAddress", [address, opts]) or []

    async def get_transaction(self, signature: str) -> Optional[Dict[str, Any]]:
        return await self._call(
            "getTransaction",
            [
                signature,
                {
                    "encoding": "json",
                    "commitment": self.commitment,
                    "maxSupportedTransactionVersion": self.max_supported_transaction_version,
                },
            ],
        )


class LedgerGateway:
    """
    Fallback-aware ledger access.

    Endpoints are tried one at a time in priority order; the first that
    answers getSlot is adopted for the rest of the session on that network.
    """

    def __init__(self, ledger_config: LedgerConfig = None, client: httpx.AsyncClient = None):
        self.config = ledger_config or get_config().ledger
        self.client = client or httpx.AsyncClient(timeout=self.config.request_timeout)
        self._connections: Dict[Network, LedgerConnection] = {}

    async def connect(self, network: Network = Network.MAINNET) -> LedgerConnection:
        if network in self._connections:
            return self._connections[network]

        tried = []
        for endpoint in self.config.endpoints_for(network):
            tried.append(endpoint.url)
            conn = LedgerConnection(
                endpoint,
                self.client,
                commitment=self.config.commitment,
                max_supported_transaction_version=self.config.max_supported_transaction_version,
            )
            try:
                await conn.get_slot()
            except LedgerRequestError as e:
                logger.warning(f"RPC {endpoint.url} failed ({e.message}), trying next...")
                continue

            logger.info(f"Connected to {network.value} via {endpoint.label or endpoint.url}")
            self._connections[network] = conn
            return conn

        raise LedgerConnectivityError(network.value, tried)

    def reset(self):
        """Forget adopted endpoints so the next connect() checks them again."""
        self._connections.clear()

    async def close(self):
        await self.client.aclose()
