"""
Arweave artifact client
Fetches schema documents (IDLs) from the content-addressed store by transaction id.
Gateways are tried in order; transport errors are retried per gateway.
"""
import httpx
from typing import Optional, Dict, Any, List
import logging

from infrastructure.config import StorageConfig, get_config
from infrastructure.errors import ArtifactFetchError, retry

logger = logging.getLogger("Arweave")


class ArweaveClient:
    """fetch(tx_id) -> schema document"""

    def __init__(self, storage_config: StorageConfig = None, client: httpx.AsyncClient = None):
        self.config = storage_config or get_config().storage
        self.timeout = self.config.artifact_timeout
        self._client = client
        logger.info(f"Arweave client initialized ({len(self.gateways)} gateways)")

    @property
    def gateways(self) -> List[str]:
        return list(self.config.artifact_gateways)

    async def fetch(self, tx_id: str) -> Dict[str, Any]:
        """
        Fetch and parse a JSON artifact.

        Raises:
            ArtifactFetchError: every gateway failed or returned a non-JSON body
        """
        if not tx_id:
            raise ArtifactFetchError("", "Artifact id is required")

        last_error: Optional[ArtifactFetchError] = None
        for gateway in self.gateways:
            url = f"{gateway.rstrip('/')}/{tx_id}"
            try:
                return await self._fetch_url(url, tx_id)
            except ArtifactFetchError as e:
                last_error = e
                logger.warning(f"Gateway {gateway} failed for {tx_id[:12]}: {e.message}")

        raise last_error or ArtifactFetchError(tx_id, "No artifact gateways configured")

    async def _fetch_url(self, url: str, tx_id: str) -> Dict[str, Any]:
        try:
            response = await self._get(url)
        except httpx.HTTPError as e:
            raise ArtifactFetchError(tx_id, f"Request failed: {e}") from e

        if response.status_code != 200:
            raise ArtifactFetchError(
                tx_id,
                f"Failed to fetch artifact: {response.status_code}",
                response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ArtifactFetchError(tx_id, "Artifact is not valid JSON") from e

        if not isinstance(data, dict):
            raise ArtifactFetchError(tx_id, "Artifact is not a JSON object")
        return data

    @retry(max_attempts=3, delay=0.5, exceptions=(httpx.TransportError,))
    async def _get(self, url: str) -> httpx.Response:
        if self._client is not None:
            return await self._client.get(url, timeout=self.timeout)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.get(url)
