"""
IDL registry loader
Reads the protocol index (index.json), per-protocol schema files, and the
artifact manifest that maps protocol ids to artifact-store transaction ids.

index.json:     {"protocols": [{"id", "name", "status", "idlPath", "network"}, ...]}
manifest.json:  {"idls": {"<protocol id>": {"txId": "..."}, ...}}
"""
import json
import logging
import os
from typing import Any, Dict, Iterable, List, Optional

from infrastructure.config import StorageConfig, get_config
from infrastructure.errors import NotFoundError, ValidationError
from services.verification_models import ProtocolDescriptor

logger = logging.getLogger("IdlRegistry")


def _read_json(path: str) -> Any:
    with open(path, "r") as f:
        return json.load(f)


class IdlRegistry:
    """Read-only view over the registry files on disk"""

    def __init__(self, storage_config: StorageConfig = None):
        self.config = storage_config or get_config().storage

    @property
    def index_dir(self) -> str:
        return os.path.dirname(os.path.abspath(self.config.index_path))

    def load_protocols(self, only: Optional[Iterable[str]] = None) -> List[ProtocolDescriptor]:
        """
        Protocol descriptors from the index, optionally filtered to a named subset.

        Raises:
            NotFoundError: index file missing
            ValidationError: index is not valid JSON or has no protocol list
        """
        path = self.config.index_path
        if not os.path.exists(path):
            raise NotFoundError("Registry index", path)

        try:
            index = _read_json(path)
        except ValueError as e:
            raise ValidationError(f"Registry index is not valid JSON: {e}", {"path": path}) from e

        entries = index.get("protocols") if isinstance(index, dict) else None
        if not isinstance(entries, list):
            raise ValidationError("Registry index has no 'protocols' list", {"path": path})

        wanted = set(only) if only is not None else None
        protocols = []
        for entry in entries:
            if not isinstance(entry, dict) or not entry.get("id"):
                logger.warning(f"Skipping malformed registry entry: {entry!r}")
                continue
            if wanted is not None and entry["id"] not in wanted:
                continue
            protocols.append(ProtocolDescriptor.from_dict(entry))

        return protocols

    def load_idl(self, protocol: ProtocolDescriptor) -> Optional[Dict[str, Any]]:
        """The protocol's schema document, or None when absent or unreadable."""
        if not protocol.idl_path:
            return None

        path = os.path.join(self.index_dir, protocol.idl_path)
        if not os.path.exists(path):
            return None

        try:
            idl = _read_json(path)
        except (OSError, ValueError) as e:
            logger.warning(f"Unreadable IDL for {protocol.id} at {path}: {e}")
            return None

        return idl if isinstance(idl, dict) else None

    def load_manifest(self) -> Dict[str, str]:
        """protocol id -> artifact transaction id. Entries without a txId are dropped."""
        path = self.config.manifest_path
        if not os.path.exists(path):
            raise NotFoundError("Artifact manifest", path)

        try:
            manifest = _read_json(path)
        except ValueError as e:
            raise ValidationError(f"Artifact manifest is not valid JSON: {e}", {"path": path}) from e

        idls = manifest.get("idls") if isinstance(manifest, dict) else None
        return {
            protocol_id: entry["txId"]
            for protocol_id, entry in (idls or {}).items()
            if isinstance(entry, dict) and entry.get("txId")
        }
