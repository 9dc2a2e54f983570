"""
Persistence of what-if scenarios, one JSON blob per project.

Provides:
- ScenarioBackend implementations: in-memory, a local directory of JSON
  files, and Azure Blob Storage
- ScenarioStore: save / load / clear / load_all on top of a backend, with
  an in-process index of all scenarios rebuilt from the per-project blobs

The per-project blobs are the system of record. The index is derived data
owned by each store instance.

Concurrent saves to the same project id are last-writer-wins.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
import weakref
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import quote, unquote

from azure.core.exceptions import AzureError, ResourceNotFoundError
from azure.storage.blob import BlobServiceClient

from .config import Config, get_config
from .errors import InvalidInputError, StoreUnavailableError
from .schema import Scenario

logger = logging.getLogger(__name__)

KEY_PREFIX = "predictionScenario/"
KEY_SUFFIX = ".json"


def scenario_key(project_id: str) -> str:
    return f"{KEY_PREFIX}{quote(project_id, safe='')}{KEY_SUFFIX}"


def project_id_from_key(key: str) -> Optional[str]:
    if not key.startswith(KEY_PREFIX) or not key.endswith(KEY_SUFFIX):
        return None
    return unquote(key[len(KEY_PREFIX) : -len(KEY_SUFFIX)])


# --- Backends ------------------------------------------------------------------


class ScenarioBackend:
    """
    Minimal key-value contract used by ScenarioStore. Values are raw bytes;
    decoding happens in the store.

    Implementations raise OSError or AzureError on storage failure;
    ScenarioStore converts those into StoreUnavailableError.
    """

    def get(self, key: str) -> Optional[bytes]:
        raise NotImplementedError

    def put(self, key: str, data: bytes) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def list_keys(self, prefix: str) -> List[str]:
        raise NotImplementedError


class MemoryScenarioBackend(ScenarioBackend):
    """Dictionary-backed storage for tests and single-process use."""

    def __init__(self) -> None:
        self._data: Dict[str, bytes] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            return self._data.get(key)

    def put(self, key: str, data: bytes) -> None:
        with self._lock:
            self._data[key] = data

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def list_keys(self, prefix: str) -> List[str]:
        with self._lock:
            return sorted(k for k in self._data if k.startswith(prefix))


class LocalScenarioBackend(ScenarioBackend):
    """
    One file per key under a root directory.

    Writes go to a temporary file in the same directory and are moved into
    place with os.replace, so readers never see a partial file.
    """

    def __init__(self, root: str) -> None:
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        return self.root / key

    def get(self, key: str) -> Optional[bytes]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_bytes()

    def put(self, key: str, data: bytes) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp")
        try:
            with os.fdopen(fd, mode="wb") as f:
                f.write(data)
            os.replace(tmp_name, path)
        except OSError:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def delete(self, key: str) -> None:
        path = self._path(key)
        if path.exists():
            path.unlink()

    def list_keys(self, prefix: str) -> List[str]:
        directory = self._path(prefix)
        if not directory.is_dir():
            return []
        return sorted(
            prefix + p.name for p in directory.iterdir() if p.name.endswith(KEY_SUFFIX)
        )


class AzureBlobScenarioBackend(ScenarioBackend):
    """Scenarios stored as blobs in one Azure Blob Storage container."""

    def __init__(self, service_client: BlobServiceClient, container_name: str) -> None:
        self.container_name = container_name
        self._container = service_client.get_container_client(container_name)

    @classmethod
    def from_config(cls, config: Optional[Config] = None) -> "AzureBlobScenarioBackend":
        cfg = config or get_config()
        if not cfg.azure_blob_connection_string:
            raise ValueError(
                "Azure blob connection string is not configured. "
                "Set CF_AZURE_BLOB_CONNECTION_STRING or pass Config explicitly."
            )
        if not cfg.azure_blob_container_name:
            raise ValueError(
                "Azure blob container name is not configured. "
                "Set CF_AZURE_BLOB_CONTAINER_NAME or pass Config explicitly."
            )
        try:
            service_client = BlobServiceClient.from_connection_string(
                cfg.azure_blob_connection_string
            )
        except ValueError as exc:
            logger.error("Cannot build Azure blob client: %s", exc)
            raise StoreUnavailableError(
                "Azure blob connection string is malformed", retryable=False
            ) from exc
        return cls(service_client, cfg.azure_blob_container_name)

    def get(self, key: str) -> Optional[bytes]:
        blob_client = self._container.get_blob_client(key)
        try:
            download_stream = blob_client.download_blob()
        except ResourceNotFoundError:
            return None
        return download_stream.readall()

    def put(self, key: str, data: bytes) -> None:
        blob_client = self._container.get_blob_client(key)
        blob_client.upload_blob(data, overwrite=True)

    def delete(self, key: str) -> None:
        blob_client = self._container.get_blob_client(key)
        try:
            blob_client.delete_blob()
        except ResourceNotFoundError:
            pass

    def list_keys(self, prefix: str) -> List[str]:
        return sorted(b.name for b in self._container.list_blobs(name_starts_with=prefix))


# --- Store ---------------------------------------------------------------------


class ScenarioStore:
    """
    Keyed persistence of scenarios with a derived "all scenarios" index.

    Each project id has its own lock so save/load/clear on one id are
    linearizable while different ids proceed independently. A lock lives
    only while some caller holds or waits on it.
    """

    def __init__(self, backend: ScenarioBackend, *, rebuild: bool = True) -> None:
        self.backend = backend
        self._index: Dict[str, Scenario] = {}
        self._index_lock = threading.Lock()
        self._key_locks: "weakref.WeakValueDictionary[str, threading.Lock]" = (
            weakref.WeakValueDictionary()
        )
        self._key_locks_guard = threading.Lock()
        if rebuild:
            self.rebuild_index()

    def _lock_for(self, project_id: str) -> threading.Lock:
        with self._key_locks_guard:
            lock = self._key_locks.get(project_id)
            if lock is None:
                lock = self._key_locks[project_id] = threading.Lock()
            return lock

    def _decode(self, project_id: str, raw: bytes) -> Optional[Scenario]:
        try:
            return Scenario.from_dict(json.loads(raw.decode("utf-8")))
        except ValueError as exc:
            # UnicodeDecodeError, JSONDecodeError and InvalidInputError
            logger.warning("Ignoring unreadable scenario for %s: %s", project_id, exc)
            return None

    def _call(self, action: str, project_id: str, func, *args):
        try:
            return func(*args)
        except (OSError, AzureError) as exc:
            logger.warning("Scenario store %s failed for %s: %s", action, project_id, exc)
            raise StoreUnavailableError(
                f"Scenario store unavailable during {action} for {project_id!r}"
            ) from exc

    def save(self, project_id: str, scenario: Scenario) -> None:
        if not project_id:
            raise InvalidInputError("project_id is required")
        payload = json.dumps(scenario.to_dict(), sort_keys=True)
        with self._lock_for(project_id):
            self._call(
                "save", project_id, self.backend.put, scenario_key(project_id),
                payload.encode("utf-8"),
            )
            with self._index_lock:
                self._index[project_id] = scenario
        logger.debug("Saved scenario for %s: %s", project_id, payload)

    def load(self, project_id: str) -> Optional[Scenario]:
        with self._lock_for(project_id):
            raw = self._call("load", project_id, self.backend.get, scenario_key(project_id))
            scenario = self._decode(project_id, raw) if raw is not None else None
            with self._index_lock:
                if scenario is None:
                    self._index.pop(project_id, None)
                else:
                    self._index[project_id] = scenario
        return scenario

    def clear(self, project_id: str) -> None:
        with self._lock_for(project_id):
            self._call("clear", project_id, self.backend.delete, scenario_key(project_id))
            with self._index_lock:
                self._index.pop(project_id, None)
        logger.debug("Cleared scenario for %s", project_id)

    def load_all(self) -> Dict[str, Scenario]:
        """Return a copy of the index of every saved scenario."""
        with self._index_lock:
            return dict(self._index)

    def rebuild_index(self) -> Dict[str, Scenario]:
        """Re-read every per-project blob and replace the index."""
        keys = self._call("list", "*", self.backend.list_keys, KEY_PREFIX)
        index: Dict[str, Scenario] = {}
        for key in keys:
            project_id = project_id_from_key(key)
            if project_id is None:
                continue
            raw = self._call("load", project_id, self.backend.get, key)
            if raw is None:
                continue
            scenario = self._decode(project_id, raw)
            if scenario is not None:
                index[project_id] = scenario
        with self._index_lock:
            self._index = index
        logger.info("Scenario index rebuilt with %d entries", len(index))
        return dict(index)


def build_scenario_store(config: Optional[Config] = None) -> ScenarioStore:
    """
    Pick a backend from configuration:
    - Azure Blob Storage if a connection string and container are set
    - a local directory if CF_SCENARIO_DIR is set
    - otherwise process memory
    """
    cfg = config or get_config()
    if cfg.azure_blob_connection_string and cfg.azure_blob_container_name:
        backend: ScenarioBackend = AzureBlobScenarioBackend.from_config(cfg)
    elif cfg.scenario_dir:
        backend = LocalScenarioBackend(cfg.scenario_dir)
    else:
        logger.info("No scenario storage configured; scenarios are kept in memory")
        backend = MemoryScenarioBackend()
    return ScenarioStore(backend)
