"""
Remote Store Adapter — per-user documents in a cloud document store.

Backends:
- FirestoreRemoteStore  google.cloud.firestore.AsyncClient
- InMemoryRemoteStore   process-local dict (development, tests)

Both expose the same two calls; paths are full document paths such as
"users/u-42/appData/moodEntries". Errors propagate: the synced
collections decide what to swallow.

Public API
----------
RemoteDocument(exists, data)
RemoteStore.get_doc(path)                   -> RemoteDocument
RemoteStore.set_doc(path, data, merge=True) -> None
user_doc_path(user_id, relative_path)       -> str
build_remote_store(settings)                -> Optional[RemoteStore]
"""
from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from google.cloud import firestore

from moodsync.core.config import Settings

logger = logging.getLogger(__name__)

USERS_COLLECTION = "users"


@dataclass
class RemoteDocument:
    exists: bool
    data: dict[str, Any] = field(default_factory=dict)


def user_doc_path(user_id: str, relative_path: str) -> str:
    return f"{USERS_COLLECTION}/{user_id}/{relative_path.strip('/')}"


class RemoteStore(Protocol):
    async def get_doc(self, path: str) -> RemoteDocument: ...

    async def set_doc(self, path: str, data: dict[str, Any], merge: bool = True) -> None: ...


# ---------------------------------------------------------------------------
# Firestore
# ---------------------------------------------------------------------------

class FirestoreRemoteStore:
    def __init__(self, client: firestore.AsyncClient):
        self._client = client

    async def get_doc(self, path: str) -> RemoteDocument:
        snapshot = await self._client.document(path).get()
        if not snapshot.exists:
            return RemoteDocument(exists=False)
        return RemoteDocument(exists=True, data=snapshot.to_dict() or {})

    async def set_doc(self, path: str, data: dict[str, Any], merge: bool = True) -> None:
        await self._client.document(path).set(data, merge=merge)


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------

def _deep_merge(base: dict[str, Any], incoming: dict[str, Any]) -> dict[str, Any]:
    """Maps merge key by key; every other value (lists included) is replaced."""
    merged = dict(base)
    for key, value in incoming.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


class InMemoryRemoteStore:
    def __init__(self):
        self.documents: dict[str, dict[str, Any]] = {}

    async def get_doc(self, path: str) -> RemoteDocument:
        if path not in self.documents:
            return RemoteDocument(exists=False)
        return RemoteDocument(exists=True, data=copy.deepcopy(self.documents[path]))

    async def set_doc(self, path: str, data: dict[str, Any], merge: bool = True) -> None:
        if merge and path in self.documents:
            self.documents[path] = _deep_merge(self.documents[path], data)
        else:
            self.documents[path] = copy.deepcopy(data)


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def build_remote_store(settings: Settings) -> Optional[RemoteStore]:
    """
    Pick the backend named by REMOTE_BACKEND. A Firestore client that cannot
    be built (no credentials, no project) means the app runs local-only.
    """
    backend = settings.REMOTE_BACKEND.strip().lower()
    if backend == "memory":
        logger.info("remote store: in-memory")
        return InMemoryRemoteStore()
    if backend == "firestore":
        try:
            client = firestore.AsyncClient(project=settings.FIRESTORE_PROJECT)
        except Exception as exc:
            logger.warning("remote store disabled, Firestore client unavailable: %s", exc)
            return None
        logger.info("remote store: firestore (project=%s)", client.project)
        return FirestoreRemoteStore(client)
    logger.info("remote store: none (backend=%r)", backend)
    return None
