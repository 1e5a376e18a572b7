"""
Synced Collection — one logical collection kept in both the local store and
the remote store, reconciled on every read.

Rules:
- Local is read and written first, and never depends on remote success.
- Remote reads/writes are best-effort: failures are logged and swallowed,
  the caller always gets the locally computed result.
- Unparseable local data reads as an empty collection.
- Single-document resources (profile, memory documents) are collections
  of zero or one record, so the same conflict policy applies to them.

Conflict policy (default LongerListWins):
    local count > remote count  -> local is authoritative, pushed to remote
    otherwise                   -> remote is authoritative, mirrored locally
A missing remote document is bootstrapped from local when local has data.

Known limitation: "longer list wins" can lose a legitimate delete made on
another device (a shorter, newer list loses to a longer, staler one).

Public API
----------
SyncContext(local, remote, user_id)
CollectionSpec(name, remote_path, model, list_field, sort_key, reverse)
SyncedCollection(spec, policy)
    .reconcile(ctx)         -> ReconcileResult(items, source)
    .persist(ctx, items)    -> list[model]
    .ensure_remote(ctx, default) -> None
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, Protocol, Sequence, TypeVar

from pydantic import BaseModel, ValidationError

from moodsync.core.normalize import json_dumps, json_loads_or, utc_now_iso
from moodsync.services.local_store import LocalStore, local_key
from moodsync.services.remote_store import RemoteStore, user_doc_path

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


class Source(str, enum.Enum):
    LOCAL = "local"
    REMOTE = "remote"


# ---------------------------------------------------------------------------
# Conflict policies
# ---------------------------------------------------------------------------

class ConflictPolicy(Protocol):
    def choose(self, local_count: int, remote_count: int) -> Source: ...


class LongerListWins:
    """Local wins only when it holds strictly more records than remote."""

    def choose(self, local_count: int, remote_count: int) -> Source:
        if local_count > remote_count:
            return Source.LOCAL
        return Source.REMOTE


# ---------------------------------------------------------------------------
# Context and collection description
# ---------------------------------------------------------------------------

@dataclass
class SyncContext:
    """Stores plus the active user; user_id None means unauthenticated."""
    local: LocalStore
    remote: Optional[RemoteStore] = None
    user_id: Optional[str] = None

    @property
    def remote_enabled(self) -> bool:
        return self.remote is not None and bool(self.user_id)


@dataclass(frozen=True)
class CollectionSpec(Generic[T]):
    name: str
    remote_path: str
    model: type[T]
    list_field: Optional[str] = None
    sort_key: Optional[Callable[[T], Any]] = None
    reverse: bool = False

    @property
    def is_single_document(self) -> bool:
        return self.list_field is None


@dataclass
class ReconcileResult(Generic[T]):
    items: list[T]
    source: Source


# ---------------------------------------------------------------------------
# Synced collection
# ---------------------------------------------------------------------------

class SyncedCollection(Generic[T]):
    def __init__(self, spec: CollectionSpec[T], policy: Optional[ConflictPolicy] = None):
        self.spec = spec
        self.policy = policy or LongerListWins()

    # --- normalization ---

    def normalize(self, raw_items: Sequence[Any]) -> list[T]:
        items: list[T] = []
        for raw in raw_items:
            if isinstance(raw, BaseModel):
                raw = raw.model_dump(mode="json", by_alias=True)
            if not isinstance(raw, dict):
                continue
            try:
                items.append(self.spec.model.model_validate(raw))
            except ValidationError as exc:
                logger.warning("dropping malformed %s record: %s", self.spec.name, exc)
        if self.spec.sort_key is not None:
            items.sort(key=self.spec.sort_key, reverse=self.spec.reverse)
        if self.spec.is_single_document:
            return items[:1]
        return items

    def _decode_local(self, text: Optional[str]) -> list[Any]:
        parsed = json_loads_or(text, None)
        if self.spec.is_single_document:
            return [parsed] if isinstance(parsed, dict) else []
        return parsed if isinstance(parsed, list) else []

    def _decode_remote(self, data: dict[str, Any]) -> list[Any]:
        if self.spec.is_single_document:
            return [data] if data else []
        value = data.get(self.spec.list_field)
        return value if isinstance(value, list) else []

    def _dump(self, items: list[T]) -> list[dict[str, Any]]:
        return [item.model_dump(mode="json", by_alias=True) for item in items]

    # --- local ---

    async def read_local(self, ctx: SyncContext) -> list[T]:
        text = await ctx.local.get(local_key(ctx.user_id, self.spec.name))
        return self.normalize(self._decode_local(text))

    async def _write_local(self, ctx: SyncContext, items: list[T]) -> None:
        dumped = self._dump(items)
        payload: Any = dumped
        if self.spec.is_single_document:
            payload = dumped[0] if dumped else None
        await ctx.local.set(local_key(ctx.user_id, self.spec.name), json_dumps(payload))

    # --- remote ---

    def _remote_doc_path(self, ctx: SyncContext) -> str:
        return user_doc_path(ctx.user_id, self.spec.remote_path)

    async def _push(self, ctx: SyncContext, items: list[T]) -> bool:
        dumped = self._dump(items)
        if self.spec.is_single_document:
            if not dumped:
                return False
            payload = dumped[0]
        else:
            payload = {self.spec.list_field: dumped, "updatedAt": utc_now_iso()}
        try:
            await ctx.remote.set_doc(self._remote_doc_path(ctx), payload, merge=True)
        except Exception as exc:
            logger.warning("remote write failed for %s: %s", self.spec.name, exc)
            return False
        return True

    # --- public ---

    async def reconcile(self, ctx: SyncContext) -> ReconcileResult[T]:
        local_items = await self.read_local(ctx)
        if not ctx.remote_enabled:
            return ReconcileResult(local_items, Source.LOCAL)

        try:
            doc = await ctx.remote.get_doc(self._remote_doc_path(ctx))
        except Exception as exc:
            logger.warning("remote read failed for %s: %s", self.spec.name, exc)
            return ReconcileResult(local_items, Source.LOCAL)

        if not doc.exists:
            if local_items:
                await self._push(ctx, local_items)
            return ReconcileResult(local_items, Source.LOCAL)

        remote_items = self.normalize(self._decode_remote(doc.data))
        if self.policy.choose(len(local_items), len(remote_items)) is Source.LOCAL:
            await self._push(ctx, local_items)
            return ReconcileResult(local_items, Source.LOCAL)

        await self._write_local(ctx, remote_items)
        return ReconcileResult(remote_items, Source.REMOTE)

    async def persist(self, ctx: SyncContext, items: Sequence[Any]) -> list[T]:
        normalized = self.normalize(items)
        await self._write_local(ctx, normalized)
        if ctx.remote_enabled:
            await self._push(ctx, normalized)
        return normalized

    async def ensure_remote(self, ctx: SyncContext, default: T) -> None:
        """Create the remote document from `default` when it does not exist."""
        if not ctx.remote_enabled:
            return
        try:
            doc = await ctx.remote.get_doc(self._remote_doc_path(ctx))
        except Exception as exc:
            logger.warning("remote read failed for %s: %s", self.spec.name, exc)
            return
        if not doc.exists:
            await self._push(ctx, [default])
