"""
FastAPI dependencies.

Process-wide collaborators (remote store, text client, compression
scheduler) live on app.state and are set up in the lifespan. The active
user comes from the X-User-Id header; no header means local-only.
"""
from typing import Optional

from fastapi import Depends, Header, Request

from moodsync.core.config import settings
from moodsync.db.base import get_session_factory
from moodsync.services.local_store import SQLLocalStore
from moodsync.services.memory import CompressionScheduler
from moodsync.services.remote_store import RemoteStore
from moodsync.services.summarizer import TextCompletionClient
from moodsync.services.sync import SyncContext


def get_local_store() -> SQLLocalStore:
    return SQLLocalStore(get_session_factory())


def get_remote_store(request: Request) -> Optional[RemoteStore]:
    return getattr(request.app.state, "remote_store", None)


def get_text_client(request: Request) -> Optional[TextCompletionClient]:
    return getattr(request.app.state, "text_client", None)


def get_scheduler(request: Request) -> CompressionScheduler:
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        scheduler = CompressionScheduler(get_text_client(request))
        request.app.state.scheduler = scheduler
    return scheduler


def get_token_budget() -> int:
    return settings.INSIGHT_TOKEN_BUDGET


def get_insight_daily_limit() -> int:
    return settings.INSIGHT_DAILY_LIMIT


def get_sync_context(
    x_user_id: Optional[str] = Header(default=None),
    local: SQLLocalStore = Depends(get_local_store),
    remote: Optional[RemoteStore] = Depends(get_remote_store),
) -> SyncContext:
    user_id = x_user_id.strip() if x_user_id else None
    return SyncContext(local=local, remote=remote, user_id=user_id or None)
