"""
Memory router.

GET   /memory/context    — Long-term summary + rolling context
PATCH /memory/long-term  — Partial long-term update (manual by default)
PUT   /memory/rolling    — Update the rolling context
POST  /memory/refresh    — Regenerate the long-term summary if due
POST  /memory/scaffold   — Create missing remote memory documents
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status

from moodsync.core.deps import get_scheduler, get_sync_context
from moodsync.schemas.memory import (
    LongTermSummary,
    LongTermSummaryUpdate,
    MemoryContext,
    RefreshRequest,
    RefreshResponse,
    RollingContext,
    RollingContextUpdate,
    UpdateSource,
)
from moodsync.services.memory import (
    CompressionScheduler,
    ensure_memory_scaffold,
    get_memory_context,
    save_long_term_summary,
    save_rolling_context,
)
from moodsync.services.sync import SyncContext

router = APIRouter(prefix="/memory", tags=["memory"])


@router.get("/context", response_model=MemoryContext, summary="Read the memory context")
async def read_context(ctx: SyncContext = Depends(get_sync_context)):
    return await get_memory_context(ctx)


@router.patch(
    "/long-term",
    response_model=LongTermSummary,
    summary="Edit long-term summary fields",
)
async def patch_long_term(
    payload: LongTermSummaryUpdate,
    source: UpdateSource = Query(default="manual", description='"manual" or "ai".'),
    ctx: SyncContext = Depends(get_sync_context),
):
    """
    With `source=manual` every editable field sent is applied and marked as
    user-overridden. With `source=ai` overridden fields are left untouched.
    """
    return await save_long_term_summary(ctx, payload, source=source)


@router.put("/rolling", response_model=RollingContext, summary="Update the rolling context")
async def put_rolling(payload: RollingContextUpdate, ctx: SyncContext = Depends(get_sync_context)):
    return await save_rolling_context(ctx, payload)


@router.post(
    "/refresh",
    response_model=RefreshResponse,
    summary="Regenerate the long-term summary when due",
)
async def refresh(
    payload: RefreshRequest,
    ctx: SyncContext = Depends(get_sync_context),
    scheduler: CompressionScheduler = Depends(get_scheduler),
):
    """
    `ran` is false when the summary is not due, a refresh is already in
    flight, or the summarization service failed. The stored summary is
    unchanged in all of those cases.
    """
    ran = await scheduler.maybe_refresh(ctx, force=payload.force)
    return RefreshResponse(ran=ran)


@router.post(
    "/scaffold",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Create missing remote memory documents",
)
async def scaffold(ctx: SyncContext = Depends(get_sync_context)):
    await ensure_memory_scaffold(ctx)
