"""
Mood entries router.

GET    /entries        — All mood entries (newest day first, later slot first)
PUT    /entries        — Upsert one entry by (date, slot)
POST   /entries/today  — Upsert today's evening entry
DELETE /entries        — Delete by `id`, or by `date` + `slot`
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from moodsync.core.deps import get_sync_context
from moodsync.schemas.common import ErrorResponse
from moodsync.schemas.mood import MoodEntry, MoodEntryUpsert, Slot, TodayMoodRequest
from moodsync.services.mood_entries import (
    delete_entry,
    get_entries,
    upsert_entry,
    upsert_today_entry,
)
from moodsync.services.sync import SyncContext

router = APIRouter(prefix="/entries", tags=["entries"])


@router.get(
    "",
    response_model=list[MoodEntry],
    summary="List mood entries",
)
async def list_entries(ctx: SyncContext = Depends(get_sync_context)):
    """
    Reconciles the local and remote copies before answering.
    Remote problems never fail the request: the local copy is returned.
    """
    return await get_entries(ctx)


@router.put(
    "",
    response_model=list[MoodEntry],
    summary="Create or replace the entry for a day-slot",
    responses={422: {"model": ErrorResponse, "description": "Validation error."}},
)
async def put_entry(payload: MoodEntryUpsert, ctx: SyncContext = Depends(get_sync_context)):
    """
    Missing `date` means today, missing `slot` means `evening`.
    `mood` is clamped to 1–5 and `score` is derived from it.
    Returns the full, re-sorted list.
    """
    return await upsert_entry(ctx, payload)


@router.post(
    "/today",
    response_model=list[MoodEntry],
    summary="Log today's evening mood",
)
async def post_today_entry(payload: TodayMoodRequest, ctx: SyncContext = Depends(get_sync_context)):
    return await upsert_today_entry(ctx, mood=payload.mood, note=payload.note)


@router.delete(
    "",
    response_model=list[MoodEntry],
    summary="Delete one entry",
    responses={422: {"model": ErrorResponse, "description": "Neither `id` nor `date` + `slot` given."}},
)
async def remove_entry(
    id: Optional[str] = Query(default=None, description="Entry id, e.g. 2026-02-20_evening."),
    date: Optional[str] = Query(default=None, examples=["2026-02-20"]),
    slot: Optional[Slot] = Query(default=None),
    ctx: SyncContext = Depends(get_sync_context),
):
    """Deleting an entry that does not exist is a no-op."""
    return await delete_entry(ctx, entry_id=id, day=date, slot=slot)
