"""
Profile router.

GET   /profile  — Current profile (defaults when none saved)
PUT   /profile  — Replace the profile (validated)
PATCH /profile  — Change some fields (validated)
"""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends

from moodsync.core.deps import get_sync_context
from moodsync.schemas.common import ErrorResponse
from moodsync.schemas.profile import Profile, ProfileUpdate
from moodsync.services.profile import get_profile, save_profile, update_profile
from moodsync.services.sync import SyncContext

router = APIRouter(prefix="/profile", tags=["profile"])

_INVALID = {422: {"model": ErrorResponse, "description": "Validation error (code PROFILE_INVALID)."}}


@router.get("", response_model=Profile, summary="Read the profile")
async def read_profile(ctx: SyncContext = Depends(get_sync_context)):
    return await get_profile(ctx)


@router.put("", response_model=Profile, summary="Replace the profile", responses=_INVALID)
async def put_profile(
    payload: dict[str, Any] = Body(..., examples=[{"name": "Ana", "sleepAverage": "7.5"}]),
    ctx: SyncContext = Depends(get_sync_context),
):
    """Missing fields take their default values."""
    return await save_profile(ctx, payload)


@router.patch("", response_model=Profile, summary="Update profile fields", responses=_INVALID)
async def patch_profile(payload: ProfileUpdate, ctx: SyncContext = Depends(get_sync_context)):
    return await update_profile(ctx, payload)
