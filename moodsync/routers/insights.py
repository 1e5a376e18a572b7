"""
Insights router.

GET  /insights/mood             — Bounded mood summary for a range
POST /insights/generate         — Written insight for a range (50/day)
POST /insights/quarterly        — Collapse a year summary into quarters
POST /insights/estimate-tokens  — Token estimate for any JSON payload
"""
from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query

from moodsync.core.deps import (
    get_insight_daily_limit,
    get_sync_context,
    get_text_client,
    get_token_budget,
)
from moodsync.schemas.common import ErrorResponse
from moodsync.schemas.insights import (
    InsightRequest,
    InsightResult,
    QuarterlySummary,
    Range,
    TokenEstimate,
    YearSummary,
)
from moodsync.services.insights import (
    build_insight_payload,
    compact_user_profile,
    compress_year_to_quarterly,
    estimate_payload_tokens,
    generate_insight,
    preferred_range,
)
from moodsync.services.mood_entries import get_entries
from moodsync.services.profile import get_profile
from moodsync.services.summarizer import TextCompletionClient
from moodsync.services.sync import SyncContext

router = APIRouter(prefix="/insights", tags=["insights"])


@router.get(
    "/mood",
    response_model=None,
    summary="Mood summary for day, week, month or year",
)
async def mood_summary(
    range: Optional[Range] = Query(default=None, description="Defaults to the profile's insight range."),
    ctx: SyncContext = Depends(get_sync_context),
    token_budget: int = Depends(get_token_budget),
):
    """
    `day`/`week`/`month` return one `{d, m, n}` sample per entry.
    `year` returns `monthlyAverages`, or `quarterlyAverages` when the monthly
    form plus the profile would exceed the token budget.
    """
    profile = await get_profile(ctx)
    entries = await get_entries(ctx)
    payload = build_insight_payload(
        entries,
        range or preferred_range(profile),
        token_budget=token_budget,
        user_profile=compact_user_profile(profile, ctx.user_id),
    )
    return payload.to_json_dict()


@router.post(
    "/generate",
    response_model=InsightResult,
    summary="Generate a written insight",
    responses={429: {"model": ErrorResponse, "description": "Daily limit reached (code DAILY_LIMIT_REACHED)."}},
)
async def post_generate(
    payload: Optional[InsightRequest] = None,
    ctx: SyncContext = Depends(get_sync_context),
    client: Optional[TextCompletionClient] = Depends(get_text_client),
    token_budget: int = Depends(get_token_budget),
    daily_limit: int = Depends(get_insight_daily_limit),
):
    """
    Omitting `range` uses the profile's default insight range. When the
    text-completion service is absent or fails, a rule-based insight is
    returned with `source: "fallback"` and the daily allowance is untouched.
    """
    return await generate_insight(
        ctx,
        client,
        range_=payload.range if payload else None,
        token_budget=token_budget,
        daily_limit=daily_limit,
    )


@router.post(
    "/quarterly",
    response_model=QuarterlySummary,
    summary="Compress a year summary into quarterly averages",
)
async def quarterly(payload: YearSummary):
    return compress_year_to_quarterly(payload)


@router.post(
    "/estimate-tokens",
    response_model=TokenEstimate,
    summary="Estimate the prompt-token cost of a JSON payload",
)
async def estimate_tokens(payload: Any = Body(...)):
    return TokenEstimate(tokens=estimate_payload_tokens(payload))
