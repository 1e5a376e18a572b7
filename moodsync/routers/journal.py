"""
Journal router.

GET  /journal/sessions       — All sessions, most recently updated first
POST /journal/sessions       — Start an empty session
GET  /journal/sessions/{id}  — One session
GET  /journal/entries        — Journal entries across sessions, newest first
POST /journal/exchanges      — Add one user/assistant exchange
POST /journal/names          — People names mentioned in a text
"""
from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, status

from moodsync.core.deps import get_scheduler, get_sync_context, get_text_client
from moodsync.schemas.common import ErrorResponse
from moodsync.schemas.journal import (
    CreateSessionRequest,
    FlatJournalEntry,
    JournalExchangeRequest,
    JournalExchangeResult,
    JournalSession,
    NameExtractionRequest,
    NameExtractionResponse,
)
from moodsync.services.journal import (
    add_journal_exchange,
    create_journal_session,
    get_all_journal_entries,
    get_journal_session,
    get_journal_sessions,
)
from moodsync.services.journal_analysis import analyze_journal_entry, extract_people_names
from moodsync.services.journal_context import build_journal_context, build_rolling_context
from moodsync.services.memory import CompressionScheduler, save_rolling_context
from moodsync.services.summarizer import TextCompletionClient
from moodsync.services.sync import SyncContext

router = APIRouter(prefix="/journal", tags=["journal"])


@router.get("/sessions", response_model=list[JournalSession], summary="List journal sessions")
async def list_sessions(ctx: SyncContext = Depends(get_sync_context)):
    return await get_journal_sessions(ctx)


@router.post(
    "/sessions",
    response_model=JournalSession,
    status_code=status.HTTP_201_CREATED,
    summary="Start a new journal session",
)
async def create_session(
    payload: CreateSessionRequest,
    ctx: SyncContext = Depends(get_sync_context),
):
    return await create_journal_session(ctx, title=payload.title)


@router.get(
    "/sessions/{session_id}",
    response_model=JournalSession,
    summary="Retrieve one journal session",
    responses={404: {"model": ErrorResponse, "description": "Session not found."}},
)
async def read_session(session_id: str, ctx: SyncContext = Depends(get_sync_context)):
    return await get_journal_session(ctx, session_id)


@router.get(
    "/entries",
    response_model=list[FlatJournalEntry],
    summary="List journal entries across all sessions",
)
async def list_journal_entries(ctx: SyncContext = Depends(get_sync_context)):
    return await get_all_journal_entries(ctx)


@router.post(
    "/exchanges",
    response_model=JournalExchangeResult,
    status_code=status.HTTP_201_CREATED,
    summary="Record one journal exchange",
    responses={422: {"model": ErrorResponse, "description": "Validation error (e.g. empty userText)."}},
)
async def post_exchange(
    payload: JournalExchangeRequest,
    background_tasks: BackgroundTasks,
    ctx: SyncContext = Depends(get_sync_context),
    client: TextCompletionClient = Depends(get_text_client),
    scheduler: CompressionScheduler = Depends(get_scheduler),
):
    """
    1. Analyze the text (caller-supplied `analysis` wins; otherwise the
       text-completion service, falling back to a keyword heuristic).
    2. Append the user/assistant pair and the derived journal entry.
    3. Replace the rolling context from the fresh signals.
    4. Schedule a long-term memory refresh after the response is sent.
    """
    history = []
    if payload.session_id:
        sessions = await get_journal_sessions(ctx)
        history = next((s.messages for s in sessions if s.id == payload.session_id), [])

    context = await build_journal_context(ctx, history=history)
    analysis = payload.analysis or await analyze_journal_entry(
        client, payload.user_text, context=context, history=history
    )

    result = await add_journal_exchange(
        ctx,
        session_id=payload.session_id,
        user_text=payload.user_text,
        analysis=analysis,
    )

    session = next(s for s in result.sessions if s.id == result.session_id)
    await save_rolling_context(ctx, build_rolling_context(context, session, analysis))

    background_tasks.add_task(scheduler.maybe_refresh, ctx)
    return result


@router.post(
    "/names",
    response_model=NameExtractionResponse,
    summary="Extract people's names from a journal text",
)
async def post_names(
    payload: NameExtractionRequest,
    client: TextCompletionClient = Depends(get_text_client),
):
    return NameExtractionResponse(names=await extract_people_names(client, payload.text))
