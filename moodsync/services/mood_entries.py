"""
Mood entry service.

Identity is (date, slot): upserting an existing pair replaces its mood, note
and timestamps but keeps createdAt. Entries are returned newest day first,
later slot first.

Public API
----------
MOOD_ENTRIES                         SyncedCollection[MoodEntry]
get_entries(ctx)                     -> list[MoodEntry]
save_entries(ctx, entries)           -> list[MoodEntry]
upsert_entry(ctx, data)              -> list[MoodEntry]
upsert_today_entry(ctx, mood, note)  -> list[MoodEntry]
delete_entry(ctx, id, date, slot)    -> list[MoodEntry]
"""
from __future__ import annotations

import logging
from typing import Optional

from moodsync.core.errors import InvalidDeleteTargetError
from moodsync.core.normalize import today_key, utc_now_iso
from moodsync.schemas.mood import DEFAULT_SLOT, MoodEntry, MoodEntryUpsert, entry_sort_key
from moodsync.services.sync import CollectionSpec, SyncContext, SyncedCollection

logger = logging.getLogger(__name__)

MOOD_ENTRIES: SyncedCollection[MoodEntry] = SyncedCollection(
    CollectionSpec(
        name="entries",
        remote_path="appData/moodEntries",
        model=MoodEntry,
        list_field="entries",
        sort_key=entry_sort_key,
        reverse=True,
    )
)


async def get_entries(ctx: SyncContext) -> list[MoodEntry]:
    result = await MOOD_ENTRIES.reconcile(ctx)
    return result.items


async def save_entries(ctx: SyncContext, entries: list) -> list[MoodEntry]:
    return await MOOD_ENTRIES.persist(ctx, entries)


async def upsert_entry(ctx: SyncContext, data: MoodEntryUpsert) -> list[MoodEntry]:
    day = data.date or today_key()
    slot = data.slot or DEFAULT_SLOT
    now_iso = utc_now_iso()

    payload = {
        "id": f"{day}_{slot}",
        "date": day,
        "slot": slot,
        "mood": data.mood,
        "note": data.note or "",
        "loggedAtTimestamp": data.logged_at_timestamp or now_iso,
        "isBackfilled": data.is_backfilled if data.is_backfilled is not None else day != today_key(),
        "updatedAt": now_iso,
    }

    existing = await get_entries(ctx)
    records = [entry.to_json_dict() for entry in existing]
    for index, record in enumerate(records):
        if record["date"] == day and record["slot"] == slot:
            records[index] = {**record, **payload}
            break
    else:
        records.append({**payload, "createdAt": now_iso})

    logger.debug("upsert mood entry %s_%s mood=%s", day, slot, data.mood)
    return await save_entries(ctx, records)


async def upsert_today_entry(ctx: SyncContext, mood: int, note: str = "") -> list[MoodEntry]:
    return await upsert_entry(
        ctx,
        MoodEntryUpsert(date=today_key(), slot="evening", mood=mood, note=note, is_backfilled=False),
    )


async def delete_entry(
    ctx: SyncContext,
    entry_id: Optional[str] = None,
    day: Optional[str] = None,
    slot: Optional[str] = None,
) -> list[MoodEntry]:
    """Delete by id, or by (date, slot). Deleting a missing entry is a no-op."""
    if not entry_id and not (day and slot):
        raise InvalidDeleteTargetError()

    existing = await get_entries(ctx)
    if entry_id:
        kept = [entry for entry in existing if entry.id != entry_id]
    else:
        kept = [entry for entry in existing if not (entry.date == day and entry.slot == slot)]
    return await save_entries(ctx, kept)
