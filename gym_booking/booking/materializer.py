from __future__ import annotations

import asyncio
import logging
from datetime import date, timedelta

from gym_booking.core.dates import get_week_start, week_index_for_day
from gym_booking.db.models import Session, SessionStatus, Slot, session_id_for
from gym_booking.db.repository import SESSIONS, to_document
from gym_booking.db.store import DocumentStore

logger = logging.getLogger(__name__)


def session_for_slot(slot: Slot, week_start: date) -> Session:
    """Build the (not yet stored) session of `slot` inside the given week."""
    session_date = week_start + timedelta(days=week_index_for_day(slot.day_of_week))
    return Session(
        id=session_id_for(slot.id, session_date),
        slot_id=slot.id,
        date=session_date,
        start_time=slot.start_time,
        end_time=slot.end_time,
        location=slot.location,
        max_capacity=slot.max_capacity,
        booking_count=0,
        status=SessionStatus.SCHEDULED,
    )


async def ensure_sessions_for_week(
    store: DocumentStore,
    slots: list[Slot],
    week_start: date,
) -> list[Session]:
    """
    Make sure every active slot has its session in the week starting `week_start`.

    Existing sessions are never touched: creation relies on the store's
    create-if-absent primitive and the deterministic `{slot_id}_{date}` id,
    so repeated or concurrent calls for the same week are harmless.
    Returns only the sessions this call created.
    """

    week_start = get_week_start(week_start)
    candidates = [session_for_slot(slot, week_start) for slot in slots if slot.active]

    created_flags = await asyncio.gather(
        *(store.create(SESSIONS, session.id, to_document(session)) for session in candidates)
    )

    created = [session for session, was_created in zip(candidates, created_flags) if was_created]
    if created:
        logger.info(
            "Materialized %s session(s) for week of %s",
            len(created),
            week_start.isoformat(),
        )
    return created
