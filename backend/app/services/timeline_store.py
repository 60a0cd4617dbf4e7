"""
Timeline Store.

Durable, append-only event history per submission. Appends are idempotent on
the client-assigned event id so that a batch retried after a failed flush
never shows up twice.
"""

from sqlalchemy.orm import Session

from app.core.logger import get_logger
from app.models import KeystrokeEventRecord
from app.services.events import KeystrokeEvent, EventType

logger = get_logger("timeline_store")


def record_to_event(record: KeystrokeEventRecord) -> KeystrokeEvent:
    return KeystrokeEvent(
        event_id=record.event_id,
        type=EventType(record.type),
        timestamp=record.timestamp,
        cursor_start=record.cursor_start,
        cursor_end=record.cursor_end,
        content=record.content,
        window_focus=bool(record.window_focus),
    )


class TimelineStore:
    """Read/append contract over the keystroke_events table."""

    def __init__(self, db: Session):
        self.db = db

    def append(self, submission_id: int, events: list[KeystrokeEvent]) -> int:
        """
        Append a batch of events.

        Events already stored (same event_id) are skipped, as are duplicates
        inside the batch. The batch is written in timestamp order with ties
        kept in batch order, so insertion sequence matches timeline order.

        Returns the number of new rows.
        """
        if not events:
            return 0

        ids = {event.event_id for event in events}
        existing = {
            row[0]
            for row in self.db.query(KeystrokeEventRecord.event_id)
            .filter(
                KeystrokeEventRecord.submission_id == submission_id,
                KeystrokeEventRecord.event_id.in_(ids),
            )
            .all()
        }

        inserted = 0
        seen = set(existing)
        for event in sorted(events, key=lambda e: e.timestamp):
            if event.event_id in seen:
                continue
            seen.add(event.event_id)
            self.db.add(
                KeystrokeEventRecord(
                    submission_id=submission_id,
                    event_id=event.event_id,
                    type=event.type.value,
                    timestamp=event.timestamp,
                    cursor_start=event.cursor_start,
                    cursor_end=event.cursor_end,
                    content=event.content,
                    window_focus=event.window_focus,
                )
            )
            inserted += 1

        self.db.commit()

        skipped = len(events) - inserted
        if skipped:
            logger.info(f"Submission {submission_id}: skipped {skipped} already-stored events")
        return inserted

    def read_all(self, submission_id: int) -> list[KeystrokeEvent]:
        """All events of a submission, ascending by (timestamp, sequence)."""
        records = (
            self.db.query(KeystrokeEventRecord)
            .filter(KeystrokeEventRecord.submission_id == submission_id)
            .order_by(KeystrokeEventRecord.timestamp.asc(), KeystrokeEventRecord.sequence.asc())
            .all()
        )
        return [record_to_event(record) for record in records]

    def count(self, submission_id: int) -> int:
        return (
            self.db.query(KeystrokeEventRecord)
            .filter(KeystrokeEventRecord.submission_id == submission_id)
            .count()
        )
