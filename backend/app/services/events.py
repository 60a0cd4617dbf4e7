"""
Keystroke event vocabulary.

Every observed editor action is recorded as one immutable KeystrokeEvent.
Optional fields are genuinely optional: an absent `content` is not the same
as an empty one, and reconstruction branches on that difference, so the
wire payload omits absent fields instead of filling them with defaults.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class EventType(str, Enum):
    FOCUS_IN = "FOCUS_IN"
    FOCUS_OUT = "FOCUS_OUT"
    CONTENT_SNAPSHOT = "CONTENT_SNAPSHOT"
    TYPING = "TYPING"
    DELETE = "DELETE"
    PASTE = "PASTE"
    COPY = "COPY"
    SELECTION_CHANGE = "SELECTION_CHANGE"


FOCUS_TYPES = frozenset({EventType.FOCUS_IN, EventType.FOCUS_OUT})

# Richer telemetry for the timeline view; not needed to rebuild the document
DELTA_TYPES = frozenset({
    EventType.TYPING,
    EventType.DELETE,
    EventType.PASTE,
    EventType.COPY,
    EventType.SELECTION_CHANGE,
})


def now_ms() -> int:
    """Current wall-clock time as epoch milliseconds."""
    return int(datetime.now(timezone.utc).timestamp() * 1000)


class KeystrokeEvent(BaseModel):
    """One recorded editor action."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    event_id: str = Field(default_factory=lambda: uuid.uuid4().hex, alias="eventId")
    type: EventType
    timestamp: int = Field(ge=0)  # epoch milliseconds
    cursor_start: Optional[int] = Field(default=None, ge=0, alias="cursorStart")
    cursor_end: Optional[int] = Field(default=None, ge=0, alias="cursorEnd")
    content: Optional[str] = None
    window_focus: bool = Field(default=True, alias="windowFocus")

    @field_validator("timestamp", mode="before")
    @classmethod
    def coerce_timestamp(cls, v: Any) -> Any:
        """Accept datetimes and ISO strings as sent by browser clients."""
        if isinstance(v, str) and not v.lstrip("-").isdigit():
            v = datetime.fromisoformat(v.replace("Z", "+00:00"))
        if isinstance(v, datetime):
            if v.tzinfo is None:
                v = v.replace(tzinfo=timezone.utc)
            return int(v.timestamp() * 1000)
        return v

    @property
    def is_focus_event(self) -> bool:
        return self.type in FOCUS_TYPES

    @property
    def is_snapshot(self) -> bool:
        return self.type == EventType.CONTENT_SNAPSHOT

    @property
    def is_delta(self) -> bool:
        return self.type in DELTA_TYPES

    def to_payload(self) -> dict[str, Any]:
        """Wire form; absent optional fields are left out entirely."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "KeystrokeEvent":
        return cls.model_validate(data)


def new_event(
    event_type: EventType,
    timestamp: Optional[int] = None,
    *,
    cursor_start: Optional[int] = None,
    cursor_end: Optional[int] = None,
    content: Optional[str] = None,
    window_focus: bool = True,
) -> KeystrokeEvent:
    """Build an event stamped with `timestamp` (defaults to now)."""
    return KeystrokeEvent(
        type=event_type,
        timestamp=now_ms() if timestamp is None else timestamp,
        cursor_start=cursor_start,
        cursor_end=cursor_end,
        content=content,
        window_focus=window_focus,
    )
