from app.services.events import EventType, KeystrokeEvent, new_event, now_ms
from app.services.timeline_store import TimelineStore
from app.services.reconstruction import (
    PlaybackState,
    Timeline,
    state_at,
    state_at_index,
    state_at_offset,
    states_at,
)
from app.services.focus import FocusStats, focus_stats, focused_time_ms
from app.services.capture_buffer import CaptureBuffer, SinkError, SessionClosedError
from app.services.http_sink import HttpTimelineSink
from app.services.player import SessionPlayer, PlayerState, SPEED_PRESETS

__all__ = [
    "EventType",
    "KeystrokeEvent",
    "new_event",
    "now_ms",
    "TimelineStore",
    "PlaybackState",
    "Timeline",
    "state_at",
    "state_at_index",
    "state_at_offset",
    "states_at",
    "FocusStats",
    "focus_stats",
    "focused_time_ms",
    "CaptureBuffer",
    "SinkError",
    "SessionClosedError",
    "HttpTimelineSink",
    "SessionPlayer",
    "PlayerState",
    "SPEED_PRESETS",
]
