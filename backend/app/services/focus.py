"""
Focus-time accounting.

Window focus is the integrity signal of a session: how long the candidate
actually had the editor in front of them, and how often they left it.
Repeated FOCUS_IN or FOCUS_OUT events (a known capture glitch) are treated
as no-ops rather than as new transitions.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from app.services.events import EventType, KeystrokeEvent
from app.services.reconstruction import TimelineLike, as_timeline


@dataclass(frozen=True)
class FocusStats:
    duration_ms: int = 0
    total_unfocused_ms: int = 0
    focus_loss_count: int = 0
    focus_percentage: float = 100.0
    # (start, end) offsets in ms from the first event, one per focus loss
    unfocused_segments: tuple[tuple[int, int], ...] = ()


def focused_time_ms(events: Iterable[KeystrokeEvent], until_ms: Optional[int] = None) -> int:
    """
    Sum of focused intervals.

    Like `focus_stats`, the session counts as focused from its first event
    until a FOCUS_OUT. An interval still open at the end is counted up to
    `until_ms` (typically the submit time) when given.
    """
    total = 0
    focused_since: Optional[int] = None
    started = False

    for event in events:
        if not started:
            started = True
            focused_since = event.timestamp
        if event.type == EventType.FOCUS_IN:
            if focused_since is None:
                focused_since = event.timestamp
        elif event.type == EventType.FOCUS_OUT and focused_since is not None:
            total += max(event.timestamp - focused_since, 0)
            focused_since = None

    if focused_since is not None and until_ms is not None:
        total += max(until_ms - focused_since, 0)

    return total


def focus_stats(timeline: TimelineLike) -> FocusStats:
    """
    Focus-loss statistics over the recorded window [first event, last event].

    The session is assumed to start focused. A loss still open at the last
    event runs to the end of the window.
    """
    tl = as_timeline(timeline)
    duration = tl.duration
    if tl.is_empty:
        return FocusStats()

    start = tl.start
    focused = True
    lost_at = 0
    unfocused = 0
    losses = 0
    segments: list[tuple[int, int]] = []

    for event in tl.focus_events:
        offset = event.timestamp - start
        if event.type == EventType.FOCUS_OUT and focused:
            focused = False
            lost_at = offset
            losses += 1
        elif event.type == EventType.FOCUS_IN and not focused:
            focused = True
            unfocused += offset - lost_at
            segments.append((lost_at, offset))

    if not focused and lost_at < duration:
        unfocused += duration - lost_at
        segments.append((lost_at, duration))

    percentage = 100.0
    if duration > 0:
        percentage = round((duration - unfocused) / duration * 100, 1)

    return FocusStats(
        duration_ms=duration,
        total_unfocused_ms=unfocused,
        focus_loss_count=losses,
        focus_percentage=percentage,
        unfocused_segments=tuple(segments),
    )
