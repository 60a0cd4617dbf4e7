"""
Reconstruction Engine.

Rebuilds the editor state (document, cursor, window focus) at any instant of
a recorded session. Reconstruction is snapshot based: CONTENT_SNAPSHOT events
are full-document checkpoints, so the state at an instant is simply the most
recent snapshot at or before it. Delta events (typing, paste, ...) are kept in
the timeline as telemetry but are not replayed.

Everything here is a pure function of (timeline, instant, final content).
Seeking backward or forward gives the same answer for the same instant, and
concurrent callers need no locking.
"""

from __future__ import annotations

from bisect import bisect_right
from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence, Union

from app.core.logger import get_logger
from app.services.events import EventType, KeystrokeEvent

logger = get_logger("reconstruction")


@dataclass(frozen=True)
class PlaybackState:
    content: str = ""
    cursor_position: int = 0
    focused: bool = True
    # True when `content` is the submitted document rather than a snapshot
    is_final_submission: bool = False
    # Position in Timeline.events of the snapshot used, None before the first one
    snapshot_index: Optional[int] = None


EMPTY_STATE = PlaybackState()


def _longest_ordered_run(timestamps: Sequence[int]) -> set[int]:
    """
    Indices of a longest non-decreasing subsequence of `timestamps`.

    Among equally long runs the one ending lowest wins, so a spike is
    dropped rather than the events after it.
    """
    tails: list[int] = []  # smallest last timestamp of a run of each length
    tail_index: list[int] = []
    parent = [-1] * len(timestamps)

    for i, ts in enumerate(timestamps):
        k = bisect_right(tails, ts)
        if k == len(tails):
            tails.append(ts)
            tail_index.append(i)
        else:
            tails[k] = ts
            tail_index[k] = i
        parent[i] = tail_index[k - 1] if k > 0 else -1

    kept: set[int] = set()
    i = tail_index[-1] if tail_index else -1
    while i != -1:
        kept.add(i)
        i = parent[i]
    return kept


@dataclass(frozen=True)
class Timeline:
    """
    Sanitized, ordered view of a session's events, built once per load.

    Malformed events are dropped here so that a single bad row can never
    block a review: snapshots without content, and the fewest events needed
    to make timestamps non-decreasing. A lone clock glitch, far in the
    future or the past, costs only that one event.
    """

    events: tuple[KeystrokeEvent, ...] = ()
    timestamps: tuple[int, ...] = field(default=(), repr=False)
    snapshot_positions: tuple[int, ...] = field(default=(), repr=False)
    focus_positions: tuple[int, ...] = field(default=(), repr=False)
    skipped: int = 0

    @classmethod
    def from_events(cls, events: Iterable[KeystrokeEvent]) -> "Timeline":
        candidates: list[KeystrokeEvent] = []
        skipped = 0

        for event in events:
            if event.is_snapshot and event.content is None:
                logger.warning(f"Skipping snapshot {event.event_id} without content")
                skipped += 1
                continue
            candidates.append(event)

        ordered = _longest_ordered_run([e.timestamp for e in candidates])
        kept: list[KeystrokeEvent] = []
        for i, event in enumerate(candidates):
            if i not in ordered:
                logger.warning(f"Skipping out-of-order event {event.event_id} ({event.timestamp})")
                skipped += 1
                continue
            kept.append(event)

        return cls(
            events=tuple(kept),
            timestamps=tuple(e.timestamp for e in kept),
            snapshot_positions=tuple(i for i, e in enumerate(kept) if e.is_snapshot),
            focus_positions=tuple(i for i, e in enumerate(kept) if e.is_focus_event),
            skipped=skipped,
        )

    @property
    def is_empty(self) -> bool:
        return not self.events

    @property
    def start(self) -> Optional[int]:
        return self.timestamps[0] if self.timestamps else None

    @property
    def end(self) -> Optional[int]:
        return self.timestamps[-1] if self.timestamps else None

    @property
    def duration(self) -> int:
        if not self.timestamps:
            return 0
        return max(self.timestamps[-1] - self.timestamps[0], 0)

    @property
    def snapshots(self) -> list[KeystrokeEvent]:
        return [self.events[i] for i in self.snapshot_positions]

    @property
    def focus_events(self) -> list[KeystrokeEvent]:
        return [self.events[i] for i in self.focus_positions]

    def position_at(self, instant: int) -> int:
        """Index of the last event with timestamp <= instant, or -1."""
        return bisect_right(self.timestamps, instant) - 1


TimelineLike = Union[Timeline, Sequence[KeystrokeEvent]]


def as_timeline(timeline: TimelineLike) -> Timeline:
    if isinstance(timeline, Timeline):
        return timeline
    return Timeline.from_events(timeline)


def _last_at_or_before(positions: Sequence[int], position: int) -> Optional[int]:
    i = bisect_right(positions, position) - 1
    return positions[i] if i >= 0 else None


def _focus_at(timeline: Timeline, position: int) -> bool:
    focus_pos = _last_at_or_before(timeline.focus_positions, position)
    if focus_pos is None:
        # Sessions are assumed to start focused
        return True
    return timeline.events[focus_pos].type == EventType.FOCUS_IN


def _resolve(
    timeline: Timeline,
    position: int,
    at_end: bool,
    final_content: Optional[str],
) -> PlaybackState:
    focused = _focus_at(timeline, position)

    # The last edits before submit may never have been snapshotted
    if at_end and final_content is not None:
        return PlaybackState(
            content=final_content,
            cursor_position=len(final_content),
            focused=focused,
            is_final_submission=True,
        )

    snapshot_pos = _last_at_or_before(timeline.snapshot_positions, position)
    if snapshot_pos is None:
        return PlaybackState(focused=focused)

    snapshot = timeline.events[snapshot_pos]
    content = snapshot.content or ""
    cursor = snapshot.cursor_start if snapshot.cursor_start is not None else len(content)
    return PlaybackState(
        content=content,
        cursor_position=min(cursor, len(content)),
        focused=focused,
        snapshot_index=snapshot_pos,
    )


def state_at(
    timeline: TimelineLike,
    target_instant: int,
    final_content: Optional[str] = None,
) -> PlaybackState:
    """
    Editor state at an absolute instant (epoch ms).

    At or past the last recorded event the submitted `final_content` wins
    when given. Otherwise the latest snapshot at or before the instant is
    used (ties go to the later-recorded event); before any snapshot the
    document is empty. Focus follows the latest FOCUS_IN/FOCUS_OUT at or
    before the instant, defaulting to focused.
    """
    tl = as_timeline(timeline)
    if tl.is_empty:
        return EMPTY_STATE

    position = tl.position_at(target_instant)
    at_end = target_instant >= tl.end
    return _resolve(tl, position, at_end, final_content)


def state_at_index(
    timeline: TimelineLike,
    index: int,
    final_content: Optional[str] = None,
) -> PlaybackState:
    """Editor state right after event `index` was applied; -1 is the session start."""
    tl = as_timeline(timeline)
    if tl.is_empty:
        return EMPTY_STATE

    position = max(-1, min(index, len(tl.events) - 1))
    at_end = position == len(tl.events) - 1
    return _resolve(tl, position, at_end, final_content)


def state_at_offset(
    timeline: TimelineLike,
    offset_ms: int,
    final_content: Optional[str] = None,
) -> PlaybackState:
    """Editor state `offset_ms` after the first recorded event."""
    tl = as_timeline(timeline)
    if tl.is_empty:
        return EMPTY_STATE
    return state_at(tl, tl.start + offset_ms, final_content)


def states_at(
    timeline: TimelineLike,
    instants: Iterable[int],
    final_content: Optional[str] = None,
) -> list[PlaybackState]:
    """Batch form of state_at, e.g. for pre-rendering scrubber thumbnails."""
    tl = as_timeline(timeline)
    return [state_at(tl, instant, final_content) for instant in instants]
