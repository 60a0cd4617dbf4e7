"""
Session Clock / Player.

Drives the Reconstruction Engine over wall-clock time for keystroke
playback. Playback time is measured in ms from the first recorded event and
runs from 0 to `total_duration`. The player can be ticked manually
(`tick()` / `advance()`) or by its own asyncio driver task while playing.
"""

from __future__ import annotations

import asyncio
import time
from enum import Enum
from typing import Callable, Optional

from app.core.config import settings
from app.core.logger import get_logger
from app.services.focus import FocusStats, focus_stats
from app.services.reconstruction import (
    EMPTY_STATE,
    PlaybackState,
    TimelineLike,
    as_timeline,
    state_at,
)

logger = get_logger("player")

SPEED_PRESETS: tuple[float, ...] = tuple(settings.PLAYBACK_SPEED_OPTIONS)


class PlayerState(str, Enum):
    STOPPED = "STOPPED"
    PLAYING = "PLAYING"
    SCRUBBING = "SCRUBBING"


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


def _validate_speed(speed: float) -> float:
    if speed <= 0:
        raise ValueError(f"Playback speed must be positive, got {speed}")
    return float(speed)


class SessionPlayer:
    """Play / pause / seek / reset over one recorded session."""

    def __init__(
        self,
        timeline: TimelineLike,
        final_content: Optional[str] = None,
        *,
        speed: Optional[float] = None,
        tick_ms: Optional[int] = None,
        clock: Optional[Callable[[], float]] = None,
        on_update: Optional[Callable[[PlaybackState], None]] = None,
    ):
        self.timeline = as_timeline(timeline)
        self.final_content = final_content
        self.tick_ms = tick_ms or settings.PLAYBACK_TICK_MS
        self.total_duration = self.timeline.duration

        # Timeline-global, so computed once per load rather than per tick
        self.focus_stats: FocusStats = focus_stats(self.timeline)

        self._clock = clock or _monotonic_ms
        self._on_update = on_update
        self._speed = _validate_speed(settings.DEFAULT_PLAYBACK_SPEED if speed is None else speed)
        self._status = PlayerState.STOPPED
        self._playback_time = 0.0
        self._last_tick: Optional[float] = None
        self._driver: Optional[asyncio.Task] = None
        self._state = self._recompute()

    # ============== Read-only state ==============

    @property
    def status(self) -> PlayerState:
        return self._status

    @property
    def is_playing(self) -> bool:
        return self._status is PlayerState.PLAYING

    @property
    def playback_time(self) -> float:
        return self._playback_time

    @property
    def speed(self) -> float:
        return self._speed

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def controls_enabled(self) -> bool:
        return not self.timeline.is_empty

    @property
    def is_showing_final_submission(self) -> bool:
        return self._state.is_final_submission

    # ============== Internals ==============

    def _recompute(self) -> PlaybackState:
        if self.timeline.is_empty:
            state = EMPTY_STATE
        else:
            target = self.timeline.start + int(self._playback_time)
            state = state_at(self.timeline, target, self.final_content)
        self._state = state
        if self._on_update is not None:
            self._on_update(state)
        return state

    def _start_driver(self) -> None:
        if self._driver is not None and not self._driver.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No event loop: caller drives the player with tick()
            return
        self._driver = loop.create_task(self._run())

    def _stop_driver(self) -> None:
        if self._driver is not None and not self._driver.done():
            self._driver.cancel()
        self._driver = None

    async def _run(self) -> None:
        while self._status is PlayerState.PLAYING:
            await asyncio.sleep(self.tick_ms / 1000)
            try:
                self.tick()
            except Exception:
                logger.exception("Playback update failed; stopping the player")
                self._status = PlayerState.STOPPED
                self._last_tick = None
                self._driver = None
                return

    # ============== Controls ==============

    def play(self) -> bool:
        """Start advancing playback; returns False when controls are disabled."""
        if not self.controls_enabled:
            logger.info("Playback requested on an empty timeline; ignoring")
            return False
        if self._status is PlayerState.PLAYING:
            return True

        if self._playback_time >= self.total_duration:
            self._playback_time = 0.0
            self._recompute()

        self._status = PlayerState.PLAYING
        self._last_tick = self._clock()
        self._start_driver()
        return True

    def pause(self) -> None:
        if self._status is not PlayerState.PLAYING:
            return
        self.tick()
        self._status = PlayerState.STOPPED
        self._last_tick = None
        self._stop_driver()

    def advance(self, real_elapsed_ms: float) -> PlaybackState:
        """Move playback forward by `real_elapsed_ms` of wall time at the current speed."""
        if self._status is not PlayerState.PLAYING:
            return self._state

        self._playback_time += max(real_elapsed_ms, 0) * self._speed
        if self._playback_time >= self.total_duration:
            self._playback_time = float(self.total_duration)
            self._status = PlayerState.STOPPED
            self._last_tick = None
        return self._recompute()

    def tick(self) -> PlaybackState:
        """Advance by the wall time elapsed since the previous tick."""
        if self._status is not PlayerState.PLAYING or self._last_tick is None:
            return self._state
        now = self._clock()
        elapsed = now - self._last_tick
        self._last_tick = now
        return self.advance(elapsed)

    def seek(self, time_ms: float) -> PlaybackState:
        """Jump to `time_ms` (clamped to [0, total_duration]); valid in any state."""
        previous = self._status
        self._status = PlayerState.SCRUBBING
        self._playback_time = float(min(max(time_ms, 0), self.total_duration))
        state = self._recompute()
        self._status = previous
        if previous is PlayerState.PLAYING:
            # Elapsed time before the seek must not be applied after it
            self._last_tick = self._clock()
        return state

    def skip(self, delta_ms: float) -> PlaybackState:
        return self.seek(self._playback_time + delta_ms)

    def reset(self) -> PlaybackState:
        return self.seek(0)

    def set_speed(self, speed: float) -> None:
        """Change the rate of future advancement without moving playback time."""
        speed = _validate_speed(speed)
        if self._status is PlayerState.PLAYING:
            # Settle time elapsed so far at the old rate
            self.tick()
        self._speed = speed

    async def close(self) -> None:
        """Stop playback and wait for the driver task to finish."""
        self._status = PlayerState.STOPPED
        self._last_tick = None
        driver, self._driver = self._driver, None
        if driver is not None and not driver.done():
            driver.cancel()
            try:
                await driver
            except asyncio.CancelledError:
                pass

    async def __aenter__(self) -> "SessionPlayer":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
