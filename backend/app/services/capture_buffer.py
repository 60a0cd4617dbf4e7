"""
Capture Buffer.

Client-side recorder for one candidate session. Editor callbacks push events
into an in-memory buffer without ever waiting on the network; a timer task
drains the buffer to a TimelineSink every AUTO_SAVE_INTERVAL.

- Focus changes are recorded immediately.
- Content changes are throttled into at most one CONTENT_SNAPSHOT per
  SNAPSHOT_INTERVAL.
- A failed or cancelled flush puts its batch back in front of the buffer
  and is retried on the next tick (or by the final flush in stop()). Batches keep their event ids across retries, so the
  store can drop the duplicates of a flush that actually landed.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Optional, Protocol

from app.core.config import settings
from app.core.logger import get_logger
from app.services.events import EventType, KeystrokeEvent, DELTA_TYPES, new_event, now_ms

logger = get_logger("capture_buffer")


class SinkError(Exception):
    """Transient transport/storage failure; the batch will be retried."""


class SessionClosedError(Exception):
    """The session no longer accepts writes (already submitted)."""


class TimelineSink(Protocol):
    async def append_events(self, token: str, events: list[KeystrokeEvent]) -> None: ...

    async def update_content(self, token: str, content: str) -> None: ...

    async def submit(self, token: str) -> None: ...


class CaptureBuffer:
    """Records one session's editor activity and ships it in batches."""

    def __init__(
        self,
        token: str,
        sink: TimelineSink,
        *,
        initial_content: str = "",
        snapshot_interval_ms: Optional[int] = None,
        auto_save_interval_ms: Optional[int] = None,
        max_buffer_size: Optional[int] = None,
        min_content_change: Optional[int] = None,
        clock: Optional[Callable[[], int]] = None,
        on_warning: Optional[Callable[[str], None]] = None,
    ):
        self.token = token
        self._sink = sink
        self._clock = clock or now_ms
        self._on_warning = on_warning

        self.snapshot_interval_ms = (
            settings.SNAPSHOT_INTERVAL_MS if snapshot_interval_ms is None else snapshot_interval_ms
        )
        self.auto_save_interval_ms = (
            settings.AUTO_SAVE_INTERVAL_MS if auto_save_interval_ms is None else auto_save_interval_ms
        )
        self.max_buffer_size = max_buffer_size or settings.EVENT_BUFFER_MAX_SIZE
        self.min_content_change = (
            settings.MIN_CONTENT_CHANGE_THRESHOLD if min_content_change is None else min_content_change
        )

        self._buffer: list[KeystrokeEvent] = []
        self._flush_lock = asyncio.Lock()
        self._timer_task: Optional[asyncio.Task] = None
        self._early_flush: Optional[asyncio.Task] = None

        self._focused = True
        self._closed = False
        self._content = initial_content
        self._saved_content = initial_content
        self._last_snapshot_at: Optional[int] = None
        self._last_snapshot_content = initial_content

    # ============== State ==============

    @property
    def pending(self) -> tuple[KeystrokeEvent, ...]:
        return tuple(self._buffer)

    @property
    def focused(self) -> bool:
        return self._focused

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def running(self) -> bool:
        return self._timer_task is not None and not self._timer_task.done()

    def mark_submitted(self) -> None:
        """Stop accepting events; later record_* calls are no-ops."""
        self._closed = True

    # ============== Recording ==============

    def _append(self, event: KeystrokeEvent) -> None:
        self._buffer.append(event)
        if len(self._buffer) >= self.max_buffer_size:
            self._schedule_flush()

    def record_focus_change(
        self,
        focused: bool,
        cursor_start: Optional[int] = None,
        cursor_end: Optional[int] = None,
    ) -> Optional[KeystrokeEvent]:
        if self._closed:
            return None
        self._focused = focused
        event = new_event(
            EventType.FOCUS_IN if focused else EventType.FOCUS_OUT,
            self._clock(),
            cursor_start=cursor_start,
            cursor_end=cursor_end,
            window_focus=focused,
        )
        self._append(event)
        return event

    def _content_changed(self, content: str) -> bool:
        if content == self._last_snapshot_content:
            return False
        if self.min_content_change <= 1:
            return True
        return abs(len(content) - len(self._last_snapshot_content)) >= self.min_content_change

    def record_content_change(self, new_content: str, cursor_pos: int) -> Optional[KeystrokeEvent]:
        """
        Note the editor's current document.

        Emits a CONTENT_SNAPSHOT only when SNAPSHOT_INTERVAL has elapsed since
        the previous one and the text actually changed; otherwise the change
        is only remembered for the next content autosave.
        """
        if self._closed:
            return None

        self._content = new_content

        now = self._clock()
        if self._last_snapshot_at is not None and now - self._last_snapshot_at < self.snapshot_interval_ms:
            return None
        if not self._content_changed(new_content):
            return None

        event = new_event(
            EventType.CONTENT_SNAPSHOT,
            now,
            cursor_start=cursor_pos,
            cursor_end=cursor_pos,
            content=new_content,
            window_focus=self._focused,
        )
        self._last_snapshot_at = now
        self._last_snapshot_content = new_content
        self._append(event)
        return event

    def record_edit(
        self,
        kind: EventType,
        cursor_start: Optional[int] = None,
        cursor_end: Optional[int] = None,
        content: Optional[str] = None,
    ) -> Optional[KeystrokeEvent]:
        """Record a delta event (typing, paste, ...) as timeline telemetry."""
        if kind not in DELTA_TYPES:
            raise ValueError(f"{kind} is not a delta event type")
        if self._closed:
            return None
        event = new_event(
            kind,
            self._clock(),
            cursor_start=cursor_start,
            cursor_end=cursor_end,
            content=content,
            window_focus=self._focused,
        )
        self._append(event)
        return event

    # ============== Flushing ==============

    def _warn(self, message: str) -> None:
        logger.warning(message)
        if self._on_warning is not None:
            self._on_warning(message)

    def _schedule_flush(self) -> None:
        if self._early_flush is not None and not self._early_flush.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop yet: the next timer tick picks the batch up
            return
        self._early_flush = loop.create_task(self.flush())

    async def flush(self) -> bool:
        """
        Drain the buffer to the sink, then autosave content if it changed.

        Returns True when everything was delivered. Never raises for
        transport failures.
        """
        async with self._flush_lock:
            # Swap first: events recorded while we await go to the fresh list
            batch, self._buffer = self._buffer, []
            delivered = True

            if batch:
                try:
                    await self._sink.append_events(self.token, batch)
                    logger.debug(f"Flushed {len(batch)} events for {self.token}")
                except SessionClosedError:
                    self._closed = True
                    logger.info(f"Session {self.token} is closed; dropping {len(batch)} events")
                    return False
                except SinkError as exc:
                    self._buffer[:0] = batch
                    delivered = False
                    self._warn(
                        f"Failed to save keystroke events ({exc}). "
                        "Your typing activity may not be recorded."
                    )
                except asyncio.CancelledError:
                    # Cancelled mid-send by stop(); the final flush resends it
                    self._buffer[:0] = batch
                    raise

            if self._content != self._saved_content:
                content = self._content
                try:
                    await self._sink.update_content(self.token, content)
                    self._saved_content = content
                except SessionClosedError:
                    self._closed = True
                    return False
                except SinkError as exc:
                    delivered = False
                    self._warn(f"Failed to autosave content ({exc})")

            return delivered

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.auto_save_interval_ms / 1000)
            await self.flush()

    # ============== Lifecycle ==============

    def start(self) -> None:
        """Start the autosave timer on the running event loop."""
        if self.running:
            return
        self._timer_task = asyncio.get_running_loop().create_task(self._run())
        logger.info(f"Capture started for {self.token}")

    async def _cancel_tasks(self) -> None:
        for task in (self._timer_task, self._early_flush):
            if task is None or task.done():
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._timer_task = None
        self._early_flush = None

    async def stop(self) -> bool:
        """Cancel the timer and flush the tail of the recording."""
        await self._cancel_tasks()
        delivered = await self.flush()
        logger.info(f"Capture stopped for {self.token}")
        return delivered

    async def submit(self) -> None:
        """
        Final flush, then submit the session.

        Raises SinkError / SessionClosedError from the submit call itself:
        unlike background saves, submitting is a blocking user action.
        """
        await self.stop()
        await self._sink.submit(self.token)
        self.mark_submitted()
        logger.info(f"Session {self.token} submitted")

    async def __aenter__(self) -> "CaptureBuffer":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()
