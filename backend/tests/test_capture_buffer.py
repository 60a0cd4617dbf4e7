import asyncio
from datetime import datetime, timedelta

import pytest

from app.services import submission_service
from app.services.capture_buffer import CaptureBuffer, SessionClosedError, SinkError
from app.services.events import EventType
from app.services.timeline_store import TimelineStore


class FakeClock:
    def __init__(self, now=0):
        self.now = now

    def __call__(self):
        return self.now


class FakeSink:
    """Records every call; `fail_appends` failures are raised before succeeding."""

    def __init__(self, fail_appends=0, closed=False):
        self.batches = []
        self.contents = []
        self.submitted = []
        self.fail_appends = fail_appends
        self.closed = closed

    async def append_events(self, token, events):
        if self.closed:
            raise SessionClosedError("Submission already submitted")
        if self.fail_appends:
            self.fail_appends -= 1
            raise SinkError("connection reset")
        self.batches.append(list(events))

    async def update_content(self, token, content):
        if self.closed:
            raise SessionClosedError("Submission already submitted")
        self.contents.append(content)

    async def submit(self, token):
        self.submitted.append(token)

    @property
    def events(self):
        return [event for batch in self.batches for event in batch]


def make_buffer(sink=None, clock=None, token="tok", **kwargs):
    kwargs.setdefault("snapshot_interval_ms", 1000)
    kwargs.setdefault("auto_save_interval_ms", 5000)
    kwargs.setdefault("max_buffer_size", 100)
    return CaptureBuffer(token, sink or FakeSink(), clock=clock or FakeClock(), **kwargs)


class TestSnapshotThrottle:
    def test_burst_inside_one_interval_emits_once(self):
        clock = FakeClock()
        buffer = make_buffer(clock=clock)

        text = ""
        for t in range(100, 1001, 100):
            clock.now = t
            text += "x"
            buffer.record_content_change(text, len(text))

        snapshots = [e for e in buffer.pending if e.type == EventType.CONTENT_SNAPSHOT]
        assert len(snapshots) == 1
        assert snapshots[0].timestamp == 100
        assert snapshots[0].content == "x"

        clock.now = 1100
        buffer.record_content_change(text + "y", len(text) + 1)
        assert len(buffer.pending) == 2
        assert buffer.pending[-1].content == text + "y"

    def test_unchanged_content_not_snapshotted(self):
        clock = FakeClock(0)
        buffer = make_buffer(clock=clock)

        buffer.record_content_change("a", 1)
        clock.now = 5000
        assert buffer.record_content_change("a", 1) is None
        assert len(buffer.pending) == 1

    def test_initial_content_counts_as_known(self):
        buffer = make_buffer(initial_content="def f(): pass")
        assert buffer.record_content_change("def f(): pass", 3) is None

    def test_snapshot_carries_cursor_and_focus(self):
        clock = FakeClock(0)
        buffer = make_buffer(clock=clock)

        buffer.record_focus_change(False)
        clock.now = 10
        event = buffer.record_content_change("abc", 2)

        assert event.cursor_start == 2
        assert event.cursor_end == 2
        assert event.window_focus is False

    def test_min_change_threshold(self):
        clock = FakeClock(0)
        buffer = make_buffer(clock=clock, min_content_change=3)

        buffer.record_content_change("abc", 3)
        clock.now = 2000
        assert buffer.record_content_change("abcd", 4) is None
        clock.now = 4000
        assert buffer.record_content_change("abcdef", 6) is not None


class TestRecording:
    def test_focus_changes_recorded_immediately(self):
        clock = FakeClock(0)
        buffer = make_buffer(clock=clock)

        buffer.record_content_change("a", 1)
        clock.now = 10
        buffer.record_focus_change(False)
        clock.now = 20
        buffer.record_focus_change(True)

        assert [e.type for e in buffer.pending] == [
            EventType.CONTENT_SNAPSHOT,
            EventType.FOCUS_OUT,
            EventType.FOCUS_IN,
        ]
        assert buffer.pending[1].window_focus is False
        assert buffer.focused is True

    def test_record_edit_accepts_only_deltas(self):
        buffer = make_buffer()

        event = buffer.record_edit(EventType.PASTE, cursor_start=0, content="import os")
        assert event.type == EventType.PASTE

        with pytest.raises(ValueError):
            buffer.record_edit(EventType.FOCUS_IN)

    def test_closed_buffer_ignores_events(self):
        buffer = make_buffer()
        buffer.mark_submitted()

        assert buffer.record_focus_change(False) is None
        assert buffer.record_content_change("late", 4) is None
        assert buffer.record_edit(EventType.TYPING, content="x") is None
        assert buffer.pending == ()


class TestFlush:
    def test_flush_drains_buffer_and_saves_content(self):
        sink = FakeSink()
        buffer = make_buffer(sink)
        buffer.record_focus_change(False)
        buffer.record_content_change("print(1)", 8)

        assert asyncio.run(buffer.flush()) is True
        assert len(sink.events) == 2
        assert sink.contents == ["print(1)"]
        assert buffer.pending == ()

    def test_content_saved_even_without_snapshot(self):
        clock = FakeClock(0)
        sink = FakeSink()
        buffer = make_buffer(sink, clock=clock)

        buffer.record_content_change("a", 1)
        clock.now = 10
        buffer.record_content_change("ab", 2)
        asyncio.run(buffer.flush())

        assert [e.content for e in sink.events] == ["a"]
        assert sink.contents == ["ab"]

    def test_content_not_resaved_when_unchanged(self):
        sink = FakeSink()
        buffer = make_buffer(sink)
        buffer.record_content_change("a", 1)

        async def run():
            await buffer.flush()
            await buffer.flush()

        asyncio.run(run())
        assert sink.contents == ["a"]

    def test_failed_batch_requeued_in_front(self):
        clock = FakeClock(0)
        sink = FakeSink(fail_appends=1)
        warnings = []
        buffer = make_buffer(sink, clock=clock, on_warning=warnings.append)

        first = buffer.record_focus_change(False)

        async def run():
            delivered = await buffer.flush()
            clock.now = 10
            buffer.record_focus_change(True)
            return delivered

        assert asyncio.run(run()) is False
        assert warnings
        assert [e.event_id for e in buffer.pending][0] == first.event_id
        assert len(buffer.pending) == 2

        assert asyncio.run(buffer.flush()) is True
        assert [e.type for e in sink.events] == [EventType.FOCUS_OUT, EventType.FOCUS_IN]

    def test_closed_session_drops_batch(self):
        sink = FakeSink(closed=True)
        buffer = make_buffer(sink)
        buffer.record_focus_change(False)

        assert asyncio.run(buffer.flush()) is False
        assert buffer.closed is True
        assert buffer.pending == ()
        assert buffer.record_focus_change(True) is None

    def test_full_buffer_flushes_early(self):
        sink = FakeSink()
        buffer = make_buffer(sink, max_buffer_size=3)

        async def run():
            for focused in (False, True, False):
                buffer.record_focus_change(focused)
            await asyncio.sleep(0)
            await asyncio.sleep(0)

        asyncio.run(run())
        assert len(sink.batches) == 1
        assert len(sink.batches[0]) == 3


class RetryingStoreSink:
    """Writes to a real store, then fails the first call as if the response were lost."""

    def __init__(self, store, submission_id):
        self.store = store
        self.submission_id = submission_id
        self.calls = 0

    async def append_events(self, token, events):
        self.calls += 1
        self.store.append(self.submission_id, events)
        if self.calls == 1:
            raise SinkError("timeout waiting for response")

    async def update_content(self, token, content):
        pass

    async def submit(self, token):
        pass


def test_retry_after_lost_response_does_not_duplicate(db, candidate):
    store = TimelineStore(db)
    sid = candidate.submission.id
    sink = RetryingStoreSink(store, sid)
    clock = FakeClock(1000)
    buffer = make_buffer(sink, clock=clock)

    buffer.record_content_change("a", 1)
    clock.now = 2000
    buffer.record_focus_change(False)

    async def run():
        assert await buffer.flush() is False
        clock.now = 3000
        buffer.record_focus_change(True)
        assert await buffer.flush() is True

    asyncio.run(run())

    stored = store.read_all(sid)
    assert [e.timestamp for e in stored] == [1000, 2000, 3000]
    assert len({e.event_id for e in stored}) == 3


class TestLifecycle:
    def test_timer_flushes_periodically(self):
        sink = FakeSink()
        buffer = make_buffer(sink, auto_save_interval_ms=10)

        async def run():
            buffer.start()
            assert buffer.running
            buffer.record_focus_change(False)
            await asyncio.sleep(0.05)
            await buffer.stop()

        asyncio.run(run())
        assert len(sink.events) == 1
        assert not buffer.running

    def test_stop_flushes_tail(self):
        sink = FakeSink()
        buffer = make_buffer(sink)

        async def run():
            async with buffer:
                buffer.record_content_change("x = 1", 5)

        asyncio.run(run())
        assert [e.content for e in sink.events] == ["x = 1"]
        assert sink.contents == ["x = 1"]

    def test_submit_flushes_then_submits(self):
        sink = FakeSink()
        buffer = make_buffer(sink)

        async def run():
            buffer.start()
            buffer.record_content_change("done", 4)
            await buffer.submit()

        asyncio.run(run())
        assert len(sink.events) == 1
        assert sink.submitted == ["tok"]
        assert buffer.closed is True
        assert buffer.record_focus_change(False) is None


class StoreSink:
    """Writes straight into a TimelineStore, as the session API does."""

    def __init__(self, db):
        self.db = db

    async def append_events(self, token, events):
        submission_service.append_events(self.db, token, events)

    async def update_content(self, token, content):
        submission_service.update_content(self.db, token, content)

    async def submit(self, token):
        pass


def test_always_focused_session_counts_full_time(db, candidate):
    clock = FakeClock(1000)
    buffer = make_buffer(StoreSink(db), clock=clock, token=candidate.token)

    async def run():
        text = ""
        for second in range(1, 61):
            clock.now = second * 1000
            text += "x"
            buffer.record_content_change(text, len(text))
        await buffer.stop()

    asyncio.run(run())

    submitted_at = datetime(1970, 1, 1) + timedelta(seconds=61)
    submission = submission_service.submit(db, candidate.token, now=submitted_at)

    assert submission.total_time_spent == 60


class BlockingSink(FakeSink):
    """The first append hangs until cancelled; later ones succeed."""

    def __init__(self):
        super().__init__()
        self.entered = None
        self.release = None

    async def append_events(self, token, events):
        if not self.entered.is_set():
            self.entered.set()
            await self.release.wait()
        await super().append_events(token, events)


def test_stop_during_timer_flush_keeps_batch():
    sink = BlockingSink()
    buffer = make_buffer(sink, auto_save_interval_ms=10)

    async def run():
        sink.entered = asyncio.Event()
        sink.release = asyncio.Event()
        buffer.start()
        buffer.record_focus_change(False)
        await asyncio.wait_for(sink.entered.wait(), timeout=1)

        await buffer.stop()
        sink.release.set()

    asyncio.run(run())

    assert [e.type for e in sink.events] == [EventType.FOCUS_OUT]
    assert buffer.pending == ()
