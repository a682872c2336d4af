from __future__ import annotations

from typing import Callable, List, Tuple

import pytest

from themeagent.memory.files import make_file_record
from themeagent.memory.schema import FileRecord
from themeagent.theme_map.scheduler import ReindexScheduler


class FakeTimer:
    def __init__(self, delay: float, callback: Callable[[], None]) -> None:
        self.delay = delay
        self.callback = callback
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        self.callback()


class TimerLog:
    def __init__(self) -> None:
        self.timers: List[FakeTimer] = []

    def __call__(self, delay: float, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(delay, callback)
        self.timers.append(timer)
        return timer


def _scheduler(calls: List[Tuple[str, List[str]]], timers: TimerLog) -> ReindexScheduler:
    def on_flush(project_id: str, files: List[FileRecord]) -> None:
        calls.append((project_id, [file.path for file in files]))

    return ReindexScheduler(on_flush, debounce_seconds=2.0, timer_factory=timers)


def test_edits_within_window_coalesce_into_one_flush() -> None:
    calls: List[Tuple[str, List[str]]] = []
    timers = TimerLog()
    scheduler = _scheduler(calls, timers)

    scheduler.mark_dirty("demo", make_file_record("assets/a.css", ".a {}"))
    scheduler.mark_dirty("demo", make_file_record("assets/b.css", ".b {}"))
    scheduler.mark_dirty("demo", make_file_record("assets/a.css", ".a { color: red; }"))

    assert len(timers.timers) == 3
    assert timers.timers[0].cancelled and timers.timers[1].cancelled
    assert timers.timers[2].delay == 2.0
    assert scheduler.pending("demo") == ["assets/a.css", "assets/b.css"]

    timers.timers[2].fire()

    assert calls == [("demo", ["assets/a.css", "assets/b.css"])]
    assert scheduler.pending("demo") == []


def test_unchanged_content_is_not_flushed_twice() -> None:
    calls: List[Tuple[str, List[str]]] = []
    scheduler = _scheduler(calls, TimerLog())
    record = make_file_record("assets/a.css", ".a {}")

    scheduler.mark_dirty("demo", record)
    assert scheduler.flush("demo") == ["assets/a.css"]
    scheduler.mark_dirty("demo", make_file_record("assets/a.css", ".a {}"))

    assert scheduler.flush("demo") == []
    assert len(calls) == 1


def test_edits_during_flush_wait_for_the_next_window() -> None:
    calls: List[Tuple[str, List[str]]] = []
    timers = TimerLog()
    holder: List[ReindexScheduler] = []

    def on_flush(project_id: str, files: List[FileRecord]) -> None:
        calls.append((project_id, [file.path for file in files]))
        scheduler = holder[0]
        assert scheduler.is_flushing(project_id)
        if len(calls) == 1:
            scheduler.mark_dirty(project_id, make_file_record("assets/late.css", ".late {}"))

    scheduler = ReindexScheduler(on_flush, timer_factory=timers)
    holder.append(scheduler)
    scheduler.mark_dirty("demo", make_file_record("assets/a.css", ".a {}"))

    scheduler.flush("demo")

    assert calls == [("demo", ["assets/a.css"])]
    assert scheduler.pending("demo") == ["assets/late.css"]
    assert not scheduler.is_flushing("demo")
    timers.timers[-1].fire()
    assert calls[-1] == ("demo", ["assets/late.css"])


def test_failed_flush_requeues_files() -> None:
    def on_flush(project_id: str, files: List[FileRecord]) -> None:
        raise RuntimeError("disk full")

    scheduler = ReindexScheduler(on_flush, timer_factory=TimerLog())
    scheduler.mark_dirty("demo", make_file_record("assets/a.css", ".a {}"))

    with pytest.raises(RuntimeError):
        scheduler.flush("demo")

    assert scheduler.pending("demo") == ["assets/a.css"]
    assert not scheduler.is_flushing("demo")


def test_timer_failures_are_logged_not_raised(caplog: pytest.LogCaptureFixture) -> None:
    def on_flush(project_id: str, files: List[FileRecord]) -> None:
        raise RuntimeError("boom")

    timers = TimerLog()
    scheduler = ReindexScheduler(on_flush, timer_factory=timers)
    scheduler.mark_dirty("demo", make_file_record("assets/a.css", ".a {}"))

    timers.timers[0].fire()

    assert "Debounced reindex failed for demo" in caplog.text


def test_cancel_stops_pending_timers() -> None:
    timers = TimerLog()
    scheduler = ReindexScheduler(lambda project_id, files: None, timer_factory=timers)
    scheduler.mark_dirty("demo", make_file_record("assets/a.css", ".a {}"))

    scheduler.cancel()

    assert timers.timers[0].cancelled
    assert scheduler.flush("other") == []
