"""Tests for async_commit_writer.py."""

import threading

from async_commit_writer import AsyncCommitWriter
from exceptions import EmptyCommitError


def test_sync_mode_commits_immediately():
    committed = []
    writer = AsyncCommitWriter(committed.append, sync_mode=True)

    writer.schedule({"1": {"total": 1}})

    assert committed == [{"1": {"total": 1}}]
    writer.shutdown()


def test_sync_mode_failure_is_logged_not_raised():
    def refuse(wire):
        raise EmptyCommitError("Empty commit order given, refusing to do anything")

    writer = AsyncCommitWriter(refuse, sync_mode=True)
    writer.schedule({})

    assert isinstance(writer.last_error, EmptyCommitError)


def test_background_commit_and_flush():
    committed = []
    writer = AsyncCommitWriter(committed.append)
    try:
        writer.schedule({"1": {"total": 1}})
        writer.flush()
        assert committed == [{"1": {"total": 1}}]
    finally:
        writer.shutdown()


def test_snapshot_is_copied_on_schedule():
    committed = []
    writer = AsyncCommitWriter(committed.append)
    try:
        wire = {"1": {"received": "[]"}}
        writer.schedule(wire)
        wire["1"]["received"] = "[1]"
        writer.flush()
        assert committed[-1] == {"1": {"received": "[]"}}
    finally:
        writer.shutdown()


def test_latest_pending_snapshot_wins():
    started = threading.Event()
    release = threading.Event()
    committed = []

    def slow_commit(wire):
        committed.append(wire)
        started.set()
        release.wait(timeout=5)

    writer = AsyncCommitWriter(slow_commit)
    try:
        writer.schedule({"v": 1})
        assert started.wait(timeout=5)
        # First commit is running; these two compete for the single pending slot
        writer.schedule({"v": 2})
        writer.schedule({"v": 3})
        release.set()
        writer.flush()
    finally:
        writer.shutdown()

    assert committed == [{"v": 1}, {"v": 3}]
    assert writer.superseded == 1


def test_shutdown_twice():
    writer = AsyncCommitWriter(lambda wire: None)
    writer.shutdown()
    writer.shutdown()


def test_callbacks_report_outcome():
    counts, failures = [], []

    def commit(wire):
        if not wire:
            raise EmptyCommitError("Empty commit order given, refusing to do anything")
        return 7

    writer = AsyncCommitWriter(commit, sync_mode=True,
                               on_committed=counts.append, on_failed=failures.append)
    writer.schedule({"1": {}})
    writer.schedule({})

    assert counts == [7]
    assert writer.committed_rows == 7
    assert len(failures) == 1 and writer.last_error is failures[0]

    writer.schedule({"1": {}})
    assert writer.last_error is None


def test_row_count_defaults_to_wire_size():
    writer = AsyncCommitWriter(lambda wire: None, sync_mode=True)
    writer.schedule({"1": {}, "2": {}})
    assert writer.committed_rows == 2


def test_unexpected_error_keeps_thread_alive():
    committed = []

    def flaky(wire):
        if wire.get("boom"):
            raise RuntimeError("disk on fire")
        committed.append(wire)

    writer = AsyncCommitWriter(flaky)
    try:
        writer.schedule({"boom": True})
        writer.flush()
        assert isinstance(writer.last_error, RuntimeError)

        writer.schedule({"1": {}})
        writer.flush()
        assert committed == [{"1": {}}]
        assert writer.idle
    finally:
        writer.shutdown()


def test_schedule_after_shutdown_is_dropped():
    committed = []
    writer = AsyncCommitWriter(committed.append, sync_mode=True)
    writer.shutdown()

    writer.schedule({"1": {}})

    assert committed == []
