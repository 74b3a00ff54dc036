"""Tests for backup/monitor.py and backup/resolver.py.

The remote provider is an in-memory fake; the local side is a real
tmp_path store.
"""

import asyncio

import pytest

from conftest import make_book, make_document, make_payload
from studio_sync.backup.models import (
    BackupRecord,
    Decision,
    Divergence,
    MonitorState,
)
from studio_sync.backup.monitor import BackupSyncMonitor
from studio_sync.backup.resolver import ConflictResolver, summarize_diff
from studio_sync.errors import (
    CorruptPayloadError,
    FetchError,
    StoreUnavailableError,
)
from studio_sync.history.repository import HistoryRepository
from studio_sync.history.store import SnapshotHistory
from studio_sync.restore.guard import RestoreGuard
from studio_sync.restore.pipeline import RestoreOrigin, RestorePipeline
from studio_sync.restore.signals import ReloadSignal
from studio_sync.snapshot.serializer import StateSerializer, parse_payload
from studio_sync.store.local import AUTO_BACKUP_ENABLED_KEY

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class FakeProvider:
    """In-memory BackupProvider."""

    def __init__(self, record: BackupRecord | None = None) -> None:
        self.record = record
        self.error: Exception | None = None
        self.fetch_calls: list[bool] = []
        self.pushed: list[str] = []

    def fetch_latest(self, force: bool = False) -> BackupRecord | None:
        self.fetch_calls.append(force)
        if self.error is not None:
            raise self.error
        return self.record

    def push(self, snapshot: str, content_timestamp: int) -> None:
        self.pushed.append(snapshot)


def _remote(content_ts: int, backup_ts: int | None = None) -> BackupRecord:
    return BackupRecord(
        content=make_payload(books=[make_book("remote", content_ts)]),
        content_timestamp=content_ts,
        backup_timestamp=backup_ts or content_ts,
    )


@pytest.fixture
def local(store):
    """Local store whose latest mutation timestamp is 100."""
    store.put_record("books", make_book("b1", 100))
    return store


@pytest.fixture
def pipeline(local):
    guard = RestoreGuard()
    history = SnapshotHistory(HistoryRepository(local), guard, 5)
    return RestorePipeline(StateSerializer(local), history, guard, ReloadSignal())


@pytest.fixture
def resolver(pipeline):
    return ConflictResolver(pipeline)


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def monitor(provider, local, resolver):
    return BackupSyncMonitor(provider, local, resolver)


# ---------------------------------------------------------------------------
# Divergence detection
# ---------------------------------------------------------------------------


class TestDivergenceDetection:
    async def test_equal_content_newer_backup_is_not_divergence(
        self, monitor, provider, resolver
    ):
        provider.record = _remote(100, backup_ts=500)
        result = await monitor.check()
        assert result.state is MonitorState.UP_TO_DATE
        assert result.backup_timestamp == 500
        assert resolver.pending is None

    async def test_strictly_newer_content_diverges(self, monitor, provider, resolver):
        provider.record = _remote(101)
        result = await monitor.check()
        assert result.state is MonitorState.DIVERGED
        assert monitor.state is MonitorState.DIVERGED
        assert resolver.pending.remote_timestamp == 101
        assert resolver.pending.local_timestamp == 100

    async def test_older_content_is_up_to_date(self, monitor, provider):
        provider.record = _remote(50)
        assert (await monitor.check()).state is MonitorState.UP_TO_DATE

    async def test_no_remote_backup(self, monitor):
        result = await monitor.check()
        assert result.state is MonitorState.UP_TO_DATE
        assert result.remote_timestamp is None

    async def test_monitor_never_writes(self, monitor, provider, local):
        provider.record = _remote(999)
        before = local.dump_all()
        await monitor.check()
        assert local.dump_all() == before


class TestCheckFailures:
    async def test_fetch_error_is_check_failed(self, monitor, provider):
        provider.error = FetchError("offline")
        result = await monitor.check()
        assert result.state is MonitorState.CHECK_FAILED
        assert result.error == "offline"
        assert monitor.last_result == result

    async def test_retry_after_failure(self, monitor, provider):
        provider.error = FetchError("offline")
        await monitor.check()
        provider.error = None
        provider.record = _remote(101)
        assert (await monitor.check()).state is MonitorState.DIVERGED

    async def test_store_failure_propagates_and_resets(self, monitor, local, monkeypatch):
        def _broken():
            raise StoreUnavailableError("unreadable")

        monkeypatch.setattr(local, "get_latest_update_timestamp", _broken)
        with pytest.raises(StoreUnavailableError):
            await monitor.check()
        assert monitor.state is MonitorState.IDLE


class TestSkipping:
    async def test_skipped_while_decision_pending(self, monitor, provider):
        provider.record = _remote(101)
        await monitor.check()
        result = await monitor.check()
        assert result.skipped is True
        assert result.state is MonitorState.DIVERGED
        assert len(provider.fetch_calls) == 1

    async def test_skipped_when_disabled(self, monitor, provider, local):
        local.put_setting(AUTO_BACKUP_ENABLED_KEY, False)
        result = await monitor.check()
        assert result.skipped is True
        assert provider.fetch_calls == []

    async def test_force_overrides_disabled(self, monitor, provider, local):
        local.put_setting(AUTO_BACKUP_ENABLED_KEY, False)
        result = await monitor.check(force=True)
        assert result.skipped is False
        assert provider.fetch_calls == [True]

    async def test_concurrent_check_skipped(self, monitor, provider):
        monitor.state = MonitorState.CHECKING
        result = await monitor.check()
        assert result.skipped is True
        assert provider.fetch_calls == []


class TestRunLoop:
    async def test_runs_until_stopped(self, monitor, provider):
        stop = asyncio.Event()
        task = asyncio.create_task(monitor.run(0.01, stop))
        await asyncio.sleep(0.2)
        stop.set()
        await asyncio.wait_for(task, timeout=1)
        assert len(provider.fetch_calls) >= 2

    async def test_store_errors_do_not_stop_loop(self, monitor, local, monkeypatch, caplog):
        calls = []

        def _broken():
            calls.append(1)
            raise StoreUnavailableError("unreadable")

        monkeypatch.setattr(local, "get_latest_update_timestamp", _broken)
        stop = asyncio.Event()
        task = asyncio.create_task(monitor.run(0.01, stop))
        await asyncio.sleep(0.2)
        stop.set()
        await asyncio.wait_for(task, timeout=1)
        assert len(calls) >= 2
        assert "Backup check aborted" in caplog.text

    async def test_unexpected_provider_error_does_not_stop_loop(
        self, monitor, provider, caplog
    ):
        provider.error = KeyError("download_url")
        stop = asyncio.Event()
        task = asyncio.create_task(monitor.run(0.01, stop))
        await asyncio.sleep(0.2)
        assert not task.done()
        stop.set()
        await asyncio.wait_for(task, timeout=1)
        assert len(provider.fetch_calls) >= 2
        assert "Unexpected error in backup check" in caplog.text
        assert monitor.state is MonitorState.IDLE


# ---------------------------------------------------------------------------
# Conflict resolution
# ---------------------------------------------------------------------------


class TestResolve:
    async def test_adopt_remote_restores_and_is_undoable(
        self, monitor, provider, resolver, local
    ):
        provider.record = _remote(101)
        await monitor.check()

        result = await resolver.resolve(Decision.ADOPT_REMOTE)

        assert result.origin is RestoreOrigin.REMOTE_BACKUP
        assert [b["id"] for b in local.all_records("books")] == ["remote"]
        assert resolver.pending is None
        assert monitor.state is MonitorState.IDLE

        await resolver.pipeline.undo()
        assert [b["id"] for b in local.all_records("books")] == ["b1"]

    async def test_keep_local_changes_nothing(self, monitor, provider, resolver, local):
        provider.record = _remote(101)
        await monitor.check()
        before = local.dump_all()

        assert await resolver.resolve(Decision.KEEP_LOCAL) is None

        assert local.dump_all() == before
        assert resolver.pending is None
        assert resolver.pipeline.history.state.undo_depth == 0

    async def test_declined_backup_not_offered_again(self, monitor, provider, resolver):
        provider.record = _remote(101)
        await monitor.check()
        await resolver.resolve("keep_local")

        assert (await monitor.check()).state is MonitorState.UP_TO_DATE

        provider.record = _remote(102)
        assert (await monitor.check()).state is MonitorState.DIVERGED

    async def test_other_backup_older_than_declined_is_offered(
        self, monitor, provider, resolver
    ):
        provider.record = _remote(200)
        await monitor.check()
        await resolver.resolve(Decision.KEEP_LOCAL)

        provider.record = _remote(150)
        result = await monitor.check()

        assert result.state is MonitorState.DIVERGED
        assert result.remote_timestamp == 150
        assert resolver.pending.remote_timestamp == 150

    async def test_declined_content_rewritten_later_is_offered(
        self, monitor, provider, resolver
    ):
        provider.record = _remote(200)
        await monitor.check()
        await resolver.resolve(Decision.KEEP_LOCAL)

        provider.record = _remote(200, backup_ts=900)
        assert (await monitor.check()).state is MonitorState.DIVERGED

    async def test_failed_adoption_still_dismisses(self, resolver):
        resolver.offer(
            Divergence(remote_snapshot="{corrupt", remote_timestamp=101, local_timestamp=100)
        )
        with pytest.raises(CorruptPayloadError):
            await resolver.resolve(Decision.ADOPT_REMOTE)
        assert resolver.pending is None

    async def test_nothing_pending(self, resolver):
        with pytest.raises(ValueError, match="No divergence"):
            await resolver.resolve(Decision.KEEP_LOCAL)

    async def test_invalid_decision(self, resolver):
        with pytest.raises(ValueError):
            await resolver.resolve("merge")

    def test_subscribe_sees_offers(self, resolver):
        seen = []
        resolver.subscribe(seen.append)
        divergence = Divergence(remote_snapshot="{}", remote_timestamp=2, local_timestamp=1)
        resolver.offer(divergence)
        resolver.dismiss()
        assert seen == [None, divergence, None]


class TestDiffSummary:
    async def test_nothing_pending(self, resolver):
        assert await resolver.diff_summary() is None

    async def test_summary_of_pending(self, resolver, local):
        remote = make_payload(
            books=[make_book("b1", 300), make_book("b9", 50, topic="Remote only")],
            documents=[make_document("d1", "b1", 300)],
        )
        resolver.offer(
            Divergence(remote_snapshot=remote, remote_timestamp=300, local_timestamp=100)
        )
        summary = await resolver.diff_summary()
        assert summary.local_book_count == 1
        assert summary.remote_book_count == 2
        assert summary.remote_doc_count == 1
        assert [b.title for b in summary.books_only_in_remote] == ["Remote only"]
        assert [b.id for b in summary.newer_in_remote] == ["b1"]
        assert summary.newer_in_local == []

    def test_summarize_diff_both_sides(self):
        local = parse_payload(
            make_payload(books=[make_book("a", 10), make_book("shared", 500)])
        )
        remote = parse_payload(
            make_payload(books=[make_book("shared", 400), make_book("z", 1)])
        )
        summary = summarize_diff(local, remote)
        assert [b.id for b in summary.books_only_in_local] == ["a"]
        assert [b.id for b in summary.books_only_in_remote] == ["z"]
        assert [b.id for b in summary.newer_in_local] == ["shared"]
        assert summary.newer_in_remote == []
