"""Tests for history/ -- bounded, persisted undo/redo stacks."""

import asyncio
from unittest.mock import MagicMock

import pytest

from studio_sync.errors import StoreUnavailableError, StoreWriteError
from studio_sync.history.models import HistoryState
from studio_sync.history.repository import REDO_KEY, UNDO_KEY, HistoryRepository
from studio_sync.history.store import SnapshotHistory
from studio_sync.restore.guard import RestoreGuard

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _repo(undo=None, redo=None) -> MagicMock:
    repo = MagicMock(spec=HistoryRepository)
    repo.load.return_value = (list(undo or []), list(redo or []))
    return repo


def _history(max_size: int = 5, repo=None, guard=None) -> SnapshotHistory:
    return SnapshotHistory(repo or _repo(), guard or RestoreGuard(), max_size)


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


class TestInit:
    async def test_loads_persisted_stacks(self):
        history = _history(repo=_repo(["a", "b"], ["c"]))
        await history.init()
        assert history.loaded
        assert history.state == HistoryState(
            can_undo=True, can_redo=True, undo_depth=2, redo_depth=1
        )

    async def test_concurrent_init_loads_once(self):
        repo = _repo(["a"])
        history = _history(repo=repo)
        await asyncio.gather(history.init(), history.init(), history.push("b"))
        repo.load.assert_called_once()

    async def test_load_failure_starts_empty(self):
        repo = _repo()
        repo.load.side_effect = StoreUnavailableError("unreadable")
        history = _history(repo=repo)
        states = []
        history.subscribe(states.append)

        await history.init()

        assert history.state == HistoryState()
        assert len(states) == 2

    async def test_oversized_persisted_stack_is_trimmed(self):
        history = _history(max_size=2, repo=_repo(["a", "b", "c"]))
        await history.init()
        assert history.state.undo_depth == 2
        assert await history.undo("now") == "c"

    def test_rejects_zero_capacity(self):
        with pytest.raises(ValueError, match="at least 1"):
            _history(max_size=0)


# ---------------------------------------------------------------------------
# Push
# ---------------------------------------------------------------------------


class TestPush:
    async def test_push_records_and_persists(self):
        repo = _repo()
        history = _history(repo=repo)
        assert await history.push("s1") is True
        repo.save.assert_called_with(["s1"], [])

    async def test_identical_consecutive_push_is_ignored(self):
        history = _history()
        await history.push("s1")
        await history.push("s2")
        await history.undo("s3")
        assert history.state.redo_depth == 1

        assert await history.push("s1") is False
        assert history.state.undo_depth == 1
        assert history.state.redo_depth == 1

    async def test_new_push_clears_redo(self):
        history = _history()
        await history.push("s1")
        await history.undo("s2")
        assert history.state.can_redo

        await history.push("s3")
        assert not history.state.can_redo

    async def test_oldest_entry_is_evicted(self):
        history = _history(max_size=3)
        for i in range(5):
            await history.push(f"s{i}")
        assert history.state.undo_depth == 3
        popped = [await history.undo("x") for _ in range(3)]
        assert popped == ["s4", "s3", "s2"]

    async def test_push_ignored_while_guard_held(self):
        guard = RestoreGuard()
        history = _history(guard=guard)
        await history.push("s1")
        with guard.hold():
            assert await history.push("s2") is False
        assert history.state.undo_depth == 1

    async def test_save_failure_keeps_memory_state(self, caplog):
        repo = _repo()
        repo.save.side_effect = StoreWriteError("disk full")
        history = _history(repo=repo)
        assert await history.push("s1") is True
        assert history.state.undo_depth == 1
        assert "Could not save history" in caplog.text


# ---------------------------------------------------------------------------
# Undo / redo
# ---------------------------------------------------------------------------


class TestTimeTravel:
    async def test_empty_stacks_return_none(self):
        history = _history()
        assert await history.undo("now") is None
        assert await history.redo("now") is None
        assert history.state == HistoryState()

    async def test_undo_then_redo_round_trip(self):
        """N undos then N redos walk back to the original state in order."""
        history = _history(max_size=10)
        states = [f"s{i}" for i in range(5)]
        for s in states[:-1]:
            await history.push(s)

        current = states[-1]
        for expected in reversed(states[:-1]):
            current = await history.undo(current)
            assert current == expected

        for expected in states[1:]:
            current = await history.redo(current)
            assert current == expected

        assert history.state.undo_depth == 4
        assert history.state.redo_depth == 0

    async def test_undo_only_touches_one_entry_per_stack(self):
        history = _history()
        for s in ("a", "b", "c"):
            await history.push(s)
        await history.undo("d")
        await history.undo("c")
        assert history.state.undo_depth == 1
        assert history.state.redo_depth == 2

        await history.redo("b")
        assert history.state.undo_depth == 2
        assert history.state.redo_depth == 1

    async def test_redo_stack_is_bounded(self):
        history = _history(max_size=2)
        for s in ("a", "b"):
            await history.push(s)
        history._redo = ["r1", "r2"]
        await history.undo("c")
        assert history.state.redo_depth == 2
        assert await history.redo("x") == "c"

    async def test_clear(self):
        repo = _repo(["a"], ["b"])
        history = _history(repo=repo)
        await history.clear()
        assert history.state == HistoryState()
        repo.save.assert_called_with([], [])


# ---------------------------------------------------------------------------
# Transactions and listeners
# ---------------------------------------------------------------------------


class TestTransaction:
    async def test_rollback_on_error(self):
        history = _history()
        await history.push("a")
        await history.push("b")

        with pytest.raises(RuntimeError):
            async with history.transaction():
                await history.undo("c")
                raise RuntimeError("apply failed")

        assert history.state.undo_depth == 2
        assert history.state.redo_depth == 0
        assert await history.undo("c") == "b"

    async def test_success_keeps_changes(self):
        history = _history()
        await history.push("a")
        async with history.transaction():
            await history.undo("b")
        assert history.state.redo_depth == 1


class TestSubscribe:
    async def test_listener_called_immediately_and_on_change(self):
        history = _history()
        await history.init()
        states = []
        unsubscribe = history.subscribe(states.append)
        await history.push("a")
        unsubscribe()
        await history.push("b")

        assert [s.undo_depth for s in states] == [0, 1]
        assert states[-1].can_undo is True


# ---------------------------------------------------------------------------
# Repository against a real store
# ---------------------------------------------------------------------------


class TestHistoryRepository:
    def test_round_trip(self, store):
        repo = HistoryRepository(store)
        repo.save(["a", "b"], ["c"])
        assert repo.load() == (["a", "b"], ["c"])

    def test_missing_entries_load_empty(self, store):
        assert HistoryRepository(store).load() == ([], [])

    def test_malformed_entry_loads_empty(self, store):
        store.put_history({UNDO_KEY: {"not": "a list"}, REDO_KEY: ["ok"]})
        assert HistoryRepository(store).load() == ([], ["ok"])

    async def test_persisted_history_survives_reopen(self, store):
        history = SnapshotHistory(HistoryRepository(store), RestoreGuard())
        await history.push("a")
        await history.push("b")

        reopened = SnapshotHistory(HistoryRepository(store), RestoreGuard())
        await reopened.init()
        assert reopened.state.undo_depth == 2
