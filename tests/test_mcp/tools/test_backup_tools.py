"""Tests for the backup_* MCP tools.

The Studio is real; its RemoteBackupClient is a MagicMock.
"""

import mcp.types as types
import pytest

from conftest import make_book, make_payload
from studio_sync.backup.models import BackupRecord, ServerBackup
from studio_sync.errors import FetchError
from studio_sync.mcp.tools import ALL_SPECS, BACKUP_TOOLS, ToolRegistry


@pytest.fixture
def registry():
    return ToolRegistry(ALL_SPECS)


def _text(result: types.CallToolResult) -> str:
    return result.content[0].text


def test_tool_names():
    assert [t.name for t in BACKUP_TOOLS] == [
        "backup_check",
        "backup_push",
        "backup_status",
        "backup_list",
        "backup_restore",
        "backup_enable",
    ]


@pytest.mark.parametrize(
    "name, args",
    [
        ("backup_check", {}),
        ("backup_push", {}),
        ("backup_status", {}),
        ("backup_list", {}),
        ("backup_restore", {"backup_id": "daily_2024-05-01.json"}),
        ("backup_enable", {"enabled": True}),
    ],
)
async def test_not_configured(registry, studio, name, args):
    result = await registry.call_tool(name, args, studio)
    assert result.isError
    assert "not_configured" in _text(result)
    assert "STUDIO_BACKUP_URL" in _text(result)


class TestBackupCheck:
    async def test_up_to_date(self, registry, backup_studio):
        result = await registry.call_tool("backup_check", {}, backup_studio)
        assert _text(result).startswith("Local state is up to date.")
        assert result.structuredContent["state"] == "up_to_date"

    async def test_newer_remote_becomes_conflict(self, registry, backup_studio):
        backup_studio.store.put_record("books", make_book("b1", 100))
        backup_studio.backup_client.fetch_latest.return_value = BackupRecord(
            content=make_payload(books=[make_book("r1", 500)]),
            content_timestamp=500,
            backup_timestamp=600,
        )

        result = await registry.call_tool("backup_check", {"force": True}, backup_studio)

        assert result.structuredContent["state"] == "diverged"
        assert backup_studio.resolver.pending.remote_timestamp == 500
        backup_studio.backup_client.fetch_latest.assert_called_once_with(True)

    async def test_unreachable_server(self, registry, backup_studio):
        backup_studio.backup_client.fetch_latest.side_effect = FetchError("timed out")
        result = await registry.call_tool("backup_check", {}, backup_studio)
        assert not result.isError
        assert "Backup check failed: timed out" in _text(result)


class TestBackupPush:
    async def test_push(self, registry, backup_studio):
        result = await registry.call_tool("backup_push", {}, backup_studio)
        assert result.structuredContent["pushed"] is True
        assert result.structuredContent["status"] == "synced"
        backup_studio.backup_client.push.assert_called_once()

    async def test_push_failure(self, registry, backup_studio):
        backup_studio.backup_client.push.side_effect = FetchError("503")
        result = await registry.call_tool("backup_push", {}, backup_studio)
        assert result.isError
        assert "backup_unreachable" in _text(result)

    async def test_disabled_without_force(self, registry, backup_studio):
        await backup_studio.uploader.set_enabled(False)
        result = await registry.call_tool("backup_push", {"force": False}, backup_studio)
        assert result.structuredContent["pushed"] is False
        assert "disabled" in _text(result)
        backup_studio.backup_client.push.assert_not_called()


class TestBackupStatus:
    async def test_before_any_check(self, registry, backup_studio):
        result = await registry.call_tool("backup_status", {}, backup_studio)
        assert "Backup status: idle" in _text(result)
        assert result.structuredContent["monitor_state"] == "idle"
        assert result.structuredContent["last_check"] is None

    async def test_includes_last_check(self, registry, backup_studio):
        await registry.call_tool("backup_check", {}, backup_studio)
        result = await registry.call_tool("backup_status", {}, backup_studio)
        assert result.structuredContent["last_check"]["state"] == "up_to_date"


class TestBackupList:
    async def test_empty(self, registry, backup_studio):
        result = await registry.call_tool("backup_list", {}, backup_studio)
        assert _text(result) == "No daily backups on the server."

    async def test_lists_backups(self, registry, backup_studio):
        backup_studio.backup_client.list_backups.return_value = [
            ServerBackup(id="daily_2024-05-02.json", created_at="2024-05-02T01:00:00Z", size=42),
            ServerBackup(id="daily_2024-05-01.json", created_at="2024-05-01T01:00:00Z", size=40),
        ]
        result = await registry.call_tool("backup_list", {}, backup_studio)
        assert "2 daily backup(s):" in _text(result)
        assert [b["id"] for b in result.structuredContent["backups"]] == [
            "daily_2024-05-02.json",
            "daily_2024-05-01.json",
        ]


class TestBackupRestore:
    async def test_restore(self, registry, backup_studio):
        backup_studio.store.put_record("books", make_book("b1", 100))
        backup_studio.backup_client.fetch_backup_content.return_value = make_payload(
            books=[make_book("daily", 50)]
        )

        result = await registry.call_tool(
            "backup_restore", {"backup_id": "daily_2024-05-01.json"}, backup_studio
        )

        assert result.structuredContent["origin"] == "remote_backup"
        assert result.structuredContent["history"]["undo_depth"] == 1
        assert backup_studio.store.get_record("books", "daily") is not None

    async def test_missing_id(self, registry, backup_studio):
        result = await registry.call_tool("backup_restore", {}, backup_studio)
        assert "validation_error" in _text(result)

    async def test_unknown_backup(self, registry, backup_studio):
        backup_studio.backup_client.fetch_backup_content.return_value = None
        result = await registry.call_tool(
            "backup_restore", {"backup_id": "daily_1999-01-01.json"}, backup_studio
        )
        assert result.isError
        assert "not found on the server" in _text(result)

    async def test_corrupt_backup(self, registry, backup_studio):
        backup_studio.backup_client.fetch_backup_content.return_value = "<html>"
        result = await registry.call_tool(
            "backup_restore", {"backup_id": "daily_2024-05-01.json"}, backup_studio
        )
        assert "corrupt_payload" in _text(result)
        assert backup_studio.history.state.undo_depth == 0


class TestBackupEnable:
    async def test_disable_and_enable(self, registry, backup_studio):
        off = await registry.call_tool("backup_enable", {"enabled": False}, backup_studio)
        assert off.structuredContent["status"] == "disabled"
        on = await registry.call_tool("backup_enable", {"enabled": True}, backup_studio)
        assert on.structuredContent["status"] == "idle"

    async def test_requires_boolean(self, registry, backup_studio):
        result = await registry.call_tool("backup_enable", {"enabled": "yes"}, backup_studio)
        assert "validation_error" in _text(result)
