"""Tests for snapshot_export/import and the version_* MCP tools."""

import json

import mcp.types as types
import pytest

from conftest import make_book
from studio_sync.mcp.tools import ALL_SPECS, SNAPSHOT_TOOLS, ToolRegistry


@pytest.fixture
def registry():
    return ToolRegistry(ALL_SPECS)


def _text(result: types.CallToolResult) -> str:
    return result.content[0].text


def test_tool_names():
    assert [t.name for t in SNAPSHOT_TOOLS] == [
        "snapshot_export",
        "snapshot_import",
        "version_create",
        "version_list",
        "version_restore",
        "version_delete",
    ]


class TestSnapshotFiles:
    async def test_export_import_round_trip(self, registry, studio, tmp_path):
        studio.store.put_record("books", make_book("b1", 100))
        target = tmp_path / "export.json"

        exported = await registry.call_tool(
            "snapshot_export", {"file_path": str(target)}, studio
        )
        assert exported.structuredContent["size_bytes"] == target.stat().st_size
        assert json.loads(target.read_text())["version"] == 2

        studio.store.delete_record("books", "b1")
        imported = await registry.call_tool(
            "snapshot_import", {"file_path": str(target)}, studio
        )

        assert imported.structuredContent["origin"] == "file_import"
        assert studio.store.get_record("books", "b1") is not None

    async def test_import_is_undoable(self, registry, studio, tmp_path):
        target = tmp_path / "other.json"
        target.write_text(json.dumps({"books": [make_book("x", 5)], "documents": []}))
        studio.store.put_record("books", make_book("b1", 100))

        await registry.call_tool("snapshot_import", {"file_path": str(target)}, studio)
        await registry.call_tool("history_undo", {}, studio)

        assert studio.store.get_record("books", "b1") is not None
        assert studio.store.get_record("books", "x") is None

    async def test_import_corrupt_file(self, registry, studio, tmp_path):
        target = tmp_path / "broken.json"
        target.write_text("{ not json")
        result = await registry.call_tool(
            "snapshot_import", {"file_path": str(target)}, studio
        )
        assert "corrupt_payload" in _text(result)

    @pytest.mark.parametrize("name", ["snapshot_export", "snapshot_import"])
    async def test_missing_path(self, registry, studio, name):
        result = await registry.call_tool(name, {}, studio)
        assert "file_path is required" in _text(result)

    async def test_relative_path(self, registry, studio):
        result = await registry.call_tool(
            "snapshot_export", {"file_path": "out.json"}, studio
        )
        assert "validation_error" in _text(result)
        assert "must be absolute" in _text(result)


class TestVersions:
    async def test_create_list_restore_delete(self, registry, studio):
        studio.store.put_record("books", make_book("b1", 100, topic="First"))

        created = await registry.call_tool(
            "version_create", {"book_id": "b1", "name": "Chapter one done"}, studio
        )
        version_id = created.structuredContent["id"]
        assert "bookData" not in created.structuredContent

        listed = await registry.call_tool("version_list", {"book_id": "b1"}, studio)
        assert [v["id"] for v in listed.structuredContent["versions"]] == [version_id]
        assert "Chapter one done" in _text(listed)

        studio.store.put_record("books", make_book("b1", 200, topic="Second"))
        restored = await registry.call_tool(
            "version_restore", {"version_id": version_id}, studio
        )
        assert restored.structuredContent == {"book_id": "b1", "version_id": version_id}
        assert studio.store.get_record("books", "b1")["topic"] == "First"

        deleted = await registry.call_tool(
            "version_delete", {"version_id": version_id}, studio
        )
        assert not deleted.isError
        listed = await registry.call_tool("version_list", {"book_id": "b1"}, studio)
        assert _text(listed) == "No versions saved for book b1."

    async def test_create_for_unknown_book(self, registry, studio):
        result = await registry.call_tool(
            "version_create", {"book_id": "nope", "name": "v1"}, studio
        )
        assert "validation_error" in _text(result)

    async def test_restore_unknown_version(self, registry, studio):
        result = await registry.call_tool(
            "version_restore", {"version_id": "missing"}, studio
        )
        assert result.isError
        assert "not found" in _text(result)

    async def test_delete_unknown_version(self, registry, studio):
        result = await registry.call_tool(
            "version_delete", {"version_id": "missing"}, studio
        )
        assert "not_found" in _text(result)

    @pytest.mark.parametrize(
        "name, args, missing",
        [
            ("version_create", {"name": "v"}, "book_id"),
            ("version_create", {"book_id": "b1"}, "name"),
            ("version_list", {}, "book_id"),
            ("version_restore", {}, "version_id"),
            ("version_delete", {}, "version_id"),
        ],
    )
    async def test_missing_arguments(self, registry, studio, name, args, missing):
        result = await registry.call_tool(name, args, studio)
        assert f"{missing} is required" in _text(result)
