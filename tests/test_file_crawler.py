"""
Tests for directory ingestion.
"""

import pytest

from valora.core.exceptions import StorageError, ValidationError
from valora.storage.file_crawler import FileCrawler, normalize_extensions


@pytest.fixture
def docs(tmp_path):
    root = tmp_path / "docs"
    (root / "guides").mkdir(parents=True)
    (root / "b.md").write_text("# Second")
    (root / "a.md").write_text("# First")
    (root / "guides" / "setup.ts").write_text("export const setup = 1;")
    (root / "image.png").write_bytes(b"\x89PNG")
    return root


@pytest.fixture
def crawler(store, event_bus):
    return FileCrawler(store, event_bus)


class TestCrawl:

    @pytest.mark.asyncio
    async def test_ingests_matching_files_in_walk_order(self, crawler, store, docs):
        memories = await crawler.crawl(docs, [".md", ".ts"])

        assert [m.metadata["fileName"] for m in memories] == ["a.md", "b.md", "setup.ts"]
        assert len(store) == 3

    @pytest.mark.asyncio
    async def test_memory_fields(self, crawler, docs):
        memory = (await crawler.crawl(docs, [".ts"]))[0]
        path = (docs / "guides" / "setup.ts").resolve()

        assert memory.content == "export const setup = 1;"
        assert memory.source == f"file://{path}"
        assert memory.tags == ["file-ingestion", ".ts"]
        assert memory.metadata == {"filePath": str(path), "fileName": "setup.ts"}
        assert memory.version == 1

    @pytest.mark.asyncio
    async def test_no_matches(self, crawler, store, docs):
        assert await crawler.crawl(docs, [".rst"]) == []
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_non_utf8_file_is_skipped(self, crawler, docs):
        (docs / "latin1.md").write_bytes("caf\xe9".encode("latin-1"))

        memories = await crawler.crawl(docs, [".md"])

        assert [m.metadata["fileName"] for m in memories] == ["a.md", "b.md"]

    @pytest.mark.asyncio
    async def test_rejects_missing_directory(self, crawler, tmp_path):
        with pytest.raises(ValidationError):
            await crawler.crawl(tmp_path / "absent", [".md"])

    @pytest.mark.asyncio
    async def test_rejects_empty_extension_list(self, crawler, docs):
        with pytest.raises(ValidationError):
            await crawler.crawl(docs, [" ", ""])

    @pytest.mark.asyncio
    async def test_save_failure_keeps_earlier_files(self, store, docs):
        class FailingSecondSave(type(store)):
            async def save_memory(self, memory):
                if len(self) == 1:
                    raise StorageError("save", "disk full")
                await super().save_memory(memory)

        failing = FailingSecondSave()

        with pytest.raises(StorageError):
            await FileCrawler(failing).crawl(docs, [".md"])

        assert [m.metadata["fileName"] for m in await failing.list_memories()] == ["a.md"]

    @pytest.mark.asyncio
    async def test_emits_memory_created_per_file(self, crawler, docs, event_bus, plugin_manager, recording_plugin):
        await plugin_manager.register_plugin(recording_plugin)

        memories = await crawler.crawl(docs, [".md"])
        await event_bus.drain()

        assert recording_plugin.events == ["memory.created", "memory.created"]
        assert {payload["id"] for _, payload in recording_plugin.calls} == {m.id for m in memories}


@pytest.mark.parametrize(
    "raw, expected",
    [
        (["md", ".TS", " .js "], [".md", ".ts", ".js"]),
        ([".md", "md"], [".md"]),
        (["", " "], []),
    ],
)
def test_normalize_extensions(raw, expected):
    assert normalize_extensions(raw) == expected
