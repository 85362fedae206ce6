"""
File Crawler
============
Ingests a directory tree into the memory store, one memory per file.

Each memory records where it came from:
    - ``source``: ``file://<absolute path>``
    - ``tags``: ``["file-ingestion", "<extension>"]``
    - ``metadata``: ``filePath`` and ``fileName``

Subdirectories are walked depth first in name order. Symlinked directories
are not followed. Files that are not UTF-8 text are skipped with a warning.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Sequence, Union

import aiofiles
from loguru import logger

from valora.core.exceptions import ValidationError, wrap_storage_exception
from valora.core.memory_model import Memory, new_memory_id, utc_now
from valora.events.event_bus import EventBus
from valora.events.integration import emit_memory_created
from .memory_store import MemoryStore


DEFAULT_EXTENSIONS = (".ts", ".tsx", ".js", ".jsx", ".md")

FILE_INGESTION_TAG = "file-ingestion"


def normalize_extensions(extensions: Iterable[str]) -> List[str]:
    """``"md"``, ``".MD"`` and ``" .md "`` all become ``".md"``."""
    normalized: List[str] = []
    for ext in extensions:
        ext = ext.strip().lower()
        if not ext:
            continue
        if not ext.startswith("."):
            ext = f".{ext}"
        if ext not in normalized:
            normalized.append(ext)
    return normalized


class FileCrawler:
    """
    Walks a directory and saves every matching file as a memory.

    Args:
        store: Memory store the records are saved to
        event_bus: Optional bus; ``memory.created`` is scheduled per file
    """

    def __init__(self, store: MemoryStore, event_bus: Optional[EventBus] = None):
        self.store = store
        self.event_bus = event_bus

    async def crawl(
        self,
        directory: Union[str, Path],
        extensions: Sequence[str] = DEFAULT_EXTENSIONS,
    ) -> List[Memory]:
        """
        Ingest every file under ``directory`` whose extension is wanted.

        Raises:
            ValidationError: ``directory`` is not a directory, or no
                extension was given
            StorageError: a file could not be read or a memory not saved.
                Files ingested before the failure stay stored.

        Returns:
            The created memories, in walk order
        """
        root = Path(directory).expanduser().resolve()
        if not root.is_dir():
            raise ValidationError("directory", "Not a directory", str(directory))
        wanted = normalize_extensions(extensions)
        if not wanted:
            raise ValidationError("extensions", "At least one file extension is required")

        memories: List[Memory] = []
        for path in self._walk(root, wanted):
            memory = await self._ingest(path)
            if memory is not None:
                memories.append(memory)

        logger.info(
            f"[FileCrawler] Ingested {len(memories)} files from {root} "
            f"({', '.join(wanted)})"
        )
        return memories

    def _walk(self, directory: Path, wanted: List[str]) -> Iterator[Path]:
        for entry in sorted(directory.iterdir(), key=lambda p: p.name):
            if entry.is_dir():
                if not entry.is_symlink():
                    yield from self._walk(entry, wanted)
            elif entry.is_file() and entry.suffix.lower() in wanted:
                yield entry

    async def _ingest(self, path: Path) -> Optional[Memory]:
        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                content = await f.read()
        except UnicodeDecodeError:
            logger.warning(f"[FileCrawler] Skipping {path}: not UTF-8 text")
            return None
        except OSError as e:
            raise wrap_storage_exception("read", e)

        memory = Memory(
            id=new_memory_id(),
            content=content,
            source=f"file://{path}",
            timestamp=utc_now(),
            version=1,
            tags=[FILE_INGESTION_TAG, path.suffix],
            metadata={"filePath": str(path), "fileName": path.name},
        )
        await self.store.save_memory(memory)
        logger.debug(f"[FileCrawler] Ingested {path} as {memory.id}")

        await emit_memory_created(self.event_bus, memory)
        return memory


__all__ = ["FileCrawler", "DEFAULT_EXTENSIONS", "normalize_extensions"]
