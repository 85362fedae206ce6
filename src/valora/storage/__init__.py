"""
Valora storage: memory store backends, chat import, file crawling and export.
"""

from .memory_store import (
    InMemoryMemoryStore,
    JsonFileMemoryStore,
    MemoryStore,
    create_memory_store,
)
from .memory_importer import ChatImportService
from .memory_exporter import ExportFormat, MemoryExporter
from .file_crawler import FileCrawler

__all__ = [
    "MemoryStore",
    "InMemoryMemoryStore",
    "JsonFileMemoryStore",
    "create_memory_store",
    "ChatImportService",
    "FileCrawler",
    "MemoryExporter",
    "ExportFormat",
]
