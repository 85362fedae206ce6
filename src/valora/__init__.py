"""
Valora - Portable Memory Container for AI Conversations
=======================================================

Stores text fragments ("memories") and chat conversations, and moves them
between chat tools through a set of import/export formats.

Main Packages:
    - core: Configuration, exceptions, memory model, dependency container
    - chat: Free-text chat transcript parsing
    - storage: Memory store, chat importer, memory exporter
    - events: Webhook delivery, plugin notification, event fan-out
    - integrations: Third-party plugins (Validr)
    - api: FastAPI REST endpoints
    - cli: Command-line interface

Quick Start:
    from valora.chat import ChatParser
    from valora.storage import InMemoryMemoryStore, ChatImportService

    store = InMemoryMemoryStore()
    service = ChatImportService(store)
    conversation = ChatParser.parse("You said: Hi\\nAssistant: Hello!")
    memories = await service.import_chat(conversation)
"""

__version__ = "1.0.0"
