"""
Valora CLI
==========
Command-line interface for importing, exporting and serving Valora memories.

Usage:
    valora serve --port 3000
    valora import-chat conversation.json
    valora import notes.md --format markdown
    pbpaste | valora paste-chat --format chatgpt
    valora export <id> <id> --format conversation
    valora crawl ./docs --ext .md,.txt

Commands store memories in ``storage.data_file`` (``~/.valora/db.json`` by
default) so later commands can read them.
"""

import asyncio
import json
import sys
from contextlib import asynccontextmanager
from dataclasses import replace
from pathlib import Path
from typing import Optional

import click
from loguru import logger

from valora import __version__
from valora.chat.parser import ChatFormat, ChatParser
from valora.core.config import ValoraConfig, load_config
from valora.core.container import build_container
from valora.core.exceptions import ValoraError
from valora.core.memory_model import ChatImportRequest
from valora.events.integration import emit_export_completed
from valora.storage.file_crawler import DEFAULT_EXTENSIONS
from valora.storage.memory_exporter import ExportFormat
from valora.storage.memory_importer import IMPORT_FORMATS


# ============================================================================
# Helper Functions
# ============================================================================

def load_cli_config(config_path: Optional[str] = None) -> ValoraConfig:
    """
    Load the configuration for a one-shot CLI run.

    Each command runs in a fresh process, so the ``memory`` backend is
    swapped for the JSON file store at ``storage.data_file``.
    """
    config = load_config(Path(config_path) if config_path else None)
    if config.storage.backend == "memory":
        logger.debug(f"[CLI] Using file storage at {config.storage.data_file}")
        config = replace(config, storage=replace(config.storage, backend="file"))
    return config


@asynccontextmanager
async def container_context(config_path: Optional[str] = None):
    """Build and start a container, shutting it down (and flushing events) on exit."""
    container = build_container(load_cli_config(config_path))
    await container.startup()
    try:
        yield container
    finally:
        await container.shutdown()


def _fail(message: str) -> None:
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)


# ============================================================================
# CLI Group
# ============================================================================

@click.group()
@click.version_option(__version__, prog_name="valora")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    help="Path to config.yaml file",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose output",
)
@click.pass_context
def cli(ctx, config: Optional[str], verbose: bool):
    """
    Valora - Memory container for AI conversations.

    Import chats from ChatGPT, Claude and other tools, export them in
    readable formats, and fan out memory events to webhooks and plugins.
    """
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose

    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "WARNING")


# ============================================================================
# CLI Commands
# ============================================================================

@cli.command()
@click.option("--host", help="Bind address (defaults to server.host)")
@click.option("--port", "-p", type=int, help="Port (defaults to server.port)")
def serve(host: Optional[str], port: Optional[int]):
    """Run the REST API server."""
    from valora.api.main import run

    run(host=host, port=port)


@cli.command("import-chat")
@click.argument("file", type=click.File("r"))
@click.option("--source", "-s", help="Override the conversation source")
@click.pass_context
def import_chat(ctx, file, source: Optional[str]):
    """
    Import a structured conversation from a JSON file.

    The file holds {"conversationId", "messages": [{"participant",
    "content", "timestamp"}], "source", "tags", "metadata", "context"}.
    """
    try:
        data = json.load(file)
    except ValueError as e:
        _fail(f"Invalid JSON in {file.name}: {e}")
    if not isinstance(data, dict) or not isinstance(data.get("messages"), list):
        _fail("Expected an object with a 'messages' list")

    conversation = ChatImportRequest.from_dict(data)
    if source:
        conversation.source = source

    async def _import():
        async with container_context(ctx.obj["config_path"]) as container:
            return await container.chat_import.import_chat(conversation)

    try:
        memories = asyncio.run(_import())
    except ValoraError as e:
        _fail(str(e))

    click.echo(f"Imported {len(memories)} messages into conversation {conversation.conversation_id}")
    for memory in memories:
        click.echo(memory.id)


@cli.command("import")
@click.argument("file", type=click.File("r"))
@click.option(
    "--format",
    "-f",
    "import_format",
    type=click.Choice(sorted(IMPORT_FORMATS)),
    default="json",
    show_default=True,
    help="Input format",
)
@click.option("--source", "-s", default="import", show_default=True, help="Memory source")
@click.option("--id", "conversation_id", help="Conversation id to import into")
@click.pass_context
def import_file(ctx, file, import_format: str, source: str, conversation_id: Optional[str]):
    """Import a JSON, plain-text or markdown chat export."""
    content = file.read()

    async def _import():
        async with container_context(ctx.obj["config_path"]) as container:
            return await container.chat_import.import_from_format(
                content, import_format, source, conversation_id
            )

    try:
        memories = asyncio.run(_import())
    except ValoraError as e:
        _fail(str(e))

    click.echo(f"Imported {len(memories)} memories from {import_format} format")
    for memory in memories:
        click.echo(memory.id)


@cli.command("paste-chat")
@click.option(
    "--format",
    "-f",
    "chat_format",
    type=click.Choice([f.value for f in ChatFormat]),
    help="Transcript dialect (auto-detected when omitted)",
)
@click.option("--id", "conversation_id", help="Conversation id to stamp on the result")
@click.option("--tags", "-t", multiple=True, help="Extra tags (can use multiple times)")
@click.option("--save", is_flag=True, help="Import the parsed conversation instead of printing it")
@click.pass_context
def paste_chat(ctx, chat_format: Optional[str], conversation_id: Optional[str], tags: tuple, save: bool):
    """
    Parse a pasted chat transcript from stdin.

    Example:
        pbpaste | valora paste-chat --format claude
    """
    text = click.get_text_stream("stdin").read()
    conversation = ChatParser.parse(text, chat_format, conversation_id)
    conversation.tags = list(dict.fromkeys([*conversation.tags, *tags]))

    if not save:
        click.echo(json.dumps(conversation.to_dict(), indent=2, ensure_ascii=False))
        return

    async def _save():
        async with container_context(ctx.obj["config_path"]) as container:
            return await container.chat_import.import_chat(conversation)

    try:
        memories = asyncio.run(_save())
    except ValoraError as e:
        _fail(str(e))
    click.echo(f"Imported {len(memories)} messages into conversation {conversation.conversation_id}")


@cli.command()
@click.argument("memory_ids", nargs=-1, required=True)
@click.option(
    "--format",
    "-f",
    "export_format",
    type=click.Choice([f.value for f in ExportFormat]),
    default=ExportFormat.MARKDOWN.value,
    show_default=True,
    help="Output format",
)
@click.option("--output", "-o", type=click.Path(dir_okay=False), help="Write to file instead of stdout")
@click.pass_context
def export(ctx, memory_ids: tuple, export_format: str, output: Optional[str]):
    """
    Export stored memories.

    Example:
        valora export 3f0c... 9a1b... --format conversation -o chat.txt
    """
    async def _export():
        async with container_context(ctx.obj["config_path"]) as container:
            found = await container.store.get_memories(list(memory_ids))
            missing = [mid for mid, mem in zip(memory_ids, found) if mem is None]
            if missing:
                return None, missing
            result = container.exporter.format_memories(found, export_format)
            await emit_export_completed(
                container.event_bus, list(memory_ids), export_format, result
            )
            return result, []

    try:
        result, missing = asyncio.run(_export())
    except ValoraError as e:
        _fail(str(e))

    if missing:
        _fail(f"Memories not found: {', '.join(missing)}")

    if output:
        Path(output).write_text(result, encoding="utf-8")
        click.echo(f"Exported {len(memory_ids)} memories to {output}", err=True)
    else:
        click.echo(result)


@cli.command()
@click.argument("directory", type=click.Path(exists=True, file_okay=False))
@click.option(
    "--ext",
    "-e",
    default=",".join(DEFAULT_EXTENSIONS),
    show_default=True,
    help="Comma-separated file extensions to ingest",
)
@click.pass_context
def crawl(ctx, directory: str, ext: str):
    """
    Ingest every matching file under DIRECTORY as a memory.

    Example:
        valora crawl ./notes --ext .md,.txt
    """
    extensions = ext.split(",")

    async def _crawl():
        async with container_context(ctx.obj["config_path"]) as container:
            return await container.crawler.crawl(directory, extensions)

    try:
        memories = asyncio.run(_crawl())
    except ValoraError as e:
        _fail(str(e))

    click.echo(f"Ingested {len(memories)} files from {directory}")
    for memory in memories:
        click.echo(memory.id)


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
