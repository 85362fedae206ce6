"""
Tests for the click command-line interface.
"""

import json
import sys
from unittest.mock import patch

import pytest
from click.testing import CliRunner
from loguru import logger

from valora import __version__
from valora.cli.main import cli


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def file_backend(tmp_path, monkeypatch):
    """Every command gets its own container, so share state through a data file."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("VALORA_STORAGE_BACKEND", "file")
    monkeypatch.setenv("VALORA_DATA_FILE", str(tmp_path / "db.json"))
    monkeypatch.setenv("VALORA_VALIDR_ENABLED", "false")
    return tmp_path / "db.json"


@pytest.fixture(autouse=True)
def restore_logging():
    """The CLI group points loguru at the runner's stderr; undo that afterwards."""
    yield
    logger.remove()
    logger.add(sys.stderr, level="WARNING")


def _ids(output):
    return [line for line in output.splitlines()[1:] if line]


CONVERSATION = {
    "conversationId": "c-cli",
    "messages": [
        {"participant": "user", "content": "What is a schema?", "timestamp": "2024-03-01T09:00:00Z"},
        {"participant": "assistant", "content": "A description of data.", "timestamp": "2024-03-01T09:00:02Z"},
    ],
    "source": "claude",
}


def test_version(runner):
    result = runner.invoke(cli, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_paste_chat_prints_conversation(runner):
    result = runner.invoke(
        cli,
        ["paste-chat", "--format", "chatgpt", "--id", "pasted", "-t", "cli"],
        input="You said: Hello\nAssistant: Hi there\n",
    )

    assert result.exit_code == 0
    data = json.loads(result.output)
    assert data["conversationId"] == "pasted"
    assert [m["participant"] for m in data["messages"]] == ["user", "assistant"]
    assert data["messages"][1]["content"] == "Hi there"
    assert "cli" in data["tags"]


def test_paste_chat_save(runner, file_backend):
    result = runner.invoke(
        cli,
        ["paste-chat", "--id", "saved", "--save"],
        input="Human: one\nAssistant: two\n",
    )

    assert result.exit_code == 0
    assert result.output.startswith("Imported 2 messages into conversation saved")
    assert file_backend.exists()


def test_import_chat(runner, tmp_path, file_backend):
    path = tmp_path / "chat.json"
    path.write_text(json.dumps(CONVERSATION))

    result = runner.invoke(cli, ["import-chat", str(path), "--source", "api"])

    assert result.exit_code == 0
    assert result.output.startswith("Imported 2 messages into conversation c-cli")
    assert len(_ids(result.output)) == 2
    stored = json.loads(file_backend.read_text())
    assert {m["source"] for m in stored["memories"]} == {"api"}


def test_import_chat_invalid_json(runner, tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{not json")

    result = runner.invoke(cli, ["import-chat", str(path)])

    assert result.exit_code == 1
    assert "Invalid JSON" in result.output


def test_import_chat_requires_messages(runner, tmp_path):
    path = tmp_path / "empty.json"
    path.write_text(json.dumps({"conversationId": "x"}))

    result = runner.invoke(cli, ["import-chat", str(path)])

    assert result.exit_code == 1


def test_import_text_format(runner, tmp_path):
    path = tmp_path / "notes.txt"
    path.write_text("User: first\nAssistant: second\n")

    result = runner.invoke(cli, ["import", str(path), "--format", "text", "--id", "notes"])

    assert result.exit_code == 0
    assert result.output.startswith("Imported 2 memories from text format")


def test_import_bad_json_format(runner, tmp_path):
    path = tmp_path / "bad.json"
    path.write_text("[{")

    result = runner.invoke(cli, ["import", str(path)])

    assert result.exit_code == 1
    assert "Error:" in result.output


def test_export_after_import(runner, tmp_path):
    path = tmp_path / "chat.json"
    path.write_text(json.dumps(CONVERSATION))
    ids = _ids(runner.invoke(cli, ["import-chat", str(path)]).output)

    result = runner.invoke(cli, ["export", *reversed(ids), "--format", "conversation"])

    assert result.exit_code == 0
    assert result.output.startswith("Conversation: c-cli\n")
    assert result.output.index("What is a schema?") < result.output.index("A description of data.")


def test_default_config_keeps_imports_between_commands(runner, tmp_path, monkeypatch, file_backend):
    monkeypatch.delenv("VALORA_STORAGE_BACKEND")
    path = tmp_path / "chat.json"
    path.write_text(json.dumps(CONVERSATION))

    imported = runner.invoke(cli, ["import-chat", str(path)])
    ids = _ids(imported.output)
    result = runner.invoke(cli, ["export", *ids, "--format", "text"])

    assert imported.exit_code == 0
    assert file_backend.exists()
    assert result.exit_code == 0
    assert "What is a schema?" in result.output


def test_export_to_file(runner, tmp_path):
    path = tmp_path / "chat.json"
    path.write_text(json.dumps(CONVERSATION))
    ids = _ids(runner.invoke(cli, ["import-chat", str(path)]).output)
    target = tmp_path / "out.md"

    result = runner.invoke(cli, ["export", *ids, "-o", str(target)])

    assert result.exit_code == 0
    assert "**Source:** claude" in target.read_text()


def test_export_missing(runner):
    result = runner.invoke(cli, ["export", "nope"])

    assert result.exit_code == 1
    assert "Memories not found: nope" in result.output


def test_crawl(runner, tmp_path, file_backend):
    docs = tmp_path / "docs"
    (docs / "nested").mkdir(parents=True)
    (docs / "readme.md").write_text("# Readme")
    (docs / "nested" / "notes.txt").write_text("plain notes")
    (docs / "app.py").write_text("print('skip')")

    result = runner.invoke(cli, ["crawl", str(docs), "--ext", "md,.txt"])

    assert result.exit_code == 0
    assert result.output.startswith(f"Ingested 2 files from {docs}")
    stored = json.loads(file_backend.read_text())["memories"]
    assert sorted(m["metadata"]["fileName"] for m in stored) == ["notes.txt", "readme.md"]
    assert all("file-ingestion" in m["tags"] for m in stored)


def test_crawl_missing_directory(runner, tmp_path):
    result = runner.invoke(cli, ["crawl", str(tmp_path / "absent")])

    assert result.exit_code == 2


def test_serve_delegates_to_uvicorn_runner(runner):
    with patch("valora.api.main.run") as run:
        result = runner.invoke(cli, ["serve", "--host", "0.0.0.0", "-p", "8080"])

    assert result.exit_code == 0
    run.assert_called_once_with(host="0.0.0.0", port=8080)
