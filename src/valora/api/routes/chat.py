"""
Chat Routes
===========
Conversation import (structured, by format, pasted text) and context lookup.
"""

from fastapi import APIRouter, Depends, Request
from loguru import logger

from valora.chat.parser import ChatParser
from valora.core.container import Container
from valora.storage.memory_importer import merge_tags
from valora.api.middleware import get_api_key_dependency
from valora.api.models import ChatImportBody, FormatImportBody, TextImportBody

router = APIRouter(
    prefix="/chat",
    tags=["Chat"],
    dependencies=[Depends(get_api_key_dependency)],
)


def get_container(request: Request) -> Container:
    return request.app.state.container


@router.post("/import", status_code=201)
async def import_chat(req: ChatImportBody, container: Container = Depends(get_container)):
    """Import a structured conversation, one memory per message."""
    conversation = req.to_request()
    memories = await container.chat_import.import_chat(conversation)
    return {
        "message": f"Successfully imported {len(memories)} messages",
        "conversationId": conversation.conversation_id,
        "memoryIds": [m.id for m in memories],
        "memories": [m.to_dict() for m in memories],
    }


@router.post("/import-format", status_code=201)
async def import_format(req: FormatImportBody, container: Container = Depends(get_container)):
    """Import raw JSON, text or markdown. Malformed JSON is a 500."""
    memories = await container.chat_import.import_from_format(
        req.content, req.format, req.source, req.conversation_id
    )
    return {
        "message": f"Successfully imported {len(memories)} memories from {req.format} format",
        "memoryIds": [m.id for m in memories],
        "memories": [m.to_dict() for m in memories],
    }


@router.post("/import-text", status_code=201)
async def import_text(req: TextImportBody, container: Container = Depends(get_container)):
    """Parse a pasted ChatGPT, Claude or generic transcript and import it."""
    conversation = ChatParser.parse(req.text, req.format, req.conversation_id)
    if req.tags:
        conversation.tags = merge_tags(conversation.tags, req.tags)

    memories = await container.chat_import.import_chat(conversation)
    logger.info(
        f"Imported pasted {conversation.source} transcript "
        f"{conversation.conversation_id} ({len(memories)} messages)"
    )
    return {
        "message": f"Successfully imported {len(memories)} messages",
        "conversationId": conversation.conversation_id,
        "source": conversation.source,
        "memoryIds": [m.id for m in memories],
        "memories": [m.to_dict() for m in memories],
    }


@router.get("/context/{conversation_id}")
async def conversation_context(conversation_id: str, container: Container = Depends(get_container)):
    memories = await container.chat_import.get_conversation_context(conversation_id)
    return {
        "conversationId": conversation_id,
        "messageCount": len(memories),
        "memories": [m.to_dict() for m in memories],
    }
