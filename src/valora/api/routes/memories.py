"""
Memory Routes
=============
Memory CRUD and keyword search. These are the sources of the memory.* and
search.performed events.
"""

from fastapi import APIRouter, Depends, Query, Request, Response

from valora.core.container import Container
from valora.core.exceptions import MemoryNotFoundError
from valora.core.memory_model import Memory, new_memory_id, utc_now
from valora.events.integration import (
    emit_memory_created,
    emit_memory_deleted,
    emit_memory_updated,
    emit_search_performed,
)
from valora.api.middleware import get_api_key_dependency
from valora.api.models import CreateMemoryBody, UpdateMemoryBody

router = APIRouter(
    prefix="/memory",
    tags=["Memory Operations"],
    dependencies=[Depends(get_api_key_dependency)],
)


def get_container(request: Request) -> Container:
    return request.app.state.container


@router.post("", status_code=201)
async def create_memory(req: CreateMemoryBody, container: Container = Depends(get_container)):
    memory = Memory(
        id=new_memory_id(),
        content=req.content,
        source=req.source,
        timestamp=utc_now(),
        tags=list(req.tags or []),
        metadata=dict(req.metadata or {}),
    )
    await container.store.save_memory(memory)
    await emit_memory_created(container.event_bus, memory)
    return memory.to_dict()


@router.get("")
async def list_memories(container: Container = Depends(get_container)):
    memories = await container.store.list_memories()
    return [m.to_dict() for m in memories]


@router.get("/search")
async def search_memories(
    q: str = Query(..., min_length=1, description="Case-insensitive keyword"),
    container: Container = Depends(get_container),
):
    results = await container.store.search_memories(q)
    await emit_search_performed(container.event_bus, q, results)
    return [m.to_dict() for m in results]


@router.get("/{memory_id}")
async def get_memory(memory_id: str, container: Container = Depends(get_container)):
    memory = await container.store.get_memory(memory_id)
    if memory is None:
        raise MemoryNotFoundError(memory_id)
    return memory.to_dict()


@router.put("/{memory_id}")
async def update_memory(
    memory_id: str,
    req: UpdateMemoryBody,
    container: Container = Depends(get_container),
):
    updated = await container.store.update_memory(memory_id, req.to_patch())
    if updated is None:
        raise MemoryNotFoundError(memory_id)
    await emit_memory_updated(container.event_bus, updated)
    return updated.to_dict()


@router.delete("/{memory_id}", status_code=204)
async def delete_memory(memory_id: str, container: Container = Depends(get_container)):
    memory = await container.store.get_memory(memory_id)
    if memory is None or not await container.store.delete_memory(memory_id):
        raise MemoryNotFoundError(memory_id)
    await emit_memory_deleted(container.event_bus, memory)
    return Response(status_code=204)
