"""
Export Routes
=============
Renders a bundle of stored memories as markdown, text, json or a
conversation transcript.
"""

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import PlainTextResponse

from valora.core.container import Container
from valora.events.integration import emit_export_completed
from valora.storage.memory_exporter import ExportFormat
from valora.api.middleware import get_api_key_dependency
from valora.api.models import ExportBundleBody

router = APIRouter(
    tags=["Export"],
    dependencies=[Depends(get_api_key_dependency)],
)


def get_container(request: Request) -> Container:
    return request.app.state.container


@router.post("/export/bundle", response_class=PlainTextResponse)
async def export_bundle(req: ExportBundleBody, container: Container = Depends(get_container)):
    """
    Export memories in request order.

    Every id must exist; a single missing id fails the whole request with
    404 and nothing is rendered.
    """
    found = await container.store.get_memories(req.memory_ids)
    memories = [m for m in found if m is not None]

    if len(memories) != len(req.memory_ids):
        raise HTTPException(
            status_code=404,
            detail="One or more requested memories were not found.",
        )

    export_format = req.format or ExportFormat.MARKDOWN
    bundle = container.exporter.format_memories(memories, export_format)

    await emit_export_completed(
        container.event_bus, req.memory_ids, export_format.value, bundle
    )

    return PlainTextResponse(bundle)
