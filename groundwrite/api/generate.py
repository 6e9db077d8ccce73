"""Draft generation API endpoints."""

import asyncio
import json
from typing import Any, AsyncGenerator

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from groundwrite.core.academic_search import search_openalex
from groundwrite.core.completion_provider import AnthropicCompletionProvider
from groundwrite.core.generation_pipeline import GenerationDependencies, generate_draft
from groundwrite.core.logging import get_logger
from groundwrite.core.paper_collector import NoPapersFoundError
from groundwrite.core.schemas_generation import GenerationProgress, GenerationRequest
from groundwrite.db.citations import SupabaseCitationStore
from groundwrite.db.paper_chunks import SupabaseChunkStore
from groundwrite.db.papers import SupabasePaperStore
from groundwrite.db.research_projects import SupabaseProjectPersistence

logger = get_logger(__name__)

router = APIRouter()

_DONE = object()


class GenerateDraftRequest(BaseModel):
    """Request to generate a draft for a project."""

    topic: str = Field(..., min_length=1, description="Topic of the draft")
    library_paper_ids: list[str] = Field(default_factory=list, description="Pinned library papers")
    use_library_only: bool = Field(default=False, description="Skip discovery searches")
    config: dict[str, Any] | None = Field(default=None, description="Generation config overrides")


def build_generation_dependencies() -> GenerationDependencies:
    """Wire the Supabase stores, Anthropic provider and OpenAlex fallback."""
    return GenerationDependencies(
        paper_store=SupabasePaperStore(),
        chunk_store=SupabaseChunkStore(),
        completion_provider=AnthropicCompletionProvider(),
        persistence=SupabaseProjectPersistence(),
        citation_store=SupabaseCitationStore(),
        academic_search=search_openalex,
    )


def _sse_event(data: dict[str, Any]) -> str:
    return f"data: {json.dumps(data, default=str)}\n\n"


@router.post("/projects/{project_id}/generate")
async def generate_project_draft(
    project_id: str,
    body: GenerateDraftRequest,
    deps: GenerationDependencies = Depends(build_generation_dependencies),
) -> StreamingResponse:
    """
    Generate a draft and stream progress.

    Args:
        project_id: Research project id
        body: Topic, pinned papers and config

    Returns:
        StreamingResponse with Server-Sent Events: progress* then result or error
    """
    request = GenerationRequest(
        project_id=project_id,
        topic=body.topic,
        library_paper_ids=body.library_paper_ids,
        use_library_only=body.use_library_only,
        config=body.config,
    )

    async def generate() -> AsyncGenerator[str, None]:
        queue: asyncio.Queue[Any] = asyncio.Queue()
        abort_event = asyncio.Event()

        async def on_progress(update: GenerationProgress) -> None:
            await queue.put(update)

        async def run() -> None:
            try:
                result = await generate_draft(request, deps, on_progress, abort_event)
                await queue.put({"type": "result", "result": result.model_dump(mode="json")})
            except NoPapersFoundError as e:
                await queue.put({"type": "error", "code": "no_papers", "message": str(e)})
            except Exception as e:
                logger.error(f"Generation failed for project {project_id}: {e}", exc_info=True)
                await queue.put({"type": "error", "code": "generation_failed", "message": str(e)})
            finally:
                await queue.put(_DONE)

        task = asyncio.create_task(run())
        try:
            while True:
                item = await queue.get()
                if item is _DONE:
                    break
                if isinstance(item, GenerationProgress):
                    yield _sse_event({"type": "progress", **item.model_dump(exclude={"content"})})
                else:
                    yield _sse_event(item)
        finally:
            # Client went away before the run finished
            if not task.done():
                abort_event.set()
                await task

    return StreamingResponse(
        generate(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
