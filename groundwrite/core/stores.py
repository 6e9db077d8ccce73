"""Interfaces of the external collaborators a generation run depends on.

Supabase-backed implementations live in groundwrite.db; tests use in-memory fakes.
"""

from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any, Protocol

from groundwrite.core.schemas_generation import Chunk, Paper
from groundwrite.core.schemas_tools import StreamErrorEvent, TextDeltaEvent, ToolCallEvent, ToolResultEvent

ToolExecutor = Callable[[str, dict[str, Any]], Awaitable[dict[str, Any]]]

StreamEventT = TextDeltaEvent | ToolCallEvent | ToolResultEvent | StreamErrorEvent


class PaperStore(Protocol):
    async def get_papers_by_ids(self, ids: list[str]) -> list[Paper]: ...

    async def hybrid_search(
        self,
        query: str,
        *,
        limit: int,
        exclude_ids: list[str] | None = None,
        min_year: int | None = None,
        semantic_weight: float = 0.7,
    ) -> list[Paper]: ...

    async def ingest_paper(self, paper: dict[str, Any]) -> str: ...


class ChunkStore(Protocol):
    async def search_chunks(
        self,
        query: str,
        *,
        paper_ids: list[str],
        limit: int,
        min_score: float,
    ) -> list[Chunk]: ...

    async def ingest_chunks(self, paper: Paper, chunk_texts: list[str]) -> None: ...

    async def count_chunks(self, paper_ids: list[str]) -> dict[str, int]: ...


class CitationStore(Protocol):
    async def upsert_citation(
        self,
        project_id: str,
        key: str,
        csl_json: dict[str, Any],
        link: dict[str, Any],
    ) -> str: ...


class PersistenceAdapter(Protocol):
    async def add_version(self, project_id: str, content: str, version_number: int) -> dict[str, Any]: ...

    async def add_citation(
        self,
        project_id: str,
        version: int,
        paper_id: str,
        token: str,
        position_start: int | None = None,
        position_end: int | None = None,
    ) -> None: ...

    async def update_status(self, project_id: str, status: str) -> None: ...


class CompletionProvider(Protocol):
    def stream(
        self,
        *,
        model: str,
        system: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
        tool_executor: ToolExecutor | None,
        max_steps: int,
        temperature: float,
        max_tokens: int,
    ) -> AsyncIterator[StreamEventT]: ...
