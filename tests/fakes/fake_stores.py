"""In-memory stores and a scripted completion provider for generation tests."""

import uuid
from typing import Any

from groundwrite.core.schemas_generation import Chunk, Paper
from groundwrite.core.schemas_tools import ToolCallEvent, ToolResultEvent


def paper_id(n: int) -> str:
    """Deterministic uuid-shaped paper id."""
    return f"{n:08d}-0000-4000-8000-000000000000"


def make_paper(n: int, **overrides: Any) -> Paper:
    data = {
        "id": paper_id(n),
        "title": f"Paper {n}",
        "abstract": f"Abstract of paper {n}.",
        "authors": [f"Author{n} Surname{n}"],
        "year": 2020,
        "venue": "Journal of Tests",
        "doi": None,
    }
    data.update(overrides)
    return Paper(**data)


def text_deltas(text: str, size: int = 20) -> list[str]:
    return [text[i:i + size] for i in range(0, len(text), size)]


class FakePaperStore:
    """PaperStore over a fixed set of papers and canned search results."""

    def __init__(
        self,
        papers: list[Paper] | None = None,
        search_results: dict[str, list[Paper]] | None = None,
        failing_queries: set[str] | None = None,
    ):
        self.papers = {p.id: p for p in papers or []}
        self.search_results = search_results or {}
        self.failing_queries = failing_queries or set()
        self.search_calls: list[dict[str, Any]] = []
        self.ingested: list[dict[str, Any]] = []

    async def get_papers_by_ids(self, ids: list[str]) -> list[Paper]:
        return [self.papers[i] for i in ids if i in self.papers]

    async def hybrid_search(
        self,
        query: str,
        *,
        limit: int,
        exclude_ids: list[str] | None = None,
        min_year: int | None = None,
        semantic_weight: float = 0.7,
    ) -> list[Paper]:
        self.search_calls.append(
            {"query": query, "limit": limit, "exclude_ids": list(exclude_ids or []), "min_year": min_year}
        )
        if query in self.failing_queries:
            raise RuntimeError(f"search backend unavailable for '{query}'")
        excluded = set(exclude_ids or [])
        return [p for p in self.search_results.get(query, []) if p.id not in excluded][:limit]

    async def ingest_paper(self, paper: dict[str, Any]) -> str:
        new_id = str(uuid.uuid4())
        self.ingested.append(paper)
        self.papers[new_id] = Paper(
            id=new_id,
            title=paper["title"],
            abstract=paper.get("abstract"),
            authors=paper.get("authors") or [],
            year=paper.get("year"),
            doi=paper.get("doi"),
            source=paper.get("source"),
        )
        return new_id


class FakeChunkStore:
    """ChunkStore over an in-memory chunk list."""

    def __init__(
        self,
        chunks: list[Chunk] | None = None,
        ingest_score: float = 0.2,
        fail_search: bool = False,
        fail_ingest_ids: set[str] | None = None,
    ):
        self.chunks = list(chunks or [])
        self.ingest_score = ingest_score
        self.fail_search = fail_search
        self.fail_ingest_ids = fail_ingest_ids or set()
        self.ingest_calls: list[tuple[str, list[str]]] = []
        self.search_calls: list[dict[str, Any]] = []

    async def count_chunks(self, paper_ids: list[str]) -> dict[str, int]:
        counts: dict[str, int] = {}
        for chunk in self.chunks:
            if chunk.paper_id in paper_ids:
                counts[chunk.paper_id] = counts.get(chunk.paper_id, 0) + 1
        return counts

    async def ingest_chunks(self, paper: Paper, chunk_texts: list[str]) -> None:
        if paper.id in self.fail_ingest_ids:
            raise RuntimeError(f"embedding failed for {paper.id}")
        self.ingest_calls.append((paper.id, chunk_texts))
        self.chunks += [Chunk(paper_id=paper.id, content=t, score=self.ingest_score) for t in chunk_texts]

    async def search_chunks(
        self,
        query: str,
        *,
        paper_ids: list[str],
        limit: int,
        min_score: float,
    ) -> list[Chunk]:
        self.search_calls.append({"query": query, "paper_ids": paper_ids, "limit": limit, "min_score": min_score})
        if self.fail_search:
            raise RuntimeError("vector index offline")
        matches = [
            c for c in self.chunks if c.paper_id in paper_ids and (c.score or 0.0) >= min_score
        ]
        matches.sort(key=lambda c: c.score or 0.0, reverse=True)
        return matches[:limit]


class FakePersistence:
    """PersistenceAdapter recording writes in memory."""

    def __init__(self, fail_paper_ids: set[str] | None = None):
        self.fail_paper_ids = fail_paper_ids or set()
        self.versions: list[dict[str, Any]] = []
        self.citations: list[dict[str, Any]] = []
        self.statuses: list[str] = []

    async def add_version(self, project_id: str, content: str, version_number: int) -> dict[str, Any]:
        row = {"project_id": project_id, "content": content, "version": version_number}
        self.versions.append(row)
        return row

    async def add_citation(
        self,
        project_id: str,
        version: int,
        paper_id: str,
        token: str,
        position_start: int | None = None,
        position_end: int | None = None,
    ) -> None:
        if paper_id in self.fail_paper_ids:
            raise RuntimeError(f"insert failed for {paper_id}")
        self.citations.append(
            {
                "project_id": project_id,
                "version": version,
                "paper_id": paper_id,
                "token": token,
                "position_start": position_start,
                "position_end": position_end,
            }
        )

    async def update_status(self, project_id: str, status: str) -> None:
        self.statuses.append(status)


class FakeCitationStore:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.upserts: list[dict[str, Any]] = []

    async def upsert_citation(
        self,
        project_id: str,
        key: str,
        csl_json: dict[str, Any],
        link: dict[str, Any],
    ) -> str:
        if self.fail:
            raise RuntimeError("citations table locked")
        self.upserts.append({"project_id": project_id, "key": key, "csl_json": csl_json, "link": link})
        return f"citation-{len(self.upserts)}"


class ScriptedCompletionProvider:
    """
    CompletionProvider that replays a fixed event script.

    ToolCallEvents are followed by a ToolResultEvent produced by the real
    tool executor when one is supplied, like the Anthropic provider does.
    Pass ``execute_tools=False`` to replay the script verbatim.
    """

    def __init__(self, events: list[Any], execute_tools: bool = True):
        self.events = events
        self.execute_tools = execute_tools
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    async def stream(self, **kwargs: Any):
        self.calls.append(kwargs)
        tool_executor = kwargs.get("tool_executor")
        try:
            for event in self.events:
                yield event
                if isinstance(event, ToolCallEvent) and self.execute_tools and tool_executor is not None:
                    result = await tool_executor(event.tool_name, event.args)
                    yield ToolResultEvent(
                        tool_call_id=event.tool_call_id, tool_name=event.tool_name, result=result
                    )
        finally:
            self.closed = True
