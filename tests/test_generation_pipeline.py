"""End-to-end tests for draft generation with in-memory stores."""

import asyncio

import pytest

from groundwrite.core.citation_tokens import find_citation_tokens
from groundwrite.core.generation_pipeline import (
    GenerationDependencies,
    build_citation_records,
    generate_draft,
)
from groundwrite.core.paper_collector import NoPapersFoundError
from groundwrite.core.schemas_generation import Chunk, CitationOrigin, GenerationRequest
from groundwrite.core.schemas_tools import StreamErrorEvent, TextDeltaEvent, ToolCallEvent
from groundwrite.core.streaming_generator import CompletionStreamError, GenerationCancelledError
from tests.fakes.fake_stores import (
    FakeChunkStore,
    FakeCitationStore,
    FakePaperStore,
    FakePersistence,
    ScriptedCompletionProvider,
    make_paper,
    paper_id,
    text_deltas,
)

PROJECT_ID = "project-1"

DRAFT = (
    "# Graph Learning\n\n"
    "## Abstract\n\n"
    "A survey of graph learning.\n\n"
    "## Literature Review\n\n"
    f"Message passing generalizes convolutions [CITE:{paper_id(1)}].\n"
)

CITE_PAPER_2 = {
    "title": "Paper 2",
    "authors": ["Author2 Surname2"],
    "reason": "Defines the benchmark",
    "section": "Literature Review",
}


def _request(n_papers: int = 3, **overrides) -> GenerationRequest:
    data = {
        "project_id": PROJECT_ID,
        "topic": "graph learning",
        "library_paper_ids": [paper_id(n) for n in range(1, n_papers + 1)],
        "use_library_only": True,
        "config": {"paper_settings": {"min_citation_floor": 3, "min_citation_coverage": 0.5}},
    }
    data.update(overrides)
    return GenerationRequest(**data)


def _deps(
    events,
    *,
    papers=None,
    chunk_store=None,
    persistence=None,
) -> GenerationDependencies:
    papers = papers if papers is not None else [make_paper(n) for n in range(1, 4)]
    if chunk_store is None:
        chunk_store = FakeChunkStore(
            chunks=[Chunk(paper_id=p.id, content=f"Evidence from {p.title}.", score=0.8) for p in papers]
        )
    return GenerationDependencies(
        paper_store=FakePaperStore(papers=papers),
        chunk_store=chunk_store,
        completion_provider=ScriptedCompletionProvider(events),
        persistence=persistence if persistence is not None else FakePersistence(),
        citation_store=FakeCitationStore(),
    )


def _draft_events(text: str = DRAFT, *extra) -> list:
    return [TextDeltaEvent(text=t) for t in text_deltas(text)] + list(extra)


# ----------------------------------------------------------------------
# Happy path
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_generates_persists_and_backfills_citations():
    events = _draft_events(
        DRAFT,
        ToolCallEvent(tool_call_id="call-1", tool_name="add_citation", args=CITE_PAPER_2),
    )
    deps = _deps(events)
    progress = []

    result = await generate_draft(_request(), deps, on_progress=progress.append)

    # Paper 1 cited in text, paper 2 via the tool, paper 3 injected from evidence
    origins = {c.paper_id: c.origin for c in result.citations}
    assert origins == {
        paper_id(1): CitationOrigin.TEXT,
        paper_id(2): CitationOrigin.TOOL,
        paper_id(3): CitationOrigin.INJECTED,
    }
    assert "Evidence from Paper 3" in result.content
    assert result.structure.abstract == "A survey of graph learning."
    assert "Literature Review" in result.structure.sections
    assert [p.id for p in result.sources] == [paper_id(n) for n in range(1, 4)]

    persistence = deps.persistence
    assert persistence.statuses == ["generating", "complete"]
    assert persistence.versions == [{"project_id": PROJECT_ID, "content": result.content, "version": 1}]
    assert {c["paper_id"] for c in persistence.citations} == set(origins)
    assert deps.citation_store.upserts[0]["link"]["paper_id"] == paper_id(2)

    analytics = result.analytics
    assert analytics["simplified_prompt"] is False
    assert analytics["coverage"]["coverage_met"] is True
    assert analytics["tool_calls"]["tool_cited_papers"] == 1


@pytest.mark.asyncio
async def test_progress_is_monotonic_and_completes():
    deps = _deps(_draft_events("x" * 2000))
    progress = []

    await generate_draft(_request(), deps, on_progress=progress.append)

    values = [p.progress for p in progress]
    assert values == sorted(values)
    assert progress[0].stage == "searching"
    assert progress[-1].stage == "complete"
    assert progress[-1].progress == 100
    assert any(p.stage == "writing" and p.content for p in progress)


@pytest.mark.asyncio
async def test_citation_positions_match_final_content():
    deps = _deps(_draft_events())

    result = await generate_draft(_request(), deps)

    for record in result.citations:
        if record.position_start is not None:
            assert result.content[record.position_start:record.position_end] == record.citation_text


@pytest.mark.asyncio
async def test_tools_offered_when_evidence_exists():
    deps = _deps(_draft_events())

    await generate_draft(_request(), deps)

    call = deps.completion_provider.calls[0]
    assert [t["name"] for t in call["tools"]] == ["add_citation"]
    assert call["tool_executor"] is not None


# ----------------------------------------------------------------------
# Simplified path
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_no_evidence_draft_has_no_citations():
    papers = [make_paper(n, abstract=None) for n in range(1, 4)]
    draft = f"## Intro\n\nClaim [CITE:{paper_id(1)}] and [CITE:{paper_id(2)}]."
    deps = _deps(_draft_events(draft), papers=papers, chunk_store=FakeChunkStore())

    result = await generate_draft(_request(), deps)

    call = deps.completion_provider.calls[0]
    assert call["tools"] == []
    assert call["tool_executor"] is None
    assert find_citation_tokens(result.content) == []
    assert result.citations == []
    assert deps.persistence.citations == []
    assert result.analytics["simplified_prompt"] is True
    assert result.analytics["coverage"]["injected_paper_ids"] == []


@pytest.mark.asyncio
async def test_chunk_search_failure_falls_back_to_simplified_prompt():
    chunk_store = FakeChunkStore(
        chunks=[Chunk(paper_id=paper_id(1), content="Evidence.", score=0.9)],
        fail_search=True,
    )
    deps = _deps(_draft_events("## Intro\n\nBody."), chunk_store=chunk_store)

    result = await generate_draft(_request(), deps)

    assert result.analytics["simplified_prompt"] is True
    assert any("Chunk retrieval failed" in w for w in result.analytics["warnings"])
    assert deps.persistence.statuses[-1] == "complete"


# ----------------------------------------------------------------------
# Failures
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_no_papers_is_fatal_before_model_call():
    deps = _deps(_draft_events(), papers=[])

    with pytest.raises(NoPapersFoundError):
        await generate_draft(_request(), deps)

    assert deps.completion_provider.calls == []
    assert deps.persistence.statuses == ["generating", "failed"]
    assert deps.persistence.versions == []


@pytest.mark.asyncio
async def test_stream_error_is_fatal():
    deps = _deps(_draft_events("partial", StreamErrorEvent(error="rate limited")))

    with pytest.raises(CompletionStreamError, match="rate limited"):
        await generate_draft(_request(), deps)

    assert deps.persistence.statuses == ["generating", "failed"]
    assert deps.persistence.versions == []


@pytest.mark.asyncio
async def test_cancellation_marks_project_failed():
    abort = asyncio.Event()
    abort.set()
    deps = _deps(_draft_events())

    with pytest.raises(GenerationCancelledError):
        await generate_draft(_request(), deps, abort_event=abort)

    assert deps.completion_provider.calls == []
    assert deps.persistence.statuses[-1] == "failed"


@pytest.mark.asyncio
async def test_citation_write_failures_are_isolated():
    persistence = FakePersistence(fail_paper_ids={paper_id(1)})
    deps = _deps(_draft_events(), persistence=persistence)

    result = await generate_draft(_request(), deps)

    assert paper_id(1) not in {c.paper_id for c in result.citations}
    assert len(result.analytics["persistence_failures"]) == 1
    assert persistence.versions
    assert persistence.statuses[-1] == "complete"


@pytest.mark.asyncio
async def test_runs_without_persistence():
    deps = _deps(_draft_events())
    deps.persistence = None

    result = await generate_draft(_request(), deps)

    assert result.citations
    assert result.analytics["persistence_failures"] == []


# ----------------------------------------------------------------------
# Citation records
# ----------------------------------------------------------------------


def test_citation_records_one_per_paper():
    papers = [make_paper(1), make_paper(2)]
    content = f"A [CITE:{paper_id(1)}]. B [CITE:{paper_id(1)}]."

    records = build_citation_records(content, papers, injected_ids=set(), tool_cited_ids={paper_id(2)})

    assert [(r.paper_id, r.origin) for r in records] == [
        (paper_id(1), CitationOrigin.TEXT),
        (paper_id(2), CitationOrigin.TOOL),
    ]
    assert records[0].position_start == 2
    assert records[1].position_start is None
