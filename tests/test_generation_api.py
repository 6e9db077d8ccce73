"""Tests for the draft generation endpoint.

Runs the real pipeline behind FastAPI TestClient with in-memory stores
substituted through dependency overrides.
"""

import json

import pytest
from fastapi.testclient import TestClient

from groundwrite.api.generate import build_generation_dependencies
from groundwrite.core.generation_pipeline import GenerationDependencies
from groundwrite.core.schemas_generation import Chunk
from groundwrite.core.schemas_tools import StreamErrorEvent, TextDeltaEvent
from groundwrite.main import app
from tests.fakes.fake_stores import (
    FakeChunkStore,
    FakePaperStore,
    FakePersistence,
    ScriptedCompletionProvider,
    make_paper,
    paper_id,
    text_deltas,
)

PROJECT_ID = "7d0f6c1e-2f1b-4d7a-9a51-0e0a3c6f1b22"

DRAFT = (
    "## Abstract\n\nWhy graphs matter.\n\n"
    f"## Literature Review\n\nPrior work [CITE:{paper_id(1)}].\n"
)


def parse_sse_events(text: str) -> list[dict]:
    """Parse SSE response body into a list of event dicts."""
    events = []
    for line in text.strip().split("\n"):
        line = line.strip()
        if line.startswith("data: "):
            events.append(json.loads(line[6:]))
    return events


def _deps(events, papers=None) -> GenerationDependencies:
    papers = papers if papers is not None else [make_paper(1), make_paper(2)]
    return GenerationDependencies(
        paper_store=FakePaperStore(papers=papers),
        chunk_store=FakeChunkStore(
            chunks=[Chunk(paper_id=p.id, content=f"Evidence from {p.title}.", score=0.8) for p in papers]
        ),
        completion_provider=ScriptedCompletionProvider(events),
        persistence=FakePersistence(),
    )


@pytest.fixture
def client():
    yield TestClient(app)
    app.dependency_overrides.clear()


def _post(client, deps, **body):
    app.dependency_overrides[build_generation_dependencies] = lambda: deps
    payload = {
        "topic": "graph learning",
        "library_paper_ids": [paper_id(1), paper_id(2)],
        "use_library_only": True,
        "config": {"paper_settings": {"min_citation_floor": 2}},
    }
    payload.update(body)
    return client.post(f"/v1/projects/{PROJECT_ID}/generate", json=payload)


def test_generate_streams_progress_then_result(client):
    deps = _deps([TextDeltaEvent(text=t) for t in text_deltas(DRAFT)])

    resp = _post(client, deps)

    assert resp.status_code == 200
    assert "text/event-stream" in resp.headers.get("content-type", "")
    assert resp.headers.get("cache-control") == "no-cache"

    events = parse_sse_events(resp.text)
    types = [e["type"] for e in events]
    assert types[-1] == "result"
    assert set(types[:-1]) == {"progress"}
    assert events[0]["stage"] == "searching"

    result = events[-1]["result"]
    assert {c["paper_id"] for c in result["citations"]} == {paper_id(1), paper_id(2)}
    assert result["structure"]["abstract"] == "Why graphs matter."
    assert deps.persistence.statuses == ["generating", "complete"]


def test_progress_events_omit_partial_content(client):
    deps = _deps([TextDeltaEvent(text=t) for t in text_deltas("y" * 1000)])

    events = parse_sse_events(_post(client, deps).text)

    progress = [e for e in events if e["type"] == "progress"]
    assert all("content" not in e for e in progress)
    assert [e["progress"] for e in progress] == sorted(e["progress"] for e in progress)


def test_no_papers_reports_error_event(client):
    deps = _deps([TextDeltaEvent(text="never")], papers=[])

    events = parse_sse_events(_post(client, deps).text)

    assert events[-1]["type"] == "error"
    assert events[-1]["code"] == "no_papers"
    assert deps.completion_provider.calls == []


def test_stream_failure_reports_error_event(client):
    deps = _deps([TextDeltaEvent(text="partial"), StreamErrorEvent(error="overloaded")])

    events = parse_sse_events(_post(client, deps).text)

    assert events[-1] == {"type": "error", "code": "generation_failed", "message": "overloaded"}
    assert deps.persistence.statuses[-1] == "failed"


def test_empty_topic_rejected(client):
    resp = _post(client, _deps([]), topic="")

    assert resp.status_code == 422
