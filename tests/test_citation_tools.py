"""Tests for the citation tool: parsing, dispatch, keys and CSL-JSON."""

import hashlib

import pytest

from groundwrite.chains.citation_tools import (
    AddCitationCall,
    CitationToolContext,
    ToolValidationError,
    build_tool_executor,
    execute_tool,
    generate_citation_key,
    get_tool_definitions,
    parse_tool_call,
    to_csl_json,
)
from groundwrite.core.schemas_tools import AddCitationInput
from tests.fakes.fake_stores import FakeCitationStore, make_paper, paper_id

VALID_ARGS = {
    "title": "Attention Is All You Need",
    "authors": ["Ashish Vaswani", "Shazeer, Noam"],
    "reason": "Introduces the transformer",
    "section": "Introduction",
    "year": 2017,
}


def test_tool_definitions_match_argument_schema():
    (tool,) = get_tool_definitions()

    assert tool["name"] == "add_citation"
    assert set(tool["input_schema"]["required"]) == {"title", "authors", "reason", "section"}
    assert set(tool["input_schema"]["properties"]) == set(AddCitationInput.model_fields)


# ----------------------------------------------------------------------
# Parsing
# ----------------------------------------------------------------------


def test_parse_valid_call():
    call = parse_tool_call("add_citation", VALID_ARGS)

    assert isinstance(call, AddCitationCall)
    assert call.args.year == 2017


def test_parse_unknown_tool():
    with pytest.raises(ToolValidationError, match="Unknown tool"):
        parse_tool_call("delete_everything", {})


@pytest.mark.parametrize(
    "overrides",
    [
        {"title": ""},
        {"authors": []},
        {"reason": None},
        {"section": ""},
        {"year": 1700},
        {"year": 2031},
        {"url": "not a url"},
    ],
)
def test_parse_rejects_invalid_arguments(overrides):
    with pytest.raises(ToolValidationError, match="Invalid add_citation arguments"):
        parse_tool_call("add_citation", {**VALID_ARGS, **overrides})


def test_parse_accepts_optional_url():
    call = parse_tool_call("add_citation", {**VALID_ARGS, "url": "https://example.org/paper"})

    assert str(call.args.url).startswith("https://example.org/paper")


# ----------------------------------------------------------------------
# Keys and CSL
# ----------------------------------------------------------------------


def test_citation_key_prefers_lowercase_doi():
    assert generate_citation_key("Any", 2020, "10.1000/ABC") == "10.1000/abc"


def test_citation_key_hashes_normalized_title_and_year():
    expected = hashlib.sha256(b"attentionisallyouneed_2017").hexdigest()[:16]

    assert generate_citation_key("Attention Is All You Need!", 2017) == expected
    assert generate_citation_key("attention is all you need", 2017) == expected


def test_citation_key_without_year():
    expected = hashlib.sha256(b"sometitle_unknown").hexdigest()[:16]

    assert generate_citation_key("Some Title") == expected


def test_csl_json_conversion():
    csl = to_csl_json(AddCitationInput(**{**VALID_ARGS, "journal": "NeurIPS", "pages": "1-10"}))

    assert csl["type"] == "article-journal"
    assert csl["author"] == [
        {"family": "Vaswani", "given": "Ashish"},
        {"family": "Shazeer", "given": "Noam"},
    ]
    assert csl["issued"] == {"date-parts": [[2017]]}
    assert csl["container-title"] == "NeurIPS"
    assert "DOI" not in csl


# ----------------------------------------------------------------------
# Execution
# ----------------------------------------------------------------------


def _context(store=None) -> CitationToolContext:
    papers = [
        make_paper(1, title="Attention Is All You Need"),
        make_paper(2, title="Other", doi="10.5555/XYZ"),
    ]
    return CitationToolContext(project_id="project-1", papers=papers, citation_store=store)


@pytest.mark.asyncio
async def test_execute_resolves_candidate_by_title():
    store = FakeCitationStore()

    result = await execute_tool(_context(store), "add_citation", VALID_ARGS)

    assert result["success"] is True
    assert result["paperId"] == paper_id(1)
    assert result["token"] == f"[CITE:{paper_id(1)}]"
    assert result["citationId"] == "citation-1"
    assert store.upserts[0]["link"]["paper_id"] == paper_id(1)


@pytest.mark.asyncio
async def test_execute_resolves_candidate_by_doi():
    args = {**VALID_ARGS, "title": "Different title", "doi": "https://doi.org/10.5555/xyz"}

    result = await execute_tool(_context(), "add_citation", args)

    assert result["paperId"] == paper_id(2)


@pytest.mark.asyncio
async def test_execute_prefers_explicit_paper_id():
    args = {**VALID_ARGS, "paper_id": paper_id(2).upper()}

    result = await execute_tool(_context(), "add_citation", args)

    assert result["paperId"] == paper_id(2)


@pytest.mark.asyncio
async def test_foundational_citation_has_no_token():
    args = {**VALID_ARGS, "title": "Computing Machinery and Intelligence", "year": 1950}

    result = await execute_tool(_context(FakeCitationStore()), "add_citation", args)

    assert result["success"] is True
    assert result["paperId"] is None
    assert result["token"] is None


@pytest.mark.asyncio
async def test_invalid_arguments_return_error_result():
    result = await execute_tool(_context(), "add_citation", {"title": "x"})

    assert result["success"] is False
    assert "authors" in result["error"]


@pytest.mark.asyncio
async def test_store_failure_returns_error_result():
    result = await execute_tool(_context(FakeCitationStore(fail=True)), "add_citation", VALID_ARGS)

    assert result == {"success": False, "error": "Failed to save citation: citations table locked"}


@pytest.mark.asyncio
async def test_executors_are_scoped_to_their_context():
    first = build_tool_executor(_context())
    second = build_tool_executor(CitationToolContext(project_id="project-2", papers=[]))

    assert (await first("add_citation", VALID_ARGS))["paperId"] == paper_id(1)
    assert (await second("add_citation", VALID_ARGS))["paperId"] is None
