"""
Post-generation citation audit and evidence-backed backfill.

The enforcer sanitizes citation tokens, measures how many candidate papers the
draft cites, and injects one evidence sentence per uncited paper (best chunk
score first) until the configured minimum is reached or evidence runs out.
Injected sentences go at the end of the Literature Review section when one
exists, otherwise at the end of the document.
"""

import math
import re

from pydantic import BaseModel, Field

from groundwrite.core.citation_tokens import (
    extract_cited_ids,
    find_literature_review_end,
    format_citation_token,
    sanitize_citation_tokens,
    strip_citation_tokens,
)
from groundwrite.core.logging import get_logger
from groundwrite.core.schemas_generation import Chunk, GenerationConfig, Paper

logger = get_logger(__name__)

_TITLE_PREFIX_RE = re.compile(r"^\s*Title:[^\n]*\n+", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")


class EnforcementReport(BaseModel):
    """Outcome of one enforcement pass."""

    content: str
    min_citations: int
    initial_cited: int
    final_cited: int
    cited_paper_ids: list[str] = Field(default_factory=list)
    injected_paper_ids: list[str] = Field(default_factory=list)
    skipped_no_evidence: list[str] = Field(default_factory=list)
    stripped_tokens: int = 0
    insertion_point: str | None = Field(
        default=None, description="'literature_review' or 'end' when anything was injected"
    )

    @property
    def coverage_met(self) -> bool:
        return self.final_cited >= self.min_citations

    def to_analytics(self) -> dict:
        data = self.model_dump(exclude={"content"})
        data["coverage_met"] = self.coverage_met
        return data


def _merge_ids(token_ids: list[str], tool_ids: set[str]) -> list[str]:
    return list(dict.fromkeys([*token_ids, *sorted(tool_ids)]))


def required_citation_count(paper_count: int, floor: int, coverage: float) -> int:
    return max(floor, math.ceil(paper_count * coverage))


def best_chunks_by_paper(chunks: list[Chunk]) -> dict[str, Chunk]:
    """Highest-scoring chunk per paper id (lowercase). Unscored chunks rank lowest."""
    best: dict[str, Chunk] = {}
    for chunk in chunks:
        if not chunk.content or not chunk.content.strip():
            continue
        key = chunk.paper_id.lower()
        current = best.get(key)
        if current is None or (chunk.score or 0.0) > (current.score or 0.0):
            best[key] = chunk
    return best


def clean_snippet(text: str, max_length: int) -> str:
    """
    Excerpt text fit for inline quotation.

    Drops a synthesized ``Title:`` line, citation tokens and extra whitespace,
    then truncates on a word boundary.
    """
    text = _TITLE_PREFIX_RE.sub("", text or "")
    text = strip_citation_tokens(text)
    text = _WHITESPACE_RE.sub(" ", text).strip().replace('"', "'")

    if len(text) <= max_length:
        return text.rstrip(" .")

    cut = text[:max_length]
    space = cut.rfind(" ")
    if space > 0:
        cut = cut[:space]
    return cut.rstrip(" ,;:.") + "..."


def _surname(name: str) -> str:
    # "Last, First" names carry the family name before the comma
    if "," in name:
        return name.split(",", 1)[0].strip() or name.strip()
    parts = name.split()
    return parts[-1] if parts else name


def _attribution(paper: Paper) -> tuple[str, str]:
    """Attribution phrase and the verb that agrees with it."""
    year = paper.year if paper.year else "n.d."
    if not paper.authors:
        return f'"{paper.title}" ({year})', "reports"
    surname = _surname(paper.authors[0])
    if len(paper.authors) > 1:
        return f"{surname} et al. ({year})", "report"
    return f"{surname} ({year})", "reports"


def build_evidence_sentence(paper: Paper, chunk: Chunk, max_length: int) -> str:
    snippet = clean_snippet(chunk.content, max_length)
    subject, verb = _attribution(paper)
    return f'{subject} {verb} that "{snippet}" {format_citation_token(paper.id)}.'


def _insert_sentence(content: str, sentence: str) -> tuple[str, str]:
    section_end = find_literature_review_end(content)
    if section_end is None or section_end >= len(content.rstrip()):
        where = "literature_review" if section_end is not None else "end"
        return f"{content.rstrip()}\n\n{sentence}\n", where

    before = content[:section_end].rstrip()
    after = content[section_end:].lstrip("\n")
    return f"{before}\n\n{sentence}\n\n{after}", "literature_review"


def enforce_citation_coverage(
    content: str,
    papers: list[Paper],
    chunks: list[Chunk],
    config: GenerationConfig,
    tool_cited_ids: set[str] | None = None,
) -> EnforcementReport:
    """
    Audit citation coverage and backfill evidence-backed citations.

    Args:
        content: Generated draft
        papers: Candidate papers of the run
        chunks: Retrieved evidence chunks
        config: Normalized generation config
        tool_cited_ids: Candidate ids already cited through the citation tool;
            they count toward coverage and are never injected

    Returns:
        EnforcementReport with the updated content. Running the enforcer on its
        own output never adds a second token for a paper.
    """
    settings = config.paper_settings
    papers_by_id = {paper.id.lower(): paper for paper in papers}

    content, stripped = sanitize_citation_tokens(content, set(papers_by_id))
    if stripped:
        logger.warning(f"Removed {stripped} invalid or repeated citation tokens")

    tool_cited = {pid.lower() for pid in tool_cited_ids or ()} & set(papers_by_id)
    cited = set(extract_cited_ids(content)) | tool_cited
    initial_cited = len(cited)
    min_citations = required_citation_count(
        len(papers), settings.min_citation_floor, settings.min_citation_coverage
    )

    report = EnforcementReport(
        content=content,
        min_citations=min_citations,
        initial_cited=initial_cited,
        final_cited=initial_cited,
        stripped_tokens=stripped,
    )

    if initial_cited >= min_citations:
        report.cited_paper_ids = _merge_ids(extract_cited_ids(content), tool_cited)
        return report

    best = best_chunks_by_paper(chunks)
    uncited = [paper_id for paper_id in papers_by_id if paper_id not in cited]
    evidenced = [paper_id for paper_id in uncited if paper_id in best]
    report.skipped_no_evidence = [paper_id for paper_id in uncited if paper_id not in best]

    evidenced.sort(key=lambda paper_id: best[paper_id].score or 0.0, reverse=True)
    deficit = min_citations - initial_cited

    for paper_id in evidenced[:deficit]:
        # Earlier injections mutate the buffer; re-scan before each one
        if paper_id in extract_cited_ids(content):
            continue
        sentence = build_evidence_sentence(
            papers_by_id[paper_id], best[paper_id], settings.evidence_snippet_length
        )
        content, report.insertion_point = _insert_sentence(content, sentence)
        cited.add(paper_id)
        report.injected_paper_ids.append(paper_id)

    report.content = content
    report.cited_paper_ids = _merge_ids(extract_cited_ids(content), tool_cited)
    report.final_cited = len(report.cited_paper_ids)

    logger.info(
        f"Citation coverage {initial_cited} -> {report.final_cited} "
        f"(min={min_citations}, injected={len(report.injected_paper_ids)}, "
        f"no_evidence={len(report.skipped_no_evidence)})"
    )
    if not report.coverage_met:
        logger.warning(
            f"Citation coverage below minimum: {report.final_cited}/{min_citations} "
            f"({len(report.skipped_no_evidence)} papers lack evidence)"
        )
    return report
