"""System and user prompt assembly for draft generation."""

import json
from typing import Any

from groundwrite.core.schemas_generation import (
    LENGTH_BANDS,
    Chunk,
    CitationStyle,
    GenerationConfig,
    Paper,
    PaperStyle,
)

# ruff: noqa: E501

MAX_EXCERPT_CHARS = 600
MAX_EXCERPTS_PER_PAPER = 3

CITATION_STYLE_NOTES: dict[CitationStyle, str] = {
    CitationStyle.APA: "The bibliography will be rendered in APA style; write prose that reads naturally with author-date references.",
    CitationStyle.MLA: "The bibliography will be rendered in MLA style; write prose that reads naturally with author-page references.",
    CitationStyle.CHICAGO: "The bibliography will be rendered in Chicago style; write prose that reads naturally with author-date references.",
    CitationStyle.IEEE: "The bibliography will be rendered in IEEE style; citations become numbered references, so never refer to sources by number yourself.",
}

STYLE_DESCRIPTIONS: dict[PaperStyle, str] = {
    PaperStyle.ACADEMIC: "an original academic research paper",
    PaperStyle.REVIEW: "a critical literature review",
    PaperStyle.SURVEY: "a structured survey of the field",
}

CITATION_CONTRACT = """CITATION RULES:
1. ONLY CITE PROVIDED PAPERS. You may only cite the papers listed in the user message.
2. Cite a provided paper by writing its token verbatim: [CITE:<paper id>]. Use the exact id from the paper list.
3. NEVER invent authors, publication years, titles, venues, DOIs or sources.
4. NEVER write author-year citations such as "Smith (2020)" yourself; the token is the only citation marker.
5. FOUNDATIONAL CONCEPTS ONLY: when a widely-known foundational concept needs a source that is not in the list, call the add_citation tool. Do not use the tool to cite anything else."""

SIMPLIFIED_CONTRACT = """SOURCE RULES:
1. Ground the discussion in the papers listed in the user message.
2. No excerpt text is available, so do not quote or attribute specific findings.
3. NEVER invent authors, publication years, titles, venues, DOIs or sources.
4. Do not write citation markers of any kind."""


def _structure_rules(config: GenerationConfig) -> list[str]:
    settings = config.paper_settings
    rules = [
        "Write in Markdown with '#' headings for the title and '##' headings for sections.",
        "Begin with a '## Abstract' section, then an introduction that defines the key concepts.",
        "Include a '## Literature Review' section that synthesizes the provided papers.",
    ]
    if settings.include_methodology:
        rules.append("Include a '## Methodology' section describing the research approaches found in the papers.")
    if settings.include_future:
        rules.append("Include a '## Future Work' section before the conclusion.")
    rules.append("End with a '## Conclusion' section. Do not write a references list.")
    return rules


def build_system_prompt(config: GenerationConfig, simplified: bool = False) -> str:
    """
    Build the system prompt for a generation run.

    Args:
        config: Normalized generation config
        simplified: True when no excerpts are available; drops the tool exception

    Returns:
        System prompt text
    """
    settings = config.paper_settings
    lines = [
        f"You are an expert academic writer. Write {STYLE_DESCRIPTIONS[settings.style]}.",
        "",
        f"LENGTH: {LENGTH_BANDS[settings.length.value]}.",
        "",
        SIMPLIFIED_CONTRACT if simplified else CITATION_CONTRACT,
        "",
        "STRUCTURE:",
        *[f"- {rule}" for rule in _structure_rules(config)],
    ]
    if not simplified:
        lines += ["", f"CITATION STYLE: {CITATION_STYLE_NOTES[settings.citation_style]}"]
    lines += ["", "Use precise academic language and show connections across the provided papers."]
    return "\n".join(lines)


def _paper_payload(paper: Paper) -> dict[str, Any]:
    return {
        "id": paper.id,
        "title": paper.title,
        "authors": paper.authors,
        "year": paper.year,
        "venue": paper.venue,
        "doi": paper.doi,
    }


def group_excerpts(chunks: list[Chunk], paper_ids: set[str]) -> dict[str, list[str]]:
    """Excerpts per paper id, truncated and capped per paper. Unknown ids are dropped."""
    # Chunk ids may differ in case from paper ids; results are keyed by the paper id
    canonical_ids = {pid.lower(): pid for pid in paper_ids}
    grouped: dict[str, list[str]] = {}
    for chunk in chunks:
        pid = canonical_ids.get(chunk.paper_id.lower())
        if pid is None:
            continue
        excerpts = grouped.setdefault(pid, [])
        if len(excerpts) >= MAX_EXCERPTS_PER_PAPER:
            continue
        content = chunk.content.strip()
        if len(content) > MAX_EXCERPT_CHARS:
            content = content[:MAX_EXCERPT_CHARS].rstrip() + "..."
        excerpts.append(content)
    return grouped


def build_user_prompt(
    topic: str,
    papers: list[Paper],
    chunks: list[Chunk],
    config: GenerationConfig,
) -> str:
    """
    Build the user prompt: topic, paper metadata, grouped excerpts, instructions.

    The citation contract is repeated here as well as in the system prompt.
    """
    paper_ids = {paper.id for paper in papers}
    payload = {
        "topic": topic,
        "papers": [_paper_payload(paper) for paper in papers],
        "excerpts": group_excerpts(chunks, paper_ids),
        "instructions": [
            "Cite only the papers listed above, using [CITE:<paper id>] with the exact id.",
            "Support every factual claim with a citation to a paper whose excerpts back it.",
            "Never invent authors, years, titles or DOIs.",
            "Use the add_citation tool only for foundational concepts absent from the list.",
            f"Aim to cite at least {config.paper_settings.min_citation_floor} different papers.",
        ],
    }
    return (
        f"Write the paper on the topic below using the provided sources.\n\n"
        f"{json.dumps(payload, indent=2, ensure_ascii=False)}"
    )


def build_simplified_user_prompt(topic: str, papers: list[Paper], config: GenerationConfig) -> str:
    """User prompt for runs without excerpts: paper metadata only, no citation markers."""
    payload = {
        "topic": topic,
        "papers": [_paper_payload(paper) for paper in papers],
        "instructions": [
            "Ground the discussion in the papers listed above.",
            "Do not write citation markers.",
            "Never invent authors, years, titles or DOIs.",
            f"Follow the {config.paper_settings.style.value} format.",
        ],
    }
    return (
        f"Write the paper on the topic below.\n\n"
        f"{json.dumps(payload, indent=2, ensure_ascii=False)}"
    )
