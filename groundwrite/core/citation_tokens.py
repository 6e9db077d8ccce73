"""Citation-token scanning and line-oriented document structure detection.

Citation tokens are inline markers of the form ``[CITE:<uuid>]``. Matching is
case-insensitive and ids are always compared in lowercase.
"""

import re
from dataclasses import dataclass

CITATION_TOKEN_RE = re.compile(
    r"\[CITE:\s*([0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12})\s*\]",
    re.IGNORECASE,
)

# Leading whitespace is captured so a stripped token does not leave a double space
_STRIPPABLE_TOKEN_RE = re.compile(r"[ \t]*" + CITATION_TOKEN_RE.pattern, re.IGNORECASE)

_HEADING_RE = re.compile(r"^(#{1,6})[ \t]+(.+?)[ \t]*#*[ \t]*$")
_HEADING_NUMBERING_RE = re.compile(r"^(?:[0-9]+(?:\.[0-9]+)*\.?|[ivxlc]+\.)\s+", re.IGNORECASE)

LITERATURE_REVIEW_TITLES = (
    "literature review",
    "review of literature",
    "review of the literature",
    "related work",
    "related works",
    "background and related work",
)

# Used for backfill placement only when no literature review heading exists
BACKGROUND_TITLES = ("background",)

_WORD_RE = re.compile(r"\b[\w'-]+\b")


@dataclass(frozen=True)
class CitationMatch:
    paper_id: str
    start: int
    end: int
    text: str


@dataclass(frozen=True)
class Heading:
    level: int
    title: str
    start: int
    end: int


def format_citation_token(paper_id: str) -> str:
    return f"[CITE:{paper_id.lower()}]"


def find_citation_tokens(content: str) -> list[CitationMatch]:
    """All citation tokens in order of appearance, duplicates included."""
    return [
        CitationMatch(
            paper_id=m.group(1).lower(),
            start=m.start(),
            end=m.end(),
            text=m.group(0),
        )
        for m in CITATION_TOKEN_RE.finditer(content or "")
    ]


def extract_cited_ids(content: str) -> list[str]:
    """Distinct cited paper ids, lowercase, in order of first appearance."""
    seen: dict[str, None] = {}
    for match in find_citation_tokens(content):
        seen.setdefault(match.paper_id, None)
    return list(seen)


def sanitize_citation_tokens(content: str, allowed_ids: set[str]) -> tuple[str, int]:
    """
    Remove tokens for unknown ids and repeated tokens for the same id.

    The first token for each allowed id is kept; every later token for that id
    and every token whose id is not in ``allowed_ids`` is removed.

    Returns:
        Tuple of (sanitized content, number of tokens removed)
    """
    allowed = {paper_id.lower() for paper_id in allowed_ids}
    kept: set[str] = set()
    removed = 0

    def _replace(match: re.Match[str]) -> str:
        nonlocal removed
        paper_id = match.group(1).lower()
        if paper_id in allowed and paper_id not in kept:
            kept.add(paper_id)
            return match.group(0)
        removed += 1
        return ""

    sanitized = _STRIPPABLE_TOKEN_RE.sub(_replace, content or "")
    return sanitized, removed


def strip_citation_tokens(content: str) -> str:
    return _STRIPPABLE_TOKEN_RE.sub("", content or "")


# =============================================================================
# Structure
# =============================================================================


def iter_headings(content: str) -> list[Heading]:
    """Markdown ATX headings with their character offsets."""
    headings: list[Heading] = []
    offset = 0
    for line in (content or "").splitlines(keepends=True):
        match = _HEADING_RE.match(line.rstrip("\r\n"))
        if match:
            headings.append(
                Heading(
                    level=len(match.group(1)),
                    title=match.group(2).strip(),
                    start=offset,
                    end=offset + len(line),
                )
            )
        offset += len(line)
    return headings


def _normalize_heading(title: str) -> str:
    title = _HEADING_NUMBERING_RE.sub("", title.strip())
    title = re.sub(r"[*_:`]", "", title)
    return " ".join(title.lower().split())


def _starts_with_phrase(title: str, phrases: tuple[str, ...]) -> bool:
    return any(title == phrase or title.startswith(phrase + " ") for phrase in phrases)


def _review_heading_rank(title: str) -> int:
    """2 for a literature review heading, 1 for a background heading, else 0."""
    normalized = _normalize_heading(title)
    if _starts_with_phrase(normalized, LITERATURE_REVIEW_TITLES):
        return 2
    if _starts_with_phrase(normalized, BACKGROUND_TITLES):
        return 1
    return 0


def is_literature_review_heading(title: str) -> bool:
    return _review_heading_rank(title) > 0


def find_literature_review_end(content: str) -> int | None:
    """
    Offset where a Literature Review section ends.

    A literature review or related work heading is preferred over a plain
    Background heading. The section runs from its heading to the next heading
    of the same or a higher level, or to the end of the document.

    Returns:
        Character offset of the section end, or None when no such section exists
    """
    headings = iter_headings(content)
    best_rank, index = 0, -1
    for position, candidate in enumerate(headings):
        rank = _review_heading_rank(candidate.title)
        if rank > best_rank:
            best_rank, index = rank, position
    if best_rank == 0:
        return None

    heading = headings[index]
    for following in headings[index + 1:]:
        if following.level <= heading.level:
            return following.start
    return len(content)


def extract_sections(content: str, max_level: int = 3) -> list[str]:
    return [h.title for h in iter_headings(content) if h.level <= max_level]


def current_section(content: str) -> str | None:
    """Title of the last heading written so far."""
    headings = iter_headings(content)
    return headings[-1].title if headings else None


def extract_abstract(content: str) -> str:
    """Body of the Abstract section, or an empty string."""
    headings = iter_headings(content)
    for index, heading in enumerate(headings):
        if _normalize_heading(heading.title) != "abstract":
            continue
        end = headings[index + 1].start if index + 1 < len(headings) else len(content)
        return content[heading.end:end].strip()
    return ""


def count_words(content: str) -> int:
    return len(_WORD_RE.findall(strip_citation_tokens(content)))
