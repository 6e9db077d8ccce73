"""Citation tool implementation."""

import hashlib
import re
from dataclasses import dataclass, field
from typing import Any

from groundwrite.core.citation_tokens import format_citation_token
from groundwrite.core.logging import get_logger
from groundwrite.core.schemas_generation import Paper
from groundwrite.core.schemas_tools import AddCitationInput
from groundwrite.core.stores import CitationStore

logger = get_logger(__name__)

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")


@dataclass
class CitationToolContext:
    """Everything the citation tool needs for one generation run."""

    project_id: str
    papers: list[Paper]
    citation_store: CitationStore | None = None
    _by_id: dict[str, Paper] = field(init=False, repr=False)
    _by_doi: dict[str, Paper] = field(init=False, repr=False)
    _by_title: dict[str, Paper] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._by_id = {p.id.lower(): p for p in self.papers}
        self._by_doi = {normalize_doi(p.doi): p for p in self.papers if p.doi}
        self._by_title = {normalize_title(p.title): p for p in self.papers if p.title}

    def resolve_paper(self, args: AddCitationInput) -> Paper | None:
        """Match cited work to a candidate paper: by id, then DOI, then title."""
        if args.paper_id and args.paper_id.lower() in self._by_id:
            return self._by_id[args.paper_id.lower()]
        if args.doi and normalize_doi(args.doi) in self._by_doi:
            return self._by_doi[normalize_doi(args.doi)]
        return self._by_title.get(normalize_title(args.title))


def normalize_title(title: str) -> str:
    return _NON_ALNUM_RE.sub("", (title or "").lower())


def normalize_doi(doi: str) -> str:
    doi = doi.strip().lower()
    for prefix in ("https://doi.org/", "http://doi.org/", "doi:"):
        if doi.startswith(prefix):
            doi = doi[len(prefix):]
    return doi


def generate_citation_key(title: str, year: int | None = None, doi: str | None = None) -> str:
    """
    Stable key for a cited work.

    The lowercase DOI when present, otherwise the first 16 hex chars of
    SHA-256 over ``<normalized title>_<year or 'unknown'>``.
    """
    if doi:
        return doi.lower()
    hash_input = f"{normalize_title(title)}_{year if year else 'unknown'}"
    return hashlib.sha256(hash_input.encode("utf-8")).hexdigest()[:16]


def _csl_author(name: str) -> dict[str, str]:
    if "," in name:
        family, given = (part.strip() for part in name.split(",", 1))
        return {"family": family, "given": given}
    parts = name.strip().split()
    if len(parts) <= 1:
        return {"family": name.strip()}
    return {"family": parts[-1], "given": " ".join(parts[:-1])}


def to_csl_json(args: AddCitationInput) -> dict[str, Any]:
    """Convert citation tool arguments to a CSL-JSON item, omitting empty fields."""
    csl: dict[str, Any] = {
        "type": "article-journal",
        "title": args.title,
        "author": [_csl_author(name) for name in args.authors],
        "issued": {"date-parts": [[args.year]]} if args.year else None,
        "container-title": args.journal,
        "page": args.pages,
        "volume": args.volume,
        "issue": args.issue,
        "DOI": args.doi,
        "URL": str(args.url) if args.url else None,
        "abstract": args.abstract,
    }
    return {k: v for k, v in csl.items() if v is not None}


async def add_citation(context: CitationToolContext, args: AddCitationInput) -> dict[str, Any]:
    """
    Record a citation for the run's project.

    Args:
        context: Run-scoped citation context
        args: Validated tool arguments

    Returns:
        {success, citationId, citationKey, paperId, token} on success; paperId and
        token are None for works outside the candidate set. {success: False, error}
        when the citation could not be stored.
    """
    paper = context.resolve_paper(args)
    doi = args.doi or (paper.doi if paper else None)
    citation_key = generate_citation_key(args.title, args.year, doi)

    citation_id = None
    if context.citation_store is not None:
        try:
            citation_id = await context.citation_store.upsert_citation(
                context.project_id,
                citation_key,
                to_csl_json(args),
                {
                    "section": args.section,
                    "reason": args.reason,
                    "context": args.context,
                    "paper_id": paper.id if paper else None,
                },
            )
        except Exception as e:
            logger.error(f"Failed to save citation '{args.title[:60]}': {e}", exc_info=True)
            return {"success": False, "error": f"Failed to save citation: {e}"}

    if paper is None:
        logger.info(f"Foundational citation recorded: '{args.title[:60]}' ({citation_key})")

    year = args.year or "n.d."
    return {
        "success": True,
        "citationId": citation_id,
        "citationKey": citation_key,
        "paperId": paper.id if paper else None,
        "token": format_citation_token(paper.id) if paper else None,
        "message": f'Citation added: "{args.title}" ({", ".join(args.authors)}, {year})',
    }
