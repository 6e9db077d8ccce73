"""OpenAlex search used as the academic-API fallback during paper discovery."""

from typing import Any

import httpx

from groundwrite.core.config import get_settings
from groundwrite.core.logging import get_logger

logger = get_logger(__name__)

OPENALEX_MAX_PER_PAGE = 50


def reconstruct_abstract(inverted_index: dict[str, list[int]] | None) -> str:
    """Rebuild plain abstract text from OpenAlex's inverted-index format."""
    if not inverted_index:
        return ""
    positions: list[tuple[int, str]] = []
    for word, offsets in inverted_index.items():
        for offset in offsets:
            positions.append((offset, word))
    positions.sort()
    return " ".join(word for _, word in positions)


def _normalize_work(work: dict[str, Any]) -> dict[str, Any]:
    authors = [
        a["author"]["display_name"]
        for a in work.get("authorships") or []
        if (a.get("author") or {}).get("display_name")
    ]
    doi = work.get("doi") or None
    if doi:
        doi = doi.removeprefix("https://doi.org/")

    location = work.get("primary_location") or {}
    venue = (location.get("source") or {}).get("display_name")
    best_oa = work.get("best_oa_location") or {}

    return {
        "title": work.get("title") or work.get("display_name") or "",
        "abstract": reconstruct_abstract(work.get("abstract_inverted_index")),
        "authors": authors,
        "year": work.get("publication_year"),
        "venue": venue,
        "doi": doi,
        "url": location.get("landing_page_url") or work.get("id"),
        "pdf_url": best_oa.get("pdf_url"),
        "source": "openalex",
        "citation_count": work.get("cited_by_count") or 0,
        "metadata": {"openalex_id": work.get("id")},
    }


async def search_openalex(
    query: str,
    limit: int = 10,
    from_year: int | None = None,
    to_year: int | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> list[dict[str, Any]]:
    """
    Search OpenAlex works for a query.

    Args:
        query: Free-text search query
        limit: Max results (capped at one page)
        from_year: Optional earliest publication year
        to_year: Optional latest publication year
        transport: Optional httpx transport (tests)

    Returns:
        List of normalized paper metadata dicts, ready for PaperStore.ingest_paper.
        Works without a title are skipped.

    Raises:
        httpx.HTTPStatusError: If the API request fails
    """
    settings = get_settings()

    filters = []
    if from_year:
        filters.append(f"from_publication_date:{from_year}-01-01")
    if to_year:
        filters.append(f"to_publication_date:{to_year}-12-31")

    params: dict[str, Any] = {
        "search": query,
        "per-page": max(1, min(limit, OPENALEX_MAX_PER_PAGE)),
        "sort": "relevance_score:desc",
    }
    if filters:
        params["filter"] = ",".join(filters)
    if settings.OPENALEX_MAILTO:
        params["mailto"] = settings.OPENALEX_MAILTO

    async with httpx.AsyncClient(
        base_url=settings.OPENALEX_BASE_URL,
        timeout=settings.ACADEMIC_SEARCH_TIMEOUT,
        transport=transport,
    ) as client:
        logger.info(f"OpenAlex search: '{query}' (limit={limit})")
        response = await client.get("/works", params=params)
        response.raise_for_status()
        data = response.json()

    papers = [_normalize_work(work) for work in data.get("results", [])]
    papers = [p for p in papers if p["title"]]

    logger.info(f"OpenAlex returned {len(papers)} works for '{query}'")
    return papers
