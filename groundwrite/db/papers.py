"""Database operations for candidate papers: lookup, hybrid search and ingestion."""

import asyncio
from typing import Any

from groundwrite.core.embeddings import embed_query, embed_texts
from groundwrite.core.logging import get_logger
from groundwrite.core.schemas_generation import Paper
from groundwrite.db.supabase_client import get_supabase

logger = get_logger(__name__)

PAPER_COLUMNS = "id, title, abstract, authors, venue, year, doi, url, source, citation_count, impact_score"


def _author_names(raw: Any) -> list[str]:
    names = []
    for author in raw or []:
        if isinstance(author, dict):
            name = author.get("name") or author.get("display_name")
        else:
            name = author
        if name:
            names.append(str(name))
    return names


def row_to_paper(row: dict[str, Any]) -> Paper:
    """Map a papers row (or hybrid search row) to a Paper."""
    return Paper(
        id=str(row["id"]),
        title=row.get("title") or "",
        abstract=row.get("abstract"),
        authors=_author_names(row.get("authors")),
        venue=row.get("venue"),
        year=row.get("year"),
        doi=row.get("doi"),
        url=row.get("url"),
        source=row.get("source"),
        citation_count=row.get("citation_count") or 0,
        impact_score=row.get("impact_score") or 0.0,
        semantic_score=row.get("semantic_score"),
        keyword_score=row.get("keyword_score"),
    )


def get_papers_by_ids(ids: list[str]) -> list[Paper]:
    """
    Fetch papers by id, in the order the ids were given.

    Missing ids are skipped.
    """
    if not ids:
        return []

    supabase = get_supabase()
    try:
        response = supabase.table("papers").select(PAPER_COLUMNS).in_("id", ids).execute()
    except Exception as e:
        logger.error(f"Failed to fetch {len(ids)} papers: {e}")
        raise

    by_id = {str(row["id"]): row for row in response.data or []}
    return [row_to_paper(by_id[paper_id]) for paper_id in ids if paper_id in by_id]


def hybrid_search_papers(
    query: str,
    limit: int,
    exclude_ids: list[str] | None = None,
    min_year: int | None = None,
    semantic_weight: float = 0.7,
) -> list[Paper]:
    """
    Search papers by combined vector similarity and full-text rank.

    Args:
        query: Search text
        limit: Max results
        exclude_ids: Paper ids to leave out
        min_year: Earliest publication year
        semantic_weight: Weight of the vector score (keyword weight is 1 - this)

    Returns:
        Papers carrying semantic_score / keyword_score from the search
    """
    supabase = get_supabase()
    query_embedding = embed_query(query)

    try:
        response = supabase.rpc(
            "hybrid_search_papers",
            {
                "query_text": query,
                "query_embedding": query_embedding,
                "match_count": limit,
                "min_year": min_year,
                "semantic_weight": semantic_weight,
                "exclude_paper_ids": exclude_ids or [],
            },
        ).execute()
    except Exception as e:
        logger.error(f"Hybrid paper search failed for '{query}': {e}")
        raise

    papers = [row_to_paper(row) for row in response.data or []]
    logger.info(f"Hybrid search '{query}' returned {len(papers)} papers", extra={"limit": limit})
    return papers


def ingest_paper(paper: dict[str, Any]) -> str:
    """
    Insert (or update by DOI) a paper found through an academic API.

    Returns:
        Id of the stored paper
    """
    supabase = get_supabase()
    text = f"{paper.get('title', '')}\n\n{paper.get('abstract') or ''}".strip()
    embedding = embed_texts([text])[0]

    row = {
        "title": paper.get("title"),
        "abstract": paper.get("abstract"),
        "authors": paper.get("authors") or [],
        "venue": paper.get("venue"),
        "year": paper.get("year"),
        "doi": paper.get("doi"),
        "url": paper.get("url"),
        "pdf_url": paper.get("pdf_url"),
        "source": paper.get("source"),
        "citation_count": paper.get("citation_count") or 0,
        "metadata": paper.get("metadata") or {},
        "embedding": embedding,
    }

    try:
        if row["doi"]:
            response = supabase.table("papers").upsert(row, on_conflict="doi").execute()
        else:
            response = supabase.table("papers").insert(row).execute()
    except Exception as e:
        logger.error(f"Failed to ingest paper '{(row['title'] or '')[:60]}': {e}")
        raise

    if not response.data:
        raise ValueError("No data returned from ingest_paper")

    paper_id = str(response.data[0]["id"])
    logger.info(f"Ingested paper {paper_id} from {row['source']}")
    return paper_id


class SupabasePaperStore:
    """PaperStore backed by the papers table; sync calls run in a worker thread."""

    async def get_papers_by_ids(self, ids: list[str]) -> list[Paper]:
        return await asyncio.to_thread(get_papers_by_ids, ids)

    async def hybrid_search(
        self,
        query: str,
        *,
        limit: int,
        exclude_ids: list[str] | None = None,
        min_year: int | None = None,
        semantic_weight: float = 0.7,
    ) -> list[Paper]:
        return await asyncio.to_thread(
            hybrid_search_papers, query, limit, exclude_ids, min_year, semantic_weight
        )

    async def ingest_paper(self, paper: dict[str, Any]) -> str:
        return await asyncio.to_thread(ingest_paper, paper)
