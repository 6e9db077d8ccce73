"""Database operations for paper chunks: existence counts, ingestion and vector search."""

import asyncio
from collections import Counter
from typing import Any

from groundwrite.core.embeddings import embed_query, embed_texts
from groundwrite.core.logging import get_logger
from groundwrite.core.schemas_generation import Chunk, Paper
from groundwrite.db.supabase_client import get_supabase

logger = get_logger(__name__)


def count_paper_chunks(paper_ids: list[str]) -> dict[str, int]:
    """Number of stored chunks per paper id; papers without chunks are absent."""
    if not paper_ids:
        return {}

    supabase = get_supabase()
    try:
        response = (
            supabase.table("paper_chunks")
            .select("paper_id")
            .in_("paper_id", paper_ids)
            .execute()
        )
    except Exception as e:
        logger.error(f"Failed to count chunks for {len(paper_ids)} papers: {e}")
        raise

    return dict(Counter(str(row["paper_id"]) for row in response.data or []))


def insert_paper_chunks(paper: Paper, chunk_texts: list[str]) -> list[dict[str, Any]]:
    """
    Embed and insert chunks for a paper.

    Raises:
        ValueError: If the insert returns no rows
    """
    if not chunk_texts:
        return []

    embeddings = embed_texts(chunk_texts)
    records = [
        {
            "paper_id": paper.id,
            "chunk_index": index,
            "content": text,
            "embedding": embedding,
        }
        for index, (text, embedding) in enumerate(zip(chunk_texts, embeddings, strict=True))
    ]

    supabase = get_supabase()
    try:
        response = supabase.table("paper_chunks").insert(records).execute()
    except Exception as e:
        logger.error(f"Failed to insert chunks for paper {paper.id}: {e}")
        raise

    if not response.data:
        raise ValueError("No data returned from insert_paper_chunks")

    logger.info(f"Inserted {len(response.data)} chunks for paper {paper.id}")
    return response.data


def search_paper_chunks(
    query: str,
    paper_ids: list[str],
    limit: int,
    min_score: float,
) -> list[Chunk]:
    """Vector search over the chunks of the given papers, best match first."""
    supabase = get_supabase()
    query_embedding = embed_query(query)

    try:
        response = supabase.rpc(
            "match_paper_chunks",
            {
                "query_embedding": query_embedding,
                "filter_paper_ids": paper_ids,
                "match_count": limit,
                "min_score": min_score,
            },
        ).execute()
    except Exception as e:
        logger.error(f"Failed to search paper chunks: {e}")
        raise

    chunks = [
        Chunk(paper_id=str(row["paper_id"]), content=row.get("content") or "", score=row.get("score"))
        for row in response.data or []
    ]
    logger.info(
        f"Found {len(chunks)} matching chunks",
        extra={"match_count": limit, "min_score": min_score},
    )
    return chunks


class SupabaseChunkStore:
    """ChunkStore backed by the paper_chunks table."""

    async def search_chunks(
        self,
        query: str,
        *,
        paper_ids: list[str],
        limit: int,
        min_score: float,
    ) -> list[Chunk]:
        return await asyncio.to_thread(search_paper_chunks, query, paper_ids, limit, min_score)

    async def ingest_chunks(self, paper: Paper, chunk_texts: list[str]) -> None:
        await asyncio.to_thread(insert_paper_chunks, paper, chunk_texts)

    async def count_chunks(self, paper_ids: list[str]) -> dict[str, int]:
        return await asyncio.to_thread(count_paper_chunks, paper_ids)
