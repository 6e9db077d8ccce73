"""Evidence chunk retrieval with lazy chunk synthesis for uncovered papers."""

import math

from pydantic import BaseModel, Field

from groundwrite.core.chunking import synthesize_paper_chunks
from groundwrite.core.logging import get_logger
from groundwrite.core.schemas_generation import (
    GENERATION_DEFAULTS,
    Chunk,
    GenerationConfig,
    Paper,
    get_chunk_limit,
)
from groundwrite.core.stores import ChunkStore

logger = get_logger(__name__)

MIN_CHUNKS_PER_PAPER_CAP = 10


class ChunkRetrievalError(Exception):
    """The excerpt search for a run failed."""


class ChunkRetrievalResult(BaseModel):
    chunks: list[Chunk] = Field(default_factory=list)
    ingested_paper_ids: list[str] = Field(default_factory=list)
    failed_ingest_ids: list[str] = Field(default_factory=list)
    min_score: float = GENERATION_DEFAULTS["CHUNK_MIN_SCORE"]
    limit: int = 0


def balance_chunks(chunks: list[Chunk], limit: int, paper_count: int) -> list[Chunk]:
    """
    Cap chunks per paper and drop repeated contents, keeping search order.

    Each paper keeps at most ``max(10, ceil(limit / paper_count))`` chunks so a
    few well-covered papers cannot crowd out the rest.
    """
    per_paper = max(MIN_CHUNKS_PER_PAPER_CAP, math.ceil(limit / max(paper_count, 1)))
    counts: dict[str, int] = {}
    seen_content: set[str] = set()
    balanced: list[Chunk] = []

    for chunk in chunks:
        key = " ".join(chunk.content.split())
        if not key or key in seen_content:
            continue
        if counts.get(chunk.paper_id, 0) >= per_paper:
            continue
        seen_content.add(key)
        counts[chunk.paper_id] = counts.get(chunk.paper_id, 0) + 1
        balanced.append(chunk)

    return balanced[:limit]


async def ensure_paper_chunks(papers: list[Paper], chunk_store: ChunkStore) -> tuple[list[str], list[str]]:
    """
    Synthesize and ingest chunks for papers that have none.

    Returns:
        Tuple of (ingested paper ids, paper ids whose ingestion failed)
    """
    counts = await chunk_store.count_chunks([paper.id for paper in papers])
    ingested: list[str] = []
    failed: list[str] = []

    for paper in papers:
        if counts.get(paper.id, 0) > 0:
            continue
        texts = synthesize_paper_chunks(paper, GENERATION_DEFAULTS["CHUNK_SEGMENT_CHARS"])
        if not texts:
            continue
        try:
            await chunk_store.ingest_chunks(paper, texts)
            ingested.append(paper.id)
        except Exception as e:
            logger.warning(f"Chunk ingestion failed for paper {paper.id}: {e}")
            failed.append(paper.id)

    if ingested:
        logger.info(f"Ingested synthesized chunks for {len(ingested)} papers")
    return ingested, failed


async def retrieve_chunks(
    topic: str,
    papers: list[Paper],
    config: GenerationConfig,
    chunk_store: ChunkStore,
) -> ChunkRetrievalResult:
    """
    Retrieve evidence excerpts for the candidate papers.

    Args:
        topic: Search query
        papers: Candidate papers
        config: Normalized generation config
        chunk_store: Chunk store

    Returns:
        ChunkRetrievalResult with balanced chunks

    Raises:
        ChunkRetrievalError: If the chunk count or excerpt search fails
    """
    if not papers:
        return ChunkRetrievalResult()

    try:
        ingested, failed = await ensure_paper_chunks(papers, chunk_store)
    except Exception as e:
        raise ChunkRetrievalError(f"Chunk availability check failed: {e}") from e

    min_score = (
        GENERATION_DEFAULTS["CHUNK_MIN_SCORE_FRESH"]
        if ingested
        else GENERATION_DEFAULTS["CHUNK_MIN_SCORE"]
    )
    limit = get_chunk_limit(config.paper_settings.length)

    try:
        raw = await chunk_store.search_chunks(
            topic,
            paper_ids=[paper.id for paper in papers],
            limit=limit,
            min_score=min_score,
        )
    except Exception as e:
        raise ChunkRetrievalError(f"Chunk search failed: {e}") from e

    chunks = balance_chunks(raw, limit, len(papers))
    logger.info(
        f"Retrieved {len(chunks)} chunks ({len(raw)} raw) for {len(papers)} papers "
        f"(limit={limit}, min_score={min_score})"
    )
    return ChunkRetrievalResult(
        chunks=chunks,
        ingested_paper_ids=ingested,
        failed_ingest_ids=failed,
        min_score=min_score,
        limit=limit,
    )
