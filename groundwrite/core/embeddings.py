"""OpenAI embeddings for paper and chunk search."""

import asyncio

from openai import OpenAI

from groundwrite.core.config import get_settings
from groundwrite.core.logging import get_logger

logger = get_logger(__name__)

EMBEDDING_BATCH_SIZE = 100


def _get_client() -> OpenAI:
    settings = get_settings()
    return OpenAI(api_key=settings.OPENAI_API_KEY)


def embed_texts(texts: list[str], batch_size: int = EMBEDDING_BATCH_SIZE) -> list[list[float]]:
    """
    Embed texts in batches, preserving input order.

    Args:
        texts: Texts to embed
        batch_size: Texts per API request

    Returns:
        One embedding vector per input text

    Raises:
        ValueError: If a vector's dimension doesn't match EMBEDDING_DIM
    """
    if not texts:
        return []

    settings = get_settings()
    client = _get_client()
    embeddings: list[list[float]] = []

    for start in range(0, len(texts), batch_size):
        batch = texts[start:start + batch_size]
        try:
            response = client.embeddings.create(model=settings.EMBEDDING_MODEL, input=batch)
        except Exception as e:
            logger.error(f"Embedding request failed for batch at {start}: {e}")
            raise

        for offset, item in enumerate(response.data):
            if len(item.embedding) != settings.EMBEDDING_DIM:
                raise ValueError(
                    f"Embedding dimension mismatch for text {start + offset}: "
                    f"expected {settings.EMBEDDING_DIM}, got {len(item.embedding)}"
                )
            embeddings.append(item.embedding)

    logger.info(
        f"Generated {len(embeddings)} embeddings using {settings.EMBEDDING_MODEL}",
        extra={"model": settings.EMBEDDING_MODEL, "count": len(embeddings)},
    )
    return embeddings


def embed_query(query: str) -> list[float]:
    return embed_texts([query])[0]


async def embed_texts_async(texts: list[str]) -> list[list[float]]:
    return await asyncio.to_thread(embed_texts, texts)


async def embed_query_async(query: str) -> list[float]:
    return await asyncio.to_thread(embed_query, query)
