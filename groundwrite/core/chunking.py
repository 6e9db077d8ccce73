"""Text chunking utilities for synthesized paper excerpts."""

import re

from groundwrite.core.schemas_generation import GENERATION_DEFAULTS, Paper

_WHITESPACE_RE = re.compile(r"\s+")


def segment_text(text: str, max_chars: int = GENERATION_DEFAULTS["CHUNK_SEGMENT_CHARS"]) -> list[str]:
    """
    Split text into segments of roughly ``max_chars`` characters.

    Segments break on whitespace so words are never cut; a single word longer
    than ``max_chars`` becomes its own segment.

    Args:
        text: Text to segment
        max_chars: Target maximum characters per segment

    Returns:
        List of non-empty segments, in order

    Raises:
        ValueError: If max_chars is not positive
    """
    if max_chars <= 0:
        raise ValueError(f"max_chars ({max_chars}) must be positive")

    normalized = _WHITESPACE_RE.sub(" ", text or "").strip()
    if not normalized:
        return []

    segments: list[str] = []
    current: list[str] = []
    current_len = 0

    for word in normalized.split(" "):
        added = len(word) + (1 if current else 0)
        if current and current_len + added > max_chars:
            segments.append(" ".join(current))
            current = [word]
            current_len = len(word)
        else:
            current.append(word)
            current_len += added

    if current:
        segments.append(" ".join(current))

    return segments


def synthesize_paper_chunks(
    paper: Paper,
    max_chars: int = GENERATION_DEFAULTS["CHUNK_SEGMENT_CHARS"],
) -> list[str]:
    """
    Build evidence chunks from a paper's title and abstract.

    Each abstract segment gets the title prepended so it stays attributable
    when retrieved on its own. Papers without an abstract produce no chunks.
    """
    segments = segment_text(paper.abstract or "", max_chars=max_chars)
    return [f"Title: {paper.title}\n\n{segment}" for segment in segments]
