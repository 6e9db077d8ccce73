"""
Candidate paper collection for a generation run.

Pinned library papers come first. Remaining slots are filled by a hybrid
search over the paper store (topped up from the academic API when the store
comes back short), and, when that is still sparse, by targeted two-term
keyword searches filtered permissively.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import BaseModel, Field

from groundwrite.core.logging import get_logger
from groundwrite.core.schemas_generation import GenerationRequest, Paper, normalize_generation_config
from groundwrite.core.stores import PaperStore
from groundwrite.core.topic_filter import build_keyword_combinations, filter_on_topic

logger = get_logger(__name__)

AcademicSearch = Callable[..., Awaitable[list[dict[str, Any]]]]

SPARSE_RESULT_THRESHOLD = 5


class NoPapersFoundError(Exception):
    """No candidate papers could be collected for the topic."""


class CollectionResult(BaseModel):
    papers: list[Paper] = Field(default_factory=list)
    pinned_count: int = 0
    discovered_count: int = 0
    source_counts: dict[str, int] = Field(default_factory=dict)
    failed_searches: list[str] = Field(default_factory=list)


def _dedupe(papers: list[Paper], seen: set[str]) -> list[Paper]:
    """Papers whose id is not in ``seen``; updates ``seen`` in place."""
    unique: list[Paper] = []
    for paper in papers:
        if paper.id in seen:
            continue
        seen.add(paper.id)
        unique.append(paper)
    return unique


class _Collector:
    """Per-run state for one collect_papers call."""

    def __init__(self, paper_store: PaperStore, academic_search: AcademicSearch | None):
        self.store = paper_store
        self.academic_search = academic_search
        self.failed: list[str] = []
        self.source_counts: dict[str, int] = {}

    async def safe_search(self, label: str, search: Awaitable[list[Any]]) -> list[Any]:
        try:
            return await search
        except Exception as e:
            logger.warning(f"Search '{label}' failed, continuing without it: {e}")
            self.failed.append(label)
            return []

    def count(self, source: str, n: int) -> None:
        self.source_counts[source] = self.source_counts.get(source, 0) + n

    async def academic_fallback(
        self,
        topic: str,
        limit: int,
        from_year: int | None,
        to_year: int | None,
    ) -> list[Paper]:
        """Search the academic API, ingest the hits and read them back from the store."""
        hits = await self.safe_search(
            "academic",
            self.academic_search(topic, limit=limit, from_year=from_year, to_year=to_year),
        )
        if not hits:
            return []

        results = await asyncio.gather(
            *(self.store.ingest_paper(hit) for hit in hits),
            return_exceptions=True,
        )
        paper_ids: list[str] = []
        for hit, result in zip(hits, results):
            if isinstance(result, Exception):
                logger.warning(f"Failed to ingest '{hit.get('title', '')[:60]}': {result}")
                continue
            paper_ids.append(result)

        if not paper_ids:
            return []
        papers = await self.safe_search("academic-lookup", self.store.get_papers_by_ids(paper_ids))
        self.count("academic", len(papers))
        return papers


async def collect_papers(
    request: GenerationRequest,
    paper_store: PaperStore,
    academic_search: AcademicSearch | None = None,
) -> CollectionResult:
    """
    Collect the candidate paper set for a run.

    Args:
        request: Generation request (topic, pinned ids, library-only flag, config)
        paper_store: Store used for lookups, hybrid search and ingestion
        academic_search: Optional academic API search; None disables the fallback

    Returns:
        CollectionResult with pinned papers first, then discovered papers

    Raises:
        NoPapersFoundError: If no paper could be collected
    """
    config = normalize_generation_config(request.config)
    params = config.search_parameters
    topic = request.topic.strip()
    collector = _Collector(paper_store, academic_search)
    seen: set[str] = set()

    pinned: list[Paper] = []
    if request.library_paper_ids:
        found = await collector.safe_search(
            "library", paper_store.get_papers_by_ids(request.library_paper_ids)
        )
        pinned = _dedupe(found, seen)
        collector.count("library", len(pinned))

    slots = params.max_results - len(pinned)
    discovered: list[Paper] = []

    if not request.use_library_only and slots > 0:
        primary = await collector.safe_search(
            "hybrid",
            paper_store.hybrid_search(
                topic,
                limit=slots,
                exclude_ids=list(seen),
                min_year=params.from_year,
                semantic_weight=params.semantic_weight,
            ),
        )
        collector.count("hybrid", len(primary))

        if len(primary) < slots and params.use_academic_fallback and academic_search is not None:
            primary += await collector.academic_fallback(
                topic, slots - len(primary), params.from_year, params.to_year
            )

        discovered = _dedupe(filter_on_topic(primary, topic), seen)

        if len(discovered) < SPARSE_RESULT_THRESHOLD and len(discovered) < slots:
            combinations = build_keyword_combinations(topic)
            logger.info(
                f"Sparse results ({len(discovered)}), running {len(combinations)} targeted searches"
            )
            exclude_ids = list(seen)
            batches = await asyncio.gather(
                *(
                    collector.safe_search(
                        f"targeted:{combo}",
                        paper_store.hybrid_search(
                            combo,
                            limit=slots,
                            exclude_ids=exclude_ids,
                            min_year=params.from_year,
                            semantic_weight=params.semantic_weight,
                        ),
                    )
                    for combo in combinations
                )
            )
            targeted = [paper for batch in batches for paper in batch]
            collector.count("targeted", len(targeted))
            discovered += _dedupe(filter_on_topic(targeted, topic, permissive=True), seen)

        discovered = discovered[:slots]

    papers = pinned + discovered
    if not papers:
        raise NoPapersFoundError(f"No papers found for topic '{topic}'")

    logger.info(
        f"Collected {len(papers)} papers (pinned={len(pinned)}, discovered={len(discovered)}, "
        f"failed_searches={len(collector.failed)})"
    )
    return CollectionResult(
        papers=papers,
        pinned_count=len(pinned),
        discovered_count=len(discovered),
        source_counts=collector.source_counts,
        failed_searches=collector.failed,
    )
