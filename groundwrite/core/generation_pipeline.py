"""
End-to-end draft generation.

    collect papers -> retrieve chunks -> assemble prompts -> stream
        -> enforce citation coverage -> extract structure -> persist

No papers, stream errors and cancellation are fatal. Chunk retrieval failure
falls back to the simplified prompt path, and individual citation writes fail
in isolation.
"""

import asyncio
import inspect
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from groundwrite.chains.citation_tools import (
    CitationToolContext,
    build_tool_executor,
    get_tool_definitions,
)
from groundwrite.core.chunk_retriever import ChunkRetrievalError, retrieve_chunks
from groundwrite.core.citation_integrity import enforce_citation_coverage
from groundwrite.core.citation_tokens import (
    count_words,
    extract_abstract,
    extract_sections,
    find_citation_tokens,
    format_citation_token,
    sanitize_citation_tokens,
)
from groundwrite.core.config import get_settings
from groundwrite.core.logging import get_logger, log_with_context
from groundwrite.core.paper_collector import AcademicSearch, collect_papers
from groundwrite.core.prompt_assembler import (
    build_simplified_user_prompt,
    build_system_prompt,
    build_user_prompt,
)
from groundwrite.core.schemas_generation import (
    Chunk,
    CitationOrigin,
    CitationRecord,
    DocumentStructure,
    GenerationProgress,
    GenerationRequest,
    GenerationResult,
    Paper,
    ProjectStatus,
    get_max_tokens,
    get_target_chars,
    normalize_generation_config,
)
from groundwrite.core.stores import (
    ChunkStore,
    CitationStore,
    CompletionProvider,
    PaperStore,
    PersistenceAdapter,
)
from groundwrite.core.streaming_generator import StreamingGenerator, StreamOutcome

logger = get_logger(__name__)

ProgressCallback = Callable[[GenerationProgress], Awaitable[None] | None]

DRAFT_VERSION_NUMBER = 1

# Overall progress band covered by the writing stage
WRITING_PROGRESS_START = 25.0
WRITING_PROGRESS_SPAN = 60.0


@dataclass
class GenerationDependencies:
    """External collaborators for a generation run."""

    paper_store: PaperStore
    chunk_store: ChunkStore
    completion_provider: CompletionProvider
    persistence: PersistenceAdapter | None = None
    citation_store: CitationStore | None = None
    academic_search: AcademicSearch | None = None


async def _emit(
    on_progress: ProgressCallback | None,
    stage: str,
    progress: float,
    message: str,
    content: str | None = None,
) -> None:
    if on_progress is None:
        return
    result = on_progress(
        GenerationProgress(stage=stage, progress=progress, message=message, content=content)
    )
    if inspect.isawaitable(result):
        await result


def _scaled_writing_progress(on_progress: ProgressCallback | None) -> ProgressCallback | None:
    if on_progress is None:
        return None

    async def _forward(update: GenerationProgress) -> None:
        overall = WRITING_PROGRESS_START + update.progress / 100 * WRITING_PROGRESS_SPAN
        await _emit(on_progress, update.stage, round(overall, 1), update.message, update.content)

    return _forward


def build_citation_records(
    content: str,
    papers: list[Paper],
    injected_ids: set[str],
    tool_cited_ids: set[str],
) -> list[CitationRecord]:
    """
    One record per cited paper: tokens in the text first, then tool citations
    whose token the model never wrote.
    """
    papers_by_id = {paper.id.lower(): paper for paper in papers}
    records: list[CitationRecord] = []
    seen: set[str] = set()

    for match in find_citation_tokens(content):
        paper = papers_by_id.get(match.paper_id)
        if paper is None or match.paper_id in seen:
            continue
        seen.add(match.paper_id)
        if match.paper_id in injected_ids:
            origin = CitationOrigin.INJECTED
        elif match.paper_id in tool_cited_ids:
            origin = CitationOrigin.TOOL
        else:
            origin = CitationOrigin.TEXT
        records.append(
            CitationRecord(
                paper_id=paper.id,
                citation_text=match.text,
                position_start=match.start,
                position_end=match.end,
                origin=origin,
            )
        )

    for paper_id in sorted(tool_cited_ids - seen):
        paper = papers_by_id.get(paper_id)
        if paper is None:
            continue
        records.append(
            CitationRecord(
                paper_id=paper.id,
                citation_text=format_citation_token(paper.id),
                origin=CitationOrigin.TOOL,
            )
        )
    return records


async def _persist(
    deps: GenerationDependencies,
    project_id: str,
    content: str,
    records: list[CitationRecord],
    run_id: str,
) -> tuple[list[CitationRecord], list[str]]:
    """
    Save the version, then every citation concurrently.

    Returns:
        Tuple of (persisted records, failure messages)
    """
    version_row = await deps.persistence.add_version(project_id, content, DRAFT_VERSION_NUMBER)
    version = version_row.get("version", DRAFT_VERSION_NUMBER) if version_row else DRAFT_VERSION_NUMBER

    results = await asyncio.gather(
        *(
            deps.persistence.add_citation(
                project_id,
                version,
                record.paper_id,
                record.citation_text,
                record.position_start,
                record.position_end,
            )
            for record in records
        ),
        return_exceptions=True,
    )

    saved: list[CitationRecord] = []
    failures: list[str] = []
    for record, result in zip(records, results):
        if isinstance(result, Exception):
            failures.append(f"{record.paper_id}: {result}")
        else:
            saved.append(record)

    if failures:
        log_with_context(
            logger,
            logging.WARNING,
            f"{len(failures)}/{len(records)} citation writes failed",
            run_id=run_id,
            failures=failures,
        )

    await deps.persistence.update_status(project_id, ProjectStatus.COMPLETE.value)
    return saved, failures


async def _mark_failed(deps: GenerationDependencies, project_id: str, run_id: str) -> None:
    if deps.persistence is None:
        return
    try:
        await deps.persistence.update_status(project_id, ProjectStatus.FAILED.value)
    except Exception as e:
        log_with_context(logger, logging.ERROR, f"Failed to mark project failed: {e}", run_id=run_id)


async def generate_draft(
    request: GenerationRequest,
    deps: GenerationDependencies,
    on_progress: ProgressCallback | None = None,
    abort_event: asyncio.Event | None = None,
) -> GenerationResult:
    """
    Run a full draft generation.

    Args:
        request: Topic, pinned papers and config for the run
        deps: Stores, completion provider and optional persistence
        on_progress: Optional progress callback (sync or async)
        abort_event: Optional event; setting it cancels stream consumption

    Returns:
        GenerationResult with the final content and persisted citations

    Raises:
        NoPapersFoundError: If no candidate papers were found
        CompletionStreamError: If the completion stream fails
        GenerationCancelledError: If abort_event is set during streaming
    """
    run_id = str(uuid.uuid4())
    settings = get_settings()
    config = normalize_generation_config(request.config)
    warnings: list[str] = []

    log_with_context(
        logger,
        logging.INFO,
        f"Starting generation for project {request.project_id}",
        run_id=run_id,
        topic=request.topic[:80],
        pinned=len(request.library_paper_ids),
    )

    try:
        if deps.persistence is not None:
            await deps.persistence.update_status(request.project_id, ProjectStatus.GENERATING.value)

        # Papers
        await _emit(on_progress, "searching", 5, "Finding relevant papers")
        collection = await collect_papers(request, deps.paper_store, deps.academic_search)
        papers = collection.papers
        if collection.failed_searches:
            warnings.append(f"Searches failed: {', '.join(collection.failed_searches)}")

        # Evidence
        await _emit(on_progress, "retrieving", 15, f"Retrieving evidence from {len(papers)} papers")
        chunks: list[Chunk] = []
        retrieval_info: dict[str, Any] = {}
        try:
            retrieval = await retrieve_chunks(request.topic, papers, config, deps.chunk_store)
            chunks = retrieval.chunks
            retrieval_info = retrieval.model_dump(exclude={"chunks"})
        except ChunkRetrievalError as e:
            log_with_context(logger, logging.WARNING, f"Chunk retrieval failed: {e}", run_id=run_id)
            warnings.append(f"Chunk retrieval failed: {e}")

        # Prompts
        simplified = not chunks
        system_prompt = build_system_prompt(config, simplified=simplified)
        if simplified:
            user_prompt = build_simplified_user_prompt(request.topic, papers, config)
            tools: list[dict[str, Any]] = []
            tool_executor = None
        else:
            user_prompt = build_user_prompt(request.topic, papers, chunks, config)
            tools = get_tool_definitions()
            tool_executor = build_tool_executor(
                CitationToolContext(
                    project_id=request.project_id,
                    papers=papers,
                    citation_store=deps.citation_store,
                )
            )

        # Stream
        await _emit(on_progress, "writing", WRITING_PROGRESS_START, "Writing draft")
        generator = StreamingGenerator(
            deps.completion_provider,
            model=config.model or settings.GENERATION_MODEL,
            max_steps=settings.GENERATION_MAX_STEPS,
            temperature=config.temperature,
            max_tokens=get_max_tokens(config),
            target_chars=get_target_chars(config.paper_settings.length),
            candidate_ids={paper.id for paper in papers},
            on_progress=_scaled_writing_progress(on_progress),
            abort_event=abort_event,
        )
        outcome: StreamOutcome = await generator.run(system_prompt, user_prompt, tools, tool_executor)

        # Citations
        await _emit(on_progress, "citations", 88, "Checking citation coverage")
        content = outcome.content
        if simplified:
            # Without excerpts no citation can be backed by evidence
            content, dropped = sanitize_citation_tokens(content, set())
            if dropped:
                warnings.append(f"Removed {dropped} citation tokens written without evidence")

        report = enforce_citation_coverage(
            content,
            papers,
            chunks,
            config,
            tool_cited_ids=set(outcome.tool_cited_ids),
        )
        if not report.coverage_met:
            warnings.append(
                f"Citation coverage {report.final_cited}/{report.min_citations}: "
                f"{len(report.skipped_no_evidence)} papers lack evidence"
            )

        final_content = report.content
        records = build_citation_records(
            final_content,
            papers,
            injected_ids=set(report.injected_paper_ids),
            tool_cited_ids=set(outcome.tool_cited_ids),
        )

        # Persist
        persistence_failures: list[str] = []
        if deps.persistence is not None:
            await _emit(on_progress, "saving", 94, "Saving draft")
            records, persistence_failures = await _persist(
                deps, request.project_id, final_content, records, run_id
            )
            if persistence_failures:
                warnings.append(f"{len(persistence_failures)} citations could not be saved")

    except Exception:
        await _mark_failed(deps, request.project_id, run_id)
        raise

    result = GenerationResult(
        content=final_content,
        citations=records,
        word_count=count_words(final_content),
        sources=papers,
        structure=DocumentStructure(
            sections=extract_sections(final_content),
            abstract=extract_abstract(final_content),
        ),
        analytics={
            "run_id": run_id,
            "simplified_prompt": simplified,
            "collection": collection.model_dump(exclude={"papers"}),
            "retrieval": retrieval_info,
            "tool_calls": outcome.tool_analytics(),
            "foundational_citations": outcome.foundational_citations,
            "coverage": report.to_analytics(),
            "persistence_failures": persistence_failures,
            "warnings": warnings,
        },
    )

    await _emit(on_progress, "complete", 100, "Draft complete")
    log_with_context(
        logger,
        logging.INFO,
        f"Generation complete: {result.word_count} words, {len(records)} citations",
        run_id=run_id,
        warnings=len(warnings),
    )
    return result
