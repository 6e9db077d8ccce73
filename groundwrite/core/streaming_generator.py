"""
Streaming generation driver.

Consumes a completion stream as a small state machine:

    collecting -> {text-delta}* -> {tool-call -> tool-result}* -> done | error

Text is appended to a single output buffer. Every tool call is captured, and
citation tool arguments are validated against their schema; invalid calls are
recorded but never counted. An error event is fatal.
"""

import inspect
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from groundwrite.chains.citation_tools import ToolValidationError, parse_tool_call
from groundwrite.core.citation_tokens import current_section, extract_cited_ids
from groundwrite.core.logging import get_logger
from groundwrite.core.schemas_generation import GenerationProgress
from groundwrite.core.schemas_tools import (
    CapturedToolCall,
    StreamErrorEvent,
    TextDeltaEvent,
    ToolCallEvent,
    ToolKind,
    ToolResultEvent,
)
from groundwrite.core.stores import CompletionProvider, ToolExecutor

logger = get_logger(__name__)

ProgressCallback = Callable[[GenerationProgress], Awaitable[None] | None]

PROGRESS_INTERVAL = 10
MAX_STREAM_PROGRESS = 95.0


class CompletionStreamError(Exception):
    """The completion stream reported an error."""


class GenerationCancelledError(Exception):
    """The caller aborted stream consumption."""


class GeneratorState(str, Enum):
    COLLECTING = "collecting"
    DONE = "done"
    ERROR = "error"
    CANCELLED = "cancelled"


class StreamOutcome(BaseModel):
    """Everything observed while consuming one completion stream."""

    content: str
    state: GeneratorState = GeneratorState.DONE
    delta_count: int = 0
    tool_calls: list[CapturedToolCall] = Field(default_factory=list)
    tool_cited_ids: list[str] = Field(default_factory=list)
    text_cited_ids: list[str] = Field(default_factory=list)
    cited_ids: list[str] = Field(default_factory=list)
    foundational_citations: list[dict[str, Any]] = Field(default_factory=list)

    def tool_analytics(self) -> dict[str, Any]:
        citation_calls = [c for c in self.tool_calls if c.tool_name == ToolKind.ADD_CITATION.value]
        tool_ids = set(self.tool_cited_ids)
        text_ids = set(self.text_cited_ids)
        return {
            "total_tool_calls": len(self.tool_calls),
            "citation_calls": len(citation_calls),
            "validated_calls": sum(1 for c in citation_calls if c.validated),
            "successful_calls": sum(1 for c in citation_calls if c.succeeded),
            "invalid_calls": [
                {"id": c.id, "error": c.error} for c in self.tool_calls if not c.validated
            ],
            "tool_cited_papers": len(tool_ids),
            "text_cited_papers": len(text_ids),
            "overlap_cited_papers": len(tool_ids & text_ids),
            "foundational_citations": len(self.foundational_citations),
        }


class StreamingGenerator:
    """Drives one completion stream and collects its text and tool activity."""

    def __init__(
        self,
        provider: CompletionProvider,
        *,
        model: str,
        max_steps: int,
        temperature: float,
        max_tokens: int,
        target_chars: int,
        candidate_ids: set[str],
        on_progress: ProgressCallback | None = None,
        abort_event: Any | None = None,
    ):
        self.provider = provider
        self.model = model
        self.max_steps = max_steps
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.target_chars = max(target_chars, 1)
        self.candidate_ids = {paper_id.lower() for paper_id in candidate_ids}
        self.on_progress = on_progress
        self.abort_event = abort_event
        self.state = GeneratorState.COLLECTING

    async def _report(self, buffer: str) -> None:
        if self.on_progress is None:
            return
        progress = min(len(buffer) / self.target_chars * 100, MAX_STREAM_PROGRESS)
        section = current_section(buffer)
        message = f"Writing {section}" if section else "Writing draft"
        result = self.on_progress(
            GenerationProgress(stage="writing", progress=progress, message=message, content=buffer[-200:])
        )
        if inspect.isawaitable(result):
            await result

    def _capture_call(self, event: ToolCallEvent) -> CapturedToolCall:
        captured = CapturedToolCall(id=event.tool_call_id, tool_name=event.tool_name, arguments=event.args)
        try:
            parse_tool_call(event.tool_name, event.args)
            captured.validated = True
        except ToolValidationError as e:
            captured.error = str(e)
            logger.warning(f"Tool call {event.tool_call_id} rejected: {e}")
        return captured

    def _check_abort(self) -> None:
        if self.abort_event is not None and self.abort_event.is_set():
            self.state = GeneratorState.CANCELLED
            raise GenerationCancelledError("Generation cancelled")

    async def run(
        self,
        system: str,
        user: str,
        tools: list[dict[str, Any]],
        tool_executor: ToolExecutor | None = None,
    ) -> StreamOutcome:
        """
        Consume the completion stream to completion.

        Raises:
            CompletionStreamError: On a stream error event
            GenerationCancelledError: When the abort event is set
        """
        self.state = GeneratorState.COLLECTING
        parts: list[str] = []
        delta_count = 0
        calls: dict[str, CapturedToolCall] = {}

        self._check_abort()
        events = self.provider.stream(
            model=self.model,
            system=system,
            messages=[{"role": "user", "content": user}],
            tools=tools,
            tool_executor=tool_executor,
            max_steps=self.max_steps,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )

        try:
            async for event in events:
                self._check_abort()
                match event:
                    case TextDeltaEvent(text=text):
                        parts.append(text)
                        delta_count += 1
                        if delta_count % PROGRESS_INTERVAL == 0:
                            await self._report("".join(parts))
                    case ToolCallEvent():
                        calls[event.tool_call_id] = self._capture_call(event)
                    case ToolResultEvent():
                        captured = calls.get(event.tool_call_id)
                        if captured is None:
                            logger.warning(f"Tool result for unknown call {event.tool_call_id}")
                            continue
                        captured.result = event.result
                        paper_id = event.result.get("paperId")
                        if paper_id:
                            captured.paper_id = str(paper_id).lower()
                    case StreamErrorEvent(error=error):
                        self.state = GeneratorState.ERROR
                        logger.error(f"Completion stream error after {delta_count} deltas: {error}")
                        raise CompletionStreamError(error)
        finally:
            aclose = getattr(events, "aclose", None)
            if aclose is not None:
                await aclose()

        content = "".join(parts)
        self.state = GeneratorState.DONE
        return self._build_outcome(content, delta_count, list(calls.values()))

    def _build_outcome(self, content: str, delta_count: int, calls: list[CapturedToolCall]) -> StreamOutcome:
        tool_ids: dict[str, None] = {}
        foundational: list[dict[str, Any]] = []
        for call in calls:
            if call.tool_name != ToolKind.ADD_CITATION.value or not call.succeeded:
                continue
            if call.paper_id and call.paper_id in self.candidate_ids:
                tool_ids.setdefault(call.paper_id, None)
            else:
                foundational.append(
                    {
                        "title": call.arguments.get("title"),
                        "citation_key": (call.result or {}).get("citationKey"),
                        "citation_id": (call.result or {}).get("citationId"),
                    }
                )

        text_ids = [pid for pid in extract_cited_ids(content) if pid in self.candidate_ids]
        merged = list(dict.fromkeys([*text_ids, *tool_ids]))

        logger.info(
            f"Stream complete: {len(content)} chars, {delta_count} deltas, "
            f"{len(calls)} tool calls, {len(merged)} cited papers"
        )
        return StreamOutcome(
            content=content,
            state=self.state,
            delta_count=delta_count,
            tool_calls=calls,
            tool_cited_ids=list(tool_ids),
            text_cited_ids=text_ids,
            cited_ids=merged,
            foundational_citations=foundational,
        )
