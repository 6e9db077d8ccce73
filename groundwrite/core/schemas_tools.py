"""Pydantic schemas for completion stream events and tool calls."""

from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, HttpUrl


class ToolKind(str, Enum):
    """Closed set of tools the generator may expose to the model."""

    ADD_CITATION = "add_citation"


# =============================================================================
# Tool argument schemas
# =============================================================================


class AddCitationInput(BaseModel):
    """Arguments of the citation tool."""

    title: str = Field(..., min_length=1, description="Title of the cited work")
    authors: list[str] = Field(..., min_length=1, description="At least one author")
    reason: str = Field(..., min_length=1, description="Why this source supports the claim")
    section: str = Field(..., min_length=1, description="Section the citation appears in")
    paper_id: str | None = Field(default=None, description="Candidate paper UUID, when citing the corpus")
    year: int | None = Field(default=None, ge=1800, le=2030)
    doi: str | None = None
    journal: str | None = None
    pages: str | None = None
    volume: str | None = None
    issue: str | None = None
    url: HttpUrl | None = None
    abstract: str | None = None
    context: str | None = None


# =============================================================================
# Completion stream events
# =============================================================================


class TextDeltaEvent(BaseModel):
    type: Literal["text-delta"] = "text-delta"
    text: str


class ToolCallEvent(BaseModel):
    type: Literal["tool-call"] = "tool-call"
    tool_call_id: str
    tool_name: str
    args: dict[str, Any] = Field(default_factory=dict)


class ToolResultEvent(BaseModel):
    type: Literal["tool-result"] = "tool-result"
    tool_call_id: str
    tool_name: str
    result: dict[str, Any] = Field(default_factory=dict)


class StreamErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    error: str


StreamEvent = Annotated[
    TextDeltaEvent | ToolCallEvent | ToolResultEvent | StreamErrorEvent,
    Field(discriminator="type"),
]


# =============================================================================
# Captured calls
# =============================================================================


class CapturedToolCall(BaseModel):
    """A tool call observed during streaming, with its eventual result."""

    id: str
    tool_name: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    result: dict[str, Any] | None = None
    validated: bool = False
    error: str | None = None
    paper_id: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.validated and bool(self.result and self.result.get("success"))
