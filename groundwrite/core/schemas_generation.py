"""Pydantic schemas for draft generation runs."""

import math
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from groundwrite.core.logging import get_logger

logger = get_logger(__name__)


# =============================================================================
# Defaults
# =============================================================================


GENERATION_DEFAULTS: dict[str, Any] = {
    "MIN_CITATION_COVERAGE": 0.5,
    "MIN_CITATION_FLOOR": 5,
    "EVIDENCE_SNIPPET_MAX_LENGTH": 220,
    "TARGET_PAPERS": 25,
    "MIN_SEARCH_YEAR": 2000,
    "SEMANTIC_WEIGHT": 0.7,
    # Topic filter thresholds
    "MIN_SEMANTIC_SCORE": 0.35,
    "MIN_SEMANTIC_SCORE_PERMISSIVE": 0.2,
    "MIN_KEYWORD_SCORE": 0.1,
    "MIN_KEYWORD_SCORE_PERMISSIVE": 0.05,
    # Chunk search thresholds
    "CHUNK_MIN_SCORE": 0.3,
    "CHUNK_MIN_SCORE_FRESH": 0.15,
    "CHUNK_SEGMENT_CHARS": 500,
    # Token budgeting
    "TOKENS_PER_WORD_RATIO": 1.3,
    "TOKEN_FUDGE_FACTOR": 1.2,
    "MODEL_COMPLETION_TOKEN_LIMIT": 16000,
    "CHARS_PER_WORD": 6,
}

# Word targets per paper length
TARGET_WORDS: dict[str, int] = {
    "short": 2000,
    "medium": 4000,
    "long": 8000,
}

LENGTH_BANDS: dict[str, str] = {
    "short": "a focused 1,500-2,500 word paper with 3-4 main sections",
    "medium": "a comprehensive 3,000-5,000 word paper with 5-6 detailed sections",
    "long": "an extensive 6,000-10,000 word paper with 7-8 comprehensive sections",
}


# =============================================================================
# Enums
# =============================================================================


class PaperLength(str, Enum):
    SHORT = "short"
    MEDIUM = "medium"
    LONG = "long"


class PaperStyle(str, Enum):
    ACADEMIC = "academic"
    REVIEW = "review"
    SURVEY = "survey"


class CitationStyle(str, Enum):
    APA = "apa"
    MLA = "mla"
    CHICAGO = "chicago"
    IEEE = "ieee"


class CitationOrigin(str, Enum):
    """Where a citation in the final draft came from."""

    TOOL = "tool"
    TEXT = "text"
    INJECTED = "injected"


class ProjectStatus(str, Enum):
    GENERATING = "generating"
    COMPLETE = "complete"
    FAILED = "failed"


# =============================================================================
# Corpus
# =============================================================================


class Paper(BaseModel):
    """Candidate source paper. Immutable for the duration of a run."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Paper UUID")
    title: str
    abstract: str | None = None
    authors: list[str] = Field(default_factory=list)
    venue: str | None = None
    year: int | None = None
    doi: str | None = None
    url: str | None = None
    source: str | None = None
    citation_count: int = 0
    impact_score: float = 0.0
    semantic_score: float | None = None
    keyword_score: float | None = None


class Chunk(BaseModel):
    """Excerpt of a paper's text used as generation evidence."""

    paper_id: str
    content: str
    score: float | None = None


# =============================================================================
# Configuration
# =============================================================================


class PaperSettings(BaseModel):
    length: PaperLength = PaperLength.MEDIUM
    style: PaperStyle = PaperStyle.ACADEMIC
    citation_style: CitationStyle = CitationStyle.APA
    include_methodology: bool = True
    include_future: bool = False
    min_citation_coverage: float = Field(
        default=GENERATION_DEFAULTS["MIN_CITATION_COVERAGE"], ge=0.0, le=1.0
    )
    min_citation_floor: int = Field(default=GENERATION_DEFAULTS["MIN_CITATION_FLOOR"], ge=0)
    evidence_snippet_length: int = Field(
        default=GENERATION_DEFAULTS["EVIDENCE_SNIPPET_MAX_LENGTH"], ge=50, le=500
    )


class SearchParameters(BaseModel):
    sources: list[str] = Field(default_factory=lambda: ["openalex"])
    max_results: int = Field(default=GENERATION_DEFAULTS["TARGET_PAPERS"], gt=0)
    from_year: int | None = Field(default=GENERATION_DEFAULTS["MIN_SEARCH_YEAR"], ge=1800)
    to_year: int | None = Field(default=None, ge=1800)
    semantic_weight: float = Field(default=GENERATION_DEFAULTS["SEMANTIC_WEIGHT"], ge=0.0, le=1.0)
    use_academic_fallback: bool = True


class GenerationConfig(BaseModel):
    """Fully-populated generation config. Build via normalize_generation_config()."""

    paper_settings: PaperSettings = Field(default_factory=PaperSettings)
    search_parameters: SearchParameters = Field(default_factory=SearchParameters)
    model: str | None = None
    temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=None, gt=0)


def normalize_generation_config(raw: GenerationConfig | dict[str, Any] | None) -> GenerationConfig:
    """
    Normalize a user-supplied config to a complete GenerationConfig.

    Unset fields are filled with defaults. An invalid payload is logged and
    replaced with the default config rather than failing the run.
    """
    if isinstance(raw, GenerationConfig):
        return raw

    try:
        return GenerationConfig.model_validate(raw or {})
    except ValidationError as e:
        logger.warning(f"Invalid generation config, using defaults: {e.errors()}")
        return GenerationConfig()


def get_target_words(length: PaperLength | str) -> int:
    return TARGET_WORDS[PaperLength(length).value]


def get_target_chars(length: PaperLength | str) -> int:
    """Expected character count of a finished draft, used for progress estimates."""
    return get_target_words(length) * GENERATION_DEFAULTS["CHARS_PER_WORD"]


def get_chunk_limit(length: PaperLength | str) -> int:
    """Number of excerpts to retrieve for a paper of the given length."""
    return max(20, math.ceil(get_target_words(length) / 225))


def get_max_tokens(config: GenerationConfig) -> int:
    if config.max_tokens:
        return config.max_tokens
    words = get_target_words(config.paper_settings.length)
    estimated = math.floor(
        words * GENERATION_DEFAULTS["TOKEN_FUDGE_FACTOR"] * GENERATION_DEFAULTS["TOKENS_PER_WORD_RATIO"]
    )
    return min(estimated, GENERATION_DEFAULTS["MODEL_COMPLETION_TOKEN_LIMIT"])


# =============================================================================
# Run input / output
# =============================================================================


class GenerationRequest(BaseModel):
    """Explicit inputs for one generation run."""

    project_id: str
    topic: str = Field(..., min_length=1)
    library_paper_ids: list[str] = Field(default_factory=list)
    use_library_only: bool = False
    config: GenerationConfig | dict[str, Any] | None = None


class GenerationProgress(BaseModel):
    stage: str
    progress: float = Field(..., ge=0.0, le=100.0)
    message: str
    content: str | None = None


class CitationRecord(BaseModel):
    """A citation token placed in the final draft."""

    paper_id: str
    citation_text: str
    position_start: int | None = None
    position_end: int | None = None
    origin: CitationOrigin = CitationOrigin.TEXT


class DocumentStructure(BaseModel):
    sections: list[str] = Field(default_factory=list)
    abstract: str = ""


class GenerationResult(BaseModel):
    """Sole artifact crossing the generation boundary."""

    content: str
    citations: list[CitationRecord] = Field(default_factory=list)
    word_count: int = 0
    sources: list[Paper] = Field(default_factory=list)
    structure: DocumentStructure = Field(default_factory=DocumentStructure)
    analytics: dict[str, Any] = Field(default_factory=dict)
