"""Relevance scoring and topic filtering for discovered papers.

A paper is kept when its title or abstract mentions a topic token as a whole
word, or when the search engine scored it as relevant enough. The policy
favors recall: a paper is dropped only when both checks fail.
"""

import itertools
import re

from groundwrite.core.logging import get_logger
from groundwrite.core.schemas_generation import GENERATION_DEFAULTS, Paper

logger = get_logger(__name__)


STOP_WORDS = {
    "a", "an", "the", "is", "are", "was", "were", "be", "been", "being",
    "have", "has", "had", "do", "does", "did", "will", "would", "could",
    "should", "may", "might", "must", "shall", "can",
    "and", "or", "but", "if", "then", "else", "when", "where", "why",
    "how", "what", "which", "who", "whom", "this", "that", "these",
    "those", "to", "of", "in", "for", "on", "with", "at", "by", "from",
    "as", "into", "through", "during", "before", "after", "above", "below",
    "between", "under", "over", "all", "each", "few", "more", "most",
    "other", "some", "such", "no", "not", "only", "own", "same", "so",
    "than", "too", "very", "just", "also", "its", "their", "via",
    "toward", "towards", "about", "against", "within", "without", "among",
}

# Generic research vocabulary: too broad to anchor a targeted search query,
# but still a valid topic match in the filter
SEARCH_NOISE_WORDS = {
    "using", "use", "based", "study", "studies", "analysis", "approach",
    "approaches", "review", "role", "impact", "effect", "effects", "new",
}

MAX_KEYWORD_COMBINATIONS = 3

_WORD_RE = re.compile(r"[a-z0-9][a-z0-9-]*")


def _words(text: str) -> list[str]:
    return _WORD_RE.findall(text.lower())


def topic_tokens(topic: str) -> list[str]:
    """Distinct topic words longer than two characters, stopwords removed, in order."""
    seen: dict[str, None] = {}
    for word in _words(topic):
        if len(word) > 2 and word not in STOP_WORDS:
            seen.setdefault(word, None)
    return list(seen)


def extract_keywords(topic: str) -> list[str]:
    """Keywords used to derive targeted searches (longer than three characters)."""
    return [
        token
        for token in topic_tokens(topic)
        if len(token) > 3 and token not in SEARCH_NOISE_WORDS
    ]


def build_keyword_combinations(topic: str, max_combinations: int = MAX_KEYWORD_COMBINATIONS) -> list[str]:
    """
    Two-term query combinations derived from the topic keywords.

    Returns at most ``max_combinations`` queries; topics with fewer than two
    keywords produce none.
    """
    keywords = extract_keywords(topic)
    combos = [f"{a} {b}" for a, b in itertools.combinations(keywords, 2)]
    return combos[:max_combinations]


def _token_patterns(tokens: list[str]) -> list[re.Pattern[str]]:
    return [re.compile(rf"\b{re.escape(token)}\b", re.IGNORECASE) for token in tokens]


def is_score_acceptable(
    semantic_score: float | None,
    keyword_score: float | None,
    permissive: bool = False,
) -> bool:
    """
    Check a paper's search scores against the relevance thresholds.

    The semantic score wins when present; the keyword score is only consulted
    when no semantic score exists. A paper with no score at all is acceptable
    only in permissive mode.
    """
    semantic_threshold = (
        GENERATION_DEFAULTS["MIN_SEMANTIC_SCORE_PERMISSIVE"]
        if permissive
        else GENERATION_DEFAULTS["MIN_SEMANTIC_SCORE"]
    )
    keyword_threshold = (
        GENERATION_DEFAULTS["MIN_KEYWORD_SCORE_PERMISSIVE"]
        if permissive
        else GENERATION_DEFAULTS["MIN_KEYWORD_SCORE"]
    )

    if semantic_score is not None:
        return semantic_score >= semantic_threshold
    if keyword_score is not None:
        return keyword_score >= keyword_threshold
    return permissive


def matches_topic(paper: Paper, patterns: list[re.Pattern[str]]) -> bool:
    haystack = f"{paper.title} {paper.abstract or ''}"
    return any(pattern.search(haystack) for pattern in patterns)


def filter_on_topic(papers: list[Paper], topic: str, permissive: bool = False) -> list[Paper]:
    """
    Keep papers that mention the topic or were scored as relevant.

    Args:
        papers: Papers returned by discovery searches
        topic: Generation topic
        permissive: Use the relaxed thresholds and accept unscored papers

    Returns:
        Retained papers, in input order
    """
    patterns = _token_patterns(topic_tokens(topic))
    kept: list[Paper] = []
    dropped = 0

    for paper in papers:
        if matches_topic(paper, patterns) or is_score_acceptable(
            paper.semantic_score, paper.keyword_score, permissive
        ):
            kept.append(paper)
        else:
            dropped += 1

    if dropped:
        logger.debug(
            f"Topic filter dropped {dropped}/{len(papers)} papers "
            f"(permissive={permissive}, tokens={len(patterns)})"
        )
    return kept
