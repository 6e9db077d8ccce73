"""Tests for generation config normalization and derived budgets."""

from groundwrite.core.schemas_generation import (
    GENERATION_DEFAULTS,
    GenerationConfig,
    PaperLength,
    get_chunk_limit,
    get_max_tokens,
    get_target_chars,
    normalize_generation_config,
)


def test_missing_config_uses_defaults():
    config = normalize_generation_config(None)

    assert config.paper_settings.length == PaperLength.MEDIUM
    assert config.paper_settings.min_citation_floor == GENERATION_DEFAULTS["MIN_CITATION_FLOOR"]
    assert config.search_parameters.max_results == GENERATION_DEFAULTS["TARGET_PAPERS"]


def test_partial_config_is_filled():
    config = normalize_generation_config({"paper_settings": {"length": "short", "include_future": True}})

    assert config.paper_settings.length == PaperLength.SHORT
    assert config.paper_settings.include_future is True
    assert config.paper_settings.include_methodology is True
    assert config.search_parameters.semantic_weight == GENERATION_DEFAULTS["SEMANTIC_WEIGHT"]


def test_invalid_config_falls_back_to_defaults():
    config = normalize_generation_config({"paper_settings": {"min_citation_coverage": 3.0}})

    assert config == GenerationConfig()


def test_config_instance_passes_through():
    config = GenerationConfig(temperature=0.9)

    assert normalize_generation_config(config) is config


def test_max_tokens_scales_with_length():
    short = normalize_generation_config({"paper_settings": {"length": "short"}})
    long = normalize_generation_config({"paper_settings": {"length": "long"}})

    assert get_max_tokens(short) == 3120  # floor(2000 * 1.2 * 1.3)
    assert get_max_tokens(long) == 12480
    assert get_max_tokens(long) <= GENERATION_DEFAULTS["MODEL_COMPLETION_TOKEN_LIMIT"]


def test_explicit_max_tokens_wins():
    assert get_max_tokens(GenerationConfig(max_tokens=1234)) == 1234


def test_chunk_limit_has_floor():
    assert get_chunk_limit("short") == 20
    assert get_chunk_limit("long") == 36


def test_target_chars():
    assert get_target_chars(PaperLength.MEDIUM) == 4000 * GENERATION_DEFAULTS["CHARS_PER_WORD"]
