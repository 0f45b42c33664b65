"""Prompt builders for call analysis."""

from callsight.prompts.analysis_prompts import (
    CLASSIFICATION_STRICT_SYSTEM_PROMPT,
    CLASSIFICATION_SYSTEM_PROMPT,
    EXTRACTION_STRICT_SYSTEM_PROMPT,
    EXTRACTION_SYSTEM_PROMPT,
    build_classification_strict_user_prompt,
    build_classification_user_prompt,
    build_extraction_strict_user_prompt,
    build_extraction_user_prompt,
)

__all__ = [
    "CLASSIFICATION_STRICT_SYSTEM_PROMPT",
    "CLASSIFICATION_SYSTEM_PROMPT",
    "EXTRACTION_STRICT_SYSTEM_PROMPT",
    "EXTRACTION_SYSTEM_PROMPT",
    "build_classification_strict_user_prompt",
    "build_classification_user_prompt",
    "build_extraction_strict_user_prompt",
    "build_extraction_user_prompt",
]
