"""
Prompt templates for practice content generation.
"""

from .prompts import (
    get_evaluation_prompt,
    get_extraction_prompt,
    get_review_feedback_prompt,
    get_scenario_prompt,
)

__all__ = [
    "get_scenario_prompt",
    "get_evaluation_prompt",
    "get_review_feedback_prompt",
    "get_extraction_prompt",
]
