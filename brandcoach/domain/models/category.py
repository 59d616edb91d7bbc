"""
Coaching catalogue models.

A Category is one interview topic-area. Each category owns an ordered
checklist of topics; the fixed-step category additionally owns a
predetermined question list.
"""

from enum import Enum
from typing import Dict, List

from pydantic import BaseModel, Field

from brandcoach.core.exceptions import UnknownCategoryError


class Category(str, Enum):
    """Interview topic-areas."""

    STORY = "story"
    PERSONA = "persona"
    VALUE_PROPOSITION = "value_proposition"
    TONE_STYLE = "tone_style"
    CONTENT_STRATEGY = "content_strategy"
    OFFERS = "offers"
    CHARTER = "charter"

    @classmethod
    def parse(cls, value: str) -> "Category":
        """Parse a category string, raising UnknownCategoryError if unknown."""
        try:
            return cls(value)
        except ValueError:
            raise UnknownCategoryError(f"Unknown coaching category: {value!r}")


class ChecklistTopic(BaseModel):
    """One topic an interview should cover."""

    id: str = Field(..., min_length=1, description="Stable topic identifier")
    label: str = Field(..., description="Human-readable label")


class FixedStep(BaseModel):
    """One predetermined question of the fixed-step protocol."""

    topic: str = Field(..., min_length=1)
    label: str
    question: str = Field(..., min_length=1)


class CategoryConfig(BaseModel):
    """Catalogue entry for one category, as loaded from YAML."""

    title: str = ""
    checklist: List[ChecklistTopic] = Field(default_factory=list)
    steps: List[FixedStep] = Field(default_factory=list)


class CoachingCatalogue(BaseModel):
    """Complete coaching catalogue keyed by category value."""

    categories: Dict[str, CategoryConfig] = Field(default_factory=dict)
