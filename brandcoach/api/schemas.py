"""
API request/response schemas.

Pydantic models for API validation and serialization. Session state
responses use SessionState from the controller directly.
"""

from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from brandcoach.domain.models.session import SessionSummary


# ============ CATALOGUE SCHEMAS ============


class ChecklistTopicSchema(BaseModel):
    id: str
    label: str


class CategoryInfo(BaseModel):
    """One coaching category as exposed to clients."""

    category: str
    title: str
    protocol: str
    checklist: List[ChecklistTopicSchema] = Field(default_factory=list)
    step_count: int = 0


class CategoryListResponse(BaseModel):
    categories: List[CategoryInfo]


# ============ TURN SCHEMAS ============


class AnswerRequest(BaseModel):
    """Answer to the current question.

    Free text for text/textarea questions, chosen options for
    select/multi_select questions.
    """

    text: Optional[str] = Field(default=None, max_length=5000)
    options: Optional[List[str]] = None

    @model_validator(mode="after")
    def require_text_or_options(self) -> "AnswerRequest":
        if self.text is None and not self.options:
            raise ValueError("Provide either text or options")
        return self


# ============ HISTORY SCHEMAS ============


class HistoryResponse(BaseModel):
    user_id: str
    sessions: List[SessionSummary]
    total: int


class ResetResponse(BaseModel):
    user_id: str
    category: str
    deleted: bool = True
