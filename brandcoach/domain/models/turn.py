"""Turn contracts exchanged with the inference service.

Two wire protocols exist:
    - Dynamic checklist: DynamicTurnRequest -> DynamicTurnResponse
    - Fixed step: FixedStepRequest -> FixedStepResponse

Both are normalized into a ProtocolTurn before the controller sees them.
A PendingTurn caches the exact request of an in-flight or failed turn so a
retry can replay it verbatim.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from brandcoach.domain.models.session import Message


START_SENTINEL = "start"


class QuestionType(str, Enum):
    """Input widget the next question expects."""

    TEXT = "text"
    TEXTAREA = "textarea"
    SELECT = "select"
    MULTI_SELECT = "multi_select"


class WireMessage(BaseModel):
    role: str
    content: str


class DynamicTurnRequest(BaseModel):
    """Request of the dynamic checklist protocol."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    category: str
    messages: List[WireMessage] = Field(default_factory=list)
    context: Dict[str, Any] = Field(default_factory=dict)
    covered_topics: List[str] = Field(default_factory=list)


class DynamicTurnResponse(BaseModel):
    """Response of the dynamic checklist protocol.

    A response lacking both a question and is_complete=true is invalid.
    """

    model_config = ConfigDict(extra="ignore")

    question: Optional[str] = None
    question_type: QuestionType = QuestionType.TEXTAREA
    options: Optional[List[str]] = None
    placeholder: Optional[str] = None
    covered_topic: Optional[str] = None
    extracted_insights: Dict[str, Any] = Field(default_factory=dict)
    is_complete: bool = False
    completion_percentage: float = Field(default=0, ge=0)
    remaining_topics: Optional[List[str]] = None
    final_summary: Optional[str] = None

    @field_validator("question_type", mode="before")
    @classmethod
    def default_unknown_question_type(cls, v: Any) -> Any:
        if v is None or v not in {t.value for t in QuestionType}:
            return QuestionType.TEXTAREA
        return v

    @field_validator("extracted_insights", mode="before")
    @classmethod
    def none_insights_to_empty(cls, v: Any) -> Any:
        return v if v is not None else {}

    @model_validator(mode="after")
    def require_question_or_completion(self) -> "DynamicTurnResponse":
        if not self.is_complete and not (self.question and self.question.strip()):
            raise ValueError("response has neither a question nor is_complete=true")
        return self


class FixedStepRequest(BaseModel):
    """Request of the fixed-step protocol."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    step: int = Field(..., ge=1)
    answer: str
    accumulated_structured_data: Dict[str, Any] = Field(
        default_factory=dict, alias="accumulatedStructuredData"
    )


class FixedStepResponse(BaseModel):
    """Response of the fixed-step protocol."""

    model_config = ConfigDict(extra="ignore")

    feedback: str = ""
    suggestion: str = ""
    extracted: Dict[str, Any] = Field(default_factory=dict)
    ai_generated_brief: Optional[str] = None

    @field_validator("feedback", "suggestion", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        return v if v is not None else ""

    @field_validator("extracted", mode="before")
    @classmethod
    def none_extracted_to_empty(cls, v: Any) -> Any:
        return v if v is not None else {}


class ProtocolTurn(BaseModel):
    """Normalized result of one turn, whichever protocol produced it."""

    question: str = ""
    question_type: QuestionType = QuestionType.TEXTAREA
    options: Optional[List[str]] = None
    placeholder: Optional[str] = None
    covered_topic: Optional[str] = None
    extracted_insights: Dict[str, Any] = Field(default_factory=dict)
    is_complete: bool = False
    completion_percentage: int = 0
    remaining_topics: Optional[List[str]] = None
    final_summary: Optional[str] = None

    @property
    def display_text(self) -> str:
        """Content of the assistant message this turn appends."""
        if self.is_complete:
            return self.final_summary or self.question
        return self.question


TurnRequest = Union[DynamicTurnRequest, FixedStepRequest]


class PendingTurn(BaseModel):
    """Exact request of a turn plus the answer to append once it succeeds.

    user_message is None for opening turns (start or resume replay).
    """

    model_config = ConfigDict(frozen=True)

    request: TurnRequest
    user_message: Optional[Message] = None
