"""Domain models package."""

from .category import Category, CategoryConfig, ChecklistTopic, CoachingCatalogue, FixedStep
from .session import CoachingSession, Message, Phase, Role, SessionSummary
from .turn import (
    DynamicTurnRequest,
    DynamicTurnResponse,
    FixedStepRequest,
    FixedStepResponse,
    PendingTurn,
    ProtocolTurn,
    QuestionType,
)

__all__ = [
    "Category",
    "CategoryConfig",
    "ChecklistTopic",
    "CoachingCatalogue",
    "FixedStep",
    "CoachingSession",
    "Message",
    "Phase",
    "Role",
    "SessionSummary",
    "DynamicTurnRequest",
    "DynamicTurnResponse",
    "FixedStepRequest",
    "FixedStepResponse",
    "PendingTurn",
    "ProtocolTurn",
    "QuestionType",
]
