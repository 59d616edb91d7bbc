"""Coaching session domain models.

Core Models:
    - Message: one transcript entry (user answer or assistant question/summary)
    - Phase: display state of a session (intro, coaching, complete)
    - CoachingSession: aggregate root owned by the session controller

Session Lifecycle:
    1. Loaded from the session store on initialize, or created fresh
    2. Mutated by the controller on every accepted turn
    3. Marked complete when the protocol reports completion
    4. Deleted on explicit reset
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from brandcoach.domain.models.category import Category


class Role(str, Enum):
    """Author of a transcript message."""

    USER = "user"
    ASSISTANT = "assistant"


class Phase(str, Enum):
    """Session display state.

    INTRO is shown before any turn is sent, including for resumed sessions.
    COMPLETE is terminal for the session but not for the category.
    """

    INTRO = "intro"
    COACHING = "coaching"
    COMPLETE = "complete"


class Message(BaseModel):
    """Single transcript entry."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    role: Role
    content: str

    def to_wire(self) -> Dict[str, str]:
        """Role and content only, as sent to the inference service."""
        return {"role": self.role.value, "content": self.content}


class CoachingSession(BaseModel):
    """Aggregate root for one (user, category) interview.

    Attributes:
        transcript: Append-only, alternating roles
        covered_topics: Insertion-ordered, grows monotonically until reset
        completion_percentage: 100 iff phase is COMPLETE
        step_counter: Fixed-step protocol only, equals the number of user messages
        insights: Accumulated extracted data across turns
    """

    user_id: str
    category: Category
    phase: Phase = Phase.INTRO
    transcript: List[Message] = Field(default_factory=list)
    covered_topics: List[str] = Field(default_factory=list)
    completion_percentage: int = Field(default=0, ge=0, le=100)
    final_summary: Optional[str] = None
    step_counter: Optional[int] = None
    insights: Dict[str, Any] = Field(default_factory=dict)
    is_complete: bool = False
    completed_at: Optional[datetime] = None

    @property
    def user_message_count(self) -> int:
        return sum(1 for m in self.transcript if m.role == Role.USER)

    @property
    def last_message(self) -> Optional[Message]:
        return self.transcript[-1] if self.transcript else None

    def last_user_message(self) -> Optional[Message]:
        for message in reversed(self.transcript):
            if message.role == Role.USER:
                return message
        return None

    def append(self, message: Message) -> None:
        """Append a message, refusing two consecutive messages of one role."""
        last = self.last_message
        if last is not None and last.role == message.role:
            raise ValueError(
                f"Transcript would hold two consecutive {message.role.value} messages"
            )
        self.transcript.append(message)

    def mark_complete(self) -> None:
        self.phase = Phase.COMPLETE
        self.is_complete = True
        self.completion_percentage = 100
        self.completed_at = datetime.now(timezone.utc)


class SessionSummary(BaseModel):
    """Lightweight view of a persisted session for history listings."""

    category: str
    is_complete: bool
    completion_percentage: int
    question_count: int
    updated_at: Optional[datetime] = None
