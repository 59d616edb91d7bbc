"""
Service protocol definitions (interfaces).

Defines the seams of the coaching engine using typing.Protocol so the
session controller depends on behaviour, not on the LLM adapter or the
SQLite repositories. Tests substitute AsyncMock fakes at these seams.
"""

from typing import Any, Dict, List, Optional, Protocol

from brandcoach.domain.models.category import Category
from brandcoach.domain.models.session import CoachingSession, SessionSummary
from brandcoach.domain.models.turn import (
    DynamicTurnRequest,
    DynamicTurnResponse,
    FixedStepRequest,
    FixedStepResponse,
)


class ICoachingInference(Protocol):
    """
    Protocol for the external inference service.

    Implementations raise TransportError when the call fails to complete and
    MalformedResponseError when the reply cannot be turned into a valid
    response object.
    """

    async def next_turn(self, request: DynamicTurnRequest) -> DynamicTurnResponse:
        """
        Produce the next question (or the final summary) of a dynamic interview.

        Args:
            request: Full transcript, covered topics and side context

        Returns:
            Validated DynamicTurnResponse
        """
        ...

    async def charter_step(
        self, request: FixedStepRequest, context: Optional[Dict[str, Any]] = None
    ) -> FixedStepResponse:
        """
        Produce feedback for one fixed-step answer.

        Args:
            request: Step number, answer and accumulated structured data
            context: Optional side context for personalisation

        Returns:
            Validated FixedStepResponse
        """
        ...

    async def write_full_text(
        self,
        category: Category,
        messages: List[Dict[str, str]],
        context: Dict[str, Any],
    ) -> str:
        """
        Write the complete long-form version of a finished interview.

        Returns:
            Plain text
        """
        ...


class ISessionStore(Protocol):
    """Protocol for session persistence keyed by (user, category)."""

    async def load(self, user_id: str, category: Category) -> Optional[CoachingSession]: ...

    async def save(self, user_id: str, category: Category, session: CoachingSession) -> None: ...

    async def reset(self, user_id: str, category: Category) -> bool: ...

    async def list_for_user(self, user_id: str) -> List[SessionSummary]: ...


class IProfileSource(Protocol):
    """Protocol for the side-context snapshot source."""

    async def get_context(self, user_id: str) -> Dict[str, Any]: ...


class IInsightStore(Protocol):
    """Protocol for the four insight destination stores."""

    async def upsert_visual_identity(self, user_id: str, data: Dict[str, Any]) -> Dict[str, Any]: ...

    async def upsert_target_audience(self, user_id: str, data: Dict[str, Any]) -> Dict[str, Any]: ...

    async def upsert_brand_attributes(self, user_id: str, data: Dict[str, Any]) -> Dict[str, Any]: ...

    async def upsert_narrative(
        self,
        user_id: str,
        data: Dict[str, Any],
        source: str,
        story_type: str = ...,
    ) -> Dict[str, Any]: ...

    async def set_full_story(
        self, user_id: str, text: str, source: str, story_type: str = ...
    ) -> None: ...
