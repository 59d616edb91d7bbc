"""
Turn protocol strategies.

A TurnProtocol turns the current session into an inference request and the
inference response into a normalized ProtocolTurn. Two implementations:

    - DynamicChecklistProtocol: the backend decides coverage and completion
    - FixedStepProtocol: a local predetermined question list decides them

The session controller only talks to the TurnProtocol interface; which one a
category uses is decided in services/categories.py.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import structlog

from brandcoach.core.checklist_loader import ChecklistRegistry
from brandcoach.core.exceptions import ConfigurationError
from brandcoach.domain.models.category import Category, FixedStep
from brandcoach.domain.models.session import CoachingSession, Message
from brandcoach.domain.models.turn import (
    START_SENTINEL,
    DynamicTurnRequest,
    FixedStepRequest,
    ProtocolTurn,
    QuestionType,
    TurnRequest,
    WireMessage,
)
from brandcoach.services.protocols import ICoachingInference

log = structlog.get_logger(__name__)


class TurnProtocol(ABC):
    """Strategy interface for one category's turn mechanics."""

    kind: str = "unknown"

    def __init__(
        self,
        category: Category,
        registry: ChecklistRegistry,
        inference: ICoachingInference,
    ):
        self.category = category
        self.registry = registry
        self.inference = inference

    def prepare(self, session: CoachingSession) -> None:
        """Reconcile protocol-specific derived fields after a load or reset."""

    def opening_turn(self, session: CoachingSession) -> Optional[ProtocolTurn]:
        """Turn displayed on start without a network call, if the protocol has one."""
        return None

    @abstractmethod
    def build_request(
        self,
        session: CoachingSession,
        context: Dict[str, Any],
        answer: Optional[Message] = None,
    ) -> TurnRequest:
        """Build the request for the next turn.

        Args:
            session: Current session, not yet holding the new answer
            context: Side-context snapshot
            answer: The user message this turn answers, None for an opening turn
        """

    @abstractmethod
    async def invoke(self, request: TurnRequest, context: Dict[str, Any]) -> ProtocolTurn:
        """Send a request and normalize the response.

        Raises:
            TransportError: The inference call failed
            MalformedResponseError: The response was unusable
        """


class DynamicChecklistProtocol(TurnProtocol):
    """Open-ended interview; the backend infers coverage and completion.

    The entire transcript is sent on every turn, uncapped. Coverage tracking
    through covered_topic is what keeps the backend from looping on a topic.
    """

    kind = "dynamic"

    def build_request(self, session, context, answer=None) -> DynamicTurnRequest:
        transcript = list(session.transcript)
        if answer is not None:
            transcript.append(answer)
        return DynamicTurnRequest(
            user_id=session.user_id,
            category=self.category.value,
            messages=[WireMessage(**m.to_wire()) for m in transcript],
            context=context,
            covered_topics=list(session.covered_topics),
        )

    async def invoke(self, request, context) -> ProtocolTurn:
        response = await self.inference.next_turn(request)
        return ProtocolTurn(
            question=response.question or "",
            question_type=response.question_type,
            options=response.options,
            placeholder=response.placeholder,
            covered_topic=response.covered_topic,
            extracted_insights=response.extracted_insights,
            is_complete=response.is_complete,
            completion_percentage=round(response.completion_percentage),
            remaining_topics=response.remaining_topics,
            final_summary=response.final_summary,
        )


class FixedStepProtocol(TurnProtocol):
    """Predetermined question list of length N.

    Coverage, completion and percentage are derived from the step number,
    never read from the backend. The step counter is always recomputed as
    the number of user messages in the transcript.
    """

    kind = "fixed_step"

    def __init__(self, category, registry, inference):
        super().__init__(category, registry, inference)
        self.steps: List[FixedStep] = registry.fixed_steps(category)
        if not self.steps:
            raise ConfigurationError(f"No fixed steps configured for {category.value}")

    @property
    def total_steps(self) -> int:
        return len(self.steps)

    def topic_at(self, step: int) -> Optional[str]:
        """Topic of a 1-indexed step."""
        if 1 <= step <= self.total_steps:
            return self.steps[step - 1].topic
        return None

    def prepare(self, session: CoachingSession) -> None:
        counter = session.user_message_count
        if session.step_counter is not None and session.step_counter != counter:
            log.warning(
                "step_counter_reconciled",
                category=self.category.value,
                stored=session.step_counter,
                derived=counter,
            )
        session.step_counter = counter

    def opening_turn(self, session: CoachingSession) -> Optional[ProtocolTurn]:
        counter = session.user_message_count
        if counter >= self.total_steps:
            # Every step answered but never marked complete
            return ProtocolTurn(
                question="",
                is_complete=True,
                completion_percentage=100,
                final_summary=session.final_summary
                or session.insights.get("ai_generated_brief"),
            )
        return ProtocolTurn(
            question=self.steps[counter].question,
            question_type=QuestionType.TEXTAREA,
            completion_percentage=round(counter / self.total_steps * 100),
            remaining_topics=[s.topic for s in self.steps[counter:]],
        )

    def build_request(self, session, context, answer=None) -> FixedStepRequest:
        if answer is not None:
            text = answer.content
        else:
            last = session.last_user_message()
            text = last.content if last else START_SENTINEL
        return FixedStepRequest(
            step=session.user_message_count + 1,
            answer=text,
            accumulated_structured_data=dict(session.insights),
        )

    async def invoke(self, request, context) -> ProtocolTurn:
        response = await self.inference.charter_step(request, context)

        step = request.step
        is_complete = step >= self.total_steps
        feedback = "\n\n".join(p for p in (response.feedback, response.suggestion) if p)

        parts = [feedback] if feedback else []
        if not is_complete:
            parts.append(self.steps[step].question)

        extracted = dict(response.extracted)
        if response.ai_generated_brief:
            extracted["ai_generated_brief"] = response.ai_generated_brief

        return ProtocolTurn(
            question="\n\n".join(parts),
            question_type=QuestionType.TEXTAREA,
            covered_topic=self.topic_at(step),
            extracted_insights=extracted,
            is_complete=is_complete,
            completion_percentage=round(step / self.total_steps * 100),
            remaining_topics=[s.topic for s in self.steps[step:]],
            final_summary=(response.ai_generated_brief or feedback) if is_complete else None,
        )
