"""LLM-backed implementation of the coaching inference contract.

Fulfils ICoachingInference by prompting an LLM provider:
- next_turn: dynamic checklist interview (coaching client)
- charter_step: fixed-step visual charter feedback (charter client)
- write_full_text: long-form text after completion (writing client)

All raw model output goes through brandcoach.llm.parsing, so callers only
ever see validated response objects, TransportError or MalformedResponseError.
"""

from typing import Any, Dict, List, Optional

import structlog

from brandcoach.core.checklist_loader import ChecklistRegistry
from brandcoach.core.exceptions import MalformedResponseError, ValidationError
from brandcoach.domain.models.category import Category
from brandcoach.domain.models.turn import (
    DynamicTurnRequest,
    DynamicTurnResponse,
    FixedStepRequest,
    FixedStepResponse,
)
from brandcoach.llm.client import LLMClient
from brandcoach.llm.parsing import (
    parse_dynamic_response,
    parse_fixed_step_response,
    strip_code_fences,
)
from brandcoach.llm.prompts.charter import get_charter_system_prompt
from brandcoach.llm.prompts.coaching import (
    get_coaching_messages,
    get_coaching_system_prompt,
    get_full_text_messages,
    get_writing_system_prompt,
)

log = structlog.get_logger(__name__)


class LLMCoachingInference:
    """Inference adapter prompting LLM providers.

    The writing client is optional; without it the coaching client also
    writes the long-form text.
    """

    def __init__(
        self,
        registry: ChecklistRegistry,
        coaching_client: LLMClient,
        charter_client: Optional[LLMClient] = None,
        writing_client: Optional[LLMClient] = None,
    ):
        self.registry = registry
        self.coaching_llm = coaching_client
        self.charter_llm = charter_client or coaching_client
        self.writing_llm = writing_client or coaching_client

    async def next_turn(self, request: DynamicTurnRequest) -> DynamicTurnResponse:
        checklist = self.registry.topics(request.category)
        system = get_coaching_system_prompt(
            category=request.category,
            category_title=self.registry.title(request.category),
            context=request.context,
            checklist=checklist,
            covered_topics=list(request.covered_topics),
        )
        messages = get_coaching_messages([m.model_dump() for m in request.messages])

        response = await self.coaching_llm.complete(system=system, messages=messages)
        turn = parse_dynamic_response(response.content)

        log.debug(
            "dynamic_turn_parsed",
            category=request.category,
            covered_topic=turn.covered_topic,
            is_complete=turn.is_complete,
            reported_percentage=turn.completion_percentage,
        )
        return turn

    async def charter_step(
        self, request: FixedStepRequest, context: Optional[Dict[str, Any]] = None
    ) -> FixedStepResponse:
        steps = self.registry.fixed_steps(Category.CHARTER)
        if request.step > len(steps):
            raise ValidationError(
                f"Step {request.step} out of range (charter has {len(steps)} steps)"
            )

        system = get_charter_system_prompt(
            step=request.step,
            steps=steps,
            answer=request.answer,
            accumulated=dict(request.accumulated_structured_data),
            context=context or {},
        )
        response = await self.charter_llm.complete(prompt=request.answer, system=system)
        return parse_fixed_step_response(response.content)

    async def write_full_text(
        self,
        category: Category,
        messages: List[Dict[str, str]],
        context: Dict[str, Any],
    ) -> str:
        system = get_writing_system_prompt(self.registry.title(category), context)
        response = await self.writing_llm.complete(
            system=system, messages=get_full_text_messages(messages)
        )
        text = strip_code_fences(response.content)
        if not text:
            raise MalformedResponseError("Empty full text", raw=response.content)

        log.info("full_text_written", category=category.value, length=len(text))
        return text
