"""
Category registration table.

Single point where a category is bound to its turn protocol, its per-turn
routing behaviour and its completion side effect. Insight destinations are
keyed the same way in services/insight_router.py.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Type

from brandcoach.domain.models.category import Category
from brandcoach.services.insight_router import CompletionEffect, NarrativeFullTextEffect
from brandcoach.services.turn_protocols import (
    DynamicChecklistProtocol,
    FixedStepProtocol,
    TurnProtocol,
)


@dataclass(frozen=True)
class CategoryRegistration:
    """How one category runs.

    Attributes:
        protocol: TurnProtocol implementation
        route_per_turn: Route each turn's insights as they arrive, not only on completion
        completion_effect: Optional side effect run once the session completes
    """

    protocol: Type[TurnProtocol]
    route_per_turn: bool = True
    completion_effect: Optional[CompletionEffect] = None


DYNAMIC = CategoryRegistration(protocol=DynamicChecklistProtocol)

CATEGORY_TABLE: Dict[Category, CategoryRegistration] = {
    Category.STORY: CategoryRegistration(
        protocol=DynamicChecklistProtocol,
        completion_effect=NarrativeFullTextEffect(),
    ),
    Category.PERSONA: DYNAMIC,
    Category.VALUE_PROPOSITION: DYNAMIC,
    Category.TONE_STYLE: DYNAMIC,
    Category.CONTENT_STRATEGY: DYNAMIC,
    Category.OFFERS: DYNAMIC,
    # Charter data is accumulated step by step and routed once on completion
    Category.CHARTER: CategoryRegistration(protocol=FixedStepProtocol, route_per_turn=False),
}


def registration_for(category: Category) -> CategoryRegistration:
    return CATEGORY_TABLE.get(category, DYNAMIC)
