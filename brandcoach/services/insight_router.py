"""
Insight routing.

Maps the insight bundle extracted from a coaching session to one of four
destination stores. Each category has one InsightRoute strategy; categories
without an explicit route write to the generic brand-attributes store.

Routing is best-effort: failures are logged and swallowed so they never
block a session from completing.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import structlog

from brandcoach.domain.models.category import Category
from brandcoach.domain.models.session import CoachingSession
from brandcoach.persistence.repositories.insight_repo import PRIMARY_STORY
from brandcoach.services.protocols import ICoachingInference, IInsightStore

log = structlog.get_logger(__name__)

COACHING_SOURCE = "coaching"


class InsightRoute(ABC):
    """Strategy writing one category's insights to its destination store."""

    destination: str = "unknown"

    @abstractmethod
    async def apply(self, store: IInsightStore, user_id: str, insights: Dict[str, Any]) -> bool:
        """Write insights. Returns False when nothing was written."""


class VisualIdentityRoute(InsightRoute):
    """Allow-listed brand charter fields, upserted by user."""

    destination = "visual_identity"

    ALLOWED_FIELDS = frozenset(
        {
            "color_primary",
            "color_secondary",
            "color_accent",
            "color_background",
            "color_text",
            "font_title",
            "font_body",
            "mood_keywords",
            "photo_style",
            "visual_donts",
            "ai_generated_brief",
            "logo_notes",
        }
    )

    async def apply(self, store, user_id, insights):
        fields = {k: v for k, v in insights.items() if k in self.ALLOWED_FIELDS}
        if not fields:
            return False
        await store.upsert_visual_identity(user_id, fields)
        return True


class TargetAudienceRoute(InsightRoute):
    """Wholesale merge into the target-audience store."""

    destination = "target_audience"

    async def apply(self, store, user_id, insights):
        await store.upsert_target_audience(user_id, dict(insights))
        return True


class NarrativeRoute(InsightRoute):
    """Renamed fields merged into the primary narrative, tagged with its source."""

    destination = "narrative"

    FIELD_MAP = {
        "story_origin": "origin",
        "story_turning_point": "turning_point",
        "story_struggles": "struggles",
        "story_unique": "uniqueness",
        "story_vision": "vision",
        "story_full": "full_story",
    }

    def rename(self, insights: Dict[str, Any]) -> Dict[str, Any]:
        return {self.FIELD_MAP.get(k, k): v for k, v in insights.items()}

    async def apply(self, store, user_id, insights):
        await store.upsert_narrative(
            user_id,
            self.rename(insights),
            source=COACHING_SOURCE,
            story_type=PRIMARY_STORY,
        )
        return True


class BrandAttributesRoute(InsightRoute):
    """Wholesale merge into the generic brand-attributes store."""

    destination = "brand_attributes"

    async def apply(self, store, user_id, insights):
        await store.upsert_brand_attributes(user_id, dict(insights))
        return True


ROUTES: Dict[Category, InsightRoute] = {
    Category.CHARTER: VisualIdentityRoute(),
    Category.PERSONA: TargetAudienceRoute(),
    Category.STORY: NarrativeRoute(),
}

DEFAULT_ROUTE = BrandAttributesRoute()


def route_for(category: Category) -> InsightRoute:
    return ROUTES.get(category, DEFAULT_ROUTE)


class InsightRouter:
    """Dispatches insight bundles to destination stores by category."""

    def __init__(self, store: IInsightStore):
        self.store = store

    async def route(self, category: Category, insights: Optional[Dict[str, Any]], user_id: str) -> bool:
        """
        Route an insight bundle. Never raises.

        Returns:
            True if something was written
        """
        if not insights:
            return False

        route = route_for(category)
        try:
            written = await route.apply(self.store, user_id, insights)
        except Exception as e:
            log.error(
                "insight_routing_failed",
                category=category.value,
                destination=route.destination,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        if written:
            log.info(
                "insight_routed",
                category=category.value,
                destination=route.destination,
                fields=sorted(insights),
            )
        return written


class CompletionEffect(ABC):
    """Post-completion side effect of a category, outside the turn loop."""

    name: str = "unknown"

    @abstractmethod
    async def run(
        self,
        session: CoachingSession,
        context: Dict[str, Any],
        inference: ICoachingInference,
        store: IInsightStore,
    ) -> None:
        """Run the effect. Errors propagate; the controller logs them."""


class NarrativeFullTextEffect(CompletionEffect):
    """Write the complete narrative from the full transcript into full_story."""

    name = "narrative_full_text"

    async def run(self, session, context, inference, store):
        text = await inference.write_full_text(
            session.category,
            [m.to_wire() for m in session.transcript],
            context,
        )
        await store.set_full_story(
            session.user_id, text, source=COACHING_SOURCE, story_type=PRIMARY_STORY
        )
