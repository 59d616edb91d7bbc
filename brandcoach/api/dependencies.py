"""Dependency injection for API routes."""

from functools import lru_cache
from typing import Annotated, Callable, Dict, Optional, Tuple

from fastapi import Depends
import structlog

from brandcoach.core.checklist_loader import ChecklistRegistry
from brandcoach.core.config import settings
from brandcoach.domain.models.category import Category
from brandcoach.llm.client import get_llm_client
from brandcoach.persistence.repositories.insight_repo import InsightRepository
from brandcoach.persistence.repositories.profile_repo import ProfileRepository
from brandcoach.persistence.repositories.session_repo import CoachingSessionRepository
from brandcoach.services.inference_service import LLMCoachingInference
from brandcoach.services.session_controller import CoachingSessionController

log = structlog.get_logger(__name__)

ControllerFactory = Callable[[str, Category], CoachingSessionController]


class ControllerRegistry:
    """In-process map of live controllers keyed by (user, category).

    Keeps the busy flag, the retry cache and the side-context cache alive
    between HTTP requests.
    """

    def __init__(self, factory: ControllerFactory):
        self._factory = factory
        self._controllers: Dict[Tuple[str, Category], CoachingSessionController] = {}

    def get(self, user_id: str, category: Category) -> Optional[CoachingSessionController]:
        return self._controllers.get((user_id, category))

    def get_or_create(self, user_id: str, category: Category) -> CoachingSessionController:
        key = (user_id, category)
        if key not in self._controllers:
            self._controllers[key] = self._factory(user_id, category)
            log.debug("controller_created", user_id=user_id, category=category.value)
        return self._controllers[key]

    async def drain_all(self) -> None:
        for controller in list(self._controllers.values()):
            await controller.drain()

    def __len__(self) -> int:
        return len(self._controllers)


@lru_cache(maxsize=1)
def get_checklist_registry() -> ChecklistRegistry:
    """Checklist registry loaded once per process from config/coaching.yaml."""
    return ChecklistRegistry.from_config()


@lru_cache(maxsize=1)
def get_shared_inference() -> LLMCoachingInference:
    """Cached inference adapter.

    Shared across all controllers so the LLM clients are created once per
    process and reused.
    """
    return LLMCoachingInference(
        registry=get_checklist_registry(),
        coaching_client=get_llm_client("coaching"),
        charter_client=get_llm_client("charter"),
        writing_client=get_llm_client("writing"),
    )


def get_session_repository() -> CoachingSessionRepository:
    """FastAPI dependency injection for CoachingSessionRepository."""
    return CoachingSessionRepository(str(settings.database_path), get_checklist_registry())


def build_controller(user_id: str, category: Category) -> CoachingSessionController:
    db_path = str(settings.database_path)
    return CoachingSessionController(
        user_id=user_id,
        category=category,
        registry=get_checklist_registry(),
        inference=get_shared_inference(),
        store=get_session_repository(),
        profiles=ProfileRepository(db_path),
        insight_store=InsightRepository(db_path),
    )


@lru_cache(maxsize=1)
def get_controller_registry() -> ControllerRegistry:
    return ControllerRegistry(build_controller)


# Type aliases for dependency injection
ChecklistRegistryDep = Annotated[ChecklistRegistry, Depends(get_checklist_registry)]
ControllerRegistryDep = Annotated[ControllerRegistry, Depends(get_controller_registry)]
SessionRepoDep = Annotated[CoachingSessionRepository, Depends(get_session_repository)]
