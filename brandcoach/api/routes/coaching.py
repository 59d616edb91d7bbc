"""
Coaching API routes.

Endpoints for the catalogue, the coaching session lifecycle
(initialize, start, answer, retry, reset) and per-user history.
"""

from fastapi import APIRouter, status
import structlog

from brandcoach.api.dependencies import (
    ChecklistRegistryDep,
    ControllerRegistry,
    ControllerRegistryDep,
    SessionRepoDep,
)
from brandcoach.api.schemas import (
    AnswerRequest,
    CategoryInfo,
    CategoryListResponse,
    ChecklistTopicSchema,
    HistoryResponse,
    ResetResponse,
)
from brandcoach.core.logging import bind_context
from brandcoach.domain.models.category import Category
from brandcoach.services.categories import registration_for
from brandcoach.services.session_controller import CoachingSessionController, SessionState

log = structlog.get_logger(__name__)

router = APIRouter(tags=["coaching"])


async def _controller(
    controllers: ControllerRegistry,
    user_id: str,
    category: str,
) -> CoachingSessionController:
    """Resolve the live controller, initializing it on first use."""
    parsed = Category.parse(category)
    bind_context(user_id=user_id, category=parsed.value)
    controller = controllers.get_or_create(user_id, parsed)
    if controller.session is None:
        await controller.initialize_session()
    return controller


# ============ CATALOGUE ============


@router.get("/coaching/categories", response_model=CategoryListResponse)
async def list_categories(registry: ChecklistRegistryDep):
    """List coaching categories with their protocol and checklist."""
    categories = []
    for category in Category:
        topics = registry.topics(category)
        categories.append(
            CategoryInfo(
                category=category.value,
                title=registry.title(category),
                protocol=registration_for(category).protocol.kind,
                checklist=[
                    ChecklistTopicSchema(id=t, label=registry.label(category, t)) for t in topics
                ],
                step_count=len(registry.fixed_steps(category)),
            )
        )
    return CategoryListResponse(categories=categories)


# ============ SESSION LIFECYCLE ============


@router.post(
    "/users/{user_id}/coaching/{category}",
    response_model=SessionState,
    status_code=status.HTTP_200_OK,
)
async def initialize_session(user_id: str, category: str, controllers: ControllerRegistryDep):
    """Load the persisted session (or create a fresh one) and return its state."""
    parsed = Category.parse(category)
    bind_context(user_id=user_id, category=parsed.value)
    controller = controllers.get_or_create(user_id, parsed)
    await controller.initialize_session()
    return controller.state()


@router.get("/users/{user_id}/coaching/{category}", response_model=SessionState)
async def get_session_state(user_id: str, category: str, controllers: ControllerRegistryDep):
    controller = await _controller(controllers, user_id, category)
    return controller.state()


@router.post("/users/{user_id}/coaching/{category}/start", response_model=SessionState)
async def start_session(user_id: str, category: str, controllers: ControllerRegistryDep):
    """Start (or resume) the interview and return the first question."""
    controller = await _controller(controllers, user_id, category)
    return await controller.start()


@router.post("/users/{user_id}/coaching/{category}/answers", response_model=SessionState)
async def submit_answer(
    user_id: str,
    category: str,
    answer: AnswerRequest,
    controllers: ControllerRegistryDep,
):
    """Answer the current question and return the next one (or the summary)."""
    controller = await _controller(controllers, user_id, category)
    return await controller.submit_answer(text=answer.text, options=answer.options)


@router.post("/users/{user_id}/coaching/{category}/retry", response_model=SessionState)
async def retry_turn(user_id: str, category: str, controllers: ControllerRegistryDep):
    """Replay the last failed turn."""
    controller = await _controller(controllers, user_id, category)
    return await controller.retry()


@router.delete("/users/{user_id}/coaching/{category}", response_model=ResetResponse)
async def reset_session(user_id: str, category: str, controllers: ControllerRegistryDep):
    """Delete the session; the next start begins from an empty transcript."""
    controller = await _controller(controllers, user_id, category)
    await controller.reset()
    return ResetResponse(user_id=user_id, category=controller.category.value)


# ============ HISTORY ============


@router.get("/users/{user_id}/coaching", response_model=HistoryResponse)
async def list_history(user_id: str, sessions: SessionRepoDep):
    """All coaching sessions of a user, most recently updated first."""
    summaries = await sessions.list_for_user(user_id)
    return HistoryResponse(user_id=user_id, sessions=summaries, total=len(summaries))
