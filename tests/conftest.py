"""
Shared test fixtures.

Temporary SQLite databases built with init_database, a checklist registry
loaded from config/coaching.yaml plus a small in-memory one, and an AsyncMock
standing in for the inference service.
"""

import tempfile
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from brandcoach.core.checklist_loader import ChecklistRegistry
from brandcoach.domain.models.category import (
    CategoryConfig,
    ChecklistTopic,
    CoachingCatalogue,
    FixedStep,
)
from brandcoach.domain.models.turn import DynamicTurnResponse, FixedStepResponse
from brandcoach.persistence.database import init_database
from brandcoach.persistence.repositories.insight_repo import InsightRepository
from brandcoach.persistence.repositories.profile_repo import ProfileRepository
from brandcoach.persistence.repositories.session_repo import CoachingSessionRepository


@pytest.fixture
async def test_db():
    """Create and initialize test database."""
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "test.db"
        await init_database(db_path)

        from brandcoach.core import config

        original_path = config.settings.database_path
        config.settings.database_path = db_path

        with patch("brandcoach.persistence.database.settings", config.settings):
            yield db_path

        config.settings.database_path = original_path


@pytest.fixture
def registry():
    """Checklist registry loaded from the shipped catalogue."""
    return ChecklistRegistry.from_config()


@pytest.fixture
def small_registry():
    """Registry with a 4-topic persona checklist, an empty offers checklist and 3 charter steps."""
    steps = [
        FixedStep(topic="mood_place", label="Place", question="If your brand were a place?"),
        FixedStep(topic="colors", label="Colors", question="Which colours?"),
        FixedStep(topic="logo", label="Logo", question="Do you have a logo?"),
    ]
    catalogue = CoachingCatalogue(
        categories={
            "persona": CategoryConfig(
                title="My ideal client",
                checklist=[ChecklistTopic(id=f"t{i}", label=f"Topic {i}") for i in range(1, 5)],
            ),
            "offers": CategoryConfig(title="My offers"),
            "story": CategoryConfig(
                title="My story",
                checklist=[
                    ChecklistTopic(id="story_origin", label="Origin"),
                    ChecklistTopic(id="story_vision", label="Vision"),
                ],
            ),
            "charter": CategoryConfig(
                title="My visual charter",
                checklist=[ChecklistTopic(id=s.topic, label=s.label) for s in steps],
                steps=steps,
            ),
        }
    )
    return ChecklistRegistry(catalogue)


@pytest.fixture
def session_repo(test_db, registry):
    """Create session repository with test database."""
    return CoachingSessionRepository(str(test_db), registry)


@pytest.fixture
def insight_repo(test_db):
    return InsightRepository(str(test_db))


@pytest.fixture
def profile_repo(test_db):
    return ProfileRepository(str(test_db))


@pytest.fixture
def fake_inference():
    """Inference service double; set side_effect/return_value per test."""
    inference = AsyncMock()
    inference.next_turn = AsyncMock(
        return_value=DynamicTurnResponse(question="Q1", completion_percentage=5)
    )
    inference.charter_step = AsyncMock(
        return_value=FixedStepResponse(feedback="Nice.", suggestion="Try this.")
    )
    inference.write_full_text = AsyncMock(return_value="Once upon a time.")
    return inference


@pytest.fixture
async def make_controller(small_registry, fake_inference, test_db):
    """Factory building controllers wired to the test database and the fake inference.

    Background saves of every controller built are drained on teardown, so no
    aiosqlite worker outlives the test's event loop.
    """
    from brandcoach.services.session_controller import CoachingSessionController

    created = []

    def _make(category, user_id="user-1", registry=None, inference=None, **kwargs):
        reg = registry or small_registry
        db_path = str(test_db)
        store = kwargs.pop("store", None) or CoachingSessionRepository(db_path, reg)
        profiles = kwargs.pop("profiles", None) or ProfileRepository(db_path)
        insight_store = kwargs.pop("insight_store", None) or InsightRepository(db_path)
        kwargs.setdefault("save_retry_delay", 0)
        controller = CoachingSessionController(
            user_id=user_id,
            category=category,
            registry=reg,
            inference=inference or fake_inference,
            store=store,
            profiles=profiles,
            insight_store=insight_store,
            **kwargs,
        )
        created.append(controller)
        return controller

    yield _make

    for controller in created:
        await controller.drain()
