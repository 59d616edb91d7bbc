"""Tests for the coaching session controller.

Background saves and routing are awaited with controller.drain() before any
assertion on stored state.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from brandcoach.core.exceptions import (
    InvalidPhaseError,
    MalformedResponseError,
    NoPendingTurnError,
    PersistenceError,
    TransportError,
    TurnFailedError,
    TurnInProgressError,
    ValidationError,
)
from brandcoach.domain.models.category import Category
from brandcoach.domain.models.session import CoachingSession, Message, Phase, Role
from brandcoach.domain.models.turn import DynamicTurnResponse, FixedStepResponse, QuestionType
from brandcoach.persistence.repositories.insight_repo import (
    TARGET_AUDIENCE_TABLE,
    VISUAL_IDENTITY_TABLE,
)
from brandcoach.persistence.repositories.session_repo import CoachingSessionRepository


def turn(question="Next?", **kwargs) -> DynamicTurnResponse:
    return DynamicTurnResponse(question=question, **kwargs)


async def started(make_controller, category=Category.PERSONA, **kwargs):
    controller = make_controller(category, **kwargs)
    await controller.initialize_session()
    await controller.start()
    return controller


# =============================================================================
# Dynamic checklist sessions
# =============================================================================


class TestDynamicStart:
    async def test_fresh_session_start(self, make_controller, fake_inference):
        controller = make_controller(Category.PERSONA)
        await controller.initialize_session()
        assert controller.state().phase == Phase.INTRO

        state = await controller.start()

        request = fake_inference.next_turn.call_args.args[0]
        assert request.messages == []
        assert request.category == "persona"
        assert [(m.role, m.content) for m in state.transcript] == [(Role.ASSISTANT, "Q1")]
        assert state.current_question == "Q1"
        assert state.completion_percentage == 5
        assert state.phase == Phase.COACHING

    async def test_start_twice_rejected(self, make_controller):
        controller = await started(make_controller)

        with pytest.raises(InvalidPhaseError):
            await controller.start()

    async def test_operations_require_initialize(self, make_controller):
        controller = make_controller(Category.PERSONA)

        with pytest.raises(InvalidPhaseError):
            controller.state()
        with pytest.raises(InvalidPhaseError):
            await controller.start()


class TestDynamicAnswers:
    async def test_coverage_drives_percentage(self, make_controller, fake_inference):
        controller = await started(make_controller)

        fake_inference.next_turn.return_value = turn(covered_topic="t1", completion_percentage=10)
        state = await controller.submit_answer("Freelance designers")
        assert state.covered_topics == ["t1"]
        assert state.completion_percentage == 25

        fake_inference.next_turn.return_value = turn(covered_topic="t2", completion_percentage=10)
        state = await controller.submit_answer("They lack time")
        assert state.covered_topics == ["t1", "t2"]
        assert state.completion_percentage == 50

    async def test_coverage_never_shrinks(self, make_controller, fake_inference):
        controller = await started(make_controller)

        fake_inference.next_turn.return_value = turn(covered_topic="t1")
        await controller.submit_answer("a")
        fake_inference.next_turn.return_value = turn(covered_topic=None)
        await controller.submit_answer("b")
        fake_inference.next_turn.return_value = turn(covered_topic="t1")
        state = await controller.submit_answer("c")

        assert state.covered_topics == ["t1"]
        assert state.completion_percentage == 25

    async def test_request_carries_transcript_answer_and_coverage(self, make_controller, fake_inference):
        controller = await started(make_controller)
        fake_inference.next_turn.return_value = turn("Q2", covered_topic="t1")
        await controller.submit_answer("A1")

        await controller.submit_answer("A2")

        request = fake_inference.next_turn.call_args.args[0]
        assert [(m.role, m.content) for m in request.messages] == [
            ("assistant", "Q1"),
            ("user", "A1"),
            ("assistant", "Q2"),
            ("user", "A2"),
        ]
        assert request.covered_topics == ["t1"]

    async def test_percentage_capped_below_100(self, make_controller, fake_inference):
        controller = await started(make_controller, category=Category.OFFERS)

        fake_inference.next_turn.return_value = turn(completion_percentage=100)
        state = await controller.submit_answer("Workshops")

        assert state.completion_percentage == 99
        assert not state.is_complete

    async def test_question_metadata_exposed(self, make_controller, fake_inference):
        controller = await started(make_controller)
        fake_inference.next_turn.return_value = turn(
            "Where do they hang out?",
            question_type="multi_select",
            options=["Instagram", "LinkedIn"],
        )

        state = await controller.submit_answer("Designers")

        assert state.question_type == QuestionType.MULTI_SELECT
        assert state.options == ["Instagram", "LinkedIn"]

    async def test_options_joined(self, make_controller, fake_inference):
        controller = await started(make_controller)

        state = await controller.submit_answer(options=["Instagram", " LinkedIn "])

        user_messages = [m.content for m in state.transcript if m.role == Role.USER]
        assert user_messages == ["Instagram, LinkedIn"]

    async def test_answer_is_stripped(self, make_controller):
        controller = await started(make_controller)

        state = await controller.submit_answer("  Designers  ")

        assert state.transcript[1].content == "Designers"

    @pytest.mark.parametrize("text", [None, "", "   "])
    async def test_blank_answer_rejected(self, make_controller, fake_inference, text):
        controller = await started(make_controller)
        calls = fake_inference.next_turn.await_count

        with pytest.raises(ValidationError):
            await controller.submit_answer(text)
        assert fake_inference.next_turn.await_count == calls
        assert len(controller.session.transcript) == 1

    async def test_answer_before_start_rejected(self, make_controller):
        controller = make_controller(Category.PERSONA)
        await controller.initialize_session()

        with pytest.raises(InvalidPhaseError):
            await controller.submit_answer("Designers")


class TestCompletion:
    async def test_completion_credits_full_checklist(self, make_controller, fake_inference):
        controller = await started(make_controller)
        fake_inference.next_turn.return_value = turn(covered_topic="t2")
        await controller.submit_answer("a")

        fake_inference.next_turn.return_value = DynamicTurnResponse(
            is_complete=True, completion_percentage=80, final_summary="Your ideal client is clear."
        )
        state = await controller.submit_answer("b")

        assert state.phase == Phase.COMPLETE
        assert state.is_complete
        assert state.completion_percentage == 100
        assert state.covered_topics == ["t2", "t1", "t3", "t4"]
        assert state.final_summary == "Your ideal client is clear."
        assert state.transcript[-1].content == "Your ideal client is clear."
        assert state.current_question is None

    async def test_no_answers_after_completion(self, make_controller, fake_inference):
        controller = await started(make_controller)
        fake_inference.next_turn.return_value = DynamicTurnResponse(is_complete=True, final_summary="Done")
        await controller.submit_answer("a")

        with pytest.raises(InvalidPhaseError):
            await controller.submit_answer("b")

    async def test_completed_session_persisted(self, make_controller, fake_inference, test_db, small_registry):
        controller = await started(make_controller)
        fake_inference.next_turn.return_value = DynamicTurnResponse(is_complete=True, final_summary="Done")
        await controller.submit_answer("a")
        await controller.drain()

        loaded = await CoachingSessionRepository(str(test_db), small_registry).load(
            "user-1", Category.PERSONA
        )
        assert loaded.is_complete
        assert loaded.phase == Phase.COMPLETE
        assert loaded.completion_percentage == 100

    async def test_reinitialize_completed_session(self, make_controller, fake_inference):
        controller = await started(make_controller)
        fake_inference.next_turn.return_value = DynamicTurnResponse(is_complete=True, final_summary="Done")
        await controller.submit_answer("a")
        await controller.drain()

        again = make_controller(Category.PERSONA)
        await again.initialize_session()
        state = again.state()

        assert state.phase == Phase.COMPLETE
        assert state.final_summary == "Done"
        with pytest.raises(InvalidPhaseError):
            await again.start()


# =============================================================================
# Resume and reset
# =============================================================================


class TestResume:
    async def test_resume_round_trip(self, make_controller, fake_inference):
        controller = await started(make_controller)
        fake_inference.next_turn.return_value = turn("Q2", covered_topic="t1", completion_percentage=10)
        await controller.submit_answer("A1")
        await controller.drain()
        before = controller.state()

        resumed = make_controller(Category.PERSONA)
        session = await resumed.initialize_session()

        assert session.phase == Phase.INTRO
        assert session.transcript == before.transcript
        assert session.covered_topics == before.covered_topics
        assert session.completion_percentage == before.completion_percentage

    async def test_resume_sends_whole_transcript_without_duplicating(self, make_controller, fake_inference):
        controller = await started(make_controller)
        fake_inference.next_turn.return_value = turn("Q2")
        await controller.submit_answer("A1")
        await controller.drain()

        resumed = make_controller(Category.PERSONA)
        await resumed.initialize_session()
        fake_inference.next_turn.return_value = turn("Q2 again")
        state = await resumed.start()

        request = fake_inference.next_turn.call_args.args[0]
        assert [m.content for m in request.messages] == ["Q1", "A1", "Q2"]
        assert [m.content for m in state.transcript] == ["Q1", "A1", "Q2"]
        assert state.current_question == "Q2 again"
        assert state.phase == Phase.COACHING

    async def test_reset_starts_over(self, make_controller, fake_inference, test_db, small_registry):
        controller = await started(make_controller)
        fake_inference.next_turn.return_value = turn(covered_topic="t1")
        await controller.submit_answer("A1")

        state = await controller.reset()

        assert state.phase == Phase.INTRO
        assert state.transcript == []
        assert state.covered_topics == []
        assert state.completion_percentage == 0
        store = CoachingSessionRepository(str(test_db), small_registry)
        assert await store.load("user-1", Category.PERSONA) is None

        await controller.start()
        assert fake_inference.next_turn.call_args.args[0].messages == []

    async def test_reset_clears_context_cache(self, make_controller):
        profiles = AsyncMock()
        profiles.get_context.return_value = {"profile": {"name": "Ada"}}
        controller = await started(make_controller, profiles=profiles)

        await controller.reset()
        await controller.start()

        assert profiles.get_context.await_count == 2


# =============================================================================
# Fixed-step sessions
# =============================================================================


class TestFixedStep:
    async def test_start_is_local(self, make_controller, fake_inference):
        controller = make_controller(Category.CHARTER)
        await controller.initialize_session()

        state = await controller.start()

        fake_inference.charter_step.assert_not_called()
        fake_inference.next_turn.assert_not_called()
        assert state.current_question == "If your brand were a place?"
        assert [m.content for m in state.transcript] == ["If your brand were a place?"]
        assert state.step_counter == 0
        assert state.protocol == "fixed_step"

    async def test_all_steps_complete_locally(self, make_controller, fake_inference):
        controller = await started(make_controller, category=Category.CHARTER)

        state = await controller.submit_answer("A beach hut")
        assert state.step_counter == 1
        assert state.covered_topics == ["mood_place"]
        assert state.completion_percentage == 33
        assert state.current_question == "Nice.\n\nTry this.\n\nWhich colours?"

        state = await controller.submit_answer("Sand and teal")
        assert state.step_counter == 2
        assert state.completion_percentage == 67

        state = await controller.submit_answer("Not yet")
        assert state.step_counter == 3
        assert state.is_complete
        assert state.completion_percentage == 100
        assert state.covered_topics == ["mood_place", "colors", "logo"]
        assert state.final_summary == "Nice.\n\nTry this."

        steps = [c.args[0].step for c in fake_inference.charter_step.call_args_list]
        assert steps == [1, 2, 3]
        fake_inference.next_turn.assert_not_called()

    async def test_step_counter_tracks_user_messages(self, make_controller):
        controller = await started(make_controller, category=Category.CHARTER)

        for answer in ("a", "b"):
            state = await controller.submit_answer(answer)
            user_count = sum(1 for m in state.transcript if m.role == Role.USER)
            assert state.step_counter == user_count

    async def test_completion_prefers_brief(self, make_controller, fake_inference):
        controller = await started(make_controller, category=Category.CHARTER)
        await controller.submit_answer("a")
        await controller.submit_answer("b")

        fake_inference.charter_step.return_value = FixedStepResponse(
            feedback="Great.", ai_generated_brief="Warm, coastal, hand-drawn."
        )
        state = await controller.submit_answer("c")

        assert state.final_summary == "Warm, coastal, hand-drawn."

    async def test_resume_mid_way(self, make_controller, test_db, small_registry, fake_inference):
        session = CoachingSession(
            user_id="user-1", category=Category.CHARTER, covered_topics=["mood_place"], step_counter=5
        )
        session.append(Message(role=Role.ASSISTANT, content="If your brand were a place?"))
        session.append(Message(role=Role.USER, content="A beach hut"))
        session.append(Message(role=Role.ASSISTANT, content="Nice.\n\nWhich colours?"))
        await CoachingSessionRepository(str(test_db), small_registry).save(
            "user-1", Category.CHARTER, session
        )

        controller = make_controller(Category.CHARTER)
        await controller.initialize_session()
        assert controller.session.step_counter == 1

        state = await controller.start()

        fake_inference.charter_step.assert_not_called()
        assert state.current_question == "Which colours?"
        assert len(state.transcript) == 3
        assert state.completion_percentage == 33

    async def test_resume_with_every_step_answered(self, make_controller, test_db, small_registry):
        session = CoachingSession(user_id="user-1", category=Category.CHARTER)
        for i in range(3):
            session.append(Message(role=Role.ASSISTANT, content=f"Q{i}"))
            session.append(Message(role=Role.USER, content=f"A{i}"))
        await CoachingSessionRepository(str(test_db), small_registry).save(
            "user-1", Category.CHARTER, session
        )

        controller = make_controller(Category.CHARTER)
        await controller.initialize_session()
        state = await controller.start()

        assert state.is_complete
        assert state.completion_percentage == 100
        assert len(state.transcript) == 6


# =============================================================================
# Failure, retry and concurrency
# =============================================================================


class TestRetry:
    async def test_transport_failure_leaves_session_untouched(self, make_controller, fake_inference):
        controller = await started(make_controller)
        before = controller.state()
        fake_inference.next_turn.side_effect = TransportError("connection reset")

        with pytest.raises(TurnFailedError) as exc_info:
            await controller.submit_answer("A1")

        assert exc_info.value.reason == "transport"
        assert exc_info.value.retryable
        state = controller.state()
        assert state.transcript == before.transcript
        assert state.can_retry
        assert not state.is_busy

    async def test_malformed_response_reason(self, make_controller, fake_inference):
        controller = await started(make_controller)
        fake_inference.next_turn.side_effect = MalformedResponseError("no question")

        with pytest.raises(TurnFailedError) as exc_info:
            await controller.submit_answer("A1")

        assert exc_info.value.reason == "malformed_response"

    async def test_retry_replays_exact_request_once(self, make_controller, fake_inference):
        controller = await started(make_controller)
        fake_inference.next_turn.side_effect = [TransportError("timeout"), turn("Q2")]

        with pytest.raises(TurnFailedError):
            await controller.submit_answer("A1")
        state = await controller.retry()

        first, second = [c.args[0] for c in fake_inference.next_turn.call_args_list[-2:]]
        assert second is first
        assert [m.content for m in state.transcript] == ["Q1", "A1", "Q2"]
        assert not state.can_retry

    async def test_failed_start_can_be_retried(self, make_controller, fake_inference):
        controller = make_controller(Category.PERSONA)
        await controller.initialize_session()
        fake_inference.next_turn.side_effect = [TransportError("down"), turn("Q1")]

        with pytest.raises(TurnFailedError):
            await controller.start()
        assert controller.state().phase == Phase.INTRO

        state = await controller.retry()
        assert [m.content for m in state.transcript] == ["Q1"]
        assert state.phase == Phase.COACHING

    async def test_retry_without_failure(self, make_controller):
        controller = await started(make_controller)

        with pytest.raises(NoPendingTurnError):
            await controller.retry()

    async def test_new_answer_replaces_pending_turn(self, make_controller, fake_inference):
        controller = await started(make_controller)
        fake_inference.next_turn.side_effect = [TransportError("down"), turn("Q2")]

        with pytest.raises(TurnFailedError):
            await controller.submit_answer("first try")
        state = await controller.submit_answer("second try")

        assert [m.content for m in state.transcript] == ["Q1", "second try", "Q2"]


class TestBusyFlag:
    async def test_second_turn_rejected_while_in_flight(self, make_controller, fake_inference):
        controller = await started(make_controller)
        release = asyncio.Event()

        async def slow_turn(request):
            await release.wait()
            return turn("Q2")

        fake_inference.next_turn.side_effect = slow_turn
        in_flight = asyncio.create_task(controller.submit_answer("A1"))
        while not controller.is_busy:
            await asyncio.sleep(0)

        assert controller.state().is_busy
        with pytest.raises(TurnInProgressError):
            await controller.submit_answer("A1 again")
        with pytest.raises(TurnInProgressError):
            await controller.reset()

        release.set()
        state = await in_flight
        assert not state.is_busy
        assert fake_inference.next_turn.await_count == 2

    async def test_flag_claimed_before_context_loads(self, make_controller, fake_inference):
        release = asyncio.Event()
        profiles = AsyncMock()

        async def slow_context(user_id):
            await release.wait()
            return {}

        profiles.get_context.side_effect = slow_context
        controller = await started(make_controller, category=Category.CHARTER, profiles=profiles)
        in_flight = asyncio.create_task(controller.submit_answer("A beach hut"))
        while not profiles.get_context.await_count:
            await asyncio.sleep(0)

        assert controller.is_busy
        with pytest.raises(TurnInProgressError):
            await controller.submit_answer("Sand and teal")
        with pytest.raises(TurnInProgressError):
            await controller.initialize_session()
        with pytest.raises(TurnInProgressError):
            await controller.retry()

        release.set()
        state = await in_flight
        assert [c.args[0].step for c in fake_inference.charter_step.call_args_list] == [1]
        assert [m.content for m in state.transcript[:2]] == [
            "If your brand were a place?",
            "A beach hut",
        ]
        assert len(state.transcript) == 3
        assert state.step_counter == 1

    async def test_flag_released_after_failed_turn(self, make_controller, fake_inference):
        controller = await started(make_controller)
        fake_inference.next_turn.side_effect = TransportError("connection reset")

        with pytest.raises(TurnFailedError):
            await controller.submit_answer("A1")

        assert not controller.is_busy
        fake_inference.next_turn.side_effect = None
        state = await controller.retry()
        assert [m.content for m in state.transcript] == ["Q1", "A1", "Q1"]


# =============================================================================
# Side context and background persistence
# =============================================================================


class TestContext:
    async def test_context_fetched_once(self, make_controller, fake_inference):
        profiles = AsyncMock()
        profiles.get_context.return_value = {"profile": {"name": "Ada"}}
        controller = await started(make_controller, profiles=profiles)

        await controller.submit_answer("A1")
        await controller.submit_answer("A2")

        assert profiles.get_context.await_count == 1
        assert fake_inference.next_turn.call_args.args[0].context == {"profile": {"name": "Ada"}}

    async def test_context_failure_not_cached(self, make_controller, fake_inference):
        profiles = AsyncMock()
        profiles.get_context.side_effect = [PersistenceError("locked"), {"profile": {"name": "Ada"}}]
        controller = await started(make_controller, profiles=profiles)

        assert fake_inference.next_turn.call_args.args[0].context == {}
        await controller.submit_answer("A1")

        assert profiles.get_context.await_count == 2
        assert fake_inference.next_turn.call_args.args[0].context == {"profile": {"name": "Ada"}}


class TestPersistence:
    async def test_save_retried_then_given_up(self, make_controller):
        store = AsyncMock()
        store.load.return_value = None
        store.save.side_effect = PersistenceError("disk full")
        controller = await started(make_controller, store=store, save_retry_attempts=2)

        await controller.drain()

        assert store.save.await_count == 3
        assert controller.state().phase == Phase.COACHING

    async def test_save_recovers_on_retry(self, make_controller):
        store = AsyncMock()
        store.load.return_value = None
        store.save.side_effect = [PersistenceError("busy"), None]
        controller = await started(make_controller, store=store, save_retry_attempts=2)

        await controller.drain()

        assert store.save.await_count == 2

    async def test_load_failure_propagates(self, make_controller):
        store = AsyncMock()
        store.load.side_effect = PersistenceError("unreadable")
        controller = make_controller(Category.PERSONA, store=store)

        with pytest.raises(PersistenceError):
            await controller.initialize_session()

    async def test_every_turn_saved(self, make_controller, fake_inference, test_db, small_registry):
        controller = await started(make_controller)
        await controller.submit_answer("A1")
        await controller.drain()

        loaded = await CoachingSessionRepository(str(test_db), small_registry).load(
            "user-1", Category.PERSONA
        )
        assert [m.content for m in loaded.transcript] == ["Q1", "A1", "Q1"]

    async def test_reinitialize_waits_for_background_saves(
        self, make_controller, test_db, small_registry
    ):
        repo = CoachingSessionRepository(str(test_db), small_registry)

        async def slow_save(user_id, category, session):
            await asyncio.sleep(0.02)
            await repo.save(user_id, category, session)

        store = AsyncMock()
        store.load.side_effect = repo.load
        store.save.side_effect = slow_save
        controller = await started(make_controller, store=store)
        await controller.submit_answer("A1")

        session = await controller.initialize_session()

        assert [m.content for m in session.transcript] == ["Q1", "A1", "Q1"]
        assert session.phase == Phase.INTRO
        assert store.save.await_count == 2


class TestRouting:
    async def test_dynamic_insights_routed_each_turn(self, make_controller, fake_inference, insight_repo):
        controller = await started(make_controller)
        fake_inference.next_turn.return_value = turn(extracted_insights={"description": "Studios"})

        await controller.submit_answer("Small studios")
        await controller.drain()

        assert await insight_repo.get_user_data(TARGET_AUDIENCE_TABLE, "user-1") == {
            "description": "Studios"
        }

    async def test_back_to_back_turns_route_one_at_a_time(self, make_controller, fake_inference, insight_repo):
        active = 0
        overlapping = []

        async def slow_merge(user_id, data):
            nonlocal active
            active += 1
            overlapping.append(active)
            await asyncio.sleep(0.01)
            await insight_repo.upsert_target_audience(user_id, data)
            active -= 1

        insight_store = AsyncMock()
        insight_store.upsert_target_audience.side_effect = slow_merge
        controller = await started(make_controller, insight_store=insight_store)
        fake_inference.next_turn.side_effect = [
            turn(extracted_insights={"description": "Studios"}),
            turn(extracted_insights={"pain_points": "Late payers"}),
        ]

        await controller.submit_answer("Small studios")
        await controller.submit_answer("They pay late")
        await controller.drain()

        assert overlapping == [1, 1]
        assert await insight_repo.get_user_data(TARGET_AUDIENCE_TABLE, "user-1") == {
            "description": "Studios",
            "pain_points": "Late payers",
        }

    async def test_charter_routed_only_on_completion(self, make_controller, fake_inference, insight_repo):
        controller = await started(make_controller, category=Category.CHARTER)
        fake_inference.charter_step.return_value = FixedStepResponse(
            feedback="Nice.", extracted={"mood_keywords": ["calm"]}
        )
        await controller.submit_answer("A beach hut")
        await controller.drain()
        assert await insight_repo.get_user_data(VISUAL_IDENTITY_TABLE, "user-1") is None

        fake_inference.charter_step.return_value = FixedStepResponse(
            feedback="Nice.", extracted={"color_primary": "#008080"}
        )
        await controller.submit_answer("Teal")
        await controller.submit_answer("No logo")
        await controller.drain()

        assert await insight_repo.get_user_data(VISUAL_IDENTITY_TABLE, "user-1") == {
            "mood_keywords": ["calm"],
            "color_primary": "#008080",
        }

    async def test_routing_failure_does_not_block(self, make_controller, fake_inference):
        insight_store = AsyncMock()
        insight_store.upsert_target_audience.side_effect = PersistenceError("locked")
        controller = await started(make_controller, insight_store=insight_store)
        fake_inference.next_turn.return_value = turn(extracted_insights={"description": "Studios"})

        state = await controller.submit_answer("Small studios")
        await controller.drain()

        assert state.phase == Phase.COACHING

    async def test_story_completion_writes_full_text(self, make_controller, fake_inference, insight_repo):
        controller = await started(make_controller, category=Category.STORY)
        fake_inference.next_turn.return_value = DynamicTurnResponse(
            is_complete=True,
            final_summary="Your story in brief.",
            extracted_insights={"story_origin": "A garage"},
        )

        await controller.submit_answer("It started in a garage")
        await controller.drain()

        fake_inference.write_full_text.assert_awaited_once()
        narrative = await insight_repo.get_narrative("user-1")
        assert narrative["data"] == {"origin": "A garage"}
        assert narrative["full_story"] == "Once upon a time."

    async def test_completion_effect_failure_is_logged_not_raised(self, make_controller, fake_inference):
        fake_inference.write_full_text.side_effect = MalformedResponseError("empty")
        controller = await started(make_controller, category=Category.STORY)
        fake_inference.next_turn.return_value = DynamicTurnResponse(is_complete=True, final_summary="Done")

        state = await controller.submit_answer("The end")
        await controller.drain()

        assert state.is_complete
