"""
Coaching session controller.

Owns one (user, category) session and drives it through

    intro -> coaching -> complete -> (reset) -> intro

Turn execution is the only suspension point that matters to the caller:
persistence, insight routing and completion side effects run as background
tasks so the displayed question never waits on them. drain() awaits those
tasks (shutdown, tests).

One turn at a time: a busy flag rejects any operation that would issue a
second inference call while one is outstanding. A failed turn leaves the
session untouched and keeps the exact request for retry().
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Coroutine, Dict, List, Optional, Set

import structlog
from pydantic import BaseModel, Field

from brandcoach.core.checklist_loader import ChecklistRegistry
from brandcoach.core.config import settings
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
from brandcoach.domain.models.turn import PendingTurn, ProtocolTurn, QuestionType
from brandcoach.services.categories import registration_for
from brandcoach.services.insight_router import InsightRouter
from brandcoach.services.protocols import (
    ICoachingInference,
    IInsightStore,
    IProfileSource,
    ISessionStore,
)
from brandcoach.services.topic_tracker import TopicTracker

log = structlog.get_logger(__name__)

APOLOGY = "Sorry, I couldn't prepare your next question. Please try again."


class SessionState(BaseModel):
    """Read-only snapshot of a controller for presentation."""

    user_id: str
    category: Category
    protocol: str
    phase: Phase
    transcript: List[Message] = Field(default_factory=list)
    covered_topics: List[str] = Field(default_factory=list)
    completion_percentage: int = 0
    current_question: Optional[str] = None
    question_type: QuestionType = QuestionType.TEXTAREA
    options: Optional[List[str]] = None
    placeholder: Optional[str] = None
    final_summary: Optional[str] = None
    step_counter: Optional[int] = None
    is_complete: bool = False
    is_busy: bool = False
    can_retry: bool = False


class CoachingSessionController:
    """State machine for one (user, category) coaching session.

    Caches are explicit fields:
        _context: side-context snapshot, fetched at most once per session lifetime
        _pending: exact request of the last failed turn, replayed by retry()
        session.step_counter: fixed-step only, recomputed from the transcript
    """

    def __init__(
        self,
        user_id: str,
        category: Category,
        registry: ChecklistRegistry,
        inference: ICoachingInference,
        store: ISessionStore,
        profiles: IProfileSource,
        insight_store: IInsightStore,
        save_retry_attempts: Optional[int] = None,
        save_retry_delay: Optional[float] = None,
    ):
        self.user_id = user_id
        self.category = category
        self.registry = registry
        self.inference = inference
        self.store = store
        self.profiles = profiles
        self.insight_store = insight_store
        self.router = InsightRouter(insight_store)

        self.registration = registration_for(category)
        self.protocol = self.registration.protocol(category, registry, inference)
        self.tracker = TopicTracker(registry.topics(category))

        self.save_retry_attempts = (
            settings.persistence_retry_attempts if save_retry_attempts is None else save_retry_attempts
        )
        self.save_retry_delay = (
            settings.persistence_retry_delay if save_retry_delay is None else save_retry_delay
        )

        self.session: Optional[CoachingSession] = None
        self.current: Optional[ProtocolTurn] = None
        self._busy = False
        self._pending: Optional[PendingTurn] = None
        self._context: Optional[Dict[str, Any]] = None
        self._tasks: Set[asyncio.Task] = set()
        self._save_lock = asyncio.Lock()

    @property
    def is_busy(self) -> bool:
        return self._busy

    @property
    def pending(self) -> Optional[PendingTurn]:
        return self._pending

    # =========================================================================
    # Operations
    # =========================================================================

    async def initialize_session(self) -> CoachingSession:
        """Load the persisted session or create a fresh one.

        A loaded incomplete session starts in INTRO; a loaded complete one in
        COMPLETE.

        Outstanding background saves are awaited first, so a re-initialize
        never reads a row older than the in-memory session.

        Raises:
            TurnInProgressError: A turn is outstanding
            PersistenceError: The store could not be read
        """
        async with self._operation():
            await self.drain()
            loaded = await self.store.load(self.user_id, self.category)

        self.session = loaded or self._fresh_session()
        self.protocol.prepare(self.session)
        self._pending = None
        self.current = None

        if self.session.is_complete:
            self.current = ProtocolTurn(
                is_complete=True,
                completion_percentage=100,
                final_summary=self.session.final_summary,
            )

        log.info(
            "session_initialized",
            user_id=self.user_id,
            category=self.category.value,
            resumed=loaded is not None,
            phase=self.session.phase.value,
            messages=len(self.session.transcript),
        )
        return self.session

    async def start(self) -> SessionState:
        """Move intro -> coaching and produce the first question.

        Dynamic sessions send the transcript (empty when fresh, the whole
        resumed transcript otherwise). Fixed-step sessions display the
        resume question locally.
        """
        session = self._require_session()
        self._ensure_idle()
        if session.phase != Phase.INTRO:
            raise InvalidPhaseError(f"Cannot start a session in phase {session.phase.value}")

        opening = self.protocol.opening_turn(session)
        if opening is not None:
            self._apply(opening, user_message=None)
            return self.state()

        async with self._operation():
            context = await self._get_context()
            request = self.protocol.build_request(session, context)
            await self._execute(PendingTurn(request=request))
        return self.state()

    async def submit_answer(
        self, text: Optional[str] = None, options: Optional[List[str]] = None
    ) -> SessionState:
        """Answer the current question.

        Args:
            text: Free-text answer
            options: Chosen options of a select/multi_select question, joined with ", "

        Raises:
            ValidationError: Blank answer
            InvalidPhaseError: Session is not coaching
            TurnInProgressError: Another operation is outstanding
            TurnFailedError: Inference failed; nothing was appended, retry() replays
        """
        session = self._require_session()
        self._ensure_idle()
        if session.phase != Phase.COACHING:
            raise InvalidPhaseError(f"Cannot answer in phase {session.phase.value}")

        if options:
            text = ", ".join(o.strip() for o in options if o and o.strip())
        if text is None or not text.strip():
            raise ValidationError("Answer cannot be empty")

        answer = Message(role=Role.USER, content=text.strip())
        # Claimed before the context fetch: the request is built from the
        # session as it stands, so no second turn may read it meanwhile
        async with self._operation():
            context = await self._get_context()
            request = self.protocol.build_request(session, context, answer=answer)
            await self._execute(PendingTurn(request=request, user_message=answer))
        return self.state()

    async def retry(self) -> SessionState:
        """Replay the cached request of the last failed turn verbatim."""
        session = self._require_session()
        self._ensure_idle()
        if self._pending is None:
            raise NoPendingTurnError("No failed turn to retry")
        if session.phase == Phase.COMPLETE:
            raise InvalidPhaseError("Session is already complete")

        log.info("turn_retry", user_id=self.user_id, category=self.category.value)
        async with self._operation():
            await self._execute(self._pending)
        return self.state()

    async def reset(self) -> SessionState:
        """Delete the persisted session and clear every in-memory field."""
        async with self._operation():
            # A late background save must not recreate the deleted row
            await self.drain()
            await self.store.reset(self.user_id, self.category)

        self.session = self._fresh_session()
        self.protocol.prepare(self.session)
        self.current = None
        self._pending = None
        self._context = None

        log.info("session_reset", user_id=self.user_id, category=self.category.value)
        return self.state()

    def state(self) -> SessionState:
        session = self._require_session()
        current = self.current
        return SessionState(
            user_id=self.user_id,
            category=self.category,
            protocol=self.protocol.kind,
            phase=session.phase,
            transcript=list(session.transcript),
            covered_topics=list(session.covered_topics),
            completion_percentage=session.completion_percentage,
            current_question=self._current_question(),
            question_type=current.question_type if current else QuestionType.TEXTAREA,
            options=current.options if current else None,
            placeholder=current.placeholder if current else None,
            final_summary=session.final_summary,
            step_counter=session.step_counter,
            is_complete=session.is_complete,
            is_busy=self._busy,
            can_retry=self._pending is not None,
        )

    async def drain(self) -> None:
        """Wait for all background persistence work to finish."""
        while self._tasks:
            results = await asyncio.gather(*list(self._tasks), return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    log.error(
                        "background_task_failed",
                        category=self.category.value,
                        error=str(result),
                        error_type=type(result).__name__,
                    )

    # =========================================================================
    # Turn execution
    # =========================================================================

    @asynccontextmanager
    async def _operation(self) -> AsyncIterator[None]:
        """Hold the busy flag across every await of one operation."""
        self._ensure_idle()
        self._busy = True
        try:
            yield
        finally:
            self._busy = False

    async def _execute(self, pending: PendingTurn) -> None:
        self._pending = pending
        try:
            turn = await self.protocol.invoke(pending.request, self._context or {})
        except TransportError as e:
            self._log_turn_failed("transport", e)
            raise TurnFailedError(APOLOGY, reason="transport") from e
        except MalformedResponseError as e:
            self._log_turn_failed("malformed_response", e)
            raise TurnFailedError(APOLOGY, reason="malformed_response") from e

        self._pending = None
        self._apply(turn, pending.user_message)

    def _apply(self, turn: ProtocolTurn, user_message: Optional[Message]) -> None:
        session = self._require_session()
        previous_covered = list(session.covered_topics)

        if user_message is not None:
            session.append(user_message)
        self.protocol.prepare(session)
        if session.phase == Phase.INTRO:
            session.phase = Phase.COACHING

        text = turn.display_text
        last = session.last_message
        if text and (last is None or last.role == Role.USER):
            session.append(Message(role=Role.ASSISTANT, content=text))
        elif text:
            # Resume replay: the transcript already ends on a question of record
            log.debug("replayed_question_not_appended", category=self.category.value)

        session.covered_topics = self.tracker.merge(session.covered_topics, turn.covered_topic)
        if turn.extracted_insights:
            session.insights.update(turn.extracted_insights)
        self.current = turn

        if turn.is_complete:
            self._complete(turn)
        else:
            session.completion_percentage = self.tracker.percentage(
                session.covered_topics, reported=turn.completion_percentage
            )
            self._spawn(self._persist_turn(self._snapshot(), turn.extracted_insights))

        log.info(
            "turn_completed",
            user_id=self.user_id,
            category=self.category.value,
            covered_topic=turn.covered_topic,
            new_topics=[t for t in session.covered_topics if t not in previous_covered],
            completion_percentage=session.completion_percentage,
            is_complete=session.is_complete,
            messages=len(session.transcript),
        )

    def _complete(self, turn: ProtocolTurn) -> None:
        session = self._require_session()
        session.final_summary = turn.final_summary or session.final_summary
        session.covered_topics = self.tracker.complete(session.covered_topics)
        session.mark_complete()
        self._spawn(self._finalize(self._snapshot()))

    # =========================================================================
    # Background persistence
    # =========================================================================

    async def _persist_turn(self, snapshot: CoachingSession, insights: Dict[str, Any]) -> None:
        # Saves and the read-modify-write insight merges run one turn at a time
        async with self._save_lock:
            await self._save_with_retry(snapshot)
            if self.registration.route_per_turn and insights:
                await self.router.route(self.category, insights, self.user_id)

    async def _finalize(self, snapshot: CoachingSession) -> None:
        async with self._save_lock:
            await self._save_with_retry(snapshot)
            await self.router.route(self.category, dict(snapshot.insights), self.user_id)

        effect = self.registration.completion_effect
        if effect is None:
            return
        try:
            await effect.run(snapshot, self._context or {}, self.inference, self.insight_store)
            log.info("completion_effect_done", category=self.category.value, effect=effect.name)
        except Exception as e:
            log.error(
                "completion_effect_failed",
                category=self.category.value,
                effect=effect.name,
                error=str(e),
                error_type=type(e).__name__,
            )

    async def _save_with_retry(self, snapshot: CoachingSession) -> bool:
        """Save with exponential backoff. Caller holds _save_lock."""
        attempts = self.save_retry_attempts + 1
        for attempt in range(attempts):
            try:
                await self.store.save(self.user_id, self.category, snapshot)
                return True
            except PersistenceError as e:
                if attempt < attempts - 1:
                    await asyncio.sleep(self.save_retry_delay * (2**attempt))
                    continue
                log.error(
                    "session_save_failed",
                    user_id=self.user_id,
                    category=self.category.value,
                    attempts=attempts,
                    error=str(e),
                )
        return False

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _get_context(self) -> Dict[str, Any]:
        if self._context is None:
            try:
                self._context = await self.profiles.get_context(self.user_id)
            except PersistenceError as e:
                # Not cached, so the next turn tries again
                log.warning("context_fetch_failed", user_id=self.user_id, error=str(e))
                return {}
        return self._context

    def _current_question(self) -> Optional[str]:
        if self.current is None or self.current.is_complete:
            return None
        return self.current.question or None

    def _fresh_session(self) -> CoachingSession:
        return CoachingSession(user_id=self.user_id, category=self.category)

    def _snapshot(self) -> CoachingSession:
        return self._require_session().model_copy(deep=True)

    def _require_session(self) -> CoachingSession:
        if self.session is None:
            raise InvalidPhaseError("Session not initialized; call initialize_session() first")
        return self.session

    def _ensure_idle(self) -> None:
        if self._busy:
            raise TurnInProgressError("A turn is already in progress")

    def _log_turn_failed(self, reason: str, error: Exception) -> None:
        log.warning(
            "turn_failed",
            user_id=self.user_id,
            category=self.category.value,
            reason=reason,
            error=str(error),
            retryable=True,
        )
