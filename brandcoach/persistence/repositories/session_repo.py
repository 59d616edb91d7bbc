"""Coaching session repository (the session store)."""

import json
from datetime import datetime
from typing import Any, Dict, List, Optional

import aiosqlite
import structlog

from brandcoach.core.checklist_loader import ChecklistRegistry
from brandcoach.core.exceptions import PersistenceError
from brandcoach.domain.models.category import Category
from brandcoach.domain.models.session import (
    CoachingSession,
    Message,
    Phase,
    SessionSummary,
)
from brandcoach.services.topic_tracker import TopicTracker

log = structlog.get_logger(__name__)

# Keys the store adds to extracted_data next to the insight bundle
BOOKKEEPING_KEYS = ("completion_percentage", "final_summary", "covered_topics")


class CoachingSessionRepository:
    """Load, save and reset coaching sessions keyed by (user, category).

    The persisted record duplicates covered_topics at top level and inside
    extracted_data; reads prefer the top-level column and fall back to the
    nested copy for rows written before the column existed.
    """

    def __init__(self, db_path: str, registry: ChecklistRegistry):
        self.db_path = db_path
        self.registry = registry

    async def load(self, user_id: str, category: Category) -> Optional[CoachingSession]:
        """Load a session, or None when nothing (or an empty transcript) is stored."""
        try:
            async with aiosqlite.connect(self.db_path) as db:
                db.row_factory = aiosqlite.Row
                cursor = await db.execute(
                    "SELECT * FROM coaching_sessions WHERE user_id = ? AND category = ?",
                    (user_id, category.value),
                )
                row = await cursor.fetchone()
        except (aiosqlite.Error, OSError) as e:
            raise PersistenceError(f"Failed to load session {user_id}/{category.value}: {e}") from e

        if not row:
            return None
        session = self._row_to_session(row)
        if not session.transcript:
            return None
        return session

    async def save(self, user_id: str, category: Category, session: CoachingSession) -> None:
        """Idempotent upsert of the full session snapshot."""
        extracted: Dict[str, Any] = {
            **session.insights,
            "completion_percentage": session.completion_percentage,
            "final_summary": session.final_summary,
            "covered_topics": list(session.covered_topics),
        }
        params = (
            user_id,
            category.value,
            json.dumps([m.model_dump(mode="json") for m in session.transcript]),
            json.dumps(list(session.covered_topics)),
            session.user_message_count,
            1 if session.is_complete else 0,
            session.completed_at.isoformat() if session.completed_at else None,
            json.dumps(extracted, ensure_ascii=False, default=str),
        )
        try:
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute(
                    """INSERT INTO coaching_sessions (
                        user_id, category, messages, covered_topics, question_count,
                        is_complete, completed_at, extracted_data
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(user_id, category) DO UPDATE SET
                        messages = excluded.messages,
                        covered_topics = excluded.covered_topics,
                        question_count = excluded.question_count,
                        is_complete = excluded.is_complete,
                        completed_at = excluded.completed_at,
                        extracted_data = excluded.extracted_data,
                        updated_at = datetime('now')""",
                    params,
                )
                await db.commit()
        except (aiosqlite.Error, OSError) as e:
            raise PersistenceError(f"Failed to save session {user_id}/{category.value}: {e}") from e

        log.debug(
            "session_saved",
            user_id=user_id,
            category=category.value,
            messages=len(session.transcript),
            is_complete=session.is_complete,
        )

    async def reset(self, user_id: str, category: Category) -> bool:
        """Delete the persisted session. Returns True if a row was deleted."""
        try:
            async with aiosqlite.connect(self.db_path) as db:
                cursor = await db.execute(
                    "DELETE FROM coaching_sessions WHERE user_id = ? AND category = ?",
                    (user_id, category.value),
                )
                await db.commit()
                return cursor.rowcount > 0
        except (aiosqlite.Error, OSError) as e:
            raise PersistenceError(f"Failed to reset session {user_id}/{category.value}: {e}") from e

    async def list_for_user(self, user_id: str) -> List[SessionSummary]:
        """Summaries of all of a user's sessions, most recently updated first."""
        try:
            async with aiosqlite.connect(self.db_path) as db:
                db.row_factory = aiosqlite.Row
                cursor = await db.execute(
                    """SELECT category, is_complete, question_count, extracted_data, updated_at
                       FROM coaching_sessions
                       WHERE user_id = ?
                       ORDER BY updated_at DESC""",
                    (user_id,),
                )
                rows = await cursor.fetchall()
        except (aiosqlite.Error, OSError) as e:
            raise PersistenceError(f"Failed to list sessions for {user_id}: {e}") from e

        summaries = []
        for row in rows:
            extracted = json.loads(row["extracted_data"]) if row["extracted_data"] else {}
            is_complete = bool(row["is_complete"])
            summaries.append(
                SessionSummary(
                    category=row["category"],
                    is_complete=is_complete,
                    completion_percentage=100
                    if is_complete
                    else min(int(extracted.get("completion_percentage") or 0), 99),
                    question_count=row["question_count"] or 0,
                    updated_at=datetime.fromisoformat(row["updated_at"])
                    if row["updated_at"]
                    else None,
                )
            )
        return summaries

    def _row_to_session(self, row: aiosqlite.Row) -> CoachingSession:
        """Convert a database row to a CoachingSession in the INTRO phase."""
        category = Category(row["category"])
        tracker = TopicTracker(self.registry.topics(category))

        extracted: Dict[str, Any] = (
            json.loads(row["extracted_data"]) if row["extracted_data"] else {}
        )
        if row["covered_topics"] is not None:
            covered = list(json.loads(row["covered_topics"]) or [])
        else:
            covered = list(extracted.get("covered_topics") or [])

        is_complete = bool(row["is_complete"])
        if is_complete:
            covered = tracker.complete(covered)

        transcript = [Message(**m) for m in json.loads(row["messages"] or "[]")]
        insights = {k: v for k, v in extracted.items() if k not in BOOKKEEPING_KEYS}

        return CoachingSession(
            user_id=row["user_id"],
            category=category,
            phase=Phase.COMPLETE if is_complete else Phase.INTRO,
            transcript=transcript,
            covered_topics=covered,
            completion_percentage=tracker.percentage(
                covered,
                reported=extracted.get("completion_percentage") or 0,
                is_complete=is_complete,
            ),
            final_summary=extracted.get("final_summary"),
            insights=insights,
            is_complete=is_complete,
            completed_at=datetime.fromisoformat(row["completed_at"])
            if row["completed_at"]
            else None,
        )
