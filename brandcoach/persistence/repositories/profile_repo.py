"""Profile repository: side-context source for coaching turns."""

import json
from typing import Any, Dict, Optional
from uuid import uuid4

import aiosqlite

from brandcoach.core.exceptions import PersistenceError


class ProfileRepository:
    """Reads the user's profile, brand data and latest audit.

    The coaching engine treats the returned snapshot as opaque; it is only
    forwarded to the inference service.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path

    async def get_context(self, user_id: str) -> Dict[str, Any]:
        """Build the side-context snapshot for a user.

        Returns:
            Dict with profile, branding, persona and audit keys. Missing
            sources come back as empty dicts.
        """
        try:
            async with aiosqlite.connect(self.db_path) as db:
                profile = await self._fetch_data(db, "SELECT data FROM profiles WHERE user_id = ?", user_id)
                branding = await self._fetch_data(
                    db, "SELECT data FROM brand_profile WHERE user_id = ?", user_id
                )
                persona = await self._fetch_data(db, "SELECT data FROM persona WHERE user_id = ?", user_id)
                audit = await self._fetch_data(
                    db,
                    """SELECT data FROM branding_audits
                       WHERE user_id = ?
                       ORDER BY created_at DESC
                       LIMIT 1""",
                    user_id,
                )
        except (aiosqlite.Error, OSError) as e:
            raise PersistenceError(f"Failed to load context for {user_id}: {e}") from e

        return {
            "profile": profile or {},
            "branding": branding or {},
            "persona": persona or {},
            "audit": audit or {},
        }

    async def upsert_profile(self, user_id: str, data: Dict[str, Any]) -> None:
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """INSERT INTO profiles (user_id, data) VALUES (?, ?)
                   ON CONFLICT(user_id) DO UPDATE SET
                       data = excluded.data,
                       updated_at = datetime('now')""",
                (user_id, json.dumps(data, ensure_ascii=False)),
            )
            await db.commit()

    async def add_audit(self, user_id: str, data: Dict[str, Any]) -> str:
        audit_id = str(uuid4())
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                "INSERT INTO branding_audits (id, user_id, data) VALUES (?, ?, ?)",
                (audit_id, user_id, json.dumps(data, ensure_ascii=False)),
            )
            await db.commit()
        return audit_id

    @staticmethod
    async def _fetch_data(
        db: aiosqlite.Connection, query: str, user_id: str
    ) -> Optional[Dict[str, Any]]:
        cursor = await db.execute(query, (user_id,))
        row = await cursor.fetchone()
        return json.loads(row[0]) if row and row[0] else None
