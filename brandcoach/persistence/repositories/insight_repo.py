"""Insight destination stores.

Four stores receive the insight bundles extracted during coaching:

    - brand_charter: visual identity, keyed by user
    - persona: target audience, keyed by user
    - storytelling: narratives, keyed by (user, story_type)
    - brand_profile: generic brand attributes, keyed by user

Each store keeps a JSON ``data`` column. Writes merge the incoming fields
into the existing object (update-if-exists-else-insert).
"""

import json
from typing import Any, Dict, Optional
from uuid import uuid4

import aiosqlite

from brandcoach.core.exceptions import PersistenceError

VISUAL_IDENTITY_TABLE = "brand_charter"
TARGET_AUDIENCE_TABLE = "persona"
BRAND_ATTRIBUTES_TABLE = "brand_profile"

PRIMARY_STORY = "primary"


class InsightRepository:
    """Repository for the insight destination stores."""

    def __init__(self, db_path: str):
        self.db_path = db_path

    async def upsert_visual_identity(self, user_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self._merge_user_data(VISUAL_IDENTITY_TABLE, user_id, data)

    async def upsert_target_audience(self, user_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self._merge_user_data(TARGET_AUDIENCE_TABLE, user_id, data)

    async def upsert_brand_attributes(self, user_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self._merge_user_data(BRAND_ATTRIBUTES_TABLE, user_id, data)

    async def get_user_data(self, table: str, user_id: str) -> Optional[Dict[str, Any]]:
        """Get the data object of a user-keyed store, or None."""
        self._check_table(table)
        try:
            async with aiosqlite.connect(self.db_path) as db:
                cursor = await db.execute(
                    f"SELECT data FROM {table} WHERE user_id = ?", (user_id,)
                )
                row = await cursor.fetchone()
        except (aiosqlite.Error, OSError) as e:
            raise PersistenceError(f"Failed to read {table} for {user_id}: {e}") from e
        return json.loads(row[0]) if row else None

    async def upsert_narrative(
        self,
        user_id: str,
        data: Dict[str, Any],
        source: str,
        story_type: str = PRIMARY_STORY,
    ) -> Dict[str, Any]:
        """Merge fields into the narrative identified by (user, story_type).

        A ``full_story`` key, if present, goes to its own column rather than
        the data object.

        Returns:
            The merged data object
        """
        fields = dict(data)
        full_story = fields.pop("full_story", None)

        try:
            async with aiosqlite.connect(self.db_path) as db:
                cursor = await db.execute(
                    "SELECT id, data FROM storytelling WHERE user_id = ? AND story_type = ?",
                    (user_id, story_type),
                )
                row = await cursor.fetchone()

                if row:
                    merged = {**json.loads(row[1] or "{}"), **fields}
                    await db.execute(
                        """UPDATE storytelling
                           SET data = ?, source = ?,
                               full_story = COALESCE(?, full_story),
                               updated_at = datetime('now')
                           WHERE id = ?""",
                        (json.dumps(merged, ensure_ascii=False), source, full_story, row[0]),
                    )
                else:
                    merged = fields
                    await db.execute(
                        """INSERT INTO storytelling (id, user_id, story_type, source, data, full_story)
                           VALUES (?, ?, ?, ?, ?, ?)""",
                        (
                            str(uuid4()),
                            user_id,
                            story_type,
                            source,
                            json.dumps(merged, ensure_ascii=False),
                            full_story,
                        ),
                    )
                await db.commit()
        except (aiosqlite.Error, OSError) as e:
            raise PersistenceError(f"Failed to upsert narrative for {user_id}: {e}") from e

        return merged

    async def set_full_story(
        self, user_id: str, text: str, source: str, story_type: str = PRIMARY_STORY
    ) -> None:
        """Write the full-text version of a narrative."""
        await self.upsert_narrative(user_id, {"full_story": text}, source, story_type)

    async def get_narrative(
        self, user_id: str, story_type: str = PRIMARY_STORY
    ) -> Optional[Dict[str, Any]]:
        """Get a narrative as {source, data, full_story}, or None."""
        try:
            async with aiosqlite.connect(self.db_path) as db:
                db.row_factory = aiosqlite.Row
                cursor = await db.execute(
                    """SELECT source, data, full_story FROM storytelling
                       WHERE user_id = ? AND story_type = ?""",
                    (user_id, story_type),
                )
                row = await cursor.fetchone()
        except (aiosqlite.Error, OSError) as e:
            raise PersistenceError(f"Failed to read narrative for {user_id}: {e}") from e

        if not row:
            return None
        return {
            "source": row["source"],
            "data": json.loads(row["data"] or "{}"),
            "full_story": row["full_story"],
        }

    async def _merge_user_data(
        self, table: str, user_id: str, data: Dict[str, Any]
    ) -> Dict[str, Any]:
        self._check_table(table)
        try:
            async with aiosqlite.connect(self.db_path) as db:
                cursor = await db.execute(
                    f"SELECT data FROM {table} WHERE user_id = ?", (user_id,)
                )
                row = await cursor.fetchone()
                merged = {**(json.loads(row[0] or "{}") if row else {}), **data}
                await db.execute(
                    f"""INSERT INTO {table} (user_id, data) VALUES (?, ?)
                        ON CONFLICT(user_id) DO UPDATE SET
                            data = excluded.data,
                            updated_at = datetime('now')""",
                    (user_id, json.dumps(merged, ensure_ascii=False, default=str)),
                )
                await db.commit()
        except (aiosqlite.Error, OSError) as e:
            raise PersistenceError(f"Failed to upsert {table} for {user_id}: {e}") from e
        return merged

    @staticmethod
    def _check_table(table: str) -> None:
        # Table names are interpolated, never user input
        if table not in (VISUAL_IDENTITY_TABLE, TARGET_AUDIENCE_TABLE, BRAND_ATTRIBUTES_TABLE):
            raise ValueError(f"Unknown insight store: {table}")
