"""
SQLite bootstrap and health checks.

The schema lives in schema.sql and is applied on every startup; every
statement is CREATE ... IF NOT EXISTS, so existing data is kept. Repositories
open their own short-lived aiosqlite connections.
"""

from pathlib import Path
from typing import Any, Dict, Optional

import aiosqlite
import structlog

from brandcoach.core.config import settings

log = structlog.get_logger(__name__)

SCHEMA_FILE = Path(__file__).parent / "schema.sql"

REQUIRED_TABLES = (
    "coaching_sessions",
    "profiles",
    "branding_audits",
    "brand_profile",
    "persona",
    "brand_charter",
    "storytelling",
)


async def init_database(db_path: Optional[Path] = None) -> None:
    """
    Create the database file and apply the schema.

    Args:
        db_path: Database file; settings.database_path when omitted
    """
    db_path = Path(db_path or settings.database_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    if not SCHEMA_FILE.exists():
        log.error("schema_file_not_found", path=str(SCHEMA_FILE))
        raise FileNotFoundError(f"Schema file not found: {SCHEMA_FILE}")

    async with aiosqlite.connect(db_path) as db:
        # WAL lets background saves run while a turn reads side context
        await db.execute("PRAGMA journal_mode = WAL")
        await db.executescript(SCHEMA_FILE.read_text())
        await db.commit()

    log.info("database_initialized", path=str(db_path))


async def check_database_health() -> Dict[str, Any]:
    """
    Check the database for the health endpoints.

    Returns:
        {"status": "healthy", sessions, completed_sessions, integrity, path}
        or {"status": "unhealthy", "error": ...} when the file is unreadable
        or a table is missing.
    """
    path = settings.database_path
    try:
        async with aiosqlite.connect(path) as db:
            cursor = await db.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
            present = {row[0] for row in await cursor.fetchall()}
            missing = [t for t in REQUIRED_TABLES if t not in present]
            if missing:
                log.error("database_tables_missing", tables=missing)
                return {"status": "unhealthy", "error": f"Missing tables: {', '.join(missing)}"}

            cursor = await db.execute(
                "SELECT COUNT(*), COALESCE(SUM(is_complete), 0) FROM coaching_sessions"
            )
            sessions, completed = await cursor.fetchone()

            cursor = await db.execute("PRAGMA integrity_check")
            integrity = await cursor.fetchone()
    except (aiosqlite.Error, OSError) as e:
        log.error("database_health_check_failed", error=str(e))
        return {"status": "unhealthy", "error": str(e)}

    return {
        "status": "healthy",
        "sessions": sessions,
        "completed_sessions": completed,
        "integrity": integrity[0] if integrity else "unknown",
        "path": str(path),
    }
