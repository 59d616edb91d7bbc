"""
Health check endpoints.

/health reports the database and the coaching catalogue; the live/ready
checks are for process supervisors.
"""

from fastapi import APIRouter, HTTPException

from brandcoach import __version__
from brandcoach.api.dependencies import ChecklistRegistryDep
from brandcoach.core.config import settings
from brandcoach.domain.models.category import Category
from brandcoach.persistence.database import check_database_health

router = APIRouter()


@router.get("/health")
async def health_check(registry: ChecklistRegistryDep):
    db_health = await check_database_health()
    catalogue = {
        "categories": len(Category),
        "with_checklist": sum(1 for c in Category if registry.topics(c)),
        "charter_steps": len(registry.fixed_steps(Category.CHARTER)),
    }

    return {
        "status": db_health["status"],
        "version": __version__,
        "debug": settings.debug,
        "components": {"database": db_health, "catalogue": catalogue},
    }


@router.get("/health/live")
async def liveness():
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness():
    """503 until the database answers with every table in place."""
    db_health = await check_database_health()
    if db_health["status"] != "healthy":
        raise HTTPException(status_code=503, detail="Database not ready")
    return {"status": "ready"}
