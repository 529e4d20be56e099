"""
Health endpoints.
/health always answers 200; database, reference data and oracle
reachability are reported so the platform liveness check never flaps on them.
"""

from fastapi import APIRouter, Depends
from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError

from app.config import settings
from app.dependencies import get_oracle
from app.models.database import async_session_factory
from app.models.tables import CertificationType, Language
from app.oracle.base import AnalysisOracle

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(oracle: AnalysisOracle = Depends(get_oracle)):
    response = {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "database": "connected",
        "oracle": oracle.oracle_name,
        "oracle_available": await oracle.health_check(),
    }
    try:
        async with async_session_factory() as session:
            languages = (await session.execute(
                select(func.count(Language.id)).where(Language.is_active.is_(True))
            )).scalar()
            certifications = (await session.execute(
                select(func.count(CertificationType.id)).where(CertificationType.is_active.is_(True))
            )).scalar()
        response["reference_data"] = {"languages": languages, "certification_types": certifications}
    except (SQLAlchemyError, OSError) as e:
        response["status"] = "degraded"
        response["database"] = "unreachable"
        response["database_error"] = str(e)[:200]

    return response


@router.get("/health/ready")
async def readiness_check():
    """Ready once the database answers."""
    try:
        async with async_session_factory() as session:
            await session.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError):
        return {"ready": False}
    return {"ready": True}
