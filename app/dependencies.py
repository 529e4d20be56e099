"""
FastAPI dependency injection.
Provides DB sessions, reference data, the analysis oracle, staff identity
and API key validation.
"""

import uuid
from typing import Optional

from fastapi import Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.database import get_session
from app.oracle.base import AnalysisOracle
from app.oracle.http_oracle import HttpAnalysisOracle
from app.oracle.stub_oracle import StubOracle
from app.reference.provider import ReferenceDataProvider, reference_data


# ── Singleton instances ──────────────────────────────────────
_oracle: Optional[AnalysisOracle] = None


def build_oracle() -> AnalysisOracle:
    if settings.ENABLE_ORACLE_STUB or not settings.ORACLE_URL:
        return StubOracle()
    return HttpAnalysisOracle()


def get_oracle() -> AnalysisOracle:
    """Get or create the analysis oracle singleton."""
    global _oracle
    if _oracle is None:
        _oracle = build_oracle()
    return _oracle


def get_reference_data() -> ReferenceDataProvider:
    return reference_data


async def get_db() -> AsyncSession:
    """Yield an async DB session."""
    async for session in get_session():
        yield session


async def get_staff_id(
    x_staff_id: Optional[str] = Header(None, alias="X-Staff-Id"),
) -> Optional[uuid.UUID]:
    """Staff member performing the request, as forwarded by the auth gateway."""
    if x_staff_id is None:
        return None
    try:
        return uuid.UUID(x_staff_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Staff-Id must be a UUID",
        )


async def verify_api_key(
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
) -> Optional[str]:
    """
    Verify API key if configured.
    If API_KEY is not set, all requests are allowed (dev mode).
    """
    if settings.API_KEY is None:
        return None

    if x_api_key is None or x_api_key != settings.API_KEY:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
        )
    return x_api_key
