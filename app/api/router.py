"""
Top-level API router.
Combines all sub-routers into a single router.
"""

from fastapi import APIRouter

from app.api.analysis import router as analysis_router
from app.api.certification import router as certification_router
from app.api.files import router as files_router
from app.api.groups import router as groups_router
from app.api.health import router as health_router
from app.api.jobs import router as jobs_router
from app.api.quotes import router as quotes_router

api_router = APIRouter()

api_router.include_router(health_router)
api_router.include_router(quotes_router)
api_router.include_router(files_router)
api_router.include_router(analysis_router)
api_router.include_router(groups_router)
api_router.include_router(certification_router)
api_router.include_router(jobs_router)
