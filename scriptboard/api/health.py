"""
Health check and status endpoints
"""
from fastapi import APIRouter
from datetime import datetime

from scriptboard.config import get_settings
from scriptboard.scheduler import get_scheduled_jobs
from scriptboard import __version__

settings = get_settings()

router = APIRouter()


@router.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "version": __version__
    }


@router.get("/status")
async def get_status():
    """Get system status"""
    return {
        "app_name": settings.app_name,
        "version": __version__,
        "environment": settings.environment,
        "scheduled_jobs": get_scheduled_jobs(),
        "timestamp": datetime.utcnow().isoformat()
    }
