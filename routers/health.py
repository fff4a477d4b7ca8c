"""
Health check endpoints for the database and the remote store.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

import models
from config import config
from database import get_db
from services.remote_store import get_remote_store
from utils.structured_logging import StructuredLogger

router = APIRouter(tags=["health"])

# Create health-specific structured logger
health_logger = StructuredLogger(service="health", logger_name="projectsync.health")


@router.get("/health/database")
def database_health_check(db: Session = Depends(get_db)):
    """
    Returns:
        - status: healthy/unhealthy
        - mappings: Number of project folder mappings
        - indexed_files: Number of records in the remote file index
    """
    try:
        db.execute(text("SELECT 1"))
        return {
            "status": "healthy",
            "mappings": db.query(models.ProjectFolderMapping).count(),
            "indexed_files": db.query(models.RemoteFileRecord).count(),
        }
    except Exception as e:
        health_logger.error(action="database_health_check", message="Database check failed", error=e)
        return {"status": "unhealthy", "error": str(e)}


@router.get("/health/remote")
def remote_health_check():
    """
    Status:
        - healthy: Credentials work and the remote store answers
        - unhealthy: Remote store unreachable or credentials missing
    """
    try:
        reachable = get_remote_store().test_connection()
    except Exception as e:
        health_logger.error(action="remote_health_check", message="Remote store check failed", error=e)
        reachable = False

    return {
        "status": "healthy" if reachable else "unhealthy",
        "backend": "mock" if config.USE_MOCK_DRIVE else "google_drive",
        "api_reachable": reachable,
    }


@router.get("/health")
def general_health_check(db: Session = Depends(get_db)):
    """
    General health check endpoint aggregating all services.

    Status determination:
        - healthy: All services are healthy
        - degraded: Database healthy, remote store unreachable
        - unhealthy: Database unreachable
    """
    now = datetime.now(timezone.utc)

    database_health = database_health_check(db)
    remote_health = remote_health_check()

    if database_health["status"] != "healthy":
        overall_status = "unhealthy"
    elif remote_health["status"] != "healthy":
        overall_status = "degraded"
    else:
        overall_status = "healthy"

    health_logger.info(
        action="general_health_check",
        status=overall_status,
        message=f"Overall health: {overall_status}",
        database_status=database_health["status"],
        remote_status=remote_health["status"],
    )

    return {
        "overall_status": overall_status,
        "timestamp": now.isoformat(),
        "services": {
            "database": database_health,
            "remote": remote_health,
        },
    }
