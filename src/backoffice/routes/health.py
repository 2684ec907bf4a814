# This project was developed with assistance from AI tools.
"""Health endpoint: database connectivity and circuit breaker states."""

from db import DatabaseService, get_db_service
from fastapi import APIRouter, Depends

from ..services.orchestrator import JobOrchestrator, get_orchestrator

router = APIRouter()


@router.get("/")
async def health(
    db_service: DatabaseService = Depends(get_db_service),
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
) -> dict:
    database_ok = await db_service.health_check()
    return {
        "status": "ok" if database_ok else "degraded",
        "database": database_ok,
        "circuit_breakers": orchestrator.breakers.snapshot(),
    }
