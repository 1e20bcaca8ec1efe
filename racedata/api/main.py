"""
Main entry point for the FastAPI application.
Handles routing, database pool lifecycle and the daily ingestion endpoint.
"""
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict

import psycopg2
from fastapi import Body, Depends, FastAPI, Request, status
from fastapi.responses import JSONResponse

from racedata.api.auth import require_api_key
from racedata.core.database import DatabaseManager
from racedata.core.exceptions import ValidationError
from racedata.core.log_config import setup_logging
from racedata.ingestion.service import RaceIngestionService
from racedata.validation.schemas import ProcessingStatistics
from racedata.validation.validators import validate_daily_race_data

setup_logging()
logger = logging.getLogger("API")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Opens the connection pool on startup and closes it on shutdown.
    A missing or unreachable database does not prevent startup; the health
    check reports it and ingestion requests fail per batch.
    """
    db_manager = DatabaseManager()
    app.state.db_manager = db_manager
    try:
        db_manager.initialize_pool()
    except (psycopg2.Error, ValueError) as exc:
        logger.error(f"CRITICAL: Database pool unavailable ({exc}). Ingestion will fail until it is reachable.")

    yield
    db_manager.close_pool()
    logger.info("Database pool closed.")


app = FastAPI(title="Race Data Ingestion API", lifespan=lifespan)


# --- DEPENDENCY INJECTION ---
def get_db_manager(request: Request) -> DatabaseManager:
    return request.app.state.db_manager


def get_ingestion_service(db_manager: DatabaseManager = Depends(get_db_manager)) -> RaceIngestionService:
    """Dependency provider for the RaceIngestionService."""
    return RaceIngestionService(db_manager)


def _failure_body(message: str, errors: list) -> Dict[str, Any]:
    return {
        "success": False,
        "message": message,
        "errors": errors,
        "statistics": ProcessingStatistics(errors=errors).model_dump(),
        "processed_races": [],
    }


# --- ROUTES ---

@app.get("/", tags=["System"])
def health_check(db_manager: DatabaseManager = Depends(get_db_manager)) -> Dict[str, str]:
    """Returns the operational status of the API and its database."""
    database = "connected" if db_manager.ping() else "unavailable"
    return {"status": "online", "database": database}


@app.post("/api/races/daily", tags=["Races"], dependencies=[Depends(require_api_key)])
def ingest_daily_races(
    payload: Any = Body(...),
    service: RaceIngestionService = Depends(get_ingestion_service)
) -> JSONResponse:
    """
    Ingests one day's races. 200 when at least one race was committed,
    400 on validation failure or when nothing was committed, 500 otherwise.
    """
    try:
        request = validate_daily_race_data(payload)
    except ValidationError as exc:
        logger.warning(f"Validation failed for daily race data: {exc}")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=_failure_body("Validation failed", exc.errors)
        )

    try:
        result = service.process_daily_race_data(request)
    except Exception as exc:
        logger.exception(f"Unexpected error in daily race data ingestion: {exc}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_failure_body("An unexpected error occurred while processing the request", [str(exc)])
        )

    body = result.model_dump()
    if result.success:
        return JSONResponse(status_code=status.HTTP_200_OK, content=body)

    logger.warning(f"Daily race data processing failed: {result.statistics.errors}")
    body["errors"] = result.statistics.errors
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=body)
