"""Health check endpoint."""

import logging

from fastapi import APIRouter
from sqlalchemy.exc import SQLAlchemyError

from lendpool.config import settings
from lendpool.deps import SessionDep
from lendpool.repositories.loan_repository import LoanRepository

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(db: SessionDep) -> dict:
    """
    Report API and database status.

    A reachable database also reports how many applications sit in each
    stage of the lending pipeline.
    """
    body = {
        "status": "healthy",
        "api": "healthy",
        "environment": settings.ENVIRONMENT,
        "rate_provider": settings.RATE_PROVIDER,
    }
    try:
        counts = await LoanRepository(db).count_by_stage()
    except SQLAlchemyError as e:
        logger.error(f"Health check could not reach the database: {e}")
        body.update(status="degraded", database=f"unhealthy: {e}")
        return body

    body["database"] = "healthy"
    body["applications"] = {stage.value: count for stage, count in counts.items()}
    return body
