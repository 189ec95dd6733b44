"""API v1 router configuration."""

from fastapi import APIRouter

from lendpool.api.v1.endpoints import (
    active_requests,
    approved_requests,
    archive,
    funded_loans,
    health,
    reference,
    users,
)

api_router = APIRouter()

# Include endpoint routers
api_router.include_router(
    health.router,
    tags=["health"],
)

api_router.include_router(
    users.router,
    prefix="/users",
    tags=["users"],
)

api_router.include_router(
    active_requests.router,
    prefix="/active-requests",
    tags=["active requests"],
)

api_router.include_router(
    approved_requests.router,
    prefix="/approved-requests",
    tags=["approved requests"],
)

api_router.include_router(
    funded_loans.router,
    prefix="/funded-loans",
    tags=["funded loans"],
)

api_router.include_router(
    archive.paid_off_router,
    prefix="/paid-off-loans",
    tags=["paid-off loans"],
)

api_router.include_router(
    archive.cancelled_router,
    prefix="/cancelled-requests",
    tags=["cancelled requests"],
)

api_router.include_router(
    reference.router,
    prefix="/reference",
    tags=["reference"],
)
