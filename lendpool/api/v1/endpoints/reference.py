"""Reference data endpoints: loan terms, purposes and cancellation reasons."""

import logging
from typing import List

from fastapi import APIRouter, status

from lendpool.core.enums import LOAN_TERMS, CancellationReason
from lendpool.core.exceptions import InvalidArgumentError
from lendpool.db.session import transaction
from lendpool.deps import SessionDep
from lendpool.models.schemas.loan import PurposeCreate, PurposeResponse, TermsResponse
from lendpool.repositories.loan_repository import PurposeRepository

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/terms", response_model=TermsResponse, summary="List loan terms")
async def list_terms() -> TermsResponse:
    return TermsResponse(terms=list(LOAN_TERMS))


@router.get(
    "/cancellation-reasons",
    response_model=List[CancellationReason],
    summary="List cancellation reasons",
)
async def list_cancellation_reasons() -> List[CancellationReason]:
    return list(CancellationReason)


@router.get("/purposes", response_model=List[PurposeResponse], summary="List loan purposes")
async def list_purposes(db: SessionDep) -> List[PurposeResponse]:
    purposes = await PurposeRepository(db).get_all()
    return [PurposeResponse.model_validate(p) for p in purposes]


@router.post(
    "/purposes",
    response_model=PurposeResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a loan purpose",
)
async def create_purpose(
    purpose_data: PurposeCreate,
    db: SessionDep,
) -> PurposeResponse:
    repo = PurposeRepository(db)
    async with transaction(db):
        if await repo.get_by_title(purpose_data.title):
            raise InvalidArgumentError(f"Purpose already exists: {purpose_data.title}")
        purpose = await repo.create(title=purpose_data.title)

    logger.info(f"Added loan purpose {purpose.id}")
    return PurposeResponse.model_validate(purpose)
