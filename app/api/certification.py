"""
/api/v1 quote-level certification endpoints.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.dependencies import get_db, get_reference_data, get_staff_id, verify_api_key
from app.pricing.quote_totals import QuotePricing
from app.reference.provider import ReferenceDataProvider
from app.schemas.certification import (
    ApplyCertificationRequest,
    QuoteCertificationChangeResponse,
    QuoteCertificationCreate,
    QuoteCertificationResponse,
    QuoteCertificationUpdate,
)
from app.services import certification
from app.services.batch import BatchResult
from app.services.lookup import get_quote
from app.services.reconciler import pricing_from_quote

router = APIRouter(prefix="/api/v1", tags=["certification"], dependencies=[Depends(verify_api_key)])


@router.post("/quotes/{quote_id}/certification", response_model=BatchResult)
async def apply_certification(
    quote_id: uuid.UUID,
    body: ApplyCertificationRequest,
    session: AsyncSession = Depends(get_db),
    refs: ReferenceDataProvider = Depends(get_reference_data),
    staff_id: Optional[uuid.UUID] = Depends(get_staff_id),
):
    """
    Apply one certification type to every record and group of the quote.
    Partial failures surface as 207 with the failed items and fresh totals.
    """
    return await certification.apply_certification_to_all(
        session,
        refs,
        quote_id,
        body.certification_type_id,
        staff_id=staff_id,
        all_or_nothing=body.all_or_nothing,
    )


async def _certification_change(session: AsyncSession, extra) -> QuoteCertificationChangeResponse:
    quote = await get_quote(session, extra.quote_id)
    return QuoteCertificationChangeResponse(
        certification=QuoteCertificationResponse.model_validate(extra),
        pricing=pricing_from_quote(quote),
    )


@router.get("/quotes/{quote_id}/certifications", response_model=list[QuoteCertificationResponse])
async def list_certifications(quote_id: uuid.UUID, session: AsyncSession = Depends(get_db)):
    quote = await get_quote(session, quote_id)
    return await certification.list_quote_certifications(session, quote.id)


@router.post(
    "/quotes/{quote_id}/certifications",
    response_model=QuoteCertificationChangeResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_certification(
    quote_id: uuid.UUID,
    body: QuoteCertificationCreate,
    session: AsyncSession = Depends(get_db),
    refs: ReferenceDataProvider = Depends(get_reference_data),
    staff_id: Optional[uuid.UUID] = Depends(get_staff_id),
):
    extra = await certification.add_quote_certification(
        session, refs, quote_id, body.certification_type_id,
        quantity=body.quantity, notes=body.notes, staff_id=staff_id,
    )
    return await _certification_change(session, extra)


@router.patch("/quote-certifications/{quote_certification_id}", response_model=QuoteCertificationChangeResponse)
async def update_certification(
    quote_certification_id: uuid.UUID,
    body: QuoteCertificationUpdate,
    session: AsyncSession = Depends(get_db),
    refs: ReferenceDataProvider = Depends(get_reference_data),
    staff_id: Optional[uuid.UUID] = Depends(get_staff_id),
):
    extra = await certification.update_quote_certification(
        session, refs, quote_certification_id, body.model_dump(exclude_unset=True), staff_id,
    )
    return await _certification_change(session, extra)


@router.delete("/quote-certifications/{quote_certification_id}", response_model=QuotePricing)
async def remove_certification(
    quote_certification_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
    refs: ReferenceDataProvider = Depends(get_reference_data),
    staff_id: Optional[uuid.UUID] = Depends(get_staff_id),
):
    return await certification.remove_quote_certification(session, refs, quote_certification_id, staff_id)
