"""
/api/v1 analysis record endpoints.
Manual entries, staff edits and removal.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.dependencies import get_db, get_reference_data, get_staff_id, verify_api_key
from app.pricing.quote_totals import QuotePricing
from app.reference.provider import ReferenceDataProvider
from app.schemas.analysis import ManualEntryCreate, RecordChangeResponse, RecordEdit, RecordResponse
from app.services import analysis_records
from app.services.lookup import get_quote
from app.services.reconciler import pricing_from_quote

router = APIRouter(prefix="/api/v1", tags=["analysis"], dependencies=[Depends(verify_api_key)])


@router.get("/quotes/{quote_id}/analysis", response_model=list[RecordResponse])
async def list_quote_records(quote_id: uuid.UUID, session: AsyncSession = Depends(get_db)):
    quote = await get_quote(session, quote_id)
    records = await analysis_records.list_records(session, quote.id)
    return [RecordResponse.from_record(record) for record in records]


@router.post(
    "/quotes/{quote_id}/analysis/manual",
    response_model=RecordChangeResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_manual_entry(
    quote_id: uuid.UUID,
    body: ManualEntryCreate,
    session: AsyncSession = Depends(get_db),
    refs: ReferenceDataProvider = Depends(get_reference_data),
    staff_id: Optional[uuid.UUID] = Depends(get_staff_id),
):
    record = await analysis_records.create_manual(
        session, refs, quote_id, body.model_dump(exclude_unset=True), staff_id,
    )
    quote = await get_quote(session, record.quote_id)
    return RecordChangeResponse(record=RecordResponse.from_record(record), pricing=pricing_from_quote(quote))


@router.patch("/analysis/{record_id}", response_model=RecordChangeResponse)
async def edit_record(
    record_id: uuid.UUID,
    body: RecordEdit,
    session: AsyncSession = Depends(get_db),
    refs: ReferenceDataProvider = Depends(get_reference_data),
    staff_id: Optional[uuid.UUID] = Depends(get_staff_id),
):
    record = await analysis_records.edit(
        session, refs, record_id, body.model_dump(exclude_unset=True), staff_id,
    )
    quote = await get_quote(session, record.quote_id)
    return RecordChangeResponse(record=RecordResponse.from_record(record), pricing=pricing_from_quote(quote))


@router.delete("/analysis/{record_id}", response_model=QuotePricing)
async def remove_record(
    record_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
    refs: ReferenceDataProvider = Depends(get_reference_data),
    staff_id: Optional[uuid.UUID] = Depends(get_staff_id),
):
    """Remove a record; its file becomes eligible for a fresh analysis."""
    quote_id = await analysis_records.remove(session, refs, record_id, staff_id)
    return pricing_from_quote(await get_quote(session, quote_id))
