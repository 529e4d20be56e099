"""
/api/v1/quotes endpoints.
Quote creation, translation settings, adjustments and totals.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.dependencies import get_db, get_reference_data, get_staff_id, verify_api_key
from app.pricing.quote_totals import QuotePricing
from app.reference.provider import ReferenceDataProvider
from app.schemas.quotes import (
    ActivityEntry,
    AdjustmentsUpdate,
    QuoteCreate,
    QuoteDetail,
    TranslationSettingsUpdate,
)
from app.services import quotes as quote_service
from app.services.activity import list_activity
from app.services.lookup import get_quote
from app.services.reconciler import pricing_from_quote

router = APIRouter(prefix="/api/v1/quotes", tags=["quotes"], dependencies=[Depends(verify_api_key)])


@router.post("", response_model=QuoteDetail, status_code=status.HTTP_201_CREATED)
async def create_quote(
    body: QuoteCreate,
    session: AsyncSession = Depends(get_db),
    refs: ReferenceDataProvider = Depends(get_reference_data),
    staff_id: Optional[uuid.UUID] = Depends(get_staff_id),
):
    """Create a staff-entered quote with optional languages and adjustments."""
    translation = body.translation.model_dump(exclude_unset=True)
    translation.pop("reset_override", None)
    quote = await quote_service.create_quote(
        session,
        refs,
        staff_id=staff_id,
        settings_patch=translation,
        adjustments_patch=body.adjustments.model_dump(exclude_unset=True),
    )
    return QuoteDetail.from_quote(quote, pricing_from_quote(quote))


@router.get("/{quote_id}", response_model=QuoteDetail)
async def get_quote_detail(quote_id: uuid.UUID, session: AsyncSession = Depends(get_db)):
    quote = await get_quote(session, quote_id)
    return QuoteDetail.from_quote(quote, pricing_from_quote(quote))


@router.patch("/{quote_id}/translation-settings", response_model=QuotePricing)
async def update_translation_settings(
    quote_id: uuid.UUID,
    body: TranslationSettingsUpdate,
    session: AsyncSession = Depends(get_db),
    refs: ReferenceDataProvider = Depends(get_reference_data),
    staff_id: Optional[uuid.UUID] = Depends(get_staff_id),
):
    """Change languages or the multiplier override; reprices every line when the multiplier moves."""
    patch = body.model_dump(exclude_unset=True)
    reset_override = patch.pop("reset_override", False)
    return await quote_service.update_translation_settings(
        session, refs, quote_id, patch, reset_override=reset_override, staff_id=staff_id,
    )


@router.patch("/{quote_id}/adjustments", response_model=QuotePricing)
async def update_adjustments(
    quote_id: uuid.UUID,
    body: AdjustmentsUpdate,
    session: AsyncSession = Depends(get_db),
    refs: ReferenceDataProvider = Depends(get_reference_data),
    staff_id: Optional[uuid.UUID] = Depends(get_staff_id),
):
    return await quote_service.update_adjustments(
        session, refs, quote_id, body.model_dump(exclude_unset=True), staff_id=staff_id,
    )


@router.post("/{quote_id}/recalculate", response_model=QuotePricing)
async def recalculate_quote(
    quote_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
    refs: ReferenceDataProvider = Depends(get_reference_data),
):
    return await quote_service.recalculate_quote(session, refs, quote_id)


@router.get("/{quote_id}/activity", response_model=list[ActivityEntry])
async def get_activity(
    quote_id: uuid.UUID,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    session: AsyncSession = Depends(get_db),
):
    quote = await get_quote(session, quote_id)
    return await list_activity(session, quote.id, limit=limit, offset=offset)
