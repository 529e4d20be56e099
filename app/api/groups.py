"""
/api/v1 document group endpoints.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.dependencies import get_db, get_oracle, get_reference_data, get_staff_id, verify_api_key
from app.oracle.base import AnalysisOracle
from app.pricing.quote_totals import QuotePricing
from app.reference.provider import ReferenceDataProvider
from app.schemas.groups import AssignItemRequest, GroupChangeResponse, GroupCreate, GroupResponse, GroupUpdate
from app.services import document_groups
from app.services.batch import BatchResult
from app.services.lookup import get_group, get_quote
from app.services.reconciler import pricing_from_quote

router = APIRouter(prefix="/api/v1", tags=["groups"], dependencies=[Depends(verify_api_key)])


async def _group_response(session: AsyncSession, group) -> GroupResponse:
    items = await document_groups.group_items(session, group.id)
    return GroupResponse.from_group(group, items, document_groups.group_state(group, len(items)))


async def _group_change(session: AsyncSession, group) -> GroupChangeResponse:
    quote = await get_quote(session, group.quote_id)
    return GroupChangeResponse(group=await _group_response(session, group), pricing=pricing_from_quote(quote))


@router.get("/quotes/{quote_id}/groups", response_model=list[GroupResponse])
async def list_quote_groups(quote_id: uuid.UUID, session: AsyncSession = Depends(get_db)):
    quote = await get_quote(session, quote_id)
    return [await _group_response(session, group) for group in await document_groups.list_groups(session, quote.id)]


@router.post(
    "/quotes/{quote_id}/groups",
    response_model=GroupChangeResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_group(
    quote_id: uuid.UUID,
    body: GroupCreate,
    session: AsyncSession = Depends(get_db),
    refs: ReferenceDataProvider = Depends(get_reference_data),
    staff_id: Optional[uuid.UUID] = Depends(get_staff_id),
):
    group = await document_groups.create_group(
        session,
        refs,
        quote_id,
        label=body.label,
        document_type=body.document_type,
        complexity=body.complexity,
        certification_type_id=body.certification_type_id,
        staff_id=staff_id,
    )
    return await _group_change(session, group)


@router.patch("/groups/{group_id}", response_model=GroupChangeResponse)
async def update_group(
    group_id: uuid.UUID,
    body: GroupUpdate,
    session: AsyncSession = Depends(get_db),
    refs: ReferenceDataProvider = Depends(get_reference_data),
    staff_id: Optional[uuid.UUID] = Depends(get_staff_id),
):
    group = await document_groups.update_group(
        session, refs, group_id, body.model_dump(exclude_unset=True), staff_id,
    )
    return await _group_change(session, group)


@router.post("/groups/{group_id}/items", response_model=GroupChangeResponse)
async def assign_item(
    group_id: uuid.UUID,
    body: AssignItemRequest,
    session: AsyncSession = Depends(get_db),
    refs: ReferenceDataProvider = Depends(get_reference_data),
    staff_id: Optional[uuid.UUID] = Depends(get_staff_id),
):
    """Assign a file or a page; it leaves any group it was in."""
    await document_groups.assign_item(
        session,
        refs,
        group_id,
        file_id=body.file_id,
        page_id=body.page_id,
        word_count_override=body.word_count_override,
        staff_id=staff_id,
    )
    return await _group_change(session, await get_group(session, group_id))


@router.delete("/groups/items/{assignment_id}", response_model=GroupChangeResponse)
async def remove_item(
    assignment_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
    refs: ReferenceDataProvider = Depends(get_reference_data),
    staff_id: Optional[uuid.UUID] = Depends(get_staff_id),
):
    group = await document_groups.remove_item(session, refs, assignment_id, staff_id)
    return await _group_change(session, group)


@router.post("/groups/{group_id}/analyze", response_model=GroupChangeResponse)
async def analyze_group(
    group_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
    refs: ReferenceDataProvider = Depends(get_reference_data),
    oracle: AnalysisOracle = Depends(get_oracle),
    staff_id: Optional[uuid.UUID] = Depends(get_staff_id),
):
    group = await document_groups.analyze_group(session, refs, oracle, group_id, staff_id)
    return await _group_change(session, group)


@router.delete("/groups/{group_id}", response_model=QuotePricing)
async def delete_group(
    group_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
    refs: ReferenceDataProvider = Depends(get_reference_data),
    staff_id: Optional[uuid.UUID] = Depends(get_staff_id),
):
    """Delete a group and its assignments; files are kept."""
    quote_id = await document_groups.delete_group(session, refs, group_id, staff_id)
    return pricing_from_quote(await get_quote(session, quote_id))


@router.post("/quotes/{quote_id}/groups/analyze", response_model=BatchResult)
async def analyze_all_groups(
    quote_id: uuid.UUID,
    response: Response,
    session: AsyncSession = Depends(get_db),
    refs: ReferenceDataProvider = Depends(get_reference_data),
    oracle: AnalysisOracle = Depends(get_oracle),
    staff_id: Optional[uuid.UUID] = Depends(get_staff_id),
):
    result = await document_groups.analyze_all_groups(session, refs, oracle, quote_id, staff_id)
    if result.failed:
        response.status_code = status.HTTP_207_MULTI_STATUS
    return result
