"""
/api/v1 file endpoints.
Registration of stored files and oracle analysis.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.dependencies import get_db, get_oracle, get_reference_data, get_staff_id, verify_api_key
from app.oracle.base import AnalysisOracle
from app.reference.provider import ReferenceDataProvider
from app.schemas.analysis import RecordChangeResponse, RecordResponse
from app.schemas.files import AnalyzeSelectedRequest, FileRegister, FileResponse
from app.services import analysis_records
from app.services.batch import BatchResult
from app.services.files import list_files, register_file
from app.services.lookup import get_quote
from app.services.reconciler import pricing_from_quote

router = APIRouter(prefix="/api/v1", tags=["files"], dependencies=[Depends(verify_api_key)])


@router.post("/quotes/{quote_id}/files", response_model=FileResponse, status_code=status.HTTP_201_CREATED)
async def register_quote_file(
    quote_id: uuid.UUID,
    body: FileRegister,
    session: AsyncSession = Depends(get_db),
    staff_id: Optional[uuid.UUID] = Depends(get_staff_id),
):
    """Record a file the upload service has already stored."""
    return await register_file(
        session,
        quote_id,
        original_filename=body.original_filename,
        storage_path=body.storage_path,
        mime_type=body.mime_type,
        file_size_bytes=body.file_size_bytes,
        page_word_counts=body.page_word_counts,
        staff_id=staff_id,
    )


@router.get("/quotes/{quote_id}/files", response_model=list[FileResponse])
async def get_quote_files(quote_id: uuid.UUID, session: AsyncSession = Depends(get_db)):
    quote = await get_quote(session, quote_id)
    return await list_files(session, quote.id)


async def _record_change(session: AsyncSession, record) -> RecordChangeResponse:
    quote = await get_quote(session, record.quote_id)
    return RecordChangeResponse(record=RecordResponse.from_record(record), pricing=pricing_from_quote(quote))


@router.post("/files/{file_id}/analyze", response_model=RecordChangeResponse)
async def analyze_file(
    file_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
    refs: ReferenceDataProvider = Depends(get_reference_data),
    oracle: AnalysisOracle = Depends(get_oracle),
    staff_id: Optional[uuid.UUID] = Depends(get_staff_id),
):
    record = await analysis_records.analyze_file(session, refs, oracle, file_id, staff_id)
    return await _record_change(session, record)


@router.post("/files/{file_id}/reanalyze", response_model=RecordChangeResponse)
async def reanalyze_file(
    file_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
    refs: ReferenceDataProvider = Depends(get_reference_data),
    oracle: AnalysisOracle = Depends(get_oracle),
    staff_id: Optional[uuid.UUID] = Depends(get_staff_id),
):
    record = await analysis_records.reanalyze(session, refs, oracle, file_id, staff_id)
    return await _record_change(session, record)


@router.post("/quotes/{quote_id}/files/analyze", response_model=BatchResult)
async def analyze_selected_files(
    quote_id: uuid.UUID,
    body: AnalyzeSelectedRequest,
    response: Response,
    session: AsyncSession = Depends(get_db),
    refs: ReferenceDataProvider = Depends(get_reference_data),
    oracle: AnalysisOracle = Depends(get_oracle),
    staff_id: Optional[uuid.UUID] = Depends(get_staff_id),
):
    """Analyse several files in sequence. 207 when some of them failed."""
    result = await analysis_records.analyze_selected_files(
        session, refs, oracle, quote_id, body.file_ids, staff_id,
    )
    if result.failed:
        response.status_code = status.HTTP_207_MULTI_STATUS
    return result
