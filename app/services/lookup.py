"""
Row loaders shared by the services.
Every loader raises EntityNotFound instead of returning None.
"""

import uuid
from typing import Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import EntityNotFound
from app.models.tables import (
    AnalysisRecord,
    DocumentGroup,
    GroupAssignment,
    Quote,
    QuoteCertification,
    QuoteFile,
    QuotePage,
)

IdLike = Union[uuid.UUID, str]


def as_uuid(value: IdLike, kind: str) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise EntityNotFound(f"{kind} not found: {value}", target_type=kind, target_id=str(value))


async def _get(session: AsyncSession, model, kind: str, value: IdLike, for_update: bool = False):
    row_id = as_uuid(value, kind)
    stmt = select(model).where(model.id == row_id)
    if for_update:
        stmt = stmt.with_for_update()
    result = await session.execute(stmt)
    row = result.scalar_one_or_none()
    if row is None:
        raise EntityNotFound(f"{kind} not found: {row_id}", target_type=kind, target_id=str(row_id))
    return row


async def get_quote(session: AsyncSession, quote_id: IdLike, for_update: bool = False) -> Quote:
    return await _get(session, Quote, "quote", quote_id, for_update=for_update)


async def get_file(session: AsyncSession, file_id: IdLike) -> QuoteFile:
    return await _get(session, QuoteFile, "file", file_id)


async def get_page(session: AsyncSession, page_id: IdLike) -> QuotePage:
    return await _get(session, QuotePage, "page", page_id)


async def get_record(session: AsyncSession, record_id: IdLike) -> AnalysisRecord:
    return await _get(session, AnalysisRecord, "analysis_record", record_id)


async def get_group(session: AsyncSession, group_id: IdLike) -> DocumentGroup:
    return await _get(session, DocumentGroup, "document_group", group_id)


async def get_assignment(session: AsyncSession, assignment_id: IdLike) -> GroupAssignment:
    return await _get(session, GroupAssignment, "group_assignment", assignment_id)


async def get_quote_certification(session: AsyncSession, quote_certification_id: IdLike) -> QuoteCertification:
    return await _get(session, QuoteCertification, "quote_certification", quote_certification_id)


async def record_for_file(session: AsyncSession, file_id: uuid.UUID) -> Optional[AnalysisRecord]:
    result = await session.execute(
        select(AnalysisRecord).where(AnalysisRecord.source_file_id == file_id)
    )
    return result.scalar_one_or_none()


async def file_in_quote(session: AsyncSession, quote_id: uuid.UUID, file_id: IdLike) -> QuoteFile:
    """Load a file and check that it belongs to the quote."""
    quote_file = await get_file(session, file_id)
    if quote_file.quote_id != quote_id:
        raise EntityNotFound(
            f"file {quote_file.id} does not belong to quote {quote_id}",
            target_type="file",
            target_id=str(quote_file.id),
        )
    return quote_file
