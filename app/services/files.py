"""
Quote file registration.
The upload collaborator stores the bytes; this records the file and its
pages so they can be analysed and grouped.
"""

import uuid
from typing import Optional, Sequence

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import InvalidArgument
from app.models.database import transaction
from app.models.enums import ActivityAction, FileProcessingStatus
from app.models.tables import QuoteFile, QuotePage
from app.services.activity import log_activity
from app.services.lookup import IdLike, get_quote

logger = structlog.get_logger(__name__)


async def register_file(
    session: AsyncSession,
    quote_id: IdLike,
    original_filename: str,
    storage_path: str,
    mime_type: Optional[str] = None,
    file_size_bytes: Optional[int] = None,
    page_word_counts: Optional[Sequence[int]] = None,
    staff_id: Optional[uuid.UUID] = None,
) -> QuoteFile:
    if not original_filename or not storage_path:
        raise InvalidArgument("original_filename and storage_path are required", target_type="file")
    if page_word_counts and any(count < 0 for count in page_word_counts):
        raise InvalidArgument("page word counts must not be negative", target_type="file")

    async with transaction(session):
        quote = await get_quote(session, quote_id)
        quote_file = QuoteFile(
            quote_id=quote.id,
            original_filename=original_filename,
            storage_path=storage_path,
            mime_type=mime_type,
            file_size_bytes=file_size_bytes,
            ai_processing_status=FileProcessingStatus.PENDING.value,
        )
        session.add(quote_file)
        await session.flush()

        for number, words in enumerate(page_word_counts or [], start=1):
            session.add(QuotePage(quote_file_id=quote_file.id, page_number=number, word_count=words))
        await session.flush()

        await log_activity(
            session, quote.id, ActivityAction.FILE_REGISTERED, staff_id,
            {"file_id": str(quote_file.id), "filename": original_filename,
             "pages": len(page_word_counts or [])},
        )

    logger.info("file_registered", quote_id=str(quote.id), file_id=str(quote_file.id))
    return quote_file


async def list_files(session: AsyncSession, quote_id: uuid.UUID) -> list[QuoteFile]:
    result = await session.execute(
        select(QuoteFile).where(QuoteFile.quote_id == quote_id).order_by(QuoteFile.created_at, QuoteFile.id)
    )
    return list(result.scalars().all())


async def list_pages(session: AsyncSession, file_id: uuid.UUID) -> list[QuotePage]:
    result = await session.execute(
        select(QuotePage).where(QuotePage.quote_file_id == file_id).order_by(QuotePage.page_number)
    )
    return list(result.scalars().all())
