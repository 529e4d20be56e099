"""
Document analysis record manager.

One record per analysed file (or per manual entry). A record is priced only
once its analysis is completed; failed and timed-out records keep their
status and error but carry no line total.

File status lifecycle:
    pending → processing → completed | failed | timeout
    any → skipped (record removed by staff; eligible for a fresh analysis)
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import InvalidArgument, OracleFailure, OracleTimeout, QuoteEngineError
from app.models.database import transaction
from app.models.enums import ActivityAction, AnalysisStatus, FileProcessingStatus
from app.models.tables import AnalysisRecord, Quote, QuoteFile
from app.observability.logging import bind_quote_context
from app.observability.metrics import line_totals_priced_total
from app.oracle.base import AnalysisOracle, OracleDocument, OracleError, OracleRequest, OracleResult, OracleTimeoutError
from app.oracle.invoke import invoke_oracle
from app.pricing.billing_rules import billing_rules
from app.pricing.line_pricing import price_line, validate_billable_pages
from app.pricing.rates import complexity_multiplier, normalize_complexity
from app.reference.provider import ReferenceDataProvider
from app.services.activity import log_activity
from app.services.batch import BatchResult
from app.services.document_groups import recompute_groups_for_file, sync_record_group_link
from app.services.lookup import (
    IdLike,
    file_in_quote,
    get_file,
    get_quote,
    get_record,
    record_for_file,
)
from app.services.reconciler import pricing_from_quote, recalculate

logger = structlog.get_logger(__name__)

EDITABLE_RECORD_FIELDS = {
    "detected_language_code",
    "document_type",
    "complexity",
    "word_count",
    "page_count",
    "billable_pages",
    "certification_type_id",
    "is_excluded",
}

MANUAL_ENTRY_FIELDS = {
    "source_file_id",
    "manual_filename",
    "detected_language_code",
    "document_type",
    "complexity",
    "word_count",
    "page_count",
    "billable_pages",
    "certification_type_id",
}


def price_record(record: AnalysisRecord) -> AnalysisRecord:
    """Recompute a completed record's line total from its own fields."""
    record.line_total = price_line(
        record.billable_pages,
        record.base_rate,
        record.language_multiplier,
        record.complexity_multiplier,
        record.certification_price,
    ).line_total
    line_totals_priced_total.labels(kind="record").inc()
    return record


def _clear_pricing(record: AnalysisRecord) -> None:
    record.billable_pages = None
    record.line_total = None


def _check_counts(word_count, page_count, target_id=None) -> None:
    if word_count is not None and word_count < 0:
        raise InvalidArgument("word_count must not be negative", target_type="analysis_record",
                              target_id=target_id, details={"word_count": word_count})
    if page_count is not None and page_count < 1:
        raise InvalidArgument("page_count must be at least 1", target_type="analysis_record",
                              target_id=target_id, details={"page_count": page_count})


async def _snapshot_certification(
    session: AsyncSession,
    refs: ReferenceDataProvider,
    record: AnalysisRecord,
    certification_type_id,
) -> None:
    if certification_type_id is None:
        record.certification_type_id = None
        record.certification_price = Decimal("0.00")
        return
    cert = await refs.certification(session, certification_type_id)
    record.certification_type_id = cert.id
    record.certification_price = cert.price


async def _default_certification_id(session: AsyncSession, refs: ReferenceDataProvider):
    default = await refs.default_certification(session)
    return default.id if default is not None else None


async def _apply_ai_result(
    session: AsyncSession,
    refs: ReferenceDataProvider,
    quote: Quote,
    quote_file: QuoteFile,
    ai_output: OracleResult,
    staff_id: Optional[uuid.UUID],
) -> AnalysisRecord:
    record = await record_for_file(session, quote_file.id)
    if record is None:
        record = AnalysisRecord(quote_id=quote.id, source_file_id=quote_file.id)
        session.add(record)

    page_count = max(ai_output.page_count or 0, 1)
    word_count = ai_output.word_count or 0

    record.is_manual_entry = False
    record.manual_filename = None
    record.detected_language_code = ai_output.detected_language
    record.document_type = ai_output.document_type
    record.complexity = normalize_complexity(ai_output.complexity)
    record.complexity_multiplier = complexity_multiplier(ai_output.complexity)
    record.language_multiplier = quote.language_multiplier
    record.page_count = page_count
    record.word_count = word_count
    record.billable_pages = billing_rules.billable_pages(ai_output.document_type, page_count, word_count)
    # Base rate is a snapshot taken on first pricing
    if record.base_rate is None:
        record.base_rate = await refs.base_rate(session)
    # A certification chosen earlier survives re-analysis
    if record.certification_type_id is not None:
        await _snapshot_certification(session, refs, record, record.certification_type_id)
    else:
        await _snapshot_certification(session, refs, record, await _default_certification_id(session, refs))
    record.ai_confidence = Decimal(str(ai_output.confidence)) if ai_output.confidence is not None else None
    record.analysis_status = AnalysisStatus.COMPLETED.value
    record.error_code = None
    record.error_message = None
    record.analyzed_at = datetime.now(timezone.utc)
    record.created_by_staff_id = record.created_by_staff_id or staff_id
    price_record(record)

    quote_file.ai_processing_status = FileProcessingStatus.COMPLETED.value
    await session.flush()
    await sync_record_group_link(session, quote_file.id)
    await recompute_groups_for_file(session, quote_file.id)
    return record


async def create_from_ai_result(
    session: AsyncSession,
    refs: ReferenceDataProvider,
    file_id: IdLike,
    ai_output: OracleResult,
    staff_id: Optional[uuid.UUID] = None,
) -> AnalysisRecord:
    """Store an analysis result for a file (insert or overwrite) and reprice the quote."""
    async with transaction(session):
        quote_file = await get_file(session, file_id)
        quote = await get_quote(session, quote_file.quote_id)
        bind_quote_context(str(quote.id), str(staff_id) if staff_id else None)

        record = await _apply_ai_result(session, refs, quote, quote_file, ai_output, staff_id)
        await log_activity(
            session, quote.id, ActivityAction.FILE_ANALYZED, staff_id,
            {
                "file_id": str(quote_file.id),
                "record_id": str(record.id),
                "document_type": record.document_type,
                "billable_pages": str(record.billable_pages),
                "line_total": str(record.line_total),
            },
        )
        await recalculate(session, refs, quote.id)

    logger.info(
        "analysis_record_stored",
        record_id=str(record.id),
        file_id=str(quote_file.id),
        billable_pages=str(record.billable_pages),
        line_total=str(record.line_total),
    )
    return record


async def analyze_file(
    session: AsyncSession,
    refs: ReferenceDataProvider,
    oracle: AnalysisOracle,
    file_id: IdLike,
    staff_id: Optional[uuid.UUID] = None,
) -> AnalysisRecord:
    """
    Run the oracle over one file and store the outcome.

    The processing state is committed before the oracle call. On oracle
    failure or timeout the record and file are marked accordingly, the
    quote is reconciled, and OracleFailure / OracleTimeout is raised.
    """
    quote_file = await get_file(session, file_id)
    quote = await get_quote(session, quote_file.quote_id)
    bind_quote_context(str(quote.id), str(staff_id) if staff_id else None)

    async with transaction(session):
        quote_file.ai_processing_status = FileProcessingStatus.PROCESSING.value
        record = await record_for_file(session, quote_file.id)
        if record is None:
            session.add(AnalysisRecord(
                quote_id=quote.id,
                source_file_id=quote_file.id,
                analysis_status=AnalysisStatus.PROCESSING.value,
                created_by_staff_id=staff_id,
            ))

    request = OracleRequest(
        quote_id=str(quote.id),
        target_type="file",
        target_id=str(quote_file.id),
        documents=[OracleDocument(
            file_id=str(quote_file.id),
            storage_path=quote_file.storage_path,
            filename=quote_file.original_filename,
            mime_type=quote_file.mime_type,
        )],
    )

    try:
        result = await invoke_oracle(oracle, request)
    except OracleError as e:
        timed_out = isinstance(e, OracleTimeoutError)
        status = AnalysisStatus.TIMEOUT if timed_out else AnalysisStatus.FAILED
        async with transaction(session):
            record = await record_for_file(session, quote_file.id)
            record.analysis_status = status.value
            record.error_code = e.error_code
            record.error_message = e.message
            record.analyzed_at = datetime.now(timezone.utc)
            _clear_pricing(record)
            quote_file.ai_processing_status = status.value
            await session.flush()
            await recompute_groups_for_file(session, quote_file.id)
            await log_activity(
                session, quote.id, ActivityAction.FILE_ANALYSIS_FAILED, staff_id,
                {"file_id": str(quote_file.id), "status": status.value, "error_code": e.error_code},
            )
            await recalculate(session, refs, quote.id)

        error_cls = OracleTimeout if timed_out else OracleFailure
        raise error_cls(
            f"Analysis of {quote_file.original_filename} {'timed out' if timed_out else 'failed'}: {e.message}",
            target_type="file",
            target_id=str(quote_file.id),
            details={"oracle": e.oracle_name, "oracle_error_code": e.error_code, "record_id": str(record.id)},
        ) from e

    return await create_from_ai_result(session, refs, quote_file.id, result, staff_id)


async def reanalyze(
    session: AsyncSession,
    refs: ReferenceDataProvider,
    oracle: AnalysisOracle,
    file_id: IdLike,
    staff_id: Optional[uuid.UUID] = None,
) -> AnalysisRecord:
    """Analyse a file again, overwriting its previous record whatever its status."""
    logger.info("file_reanalysis_requested", file_id=str(file_id))
    return await analyze_file(session, refs, oracle, file_id, staff_id)


async def analyze_selected_files(
    session: AsyncSession,
    refs: ReferenceDataProvider,
    oracle: AnalysisOracle,
    quote_id: IdLike,
    file_ids: Iterable[IdLike],
    staff_id: Optional[uuid.UUID] = None,
) -> BatchResult:
    """Analyse files one after another, continuing past failures."""
    quote = await get_quote(session, quote_id)
    batch = BatchResult(operation="analyze_selected_files")

    for file_id in file_ids:
        try:
            await file_in_quote(session, quote.id, file_id)
            await analyze_file(session, refs, oracle, file_id, staff_id)
            batch.record_success("file", file_id)
        except QuoteEngineError as e:
            batch.record_failure("file", file_id, e)

    batch.pricing = pricing_from_quote(await get_quote(session, quote.id))
    logger.info(
        "files_batch_analyzed",
        quote_id=str(quote.id),
        succeeded=batch.succeeded,
        failed=batch.failed,
    )
    return batch


async def create_manual(
    session: AsyncSession,
    refs: ReferenceDataProvider,
    quote_id: IdLike,
    fields: dict,
    staff_id: Optional[uuid.UUID] = None,
) -> AnalysisRecord:
    """
    Staff-entered analysis. Either standalone (manual_filename as its label)
    or for a file whose analysis failed, timed out or was removed.
    """
    unknown = set(fields) - MANUAL_ENTRY_FIELDS
    if unknown:
        raise InvalidArgument(
            f"Unknown manual entry fields: {', '.join(sorted(unknown))}",
            target_type="quote", target_id=str(quote_id),
        )

    _check_counts(fields.get("word_count"), fields.get("page_count"))
    page_count = 1 if fields.get("page_count") is None else fields["page_count"]
    word_count = 0 if fields.get("word_count") is None else fields["word_count"]

    async with transaction(session):
        quote = await get_quote(session, quote_id)
        bind_quote_context(str(quote.id), str(staff_id) if staff_id else None)

        quote_file = None
        record = None
        if fields.get("source_file_id") is not None:
            quote_file = await file_in_quote(session, quote.id, fields["source_file_id"])
            record = await record_for_file(session, quote_file.id)
            if record is not None and record.analysis_status == AnalysisStatus.COMPLETED.value:
                raise InvalidArgument(
                    "File already has a completed analysis; edit it instead",
                    target_type="analysis_record", target_id=str(record.id),
                )

        if record is None:
            record = AnalysisRecord(quote_id=quote.id)
            session.add(record)

        if quote_file is not None:
            record.source_file_id = quote_file.id
            record.is_manual_entry = False
            record.manual_filename = None
        else:
            record.is_manual_entry = True
            record.manual_filename = fields.get("manual_filename")

        record.is_staff_created = True
        record.created_by_staff_id = staff_id
        record.detected_language_code = fields.get("detected_language_code")
        record.document_type = fields.get("document_type")
        record.complexity = normalize_complexity(fields.get("complexity"))
        record.complexity_multiplier = complexity_multiplier(fields.get("complexity"))
        record.language_multiplier = quote.language_multiplier
        record.page_count = page_count
        record.word_count = word_count
        if fields.get("billable_pages") is not None:
            record.billable_pages = validate_billable_pages(fields["billable_pages"])
        else:
            record.billable_pages = billing_rules.billable_pages(record.document_type, page_count, word_count)
        if record.base_rate is None:
            record.base_rate = await refs.base_rate(session)
        if "certification_type_id" in fields:
            await _snapshot_certification(session, refs, record, fields["certification_type_id"])
        else:
            await _snapshot_certification(session, refs, record, await _default_certification_id(session, refs))
        record.analysis_status = AnalysisStatus.COMPLETED.value
        record.error_code = None
        record.error_message = None
        record.analyzed_at = datetime.now(timezone.utc)
        price_record(record)
        await session.flush()

        if quote_file is not None:
            quote_file.ai_processing_status = FileProcessingStatus.COMPLETED.value
            await sync_record_group_link(session, quote_file.id)
            await recompute_groups_for_file(session, quote_file.id)

        await log_activity(
            session, quote.id, ActivityAction.MANUAL_ENTRY_CREATED, staff_id,
            {
                "record_id": str(record.id),
                "file_id": str(quote_file.id) if quote_file else None,
                "label": record.manual_filename,
                "line_total": str(record.line_total),
            },
        )
        await recalculate(session, refs, quote.id)

    logger.info("manual_entry_created", record_id=str(record.id), line_total=str(record.line_total))
    return record


async def edit(
    session: AsyncSession,
    refs: ReferenceDataProvider,
    record_id: IdLike,
    patch: dict,
    staff_id: Optional[uuid.UUID] = None,
) -> AnalysisRecord:
    """
    Apply a staff edit to a completed record and reprice it.
    The base rate snapshot never changes; the certification price is
    re-snapshotted from the certification's current price.
    """
    unknown = set(patch) - EDITABLE_RECORD_FIELDS
    if unknown:
        raise InvalidArgument(
            f"Fields not editable on an analysis record: {', '.join(sorted(unknown))}",
            target_type="analysis_record", target_id=str(record_id),
        )
    _check_counts(patch.get("word_count"), patch.get("page_count"), target_id=str(record_id))

    async with transaction(session):
        record = await get_record(session, record_id)
        quote = await get_quote(session, record.quote_id)
        bind_quote_context(str(quote.id), str(staff_id) if staff_id else None)

        if record.analysis_status != AnalysisStatus.COMPLETED.value:
            raise InvalidArgument(
                f"Record is {record.analysis_status}; reanalyse or create a manual entry",
                target_type="analysis_record",
                target_id=str(record.id),
            )

        if "detected_language_code" in patch:
            record.detected_language_code = patch["detected_language_code"]
        if "document_type" in patch:
            record.document_type = patch["document_type"]
        if "complexity" in patch:
            record.complexity = normalize_complexity(patch["complexity"])
            record.complexity_multiplier = complexity_multiplier(patch["complexity"])
        if patch.get("word_count") is not None:
            record.word_count = patch["word_count"]
        if patch.get("page_count") is not None:
            record.page_count = patch["page_count"]
        if "is_excluded" in patch:
            record.is_excluded = bool(patch["is_excluded"])

        if patch.get("billable_pages") is not None:
            record.billable_pages = validate_billable_pages(patch["billable_pages"])
        elif {"document_type", "word_count", "page_count"} & set(patch):
            record.billable_pages = billing_rules.billable_pages(
                record.document_type, record.page_count or 1, record.word_count or 0,
            )

        if "certification_type_id" in patch:
            await _snapshot_certification(session, refs, record, patch["certification_type_id"])
        elif record.certification_type_id is not None:
            await _snapshot_certification(session, refs, record, record.certification_type_id)

        record.language_multiplier = quote.language_multiplier
        price_record(record)
        await session.flush()

        if record.source_file_id is not None:
            await recompute_groups_for_file(session, record.source_file_id)

        await log_activity(
            session, quote.id, ActivityAction.ANALYSIS_EDITED, staff_id,
            {"record_id": str(record.id), "fields": sorted(patch), "line_total": str(record.line_total)},
        )
        await recalculate(session, refs, quote.id)

    logger.info("record_edited", record_id=str(record.id), fields=sorted(patch),
                line_total=str(record.line_total))
    return record


async def remove(
    session: AsyncSession,
    refs: ReferenceDataProvider,
    record_id: IdLike,
    staff_id: Optional[uuid.UUID] = None,
) -> uuid.UUID:
    """Delete a record. Its file (if any) becomes `skipped` and can be analysed afresh."""
    async with transaction(session):
        record = await get_record(session, record_id)
        quote_id = record.quote_id
        file_id = record.source_file_id
        bind_quote_context(str(quote_id), str(staff_id) if staff_id else None)

        await session.delete(record)
        await session.flush()

        if file_id is not None:
            quote_file = await get_file(session, file_id)
            quote_file.ai_processing_status = FileProcessingStatus.SKIPPED.value
            await recompute_groups_for_file(session, file_id)

        await log_activity(
            session, quote_id, ActivityAction.ANALYSIS_REMOVED, staff_id,
            {"record_id": str(record_id), "file_id": str(file_id) if file_id else None},
        )
        await recalculate(session, refs, quote_id)

    logger.info("record_removed", record_id=str(record_id), file_id=str(file_id) if file_id else None)
    return quote_id


async def list_records(session: AsyncSession, quote_id: uuid.UUID) -> list[AnalysisRecord]:
    result = await session.execute(
        select(AnalysisRecord)
        .where(AnalysisRecord.quote_id == quote_id)
        .order_by(AnalysisRecord.created_at, AnalysisRecord.id)
    )
    return list(result.scalars().all())


async def reprice_records(session: AsyncSession, quote: Quote) -> int:
    """Re-derive every completed record of a quote with the quote's current language multiplier."""
    repriced = 0
    for record in await list_records(session, quote.id):
        if record.analysis_status != AnalysisStatus.COMPLETED.value:
            continue
        record.language_multiplier = quote.language_multiplier
        price_record(record)
        repriced += 1
    await session.flush()
    return repriced
