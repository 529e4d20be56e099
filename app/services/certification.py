"""
Quote-level certification batch applier and quote certifications.

The batch applier sets one certification type on every analysis record and
every document group of a quote. Translation cost is untouched; only the
certification component of each line total changes. Each item is written
inside its own savepoint so one bad item never leaves another half-updated.

Quote certifications are extra certifications charged on top of the
per-document ones, priced from a snapshot of the type price times quantity.
"""

import uuid
from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import InvalidArgument, QuoteEngineError, Remediation
from app.models.database import transaction
from app.models.enums import ActivityAction, AnalysisStatus
from app.models.tables import AnalysisRecord, QuoteCertification
from app.observability.logging import bind_quote_context
from app.pricing.quote_totals import QuotePricing
from app.reference.provider import CertificationRef, ReferenceDataProvider
from app.services.activity import log_activity
from app.services.analysis_records import list_records, price_record
from app.services.batch import BatchResult
from app.services.document_groups import list_groups, recompute_group
from app.services.lookup import IdLike, get_quote, get_quote_certification
from app.services.reconciler import pricing_from_quote, recalculate

logger = structlog.get_logger(__name__)


class _AllOrNothingAbort(Exception):
    """Raised inside the batch transaction to discard every change."""


def _certify_record(record: AnalysisRecord, cert: CertificationRef) -> None:
    if record.analysis_status != AnalysisStatus.COMPLETED.value or record.base_rate is None:
        raise InvalidArgument(
            f"Record is {record.analysis_status}; it has no pricing to certify",
            target_type="analysis_record",
            target_id=str(record.id),
            remediation=(
                Remediation.MANUAL_ENTRY
                if record.analysis_status == AnalysisStatus.FAILED.value
                else Remediation.REANALYZE
            ),
        )
    record.certification_type_id = cert.id
    record.certification_price = cert.price
    price_record(record)


async def apply_certification_to_all(
    session: AsyncSession,
    refs: ReferenceDataProvider,
    quote_id: IdLike,
    certification_type_id: IdLike,
    staff_id: Optional[uuid.UUID] = None,
    all_or_nothing: bool = False,
) -> BatchResult:
    """
    Apply a certification to the whole quote.

    Records without a completed analysis cannot be priced and are reported
    as failures. By default the successful updates are kept, the quote is
    reconciled, and PartialBatchFailure is raised listing the failures.
    With all_or_nothing=True any failure rolls back every change.
    """
    quote = await get_quote(session, quote_id)
    quote_pk = quote.id
    bind_quote_context(str(quote_pk), str(staff_id) if staff_id else None)
    cert = await refs.certification(session, certification_type_id)

    batch = BatchResult(operation="apply_certification")

    try:
        async with transaction(session):
            for record in await list_records(session, quote_pk):
                try:
                    async with session.begin_nested():
                        _certify_record(record, cert)
                        await session.flush()
                    batch.record_success("analysis_record", record.id)
                except QuoteEngineError as e:
                    batch.record_failure("analysis_record", record.id, e)

            for group in await list_groups(session, quote_pk):
                try:
                    async with session.begin_nested():
                        group.certification_type_id = cert.id
                        group.certification_price = cert.price
                        await recompute_group(session, group)
                    batch.record_success("document_group", group.id)
                except QuoteEngineError as e:
                    batch.record_failure("document_group", group.id, e)

            if batch.failed and all_or_nothing:
                raise _AllOrNothingAbort()

            await log_activity(
                session, quote_pk, ActivityAction.CERTIFICATION_APPLIED, staff_id,
                {
                    "certification_type_id": str(cert.id),
                    "certification_code": cert.code,
                    "succeeded": batch.succeeded,
                    "failed": batch.failed,
                },
            )
            batch.pricing = await recalculate(session, refs, quote_pk)
    except _AllOrNothingAbort:
        batch.pricing = pricing_from_quote(await get_quote(session, quote_pk))
        logger.warning(
            "certification_batch_rolled_back",
            quote_id=str(quote_pk),
            certification=cert.code,
            failed=batch.failed,
        )
        batch.raise_for_failures(quote_pk, rolled_back=True)

    logger.info(
        "certification_applied",
        quote_id=str(quote_pk),
        certification=cert.code,
        succeeded=batch.succeeded,
        failed=batch.failed,
    )
    batch.raise_for_failures(quote_pk)
    return batch


EDITABLE_QUOTE_CERTIFICATION_FIELDS = {"certification_type_id", "quantity", "notes"}


def _check_quantity(quantity, target_id=None) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise InvalidArgument(
            "quantity must be a whole number of at least 1",
            target_type="quote_certification", target_id=target_id, details={"quantity": str(quantity)},
        )
    return quantity


async def list_quote_certifications(session: AsyncSession, quote_id: uuid.UUID) -> list[QuoteCertification]:
    result = await session.execute(
        select(QuoteCertification)
        .where(QuoteCertification.quote_id == quote_id)
        .order_by(QuoteCertification.created_at, QuoteCertification.id)
    )
    return list(result.scalars().all())


async def add_quote_certification(
    session: AsyncSession,
    refs: ReferenceDataProvider,
    quote_id: IdLike,
    certification_type_id: IdLike,
    quantity: int = 1,
    notes: Optional[str] = None,
    staff_id: Optional[uuid.UUID] = None,
) -> QuoteCertification:
    """
    Charge an extra certification once per quote (e.g. an apostille on the
    whole bundle). The type's current price is snapshotted.
    """
    _check_quantity(quantity)

    async with transaction(session):
        quote = await get_quote(session, quote_id)
        bind_quote_context(str(quote.id), str(staff_id) if staff_id else None)
        cert = await refs.certification(session, certification_type_id)

        extra = QuoteCertification(
            quote_id=quote.id,
            certification_type_id=cert.id,
            price=cert.price,
            quantity=quantity,
            notes=notes,
            added_by_staff_id=staff_id,
        )
        session.add(extra)
        await session.flush()

        await log_activity(
            session, quote.id, ActivityAction.QUOTE_CERTIFICATION_ADDED, staff_id,
            {"quote_certification_id": str(extra.id), "certification_code": cert.code, "quantity": quantity},
        )
        await recalculate(session, refs, quote.id)

    logger.info("quote_certification_added", quote_certification_id=str(extra.id), certification=cert.code)
    return extra


async def update_quote_certification(
    session: AsyncSession,
    refs: ReferenceDataProvider,
    quote_certification_id: IdLike,
    patch: dict,
    staff_id: Optional[uuid.UUID] = None,
) -> QuoteCertification:
    """Change quantity, notes or type. A type change re-snapshots the price."""
    unknown = set(patch) - EDITABLE_QUOTE_CERTIFICATION_FIELDS
    if unknown:
        raise InvalidArgument(
            f"Fields not editable on a quote certification: {', '.join(sorted(unknown))}",
            target_type="quote_certification", target_id=str(quote_certification_id),
        )
    if "quantity" in patch:
        _check_quantity(patch["quantity"], str(quote_certification_id))

    async with transaction(session):
        extra = await get_quote_certification(session, quote_certification_id)
        bind_quote_context(str(extra.quote_id), str(staff_id) if staff_id else None)

        if "certification_type_id" in patch:
            cert = await refs.certification(session, patch["certification_type_id"])
            extra.certification_type_id = cert.id
            extra.price = cert.price
        if "quantity" in patch:
            extra.quantity = patch["quantity"]
        if "notes" in patch:
            extra.notes = patch["notes"]
        await session.flush()

        await log_activity(
            session, extra.quote_id, ActivityAction.QUOTE_CERTIFICATION_UPDATED, staff_id,
            {"quote_certification_id": str(extra.id), "fields": sorted(patch)},
        )
        await recalculate(session, refs, extra.quote_id)

    return extra


async def remove_quote_certification(
    session: AsyncSession,
    refs: ReferenceDataProvider,
    quote_certification_id: IdLike,
    staff_id: Optional[uuid.UUID] = None,
) -> QuotePricing:
    async with transaction(session):
        extra = await get_quote_certification(session, quote_certification_id)
        quote_pk = extra.quote_id
        bind_quote_context(str(quote_pk), str(staff_id) if staff_id else None)

        details = {"quote_certification_id": str(extra.id), "certification_type_id": str(extra.certification_type_id)}
        await session.delete(extra)
        await session.flush()

        await log_activity(session, quote_pk, ActivityAction.QUOTE_CERTIFICATION_REMOVED, staff_id, details)
        pricing = await recalculate(session, refs, quote_pk)

    logger.info("quote_certification_removed", **details)
    return pricing
