"""
Quote totals reconciler.

recalculate() is the only writer of the quote's pricing columns. It is
idempotent: with no input change, a second run yields identical values.

Subtotal contributors:
  - completed, non-excluded analysis records whose file is not assigned to
    a document group as a whole file
  - for a file with some of its pages in groups, the record repriced over
    the pages that are still ungrouped (nothing once every page is grouped)
  - non-excluded document groups with at least one assigned item
  - quote-level certifications (price × quantity), which count towards the
    certification total as well
"""

import asyncio
import time
import uuid
import weakref
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import ConcurrentModification, EntityNotFound
from app.models.enums import AnalysisStatus
from app.models.tables import (
    AnalysisRecord,
    DocumentGroup,
    GroupAssignment,
    Quote,
    QuoteCertification,
    QuotePage,
)
from app.observability.metrics import quote_recalculation_duration_seconds, quote_recalculations_total
from app.pricing.billing_rules import billing_rules
from app.pricing.line_pricing import price_line, round_money
from app.pricing.quote_totals import LineItem, QuoteAdjustments, QuotePricing, compute_quote_totals
from app.reference.provider import ReferenceDataProvider

logger = structlog.get_logger(__name__)

# Entries disappear once no coroutine holds or waits on the lock
_quote_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()


def quote_lock(quote_id: uuid.UUID) -> asyncio.Lock:
    """In-process lock serialising recalculation per quote."""
    key = str(quote_id)
    lock = _quote_locks.get(key)
    if lock is None:
        lock = asyncio.Lock()
        _quote_locks[key] = lock
    return lock


@dataclass
class FilePages:
    """Page rows of one file, split by whether a group holds them."""

    grouped: int = 0
    ungrouped: int = 0
    ungrouped_words: int = 0


async def grouped_file_ids(session: AsyncSession, quote_id: uuid.UUID) -> set[uuid.UUID]:
    """Files assigned to a group as a whole file."""
    result = await session.execute(
        select(GroupAssignment.file_id).where(
            GroupAssignment.quote_id == quote_id,
            GroupAssignment.file_id.is_not(None),
        )
    )
    return set(result.scalars().all())


async def partially_grouped_files(session: AsyncSession, quote_id: uuid.UUID) -> dict[uuid.UUID, FilePages]:
    """Files with at least one page in a group, keyed by file id."""
    grouped_pages = (
        select(GroupAssignment.page_id)
        .where(GroupAssignment.quote_id == quote_id, GroupAssignment.page_id.is_not(None))
    )
    touched = select(QuotePage.quote_file_id).where(QuotePage.id.in_(grouped_pages))
    result = await session.execute(
        select(QuotePage.quote_file_id, QuotePage.word_count, QuotePage.id.in_(grouped_pages))
        .where(QuotePage.quote_file_id.in_(touched))
    )
    files: dict[uuid.UUID, FilePages] = {}
    for file_id, word_count, is_grouped in result.all():
        pages = files.setdefault(file_id, FilePages())
        if is_grouped:
            pages.grouped += 1
        else:
            pages.ungrouped += 1
            pages.ungrouped_words += word_count or 0
    return files


def remaining_line_total(record: AnalysisRecord, pages: FilePages) -> Optional[Decimal]:
    """
    Price of the record over its ungrouped pages, at the record's own rates.
    None when every page of the file sits in a group.
    """
    total_pages = max(record.page_count or 0, pages.grouped + pages.ungrouped)
    remaining = total_pages - pages.grouped
    if remaining <= 0:
        return None
    billable = billing_rules.billable_pages(record.document_type, remaining, pages.ungrouped_words)
    return price_line(
        billable,
        record.base_rate,
        record.language_multiplier,
        record.complexity_multiplier,
        record.certification_price,
    ).line_total


async def collect_line_items(session: AsyncSession, quote_id: uuid.UUID) -> list[LineItem]:
    grouped = await grouped_file_ids(session, quote_id)
    partial = await partially_grouped_files(session, quote_id)

    records = await session.execute(
        select(AnalysisRecord)
        .where(
            AnalysisRecord.quote_id == quote_id,
            AnalysisRecord.analysis_status == AnalysisStatus.COMPLETED.value,
            AnalysisRecord.is_excluded.is_(False),
            AnalysisRecord.line_total.is_not(None),
        )
        .order_by(AnalysisRecord.created_at, AnalysisRecord.id)
    )
    lines = []
    for record in records.scalars().all():
        if record.source_file_id in grouped or record.document_group_id is not None:
            continue
        line_total = record.line_total
        if record.source_file_id in partial:
            line_total = remaining_line_total(record, partial[record.source_file_id])
            if line_total is None:
                continue
        lines.append(
            LineItem(
                kind="record",
                item_id=str(record.id),
                line_total=line_total,
                certification_price=record.certification_price or Decimal("0.00"),
            )
        )

    item_counts = (
        select(GroupAssignment.group_id, func.count(GroupAssignment.id).label("item_count"))
        .where(GroupAssignment.quote_id == quote_id)
        .group_by(GroupAssignment.group_id)
        .subquery()
    )
    groups = await session.execute(
        select(DocumentGroup)
        .join(item_counts, item_counts.c.group_id == DocumentGroup.id)
        .where(
            DocumentGroup.quote_id == quote_id,
            DocumentGroup.is_excluded.is_(False),
            item_counts.c.item_count > 0,
        )
        .order_by(DocumentGroup.group_number)
    )
    lines.extend(
        LineItem(
            kind="group",
            item_id=str(group.id),
            line_total=group.line_total,
            certification_price=group.certification_price,
        )
        for group in groups.scalars().all()
    )

    extras = await session.execute(
        select(QuoteCertification)
        .where(QuoteCertification.quote_id == quote_id)
        .order_by(QuoteCertification.created_at, QuoteCertification.id)
    )
    for extra in extras.scalars().all():
        amount = round_money(Decimal(extra.price) * extra.quantity)
        lines.append(
            LineItem(kind="quote_certification", item_id=str(extra.id), line_total=amount, certification_price=amount)
        )
    return lines


async def build_adjustments(
    session: AsyncSession,
    refs: ReferenceDataProvider,
    quote: Quote,
) -> QuoteAdjustments:
    delivery_fee = Decimal("0.00")
    if quote.delivery_option_id is not None:
        delivery_fee = (await refs.delivery_option(session, quote.delivery_option_id)).price

    if quote.tax_rate_id is not None:
        tax_rate = (await refs.tax_rate(session, quote.tax_rate_id)).rate
    else:
        tax_rate = await refs.default_tax_rate(session)

    return QuoteAdjustments(
        is_rush=quote.is_rush,
        delivery_fee=delivery_fee,
        has_discount=quote.has_discount,
        discount_type=quote.discount_type,
        discount_value=quote.discount_value,
        has_surcharge=quote.has_surcharge,
        surcharge_type=quote.surcharge_type,
        surcharge_value=quote.surcharge_value,
        tax_rate=tax_rate,
    )


def pricing_from_quote(quote: Quote) -> QuotePricing:
    """Stored totals of a quote, as last written by recalculate()."""
    return QuotePricing(
        document_subtotal=quote.document_subtotal,
        translation_total=quote.translation_total,
        certification_total=quote.certification_total,
        is_rush=quote.is_rush,
        rush_fee=quote.rush_fee,
        delivery_fee=quote.delivery_fee,
        discount_amount=quote.discount_amount,
        surcharge_amount=quote.surcharge_amount,
        pre_tax_total=quote.pre_tax_total,
        tax_rate=quote.tax_rate if quote.tax_rate is not None else Decimal("0"),
        tax_amount=quote.tax_amount,
        total=quote.total,
    )


async def recalculate(
    session: AsyncSession,
    refs: ReferenceDataProvider,
    quote_id: uuid.UUID,
) -> QuotePricing:
    """
    Recompute and persist the quote totals. Does not commit; the caller's
    transaction owns the write.
    """
    started = time.perf_counter()
    async with quote_lock(quote_id):
        result = await session.execute(
            select(Quote)
            .where(Quote.id == quote_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        quote = result.scalar_one_or_none()
        if quote is None:
            raise EntityNotFound(f"quote not found: {quote_id}", target_type="quote", target_id=str(quote_id))

        version = quote.totals_version
        lines = await collect_line_items(session, quote_id)
        adjustments = await build_adjustments(session, refs, quote)
        pricing = compute_quote_totals(lines, adjustments)

        written = await session.execute(
            update(Quote)
            .where(Quote.id == quote_id, Quote.totals_version == version)
            .values(
                document_subtotal=pricing.document_subtotal,
                translation_total=pricing.translation_total,
                certification_total=pricing.certification_total,
                rush_fee=pricing.rush_fee,
                delivery_fee=pricing.delivery_fee,
                discount_amount=pricing.discount_amount,
                surcharge_amount=pricing.surcharge_amount,
                pre_tax_total=pricing.pre_tax_total,
                tax_rate=pricing.tax_rate,
                tax_amount=pricing.tax_amount,
                total=pricing.total,
                totals_version=version + 1,
                totals_calculated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        if written.rowcount != 1:
            quote_recalculations_total.labels(outcome="conflict").inc()
            logger.warning("quote_recalculation_conflict", quote_id=str(quote_id), expected_version=version)
            raise ConcurrentModification(
                "Quote totals changed while recalculating",
                target_type="quote",
                target_id=str(quote_id),
                details={"expected_version": version},
            )
        await session.refresh(quote)

    quote_recalculations_total.labels(outcome="ok").inc()
    quote_recalculation_duration_seconds.observe(time.perf_counter() - started)
    logger.info(
        "quote_recalculated",
        quote_id=str(quote_id),
        subtotal=str(pricing.document_subtotal),
        total=str(pricing.total),
        line_items=pricing.line_item_count,
        totals_version=version + 1,
    )
    return pricing
