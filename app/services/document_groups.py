"""
Document group aggregator.

A group bundles whole files and/or individual pages that form one logical
document. Once a whole file is assigned to a group, the group's line total
replaces that file's own record in the quote subtotal. When only some pages
are grouped, the record still bills the pages left outside any group.

Group line total:
    billable = billing rule(document_type, Σ pages, Σ words)   (0 when empty)
    line     = ceil_2.50(billable × base_rate × lang × complexity) + certification
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

import structlog
from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import InvalidArgument, OracleFailure, OracleTimeout, QuoteEngineError
from app.models.database import transaction
from app.models.enums import ActivityAction, AnalysisStatus, GroupAnalysisStatus, GroupState
from app.models.tables import AnalysisRecord, DocumentGroup, GroupAssignment, QuotePage
from app.observability.logging import bind_quote_context
from app.observability.metrics import line_totals_priced_total
from app.oracle.base import AnalysisOracle, OracleDocument, OracleError, OracleRequest, OracleTimeoutError
from app.oracle.invoke import invoke_oracle
from app.pricing.billing_rules import billing_rules
from app.pricing.line_pricing import price_line
from app.pricing.rates import complexity_multiplier, normalize_complexity
from app.reference.provider import ReferenceDataProvider
from app.services.activity import log_activity
from app.services.batch import BatchResult
from app.services.lookup import (
    IdLike,
    file_in_quote,
    get_assignment,
    get_file,
    get_group,
    get_page,
    get_quote,
    record_for_file,
)
from app.services.reconciler import pricing_from_quote, recalculate

logger = structlog.get_logger(__name__)

EDITABLE_GROUP_FIELDS = {"label", "document_type", "complexity", "certification_type_id", "is_excluded"}


def group_state(group: DocumentGroup, item_count: int) -> GroupState:
    if item_count == 0:
        return GroupState.DRAFT
    if group.analysis_status == GroupAnalysisStatus.COMPLETED.value:
        return GroupState.ANALYZED
    return GroupState.HAS_ITEMS


async def group_items(session: AsyncSession, group_id: uuid.UUID) -> list[GroupAssignment]:
    result = await session.execute(
        select(GroupAssignment)
        .where(GroupAssignment.group_id == group_id)
        .order_by(GroupAssignment.sequence_order, GroupAssignment.assigned_at)
    )
    return list(result.scalars().all())


async def list_groups(session: AsyncSession, quote_id: uuid.UUID) -> list[DocumentGroup]:
    result = await session.execute(
        select(DocumentGroup).where(DocumentGroup.quote_id == quote_id).order_by(DocumentGroup.group_number)
    )
    return list(result.scalars().all())


async def _item_counts(session: AsyncSession, assignment: GroupAssignment) -> tuple[int, int]:
    """(pages, words) contributed by one assigned item."""
    if assignment.page_id is not None:
        page = await get_page(session, assignment.page_id)
        pages, words = 1, page.word_count or 0
    else:
        record = await record_for_file(session, assignment.file_id)
        if record is not None and record.analysis_status == AnalysisStatus.COMPLETED.value:
            pages, words = record.page_count or 1, record.word_count or 0
        else:
            result = await session.execute(
                select(QuotePage.word_count).where(QuotePage.quote_file_id == assignment.file_id)
            )
            counts = list(result.scalars().all())
            pages, words = len(counts) or 1, sum(counts)

    if assignment.word_count_override is not None:
        words = assignment.word_count_override
    return pages, words


async def aggregate_counts(session: AsyncSession, assignments: list[GroupAssignment]) -> tuple[int, int]:
    total_pages = total_words = 0
    for assignment in assignments:
        pages, words = await _item_counts(session, assignment)
        total_pages += pages
        total_words += words
    return total_pages, total_words


async def recompute_group(session: AsyncSession, group: DocumentGroup) -> DocumentGroup:
    """Refresh aggregated counts, billable pages and line total of a group."""
    assignments = await group_items(session, group.id)
    pages, words = await aggregate_counts(session, assignments)
    group.total_pages = pages
    group.total_word_count = words

    if not assignments:
        group.billable_pages = Decimal("0")
        group.line_total = Decimal("0.00")
    else:
        group.billable_pages = billing_rules.billable_pages(group.document_type, pages, words)
        group.line_total = price_line(
            group.billable_pages,
            group.base_rate,
            group.language_multiplier,
            group.complexity_multiplier,
            group.certification_price,
        ).line_total
        line_totals_priced_total.labels(kind="group").inc()

    await session.flush()
    return group


async def recompute_groups_for_file(session: AsyncSession, file_id: uuid.UUID) -> None:
    """Recompute every group holding the file, or one of its pages."""
    page_ids = select(QuotePage.id).where(QuotePage.quote_file_id == file_id)
    result = await session.execute(
        select(DocumentGroup)
        .join(GroupAssignment, GroupAssignment.group_id == DocumentGroup.id)
        .where(or_(GroupAssignment.file_id == file_id, GroupAssignment.page_id.in_(page_ids)))
        .distinct()
    )
    for group in result.scalars().all():
        await recompute_group(session, group)


async def sync_record_group_link(session: AsyncSession, file_id: uuid.UUID) -> None:
    """Point the file's record at the group holding the whole file, if any."""
    record = await record_for_file(session, file_id)
    if record is None:
        return
    result = await session.execute(
        select(GroupAssignment.group_id).where(GroupAssignment.file_id == file_id)
    )
    record.document_group_id = result.scalar_one_or_none()
    await session.flush()


async def _apply_certification(
    session: AsyncSession,
    refs: ReferenceDataProvider,
    group: DocumentGroup,
    certification_type_id,
) -> None:
    if certification_type_id is None:
        group.certification_type_id = None
        group.certification_price = Decimal("0.00")
        return
    cert = await refs.certification(session, certification_type_id)
    group.certification_type_id = cert.id
    group.certification_price = cert.price


async def create_group(
    session: AsyncSession,
    refs: ReferenceDataProvider,
    quote_id: IdLike,
    label: Optional[str] = None,
    document_type: Optional[str] = None,
    complexity: Optional[str] = None,
    certification_type_id=None,
    staff_id: Optional[uuid.UUID] = None,
) -> DocumentGroup:
    async with transaction(session):
        quote = await get_quote(session, quote_id)
        bind_quote_context(str(quote.id), str(staff_id) if staff_id else None)

        result = await session.execute(
            select(func.max(DocumentGroup.group_number)).where(DocumentGroup.quote_id == quote.id)
        )
        next_number = (result.scalar() or 0) + 1

        group = DocumentGroup(
            quote_id=quote.id,
            group_number=next_number,
            label=label,
            document_type=document_type,
            complexity=normalize_complexity(complexity),
            complexity_multiplier=complexity_multiplier(complexity),
            language_multiplier=quote.language_multiplier,
            base_rate=await refs.base_rate(session),
            created_by_staff_id=staff_id,
            analysis_status=GroupAnalysisStatus.PENDING.value,
        )
        if certification_type_id is not None:
            await _apply_certification(session, refs, group, certification_type_id)
        else:
            default = await refs.default_certification(session)
            await _apply_certification(session, refs, group, default.id if default else None)

        session.add(group)
        await session.flush()
        await recompute_group(session, group)

        await log_activity(
            session, quote.id, ActivityAction.GROUP_CREATED, staff_id,
            {"group_id": str(group.id), "group_number": next_number, "label": label},
        )
        await recalculate(session, refs, quote.id)

    logger.info("group_created", group_id=str(group.id), group_number=next_number)
    return group


async def update_group(
    session: AsyncSession,
    refs: ReferenceDataProvider,
    group_id: IdLike,
    patch: dict,
    staff_id: Optional[uuid.UUID] = None,
) -> DocumentGroup:
    unknown = set(patch) - EDITABLE_GROUP_FIELDS
    if unknown:
        raise InvalidArgument(
            f"Fields not editable on a group: {', '.join(sorted(unknown))}",
            target_type="document_group", target_id=str(group_id),
        )

    async with transaction(session):
        group = await get_group(session, group_id)
        bind_quote_context(str(group.quote_id), str(staff_id) if staff_id else None)

        if "label" in patch:
            group.label = patch["label"]
        if "document_type" in patch:
            group.document_type = patch["document_type"]
        if "complexity" in patch:
            group.complexity = normalize_complexity(patch["complexity"])
            group.complexity_multiplier = complexity_multiplier(patch["complexity"])
        if "certification_type_id" in patch:
            await _apply_certification(session, refs, group, patch["certification_type_id"])
        if "is_excluded" in patch:
            group.is_excluded = bool(patch["is_excluded"])

        await recompute_group(session, group)
        await log_activity(
            session, group.quote_id, ActivityAction.GROUP_UPDATED, staff_id,
            {"group_id": str(group.id), "fields": sorted(patch)},
        )
        await recalculate(session, refs, group.quote_id)

    logger.info("group_updated", group_id=str(group.id), fields=sorted(patch))
    return group


async def assign_item(
    session: AsyncSession,
    refs: ReferenceDataProvider,
    group_id: IdLike,
    file_id: Optional[IdLike] = None,
    page_id: Optional[IdLike] = None,
    word_count_override: Optional[int] = None,
    staff_id: Optional[uuid.UUID] = None,
) -> GroupAssignment:
    """
    Assign a whole file or a single page to a group. The target leaves any
    group it was in before. A whole file and its individual pages are never
    grouped at the same time: assigning one removes the other.
    """
    if (file_id is None) == (page_id is None):
        raise InvalidArgument(
            "Exactly one of file_id or page_id is required",
            target_type="document_group", target_id=str(group_id),
        )
    if word_count_override is not None and word_count_override < 0:
        raise InvalidArgument(
            "word_count_override must not be negative",
            target_type="document_group", target_id=str(group_id),
        )

    async with transaction(session):
        group = await get_group(session, group_id)
        bind_quote_context(str(group.quote_id), str(staff_id) if staff_id else None)
        affected: set[uuid.UUID] = {group.id}

        if file_id is not None:
            quote_file = await file_in_quote(session, group.quote_id, file_id)
            parent_file_id = quote_file.id
            target = GroupAssignment.file_id == quote_file.id
            # Pages of this file leave their groups
            conflicting = GroupAssignment.page_id.in_(
                select(QuotePage.id).where(QuotePage.quote_file_id == quote_file.id)
            )
        else:
            page = await get_page(session, page_id)
            await file_in_quote(session, group.quote_id, page.quote_file_id)
            parent_file_id = page.quote_file_id
            target = GroupAssignment.page_id == page.id
            conflicting = GroupAssignment.file_id == page.quote_file_id

        result = await session.execute(
            select(GroupAssignment).where(GroupAssignment.quote_id == group.quote_id, conflicting)
        )
        for stale in result.scalars().all():
            affected.add(stale.group_id)
            await session.delete(stale)

        result = await session.execute(
            select(GroupAssignment).where(GroupAssignment.quote_id == group.quote_id, target)
        )
        existing = result.scalar_one_or_none()

        if existing is not None and existing.group_id == group.id:
            existing.word_count_override = word_count_override
            existing.assigned_by_staff_id = staff_id
            assignment = existing
        else:
            if existing is not None:
                affected.add(existing.group_id)
                await session.delete(existing)
            await session.flush()

            result = await session.execute(
                select(func.max(GroupAssignment.sequence_order)).where(GroupAssignment.group_id == group.id)
            )
            assignment = GroupAssignment(
                quote_id=group.quote_id,
                group_id=group.id,
                file_id=parent_file_id if file_id is not None else None,
                page_id=page.id if page_id is not None else None,
                sequence_order=(result.scalar() or 0) + 1,
                word_count_override=word_count_override,
                assigned_by_staff_id=staff_id,
            )
            session.add(assignment)
        await session.flush()

        await sync_record_group_link(session, parent_file_id)
        for affected_id in affected:
            await recompute_group(session, await get_group(session, affected_id))

        await log_activity(
            session, group.quote_id, ActivityAction.GROUP_ITEM_ASSIGNED, staff_id,
            {
                "group_id": str(group.id),
                "file_id": str(file_id) if file_id is not None else None,
                "page_id": str(page_id) if page_id is not None else None,
                "word_count_override": word_count_override,
            },
        )
        await recalculate(session, refs, group.quote_id)

    logger.info(
        "group_item_assigned",
        group_id=str(group.id),
        assignment_id=str(assignment.id),
        moved_from=[str(g) for g in affected if g != group.id],
    )
    return assignment


async def remove_item(
    session: AsyncSession,
    refs: ReferenceDataProvider,
    assignment_id: IdLike,
    staff_id: Optional[uuid.UUID] = None,
) -> DocumentGroup:
    """Unassign one item. The group stays, even when it becomes empty."""
    async with transaction(session):
        assignment = await get_assignment(session, assignment_id)
        group = await get_group(session, assignment.group_id)
        bind_quote_context(str(group.quote_id), str(staff_id) if staff_id else None)

        if assignment.file_id is not None:
            parent_file_id = assignment.file_id
        else:
            parent_file_id = (await get_page(session, assignment.page_id)).quote_file_id

        details = {
            "group_id": str(group.id),
            "assignment_id": str(assignment.id),
            "file_id": str(assignment.file_id) if assignment.file_id else None,
            "page_id": str(assignment.page_id) if assignment.page_id else None,
        }
        await session.delete(assignment)
        await session.flush()

        await sync_record_group_link(session, parent_file_id)
        await recompute_group(session, group)
        await log_activity(session, group.quote_id, ActivityAction.GROUP_ITEM_REMOVED, staff_id, details)
        await recalculate(session, refs, group.quote_id)

    logger.info("group_item_removed", **details)
    return group


async def delete_group(
    session: AsyncSession,
    refs: ReferenceDataProvider,
    group_id: IdLike,
    staff_id: Optional[uuid.UUID] = None,
) -> uuid.UUID:
    """Delete a group and its assignments. Files and records are kept."""
    async with transaction(session):
        group = await get_group(session, group_id)
        quote_id = group.quote_id
        bind_quote_context(str(quote_id), str(staff_id) if staff_id else None)

        await session.execute(delete(GroupAssignment).where(GroupAssignment.group_id == group.id))
        result = await session.execute(
            select(AnalysisRecord).where(AnalysisRecord.document_group_id == group.id)
        )
        for record in result.scalars().all():
            record.document_group_id = None

        details = {"group_id": str(group.id), "group_number": group.group_number, "label": group.label}
        await session.delete(group)
        await session.flush()

        await log_activity(session, quote_id, ActivityAction.GROUP_DELETED, staff_id, details)
        await recalculate(session, refs, quote_id)

    logger.info("group_deleted", **details)
    return quote_id


def _oracle_documents(assignments, files: dict, pages: dict) -> list[OracleDocument]:
    documents = []
    for assignment in assignments:
        if assignment.page_id is not None:
            page = pages[assignment.page_id]
            quote_file = files[page.quote_file_id]
            documents.append(OracleDocument(
                file_id=str(quote_file.id),
                storage_path=quote_file.storage_path,
                filename=quote_file.original_filename,
                mime_type=quote_file.mime_type,
                page_id=str(page.id),
                page_number=page.page_number,
            ))
        else:
            quote_file = files[assignment.file_id]
            documents.append(OracleDocument(
                file_id=str(quote_file.id),
                storage_path=quote_file.storage_path,
                filename=quote_file.original_filename,
                mime_type=quote_file.mime_type,
            ))
    return documents


async def analyze_group(
    session: AsyncSession,
    refs: ReferenceDataProvider,
    oracle: AnalysisOracle,
    group_id: IdLike,
    staff_id: Optional[uuid.UUID] = None,
) -> DocumentGroup:
    """
    Ask the oracle to classify the group as one document. Counts always come
    from the assigned items; the oracle supplies type, complexity, language
    and a suggested label.
    """
    group = await get_group(session, group_id)
    bind_quote_context(str(group.quote_id), str(staff_id) if staff_id else None)
    assignments = await group_items(session, group.id)
    if not assignments:
        raise InvalidArgument(
            "Group has no items to analyse",
            target_type="document_group", target_id=str(group.id),
        )

    files, pages = {}, {}
    for assignment in assignments:
        if assignment.page_id is not None:
            page = await get_page(session, assignment.page_id)
            pages[page.id] = page
            files[page.quote_file_id] = await get_file(session, page.quote_file_id)
        else:
            files[assignment.file_id] = await get_file(session, assignment.file_id)

    request = OracleRequest(
        quote_id=str(group.quote_id),
        target_type="group",
        target_id=str(group.id),
        documents=_oracle_documents(assignments, files, pages),
    )

    async with transaction(session):
        group.analysis_status = GroupAnalysisStatus.ANALYZING.value

    try:
        result = await invoke_oracle(oracle, request)
    except OracleError as e:
        timed_out = isinstance(e, OracleTimeoutError)
        async with transaction(session):
            group.analysis_status = (
                GroupAnalysisStatus.TIMEOUT.value if timed_out else GroupAnalysisStatus.FAILED.value
            )
            group.error_message = e.message
            await log_activity(
                session, group.quote_id, ActivityAction.GROUP_ANALYSIS_FAILED, staff_id,
                {"group_id": str(group.id), "error_code": e.error_code, "timeout": timed_out},
            )
            await recalculate(session, refs, group.quote_id)

        error_cls = OracleTimeout if timed_out else OracleFailure
        raise error_cls(
            f"Analysis of group {group.group_number} {'timed out' if timed_out else 'failed'}: {e.message}",
            target_type="document_group",
            target_id=str(group.id),
            details={"oracle": e.oracle_name, "oracle_error_code": e.error_code},
        ) from e

    async with transaction(session):
        if result.document_type:
            group.document_type = result.document_type
        if result.complexity:
            group.complexity = normalize_complexity(result.complexity)
            group.complexity_multiplier = complexity_multiplier(result.complexity)
        if result.detected_language:
            group.detected_language_code = result.detected_language
        group.label = result.suggested_label or group.label
        group.is_ai_suggested = True
        group.ai_confidence = Decimal(str(result.confidence)) if result.confidence is not None else None
        group.analysis_status = GroupAnalysisStatus.COMPLETED.value
        group.last_analyzed_at = datetime.now(timezone.utc)
        group.error_message = None

        await recompute_group(session, group)
        await log_activity(
            session, group.quote_id, ActivityAction.GROUP_ANALYZED, staff_id,
            {
                "group_id": str(group.id),
                "document_type": group.document_type,
                "complexity": group.complexity,
                "line_total": str(group.line_total),
            },
        )
        await recalculate(session, refs, group.quote_id)

    logger.info(
        "group_analyzed",
        group_id=str(group.id),
        document_type=group.document_type,
        billable_pages=str(group.billable_pages),
        line_total=str(group.line_total),
    )
    return group


async def analyze_all_groups(
    session: AsyncSession,
    refs: ReferenceDataProvider,
    oracle: AnalysisOracle,
    quote_id: IdLike,
    staff_id: Optional[uuid.UUID] = None,
) -> BatchResult:
    """Analyse every non-empty group in order, continuing past failures."""
    quote = await get_quote(session, quote_id)
    result = await session.execute(
        select(DocumentGroup.id)
        .join(GroupAssignment, GroupAssignment.group_id == DocumentGroup.id)
        .where(DocumentGroup.quote_id == quote.id)
        .group_by(DocumentGroup.id, DocumentGroup.group_number)
        .order_by(DocumentGroup.group_number)
    )
    group_ids = list(result.scalars().all())

    batch = BatchResult(operation="analyze_all_groups")
    for group_id in group_ids:
        try:
            await analyze_group(session, refs, oracle, group_id, staff_id)
            batch.record_success("document_group", group_id)
        except QuoteEngineError as e:
            batch.record_failure("document_group", group_id, e)

    batch.pricing = pricing_from_quote(await get_quote(session, quote.id))
    logger.info(
        "groups_batch_analyzed",
        quote_id=str(quote.id),
        succeeded=batch.succeeded,
        failed=batch.failed,
    )
    return batch

