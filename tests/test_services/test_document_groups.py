"""
Tests for document groups and their effect on quote totals.
"""

from decimal import Decimal

import pytest

from app.errors import EntityNotFound, InvalidArgument, OracleFailure
from app.models.enums import GroupAnalysisStatus, GroupState
from app.oracle.base import OracleError, OracleResult
from app.services import analysis_records, document_groups
from app.services.files import list_pages
from app.services.lookup import get_group, get_quote, get_record
from app.services.quotes import create_quote


async def _subtotal(session, quote):
    return (await get_quote(session, quote.id)).document_subtotal


class TestGroupPricing:

    async def test_empty_group_contributes_nothing(self, session, refs, quote):
        group = await document_groups.create_group(session, refs, quote.id, label="Transcripts")
        assert group.group_number == 1
        assert group.line_total == Decimal("0.00")
        assert document_groups.group_state(group, 0) == GroupState.DRAFT
        assert await _subtotal(session, quote) == Decimal("0.00")

    async def test_group_supersedes_file_record(self, session, refs, quote, make_file, ai_result):
        quote_file = await make_file()
        record = await analysis_records.create_from_ai_result(
            session, refs, quote_file.id, ai_result(page_count=3),
        )
        assert await _subtotal(session, quote) == Decimal("195.00")

        group = await document_groups.create_group(session, refs, quote.id, complexity="hard")
        await document_groups.assign_item(session, refs, group.id, file_id=quote_file.id)

        group = await get_group(session, group.id)
        # 3 × 65 × 1.25 = 243.75 → 245.00
        assert group.total_pages == 3
        assert group.line_total == Decimal("245.00")
        assert await _subtotal(session, quote) == Decimal("245.00")
        assert (await get_record(session, record.id)).document_group_id == group.id

    async def test_ungrouped_pages_stay_billed(self, session, refs, quote, make_file, ai_result):
        quote_file = await make_file(page_word_counts=[200, 300, 100])
        await analysis_records.create_from_ai_result(session, refs, quote_file.id, ai_result(page_count=3))
        assert await _subtotal(session, quote) == Decimal("195.00")
        first_page, second_page, third_page = await list_pages(session, quote_file.id)

        group = await document_groups.create_group(session, refs, quote.id)
        assignment = await document_groups.assign_item(session, refs, group.id, page_id=first_page.id)

        # group bills page 1, the record bills pages 2-3
        assert (await get_group(session, group.id)).line_total == Decimal("65.00")
        assert await _subtotal(session, quote) == Decimal("195.00")

        await document_groups.remove_item(session, refs, assignment.id)
        assert await _subtotal(session, quote) == Decimal("195.00")

    async def test_every_page_grouped_drops_record(self, session, refs, quote, make_file, ai_result):
        quote_file = await make_file(page_word_counts=[200, 300])
        await analysis_records.create_from_ai_result(session, refs, quote_file.id, ai_result(page_count=2))
        first_page, second_page = await list_pages(session, quote_file.id)

        group = await document_groups.create_group(session, refs, quote.id, complexity="hard")
        await document_groups.assign_item(session, refs, group.id, page_id=first_page.id)
        await document_groups.assign_item(session, refs, group.id, page_id=second_page.id)

        # 2 × 65 × 1.25 = 162.50, the record no longer contributes
        assert await _subtotal(session, quote) == Decimal("162.50")

    async def test_word_based_group(self, session, refs, quote, make_file):
        quote_file = await make_file(page_word_counts=[200, 300])
        first_page, second_page = await list_pages(session, quote_file.id)

        group = await document_groups.create_group(session, refs, quote.id, document_type="transcript")
        await document_groups.assign_item(session, refs, group.id, page_id=first_page.id)
        await document_groups.assign_item(session, refs, group.id, page_id=second_page.id)

        group = await get_group(session, group.id)
        # 500 words / 225 → 2.5 pages
        assert group.total_word_count == 500
        assert group.billable_pages == Decimal("2.5")
        assert group.line_total == Decimal("162.50")

    async def test_word_count_override(self, session, refs, quote, make_file):
        quote_file = await make_file(page_word_counts=[200])
        group = await document_groups.create_group(session, refs, quote.id, document_type="contract")
        await document_groups.assign_item(session, refs, group.id, file_id=quote_file.id, word_count_override=900)

        group = await get_group(session, group.id)
        assert group.billable_pages == Decimal("4")
        assert group.line_total == Decimal("260.00")


class TestAssignment:

    async def test_move_between_groups(self, session, refs, quote, make_file):
        quote_file = await make_file()
        first = await document_groups.create_group(session, refs, quote.id)
        second = await document_groups.create_group(session, refs, quote.id)
        assert second.group_number == 2

        await document_groups.assign_item(session, refs, first.id, file_id=quote_file.id)
        await document_groups.assign_item(session, refs, second.id, file_id=quote_file.id)

        assert await document_groups.group_items(session, first.id) == []
        assert len(await document_groups.group_items(session, second.id)) == 1
        assert (await get_group(session, first.id)).line_total == Decimal("0.00")
        assert await _subtotal(session, quote) == Decimal("65.00")

    async def test_whole_file_replaces_its_page_assignments(self, session, refs, quote, make_file):
        quote_file = await make_file(page_word_counts=[100, 100])
        first_page, second_page = await list_pages(session, quote_file.id)
        group = await document_groups.create_group(session, refs, quote.id)
        await document_groups.assign_item(session, refs, group.id, page_id=first_page.id)
        await document_groups.assign_item(session, refs, group.id, page_id=second_page.id)

        await document_groups.assign_item(session, refs, group.id, file_id=quote_file.id)

        items = await document_groups.group_items(session, group.id)
        assert len(items) == 1
        assert items[0].file_id == quote_file.id
        assert items[0].page_id is None

    async def test_exactly_one_target_required(self, session, refs, quote):
        group = await document_groups.create_group(session, refs, quote.id)
        with pytest.raises(InvalidArgument):
            await document_groups.assign_item(session, refs, group.id)

    async def test_file_from_other_quote_rejected(self, session, refs, reference, quote, make_file):
        other = await create_quote(session, refs)
        foreign = await make_file("foreign.pdf", quote_id=other.id)
        group = await document_groups.create_group(session, refs, quote.id)
        group_id, foreign_id = group.id, foreign.id

        with pytest.raises(EntityNotFound):
            await document_groups.assign_item(session, refs, group_id, file_id=foreign_id)

    async def test_remove_item_keeps_empty_group(self, session, refs, quote, make_file):
        quote_file = await make_file()
        group = await document_groups.create_group(session, refs, quote.id)
        assignment = await document_groups.assign_item(session, refs, group.id, file_id=quote_file.id)

        group = await document_groups.remove_item(session, refs, assignment.id)
        assert group.line_total == Decimal("0.00")
        assert await _subtotal(session, quote) == Decimal("0.00")

    async def test_delete_group_restores_file_record(self, session, refs, quote, make_file, ai_result):
        quote_file = await make_file()
        record = await analysis_records.create_from_ai_result(session, refs, quote_file.id, ai_result())
        group = await document_groups.create_group(session, refs, quote.id, complexity="hard")
        await document_groups.assign_item(session, refs, group.id, file_id=quote_file.id)
        assert await _subtotal(session, quote) == Decimal("82.50")

        await document_groups.delete_group(session, refs, group.id)
        assert await _subtotal(session, quote) == Decimal("65.00")
        assert (await get_record(session, record.id)).document_group_id is None


class TestAnalyzeGroup:

    async def test_empty_group_rejected(self, session, refs, oracle, quote):
        group = await document_groups.create_group(session, refs, quote.id)
        with pytest.raises(InvalidArgument):
            await document_groups.analyze_group(session, refs, oracle, group.id)

    async def test_classification_from_oracle_counts_from_items(self, session, refs, oracle, quote, make_file):
        quote_file = await make_file(page_word_counts=[100, 100, 100])
        group = await document_groups.create_group(session, refs, quote.id, label="Pack")
        await document_groups.assign_item(session, refs, group.id, file_id=quote_file.id)
        oracle.script(group.id, OracleResult(
            document_type="diploma", page_count=9, word_count=5000, complexity="medium",
            suggested_label="University diploma",
        ))

        group = await document_groups.analyze_group(session, refs, oracle, group.id)

        assert group.analysis_status == GroupAnalysisStatus.COMPLETED.value
        assert group.label == "University diploma"
        assert group.total_pages == 3
        # 3 × 65 × 1.15 = 224.25 → 225.00
        assert group.line_total == Decimal("225.00")
        assert oracle.requests[-1].target_type == "group"
        assert len(oracle.requests[-1].documents) == 1

    async def test_failure_marks_group(self, session, refs, oracle, quote, make_file):
        quote_file = await make_file()
        group = await document_groups.create_group(session, refs, quote.id)
        await document_groups.assign_item(session, refs, group.id, file_id=quote_file.id)
        oracle.script(group.id, OracleError("stub", "unreadable", "nope"))

        with pytest.raises(OracleFailure):
            await document_groups.analyze_group(session, refs, oracle, group.id)
        assert (await get_group(session, group.id)).analysis_status == GroupAnalysisStatus.FAILED.value

    async def test_analyze_all_skips_empty_groups(self, session, refs, oracle, quote, make_file):
        quote_file = await make_file()
        await document_groups.create_group(session, refs, quote.id)
        filled = await document_groups.create_group(session, refs, quote.id)
        await document_groups.assign_item(session, refs, filled.id, file_id=quote_file.id)

        batch = await document_groups.analyze_all_groups(session, refs, oracle, quote.id)
        assert batch.succeeded == 1
        assert batch.failed == 0
        assert batch.items[0].target_id == str(filled.id)
