"""
Tests for the analysis record manager.
"""

from decimal import Decimal

import pytest

from app.errors import InvalidArgument, OracleFailure, OracleTimeout, ReferenceNotFound
from app.models.enums import AnalysisStatus, FileProcessingStatus
from app.oracle.base import OracleError, OracleTimeoutError
from app.services import analysis_records
from app.services.lookup import get_file, get_quote, get_record, record_for_file


class TestCreateFromAiResult:

    async def test_prices_with_default_certification(self, session, refs, quote, make_file, ai_result):
        quote_file = await make_file()
        record = await analysis_records.create_from_ai_result(
            session, refs, quote_file.id, ai_result(page_count=2, complexity="medium"),
        )
        assert record.analysis_status == AnalysisStatus.COMPLETED.value
        assert record.billable_pages == Decimal("2")
        assert record.base_rate == Decimal("65.00")
        assert record.certification_price == Decimal("0.00")
        # 2 × 65 × 1.15 = 149.50 → 150.00
        assert record.line_total == Decimal("150.00")

        stored = await get_quote(session, quote.id)
        assert stored.document_subtotal == Decimal("150.00")
        assert quote_file.ai_processing_status == FileProcessingStatus.COMPLETED.value

    async def test_reanalysis_overwrites_in_place(self, session, refs, quote, make_file, ai_result):
        quote_file = await make_file()
        first = await analysis_records.create_from_ai_result(session, refs, quote_file.id, ai_result())
        second = await analysis_records.create_from_ai_result(
            session, refs, quote_file.id, ai_result(page_count=3),
        )
        assert first.id == second.id
        assert second.billable_pages == Decimal("3")

    async def test_reanalysis_keeps_chosen_certification(self, session, refs, reference, quote, make_file, ai_result):
        quote_file = await make_file()
        record = await analysis_records.create_from_ai_result(session, refs, quote_file.id, ai_result())
        await analysis_records.edit(
            session, refs, record.id, {"certification_type_id": reference.notarization.id},
        )
        record = await analysis_records.create_from_ai_result(session, refs, quote_file.id, ai_result())
        assert record.certification_type_id == reference.notarization.id
        assert record.line_total == Decimal("95.00")

    async def test_page_count_floor_of_one(self, session, refs, quote, make_file, ai_result):
        quote_file = await make_file()
        record = await analysis_records.create_from_ai_result(
            session, refs, quote_file.id, ai_result(page_count=0, word_count=0),
        )
        assert record.page_count == 1
        assert record.billable_pages == Decimal("1")


class TestAnalyzeFile:

    async def test_success(self, session, refs, oracle, quote, make_file):
        quote_file = await make_file()
        record = await analysis_records.analyze_file(session, refs, oracle, quote_file.id)
        assert record.line_total == Decimal("65.00")
        assert oracle.requests[0].target_type == "file"
        assert oracle.requests[0].documents[0].storage_path == quote_file.storage_path

    async def test_failure_marks_failed_with_no_price(self, session, refs, oracle, quote, make_file):
        quote_file = await make_file()
        oracle.script(quote_file.id, OracleError("stub", "unreadable", "Could not read scan"))

        with pytest.raises(OracleFailure) as exc_info:
            await analysis_records.analyze_file(session, refs, oracle, quote_file.id)

        assert exc_info.value.target_id == str(quote_file.id)
        assert exc_info.value.remediation.value == "manual_entry"
        record = await record_for_file(session, quote_file.id)
        assert record.analysis_status == AnalysisStatus.FAILED.value
        assert record.error_code == "unreadable"
        assert record.line_total is None
        assert (await get_file(session, quote_file.id)).ai_processing_status == "failed"

    async def test_timeout_is_distinct_from_failure(self, session, refs, oracle, quote, make_file):
        quote_file = await make_file()
        oracle.script(quote_file.id, OracleTimeoutError("stub", "took too long"))

        with pytest.raises(OracleTimeout):
            await analysis_records.analyze_file(session, refs, oracle, quote_file.id)

        record = await record_for_file(session, quote_file.id)
        assert record.analysis_status == AnalysisStatus.TIMEOUT.value

    async def test_failed_reanalysis_drops_previous_price(self, session, refs, oracle, quote, make_file):
        quote_file = await make_file()
        await analysis_records.analyze_file(session, refs, oracle, quote_file.id)
        assert (await get_quote(session, quote.id)).document_subtotal == Decimal("65.00")

        oracle.script(quote_file.id, OracleError("stub", "bad_scan", "blank page"))
        with pytest.raises(OracleFailure):
            await analysis_records.reanalyze(session, refs, oracle, quote_file.id)

        assert (await get_quote(session, quote.id)).document_subtotal == Decimal("0.00")

    async def test_batch_continues_past_failures(self, session, refs, oracle, quote, make_file):
        good = await make_file("good.pdf")
        bad = await make_file("bad.pdf")
        oracle.script(bad.id, OracleError("stub", "unreadable", "nope"))

        batch = await analysis_records.analyze_selected_files(
            session, refs, oracle, quote.id, [bad.id, good.id],
        )
        assert batch.succeeded == 1
        assert batch.failed == 1
        assert batch.failures[0].target_id == str(bad.id)
        assert batch.pricing.document_subtotal == Decimal("65.00")


class TestManualEntry:

    async def test_standalone_entry(self, session, refs, reference, quote):
        record = await analysis_records.create_manual(
            session, refs, quote.id,
            {
                "manual_filename": "Walk-in passport",
                "page_count": 2,
                "complexity": "medium",
                "certification_type_id": reference.notarization.id,
            },
        )
        assert record.is_manual_entry
        assert record.source_file_id is None
        assert record.is_staff_created
        assert record.line_total == Decimal("180.00")

    async def test_explicit_billable_pages(self, session, refs, quote):
        record = await analysis_records.create_manual(
            session, refs, quote.id, {"manual_filename": "Letter", "billable_pages": Decimal("0.5")},
        )
        assert record.line_total == Decimal("32.50")

    async def test_replaces_failed_record(self, session, refs, oracle, quote, make_file):
        quote_file = await make_file()
        oracle.script(quote_file.id, OracleError("stub", "unreadable", "nope"))
        with pytest.raises(OracleFailure):
            await analysis_records.analyze_file(session, refs, oracle, quote_file.id)
        failed = await record_for_file(session, quote_file.id)

        record = await analysis_records.create_manual(
            session, refs, quote.id, {"source_file_id": quote_file.id, "page_count": 1},
        )
        assert record.id == failed.id
        assert record.analysis_status == AnalysisStatus.COMPLETED.value
        assert not record.is_manual_entry

    async def test_rejects_file_with_completed_analysis(self, session, refs, quote, make_file, ai_result):
        quote_file = await make_file()
        await analysis_records.create_from_ai_result(session, refs, quote_file.id, ai_result())
        file_id = quote_file.id
        quote_id = quote.id

        with pytest.raises(InvalidArgument):
            await analysis_records.create_manual(session, refs, quote_id, {"source_file_id": file_id})

    async def test_zero_page_count_rejected(self, session, refs, quote):
        quote_id = quote.id
        with pytest.raises(InvalidArgument):
            await analysis_records.create_manual(
                session, refs, quote_id, {"manual_filename": "Letter", "page_count": 0},
            )
        assert await analysis_records.list_records(session, quote_id) == []

    async def test_missing_counts_default(self, session, refs, quote):
        record = await analysis_records.create_manual(session, refs, quote.id, {"manual_filename": "Letter"})
        assert record.page_count == 1
        assert record.word_count == 0

    async def test_unknown_field_rejected(self, session, refs, quote):
        with pytest.raises(InvalidArgument):
            await analysis_records.create_manual(session, refs, quote.id, {"line_total": 10})

    async def test_unknown_certification(self, session, refs, reference, quote):
        quote_id = quote.id
        with pytest.raises(ReferenceNotFound):
            await analysis_records.create_manual(
                session, refs, quote_id, {"certification_type_id": reference.retired.id},
            )


class TestEditAndRemove:

    async def test_edit_reprices_and_keeps_base_rate(self, session, refs, quote, make_file, ai_result):
        quote_file = await make_file()
        record = await analysis_records.create_from_ai_result(session, refs, quote_file.id, ai_result())
        record = await analysis_records.edit(session, refs, record.id, {"complexity": "hard", "page_count": 2})
        # 2 × 65 × 1.25 = 162.50
        assert record.line_total == Decimal("162.50")
        assert record.base_rate == Decimal("65.00")
        assert (await get_quote(session, quote.id)).document_subtotal == Decimal("162.50")

    async def test_edit_excluded_leaves_subtotal(self, session, refs, quote, make_file, ai_result):
        quote_file = await make_file()
        record = await analysis_records.create_from_ai_result(session, refs, quote_file.id, ai_result())
        await analysis_records.edit(session, refs, record.id, {"is_excluded": True})
        assert (await get_quote(session, quote.id)).document_subtotal == Decimal("0.00")

    async def test_edit_rejects_failed_record(self, session, refs, oracle, quote, make_file):
        quote_file = await make_file()
        oracle.script(quote_file.id, OracleError("stub", "unreadable", "nope"))
        with pytest.raises(OracleFailure):
            await analysis_records.analyze_file(session, refs, oracle, quote_file.id)
        record_id = (await record_for_file(session, quote_file.id)).id

        with pytest.raises(InvalidArgument):
            await analysis_records.edit(session, refs, record_id, {"page_count": 2})

    async def test_negative_word_count_rejected(self, session, refs, quote, make_file, ai_result):
        quote_file = await make_file()
        record = await analysis_records.create_from_ai_result(session, refs, quote_file.id, ai_result())
        with pytest.raises(InvalidArgument):
            await analysis_records.edit(session, refs, record.id, {"word_count": -1})

    async def test_removed_file_is_skipped_and_can_be_reanalysed(
        self, session, refs, oracle, quote, make_file, ai_result,
    ):
        quote_file = await make_file()
        file_id = quote_file.id
        record = await analysis_records.create_from_ai_result(session, refs, file_id, ai_result())

        await analysis_records.remove(session, refs, record.id)
        assert (await get_file(session, file_id)).ai_processing_status == FileProcessingStatus.SKIPPED.value
        assert (await get_quote(session, quote.id)).document_subtotal == Decimal("0.00")

        fresh = await analysis_records.create_from_ai_result(session, refs, file_id, ai_result())
        assert fresh.id != record.id
        assert (await get_record(session, fresh.id)).source_file_id == file_id

    async def test_removed_file_accepts_manual_entry(self, session, refs, quote, make_file, ai_result):
        quote_file = await make_file()
        record = await analysis_records.create_from_ai_result(session, refs, quote_file.id, ai_result())
        await analysis_records.remove(session, refs, record.id)

        manual = await analysis_records.create_manual(
            session, refs, quote.id, {"source_file_id": quote_file.id, "page_count": 3},
        )
        assert manual.line_total == Decimal("195.00")
