"""
Tests for the quote totals reconciler.
"""

import gc
import uuid
from decimal import Decimal

import pytest
from sqlalchemy import update

from app.errors import ConcurrentModification
from app.models.database import transaction
from app.models.tables import AnalysisRecord, Quote
from app.services import analysis_records, reconciler
from app.services.lookup import get_quote
from app.services.quotes import recalculate_quote


class TestRecalculate:

    async def test_idempotent(self, session, refs, quote, make_file, ai_result):
        quote_file = await make_file()
        await analysis_records.create_from_ai_result(session, refs, quote_file.id, ai_result(page_count=2))

        first = await recalculate_quote(session, refs, quote.id)
        second = await recalculate_quote(session, refs, quote.id)

        assert first == second
        assert second.document_subtotal == Decimal("130.00")
        assert second.tax_amount == Decimal("6.50")
        assert second.total == Decimal("136.50")

    async def test_version_increments_per_write(self, session, refs, quote):
        before = (await get_quote(session, quote.id)).totals_version
        await recalculate_quote(session, refs, quote.id)
        after = await get_quote(session, quote.id)
        assert after.totals_version == before + 1
        assert after.totals_calculated_at is not None

    async def test_excluded_and_unpriced_records_skipped(self, session, refs, oracle, quote, make_file, ai_result):
        kept = await make_file("kept.pdf")
        excluded = await make_file("excluded.pdf")
        pending = await make_file("pending.pdf")
        await analysis_records.create_from_ai_result(session, refs, kept.id, ai_result())
        record = await analysis_records.create_from_ai_result(session, refs, excluded.id, ai_result())
        await analysis_records.edit(session, refs, record.id, {"is_excluded": True})

        async with transaction(session):
            lines = await reconciler.collect_line_items(session, quote.id)

        assert [line.kind for line in lines] == ["record"]
        assert pending.id not in {line.item_id for line in lines}
        assert (await get_quote(session, quote.id)).document_subtotal == Decimal("65.00")

    async def test_concurrent_write_detected(self, session, refs, quote, monkeypatch):
        real_collect = reconciler.collect_line_items

        async def collect_while_someone_else_writes(session, quote_id):
            await session.execute(
                update(Quote)
                .where(Quote.id == quote_id)
                .values(totals_version=Quote.totals_version + 1)
                .execution_options(synchronize_session=False)
            )
            return await real_collect(session, quote_id)

        monkeypatch.setattr(reconciler, "collect_line_items", collect_while_someone_else_writes)
        quote_id = quote.id

        with pytest.raises(ConcurrentModification):
            async with transaction(session):
                await reconciler.recalculate(session, refs, quote_id)

    async def test_stored_pricing_matches_last_write(self, session, refs, quote, make_file, ai_result):
        quote_file = await make_file()
        await analysis_records.create_from_ai_result(session, refs, quote_file.id, ai_result())
        pricing = await recalculate_quote(session, refs, quote.id)
        stored = reconciler.pricing_from_quote(await get_quote(session, quote.id))
        assert stored.total == pricing.total
        assert stored.tax_rate == Decimal("0.05")


class TestQuoteLock:

    def test_same_lock_while_held(self):
        quote_id = uuid.uuid4()
        lock = reconciler.quote_lock(quote_id)
        assert reconciler.quote_lock(quote_id) is lock

    def test_idle_lock_is_released(self):
        quote_id = uuid.uuid4()
        lock = reconciler.quote_lock(quote_id)
        assert str(quote_id) in reconciler._quote_locks

        del lock
        gc.collect()
        assert str(quote_id) not in reconciler._quote_locks


class TestRemainingLineTotal:

    def _record(self, **overrides):
        values = {
            "page_count": 3,
            "document_type": "birth_certificate",
            "base_rate": Decimal("65.00"),
            "language_multiplier": Decimal("1.00"),
            "complexity_multiplier": Decimal("1.00"),
            "certification_price": Decimal("0.00"),
        }
        values.update(overrides)
        return AnalysisRecord(**values)

    def test_bills_ungrouped_pages(self):
        pages = reconciler.FilePages(grouped=1, ungrouped=2, ungrouped_words=300)
        assert reconciler.remaining_line_total(self._record(), pages) == Decimal("130.00")

    def test_word_based_uses_ungrouped_words(self):
        pages = reconciler.FilePages(grouped=1, ungrouped=2, ungrouped_words=300)
        record = self._record(document_type="transcript", certification_price=Decimal("30.00"))
        # 300 / 225 → 1.5 pages → 97.50, plus certification
        assert reconciler.remaining_line_total(record, pages) == Decimal("127.50")

    def test_nothing_left_when_all_pages_grouped(self):
        pages = reconciler.FilePages(grouped=3, ungrouped=0)
        assert reconciler.remaining_line_total(self._record(), pages) is None
