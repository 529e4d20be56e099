"""
Tests for applying a certification to a whole quote.
"""

from decimal import Decimal

import pytest

from app.errors import InvalidArgument, OracleFailure, PartialBatchFailure, ReferenceNotFound
from app.oracle.base import OracleError
from app.services import analysis_records, document_groups
from app.models.enums import ActivityAction
from app.services.activity import list_activity
from app.services.certification import (
    add_quote_certification,
    apply_certification_to_all,
    list_quote_certifications,
    remove_quote_certification,
    update_quote_certification,
)
from app.services.lookup import get_group, get_quote, get_record, record_for_file


@pytest.fixture
async def mixed_quote(session, refs, oracle, quote, make_file, ai_result):
    """One completed record, one failed record and one grouped file."""
    done = await make_file("done.pdf")
    broken = await make_file("broken.pdf")
    grouped = await make_file("grouped.pdf")

    completed = await analysis_records.create_from_ai_result(session, refs, done.id, ai_result())
    oracle.script(broken.id, OracleError("stub", "unreadable", "nope"))
    with pytest.raises(OracleFailure):
        await analysis_records.analyze_file(session, refs, oracle, broken.id)
    failed = await record_for_file(session, broken.id)

    group = await document_groups.create_group(session, refs, quote.id)
    await document_groups.assign_item(session, refs, group.id, file_id=grouped.id)
    return completed.id, failed.id, group.id


class TestApplyCertification:

    async def test_all_items_succeed(self, session, refs, reference, quote, make_file, ai_result):
        first = await make_file("a.pdf")
        second = await make_file("b.pdf")
        await analysis_records.create_from_ai_result(session, refs, first.id, ai_result())
        await analysis_records.create_from_ai_result(session, refs, second.id, ai_result(page_count=2))
        before = (await get_quote(session, quote.id)).document_subtotal

        batch = await apply_certification_to_all(session, refs, quote.id, reference.notarization.id)

        assert batch.succeeded == 2
        assert batch.failed == 0
        # only the certification component changes
        assert batch.pricing.document_subtotal == before + Decimal("60.00")
        assert batch.pricing.certification_total == Decimal("60.00")

    async def test_partial_failure_keeps_successes(self, session, refs, reference, quote, mixed_quote):
        completed_id, failed_id, group_id = mixed_quote

        with pytest.raises(PartialBatchFailure) as exc_info:
            await apply_certification_to_all(session, refs, quote.id, reference.notarization.id)

        error = exc_info.value
        assert not error.rolled_back
        assert error.succeeded == 2
        assert [item["target_id"] for item in error.items] == [str(failed_id)]
        assert error.items[0]["error"]["remediation"] == "manual_entry"
        assert error.pricing.document_subtotal == Decimal("190.00")

        assert (await get_record(session, completed_id)).line_total == Decimal("95.00")
        assert (await get_group(session, group_id)).line_total == Decimal("95.00")

    async def test_all_or_nothing_rolls_back(self, session, refs, reference, quote, mixed_quote):
        completed_id, failed_id, group_id = mixed_quote
        quote_id = quote.id
        notarization_id = reference.notarization.id

        with pytest.raises(PartialBatchFailure) as exc_info:
            await apply_certification_to_all(
                session, refs, quote_id, notarization_id, all_or_nothing=True,
            )

        assert exc_info.value.rolled_back
        assert exc_info.value.pricing.document_subtotal == Decimal("130.00")
        assert (await get_record(session, completed_id)).line_total == Decimal("65.00")
        assert (await get_group(session, group_id)).certification_price == Decimal("0.00")

    async def test_unknown_certification(self, session, refs, reference, quote):
        with pytest.raises(ReferenceNotFound):
            await apply_certification_to_all(session, refs, quote.id, reference.retired.id)


class TestQuoteCertifications:

    async def test_added_to_subtotal_and_certification_total(
        self, session, refs, reference, quote, make_file, ai_result,
    ):
        quote_file = await make_file()
        await analysis_records.create_from_ai_result(session, refs, quote_file.id, ai_result())

        extra = await add_quote_certification(session, refs, quote.id, reference.apostille.id, quantity=2)

        assert extra.price == Decimal("75.00")
        stored = await get_quote(session, quote.id)
        # 65 translation + 2 × 75 apostille
        assert stored.document_subtotal == Decimal("215.00")
        assert stored.certification_total == Decimal("150.00")
        assert stored.translation_total == Decimal("65.00")

    async def test_update_quantity_and_type(self, session, refs, reference, quote):
        extra = await add_quote_certification(session, refs, quote.id, reference.apostille.id, quantity=3)
        assert (await get_quote(session, quote.id)).document_subtotal == Decimal("225.00")

        await update_quote_certification(session, refs, extra.id, {"quantity": 1})
        assert (await get_quote(session, quote.id)).document_subtotal == Decimal("75.00")

        extra = await update_quote_certification(
            session, refs, extra.id, {"certification_type_id": reference.notarization.id},
        )
        assert extra.price == Decimal("30.00")
        assert (await get_quote(session, quote.id)).document_subtotal == Decimal("30.00")

    async def test_remove_restores_totals(self, session, refs, reference, quote):
        extra = await add_quote_certification(session, refs, quote.id, reference.notarization.id)
        pricing = await remove_quote_certification(session, refs, extra.id)

        assert pricing.document_subtotal == Decimal("0.00")
        assert await list_quote_certifications(session, quote.id) == []
        actions = [entry.action_type for entry in await list_activity(session, quote.id)]
        assert ActivityAction.QUOTE_CERTIFICATION_ADDED.value in actions
        assert ActivityAction.QUOTE_CERTIFICATION_REMOVED.value in actions

    async def test_zero_quantity_rejected(self, session, refs, reference, quote):
        quote_id = quote.id
        with pytest.raises(InvalidArgument):
            await add_quote_certification(session, refs, quote_id, reference.apostille.id, quantity=0)
        assert await list_quote_certifications(session, quote_id) == []

    async def test_inactive_type_rejected(self, session, refs, reference, quote):
        quote_id = quote.id
        with pytest.raises(ReferenceNotFound):
            await add_quote_certification(session, refs, quote_id, reference.retired.id)
        assert (await get_quote(session, quote_id)).document_subtotal == Decimal("0.00")

    async def test_batch_apply_leaves_quote_certifications(
        self, session, refs, reference, quote, make_file, ai_result,
    ):
        quote_file = await make_file()
        await analysis_records.create_from_ai_result(session, refs, quote_file.id, ai_result())
        await add_quote_certification(session, refs, quote.id, reference.apostille.id)

        batch = await apply_certification_to_all(session, refs, quote.id, reference.notarization.id)

        # 95 record (65 + 30 notarization) + 75 apostille
        assert batch.pricing.document_subtotal == Decimal("170.00")
        assert batch.pricing.certification_total == Decimal("105.00")
