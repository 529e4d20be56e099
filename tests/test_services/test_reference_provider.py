"""
Tests for reference data lookups.
"""

import uuid
from decimal import Decimal

import pytest

from app.config import settings
from app.errors import ReferenceNotFound
from app.models.tables import AppSetting
from app.reference.provider import ReferenceDataProvider


class TestReferenceDataProvider:

    async def test_language_snapshot(self, session, refs, reference):
        language = await refs.language(session, reference.arabic.id)
        assert language.code == "ar"
        assert language.multiplier == Decimal("1.25")

    async def test_string_ids_accepted(self, session, refs, reference):
        cert = await refs.certification(session, str(reference.apostille.id))
        assert cert.price == Decimal("75.00")

    async def test_inactive_is_not_found(self, session, refs, reference):
        with pytest.raises(ReferenceNotFound):
            await refs.certification(session, reference.retired.id)

    @pytest.mark.parametrize("value", ["not-a-uuid", str(uuid.uuid4())])
    async def test_unknown_ids(self, session, refs, reference, value):
        with pytest.raises(ReferenceNotFound) as exc_info:
            await refs.tax_rate(session, value)
        assert exc_info.value.target_type == "tax_rate"

    async def test_default_certification(self, session, refs, reference):
        default = await refs.default_certification(session)
        assert default.code == "translator_declaration"

    async def test_settings_from_table(self, session, refs, reference):
        assert await refs.base_rate(session) == Decimal("65.00")
        assert await refs.default_tax_rate(session) == Decimal("0.05")

    async def test_cached_until_invalidated(self, session, refs, reference):
        assert await refs.base_rate(session) == Decimal("65.00")
        setting = AppSetting(setting_key="base_rate_per_page", setting_value="70.00")
        await session.merge(setting)
        await session.commit()

        assert await refs.base_rate(session) == Decimal("65.00")
        refs.invalidate()
        assert await refs.base_rate(session) == Decimal("70.00")

    async def test_falls_back_to_configuration(self, session):
        provider = ReferenceDataProvider()
        assert await provider.base_rate(session) == Decimal(str(settings.BASE_RATE_PER_PAGE))
        assert await provider.default_certification(session) is None
