"""
Reference data provider.

Read-through cache over the externally owned reference tables (languages,
certification types, delivery options, tax rates, app settings). Services
receive one provider instance; administrative changes to reference data
must call invalidate() before they are visible to pricing.
"""

import uuid
from decimal import Decimal
from typing import Optional, Union

import structlog
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.errors import ReferenceNotFound
from app.models.tables import AppSetting, CertificationType, DeliveryOption, Language, TaxRate

logger = structlog.get_logger(__name__)

IdLike = Union[uuid.UUID, str]


# ── Snapshots (detached from any session) ────────────────────

class LanguageRef(BaseModel):
    id: uuid.UUID
    code: str
    name: str
    tier: int
    multiplier: Decimal

    model_config = {"from_attributes": True}


class CertificationRef(BaseModel):
    id: uuid.UUID
    code: str
    name: str
    price: Decimal
    is_default: bool = False

    model_config = {"from_attributes": True}


class DeliveryOptionRef(BaseModel):
    id: uuid.UUID
    code: str
    name: str
    price: Decimal

    model_config = {"from_attributes": True}


class TaxRateRef(BaseModel):
    id: uuid.UUID
    region_code: str
    region_name: str
    tax_name: str
    rate: Decimal

    model_config = {"from_attributes": True}


def _as_uuid(value: IdLike, kind: str) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise ReferenceNotFound(f"Unknown {kind}: {value}", target_type=kind, target_id=str(value))


class ReferenceDataProvider:
    """Cached lookups; unknown or inactive ids raise ReferenceNotFound."""

    def __init__(self):
        self._cache: dict[tuple[str, str], BaseModel] = {}
        self._settings: dict[str, Optional[str]] = {}
        self._default_certification: Optional[CertificationRef] = None
        self._default_certification_loaded = False

    def invalidate(self) -> None:
        """Drop every cached value."""
        self._cache.clear()
        self._settings.clear()
        self._default_certification = None
        self._default_certification_loaded = False
        logger.info("reference_cache_invalidated")

    async def _lookup(self, session: AsyncSession, kind: str, model, ref_cls, value: IdLike):
        key_id = _as_uuid(value, kind)
        key = (kind, str(key_id))
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        result = await session.execute(
            select(model).where(model.id == key_id, model.is_active.is_(True))
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise ReferenceNotFound(f"Unknown {kind}: {key_id}", target_type=kind, target_id=str(key_id))

        ref = ref_cls.model_validate(row)
        self._cache[key] = ref
        return ref

    async def language(self, session: AsyncSession, language_id: IdLike) -> LanguageRef:
        return await self._lookup(session, "language", Language, LanguageRef, language_id)

    async def certification(self, session: AsyncSession, certification_type_id: IdLike) -> CertificationRef:
        return await self._lookup(
            session, "certification_type", CertificationType, CertificationRef, certification_type_id,
        )

    async def delivery_option(self, session: AsyncSession, delivery_option_id: IdLike) -> DeliveryOptionRef:
        return await self._lookup(session, "delivery_option", DeliveryOption, DeliveryOptionRef, delivery_option_id)

    async def tax_rate(self, session: AsyncSession, tax_rate_id: IdLike) -> TaxRateRef:
        return await self._lookup(session, "tax_rate", TaxRate, TaxRateRef, tax_rate_id)

    async def default_certification(self, session: AsyncSession) -> Optional[CertificationRef]:
        """The active certification type flagged is_default, if any."""
        if self._default_certification_loaded:
            return self._default_certification

        result = await session.execute(
            select(CertificationType)
            .where(CertificationType.is_default.is_(True), CertificationType.is_active.is_(True))
            .order_by(CertificationType.code)
            .limit(1)
        )
        row = result.scalar_one_or_none()
        self._default_certification = CertificationRef.model_validate(row) if row is not None else None
        self._default_certification_loaded = True
        return self._default_certification

    async def _setting(self, session: AsyncSession, key: str) -> Optional[str]:
        if key in self._settings:
            return self._settings[key]
        result = await session.execute(
            select(AppSetting.setting_value).where(AppSetting.setting_key == key)
        )
        value = result.scalar_one_or_none()
        self._settings[key] = value
        return value

    async def _decimal_setting(self, session: AsyncSession, key: str, fallback: Decimal) -> Decimal:
        raw = await self._setting(session, key)
        if raw is None or not raw.strip():
            return fallback
        try:
            return Decimal(raw.strip())
        except ArithmeticError:
            logger.warning("app_setting_not_numeric", setting_key=key, value=raw)
            return fallback

    async def base_rate(self, session: AsyncSession) -> Decimal:
        """Current per-page base rate (app_settings.base_rate_per_page)."""
        return await self._decimal_setting(session, "base_rate_per_page", settings.BASE_RATE_PER_PAGE)

    async def default_tax_rate(self, session: AsyncSession) -> Decimal:
        return await self._decimal_setting(session, "default_tax_rate", settings.DEFAULT_TAX_RATE)


reference_data = ReferenceDataProvider()
