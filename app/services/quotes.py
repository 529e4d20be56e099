"""
Quote lifecycle: creation, translation settings and quote-level adjustments.
"""

import secrets
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import InvalidArgument
from app.models.database import transaction
from app.models.enums import ActivityAction, AdjustmentValueType
from app.models.tables import Quote
from app.observability.logging import bind_quote_context
from app.pricing.line_pricing import to_decimal
from app.pricing.rates import LanguageRate, resolve_language_rate
from app.pricing.quote_totals import QuotePricing
from app.reference.provider import ReferenceDataProvider
from app.services.activity import log_activity
from app.services.analysis_records import reprice_records
from app.services.document_groups import list_groups, recompute_group
from app.services.lookup import IdLike, get_quote
from app.services.reconciler import recalculate

logger = structlog.get_logger(__name__)

TRANSLATION_SETTING_FIELDS = {
    "source_language_id",
    "target_language_id",
    "intended_use_id",
    "country_of_issue",
    "language_multiplier_override",
}

ADJUSTMENT_FIELDS = {
    "is_rush",
    "delivery_option_id",
    "has_discount",
    "discount_type",
    "discount_value",
    "discount_reason",
    "has_surcharge",
    "surcharge_type",
    "surcharge_value",
    "surcharge_reason",
    "tax_rate_id",
}


def generate_quote_number(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"QT-{now:%Y%m%d}-{secrets.token_hex(3).upper()}"


async def resolve_quote_language_rate(
    session: AsyncSession,
    refs: ReferenceDataProvider,
    quote: Quote,
) -> LanguageRate:
    language = None
    if quote.source_language_id is not None:
        language = await refs.language(session, quote.source_language_id)
    return resolve_language_rate(language, quote.language_multiplier_override)


async def create_quote(
    session: AsyncSession,
    refs: ReferenceDataProvider,
    staff_id: Optional[uuid.UUID] = None,
    settings_patch: Optional[dict] = None,
    adjustments_patch: Optional[dict] = None,
) -> Quote:
    settings_patch = settings_patch or {}
    adjustments_patch = adjustments_patch or {}
    _reject_unknown(settings_patch, TRANSLATION_SETTING_FIELDS, "translation settings")
    _reject_unknown(adjustments_patch, ADJUSTMENT_FIELDS, "adjustments")

    async with transaction(session):
        quote = Quote(
            quote_number=generate_quote_number(),
            created_by_staff_id=staff_id,
            is_manual_quote=True,
        )
        session.add(quote)
        await session.flush()
        bind_quote_context(str(quote.id), str(staff_id) if staff_id else None)

        await _apply_translation_settings(session, refs, quote, settings_patch, reset_override=False)
        await _apply_adjustments(session, refs, quote, adjustments_patch)
        await session.flush()

        await log_activity(
            session, quote.id, ActivityAction.QUOTE_CREATED, staff_id,
            {"quote_number": quote.quote_number},
        )
        await recalculate(session, refs, quote.id)

    logger.info("quote_created", quote_id=str(quote.id), quote_number=quote.quote_number)
    return quote


def _reject_unknown(patch: dict, allowed: set, what: str, quote_id=None) -> None:
    unknown = set(patch) - allowed
    if unknown:
        raise InvalidArgument(
            f"Unknown {what} fields: {', '.join(sorted(unknown))}",
            target_type="quote",
            target_id=str(quote_id) if quote_id else None,
        )


def _intended_use_id(quote: Quote, value) -> Optional[uuid.UUID]:
    if value is None or isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise InvalidArgument(
            f"intended_use_id is not a valid id: {value}",
            target_type="quote", target_id=str(quote.id), details={"intended_use_id": str(value)},
        )


async def _apply_translation_settings(
    session: AsyncSession,
    refs: ReferenceDataProvider,
    quote: Quote,
    patch: dict,
    reset_override: bool,
) -> bool:
    """Apply settings; returns True when the effective language multiplier changed."""
    if "source_language_id" in patch:
        value = patch["source_language_id"]
        quote.source_language_id = (await refs.language(session, value)).id if value is not None else None
    if "target_language_id" in patch:
        value = patch["target_language_id"]
        quote.target_language_id = (await refs.language(session, value)).id if value is not None else None
    if "intended_use_id" in patch:
        value = patch["intended_use_id"]
        quote.intended_use_id = _intended_use_id(quote, value)
    if "country_of_issue" in patch:
        quote.country_of_issue = patch["country_of_issue"]

    if "language_multiplier_override" in patch:
        value = patch["language_multiplier_override"]
        quote.language_multiplier_override = to_decimal(value, "language_multiplier_override") if value is not None else None
    elif reset_override:
        quote.language_multiplier_override = None

    rate = await resolve_quote_language_rate(session, refs, quote)
    previous = quote.language_multiplier
    quote.language_tier = rate.tier
    quote.language_multiplier = rate.multiplier
    return previous is None or Decimal(previous) != rate.multiplier


async def _apply_adjustments(
    session: AsyncSession,
    refs: ReferenceDataProvider,
    quote: Quote,
    patch: dict,
) -> None:
    for type_field in ("discount_type", "surcharge_type"):
        value = patch.get(type_field)
        if value is not None and value not in {t.value for t in AdjustmentValueType}:
            raise InvalidArgument(
                f"{type_field} must be 'fixed' or 'percentage'",
                target_type="quote", target_id=str(quote.id), details={type_field: value},
            )
    for value_field in ("discount_value", "surcharge_value"):
        if patch.get(value_field) is not None:
            patch[value_field] = to_decimal(patch[value_field], value_field)

    if patch.get("delivery_option_id") is not None:
        patch["delivery_option_id"] = (await refs.delivery_option(session, patch["delivery_option_id"])).id
    if patch.get("tax_rate_id") is not None:
        patch["tax_rate_id"] = (await refs.tax_rate(session, patch["tax_rate_id"])).id

    for field, value in patch.items():
        setattr(quote, field, value)


async def update_translation_settings(
    session: AsyncSession,
    refs: ReferenceDataProvider,
    quote_id: IdLike,
    patch: dict,
    reset_override: bool = False,
    staff_id: Optional[uuid.UUID] = None,
) -> QuotePricing:
    """
    Change languages / override. When the effective multiplier changes,
    every completed record and every group is repriced before reconciling.
    """
    _reject_unknown(patch, TRANSLATION_SETTING_FIELDS, "translation settings", quote_id)

    async with transaction(session):
        quote = await get_quote(session, quote_id)
        bind_quote_context(str(quote.id), str(staff_id) if staff_id else None)

        changed = await _apply_translation_settings(session, refs, quote, dict(patch), reset_override)
        repriced = 0
        if changed:
            repriced = await reprice_records(session, quote)
            for group in await list_groups(session, quote.id):
                group.language_multiplier = quote.language_multiplier
                await recompute_group(session, group)
                repriced += 1

        await log_activity(
            session, quote.id, ActivityAction.TRANSLATION_SETTINGS_UPDATED, staff_id,
            {
                "fields": sorted(patch),
                "reset_override": reset_override,
                "language_multiplier": str(quote.language_multiplier),
                "repriced_lines": repriced,
            },
        )
        pricing = await recalculate(session, refs, quote.id)

    logger.info(
        "translation_settings_updated",
        quote_id=str(quote.id),
        language_multiplier=str(quote.language_multiplier),
        multiplier_changed=changed,
        repriced_lines=repriced,
    )
    return pricing


async def update_adjustments(
    session: AsyncSession,
    refs: ReferenceDataProvider,
    quote_id: IdLike,
    patch: dict,
    staff_id: Optional[uuid.UUID] = None,
) -> QuotePricing:
    """Rush, delivery, discount, surcharge and tax rate selection."""
    _reject_unknown(patch, ADJUSTMENT_FIELDS, "adjustments", quote_id)

    async with transaction(session):
        quote = await get_quote(session, quote_id)
        bind_quote_context(str(quote.id), str(staff_id) if staff_id else None)

        await _apply_adjustments(session, refs, quote, dict(patch))
        await session.flush()
        await log_activity(
            session, quote.id, ActivityAction.ADJUSTMENTS_UPDATED, staff_id,
            {key: (str(value) if value is not None else None) for key, value in patch.items()},
        )
        pricing = await recalculate(session, refs, quote.id)

    logger.info("adjustments_updated", quote_id=str(quote.id), fields=sorted(patch), total=str(pricing.total))
    return pricing


async def recalculate_quote(
    session: AsyncSession,
    refs: ReferenceDataProvider,
    quote_id: IdLike,
) -> QuotePricing:
    """Explicit reconciliation request (no input change)."""
    async with transaction(session):
        quote = await get_quote(session, quote_id)
        pricing = await recalculate(session, refs, quote.id)
    return pricing
