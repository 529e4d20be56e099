"""
Shared test fixtures.
"""

import os

# Set environment BEFORE importing the app
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("ENABLE_ORACLE_STUB", "true")
os.environ.setdefault("PROMETHEUS_ENABLED", "false")

from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.models.database import Base
from app.models.tables import (
    AppSetting,
    CertificationType,
    DeliveryOption,
    Language,
    TaxRate,
)
from app.oracle.base import OracleResult
from app.oracle.stub_oracle import StubOracle
from app.reference.provider import ReferenceDataProvider
from app.services.files import register_file
from app.services.quotes import create_quote


@pytest.fixture
async def engine():
    """In-memory SQLite with SAVEPOINT support."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def reference(session):
    """Seeded reference tables (base rate $65, default tax 5%)."""
    spanish = Language(code="es", name="Spanish", tier=1, multiplier=Decimal("1.00"))
    arabic = Language(code="ar", name="Arabic", tier=2, multiplier=Decimal("1.25"))
    amharic = Language(code="am", name="Amharic", tier=3, multiplier=Decimal("1.50"))
    english = Language(code="en", name="English", tier=1, multiplier=Decimal("1.00"))
    declaration = CertificationType(
        code="translator_declaration", name="Translator Declaration", price=Decimal("0.00"), is_default=True,
    )
    notarization = CertificationType(code="notarization", name="Notarization", price=Decimal("30.00"))
    apostille = CertificationType(code="apostille", name="Apostille", price=Decimal("75.00"))
    retired = CertificationType(code="legacy", name="Legacy Stamp", price=Decimal("10.00"), is_active=False)
    courier = DeliveryOption(code="courier", name="Courier", price=Decimal("25.00"))
    ontario = TaxRate(region_code="ON", region_name="Ontario", tax_name="HST", rate=Decimal("0.13"))

    session.add_all([
        spanish, arabic, amharic, english,
        declaration, notarization, apostille, retired,
        courier, ontario,
        AppSetting(setting_key="base_rate_per_page", setting_value="65.00"),
        AppSetting(setting_key="default_tax_rate", setting_value="0.05"),
    ])
    await session.commit()

    return SimpleNamespace(
        spanish=spanish,
        arabic=arabic,
        amharic=amharic,
        english=english,
        declaration=declaration,
        notarization=notarization,
        apostille=apostille,
        retired=retired,
        courier=courier,
        ontario=ontario,
    )


@pytest.fixture
def refs():
    return ReferenceDataProvider()


@pytest.fixture
def oracle():
    return StubOracle()


@pytest.fixture
async def quote(session, refs, reference):
    return await create_quote(
        session,
        refs,
        settings_patch={
            "source_language_id": reference.spanish.id,
            "target_language_id": reference.english.id,
        },
    )


@pytest.fixture
def make_file(session, quote):
    async def _make(name="document.pdf", page_word_counts=None, quote_id=None):
        return await register_file(
            session,
            quote_id or quote.id,
            original_filename=name,
            storage_path=f"quotes/{quote_id or quote.id}/{name}",
            mime_type="application/pdf",
            page_word_counts=page_word_counts,
        )
    return _make


@pytest.fixture
def ai_result():
    def _result(**overrides):
        values = {
            "detected_language": "es",
            "document_type": "birth_certificate",
            "page_count": 1,
            "word_count": 180,
            "complexity": "easy",
            "confidence": 0.92,
        }
        values.update(overrides)
        return OracleResult(**values)
    return _result
