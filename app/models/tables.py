"""
SQLAlchemy ORM models.
Portable column types (Uuid, JSON, Numeric) so the same schema runs on
PostgreSQL in production and SQLite in tests.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional, Union

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.database import Base


def _status_check(column: str, values: list[str], name: str) -> CheckConstraint:
    quoted = ", ".join(f"'{v}'" for v in values)
    return CheckConstraint(f"{column} IN ({quoted})", name=name)


# ────────────────────────────────────────────────────────────
# REFERENCE DATA (externally owned, read-only to the engine)
# ────────────────────────────────────────────────────────────
class Language(Base):
    __tablename__ = "languages"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    code: Mapped[str] = mapped_column(String(10), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    native_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # 1=Standard, 2=Complex Script, 3=Rare/Specialized
    tier: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    multiplier: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal("1.00"))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="1")

    __table_args__ = (
        CheckConstraint("tier BETWEEN 1 AND 3", name="ck_languages_tier"),
    )


class CertificationType(Base):
    __tablename__ = "certification_types"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="0")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="1")


class DeliveryOption(Base):
    __tablename__ = "delivery_options"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="1")


class TaxRate(Base):
    __tablename__ = "tax_rates"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    region_code: Mapped[str] = mapped_column(String(10), nullable=False)
    region_name: Mapped[str] = mapped_column(Text, nullable=False)
    tax_name: Mapped[str] = mapped_column(Text, nullable=False)
    rate: Mapped[Decimal] = mapped_column(Numeric(6, 5), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="1")


class AppSetting(Base):
    __tablename__ = "app_settings"

    setting_key: Mapped[str] = mapped_column(String(100), primary_key=True)
    setting_value: Mapped[str] = mapped_column(Text, nullable=False)


# ────────────────────────────────────────────────────────────
# QUOTES (translation settings + quote-level pricing)
# ────────────────────────────────────────────────────────────
class Quote(Base):
    __tablename__ = "quotes"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    quote_number: Mapped[Optional[str]] = mapped_column(String(30), nullable=True, unique=True)
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="draft", server_default="draft")
    is_manual_quote: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="1")
    created_by_staff_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True)

    # Translation settings
    source_language_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("languages.id"), nullable=True
    )
    target_language_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("languages.id"), nullable=True
    )
    intended_use_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True)
    country_of_issue: Mapped[Optional[str]] = mapped_column(String(2), nullable=True)
    language_tier: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    language_multiplier: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), nullable=False, default=Decimal("1.00")
    )
    language_multiplier_override: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2), nullable=True)

    # Quote-level adjustments
    is_rush: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="0")
    delivery_option_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("delivery_options.id"), nullable=True
    )
    has_discount: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="0")
    discount_type: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    discount_value: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    discount_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    has_surcharge: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="0")
    surcharge_type: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    surcharge_value: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    surcharge_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tax_rate_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("tax_rates.id"), nullable=True
    )

    # Calculated totals (written only by the reconciler)
    document_subtotal: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    translation_total: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    certification_total: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    rush_fee: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    delivery_fee: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    surcharge_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    pre_tax_total: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    tax_rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(6, 5), nullable=True)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    total: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    totals_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    totals_calculated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("discount_type IS NULL OR discount_type IN ('fixed', 'percentage')",
                        name="ck_quotes_discount_type"),
        CheckConstraint("surcharge_type IS NULL OR surcharge_type IN ('fixed', 'percentage')",
                        name="ck_quotes_surcharge_type"),
        Index("idx_quotes_created", "created_at"),
    )


# ────────────────────────────────────────────────────────────
# FILES & PAGES (owned by the upload collaborator)
# ────────────────────────────────────────────────────────────
class QuoteFile(Base):
    __tablename__ = "quote_files"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    quote_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("quotes.id", ondelete="CASCADE"), nullable=False
    )
    original_filename: Mapped[str] = mapped_column(Text, nullable=False)
    storage_path: Mapped[str] = mapped_column(Text, nullable=False)
    mime_type: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    file_size_bytes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    ai_processing_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending", server_default="pending"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    pages = relationship("QuotePage", back_populates="file", cascade="all, delete-orphan", passive_deletes=True)

    __table_args__ = (
        _status_check(
            "ai_processing_status",
            ["pending", "processing", "completed", "failed", "timeout", "skipped"],
            "ck_quote_files_status",
        ),
        Index("idx_quote_files_quote", "quote_id"),
    )


class QuotePage(Base):
    __tablename__ = "quote_pages"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    quote_file_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("quote_files.id", ondelete="CASCADE"), nullable=False
    )
    page_number: Mapped[int] = mapped_column(Integer, nullable=False)
    word_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    file = relationship("QuoteFile", back_populates="pages")

    __table_args__ = (
        UniqueConstraint("quote_file_id", "page_number", name="uq_quote_pages_file_page"),
    )


# ────────────────────────────────────────────────────────────
# ANALYSIS RECORDS
# ────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class FileBacked:
    file_id: uuid.UUID


@dataclass(frozen=True)
class Manual:
    label: Optional[str] = None


AnalysisSource = Union[FileBacked, Manual]


class AnalysisRecord(Base):
    __tablename__ = "ai_analysis_results"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    quote_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("quotes.id", ondelete="CASCADE"), nullable=False
    )
    source_file_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("quote_files.id", ondelete="CASCADE"), nullable=True
    )
    is_manual_entry: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="0")
    manual_filename: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    document_group_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("quote_document_groups.id", ondelete="SET NULL"), nullable=True
    )

    analysis_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending", server_default="pending"
    )
    is_staff_created: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="0")
    created_by_staff_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True)

    detected_language_code: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    document_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    complexity: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    complexity_multiplier: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2), nullable=True)
    language_multiplier: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2), nullable=True)
    word_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    page_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    billable_pages: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    base_rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    certification_type_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("certification_types.id"), nullable=True
    )
    certification_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    line_total: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    is_excluded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="0")
    ai_confidence: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 4), nullable=True)

    error_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    analyzed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        # Exactly one of: file-backed, or manual entry without a file
        CheckConstraint(
            "(source_file_id IS NOT NULL AND NOT is_manual_entry) "
            "OR (source_file_id IS NULL AND is_manual_entry)",
            name="ck_analysis_source",
        ),
        _status_check(
            "analysis_status",
            ["pending", "processing", "completed", "failed", "timeout"],
            "ck_analysis_status",
        ),
        UniqueConstraint("source_file_id", name="uq_analysis_source_file"),
        Index("idx_analysis_quote", "quote_id"),
    )

    @property
    def source(self) -> AnalysisSource:
        if self.source_file_id is not None:
            return FileBacked(self.source_file_id)
        return Manual(self.manual_filename)


# ────────────────────────────────────────────────────────────
# DOCUMENT GROUPS
# ────────────────────────────────────────────────────────────
class DocumentGroup(Base):
    __tablename__ = "quote_document_groups"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    quote_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("quotes.id", ondelete="CASCADE"), nullable=False
    )
    group_number: Mapped[int] = mapped_column(Integer, nullable=False)
    label: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    document_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    detected_language_code: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    complexity: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    complexity_multiplier: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal("1.00"))
    language_multiplier: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal("1.00"))

    total_pages: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    total_word_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    billable_pages: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    base_rate: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    certification_type_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("certification_types.id"), nullable=True
    )
    certification_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    line_total: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    is_excluded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="0")

    is_ai_suggested: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="0")
    ai_confidence: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 4), nullable=True)
    analysis_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending", server_default="pending"
    )
    last_analyzed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_by_staff_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    assignments = relationship(
        "GroupAssignment", back_populates="group", order_by="GroupAssignment.sequence_order",
        passive_deletes=True,
    )

    __table_args__ = (
        UniqueConstraint("quote_id", "group_number", name="uq_quote_group_number"),
        _status_check(
            "analysis_status",
            ["pending", "analyzing", "completed", "failed", "timeout"],
            "ck_group_analysis_status",
        ),
        Index("idx_doc_groups_quote", "quote_id"),
    )


class GroupAssignment(Base):
    __tablename__ = "quote_page_group_assignments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    quote_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("quotes.id", ondelete="CASCADE"), nullable=False
    )
    group_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("quote_document_groups.id", ondelete="CASCADE"), nullable=False
    )
    file_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("quote_files.id", ondelete="CASCADE"), nullable=True
    )
    page_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("quote_pages.id", ondelete="CASCADE"), nullable=True
    )
    sequence_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    word_count_override: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    assigned_by_ai: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="0")
    assigned_by_staff_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True)
    assigned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    group = relationship("DocumentGroup", back_populates="assignments")

    __table_args__ = (
        CheckConstraint(
            "(file_id IS NOT NULL AND page_id IS NULL) OR (file_id IS NULL AND page_id IS NOT NULL)",
            name="ck_assignment_item_xor",
        ),
        UniqueConstraint("quote_id", "file_id", name="uq_assignment_file"),
        UniqueConstraint("quote_id", "page_id", name="uq_assignment_page"),
        Index("idx_assignments_group", "group_id"),
    )


# ────────────────────────────────────────────────────────────
# QUOTE-LEVEL CERTIFICATIONS
# ────────────────────────────────────────────────────────────
class QuoteCertification(Base):
    """Extra certification charged once per quote (price snapshot × quantity)."""

    __tablename__ = "quote_certifications"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    quote_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("quotes.id", ondelete="CASCADE"), nullable=False
    )
    certification_type_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("certification_types.id"), nullable=False
    )
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    added_by_staff_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_quote_cert_quantity"),
        CheckConstraint("price >= 0", name="ck_quote_cert_price"),
        Index("idx_quote_certs_quote", "quote_id"),
    )


# ────────────────────────────────────────────────────────────
# ACTIVITY LOG
# ────────────────────────────────────────────────────────────
class QuoteActivity(Base):
    __tablename__ = "quote_activity_log"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    quote_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("quotes.id", ondelete="CASCADE"), nullable=False
    )
    staff_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True)
    action_type: Mapped[str] = mapped_column(String(50), nullable=False)
    details: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        Index("idx_quote_activity_quote", "quote_id"),
    )
