"""
Python enums for status and category columns.
Values are stored as plain strings; names and values MUST stay in sync with
the CHECK constraints in tables.py.
"""

from enum import Enum


class AnalysisStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMEOUT = "timeout"


class FileProcessingStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMEOUT = "timeout"
    # Analysis was explicitly cleared by staff; eligible for a fresh analysis
    SKIPPED = "skipped"


class GroupAnalysisStatus(str, Enum):
    PENDING = "pending"
    ANALYZING = "analyzing"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMEOUT = "timeout"


class GroupState(str, Enum):
    DRAFT = "draft"
    HAS_ITEMS = "has_items"
    ANALYZED = "analyzed"


class Complexity(str, Enum):
    EASY = "easy"
    LOW = "low"
    MEDIUM = "medium"
    HARD = "hard"
    HIGH = "high"


class AdjustmentValueType(str, Enum):
    FIXED = "fixed"
    PERCENTAGE = "percentage"


class ItemType(str, Enum):
    FILE = "file"
    PAGE = "page"


class ActivityAction(str, Enum):
    QUOTE_CREATED = "quote_created"
    TRANSLATION_SETTINGS_UPDATED = "translation_settings_updated"
    ADJUSTMENTS_UPDATED = "adjustments_updated"
    FILE_REGISTERED = "file_registered"
    FILE_ANALYZED = "file_analyzed"
    FILE_ANALYSIS_FAILED = "file_analysis_failed"
    MANUAL_ENTRY_CREATED = "manual_entry_created"
    ANALYSIS_EDITED = "analysis_edited"
    ANALYSIS_REMOVED = "analysis_removed"
    GROUP_CREATED = "group_created"
    GROUP_UPDATED = "group_updated"
    GROUP_ITEM_ASSIGNED = "group_item_assigned"
    GROUP_ITEM_REMOVED = "group_item_removed"
    GROUP_ANALYZED = "group_analyzed"
    GROUP_ANALYSIS_FAILED = "group_analysis_failed"
    GROUP_DELETED = "group_deleted"
    CERTIFICATION_APPLIED = "certification_applied"
    QUOTE_CERTIFICATION_ADDED = "quote_certification_added"
    QUOTE_CERTIFICATION_UPDATED = "quote_certification_updated"
    QUOTE_CERTIFICATION_REMOVED = "quote_certification_removed"
