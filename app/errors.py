"""
Error taxonomy for the quote engine.

Every error names the document, group or quote it concerns and the
remediation staff can take, so callers never surface a bare "failed".
"""

from enum import Enum
from typing import Any, Optional


class Remediation(str, Enum):
    REANALYZE = "reanalyze"
    MANUAL_ENTRY = "manual_entry"
    RETRY = "retry"
    FIX_INPUT = "fix_input"
    CONTACT_SUPPORT = "contact_support"


class QuoteEngineError(Exception):
    """Base class for all typed failures raised by the engine."""

    error_code = "ERR_QUOTE_ENGINE"
    default_remediation = Remediation.CONTACT_SUPPORT

    def __init__(
        self,
        message: str,
        target_type: Optional[str] = None,
        target_id: Optional[str] = None,
        remediation: Optional[Remediation] = None,
        details: Optional[dict] = None,
    ):
        self.message = message
        self.target_type = target_type
        self.target_id = str(target_id) if target_id is not None else None
        self.remediation = remediation or self.default_remediation
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "target": {"type": self.target_type, "id": self.target_id},
            "remediation": self.remediation.value,
            "details": self.details,
        }


class ReferenceNotFound(QuoteEngineError):
    """A language, certification type, delivery option or tax rate id did not resolve."""

    error_code = "ERR_REFERENCE_NOT_FOUND"
    default_remediation = Remediation.FIX_INPUT


class EntityNotFound(QuoteEngineError):
    """A quote, file, analysis record, group or assignment does not exist."""

    error_code = "ERR_NOT_FOUND"
    default_remediation = Remediation.FIX_INPUT


class InvalidArgument(QuoteEngineError):
    error_code = "ERR_INVALID_ARGUMENT"
    default_remediation = Remediation.FIX_INPUT


class OracleFailure(QuoteEngineError):
    """The analysis oracle returned an error; the record is marked failed."""

    error_code = "ERR_ORACLE_FAILURE"
    default_remediation = Remediation.MANUAL_ENTRY


class OracleTimeout(QuoteEngineError):
    """The analysis oracle exceeded its time bound; the record is marked timeout."""

    error_code = "ERR_ORACLE_TIMEOUT"
    default_remediation = Remediation.REANALYZE


class ConcurrentModification(QuoteEngineError):
    """Quote totals were written by another operation between read and write."""

    error_code = "ERR_CONCURRENT_MODIFICATION"
    default_remediation = Remediation.RETRY


class PartialBatchFailure(QuoteEngineError):
    """
    A batch operation finished with at least one failed item.
    `items` lists every failed item; `pricing` carries the quote totals
    after the batch (None when the batch was rolled back entirely).
    """

    error_code = "ERR_PARTIAL_BATCH_FAILURE"
    default_remediation = Remediation.RETRY

    def __init__(
        self,
        message: str,
        items: list[dict],
        succeeded: int = 0,
        pricing: Optional[Any] = None,
        rolled_back: bool = False,
        target_type: Optional[str] = "quote",
        target_id: Optional[str] = None,
    ):
        self.items = items
        self.succeeded = succeeded
        self.pricing = pricing
        self.rolled_back = rolled_back
        super().__init__(
            message,
            target_type=target_type,
            target_id=target_id,
            details={
                "failed": len(items),
                "succeeded": succeeded,
                "rolled_back": rolled_back,
                "items": items,
            },
        )
