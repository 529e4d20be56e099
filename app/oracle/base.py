"""
Abstract base class for document analysis oracles.
An oracle looks at one file, or at every item of a document group, and
suggests language, document type, complexity and page/word counts.
"""

from abc import ABC, abstractmethod
from typing import Optional

from pydantic import BaseModel, Field


class OracleDocument(BaseModel):
    """One stored file (or one page of it) handed to the oracle."""
    file_id: str
    storage_path: str
    filename: str
    mime_type: Optional[str] = None
    page_id: Optional[str] = None
    page_number: Optional[int] = None


class OracleRequest(BaseModel):
    quote_id: str
    target_type: str  # "file" | "group"
    target_id: str
    documents: list[OracleDocument]


class OracleResult(BaseModel):
    detected_language: Optional[str] = None
    document_type: Optional[str] = None
    page_count: int = Field(default=1, ge=0)
    word_count: int = Field(default=0, ge=0)
    complexity: Optional[str] = None
    confidence: Optional[float] = Field(default=None, ge=0, le=1)
    suggested_label: Optional[str] = None


class AnalysisOracle(ABC):
    """
    Every oracle must:
    1. Accept an OracleRequest
    2. Return OracleResult
    3. Raise OracleError (or OracleTimeoutError) on failure, never partial data
    """

    @property
    @abstractmethod
    def oracle_name(self) -> str:
        ...

    @property
    @abstractmethod
    def oracle_version(self) -> str:
        ...

    @abstractmethod
    async def analyze(self, request: OracleRequest) -> OracleResult:
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        ...


class OracleError(Exception):
    """Raised when an analysis oracle fails."""

    def __init__(self, oracle_name: str, error_code: str, message: str):
        self.oracle_name = oracle_name
        self.error_code = error_code
        self.message = message
        super().__init__(f"[{oracle_name}] {error_code}: {message}")


class OracleTimeoutError(OracleError):
    """Raised when the oracle does not answer within its time bound."""

    def __init__(self, oracle_name: str, message: str = "analysis timed out"):
        super().__init__(oracle_name, "ORACLE_TIMEOUT", message)
