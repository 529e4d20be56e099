"""
Outcome tally for sequential batch operations.
"""

from typing import Optional

from pydantic import BaseModel, Field

from app.errors import PartialBatchFailure, QuoteEngineError
from app.observability.metrics import batch_items_total
from app.pricing.quote_totals import QuotePricing


class BatchItemResult(BaseModel):
    target_type: str
    target_id: str
    succeeded: bool
    error: Optional[dict] = None


class BatchResult(BaseModel):
    operation: str
    succeeded: int = 0
    failed: int = 0
    items: list[BatchItemResult] = Field(default_factory=list)
    pricing: Optional[QuotePricing] = None

    def record_success(self, target_type: str, target_id) -> None:
        self.succeeded += 1
        self.items.append(BatchItemResult(target_type=target_type, target_id=str(target_id), succeeded=True))
        batch_items_total.labels(operation=self.operation, outcome="succeeded").inc()

    def record_failure(self, target_type: str, target_id, error: QuoteEngineError) -> None:
        self.failed += 1
        self.items.append(
            BatchItemResult(
                target_type=target_type,
                target_id=str(target_id),
                succeeded=False,
                error=error.to_dict(),
            )
        )
        batch_items_total.labels(operation=self.operation, outcome="failed").inc()

    @property
    def failures(self) -> list[BatchItemResult]:
        return [item for item in self.items if not item.succeeded]

    def raise_for_failures(self, quote_id=None, rolled_back: bool = False) -> None:
        if not self.failed:
            return
        raise PartialBatchFailure(
            f"{self.operation}: {self.failed} of {self.failed + self.succeeded} items failed",
            items=[item.model_dump() for item in self.failures],
            succeeded=self.succeeded,
            pricing=self.pricing,
            rolled_back=rolled_back,
            target_id=str(quote_id) if quote_id is not None else None,
        )
