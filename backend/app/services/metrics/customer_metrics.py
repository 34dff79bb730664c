"""
Customer metrics: fully derived from completed orders, recomputed per batch of customer guids.

  recalculate(guids)  -> one grouped query; in one transaction delete the rows of guids
                         without completed orders and upsert the rest
  iter_dispatch_batches(chunk) -> keyset walk over every customer guid for the full rebuild
"""

from __future__ import annotations
import logging
from typing import Iterable, Iterator, List

from sqlalchemy.orm import Session

from app.repository import metrics_repo
from app.services.metrics.chunking import unique_keys

logger = logging.getLogger(__name__)


class CustomerMetricsService:

    def __init__(self, db: Session) -> None:
        self.db = db

    def recalculate(self, guids: Iterable[str]) -> List[str]:
        """Returns the processed guids (updated and cleared alike)."""
        batch = unique_keys(guids)
        if not batch:
            return []

        facts = metrics_repo.aggregate_customer_facts(self.db, batch)
        missing = [g for g in batch if g not in facts]

        try:
            deleted = metrics_repo.delete_customer_metrics(self.db, missing)
            metrics_repo.upsert_customer_metrics(self.db, list(facts.values()))
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "Customer metrics recalculated batch=%d upserted=%d cleared=%d",
            len(batch), len(facts), deleted,
        )
        return batch

    def iter_dispatch_batches(self, chunk_size: int) -> Iterator[List[str]]:
        yield from metrics_repo.iter_customer_guid_chunks(self.db, chunk_size)
