"""
Inventory variant metrics: per (variant, shop) sales aggregates over completed orders.
A (variant, shop) pair without sales has no row; a variant without any sales has none at all.
"""

from __future__ import annotations
import logging
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from app.repository import metrics_repo
from app.services.metrics.chunking import unique_keys
from app.utils.clock import Clock, now_utc

logger = logging.getLogger(__name__)


class InventoryMetricsService:

    def __init__(self, db: Session, clock: Clock = now_utc) -> None:
        self.db = db
        self.clock = clock

    def recalculate(self, variant_ids: Iterable[int], now: Optional[datetime] = None) -> List[int]:
        batch = unique_keys(int(v) for v in variant_ids if v is not None and v != "")
        if not batch:
            return []

        codes = metrics_repo.variant_codes(self.db, batch)
        facts = metrics_repo.aggregate_variant_facts(self.db, sorted(set(codes.values())), now or self.clock())

        rows = []
        for variant_id, code in codes.items():
            for (fact_code, shop_id), values in facts.items():
                if fact_code == code:
                    rows.append({"product_variant_id": variant_id, "shop_id": shop_id, **values})

        try:
            # variants that no longer exist are cleared too
            deleted = metrics_repo.delete_variant_metrics_except(
                self.db, batch, [(r["product_variant_id"], r["shop_id"]) for r in rows]
            )
            metrics_repo.upsert_variant_metrics(self.db, rows)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "Inventory metrics recalculated variants=%d rows=%d cleared=%d",
            len(batch), len(rows), deleted,
        )
        return batch
