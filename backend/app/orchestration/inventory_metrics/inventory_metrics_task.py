from __future__ import annotations
import logging
from typing import Any, Dict, List

from celery import shared_task

from app.core.config import settings
from app.db.session import SessionLocal
from app.orchestration.common import enqueue
from app.services.locking import batch_lock_key, get_lock_manager
from app.services.metrics import InventoryMetricsService, unique_keys

logger = logging.getLogger(__name__)

JOB_NAME = "recalculate_variant_metrics"


'''
 Variant metrics for at most VARIANT_METRICS_CHUNK ids per run; the remainder is re-queued
 as a new task so one message never holds a worker for an unbounded list.
'''
@shared_task(name="app.orchestration.inventory_metrics.recalculate_variant_metrics")
def recalculate_variant_metrics(variant_ids: List[int]) -> Dict[str, Any]:
    ids = unique_keys(int(v) for v in variant_ids or [] if v is not None and v != "")
    if not ids:
        return {"status": "empty"}

    size = settings.VARIANT_METRICS_CHUNK
    head, rest = ids[:size], ids[size:]
    if rest:
        enqueue(recalculate_variant_metrics, rest, queue="inventory")

    locks = get_lock_manager()
    with locks.held(batch_lock_key(JOB_NAME, head), settings.CUSTOMER_METRICS_LOCK_TTL_SEC) as acquired:
        if not acquired:
            return {"status": "locked", "variants": len(head), "requeued": len(rest)}

        db = SessionLocal()
        try:
            done = InventoryMetricsService(db).recalculate(head)
        finally:
            db.close()

    return {"status": "completed", "variants": len(done), "requeued": len(rest)}
