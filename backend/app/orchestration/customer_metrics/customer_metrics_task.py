from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

from celery import shared_task

from app.core.config import settings
from app.db.session import SessionLocal
from app.orchestration.common import JobContext, enqueue, run_scheduled_job
from app.services.locking import batch_lock_key, get_lock_manager, lock_key_for
from app.services.metrics import CustomerMetricsService, CustomerTagRuleEngine, unique_keys

logger = logging.getLogger(__name__)

DEFAULT_QUEUE = "customers_metrics"
DISPATCH_LOCK = "customers:metrics-dispatch"
RECALC_JOB = "recalculate_customer_metrics"


def _resolve_queue(options: Dict[str, Any]) -> str:
    queue = options.get("queue")
    if isinstance(queue, str) and queue.strip():
        return queue.strip()
    return DEFAULT_QUEUE


def _resolve_chunk(options: Dict[str, Any]) -> int:
    try:
        chunk = int(options.get("chunk", 1000))
    except (TypeError, ValueError):
        chunk = 1000
    return max(1, min(5000, chunk))


def dispatch_recalculation(db, queue: str, chunk: int, customer_guid: Optional[str] = None) -> int:
    """
    Queue one recalculate_customer_metrics per keyset chunk of customer guids.
    Returns the number of batches queued; 0 when another dispatch holds the lock.
    """
    if customer_guid:
        enqueue(recalculate_customer_metrics, [customer_guid], queue=queue)
        return 1

    ttl = max(settings.CUSTOMER_METRICS_DISPATCH_MIN_TTL_SEC, chunk * 3)
    dispatched = 0
    with get_lock_manager().held(lock_key_for(DISPATCH_LOCK), ttl) as acquired:
        if not acquired:
            logger.info("Customer metrics dispatch skipped because another run is active queue=%s chunk=%d", queue, chunk)
            return 0
        for guids in CustomerMetricsService(db).iter_dispatch_batches(chunk):
            enqueue(recalculate_customer_metrics, guids, queue=queue)
            dispatched += 1

    if not dispatched:
        logger.debug("Customer metrics dispatch finished without queued batches queue=%s chunk=%d", queue, chunk)
    return dispatched


def _dispatch_body(ctx: JobContext):
    queue = _resolve_queue(ctx.options)
    dispatched = dispatch_recalculation(ctx.db, queue, _resolve_chunk(ctx.options))
    message = (
        "Do fronty [%s] odesláno %d dávek." % (queue, dispatched)
        if dispatched
        else "Nebyly nalezeny žádné zákaznické záznamy pro přepočet."
    )
    return message, {"queue": queue, "batches": dispatched}


@shared_task(name="app.orchestration.customer_metrics.dispatch_customer_metrics")
def dispatch_customer_metrics(schedule_id: str) -> Dict[str, Any]:
    return run_scheduled_job("dispatch_customer_metrics", schedule_id, _dispatch_body)


'''
 One batch of customers:
   - lock salted with the batch (md5 of the guids): same batch serialized, disjoint batches run in parallel
   - metrics recomputed in one transaction, then tag rules queued for exactly this batch
'''
@shared_task(name="app.orchestration.customer_metrics.recalculate_customer_metrics")
def recalculate_customer_metrics(customer_guids: List[str]) -> Dict[str, Any]:
    guids = unique_keys(g for g in customer_guids or [] if isinstance(g, str))
    if not guids:
        return {"status": "empty"}

    lock_key = batch_lock_key(RECALC_JOB, guids)
    with get_lock_manager().held(lock_key, settings.CUSTOMER_METRICS_LOCK_TTL_SEC) as acquired:
        if not acquired:
            logger.info("RecalculateCustomerMetrics is already running for these customers, skipping")
            return {"status": "locked", "lock_key": lock_key}

        db = SessionLocal()
        try:
            processed = CustomerMetricsService(db).recalculate(guids)
        finally:
            db.close()

    enqueue(apply_customer_tag_rules, processed, queue=DEFAULT_QUEUE)
    return {"status": "completed", "customers": len(processed)}


@shared_task(name="app.orchestration.customer_metrics.apply_customer_tag_rules")
def apply_customer_tag_rules(customer_guids: List[str]) -> Dict[str, Any]:
    guids = unique_keys(g for g in customer_guids or [] if isinstance(g, str))
    if not guids:
        return {"status": "empty"}

    db = SessionLocal()
    try:
        updated = CustomerTagRuleEngine(db).apply_to_guids(guids)
    finally:
        db.close()
    return {"status": "completed", "customers": updated}
