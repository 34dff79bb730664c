from __future__ import annotations
import logging
from typing import Any, Dict, List

from celery import shared_task

from app.core.config import settings
from app.integrations.shoptet import ShoptetOrdersAPI
from app.orchestration.common import JobContext, enqueue, run_scheduled_job
from app.orchestration.inventory_metrics.inventory_metrics_task import recalculate_variant_metrics
from app.repository import shop_repo
from app.services.locking import get_lock_manager, lock_key_for
from app.services.metrics import iter_key_chunks
from app.services.order_sync import run_incremental_fetch, run_status_refresh

logger = logging.getLogger(__name__)

FETCH_PIPELINE = "orders.incremental"
STATUS_PIPELINE = "orders.status_refresh"


# tests monkeypatch this with a fake RemoteOrderClient
def _remote_client():
    return ShoptetOrdersAPI()


def pipeline_lock_key(pipeline: str, shop_id: int) -> str:
    return lock_key_for(f"{pipeline}:{shop_id}")


def dispatch_variant_updates(variant_ids: List[int]) -> int:
    """Fan out variant metric recalculation in small chunks; returns the number of chunks queued."""
    chunks = 0
    for chunk in iter_key_chunks(variant_ids, settings.SYNC_VARIANT_DISPATCH_CHUNK):
        enqueue(recalculate_variant_metrics, chunk, queue="inventory")
        chunks += 1
    return chunks


'''
 Incremental fetch per shop:
   - per-shop pipeline lock, so a manual and a scheduled run never overlap for the same shop
   - window from the orders.change_time cursor, cursor advanced after the pass
   - affected variants fanned out to the inventory metrics task
'''
def _fetch_new_orders_body(ctx: JobContext):
    shops = shop_repo.resolve_scope(ctx.db, ctx.schedule.shop_id if ctx.schedule else None)
    client = _remote_client()
    locks = get_lock_manager()
    processed = 0
    orders_total = 0
    variants_total = 0

    for shop in shops:
        with locks.held(pipeline_lock_key(FETCH_PIPELINE, shop.id), settings.SYNC_PIPELINE_LOCK_TTL_SEC) as acquired:
            if not acquired:
                logger.info("Order pipeline busy, skipping shop_id=%s pipeline=%s", shop.id, FETCH_PIPELINE)
                continue
            result = run_incremental_fetch(ctx.db, shop, client, ctx.options)
            dispatch_variant_updates(result.variant_ids)
            processed += 1
            orders_total += result.orders_count
            variants_total += len(result.variant_ids)

    message = (
        "Objednávky synchronizovány pro %d shop(ů)." % processed
        if processed
        else "Žádný shop nebyl synchronizován (lock aktivní nebo žádné změny)."
    )
    return message, {"shops": processed, "orders": orders_total, "variants": variants_total}


def _refresh_statuses_body(default_hours: int):
    def body(ctx: JobContext):
        shops = shop_repo.resolve_scope(ctx.db, ctx.schedule.shop_id if ctx.schedule else None)
        client = _remote_client()
        locks = get_lock_manager()
        processed = 0
        orders_total = 0

        for shop in shops:
            with locks.held(pipeline_lock_key(STATUS_PIPELINE, shop.id), settings.SYNC_PIPELINE_LOCK_TTL_SEC) as acquired:
                if not acquired:
                    logger.info("Order pipeline busy, skipping shop_id=%s pipeline=%s", shop.id, STATUS_PIPELINE)
                    continue
                result = run_status_refresh(ctx.db, shop, client, ctx.options, default_hours=default_hours)
                processed += 1
                orders_total += result.orders_count

        message = (
            "Stavy objednávek aktualizovány pro %d shop(ů)." % processed
            if processed
            else "Žádný shop nebyl synchronizován (lock aktivní)."
        )
        return message, {"shops": processed, "orders": orders_total}
    return body


@shared_task(name="app.orchestration.order_sync.fetch_new_orders")
def fetch_new_orders(schedule_id: str) -> Dict[str, Any]:
    return run_scheduled_job("fetch_new_orders", schedule_id, _fetch_new_orders_body)


@shared_task(name="app.orchestration.order_sync.refresh_order_statuses")
def refresh_order_statuses(schedule_id: str) -> Dict[str, Any]:
    return run_scheduled_job("refresh_order_statuses", schedule_id, _refresh_statuses_body(48))


@shared_task(name="app.orchestration.order_sync.refresh_order_statuses_deep")
def refresh_order_statuses_deep(schedule_id: str) -> Dict[str, Any]:
    return run_scheduled_job("refresh_order_statuses_deep", schedule_id, _refresh_statuses_body(720))
