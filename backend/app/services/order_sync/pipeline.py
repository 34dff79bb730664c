"""
Per-shop order pipelines run by the scheduled jobs.
The caller holds the shop's pipeline lock; these only read/advance the cursor around one sync pass.
"""

from __future__ import annotations
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from app.integrations.shoptet.orders_api import RemoteOrderClient
from app.repository import cursor_repo
from app.services.order_sync.sync_service import OrderSyncService, SyncResult
from app.services.order_sync.window import (
    CHANGE_TIME_CURSOR, build_fetch_window, build_status_window, next_cursor,
)
from app.utils.clock import now_utc, to_iso

logger = logging.getLogger(__name__)


def run_incremental_fetch(
    db: Session,
    shop,
    client: RemoteOrderClient,
    options: Optional[Dict[str, Any]] = None,
    now: Optional[datetime] = None,
) -> SyncResult:
    now = now or now_utc()
    previous = cursor_repo.get(db, shop.id, CHANGE_TIME_CURSOR)
    window = build_fetch_window(previous, options, now)

    result = OrderSyncService(db, client).sync(shop, window)

    # written only after every order of the pass is committed
    cursor_repo.put(
        db,
        shop.id,
        CHANGE_TIME_CURSOR,
        next_cursor(previous, result.last_change_time, window),
        {"window": window.as_meta(), "updated_at": to_iso(now_utc())},
    )
    return result


def run_status_refresh(
    db: Session,
    shop,
    client: RemoteOrderClient,
    options: Optional[Dict[str, Any]] = None,
    now: Optional[datetime] = None,
    default_hours: int = 48,
) -> SyncResult:
    window = build_status_window(options, now or now_utc(), default_hours=default_hours)
    logger.info("Order status refresh shop_id=%s window=%s", shop.id, window.as_meta())
    return OrderSyncService(db, client).sync(shop, window)
