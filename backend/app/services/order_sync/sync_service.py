"""
Incremental order sync for one shop and one change-time window.

  page 1..N of the list endpoint, strictly ascending
    -> empty page: stop
    -> per order: detail fetch unless the summary already carries items
       (detail failure: warning, import the summary instead)
    -> import (own transaction per order)
  next page while page < resolved total pages, bounded by SYNC_MAX_PAGES

A list failure propagates: the caller marks the run failed and the stored cursor stays where it was.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.integrations.shoptet.errors import RemoteFetchFailure
from app.integrations.shoptet.orders_api import RemoteOrderClient
from app.services.order_sync.importer import OrderImporter
from app.services.order_sync.pagination import current_page, resolve_total_pages
from app.services.order_sync.window import SyncWindow
from app.utils.clock import parse_iso, to_iso

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    last_change_time: Optional[str] = None
    variant_ids: List[int] = field(default_factory=list)
    orders_count: int = 0
    pages: int = 0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "last_change_time": self.last_change_time,
            "variant_ids": list(self.variant_ids),
            "orders_count": self.orders_count,
            "pages": self.pages,
        }


def build_filters(window: SyncWindow, status: Optional[str] = None, extra: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    filters: Dict[str, Any] = {
        "changeTimeFrom": to_iso(window.start),
        "changeTimeTo": to_iso(window.end),
        "statusId": status,
    }
    filters.update(extra or {})
    return {k: v for k, v in filters.items() if v is not None and v != ""}


class OrderSyncService:

    def __init__(
        self,
        db: Session,
        client: RemoteOrderClient,
        importer: Optional[OrderImporter] = None,
        max_pages: Optional[int] = None,
    ) -> None:
        self.db = db
        self.client = client
        self.importer = importer or OrderImporter(db)
        self.max_pages = int(max_pages or settings.SYNC_MAX_PAGES)

    def sync(
        self,
        shop,
        window: SyncWindow,
        page_size: Optional[int] = None,
        status: Optional[str] = None,
        extra_filters: Optional[Dict[str, Any]] = None,
    ) -> SyncResult:
        per_page = int(page_size or settings.SYNC_PAGE_SIZE)
        filters = build_filters(window, status, extra_filters)
        result = SyncResult()
        variant_ids: set[int] = set()
        last_change = None

        page = 1
        while True:
            response = self.client.list_orders(shop, filters, page, per_page)
            result.pages += 1
            orders = response.orders

            if not orders:
                break

            for summary in orders:
                payload = self._resolve_payload(shop, summary)
                variant_ids.update(self.importer.import_order(shop, {"order": payload}))
                result.orders_count += 1

                changed = parse_iso(payload.get("changeTime")) or parse_iso(summary.get("changeTime"))
                if changed is not None and (last_change is None or changed > last_change):
                    last_change = changed

            served_page = current_page(response.paginator, page)
            total_pages = resolve_total_pages(response.paginator, served_page, len(orders))
            if served_page >= total_pages:
                break
            if page >= self.max_pages:
                logger.warning(
                    "Order sync hit the page ceiling shop_id=%s max_pages=%d window=%s",
                    shop.id, self.max_pages, window.as_meta(),
                )
                break
            page += 1

        result.last_change_time = to_iso(last_change) if last_change else None
        result.variant_ids = sorted(variant_ids)
        logger.info(
            "Order sync finished shop_id=%s orders=%d pages=%d variants=%d last_change=%s",
            shop.id, result.orders_count, result.pages, len(result.variant_ids), result.last_change_time,
        )
        return result

    def _resolve_payload(self, shop, summary: Dict[str, Any]) -> Dict[str, Any]:
        items = summary.get("items")
        if isinstance(items, list) and items:
            return summary

        code = summary.get("code")
        if not code:
            return summary
        try:
            return self.client.get_order_detail(shop, str(code))
        except RemoteFetchFailure as e:
            logger.warning("Failed to fetch order detail shop_id=%s code=%s: %s", shop.id, code, e)
            return summary
