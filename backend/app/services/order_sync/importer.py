"""
Order importer: maps one storefront order payload onto orders + order_items.

  - orders upserted by code; order_items of that order deleted and re-inserted (never merged)
  - one transaction per order, committed here
  - item ids are uuid5(order code, position) and item created_at is the order's first-import time,
    so importing the same payload twice leaves byte-identical rows
  - returns the ids of variants whose code appears on the order's lines (shop-local)
"""

from __future__ import annotations
import logging
import re
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

import pytz
from sqlalchemy.orm import Session

from app.repository import order_repo

logger = logging.getLogger(__name__)

ORDER_NAMESPACE = uuid.UUID("6f1c2a7e-58b4-4f3d-9a0e-2b8c7d41e913")
UNKNOWN_ITEM_NAME = "Unknown item"

_TZ_SUFFIX = re.compile(r"([Zz]|[+-]\d{2}:?\d{2})$")


def _get(data: Any, path: str) -> Any:
    """dotted lookup: _get(order, "price.withVat")"""
    cur = data
    for part in path.split("."):
        if not isinstance(cur, dict):
            return None
        cur = cur.get(part)
    return cur


def _first(data: Dict[str, Any], *paths: str) -> Any:
    for path in paths:
        value = _get(data, path)
        if value is not None:
            return value
    return None


def _to_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _clean_str(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    return text or None


def parse_order_time(value: Any, tz_name: Optional[str]) -> Optional[datetime]:
    """Storefront local time -> aware UTC; values without an offset are in the shop's timezone."""
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    has_offset = bool(_TZ_SUFFIX.search(text))
    if text[-1] in "Zz":
        text = text[:-1] + "+00:00"
    elif has_offset and ":" not in text[-5:]:
        text = f"{text[:-2]}:{text[-2:]}"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        logger.warning("Unparsable order timestamp: %r", value)
        return None
    if parsed.tzinfo is None:
        try:
            zone = pytz.timezone(tz_name or "UTC")
        except pytz.UnknownTimeZoneError:
            zone = pytz.utc
        parsed = zone.localize(parsed)
    return parsed.astimezone(pytz.utc)


class OrderImporter:

    def __init__(self, db: Session) -> None:
        self.db = db

    def import_order(self, shop, payload: Dict[str, Any]) -> List[int]:
        order_data = payload.get("order") if isinstance(payload.get("order"), dict) else payload
        code = _clean_str(order_data.get("code"))
        if not code:
            logger.warning("Skipping order payload without code shop_id=%s", getattr(shop, "id", None))
            return []

        items = [item for item in (order_data.get("items") or []) if isinstance(item, dict)]
        row = self._order_row(shop, code, order_data)

        try:
            order_id, created_at = order_repo.upsert_order(self.db, row)
            order_repo.replace_items(self.db, order_id, self._item_rows(code, created_at, items))
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        codes = [_clean_str(item.get("code")) for item in items]
        return order_repo.variant_ids_for_codes(self.db, [c for c in codes if c], shop_id=shop.id)

    # ---------- Mapping ----------
    def _order_row(self, shop, code: str, data: Dict[str, Any]) -> Dict[str, Any]:
        row: Dict[str, Any] = {
            "code": code,
            "guid": _clean_str(data.get("guid")) or str(uuid.uuid5(ORDER_NAMESPACE, f"order:{code}")),
            "shop_id": shop.id,
            "status": _clean_str(_get(data, "status.name")),
            "source": _clean_str(_get(data, "source.name")),
            "customer_name": self._customer_name(data),
            "customer_email": self._first_text(data, "email", "customer.email", "billingAddress.email", "deliveryAddress.email"),
            "customer_phone": self._first_text(data, "phone", "customer.phone", "billingAddress.phone", "deliveryAddress.phone"),
            "ordered_at": parse_order_time(data.get("creationTime"), getattr(shop, "timezone", None)),
            "change_time": parse_order_time(data.get("changeTime"), getattr(shop, "timezone", None)),
            "currency_code": _clean_str(_get(data, "price.currencyCode")) or getattr(shop, "currency_code", None),
            "total_with_vat": _to_float(_get(data, "price.withVat")),
            "total_without_vat": _to_float(_get(data, "price.withoutVat")),
            "total_vat": _to_float(_get(data, "price.vat")),
            "price": _get(data, "price"),
            "billing_address": _get(data, "billingAddress"),
            "delivery_address": _get(data, "deliveryAddress"),
            "payment": {
                "method": data.get("paymentMethod"),
                "billing": data.get("billingMethod"),
                "onlinePaymentLink": data.get("onlinePaymentLink"),
            },
            "shipping": _get(data, "shipping"),
            "data": data,
        }
        # a payload without a customer keeps the customer already linked to the order
        customer_guid = _clean_str(_first(data, "customer.guid", "customerGuid"))
        if customer_guid is not None:
            row["customer_guid"] = customer_guid
        return row

    def _item_rows(self, code: str, created_at: datetime, items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        rows = []
        for position, item in enumerate(items):
            rows.append({
                "id": uuid.uuid5(ORDER_NAMESPACE, f"item:{code}:{position}"),
                "created_at": created_at,
                "product_guid": _clean_str(item.get("productGuid")),
                "item_type": _clean_str(item.get("itemType")),
                "name": _clean_str(item.get("name")) or UNKNOWN_ITEM_NAME,
                "variant_name": _clean_str(item.get("variantName")),
                "code": _clean_str(item.get("code")),
                "ean": _clean_str(item.get("ean")),
                "amount": _to_float(item.get("amount")) or 0.0,
                "amount_unit": _clean_str(item.get("amountUnit")),
                "price_with_vat": _to_float(_get(item, "itemPrice.withVat")),
                "price_without_vat": _to_float(_get(item, "itemPrice.withoutVat")),
                "vat": _to_float(_get(item, "itemPrice.vat")),
                "vat_rate": _to_float(_get(item, "itemPrice.vatRate")),
                "data": item,
            })
        return rows

    @staticmethod
    def _first_text(data: Dict[str, Any], *paths: str) -> Optional[str]:
        for path in paths:
            value = _clean_str(_get(data, path))
            if value:
                return value
        return None

    def _customer_name(self, data: Dict[str, Any]) -> Optional[str]:
        full = self._first_text(data, "billingAddress.fullName", "deliveryAddress.fullName", "customer.name")
        if full:
            return full
        first = _first(data, "billingAddress.firstName", "deliveryAddress.firstName")
        last = _first(data, "billingAddress.lastName", "deliveryAddress.lastName")
        composed = f"{_clean_str(first) or ''} {_clean_str(last) or ''}".strip()
        return composed or None
