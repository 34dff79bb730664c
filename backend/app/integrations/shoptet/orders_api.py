"""
Shoptet orders API (high level):
   - list_orders: one page of order summaries + the paginator block;
   - get_order_detail: full order (with items) by code, any failure -> RemoteFetchFailure;
   - RemoteOrderClient is the port the sync engine depends on; tests pass fakes.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from app.core.config import settings
from app.integrations.shoptet.errors import RemoteError, RemoteFetchFailure, RemotePayloadError
from app.integrations.shoptet.http_client import ShoptetHttpClient

logger = logging.getLogger(__name__)

DETAIL_INCLUDE = "shippingDetails"


@dataclass
class OrderPage:
    orders: List[Dict[str, Any]] = field(default_factory=list)
    paginator: Dict[str, Any] = field(default_factory=dict)


class RemoteOrderClient(Protocol):
    def list_orders(self, shop, filters: Dict[str, Any], page: int, per_page: int) -> OrderPage: ...

    def get_order_detail(self, shop, code: str) -> Dict[str, Any]: ...


class ShoptetOrdersAPI:
    """RemoteOrderClient over the Shoptet REST API; one HTTP client per shop."""

    def __init__(self, client_factory=None) -> None:
        self._client_factory = client_factory or self._default_client
        self._clients: Dict[int, ShoptetHttpClient] = {}

    def list_orders(self, shop, filters: Dict[str, Any], page: int, per_page: int) -> OrderPage:
        params = {k: v for k, v in filters.items() if v is not None and v != ""}
        params["page"] = page
        params["itemsPerPage"] = per_page

        body = self._client(shop).get_json(settings.SHOPTET_ORDERS_ENDPOINT, params=params)
        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, dict):
            raise RemotePayloadError(f"orders list without data block (shop={shop.id}, page={page})")

        orders = [row for row in (data.get("orders") or []) if isinstance(row, dict)]
        paginator = data.get("paginator") if isinstance(data.get("paginator"), dict) else {}
        return OrderPage(orders=orders, paginator=paginator)

    def get_order_detail(self, shop, code: str) -> Dict[str, Any]:
        path = f"{settings.SHOPTET_ORDERS_ENDPOINT.rstrip('/')}/{code}"
        try:
            body = self._client(shop).get_json(path, params={"include": DETAIL_INCLUDE})
        except RemoteError as e:
            raise RemoteFetchFailure(f"order {code}: {e}") from e

        order = (body.get("data") or {}).get("order") if isinstance(body, dict) else None
        if not isinstance(order, dict) or not order:
            raise RemoteFetchFailure(f"order {code}: detail payload has no data.order")
        return order

    # ---------- Helpers ----------
    def _client(self, shop) -> ShoptetHttpClient:
        client = self._clients.get(shop.id)
        if client is None:
            client = self._client_factory(shop)
            self._clients[shop.id] = client
        return client

    @staticmethod
    def _default_client(shop) -> ShoptetHttpClient:
        return ShoptetHttpClient(api_token=shop.api_token or "")
