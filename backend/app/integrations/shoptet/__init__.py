"""
Public surface of the Shoptet integration.
"""

from .errors import (
    RemoteAuthExpired, RemoteError, RemoteFetchFailure, RemoteListFailure, RemotePayloadError, RemoteRateLimited,
)
from .http_client import ShoptetHttpClient
from .orders_api import OrderPage, RemoteOrderClient, ShoptetOrdersAPI

__all__ = [
    "ShoptetHttpClient", "ShoptetOrdersAPI", "OrderPage", "RemoteOrderClient",
    "RemoteError", "RemoteFetchFailure", "RemoteListFailure", "RemoteRateLimited",
    "RemoteAuthExpired", "RemotePayloadError",
]
