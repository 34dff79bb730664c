"""
Incremental order sync: windows, pagination, import, per-shop pipelines.
"""

from .importer import OrderImporter, parse_order_time
from .pagination import resolve_total_pages
from .pipeline import run_incremental_fetch, run_status_refresh
from .sync_service import OrderSyncService, SyncResult, build_filters
from .window import CHANGE_TIME_CURSOR, SyncWindow, build_fetch_window, build_status_window, next_cursor

__all__ = [
    "OrderImporter", "parse_order_time", "resolve_total_pages",
    "run_incremental_fetch", "run_status_refresh",
    "OrderSyncService", "SyncResult", "build_filters",
    "CHANGE_TIME_CURSOR", "SyncWindow", "build_fetch_window", "build_status_window", "next_cursor",
]
