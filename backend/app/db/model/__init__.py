# Aggregate every model so Alembic (and create_all) can see them

from .shop import Shop
from .job_schedule import JobSchedule, RUN_STATUSES
from .job_lock import JobLock
from .sync_cursor import ShopSyncCursor
from .order import Order, OrderItem
from .product import Product, ProductVariant
from .customer import Customer, CustomerMetric, CustomerTagRule
from .inventory import InventoryVariantMetric

__all__ = [
    # scheduling
    "JobSchedule", "RUN_STATUSES", "JobLock", "ShopSyncCursor",
    # facts
    "Shop", "Order", "OrderItem", "Product", "ProductVariant", "Customer",
    # derived
    "CustomerMetric", "CustomerTagRule", "InventoryVariantMetric",
]
