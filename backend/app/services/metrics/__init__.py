"""
Derived metric recalculation (customers, inventory variants) and the tag rules fed by it.
"""

from .chunking import iter_key_chunks, unique_keys
from .customer_metrics import CustomerMetricsService
from .inventory_metrics import InventoryMetricsService
from .tag_rules import CustomerTagRuleEngine, TagEvaluation

__all__ = [
    "iter_key_chunks", "unique_keys",
    "CustomerMetricsService", "InventoryMetricsService",
    "CustomerTagRuleEngine", "TagEvaluation",
]
