"""
Time-range partition maintenance for the order_items fact table.
"""

from .buckets import PartitionDescriptor, QuarterBucket, parse_partition_name
from .catalog import PartitionCatalog, PostgresPartitionCatalog
from .errors import PartitionOperationFailure
from .maintenance import PartitionMaintenance, build_maintenance

__all__ = [
    "PartitionDescriptor", "QuarterBucket", "parse_partition_name",
    "PartitionCatalog", "PostgresPartitionCatalog",
    "PartitionOperationFailure", "PartitionMaintenance", "build_maintenance",
]
