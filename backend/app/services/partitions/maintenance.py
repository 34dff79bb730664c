"""
Quarterly partition maintenance of order_items.

  ensure_future_partitions(n): the current quarter and the next n always have a partition
  prune_old_partitions(r):     drop partitions ending on/before the start of the quarter r quarters back

Each create/drop is attempted independently; failures are logged and reported, never raised.
"""

from __future__ import annotations
import logging
from typing import Dict, List, Optional

from app.services.partitions.buckets import PartitionDescriptor, QuarterBucket, parse_partition_name
from app.services.partitions.catalog import PartitionCatalog, PostgresPartitionCatalog
from app.services.partitions.errors import PartitionOperationFailure
from app.utils.clock import Clock, now_utc

logger = logging.getLogger(__name__)


class PartitionMaintenance:

    def __init__(self, catalog: PartitionCatalog, clock: Clock = now_utc) -> None:
        self.catalog = catalog
        self.clock = clock

    @property
    def parent(self) -> str:
        return self.catalog.parent

    def ensure_future_partitions(self, horizon: int) -> Dict[str, List[str]]:
        current = QuarterBucket.containing(self.clock())
        report: Dict[str, List[str]] = {"created": [], "skipped": [], "failed": []}

        for offset in range(0, max(0, horizon) + 1):
            partition = PartitionDescriptor.for_bucket(self.parent, current.shift(offset))
            try:
                if self._exists(partition.name):
                    logger.debug("Partition %s already exists", partition.name)
                    report["skipped"].append(partition.name)
                    continue
                self._create(partition)
            except PartitionOperationFailure as e:
                logger.error("%s", e)
                report["failed"].append(partition.name)
                continue
            logger.info(
                "Created partition: %s (%s to %s)",
                partition.name, partition.start.date().isoformat(), partition.end.date().isoformat(),
            )
            report["created"].append(partition.name)
        return report

    def prune_old_partitions(self, retention: int) -> Dict[str, List[str]]:
        cutoff = QuarterBucket.containing(self.clock()).shift(-max(0, retention)).start
        report: Dict[str, List[str]] = {"dropped": [], "kept": [], "failed": []}
        logger.debug("Removing %s partitions ending before %s", self.parent, cutoff.date().isoformat())

        for name in self.catalog.list_children():
            bucket = parse_partition_name(self.parent, name)
            if bucket is None:
                continue
            if bucket.end > cutoff:
                report["kept"].append(name)
                continue
            try:
                self._drop(name)
            except PartitionOperationFailure as e:
                logger.error("%s", e)
                report["failed"].append(name)
                continue
            logger.info("Removed old partition: %s", name)
            report["dropped"].append(name)
        return report

    def run(self, horizon: int, retention: int) -> Dict[str, List[str]]:
        ensured = self.ensure_future_partitions(horizon)
        pruned = self.prune_old_partitions(retention)
        return {
            "created": ensured["created"],
            "skipped": ensured["skipped"],
            "dropped": pruned["dropped"],
            "failed": ensured["failed"] + pruned["failed"],
        }

    # ---------- Helpers ----------
    def _exists(self, name: str) -> bool:
        try:
            return self.catalog.exists(name)
        except Exception as e:
            raise PartitionOperationFailure(name, "lookup", e) from e

    def _create(self, partition: PartitionDescriptor) -> None:
        try:
            self.catalog.create(partition)
        except Exception as e:
            raise PartitionOperationFailure(partition.name, "create", e) from e

    def _drop(self, name: str) -> None:
        try:
            self.catalog.drop(name)
        except Exception as e:
            raise PartitionOperationFailure(name, "drop", e) from e


def build_maintenance(catalog: Optional[PartitionCatalog] = None) -> PartitionMaintenance:
    return PartitionMaintenance(catalog if catalog is not None else PostgresPartitionCatalog())
