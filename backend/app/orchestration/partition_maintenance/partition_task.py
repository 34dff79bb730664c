from __future__ import annotations
import logging
from typing import Any, Dict, Optional

from celery import shared_task

from app.core.config import settings
from app.services.locking import get_lock_manager, lock_key_for
from app.services.partitions import build_maintenance

logger = logging.getLogger(__name__)

JOB_NAME = "partition_maintenance"


'''
 Quarterly partitions of order_items (beat, daily):
   - current quarter + PARTITION_HORIZON_QUARTERS ahead always exist
   - partitions older than PARTITION_RETENTION_QUARTERS are dropped
   - expired job_locks rows (crashed holders) are reaped
 No retry: a failed partition is logged and the next run tries again.
'''
@shared_task(name="app.orchestration.partition_maintenance.maintain_order_item_partitions", max_retries=0)
def maintain_order_item_partitions(horizon: Optional[int] = None, retention: Optional[int] = None) -> Dict[str, Any]:
    locks = get_lock_manager()
    with locks.held(lock_key_for(JOB_NAME), settings.PARTITION_LOCK_TTL_SEC) as acquired:
        if not acquired:
            logger.info("PartitionMaintenance is already running, skipping")
            return {"status": "locked"}

        report = build_maintenance().run(
            settings.PARTITION_HORIZON_QUARTERS if horizon is None else horizon,
            settings.PARTITION_RETENTION_QUARTERS if retention is None else retention,
        )
        report["locks_purged"] = locks.purge_expired()

    logger.info(
        "PartitionMaintenance completed created=%s dropped=%s failed=%s",
        report["created"], report["dropped"], report["failed"],
    )
    return {"status": "completed", **report}
