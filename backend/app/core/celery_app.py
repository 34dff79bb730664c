# minute tick + schedules stored in the database

from celery import Celery
from celery.schedules import crontab
from kombu import Exchange, Queue
from app.core.config import settings
from app.core.logging import configure_logging

configure_logging()


'''
Celery app/instance
   - Beat/Orchestrator: exactly 1 process (the tick is the only scheduler)
   - Workers: per queue, orders/inventory I/O separated from the metrics batches
'''
celery_app = Celery(
    "commerce_ops_hub",
    broker=settings.CELERY_BROKER_URL or settings.REDIS_URL,          # queue location (Redis)
    backend=settings.CELERY_RESULT_BACKEND or settings.REDIS_URL,     # result store (Redis)
    include=[
        # modules loaded on startup so their tasks get registered
        "app.orchestration.scheduler_tick",                                   # job_schedules tick
        "app.orchestration.order_sync.order_sync_task",                       # incremental fetch + status refresh
        "app.orchestration.customer_metrics.customer_metrics_task",           # customer metrics + tag rules
        "app.orchestration.inventory_metrics.inventory_metrics_task",         # variant metrics
        "app.orchestration.partition_maintenance.partition_task",             # order_items partitions
    ],
)


'''
  common Celery config
'''
celery_app.conf.update(
    timezone=settings.CELERY_TIMEZONE,
    enable_utc=True,                             # stored as UTC internally
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    task_track_started=True,
    broker_connection_retry_on_startup=True,
    # === fault tolerance ===
    worker_prefetch_multiplier=1,    # one task at a time per worker process
    task_acks_late=True,             # acked after the run; a crashed worker's task goes back to the queue
    broker_heartbeat=30,
    broker_pool_limit=10,
)


'''
Separate queues per workload
   - orders: remote API paging, slow I/O
   - customers_metrics / inventory: DB aggregation batches
   - maintenance: DDL, single consumer
'''
celery_app.conf.task_queues = (
    Queue("default", Exchange("default"), routing_key="default"),

    Queue("orchestrator", Exchange("orchestrator"), routing_key="orchestrator"),
    Queue("orders", Exchange("orders"), routing_key="orders"),
    Queue("customers", Exchange("customers"), routing_key="customers"),
    Queue("customers_metrics", Exchange("customers_metrics"), routing_key="customers_metrics"),
    Queue("inventory", Exchange("inventory"), routing_key="inventory"),
    Queue("maintenance", Exchange("maintenance"), routing_key="maintenance"),
)


'''
routing rules; an explicit queue= on apply_async (schedule options) wins over these
'''
celery_app.conf.task_routes = {
    "app.orchestration.scheduler_tick.run_due_schedules": {"queue": "orchestrator"},

    "app.orchestration.order_sync.fetch_new_orders": {"queue": "orders"},
    "app.orchestration.order_sync.refresh_order_statuses": {"queue": "orders"},
    "app.orchestration.order_sync.refresh_order_statuses_deep": {"queue": "orders"},

    "app.orchestration.customer_metrics.dispatch_customer_metrics": {"queue": "customers_metrics"},
    "app.orchestration.customer_metrics.recalculate_customer_metrics": {"queue": "customers_metrics"},
    "app.orchestration.customer_metrics.apply_customer_tag_rules": {"queue": "customers_metrics"},

    "app.orchestration.inventory_metrics.recalculate_variant_metrics": {"queue": "inventory"},

    "app.orchestration.partition_maintenance.maintain_order_item_partitions": {"queue": "maintenance"},
}


def _crontab_from(expr: str) -> crontab:
    minute, hour, day_of_month, month_of_year, day_of_week = expr.split()
    return crontab(
        minute=minute,
        hour=hour,
        day_of_month=day_of_month,
        month_of_year=month_of_year,
        day_of_week=day_of_week,
    )


# static schedules; everything else lives in job_schedules and goes through the tick
celery_app.conf.beat_schedule = {

    # every minute the DB decides which schedules are due
    "db-schedule-tick": {
        "task": "app.orchestration.scheduler_tick.run_due_schedules",
        "schedule": settings.SCHEDULE_TICK_SECONDS,
    },

    "order-items-partition-maintenance": {
        "task": "app.orchestration.partition_maintenance.maintain_order_item_partitions",
        "schedule": _crontab_from(settings.CRON_PARTITION_MAINTENANCE),
    },
}
