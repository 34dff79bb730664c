# Environment variables and configuration
# pydantic-settings reads .env = core/config.py

from typing import List, Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# When running uvicorn/celery directly on the host (no Docker),
# model_config.env_file=".env" picks up backend/.env

class Settings(BaseSettings):

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_prefix="",
        case_sensitive=False,
    )

    # ========= project config =========
    PROJECT_NAME: str = "Commerce Ops Hub"
    ENVIRONMENT: str = "dev"
    API_PREFIX: str = "/api/v1"
    BACKEND_CORS_ORIGINS: str = "http://localhost:5173"
    LOG_LEVEL: str = Field("INFO", alias="LOG_LEVEL")


    # ========= Database =========
    # - containers talk to the "db" service on the compose network
    # - local tools can use DATABASE_URL_LOCAL (pointing to localhost)
    DATABASE_URL: str = Field(
        default="postgresql+psycopg://hub_user:hub_pass@db:5432/commerce_hub",
        alias="DATABASE_URL",
    )
    DATABASE_URL_LOCAL: Optional[str] = Field(
        default=None,
        alias="DATABASE_URL_LOCAL",
        description="Optional local URL for tools (psql/DBeaver), e.g. '...@localhost:5432/commerce_hub'",
    )
    REDIS_URL: Optional[str] = Field(default=None, alias="REDIS_URL")


    # ========= celery config =========
    CELERY_BROKER_URL: Optional[str] = None
    CELERY_RESULT_BACKEND: Optional[str] = None
    CELERY_TIMEZONE: str = "Europe/Prague"
    SCHEDULE_TICK_SECONDS: int = Field(60, ge=10, alias="SCHEDULE_TICK_SECONDS")   # beat interval of the schedule tick
    SYNC_TASKS_INLINE: bool = Field(default=False, alias="SYNC_TASKS_INLINE")       # True = child tasks run in-process (.run)


    # ========= schedules =========
    SCHEDULE_DEFAULT_TIMEZONE: str = Field("Europe/Prague", alias="SCHEDULE_DEFAULT_TIMEZONE")
    SCHEDULE_MESSAGE_MAX_LEN: int = Field(2000, alias="SCHEDULE_MESSAGE_MAX_LEN")


    # ========= job locks =========
    LOCK_BACKEND: str = Field("database", alias="LOCK_BACKEND")          # "database" | "redis" | "memory"
    LOCK_DEFAULT_TTL_SEC: int = Field(3600, ge=1, alias="LOCK_DEFAULT_TTL_SEC")
    LOCK_KEY_PREFIX: str = Field("job-lock", alias="LOCK_KEY_PREFIX")


    # ========= order sync =========
    SYNC_MAX_PAGES: int = Field(1000, ge=1, alias="SYNC_MAX_PAGES")      # pagination circuit breaker
    SYNC_PAGE_SIZE: int = Field(200, ge=1, le=500, alias="SYNC_PAGE_SIZE")
    SYNC_CURSOR_OVERLAP_SEC: int = Field(60, ge=0, alias="SYNC_CURSOR_OVERLAP_SEC")
    SYNC_CLOCK_SKEW_SEC: int = Field(10, ge=0, alias="SYNC_CLOCK_SKEW_SEC")
    SYNC_MIN_WINDOW_SEC: int = Field(300, ge=1, alias="SYNC_MIN_WINDOW_SEC")
    SYNC_PIPELINE_LOCK_TTL_SEC: int = Field(1800, ge=60, alias="SYNC_PIPELINE_LOCK_TTL_SEC")
    SYNC_VARIANT_DISPATCH_CHUNK: int = Field(20, ge=1, alias="SYNC_VARIANT_DISPATCH_CHUNK")


    # ========= metrics =========
    CUSTOMER_METRICS_LOCK_TTL_SEC: int = Field(300, ge=1, alias="CUSTOMER_METRICS_LOCK_TTL_SEC")
    CUSTOMER_METRICS_DISPATCH_MIN_TTL_SEC: int = Field(60, ge=1, alias="CUSTOMER_METRICS_DISPATCH_MIN_TTL_SEC")
    VARIANT_METRICS_CHUNK: int = Field(50, ge=1, alias="VARIANT_METRICS_CHUNK")
    # statuses counted as "completed"; empty list = everything except ORDER_EXCLUDED_STATUSES
    ORDER_COMPLETED_STATUSES: List[str] = Field(default_factory=list, alias="ORDER_COMPLETED_STATUSES")
    ORDER_EXCLUDED_STATUSES: List[str] = Field(
        default_factory=lambda: ["Stornována", "Vrácena", "Reklamace"],
        alias="ORDER_EXCLUDED_STATUSES",
    )


    # ========= partitions =========
    PARTITION_PARENT_TABLE: str = Field("order_items", alias="PARTITION_PARENT_TABLE")
    PARTITION_SCHEMA: str = Field("public", alias="PARTITION_SCHEMA")
    PARTITION_HORIZON_QUARTERS: int = Field(2, ge=0, alias="PARTITION_HORIZON_QUARTERS")
    PARTITION_RETENTION_QUARTERS: int = Field(8, ge=1, alias="PARTITION_RETENTION_QUARTERS")   # 2 years
    PARTITION_LOCK_TTL_SEC: int = Field(600, ge=60, alias="PARTITION_LOCK_TTL_SEC")
    CRON_PARTITION_MAINTENANCE: str = Field("15 1 * * *", alias="CRON_PARTITION_MAINTENANCE")


    # ========= Shoptet API config =========
    SHOPTET_BASE_URL: str = Field("https://api.myshoptet.com", alias="SHOPTET_BASE_URL")
    SHOPTET_CONNECT_TIMEOUT: int = Field(10, ge=1, alias="SHOPTET_CONNECT_TIMEOUT")
    SHOPTET_READ_TIMEOUT: int = Field(60, ge=1, alias="SHOPTET_READ_TIMEOUT")
    SHOPTET_HTTP_RETRIES: int = Field(3, ge=1, alias="SHOPTET_HTTP_RETRIES")
    SHOPTET_HTTP_BACKOFF_MAX_SEC: int = Field(60, ge=1, alias="SHOPTET_HTTP_BACKOFF_MAX_SEC")
    SHOPTET_ORDERS_ENDPOINT: str = "/api/orders"


settings = Settings()  # env only (including .env)
