"""
Partition catalog port and its Postgres implementation.

Every DDL statement runs in its own transaction so one failing partition never rolls back another.
"""

from __future__ import annotations
import logging
from typing import List, Optional, Protocol

from sqlalchemy import text
from sqlalchemy.engine import Engine

from app.core.config import settings
from app.services.partitions.buckets import PartitionDescriptor

logger = logging.getLogger(__name__)


class PartitionCatalog(Protocol):
    parent: str

    def exists(self, name: str) -> bool: ...

    def create(self, partition: PartitionDescriptor) -> None: ...

    def drop(self, name: str) -> None: ...

    def list_children(self) -> List[str]: ...


class PostgresPartitionCatalog:
    """Reads pg_class / pg_inherits; creates with PARTITION OF ... FOR VALUES FROM/TO."""

    def __init__(self, engine: Optional[Engine] = None, parent: Optional[str] = None, schema: Optional[str] = None) -> None:
        if engine is None:
            from app.db.session import engine as default_engine
            engine = default_engine
        self.engine = engine
        self.parent = parent or settings.PARTITION_PARENT_TABLE
        self.schema = schema or settings.PARTITION_SCHEMA

    def _qualified(self, name: str) -> str:
        quote = self.engine.dialect.identifier_preparer.quote
        return f"{quote(self.schema)}.{quote(name)}"

    def exists(self, name: str) -> bool:
        stmt = text(
            "SELECT 1 FROM pg_class c "
            "JOIN pg_namespace n ON c.relnamespace = n.oid "
            "WHERE c.relname = :name AND n.nspname = :schema"
        )
        with self.engine.connect() as conn:
            return conn.execute(stmt, {"name": name, "schema": self.schema}).first() is not None

    def create(self, partition: PartitionDescriptor) -> None:
        # bounds are rendered from our own datetimes, identifiers are quoted
        ddl = (
            f"CREATE TABLE IF NOT EXISTS {self._qualified(partition.name)} "
            f"PARTITION OF {self._qualified(self.parent)} "
            f"FOR VALUES FROM ('{partition.start.isoformat()}') TO ('{partition.end.isoformat()}')"
        )
        with self.engine.begin() as conn:
            conn.execute(text(ddl))

    def drop(self, name: str) -> None:
        with self.engine.begin() as conn:
            conn.execute(text(f"DROP TABLE IF EXISTS {self._qualified(name)}"))

    def list_children(self) -> List[str]:
        stmt = text(
            "SELECT child.relname FROM pg_inherits i "
            "JOIN pg_class child ON i.inhrelid = child.oid "
            "JOIN pg_class parent ON i.inhparent = parent.oid "
            "JOIN pg_namespace n ON parent.relnamespace = n.oid "
            "WHERE parent.relname = :parent AND n.nspname = :schema "
            "ORDER BY child.relname"
        )
        with self.engine.connect() as conn:
            return [row[0] for row in conn.execute(stmt, {"parent": self.parent, "schema": self.schema})]
