"""
Quarterly range buckets of the partitioned fact table.
  Q1 Jan-Mar, Q2 Apr-Jun, Q3 Jul-Sep, Q4 Oct-Dec; ranges are half-open [start, next start)
  name: {parent}_{YYYY}_q{Q}
"""

from __future__ import annotations
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from app.utils.clock import ensure_utc


@dataclass(frozen=True, order=True)
class QuarterBucket:
    year: int
    quarter: int

    @classmethod
    def containing(cls, moment: datetime) -> "QuarterBucket":
        moment = ensure_utc(moment)
        return cls(moment.year, (moment.month - 1) // 3 + 1)

    def shift(self, quarters: int) -> "QuarterBucket":
        index = self.year * 4 + (self.quarter - 1) + quarters
        return QuarterBucket(index // 4, index % 4 + 1)

    @property
    def start(self) -> datetime:
        return datetime(self.year, (self.quarter - 1) * 3 + 1, 1, tzinfo=timezone.utc)

    @property
    def end(self) -> datetime:
        return self.shift(1).start

    def name(self, parent: str) -> str:
        return f"{parent}_{self.year}_q{self.quarter}"


@dataclass(frozen=True)
class PartitionDescriptor:
    name: str
    start: datetime
    end: datetime

    @classmethod
    def for_bucket(cls, parent: str, bucket: QuarterBucket) -> "PartitionDescriptor":
        return cls(name=bucket.name(parent), start=bucket.start, end=bucket.end)


def parse_partition_name(parent: str, name: str) -> Optional[QuarterBucket]:
    """None for anything that is not {parent}_{YYYY}_q{1-4} (default partition, foreign tables)."""
    match = re.fullmatch(rf"{re.escape(parent)}_(\d{{4}})_q([1-4])", name or "")
    if not match:
        return None
    return QuarterBucket(int(match.group(1)), int(match.group(2)))
