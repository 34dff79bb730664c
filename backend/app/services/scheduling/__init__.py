"""
Public surface of the schedule catalog.

The listing operation stays at catalog.catalog(): re-exporting it here would shadow
the submodule, which callers import as `from app.services.scheduling import catalog`.
"""

from . import catalog
from .catalog import (
    Frequency,
    JobScheduleDefinition,
    UnknownJobType,
    contains,
    definition,
    effective_options,
    keys,
    sanitize_options,
    validate_options,
)

__all__ = [
    "Frequency", "JobScheduleDefinition", "UnknownJobType",
    "catalog", "contains", "definition", "effective_options", "keys",
    "sanitize_options", "validate_options",
]
