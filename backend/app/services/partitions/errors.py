from __future__ import annotations


class PartitionOperationFailure(Exception):
    """Creating or dropping one partition failed; maintenance continues with the rest."""

    def __init__(self, name: str, action: str, cause: Exception | None = None) -> None:
        super().__init__(f"partition {action} failed for {name}: {cause}")
        self.name = name
        self.action = action
        self.cause = cause
