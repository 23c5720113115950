"""
Error taxonomy for the data core.

- ValidationFailed: caller mistake, never partially persisted
- ImportFormatError: malformed import document, rejected before any write
- StoreError: underlying sqlite failure, original message kept, no retry
- not-found is not an error: store lookups return None
"""
from __future__ import annotations

from typing import List, Optional


class ValidationFailed(ValueError):
    def __init__(self, entity: str, errors: Optional[List[str]] = None):
        self.entity = entity
        self.errors: List[str] = list(errors or [])
        message = f"{entity} validation failed"
        if self.errors:
            message += ": " + ", ".join(self.errors)
        super().__init__(message)


class ImportFormatError(ValueError):
    def __init__(self, message: str = "Invalid import data format"):
        super().__init__(message)


class MembershipError(ValueError):
    pass


class StoreError(RuntimeError):
    pass


class StoreInitError(StoreError):
    pass


class StoreClosedError(StoreError):
    def __init__(self, message: str = "Entity store is closed"):
        super().__init__(message)
