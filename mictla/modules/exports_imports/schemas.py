from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import Field

from mictla.core.wire import WireModel


class ImportOut(WireModel):
    status: str = "completed"
    counts: Dict[str, int] = Field(default_factory=dict)


class SyncStatsOut(WireModel):
    local: int = 0
    pending: int = 0
    synced: int = 0
    total: int = 0


class MediaValidationOut(WireModel):
    kind: str
    filename: Optional[str] = None
    is_valid: bool
    errors: List[str] = Field(default_factory=list)
