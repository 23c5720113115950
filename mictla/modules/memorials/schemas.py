from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import Field

from mictla.core.ids import new_id
from mictla.core.wire import WireModel, utcnow

SyncStatus = Literal["local", "pending", "synced"]
Permission = Literal["view", "edit", "comment"]


class Position(WireModel):
    x: float = 0
    y: float = 0
    z: float = 0


class FamilyConnections(WireModel):
    parents: List[str] = Field(default_factory=list)
    children: List[str] = Field(default_factory=list)
    spouse: Optional[str] = None


class MemorialOfferings(WireModel):
    # placement of the memorial's offering cluster on the altar
    position: Position = Field(default_factory=Position)
    items: List[str] = Field(default_factory=list)


class SharingSettings(WireModel):
    is_shared: bool = False
    shared_with: List[str] = Field(default_factory=list)
    share_code: Optional[str] = None
    permissions: List[Permission] = Field(default_factory=lambda: ["view"])


class Memorial(WireModel):
    id: str = Field(default_factory=lambda: new_id("memorial"))
    name: str
    relationship: str = ""
    birth_date: Optional[datetime] = None
    death_date: Optional[datetime] = None
    story: str = ""
    photo: Optional[str] = None
    audio_message: Optional[str] = None
    offerings: List[str] = Field(default_factory=list)
    altar_level: int = 1
    family_connections: FamilyConnections = Field(default_factory=FamilyConnections)
    virtual_offerings: MemorialOfferings = Field(default_factory=MemorialOfferings)
    sharing: SharingSettings = Field(default_factory=SharingSettings)
    sync_status: SyncStatus = "local"
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class MemorialsListOut(WireModel):
    items: List[Memorial]
    total: int
