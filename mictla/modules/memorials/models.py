from __future__ import annotations

from typing import Optional
from sqlmodel import SQLModel, Field


# full entity lives in data_json; columns below back the indices
class MemorialRow(SQLModel, table=True):
    __tablename__ = "memorials"

    id: str = Field(primary_key=True)
    altar_level: int = Field(index=True)
    name: str = Field(index=True)
    relationship: Optional[str] = Field(default=None)
    sync_status: str = Field(index=True)  # local|pending|synced

    created_at: str
    updated_at: str
    data_json: str
