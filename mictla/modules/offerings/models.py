from __future__ import annotations

from typing import Optional
from sqlmodel import SQLModel, Field


# memorial_id is a soft reference: offerings may float free of any memorial
class VirtualOfferingRow(SQLModel, table=True):
    __tablename__ = "virtual_offerings"

    id: str = Field(primary_key=True)
    memorial_id: Optional[str] = Field(default=None, index=True)
    type: str = Field(index=True)
    placed_by: Optional[str] = Field(default=None, index=True)

    created_at: str
    data_json: str
