from __future__ import annotations

from sqlmodel import SQLModel, Field


class FamilyGroupRow(SQLModel, table=True):
    __tablename__ = "family_groups"

    group_id: str = Field(primary_key=True)
    name: str
    invite_code: str = Field(unique=True, index=True)

    created_at: str
    data_json: str
