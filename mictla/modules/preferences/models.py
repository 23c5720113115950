from __future__ import annotations

from sqlmodel import SQLModel, Field


class UserPreferencesRow(SQLModel, table=True):
    __tablename__ = "user_preferences"

    user_id: str = Field(primary_key=True)
    updated_at: str
    data_json: str
