from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import Field

from mictla.core.wire import WireModel, utcnow


class SyncSettings(WireModel):
    auto_sync: bool = True
    last_sync_time: Optional[datetime] = None
    conflict_resolution: Literal["manual", "keep_local", "keep_remote"] = "manual"


class ExportSettings(WireModel):
    include_audio: bool = True
    format: Literal["pdf", "json"] = "pdf"
    quality: Literal["low", "medium", "high"] = "medium"


class UserPreferences(WireModel):
    user_id: str
    language: Literal["es", "en"] = "es"
    theme: Literal["auto", "light", "dark"] = "auto"
    audio_enabled: bool = True
    ar_enabled: bool = False
    tutorial_completed: bool = False
    sync_settings: SyncSettings = Field(default_factory=SyncSettings)
    export_settings: ExportSettings = Field(default_factory=ExportSettings)
    updated_at: datetime = Field(default_factory=utcnow)
