from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

MAX_LENGTHS: Dict[str, int] = {
    "name": 100,
    "story": 5000,
    "message": 500,
    "familyName": 100,
    "relationship": 50,
    "offering": 50,
}

ALTAR_LEVELS = (1, 2, 3)
SYNC_STATUSES = ("local", "pending", "synced")
MEMBER_ROLES = ("admin", "member")
PERMISSIONS = ("view", "edit", "comment")
OFFERING_TYPES = (
    "cempasuchil",
    "pan_de_muerto",
    "agua",
    "sal",
    "foto",
    "vela",
    "incienso",
    "comida_favorita",
)

LANGUAGES = ("es", "en")
THEMES = ("auto", "light", "dark")
EXPORT_FORMATS = ("pdf", "json")
EXPORT_QUALITIES = ("low", "medium", "high")
CONFLICT_RESOLUTIONS = ("manual", "keep_local", "keep_remote")

MB = 1024 * 1024
IMAGE_MAX_BYTES = 5 * MB
AUDIO_MAX_BYTES = 10 * MB
IMAGE_TYPES = ("image/jpeg", "image/png", "image/webp")
# audio/mpeg is the registered type; browsers still report audio/mp3
AUDIO_TYPES = ("audio/mp3", "audio/mpeg", "audio/wav", "audio/ogg", "audio/webm")


@dataclass(frozen=True)
class ValidationResult:
    """
    Outcome of one validator call.

    sanitized is None whenever is_valid is False, so a caller can never
    persist a half-cleaned payload by accident.
    """
    is_valid: bool
    errors: List[str]
    sanitized: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class InvalidItem:
    index: int
    item: Any
    errors: List[str]


@dataclass(frozen=True)
class BatchValidationResult:
    is_valid: bool
    errors: List[str]
    valid_items: List[Any] = field(default_factory=list)
    invalid_items: List[InvalidItem] = field(default_factory=list)
    summary: Dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class MediaFile:
    """Minimal upload descriptor; FastAPI's UploadFile satisfies the same shape."""
    filename: str
    content_type: Optional[str]
    size: Optional[int]
