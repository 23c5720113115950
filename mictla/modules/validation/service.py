"""
Validation gate: pure validators for every entity kind plus uploaded media.

Contract (per kind):
- validate_<kind>(raw) -> ValidationResult(is_valid, errors, sanitized)
- every rule runs; errors are collected, never short-circuited
- sanitized = raw (null values dropped) merged with cleaned fields, or None when invalid
- no I/O; `now` may be injected for the future-date checks
"""
from __future__ import annotations

import math
import re
from collections.abc import Mapping
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Type, TypeVar

from pydantic import BaseModel, ValidationError
from pydantic.alias_generators import to_camel

from mictla.core.errors import ValidationFailed

from mictla.modules.validation.schemas import (
    ALTAR_LEVELS,
    AUDIO_MAX_BYTES,
    AUDIO_TYPES,
    CONFLICT_RESOLUTIONS,
    EXPORT_FORMATS,
    EXPORT_QUALITIES,
    IMAGE_MAX_BYTES,
    IMAGE_TYPES,
    LANGUAGES,
    MAX_LENGTHS,
    MEMBER_ROLES,
    OFFERING_TYPES,
    PERMISSIONS,
    SYNC_STATUSES,
    THEMES,
    BatchValidationResult,
    InvalidItem,
    ValidationResult,
)

M = TypeVar("M", bound=BaseModel)

# Words rejected in free text. Empty until a curated list is agreed on.
INAPPROPRIATE_WORDS: Tuple[str, ...] = ()

_SCRIPT_BLOCK_RE = re.compile(r"<(script|style)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL)
_TAG_RE = re.compile(r"<[^>]*>")
_JS_PROTOCOL_RE = re.compile(r"javascript\s*:", re.IGNORECASE)
_EVENT_HANDLER_RE = re.compile(r"\bon\w+\s*=", re.IGNORECASE)
_SPACES_RE = re.compile(r"[ \t]{2,}")
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_DIGITS_RE = re.compile(r"^[+-]?\d+$")

_TRUE_STRINGS = {"true", "1", "yes", "on"}
_FALSE_STRINGS = {"false", "0", "no", "off", ""}


# -------------------------
# Primitives
# -------------------------
def sanitize_text(text: Any, max_length: int = 1000) -> str:
    if not isinstance(text, str):
        return ""
    s = _SCRIPT_BLOCK_RE.sub("", text)
    s = _TAG_RE.sub("", s)
    s = _JS_PROTOCOL_RE.sub("", s)
    s = _EVENT_HANDLER_RE.sub("", s)
    s = _SPACES_RE.sub(" ", s).strip()
    if len(s) > max_length:
        s = s[:max_length].strip()
    return s


def is_valid_email(email: Any) -> bool:
    return isinstance(email, str) and bool(_EMAIL_RE.match(email.strip()))


def contains_inappropriate_content(text: Any, words: Iterable[str] = INAPPROPRIATE_WORDS) -> bool:
    if not text or not isinstance(text, str):
        return False
    lowered = text.lower()
    return any(w and w.lower() in lowered for w in words)


def coerce_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        v = value.strip().lower()
        if v in _TRUE_STRINGS:
            return True
        if v in _FALSE_STRINGS:
            return False
        return True
    return bool(value)


def parse_date(value: Any) -> Optional[datetime]:
    """Timezone-aware UTC datetime, or None when the value cannot be parsed."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if not _is_finite(value):
            return None
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        s = value.strip()
        if s.endswith("Z") or s.endswith("z"):
            s = s[:-1] + "+00:00"
        try:
            d = datetime.fromisoformat(s)
        except ValueError:
            return None
        return d if d.tzinfo else d.replace(tzinfo=timezone.utc)
    return None


def _now(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    return now if now.tzinfo else now.replace(tzinfo=timezone.utc)


def _present(raw: Mapping, key: str) -> bool:
    v = raw.get(key)
    return v is not None and v != "" and v is not False


def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool)


def _coerce_int(v: Any) -> Optional[int]:
    if isinstance(v, bool):
        return None
    if isinstance(v, int):
        return v
    if isinstance(v, float) and math.isfinite(v) and v.is_integer():
        return int(v)
    if isinstance(v, str) and _DIGITS_RE.match(v.strip()):
        return int(v.strip())
    return None


def _clean_ids(values: Any) -> List[str]:
    if not isinstance(values, list):
        return []
    return [v.strip() for v in values if isinstance(v, str) and v.strip()]


def _enum_error(label: str, allowed: Sequence[str]) -> str:
    return f"{label} must be one of: {', '.join(allowed)}"


def _validate_position(position: Any, prefix: str = "Position") -> Tuple[Optional[Dict[str, float]], List[str]]:
    x, y, z = (position.get("x"), position.get("y"), position.get("z"))
    if not (_is_number(x) and _is_number(y) and _is_number(z)):
        return None, [f"{prefix} must have numeric x, y, z coordinates"]
    if not all(_is_finite(c) for c in (x, y, z)):
        return None, [f"{prefix} coordinates cannot be NaN"]
    return {"x": x, "y": y, "z": z}, []


def _is_finite(v: Any) -> bool:
    try:
        return math.isfinite(float(v))
    except OverflowError:
        # int too large for a float
        return False


def _validate_date_field(raw: Mapping, key: str, label: str, now: datetime, *, allow_future: bool) -> Tuple[Optional[datetime], List[str]]:
    if not _present(raw, key):
        return None, []
    d = parse_date(raw[key])
    if d is None:
        return None, [f"Invalid {label} date format"]
    if not allow_future and d > now:
        return None, [f"{label.capitalize()} date cannot be in the future"]
    return d, []


def _validate_optional_id(raw: Mapping, key: str, message: str) -> Tuple[Optional[str], List[str]]:
    v = raw.get(key)
    if v is None:
        return None, []
    if not isinstance(v, str) or not v.strip():
        return None, [message]
    return v.strip(), []


def _result(raw: Mapping, sanitized: Dict[str, Any], errors: List[str]) -> ValidationResult:
    if errors:
        return ValidationResult(is_valid=False, errors=errors, sanitized=None)
    # null optionals fall back to model defaults
    passthrough = {k: v for k, v in raw.items() if v is not None}
    return ValidationResult(is_valid=True, errors=[], sanitized={**passthrough, **sanitized})


def _not_an_object(label: str) -> ValidationResult:
    return ValidationResult(is_valid=False, errors=[f"{label} data must be an object"], sanitized=None)


# -------------------------
# Memorial
# -------------------------
def validate_family_connections(connections: Any) -> Dict[str, Any]:
    if not isinstance(connections, Mapping):
        return {"parents": [], "children": [], "spouse": None}
    spouse = connections.get("spouse")
    return {
        "parents": _clean_ids(connections.get("parents")),
        "children": _clean_ids(connections.get("children")),
        "spouse": spouse.strip() if isinstance(spouse, str) and spouse.strip() else None,
    }


def validate_virtual_offerings_data(virtual_offerings: Any) -> ValidationResult:
    errors: List[str] = []
    sanitized: Dict[str, Any] = {"position": {"x": 0, "y": 0, "z": 0}, "items": []}
    if not isinstance(virtual_offerings, Mapping):
        return ValidationResult(is_valid=True, errors=[], sanitized=sanitized)

    position = virtual_offerings.get("position")
    if position is not None:
        if isinstance(position, Mapping):
            pos, pos_errors = _validate_position(position, prefix="Virtual offering position")
            errors.extend(pos_errors)
            if pos is not None:
                sanitized["position"] = pos
        else:
            errors.append("Virtual offering position must have numeric x, y, z coordinates")

    items = virtual_offerings.get("items")
    if isinstance(items, list):
        sanitized["items"] = [i for i in items if isinstance(i, str) and i in OFFERING_TYPES]

    return ValidationResult(is_valid=not errors, errors=errors, sanitized=sanitized if not errors else None)


def validate_sharing_data(sharing: Any) -> ValidationResult:
    sanitized: Dict[str, Any] = {
        "isShared": False,
        "sharedWith": [],
        "shareCode": None,
        "permissions": ["view"],
    }
    if not isinstance(sharing, Mapping):
        return ValidationResult(is_valid=True, errors=[], sanitized=sanitized)

    if isinstance(sharing.get("isShared"), bool):
        sanitized["isShared"] = sharing["isShared"]

    shared_with = sharing.get("sharedWith")
    if isinstance(shared_with, list):
        sanitized["sharedWith"] = [e.strip().lower() for e in shared_with if is_valid_email(e)]

    code = sharing.get("shareCode")
    if isinstance(code, str) and code.strip():
        sanitized["shareCode"] = code.strip()

    perms = sharing.get("permissions")
    if isinstance(perms, list):
        sanitized["permissions"] = [p for p in perms if p in PERMISSIONS] or ["view"]

    return ValidationResult(is_valid=True, errors=[], sanitized=sanitized)


def validate_memorial(raw: Any, *, now: Optional[datetime] = None) -> ValidationResult:
    if not isinstance(raw, Mapping):
        return _not_an_object("Memorial")
    current = _now(now)
    errors: List[str] = []
    sanitized: Dict[str, Any] = {}

    mid, id_errors = _validate_optional_id(raw, "id", "Memorial ID must be a non-empty string")
    errors.extend(id_errors)
    if mid is not None:
        sanitized["id"] = mid

    name = raw.get("name")
    if name is None or not isinstance(name, str):
        errors.append("Name is required and must be text")
    else:
        sanitized["name"] = sanitize_text(name, MAX_LENGTHS["name"])
        if not sanitized["name"]:
            errors.append("Name cannot be empty after sanitization")

    story = raw.get("story")
    if story:
        if not isinstance(story, str):
            errors.append("Story must be text")
        else:
            sanitized["story"] = sanitize_text(story, MAX_LENGTHS["story"])
            if contains_inappropriate_content(sanitized["story"]):
                errors.append("Story contains inappropriate content")

    if raw.get("relationship") is not None:
        sanitized["relationship"] = sanitize_text(raw.get("relationship"), MAX_LENGTHS["relationship"])

    birth, birth_errors = _validate_date_field(raw, "birthDate", "birth", current, allow_future=False)
    death, death_errors = _validate_date_field(raw, "deathDate", "death", current, allow_future=False)
    errors.extend(birth_errors)
    errors.extend(death_errors)
    if birth is not None:
        sanitized["birthDate"] = birth
    if death is not None:
        sanitized["deathDate"] = death
    if birth is not None and death is not None and birth > death:
        errors.append("Birth date cannot be after death date")

    if raw.get("altarLevel") is not None:
        level = _coerce_int(raw.get("altarLevel"))
        if level not in ALTAR_LEVELS:
            errors.append("Altar level must be 1, 2, or 3")
        else:
            sanitized["altarLevel"] = level

    offerings = raw.get("offerings")
    if offerings is not None:
        if not isinstance(offerings, list):
            errors.append("Offerings must be an array")
        else:
            cleaned = (sanitize_text(o, MAX_LENGTHS["offering"]) for o in offerings if isinstance(o, str))
            sanitized["offerings"] = [o for o in cleaned if o]

    if raw.get("familyConnections") is not None:
        sanitized["familyConnections"] = validate_family_connections(raw.get("familyConnections"))

    if raw.get("virtualOfferings") is not None:
        vo = validate_virtual_offerings_data(raw.get("virtualOfferings"))
        if vo.errors:
            errors.extend(vo.errors)
        else:
            sanitized["virtualOfferings"] = vo.sanitized

    if raw.get("sharing") is not None:
        sanitized["sharing"] = validate_sharing_data(raw.get("sharing")).sanitized

    status = raw.get("syncStatus")
    if status is not None:
        if status not in SYNC_STATUSES:
            errors.append(_enum_error("Sync status", SYNC_STATUSES))
        else:
            sanitized["syncStatus"] = status

    for key, label in (("createdAt", "created"), ("updatedAt", "updated")):
        d, d_errors = _validate_date_field(raw, key, label, current, allow_future=True)
        errors.extend(d_errors)
        if d is not None:
            sanitized[key] = d

    return _result(raw, sanitized, errors)


# -------------------------
# Family group
# -------------------------
def validate_family_member(raw: Any, *, now: Optional[datetime] = None) -> ValidationResult:
    if not isinstance(raw, Mapping):
        return _not_an_object("Member")
    errors: List[str] = []
    sanitized: Dict[str, Any] = {}

    user_id = raw.get("userId")
    if not isinstance(user_id, str) or not user_id.strip():
        errors.append("User ID is required")
    else:
        sanitized["userId"] = user_id.strip()

    email = raw.get("email")
    if not isinstance(email, str) or not email:
        errors.append("Email is required")
    elif not is_valid_email(email):
        errors.append("Invalid email format")
    else:
        sanitized["email"] = email.strip().lower()

    role = raw.get("role")
    if role not in MEMBER_ROLES:
        errors.append('Role must be either "admin" or "member"')
    else:
        sanitized["role"] = role

    if _present(raw, "joinedAt"):
        joined = parse_date(raw.get("joinedAt"))
        if joined is None:
            errors.append("Invalid join date format")
        else:
            sanitized["joinedAt"] = joined

    # members carry exactly these fields
    if errors:
        return ValidationResult(is_valid=False, errors=errors, sanitized=None)
    return ValidationResult(is_valid=True, errors=[], sanitized=sanitized)


def validate_family_group(raw: Any, *, now: Optional[datetime] = None) -> ValidationResult:
    if not isinstance(raw, Mapping):
        return _not_an_object("Family group")
    errors: List[str] = []
    sanitized: Dict[str, Any] = {}

    gid, id_errors = _validate_optional_id(raw, "groupId", "Group ID must be a non-empty string")
    errors.extend(id_errors)
    if gid is not None:
        sanitized["groupId"] = gid

    name = raw.get("name")
    if name is None or not isinstance(name, str):
        errors.append("Family name is required")
    else:
        sanitized["name"] = sanitize_text(name, MAX_LENGTHS["familyName"])
        if not sanitized["name"]:
            errors.append("Family name cannot be empty after sanitization")

    members = raw.get("members")
    if not isinstance(members, list):
        errors.append("Members array is required")
    elif not members:
        errors.append("Family must have at least one member")
    else:
        sanitized["members"] = []
        has_admin = False
        for member in members:
            mv = validate_family_member(member, now=now)
            if mv.errors:
                errors.extend(f"Member validation: {e}" for e in mv.errors)
                continue
            sanitized["members"].append(mv.sanitized)
            if mv.sanitized["role"] == "admin":
                has_admin = True
        if not has_admin:
            errors.append("Family must have at least one admin member")

    shared = raw.get("sharedMemorials")
    if shared is not None:
        if not isinstance(shared, list):
            errors.append("Shared memorials must be an array")
        else:
            sanitized["sharedMemorials"] = [s for s in shared if isinstance(s, str) and s]

    code, code_errors = _validate_optional_id(raw, "inviteCode", "Invite code must be a non-empty string")
    errors.extend(code_errors)
    if code is not None:
        sanitized["inviteCode"] = code.upper()

    settings = raw.get("settings")
    if isinstance(settings, Mapping):
        perms = settings.get("defaultPermissions")
        sanitized["settings"] = {
            "allowNewMembers": coerce_bool(settings.get("allowNewMembers"), True),
            "requireApproval": coerce_bool(settings.get("requireApproval"), False),
            "defaultPermissions": [p for p in perms if p in PERMISSIONS] if isinstance(perms, list) else ["view"],
        }

    if _present(raw, "createdAt"):
        created = parse_date(raw.get("createdAt"))
        if created is None:
            errors.append("Invalid created date format")
        else:
            sanitized["createdAt"] = created

    return _result(raw, sanitized, errors)


# -------------------------
# Virtual offering
# -------------------------
def validate_virtual_offering(raw: Any, *, now: Optional[datetime] = None) -> ValidationResult:
    if not isinstance(raw, Mapping):
        return _not_an_object("Virtual offering")
    errors: List[str] = []
    sanitized: Dict[str, Any] = {}

    oid, id_errors = _validate_optional_id(raw, "id", "Offering ID must be a non-empty string")
    errors.extend(id_errors)
    if oid is not None:
        sanitized["id"] = oid

    otype = raw.get("type")
    if otype not in OFFERING_TYPES:
        errors.append(_enum_error("Offering type", OFFERING_TYPES))
    else:
        sanitized["type"] = otype

    position = raw.get("position")
    if not isinstance(position, Mapping):
        errors.append("Position is required and must be an object")
    else:
        pos, pos_errors = _validate_position(position)
        errors.extend(pos_errors)
        if pos is not None:
            sanitized["position"] = pos

    for key, message in (("memorialId", "Memorial ID must be a string"), ("placedBy", "Placed by user ID must be a string")):
        v = raw.get(key)
        if v is None or v == "":
            sanitized[key] = None
        elif not isinstance(v, str):
            errors.append(message)
        else:
            sanitized[key] = v.strip() or None

    message = raw.get("message")
    if message:
        if not isinstance(message, str):
            errors.append("Message must be text")
        else:
            sanitized["message"] = sanitize_text(message, MAX_LENGTHS["message"])
            if contains_inappropriate_content(sanitized["message"]):
                errors.append("Message contains inappropriate content")

    if _present(raw, "createdAt"):
        created = parse_date(raw.get("createdAt"))
        if created is None:
            errors.append("Invalid created date format")
        else:
            sanitized["createdAt"] = created

    return _result(raw, sanitized, errors)


def validate_offering_types(types: Any) -> BatchValidationResult:
    """Partition offering tags into known / unknown without raising."""
    if not isinstance(types, list):
        return BatchValidationResult(
            is_valid=False,
            errors=["Items must be an array"],
            summary={"total": 0, "valid": 0, "invalid": 0},
        )
    message = _enum_error("Offering type", OFFERING_TYPES)
    valid: List[Any] = []
    invalid: List[InvalidItem] = []
    for i, t in enumerate(types):
        if isinstance(t, str) and t in OFFERING_TYPES:
            valid.append(t)
        else:
            invalid.append(InvalidItem(index=i, item=t, errors=[message]))
    return BatchValidationResult(
        is_valid=not invalid,
        errors=[f"Item {x.index}: {message}" for x in invalid],
        valid_items=valid,
        invalid_items=invalid,
        summary={"total": len(types), "valid": len(valid), "invalid": len(invalid)},
    )


# -------------------------
# User preferences
# -------------------------
def _check_enum(value: Any, allowed: Sequence[str], label: str, errors: List[str]) -> Optional[str]:
    if value is None:
        return None
    if value not in allowed:
        errors.append(_enum_error(label, allowed))
        return None
    return value


def validate_user_preferences(raw: Any, *, now: Optional[datetime] = None) -> ValidationResult:
    if not isinstance(raw, Mapping):
        return _not_an_object("User preferences")
    errors: List[str] = []
    sanitized: Dict[str, Any] = {}

    user_id = raw.get("userId")
    if not isinstance(user_id, str) or not user_id.strip():
        errors.append("User ID is required")
    else:
        sanitized["userId"] = user_id.strip()

    for key, allowed, label in (("language", LANGUAGES, "Language"), ("theme", THEMES, "Theme")):
        v = _check_enum(raw.get(key), allowed, label, errors)
        if v is not None:
            sanitized[key] = v

    for key, default in (("audioEnabled", True), ("arEnabled", False), ("tutorialCompleted", False)):
        if key in raw:
            sanitized[key] = coerce_bool(raw.get(key), default)

    sync = raw.get("syncSettings")
    if isinstance(sync, Mapping):
        s: Dict[str, Any] = {"autoSync": coerce_bool(sync.get("autoSync"), True), "lastSyncTime": None}
        if _present(sync, "lastSyncTime"):
            s["lastSyncTime"] = parse_date(sync.get("lastSyncTime"))
            if s["lastSyncTime"] is None:
                errors.append("Invalid last sync time format")
        s["conflictResolution"] = _check_enum(
            sync.get("conflictResolution"), CONFLICT_RESOLUTIONS, "Conflict resolution", errors
        ) or "manual"
        sanitized["syncSettings"] = s

    export = raw.get("exportSettings")
    if isinstance(export, Mapping):
        sanitized["exportSettings"] = {
            "includeAudio": coerce_bool(export.get("includeAudio"), True),
            "format": _check_enum(export.get("format"), EXPORT_FORMATS, "Export format", errors) or "pdf",
            "quality": _check_enum(export.get("quality"), EXPORT_QUALITIES, "Export quality", errors) or "medium",
        }

    return _result(raw, sanitized, errors)


# -------------------------
# Media
# -------------------------
def _media_attr(file: Any, *names: str) -> Any:
    for n in names:
        if isinstance(file, Mapping):
            if n in file:
                return file[n]
        elif hasattr(file, n):
            return getattr(file, n)
    return None


def _validate_media(file: Any, allowed: Sequence[str], max_bytes: int, type_message: str, size_message: str) -> ValidationResult:
    if file is None:
        return ValidationResult(is_valid=False, errors=["No file provided"])
    errors: List[str] = []
    content_type = _media_attr(file, "content_type", "type")
    size = _media_attr(file, "size")
    if content_type not in allowed:
        errors.append(type_message)
    if size and size > max_bytes:
        errors.append(size_message)
    return ValidationResult(is_valid=not errors, errors=errors)


def validate_image_file(file: Any) -> ValidationResult:
    return _validate_media(
        file,
        IMAGE_TYPES,
        IMAGE_MAX_BYTES,
        "Invalid file type. Only JPEG, PNG, and WebP are allowed",
        "File size must be less than 5MB",
    )


def validate_audio_file(file: Any) -> ValidationResult:
    return _validate_media(
        file,
        AUDIO_TYPES,
        AUDIO_MAX_BYTES,
        "Invalid file type. Only MP3, WAV, OGG, and WebM are allowed",
        "File size must be less than 10MB",
    )


# -------------------------
# Dispatch
# -------------------------
Validator = Callable[..., ValidationResult]

VALIDATORS: Dict[str, Validator] = {
    "memorial": validate_memorial,
    "familyGroup": validate_family_group,
    "familyMember": validate_family_member,
    "virtualOffering": validate_virtual_offering,
    "userPreferences": validate_user_preferences,
}

ENTITY_LABELS: Dict[str, str] = {
    "memorial": "Memorial",
    "familyGroup": "Family group",
    "familyMember": "Family member",
    "virtualOffering": "Virtual offering",
    "userPreferences": "User preferences",
}


def validate(kind: str, raw: Any, *, now: Optional[datetime] = None) -> ValidationResult:
    validator = VALIDATORS.get(kind)
    if validator is None:
        return ValidationResult(is_valid=False, errors=["Unknown validation type"])
    return validator(raw, now=now)


def validate_batch(items: Any, kind: str, *, now: Optional[datetime] = None) -> BatchValidationResult:
    if not isinstance(items, list):
        return BatchValidationResult(
            is_valid=False,
            errors=["Items must be an array"],
            summary={"total": 0, "valid": 0, "invalid": 0},
        )

    valid_items: List[Any] = []
    invalid_items: List[InvalidItem] = []
    all_errors: List[str] = []
    for i, item in enumerate(items):
        v = validate(kind, item, now=now)
        if v.is_valid:
            valid_items.append(v.sanitized)
        else:
            invalid_items.append(InvalidItem(index=i, item=item, errors=v.errors))
            all_errors.extend(f"Item {i}: {e}" for e in v.errors)

    return BatchValidationResult(
        is_valid=not invalid_items,
        errors=all_errors,
        valid_items=valid_items,
        invalid_items=invalid_items,
        summary={"total": len(items), "valid": len(valid_items), "invalid": len(invalid_items)},
    )


# -------------------------
# Typed entities
# -------------------------
def as_wire(entity: Any) -> Any:
    """camelCase dict for a model or mapping; snake_case mapping keys are converted."""
    if isinstance(entity, BaseModel):
        return entity.model_dump(mode="json", by_alias=True)
    if isinstance(entity, Mapping):
        return {(to_camel(k) if "_" in k else k): v for k, v in entity.items()}
    return entity


def _pydantic_errors(e: ValidationError) -> List[str]:
    out: List[str] = []
    for err in e.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        out.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return out


def build_model(model: Type[M], sanitized: Mapping, label: str) -> M:
    try:
        return model.model_validate(sanitized)
    except ValidationError as e:
        raise ValidationFailed(label, _pydantic_errors(e)) from e


def validated_entity(kind: str, entity: Any, model: Type[M], *, now: Optional[datetime] = None) -> M:
    """Run the gate for `kind`, then build `model` from the sanitized payload; raises ValidationFailed."""
    label = ENTITY_LABELS[kind]
    v = validate(kind, as_wire(entity), now=now)
    if not v.is_valid:
        raise ValidationFailed(label, v.errors)
    return build_model(model, v.sanitized, label)
