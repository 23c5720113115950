"""
Tests for the validation gate.

The gate is pure: every case feeds plain dicts and inspects the
ValidationResult, no store involved.
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from mictla.core.errors import ValidationFailed
from mictla.modules.memorials.schemas import Memorial
from mictla.modules.validation.schemas import MB, MediaFile
from mictla.modules.validation.service import (
    VALIDATORS,
    contains_inappropriate_content,
    is_valid_email,
    parse_date,
    sanitize_text,
    validate_audio_file,
    validate_batch,
    validate_family_group,
    validate_family_member,
    validate_image_file,
    validate_memorial,
    validate_offering_types,
    validate_sharing_data,
    validate_user_preferences,
    validate_virtual_offering,
    validated_entity,
)

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


class TestSanitizeText:
    def test_strips_script_blocks_with_content(self):
        assert sanitize_text("<script>alert('x')</script>Hola <b>abuela</b>") == "Hola abuela"

    def test_strips_style_blocks(self):
        assert sanitize_text("<style>body{}</style>texto") == "texto"

    def test_strips_javascript_protocol_any_case(self):
        assert sanitize_text("click JavaScript:alert(1)") == "click alert(1)"

    def test_strips_event_handlers(self):
        assert sanitize_text("a onclick=steal()") == "a steal()"

    def test_collapses_spaces_and_trims(self):
        assert sanitize_text("  mucho    espacio  ") == "mucho espacio"

    def test_keeps_newlines(self):
        assert sanitize_text("linea uno\nlinea dos") == "linea uno\nlinea dos"

    def test_truncates_to_max_length(self):
        assert len(sanitize_text("A" * 200, 100)) == 100

    def test_non_string_is_empty(self):
        assert sanitize_text(None) == ""
        assert sanitize_text(42) == ""


class TestPrimitives:
    @pytest.mark.parametrize("email", ["a@b.co", "ana.garcia@example.com", " x@y.org "])
    def test_valid_emails(self, email):
        assert is_valid_email(email)

    @pytest.mark.parametrize("email", ["", "no-at", "a@b", "a b@c.com", None, 5])
    def test_invalid_emails(self, email):
        assert not is_valid_email(email)

    def test_parse_date_variants(self):
        assert parse_date("2020-01-01") == datetime(2020, 1, 1, tzinfo=timezone.utc)
        assert parse_date("2020-01-01T10:00:00Z") == datetime(2020, 1, 1, 10, tzinfo=timezone.utc)
        assert parse_date(0) == datetime(1970, 1, 1, tzinfo=timezone.utc)
        assert parse_date("not a date") is None
        assert parse_date(True) is None
        assert parse_date(10**400) is None

    def test_inappropriate_content_uses_blocklist(self):
        assert not contains_inappropriate_content("Some badword here")
        assert contains_inappropriate_content("Some BADWORD here", words=("badword",))
        assert not contains_inappropriate_content("", words=("badword",))


class TestValidateMemorial:
    def test_valid_scenario(self, memorial_data):
        v = validate_memorial(memorial_data, now=NOW)
        assert v.is_valid
        assert v.errors == []
        assert v.sanitized["name"] == "Juan García"
        assert v.sanitized["birthDate"] == datetime(1950, 1, 1, tzinfo=timezone.utc)

    def test_story_is_sanitized(self, memorial_data):
        raw = {**memorial_data, "story": "<script>evil()</script>Le gustaba <i>cantar</i>"}
        v = validate_memorial(raw, now=NOW)
        assert v.is_valid
        assert v.sanitized["story"] == "Le gustaba cantar"
        assert "<" not in v.sanitized["story"]

    def test_long_story_is_truncated(self, memorial_data):
        v = validate_memorial({**memorial_data, "story": "A" * 6000}, now=NOW)
        assert v.is_valid
        assert len(v.sanitized["story"]) == 5000

    def test_collects_multiple_errors(self):
        v = validate_memorial({"name": "", "altarLevel": 5}, now=NOW)
        assert not v.is_valid
        assert v.sanitized is None
        assert "Name cannot be empty after sanitization" in v.errors
        assert "Altar level must be 1, 2, or 3" in v.errors

    @pytest.mark.parametrize("name", [None, 123, ["x"]])
    def test_missing_or_non_text_name(self, name):
        v = validate_memorial({"name": name}, now=NOW)
        assert v.errors == ["Name is required and must be text"]

    def test_markup_only_name_is_empty(self):
        v = validate_memorial({"name": "<b></b>"}, now=NOW)
        assert v.errors == ["Name cannot be empty after sanitization"]

    def test_birth_after_death(self, memorial_data):
        v = validate_memorial({**memorial_data, "birthDate": "2021-01-01"}, now=NOW)
        assert not v.is_valid
        assert "Birth date cannot be after death date" in v.errors

    def test_future_dates(self):
        v = validate_memorial({"name": "X", "birthDate": "2030-01-01", "deathDate": "2031-01-01"}, now=NOW)
        assert "Birth date cannot be in the future" in v.errors
        assert "Death date cannot be in the future" in v.errors

    def test_invalid_date_format(self):
        v = validate_memorial({"name": "X", "birthDate": "ayer", "deathDate": "mañana"}, now=NOW)
        assert v.errors == ["Invalid birth date format", "Invalid death date format"]

    def test_altar_level_string_digits_accepted(self):
        v = validate_memorial({"name": "X", "altarLevel": "2"}, now=NOW)
        assert v.is_valid
        assert v.sanitized["altarLevel"] == 2

    def test_offerings_filtered(self):
        v = validate_memorial({"name": "X", "offerings": ["pan", 3, "", "<b>mole</b>", "A" * 80]}, now=NOW)
        assert v.sanitized["offerings"] == ["pan", "mole", "A" * 50]

    def test_offerings_must_be_array(self):
        v = validate_memorial({"name": "X", "offerings": "pan"}, now=NOW)
        assert v.errors == ["Offerings must be an array"]

    def test_virtual_offerings_position_nan(self):
        raw = {"name": "X", "virtualOfferings": {"position": {"x": float("nan"), "y": 0, "z": 0}}}
        v = validate_memorial(raw, now=NOW)
        assert v.errors == ["Virtual offering position coordinates cannot be NaN"]

    def test_virtual_offering_items_filtered(self):
        raw = {"name": "X", "virtualOfferings": {"items": ["vela", "pizza", "agua"]}}
        v = validate_memorial(raw, now=NOW)
        assert v.sanitized["virtualOfferings"]["items"] == ["vela", "agua"]

    def test_family_connections_sanitized(self):
        raw = {"name": "X", "familyConnections": {"parents": ["m1", "", 4], "spouse": "  "}}
        v = validate_memorial(raw, now=NOW)
        assert v.sanitized["familyConnections"] == {"parents": ["m1"], "children": [], "spouse": None}

    def test_sync_status_closed_set(self):
        v = validate_memorial({"name": "X", "syncStatus": "uploaded"}, now=NOW)
        assert v.errors == ["Sync status must be one of: local, pending, synced"]

    def test_unknown_keys_pass_through(self):
        v = validate_memorial({"name": "X", "extra": 1}, now=NOW)
        assert v.sanitized["extra"] == 1


class TestSharing:
    def test_emails_and_permissions_filtered(self):
        v = validate_sharing_data(
            {"isShared": True, "sharedWith": ["A@B.com", "bad"], "permissions": ["view", "delete", "edit"]}
        )
        assert v.sanitized == {
            "isShared": True,
            "sharedWith": ["a@b.com"],
            "shareCode": None,
            "permissions": ["view", "edit"],
        }

    def test_empty_permissions_default_to_view(self):
        assert validate_sharing_data({"permissions": ["nope"]}).sanitized["permissions"] == ["view"]


class TestFamilyGroup:
    def _group(self, **overrides):
        base = {
            "name": "Los García",
            "members": [{"userId": "u1", "email": "ANA@Example.com ", "role": "admin"}],
        }
        base.update(overrides)
        return base

    def test_valid_group(self):
        v = validate_family_group(self._group())
        assert v.is_valid
        assert v.sanitized["members"][0]["email"] == "ana@example.com"

    def test_name_errors(self):
        assert "Family name is required" in validate_family_group(self._group(name=None)).errors
        assert "Family name cannot be empty after sanitization" in validate_family_group(self._group(name="")).errors

    def test_members_required(self):
        assert "Members array is required" in validate_family_group(self._group(members=None)).errors
        assert "Family must have at least one member" in validate_family_group(self._group(members=[])).errors

    def test_needs_admin(self):
        v = validate_family_group(self._group(members=[{"userId": "u1", "email": "a@b.co", "role": "member"}]))
        assert v.errors == ["Family must have at least one admin member"]

    def test_member_errors_are_prefixed(self):
        v = validate_family_group(self._group(members=[{"userId": "u1", "email": "nope", "role": "admin"}]))
        assert "Member validation: Invalid email format" in v.errors

    def test_shared_memorials_must_be_array(self):
        v = validate_family_group(self._group(sharedMemorials="m1"))
        assert v.errors == ["Shared memorials must be an array"]

    def test_settings_coerced(self):
        v = validate_family_group(
            self._group(
                settings={
                    "allowNewMembers": "false",
                    "requireApproval": 1,
                    "defaultPermissions": ["view", "invalid", "edit", "comment"],
                }
            )
        )
        assert v.sanitized["settings"] == {
            "allowNewMembers": False,
            "requireApproval": True,
            "defaultPermissions": ["view", "edit", "comment"],
        }


class TestFamilyMember:
    def test_all_errors(self):
        v = validate_family_member({"role": "owner", "joinedAt": "??"})
        assert v.errors == [
            "User ID is required",
            "Email is required",
            'Role must be either "admin" or "member"',
            "Invalid join date format",
        ]


class TestVirtualOffering:
    def test_valid(self, offering_data):
        v = validate_virtual_offering({**offering_data, "message": "<b>Te extrañamos</b>"})
        assert v.is_valid
        assert v.sanitized["message"] == "Te extrañamos"
        assert v.sanitized["memorialId"] is None

    def test_unknown_type(self, offering_data):
        v = validate_virtual_offering({**offering_data, "type": "pizza"})
        assert v.errors[0].startswith("Offering type must be one of: cempasuchil, pan_de_muerto")

    def test_position_required(self):
        v = validate_virtual_offering({"type": "vela"})
        assert v.errors == ["Position is required and must be an object"]

    @pytest.mark.parametrize("bad", [float("nan"), float("inf")])
    def test_position_not_finite(self, bad):
        v = validate_virtual_offering({"type": "vela", "position": {"x": bad, "y": 0, "z": 0}})
        assert v.errors == ["Position coordinates cannot be NaN"]

    def test_position_too_large_for_float(self):
        v = validate_virtual_offering({"type": "vela", "position": {"x": 10**400, "y": 0, "z": 0}})
        assert v.errors == ["Position coordinates cannot be NaN"]

    def test_position_not_numeric(self):
        v = validate_virtual_offering({"type": "vela", "position": {"x": "1", "y": 0, "z": 0}})
        assert v.errors == ["Position must have numeric x, y, z coordinates"]

    def test_reference_types(self, offering_data):
        v = validate_virtual_offering({**offering_data, "memorialId": 12, "placedBy": ["u"]})
        assert v.errors == ["Memorial ID must be a string", "Placed by user ID must be a string"]

    def test_message_truncated(self, offering_data):
        v = validate_virtual_offering({**offering_data, "message": "m" * 700})
        assert len(v.sanitized["message"]) == 500


class TestUserPreferences:
    def test_enums(self):
        v = validate_user_preferences(
            {"userId": "u1", "language": "fr", "theme": "neon", "exportSettings": {"format": "docx"}}
        )
        assert "Language must be one of: es, en" in v.errors
        assert "Theme must be one of: auto, light, dark" in v.errors
        assert "Export format must be one of: pdf, json" in v.errors

    def test_booleans_coerced(self):
        v = validate_user_preferences({"userId": "u1", "audioEnabled": "false", "arEnabled": "true"})
        assert v.sanitized["audioEnabled"] is False
        assert v.sanitized["arEnabled"] is True

    def test_user_id_required(self):
        assert validate_user_preferences({}).errors == ["User ID is required"]


class TestMedia:
    def test_no_file(self):
        assert validate_image_file(None).errors == ["No file provided"]

    def test_image_type_and_size(self):
        v = validate_image_file(MediaFile("a.gif", "image/gif", 6 * MB))
        assert v.errors == [
            "Invalid file type. Only JPEG, PNG, and WebP are allowed",
            "File size must be less than 5MB",
        ]

    def test_image_from_mapping(self):
        assert validate_image_file({"type": "image/png", "size": MB}).is_valid

    @pytest.mark.parametrize("content_type", ["audio/mp3", "audio/mpeg", "audio/ogg"])
    def test_audio_types(self, content_type):
        assert validate_audio_file(MediaFile("a", content_type, MB)).is_valid

    def test_audio_too_large(self):
        v = validate_audio_file(MediaFile("a.wav", "audio/wav", 11 * MB))
        assert v.errors == ["File size must be less than 10MB"]


class TestBatch:
    def test_offering_types_partition(self):
        r = validate_offering_types(["cempasuchil", "pizza"])
        assert not r.is_valid
        assert r.valid_items == ["cempasuchil"]
        assert [(i.index, i.item) for i in r.invalid_items] == [(1, "pizza")]
        assert r.summary == {"total": 2, "valid": 1, "invalid": 1}

    def test_batch_collects_per_item(self):
        r = validate_batch([{"name": "A"}, {"name": None}], "memorial")
        assert r.summary == {"total": 2, "valid": 1, "invalid": 1}
        assert r.errors == ["Item 1: Name is required and must be text"]

    def test_batch_requires_list(self):
        assert validate_batch("nope", "memorial").errors == ["Items must be an array"]

    def test_unknown_kind(self):
        r = validate_batch([{}], "altar")
        assert r.invalid_items[0].errors == ["Unknown validation type"]

    def test_registry_keys(self):
        assert {"memorial", "familyGroup", "virtualOffering", "userPreferences"} <= set(VALIDATORS)


class TestValidatedEntity:
    def test_builds_model(self, memorial_data):
        m = validated_entity("memorial", memorial_data, Memorial)
        assert m.id.startswith("memorial_")
        assert m.altar_level == 1
        assert m.sync_status == "local"

    def test_raises_with_errors(self):
        with pytest.raises(ValidationFailed) as exc:
            validated_entity("memorial", {"name": ""}, Memorial)
        assert str(exc.value).startswith("Memorial validation failed")
        assert exc.value.errors == ["Name cannot be empty after sanitization"]

    def test_null_optionals_take_model_defaults(self):
        raw = {"name": "Ana", "story": None, "relationship": None, "altarLevel": None, "photo": None}
        v = validate_memorial(raw, now=NOW)
        assert v.is_valid
        assert "story" not in v.sanitized
        m = validated_entity("memorial", raw, Memorial, now=NOW)
        assert (m.story, m.relationship, m.altar_level, m.photo) == ("", "", 1, None)
