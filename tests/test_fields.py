"""Tests for fields.py - field projection presets."""

import logging

from outlook_mail_mcp.fields import (
    EXTENDED_EMAIL_FIELDS,
    FIELD_PRESETS,
    FOLDER_FIELDS,
    fields_for,
    folder_fields_for,
)


class TestFieldsFor:
    """Tests for fields_for()."""

    def test_known_presets(self):
        """Every named preset resolves to its own list."""
        for name, fields in FIELD_PRESETS.items():
            assert fields_for(name) == fields

    def test_default_is_list(self):
        assert fields_for() == FIELD_PRESETS["list"]

    def test_list_is_minimal(self):
        assert fields_for("list") == (
            "id",
            "subject",
            "from",
            "receivedDateTime",
            "isRead",
        )

    def test_unknown_preset_falls_back_to_list(self, caplog):
        """Unknown presets never fail the request."""
        with caplog.at_level(logging.WARNING):
            fields = fields_for("verbose")
        assert fields == FIELD_PRESETS["list"]
        assert "verbose" in caplog.text

    def test_every_preset_selects_id(self):
        for fields in FIELD_PRESETS.values():
            assert fields[0] == "id"

    def test_presets_draw_from_extended_fields(self):
        known = set(EXTENDED_EMAIL_FIELDS)
        for name, fields in FIELD_PRESETS.items():
            assert set(fields) <= known, name

    def test_no_duplicate_fields(self):
        for fields in FIELD_PRESETS.values():
            assert len(fields) == len(set(fields))

    def test_forensic_includes_headers(self):
        fields = fields_for("forensic")
        assert "internetMessageHeaders" in fields
        assert "internetMessageId" in fields

    def test_delta_includes_change_key(self):
        assert "changeKey" in fields_for("delta")


class TestFolderFieldsFor:
    """Tests for folder_fields_for()."""

    def test_basic(self):
        assert folder_fields_for() == ("id", "displayName", "parentFolderId")

    def test_with_counts(self):
        fields = folder_fields_for("with_counts")
        assert "unreadItemCount" in fields
        assert "totalItemCount" in fields

    def test_unknown_falls_back_to_basic(self):
        assert folder_fields_for("huge") == FOLDER_FIELDS["basic"]
