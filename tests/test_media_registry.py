"""
Tests for listing_editor/media_registry.py – locale-scoped media entries,
classification and filename reconciliation.
"""

from __future__ import annotations

import logging

import pytest

from listing_editor.errors import UserInputError
from listing_editor.media_registry import MediaKind, MediaRegistry, classify

# ── classify ─────────────────────────────────────────────────────────────────


class TestClassify:
    @pytest.mark.parametrize(
        ("name", "kind"),
        [
            ("Screenshot_en_1.png", MediaKind.SCREENSHOT),
            ("Icon_all_1.png", MediaKind.ICON),
            ("Trailer_en_en-asset.mp4", MediaKind.TRAILER),
            ("TrailerImage_en_en-asset.png", MediaKind.TRAILER_IMAGE),
            ("other_all_notes.txt", MediaKind.OTHER),
        ],
    )
    def test_known_prefixes(self, name: str, kind: MediaKind) -> None:
        assert classify(name) is kind

    def test_prefix_match_is_exact(self) -> None:
        """'TrailerImage' must not be read as 'Trailer', nor 'screenshot' as 'Screenshot'."""
        assert classify("TrailerImage_en_x.png") is MediaKind.TRAILER_IMAGE
        with pytest.raises(UserInputError, match="Unknown media type"):
            classify("screenshot_en_1.png")

    def test_unknown_prefix_raises(self) -> None:
        with pytest.raises(UserInputError, match="Unknown media type for file: Banner_en_1.png"):
            classify("Banner_en_1.png")


# ── add / unassign ───────────────────────────────────────────────────────────


class TestAddAndUnassign:
    def test_explicit_spec_lifecycle(self, registry: MediaRegistry) -> None:
        """Unassigning every locale of an entry deletes it."""
        registry.add("Screenshot_en_1.png", b"img", "en,fr")
        entry = registry.get("Screenshot_en_1.png")
        assert entry is not None
        assert entry.locales == {"en", "fr"}

        registry.unassign_locale("Screenshot_en_1.png", "fr")
        assert entry.locales == {"en"}

        registry.unassign_locale("Screenshot_en_1.png", "en")
        assert "Screenshot_en_1.png" not in registry
        assert len(registry) == 0

    def test_exclusion_spec(self, registry: MediaRegistry) -> None:
        entry = registry.add("Screenshot_all#fr_1.png", b"img", "all#fr")
        assert entry.locales == {"en", "de"}

    def test_spec_defaults_to_filename(self, registry: MediaRegistry) -> None:
        entry = registry.add("Icon_all_1.png", b"img")
        assert entry.locales == {"en", "fr", "de"}
        assert entry.kind is MediaKind.ICON
        assert entry.content_type == "image/png"

    def test_explicit_spec_overrides_filename(self, registry: MediaRegistry) -> None:
        entry = registry.add("Screenshot_all_1.png", b"img", "de")
        assert entry.locales == {"de"}
        assert entry.locale_spec == "de"

    def test_empty_locale_set_rejected(self, registry: MediaRegistry) -> None:
        with pytest.raises(UserInputError, match="not assigned to any locale"):
            registry.add("Screenshot_all#en,fr,de_1.png", b"img")
        assert len(registry) == 0

    def test_unknown_kind_rejected(self, registry: MediaRegistry) -> None:
        with pytest.raises(UserInputError):
            registry.add("Banner_en_1.png", b"img")

    def test_unassign_unknown_file_is_noop(
        self, registry: MediaRegistry, caplog: pytest.LogCaptureFixture
    ) -> None:
        registry.add("Screenshot_en_1.png", b"img")
        with caplog.at_level(logging.WARNING, logger="listing_editor.media_registry"):
            registry.unassign_locale("Screenshot_fr_9.png", "fr")
        assert len(registry) == 1
        assert "Media file not found" in caplog.text

    def test_unassign_locale_not_present_keeps_entry(self, registry: MediaRegistry) -> None:
        registry.add("Screenshot_en_1.png", b"img")
        registry.unassign_locale("Screenshot_en_1.png", "de")
        assert registry.get("Screenshot_en_1.png").locales == {"en"}

    def test_remove(self, registry: MediaRegistry) -> None:
        registry.add("Screenshot_en_1.png", b"img")
        assert registry.remove("Screenshot_en_1.png") is not None
        assert registry.remove("Screenshot_en_1.png") is None


# ── queries ──────────────────────────────────────────────────────────────────


class TestQueries:
    def test_select_for_locale_filters_kind_and_locale(self, registry: MediaRegistry) -> None:
        registry.add("Screenshot_en_1.png", b"a")
        registry.add("Screenshot_fr_2.png", b"b")
        registry.add("Icon_all_3.png", b"c")
        registry.add("Screenshot_all_4.png", b"d")

        names = [e.filename for e in registry.select_for_locale("en", MediaKind.SCREENSHOT)]
        assert names == ["Screenshot_en_1.png", "Screenshot_all_4.png"]

    def test_find_first(self, registry: MediaRegistry) -> None:
        registry.add("Icon_fr_1.png", b"a")
        assert registry.find_first("fr", MediaKind.ICON).filename == "Icon_fr_1.png"
        assert registry.find_first("en", MediaKind.ICON) is None

    def test_has_kind(self, registry: MediaRegistry) -> None:
        assert not registry.has_kind(MediaKind.SCREENSHOT)
        registry.add("Screenshot_de_1.png", b"a")
        assert registry.has_kind(MediaKind.SCREENSHOT)

    def test_iteration_is_insertion_order(self, registry: MediaRegistry) -> None:
        registry.add("Icon_all_1.png", b"a")
        registry.add("Screenshot_en_2.png", b"b")
        assert [e.filename for e in registry] == ["Icon_all_1.png", "Screenshot_en_2.png"]


# ── reconcile ────────────────────────────────────────────────────────────────


class TestReconcile:
    def test_all_grows_exclusion_list(self, registry: MediaRegistry) -> None:
        registry.add("Icon_all_1.png", b"icon")
        registry.unassign_locale("Icon_all_1.png", "fr")

        renamed = registry.reconcile()

        assert renamed == {"Icon_all_1.png": "Icon_all#fr_1.png"}
        assert registry.filenames() == ["Icon_all#fr_1.png"]
        assert registry.get("Icon_all#fr_1.png").payload == b"icon"

    def test_explicit_is_canonicalised(self, registry: MediaRegistry) -> None:
        registry.add("Screenshot_fr,en_1.png", b"x")
        renamed = registry.reconcile()
        assert renamed == {"Screenshot_fr,en_1.png": "Screenshot_all#de_1.png"}

    def test_unchanged_entries_are_not_renamed(self, registry: MediaRegistry) -> None:
        registry.add("Screenshot_en_1.png", b"x")
        registry.add("Icon_all_2.png", b"y")
        assert registry.reconcile() == {}

    def test_idempotent(self, registry: MediaRegistry) -> None:
        registry.add("Icon_all_1.png", b"a")
        registry.add("Screenshot_en,fr,de_2.png", b"b")
        registry.unassign_locale("Icon_all_1.png", "de")

        first = registry.reconcile()
        assert first
        assert registry.reconcile() == {}

    def test_keeps_insertion_order(self, registry: MediaRegistry) -> None:
        registry.add("Screenshot_fr,en_1.png", b"a")
        registry.add("Icon_en_2.png", b"b")
        registry.add("Screenshot_de,en,fr_3.png", b"c")
        registry.reconcile()
        assert registry.filenames() == [
            "Screenshot_all#de_1.png",
            "Icon_en_2.png",
            "Screenshot_all_3.png",
        ]

    def test_no_empty_entries_survive(self, registry: MediaRegistry) -> None:
        registry.add("Screenshot_en_1.png", b"a")
        registry.add("Screenshot_all_2.png", b"b")
        for locale in ("en", "fr", "de"):
            registry.unassign_locale("Screenshot_all_2.png", locale)
        registry.unassign_locale("Screenshot_en_1.png", "en")

        registry.reconcile()
        assert len(registry) == 0
        assert registry.files() == []

    def test_files_reflect_reconciled_names(self, registry: MediaRegistry) -> None:
        registry.add("Icon_all_1.png", b"icon")
        registry.unassign_locale("Icon_all_1.png", "en")
        registry.reconcile()
        assert registry.files() == [("Icon_all#en_1.png", b"icon")]

    def test_collision_is_refused_without_renaming(self, registry: MediaRegistry) -> None:
        """Two entries that reconcile to one filename keep both payloads."""
        registry.add("Screenshot_en,fr_1.png", b"A")
        registry.add("Screenshot_en_1.png", b"B")
        registry.unassign_locale("Screenshot_en,fr_1.png", "fr")

        with pytest.raises(UserInputError, match="would both be saved as 'Screenshot_en_1.png'"):
            registry.reconcile()

        assert registry.files() == [
            ("Screenshot_en,fr_1.png", b"A"),
            ("Screenshot_en_1.png", b"B"),
        ]
        assert registry.get("Screenshot_en,fr_1.png").locale_spec == "en,fr"
