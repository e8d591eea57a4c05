"""Tests for listing_editor/listing_store.py – draft editing and listing lifecycle."""

from __future__ import annotations

import pytest

from listing_editor.errors import UserInputError
from listing_editor.listing_store import ListingStore
from listing_editor.schema import BaseListing, ListingRecord


def _store(*keys: str) -> ListingStore:
    return ListingStore({k: ListingRecord(base_listing=BaseListing(title=f"T-{k}")) for k in keys})


class TestDraft:
    def test_first_key_is_active_and_loaded(self) -> None:
        store = _store("en", "fr")
        assert store.active_key == "en"
        assert store.draft.title == "T-en"

    def test_edit_does_not_touch_record_until_saved(self) -> None:
        store = _store("en")
        store.edit(title="Hello")
        assert store.listings["en"].base_listing.title == "T-en"
        store.save_current()
        assert store.listings["en"].base_listing.title == "Hello"

    def test_edit_unknown_field_rejected(self) -> None:
        store = _store("en")
        with pytest.raises(UserInputError, match="Not an editable listing field: images"):
            store.edit(images=["x"])

    def test_saved_lists_are_copies(self) -> None:
        store = _store("en")
        features = ["Fast"]
        store.edit(features=features)
        store.save_current()
        features.append("Free")
        assert store.listings["en"].base_listing.features == ["Fast"]

    def test_empty_store(self) -> None:
        store = ListingStore({})
        assert store.active_key is None
        assert store.draft == BaseListing()
        store.save_current()  # nothing to save into


class TestSwitch:
    def test_switch_preserves_unsaved_edits(self) -> None:
        """An unsaved title edit survives switching away and back."""
        store = _store("en", "fr")
        store.edit(title="Hello")

        store.switch("fr")
        assert store.draft.title == "T-fr"

        store.switch("en")
        assert store.draft.title == "Hello"
        assert store.listings["en"].base_listing.title == "Hello"

    def test_switch_to_unknown_raises(self) -> None:
        store = _store("en")
        with pytest.raises(UserInputError, match="No listing for language 'de'"):
            store.switch("de")


class TestCreate:
    def test_create_adds_empty_listing_without_selecting(self) -> None:
        store = _store("en")
        assert store.create("fr") is True
        assert store.keys() == ["en", "fr"]
        assert store.active_key == "en"
        assert store.listings["fr"].base_listing.title == ""

    def test_create_existing_returns_false(self) -> None:
        store = _store("en")
        store.edit(title="Draft")
        assert store.create("en") is False
        assert store.draft.title == "Draft"
        assert len(store) == 1

    def test_create_empty_key_raises(self) -> None:
        with pytest.raises(UserInputError):
            _store("en").create("")


class TestDelete:
    def test_last_listing_cannot_be_deleted(self) -> None:
        store = _store("en")
        with pytest.raises(UserInputError, match="At least one listing is required."):
            store.delete("en")
        assert store.keys() == ["en"]

    def test_delete_active_moves_to_first_remaining(self) -> None:
        store = _store("en", "fr", "de")
        store.switch("fr")
        store.delete("fr")
        assert store.keys() == ["en", "de"]
        assert store.active_key == "en"
        assert store.draft.title == "T-en"

    def test_delete_other_saves_pending_draft(self) -> None:
        store = _store("en", "fr")
        store.edit(title="Kept")
        store.delete("fr")
        assert store.listings["en"].base_listing.title == "Kept"
        assert store.draft.title == "Kept"

    def test_delete_unknown_is_noop(self) -> None:
        store = _store("en", "fr")
        store.delete("de")
        assert store.keys() == ["en", "fr"]

    def test_mutates_the_given_mapping(self) -> None:
        listings = {"en": ListingRecord(), "fr": ListingRecord()}
        ListingStore(listings).delete("fr")
        assert list(listings) == ["en"]
