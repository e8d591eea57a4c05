"""
listing_editor/listing_store.py
-----------------------------------------------------------------------------
Per-language listing records plus the working draft of the active one.

The editor never writes into a record directly.  Edits go to ``draft`` (a
copy of the active listing's editable fields) and are written back by
``save_current``.  ``switch`` always saves before it changes the active key,
otherwise pending edits would be lost.

Invariant: once at least one listing exists, ``delete`` never removes the
last one.
"""

from __future__ import annotations

import logging

from listing_editor.errors import UserInputError
from listing_editor.schema import BaseListing, ListingRecord

logger = logging.getLogger(__name__)

# BaseListing fields the editor may change; everything else is carried through.
EDITABLE_FIELDS: tuple[str, ...] = (
    "title",
    "description",
    "features",
    "release_notes",
    "minimum_hardware",
)


class ListingStore:
    """
    Wraps the ``listings`` mapping of a ``SessionMetadata`` document.

    Parameters
    ----------
    listings : The document's ``listings`` dict.  It is mutated in place so
               the owning metadata model always sees saved edits.
    """

    def __init__(self, listings: dict[str, ListingRecord]) -> None:
        self.listings = listings
        self.active_key: str | None = next(iter(listings), None)
        self.draft = BaseListing()
        self.load()

    def keys(self) -> list[str]:
        return list(self.listings)

    def __len__(self) -> int:
        return len(self.listings)

    # -- draft <-> record -----------------------------------------------------

    def load(self) -> None:
        """Copy the active listing's editable fields into the draft."""
        record = self.listings.get(self.active_key) if self.active_key else None
        if record is None:
            self.draft = BaseListing()
            return
        self.draft = record.base_listing.model_copy(deep=True)

    def save_current(self) -> None:
        """Write the draft's editable fields back into the active record."""
        record = self.listings.get(self.active_key) if self.active_key else None
        if record is None:
            return
        for name in EDITABLE_FIELDS:
            value = getattr(self.draft, name)
            setattr(record.base_listing, name, list(value) if isinstance(value, list) else value)

    def edit(self, **fields) -> None:
        """Update draft fields, e.g. ``edit(title="Hello", features=["Fast"])``."""
        unknown = set(fields) - set(EDITABLE_FIELDS)
        if unknown:
            raise UserInputError(f"Not an editable listing field: {', '.join(sorted(unknown))}")
        for name, value in fields.items():
            setattr(self.draft, name, value)

    # -- listing lifecycle ----------------------------------------------------

    def create(self, key: str) -> bool:
        """
        Add an empty listing for *key*.

        Returns False (and changes nothing) if the listing already exists.
        The new listing is not selected; call :meth:`switch` for that.
        """
        if not key:
            raise UserInputError("A listing language is required.")
        if key in self.listings:
            logger.warning("Listing already exists for language %s", key)
            return False
        self.listings[key] = ListingRecord()
        return True

    def switch(self, new_key: str) -> None:
        """Save the active draft, change the active key, load the new draft."""
        if new_key not in self.listings:
            raise UserInputError(f"No listing for language '{new_key}'.")
        self.save_current()
        self.active_key = new_key
        self.load()

    def delete(self, key: str) -> None:
        """
        Remove the listing for *key*.

        Raises
        ------
        UserInputError
            If it is the only listing left.
        """
        if key not in self.listings:
            logger.warning("Cannot remove unknown listing %s", key)
            return
        if len(self.listings) == 1:
            raise UserInputError("At least one listing is required.")

        if key != self.active_key:
            self.save_current()
        del self.listings[key]
        self.active_key = next(iter(self.listings))
        self.load()
