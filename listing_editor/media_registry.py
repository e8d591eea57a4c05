"""
listing_editor/media_registry.py
-----------------------------------------------------------------------------
In-memory registry of the media files attached to one editing session.

Each ``MediaEntry`` owns its ``locales`` set; that set is the source of
truth.  The entry's filename is derived from it through
:mod:`listing_editor.locale_codec` and is only recomputed when
:meth:`MediaRegistry.reconcile` runs (just before submission), so that the
registry keys stay stable while the user edits.

Invariants
----------
- No entry ever has an empty locale set: removing the last locale deletes
  the entry.
- Iteration order is insertion order; ``reconcile`` keeps it.
- ``reconcile`` never merges two entries into one filename; it refuses
  instead.
- ``classify`` never infers ``MediaKind.OTHER``; an unknown prefix is an
  error.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum

from listing_editor.errors import UserInputError
from listing_editor.locale_codec import (
    LOCALE_CATALOG,
    build_media_filename,
    decode_locale_spec,
    guess_content_type,
    parse_media_filename,
    reconcile_locale_spec,
)

logger = logging.getLogger(__name__)


class MediaKind(str, Enum):
    """Filename prefix tokens, matched exactly."""

    SCREENSHOT = "Screenshot"
    ICON = "Icon"
    TRAILER = "Trailer"
    TRAILER_IMAGE = "TrailerImage"
    OTHER = "other"


@dataclass
class MediaEntry:
    """
    One media file and the locales it applies to.

    ``locale_spec`` is the spec the entry's locales were decoded from.  It is
    kept so that reconciliation can extend an exclusion list rather than
    rewrite it; it is never decoded again once the entry exists.
    """

    kind: MediaKind
    locale_spec: str
    rest: str
    payload: bytes
    content_type: str
    locales: set[str] = field(default_factory=set)

    @property
    def filename(self) -> str:
        return build_media_filename(self.kind.value, self.locale_spec, self.rest)


def classify(filename: str) -> MediaKind:
    """
    Return the media kind named by the first underscore segment.

    Raises
    ------
    UserInputError
        If the prefix matches none of the known kind tokens.
    """
    prefix = filename.split("_")[0]
    for kind in MediaKind:
        if prefix == kind.value:
            return kind
    raise UserInputError(f"Unknown media type for file: {filename}")


class MediaRegistry:
    """Filename-keyed collection of ``MediaEntry`` objects."""

    def __init__(self, catalog: Sequence[str] | None = None) -> None:
        self.catalog: tuple[str, ...] = tuple(catalog if catalog is not None else LOCALE_CATALOG)
        self._entries: dict[str, MediaEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, filename: object) -> bool:
        return filename in self._entries

    def __iter__(self):
        return iter(list(self._entries.values()))

    def get(self, filename: str) -> MediaEntry | None:
        return self._entries.get(filename)

    def filenames(self) -> list[str]:
        return list(self._entries)

    # -- mutation -------------------------------------------------------------

    def add(
        self,
        filename: str,
        payload: bytes,
        locale_spec: str | None = None,
        content_type: str | None = None,
    ) -> MediaEntry:
        """
        Insert (or overwrite) an entry keyed by *filename*.

        Parameters
        ----------
        filename     : Canonical media filename ``<Kind>_<spec>_<rest>``.
        payload      : Raw file bytes.
        locale_spec  : Locales the file applies to, as an explicit comma list
                       or ``all[#exclusions]``.  Defaults to the spec embedded
                       in *filename*.
        content_type : MIME type; guessed from the extension when omitted.

        Raises
        ------
        UserInputError
            If the filename is malformed or has an unknown kind prefix.
        """
        kind = classify(filename)
        _, embedded_spec, rest = parse_media_filename(filename)
        spec = embedded_spec if locale_spec is None else locale_spec

        entry = MediaEntry(
            kind=kind,
            locale_spec=spec,
            rest=rest,
            payload=payload,
            content_type=content_type or guess_content_type(filename),
            locales=decode_locale_spec(spec, self.catalog),
        )
        if not entry.locales:
            raise UserInputError(f"Media file '{filename}' is not assigned to any locale.")

        self._entries[filename] = entry
        return entry

    def unassign_locale(self, filename: str, locale: str) -> None:
        """
        Remove *locale* from an entry; delete the entry if none remain.

        Unknown filenames are a logged no-op.
        """
        entry = self._entries.get(filename)
        if entry is None:
            logger.warning("Media file not found: %s", filename)
            return

        entry.locales.discard(locale)
        if not entry.locales:
            del self._entries[filename]
            logger.debug("Media file %s removed (no locales left)", filename)

    def remove(self, filename: str) -> MediaEntry | None:
        return self._entries.pop(filename, None)

    # -- queries --------------------------------------------------------------

    def select_for_locale(self, locale: str, kind: MediaKind) -> list[MediaEntry]:
        """Entries of *kind* assigned to *locale*, in insertion order."""
        return [e for e in self._entries.values() if e.kind is kind and locale in e.locales]

    def find_first(self, locale: str, kind: MediaKind) -> MediaEntry | None:
        matches = self.select_for_locale(locale, kind)
        return matches[0] if matches else None

    def has_kind(self, kind: MediaKind) -> bool:
        return any(e.kind is kind and e.locales for e in self._entries.values())

    # -- consistency ----------------------------------------------------------

    def reconcile(self) -> dict[str, str]:
        """
        Recompute every entry's canonical filename from its live locales.

        Entries whose locale-spec changes are re-keyed in place (insertion
        order, payload and kind preserved).  Running this twice in a row
        renames nothing the second time.

        Returns
        -------
        dict[str, str] : ``{old_filename: new_filename}`` for renamed entries.

        Raises
        ------
        UserInputError
            If two entries would end up with the same filename.  Nothing is
            renamed in that case.
        """
        new_specs: dict[str, str] = {}
        owners: dict[str, str] = {}
        for old_name, entry in self._entries.items():
            spec = reconcile_locale_spec(entry.locale_spec, entry.locales, self.catalog)
            new_name = build_media_filename(entry.kind.value, spec, entry.rest)
            if new_name in owners:
                raise UserInputError(
                    f"Media files '{owners[new_name]}' and '{old_name}' would both be "
                    f"saved as '{new_name}'. Remove one of them before approving."
                )
            owners[new_name] = old_name
            new_specs[old_name] = spec

        renamed: dict[str, str] = {}
        rebuilt: dict[str, MediaEntry] = {}
        for old_name, entry in self._entries.items():
            entry.locale_spec = new_specs[old_name]
            new_name = entry.filename
            if new_name != old_name:
                renamed[old_name] = new_name
            rebuilt[new_name] = entry

        self._entries = rebuilt
        return renamed

    def files(self) -> list[tuple[str, bytes]]:
        """Flat ``(filename, payload)`` pairs for submission."""
        return [(name, entry.payload) for name, entry in self._entries.items()]
