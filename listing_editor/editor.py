"""
listing_editor/editor.py
-----------------------------------------------------------------------------
Editing-side model of one session: metadata, listings and media together.

``EditorSession`` is what the web editor drives.  It loads a session from
the :class:`~listing_editor.session_store.SessionManager`, lets the user
revise listings and locale-scoped media, and on approval normalises,
validates, reconciles filenames and submits the bundle back to the store.

Media uploaded from the editor is always scoped to the active listing's
locale.  Filenames follow the caller's conventions::

    Screenshot_<loc>_<millis>.<ext>
    Icon_<loc>_<millis>.png
    Trailer_<loc>_<loc>-asset.<ext>
    TrailerImage_<loc>_<loc>-asset.<ext>
"""

from __future__ import annotations

import io
import logging
import time
from collections.abc import Sequence

from PIL import Image, UnidentifiedImageError
from pydantic import ValidationError

from listing_editor.errors import UserInputError
from listing_editor.listing_store import ListingStore
from listing_editor.media_registry import MediaEntry, MediaKind, MediaRegistry
from listing_editor.schema import Pricing, SessionMetadata
from listing_editor.session_store import SessionManager
from listing_editor.validation import normalize_metadata, validate_metadata

logger = logging.getLogger(__name__)

# Top-level settings the editor exposes next to the listings.
SETTINGS_FIELDS: tuple[str, ...] = (
    "application_category",
    "visibility",
    "target_publish_mode",
    "target_publish_date",
    "automatic_backup_enabled",
    "has_external_in_app_products",
    "meet_accessibility_guidelines",
)
PRICING_FIELDS: tuple[str, ...] = ("price_id", "trial_period")


def _extension(original_name: str, default: str) -> str:
    _, dot, ext = original_name.rpartition(".")
    return ext.lower() if dot and ext else default


def check_icon(payload: bytes) -> None:
    """
    Accept only square PNG images as icons.

    Raises
    ------
    UserInputError
    """
    try:
        with Image.open(io.BytesIO(payload)) as img:
            fmt = img.format
            width, height = img.size
    except (UnidentifiedImageError, OSError) as exc:
        raise UserInputError("Failed to load image. Please upload a valid PNG file.") from exc

    if fmt != "PNG":
        raise UserInputError("Please upload a PNG file for the icon.")
    if width != height:
        raise UserInputError("Icon image must be square (1:1 aspect ratio).")


class EditorSession:
    """
    In-memory editing state for one session.

    Build it with :meth:`load`; the constructor is for tests and callers that
    already hold the parts.
    """

    def __init__(
        self,
        manager: SessionManager,
        session_id: str,
        metadata: SessionMetadata,
        registry: MediaRegistry,
    ) -> None:
        self.manager = manager
        self.session_id = session_id
        self.metadata = metadata
        self.registry = registry
        self.listings = ListingStore(metadata.listings)

        if not self.listings.keys() and self.registry.catalog:
            self.add_listing(self.registry.catalog[0])

    @classmethod
    def load(
        cls,
        manager: SessionManager,
        session_id: str,
        catalog: Sequence[str] | None = None,
    ) -> EditorSession:
        """
        Read a session's metadata and media from the store.

        Raises
        ------
        SessionNotFoundError : Unknown session.
        UserInputError       : The stored metadata is not a valid document,
                               or a stored file has an unknown kind prefix.
        """
        document = manager.fetch_metadata(session_id)
        try:
            metadata = SessionMetadata.model_validate(document)
        except ValidationError as exc:
            raise UserInputError(f"Session metadata is invalid: {exc}") from exc

        registry = MediaRegistry(catalog)
        for name, payload in manager.list_media(session_id):
            registry.add(name, payload)

        return cls(manager, session_id, metadata, registry)

    @property
    def active_locale(self) -> str | None:
        return self.listings.active_key

    def _require_active(self) -> str:
        if self.active_locale is None:
            raise UserInputError("No listing selected.")
        return self.active_locale

    # -- listings -----------------------------------------------------------

    def add_listing(self, key: str) -> bool:
        """Create a listing for *key* and switch to it."""
        if not self.listings.create(key):
            return False
        self.listings.switch(key)
        return True

    def switch_listing(self, key: str) -> None:
        self.listings.switch(key)
        logger.debug("Switched to listing %s", key)

    def remove_listing(self) -> None:
        """Remove the active listing (never the last one)."""
        self.listings.delete(self._require_active())

    def edit_listing(self, **fields) -> None:
        self.listings.edit(**fields)

    def update_settings(self, **fields) -> None:
        """
        Update non-listing metadata, e.g.
        ``update_settings(visibility="Public", price_id="Free")``.
        """
        for name, value in fields.items():
            if name in SETTINGS_FIELDS:
                setattr(self.metadata, name, value)
            elif name in PRICING_FIELDS:
                if self.metadata.pricing is None:
                    self.metadata.pricing = Pricing()
                setattr(self.metadata.pricing, name, value)
            else:
                raise UserInputError(f"Not an editable setting: {name}")

    # -- media --------------------------------------------------------------

    def _unique_name(self, kind: MediaKind, locale: str, ext: str) -> str:
        stamp = int(time.time() * 1000)
        name = f"{kind.value}_{locale}_{stamp}.{ext}"
        while name in self.registry:
            stamp += 1
            name = f"{kind.value}_{locale}_{stamp}.{ext}"
        return name

    def upload_screenshot(self, payload: bytes, original_name: str) -> MediaEntry:
        locale = self._require_active()
        name = self._unique_name(MediaKind.SCREENSHOT, locale, _extension(original_name, "png"))
        return self.registry.add(name, payload, locale)

    def upload_trailer(self, payload: bytes, original_name: str) -> MediaEntry:
        locale = self._require_active()
        ext = _extension(original_name, "mp4")
        return self.registry.add(f"{MediaKind.TRAILER.value}_{locale}_{locale}-asset.{ext}", payload, locale)

    def upload_trailer_image(self, payload: bytes, original_name: str) -> MediaEntry:
        locale = self._require_active()
        ext = _extension(original_name, "png")
        name = f"{MediaKind.TRAILER_IMAGE.value}_{locale}_{locale}-asset.{ext}"
        return self.registry.add(name, payload, locale)

    def change_icon(self, payload: bytes) -> MediaEntry:
        """
        Replace the active locale's icon.

        The previous icon is unassigned from this locale only; if other
        locales still share it, it stays for them.
        """
        locale = self._require_active()
        check_icon(payload)

        existing = self.registry.find_first(locale, MediaKind.ICON)
        if existing is not None:
            self.registry.unassign_locale(existing.filename, locale)
            logger.debug("Removed existing icon %s for %s", existing.filename, locale)

        name = self._unique_name(MediaKind.ICON, locale, "png")
        return self.registry.add(name, payload, locale, content_type="image/png")

    def delete_media(self, filename: str) -> None:
        """Drop *filename* from the active locale (and entirely if unused)."""
        self.registry.unassign_locale(filename, self._require_active())

    def media_for_active(self, kind: MediaKind) -> list[MediaEntry]:
        if self.active_locale is None:
            return []
        return self.registry.select_for_locale(self.active_locale, kind)

    def media_overview(self) -> dict[str, dict[str, list[str]]]:
        """``{listing_key: {kind: [filename, ...]}}`` for every listing."""
        overview: dict[str, dict[str, list[str]]] = {}
        for key in self.listings.keys():
            overview[key] = {
                kind.value: [e.filename for e in self.registry.select_for_locale(key, kind)]
                for kind in MediaKind
            }
        return overview

    # -- approval -----------------------------------------------------------

    def approve(self) -> list[str]:
        """
        Validate and submit the session.

        Returns
        -------
        list[str] : Validation errors.  When non-empty nothing is submitted
                    and the editing state is unchanged.
        """
        self.listings.save_current()
        normalized = normalize_metadata(self.metadata)

        errors = validate_metadata(normalized, self.registry)
        if errors:
            return errors

        try:
            renamed = self.registry.reconcile()
        except UserInputError as exc:
            return [str(exc)]

        self.metadata = normalized
        self.listings.listings = normalized.listings
        if renamed:
            logger.info("Session %s: %d media files renamed", self.session_id, len(renamed))

        self.manager.complete(self.session_id, normalized.to_document(), self.registry.files())
        return []
