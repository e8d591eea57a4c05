"""
listing_editor/validation.py
-----------------------------------------------------------------------------
Approval gate for a session's metadata and media.

Two steps, always in this order:

1. ``normalize_metadata`` fills in defaults the store expects (currently
   only the trial period) and returns a new document.
2. ``validate_metadata`` is pure.  Every rule is evaluated and every
   failure reported, so the user can fix everything in one round-trip.
"""

from __future__ import annotations

from listing_editor.media_registry import MediaKind, MediaRegistry
from listing_editor.schema import Pricing, SessionMetadata

NO_FREE_TRIAL = "NoFreeTrial"


def _blank(value: str | None) -> bool:
    return value is None or value.strip() == ""


def normalize_metadata(metadata: SessionMetadata) -> SessionMetadata:
    """Return a copy of *metadata* with an unset trial period defaulted."""
    normalized = metadata.model_copy(deep=True)
    if normalized.pricing is not None and _blank(normalized.pricing.trial_period):
        normalized.pricing = normalized.pricing.model_copy(update={"trial_period": NO_FREE_TRIAL})
    return normalized


def validate_metadata(metadata: SessionMetadata, registry: MediaRegistry) -> list[str]:
    """
    Check everything the store requires before a submission.

    Parameters
    ----------
    metadata : Normalised session metadata.
    registry : The session's media; only Screenshot presence is checked.

    Returns
    -------
    list[str] : Human-readable error messages; empty when valid.
    """
    errors: list[str] = []

    if _blank(metadata.application_category):
        errors.append("Application Category is required.")

    if _blank(metadata.visibility):
        errors.append("Visibility is required.")

    if _blank(metadata.target_publish_mode):
        errors.append("Target Publish Mode is required.")

    # The date only matters when the user publishes by hand.
    mode = (metadata.target_publish_mode or "").strip().lower()
    if mode == "manual" and _blank(metadata.target_publish_date):
        errors.append("Target Publish Date is required.")

    pricing = metadata.pricing or Pricing()
    if _blank(pricing.price_id):
        errors.append("Pricing (Price ID) is required.")

    if not metadata.listings:
        errors.append("At least one listing (language) is required.")
    for lang, listing in metadata.listings.items():
        if _blank(listing.base_listing.title):
            errors.append(f"Title is required for listing: {lang}")
        if _blank(listing.base_listing.description):
            errors.append(f"Description is required for listing: {lang}")

    if not registry.has_kind(MediaKind.SCREENSHOT):
        errors.append("At least one Screenshot is required.")

    return errors
