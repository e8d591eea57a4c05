"""
listing_editor/schema.py
-----------------------------------------------------------------------------
Pydantic v2 models for the session metadata document and every response
object of the Listing Editor API.

Design principles
-----------------
• Keep models thin – no business logic here.
• The metadata document belongs to the caller.  Field names are snake_case
  in Python and camelCase on the wire, and unknown fields are kept
  verbatim so a document survives an edit cycle unchanged apart from what
  the user touched.
• Every field has a `description` so FastAPI's OpenAPI UI is useful.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    def to_document(self) -> dict[str, Any]:
        """Serialise with wire (camelCase) names, omitting unset optionals."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# -----------------------------------------------------------------------------
# Metadata document
# -----------------------------------------------------------------------------


class Pricing(_CamelModel):
    price_id: str | None = Field(
        default=None,
        description="Store price tier identifier (e.g. 'Free').",
        examples=["Free", "Tier2"],
    )
    trial_period: str | None = Field(
        default=None,
        description="Trial period identifier; normalised to 'NoFreeTrial' when unset.",
        examples=["NoFreeTrial", "OneWeek"],
    )


class BaseListing(_CamelModel):
    """
    The editable text content of one language listing.

    ``features`` and ``minimum_hardware`` are ordered lists of free-text
    bullet points.  ``images`` is carried through untouched: media lives in
    the session's file set, not in the document.
    """

    title: str = Field(default="", description="Listing title shown in the store.")
    description: str = Field(default="", description="Long-form listing description.")
    features: list[str] = Field(default_factory=list, description="Ordered feature bullets.")
    release_notes: str = Field(default="", description="What's new in this release.")
    minimum_hardware: list[str] = Field(
        default_factory=list, description="Ordered minimum hardware requirements."
    )
    images: list[Any] = Field(default_factory=list, description="Opaque image references.")


class ListingRecord(_CamelModel):
    base_listing: BaseListing = Field(default_factory=BaseListing)
    platform_overrides: dict[str, Any] = Field(
        default_factory=dict,
        description="Per-platform overrides; carried through unchanged.",
    )


class SessionMetadata(_CamelModel):
    """
    The application-submission document a caller uploads with its media.

    Fields
    ------
    application_category – store category, required for approval.
    visibility           – store visibility, required for approval.
    target_publish_mode  – e.g. "Immediate" or "Manual"; required.
    target_publish_date  – required only when the mode is "manual".
    pricing              – price tier and trial period.
    listings             – language key → ListingRecord.
    """

    application_category: str | None = Field(default=None, examples=["Games_Puzzle"])
    visibility: str | None = Field(default=None, examples=["Public", "Private"])
    target_publish_mode: str | None = Field(default=None, examples=["Immediate", "Manual"])
    target_publish_date: str | None = Field(
        default=None,
        description="ISO-8601 date (or datetime); required when the publish mode is manual.",
    )
    pricing: Pricing | None = None
    automatic_backup_enabled: bool | None = None
    has_external_in_app_products: bool | None = None
    meet_accessibility_guidelines: bool | None = None
    gaming_options: list[dict[str, Any]] | None = None
    listings: dict[str, ListingRecord] = Field(
        default_factory=dict,
        description="Map of language/locale key → listing.",
    )


# -----------------------------------------------------------------------------
# HTTP responses
# -----------------------------------------------------------------------------


class UploadResponse(_CamelModel):
    """Response body for POST /upload."""

    poll_url: str = Field(..., description="Relative URL the caller polls for the result.")
    preview_url: str = Field(..., description="Relative URL of the human-facing preview.")


class CompleteResponse(_CamelModel):
    """Response body for POST /{session_id}/complete."""

    status: str = Field(..., examples=["Session updated"])
    session_id: str = Field(..., description="The completed session's id.")


class MetadataResponse(BaseModel):
    """Response body for GET /{session_id}."""

    metadata: dict[str, Any] = Field(..., description="The stored metadata document.")


class MediaFile(BaseModel):
    """One stored media file as returned by GET /{session_id}/media/."""

    name: str = Field(..., description="Canonical media filename.")
    data: str = Field(..., description="Base64-encoded file content.")


class PollFile(BaseModel):
    """One file of an approved bundle as returned by GET /{session_id}/poll."""

    filename: str = Field(..., description="Stored filename (media or metadata.json).")
    data: str = Field(..., description="Base64-encoded file content.")


class PollStatus(BaseModel):
    """Not-ready body for GET /{session_id}/poll (HTTP 288 / 289)."""

    status: str
