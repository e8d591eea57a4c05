"""
listing_editor/locale_codec.py
-----------------------------------------------------------------------------
Encode and decode which locales a media file applies to.

Media files travel between the caller, the session store and the editor as
flat blobs keyed only by filename, so locale membership is packed into the
filename itself::

    <Kind>_<locale-spec>_<rest>

    Screenshot_en-us,fr-fr_1718000000000.png   explicit list
    Icon_all_1718000000000.png                 every catalog locale
    Trailer_all#de-de,ja-jp_intro.mp4          every locale except two

Only the first two underscore-delimited segments carry meaning.  ``rest``
(uniqueness token + extension) may contain underscores and is reassembled
verbatim.

Locale-spec forms
-----------------
explicit   – comma-joined locale codes, kept literally on decode.
exclusion  – the token ``all`` optionally followed by ``#`` and a comma list
             of excluded codes.  Exclusions are compared case-insensitively
             against the catalog.

Round-trip property
-------------------
For any subset ``L`` of the catalog ``C``::

    decode_locale_spec(encode_locale_spec(L, C), C) == L

Environment variables
---------------------
LOCALE_CATALOG – comma-separated, ordered list of locale codes that ``all``
                 expands to.  Defaults to ``DEFAULT_LOCALE_CATALOG``.
"""

from __future__ import annotations

import os
from collections.abc import Iterable, Sequence

from dotenv import load_dotenv

from listing_editor.errors import UserInputError

load_dotenv()

# -----------------------------------------------------------------------------
# Locale catalog
# -----------------------------------------------------------------------------

DEFAULT_LOCALE_CATALOG: tuple[str, ...] = (
    "en-us",
    "en-gb",
    "de-de",
    "fr-fr",
    "es-es",
    "it-it",
    "nl-nl",
    "pl-pl",
    "pt-br",
    "ru-ru",
    "sv-se",
    "tr-tr",
    "ja-jp",
    "ko-kr",
    "zh-cn",
    "zh-tw",
)


def _catalog_from_env(raw: str | None) -> tuple[str, ...]:
    if not raw:
        return DEFAULT_LOCALE_CATALOG
    codes = [code.strip() for code in raw.split(",")]
    # dict.fromkeys keeps the first occurrence and the declared order.
    return tuple(dict.fromkeys(code for code in codes if code))


LOCALE_CATALOG: tuple[str, ...] = _catalog_from_env(os.getenv("LOCALE_CATALOG"))

ALL_TOKEN = "all"
EXCLUSION_SEPARATOR = "#"

# -----------------------------------------------------------------------------
# Locale-spec encoding
# -----------------------------------------------------------------------------


def is_exclusion_form(spec: str) -> bool:
    """True when *spec* is ``all`` or ``all#...``."""
    return spec.startswith(ALL_TOKEN)


def parse_exclusions(spec: str) -> list[str]:
    """
    Return the excluded codes recorded in an exclusion-form spec, in order.

    ``"all"`` yields ``[]``; ``"all#fr-fr, DE-de"`` yields
    ``["fr-fr", "de-de"]``.  Codes are trimmed and case-folded; empty
    tokens are dropped.
    """
    tail = spec[len(ALL_TOKEN) + 1 :]
    return [token.strip().casefold() for token in tail.split(",") if token.strip()]


def decode_locale_spec(spec: str, catalog: Sequence[str]) -> set[str]:
    """
    Expand a locale-spec into the set of locale codes it denotes.

    Parameters
    ----------
    spec    : Explicit comma list or ``all[#exclusions]``.
    catalog : Ordered full locale catalog ``all`` expands to.

    Returns
    -------
    set[str] : For the exclusion form, every catalog locale whose
               case-folded code is not excluded.  For the explicit form, the
               trimmed tokens as given (no validation against the catalog).
               The empty spec decodes to the empty set.
    """
    if is_exclusion_form(spec):
        excluded = set(parse_exclusions(spec))
        return {loc for loc in catalog if loc.strip().casefold() not in excluded}
    if spec == "":
        return set()
    return {token.strip() for token in spec.split(",")}


def encode_locale_spec(locales: Iterable[str], catalog: Sequence[str]) -> str:
    """
    Produce the canonical locale-spec for a set of locales.

    - The full catalog encodes as ``all``.
    - A catalog subset missing fewer locales than it contains encodes as
      ``all#<sorted exclusions>``.
    - Anything else encodes as the sorted explicit list.
    """
    wanted = set(locales)
    full = set(catalog)
    if wanted == full:
        return ALL_TOKEN

    excluded = full - wanted
    # Strictly fewer excluded than included; a tie stays explicit.
    if wanted <= full and 0 < len(excluded) < len(wanted):
        return ALL_TOKEN + EXCLUSION_SEPARATOR + ",".join(sorted(excluded))

    return ",".join(sorted(wanted))


def reconcile_locale_spec(recorded: str, locales: Iterable[str], catalog: Sequence[str]) -> str:
    """
    Recompute the locale-spec of an existing entry after its locales changed.

    An entry recorded in exclusion form keeps that form and only ever grows
    its exclusion list: previously recorded exclusions stay in place and
    catalog locales the entry has since lost are appended in catalog order.
    When nothing new is missing the recorded spec is returned unchanged.

    An entry recorded in explicit form is re-encoded canonically with
    :func:`encode_locale_spec`.
    """
    live = set(locales)
    if not is_exclusion_form(recorded):
        return encode_locale_spec(live, catalog)

    recorded_exclusions = parse_exclusions(recorded)
    already = set(recorded_exclusions)
    newly_missing = [
        loc for loc in catalog if loc not in live and loc.strip().casefold() not in already
    ]
    if not newly_missing:
        return recorded

    return ALL_TOKEN + EXCLUSION_SEPARATOR + ",".join(recorded_exclusions + newly_missing)


# -----------------------------------------------------------------------------
# Filename assembly / parsing
# -----------------------------------------------------------------------------


def parse_media_filename(filename: str) -> tuple[str, str, str]:
    """
    Split a media filename into ``(kind_token, locale_spec, rest)``.

    Raises
    ------
    UserInputError
        If the name contains path separators or has fewer than three
        underscore-delimited segments.
    """
    if "/" in filename or "\\" in filename or filename in ("", ".", ".."):
        raise UserInputError(f"Invalid media filename: '{filename}'.")

    parts = filename.split("_")
    if len(parts) < 3:
        raise UserInputError(
            f"Media filename '{filename}' must look like <Kind>_<locales>_<name>.<ext>."
        )
    return parts[0], parts[1], "_".join(parts[2:])


def build_media_filename(kind_token: str, locale_spec: str, rest: str) -> str:
    return f"{kind_token}_{locale_spec}_{rest}"


# -----------------------------------------------------------------------------
# Content types
# -----------------------------------------------------------------------------

_CONTENT_TYPES: dict[str, str] = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
    "mp4": "video/mp4",
    "webm": "video/webm",
}


def guess_content_type(filename: str) -> str:
    """Map a media filename's extension to a MIME type."""
    _, dot, ext = filename.rpartition(".")
    if not dot:
        return "application/octet-stream"
    return _CONTENT_TYPES.get(ext.lower(), "application/octet-stream")
