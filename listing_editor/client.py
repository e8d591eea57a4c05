"""
listing_editor/client.py
-----------------------------------------------------------------------------
Thin synchronous httpx wrapper for the *caller* side of the protocol.

A build pipeline uploads its media and metadata, hands the preview URL to a
human, then polls until the human approves and collects the final bundle::

    resp = upload_bundle(metadata, files)
    print("Review at", resp.preview_url)
    final_files = wait_for_approval(resp.poll_url)

Poll status codes
-----------------
200 – approved; body is ``[{filename, data}]`` (base64).  The server deletes
      the session right after sending it.
288 – first poll of a session that is not approved yet.
289 – any later poll before approval.
404 – unknown, expired or already collected session.

Environment variables
---------------------
LISTING_EDITOR_URL – Base URL of the listing editor server
                     (default: http://localhost:3000).
"""

from __future__ import annotations

import base64
import json
import os
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

import httpx
from dotenv import load_dotenv

from listing_editor.locale_codec import guess_content_type
from listing_editor.schema import UploadResponse

load_dotenv()

# -----------------------------------------------------------------------------
# Configuration
# -----------------------------------------------------------------------------

_BASE_URL: str = os.getenv("LISTING_EDITOR_URL", "http://localhost:3000").rstrip("/")

# Uploads can carry trailers; give the write side room.
_TIMEOUT = httpx.Timeout(connect=10.0, read=60.0, write=120.0, pool=5.0)

NOT_TRACKED_STATUS = 288
NOT_APPROVED_STATUS = 289


@dataclass
class PollOutcome:
    """Result of one poll.  ``files`` is only populated when ``ready``."""

    ready: bool
    status_code: int
    files: list[tuple[str, bytes]] = field(default_factory=list)


def _request(
    method: str,
    url: str,
    *,
    base_url: str | None,
    client: httpx.Client | None,
    **kwargs: Any,
) -> httpx.Response:
    if client is not None:
        return client.request(method, url, **kwargs)
    with httpx.Client(base_url=base_url or _BASE_URL, timeout=_TIMEOUT) as own_client:
        return own_client.request(method, url, **kwargs)


# -----------------------------------------------------------------------------
# Public API
# -----------------------------------------------------------------------------


def upload_bundle(
    metadata: dict[str, Any],
    files: Iterable[tuple[str, bytes]],
    *,
    base_url: str | None = None,
    client: httpx.Client | None = None,
) -> UploadResponse:
    """
    Create a session from a metadata document and canonical media files.

    Parameters
    ----------
    metadata : The submission document (serialised to JSON).
    files    : ``(filename, bytes)`` pairs; filenames must follow the
               ``<Kind>_<locales>_<name>.<ext>`` convention.
    base_url : Server URL override (defaults to ``LISTING_EDITOR_URL``).
    client   : Optional pre-configured ``httpx.Client`` (used as-is, not
               closed).

    Returns
    -------
    UploadResponse with the relative poll and preview URLs.

    Raises
    ------
    httpx.HTTPStatusError : The server rejected the upload (e.g. 400 for an
                            unknown media kind).
    """
    multipart = [("files", (name, payload, guess_content_type(name))) for name, payload in files]
    response = _request(
        "POST",
        "/upload",
        base_url=base_url,
        client=client,
        data={"metadata": json.dumps(metadata)},
        files=multipart or None,
    )
    response.raise_for_status()
    return UploadResponse.model_validate(response.json())


def poll_session(
    poll_url: str,
    *,
    base_url: str | None = None,
    client: httpx.Client | None = None,
) -> PollOutcome:
    """
    Poll once.

    Raises
    ------
    httpx.HTTPStatusError : 404 (gone) or any other error status.
    ValueError            : 200 with a body that is not a file list.
    """
    response = _request("GET", poll_url, base_url=base_url, client=client)

    if response.status_code in (NOT_TRACKED_STATUS, NOT_APPROVED_STATUS):
        return PollOutcome(ready=False, status_code=response.status_code)

    response.raise_for_status()
    data = response.json()
    if not isinstance(data, list):
        raise ValueError(f"Unexpected poll response: {str(data)[:200]}")

    files = [(item["filename"], base64.b64decode(item["data"])) for item in data]
    return PollOutcome(ready=True, status_code=response.status_code, files=files)


def wait_for_approval(
    poll_url: str,
    *,
    interval: float = 5.0,
    timeout: float = 3600.0,
    base_url: str | None = None,
    client: httpx.Client | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> list[tuple[str, bytes]]:
    """
    Poll until the session is approved and return its final files.

    Raises
    ------
    TimeoutError          : Not approved within *timeout* seconds.
    httpx.HTTPStatusError : The session disappeared (404) or the server
                            failed.
    """
    deadline = time.monotonic() + timeout
    while True:
        outcome = poll_session(poll_url, base_url=base_url, client=client)
        if outcome.ready:
            return outcome.files
        if time.monotonic() + interval > deadline:
            raise TimeoutError(f"Session at {poll_url} was not approved within {timeout:.0f}s.")
        sleep(interval)
