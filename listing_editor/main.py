"""
listing_editor/main.py
-----------------------------------------------------------------------------
FastAPI application entrypoint for the Listing Editor.

This module is a **thin routing layer**: each route handler orchestrates
calls to domain modules and returns the result.  All business logic lives
in dedicated modules:

Domain modules
~~~~~~~~~~~~~~
- ``listing_editor.locale_codec``   – locale-set ↔ filename encoding.
- ``listing_editor.media_registry`` – in-memory media model.
- ``listing_editor.listing_store``  – per-language listings + draft.
- ``listing_editor.validation``     – normalisation and approval checks.
- ``listing_editor.session_store``  – on-disk sessions and lifecycle.
- ``listing_editor.editor``         – editing-side composition of the above.
- ``listing_editor.cleanup``        – periodic expiry sweep.
- ``listing_editor.schema``         – Pydantic v2 models.

Run with:
    uvicorn listing_editor.main:app --host 127.0.0.1 --port 3000

Endpoints
---------
GET  /                          → HTML endpoint index
POST /upload                    → create a session from metadata + media
GET  /preview/{session_id}      → read-only HTML preview of a session
GET  /{session_id}              → {metadata}
GET  /{session_id}/media/       → [{name, data}] (base64)
POST /{session_id}/complete     → replace the bundle and approve
GET  /{session_id}/poll         → 288 / 289 until approved, then the files

Architecture notes
------------------
- Upload handlers are ``async`` only to read the multipart parts; the disk
  work runs in Starlette's threadpool.  Everything else is a plain ``def``
  handler, which FastAPI runs in the threadpool automatically.
- Sessions older than ``SESSION_MAX_AGE_HOURS`` are swept every
  ``CLEANUP_INTERVAL_HOURS`` by a task started in the app lifespan.
"""

from __future__ import annotations

import asyncio
import base64
import contextlib
import json
import logging
import os
import tomllib
from datetime import timedelta
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from fastapi import FastAPI, File, Form, HTTPException, UploadFile
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.templating import Jinja2Templates
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request

from listing_editor.cleanup import SessionCleanupRunner
from listing_editor.editor import EditorSession
from listing_editor.errors import SessionNotFoundError, UserInputError
from listing_editor.locale_codec import LOCALE_CATALOG, decode_locale_spec, parse_media_filename
from listing_editor.media_registry import classify
from listing_editor.schema import (
    CompleteResponse,
    MediaFile,
    MetadataResponse,
    PollFile,
    PollStatus,
    UploadResponse,
)
from listing_editor.session_store import (
    MAX_FILE_COUNT,
    MAX_FILE_SIZE,
    MAX_UPLOAD_SIZE,
    PollState,
    SessionManager,
    check_stored_filename,
)

logger = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# Bootstrap
# -----------------------------------------------------------------------------

load_dotenv()

_HERE = Path(__file__).parent
_TEMPLATES_DIR = _HERE / "templates"

_SESSIONS_DIR = Path(os.getenv("SESSIONS_DIR", str(_HERE.parent / "sessions")))
_SESSION_MAX_AGE = timedelta(hours=float(os.getenv("SESSION_MAX_AGE_HOURS", "24")))
_CLEANUP_INTERVAL_HOURS = float(os.getenv("CLEANUP_INTERVAL_HOURS", "24"))

# Non-standard codes the callers already understand.
POLL_NOT_TRACKED_STATUS = 288
POLL_NOT_APPROVED_STATUS = 289

# Read version from pyproject.toml (single source of truth).
_PYPROJECT = _HERE.parent / "pyproject.toml"
with open(_PYPROJECT, "rb") as _f:
    _APP_VERSION: str = tomllib.load(_f)["project"]["version"]

manager = SessionManager(_SESSIONS_DIR)


@contextlib.asynccontextmanager
async def lifespan(_app: FastAPI):
    runner = SessionCleanupRunner(
        manager,
        max_age=_SESSION_MAX_AGE,
        interval_seconds=_CLEANUP_INTERVAL_HOURS * 3600,
    )
    task = asyncio.create_task(runner.run_periodic()) if runner.is_enabled else None
    try:
        yield
    finally:
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task


# -----------------------------------------------------------------------------
# FastAPI app
# -----------------------------------------------------------------------------

app = FastAPI(
    title="Listing Editor",
    description=(
        "Session server for reviewing app-store listings: upload media and "
        "metadata, let a human revise and approve them, poll for the result."
    ),
    version=_APP_VERSION,
    lifespan=lifespan,
)

templates = Jinja2Templates(directory=str(_TEMPLATES_DIR))


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------


def _parse_metadata(raw: str | None) -> dict[str, Any]:
    """
    Decode the ``metadata`` form field.

    A missing or empty field yields ``{}``.

    Raises
    ------
    UserInputError : Not valid JSON, or not a JSON object.
    """
    if raw is None or raw.strip() == "":
        return {}
    try:
        document = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise UserInputError("Invalid metadata JSON.") from exc
    if not isinstance(document, dict):
        raise UserInputError("Metadata must be a JSON object.")
    return document


async def _read_bundle(
    metadata: str | None, files: list[UploadFile] | None
) -> tuple[dict[str, Any], list[tuple[str, bytes]]]:
    """
    Read and check a multipart bundle before anything touches the disk.

    Raises
    ------
    HTTPException(400) : Bad metadata, bad filename, too many files.
    HTTPException(413) : A file or the whole upload is too large.
    """
    try:
        document = _parse_metadata(metadata)
    except UserInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    uploads = files or []
    if len(uploads) > MAX_FILE_COUNT:
        raise HTTPException(
            status_code=400,
            detail=f"Upload contains {len(uploads)} files, exceeding the maximum of {MAX_FILE_COUNT}.",
        )

    bundle: list[tuple[str, bytes]] = []
    total = 0
    for upload in uploads:
        name = upload.filename or ""
        try:
            check_stored_filename(name)
            _, locale_spec, _ = parse_media_filename(name)
            classify(name)
            if not decode_locale_spec(locale_spec, LOCALE_CATALOG):
                raise UserInputError(f"Media file '{name}' is not assigned to any locale.")
        except UserInputError as exc:
            logger.warning("Rejected upload file %r: %s", name, exc)
            raise HTTPException(status_code=400, detail=str(exc)) from exc

        payload = await upload.read()
        if len(payload) > MAX_FILE_SIZE:
            raise HTTPException(
                status_code=413,
                detail=f"File '{name}' is {len(payload):,} bytes, exceeding the {MAX_FILE_SIZE:,}-byte limit.",
            )
        total += len(payload)
        if total > MAX_UPLOAD_SIZE:
            raise HTTPException(
                status_code=413,
                detail=f"Upload exceeds the {MAX_UPLOAD_SIZE:,}-byte limit.",
            )
        bundle.append((name, payload))

    return document, bundle


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


# -----------------------------------------------------------------------------
# Routes
# -----------------------------------------------------------------------------


@app.get("/", response_class=HTMLResponse, include_in_schema=False)
def index(request: Request) -> HTMLResponse:
    """Serve a short HTML page listing the API endpoints."""
    return templates.TemplateResponse(request, "index.html", {"app_version": _APP_VERSION})


@app.post("/upload", response_model=UploadResponse, summary="Create a session from an upload")
async def upload(
    metadata: str | None = Form(default=None),
    files: list[UploadFile] | None = File(default=None),
) -> UploadResponse:
    """
    Store a caller's metadata document and media files in a new session.

    Returns
    -------
    UploadResponse with the poll URL (for the caller) and the preview URL
    (for the human reviewer).

    Raises
    ------
    HTTPException(400) : Bad metadata or filenames; no session is created.
    HTTPException(500) : The bundle could not be written.
    """
    document, bundle = await _read_bundle(metadata, files)
    try:
        session_id = await run_in_threadpool(manager.create_session, document, bundle)
    except UserInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except OSError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    return UploadResponse(poll_url=f"/{session_id}/poll", preview_url=f"/preview/{session_id}")


@app.get("/preview/{session_id}", response_class=HTMLResponse, summary="Preview a session")
def preview(request: Request, session_id: str) -> HTMLResponse:
    """
    Render a read-only summary of the session: every listing with the media
    assigned to its locale.
    """
    try:
        editor = EditorSession.load(manager, session_id, LOCALE_CATALOG)
    except SessionNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except UserInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    return templates.TemplateResponse(
        request,
        "preview.html",
        {
            "session_id": session_id,
            "listings": editor.metadata.listings,
            "media": editor.media_overview(),
            "app_version": _APP_VERSION,
        },
    )


@app.get("/{session_id}", response_model=MetadataResponse, summary="Get session metadata")
def get_metadata(session_id: str) -> MetadataResponse:
    try:
        document = manager.fetch_metadata(session_id)
    except SessionNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except OSError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return MetadataResponse(metadata=document)


@app.get("/{session_id}/media/", response_model=list[MediaFile], summary="Get session media")
def get_media(session_id: str) -> list[MediaFile]:
    """Return every stored media file (base64), excluding metadata.json."""
    try:
        stored = manager.list_media(session_id)
    except SessionNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except OSError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return [MediaFile(name=name, data=_b64(data)) for name, data in stored]


@app.post(
    "/{session_id}/complete",
    response_model=CompleteResponse,
    summary="Replace a session's bundle and approve it",
)
async def complete(
    session_id: str,
    metadata: str | None = Form(default=None),
    files: list[UploadFile] | None = File(default=None),
) -> CompleteResponse:
    """
    Wipe the session's stored files, write the approved bundle and mark the
    session approved so the next poll returns it.

    Raises
    ------
    HTTPException(404) : Unknown session.
    HTTPException(400) : Bad metadata or filenames; stored files unchanged.
    """
    if not manager.exists(session_id):
        raise HTTPException(status_code=404, detail=f"Session not found: '{session_id}'.")

    document, bundle = await _read_bundle(metadata, files)
    try:
        await run_in_threadpool(manager.complete, session_id, document, bundle)
    except SessionNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except UserInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except OSError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    return CompleteResponse(status="Session updated", session_id=session_id)


@app.get(
    "/{session_id}/poll",
    response_model=list[PollFile],
    responses={
        POLL_NOT_TRACKED_STATUS: {"model": PollStatus, "description": "First poll, not approved"},
        POLL_NOT_APPROVED_STATUS: {"model": PollStatus, "description": "Not approved yet"},
    },
    summary="Collect an approved session",
)
def poll(session_id: str) -> list[PollFile] | JSONResponse:
    """
    Return the approved bundle exactly once, then delete the session.

    Before approval the first poll answers 288 and later polls 289, so the
    caller can tell "session seen for the first time" from "still waiting".
    """
    try:
        result = manager.consume(session_id)
    except SessionNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except OSError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    if result.state is PollState.NOT_TRACKED:
        return JSONResponse(
            status_code=POLL_NOT_TRACKED_STATUS, content={"status": "Session not approved-1"}
        )
    if result.state is PollState.NOT_APPROVED:
        return JSONResponse(
            status_code=POLL_NOT_APPROVED_STATUS, content={"status": "Session not approved"}
        )

    return [PollFile(filename=name, data=_b64(data)) for name, data in result.files]
