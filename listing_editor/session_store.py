"""
listing_editor/session_store.py
-----------------------------------------------------------------------------
Filesystem-backed session store and the per-session lifecycle.

On-disk layout
--------------
::

    <root>/
        <session_id>/
            metadata.json
            Screenshot_en-us_1718000000000.png
            Icon_all_1718000000001.png
            ...

Flat, one directory per session.  Locale membership lives only in the
media filenames (see :mod:`listing_editor.locale_codec`).

Lifecycle
---------
::

    CREATED → AWAITING_APPROVAL → APPROVED → CONSUMED
                    └──────────────┴──→ EXPIRED   (expire_stale)

``consume`` is an at-most-once read: the first call after approval returns
every stored file and deletes the session; later calls raise
``SessionNotFoundError``.  Before approval it reports one of two distinct
not-ready states: never polled, or polled but not yet approved.

Concurrency
-----------
Sync FastAPI handlers run in a threadpool, so every operation on a session
holds that session's lock.  ``replace_files`` writes the new set into a
staging directory and swaps it in, so readers see either the old or the new
file set, never a mix.

Approval state is kept in memory.  A session directory found on disk
without a record (e.g. after a restart) is adopted as awaiting approval.
"""

from __future__ import annotations

import json
import logging
import re
import shutil
import threading
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from listing_editor.errors import SessionNotFoundError, StorageError, UserInputError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

METADATA_FILENAME = "metadata.json"

# Upload limits, enforced by the routing layer before anything is written.
MAX_FILE_SIZE: int = 52_428_800  # 50 MB per file (trailers)
MAX_FILE_COUNT: int = 200
MAX_UPLOAD_SIZE: int = 262_144_000  # 250 MB per request

# uuid4().hex – also the guard against path traversal via the URL.
_SESSION_ID_PATTERN = re.compile(r"^[0-9a-f]{32}$")

_STAGING_PREFIX = ".staging-"
_TRASH_PREFIX = ".trash-"

FileSet = Iterable[tuple[str, bytes]]


class SessionState(str, Enum):
    CREATED = "created"
    AWAITING_APPROVAL = "awaiting_approval"
    APPROVED = "approved"
    CONSUMED = "consumed"
    EXPIRED = "expired"


class PollState(str, Enum):
    """Outcome of :meth:`SessionManager.consume`."""

    NOT_TRACKED = "not_tracked"  # first poll ever, not approved
    NOT_APPROVED = "not_approved"
    READY = "ready"


@dataclass
class ConsumeResult:
    state: PollState
    files: list[tuple[str, bytes]] = field(default_factory=list)


@dataclass
class SessionRecord:
    state: SessionState = SessionState.CREATED
    polled: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def is_valid_session_id(session_id: str) -> bool:
    return bool(_SESSION_ID_PATTERN.match(session_id))


def check_stored_filename(name: str) -> None:
    """
    Reject names that could escape the session directory or clash with
    the metadata document.

    Raises
    ------
    UserInputError
    """
    if not name or "/" in name or "\\" in name or ".." in name or name.startswith("."):
        raise UserInputError(
            f"File name '{name}' contains path separators or parent references."
        )
    if name == METADATA_FILENAME:
        raise UserInputError(f"'{METADATA_FILENAME}' is reserved for the metadata document.")


def _write_bundle(target: Path, metadata_doc: dict[str, Any], files: list[tuple[str, bytes]]) -> None:
    (target / METADATA_FILENAME).write_text(
        json.dumps(metadata_doc, ensure_ascii=False), encoding="utf-8"
    )
    for name, payload in files:
        (target / name).write_bytes(payload)


def _read_dir(directory: Path, *, include_metadata: bool) -> list[tuple[str, bytes]]:
    result: list[tuple[str, bytes]] = []
    for child in sorted(directory.iterdir()):
        if not child.is_file():
            continue
        if child.name == METADATA_FILENAME and not include_metadata:
            continue
        result.append((child.name, child.read_bytes()))
    return result


# ---------------------------------------------------------------------------
# Session manager
# ---------------------------------------------------------------------------


class SessionManager:
    """
    Owns every session's on-disk file set and lifecycle state.

    Parameters
    ----------
    root : Directory holding one subdirectory per session.  Created if
           missing.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self._records: dict[str, SessionRecord] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    # -- internals ----------------------------------------------------------

    def _lock_for(self, session_id: str) -> threading.Lock:
        """
        Raises
        ------
        SessionNotFoundError : *session_id* is not a well-formed id.
        """
        if not is_valid_session_id(session_id):
            raise SessionNotFoundError(session_id)
        with self._guard:
            return self._locks.setdefault(session_id, threading.Lock())

    def _forget(self, session_id: str) -> None:
        with self._guard:
            self._records.pop(session_id, None)
            self._locks.pop(session_id, None)

    def _session_dir(self, session_id: str) -> Path:
        if not is_valid_session_id(session_id):
            raise SessionNotFoundError(session_id)
        return self.root / session_id

    def _require(self, session_id: str) -> tuple[SessionRecord, Path]:
        """Return the live record and directory.  Caller holds the session lock."""
        directory = self._session_dir(session_id)
        with self._guard:
            record = self._records.get(session_id)
        if not directory.is_dir():
            # Unknown, or swept from under us; either way drop the lock too.
            self._forget(session_id)
            raise SessionNotFoundError(session_id)
        if record is None:
            record = SessionRecord(state=SessionState.AWAITING_APPROVAL)
            with self._guard:
                self._records[session_id] = record
        return record, directory

    def _stage(self, session_id: str, metadata_doc: dict[str, Any], files: FileSet) -> Path:
        files = list(files)
        for name, _ in files:
            check_stored_filename(name)

        staging = self.root / f"{_STAGING_PREFIX}{session_id}-{uuid.uuid4().hex}"
        try:
            staging.mkdir()
            _write_bundle(staging, metadata_doc, files)
        except OSError as exc:
            shutil.rmtree(staging, ignore_errors=True)
            raise StorageError(f"Failed to write session files for {session_id}: {exc}") from exc
        return staging

    # -- lifecycle ----------------------------------------------------------

    def exists(self, session_id: str) -> bool:
        return is_valid_session_id(session_id) and (self.root / session_id).is_dir()

    def state(self, session_id: str) -> SessionState:
        with self._lock_for(session_id):
            record, _ = self._require(session_id)
            return record.state

    def create_session(self, metadata_doc: dict[str, Any], files: FileSet) -> str:
        """
        Allocate a new session and store its initial bundle.

        Returns
        -------
        str : The new session id.

        Raises
        ------
        UserInputError : A filename is unsafe or reserved (nothing is written).
        StorageError   : The bundle could not be written.
        """
        session_id = uuid.uuid4().hex
        record = SessionRecord()
        with self._lock_for(session_id):
            try:
                staging = self._stage(session_id, metadata_doc, files)
            except (UserInputError, OSError):
                self._forget(session_id)
                raise
            try:
                staging.rename(self.root / session_id)
            except OSError as exc:
                shutil.rmtree(staging, ignore_errors=True)
                self._forget(session_id)
                raise StorageError(f"Failed to create session {session_id}: {exc}") from exc
            record.state = SessionState.AWAITING_APPROVAL
            with self._guard:
                self._records[session_id] = record

        logger.info("Session %s created", session_id)
        return session_id

    def _replace_locked(self, session_id: str, metadata_doc: dict[str, Any], files: FileSet) -> None:
        _, directory = self._require(session_id)
        staging = self._stage(session_id, metadata_doc, files)
        trash = self.root / f"{_TRASH_PREFIX}{session_id}-{uuid.uuid4().hex}"
        try:
            directory.rename(trash)
            staging.rename(directory)
        except OSError as exc:
            shutil.rmtree(staging, ignore_errors=True)
            if trash.exists() and not directory.exists():
                trash.rename(directory)
            raise StorageError(f"Failed to replace files for session {session_id}: {exc}") from exc
        shutil.rmtree(trash, ignore_errors=True)

    def replace_files(self, session_id: str, metadata_doc: dict[str, Any], files: FileSet) -> None:
        """
        Wipe the session's stored files and write a new metadata document
        and file set in their place.

        Raises
        ------
        SessionNotFoundError, UserInputError, StorageError
        """
        with self._lock_for(session_id):
            self._replace_locked(session_id, metadata_doc, files)

    def mark_approved(self, session_id: str) -> None:
        with self._lock_for(session_id):
            record, _ = self._require(session_id)
            record.state = SessionState.APPROVED
        logger.info("Session %s approved", session_id)

    def complete(self, session_id: str, metadata_doc: dict[str, Any], files: FileSet) -> None:
        """Replace the session's bundle with the approved one and approve it."""
        with self._lock_for(session_id):
            self._replace_locked(session_id, metadata_doc, files)
            record, _ = self._require(session_id)
            record.state = SessionState.APPROVED
        logger.info("Session %s completed and approved", session_id)

    # -- reads --------------------------------------------------------------

    def fetch_metadata(self, session_id: str) -> dict[str, Any]:
        """
        Return the stored metadata document.

        Raises
        ------
        SessionNotFoundError : Unknown session or no metadata.json.
        StorageError         : metadata.json is unreadable.
        """
        with self._lock_for(session_id):
            _, directory = self._require(session_id)
            path = directory / METADATA_FILENAME
            if not path.is_file():
                logger.error("Metadata not found at %s", path)
                raise SessionNotFoundError(session_id)
            try:
                return json.loads(path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as exc:
                raise StorageError(f"Failed to read metadata for session {session_id}: {exc}") from exc

    def list_media(self, session_id: str) -> list[tuple[str, bytes]]:
        """Every stored file except ``metadata.json``, sorted by name."""
        with self._lock_for(session_id):
            _, directory = self._require(session_id)
            try:
                return _read_dir(directory, include_metadata=False)
            except OSError as exc:
                raise StorageError(f"Failed to read media for session {session_id}: {exc}") from exc

    def consume(self, session_id: str) -> ConsumeResult:
        """
        Hand the approved bundle to the poller exactly once.

        Returns
        -------
        ConsumeResult
            ``NOT_TRACKED`` on the first poll of an unapproved session,
            ``NOT_APPROVED`` on later polls before approval, ``READY`` with
            every stored file (metadata.json included) once approved.  The
            session is deleted right after a ``READY`` result.

        Raises
        ------
        SessionNotFoundError : Unknown, expired or already consumed.
        """
        with self._lock_for(session_id):
            record, directory = self._require(session_id)

            if record.state is not SessionState.APPROVED:
                if not record.polled:
                    record.polled = True
                    logger.debug("Session %s polled for the first time", session_id)
                    return ConsumeResult(PollState.NOT_TRACKED)
                return ConsumeResult(PollState.NOT_APPROVED)

            # Move the whole set aside first so a failed delete can never leave
            # a partial bundle behind for the next poll.
            trash = self.root / f"{_TRASH_PREFIX}{session_id}-{uuid.uuid4().hex}"
            try:
                directory.rename(trash)
            except OSError as exc:
                raise StorageError(f"Failed to consume session {session_id}: {exc}") from exc
            try:
                files = _read_dir(trash, include_metadata=True)
            except OSError as exc:
                try:
                    trash.rename(directory)
                except OSError:
                    logger.exception("Failed to restore session %s after a failed read", session_id)
                raise StorageError(f"Failed to consume session {session_id}: {exc}") from exc
            record.state = SessionState.CONSUMED

        shutil.rmtree(trash, ignore_errors=True)
        self._forget(session_id)
        logger.info("Session %s consumed (%d files)", session_id, len(files))
        return ConsumeResult(PollState.READY, files)

    # -- expiry -------------------------------------------------------------

    def expire_stale(self, max_age: timedelta, *, now: datetime | None = None) -> list[str]:
        """
        Delete every session directory older than *max_age*.

        Approval state is ignored: an approved session that has not been
        polled yet is removed as well.  Directories that vanish mid-scan are
        treated as already cleaned.  Leftover staging directories are swept
        the same way.

        Returns
        -------
        list[str] : Ids of the sessions that were removed.
        """
        now = now or datetime.now(timezone.utc)
        threshold = now - max_age
        removed: list[str] = []

        try:
            children = list(self.root.iterdir())
        except FileNotFoundError:
            return removed

        for path in children:
            try:
                modified = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
            except FileNotFoundError:
                continue
            if modified >= threshold or not path.is_dir():
                continue

            session_id = path.name
            tracked = is_valid_session_id(session_id)
            with self._lock_for(session_id) if tracked else threading.Lock():
                try:
                    shutil.rmtree(path)
                except FileNotFoundError:
                    # Consumed or swept by someone else in the meantime.
                    if tracked:
                        self._forget(session_id)
                    continue
                except OSError:
                    logger.exception("Failed to remove expired session directory %s", path)
                    continue

            if tracked:
                self._forget(session_id)
                removed.append(session_id)
                logger.info("Deleted expired session %s", session_id)

        return removed
