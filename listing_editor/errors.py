"""
listing_editor/errors.py
-----------------------------------------------------------------------------
Exception hierarchy shared by the domain modules.

Domain code raises these; ``main.py`` translates them into HTTP responses:

- ``UserInputError``       → 400 (bad metadata, unknown media kind, bad icon)
- ``SessionNotFoundError`` → 404 (unknown, expired or already consumed id)
- ``StorageError``         → 500 (disk read / write failure)
"""

from __future__ import annotations


class ListingEditorError(Exception):
    """Base error for the listing editor."""


class UserInputError(ListingEditorError, ValueError):
    pass


class SessionNotFoundError(ListingEditorError, LookupError):
    def __init__(self, session_id: str):
        super().__init__(f"Session not found: '{session_id}'.")
        self.session_id = session_id


class StorageError(ListingEditorError, OSError):
    pass
