"""Shared fixtures for the Listing Editor test suite."""

from __future__ import annotations

import io

import pytest
from fastapi.testclient import TestClient
from PIL import Image

import listing_editor.main as main_module
from listing_editor.main import app
from listing_editor.media_registry import MediaRegistry
from listing_editor.session_store import SessionManager

# Small catalog used by the codec and registry tests.
CATALOG: tuple[str, ...] = ("en", "fr", "de")


@pytest.fixture()
def catalog() -> tuple[str, ...]:
    return CATALOG


@pytest.fixture()
def registry() -> MediaRegistry:
    return MediaRegistry(CATALOG)


@pytest.fixture()
def manager(tmp_path, monkeypatch) -> SessionManager:
    """A SessionManager rooted in a temp dir, also installed into the app."""
    mgr = SessionManager(tmp_path / "sessions")
    monkeypatch.setattr(main_module, "manager", mgr)
    return mgr


@pytest.fixture()
def client(manager: SessionManager) -> TestClient:
    """FastAPI test client wired to the temp-dir session store."""
    return TestClient(app)


@pytest.fixture()
def sample_metadata() -> dict:
    """A metadata document (wire format) that passes approval validation."""
    return {
        "applicationCategory": "Games_Puzzle",
        "visibility": "Public",
        "targetPublishMode": "Immediate",
        "pricing": {"priceId": "Free"},
        "allowTargetFutureDeviceFamilies": {"Desktop": True},
        "listings": {
            "en": {
                "baseListing": {
                    "title": "Block Drop",
                    "description": "Stack the blocks.",
                    "features": ["Fast", "Free"],
                },
            },
        },
    }


def make_png(width: int = 8, height: int = 8, fmt: str = "PNG") -> bytes:
    """Render a tiny solid image and return its encoded bytes."""
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color=(200, 30, 30)).save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture()
def png_bytes():
    """Factory fixture: ``png_bytes(width, height, fmt="PNG")``."""
    return make_png
