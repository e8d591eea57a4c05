"""
listing_editor/cleanup.py
-----------------------------------------------------------------------------
Periodic removal of sessions past their retention window.

``SessionCleanupRunner`` is started from the app lifespan and runs
:meth:`SessionManager.expire_stale` off the event loop.  A failing sweep is
logged and the next one still runs; only cancellation stops the loop.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta

from listing_editor.session_store import SessionManager

logger = logging.getLogger(__name__)


class SessionCleanupRunner:
    """Run :meth:`SessionManager.expire_stale` on a fixed interval."""

    def __init__(
        self,
        manager: SessionManager,
        *,
        max_age: timedelta,
        interval_seconds: float,
    ) -> None:
        self._manager = manager
        self._max_age = max_age
        self._interval_seconds: float | None = interval_seconds if interval_seconds > 0 else None

    @property
    def is_enabled(self) -> bool:
        return self._interval_seconds is not None

    async def run_once(self, *, now: datetime | None = None) -> list[str]:
        """Execute a single sweep off the event loop and return removed ids."""
        return await asyncio.to_thread(self._manager.expire_stale, self._max_age, now=now)

    async def run_periodic(self) -> None:
        """Sweep until the task is cancelled."""
        if not self.is_enabled:
            logger.info("Session cleanup disabled; skipping periodic execution")
            return

        assert self._interval_seconds is not None

        while True:
            await self._run_once_with_logging()
            await asyncio.sleep(self._interval_seconds)

    async def _run_once_with_logging(self) -> None:
        try:
            removed = await self.run_once()
        except Exception:
            logger.exception("Session cleanup run failed")
            return
        logger.info("Session cleanup completed: %d sessions removed", len(removed))
