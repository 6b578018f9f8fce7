"""Callback-style query adapter for call sites written against the old SQL store.

``all("SELECT * FROM settings ...", callback)`` answers from the settings
cache as ``callback(None, [settings_dict])``. Other queries get an empty row
list. ``run`` only acknowledges; writes go through the catalog service.

This is a boundary shim for old callback-style call sites; the core and
the HTTP routes never use it. Errors raised while answering, including
from the callback, are logged since nothing awaits the scheduled task.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from core.settings_cache import SettingsCache

logger = logging.getLogger(__name__)

Callback = Callable[..., Any]


def _split_callback(args: tuple[Any, ...]) -> tuple[tuple[Any, ...], Callback | None]:
    if args and callable(args[-1]):
        return args[:-1], args[-1]
    return args, None


def _log_task_error(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Legacy query failed: %s", exc, exc_info=exc)


class LegacyQueryAdapter:
    def __init__(self, settings_cache: SettingsCache) -> None:
        self._settings_cache = settings_cache

    async def _answer(self, query: str, callback: Callback) -> None:
        if "SELECT * FROM settings" not in query:
            logger.warning("Legacy query adapter got unknown query: %s", query)
            callback(None, [])
            return
        settings = await self._settings_cache.get()
        callback(None, [settings.to_document()])

    def all(self, query: str, *args: Any) -> asyncio.Task | None:
        """Schedule the query on the running loop; the callback receives the rows."""
        _, callback = _split_callback(args)
        if callback is None:
            logger.error("Legacy query adapter: no callback provided")
            return None
        task = asyncio.ensure_future(self._answer(query, callback))
        task.add_done_callback(_log_task_error)
        return task

    def run(self, query: str, *args: Any) -> None:
        _, callback = _split_callback(args)
        logger.warning("Legacy run() called: %s", query[:50])
        if callback is not None:
            callback(None)

    def connect(self) -> "LegacyQueryAdapter":
        return self

    def close(self) -> None:
        pass
