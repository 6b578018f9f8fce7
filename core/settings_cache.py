"""Short-TTL cache over the settings document."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from core.config import settings
from core.errors import ConfigurationError, StorageError
from core.models import UserSettings
from core.records import DocumentStore

logger = logging.getLogger(__name__)


class SettingsCache:
    """Caches settings.json for ``ttl`` seconds.

    Writers call ``invalidate()`` right after a successful write, so their
    next read sees the new value; other readers are at most ``ttl`` stale.
    """

    def __init__(
        self,
        store: DocumentStore[UserSettings],
        ttl: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self.ttl = ttl if ttl is not None else settings.SETTINGS_CACHE_TTL_SECONDS
        self._clock = clock
        self._value: UserSettings | None = None
        self._loaded_at = 0.0

    def _fresh(self) -> bool:
        return self._value is not None and (self._clock() - self._loaded_at) < self.ttl

    async def get(self) -> UserSettings:
        if self._fresh():
            return self._value

        try:
            stored = await self._store.get()
        except ConfigurationError:
            return UserSettings()
        except (StorageError, ValueError) as e:
            logger.warning("Could not load settings: %s", e)
            return self._value or UserSettings()

        self._value = stored.record if stored else UserSettings()
        self._loaded_at = self._clock()
        return self._value

    def invalidate(self) -> None:
        self._value = None
        self._loaded_at = 0.0
