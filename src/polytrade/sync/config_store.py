"""Injectable holder for the runtime SyncConfig."""

from __future__ import annotations

from typing import Any

import structlog

from src.polytrade.config import Settings
from src.polytrade.sync.schemas import SyncConfig

logger = structlog.get_logger(__name__)


class SyncConfigStore:
    """Process-lifetime SyncConfig with an explicit get/set contract.

    ``get()`` hands out copies so callers cannot mutate shared state by
    accident. ``update()`` merges without validation: values are stored as
    given, so an unknown conflict policy simply matches no policy branch.
    """

    def __init__(self, initial: SyncConfig | None = None) -> None:
        self._config = initial.model_copy() if initial else SyncConfig()

    @classmethod
    def from_settings(cls, settings: Settings) -> SyncConfigStore:
        """Seed the store from SYNC_* environment settings."""
        return cls(
            SyncConfig.model_validate(
                {
                    "auto_sync_enabled": settings.SYNC_AUTO_ENABLED,
                    "sync_interval": settings.SYNC_INTERVAL_MINUTES,
                    "conflict_resolution": settings.SYNC_CONFLICT_RESOLUTION,
                    "batch_size": settings.SYNC_BATCH_SIZE,
                    "retry_attempts": settings.SYNC_RETRY_ATTEMPTS,
                }
            )
        )

    def get(self) -> SyncConfig:
        return self._config.model_copy()

    def set(self, config: SyncConfig) -> SyncConfig:
        self._config = config.model_copy()
        logger.info("sync_config.replaced", **self._config.model_dump(mode="json"))
        return self.get()

    def update(self, **changes: Any) -> SyncConfig:
        """Merge changes into the current config and return the result."""
        self._config = self._config.model_copy(update=changes)
        logger.info("sync_config.updated", changed=sorted(changes))
        return self.get()
