import logging
from typing import Iterable, List, Optional

from keygate.config import Settings

logger = logging.getLogger("keygate.pool")


def mask_key(key: str) -> str:
    """Render a key for logs without exposing it."""
    return f"...{key[-4:]}"


class KeyPool:
    """Ordered API keys plus a process-wide round-robin cursor.

    ``get_next_key`` never suspends, so callers sharing one event loop see a
    strict rotation. Separate worker processes keep separate cursors.
    """

    def __init__(self, keys: Iterable[str] = ()):
        self._keys: List[str] = []
        self._current_index = 0
        self.reload(keys)

    @classmethod
    def from_settings(cls, settings: Settings) -> "KeyPool":
        pool = cls(settings.credentials())
        if pool.key_count:
            logger.info(f"Loaded {pool.key_count} API keys.")
        else:
            logger.warning("No API keys configured. Set API_KEYS_POOL or API_KEY.")
        return pool

    @property
    def key_count(self) -> int:
        return len(self._keys)

    @property
    def cursor(self) -> int:
        return self._current_index

    def get_next_key(self) -> Optional[str]:
        if not self._keys:
            return None
        key = self._keys[self._current_index]
        self._current_index = (self._current_index + 1) % len(self._keys)
        return key

    def reload(self, keys: Iterable[str]):
        self._keys = [k.strip() for k in keys if k and k.strip()]
        self._current_index = 0
