from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator

from ..domain.errors import TransientStoreError

logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class KeyedLockRegistry:
    """
    In-process mutual exclusion keyed by strings such as `room:{id}:{date}`.

    Keys are always taken in sorted order so two holders can never wait on
    each other. Entries are dropped once nobody holds or waits on them.
    """

    def __init__(self) -> None:
        self._entries: dict[str, _Entry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def _checkout(self, key: str) -> _Entry:
        entry = self._entries.get(key)
        if entry is None:
            entry = self._entries[key] = _Entry()
        entry.users += 1
        return entry

    def _checkin(self, key: str, entry: _Entry, *, locked: bool) -> None:
        if locked:
            entry.lock.release()
        entry.users -= 1
        if entry.users == 0 and self._entries.get(key) is entry:
            del self._entries[key]

    @asynccontextmanager
    async def hold(self, *keys: str, timeout: float) -> AsyncIterator[None]:
        held: list[tuple[str, _Entry]] = []
        try:
            async with asyncio.timeout(timeout):
                for key in sorted(set(keys)):
                    entry = self._checkout(key)
                    try:
                        await entry.lock.acquire()
                    except BaseException:
                        self._checkin(key, entry, locked=False)
                        raise
                    held.append((key, entry))
        except TimeoutError as exc:
            self._release(held)
            logger.warning("lock wait exceeded %.2fs for %s", timeout, ", ".join(sorted(set(keys))))
            raise TransientStoreError(
                "Too many concurrent requests for this room, please retry",
                rule="lock_timeout",
                timeout_seconds=timeout,
            ) from exc
        except BaseException:
            self._release(held)
            raise

        try:
            yield
        finally:
            self._release(held)

    def _release(self, held: list[tuple[str, _Entry]]) -> None:
        for key, entry in reversed(held):
            self._checkin(key, entry, locked=True)
        held.clear()
