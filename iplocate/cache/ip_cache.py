import asyncio
import time
import zlib
from collections.abc import Iterator
from contextlib import contextmanager

from iplocate.cache.store import CacheStore
from iplocate.logger import logger
from iplocate.models.cache import CacheRecord, ValidationResult
from iplocate.models.common import UNKNOWN_COUNTRY_CODE, Hook
from iplocate.settings import Settings

# Updates are serialized per lock stripe, so memory stays bounded however many IPs are seen.
LOCK_STRIPES = 64


class IpCache:
    """Lookaside cache of resolved IP addresses.

    The in-memory map is a view over the persistent store: reads fall through to the
    store on a miss and writes go through to it. Updates of the same IP are serialized
    so concurrent requests never lose a counter increment.
    """

    def __init__(self, store: CacheStore) -> None:
        self._store = store
        self._records: dict[str, CacheRecord] = {}
        self._ip_locks = tuple(asyncio.Lock() for _ in range(LOCK_STRIPES))
        # Set while geolocation databases are being installed.
        self.installing = False

    async def get(self, ip: str, read_through: bool = True) -> CacheRecord | None:
        record = self._records.get(ip)
        if record is not None or not read_through:
            return record

        record = await self._store.search(ip)
        if record is not None:
            self._records[ip] = record
        return record

    async def upsert(
        self,
        hook: Hook | str,
        validation: ValidationResult,
        settings: Settings,
        count_up: bool = True,
        now: float | None = None,
    ) -> CacheRecord:
        """Create or refresh the record of `validation.ip` and update its counters.

        For `public` requests the view counter restarts at 1 once more than
        `settings.behavior.time` seconds passed since the last access, and is
        incremented otherwise. `count_up=False` refreshes a record without counting
        the request a second time.
        """
        now = time.time() if now is None else now
        hook = Hook(hook)
        ip = validation.ip

        async with self._lock_for(ip):
            cached = await self.get(ip, read_through=settings.cache_hold)
            if cached:
                fail_count = cached.fail_count if validation.fail is None else validation.fail
                request_count = cached.request_count + (1 if count_up else 0)
                last_access = cached.last_access
                view_count = cached.view_count
            else:
                fail_count = validation.fail or 0
                request_count = 1
                last_access = now
                view_count = 1

            if cached and hook is Hook.public:
                if now - last_access > settings.behavior.time:
                    view_count = 1
                else:
                    view_count += 1
                last_access = now

            record = CacheRecord(
                ip=ip,
                timestamp=now,
                hook=hook,
                asn=validation.asn,
                country_code=validation.country_code,
                authenticated=validation.authenticated,
                fail_count=fail_count,
                request_count=request_count if settings.save_statistics else 0,
                last_access=last_access,
                view_count=view_count,
                host=validation.host if validation.host and validation.host != ip else None,
            )

            if not self._hold_back(validation):
                if settings.cache_hold:
                    await self._store.write(record)
                self._records[ip] = record
            elif cached is None or cached.country_code == UNKNOWN_COUNTRY_CODE:
                self._records[ip] = record

        return record

    async def clear(self) -> None:
        await self._store.clear()
        self._records.clear()
        logger.info("IP cache cleared")

    async def collect_garbage(self, settings: Settings, now: float | None = None) -> int:
        """Drop records older than `settings.cache_time` seconds from the store and from memory."""
        now = time.time() if now is None else now
        removed = await self._store.delete_expired(settings.cache_time, now)

        threshold = now - settings.cache_time
        for ip in [ip for ip, record in self._records.items() if record.timestamp < threshold]:
            del self._records[ip]

        logger.info(f"IP cache garbage collection removed={removed} max_age={settings.cache_time}")
        return removed

    @contextmanager
    def install_window(self) -> Iterator[None]:
        """Mark a bulk geolocation database install; unknown results are not persisted meanwhile."""
        self.installing = True
        try:
            yield
        finally:
            self.installing = False

    def _hold_back(self, validation: ValidationResult) -> bool:
        # An unknown country while databases are being set up must not overwrite a valid record.
        if validation.country_code != UNKNOWN_COUNTRY_CODE:
            return False
        return validation.authenticated or self.installing

    def _lock_for(self, ip: str) -> asyncio.Lock:
        return self._ip_locks[zlib.crc32(ip.encode()) % LOCK_STRIPES]

    def __len__(self) -> int:
        return len(self._records)
