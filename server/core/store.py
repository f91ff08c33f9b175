"""State store with Redis (production), SQLite (default) or memory backend.

This is the service's only cross-invocation memory: the latest tag, the last
check time and the trigger event log all live here. Values are plain strings;
callers encode records as JSON.
"""

import time
from typing import Dict, List, Optional, Tuple, TYPE_CHECKING

try:
    import redis.asyncio as redis
    REDIS_AVAILABLE = True
except ImportError:
    redis = None
    REDIS_AVAILABLE = False

from core.config import Settings
from core.logging import get_logger, log_store_operation

if TYPE_CHECKING:
    from core.database import Database

logger = get_logger(__name__)

# GET and DEL in one round trip; Redis runs scripts atomically
_COMPARE_AND_DELETE = """
if redis.call("GET", KEYS[1]) == ARGV[1] then
    return redis.call("DEL", KEYS[1])
end
return 0
"""


class StoreError(Exception):
    """A state store read or write failed."""

    def __init__(self, operation: str, key: str, message: str):
        self.operation = operation
        self.key = key
        super().__init__(f"Store {operation} failed for '{key}': {message}")


class StateStore:
    """Async key-value store with Redis, SQLite or memory backend.

    Backend selection follows STORE_BACKEND:
    - redis: shared store for multiple workers/instances
    - sqlite: single-host persistence (default)
    - memory: process-local, lost on restart (tests, local runs)

    Every failure is raised as StoreError; nothing is silently turned into a miss.
    """

    def __init__(self, settings: Settings, database: Optional["Database"] = None):
        self.settings = settings
        self.database = database
        self.backend = settings.store_backend
        self.redis: Optional["redis.Redis"] = None
        self._memory: Dict[str, Tuple[str, Optional[float]]] = {}

    async def startup(self):
        """Open the backend connection."""
        if self.backend == "redis":
            if not REDIS_AVAILABLE:
                raise StoreError("startup", "*", "redis package is not installed")
            if not self.settings.redis_url:
                raise StoreError("startup", "*", "REDIS_URL is not set")
            self.redis = redis.from_url(
                self.settings.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_timeout=5,
                socket_connect_timeout=5,
                retry_on_timeout=True
            )
            await self.redis.ping()
            logger.info("Redis state store initialized", url=self.settings.redis_url)
        elif self.backend == "sqlite":
            await self.database.startup()
            logger.info("Using SQLite state store")
        else:
            logger.info("Using in-memory state store (state is lost on restart)")

    async def shutdown(self):
        """Close backend connections."""
        if self.redis:
            await self.redis.aclose()
            self.redis = None
            logger.info("Redis state store connections closed")
        if self.backend == "sqlite" and self.database:
            await self.database.shutdown()

    async def get(self, key: str) -> Optional[str]:
        """Get value for key, or None when absent."""
        try:
            if self.backend == "redis":
                value = await self._redis().get(key)
            elif self.backend == "sqlite":
                value = await self.database.get_state_entry(key)
            else:
                value = self._memory_get(key)
        except StoreError:
            raise
        except Exception as e:
            logger.error("Store get failed", key=key, error=str(e))
            raise StoreError("get", key, str(e)) from e

        log_store_operation(logger, "get", key, hit=value is not None)
        return value

    async def put(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        """Set value for key, replacing any existing value."""
        try:
            if self.backend == "redis":
                await self._redis().set(key, value, ex=ttl)
            elif self.backend == "sqlite":
                await self.database.set_state_entry(key, value, ttl)
            else:
                self._memory[key] = (value, time.time() + ttl if ttl else None)
        except StoreError:
            raise
        except Exception as e:
            logger.error("Store put failed", key=key, error=str(e))
            raise StoreError("put", key, str(e)) from e

        log_store_operation(logger, "put", key, ttl=ttl)

    async def put_if_absent(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        """Set value only when key is free. Returns True if this call took the key."""
        try:
            if self.backend == "redis":
                acquired = bool(await self._redis().set(key, value, ex=ttl, nx=True))
            elif self.backend == "sqlite":
                acquired = await self.database.insert_state_entry(key, value, ttl)
            else:
                acquired = self._memory_get(key) is None
                if acquired:
                    self._memory[key] = (value, time.time() + ttl if ttl else None)
        except StoreError:
            raise
        except Exception as e:
            logger.error("Store put_if_absent failed", key=key, error=str(e))
            raise StoreError("put_if_absent", key, str(e)) from e

        log_store_operation(logger, "put_if_absent", key, acquired=acquired)
        return acquired

    async def delete(self, key: str) -> bool:
        """Delete key. Returns True if it existed."""
        try:
            if self.backend == "redis":
                deleted = bool(await self._redis().delete(key))
            elif self.backend == "sqlite":
                deleted = await self.database.delete_state_entry(key)
            else:
                deleted = self._memory.pop(key, None) is not None
        except StoreError:
            raise
        except Exception as e:
            logger.error("Store delete failed", key=key, error=str(e))
            raise StoreError("delete", key, str(e)) from e

        log_store_operation(logger, "delete", key, deleted=deleted)
        return deleted

    async def delete_if_equals(self, key: str, value: str) -> bool:
        """Delete key only while it still holds value. Returns True if it was removed."""
        try:
            if self.backend == "redis":
                deleted = bool(await self._redis().eval(_COMPARE_AND_DELETE, 1, key, value))
            elif self.backend == "sqlite":
                deleted = await self.database.delete_state_entry_if(key, value)
            else:
                deleted = self._memory_get(key) == value
                if deleted:
                    del self._memory[key]
        except StoreError:
            raise
        except Exception as e:
            logger.error("Store delete_if_equals failed", key=key, error=str(e))
            raise StoreError("delete_if_equals", key, str(e)) from e

        log_store_operation(logger, "delete_if_equals", key, deleted=deleted)
        return deleted

    async def list(self, prefix: str) -> List[str]:
        """List keys starting with prefix, in ascending key order.

        Log keys embed a fixed-width time component, so key order is insertion order.
        """
        try:
            if self.backend == "redis":
                keys = [key async for key in self._redis().scan_iter(match=f"{_escape_glob(prefix)}*")]
            elif self.backend == "sqlite":
                keys = await self.database.list_state_keys(prefix)
            else:
                keys = [key for key in list(self._memory) if key.startswith(prefix)
                        and self._memory_get(key) is not None]
        except StoreError:
            raise
        except Exception as e:
            logger.error("Store list failed", prefix=prefix, error=str(e))
            raise StoreError("list", f"{prefix}*", str(e)) from e

        keys = sorted(keys)
        log_store_operation(logger, "list", f"{prefix}*", count=len(keys))
        return keys

    async def ping(self) -> bool:
        """Check store connectivity."""
        try:
            if self.backend == "redis":
                return bool(await self._redis().ping())
            if self.backend == "sqlite":
                return await self.database.ping()
            return True
        except Exception as e:
            logger.warning("Store ping failed", backend=self.backend, error=str(e))
            return False

    def _redis(self) -> "redis.Redis":
        if self.redis is None:
            raise StoreError("connect", "*", "Redis store not started")
        return self.redis

    def _memory_get(self, key: str) -> Optional[str]:
        item = self._memory.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at and expires_at < time.time():
            del self._memory[key]
            return None
        return value


def _escape_glob(prefix: str) -> str:
    """Escape Redis glob metacharacters so the prefix matches literally."""
    for char in ("\\", "*", "?", "[", "]"):
        prefix = prefix.replace(char, f"\\{char}")
    return prefix


def create_state_store(settings: Settings, database: Optional["Database"] = None) -> Optional[StateStore]:
    """Build the configured store, or None when no store is bound (STORE_BACKEND=none)."""
    if settings.store_backend is None:
        logger.warning("No state store bound; requests will be rejected")
        return None
    return StateStore(settings, database)
