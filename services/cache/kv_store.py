# services/cache/kv_store.py
from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Protocol, Union

import redis

logger = logging.getLogger(__name__)

JsonValue = Union[Dict[str, Any], List[Any], str, int, float, bool, None]


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[JsonValue]: ...

    def set(self, key: str, payload: JsonValue) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryKVStore:
    """Process-local store. Values are kept as JSON text so reads hand back fresh copies."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[JsonValue]:
        raw = self._data.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    def set(self, key: str, payload: JsonValue) -> None:
        self._data[key] = json.dumps(payload, ensure_ascii=False, separators=(",", ":"))

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._data


class RedisKVStore:
    """
    Write-through store:
      1) local memory copy (always written)
      2) redis (shared across instances, no expiry)
    Redis errors are logged and never fail the request.
    """

    def __init__(self, url: str, *, prefix: str = "futures-insight:"):
        self._local = MemoryKVStore()
        self._prefix = prefix
        self._redis = redis.from_url(
            url,
            decode_responses=True,  # returns str for GET
            socket_timeout=2,
            socket_connect_timeout=2,
        )

    def _redis_key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def get(self, key: str) -> Optional[JsonValue]:
        try:
            raw = self._redis.get(self._redis_key(key))
        except redis.RedisError:
            logger.warning("kv.redis.get_failed key=%s", key, exc_info=True)
            return self._local.get(key)
        if raw is None:
            return self._local.get(key)
        try:
            payload: JsonValue = json.loads(raw)
        except ValueError:
            logger.error("kv.redis.corrupt_payload key=%s", key)
            return None
        self._local.set(key, payload)
        return payload

    def set(self, key: str, payload: JsonValue) -> None:
        self._local.set(key, payload)
        try:
            self._redis.set(self._redis_key(key), json.dumps(payload, ensure_ascii=False, separators=(",", ":")))
        except redis.RedisError:
            logger.warning("kv.redis.set_failed key=%s", key, exc_info=True)

    def delete(self, key: str) -> None:
        self._local.delete(key)
        try:
            self._redis.delete(self._redis_key(key))
        except redis.RedisError:
            logger.warning("kv.redis.delete_failed key=%s", key, exc_info=True)


def build_kv_store(redis_url: str = "", prefix: str = "futures-insight:") -> KeyValueStore:
    if redis_url:
        logger.info("kv.backend=redis prefix=%s", prefix)
        return RedisKVStore(redis_url, prefix=prefix)
    logger.info("kv.backend=memory")
    return MemoryKVStore()
