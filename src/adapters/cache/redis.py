"""
Redis processing-cache adapter - Implements ProcessingCache protocol.

Deletes the per (competition, user) "registration processing" flag from
Redis after each successful registration write.
"""

import logging

import redis

logger = logging.getLogger(__name__)


class RedisProcessingCache:
    """
    Implements ProcessingCache protocol via redis-py.

    Uses structural subtyping - no explicit inheritance from Protocol.
    Errors from Redis propagate; the domain service decides that they are
    not fatal to the write.
    """

    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisProcessingCache":
        return cls(redis.Redis.from_url(url, decode_responses=True))

    def delete(self, key: str) -> None:
        removed = self._client.delete(key)
        logger.debug("Deleted processing key %s (removed=%s)", key, removed)

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except redis.RedisError:
            return False
