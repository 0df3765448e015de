"""Processing-cache adapters."""

from .console import ConsoleProcessingCache
from .redis import RedisProcessingCache

__all__ = ["ConsoleProcessingCache", "RedisProcessingCache"]
