"""
Console processing-cache adapter - Implements ProcessingCache protocol.

This module provides a logging-only implementation of the domain's
processing-cache port for development, where no cache store runs.
"""

import logging

logger = logging.getLogger(__name__)


class ConsoleProcessingCache:
    """
    Implements ProcessingCache protocol via console logging.

    Uses structural subtyping - no explicit inheritance from Protocol.
    For demo/development purposes - logs evicted keys instead of deleting them.
    """

    def delete(self, key: str) -> None:
        """
        Log the eviction of a processing-flag key.

        Args:
            key: Cache key built from competition id and user id
        """
        logger.info("[CACHE] Evicted key: %s", key)
