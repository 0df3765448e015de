"""
Application wiring - builds the registration service from settings.

This module creates the infrastructure the domain service depends on:
logging, the database connection pool (with migrations) and the
processing cache. Competition and user directories are provided by the
embedding application.
"""

import logging

from psycopg_pool import ConnectionPool

from src.adapters.cache import ConsoleProcessingCache, RedisProcessingCache
from src.adapters.repository.postgres import PostgresRegistrationRepository, run_migrations
from src.config.settings import Settings, get_settings
from src.domain.ports import CompetitionDirectory, ProcessingCache, UserDirectory
from src.domain.registration import RegistrationService

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings | None = None) -> None:
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_pool(settings: Settings | None = None, migrate: bool = True) -> ConnectionPool:
    """
    Create the database connection pool and run migrations.

    Args:
        settings: Application settings, defaults to the cached instance
        migrate: Run the SQL migrations once the pool is open
    """
    settings = settings or get_settings()

    logger.info("Connecting to database...")
    pool = ConnectionPool(
        conninfo=settings.database_url,
        min_size=settings.pool_min_size,
        max_size=settings.pool_max_size,
        open=True,
    )
    if migrate:
        logger.info("Running database migrations...")
        run_migrations(pool)
    return pool


def create_cache(settings: Settings | None = None) -> ProcessingCache:
    """Redis cache when REDIS_URL is configured, console cache otherwise."""
    settings = settings or get_settings()
    if settings.redis_url:
        return RedisProcessingCache.from_url(settings.redis_url)
    logger.info("No REDIS_URL configured, using console processing cache")
    return ConsoleProcessingCache()


def build_registration_service(
    pool: ConnectionPool,
    competitions: CompetitionDirectory,
    users: UserDirectory,
    settings: Settings | None = None,
    cache: ProcessingCache | None = None,
) -> RegistrationService:
    """
    Create registration service with injected dependencies.

    Wires together the repository, the collaborator directories and the
    processing cache for the domain service.
    """
    settings = settings or get_settings()
    return RegistrationService(
        repository=PostgresRegistrationRepository(pool),
        competitions=competitions,
        users=users,
        cache=cache or create_cache(settings),
        max_write_attempts=settings.max_write_attempts,
        cache_key_prefix=settings.cache_key_prefix,
    )
