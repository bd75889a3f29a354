"""
Service container

Wires a BadgeStore and a Notifier into the badge services once per process.
The host application calls init_postgres_container() at startup (or
init_container() with its own store, e.g. InMemoryBadgeStore in tests) and
get_container().badge_service wherever a user action should trigger a check.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional
import logging

from wellness_badges import config
from wellness_badges.db.connection import Database
from wellness_badges.db.store import BadgeStore
from wellness_badges.services.notifications import Notifier
from wellness_badges.utils.datetime_helpers import Clock

if TYPE_CHECKING:
    from wellness_badges.services.badge_service import BadgeService

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Holds the badge store, notifier and lazily built services"""

    store: BadgeStore
    notifier: Notifier
    clock: Optional[Clock] = None
    locale: str = config.BADGE_DEFAULT_LOCALE
    database: Optional[Database] = None  # set when the container owns a pool

    _badge_service: Optional["BadgeService"] = field(default=None, init=False, repr=False)

    @property
    def badge_service(self) -> "BadgeService":
        """BadgeService, built on first use"""
        if self._badge_service is None:
            from wellness_badges.services.badge_service import BadgeService
            self._badge_service = BadgeService(self.store, self.notifier, self.clock, locale=self.locale)
            logger.debug(f"BadgeService built (locale={self.locale})")
        return self._badge_service


_container: Optional[ServiceContainer] = None


def get_container() -> ServiceContainer:
    """
    The process-wide container

    Raises:
        RuntimeError: neither init_container() nor init_postgres_container() ran yet
    """
    if _container is None:
        raise RuntimeError(
            "Badge services not initialized. "
            "Call init_postgres_container() or init_container() at startup."
        )
    return _container


def init_container(
    store: BadgeStore,
    notifier: Notifier,
    clock: Optional[Clock] = None,
    locale: str = config.BADGE_DEFAULT_LOCALE,
    database: Optional[Database] = None,
) -> ServiceContainer:
    """Install a container built from the given store and notifier"""
    global _container

    _container = ServiceContainer(
        store=store,
        notifier=notifier,
        clock=clock,
        locale=locale,
        database=database,
    )
    logger.info(f"Badge services initialized with {type(store).__name__}")
    return _container


async def init_postgres_container(database: Optional[Database] = None) -> ServiceContainer:
    """
    Open the database pool and wire the Postgres-backed services.

    Logging and configuration are set up first so a bad time zone or
    timeout fails at startup rather than during a badge pass.
    """
    from wellness_badges.db.badge_store import PostgresBadgeStore
    from wellness_badges.db.connection import db
    from wellness_badges.services.notifications import QueueNotifier

    config.configure_logging()
    config.validate_config()

    database = database or db
    await database.init_pool()
    return init_container(
        store=PostgresBadgeStore(database),
        notifier=QueueNotifier(database),
        clock=Clock.system(config.BADGE_REFERENCE_TIMEZONE),
        database=database,
    )


async def shutdown_container() -> None:
    """Close the pool (if the container owns one) and forget the container"""
    global _container

    if _container is not None and _container.database is not None:
        await _container.database.close_pool()
    _container = None
    logger.info("Badge services shut down")
