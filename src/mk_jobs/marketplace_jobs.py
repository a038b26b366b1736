"""Periodic marketplace jobs run by the JobScheduler.

    close_due_auctions       every AUCTION_SWEEP_INTERVAL_SECONDS
    sweep_reservations       every RESERVATION_SWEEP_INTERVAL_SECONDS
    notify_closing_soon      every AUCTION_SWEEP_INTERVAL_SECONDS
    relay_events             every EVENT_RELAY_INTERVAL_SECONDS (when Redis is wired)

Each job opens its own session; each auction close is its own transaction so
one bad listing does not hold back the rest of the batch.
"""

import logging
from collections.abc import Callable
from datetime import timedelta
from typing import Any

from config.settings import settings
from src.container import ServiceContainer
from src.mk_bidding.domain.models import AuctionCloseResult
from src.mk_common.errors import AppError
from src.mk_common.transaction import run_in_transaction
from src.mk_jobs.scheduler import JobScheduler

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Any]  # async_sessionmaker[AsyncSession]

_CLOSE_BATCH_SIZE = 100


async def close_due_auctions(container: ServiceContainer, session_factory: SessionFactory) -> int:
    closed = 0
    async with session_factory() as db:
        due = await container.listings.repo.list_due_auction_ids(
            container.clock(), _CLOSE_BATCH_SIZE, db
        )
        await db.rollback()  # release the read snapshot before per-listing work
        for listing_id in due:
            try:
                result: AuctionCloseResult = await run_in_transaction(
                    db, lambda: container.bids.close_auction(db, listing_id)
                )
            except AppError as exc:
                logger.warning("Could not close auction %s: %s", listing_id, exc.message)
                continue
            if result.closed_now:
                closed += 1
    if closed:
        logger.info("Closed %d due auctions", closed)
    return closed


async def sweep_reservations(container: ServiceContainer, session_factory: SessionFactory) -> int:
    async with session_factory() as db:
        return await run_in_transaction(db, lambda: container.inventory.sweep_expired(db))


async def notify_closing_soon(container: ServiceContainer, session_factory: SessionFactory) -> int:
    window = timedelta(minutes=settings.CLOSING_SOON_WINDOW_MINUTES)
    async with session_factory() as db:
        return await run_in_transaction(
            db, lambda: container.bids.notify_closing_soon(db, window)
        )


async def relay_events(container: ServiceContainer, session_factory: SessionFactory) -> int:
    if container.relay is None:
        return 0
    relay = container.relay
    async with session_factory() as db:
        return await run_in_transaction(db, lambda: relay.relay_once(db))


def register_marketplace_jobs(
    scheduler: JobScheduler,
    container: ServiceContainer,
    session_factory: SessionFactory,
) -> None:
    scheduler.register(
        "close_due_auctions",
        lambda: close_due_auctions(container, session_factory),
        settings.AUCTION_SWEEP_INTERVAL_SECONDS,
    )
    scheduler.register(
        "sweep_reservations",
        lambda: sweep_reservations(container, session_factory),
        settings.RESERVATION_SWEEP_INTERVAL_SECONDS,
        first_delay_seconds=1.0,
    )
    scheduler.register(
        "notify_closing_soon",
        lambda: notify_closing_soon(container, session_factory),
        settings.AUCTION_SWEEP_INTERVAL_SECONDS,
        first_delay_seconds=2.0,
    )
    scheduler.register(
        "relay_events",
        lambda: relay_events(container, session_factory),
        settings.EVENT_RELAY_INTERVAL_SECONDS,
        enabled=container.relay is not None,
    )
