"""Periodic jobs driven against the in-memory container."""
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.mk_events.application.relay import EventRelay
from src.mk_jobs.marketplace_jobs import (
    close_due_auctions,
    notify_closing_soon,
    register_marketplace_jobs,
    relay_events,
    sweep_reservations,
)
from src.mk_jobs.scheduler import JobScheduler


@pytest.fixture
def session_factory(db):
    return lambda: db


class TestCloseDueAuctions:
    @pytest.mark.asyncio
    async def test_closes_only_ended_auctions(
        self, services, session_factory, db, state, clock, seed_auction
    ) -> None:
        seed_auction("A-1")
        seed_auction("A-2", auction_ends_at=clock.now + timedelta(days=1))
        await services.bids.submit_bid(db, "A-1", "alice", 900)
        clock.advance(hours=2)

        assert await close_due_auctions(services, session_factory) == 1
        assert state.listings["A-1"].status == "closed"
        assert state.listings["A-2"].status == "active"
        assert db.commit.await_count >= 1

        assert await close_due_auctions(services, session_factory) == 0

    @pytest.mark.asyncio
    async def test_auction_without_bids_is_cancelled(
        self, services, session_factory, state, clock, seed_auction
    ) -> None:
        seed_auction("A-1")
        clock.advance(hours=1)
        assert await close_due_auctions(services, session_factory) == 1
        assert state.listings["A-1"].status == "cancelled"


class TestOtherJobs:
    @pytest.mark.asyncio
    async def test_sweep_reservations(
        self, services, session_factory, db, state, clock, seed_listing
    ) -> None:
        seed_listing("L-1")
        await services.inventory.reserve(db, "L-1", 1, "buyer-1", ttl_seconds=10)
        clock.advance(seconds=11)
        assert await sweep_reservations(services, session_factory) == 1
        assert state.reservations == {}

    @pytest.mark.asyncio
    async def test_notify_closing_soon(
        self, services, session_factory, state, clock, seed_auction
    ) -> None:
        seed_auction("A-1", auction_ends_at=clock.now + timedelta(minutes=10))
        seed_auction("A-2", auction_ends_at=clock.now + timedelta(hours=3))
        assert await notify_closing_soon(services, session_factory) == 1
        assert state.event_types() == ["AUCTION_CLOSING_SOON"]
        assert await notify_closing_soon(services, session_factory) == 0

    @pytest.mark.asyncio
    async def test_relay_without_publisher(self, services, session_factory) -> None:
        assert await relay_events(services, session_factory) == 0

    @pytest.mark.asyncio
    async def test_relay_with_publisher(self, services, session_factory, db, seed_auction) -> None:
        seed_auction("A-1")
        await services.bids.submit_bid(db, "A-1", "alice", 900)
        publisher = MagicMock()
        publisher.publish = AsyncMock()
        services.relay = EventRelay(services.outbox, publisher, "marketplace.events")
        assert await relay_events(services, session_factory) == 1
        publisher.publish.assert_awaited_once()


class TestRegistration:
    def test_registers_all_jobs(self, services, session_factory) -> None:
        scheduler = JobScheduler()
        register_marketplace_jobs(scheduler, services, session_factory)
        jobs = scheduler.jobs
        assert set(jobs) == {
            "close_due_auctions", "sweep_reservations", "notify_closing_soon", "relay_events",
        }
        assert jobs["relay_events"].enabled is False
        assert jobs["close_due_auctions"].enabled is True
        assert jobs["sweep_reservations"].first_delay_seconds == 1.0
