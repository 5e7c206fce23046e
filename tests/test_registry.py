"""Tests for the per-token session registry."""

import asyncio

import pytest

from app.chat.notifications import BufferedNotifier, error
from app.chat.registry import SessionRegistry
from app.chat.sessions import SessionState
from app.core.exceptions import AuthError
from app.data.access import Identity
from app.data.feed import ChangeFeed

from tests.fakes import FakeDataAccess, settle


def make_registry(created):
    def factory(token):
        identity = Identity(id="u1", email="agent@example.com") if token.startswith("good") else None
        data = FakeDataAccess(identity=identity)
        created.append(data)
        return data

    return SessionRegistry(factory)


def test_open_reuses_session_per_token():
    created = []
    registry = make_registry(created)

    async def scenario():
        first = await registry.open("good-1")
        again = await registry.open("good-1")
        other = await registry.open("good-2")
        assert first is again
        assert first is not other
        assert len(registry) == 2
        await registry.close_all()

    asyncio.run(scenario())
    assert len(created) == 2
    assert all(data.signed_out for data in created)


def test_failed_authentication_is_not_registered():
    registry = make_registry([])

    async def scenario():
        with pytest.raises(AuthError):
            await registry.open("bad")
        assert len(registry) == 0
        assert registry.get("bad") is None

    asyncio.run(scenario())


def test_closed_token_cannot_reopen():
    registry = make_registry([])

    async def scenario():
        await registry.open("good-1")
        assert await registry.close("good-1")
        assert not await registry.close("good-1")
        with pytest.raises(AuthError):
            await registry.open("good-1")

    asyncio.run(scenario())


def test_changes_are_queued_for_the_client():
    registry = make_registry([])

    async def scenario():
        handle = await registry.open("good-1")
        queued = set()
        while not handle.changes.empty():
            queued.add(handle.changes.get_nowait())
        assert {"chats", "directory"} <= queued
        await registry.close_all()

    asyncio.run(scenario())


def test_buffered_notifier_drops_oldest_when_full():
    notifier = BufferedNotifier(maxsize=2)
    for title in ("one", "two", "three"):
        notifier.notify(error(title, ""))
    assert [n.title for n in notifier.drain()] == ["two", "three"]


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def shared_feed_registry(feed, created, clock, lifetime=60.0):
    def factory(token):
        data = FakeDataAccess(identity=Identity(id="u1", email="agent@example.com"), feed=feed)
        created[token] = data
        return data

    return SessionRegistry(factory, expiry_of=lambda token: clock.now + lifetime, clock=clock)


def test_token_that_stops_resolving_ends_the_session():
    feed = ChangeFeed()
    created = {}
    registry = shared_feed_registry(feed, created, FakeClock())

    async def scenario():
        handle = await registry.open("good-1")
        assert feed.subscription_count == 1

        created["good-1"].identity = None
        with pytest.raises(AuthError):
            await registry.open("good-1")

        assert registry.get("good-1") is None
        assert feed.subscription_count == 0
        assert handle.synchronizer.state == SessionState.UNAUTHENTICATED

    asyncio.run(scenario())


def test_expired_sessions_are_torn_down():
    feed = ChangeFeed()
    clock = FakeClock()
    registry = shared_feed_registry(feed, {}, clock)

    async def scenario():
        await registry.open("good-1")
        clock.now = 30.0
        await registry.open("good-2")
        assert feed.subscription_count == 2

        clock.now = 75.0
        await registry.open("good-3")

        assert registry.get("good-1") is None
        assert registry.get("good-2") is not None
        assert len(registry) == 2
        assert feed.subscription_count == 2

        clock.now = 500.0
        assert await registry.prune() == 2
        assert len(registry) == 0
        assert feed.subscription_count == 0

    asyncio.run(scenario())


def test_slow_start_does_not_block_other_tokens():
    gates = {}

    def factory(token):
        data = FakeDataAccess(identity=Identity(id="u1", email="agent@example.com"))
        if token == "good-slow":
            gates[token] = data.hold("get_current_identity", None)
        return data

    registry = SessionRegistry(factory)

    async def scenario():
        slow = asyncio.create_task(registry.open("good-slow"))
        await settle()

        fast = await asyncio.wait_for(registry.open("good-fast"), timeout=1)
        assert fast.synchronizer.current_user.id == "u1"
        assert not slow.done()

        gates["good-slow"].set()
        await slow
        assert len(registry) == 2
        await registry.close_all()

    asyncio.run(scenario())


def test_concurrent_first_opens_share_one_session():
    created = []
    registry = make_registry(created)

    async def scenario():
        first, second = await asyncio.gather(registry.open("good-1"), registry.open("good-1"))
        assert first is second
        assert len(registry) == 1
        await registry.close_all()

    asyncio.run(scenario())
    assert len(created) == 1


def test_close_during_start_refuses_the_session():
    gates = {}

    def factory(token):
        data = FakeDataAccess(identity=Identity(id="u1", email="agent@example.com"))
        gates[token] = data.hold("get_current_identity", None)
        return data

    registry = SessionRegistry(factory)

    async def scenario():
        opening = asyncio.create_task(registry.open("good-1"))
        await settle()
        assert not await registry.close("good-1")

        gates["good-1"].set()
        with pytest.raises(AuthError):
            await opening
        assert len(registry) == 0

    asyncio.run(scenario())
