"""Tests for the daily request quota"""
import asyncio
from datetime import date

from searchchat.config import config
from searchchat.db.models import Identity
from searchchat.rate_limit import check_and_consume, get_usage

DAY = date(2026, 3, 14)


def test_limit_allows_exactly_the_quota(db):
    """100 requests go through, the 101st is denied and not counted"""
    user = Identity(user_id="alice")

    async def run():
        allowed = []
        for i in range(config.DAILY_REQUEST_LIMIT):
            allowed.append(await check_and_consume(user, DAY))
            assert await db.get_user_requests_today("alice", DAY) == i + 1
        denied = await check_and_consume(user, DAY)
        return allowed, denied, await db.get_user_requests_today("alice", DAY)

    allowed, denied, count = asyncio.run(run())

    assert all(allowed)
    assert len(allowed) == 100
    assert denied is False
    assert count == 100


def test_admin_is_never_limited_or_counted(db):
    admin = Identity(user_id="root", is_admin=True)

    async def run():
        results = [await check_and_consume(admin, DAY) for _ in range(150)]
        return results, await db.get_user_requests_today("root", DAY)

    results, count = asyncio.run(run())

    assert all(results)
    assert count == 0


def test_quota_is_per_day_and_per_user(db, monkeypatch):
    monkeypatch.setattr(config, "DAILY_REQUEST_LIMIT", 2)
    alice = Identity(user_id="alice")
    bob = Identity(user_id="bob")

    async def run():
        return [
            await check_and_consume(alice, DAY),
            await check_and_consume(alice, DAY),
            await check_and_consume(alice, DAY),
            await check_and_consume(bob, DAY),
            await check_and_consume(alice, date(2026, 3, 15)),
        ]

    assert asyncio.run(run()) == [True, True, False, True, True]


def test_concurrent_requests_never_exceed_limit(db, monkeypatch):
    """Racing requests: exactly the quota gets through"""
    monkeypatch.setattr(config, "DAILY_REQUEST_LIMIT", 5)
    user = Identity(user_id="alice")

    async def run():
        results = await asyncio.gather(*[check_and_consume(user, DAY) for _ in range(20)])
        return results, await db.get_user_requests_today("alice", DAY)

    results, count = asyncio.run(run())

    assert sum(results) == 5
    assert count == 5


def test_zero_limit_denies_everyone_but_admins(db, monkeypatch):
    monkeypatch.setattr(config, "DAILY_REQUEST_LIMIT", 0)

    assert asyncio.run(check_and_consume(Identity(user_id="alice"), DAY)) is False
    assert asyncio.run(check_and_consume(Identity(user_id="root", is_admin=True), DAY)) is True


def test_usage_report(db):
    user = Identity(user_id="alice")
    asyncio.run(check_and_consume(user, DAY))
    asyncio.run(check_and_consume(user, DAY))

    report = asyncio.run(get_usage(user, DAY))

    assert report.used == 2
    assert report.limit == 100
    assert report.model_dump(by_alias=True)["isAdmin"] is False
