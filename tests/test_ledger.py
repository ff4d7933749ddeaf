import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from deckflow.core.enums import ReservationStatus
from deckflow.models.credit import CreditReservation, CreditTransaction
from deckflow.models.user import User
from deckflow.services.ledger import CreditLedger, InsufficientBalance, Reservation

from tests.conftest import USER_ID, add_user


class Clock:
    def __init__(self):
        self.now = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def ledger(session_factory, clock):
    return CreditLedger(session_factory, reservation_ttl=timedelta(minutes=30), clock=clock)


async def balance_of(session_factory, user_id=USER_ID) -> int:
    async with session_factory() as db:
        return (await db.get(User, user_id)).credit_balance


async def test_reserve_holds_without_touching_balance(session_factory, ledger):
    await add_user(session_factory, balance=5)

    reservation = await ledger.reserve(USER_ID, 2, "deck_generation")

    assert isinstance(reservation, Reservation)
    assert await balance_of(session_factory) == 5
    assert await ledger.get_reserved_amount(USER_ID) == 2
    assert await ledger.get_available_balance(USER_ID) == 3


async def test_reserve_refuses_beyond_available(session_factory, ledger):
    await add_user(session_factory, balance=3)
    await ledger.reserve(USER_ID, 2)

    result = await ledger.reserve(USER_ID, 2)

    assert result == InsufficientBalance(user_id=USER_ID, requested=2, available=1)


async def test_reserve_unknown_user_reports_zero_available(ledger):
    result = await ledger.reserve("nobody", 1)
    assert isinstance(result, InsufficientBalance)
    assert result.available == 0


async def test_reserve_rejects_non_positive_amount(session_factory, ledger):
    await add_user(session_factory)
    with pytest.raises(ValueError):
        await ledger.reserve(USER_ID, 0)


async def test_concurrent_reserves_cannot_double_spend(session_factory, ledger):
    await add_user(session_factory, balance=1)

    results = await asyncio.gather(*(ledger.reserve(USER_ID, 1) for _ in range(3)))

    assert sum(isinstance(r, Reservation) for r in results) == 1
    assert sum(isinstance(r, InsufficientBalance) for r in results) == 2


async def test_commit_deducts_once_and_writes_audit_row(session_factory, ledger):
    await add_user(session_factory, balance=5)
    reservation = await ledger.reserve(USER_ID, 2, "deck_generation")

    assert await ledger.commit(reservation.id) is True
    assert await ledger.commit(reservation.id) is False
    assert await ledger.release(reservation.id) is False

    assert await balance_of(session_factory) == 3
    async with session_factory() as db:
        record = await db.get(CreditReservation, reservation.id)
        rows = (await db.execute(select(CreditTransaction))).scalars().all()
    assert record.status == ReservationStatus.COMMITTED.value
    assert record.resolved_at is not None
    assert len(rows) == 1
    assert rows[0].amount == -2
    assert rows[0].balance_after == 3
    assert rows[0].reference_id == reservation.id


async def test_release_frees_hold_and_is_idempotent(session_factory, ledger):
    await add_user(session_factory, balance=2)
    reservation = await ledger.reserve(USER_ID, 2)

    assert await ledger.release(reservation.id) is True
    assert await ledger.release(reservation.id) is False
    assert await ledger.commit(reservation.id) is False

    assert await balance_of(session_factory) == 2
    assert await ledger.get_available_balance(USER_ID) == 2


async def test_unknown_reservation_is_a_noop(ledger):
    assert await ledger.commit("missing") is False
    assert await ledger.release("missing") is False


async def test_expired_holds_stop_counting_and_are_swept(session_factory, ledger, clock):
    await add_user(session_factory, balance=2)
    reservation = await ledger.reserve(USER_ID, 2)
    assert await ledger.get_available_balance(USER_ID) == 0

    clock.now += timedelta(minutes=31)

    assert await ledger.get_available_balance(USER_ID) == 2
    assert await ledger.cleanup_expired() == 1
    assert await ledger.cleanup_expired() == 0
    record = await ledger.get_reservation(reservation.id)
    assert record.status == ReservationStatus.RELEASED.value
    assert await ledger.commit(reservation.id) is False


async def test_expired_hold_replaced_by_another_is_not_charged(session_factory, ledger, clock):
    await add_user(session_factory, balance=2)
    stale = await ledger.reserve(USER_ID, 2, "deck_generation")
    clock.now += timedelta(minutes=31)
    fresh = await ledger.reserve(USER_ID, 2, "deck_generation")
    assert isinstance(fresh, Reservation)

    assert await ledger.commit(stale.id) is False
    assert await balance_of(session_factory) == 2
    assert (await ledger.get_reservation(stale.id)).status == ReservationStatus.RELEASED.value

    assert await ledger.commit(fresh.id) is True
    assert await balance_of(session_factory) == 0
    async with session_factory() as db:
        rows = (await db.execute(select(CreditTransaction))).scalars().all()
    assert [r.reference_id for r in rows] == [fresh.id]


async def test_expired_hold_still_covered_is_charged(session_factory, ledger, clock):
    await add_user(session_factory, balance=5)
    reservation = await ledger.reserve(USER_ID, 2)
    clock.now += timedelta(minutes=31)

    assert await ledger.commit(reservation.id) is True
    assert await balance_of(session_factory) == 3
    assert await ledger.commit(reservation.id) is False


async def test_grant_adds_credits(session_factory, ledger):
    await add_user(session_factory, balance=1)

    assert await ledger.grant(USER_ID, 4, "top-up") == 5
    assert await balance_of(session_factory) == 5

    with pytest.raises(ValueError):
        await ledger.grant(USER_ID, 0)
    with pytest.raises(LookupError):
        await ledger.grant("nobody", 1)
