"""
Credit ledger — reserve before expensive work, then commit or release.

A reservation is a tentative hold: the user's balance is untouched until
commit(), but every PENDING, unexpired hold is subtracted from what the
next reserve() can see. Each reservation is resolved at most once;
commit() and release() are no-ops on an already resolved id.

Mutual exclusion per user is a process-local asyncio.Lock plus a row
lock on the user (SELECT ... FOR UPDATE) inside one transaction, so two
concurrent generation requests can never both pass reserve() when only
one reservation's worth of balance is left.
"""

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional, Union

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.enums import ReservationStatus
from ..models.base import utcnow
from ..models.credit import CreditReservation, CreditTransaction
from ..models.user import User

logger = logging.getLogger(__name__)


# ── Reserve results ──────────────────────────────────────────────────

@dataclass(frozen=True)
class Reservation:
    """A successful hold."""
    id: str
    user_id: str
    amount: int
    expires_at: datetime


@dataclass(frozen=True)
class InsufficientBalance:
    """reserve() refused: not enough unreserved credits."""
    user_id: str
    requested: int
    available: int


ReserveResult = Union[Reservation, InsufficientBalance]


# ── Ledger ───────────────────────────────────────────────────────────

class CreditLedger:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        reservation_ttl: timedelta = timedelta(minutes=30),
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session_factory = session_factory
        self._reservation_ttl = reservation_ttl
        self._clock = clock
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def reserve(self, user_id: str, amount: int, reason: str = "") -> ReserveResult:
        """Hold `amount` credits for user_id, or report how many are available."""
        if amount <= 0:
            raise ValueError(f"Reservation amount must be positive, got {amount}")

        async with self._locks[user_id]:
            async with self._session_factory() as db:
                async with db.begin():
                    user = await self._lock_user(db, user_id)
                    if user is None:
                        logger.warning("Reserve for unknown user %s", user_id)
                        return InsufficientBalance(user_id=user_id, requested=amount, available=0)

                    now = self._clock()
                    reserved = await self._reserved_sum(db, user_id, now)
                    available = user.credit_balance - reserved
                    if available < amount:
                        logger.info(
                            "Reserve refused: user=%s requested=%d available=%d",
                            user_id, amount, available,
                        )
                        return InsufficientBalance(
                            user_id=user_id, requested=amount, available=max(available, 0),
                        )

                    record = CreditReservation(
                        user_id=user_id,
                        amount=amount,
                        reason=reason,
                        status=ReservationStatus.PENDING.value,
                        expires_at=now + self._reservation_ttl,
                    )
                    db.add(record)
                    await db.flush()

        logger.info(
            "Reserved %d credit(s) for user=%s (%s) → %s", amount, user_id, reason, record.id
        )
        return Reservation(
            id=record.id, user_id=user_id, amount=amount, expires_at=now + self._reservation_ttl,
        )

    async def commit(self, reservation_id: str) -> bool:
        """
        Deduct a PENDING reservation from the balance and write an audit row.
        Returns True if this call resolved it, False for a no-op.

        A hold past its expiry no longer counts against the balance, so other
        holds may have been granted in its place. It is charged only while the
        balance still covers it next to the live holds; otherwise it is
        released unpaid and the balance never goes negative.
        """
        user_id = await self._owner_of(reservation_id)
        if user_id is None:
            logger.warning("Commit for unknown reservation %s — skipping", reservation_id)
            return False

        async with self._locks[user_id]:
            async with self._session_factory() as db:
                async with db.begin():
                    record = await self._lock_reservation(db, reservation_id)
                    if record is None or record.status != ReservationStatus.PENDING.value:
                        logger.warning(
                            "Reservation %s already %s — commit skipped",
                            reservation_id, record.status if record else "gone",
                        )
                        return False

                    user = await self._lock_user(db, user_id)
                    now = self._clock()
                    others = await self._reserved_sum(db, user_id, now, exclude=record.id)
                    if user.credit_balance - others < record.amount:
                        logger.warning(
                            "Reservation %s expired and is no longer covered (balance=%d, held=%d); releasing",
                            reservation_id, user.credit_balance, others,
                        )
                        record.status = ReservationStatus.RELEASED.value
                        record.resolved_at = now
                        return False

                    user.credit_balance -= record.amount
                    db.add(CreditTransaction(
                        user_id=user_id,
                        amount=-record.amount,
                        transaction_type="USAGE",
                        description=record.reason,
                        balance_after=user.credit_balance,
                        reference_id=record.id,
                    ))
                    record.status = ReservationStatus.COMMITTED.value
                    record.resolved_at = now
                    balance_after = user.credit_balance

        logger.info(
            "Committed reservation %s: user=%s -%d → balance %d",
            reservation_id, user_id, record.amount, balance_after,
        )
        return True

    async def release(self, reservation_id: str) -> bool:
        """Drop a PENDING hold without touching the balance. No-op if already resolved."""
        user_id = await self._owner_of(reservation_id)
        if user_id is None:
            return False

        async with self._locks[user_id]:
            async with self._session_factory() as db:
                async with db.begin():
                    record = await self._lock_reservation(db, reservation_id)
                    if record is None or record.status != ReservationStatus.PENDING.value:
                        return False
                    record.status = ReservationStatus.RELEASED.value
                    record.resolved_at = self._clock()

        logger.info("Released reservation %s (user=%s)", reservation_id, user_id)
        return True

    # ── Queries ──────────────────────────────────────────────────────

    async def get_reserved_amount(self, user_id: str) -> int:
        async with self._session_factory() as db:
            return await self._reserved_sum(db, user_id, self._clock())

    async def get_available_balance(self, user_id: str) -> int:
        async with self._session_factory() as db:
            balance = await db.scalar(select(User.credit_balance).where(User.id == user_id))
            if balance is None:
                return 0
            return balance - await self._reserved_sum(db, user_id, self._clock())

    async def get_reservation(self, reservation_id: str) -> Optional[CreditReservation]:
        async with self._session_factory() as db:
            return await db.get(CreditReservation, reservation_id)

    # ── Maintenance ──────────────────────────────────────────────────

    async def cleanup_expired(self) -> int:
        """Release every PENDING reservation past its expiry. Returns the count."""
        now = self._clock()
        async with self._session_factory() as db:
            async with db.begin():
                result = await db.execute(
                    update(CreditReservation)
                    .where(
                        CreditReservation.status == ReservationStatus.PENDING.value,
                        CreditReservation.expires_at <= now,
                    )
                    .values(status=ReservationStatus.RELEASED.value, resolved_at=now)
                )
        count = result.rowcount or 0
        if count:
            logger.info("Released %d expired reservation(s)", count)
        return count

    async def grant(self, user_id: str, amount: int, description: str = "grant") -> int:
        """Add credits (signup bonus, top-up). Returns the new balance."""
        if amount <= 0:
            raise ValueError(f"Grant amount must be positive, got {amount}")

        async with self._locks[user_id]:
            async with self._session_factory() as db:
                async with db.begin():
                    user = await self._lock_user(db, user_id)
                    if user is None:
                        raise LookupError(f"Unknown user {user_id}")
                    user.credit_balance += amount
                    db.add(CreditTransaction(
                        user_id=user_id,
                        amount=amount,
                        transaction_type="GRANT",
                        description=description,
                        balance_after=user.credit_balance,
                    ))
                    balance = user.credit_balance

        logger.info("Granted %d credit(s) to user=%s → balance %d", amount, user_id, balance)
        return balance

    # ── Helpers ──────────────────────────────────────────────────────

    async def _owner_of(self, reservation_id: str) -> Optional[str]:
        async with self._session_factory() as db:
            return await db.scalar(
                select(CreditReservation.user_id).where(CreditReservation.id == reservation_id)
            )

    @staticmethod
    async def _lock_user(db: AsyncSession, user_id: str) -> Optional[User]:
        result = await db.execute(select(User).where(User.id == user_id).with_for_update())
        return result.scalar_one_or_none()

    @staticmethod
    async def _lock_reservation(db: AsyncSession, reservation_id: str) -> Optional[CreditReservation]:
        result = await db.execute(
            select(CreditReservation)
            .where(CreditReservation.id == reservation_id)
            .with_for_update()
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def _reserved_sum(db: AsyncSession, user_id: str, now: datetime, exclude: Optional[str] = None) -> int:
        query = select(func.coalesce(func.sum(CreditReservation.amount), 0)).where(
            CreditReservation.user_id == user_id,
            CreditReservation.status == ReservationStatus.PENDING.value,
            CreditReservation.expires_at > now,
        )
        if exclude is not None:
            query = query.where(CreditReservation.id != exclude)
        total = await db.scalar(query)
        return int(total or 0)
