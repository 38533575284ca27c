import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from . import config, errors, models

logger = logging.getLogger(__name__)


class AvailabilityIndex:
    """Committed rental windows per vehicle, stored in the reservations table.

    Writers must hold ``vehicle_lock(vehicle_id)`` for the whole enclosing
    transaction, so the overlap check and the insert cannot interleave with
    another request for the same vehicle. Different vehicles never contend.
    """

    def __init__(self, lock_timeout: float = None):
        self.lock_timeout = config.VEHICLE_LOCK_TIMEOUT if lock_timeout is None else lock_timeout
        # vehicle_id -> [lock, holders + waiters]
        self._locks = {}

    @asynccontextmanager
    async def vehicle_lock(self, vehicle_id: int):
        """Holds the vehicle's lock for the block.

        With ``lock_timeout`` 0 a busy vehicle is refused at once; otherwise the
        caller waits at most ``lock_timeout`` seconds. Either way the refusal is
        ``VehicleUnavailable``. The lock is dropped from the map once nobody holds
        or waits for it.
        """
        entry = self._locks.setdefault(vehicle_id, [asyncio.Lock(), 0])
        lock = entry[0]
        entry[1] += 1
        try:
            await self._acquire(vehicle_id, lock)
            try:
                yield
            finally:
                lock.release()
        finally:
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[vehicle_id]

    async def _acquire(self, vehicle_id: int, lock: asyncio.Lock):
        if not self.lock_timeout:
            if lock.locked():
                logger.warning(f"Vehicle {vehicle_id} lock is held, refusing")
                raise errors.VehicleUnavailable(f"Vehicle {vehicle_id} is busy, try again")
            await lock.acquire()
            return
        try:
            await asyncio.wait_for(lock.acquire(), timeout=self.lock_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Timed out waiting for vehicle {vehicle_id} lock")
            raise errors.VehicleUnavailable(f"Vehicle {vehicle_id} is busy, try again")

    @staticmethod
    def _check_window(start: datetime, end: datetime):
        if end <= start:
            raise errors.ValidationError("Window end must be after its start")

    async def conflicts(self, db: AsyncSession, vehicle_id: int, start: datetime, end: datetime,
                        exclude_booking_id: int = None):
        # half-open windows: [s1, e1) and [s2, e2) overlap iff s1 < e2 and s2 < e1
        query = select(models.Reservation).where(
            models.Reservation.vehicle_id == vehicle_id,
            models.Reservation.start_time < end,
            models.Reservation.end_time > start,
        )
        if exclude_booking_id is not None:
            query = query.where(models.Reservation.booking_id != exclude_booking_id)
        result = await db.execute(query)
        return result.scalars().all()

    async def is_available(self, db: AsyncSession, vehicle_id: int, start: datetime, end: datetime) -> bool:
        self._check_window(start, end)
        return not await self.conflicts(db, vehicle_id, start, end)

    async def ensure_available(self, db: AsyncSession, vehicle_id: int, start: datetime, end: datetime):
        self._check_window(start, end)
        clashing = await self.conflicts(db, vehicle_id, start, end)
        if clashing:
            taken = ", ".join(f"{r.start_time:%Y-%m-%d %H:%M}-{r.end_time:%Y-%m-%d %H:%M}" for r in clashing)
            raise errors.VehicleUnavailable(f"Vehicle {vehicle_id} is already booked for {taken}")

    async def reserve(self, db: AsyncSession, vehicle_id: int, start: datetime, end: datetime,
                      booking_id: int) -> models.Reservation:
        await self.ensure_available(db, vehicle_id, start, end)

        reservation = models.Reservation(
            vehicle_id=vehicle_id,
            booking_id=booking_id,
            start_time=start,
            end_time=end,
        )
        db.add(reservation)
        await db.flush()
        logger.info(f"Reserved vehicle {vehicle_id} {start} -> {end} for booking {booking_id}")
        return reservation

    async def release(self, db: AsyncSession, booking_id: int) -> bool:
        result = await db.execute(
            delete(models.Reservation).where(models.Reservation.booking_id == booking_id)
        )
        released = result.rowcount > 0
        if released:
            logger.info(f"Released reservation for booking {booking_id}")
        return released


# Один индекс на процесс: блокировки по vehicle_id должны быть общими
availability_index = AvailabilityIndex()
