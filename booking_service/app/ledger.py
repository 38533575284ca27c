import asyncio
import logging
from contextlib import asynccontextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from . import errors, models

logger = logging.getLogger(__name__)


@asynccontextmanager
async def transaction(db: AsyncSession):
    """Commits everything written inside the block, or rolls all of it back.

    The rollback is shielded so a cancelled request still unwinds before the
    CancelledError propagates. SQLAlchemy errors surface as StorageFailure.
    """
    try:
        yield db
        await db.commit()
    except BaseException as e:
        await asyncio.shield(db.rollback())
        if isinstance(e, SQLAlchemyError):
            logger.error(f"Transaction aborted: {e}")
            raise errors.StorageFailure(f"Storage error: {e}") from e
        raise


class LedgerStore:
    """Keyed reads and writes for the booking engine. No business rules live here."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _get(self, model, record_id: int, label: str, for_update: bool = False):
        query = select(model).where(model.id == record_id)
        if for_update:
            # FOR UPDATE where the backend supports it; always reload the identity map
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        record = result.scalar_one_or_none()
        if record is None:
            raise errors.NotFound(f"{label} {record_id} not found")
        return record

    async def get_vehicle(self, vehicle_id: int, for_update: bool = False) -> models.Vehicle:
        return await self._get(models.Vehicle, vehicle_id, "Vehicle", for_update)

    async def get_category_rate(self, category_id: int):
        category = await self._get(models.VehicleCategory, category_id, "Vehicle category")
        return category.daily_rate

    async def get_customer(self, customer_id: int) -> models.Customer:
        return await self._get(models.Customer, customer_id, "Customer")

    async def get_location(self, location_id: int) -> models.Location:
        return await self._get(models.Location, location_id, "Location")

    async def get_employee(self, employee_id: int) -> models.Employee:
        return await self._get(models.Employee, employee_id, "Employee")

    async def get_booking(self, booking_id: int, for_update: bool = False) -> models.Booking:
        return await self._get(models.Booking, booking_id, "Booking", for_update)

    async def get_booking_by_reference(self, reference: str) -> models.Booking:
        result = await self.db.execute(
            select(models.Booking).where(models.Booking.booking_reference == reference)
        )
        booking = result.scalar_one_or_none()
        if booking is None:
            raise errors.NotFound(f"Booking {reference} not found")
        return booking

    async def get_payment(self, payment_id: int, for_update: bool = False) -> models.Payment:
        return await self._get(models.Payment, payment_id, "Payment", for_update)

    async def get_maintenance(self, maintenance_id: int, for_update: bool = False) -> models.VehicleMaintenance:
        return await self._get(models.VehicleMaintenance, maintenance_id, "Maintenance record", for_update)

    async def get_review(self, review_id: int) -> models.CustomerReview:
        return await self._get(models.CustomerReview, review_id, "Review")

    async def booking_reference_exists(self, reference: str) -> bool:
        result = await self.db.execute(
            select(models.Booking.id).where(models.Booking.booking_reference == reference)
        )
        return result.first() is not None

    async def payment_reference_exists(self, reference: str) -> bool:
        result = await self.db.execute(
            select(models.Payment.id).where(models.Payment.payment_reference == reference)
        )
        return result.first() is not None

    async def save_booking(self, booking: models.Booking) -> models.Booking:
        self.db.add(booking)
        # flush so the booking id is known to the reservation
        await self.db.flush()
        return booking

    async def update_vehicle_status(self, vehicle_id: int, vehicle_status: models.VehicleStatus) -> models.Vehicle:
        vehicle = await self.get_vehicle(vehicle_id)
        if vehicle.current_status != vehicle_status.value:
            logger.info(f"Vehicle {vehicle_id} status {vehicle.current_status} -> {vehicle_status.value}")
            vehicle.current_status = vehicle_status.value
        return vehicle

    async def open_bookings_for_vehicle(self, vehicle_id: int):
        result = await self.db.execute(
            select(models.Booking).where(
                models.Booking.vehicle_id == vehicle_id,
                models.Booking.booking_status.in_([
                    models.BookingStatus.CONFIRMED.value,
                    models.BookingStatus.ACTIVE.value,
                ]),
            )
        )
        return result.scalars().all()

    async def active_bookings_for_vehicle(self, vehicle_id: int, exclude_booking_id: int = None):
        """Bookings whose customer currently has the vehicle."""
        query = select(models.Booking).where(
            models.Booking.vehicle_id == vehicle_id,
            models.Booking.booking_status == models.BookingStatus.ACTIVE.value,
        )
        if exclude_booking_id is not None:
            query = query.where(models.Booking.id != exclude_booking_id)
        result = await self.db.execute(query)
        return result.scalars().all()
