"""Booking lifecycle: Confirmed -> Active -> Completed, with Cancelled reachable
from either live state.

Every transition runs under the vehicle's lock and inside a single transaction,
so the booking row, its reservation and the vehicle status always move together.
"""
import logging
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from . import config, errors, models, pricing, schemas
from .availability import AvailabilityIndex, availability_index
from .ledger import LedgerStore, transaction
from .maintenance import status_after_release
from .references import ReferenceGenerator, reference_generator

logger = logging.getLogger(__name__)

BookingStatus = models.BookingStatus
VehicleStatus = models.VehicleStatus

ALLOWED_TRANSITIONS = {
    BookingStatus.CONFIRMED: {BookingStatus.ACTIVE, BookingStatus.CANCELLED},
    BookingStatus.ACTIVE: {BookingStatus.COMPLETED, BookingStatus.CANCELLED},
    BookingStatus.COMPLETED: set(),
    BookingStatus.CANCELLED: set(),
}

UNRENTABLE = {VehicleStatus.MAINTENANCE.value, VehicleStatus.OUT_OF_SERVICE.value}


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def validate_transition(current: str, target: BookingStatus, reason: str = None):
    if target not in ALLOWED_TRANSITIONS[BookingStatus(current)]:
        raise errors.InvalidTransition(current, target.value, reason)


class BookingLifecycleManager:

    def __init__(self, index: AvailabilityIndex = None, references: ReferenceGenerator = None,
                 tax_rate=None, activation_grace=None, clock=None):
        self.index = index or availability_index
        self.references = references or reference_generator
        self.tax_rate = config.TAX_RATE if tax_rate is None else tax_rate
        self.activation_grace = config.ACTIVATION_GRACE if activation_grace is None else activation_grace
        self.clock = clock or utcnow

    # ---- read-only ----

    async def quote(self, db: AsyncSession, vehicle_id: int, start: datetime, end: datetime,
                    discount=0) -> schemas.PriceBreakdown:
        store = LedgerStore(db)
        total_days = pricing.rental_days(start, end)
        vehicle = await store.get_vehicle(vehicle_id)
        daily_rate = await store.get_category_rate(vehicle.category_id)
        return pricing.price(daily_rate, total_days, discount, self.tax_rate)

    async def check_availability(self, db: AsyncSession, vehicle_id: int, start: datetime, end: datetime) -> bool:
        await LedgerStore(db).get_vehicle(vehicle_id)
        return await self.index.is_available(db, vehicle_id, start, end)

    # ---- transitions ----

    async def create_booking(self, db: AsyncSession, request: schemas.BookingCreate) -> models.Booking:
        pickup, expected_return = request.pickup_date, request.expected_return_date
        total_days = pricing.rental_days(pickup, expected_return)
        store = LedgerStore(db)
        # unknown vehicles are refused before a lock is created for them
        await store.get_vehicle(request.vehicle_id)

        async with self.index.vehicle_lock(request.vehicle_id):
            async with transaction(db):
                vehicle = await store.get_vehicle(request.vehicle_id, for_update=True)
                if not vehicle.is_active or vehicle.current_status in UNRENTABLE:
                    raise errors.VehicleUnavailable(
                        f"Vehicle {vehicle.id} cannot be rented (status {vehicle.current_status})"
                    )

                customer = await store.get_customer(request.customer_id)
                if not customer.is_active:
                    raise errors.ValidationError(f"Customer {customer.id} is not active")
                await store.get_location(request.pickup_location_id)
                await store.get_location(request.dropoff_location_id)
                if request.created_by is not None:
                    await store.get_employee(request.created_by)

                # rate is copied onto the booking; later category changes do not affect it
                daily_rate = await store.get_category_rate(vehicle.category_id)
                breakdown = pricing.price(daily_rate, total_days, request.discount_amount, self.tax_rate)

                await self.index.ensure_available(db, vehicle.id, pickup, expected_return)

                reference = await self.references.next(
                    config.BOOKING_REFERENCE_PREFIX, store.booking_reference_exists
                )
                booking = models.Booking(
                    booking_reference=reference,
                    customer_id=customer.id,
                    vehicle_id=vehicle.id,
                    pickup_location_id=request.pickup_location_id,
                    dropoff_location_id=request.dropoff_location_id,
                    pickup_date=pickup,
                    expected_return_date=expected_return,
                    daily_rate=breakdown.daily_rate,
                    total_days=breakdown.total_days,
                    base_amount=breakdown.base_amount,
                    discount_amount=breakdown.discount_amount,
                    tax_amount=breakdown.tax_amount,
                    total_amount=breakdown.total_amount,
                    booking_status=BookingStatus.CONFIRMED.value,
                    payment_status=models.BookingPaymentStatus.PENDING.value,
                    created_by=request.created_by,
                    booking_date=self.clock(),
                    notes=request.notes,
                )
                await store.save_booking(booking)
                await self.index.reserve(db, vehicle.id, pickup, expected_return, booking.id)
                await store.update_vehicle_status(vehicle.id, VehicleStatus.RENTED)

        logger.info(
            f"Booking {booking.booking_reference} confirmed: vehicle {booking.vehicle_id}, "
            f"{booking.total_days} days, total {booking.total_amount}"
        )
        return booking

    async def _vehicle_of(self, db: AsyncSession, booking_id: int):
        # vehicle_id never changes, so it is safe to read before taking the lock
        booking = await LedgerStore(db).get_booking(booking_id)
        return booking.vehicle_id

    async def activate_booking(self, db: AsyncSession, booking_id: int) -> models.Booking:
        vehicle_id = await self._vehicle_of(db, booking_id)
        store = LedgerStore(db)

        async with self.index.vehicle_lock(vehicle_id):
            async with transaction(db):
                booking = await store.get_booking(booking_id, for_update=True)
                validate_transition(booking.booking_status, BookingStatus.ACTIVE)

                if self.activation_grace is not None:
                    earliest = booking.pickup_date - self.activation_grace
                    if self.clock() < earliest:
                        raise errors.InvalidTransition(
                            booking.booking_status, BookingStatus.ACTIVE.value,
                            f"pickup cannot be activated before {earliest:%Y-%m-%d %H:%M}",
                        )

                vehicle = await store.get_vehicle(vehicle_id, for_update=True)
                if vehicle.current_status in UNRENTABLE:
                    raise errors.VehicleUnavailable(
                        f"Vehicle {vehicle_id} is in {vehicle.current_status} and cannot be picked up"
                    )

                booking.booking_status = BookingStatus.ACTIVE.value
                await store.update_vehicle_status(vehicle_id, VehicleStatus.RENTED)

        logger.info(f"Booking {booking.booking_reference} activated")
        return booking

    async def complete_booking(self, db: AsyncSession, booking_id: int,
                               actual_return: datetime = None) -> models.Booking:
        vehicle_id = await self._vehicle_of(db, booking_id)
        store = LedgerStore(db)

        async with self.index.vehicle_lock(vehicle_id):
            async with transaction(db):
                booking = await store.get_booking(booking_id, for_update=True)
                validate_transition(booking.booking_status, BookingStatus.COMPLETED)

                actual_return = actual_return or self.clock()
                if actual_return < booking.pickup_date:
                    raise errors.ValidationError("Actual return date cannot be before pickup date")

                booking.actual_return_date = actual_return
                booking.booking_status = BookingStatus.COMPLETED.value
                await self._hand_back(db, store, booking)

        logger.info(f"Booking {booking.booking_reference} completed, returned {actual_return}")
        return booking

    async def cancel_booking(self, db: AsyncSession, booking_id: int) -> models.Booking:
        vehicle_id = await self._vehicle_of(db, booking_id)
        store = LedgerStore(db)

        async with self.index.vehicle_lock(vehicle_id):
            async with transaction(db):
                booking = await store.get_booking(booking_id, for_update=True)
                validate_transition(booking.booking_status, BookingStatus.CANCELLED)

                booking.booking_status = BookingStatus.CANCELLED.value
                await self._hand_back(db, store, booking)

        logger.info(f"Booking {booking.booking_reference} cancelled")
        return booking

    async def _hand_back(self, db: AsyncSession, store: LedgerStore, booking: models.Booking):
        await self.index.release(db, booking.id)
        vehicle = await store.get_vehicle(booking.vehicle_id, for_update=True)
        still_out = await store.active_bookings_for_vehicle(vehicle.id, exclude_booking_id=booking.id)
        await store.update_vehicle_status(vehicle.id, status_after_release(vehicle, bool(still_out)))


# Общий менеджер для всех запросов
lifecycle_manager = BookingLifecycleManager()
