import logging

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from . import errors, models, schemas
from .ledger import LedgerStore, transaction

logger = logging.getLogger(__name__)

BookingStatus = models.BookingStatus


async def report_damage(db: AsyncSession, booking_id: int,
                        data: schemas.DamageReportCreate) -> models.DamageReport:
    """Records damage found during or after a rental. The vehicle is the booking's."""
    store = LedgerStore(db)
    async with transaction(db):
        booking = await store.get_booking(booking_id)
        if booking.booking_status not in (BookingStatus.ACTIVE.value, BookingStatus.COMPLETED.value):
            raise errors.ValidationError(
                f"Damage can only be reported on active or completed bookings, not {booking.booking_status}"
            )
        if data.reported_by is not None:
            await store.get_employee(data.reported_by)

        report = models.DamageReport(
            booking_id=booking.id,
            vehicle_id=booking.vehicle_id,
            damage_description=data.damage_description,
            damage_type=data.damage_type.value,
            damage_cost=data.damage_cost,
            reported_by=data.reported_by,
            repair_status=data.repair_status.value,
            insurance_claim=data.insurance_claim,
        )
        db.add(report)

    logger.info(f"{report.damage_type} damage reported on booking {booking.booking_reference}")
    return report


async def submit_review(db: AsyncSession, booking_id: int, data: schemas.ReviewCreate) -> models.CustomerReview:
    store = LedgerStore(db)
    async with transaction(db):
        booking = await store.get_booking(booking_id)
        if booking.booking_status != BookingStatus.COMPLETED.value:
            raise errors.ValidationError("Only completed bookings can be reviewed")
        if booking.customer_id != data.customer_id:
            raise errors.ValidationError("Customer can only review their own bookings")

        existing = await db.execute(
            select(models.CustomerReview.id).where(models.CustomerReview.booking_id == booking_id)
        )
        if existing.first() is not None:
            raise errors.ValidationError(f"Booking {booking.booking_reference} has already been reviewed")

        review = models.CustomerReview(
            booking_id=booking.id,
            customer_id=booking.customer_id,
            vehicle_id=booking.vehicle_id,
            rating=data.rating,
            review_title=data.review_title,
            review_text=data.review_text,
        )
        db.add(review)

    return review


async def approve_review(db: AsyncSession, review_id: int, employee_id: int) -> models.CustomerReview:
    store = LedgerStore(db)
    async with transaction(db):
        review = await store.get_review(review_id)
        await store.get_employee(employee_id)
        review.is_approved = True
        review.approved_by = employee_id
    return review
