import logging
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from . import config, errors, models, pricing, schemas
from .availability import AvailabilityIndex, availability_index
from .ledger import LedgerStore, transaction
from .references import ReferenceGenerator, reference_generator

logger = logging.getLogger(__name__)

PaymentStatus = models.PaymentStatus
BookingPaymentStatus = models.BookingPaymentStatus


def derive_payment_status(total_amount, payments) -> BookingPaymentStatus:
    """Booking payment status from its payment entries."""
    paid = sum(
        (Decimal(p.payment_amount) for p in payments if p.payment_status == PaymentStatus.SUCCESSFUL.value),
        Decimal("0"),
    )
    if paid > 0 and paid >= Decimal(total_amount):
        return BookingPaymentStatus.PAID
    if paid > 0:
        return BookingPaymentStatus.PARTIAL
    if any(p.payment_status == PaymentStatus.REFUNDED.value for p in payments):
        return BookingPaymentStatus.REFUNDED
    return BookingPaymentStatus.PENDING


class PaymentLedger:
    """Append-only payments against a booking."""

    def __init__(self, references: ReferenceGenerator = None, index: AvailabilityIndex = None):
        self.references = references or reference_generator
        self.index = index or availability_index

    async def list_payments(self, db: AsyncSession, booking_id: int):
        await LedgerStore(db).get_booking(booking_id)
        result = await db.execute(
            select(models.Payment)
            .where(models.Payment.booking_id == booking_id)
            .order_by(models.Payment.id)
        )
        return result.scalars().all()

    async def _refresh_booking_status(self, db: AsyncSession, booking: models.Booking):
        result = await db.execute(
            select(models.Payment).where(models.Payment.booking_id == booking.id)
        )
        booking.payment_status = derive_payment_status(booking.total_amount, result.scalars().all()).value

    async def record_payment(self, db: AsyncSession, booking_id: int,
                             data: schemas.PaymentCreate) -> models.Payment:
        amount = pricing.to_money(data.payment_amount)
        if amount <= 0:
            raise errors.ValidationError("Payment amount must be positive")

        store = LedgerStore(db)
        # serialized with cancel_booking on the vehicle lock
        vehicle_id = (await store.get_booking(booking_id)).vehicle_id

        async with self.index.vehicle_lock(vehicle_id):
            async with transaction(db):
                booking = await store.get_booking(booking_id, for_update=True)
                if booking.booking_status == models.BookingStatus.CANCELLED.value:
                    raise errors.InvalidTransition(
                        booking.booking_status, "Paid", "cancelled bookings do not accept payments"
                    )
                if data.processed_by is not None:
                    await store.get_employee(data.processed_by)

                reference = await self.references.next(
                    config.PAYMENT_REFERENCE_PREFIX, store.payment_reference_exists
                )
                payment = models.Payment(
                    booking_id=booking.id,
                    payment_reference=reference,
                    payment_method=data.payment_method.value,
                    payment_amount=amount,
                    payment_status=data.payment_status.value,
                    transaction_id=data.transaction_id,
                    processed_by=data.processed_by,
                    notes=data.notes,
                )
                db.add(payment)
                await db.flush()
                await self._refresh_booking_status(db, booking)

        logger.info(
            f"Payment {payment.payment_reference} of {amount} ({payment.payment_status}) "
            f"recorded for booking {booking.booking_reference}; payment status {booking.payment_status}"
        )
        return payment

    async def refund_payment(self, db: AsyncSession, payment_id: int) -> models.Payment:
        store = LedgerStore(db)
        async with transaction(db):
            payment = await store.get_payment(payment_id, for_update=True)
            if payment.payment_status != PaymentStatus.SUCCESSFUL.value:
                raise errors.InvalidTransition(payment.payment_status, PaymentStatus.REFUNDED.value)
            payment.payment_status = PaymentStatus.REFUNDED.value
            booking = await store.get_booking(payment.booking_id, for_update=True)
            await db.flush()
            await self._refresh_booking_status(db, booking)

        logger.info(f"Payment {payment.payment_reference} refunded; booking payment status {booking.payment_status}")
        return payment


payment_ledger = PaymentLedger()
