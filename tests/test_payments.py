from decimal import Decimal
from types import SimpleNamespace

import pytest

from booking_service.app import errors, models, schemas
from booking_service.app.availability import AvailabilityIndex
from booking_service.app.payments import PaymentLedger, derive_payment_status

PaymentStatus = models.PaymentStatus
BookingPaymentStatus = models.BookingPaymentStatus


def payment(amount, method=models.PaymentMethod.MOBILE_MONEY, status=PaymentStatus.SUCCESSFUL, **extra):
    return schemas.PaymentCreate(
        payment_method=method, payment_amount=Decimal(amount), payment_status=status, **extra
    )


@pytest.fixture
async def booking(db, manager, make_request):
    # total 87.00
    return await manager.create_booking(db, make_request(0, 3))


async def test_partial_then_full_payment(db, ledger, booking, fetch):
    first = await ledger.record_payment(db, booking.id, payment("40.00"))
    assert first.payment_reference.startswith("PAY")
    assert (await fetch(models.Booking, booking.id)).payment_status == BookingPaymentStatus.PARTIAL.value

    await ledger.record_payment(db, booking.id, payment("47.00", method=models.PaymentMethod.CARD))
    assert (await fetch(models.Booking, booking.id)).payment_status == BookingPaymentStatus.PAID.value

    payments = await ledger.list_payments(db, booking.id)
    assert [p.payment_amount for p in payments] == [Decimal("40.00"), Decimal("47.00")]
    assert len({p.payment_reference for p in payments}) == 2


async def test_failed_payment_does_not_count(db, ledger, booking, fetch):
    await ledger.record_payment(db, booking.id, payment("87.00", status=PaymentStatus.FAILED))

    assert (await fetch(models.Booking, booking.id)).payment_status == BookingPaymentStatus.PENDING.value


async def test_refund_recomputes_status(db, ledger, booking, fetch):
    paid = await ledger.record_payment(db, booking.id, payment("87.00"))

    refunded = await ledger.refund_payment(db, paid.id)

    assert refunded.payment_status == PaymentStatus.REFUNDED.value
    assert (await fetch(models.Booking, booking.id)).payment_status == BookingPaymentStatus.REFUNDED.value

    with pytest.raises(errors.InvalidTransition):
        await ledger.refund_payment(db, paid.id)


async def test_cancelled_booking_rejects_payments_but_allows_refunds(db, ledger, manager, booking, fetch):
    booking_id = booking.id
    paid_id = (await ledger.record_payment(db, booking_id, payment("20.00"))).id
    await manager.cancel_booking(db, booking_id)

    with pytest.raises(errors.InvalidTransition):
        await ledger.record_payment(db, booking_id, payment("10.00"))

    await ledger.refund_payment(db, paid_id)
    assert (await fetch(models.Booking, booking_id)).payment_status == BookingPaymentStatus.REFUNDED.value


async def test_completed_booking_still_accepts_payment(db, ledger, manager, booking, fetch):
    await manager.activate_booking(db, booking.id)
    await manager.complete_booking(db, booking.id, booking.expected_return_date)

    await ledger.record_payment(db, booking.id, payment("87.00"))

    assert (await fetch(models.Booking, booking.id)).payment_status == BookingPaymentStatus.PAID.value


async def test_unknown_booking_and_bad_amount(db, ledger, booking, count):
    booking_id = booking.id

    with pytest.raises(errors.NotFound):
        await ledger.record_payment(db, 999, payment("10.00"))
    with pytest.raises(errors.ValidationError):
        await ledger.record_payment(db, booking_id, payment("0"))

    assert await count(models.Payment) == 0


async def test_payment_takes_the_vehicle_lock(db, references, booking, count):
    index = AvailabilityIndex(lock_timeout=0)
    ledger = PaymentLedger(references=references, index=index)
    booking_id, vehicle_id = booking.id, booking.vehicle_id

    async with index.vehicle_lock(vehicle_id):
        with pytest.raises(errors.VehicleUnavailable, match="busy"):
            await ledger.record_payment(db, booking_id, payment("10.00"))
    assert await count(models.Payment) == 0

    await ledger.record_payment(db, booking_id, payment("10.00"))
    assert await count(models.Payment) == 1


@pytest.mark.parametrize("entries, expected", [
    ([], BookingPaymentStatus.PENDING),
    ([("50", PaymentStatus.SUCCESSFUL)], BookingPaymentStatus.PARTIAL),
    ([("50", PaymentStatus.SUCCESSFUL), ("50", PaymentStatus.SUCCESSFUL)], BookingPaymentStatus.PAID),
    ([("120", PaymentStatus.SUCCESSFUL)], BookingPaymentStatus.PAID),
    ([("100", PaymentStatus.REFUNDED)], BookingPaymentStatus.REFUNDED),
    ([("100", PaymentStatus.REFUNDED), ("30", PaymentStatus.SUCCESSFUL)], BookingPaymentStatus.PARTIAL),
    ([("100", PaymentStatus.FAILED), ("100", PaymentStatus.PENDING)], BookingPaymentStatus.PENDING),
])
def test_derive_payment_status(entries, expected):
    payments = [SimpleNamespace(payment_amount=Decimal(a), payment_status=s.value) for a, s in entries]

    assert derive_payment_status(Decimal("100.00"), payments) == expected
