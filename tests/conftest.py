import os

# Точно не трогаем локальную базу разработчика
os.environ.setdefault("BOOKING_DB_URL", "sqlite+aiosqlite:///:memory:")

from datetime import date, datetime, timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy import func
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.future import select

from booking_service.app import database, models, schemas
from booking_service.app.availability import AvailabilityIndex
from booking_service.app.lifecycle import BookingLifecycleManager
from booking_service.app.maintenance import MaintenanceWorkflow
from booking_service.app.payments import PaymentLedger
from booking_service.app.references import ReferenceGenerator

DAY0 = datetime(2030, 11, 1, 10, 0)


def day(n, hours=0):
    return DAY0 + timedelta(days=n, hours=hours)


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'car_hire_test.db'}")
    await database.create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def fleet(session_factory):
    """One economy car at 25.00/day, a customer, two branches and a clerk."""
    async with session_factory() as session:
        category = models.VehicleCategory(category_name="Economy", daily_rate=Decimal("25.00"))
        session.add(category)
        await session.flush()

        vehicle = models.Vehicle(
            registration_number="KDA 123A",
            make="Toyota",
            model="Vitz",
            year_manufactured=2019,
            color="Silver",
            fuel_type=models.FuelType.PETROL.value,
            transmission=models.Transmission.AUTOMATIC.value,
            seating_capacity=5,
            category_id=category.id,
            current_status=models.VehicleStatus.AVAILABLE.value,
        )
        second_vehicle = models.Vehicle(
            registration_number="KDB 456B",
            make="Mazda",
            model="Demio",
            year_manufactured=2020,
            color="Blue",
            fuel_type=models.FuelType.PETROL.value,
            transmission=models.Transmission.MANUAL.value,
            seating_capacity=5,
            category_id=category.id,
            current_status=models.VehicleStatus.AVAILABLE.value,
        )
        customer = models.Customer(
            first_name="Amina",
            last_name="Otieno",
            email="amina@example.com",
            phone="+254700000001",
            date_of_birth=date(1990, 5, 17),
            driving_license_number="DL-0001",
            license_expiry_date=date(2032, 1, 1),
            address="12 Moi Avenue",
            city="Nairobi",
            postal_code="00100",
        )
        other_customer = models.Customer(
            first_name="Brian",
            last_name="Kamau",
            email="brian@example.com",
            phone="+254700000002",
            date_of_birth=date(1985, 2, 3),
            driving_license_number="DL-0002",
            license_expiry_date=date(2031, 6, 30),
            address="4 Kenyatta Road",
            city="Mombasa",
            postal_code="80100",
        )
        airport = models.Location(
            location_name="JKIA Airport", address="Airport North Rd", city="Nairobi",
            phone="+254200000001", operating_hours="24/7",
        )
        downtown = models.Location(
            location_name="CBD Branch", address="Moi Avenue", city="Nairobi",
            phone="+254200000002", operating_hours="08:00-18:00",
        )
        session.add_all([vehicle, second_vehicle, customer, other_customer, airport, downtown])
        await session.flush()

        clerk = models.Employee(
            employee_code="EMP001", first_name="Grace", last_name="Wanjiru",
            email="grace@carhire.example.com", phone="+254711000000", position="Rental Agent",
            salary=Decimal("55000.00"), hire_date=date(2022, 3, 1), location_id=airport.id,
        )
        session.add(clerk)
        await session.commit()

        return SimpleNamespace(
            category_id=category.id,
            vehicle_id=vehicle.id,
            second_vehicle_id=second_vehicle.id,
            customer_id=customer.id,
            other_customer_id=other_customer.id,
            pickup_location_id=airport.id,
            dropoff_location_id=downtown.id,
            employee_id=clerk.id,
        )


@pytest.fixture
def index():
    return AvailabilityIndex(lock_timeout=2)


@pytest.fixture
def references():
    return ReferenceGenerator(backoff=0)


@pytest.fixture
def manager(index, references):
    return BookingLifecycleManager(index=index, references=references, tax_rate=Decimal("0.16"))


@pytest.fixture
def workflow(index):
    return MaintenanceWorkflow(index=index)


@pytest.fixture
def ledger(references, index):
    return PaymentLedger(references=references, index=index)


@pytest.fixture
def make_request(fleet):
    def _make(start=0, end=3, vehicle_id=None, **overrides):
        data = dict(
            customer_id=fleet.customer_id,
            vehicle_id=vehicle_id or fleet.vehicle_id,
            pickup_location_id=fleet.pickup_location_id,
            dropoff_location_id=fleet.dropoff_location_id,
            pickup_date=start if isinstance(start, datetime) else day(start),
            expected_return_date=end if isinstance(end, datetime) else day(end),
            created_by=fleet.employee_id,
        )
        data.update(overrides)
        return schemas.BookingCreate(**data)

    return _make


@pytest.fixture
def fetch(session_factory):
    """Reads a row through a fresh session, so the result reflects what was committed."""
    async def _fetch(model, record_id):
        async with session_factory() as session:
            result = await session.execute(select(model).where(model.id == record_id))
            return result.scalar_one_or_none()

    return _fetch


@pytest.fixture
def count(session_factory):
    async def _count(model):
        async with session_factory() as session:
            result = await session.execute(select(func.count()).select_from(model))
            return result.scalar_one()

    return _count
