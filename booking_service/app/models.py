import enum
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class VehicleStatus(str, enum.Enum):
    AVAILABLE = "Available"
    RENTED = "Rented"
    MAINTENANCE = "Maintenance"
    OUT_OF_SERVICE = "Out_of_Service"


class BookingStatus(str, enum.Enum):
    CONFIRMED = "Confirmed"
    ACTIVE = "Active"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class BookingPaymentStatus(str, enum.Enum):
    PENDING = "Pending"
    PAID = "Paid"
    PARTIAL = "Partial"
    REFUNDED = "Refunded"


class PaymentStatus(str, enum.Enum):
    SUCCESSFUL = "Successful"
    FAILED = "Failed"
    PENDING = "Pending"
    REFUNDED = "Refunded"


class PaymentMethod(str, enum.Enum):
    CASH = "Cash"
    CARD = "Card"
    BANK_TRANSFER = "Bank_Transfer"
    MOBILE_MONEY = "Mobile_Money"


class FuelType(str, enum.Enum):
    PETROL = "Petrol"
    DIESEL = "Diesel"
    ELECTRIC = "Electric"
    HYBRID = "Hybrid"


class Transmission(str, enum.Enum):
    MANUAL = "Manual"
    AUTOMATIC = "Automatic"


class MaintenanceType(str, enum.Enum):
    REGULAR_SERVICE = "Regular_Service"
    REPAIR = "Repair"
    INSPECTION = "Inspection"
    OIL_CHANGE = "Oil_Change"
    TIRE_CHANGE = "Tire_Change"
    OTHER = "Other"


class MaintenanceStatus(str, enum.Enum):
    SCHEDULED = "Scheduled"
    IN_PROGRESS = "In_Progress"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class DamageType(str, enum.Enum):
    MINOR = "Minor"
    MAJOR = "Major"
    COSMETIC = "Cosmetic"
    MECHANICAL = "Mechanical"


class RepairStatus(str, enum.Enum):
    PENDING = "Pending"
    IN_PROGRESS = "In_Progress"
    COMPLETED = "Completed"
    NOT_REQUIRED = "Not_Required"


class Customer(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(50), nullable=False)
    last_name = Column(String(50), nullable=False)
    email = Column(String(100), unique=True, nullable=False, index=True)
    phone = Column(String(20), nullable=False)
    date_of_birth = Column(Date, nullable=False)
    driving_license_number = Column(String(50), unique=True, nullable=False)
    license_expiry_date = Column(Date, nullable=False)
    address = Column(Text, nullable=False)
    city = Column(String(50), nullable=False)
    postal_code = Column(String(20), nullable=False)
    country = Column(String(50), nullable=False, default="Kenya")
    registration_date = Column(DateTime, default=datetime.utcnow)
    is_active = Column(Boolean, default=True)


class VehicleCategory(Base):
    __tablename__ = "vehicle_categories"

    id = Column(Integer, primary_key=True, index=True)
    category_name = Column(String(50), unique=True, nullable=False)
    daily_rate = Column(Numeric(10, 2), nullable=False)
    description = Column(Text)
    created_date = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("daily_rate > 0", name="chk_daily_rate"),
    )


class Vehicle(Base):
    __tablename__ = "vehicles"

    id = Column(Integer, primary_key=True, index=True)
    registration_number = Column(String(20), unique=True, nullable=False, index=True)
    make = Column(String(50), nullable=False)
    model = Column(String(50), nullable=False)
    year_manufactured = Column(Integer, nullable=False)
    color = Column(String(30), nullable=False)
    fuel_type = Column(String(20), nullable=False)
    transmission = Column(String(20), nullable=False)
    seating_capacity = Column(Integer, nullable=False)
    mileage = Column(Numeric(8, 2), default=0)
    category_id = Column(Integer, ForeignKey("vehicle_categories.id", ondelete="RESTRICT"), nullable=False)
    purchase_date = Column(Date)
    purchase_price = Column(Numeric(12, 2))
    # Written only by the booking lifecycle and the maintenance workflow
    current_status = Column(String(20), nullable=False, default=VehicleStatus.AVAILABLE.value, index=True)
    # Maintenance requested while the vehicle was out on rent
    maintenance_hold = Column(Boolean, nullable=False, default=False)
    last_service_date = Column(Date)
    next_service_date = Column(Date)
    insurance_expiry = Column(Date)
    is_active = Column(Boolean, default=True)
    created_date = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("seating_capacity BETWEEN 2 AND 12", name="chk_seating"),
        CheckConstraint("mileage >= 0", name="chk_mileage"),
    )


class Location(Base):
    __tablename__ = "locations"

    id = Column(Integer, primary_key=True, index=True)
    location_name = Column(String(100), unique=True, nullable=False)
    address = Column(Text, nullable=False)
    city = Column(String(50), nullable=False)
    phone = Column(String(20), nullable=False)
    operating_hours = Column(String(50), nullable=False)
    is_active = Column(Boolean, default=True)
    created_date = Column(DateTime, default=datetime.utcnow)


class Employee(Base):
    __tablename__ = "employees"

    id = Column(Integer, primary_key=True, index=True)
    employee_code = Column(String(20), unique=True, nullable=False)
    first_name = Column(String(50), nullable=False)
    last_name = Column(String(50), nullable=False)
    email = Column(String(100), unique=True, nullable=False)
    phone = Column(String(20), nullable=False)
    position = Column(String(50), nullable=False)
    salary = Column(Numeric(10, 2), nullable=False)
    hire_date = Column(Date, nullable=False)
    location_id = Column(Integer, ForeignKey("locations.id", ondelete="SET NULL"))
    is_active = Column(Boolean, default=True)
    created_date = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("salary > 0", name="chk_salary"),
    )


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    booking_reference = Column(String(20), unique=True, nullable=False)
    customer_id = Column(Integer, ForeignKey("customers.id", ondelete="RESTRICT"), nullable=False, index=True)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id", ondelete="RESTRICT"), nullable=False, index=True)
    pickup_location_id = Column(Integer, ForeignKey("locations.id", ondelete="RESTRICT"), nullable=False)
    dropoff_location_id = Column(Integer, ForeignKey("locations.id", ondelete="RESTRICT"), nullable=False)
    pickup_date = Column(DateTime, nullable=False)
    expected_return_date = Column(DateTime, nullable=False)
    actual_return_date = Column(DateTime, nullable=True)
    daily_rate = Column(Numeric(10, 2), nullable=False)
    total_days = Column(Integer, nullable=False)
    base_amount = Column(Numeric(10, 2), nullable=False)
    discount_amount = Column(Numeric(10, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(10, 2), nullable=False)
    total_amount = Column(Numeric(10, 2), nullable=False)
    booking_status = Column(String(20), nullable=False, default=BookingStatus.CONFIRMED.value, index=True)
    payment_status = Column(String(20), nullable=False, default=BookingPaymentStatus.PENDING.value)
    created_by = Column(Integer, ForeignKey("employees.id", ondelete="SET NULL"))
    booking_date = Column(DateTime, default=datetime.utcnow)
    notes = Column(Text)

    __table_args__ = (
        CheckConstraint("expected_return_date > pickup_date", name="chk_dates"),
        CheckConstraint("total_days > 0", name="chk_total_days"),
        CheckConstraint("base_amount > 0 AND total_amount >= 0 AND tax_amount >= 0", name="chk_amounts"),
        CheckConstraint("discount_amount >= 0 AND discount_amount <= base_amount", name="chk_discount"),
        Index("idx_bookings_dates", "pickup_date", "expected_return_date"),
    )


class Reservation(Base):
    """A committed [start_time, end_time) interval on a vehicle, one per live booking."""

    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True, index=True)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id", ondelete="RESTRICT"), nullable=False)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), unique=True, nullable=False)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("end_time > start_time", name="chk_reservation_window"),
        Index("idx_reservations_vehicle_window", "vehicle_id", "start_time", "end_time"),
    )


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="RESTRICT"), nullable=False, index=True)
    payment_reference = Column(String(50), unique=True, nullable=False)
    payment_method = Column(String(20), nullable=False)
    payment_amount = Column(Numeric(10, 2), nullable=False)
    payment_date = Column(DateTime, default=datetime.utcnow)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.SUCCESSFUL.value)
    transaction_id = Column(String(100))
    processed_by = Column(Integer, ForeignKey("employees.id", ondelete="SET NULL"))
    notes = Column(Text)

    __table_args__ = (
        CheckConstraint("payment_amount > 0", name="chk_payment_amount"),
    )


class VehicleMaintenance(Base):
    __tablename__ = "vehicle_maintenance"

    id = Column(Integer, primary_key=True, index=True)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id", ondelete="RESTRICT"), nullable=False, index=True)
    maintenance_type = Column(String(20), nullable=False)
    description = Column(Text, nullable=False)
    maintenance_date = Column(Date, nullable=False, index=True)
    cost = Column(Numeric(10, 2), nullable=False)
    service_provider = Column(String(100), nullable=False)
    next_service_km = Column(Numeric(8, 2))
    performed_by = Column(Integer, ForeignKey("employees.id", ondelete="SET NULL"))
    status = Column(String(20), nullable=False, default=MaintenanceStatus.SCHEDULED.value)
    created_date = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("cost >= 0", name="chk_maintenance_cost"),
    )


class DamageReport(Base):
    __tablename__ = "damage_reports"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="RESTRICT"), nullable=False)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id", ondelete="RESTRICT"), nullable=False)
    damage_description = Column(Text, nullable=False)
    damage_type = Column(String(20), nullable=False)
    damage_cost = Column(Numeric(10, 2), nullable=False)
    reported_date = Column(DateTime, default=datetime.utcnow)
    reported_by = Column(Integer, ForeignKey("employees.id", ondelete="SET NULL"))
    repair_status = Column(String(20), nullable=False, default=RepairStatus.PENDING.value)
    insurance_claim = Column(Boolean, default=False)

    __table_args__ = (
        CheckConstraint("damage_cost >= 0", name="chk_damage_cost"),
    )


class CustomerReview(Base):
    __tablename__ = "customer_reviews"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="RESTRICT"), unique=True, nullable=False)
    customer_id = Column(Integer, ForeignKey("customers.id", ondelete="RESTRICT"), nullable=False)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id", ondelete="RESTRICT"), nullable=False)
    rating = Column(Integer, nullable=False)
    review_title = Column(String(100))
    review_text = Column(Text)
    review_date = Column(DateTime, default=datetime.utcnow)
    is_approved = Column(Boolean, default=False)
    approved_by = Column(Integer, ForeignKey("employees.id", ondelete="SET NULL"))

    __table_args__ = (
        CheckConstraint("rating BETWEEN 1 AND 5", name="chk_rating"),
    )
