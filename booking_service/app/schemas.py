from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, validator

from .models import (
    DamageType,
    FuelType,
    MaintenanceType,
    PaymentMethod,
    PaymentStatus,
    RepairStatus,
    Transmission,
)


def to_naive_utc(v):
    # Храним datetime без часового пояса, в UTC
    if v is not None and v.tzinfo is not None:
        v = v.astimezone(timezone.utc).replace(tzinfo=None)
    return v


# ---- fleet reference data ----

class CategoryCreate(BaseModel):
    category_name: str
    daily_rate: Decimal = Field(gt=0, max_digits=10, decimal_places=2)
    description: Optional[str] = None


class Category(CategoryCreate):
    id: int
    created_date: datetime

    class Config:
        from_attributes = True


class VehicleBase(BaseModel):
    registration_number: str
    make: str
    model: str
    year_manufactured: int = Field(ge=1990)
    color: str
    fuel_type: FuelType
    transmission: Transmission
    seating_capacity: int = Field(ge=2, le=12)
    mileage: Decimal = Field(default=Decimal("0"), ge=0)
    category_id: int
    purchase_date: Optional[date] = None
    purchase_price: Optional[Decimal] = Field(default=None, gt=0)
    insurance_expiry: Optional[date] = None


class VehicleCreate(VehicleBase):
    pass


class VehicleUpdate(BaseModel):
    # no current_status: only bookings and maintenance move it
    color: Optional[str] = None
    mileage: Optional[Decimal] = Field(default=None, ge=0)
    category_id: Optional[int] = None
    insurance_expiry: Optional[date] = None
    is_active: Optional[bool] = None


class Vehicle(VehicleBase):
    id: int
    current_status: str
    maintenance_hold: bool
    last_service_date: Optional[date] = None
    next_service_date: Optional[date] = None
    is_active: bool
    created_date: datetime

    class Config:
        from_attributes = True


class LocationCreate(BaseModel):
    location_name: str
    address: str
    city: str
    phone: str
    operating_hours: str


class Location(LocationCreate):
    id: int
    is_active: bool

    class Config:
        from_attributes = True


class CustomerCreate(BaseModel):
    first_name: str
    last_name: str
    email: EmailStr
    phone: str
    date_of_birth: date
    driving_license_number: str
    license_expiry_date: date
    address: str
    city: str
    postal_code: str
    country: str = "Kenya"


class Customer(CustomerCreate):
    id: int
    registration_date: datetime
    is_active: bool

    class Config:
        from_attributes = True


class EmployeeCreate(BaseModel):
    employee_code: str
    first_name: str
    last_name: str
    email: EmailStr
    phone: str
    position: str
    salary: Decimal = Field(gt=0)
    hire_date: date
    location_id: Optional[int] = None


class Employee(EmployeeCreate):
    id: int
    is_active: bool

    class Config:
        from_attributes = True


# ---- bookings ----

class PriceBreakdown(BaseModel):
    daily_rate: Decimal
    total_days: int
    base_amount: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal


class BookingCreate(BaseModel):
    customer_id: int
    vehicle_id: int
    pickup_location_id: int
    dropoff_location_id: int
    pickup_date: datetime
    expected_return_date: datetime
    discount_amount: Decimal = Decimal("0")
    created_by: Optional[int] = None
    notes: Optional[str] = None

    @validator('pickup_date', 'expected_return_date')
    def ensure_naive_datetime(cls, v):
        return to_naive_utc(v)


class BookingComplete(BaseModel):
    actual_return_date: Optional[datetime] = None

    @validator('actual_return_date')
    def ensure_naive_datetime(cls, v):
        return to_naive_utc(v)


class Booking(BaseModel):
    id: int
    booking_reference: str
    customer_id: int
    vehicle_id: int
    pickup_location_id: int
    dropoff_location_id: int
    pickup_date: datetime
    expected_return_date: datetime
    actual_return_date: Optional[datetime] = None
    daily_rate: Decimal
    total_days: int
    base_amount: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    booking_status: str
    payment_status: str
    created_by: Optional[int] = None
    booking_date: datetime
    notes: Optional[str] = None

    class Config:
        from_attributes = True


class BookingConfirmation(BaseModel):
    booking_id: int
    booking_reference: str
    booking_status: str
    vehicle_id: int
    pickup_date: datetime
    expected_return_date: datetime
    price: PriceBreakdown

    @classmethod
    def from_booking(cls, booking):
        return cls(
            booking_id=booking.id,
            booking_reference=booking.booking_reference,
            booking_status=booking.booking_status,
            vehicle_id=booking.vehicle_id,
            pickup_date=booking.pickup_date,
            expected_return_date=booking.expected_return_date,
            price=PriceBreakdown(
                daily_rate=booking.daily_rate,
                total_days=booking.total_days,
                base_amount=booking.base_amount,
                discount_amount=booking.discount_amount,
                tax_amount=booking.tax_amount,
                total_amount=booking.total_amount,
            ),
        )


class QuoteRequest(BaseModel):
    vehicle_id: int
    pickup_date: datetime
    expected_return_date: datetime
    discount_amount: Decimal = Decimal("0")

    @validator('pickup_date', 'expected_return_date')
    def ensure_naive_datetime(cls, v):
        return to_naive_utc(v)


class Availability(BaseModel):
    vehicle_id: int
    start: datetime
    end: datetime
    available: bool


# ---- payments ----

class PaymentCreate(BaseModel):
    payment_method: PaymentMethod
    payment_amount: Decimal
    payment_status: PaymentStatus = PaymentStatus.SUCCESSFUL
    transaction_id: Optional[str] = None
    processed_by: Optional[int] = None
    notes: Optional[str] = None


class Payment(BaseModel):
    id: int
    booking_id: int
    payment_reference: str
    payment_method: str
    payment_amount: Decimal
    payment_date: datetime
    payment_status: str
    transaction_id: Optional[str] = None
    processed_by: Optional[int] = None
    notes: Optional[str] = None

    class Config:
        from_attributes = True


# ---- maintenance ----

class MaintenanceCreate(BaseModel):
    maintenance_type: MaintenanceType
    description: str
    maintenance_date: date
    cost: Decimal = Field(ge=0)
    service_provider: str
    next_service_km: Optional[Decimal] = None
    performed_by: Optional[int] = None


class MaintenanceFinish(BaseModel):
    next_service_date: Optional[date] = None


class Maintenance(MaintenanceCreate):
    id: int
    vehicle_id: int
    status: str
    created_date: datetime

    class Config:
        from_attributes = True


# ---- damage & reviews ----

class DamageReportCreate(BaseModel):
    damage_description: str
    damage_type: DamageType
    damage_cost: Decimal = Field(ge=0)
    reported_by: Optional[int] = None
    repair_status: RepairStatus = RepairStatus.PENDING
    insurance_claim: bool = False


class DamageReport(DamageReportCreate):
    id: int
    booking_id: int
    vehicle_id: int
    reported_date: datetime

    class Config:
        from_attributes = True


class ReviewCreate(BaseModel):
    customer_id: int
    rating: int = Field(ge=1, le=5)
    review_title: Optional[str] = None
    review_text: Optional[str] = None


class Review(ReviewCreate):
    id: int
    booking_id: int
    vehicle_id: int
    review_date: datetime
    is_approved: bool
    approved_by: Optional[int] = None

    class Config:
        from_attributes = True


class ReviewApprove(BaseModel):
    approved_by: int
