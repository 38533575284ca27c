import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from . import models, schemas
from .database import get_db

logger = logging.getLogger(__name__)

router = APIRouter(tags=["fleet"])


async def _create(db: AsyncSession, record, label: str):
    try:
        db.add(record)
        await db.commit()
        await db.refresh(record)
        return record
    except IntegrityError as e:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"{label} conflicts with an existing record: {e.orig}"
        )
    except Exception as e:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error creating {label.lower()}: {str(e)}"
        )


async def _get_or_404(db: AsyncSession, model, record_id: int, label: str):
    result = await db.execute(select(model).where(model.id == record_id))
    record = result.scalar_one_or_none()
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{label} not found"
        )
    return record


async def _list(db: AsyncSession, query, skip: int, limit: int, label: str):
    try:
        result = await db.execute(query.offset(skip).limit(limit))
        return result.scalars().all()
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error retrieving {label}: {str(e)}"
        )


# ---- categories ----

@router.post("/categories/", response_model=schemas.Category, status_code=status.HTTP_201_CREATED)
async def create_category(data: schemas.CategoryCreate, db: AsyncSession = Depends(get_db)):
    return await _create(db, models.VehicleCategory(**data.dict()), "Category")


@router.get("/categories/", response_model=List[schemas.Category])
async def read_categories(skip: int = 0, limit: int = 100, db: AsyncSession = Depends(get_db)):
    return await _list(db, select(models.VehicleCategory).order_by(models.VehicleCategory.id), skip, limit,
                       "categories")


# ---- vehicles ----

@router.post("/vehicles/", response_model=schemas.Vehicle, status_code=status.HTTP_201_CREATED)
async def create_vehicle(data: schemas.VehicleCreate, db: AsyncSession = Depends(get_db)):
    await _get_or_404(db, models.VehicleCategory, data.category_id, "Category")

    vehicle_data = data.dict()
    vehicle_data["fuel_type"] = data.fuel_type.value
    vehicle_data["transmission"] = data.transmission.value
    vehicle = models.Vehicle(
        **vehicle_data,
        current_status=models.VehicleStatus.AVAILABLE.value,
        maintenance_hold=False,
        is_active=True,
    )
    return await _create(db, vehicle, "Vehicle")


@router.get("/vehicles/", response_model=List[schemas.Vehicle])
async def read_vehicles(
        skip: int = 0,
        limit: int = 100,
        available_only: bool = False,
        db: AsyncSession = Depends(get_db)
):
    query = select(models.Vehicle).order_by(models.Vehicle.id)
    if available_only:
        query = query.where(
            models.Vehicle.current_status == models.VehicleStatus.AVAILABLE.value,
            models.Vehicle.is_active.is_(True),
        )
    return await _list(db, query, skip, limit, "vehicles")


@router.get("/vehicles/{vehicle_id}", response_model=schemas.Vehicle)
async def read_vehicle(vehicle_id: int, db: AsyncSession = Depends(get_db)):
    return await _get_or_404(db, models.Vehicle, vehicle_id, "Vehicle")


@router.put("/vehicles/{vehicle_id}", response_model=schemas.Vehicle)
async def update_vehicle(
        vehicle_id: int,
        vehicle_data: schemas.VehicleUpdate,
        db: AsyncSession = Depends(get_db)
):
    try:
        vehicle = await _get_or_404(db, models.Vehicle, vehicle_id, "Vehicle")

        update_data = vehicle_data.dict(exclude_unset=True)
        if update_data.get("category_id") is not None:
            await _get_or_404(db, models.VehicleCategory, update_data["category_id"], "Category")

        for field, value in update_data.items():
            setattr(vehicle, field, value)

        await db.commit()
        await db.refresh(vehicle)
        return vehicle

    except HTTPException:
        raise
    except Exception as e:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error updating vehicle: {str(e)}"
        )


# ---- locations ----

@router.post("/locations/", response_model=schemas.Location, status_code=status.HTTP_201_CREATED)
async def create_location(data: schemas.LocationCreate, db: AsyncSession = Depends(get_db)):
    return await _create(db, models.Location(**data.dict(), is_active=True), "Location")


@router.get("/locations/", response_model=List[schemas.Location])
async def read_locations(skip: int = 0, limit: int = 100, db: AsyncSession = Depends(get_db)):
    return await _list(db, select(models.Location).order_by(models.Location.id), skip, limit, "locations")


# ---- customers ----

@router.post("/customers/", response_model=schemas.Customer, status_code=status.HTTP_201_CREATED)
async def create_customer(data: schemas.CustomerCreate, db: AsyncSession = Depends(get_db)):
    return await _create(db, models.Customer(**data.dict(), is_active=True), "Customer")


@router.get("/customers/", response_model=List[schemas.Customer])
async def read_customers(skip: int = 0, limit: int = 100, db: AsyncSession = Depends(get_db)):
    return await _list(db, select(models.Customer).order_by(models.Customer.id), skip, limit, "customers")


@router.get("/customers/{customer_id}", response_model=schemas.Customer)
async def read_customer(customer_id: int, db: AsyncSession = Depends(get_db)):
    return await _get_or_404(db, models.Customer, customer_id, "Customer")


# ---- employees ----

@router.post("/employees/", response_model=schemas.Employee, status_code=status.HTTP_201_CREATED)
async def create_employee(data: schemas.EmployeeCreate, db: AsyncSession = Depends(get_db)):
    return await _create(db, models.Employee(**data.dict(), is_active=True), "Employee")


@router.get("/employees/", response_model=List[schemas.Employee])
async def read_employees(skip: int = 0, limit: int = 100, db: AsyncSession = Depends(get_db)):
    return await _list(db, select(models.Employee).order_by(models.Employee.id), skip, limit, "employees")
