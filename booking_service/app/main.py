import logging
from datetime import datetime
from typing import List

from fastapi import FastAPI, Depends, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from . import config, database, errors, feedback, schemas
from .database import get_db
from .fleet import router as fleet_router
from .ledger import LedgerStore
from .lifecycle import BookingLifecycleManager, lifecycle_manager
from .maintenance import MaintenanceWorkflow, maintenance_workflow
from .payments import PaymentLedger, payment_ledger

logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Car Hire Booking Service",
    description="API for car hire bookings, fleet availability and payments",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json"
)


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(fleet_router)


# Создание таблиц при старте приложения
@app.on_event("startup")
async def startup():
    await database.create_tables()


def get_lifecycle() -> BookingLifecycleManager:
    return lifecycle_manager


def get_payments() -> PaymentLedger:
    return payment_ledger


def get_maintenance() -> MaintenanceWorkflow:
    return maintenance_workflow


def http_error(e: errors.BookingServiceError) -> HTTPException:
    if e.status_code >= 500:
        logger.error(f"{type(e).__name__}: {e}")
    return HTTPException(status_code=e.status_code, detail=str(e))


# ---- bookings ----

@app.post("/bookings/", response_model=schemas.BookingConfirmation, status_code=status.HTTP_201_CREATED)
async def create_booking(
        booking_data: schemas.BookingCreate,
        db: AsyncSession = Depends(get_db),
        manager: BookingLifecycleManager = Depends(get_lifecycle)
):
    try:
        booking = await manager.create_booking(db, booking_data)
        return schemas.BookingConfirmation.from_booking(booking)
    except errors.BookingServiceError as e:
        raise http_error(e)
    except Exception as e:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error creating booking: {str(e)}"
        )


@app.get("/bookings/{booking_id}", response_model=schemas.Booking)
async def read_booking(booking_id: int, db: AsyncSession = Depends(get_db)):
    try:
        return await LedgerStore(db).get_booking(booking_id)
    except errors.BookingServiceError as e:
        raise http_error(e)


@app.get("/bookings/reference/{reference}", response_model=schemas.Booking)
async def read_booking_by_reference(reference: str, db: AsyncSession = Depends(get_db)):
    try:
        return await LedgerStore(db).get_booking_by_reference(reference)
    except errors.BookingServiceError as e:
        raise http_error(e)


@app.put("/bookings/{booking_id}/activate", response_model=schemas.Booking)
async def activate_booking(
        booking_id: int,
        db: AsyncSession = Depends(get_db),
        manager: BookingLifecycleManager = Depends(get_lifecycle)
):
    try:
        return await manager.activate_booking(db, booking_id)
    except errors.BookingServiceError as e:
        raise http_error(e)
    except Exception as e:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error activating booking: {str(e)}"
        )


@app.put("/bookings/{booking_id}/complete", response_model=schemas.Booking)
async def complete_booking(
        booking_id: int,
        completion: schemas.BookingComplete = None,
        db: AsyncSession = Depends(get_db),
        manager: BookingLifecycleManager = Depends(get_lifecycle)
):
    try:
        actual_return = completion.actual_return_date if completion else None
        return await manager.complete_booking(db, booking_id, actual_return)
    except errors.BookingServiceError as e:
        raise http_error(e)
    except Exception as e:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error completing booking: {str(e)}"
        )


@app.put("/bookings/{booking_id}/cancel", response_model=schemas.Booking)
async def cancel_booking(
        booking_id: int,
        db: AsyncSession = Depends(get_db),
        manager: BookingLifecycleManager = Depends(get_lifecycle)
):
    try:
        return await manager.cancel_booking(db, booking_id)
    except errors.BookingServiceError as e:
        raise http_error(e)
    except Exception as e:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error cancelling booking: {str(e)}"
        )


# ---- availability & quotes ----

@app.get("/vehicles/{vehicle_id}/availability", response_model=schemas.Availability)
async def check_availability(
        vehicle_id: int,
        start: datetime,
        end: datetime,
        db: AsyncSession = Depends(get_db),
        manager: BookingLifecycleManager = Depends(get_lifecycle)
):
    start, end = schemas.to_naive_utc(start), schemas.to_naive_utc(end)
    try:
        available = await manager.check_availability(db, vehicle_id, start, end)
    except errors.BookingServiceError as e:
        raise http_error(e)
    return schemas.Availability(vehicle_id=vehicle_id, start=start, end=end, available=available)


@app.post("/quotes/", response_model=schemas.PriceBreakdown)
async def quote(
        quote_data: schemas.QuoteRequest,
        db: AsyncSession = Depends(get_db),
        manager: BookingLifecycleManager = Depends(get_lifecycle)
):
    try:
        return await manager.quote(
            db,
            quote_data.vehicle_id,
            quote_data.pickup_date,
            quote_data.expected_return_date,
            quote_data.discount_amount,
        )
    except errors.BookingServiceError as e:
        raise http_error(e)


# ---- payments ----

@app.post("/bookings/{booking_id}/payments", response_model=schemas.Payment, status_code=status.HTTP_201_CREATED)
async def record_payment(
        booking_id: int,
        payment_data: schemas.PaymentCreate,
        db: AsyncSession = Depends(get_db),
        ledger: PaymentLedger = Depends(get_payments)
):
    try:
        return await ledger.record_payment(db, booking_id, payment_data)
    except errors.BookingServiceError as e:
        raise http_error(e)
    except Exception as e:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error recording payment: {str(e)}"
        )


@app.get("/bookings/{booking_id}/payments", response_model=List[schemas.Payment])
async def read_payments(
        booking_id: int,
        db: AsyncSession = Depends(get_db),
        ledger: PaymentLedger = Depends(get_payments)
):
    try:
        return await ledger.list_payments(db, booking_id)
    except errors.BookingServiceError as e:
        raise http_error(e)


@app.put("/payments/{payment_id}/refund", response_model=schemas.Payment)
async def refund_payment(
        payment_id: int,
        db: AsyncSession = Depends(get_db),
        ledger: PaymentLedger = Depends(get_payments)
):
    try:
        return await ledger.refund_payment(db, payment_id)
    except errors.BookingServiceError as e:
        raise http_error(e)


# ---- maintenance ----

@app.post("/vehicles/{vehicle_id}/maintenance", response_model=schemas.Maintenance,
          status_code=status.HTTP_201_CREATED)
async def schedule_maintenance(
        vehicle_id: int,
        maintenance_data: schemas.MaintenanceCreate,
        db: AsyncSession = Depends(get_db),
        workflow: MaintenanceWorkflow = Depends(get_maintenance)
):
    try:
        return await workflow.schedule(db, vehicle_id, maintenance_data)
    except errors.BookingServiceError as e:
        raise http_error(e)


@app.put("/maintenance/{maintenance_id}/start", response_model=schemas.Maintenance)
async def start_maintenance(
        maintenance_id: int,
        db: AsyncSession = Depends(get_db),
        workflow: MaintenanceWorkflow = Depends(get_maintenance)
):
    try:
        return await workflow.start(db, maintenance_id)
    except errors.BookingServiceError as e:
        raise http_error(e)


@app.put("/maintenance/{maintenance_id}/finish", response_model=schemas.Maintenance)
async def finish_maintenance(
        maintenance_id: int,
        finish_data: schemas.MaintenanceFinish = None,
        db: AsyncSession = Depends(get_db),
        workflow: MaintenanceWorkflow = Depends(get_maintenance)
):
    try:
        next_service_date = finish_data.next_service_date if finish_data else None
        return await workflow.finish(db, maintenance_id, next_service_date)
    except errors.BookingServiceError as e:
        raise http_error(e)


@app.put("/maintenance/{maintenance_id}/cancel", response_model=schemas.Maintenance)
async def cancel_maintenance(
        maintenance_id: int,
        db: AsyncSession = Depends(get_db),
        workflow: MaintenanceWorkflow = Depends(get_maintenance)
):
    try:
        return await workflow.cancel(db, maintenance_id)
    except errors.BookingServiceError as e:
        raise http_error(e)


@app.put("/vehicles/{vehicle_id}/retire", response_model=schemas.Vehicle)
async def retire_vehicle(
        vehicle_id: int,
        db: AsyncSession = Depends(get_db),
        workflow: MaintenanceWorkflow = Depends(get_maintenance)
):
    try:
        return await workflow.retire(db, vehicle_id)
    except errors.BookingServiceError as e:
        raise http_error(e)


@app.put("/vehicles/{vehicle_id}/reinstate", response_model=schemas.Vehicle)
async def reinstate_vehicle(
        vehicle_id: int,
        db: AsyncSession = Depends(get_db),
        workflow: MaintenanceWorkflow = Depends(get_maintenance)
):
    try:
        return await workflow.reinstate(db, vehicle_id)
    except errors.BookingServiceError as e:
        raise http_error(e)


# ---- damage & reviews ----

@app.post("/bookings/{booking_id}/damage-reports", response_model=schemas.DamageReport,
          status_code=status.HTTP_201_CREATED)
async def report_damage(
        booking_id: int,
        damage_data: schemas.DamageReportCreate,
        db: AsyncSession = Depends(get_db)
):
    try:
        return await feedback.report_damage(db, booking_id, damage_data)
    except errors.BookingServiceError as e:
        raise http_error(e)


@app.post("/bookings/{booking_id}/reviews", response_model=schemas.Review, status_code=status.HTTP_201_CREATED)
async def submit_review(
        booking_id: int,
        review_data: schemas.ReviewCreate,
        db: AsyncSession = Depends(get_db)
):
    try:
        return await feedback.submit_review(db, booking_id, review_data)
    except errors.BookingServiceError as e:
        raise http_error(e)


@app.put("/reviews/{review_id}/approve", response_model=schemas.Review)
async def approve_review(
        review_id: int,
        approval: schemas.ReviewApprove,
        db: AsyncSession = Depends(get_db)
):
    try:
        return await feedback.approve_review(db, review_id, approval.approved_by)
    except errors.BookingServiceError as e:
        raise http_error(e)


@app.get("/health")
async def health_check(db: AsyncSession = Depends(get_db)):
    health_info = {
        "status": "healthy",
        "service": "booking",
        "timestamp": datetime.utcnow().isoformat()
    }

    # Проверка базы данных
    try:
        start_time = datetime.utcnow()
        await db.execute(text("SELECT 1"))
        db_response_time = (datetime.utcnow() - start_time).total_seconds() * 1000
        health_info["database"] = {
            "status": "connected",
            "response_time_ms": round(db_response_time, 2)
        }
    except Exception as e:
        health_info["database"] = {
            "status": "error",
            "error": str(e)
        }
        health_info["status"] = "unhealthy"

    return health_info
