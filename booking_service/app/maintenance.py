"""Maintenance workflow: the only writer of vehicle status besides the booking lifecycle.

Status authority between the two writers:

* a rented vehicle is never pulled into Maintenance directly; the workflow sets
  ``maintenance_hold`` and the vehicle goes to Maintenance when its booking is
  completed or cancelled;
* Out_of_Service is only entered and left through ``retire``/``reinstate``.
"""
import logging
from datetime import date

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from . import errors, models, schemas
from .availability import AvailabilityIndex, availability_index
from .ledger import LedgerStore, transaction

logger = logging.getLogger(__name__)

VehicleStatus = models.VehicleStatus
MaintenanceStatus = models.MaintenanceStatus


def status_after_release(vehicle: models.Vehicle, still_out: bool = False) -> VehicleStatus:
    """Status a vehicle takes once the booking holding it is completed or cancelled.

    ``still_out`` means another booking on the vehicle is Active, so a customer
    still has it and it stays Rented.
    """
    if vehicle.current_status == VehicleStatus.OUT_OF_SERVICE.value:
        return VehicleStatus.OUT_OF_SERVICE
    if still_out:
        return VehicleStatus.RENTED
    if vehicle.maintenance_hold or vehicle.current_status == VehicleStatus.MAINTENANCE.value:
        return VehicleStatus.MAINTENANCE
    return VehicleStatus.AVAILABLE


class MaintenanceWorkflow:

    def __init__(self, index: AvailabilityIndex = None):
        self.index = index or availability_index

    async def schedule(self, db: AsyncSession, vehicle_id: int,
                       data: schemas.MaintenanceCreate) -> models.VehicleMaintenance:
        store = LedgerStore(db)
        async with transaction(db):
            await store.get_vehicle(vehicle_id)
            if data.performed_by is not None:
                await store.get_employee(data.performed_by)
            record = models.VehicleMaintenance(
                vehicle_id=vehicle_id,
                maintenance_type=data.maintenance_type.value,
                description=data.description,
                maintenance_date=data.maintenance_date,
                cost=data.cost,
                service_provider=data.service_provider,
                next_service_km=data.next_service_km,
                performed_by=data.performed_by,
                status=MaintenanceStatus.SCHEDULED.value,
            )
            db.add(record)

        logger.info(f"Scheduled {record.maintenance_type} for vehicle {vehicle_id} on {record.maintenance_date}")
        return record

    async def _move(self, db: AsyncSession, maintenance_id: int, allowed_from, target: MaintenanceStatus,
                    apply):
        store = LedgerStore(db)
        vehicle_id = (await store.get_maintenance(maintenance_id)).vehicle_id

        async with self.index.vehicle_lock(vehicle_id):
            async with transaction(db):
                record = await store.get_maintenance(maintenance_id, for_update=True)
                if record.status not in {s.value for s in allowed_from}:
                    raise errors.InvalidTransition(record.status, target.value)
                vehicle = await store.get_vehicle(vehicle_id, for_update=True)
                record.status = target.value
                await apply(db, store, record, vehicle)

        logger.info(f"Maintenance {maintenance_id} on vehicle {vehicle_id} -> {target.value}")
        return record

    async def start(self, db: AsyncSession, maintenance_id: int) -> models.VehicleMaintenance:
        async def take_vehicle(db, store, record, vehicle):
            rented_out = await store.active_bookings_for_vehicle(vehicle.id)
            if rented_out or vehicle.current_status == VehicleStatus.RENTED.value:
                # the booking lifecycle owns a rented vehicle; flag it for when it comes back
                vehicle.maintenance_hold = True
            elif vehicle.current_status == VehicleStatus.AVAILABLE.value:
                await store.update_vehicle_status(vehicle.id, VehicleStatus.MAINTENANCE)

        return await self._move(
            db, maintenance_id, {MaintenanceStatus.SCHEDULED}, MaintenanceStatus.IN_PROGRESS, take_vehicle
        )

    async def finish(self, db: AsyncSession, maintenance_id: int,
                     next_service_date: date = None) -> models.VehicleMaintenance:
        async def service_done(db, store, record, vehicle):
            vehicle.last_service_date = record.maintenance_date
            if next_service_date is not None:
                vehicle.next_service_date = next_service_date
            await self._release_vehicle(db, store, record, vehicle)

        return await self._move(
            db, maintenance_id, {MaintenanceStatus.IN_PROGRESS}, MaintenanceStatus.COMPLETED, service_done
        )

    async def cancel(self, db: AsyncSession, maintenance_id: int) -> models.VehicleMaintenance:
        async def called_off(db, store, record, vehicle):
            await self._release_vehicle(db, store, record, vehicle)

        return await self._move(
            db, maintenance_id, {MaintenanceStatus.SCHEDULED, MaintenanceStatus.IN_PROGRESS},
            MaintenanceStatus.CANCELLED, called_off,
        )

    async def _release_vehicle(self, db: AsyncSession, store: LedgerStore, record, vehicle):
        result = await db.execute(
            select(models.VehicleMaintenance.id).where(
                models.VehicleMaintenance.vehicle_id == vehicle.id,
                models.VehicleMaintenance.id != record.id,
                models.VehicleMaintenance.status == MaintenanceStatus.IN_PROGRESS.value,
            )
        )
        if result.first() is not None:
            return

        vehicle.maintenance_hold = False
        if vehicle.current_status == VehicleStatus.MAINTENANCE.value:
            await store.update_vehicle_status(vehicle.id, VehicleStatus.AVAILABLE)

    async def retire(self, db: AsyncSession, vehicle_id: int) -> models.Vehicle:
        store = LedgerStore(db)
        async with self.index.vehicle_lock(vehicle_id):
            async with transaction(db):
                vehicle = await store.get_vehicle(vehicle_id, for_update=True)
                open_bookings = await store.open_bookings_for_vehicle(vehicle_id)
                if open_bookings:
                    references = ", ".join(b.booking_reference for b in open_bookings)
                    raise errors.InvalidTransition(
                        vehicle.current_status, VehicleStatus.OUT_OF_SERVICE.value,
                        f"open bookings: {references}",
                    )
                await store.update_vehicle_status(vehicle_id, VehicleStatus.OUT_OF_SERVICE)
        return vehicle

    async def reinstate(self, db: AsyncSession, vehicle_id: int) -> models.Vehicle:
        store = LedgerStore(db)
        async with self.index.vehicle_lock(vehicle_id):
            async with transaction(db):
                vehicle = await store.get_vehicle(vehicle_id, for_update=True)
                if vehicle.current_status != VehicleStatus.OUT_OF_SERVICE.value:
                    raise errors.InvalidTransition(vehicle.current_status, VehicleStatus.AVAILABLE.value)
                await store.update_vehicle_status(vehicle_id, VehicleStatus.AVAILABLE)
        return vehicle


maintenance_workflow = MaintenanceWorkflow()
