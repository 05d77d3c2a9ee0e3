"""
Mileage ledger service.
Append-only odometer history; the only writer of a vehicle's current odometer.
"""
import uuid
from datetime import datetime
from typing import Callable, List, Optional

import structlog
from sqlalchemy.orm import Session

from ..config import settings
from ..models.models import MileageEntry, Vehicle, utcnow
from ..schemas.trips import MileageSource
from .errors import BadRequest, NotFound
from .vehicles import VehicleStore

logger = structlog.get_logger(__name__)


class MileageLedger:
    def __init__(
        self,
        db: Session,
        vehicles: Optional[VehicleStore] = None,
        max_jump: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.db = db
        self.vehicles = vehicles or VehicleStore(db)
        self.clock = clock or utcnow
        self.max_jump = settings.max_manual_mileage_jump if max_jump is None else max_jump

    def check_increase(self, vehicle: Vehicle, new_mileage: int) -> None:
        current = vehicle.current_odometer or 0
        if new_mileage <= current:
            raise BadRequest(
                f"New mileage ({new_mileage}) must be greater than current mileage ({current})"
            )

    def check_bound(self, vehicle: Vehicle, new_mileage: int) -> None:
        """Reject a forward move larger than a single update can plausibly cover"""
        difference = new_mileage - (vehicle.current_odometer or 0)
        if difference > self.max_jump:
            raise BadRequest(
                f"mileage jump too large, possible fraud ({difference} > {self.max_jump})"
            )

    def record(
        self,
        vehicle_id: uuid.UUID,
        new_mileage: int,
        source: MileageSource,
        tenant_id: int,
        notes: Optional[str] = None,
        *,
        require_increase: bool = False,
        enforce_jump_bound: bool = False,
    ) -> MileageEntry:
        """
        Append a ledger entry and move the vehicle odometer to new_mileage.

        Both writes are flushed into the caller's transaction; the caller
        commits or rolls back. Nothing is committed here.
        """
        vehicle = self.vehicles.get(vehicle_id, tenant_id, for_update=True)
        if not vehicle:
            raise NotFound("Vehicle not found")

        if require_increase:
            self.check_increase(vehicle, new_mileage)
        if enforce_jump_bound:
            self.check_bound(vehicle, new_mileage)

        previous_mileage = vehicle.current_odometer or 0
        entry = MileageEntry(
            tenant_id=tenant_id,
            vehicle_id=vehicle.id,
            mileage=new_mileage,
            previous_mileage=previous_mileage,
            difference=new_mileage - previous_mileage,
            source=MileageSource(source).value,
            notes=notes,
            recorded_at=self.clock(),
        )
        self.db.add(entry)
        self.db.flush()

        self.vehicles.set_odometer(vehicle, new_mileage)

        logger.info(
            "mileage_recorded",
            vehicle_id=str(vehicle.id),
            tenant_id=tenant_id,
            previous_mileage=previous_mileage,
            mileage=new_mileage,
            source=entry.source,
        )
        return entry

    def manual_update(
        self,
        vehicle_id: uuid.UUID,
        new_mileage: int,
        driver_id: uuid.UUID,
        tenant_id: int,
        notes: Optional[str] = None,
    ) -> MileageEntry:
        """Driver self-service odometer update, bounded against fraud"""
        vehicle = self.vehicles.get(vehicle_id, tenant_id, driver_id=driver_id, for_update=True)
        if not vehicle:
            raise NotFound("Vehicle not assigned to this driver")

        try:
            # Checked against the locked row, before anything is written
            entry = self.record(
                vehicle.id,
                new_mileage,
                MileageSource.manual,
                tenant_id,
                notes or f"Updated by driver {driver_id}",
                require_increase=True,
                enforce_jump_bound=True,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(entry)
        return entry

    def history(
        self,
        vehicle_id: uuid.UUID,
        tenant_id: int,
        limit: Optional[int] = None,
    ) -> List[MileageEntry]:
        limit = limit or settings.mileage_history_limit
        return (
            self.db.query(MileageEntry)
            .filter(
                MileageEntry.vehicle_id == vehicle_id,
                MileageEntry.tenant_id == tenant_id,
            )
            .order_by(MileageEntry.recorded_at.desc())
            .limit(limit)
            .all()
        )
