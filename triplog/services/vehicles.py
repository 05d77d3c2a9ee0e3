import uuid
from typing import Optional

from sqlalchemy.orm import Session

from ..models.models import Vehicle, utcnow


class VehicleStore:
    """Tenant-scoped vehicle access used by the trip and mileage services."""

    def __init__(self, db: Session):
        self.db = db

    def get(
        self,
        vehicle_id: uuid.UUID,
        tenant_id: int,
        driver_id: Optional[uuid.UUID] = None,
        for_update: bool = False,
    ) -> Optional[Vehicle]:
        query = self.db.query(Vehicle).filter(
            Vehicle.id == vehicle_id,
            Vehicle.tenant_id == tenant_id,
        )
        if driver_id is not None:
            query = query.filter(Vehicle.assigned_driver_id == driver_id)
        if for_update:
            # No-op on SQLite, row lock on PostgreSQL
            query = query.with_for_update()
        return query.first()

    def set_odometer(self, vehicle: Vehicle, value: int) -> None:
        # Writes the legacy mileage column too, see Vehicle._mirror_odometer
        vehicle.current_odometer = value
        vehicle.updated_at = utcnow()
        self.db.flush()
