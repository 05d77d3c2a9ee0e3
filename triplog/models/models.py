import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    String,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    Text,
    Index,
    CheckConstraint,
    Uuid,
    event,
    text,
)
from sqlalchemy.orm import relationship, Mapped, mapped_column, validates

from ..db import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def uuid_pk() -> Mapped[uuid.UUID]:
    return mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)


class Vehicle(Base):
    """Tenant-owned vehicle. Only the mileage ledger moves its odometer."""
    __tablename__ = "vehicles"

    id: Mapped[uuid.UUID] = uuid_pk()
    tenant_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    registration: Mapped[Optional[str]] = mapped_column(String(50), index=True)
    brand: Mapped[Optional[str]] = mapped_column(String(100))
    model: Mapped[Optional[str]] = mapped_column(String(100))
    assigned_driver_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), index=True)
    status: Mapped[str] = mapped_column(String(50), default="available", index=True)  # available|in_use|maintenance|out_of_service
    current_odometer: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # Legacy column, written only through current_odometer
    _mileage: Mapped[int] = mapped_column("mileage", Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    # Relationships
    trips = relationship("Trip", back_populates="vehicle", order_by="Trip.started_at.desc()")
    mileage_entries = relationship("MileageEntry", back_populates="vehicle", order_by="MileageEntry.recorded_at.desc()")

    __table_args__ = (
        Index('idx_vehicle_tenant_driver', 'tenant_id', 'assigned_driver_id'),
    )

    @validates("current_odometer")
    def _mirror_odometer(self, key, value):
        self._mileage = value
        return value

    @property
    def mileage(self) -> int:
        return self._mileage


class Trip(Base):
    """A driver's vehicle-usage session, from start snapshot to end snapshot"""
    __tablename__ = "trips"

    id: Mapped[uuid.UUID] = uuid_pk()
    tenant_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    vehicle_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("vehicles.id", ondelete="CASCADE"), nullable=False, index=True)
    driver_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="in_progress", index=True)  # in_progress|completed|cancelled

    # Start snapshot
    start_odometer: Mapped[int] = mapped_column(Integer, nullable=False)
    start_fuel_level: Mapped[int] = mapped_column(Integer, nullable=False)  # 0-100
    start_photos: Mapped[Optional[list]] = mapped_column(JSON)  # Array of photo URLs
    start_defects: Mapped[Optional[list]] = mapped_column(JSON)  # Array of defect dicts
    start_notes: Mapped[Optional[str]] = mapped_column(Text)
    start_location: Mapped[Optional[dict]] = mapped_column(JSON)  # {lat, lng}
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)

    # End snapshot
    end_odometer: Mapped[Optional[int]] = mapped_column(Integer)
    end_fuel_level: Mapped[Optional[int]] = mapped_column(Integer)
    end_photos: Mapped[Optional[list]] = mapped_column(JSON)
    end_defects: Mapped[Optional[list]] = mapped_column(JSON)
    end_notes: Mapped[Optional[str]] = mapped_column(Text)
    end_location: Mapped[Optional[dict]] = mapped_column(JSON)
    ended_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    # Derived at end
    distance_traveled: Mapped[Optional[int]] = mapped_column(Integer)
    duration_minutes: Mapped[Optional[int]] = mapped_column(Integer)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    # Relationships
    vehicle = relationship("Vehicle", back_populates="trips")

    __table_args__ = (
        # At most one in-progress trip per driver
        Index(
            'uq_trips_driver_in_progress',
            'driver_id',
            unique=True,
            postgresql_where=text("status = 'in_progress'"),
            sqlite_where=text("status = 'in_progress'"),
        ),
        Index('idx_trips_tenant_started', 'tenant_id', 'started_at'),
    )

    def can_be_ended(self) -> bool:
        return self.status == "in_progress"

    def can_be_cancelled(self) -> bool:
        return self.status == "in_progress"

    def is_in_progress(self) -> bool:
        return self.status == "in_progress"

    def is_completed(self) -> bool:
        return self.status == "completed"


class MileageEntry(Base):
    """Append-only odometer ledger"""
    __tablename__ = "mileage_entries"

    id: Mapped[uuid.UUID] = uuid_pk()
    tenant_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    vehicle_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("vehicles.id", ondelete="CASCADE"), nullable=False, index=True)
    mileage: Mapped[int] = mapped_column(Integer, nullable=False)
    previous_mileage: Mapped[int] = mapped_column(Integer, nullable=False)
    difference: Mapped[int] = mapped_column(Integer, nullable=False)
    source: Mapped[str] = mapped_column(String(20), nullable=False, default="manual")  # manual|maintenance|inspection
    notes: Mapped[Optional[str]] = mapped_column(Text)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    # Relationships
    vehicle = relationship("Vehicle", back_populates="mileage_entries")

    __table_args__ = (
        CheckConstraint('difference = mileage - previous_mileage', name='ck_mileage_entries_difference'),
        Index('idx_mileage_vehicle_recorded', 'vehicle_id', 'recorded_at'),
    )


@event.listens_for(MileageEntry, "before_update")
def _reject_entry_update(mapper, connection, target):
    raise ValueError(f"Mileage entry {target.id} is append-only and cannot be updated")


@event.listens_for(MileageEntry, "before_delete")
def _reject_entry_delete(mapper, connection, target):
    raise ValueError(f"Mileage entry {target.id} is append-only and cannot be deleted")


class Report(Base):
    """Incident report. Acknowledge/resolve lives with the reports team"""
    __tablename__ = "reports"

    id: Mapped[uuid.UUID] = uuid_pk()
    tenant_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    vehicle_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("vehicles.id", ondelete="CASCADE"), nullable=False, index=True)
    driver_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False)  # mechanical|accident|damage|cleaning|other
    description: Mapped[str] = mapped_column(Text, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="open", index=True)  # open|acknowledged|resolved
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index('idx_reports_tenant_status', 'tenant_id', 'status'),
    )
