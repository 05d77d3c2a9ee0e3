"""
Trip lifecycle service.
A driver's vehicle-usage session: start -> end | cancel.
Ending a trip reconciles the vehicle odometer through the mileage ledger and
escalates newly found severe defects into an incident report.
"""
import uuid
from datetime import datetime, timezone
from typing import Callable, Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config import settings
from ..models.models import Report, Trip, utcnow
from ..schemas.trips import (
    EndTripRequest,
    MileageSource,
    ReportType,
    StartTripRequest,
    TripFilter,
    TripStatus,
)
from .defects import describe, severe_new
from .errors import BadRequest, Conflict, NotFound
from .incidents import ReportCreator, SqlReportCreator
from .mileage import MileageLedger
from .vehicles import VehicleStore

logger = structlog.get_logger(__name__)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _dump_list(items) -> Optional[list]:
    if items is None:
        return None
    return [item.model_dump(mode="json") for item in items]


def _dump(item) -> Optional[dict]:
    if item is None:
        return None
    return item.model_dump(mode="json")


class TripService:
    def __init__(
        self,
        db: Session,
        vehicles: Optional[VehicleStore] = None,
        ledger: Optional[MileageLedger] = None,
        reports: Optional[ReportCreator] = None,
        clock: Optional[Callable[[], datetime]] = None,
        odometer_warning_threshold: Optional[int] = None,
        enforce_jump_bound_on_end: Optional[bool] = None,
    ):
        self.db = db
        self.vehicles = vehicles or VehicleStore(db)
        self.clock = clock or utcnow
        self.ledger = ledger or MileageLedger(db, self.vehicles, clock=self.clock)
        self.reports = reports if reports is not None else SqlReportCreator(db)
        self.odometer_warning_threshold = (
            settings.odometer_warning_threshold
            if odometer_warning_threshold is None
            else odometer_warning_threshold
        )
        self.enforce_jump_bound_on_end = (
            settings.enforce_jump_bound_on_trip_end
            if enforce_jump_bound_on_end is None
            else enforce_jump_bound_on_end
        )

    # ---------- TRANSITIONS ----------
    def start(self, request: StartTripRequest, driver_id: uuid.UUID, tenant_id: int) -> Trip:
        if self.get_current(driver_id) is not None:
            raise Conflict("session already in progress")

        vehicle = self.vehicles.get(request.vehicle_id, tenant_id, driver_id=driver_id)
        if not vehicle:
            raise NotFound("Vehicle not assigned to this driver")

        current = vehicle.current_odometer
        if current and abs(request.start_odometer - current) > self.odometer_warning_threshold:
            logger.warning(
                "trip_start_odometer_mismatch",
                vehicle_id=str(vehicle.id),
                driver_id=str(driver_id),
                start_odometer=request.start_odometer,
                current_odometer=current,
            )

        trip = Trip(
            tenant_id=tenant_id,
            vehicle_id=vehicle.id,
            driver_id=driver_id,
            status=TripStatus.in_progress.value,
            start_odometer=request.start_odometer,
            start_fuel_level=request.start_fuel_level,
            start_photos=list(request.start_photos),
            start_defects=_dump_list(request.start_defects),
            start_notes=request.start_notes,
            start_location=_dump(request.start_location),
            started_at=self.clock(),
        )
        self.db.add(trip)
        try:
            self.db.commit()
        except IntegrityError:
            # Lost the race against a concurrent start for the same driver
            self.db.rollback()
            raise Conflict("session already in progress")

        self.db.refresh(trip)
        logger.info(
            "trip_started",
            trip_id=str(trip.id),
            driver_id=str(driver_id),
            vehicle_id=str(vehicle.id),
            tenant_id=tenant_id,
        )
        return trip

    def end(self, trip_id: uuid.UUID, request: EndTripRequest, driver_id: uuid.UUID) -> Trip:
        trip = self._get_in_progress(trip_id, driver_id)

        if request.end_odometer < trip.start_odometer:
            raise BadRequest("end odometer below start odometer")

        ended_at = self.clock()
        distance = request.end_odometer - trip.start_odometer
        # Half minutes round up
        duration_minutes = int((ended_at - _as_utc(trip.started_at)).total_seconds() / 60 + 0.5)

        try:
            self.ledger.record(
                trip.vehicle_id,
                request.end_odometer,
                MileageSource.manual,
                trip.tenant_id,
                f"Trip {trip.id} - Driver {driver_id}",
                enforce_jump_bound=self.enforce_jump_bound_on_end,
            )
            trip.end_odometer = request.end_odometer
            trip.end_fuel_level = request.end_fuel_level
            trip.end_photos = list(request.end_photos)
            trip.end_defects = _dump_list(request.end_defects)
            trip.end_notes = request.end_notes
            trip.end_location = _dump(request.end_location)
            trip.ended_at = ended_at
            trip.distance_traveled = distance
            trip.duration_minutes = duration_minutes
            trip.status = TripStatus.completed.value
            trip.updated_at = ended_at
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "trip_completed",
            trip_id=str(trip.id),
            distance_traveled=distance,
            duration_minutes=duration_minutes,
        )

        self.escalate_new_defects(trip, driver_id)
        self.db.refresh(trip)
        return trip

    def cancel(self, trip_id: uuid.UUID, driver_id: uuid.UUID) -> Trip:
        """Close an in-progress trip without touching the odometer or defects"""
        trip = self._get_in_progress(trip_id, driver_id)
        trip.status = TripStatus.cancelled.value
        trip.updated_at = self.clock()
        self.db.commit()
        self.db.refresh(trip)
        logger.info("trip_cancelled", trip_id=str(trip.id), driver_id=str(driver_id))
        return trip

    def escalate_new_defects(self, trip: Trip, driver_id: uuid.UUID) -> Optional[Report]:
        """
        Open a damage report when the end checklist holds severe defects that
        were not on the start checklist.

        Best effort: a failure is logged and the completed trip is left as is.
        """
        severe = severe_new(trip.start_defects, trip.end_defects)
        if not severe:
            return None

        logger.warning(
            "severe_defects_detected",
            trip_id=str(trip.id),
            vehicle_id=str(trip.vehicle_id),
            count=len(severe),
        )
        try:
            return self.reports.create(
                trip.vehicle_id,
                ReportType.damage,
                f"New severe defects detected after trip {trip.id}",
                describe(severe),
                driver_id,
                trip.tenant_id,
            )
        except Exception as e:
            self.db.rollback()
            logger.error(
                "incident_escalation_failed",
                trip_id=str(trip.id),
                vehicle_id=str(trip.vehicle_id),
                error=str(e),
                exc_info=True,
            )
            return None

    # ---------- READS ----------
    def get_current(self, driver_id: uuid.UUID) -> Optional[Trip]:
        return self.db.query(Trip).filter(
            Trip.driver_id == driver_id,
            Trip.status == TripStatus.in_progress.value,
        ).first()

    def get(self, trip_id: uuid.UUID, tenant_id: int) -> Trip:
        trip = self.db.query(Trip).filter(
            Trip.id == trip_id,
            Trip.tenant_id == tenant_id,
        ).first()
        if not trip:
            raise NotFound(f"Trip {trip_id} not found")
        return trip

    def history(self, driver_id: uuid.UUID, filters: Optional[TripFilter] = None) -> dict:
        filters = filters or TripFilter()
        query = self.db.query(Trip).filter(Trip.driver_id == driver_id)
        return self._paginate(query, filters)

    def list_all(self, tenant_id: int, filters: Optional[TripFilter] = None) -> dict:
        filters = filters or TripFilter()
        query = self.db.query(Trip).filter(Trip.tenant_id == tenant_id)
        if filters.driver_id:
            query = query.filter(Trip.driver_id == filters.driver_id)
        if filters.vehicle_id:
            query = query.filter(Trip.vehicle_id == filters.vehicle_id)
        if filters.status:
            query = query.filter(Trip.status == filters.status.value)
        return self._paginate(query, filters)

    def _paginate(self, query, filters: TripFilter) -> dict:
        if filters.start_date:
            query = query.filter(Trip.started_at >= filters.start_date)
        if filters.end_date:
            query = query.filter(Trip.started_at <= filters.end_date)

        total = query.count()
        data = (
            query.order_by(Trip.started_at.desc())
            .offset((filters.page - 1) * filters.limit)
            .limit(filters.limit)
            .all()
        )
        return {
            "data": data,
            "total": total,
            "page": filters.page,
            "limit": filters.limit,
        }

    def _get_in_progress(self, trip_id: uuid.UUID, driver_id: uuid.UUID) -> Trip:
        trip = self.db.query(Trip).filter(
            Trip.id == trip_id,
            Trip.driver_id == driver_id,
            Trip.status == TripStatus.in_progress.value,
        ).first()
        if not trip:
            raise NotFound("Trip not found or already completed")
        return trip
