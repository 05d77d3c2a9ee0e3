import uuid
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..auth.security import Principal, get_current_principal
from ..schemas.trips import (
    StartTripRequest,
    EndTripRequest,
    TripFilter,
    TripResponse,
    TripListResponse,
    ManualMileageUpdateRequest,
    MileageUpdateResponse,
    MileageEntryResponse,
    MileageHistoryResponse,
    MileageHistoryVehicle,
)
from ..services.errors import NotFound
from ..services.mileage import MileageLedger
from ..services.trips import TripService
from ..services.vehicles import VehicleStore

router = APIRouter(prefix="/driver", tags=["driver"])


# ---------- TRIPS ----------
@router.post("/trips/start", response_model=TripResponse, status_code=201)
def start_trip(
    payload: StartTripRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """Start a trip on the driver's assigned vehicle"""
    return TripService(db).start(payload, principal.user_id, principal.tenant_id)


@router.post("/trips/{trip_id}/end", response_model=TripResponse)
def end_trip(
    trip_id: uuid.UUID,
    payload: EndTripRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """End an in-progress trip"""
    return TripService(db).end(trip_id, payload, principal.user_id)


@router.post("/trips/{trip_id}/cancel", response_model=TripResponse)
def cancel_trip(
    trip_id: uuid.UUID,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """Cancel an in-progress trip"""
    return TripService(db).cancel(trip_id, principal.user_id)


@router.get("/trips/current", response_model=Optional[TripResponse])
def get_current_trip(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return TripService(db).get_current(principal.user_id)


@router.get("/trips", response_model=TripListResponse)
def get_trip_history(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """Trip history of the current driver, newest first"""
    filters = TripFilter(page=page, limit=limit, start_date=start_date, end_date=end_date)
    result = TripService(db).history(principal.user_id, filters)
    return TripListResponse(
        data=[TripResponse.model_validate(t) for t in result["data"]],
        total=result["total"],
        page=result["page"],
        limit=result["limit"],
    )


# ---------- MILEAGE ----------
@router.post("/vehicles/{vehicle_id}/mileage", response_model=MileageUpdateResponse)
def update_vehicle_mileage(
    vehicle_id: uuid.UUID,
    payload: ManualMileageUpdateRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """Record a new odometer reading for the driver's assigned vehicle"""
    entry = MileageLedger(db).manual_update(
        vehicle_id,
        payload.mileage,
        principal.user_id,
        principal.tenant_id,
        payload.notes,
    )
    return MileageUpdateResponse(
        message="Mileage updated successfully",
        previous_mileage=entry.previous_mileage,
        new_mileage=entry.mileage,
        difference=entry.difference,
        vehicle_id=entry.vehicle_id,
        entry_id=entry.id,
    )


@router.get("/vehicles/{vehicle_id}/mileage-history", response_model=MileageHistoryResponse)
def get_vehicle_mileage_history(
    vehicle_id: uuid.UUID,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    vehicle = VehicleStore(db).get(vehicle_id, principal.tenant_id, driver_id=principal.user_id)
    if not vehicle:
        raise NotFound("Vehicle not assigned to this driver")

    history = MileageLedger(db).history(vehicle.id, principal.tenant_id)
    return MileageHistoryResponse(
        vehicle=MileageHistoryVehicle.model_validate(vehicle),
        history=[MileageEntryResponse.model_validate(e) for e in history],
        total=len(history),
    )
