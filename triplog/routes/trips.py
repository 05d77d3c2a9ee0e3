import uuid
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..auth.security import Principal, require_roles
from ..schemas.trips import TripFilter, TripListResponse, TripResponse, TripStatus
from ..services.trips import TripService

router = APIRouter(prefix="/trips", tags=["trips"])


@router.get("", response_model=TripListResponse)
def list_trips(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    driver_id: Optional[uuid.UUID] = Query(None),
    vehicle_id: Optional[uuid.UUID] = Query(None),
    status: Optional[TripStatus] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_roles("fleet_manager")),
):
    """List trips of the tenant with filters"""
    filters = TripFilter(
        page=page,
        limit=limit,
        driver_id=driver_id,
        vehicle_id=vehicle_id,
        status=status,
        start_date=start_date,
        end_date=end_date,
    )
    result = TripService(db).list_all(principal.tenant_id, filters)
    return TripListResponse(
        data=[TripResponse.model_validate(t) for t in result["data"]],
        total=result["total"],
        page=result["page"],
        limit=result["limit"],
    )


@router.get("/{trip_id}", response_model=TripResponse)
def get_trip(
    trip_id: uuid.UUID,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_roles("fleet_manager")),
):
    """Get trip detail"""
    return TripService(db).get(trip_id, principal.tenant_id)
