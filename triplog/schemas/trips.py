import uuid
from datetime import datetime
from typing import List, Optional
from enum import Enum

from pydantic import BaseModel, Field


# Enums
class TripStatus(str, Enum):
    in_progress = "in_progress"
    completed = "completed"
    cancelled = "cancelled"


class DefectType(str, Enum):
    scratch = "scratch"
    dent = "dent"
    broken = "broken"
    dirty = "dirty"
    missing = "missing"
    other = "other"


class DefectSeverity(str, Enum):
    minor = "minor"
    moderate = "moderate"
    severe = "severe"


class MileageSource(str, Enum):
    manual = "manual"
    maintenance = "maintenance"
    inspection = "inspection"


class ReportType(str, Enum):
    mechanical = "mechanical"
    accident = "accident"
    damage = "damage"
    cleaning = "cleaning"
    other = "other"


class ReportStatus(str, Enum):
    open = "open"
    acknowledged = "acknowledged"
    resolved = "resolved"


# Value types
class Defect(BaseModel):
    id: str
    type: DefectType
    location: str
    severity: DefectSeverity
    description: str = ""
    photos: List[str] = Field(default_factory=list)


class Location(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


# Trip Schemas
class StartTripRequest(BaseModel):
    vehicle_id: uuid.UUID
    start_odometer: int = Field(ge=0)
    start_fuel_level: int = Field(ge=0, le=100)
    start_photos: List[str] = Field(default_factory=list)
    start_defects: Optional[List[Defect]] = None
    start_notes: Optional[str] = None
    start_location: Optional[Location] = None


class EndTripRequest(BaseModel):
    end_odometer: int = Field(ge=0)
    end_fuel_level: int = Field(ge=0, le=100)
    end_photos: List[str] = Field(default_factory=list)
    end_defects: Optional[List[Defect]] = None
    end_notes: Optional[str] = None
    end_location: Optional[Location] = None


class TripFilter(BaseModel):
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    driver_id: Optional[uuid.UUID] = None
    vehicle_id: Optional[uuid.UUID] = None
    status: Optional[TripStatus] = None


class TripResponse(BaseModel):
    id: uuid.UUID
    tenant_id: int
    vehicle_id: uuid.UUID
    driver_id: uuid.UUID
    status: TripStatus
    start_odometer: int
    start_fuel_level: int
    start_photos: Optional[List[str]] = None
    start_defects: Optional[List[Defect]] = None
    start_notes: Optional[str] = None
    start_location: Optional[Location] = None
    started_at: datetime
    end_odometer: Optional[int] = None
    end_fuel_level: Optional[int] = None
    end_photos: Optional[List[str]] = None
    end_defects: Optional[List[Defect]] = None
    end_notes: Optional[str] = None
    end_location: Optional[Location] = None
    ended_at: Optional[datetime] = None
    distance_traveled: Optional[int] = None
    duration_minutes: Optional[int] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TripListResponse(BaseModel):
    data: List[TripResponse]
    total: int
    page: int
    limit: int


# Mileage Schemas
class ManualMileageUpdateRequest(BaseModel):
    mileage: int = Field(ge=0)
    notes: Optional[str] = None


class MileageEntryResponse(BaseModel):
    id: uuid.UUID
    tenant_id: int
    vehicle_id: uuid.UUID
    mileage: int
    previous_mileage: int
    difference: int
    source: MileageSource
    notes: Optional[str] = None
    recorded_at: datetime

    class Config:
        from_attributes = True


class MileageUpdateResponse(BaseModel):
    message: str
    previous_mileage: int
    new_mileage: int
    difference: int
    vehicle_id: uuid.UUID
    entry_id: uuid.UUID


class MileageHistoryVehicle(BaseModel):
    id: uuid.UUID
    registration: Optional[str] = None
    brand: Optional[str] = None
    model: Optional[str] = None
    current_odometer: int

    class Config:
        from_attributes = True


class MileageHistoryResponse(BaseModel):
    vehicle: MileageHistoryVehicle
    history: List[MileageEntryResponse]
    total: int

