"""
Incident escalation.
Creation entry point for incident reports raised by the trip workflow.
Acknowledgement and resolution are handled by the reports service.
"""
import uuid
from typing import Optional, Protocol

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models.models import Report, Vehicle
from ..schemas.trips import ReportStatus, ReportType
from .errors import EscalationFailure, NotFound

logger = structlog.get_logger(__name__)


class ReportCreator(Protocol):
    def create(
        self,
        vehicle_id: uuid.UUID,
        type: ReportType,
        description: str,
        notes: Optional[str],
        driver_id: uuid.UUID,
        tenant_id: int,
    ) -> Report:
        ...


class SqlReportCreator:
    """Writes an open report in its own transaction"""

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        vehicle_id: uuid.UUID,
        type: ReportType,
        description: str,
        notes: Optional[str],
        driver_id: uuid.UUID,
        tenant_id: int,
    ) -> Report:
        vehicle = self.db.query(Vehicle).filter(
            Vehicle.id == vehicle_id,
            Vehicle.tenant_id == tenant_id,
        ).first()
        if not vehicle:
            raise NotFound("Vehicle not found or does not belong to your organization")

        report = Report(
            tenant_id=tenant_id,
            vehicle_id=vehicle_id,
            driver_id=driver_id,
            type=ReportType(type).value,
            description=description,
            notes=notes,
            status=ReportStatus.open.value,
        )
        try:
            self.db.add(report)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise EscalationFailure(f"Incident report could not be saved: {e}") from e

        self.db.refresh(report)
        logger.info(
            "incident_report_created",
            report_id=str(report.id),
            vehicle_id=str(vehicle_id),
            driver_id=str(driver_id),
            tenant_id=tenant_id,
            type=report.type,
        )
        return report
