"""Featured-app report endpoint."""

from dataclasses import asdict
from datetime import datetime
from enum import Enum
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
import structlog

from canton_analytics.api.dependencies import get_service, resolve_window
from canton_analytics.api.schemas import (
    ChecklistCategoryResponse,
    EvidenceBundleResponse,
    ReportResponse,
)
from canton_analytics.core.featured_app_data import fetch_featured_app_report_data
from canton_analytics.core.report_generator import ReportGenerator, checklist_completion
from canton_analytics.core.scan_api import ScanDataService

router = APIRouter()
logger = structlog.get_logger(__name__)


class ReportFormat(str, Enum):
    JSON = "json"
    CSV = "csv"


@router.get("/reports/featured-app", response_model=ReportResponse)
async def featured_app_report(
    party_id: str = Query(..., min_length=1, description="Featured app party id"),
    app_name: Optional[str] = Query(default=None),
    start: Optional[datetime] = Query(default=None, description="Period start (ISO 8601)"),
    end: Optional[datetime] = Query(default=None, description="Period end (ISO 8601)"),
    format: ReportFormat = Query(default=ReportFormat.JSON),
    service: ScanDataService = Depends(get_service),
):
    """Report data with evidence bundle and checklist, as JSON or as a CSV download."""
    start_utc, end_utc = resolve_window(start, end, default_days=30)
    data = await fetch_featured_app_report_data(service, party_id, start_utc, end_utc, app_name=app_name)
    generator = ReportGenerator(data)

    if format == ReportFormat.CSV:
        filename = f"featured-app-report-{start_utc.strftime('%Y%m%d')}-{end_utc.strftime('%Y%m%d')}.csv"
        return Response(
            content=generator.generate_csv(),
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    checklist = generator.get_requirements_checklist()
    _, _, percentage = checklist_completion(checklist)

    return ReportResponse(
        report=asdict(data),
        evidence=EvidenceBundleResponse(**asdict(generator.get_evidence_bundle())),
        checklist=[ChecklistCategoryResponse(**asdict(c)) for c in checklist],
        completion_percentage=percentage,
    )
