"""Request dependencies resolving the application's shared components."""

from datetime import datetime, timedelta
from typing import Optional, Tuple

from fastapi import HTTPException, Request, status

from canton_analytics.core.scan_api import ScanDataService
from canton_analytics.core.scan_client import ScanApiClient
from canton_analytics.models.config import AnalyticsConfig
from canton_analytics.utils.time import get_current_utc, to_utc


def get_config(request: Request) -> AnalyticsConfig:
    return request.app.state.config


def get_client(request: Request) -> ScanApiClient:
    return request.app.state.client


def get_service(request: Request) -> ScanDataService:
    return request.app.state.service


def resolve_window(start: Optional[datetime],
                   end: Optional[datetime],
                   default_days: int) -> Tuple[datetime, datetime]:
    """Fill a missing window edge; end defaults to now, start to ``default_days`` before end."""
    end_utc = to_utc(end) if end else get_current_utc()
    start_utc = to_utc(start) if start else end_utc - timedelta(days=default_days)

    if start_utc > end_utc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="start must not be after end",
        )
    return start_utc, end_utc
