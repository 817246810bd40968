"""Assemble featured-app ReportData from the Scan data service."""

import asyncio
from datetime import datetime
from typing import Optional

import structlog

from canton_analytics.core.scan_api import ScanDataService
from canton_analytics.models.report import (
    ActivityBreakdown,
    ComplianceInfo,
    ReportData,
    ReportMetrics,
    ReportPeriod,
)
from canton_analytics.utils.time import to_utc

logger = structlog.get_logger(__name__)

QUARTERLY_THRESHOLD_DAYS = 60
REWARDS_RATE = 0.01

# Share of total volume attributed to each activity type
VOLUME_SHARES = [
    ("Transfers", "transfers", 0.6),
    ("Offers", "offers", 0.25),
    ("Preapprovals", "preapprovals", 0.1),
    ("Updates", "updates", 0.05),
]

NOT_AVAILABLE = "Not Available"


def get_period_type(start: datetime, end: datetime) -> str:
    days = abs((to_utc(end) - to_utc(start)).total_seconds()) / 86400
    return "quarterly" if days > QUARTERLY_THRESHOLD_DAYS else "monthly"


async def fetch_featured_app_report_data(service: ScanDataService,
                                         party_id: str,
                                         start_date: datetime,
                                         end_date: datetime,
                                         app_name: Optional[str] = None) -> ReportData:
    """Report data for ``party_id`` over [start_date, end_date]; upstream errors propagate."""
    start = to_utc(start_date)
    end = to_utc(end_date)

    party, activity = await asyncio.gather(
        service.get_party_info(party_id),
        service.get_party_activity_summary(party_id, start, end),
    )

    total = activity.total_transactions
    volume = activity.total_volume

    report = ReportData(
        app_name=app_name or party.party_id or "Unknown App",
        party_id=party_id,
        period=ReportPeriod(start=start, end=end, type=get_period_type(start, end)),
        metrics=ReportMetrics(
            total_transactions=total,
            total_volume=volume,
            active_users=min(total, total // 10),
            rewards_earned=float(round(volume * REWARDS_RATE)),
            transaction_growth=0.0,
        ),
        activity_breakdown=[
            ActivityBreakdown(activity_type=label, count=getattr(activity, attr), volume=volume * share)
            for label, attr, share in VOLUME_SHARES
        ],
        compliance=ComplianceInfo(
            audit_status=NOT_AVAILABLE,
            controls_in_place=True,
            non_bona_fide_prevention=NOT_AVAILABLE,
        ),
    )

    logger.info("Featured app report data assembled",
                party_id=party_id, period_type=report.period.type, transactions=total)
    return report
