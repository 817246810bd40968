"""Validator FinOps endpoint."""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
import structlog

from canton_analytics.api.dependencies import get_service, resolve_window
from canton_analytics.api.schemas import (
    ChangeAnalysisResponse,
    ChangeResponse,
    FinancialHealthResponse,
    FinOpsResponse,
    NetMarginResponse,
    RunwayResponse,
    ScenarioResponse,
    finite_or_none,
)
from canton_analytics.core.finops import ValidatorFinOpsCalculator
from canton_analytics.core.finops_data import fetch_validator_finops_data
from canton_analytics.core.scan_api import ScanDataService

router = APIRouter()
logger = structlog.get_logger(__name__)


@router.get("/validators/{validator_id}/finops", response_model=FinOpsResponse)
async def validator_finops(
    validator_id: str,
    start: Optional[datetime] = Query(default=None, description="Period start (ISO 8601)"),
    end: Optional[datetime] = Query(default=None, description="Period end (ISO 8601)"),
    compute: float = Query(default=0.0, ge=0, description="Monthly compute cost in CC"),
    storage: float = Query(default=0.0, ge=0),
    network: float = Query(default=0.0, ge=0),
    monitoring: float = Query(default=0.0, ge=0),
    service: ScanDataService = Depends(get_service),
):
    """
    Runway, net margin, change attribution, scenarios and overall health.

    The period defaults to the last 30 days. Unbounded runways are
    reported as null.
    """
    start_utc, end_utc = resolve_window(start, end, default_days=30)
    request_logger = logger.bind(endpoint="validator_finops", validator_id=validator_id)
    request_logger.info("FinOps request received")

    data = await fetch_validator_finops_data(
        service, validator_id, start_utc, end_utc,
        infrastructure_costs={
            "compute": compute,
            "storage": storage,
            "network": network,
            "monitoring": monitoring,
        },
    )
    calculator = ValidatorFinOpsCalculator(data)

    runway = calculator.calculate_runway()
    margin = calculator.calculate_net_margin()
    changes = calculator.analyze_changes()
    health = calculator.get_financial_health()

    return FinOpsResponse(
        validator_id=validator_id,
        period_start=start_utc,
        period_end=end_utc,
        runway=RunwayResponse(
            days_remaining=finite_or_none(runway.days_remaining),
            date_exhausted=runway.date_exhausted,
            current_burn_rate=runway.current_burn_rate,
            projected_burn_rate=runway.projected_burn_rate,
            warning_level=runway.warning_level.value,
        ),
        net_margin=NetMarginResponse(
            total_revenue=margin.total_revenue,
            total_costs=margin.total_costs,
            net_margin=margin.net_margin,
            margin_percentage=margin.margin_percentage,
            break_even_point=margin.break_even_point,
        ),
        changes=ChangeAnalysisResponse(
            summary=changes.summary,
            top_changes=[
                ChangeResponse(
                    type=c.type.value,
                    description=c.description,
                    impact=c.impact,
                    date=c.date,
                    parties=list(c.parties) if c.parties else None,
                )
                for c in changes.top_changes
            ],
            total_impact=changes.impact_analysis.total_impact,
            impact_by_type=changes.impact_analysis.by_type,
        ),
        scenarios=[
            ScenarioResponse(
                name=s.name.value,
                description=s.description,
                daily_burn_rate=s.daily_burn_rate,
                daily_rewards=s.daily_rewards,
                monthly_net_margin=s.monthly_net_margin,
                runway_days=finite_or_none(s.runway_days),
            )
            for s in calculator.generate_scenarios()
        ],
        health=FinancialHealthResponse(
            status=health.status.value,
            message=health.message,
            recommendations=health.recommendations,
        ),
    )
