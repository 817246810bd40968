"""Assemble ValidatorFinOpsData snapshots from the Scan data service."""

import asyncio
from datetime import datetime
from typing import Dict, List, Optional

import structlog

from canton_analytics.core.scan_api import ScanDataService
from canton_analytics.core.scan_client import ScanApiError
from canton_analytics.models.finops import (
    AnalysisPeriod,
    ChangeAttribution,
    ChangeType,
    InfrastructureCosts,
    RewardsSnapshot,
    TrafficSnapshot,
    ValidatorFinOpsData,
)
from canton_analytics.utils.time import ceil_days, to_utc

logger = structlog.get_logger(__name__)

REWARD_CHANGE_THRESHOLD_PCT = 20.0


async def fetch_validator_finops_data(service: ScanDataService,
                                      validator_id: str,
                                      start_date: datetime,
                                      end_date: datetime,
                                      infrastructure_costs: Optional[Dict[str, float]] = None
                                      ) -> ValidatorFinOpsData:
    """
    Build the calculator input for one validator over [start_date, end_date].

    Upstream failures propagate, except in change detection which is best
    effort. ``infrastructure_costs`` takes compute/storage/network/monitoring
    keys; missing keys count as zero.
    """
    start = to_utc(start_date)
    end = to_utc(end_date)

    validator, rewards, traffic = await asyncio.gather(
        service.get_validator_info(validator_id),
        service.get_validator_rewards(validator_id, start, end),
        service.get_validator_traffic(validator_id),
    )

    days_in_period = ceil_days(end, start)
    rounds_per_day = service.config.rounds_per_day
    total_rewards = rewards.total_rewards or 0.0

    changes = await detect_changes(service, validator_id, start, end)

    costs = infrastructure_costs or {}
    infrastructure = InfrastructureCosts.from_components(
        compute=costs.get("compute", 0.0),
        storage=costs.get("storage", 0.0),
        network=costs.get("network", 0.0),
        monitoring=costs.get("monitoring", 0.0),
    )

    logger.info(
        "FinOps data assembled",
        validator_id=validator_id,
        validator_status=validator.status,
        days=days_in_period,
        changes=len(changes),
    )

    return ValidatorFinOpsData(
        traffic=TrafficSnapshot(
            current_credits=traffic.current_credits or 0.0,
            daily_burn_rate=traffic.daily_burn_rate or 0.0,
            average_burn_per_mb=traffic.average_burn_per_mb or 0.0,
            total_mb_used=0.0,
            total_cc_burned=traffic.total_burned or 0.0,
        ),
        rewards=RewardsSnapshot(
            liveness_rewards=rewards.liveness_rewards or 0.0,
            activity_rewards=rewards.activity_rewards or 0.0,
            total_rewards=total_rewards,
            rewards_per_day=total_rewards / days_in_period if days_in_period > 0 else 0.0,
            rewards_per_round=(
                total_rewards / (days_in_period * rounds_per_day) if days_in_period > 0 else 0.0
            ),
        ),
        infrastructure=infrastructure,
        period=AnalysisPeriod(start=start, end=end),
        changes=tuple(changes),
    )


async def detect_changes(service: ScanDataService,
                         validator_id: str,
                         start: datetime,
                         end: datetime) -> List[ChangeAttribution]:
    """Compare reward totals with the preceding period of equal length."""
    previous_start = start - (end - start)

    try:
        current, previous = await asyncio.gather(
            service.get_validator_rewards(validator_id, start, end),
            service.get_validator_rewards(validator_id, previous_start, start),
        )
    except ScanApiError as e:
        logger.warning("Change detection skipped", validator_id=validator_id, error=str(e))
        return []

    cur = current.total_rewards or 0.0
    prev = previous.total_rewards or 0.0
    change_pct = (cur - prev) / prev * 100 if prev > 0 else 0.0

    if abs(change_pct) <= REWARD_CHANGE_THRESHOLD_PCT:
        return []

    direction = "increase" if change_pct > 0 else "decrease"
    return [ChangeAttribution(
        type=ChangeType.VOLUME_SPIKE if change_pct > 0 else ChangeType.OTHER,
        description=f"Reward {direction} of {abs(change_pct):.1f}%",
        impact=cur - prev,
        date=start,
    )]
