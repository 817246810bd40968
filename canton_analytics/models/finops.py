"""Data models for validator FinOps calculations."""

import math
from datetime import datetime
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple


class ChangeType(str, Enum):
    """Change attribution categories."""
    VOLUME_SPIKE = "volume_spike"
    NEW_PARTY = "new_party"
    INTEGRATION_RAMP = "integration_ramp"
    OTHER = "other"


class HealthLevel(str, Enum):
    """Warning level shared by runway and financial health."""
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]


_SEVERITY = {
    HealthLevel.HEALTHY: 0,
    HealthLevel.WARNING: 1,
    HealthLevel.CRITICAL: 2,
}


class ScenarioName(str, Enum):
    """Fixed activity scenarios."""
    IDLE = "idle"
    MODERATE = "moderate"
    HEAVY = "heavy"


@dataclass(frozen=True)
class TrafficSnapshot:
    """Traffic credit usage."""
    current_credits: float = 0.0
    daily_burn_rate: float = 0.0
    average_burn_per_mb: float = 0.0
    total_mb_used: float = 0.0
    total_cc_burned: float = 0.0


@dataclass(frozen=True)
class RewardsSnapshot:
    """Validator rewards."""
    liveness_rewards: float = 0.0
    activity_rewards: float = 0.0
    total_rewards: float = 0.0
    rewards_per_day: float = 0.0
    rewards_per_round: float = 0.0


@dataclass(frozen=True)
class InfrastructureCosts:
    """Monthly infrastructure spend in CC."""
    compute: float = 0.0
    storage: float = 0.0
    network: float = 0.0
    monitoring: float = 0.0
    total: float = 0.0

    @classmethod
    def from_components(cls, compute: float = 0.0, storage: float = 0.0,
                        network: float = 0.0, monitoring: float = 0.0) -> "InfrastructureCosts":
        """Build costs with ``total`` summed from the components."""
        return cls(
            compute=compute,
            storage=storage,
            network=network,
            monitoring=monitoring,
            total=compute + storage + network + monitoring,
        )


@dataclass(frozen=True)
class AnalysisPeriod:
    """Analysis window."""
    start: datetime
    end: datetime


@dataclass(frozen=True)
class ChangeAttribution:
    """Dated, categorized explanation for a shift in financial metrics."""
    type: ChangeType
    description: str
    impact: float
    date: datetime
    parties: Optional[Tuple[str, ...]] = None


@dataclass(frozen=True)
class ValidatorFinOpsData:
    """Complete input snapshot for one calculation pass."""
    traffic: TrafficSnapshot
    rewards: RewardsSnapshot
    infrastructure: InfrastructureCosts
    period: AnalysisPeriod
    changes: Tuple[ChangeAttribution, ...] = ()


@dataclass
class RunwayForecast:
    """Traffic credit runway."""
    days_remaining: float
    date_exhausted: datetime
    current_burn_rate: float
    projected_burn_rate: float
    warning_level: HealthLevel

    @property
    def is_infinite(self) -> bool:
        return math.isinf(self.days_remaining)


@dataclass
class NetMargin:
    """Revenue versus costs over the analysis period."""
    total_revenue: float
    total_costs: float
    net_margin: float
    margin_percentage: float
    break_even_point: float


@dataclass
class ImpactAnalysis:
    """Absolute change impact, total and per category."""
    total_impact: float
    by_type: Dict[str, float] = field(default_factory=dict)


@dataclass
class ChangeAnalysis:
    """Ranked change attribution."""
    summary: str
    top_changes: List[ChangeAttribution]
    impact_analysis: ImpactAnalysis


@dataclass
class Scenario:
    """Projection under one activity scenario."""
    name: ScenarioName
    description: str
    daily_burn_rate: float
    daily_rewards: float
    monthly_net_margin: float
    runway_days: float


@dataclass
class FinancialHealth:
    """Overall validator economics assessment."""
    status: HealthLevel
    message: str
    recommendations: List[str]
