"""
Validator FinOps calculator.

Pure derivations over a ValidatorFinOpsData snapshot. The only outside
input is "now", used for the exhaustion date and for windowing recent
changes; inject ``clock`` to pin it.
"""

import math
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from canton_analytics.models.finops import (
    ChangeAnalysis,
    ChangeType,
    FinancialHealth,
    HealthLevel,
    ImpactAnalysis,
    NetMargin,
    RunwayForecast,
    Scenario,
    ScenarioName,
    ValidatorFinOpsData,
)
from canton_analytics.utils.time import difference_in_days, get_current_utc

RUNWAY_CRITICAL_DAYS = 7
RUNWAY_WARNING_DAYS = 30
INFINITE_RUNWAY_NOMINAL_DAYS = 365
RECENT_CHANGE_WINDOW_DAYS = 7
LOW_MARGIN_PERCENTAGE = 10
TOP_CHANGES = 5
DAYS_PER_MONTH = 30

BURN_MULTIPLIERS: Dict[ChangeType, float] = {
    ChangeType.VOLUME_SPIKE: 1.5,
    ChangeType.NEW_PARTY: 1.2,
    ChangeType.INTEGRATION_RAMP: 1.3,
    ChangeType.OTHER: 1.1,
}

# (burn multiplier, rewards multiplier, description)
SCENARIOS = [
    (ScenarioName.IDLE, 0.3, 0.5, "Low activity, minimal traffic burn"),
    (ScenarioName.MODERATE, 1.0, 1.0, "Current activity levels continue"),
    (ScenarioName.HEAVY, 2.5, 1.8, "High activity, increased traffic burn"),
]


def runway_warning_level(days_remaining: float) -> HealthLevel:
    if days_remaining < RUNWAY_CRITICAL_DAYS:
        return HealthLevel.CRITICAL
    if days_remaining < RUNWAY_WARNING_DAYS:
        return HealthLevel.WARNING
    return HealthLevel.HEALTHY


def _runway_days(credits: float, burn_rate: float) -> float:
    if burn_rate <= 0:
        return math.inf
    return math.floor(credits / burn_rate)


class ValidatorFinOpsCalculator:
    """Runway, margin, change, scenario and health analysis for one validator."""

    def __init__(self, data: ValidatorFinOpsData,
                 clock: Optional[Callable[[], datetime]] = None):
        self.data = data
        self._clock = clock or get_current_utc

    def calculate_runway(self) -> RunwayForecast:
        """
        Days until traffic credits run out at the current burn rate.

        A non-positive burn rate is an infinite runway: nominal exhaustion
        date one year out and a healthy warning level.
        """
        now = self._clock()
        traffic = self.data.traffic
        current_burn_rate = traffic.daily_burn_rate

        if current_burn_rate <= 0:
            return RunwayForecast(
                days_remaining=math.inf,
                date_exhausted=now + timedelta(days=INFINITE_RUNWAY_NOMINAL_DAYS),
                current_burn_rate=0.0,
                projected_burn_rate=0.0,
                warning_level=HealthLevel.HEALTHY,
            )

        days_remaining = _runway_days(traffic.current_credits, current_burn_rate)

        return RunwayForecast(
            days_remaining=days_remaining,
            date_exhausted=now + timedelta(days=days_remaining),
            current_burn_rate=current_burn_rate,
            projected_burn_rate=self._projected_burn_rate(current_burn_rate, now),
            warning_level=runway_warning_level(days_remaining),
        )

    def _projected_burn_rate(self, current_burn_rate: float, now: datetime) -> float:
        """Base burn plus the mean multiplier delta of changes in the last week."""
        recent = [
            change for change in self.data.changes
            if difference_in_days(now, change.date) <= RECENT_CHANGE_WINDOW_DAYS
        ]
        if not recent:
            return current_burn_rate

        deltas = [
            current_burn_rate * (BURN_MULTIPLIERS.get(change.type, BURN_MULTIPLIERS[ChangeType.OTHER]) - 1)
            for change in recent
        ]
        return current_burn_rate + sum(deltas) / len(deltas)

    def calculate_net_margin(self) -> NetMargin:
        total_revenue = self.data.rewards.total_rewards
        total_costs = self.data.traffic.total_cc_burned + self.data.infrastructure.total
        net_margin = total_revenue - total_costs
        margin_percentage = (net_margin / total_revenue * 100) if total_revenue > 0 else 0.0

        period = self.data.period
        days_in_period = max(1, difference_in_days(period.end, period.start))

        return NetMargin(
            total_revenue=total_revenue,
            total_costs=total_costs,
            net_margin=net_margin,
            margin_percentage=margin_percentage,
            break_even_point=total_costs / days_in_period,
        )

    def analyze_changes(self) -> ChangeAnalysis:
        """Rank changes by absolute impact and total them per category."""
        changes = self.data.changes
        ranked = sorted(changes, key=lambda c: abs(c.impact), reverse=True)

        by_type: Dict[str, float] = {}
        for change in changes:
            key = change.type.value
            by_type[key] = by_type.get(key, 0.0) + abs(change.impact)

        if ranked:
            top = ranked[0]
            summary = f"Primary driver: {top.description} ({top.type.value.replace('_', ' ')})"
        else:
            summary = "No significant changes detected."

        return ChangeAnalysis(
            summary=summary,
            top_changes=ranked[:TOP_CHANGES],
            impact_analysis=ImpactAnalysis(
                total_impact=sum(abs(c.impact) for c in changes),
                by_type=by_type,
            ),
        )

    def generate_scenarios(self) -> List[Scenario]:
        """Idle, moderate and heavy projections from the current rates."""
        base_burn = self.data.traffic.daily_burn_rate
        base_rewards = self.data.rewards.rewards_per_day
        daily_infrastructure = self.data.infrastructure.total / DAYS_PER_MONTH
        credits = self.data.traffic.current_credits

        scenarios = []
        for name, burn_multiplier, rewards_multiplier, description in SCENARIOS:
            daily_burn = base_burn * burn_multiplier
            daily_rewards = base_rewards * rewards_multiplier
            scenarios.append(Scenario(
                name=name,
                description=description,
                daily_burn_rate=daily_burn,
                daily_rewards=daily_rewards,
                monthly_net_margin=(daily_rewards - daily_burn - daily_infrastructure) * DAYS_PER_MONTH,
                runway_days=_runway_days(credits, daily_burn),
            ))
        return scenarios

    def get_financial_health(self) -> FinancialHealth:
        """
        Combine the margin and runway checks.

        The runway check can raise the status but never lowers it, so a
        loss-making validator with a short runway stays critical.
        """
        margin = self.calculate_net_margin()
        runway = self.calculate_runway()

        status = HealthLevel.HEALTHY
        message = "Validator economics are healthy."
        recommendations: List[str] = []

        if margin.net_margin < 0:
            status = HealthLevel.CRITICAL
            message = "Validator is operating at a loss."
            recommendations.extend([
                "Review infrastructure costs and optimize",
                "Consider increasing activity to boost rewards",
                "Evaluate traffic burn optimization strategies",
            ])
        elif margin.margin_percentage < LOW_MARGIN_PERCENTAGE:
            status = HealthLevel.WARNING
            message = "Low profit margin - monitor closely."
            recommendations.extend([
                "Optimize traffic burn efficiency",
                "Review infrastructure spending",
            ])

        if runway.days_remaining < RUNWAY_WARNING_DAYS:
            if runway.warning_level.severity > status.severity:
                status = runway.warning_level
            message += f" Traffic credits running low ({runway.days_remaining} days remaining)."
            recommendations.extend([
                "Purchase additional traffic credits immediately",
                "Review traffic burn patterns for optimization",
            ])

        if not recommendations:
            recommendations.extend([
                "Continue monitoring key metrics",
                "Plan for traffic credit purchases in advance",
            ])

        return FinancialHealth(status=status, message=message, recommendations=recommendations)
