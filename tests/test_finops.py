"""
Unit tests for the validator FinOps calculator and its data assembler.
"""

import math
from datetime import timedelta

import pytest

from canton_analytics.core.finops import ValidatorFinOpsCalculator
from canton_analytics.core.finops_data import detect_changes, fetch_validator_finops_data
from canton_analytics.core.scan_client import RateLimitedError
from canton_analytics.models.finops import (
    AnalysisPeriod,
    ChangeAttribution,
    ChangeType,
    HealthLevel,
    InfrastructureCosts,
    RewardsSnapshot,
    ScenarioName,
    TrafficSnapshot,
    ValidatorFinOpsData,
)
from canton_analytics.models.network import TrafficData, ValidatorInfo, ValidatorRewards


@pytest.fixture
def make_data(fixed_now):
    """Factory for snapshots over the 30 days before ``fixed_now``."""

    def _make(current_credits=1000.0, daily_burn_rate=10.0, total_cc_burned=100.0,
              total_rewards=500.0, rewards_per_day=20.0, infrastructure=0.0, changes=(),
              period_days=30):
        return ValidatorFinOpsData(
            traffic=TrafficSnapshot(
                current_credits=current_credits,
                daily_burn_rate=daily_burn_rate,
                total_cc_burned=total_cc_burned,
            ),
            rewards=RewardsSnapshot(total_rewards=total_rewards, rewards_per_day=rewards_per_day),
            infrastructure=InfrastructureCosts.from_components(compute=infrastructure),
            period=AnalysisPeriod(start=fixed_now - timedelta(days=period_days), end=fixed_now),
            changes=tuple(changes),
        )

    return _make


@pytest.fixture
def calculator(fixed_now):
    def _calculator(data):
        return ValidatorFinOpsCalculator(data, clock=lambda: fixed_now)
    return _calculator


class TestRunway:
    """Tests for traffic credit runway."""

    def test_ten_days_is_warning(self, make_data, calculator, fixed_now):
        runway = calculator(make_data(current_credits=100, daily_burn_rate=10)).calculate_runway()

        assert runway.days_remaining == 10
        assert runway.warning_level == HealthLevel.WARNING
        assert runway.date_exhausted == fixed_now + timedelta(days=10)

    @pytest.mark.parametrize("credits,expected", [
        (69, HealthLevel.CRITICAL),
        (70, HealthLevel.WARNING),
        (299, HealthLevel.WARNING),
        (300, HealthLevel.HEALTHY),
    ])
    def test_warning_thresholds(self, make_data, calculator, credits, expected):
        runway = calculator(make_data(current_credits=credits, daily_burn_rate=10)).calculate_runway()
        assert runway.warning_level == expected

    def test_days_floored(self, make_data, calculator):
        runway = calculator(make_data(current_credits=105, daily_burn_rate=10)).calculate_runway()
        assert runway.days_remaining == 10

    def test_zero_burn_is_infinite(self, make_data, calculator, fixed_now):
        runway = calculator(make_data(daily_burn_rate=0)).calculate_runway()

        assert math.isinf(runway.days_remaining)
        assert runway.is_infinite
        assert runway.warning_level == HealthLevel.HEALTHY
        assert runway.date_exhausted == fixed_now + timedelta(days=365)
        assert runway.projected_burn_rate == 0

    def test_projected_burn_without_changes(self, make_data, calculator):
        runway = calculator(make_data(daily_burn_rate=10)).calculate_runway()
        assert runway.projected_burn_rate == 10

    def test_projected_burn_averages_recent_changes(self, make_data, calculator, fixed_now):
        changes = [
            ChangeAttribution(ChangeType.VOLUME_SPIKE, "spike", 50, fixed_now - timedelta(days=1)),
            ChangeAttribution(ChangeType.NEW_PARTY, "party", 10, fixed_now - timedelta(days=7)),
            ChangeAttribution(ChangeType.INTEGRATION_RAMP, "old", 10, fixed_now - timedelta(days=8)),
        ]
        runway = calculator(make_data(daily_burn_rate=10, changes=changes)).calculate_runway()

        # (10 * 0.5 + 10 * 0.2) / 2
        assert runway.projected_burn_rate == pytest.approx(13.5)

    def test_old_changes_ignored(self, make_data, calculator, fixed_now):
        changes = [ChangeAttribution(ChangeType.VOLUME_SPIKE, "old", 50, fixed_now - timedelta(days=30))]
        runway = calculator(make_data(daily_burn_rate=10, changes=changes)).calculate_runway()
        assert runway.projected_burn_rate == 10


class TestNetMargin:

    def test_margin_components(self, make_data, calculator):
        margin = calculator(make_data(total_rewards=500, total_cc_burned=100, infrastructure=150)).calculate_net_margin()

        assert margin.total_revenue == 500
        assert margin.total_costs == 250
        assert margin.net_margin == 250
        assert margin.margin_percentage == pytest.approx(50.0)
        assert margin.break_even_point == pytest.approx(250 / 30)

    def test_zero_revenue_margin_is_zero(self, make_data, calculator):
        margin = calculator(make_data(total_rewards=0)).calculate_net_margin()

        assert margin.margin_percentage == 0
        assert math.isfinite(margin.margin_percentage)

    def test_zero_length_period_counts_one_day(self, make_data, calculator):
        margin = calculator(make_data(total_cc_burned=40, period_days=0)).calculate_net_margin()
        assert margin.break_even_point == 40


class TestChangeAnalysis:

    def test_no_changes(self, make_data, calculator):
        analysis = calculator(make_data()).analyze_changes()

        assert analysis.summary == "No significant changes detected."
        assert analysis.top_changes == []
        assert analysis.impact_analysis.total_impact == 0

    def test_ranked_by_absolute_impact(self, make_data, calculator, fixed_now):
        changes = [
            ChangeAttribution(ChangeType.OTHER, f"change {i}", impact, fixed_now)
            for i, impact in enumerate([5, -40, 10, 1, 20, -3])
        ]
        changes.append(ChangeAttribution(ChangeType.INTEGRATION_RAMP, "ramp", 30, fixed_now))

        analysis = calculator(make_data(changes=changes)).analyze_changes()

        assert [c.impact for c in analysis.top_changes] == [-40, 30, 20, 10, 5]
        assert analysis.summary == "Primary driver: change 1 (other)"
        assert analysis.impact_analysis.total_impact == 109
        assert analysis.impact_analysis.by_type == {"other": 79, "integration_ramp": 30}

    def test_summary_category_spaces(self, make_data, calculator, fixed_now):
        changes = [ChangeAttribution(ChangeType.VOLUME_SPIKE, "Reward increase of 25.0%", 10, fixed_now)]
        analysis = calculator(make_data(changes=changes)).analyze_changes()
        assert analysis.summary == "Primary driver: Reward increase of 25.0% (volume spike)"


class TestScenarios:

    def test_scenario_values(self, make_data, calculator):
        scenarios = calculator(make_data(current_credits=1000, daily_burn_rate=10,
                                         rewards_per_day=20, infrastructure=300)).generate_scenarios()
        by_name = {s.name: s for s in scenarios}

        moderate = by_name[ScenarioName.MODERATE]
        assert moderate.daily_burn_rate == 10
        assert moderate.monthly_net_margin == pytest.approx((20 - 10 - 10) * 30)
        assert moderate.runway_days == 100

        heavy = by_name[ScenarioName.HEAVY]
        assert heavy.daily_burn_rate == pytest.approx(25)
        assert heavy.daily_rewards == pytest.approx(36)
        assert heavy.runway_days == 40

        idle = by_name[ScenarioName.IDLE]
        assert idle.description == "Low activity, minimal traffic burn"
        assert idle.runway_days == math.floor(1000 / 3)

    @pytest.mark.parametrize("burn,rewards", [(10, 20), (0.5, 3), (1234, 0.1)])
    def test_monotonic(self, make_data, calculator, burn, rewards):
        idle, moderate, heavy = calculator(
            make_data(daily_burn_rate=burn, rewards_per_day=rewards)
        ).generate_scenarios()

        assert heavy.daily_burn_rate > moderate.daily_burn_rate > idle.daily_burn_rate
        assert heavy.daily_rewards > moderate.daily_rewards > idle.daily_rewards

    def test_zero_burn_scenarios_infinite(self, make_data, calculator):
        scenarios = calculator(make_data(daily_burn_rate=0)).generate_scenarios()
        assert all(math.isinf(s.runway_days) for s in scenarios)


class TestFinancialHealth:

    def test_healthy(self, make_data, calculator):
        health = calculator(make_data(current_credits=10_000, total_rewards=500,
                                      total_cc_burned=100)).get_financial_health()

        assert health.status == HealthLevel.HEALTHY
        assert health.message == "Validator economics are healthy."
        assert health.recommendations == [
            "Continue monitoring key metrics",
            "Plan for traffic credit purchases in advance",
        ]

    def test_loss_is_critical(self, make_data, calculator):
        health = calculator(make_data(current_credits=10_000, total_rewards=50,
                                      total_cc_burned=100)).get_financial_health()

        assert health.status == HealthLevel.CRITICAL
        assert health.message == "Validator is operating at a loss."
        assert len(health.recommendations) == 3

    def test_low_margin_is_warning(self, make_data, calculator):
        health = calculator(make_data(current_credits=10_000, total_rewards=105,
                                      total_cc_burned=100)).get_financial_health()

        assert health.status == HealthLevel.WARNING
        assert health.message == "Low profit margin - monitor closely."

    def test_short_runway_escalates(self, make_data, calculator):
        health = calculator(make_data(current_credits=50, daily_burn_rate=10, total_rewards=500,
                                      total_cc_burned=100)).get_financial_health()

        assert health.status == HealthLevel.CRITICAL
        assert health.message.endswith("Traffic credits running low (5 days remaining).")
        assert "Purchase additional traffic credits immediately" in health.recommendations
        assert "Continue monitoring key metrics" not in health.recommendations

    def test_runway_never_downgrades_loss(self, make_data, calculator):
        health = calculator(make_data(current_credits=200, daily_burn_rate=10, total_rewards=50,
                                      total_cc_burned=100)).get_financial_health()

        assert health.status == HealthLevel.CRITICAL
        assert health.message.startswith("Validator is operating at a loss.")
        assert len(health.recommendations) == 5

    def test_low_margin_with_warning_runway(self, make_data, calculator):
        health = calculator(make_data(current_credits=200, daily_burn_rate=10, total_rewards=105,
                                      total_cc_burned=100)).get_financial_health()

        assert health.status == HealthLevel.WARNING
        assert len(health.recommendations) == 4


class _RewardsService:
    """Minimal ScanDataService stand-in returning scripted reward totals."""

    def __init__(self, config, totals, fail=False):
        self.config = config
        self.totals = totals
        self.fail = fail

    async def get_validator_info(self, validator_id):
        return ValidatorInfo(validator_id=validator_id, status="active")

    async def get_validator_rewards(self, validator_id, start, end):
        if self.fail and start < self.totals["boundary"]:
            raise RateLimitedError("slow down", retry_after=5)
        total = self.totals["current"] if start >= self.totals["boundary"] else self.totals["previous"]
        return ValidatorRewards(validator_id, 0.0, 0.0, total, start.isoformat(), end.isoformat())

    async def get_validator_traffic(self, validator_id):
        return TrafficData(validator_id, 300.0, 10.0, 50.0, 0.0, 0.0, "")


class TestFinOpsData:
    """Tests for snapshot assembly and change detection."""

    @pytest.mark.asyncio
    async def test_assembles_snapshot(self, test_config, fixed_now):
        start = fixed_now - timedelta(days=10)
        service = _RewardsService(test_config, {"boundary": start, "current": 720.0, "previous": 700.0})

        data = await fetch_validator_finops_data(
            service, "v1", start, fixed_now,
            infrastructure_costs={"compute": 100, "storage": 20},
        )

        assert data.rewards.rewards_per_day == pytest.approx(72.0)
        assert data.rewards.rewards_per_round == pytest.approx(720.0 / (10 * 144))
        assert data.traffic.current_credits == 300
        assert data.traffic.total_cc_burned == 50
        assert data.infrastructure.total == 120
        assert data.changes == ()

    @pytest.mark.asyncio
    async def test_partial_days_round_up(self, test_config, fixed_now):
        start = fixed_now - timedelta(days=9, hours=1)
        service = _RewardsService(test_config, {"boundary": start, "current": 100.0, "previous": 100.0})

        data = await fetch_validator_finops_data(service, "v1", start, fixed_now)

        assert data.rewards.rewards_per_day == pytest.approx(10.0)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("current,previous,expected_type,description", [
        (130.0, 100.0, ChangeType.VOLUME_SPIKE, "Reward increase of 30.0%"),
        (70.0, 100.0, ChangeType.OTHER, "Reward decrease of 30.0%"),
    ])
    async def test_detects_large_reward_change(self, test_config, fixed_now,
                                               current, previous, expected_type, description):
        start = fixed_now - timedelta(days=30)
        service = _RewardsService(test_config, {"boundary": start, "current": current, "previous": previous})

        [change] = await detect_changes(service, "v1", start, fixed_now)

        assert change.type == expected_type
        assert change.description == description
        assert change.impact == pytest.approx(current - previous)
        assert change.date == start

    @pytest.mark.asyncio
    async def test_small_or_unknown_change_ignored(self, test_config, fixed_now):
        start = fixed_now - timedelta(days=30)

        small = _RewardsService(test_config, {"boundary": start, "current": 110.0, "previous": 100.0})
        no_previous = _RewardsService(test_config, {"boundary": start, "current": 110.0, "previous": 0.0})

        assert await detect_changes(small, "v1", start, fixed_now) == []
        assert await detect_changes(no_previous, "v1", start, fixed_now) == []

    @pytest.mark.asyncio
    async def test_change_detection_failure_is_swallowed(self, test_config, fixed_now):
        start = fixed_now - timedelta(days=30)
        service = _RewardsService(test_config, {"boundary": start, "current": 1.0, "previous": 100.0}, fail=True)

        assert await detect_changes(service, "v1", start, fixed_now) == []
