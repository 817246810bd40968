"""Data models and configuration."""

from canton_analytics.models.config import AnalyticsConfig, NodeConfig
from canton_analytics.models.network import (
    ValidatorInfo,
    GovernanceVote,
    PartyUpdate,
    DSOState,
    RoundInfo,
)
from canton_analytics.models.finops import ValidatorFinOpsData, ChangeAttribution
from canton_analytics.models.report import ReportData, EvidenceBundle

__all__ = [
    "AnalyticsConfig",
    "NodeConfig",
    "ValidatorInfo",
    "GovernanceVote",
    "PartyUpdate",
    "DSOState",
    "RoundInfo",
    "ValidatorFinOpsData",
    "ChangeAttribution",
    "ReportData",
    "EvidenceBundle",
]
