"""Data models for featured-app compliance reports."""

from datetime import datetime
from dataclasses import dataclass, field
from typing import List


@dataclass
class ReportPeriod:
    """Reporting window."""
    start: datetime
    end: datetime
    type: str = "monthly"  # monthly | quarterly


@dataclass
class ReportMetrics:
    """Headline activity metrics."""
    total_transactions: int = 0
    total_volume: float = 0.0
    active_users: int = 0
    rewards_earned: float = 0.0
    transaction_growth: float = 0.0


@dataclass
class ActivityBreakdown:
    """Per-activity counts and volume."""
    activity_type: str
    count: int
    volume: float


@dataclass
class ComplianceInfo:
    """Compliance flags reported to the committee."""
    audit_status: str = ""
    controls_in_place: bool = False
    non_bona_fide_prevention: str = ""


@dataclass
class ReportData:
    """Aggregate a report is generated from."""
    app_name: str
    party_id: str
    period: ReportPeriod
    metrics: ReportMetrics = field(default_factory=ReportMetrics)
    activity_breakdown: List[ActivityBreakdown] = field(default_factory=list)
    compliance: ComplianceInfo = field(default_factory=ComplianceInfo)


@dataclass(frozen=True)
class EvidenceBundle:
    """Hash-chained, timestamped proof of report integrity."""
    snapshot_hash: str
    timestamp: str
    data_hash: str
    derivation_notes: str
    signed_by: str


@dataclass
class ChecklistItem:
    label: str
    completed: bool


@dataclass
class ChecklistCategory:
    id: str
    label: str
    required: bool
    completed: bool
    items: List[ChecklistItem] = field(default_factory=list)


@dataclass
class PdfTextInstruction:
    """One positioned text run in the PDF layout (mm, A4 portrait)."""
    section: str
    text: str
    font_size: int
    x: int
    y: int
    max_width: int = 0
