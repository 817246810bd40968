"""Response schemas for the Canton Analytics API."""

import math
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


def finite_or_none(value: float) -> Optional[float]:
    """JSON has no infinity; unbounded values are reported as null."""
    return None if math.isinf(value) else value


class ErrorDetail(BaseModel):
    code: str
    message: str
    status: Optional[int] = None
    retry_after: Optional[int] = None
    timestamp: datetime


class ErrorResponse(BaseModel):
    error: ErrorDetail


class NodeStatusResponse(BaseModel):
    """Upstream node health."""
    url: str
    name: str
    priority: int
    consecutive_errors: int
    last_error: Optional[float] = Field(None, description="Epoch seconds of the last failure")
    rate_limit: Optional[Dict[str, Any]] = None
    is_active: bool


class HealthResponse(BaseModel):
    status: str = Field(..., description="ok when at least one node is below the error threshold")
    version: str
    timestamp: datetime
    nodes: List[NodeStatusResponse]


class RunwayResponse(BaseModel):
    days_remaining: Optional[float] = Field(None, description="null when the runway is unbounded")
    date_exhausted: datetime
    current_burn_rate: float
    projected_burn_rate: float
    warning_level: str


class NetMarginResponse(BaseModel):
    total_revenue: float
    total_costs: float
    net_margin: float
    margin_percentage: float
    break_even_point: float


class ChangeResponse(BaseModel):
    type: str
    description: str
    impact: float
    date: datetime
    parties: Optional[List[str]] = None


class ChangeAnalysisResponse(BaseModel):
    summary: str
    top_changes: List[ChangeResponse]
    total_impact: float
    impact_by_type: Dict[str, float]


class ScenarioResponse(BaseModel):
    name: str
    description: str
    daily_burn_rate: float
    daily_rewards: float
    monthly_net_margin: float
    runway_days: Optional[float] = Field(None, description="null when the runway is unbounded")


class FinancialHealthResponse(BaseModel):
    status: str
    message: str
    recommendations: List[str]


class FinOpsResponse(BaseModel):
    """Full FinOps view for one validator."""
    validator_id: str
    period_start: datetime
    period_end: datetime
    runway: RunwayResponse
    net_margin: NetMarginResponse
    changes: ChangeAnalysisResponse
    scenarios: List[ScenarioResponse]
    health: FinancialHealthResponse


class EvidenceBundleResponse(BaseModel):
    snapshot_hash: str
    timestamp: str
    data_hash: str
    derivation_notes: str
    signed_by: str


class ChecklistItemResponse(BaseModel):
    label: str
    completed: bool


class ChecklistCategoryResponse(BaseModel):
    id: str
    label: str
    required: bool
    completed: bool
    items: List[ChecklistItemResponse]


class ReportResponse(BaseModel):
    """Featured-app report with its evidence bundle and checklist."""
    report: Dict[str, Any]
    evidence: EvidenceBundleResponse
    checklist: List[ChecklistCategoryResponse]
    completion_percentage: float
