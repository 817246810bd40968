"""Core Scan API access, domain mapping and analytics components."""

from canton_analytics.core.scan_client import (
    ScanApiClient,
    ScanApiError,
    RateLimitedError,
    UpstreamUnavailableError,
    UpstreamRejectedError,
)
from canton_analytics.core.scan_api import ScanDataService
from canton_analytics.core.finops import ValidatorFinOpsCalculator
from canton_analytics.core.finops_data import fetch_validator_finops_data
from canton_analytics.core.report_generator import ReportGenerator, verify_evidence
from canton_analytics.core.featured_app_data import fetch_featured_app_report_data

__all__ = [
    "ScanApiClient",
    "ScanApiError",
    "RateLimitedError",
    "UpstreamUnavailableError",
    "UpstreamRejectedError",
    "ScanDataService",
    "ValidatorFinOpsCalculator",
    "fetch_validator_finops_data",
    "ReportGenerator",
    "verify_evidence",
    "fetch_featured_app_report_data",
]
