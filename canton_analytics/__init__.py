"""
Canton Network Analytics

Read-only analytics back end for the Canton Network: a resilient Scan API
client, normalized domain views, validator FinOps projections and
featured-app compliance reports with evidence bundles.
"""

__version__ = "1.0.0"
__author__ = "Canton Analytics Team"
__description__ = "Validator, governance and FinOps analytics over the Canton Scan API"

from canton_analytics.core.scan_client import ScanApiClient
from canton_analytics.core.scan_api import ScanDataService
from canton_analytics.core.finops import ValidatorFinOpsCalculator
from canton_analytics.core.report_generator import ReportGenerator
from canton_analytics.models.config import AnalyticsConfig

__all__ = [
    "ScanApiClient",
    "ScanDataService",
    "ValidatorFinOpsCalculator",
    "ReportGenerator",
    "AnalyticsConfig",
]
