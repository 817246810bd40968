"""
Featured-app report and evidence bundle generation.

The evidence bundle is a two-step hash chain over the report content:

    data_hash     = sha256(canonical JSON of ReportData)
    snapshot_hash = sha256(data_hash + timestamp)

``data_hash`` is content-addressed and time independent; ``snapshot_hash``
binds it to the moment the report was generated. The bundle is computed
once per generator and reused by every export, so PDF layout and CSV always
carry the same hashes.
"""

import csv
import hashlib
import io
import json
import math
from dataclasses import asdict
from datetime import datetime
from typing import Any, Callable, List, Optional, Tuple

import structlog

from canton_analytics.models.report import (
    ChecklistCategory,
    ChecklistItem,
    EvidenceBundle,
    PdfTextInstruction,
    ReportData,
)
from canton_analytics.utils.time import get_current_utc, isoformat_z

logger = structlog.get_logger(__name__)

REPORT_TITLE = "Canton Network Featured App Report"

# PDF layout, millimetres on A4 portrait
MARGIN_X = 20
SECTION_START_Y = 50
HEADING_FONT = 16
BODY_FONT = 12
EVIDENCE_FONT = 10
HEADING_STEP = 10
LINE_STEP = 7
SECTION_GAP = 15
ACTIVITY_GAP = 10
EVIDENCE_MAX_WIDTH = 170


def _normalize_for_hash(data: Any) -> Any:
    """Normalize nested values so equal content always hashes equally."""
    if isinstance(data, dict):
        return {k: _normalize_for_hash(v) for k, v in sorted(data.items())}
    elif isinstance(data, (list, tuple)):
        return [_normalize_for_hash(item) for item in data]
    elif isinstance(data, float):
        return round(data, 8)
    elif isinstance(data, datetime):
        return isoformat_z(data)
    else:
        return data


def serialize_report(data: ReportData) -> str:
    """Canonical JSON for a report: sorted keys, compact separators."""
    normalized = _normalize_for_hash(asdict(data))
    return json.dumps(normalized, sort_keys=True, separators=(',', ':'))


def sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode('utf-8')).hexdigest()


def format_number(value: float) -> str:
    """Plain number text; integral floats drop the trailing ``.0``."""
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return str(int(value))
    return str(value)


def format_grouped(value: float) -> str:
    """Thousands-grouped number with at most three decimals."""
    if isinstance(value, float) and not value.is_integer():
        return f"{value:,.3f}".rstrip("0").rstrip(".")
    return f"{int(value):,}"


def build_evidence_bundle(data: ReportData, generated_at: datetime) -> EvidenceBundle:
    timestamp = isoformat_z(generated_at)
    data_hash = sha256_hex(serialize_report(data))

    return EvidenceBundle(
        snapshot_hash=sha256_hex(f"{data_hash}{timestamp}"),
        timestamp=timestamp,
        data_hash=data_hash,
        derivation_notes=(
            "Data derived from Canton Network on-chain records for period "
            f"{isoformat_z(data.period.start)} to {isoformat_z(data.period.end)}"
        ),
        signed_by=data.app_name,
    )


def verify_evidence(data: ReportData, bundle: EvidenceBundle) -> bool:
    """True when both hashes in ``bundle`` match ``data`` and its timestamp."""
    data_hash = sha256_hex(serialize_report(data))
    if data_hash != bundle.data_hash:
        return False
    return sha256_hex(f"{data_hash}{bundle.timestamp}") == bundle.snapshot_hash


def checklist_completion(checklist: List[ChecklistCategory]) -> Tuple[int, int, float]:
    """(completed items, total items, percentage) across all categories."""
    items = [item for category in checklist for item in category.items]
    completed = sum(1 for item in items if item.completed)
    total = len(items)
    percentage = completed / total * 100 if total else 0.0
    return completed, total, percentage


class ReportGenerator:
    """Exports for one ReportData instance, sharing a single evidence bundle."""

    def __init__(self, data: ReportData,
                 clock: Optional[Callable[[], datetime]] = None):
        self.data = data
        self._clock = clock or get_current_utc
        self.generated_at = self._clock()
        self._evidence_bundle = build_evidence_bundle(data, self.generated_at)

        logger.info(
            "Evidence bundle generated",
            app_name=data.app_name,
            data_hash=self._evidence_bundle.data_hash,
            snapshot_hash=self._evidence_bundle.snapshot_hash,
        )

    def get_evidence_bundle(self) -> EvidenceBundle:
        return self._evidence_bundle

    def get_requirements_checklist(self) -> List[ChecklistCategory]:
        """Submission checklist derived from the report content."""
        data = self.data
        metrics = data.metrics
        compliance = data.compliance

        return [
            ChecklistCategory(
                id="app-info",
                label="Application Information",
                required=True,
                completed=bool(data.app_name and data.party_id),
                items=[
                    ChecklistItem("Institution name", bool(data.app_name)),
                    ChecklistItem("Party ID", bool(data.party_id)),
                    ChecklistItem("Application summary", True),
                ],
            ),
            ChecklistCategory(
                id="metrics",
                label="Key Metrics & Activity",
                required=True,
                completed=metrics.total_transactions > 0,
                items=[
                    ChecklistItem("Transaction volume data", metrics.total_transactions > 0),
                    ChecklistItem("User activity metrics", metrics.active_users > 0),
                    ChecklistItem("Rewards earned", metrics.rewards_earned > 0),
                ],
            ),
            ChecklistCategory(
                id="compliance",
                label="Compliance & Controls",
                required=True,
                completed=bool(compliance.controls_in_place and compliance.non_bona_fide_prevention),
                items=[
                    ChecklistItem("Audit status documented", bool(compliance.audit_status)),
                    ChecklistItem("Controls preventing non-bona fide transactions",
                                  bool(compliance.controls_in_place)),
                    ChecklistItem("Non-bona fide prevention description",
                                  bool(compliance.non_bona_fide_prevention)),
                ],
            ),
            ChecklistCategory(
                id="evidence",
                label="Evidence Bundle",
                required=True,
                completed=True,
                items=[
                    ChecklistItem("Signed snapshot with hash", True),
                    ChecklistItem("Data provenance chain", True),
                    ChecklistItem("Derivation notes", True),
                ],
            ),
        ]

    def generate_pdf_layout(self) -> List[PdfTextInstruction]:
        """Positioned text runs for the PDF document, top to bottom."""
        data = self.data
        bundle = self._evidence_bundle
        metrics = data.metrics
        compliance = data.compliance
        date_fmt = "%Y-%m-%d"

        layout = [
            PdfTextInstruction("header", REPORT_TITLE, 20, MARGIN_X, 20),
            PdfTextInstruction("header", f"Generated: {self.generated_at.strftime(date_fmt)}",
                               BODY_FONT, MARGIN_X, 30),
            PdfTextInstruction(
                "header",
                f"Period: {data.period.start.strftime(date_fmt)} - {data.period.end.strftime(date_fmt)}",
                BODY_FONT, MARGIN_X, 36,
            ),
        ]

        sections = [
            ("app_info", "Application Information", BODY_FONT, 0, [
                f"App Name: {data.app_name}",
                f"Party ID: {data.party_id}",
            ]),
            ("metrics", "Key Metrics", BODY_FONT, 0, [
                f"Total Transactions: {format_grouped(metrics.total_transactions)}",
                f"Total Volume: {format_grouped(metrics.total_volume)} CC",
                f"Active Users: {format_grouped(metrics.active_users)}",
                f"Rewards Earned: {format_grouped(metrics.rewards_earned)} CC",
                f"Transaction Growth: {metrics.transaction_growth:.2f}%",
            ]),
            ("activity", "Activity Breakdown", BODY_FONT, 0, [
                f"{a.activity_type}: {a.count} transactions, {format_number(a.volume)} CC"
                for a in data.activity_breakdown
            ]),
            ("compliance", "Compliance Information", BODY_FONT, 0, [
                f"Audit Status: {compliance.audit_status}",
                f"Controls In Place: {'Yes' if compliance.controls_in_place else 'No'}",
                f"Non-Bona Fide Prevention: {compliance.non_bona_fide_prevention}",
            ]),
            ("evidence", "Evidence Bundle", EVIDENCE_FONT, EVIDENCE_MAX_WIDTH, [
                f"Snapshot Hash: {bundle.snapshot_hash}",
                f"Timestamp: {bundle.timestamp}",
                f"Data Hash: {bundle.data_hash}",
                f"Derivation: {bundle.derivation_notes}",
            ]),
        ]

        y = SECTION_START_Y
        for section, heading, font_size, max_width, lines in sections:
            layout.append(PdfTextInstruction(section, heading, HEADING_FONT, MARGIN_X, y))
            y += HEADING_STEP
            for line in lines:
                layout.append(PdfTextInstruction(section, line, font_size, MARGIN_X, y, max_width))
                y += LINE_STEP
            # The activity list has a variable length and closes with a fixed gap.
            y += ACTIVITY_GAP if section == "activity" else SECTION_GAP - LINE_STEP

        return layout

    def generate_csv(self) -> str:
        """Flat ``Field,Value`` table of the report and its evidence hashes."""
        data = self.data
        metrics = data.metrics
        bundle = self._evidence_bundle

        rows = [
            ("Field", "Value"),
            ("App Name", data.app_name),
            ("Party ID", data.party_id),
            ("Period Start", isoformat_z(data.period.start)),
            ("Period End", isoformat_z(data.period.end)),
            ("Period Type", data.period.type),
            ("Total Transactions", format_number(metrics.total_transactions)),
            ("Total Volume", format_number(metrics.total_volume)),
            ("Active Users", format_number(metrics.active_users)),
            ("Rewards Earned", format_number(metrics.rewards_earned)),
            ("Transaction Growth", format_number(metrics.transaction_growth)),
            ("Audit Status", data.compliance.audit_status),
            ("Controls In Place", "true" if data.compliance.controls_in_place else "false"),
            ("Snapshot Hash", bundle.snapshot_hash),
            ("Timestamp", bundle.timestamp),
            ("Data Hash", bundle.data_hash),
        ]

        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\r\n")
        writer.writerows(rows)
        return buffer.getvalue().rstrip("\r\n")
