"""Network, validator, governance and update endpoints."""

from dataclasses import asdict
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
import structlog

from canton_analytics import __version__
from canton_analytics.api.dependencies import get_client, get_service, resolve_window
from canton_analytics.api.schemas import HealthResponse, NodeStatusResponse
from canton_analytics.core.scan_api import ScanDataService
from canton_analytics.core.scan_client import ScanApiClient
from canton_analytics.utils.time import get_current_utc

router = APIRouter()
logger = structlog.get_logger(__name__)


def _node_statuses(client: ScanApiClient) -> List[NodeStatusResponse]:
    return [
        NodeStatusResponse(**status_view.node.to_dict(), is_active=status_view.is_active)
        for status_view in client.get_node_status()
    ]


@router.get("/health", response_model=HealthResponse)
async def health(client: ScanApiClient = Depends(get_client)):
    """Service health from the client's view of upstream nodes; makes no upstream call."""
    nodes = _node_statuses(client)
    threshold = client.config.node_error_threshold
    healthy = any(node.consecutive_errors < threshold for node in nodes)

    return HealthResponse(
        status="ok" if healthy else "degraded",
        version=__version__,
        timestamp=get_current_utc(),
        nodes=nodes,
    )


@router.get("/nodes", response_model=List[NodeStatusResponse])
async def nodes(client: ScanApiClient = Depends(get_client)):
    return _node_statuses(client)


@router.get("/round")
async def latest_round(service: ScanDataService = Depends(get_service)) -> Dict[str, Any]:
    return asdict(await service.get_latest_round())


@router.get("/dso")
async def dso_state(service: ScanDataService = Depends(get_service)) -> Dict[str, Any]:
    return asdict(await service.get_dso_state())


@router.get("/validators")
async def validators(service: ScanDataService = Depends(get_service)) -> List[Dict[str, Any]]:
    return [asdict(v) for v in await service.get_validator_liveness()]


@router.get("/validators/{validator_id}")
async def validator_detail(validator_id: str,
                           service: ScanDataService = Depends(get_service)) -> Dict[str, Any]:
    """Single validator; unknown ids return a stub with status ``unknown``."""
    return asdict(await service.get_validator_info(validator_id))


@router.get("/governance/votes")
async def open_votes(service: ScanDataService = Depends(get_service)) -> List[Dict[str, Any]]:
    return [asdict(v) for v in await service.get_open_votes()]


@router.get("/governance/votes/{vote_id}")
async def vote_detail(vote_id: str,
                      service: ScanDataService = Depends(get_service)) -> Dict[str, Any]:
    vote = await service.get_governance_vote_detail(vote_id)
    if vote is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Vote {vote_id} not found",
        )
    return asdict(vote)


@router.get("/updates")
async def updates(start: Optional[datetime] = Query(default=None, description="Window start (ISO 8601)"),
                  end: Optional[datetime] = Query(default=None, description="Window end (ISO 8601)"),
                  limit: int = Query(default=100, ge=1, le=2000),
                  service: ScanDataService = Depends(get_service)) -> List[Dict[str, Any]]:
    """Updates in the window, newest first; the window defaults to the last day."""
    start_utc, end_utc = resolve_window(start, end, default_days=1)
    logger.info("Updates requested", start=start_utc.isoformat(), end=end_utc.isoformat(), limit=limit)
    return [asdict(u) for u in await service.get_all_updates(start_utc, end_utc, limit)]


@router.get("/updates/{update_id}/{record_time}")
async def update_detail(update_id: str,
                        record_time: str,
                        service: ScanDataService = Depends(get_service)) -> Any:
    return await service.get_update_detail(update_id, record_time)


@router.get("/activity")
async def activity(start: Optional[datetime] = Query(default=None),
                   end: Optional[datetime] = Query(default=None),
                   party_id: Optional[str] = Query(default=None, description="Restrict to one party"),
                   limit: int = Query(default=2000, ge=1, le=2000),
                   service: ScanDataService = Depends(get_service)) -> Dict[str, Any]:
    """Activity counts over the window, globally or for one party."""
    start_utc, end_utc = resolve_window(start, end, default_days=1)
    if party_id:
        summary = await service.get_party_activity_summary(party_id, start_utc, end_utc, limit)
    else:
        summary = await service.get_global_activity_summary(start_utc, end_utc, limit)
    return asdict(summary)
