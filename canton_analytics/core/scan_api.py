"""
Canton Network domain mapper.

Translates raw, loosely-typed Scan API payloads into normalized records.
Optional upstream fields get safe defaults here so nothing past this layer
has to probe raw shapes. Upstream errors propagate unchanged in kind.
"""

import asyncio
import math
import re
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence
from urllib.parse import quote

import structlog

from canton_analytics.core.scan_client import ScanApiClient
from canton_analytics.models.config import AnalyticsConfig
from canton_analytics.models.network import (
    ActivitySummary,
    CollectionTiming,
    DSOState,
    GovernanceVote,
    PartyInfo,
    PartyUpdate,
    RoundInfo,
    SvNodeState,
    Transfer,
    TrafficData,
    ValidatorInfo,
    ValidatorRewards,
    VotePayload,
)
from canton_analytics.utils.time import get_current_utc, isoformat_z, parse_timestamp, to_utc

logger = structlog.get_logger(__name__)

VALIDATORS_ENDPOINT = "/api/validators"
CONSENSUS_ENDPOINT = "/api/consensus"
SUPER_VALIDATORS_ENDPOINT = "/api/super-validators"
UPDATES_ENDPOINT = "/api/v2/updates"
OVERVIEW_ENDPOINT = "/api/overview"

UNKNOWN_VALIDATOR_ID = "-"

_LEADING_INT = re.compile(r"^\s*([-+]?\d+)")


# ============================================================
# Raw payload decoding
# ============================================================

def _parse_int(value: Any) -> Optional[int]:
    """Leading integer of a number or numeric string, None when absent or non-finite."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    if isinstance(value, str):
        match = _LEADING_INT.match(value)
        return int(match.group(1)) if match else None
    return None


def parse_round(value: Any) -> int:
    """Round/height from a number or numeric string; 0 when unusable."""
    parsed = _parse_int(value)
    return parsed if parsed is not None else 0


def _dig(data: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def _as_id(value: Any) -> Optional[str]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (str, int)):
        return str(value)
    return None


def _sv_entry_id(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        raw = value.get("validatorId", value.get("node_id"))
        return str(raw) if raw is not None else ""
    return ""


def _sv_entry_status(value: Any) -> str:
    status = _as_dict(value).get("status")
    return status if isinstance(status, str) else "active"


def decode_sv_node(entry: Any) -> SvNodeState:
    """Decode a super-validator entry: plain id, ``{validatorId|node_id, status}`` or ``[id, meta]``."""
    if isinstance(entry, (list, tuple)):
        node_id = _sv_entry_id(entry[0]) if entry else ""
        status = _sv_entry_status(entry[1]) if len(entry) > 1 else "active"
        return SvNodeState(node_id=node_id, status=status)

    if isinstance(entry, dict):
        return SvNodeState(node_id=_sv_entry_id(entry), status=_sv_entry_status(entry))

    return SvNodeState(node_id=_sv_entry_id(entry))


def decode_vote(raw: Any) -> Optional[GovernanceVote]:
    """Decode one open vote; non-objects are dropped."""
    if not isinstance(raw, dict):
        return None

    payload = _as_dict(raw.get("payload"))
    known = {"requester", "reason", "action", "voteBefore", "votes"}

    return GovernanceVote(
        contract_id=_as_id(raw.get("contract_id")) or _as_id(raw.get("contractId")),
        tracking_cid=_as_id(raw.get("trackingCid")),
        status=raw.get("status") if isinstance(raw.get("status"), str) else None,
        accept_count=parse_round(raw.get("acceptCount")),
        reject_count=parse_round(raw.get("rejectCount")),
        no_vote_count=parse_round(raw.get("noVoteCount")),
        payload=VotePayload(
            requester=payload.get("requester"),
            reason=payload.get("reason"),
            action=payload.get("action") if isinstance(payload.get("action"), str) else None,
            vote_before=payload.get("voteBefore"),
            votes=payload.get("votes"),
            extra={k: v for k, v in payload.items() if k not in known},
        ),
    )


def map_update(raw: Dict[str, Any], now: Optional[datetime] = None) -> PartyUpdate:
    """Map a raw update; timestamp falls back recordTime → effectiveAt → createdAt → now."""
    timestamp = None
    for field_name in ("recordTime", "effectiveAt", "createdAt"):
        if raw.get(field_name) is not None:
            timestamp = raw[field_name]
            break
    if timestamp is None:
        timestamp = isoformat_z(now or get_current_utc())

    parties: List[str] = []
    submitter = raw.get("submittingPartyId")
    if submitter:
        parties.append(submitter)
    for party in _as_list(raw.get("partiesSummarized")):
        if isinstance(party, str) and party and party not in parties:
            parties.append(party)

    update_type = raw.get("updateType")
    return PartyUpdate(
        update_id=raw.get("updateId") or "",
        timestamp=str(timestamp),
        parties=parties,
        update_type=update_type if isinstance(update_type, str) and update_type else "update",
        round=0,
        transaction_id=raw.get("workflowId") or None,
    )


def build_voting_power_map(validators: Any) -> Dict[str, int]:
    """Consensus address → voting power, also keyed by the segment after the last ``::``."""
    voting_power: Dict[str, int] = {}
    for entry in _as_list(validators):
        entry = _as_dict(entry)
        address = str(entry.get("address") or "").strip().lower()
        if not address:
            continue
        power = _parse_int(entry.get("voting_power", "0"))
        if power is None:
            continue
        voting_power[address] = power
        if "::" in address:
            last_part = address.split("::")[-1]
            if last_part and last_part != address:
                voting_power[last_part] = power
    return voting_power


def lookup_voting_power(voting_power: Dict[str, int], validator_id: str) -> int:
    """Exact lowercase id, then the part after the last ``::``, then the short id before it."""
    id_lower = validator_id.strip().lower()
    if not id_lower:
        return 0

    candidates = [id_lower]
    if "::" in id_lower:
        candidates.append(id_lower.split("::")[-1])
        candidates.append(id_lower.split("::")[0].strip())

    for candidate in candidates:
        if candidate and candidate in voting_power:
            return voting_power[candidate]
    return 0


def validator_id_matches(candidate: str, wanted: str) -> bool:
    """
    Asymmetric validator id match.

    Upstream endpoints mix fully-qualified ``name::fingerprint`` ids with
    short ``name`` ids, so a candidate matches when it equals the wanted
    full or short id, is the short part of the wanted id, or has the
    wanted short id as its own short part.
    """
    value = candidate.strip().lower()
    if not value:
        return False

    full = (wanted or "").strip()
    short = full.split("::")[0].strip() if "::" in full else full
    full_l = full.lower()
    short_l = short.lower()

    if value == full_l or value == short_l:
        return True
    if full_l.startswith(value + "::"):
        return True
    if value.startswith(short_l + "::"):
        return True
    return False


# ============================================================
# Service
# ============================================================

class ScanDataService:
    """Domain views over the Scan API."""

    def __init__(self,
                 client: ScanApiClient,
                 config: Optional[AnalyticsConfig] = None,
                 sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
                 now: Callable[[], datetime] = get_current_utc):
        self.client = client
        self.config = config or client.config
        self._sleep = sleep
        self._now = now
        self.logger = logger.bind(component="scan_data_service")

    # -------------------- Consensus --------------------

    async def get_latest_round(self) -> RoundInfo:
        """Latest round from consensus height, falling back to the overview."""
        consensus, overview = await asyncio.gather(
            self.client.fetch(CONSENSUS_ENDPOINT),
            self.client.fetch(OVERVIEW_ENDPOINT),
        )
        header = _dig(consensus, "latest_block", "signed_header", "header")
        height = _dig(header, "height")
        if height is None:
            height = _as_dict(overview).get("consensusHeight")

        timestamp = _dig(header, "time") or isoformat_z(self._now())
        return RoundInfo(round=parse_round(height), timestamp=timestamp)

    async def get_dso_state(self) -> DSOState:
        """DSO-like state with super-validator node entries."""
        super_validators = await self.client.fetch(SUPER_VALIDATORS_ENDPOINT)
        nodes = [decode_sv_node(entry) for entry in _as_list(_as_dict(super_validators).get("svs"))]
        return DSOState(sv_node_states=[n for n in nodes if n.node_id])

    # -------------------- Governance --------------------

    async def get_open_votes(self) -> List[GovernanceVote]:
        """Open governance votes from the overview."""
        overview = await self.client.fetch(OVERVIEW_ENDPOINT)
        votes = (decode_vote(raw) for raw in _as_list(_as_dict(overview).get("openVotes")))
        return [v for v in votes if v is not None]

    async def get_governance_vote_detail(self, vote_id: str) -> Optional[GovernanceVote]:
        """Single vote by contract id or tracking id; None when absent."""
        if not (vote_id or "").strip():
            return None
        for vote in await self.get_open_votes():
            if vote.matches(vote_id):
                return vote
        return None

    # -------------------- Validators --------------------

    async def get_validator_liveness(self) -> List[ValidatorInfo]:
        """All licensed validators; liveness rounds come from consensus voting power."""
        validators, consensus = await asyncio.gather(
            self.client.fetch(VALIDATORS_ENDPOINT),
            self.client.fetch(CONSENSUS_ENDPOINT),
        )
        licenses = _as_list(_as_dict(validators).get("validator_licenses"))
        voting_power = build_voting_power_map(_as_dict(consensus).get("validators"))

        results = []
        for licence in licenses:
            payload = _as_dict(_as_dict(licence).get("payload"))
            validator_id = str(payload.get("validator") or "").strip()
            missed = parse_round(_dig(payload, "faucetState", "numCouponsMissed"))
            last_active = payload.get("lastActiveAt")

            results.append(ValidatorInfo(
                validator_id=validator_id or UNKNOWN_VALIDATOR_ID,
                name=payload.get("sponsor"),
                status="at_risk" if missed > 0 else "active",
                liveness_rounds=lookup_voting_power(voting_power, validator_id),
                missed_rounds=missed,
                collection_timing=CollectionTiming(first=last_active, last=last_active) if last_active else None,
            ))

        self.logger.debug("Validators mapped", count=len(results))
        return results

    async def get_validator_info(self, validator_id: str) -> ValidatorInfo:
        """Single validator; a stub with status ``unknown`` when not found."""
        for validator in await self.get_validator_liveness():
            if validator_id_matches(validator.validator_id, validator_id):
                return validator

        return ValidatorInfo(validator_id=validator_id, status="unknown")

    # -------------------- Updates --------------------

    async def get_all_updates(self,
                              start_date: datetime,
                              end_date: datetime,
                              limit: int = 2000) -> List[PartyUpdate]:
        """
        Updates within [start_date, end_date], newest first.

        Stops when ``limit`` in-range updates are collected, when upstream
        returns no continuation token or an empty page, or once a page
        reaches back past ``start_date``. Page count is capped.
        """
        if limit <= 0:
            return []

        start = to_utc(start_date)
        end = to_utc(end_date)
        collected: List[PartyUpdate] = []
        next_token: Optional[str] = None
        pages = 0

        for _ in range(self.config.updates_max_pages):
            params: Dict[str, Any] = {"limit": self.config.updates_page_size}
            if next_token:
                params["nextToken"] = next_token

            response = _as_dict(await self.client.fetch(UPDATES_ENDPOINT, params=params))
            pages += 1
            now = self._now()
            batch = [map_update(raw, now) for raw in _as_list(response.get("updates")) if isinstance(raw, dict)]

            oldest: Optional[datetime] = None
            for update in batch:
                ts = parse_timestamp(update.timestamp)
                if ts is None:
                    continue
                if oldest is None or ts < oldest:
                    oldest = ts
                if start <= ts <= end:
                    collected.append(update)
                if len(collected) >= limit:
                    break

            if len(collected) >= limit:
                break

            next_token = response.get("nextToken")
            if not next_token or not batch:
                break
            if oldest is not None and oldest < start:
                break

            await self._sleep(self.config.updates_page_delay_seconds)

        self.logger.info("Updates collected", pages=pages, count=min(len(collected), limit))
        return collected[:limit]

    async def get_update_detail(self, update_id: str, record_time: str) -> Dict[str, Any]:
        """Single update detail; ``record_time`` is path-encoded."""
        encoded = quote(record_time, safe="")
        return await self.client.fetch(f"{UPDATES_ENDPOINT}/{update_id}/{encoded}")

    # -------------------- Not provided upstream --------------------

    async def get_all_transfers(self,
                                start_date: datetime,
                                end_date: datetime,
                                limit: int = 2000) -> List[Transfer]:
        """Transfers are not exposed by the explorer API."""
        return []

    async def get_validator_rewards(self,
                                    validator_id: str,
                                    start_date: datetime,
                                    end_date: datetime) -> ValidatorRewards:
        """Rewards are not exposed by the explorer API; zero-value record."""
        return ValidatorRewards(
            validator_id=validator_id,
            liveness_rewards=0.0,
            activity_rewards=0.0,
            total_rewards=0.0,
            period_start=isoformat_z(start_date),
            period_end=isoformat_z(end_date),
            rounds=0,
        )

    async def get_validator_traffic(self, validator_id: str) -> TrafficData:
        """Traffic is not exposed by the explorer API; zero-value record."""
        return TrafficData(
            validator_id=validator_id,
            current_credits=0.0,
            daily_burn_rate=0.0,
            total_burned=0.0,
            total_purchased=0.0,
            average_burn_per_mb=0.0,
            last_updated=isoformat_z(self._now()),
        )

    # -------------------- Activity --------------------

    async def get_global_activity_summary(self,
                                          start_date: datetime,
                                          end_date: datetime,
                                          limit: int = 2000) -> ActivitySummary:
        """Network activity over the window."""
        transfers = await self.get_all_transfers(start_date, end_date, limit)
        updates = await self.get_all_updates(start_date, end_date, limit)
        return summarize_activity(transfers, updates)

    async def get_party_activity_summary(self,
                                         party_id: str,
                                         start_date: datetime,
                                         end_date: datetime,
                                         limit: int = 2000) -> ActivitySummary:
        """Activity over the window involving ``party_id``."""
        transfers = await self.get_all_transfers(start_date, end_date, limit)
        updates = await self.get_all_updates(start_date, end_date, limit)
        wanted = party_id.strip().lower()

        party_transfers = [
            t for t in transfers
            if wanted in (t.from_party.lower(), t.to_party.lower())
        ]
        party_updates = [
            u for u in updates
            if any(p.lower() == wanted for p in u.parties)
        ]
        return summarize_activity(party_transfers, party_updates)

    async def get_party_info(self, party_id: str) -> PartyInfo:
        """Party identity; the display name is the hint before ``::``."""
        party_id = party_id.strip()
        hint = party_id.split("::")[0] if "::" in party_id else None
        return PartyInfo(party_id=party_id, display_name=hint or None)


def summarize_activity(transfers: Sequence[Transfer], updates: Sequence[PartyUpdate]) -> ActivitySummary:
    """Count transfers and updates; offer/preapproval updates are split out by type label."""
    offers = 0
    preapprovals = 0
    other_updates = 0
    for update in updates:
        label = (update.update_type or "").lower()
        is_offer = "offer" in label
        is_preapproval = "preapproval" in label
        if is_offer:
            offers += 1
        if is_preapproval:
            preapprovals += 1
        if not is_offer and not is_preapproval:
            other_updates += 1

    return ActivitySummary(
        total_transactions=len(transfers) + len(updates),
        total_volume=sum(t.amount or 0 for t in transfers),
        transfers=len(transfers),
        offers=offers,
        preapprovals=preapprovals,
        updates=other_updates,
    )
