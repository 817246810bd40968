"""Normalized Canton Network records produced by the domain mapper."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class RoundInfo:
    """Latest consensus round."""
    round: int
    timestamp: str


@dataclass
class CollectionTiming:
    """First/last activity observed for a validator."""
    first: str
    last: str


@dataclass
class ValidatorInfo:
    """Validator liveness view.

    ``liveness_rounds`` is sourced from consensus voting power, not from a
    round-liveness metric; the upstream exposes nothing closer.
    """
    validator_id: str
    status: str
    liveness_rounds: int = 0
    missed_rounds: int = 0
    name: Optional[str] = None
    collection_timing: Optional[CollectionTiming] = None


@dataclass
class SvNodeState:
    """Super-validator node entry."""
    node_id: str
    status: str = "active"


@dataclass
class DSOState:
    """DSO-like state assembled from overview and super-validator listings."""
    voting_threshold: int = 0
    mining_rounds: int = 0
    amulet_rules: Dict[str, Any] = field(default_factory=dict)
    dso_rules: Dict[str, Any] = field(default_factory=dict)
    sv_node_states: List[SvNodeState] = field(default_factory=list)


@dataclass
class VotePayload:
    """Free-form governance vote payload."""
    requester: Optional[str] = None
    reason: Optional[str] = None
    action: Optional[str] = None
    vote_before: Optional[str] = None
    votes: Any = None
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class GovernanceVote:
    """Open governance vote."""
    contract_id: Optional[str] = None
    tracking_cid: Optional[str] = None
    status: Optional[str] = None
    accept_count: int = 0
    reject_count: int = 0
    no_vote_count: int = 0
    payload: VotePayload = field(default_factory=VotePayload)

    def matches(self, vote_id: str) -> bool:
        """Case-insensitive match on contract id or tracking id."""
        wanted = (vote_id or "").strip().lower()
        if not wanted:
            return False
        return (self.contract_id or "").lower() == wanted or (self.tracking_cid or "").lower() == wanted


@dataclass
class PartyUpdate:
    """Single ledger update."""
    update_id: str
    timestamp: str
    parties: List[str] = field(default_factory=list)
    update_type: str = "update"
    round: int = 0
    transaction_id: Optional[str] = None


@dataclass
class Transfer:
    """CC transfer between parties."""
    transfer_id: str
    from_party: str
    to_party: str
    amount: float
    currency: str
    timestamp: str
    round: int = 0
    transaction_id: Optional[str] = None


@dataclass
class ValidatorRewards:
    """Validator rewards over a period."""
    validator_id: str
    liveness_rewards: float
    activity_rewards: float
    total_rewards: float
    period_start: str
    period_end: str
    rounds: int = 0


@dataclass
class TrafficData:
    """Validator traffic credit snapshot."""
    validator_id: str
    current_credits: float
    daily_burn_rate: float
    total_burned: float
    total_purchased: float
    average_burn_per_mb: float
    last_updated: str


@dataclass
class ActivitySummary:
    """Activity counts over a period."""
    total_transactions: int = 0
    total_volume: float = 0.0
    transfers: int = 0
    offers: int = 0
    preapprovals: int = 0
    updates: int = 0


@dataclass
class PartyInfo:
    """Party identity."""
    party_id: str
    display_name: Optional[str] = None
