"""Configuration management using Pydantic settings."""

from typing import List, Optional
from pydantic import BaseModel, Field, validator
from pydantic_settings import BaseSettings


class NodeConfig(BaseModel):
    """Static description of one upstream Scan API node."""

    url: str = Field(description="Node base URL")
    name: str = Field(description="Display name")
    priority: int = Field(default=1, description="Lower value is preferred")


def _default_nodes() -> List[NodeConfig]:
    return [
        NodeConfig(url="https://api.cantonnodes.com", name="Canton Nodes Primary", priority=1),
        NodeConfig(url="https://scan.global.canton.network.sync.global", name="Global Synchronizer", priority=2),
    ]


class AnalyticsConfig(BaseSettings):
    """Configuration for the Canton Network analytics data layer."""

    # Upstream nodes
    nodes: List[NodeConfig] = Field(default_factory=_default_nodes, description="Upstream Scan API nodes")
    user_agent: str = Field(default="canton-analytics/1.0", description="User-Agent sent upstream")

    # Client resilience
    cache_ttl_ms: int = Field(default=120_000, ge=0, description="GET response cache TTL in milliseconds")
    max_retries: int = Field(default=3, ge=1, description="Attempts per logical request")
    rate_limit_wait_ceiling_ms: int = Field(default=60_000, ge=0, description="Longest rate-limit wait before failing over")
    node_error_threshold: int = Field(default=5, ge=1, description="Consecutive errors before a node is skipped")
    node_cooldown_ms: int = Field(default=60_000, ge=0, description="Cooldown before a skipped node is re-admitted")
    request_timeout_seconds: float = Field(default=30.0, gt=0, description="Per-attempt request timeout")

    # Updates pagination
    updates_page_size: int = Field(default=500, ge=1, description="Updates requested per page")
    updates_max_pages: int = Field(default=25, ge=1, description="Hard ceiling on pages per scan")
    updates_page_delay_ms: int = Field(default=400, ge=0, description="Delay between update pages")

    # Network constants
    rounds_per_day: int = Field(default=144, gt=0, description="Mining rounds per day")

    # Logging Settings
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Log format (json|text)")
    log_file: Optional[str] = Field(default=None, description="Log file path")

    # API Settings
    api_host: str = Field(default="0.0.0.0", description="API server host")
    api_port: int = Field(default=8000, description="API server port")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        env_prefix = "CANTON_"

    @validator('nodes')
    def validate_nodes(cls, v):
        """At least one upstream node is required."""
        if not v:
            raise ValueError("At least one upstream node must be configured")
        return v

    @property
    def cache_ttl_seconds(self) -> float:
        return self.cache_ttl_ms / 1000

    @property
    def rate_limit_wait_ceiling_seconds(self) -> float:
        return self.rate_limit_wait_ceiling_ms / 1000

    @property
    def node_cooldown_seconds(self) -> float:
        return self.node_cooldown_ms / 1000

    @property
    def updates_page_delay_seconds(self) -> float:
        return self.updates_page_delay_ms / 1000
