"""
Node API schemas.
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from src.scheduler.entities import Node


class TimeRestriction(BaseModel):
    """A weekly availability window, evaluated in UTC."""

    day_of_week: str = Field(
        ...,
        description="Day name (e.g. 'Monday'), 'Weekdays', 'Weekends' or 'All'",
    )
    start_time: str = Field(..., description="HH:MM, inclusive")
    end_time: str = Field(..., description="HH:MM, inclusive; earlier than start wraps past midnight")


class NodeRegisterRequest(BaseModel):
    """Registration payload sent by a node agent."""

    hostname: str
    capabilities: List[str] = Field(..., description="Job types this node can run")
    resource_info: dict = Field(default_factory=dict, description="CPU, memory, GPU, etc.")
    node_id: Optional[str] = Field(
        default=None,
        description="Existing node ID to re-register; a new ID is generated when omitted",
    )
    ip_address: Optional[str] = None
    version: Optional[str] = None
    time_restrictions: Optional[List[TimeRestriction]] = None


class NodeHeartbeatRequest(BaseModel):
    """Liveness signal from a node."""

    status: str = Field(default="ONLINE", description="ONLINE/BUSY/IDLE/OFFLINE/ERROR/MAINTENANCE")
    current_load: Optional[dict] = None


class NodeResponse(BaseModel):
    """Response representing a Node."""

    node_id: str
    hostname: str
    capabilities: List[str] = Field(default_factory=list)
    resource_info: dict = Field(default_factory=dict)
    status: str
    ip_address: Optional[str] = None
    version: Optional[str] = None
    current_load: Optional[dict] = None
    time_restrictions: Optional[List[dict]] = None
    last_heartbeat_at: Optional[str] = None
    last_job_completed_at: Optional[str] = None
    total_jobs_processed: int = 0
    failed_jobs: int = 0
    average_processing_time_seconds: float = 0.0
    created_at: str
    updated_at: str

    @classmethod
    def from_node(cls, node: Node) -> "NodeResponse":
        return cls(**node.to_dict())


class NodeListResponse(BaseModel):
    """Response for node list endpoint."""

    nodes: List[NodeResponse] = Field(default_factory=list)
    total: int
    limit: int
    offset: int
