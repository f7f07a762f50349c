"""
Nodes router for worker node registration and liveness.

- POST /nodes/register - Register or re-register a node
- POST /nodes/{node_id}/heartbeat - Liveness signal
- GET /nodes - List nodes
- GET /nodes/available - Nodes able to take work now
- GET /nodes/{node_id} - Get node details
"""

from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query

from src.scheduler.entities import NodeRegistration, NodeStatus

from ..schemas.nodes import (
    NodeRegisterRequest,
    NodeHeartbeatRequest,
    NodeResponse,
    NodeListResponse,
)
from .._errors import to_http_exception
from .._scheduler_state import get_scheduler_service


router = APIRouter()


@router.post("/register", response_model=NodeResponse, status_code=201)
def register_node(request: NodeRegisterRequest):
    """Register a node; the node is forced ONLINE with a fresh heartbeat."""
    service = get_scheduler_service()

    registration = NodeRegistration(
        hostname=request.hostname,
        capabilities=request.capabilities,
        resource_info=request.resource_info,
        node_id=request.node_id,
        ip_address=request.ip_address,
        version=request.version,
        time_restrictions=(
            [window.model_dump() for window in request.time_restrictions]
            if request.time_restrictions is not None
            else None
        ),
    )

    try:
        node = service.register_node(registration)
    except Exception as e:
        raise to_http_exception(e, "register node")

    return NodeResponse.from_node(node)


@router.post("/{node_id}/heartbeat", response_model=NodeResponse)
def heartbeat(node_id: str, request: NodeHeartbeatRequest = NodeHeartbeatRequest()):
    """Record a heartbeat. Returns 404 for unregistered nodes."""
    service = get_scheduler_service()

    try:
        status = NodeStatus(request.status.upper())
    except ValueError:
        raise HTTPException(
            status_code=422,
            detail=f"Invalid node status: {request.status}. "
                   f"Valid: {', '.join(s.value for s in NodeStatus)}",
        )

    try:
        node = service.heartbeat(node_id, status, request.current_load)
    except Exception as e:
        raise to_http_exception(e, "record heartbeat")

    return NodeResponse.from_node(node)


@router.get("", response_model=NodeListResponse)
def list_nodes(
    status: Optional[List[NodeStatus]] = Query(default=None, description="Filter by status"),
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
):
    """List registered nodes."""
    service = get_scheduler_service()

    try:
        nodes, total = service.list_nodes(statuses=status, limit=limit, offset=offset)
    except Exception as e:
        raise to_http_exception(e, "list nodes")

    return NodeListResponse(
        nodes=[NodeResponse.from_node(node) for node in nodes],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/available", response_model=List[NodeResponse])
def list_available_nodes(
    capability: Optional[List[str]] = Query(default=None, description="Required capabilities"),
):
    """ONLINE/IDLE nodes declaring every requested capability."""
    service = get_scheduler_service()

    try:
        nodes = service.list_available_nodes(capability or [])
    except Exception as e:
        raise to_http_exception(e, "list available nodes")

    return [NodeResponse.from_node(node) for node in nodes]


@router.get("/{node_id}", response_model=NodeResponse)
def get_node(node_id: str):
    """Get node details."""
    service = get_scheduler_service()

    try:
        node = service.get_node(node_id)
    except Exception as e:
        raise to_http_exception(e, "get node")

    return NodeResponse.from_node(node)
