"""API request/response models."""

from datetime import datetime
from typing import Optional, List, Any
from pydantic import BaseModel, Field, field_validator, model_validator
from shared.types import NodeStatus, RunStatus, Variable, WorkflowEdge, WorkflowNode
from shared.utils import as_utc, utcnow


class CreateWorkflowRequest(BaseModel):
    """Request body for registering a workflow graph"""
    name: str = Field(min_length=1)
    project_id: str = Field(min_length=1)
    api_key: str = Field(min_length=1)
    nodes: Optional[List[WorkflowNode]] = None
    edges: Optional[List[WorkflowEdge]] = None


class WorkflowView(BaseModel):
    id: str
    name: str
    project_id: str
    created_at: datetime
    updated_at: datetime
    is_valid_dag: bool
    is_runnable: bool
    validation_error: Optional[str] = None
    nodes: List[WorkflowNode]
    edges: List[WorkflowEdge]


class RailwayWebhook(BaseModel):
    """Inbound deployment webhook, flat or in Railway's nested shape"""
    service_id: str
    status: str
    timestamp: datetime = Field(default_factory=utcnow)

    @model_validator(mode="before")
    @classmethod
    def flatten_payload(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data

        payload = dict(data)
        if "service_id" not in payload:
            service = payload.get("service")
            if "serviceId" in payload:
                payload["service_id"] = payload["serviceId"]
            elif isinstance(service, dict) and service.get("id"):
                payload["service_id"] = service["id"]
        if payload.get("timestamp") is None:
            payload.pop("timestamp", None)
        return payload

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, value: datetime) -> datetime:
        # Providers send both offset-less and Z-suffixed timestamps
        return as_utc(value)


class WebhookResponse(BaseModel):
    outcome: str
    run_id: Optional[str] = None
    run_status: Optional[RunStatus] = None
    deployed_node_ids: List[str] = Field(default_factory=list)


class StatusEventView(BaseModel):
    node_id: str
    node_name: str
    status: NodeStatus
    status_label: str
    recorded_at: datetime
    service_id: Optional[str] = None


class RunNodeView(BaseModel):
    id: str
    name: str
    container_image: Optional[str] = None
    variables: List[Variable]
    is_root: bool
    is_input: bool
    service_id: Optional[str] = None
    latest_status: Optional[NodeStatus] = None
    status_label: str
    history: List[StatusEventView]


class RunView(BaseModel):
    id: str
    workflow_id: str
    started_at: datetime
    updated_at: datetime
    status: RunStatus
    status_label: str
    error: Optional[str] = None
    nodes: List[RunNodeView]
    edges: List[WorkflowEdge]
    history: List[StatusEventView]
    event_count: int


class RunListResponse(BaseModel):
    total: int
    runs: List[RunView]
