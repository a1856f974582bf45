"""Shared types for the API and the run engine."""

from datetime import datetime
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator

from shared.utils import as_utc, utcnow


class NodeStatus(str, Enum):
    DEPLOYING = "DEPLOYING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in NODE_TERMINAL_STATES


class RunStatus(str, Enum):
    PREPARING = "PREPARING"
    RUNNING = "RUNNING"
    FAILED = "FAILED"
    COMPLETED = "COMPLETED"

    @property
    def is_terminal(self) -> bool:
        return self in RUN_TERMINAL_STATES


NODE_TERMINAL_STATES = frozenset({NodeStatus.SUCCESS, NodeStatus.FAILED})
RUN_TERMINAL_STATES = frozenset({RunStatus.FAILED, RunStatus.COMPLETED})


class Variable(BaseModel):
    name: str
    value: str = ""


class WorkflowNode(BaseModel):
    id: str
    name: str
    container_image: Optional[str] = None
    variables: List[Variable] = Field(default_factory=list)
    is_root: bool = False
    is_input: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class WorkflowEdge(BaseModel):
    id: str
    source: str
    target: str


class Workflow(BaseModel):
    id: str
    name: str
    project_id: str
    api_key: str
    nodes: List[WorkflowNode] = Field(default_factory=list)
    edges: List[WorkflowEdge] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class NodeStatusEvent(BaseModel):
    node_id: str
    status: NodeStatus
    recorded_at: datetime

    @field_validator("recorded_at")
    @classmethod
    def normalize_recorded_at(cls, value: datetime) -> datetime:
        return as_utc(value)


class ServiceMapping(BaseModel):
    node_id: str
    service_id: str


class DeploymentEvent(BaseModel):
    service_id: str
    status: NodeStatus
    timestamp: datetime = Field(default_factory=utcnow)

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, value: datetime) -> datetime:
        return as_utc(value)


class WorkflowRun(BaseModel):
    id: str
    workflow_id: str
    started_at: datetime
    updated_at: datetime = Field(default_factory=utcnow)
    status: RunStatus = RunStatus.PREPARING
    nodes: List[WorkflowNode]
    edges: List[WorkflowEdge]
    node_statuses: List[NodeStatusEvent] = Field(default_factory=list)
    service_mappings: List[ServiceMapping] = Field(default_factory=list)
    claimed_node_ids: List[str] = Field(default_factory=list)
    version: int = 0
    error: Optional[str] = None

    def get_node(self, node_id: str) -> Optional[WorkflowNode]:
        return next((n for n in self.nodes if n.id == node_id), None)

    def mapping_for_service(self, service_id: str) -> Optional[ServiceMapping]:
        return next((m for m in self.service_mappings if m.service_id == service_id), None)

    def mapping_for_node(self, node_id: str) -> Optional[ServiceMapping]:
        return next((m for m in self.service_mappings if m.node_id == node_id), None)

    def events_for(self, node_id: str) -> List[NodeStatusEvent]:
        return [e for e in self.node_statuses if e.node_id == node_id]

    def has_succeeded(self, node_id: str) -> bool:
        return any(e.status == NodeStatus.SUCCESS for e in self.events_for(node_id))

    def is_deployed(self, node_id: str) -> bool:
        """A node counts as deployed once it has an event, a mapping or a pending claim"""
        return (
            node_id in self.claimed_node_ids
            or self.mapping_for_node(node_id) is not None
            or bool(self.events_for(node_id))
        )
