"""Read-side shaping of runs and workflows for display."""

from typing import Dict, List, Optional
from services.api.domain.models import RunNodeView, RunView, StatusEventView, WorkflowView
from services.orchestrator.engine.validation import is_runnable, validate_graph
from shared.constants import DEPLOYING_LABEL, NOT_STARTED_LABEL
from shared.exceptions import GraphInvalidError
from shared.types import NodeStatus, NodeStatusEvent, Workflow, WorkflowRun


def status_label(status: Optional[NodeStatus]) -> str:
    if status is None:
        return NOT_STARTED_LABEL
    if status == NodeStatus.DEPLOYING:
        return DEPLOYING_LABEL
    return status.value


def newest_first(events: List[NodeStatusEvent]) -> List[NodeStatusEvent]:
    return sorted(events, key=lambda e: e.recorded_at, reverse=True)


def project_run(run: WorkflowRun) -> RunView:
    """Builds the display view of a run without touching the run itself"""
    names = {n.id: n.name for n in run.nodes}
    services: Dict[str, str] = {m.node_id: m.service_id for m in run.service_mappings}

    def event_view(event: NodeStatusEvent) -> StatusEventView:
        return StatusEventView(
            node_id=event.node_id,
            node_name=names.get(event.node_id, event.node_id),
            status=event.status,
            status_label=status_label(event.status),
            recorded_at=event.recorded_at,
            service_id=services.get(event.node_id),
        )

    history = [event_view(e) for e in newest_first(run.node_statuses)]

    nodes = []
    for node in run.nodes:
        node_history = [h for h in history if h.node_id == node.id]
        latest = node_history[0].status if node_history else None
        nodes.append(RunNodeView(
            id=node.id,
            name=node.name,
            container_image=node.container_image,
            variables=[v.model_copy() for v in node.variables],
            is_root=node.is_root,
            is_input=node.is_input,
            service_id=services.get(node.id),
            latest_status=latest,
            status_label=status_label(latest),
            history=node_history,
        ))

    return RunView(
        id=run.id,
        workflow_id=run.workflow_id,
        started_at=run.started_at,
        updated_at=run.updated_at,
        status=run.status,
        status_label=run.status.value,
        error=run.error,
        nodes=nodes,
        edges=[e.model_copy() for e in run.edges],
        history=history,
        event_count=len(history),
    )


def project_workflow(workflow: Workflow) -> WorkflowView:
    validation_error = None
    try:
        validate_graph(workflow.nodes, workflow.edges)
    except GraphInvalidError as e:
        validation_error = e.message

    return WorkflowView(
        id=workflow.id,
        name=workflow.name,
        project_id=workflow.project_id,
        created_at=workflow.created_at,
        updated_at=workflow.updated_at,
        is_valid_dag=validation_error is None,
        is_runnable=is_runnable(workflow.nodes),
        validation_error=validation_error,
        nodes=workflow.nodes,
        edges=workflow.edges,
    )
