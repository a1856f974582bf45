"""Workflow API routes."""

import logging
import os
from fastapi import APIRouter, Depends, status
from services.api.dependencies import get_deployer, get_store
from services.api.domain.models import CreateWorkflowRequest, WorkflowView
from services.api.domain.projection import project_workflow
from shared.constants import DEFAULT_INPUT_NODE_NAME, DEFAULT_ROOT_NODE_NAME
from shared.exceptions import DeploymentFailedError
from shared.types import Workflow, WorkflowEdge, WorkflowNode
from shared.utils import generate_edge_id, generate_node_id, generate_workflow_id


router = APIRouter()


def default_graph():
    """A new workflow starts as a single input task feeding the output task"""
    input_node = WorkflowNode(id=generate_node_id(), name=DEFAULT_INPUT_NODE_NAME, is_input=True)
    root_node = WorkflowNode(id=generate_node_id(), name=DEFAULT_ROOT_NODE_NAME, is_root=True)
    edge = WorkflowEdge(id=generate_edge_id(), source=input_node.id, target=root_node.id)
    return [root_node, input_node], [edge]


def register_webhook(deployer, workflow: Workflow) -> None:
    public_url = os.getenv("PUBLIC_URL")
    if not public_url:
        return

    webhook_url = f"{public_url.rstrip('/')}/webhooks/railway/{workflow.id}"
    try:
        deployer.create_project_webhook(workflow.api_key, workflow.project_id, webhook_url)
        logging.info("Railway webhook registered", extra={"workflow_id": workflow.id, "url": webhook_url})
    except DeploymentFailedError as e:
        logging.warning("Railway webhook registration failed", extra={
            "workflow_id": workflow.id,
            "error": e.message
        })


@router.post("/workflows", response_model=WorkflowView, status_code=status.HTTP_201_CREATED)
def create_workflow(
    request: CreateWorkflowRequest,
    store=Depends(get_store),
    deployer=Depends(get_deployer)
):
    if request.nodes is None:
        nodes, edges = default_graph()
    else:
        nodes, edges = request.nodes, request.edges or []

    workflow = Workflow(
        id=generate_workflow_id(),
        name=request.name,
        project_id=request.project_id,
        api_key=request.api_key,
        nodes=nodes,
        edges=edges,
    )
    store.save_workflow(workflow)
    logging.info("Workflow created", extra={"workflow_id": workflow.id, "nodes": len(nodes)})

    register_webhook(deployer, workflow)
    return project_workflow(workflow)


@router.get("/workflows/{workflow_id}", response_model=WorkflowView)
async def get_workflow(workflow_id: str, store=Depends(get_store)):
    return project_workflow(store.get_workflow(workflow_id))
