"""Inbound deployment webhook routes."""

import logging
from fastapi import APIRouter, Depends
from services.api.dependencies import get_orchestrator
from services.api.domain.models import RailwayWebhook, WebhookResponse
from services.orchestrator.engine.orchestrator import EventOutcome
from shared.types import DeploymentEvent, NodeStatus


router = APIRouter()

HANDLED_STATUSES = {s.value for s in NodeStatus}


@router.post("/webhooks/railway/{workflow_id}", response_model=WebhookResponse)
def railway_webhook(workflow_id: str, payload: RailwayWebhook, orchestrator=Depends(get_orchestrator)):
    status = payload.status.upper()
    if status not in HANDLED_STATUSES:
        logging.info("Ignoring deployment webhook status", extra={
            "workflow_id": workflow_id,
            "service_id": payload.service_id,
            "status": payload.status
        })
        return WebhookResponse(outcome=EventOutcome.IGNORED_STATUS.value)

    event = DeploymentEvent(
        service_id=payload.service_id,
        status=NodeStatus(status),
        timestamp=payload.timestamp
    )
    result = orchestrator.handle_deployment_event(workflow_id, event)

    return WebhookResponse(
        outcome=result.outcome.value,
        run_id=result.run.id,
        run_status=result.run.status,
        deployed_node_ids=result.deployed_node_ids
    )
