"""Run API routes."""

from fastapi import APIRouter, Depends, status
from services.api.dependencies import get_orchestrator, get_store
from services.api.domain.models import RunListResponse, RunView
from services.api.domain.projection import project_run
from shared.constants import RUN_LIST_LIMIT


router = APIRouter()


@router.post("/workflows/{workflow_id}/runs", response_model=RunView, status_code=status.HTTP_201_CREATED)
def start_run(workflow_id: str, orchestrator=Depends(get_orchestrator)):
    return project_run(orchestrator.start_run(workflow_id))


@router.get("/workflows/{workflow_id}/runs", response_model=RunListResponse)
async def list_runs(workflow_id: str, store=Depends(get_store)):
    store.get_workflow(workflow_id)
    runs = store.list_runs(workflow_id, limit=RUN_LIST_LIMIT)
    return RunListResponse(total=len(runs), runs=[project_run(r) for r in runs])


@router.get("/runs/{run_id}", response_model=RunView)
async def get_run(run_id: str, store=Depends(get_store)):
    return project_run(store.get_run(run_id))
