"""
Shared fixtures: an in-memory run store and a recording deployment client.
"""

import threading
from typing import Dict, List, Optional

import pytest

from services.orchestrator.engine.orchestrator import RunOrchestrator
from shared.exceptions import DeploymentFailedError, RunNotFoundError, WorkflowNotFoundError
from shared.types import Workflow, WorkflowRun


class InMemoryStore:
    """Same contract as RedisStore; update_run is serialized by a lock"""

    def __init__(self):
        self.workflows: Dict[str, str] = {}
        self.runs: Dict[str, str] = {}
        self.services: Dict[str, str] = {}
        self.lock = threading.Lock()

    def save_workflow(self, workflow: Workflow) -> None:
        self.workflows[workflow.id] = workflow.model_dump_json()

    def get_workflow(self, workflow_id: str) -> Workflow:
        if workflow_id not in self.workflows:
            raise WorkflowNotFoundError(f"Workflow {workflow_id} not found")
        return Workflow.model_validate_json(self.workflows[workflow_id])

    def create_run(self, run: WorkflowRun) -> None:
        self.runs[run.id] = run.model_dump_json()

    def get_run(self, run_id: str) -> WorkflowRun:
        if run_id not in self.runs:
            raise RunNotFoundError(f"Run {run_id} not found", run_id=run_id)
        return WorkflowRun.model_validate_json(self.runs[run_id])

    def list_runs(self, workflow_id: str, limit: int = 50) -> List[WorkflowRun]:
        runs = [WorkflowRun.model_validate_json(r) for r in self.runs.values()]
        runs = [r for r in runs if r.workflow_id == workflow_id]
        return sorted(runs, key=lambda r: r.started_at, reverse=True)[:limit]

    def find_run_id_by_service(self, service_id: str) -> Optional[str]:
        return self.services.get(service_id)

    def update_run(self, run_id, mutate):
        with self.lock:
            current = self.get_run(run_id)
            updated = mutate(current.model_copy(deep=True))
            if updated is None:
                return current
            updated.version = current.version + 1
            for mapping in updated.service_mappings:
                self.services.setdefault(mapping.service_id, run_id)
            self.runs[run_id] = updated.model_dump_json()
            return updated


class FakeDeployer:
    """Records every call; services named after a node in `failing` raise"""

    def __init__(self):
        self.created: List[dict] = []
        self.deleted: List[str] = []
        self.webhooks: List[dict] = []
        self.failing = set()
        self.retryable = False
        self.lock = threading.Lock()

    def create_service(self, api_key, project_id, name, container_image, variables):
        node_name = name.split(" at ")[0]
        with self.lock:
            if node_name in self.failing:
                raise DeploymentFailedError(f"Railway refused {name}", is_retryable=self.retryable)
            service_id = f"svc-{node_name}-{len(self.created) + 1}"
            self.created.append({
                "api_key": api_key,
                "project_id": project_id,
                "name": name,
                "node_name": node_name,
                "image": container_image,
                "variables": {v.name: v.value for v in variables},
                "service_id": service_id,
            })
        return service_id

    def delete_service(self, api_key, service_id):
        self.deleted.append(service_id)

    def create_project_webhook(self, api_key, project_id, url):
        self.webhooks.append({"project_id": project_id, "url": url})
        return {"id": "hook-1", "lastStatus": None}

    def deployed_names(self) -> List[str]:
        return [c["node_name"] for c in self.created]


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def deployer():
    return FakeDeployer()


@pytest.fixture
def orchestrator(store, deployer):
    return RunOrchestrator(store, deployer)
