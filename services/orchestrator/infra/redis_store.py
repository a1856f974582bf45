"""
Redis document store for workflows and runs.
"""

import logging
import os
from typing import Callable, List, Optional
import redis
from redis.exceptions import WatchError
from shared.constants import DEFAULT_REDIS_URL, REDIS_KEY_TTL_SECONDS, MAX_CAS_ATTEMPTS, RUN_LIST_LIMIT
from shared.exceptions import ConcurrentUpdateError, RunNotFoundError, WorkflowNotFoundError
from shared.types import Workflow, WorkflowRun

RunMutation = Callable[[WorkflowRun], Optional[WorkflowRun]]


class RedisStore:
    """Stores workflows and runs as JSON documents keyed by id"""

    def __init__(self, redis_url: Optional[str] = None, client=None):
        if client is None:
            url = redis_url or os.getenv("REDIS_URL", DEFAULT_REDIS_URL)
            client = redis.Redis.from_url(url, decode_responses=False)
        self.client = client

    def get_client(self):
        return self.client

    @staticmethod
    def _workflow_key(workflow_id: str) -> str:
        return f"workflow:{workflow_id}"

    @staticmethod
    def _workflow_runs_key(workflow_id: str) -> str:
        return f"workflow:{workflow_id}:runs"

    @staticmethod
    def _run_key(run_id: str) -> str:
        return f"run:{run_id}"

    @staticmethod
    def _service_key(service_id: str) -> str:
        return f"service:{service_id}:run"

    def save_workflow(self, workflow: Workflow) -> None:
        self.client.set(self._workflow_key(workflow.id), workflow.model_dump_json())

    def get_workflow(self, workflow_id: str) -> Workflow:
        data = self.client.get(self._workflow_key(workflow_id))
        if not data:
            raise WorkflowNotFoundError(f"Workflow {workflow_id} not found", workflow_id=workflow_id)
        return Workflow.model_validate_json(data)

    def create_run(self, run: WorkflowRun) -> None:
        pipe = self.client.pipeline()
        pipe.set(self._run_key(run.id), run.model_dump_json(), ex=REDIS_KEY_TTL_SECONDS)
        pipe.zadd(self._workflow_runs_key(run.workflow_id), {run.id: run.started_at.timestamp()})
        pipe.execute()

    def get_run(self, run_id: str) -> WorkflowRun:
        data = self.client.get(self._run_key(run_id))
        if not data:
            raise RunNotFoundError(f"Run {run_id} not found", run_id=run_id)
        return WorkflowRun.model_validate_json(data)

    def list_runs(self, workflow_id: str, limit: int = RUN_LIST_LIMIT) -> List[WorkflowRun]:
        """Newest runs first; runs whose documents have expired are skipped"""
        run_ids = self.client.zrevrange(self._workflow_runs_key(workflow_id), 0, limit - 1)
        if not run_ids:
            return []

        keys = [self._run_key(rid.decode('utf-8')) for rid in run_ids]
        return [
            WorkflowRun.model_validate_json(data)
            for data in self.client.mget(keys)
            if data
        ]

    def find_run_id_by_service(self, service_id: str) -> Optional[str]:
        run_id = self.client.get(self._service_key(service_id))
        return run_id.decode('utf-8') if run_id else None

    def update_run(self, run_id: str, mutate: RunMutation) -> WorkflowRun:
        """Optimistic compare-and-swap on the run document.

        `mutate` receives a private copy of the current run and returns the
        run to persist, or None to leave the document untouched. It may be
        called more than once when a concurrent writer wins the race, so it
        must derive everything from the run it is given.
        """
        key = self._run_key(run_id)

        for attempt in range(1, MAX_CAS_ATTEMPTS + 1):
            with self.client.pipeline() as pipe:
                try:
                    pipe.watch(key)
                    data = pipe.get(key)
                    if not data:
                        raise RunNotFoundError(f"Run {run_id} not found", run_id=run_id)

                    current = WorkflowRun.model_validate_json(data)
                    updated = mutate(current.model_copy(deep=True))
                    if updated is None:
                        return current

                    updated.version = current.version + 1
                    new_mappings = [
                        m for m in updated.service_mappings
                        if current.mapping_for_node(m.node_id) is None
                    ]

                    pipe.multi()
                    pipe.set(key, updated.model_dump_json(), ex=REDIS_KEY_TTL_SECONDS)
                    for mapping in new_mappings:
                        pipe.set(self._service_key(mapping.service_id), run_id, ex=REDIS_KEY_TTL_SECONDS)
                    pipe.execute()
                    return updated

                except WatchError:
                    logging.info(
                        "Concurrent run update detected, retrying",
                        extra={"run_id": run_id, "attempt": attempt}
                    )

        raise ConcurrentUpdateError(
            f"Run {run_id} could not be updated after {MAX_CAS_ATTEMPTS} attempts",
            run_id=run_id
        )
