"""Run engine: materializes workflow runs and advances them from deployment events."""

import contextvars
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple
from services.orchestrator.engine.template import TemplateResolver
from services.orchestrator.engine.validation import validate_graph
from shared.constants import MAX_CONCURRENT_DEPLOYMENTS
from shared.logging_config import bind_log_context
from shared.exceptions import (
    DeploymentFailedError,
    NotRunnableError,
    UnknownServiceError,
    WorkflowNotFoundError
)
from shared.types import (
    DeploymentEvent,
    NodeStatus,
    NodeStatusEvent,
    RunStatus,
    ServiceMapping,
    Workflow,
    WorkflowNode,
    WorkflowRun
)
from shared.utils import generate_run_id, generate_service_name, utcnow


class EventOutcome(str, Enum):
    APPLIED = "APPLIED"
    DUPLICATE = "DUPLICATE"
    RUN_ALREADY_TERMINAL = "RUN_ALREADY_TERMINAL"
    IGNORED_STATUS = "IGNORED_STATUS"


@dataclass
class EventResult:
    run: WorkflowRun
    outcome: EventOutcome
    deployed_node_ids: List[str] = field(default_factory=list)


def next_eligible_nodes(run: WorkflowRun, node_id: str) -> List[WorkflowNode]:
    """Children of node_id that haven't been deployed and whose parents have all succeeded"""
    candidate_ids: List[str] = []
    for edge in run.edges:
        if edge.source == node_id and edge.target not in candidate_ids:
            candidate_ids.append(edge.target)

    eligible = []
    for candidate_id in candidate_ids:
        if run.is_deployed(candidate_id):
            continue

        parents = [e.source for e in run.edges if e.target == candidate_id]
        if all(run.has_succeeded(parent_id) for parent_id in parents):
            node = run.get_node(candidate_id)
            if node is not None:
                eligible.append(node)

    return eligible


def next_run_status(node: WorkflowNode, status: NodeStatus) -> RunStatus:
    """Run status after an event that unlocked no further nodes"""
    if status == NodeStatus.FAILED:
        return RunStatus.FAILED
    if status == NodeStatus.SUCCESS and node.is_root:
        return RunStatus.COMPLETED
    return RunStatus.RUNNING


class RunOrchestrator:

    def __init__(self, store, deployer, max_concurrent_deployments: int = MAX_CONCURRENT_DEPLOYMENTS):
        self.store = store
        self.deployer = deployer
        self.max_concurrent_deployments = max_concurrent_deployments
        self.template_resolver = TemplateResolver()

    def start_run(self, workflow_id: str) -> WorkflowRun:
        workflow = self.store.get_workflow(workflow_id)

        validate_graph(workflow.nodes, workflow.edges)

        missing_images = [n.id for n in workflow.nodes if not n.container_image]
        if missing_images:
            raise NotRunnableError(
                "Workflow can't be run because not all tasks have container images",
                workflow_id=workflow_id,
                nodes=missing_images
            )

        started_at = utcnow()
        run = WorkflowRun(
            id=generate_run_id(),
            workflow_id=workflow.id,
            started_at=started_at,
            updated_at=started_at,
            status=RunStatus.PREPARING,
            nodes=[n.model_copy(deep=True) for n in workflow.nodes],
            edges=[e.model_copy(deep=True) for e in workflow.edges],
        )
        bind_log_context(workflow_id=workflow.id, run_id=run.id)
        self.store.create_run(run)

        input_nodes = [n for n in run.nodes if n.is_input]
        logging.info("Starting workflow run", extra={
            "run_id": run.id,
            "workflow_id": workflow.id,
            "input_nodes": [n.id for n in input_nodes]
        })

        deployed, failures = self._deploy_nodes(workflow, run, input_nodes)

        if failures:
            self._rollback_services(workflow, run, deployed)
            error = self._deployment_error(run, failures)

            def mark_failed(current: WorkflowRun) -> WorkflowRun:
                self._record_mappings(current, deployed)
                current.status = RunStatus.FAILED
                current.error = error.message
                current.updated_at = utcnow()
                return current

            self.store.update_run(run.id, mark_failed)
            raise error

        def mark_running(current: WorkflowRun) -> WorkflowRun:
            self._record_mappings(current, deployed)
            if current.status == RunStatus.PREPARING:
                current.status = RunStatus.RUNNING
            current.updated_at = utcnow()
            return current

        return self.store.update_run(run.id, mark_running)

    def handle_deployment_event(self, workflow_id: str, event: DeploymentEvent) -> EventResult:
        """Applies one deployment status event to its run and deploys any nodes it unlocks"""
        bind_log_context(workflow_id=workflow_id, service_id=event.service_id)
        run_id = self.store.find_run_id_by_service(event.service_id)
        if run_id is None:
            logging.error("Deployment event for unknown service", extra={
                "workflow_id": workflow_id,
                "service_id": event.service_id,
                "status": event.status.value
            })
            raise UnknownServiceError(
                f"No run is mapped to service {event.service_id}",
                workflow_id=workflow_id,
                service_id=event.service_id
            )

        bind_log_context(run_id=run_id)
        outcome = EventOutcome.APPLIED
        eligible: List[WorkflowNode] = []
        event_node_id: Optional[str] = None

        def apply_event(run: WorkflowRun) -> Optional[WorkflowRun]:
            nonlocal outcome, eligible, event_node_id
            eligible = []

            # Late or redelivered webhooks must not resurrect a finished run
            if run.status.is_terminal:
                outcome = EventOutcome.RUN_ALREADY_TERMINAL
                return None

            mapping = run.mapping_for_service(event.service_id)
            node = run.get_node(mapping.node_id) if mapping else None
            if run.workflow_id != workflow_id or node is None:
                raise UnknownServiceError(
                    f"Service {event.service_id} is not mapped to a node of workflow {workflow_id}",
                    run_id=run.id,
                    service_id=event.service_id
                )
            event_node_id = node.id

            if any(e.status.is_terminal for e in run.events_for(node.id)):
                outcome = EventOutcome.DUPLICATE
                # A repeated SUCCESS re-checks readiness so failed downstream deployments get retried
                if event.status != NodeStatus.SUCCESS or not run.has_succeeded(node.id):
                    return None
            else:
                outcome = EventOutcome.APPLIED
                run.node_statuses.append(NodeStatusEvent(
                    node_id=node.id,
                    status=event.status,
                    recorded_at=event.timestamp
                ))

            if event.status == NodeStatus.SUCCESS:
                eligible = next_eligible_nodes(run, node.id)

            if eligible:
                run.claimed_node_ids.extend(n.id for n in eligible)
                run.status = RunStatus.RUNNING
            elif outcome == EventOutcome.DUPLICATE:
                return None
            else:
                run.status = next_run_status(node, event.status)

            run.updated_at = utcnow()
            return run

        run = self.store.update_run(run_id, apply_event)

        logging.info("Deployment event processed", extra={
            "run_id": run.id,
            "node_id": event_node_id,
            "status": event.status.value,
            "outcome": outcome.value,
            "run_status": run.status.value,
            "eligible_nodes": [n.id for n in eligible]
        })

        if not eligible:
            return EventResult(run=run, outcome=outcome)

        return self._deploy_claimed(run, eligible, outcome)

    def _deploy_claimed(self, run: WorkflowRun, nodes: List[WorkflowNode], outcome: EventOutcome) -> EventResult:
        """Deploys nodes claimed by an event, then records mappings and releases the claims"""
        try:
            workflow = self.store.get_workflow(run.workflow_id)
        except WorkflowNotFoundError as e:
            deployed: Dict[str, str] = {}
            failures = {n.id: DeploymentFailedError(e.message, run_id=run.id) for n in nodes}
        else:
            deployed, failures = self._deploy_nodes(workflow, run, nodes)

        attempted = {n.id for n in nodes}

        def record_deployments(current: WorkflowRun) -> WorkflowRun:
            self._record_mappings(current, deployed)
            current.claimed_node_ids = [nid for nid in current.claimed_node_ids if nid not in attempted]
            current.updated_at = utcnow()
            return current

        run = self.store.update_run(run.id, record_deployments)

        if failures:
            raise self._deployment_error(run, failures)

        return EventResult(run=run, outcome=outcome, deployed_node_ids=list(deployed))

    def _deploy_nodes(
        self,
        workflow: Workflow,
        run: WorkflowRun,
        nodes: List[WorkflowNode]
    ) -> Tuple[Dict[str, str], Dict[str, DeploymentFailedError]]:
        deployed: Dict[str, str] = {}
        failures: Dict[str, DeploymentFailedError] = {}
        if not nodes:
            return deployed, failures

        workers = min(len(nodes), self.max_concurrent_deployments)
        with ThreadPoolExecutor(max_workers=workers) as pool:
            # Each worker gets a copy of the caller's context so its logs carry the bound run ids
            futures = {
                pool.submit(contextvars.copy_context().run, self._deploy_node, workflow, run, node): node
                for node in nodes
            }
            for future, node in futures.items():
                try:
                    deployed[node.id] = future.result()
                except DeploymentFailedError as e:
                    logging.error("Node deployment failed", extra={
                        "run_id": run.id,
                        "node_id": node.id,
                        "error": e.message,
                        "is_retryable": e.is_retryable
                    })
                    failures[node.id] = e
                except Exception as e:
                    logging.exception("Unexpected error deploying node", extra={
                        "run_id": run.id,
                        "node_id": node.id
                    })
                    failures[node.id] = DeploymentFailedError(
                        f"Unexpected error deploying node {node.id}: {type(e).__name__}: {str(e)}",
                        run_id=run.id,
                        node_id=node.id,
                        error_class=type(e).__name__
                    )

        return deployed, failures

    def _deploy_node(self, workflow: Workflow, run: WorkflowRun, node: WorkflowNode) -> str:
        variables = self.template_resolver.resolve(run, node.variables)
        service_name = generate_service_name(node.name, run.started_at)

        logging.info("Deploying node", extra={
            "run_id": run.id,
            "node_id": node.id,
            "service_name": service_name,
            "container_image": node.container_image
        })

        return self.deployer.create_service(
            workflow.api_key,
            workflow.project_id,
            service_name,
            node.container_image,
            variables
        )

    def _rollback_services(self, workflow: Workflow, run: WorkflowRun, deployed: Dict[str, str]) -> None:
        """Best-effort removal of services created for a run that failed to start"""
        for node_id, service_id in deployed.items():
            try:
                self.deployer.delete_service(workflow.api_key, service_id)
            except DeploymentFailedError as e:
                logging.error("Failed to roll back service", extra={
                    "run_id": run.id,
                    "node_id": node_id,
                    "service_id": service_id,
                    "error": e.message
                })

    @staticmethod
    def _record_mappings(run: WorkflowRun, deployed: Dict[str, str]) -> None:
        for node_id, service_id in deployed.items():
            if run.mapping_for_node(node_id) is None:
                run.service_mappings.append(ServiceMapping(node_id=node_id, service_id=service_id))

    @staticmethod
    def _deployment_error(run: WorkflowRun, failures: Dict[str, DeploymentFailedError]) -> DeploymentFailedError:
        failed_nodes = sorted(failures)
        reasons = "; ".join(f"{nid}: {failures[nid].message}" for nid in failed_nodes)
        return DeploymentFailedError(
            f"Deployment failed for {len(failed_nodes)} node(s): {reasons}",
            run_id=run.id,
            is_retryable=any(f.is_retryable for f in failures.values()),
            failed_nodes=failed_nodes
        )
