"""Template resolution for {{ run.id }} / {{ nodes["<id>"].service_id }} syntax using Jinja2."""

from typing import Dict, Any, List
from jinja2 import BaseLoader, StrictUndefined, TemplateError
from jinja2.sandbox import SandboxedEnvironment
from shared.exceptions import DeploymentFailedError
from shared.types import Variable, WorkflowRun


class TemplateResolutionError(DeploymentFailedError):
    pass


class TemplateResolver:

    def __init__(self):
        # Sandboxed so variable values can't reach into Python internals
        self.jinja_env = SandboxedEnvironment(
            loader=BaseLoader(),
            autoescape=False,
            undefined=StrictUndefined,
        )

    def build_context(self, run: WorkflowRun) -> Dict[str, Any]:
        nodes = {}
        for mapping in run.service_mappings:
            node = run.get_node(mapping.node_id)
            nodes[mapping.node_id] = {
                "service_id": mapping.service_id,
                "name": node.name if node else mapping.node_id,
            }

        return {
            "run": {
                "id": run.id,
                "workflow_id": run.workflow_id,
                "started_at": run.started_at.isoformat(),
            },
            "nodes": nodes,
        }

    def resolve(self, run: WorkflowRun, variables: List[Variable]) -> List[Variable]:
        """Renders templated variable values against the run's current context"""
        context = self.build_context(run)
        resolved = []

        for variable in variables:
            value = variable.value
            if '{{' in value and '}}' in value:
                try:
                    value = self.jinja_env.from_string(value).render(context)
                except TemplateError as e:
                    raise TemplateResolutionError(
                        f"Template resolution failed for variable '{variable.name}': {str(e)}",
                        run_id=run.id,
                        variable=variable.name
                    )
                except Exception as e:
                    # Expressions like {{ 1/0 }} fail inside render with plain Python errors
                    raise TemplateResolutionError(
                        f"Template evaluation failed for variable '{variable.name}': {type(e).__name__}: {str(e)}",
                        run_id=run.id,
                        variable=variable.name,
                        error_class=type(e).__name__
                    )
            resolved.append(Variable(name=variable.name, value=value))

        return resolved
