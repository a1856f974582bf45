"""
Railway GraphQL client used to deploy workflow nodes as services.
"""

import os
import logging
from typing import Dict, Any, List, Optional
import requests
from requests.exceptions import RequestException, Timeout, ConnectionError
from shared.constants import (
    DEFAULT_RAILWAY_API_URL,
    DEFAULT_DEPLOYMENT_TIMEOUT_SECONDS,
    RETRYABLE_HTTP_STATUS_CODES
)
from shared.exceptions import DeploymentFailedError
from shared.types import Variable


SERVICE_CREATE_MUTATION = """
mutation ServiceCreate($input: ServiceCreateInput!) {
  serviceCreate(input: $input) {
    id
    name
  }
}
"""

SERVICE_DELETE_MUTATION = """
mutation ServiceDelete($id: String!) {
  serviceDelete(id: $id)
}
"""

WEBHOOK_CREATE_MUTATION = """
mutation CreateWebhook($projectId: String!, $url: String!) {
  webhookCreate(input: { projectId: $projectId, url: $url }) {
    id
    lastStatus
  }
}
"""


class RailwayClient:
    """Deployment client backed by Railway's public GraphQL API"""

    def __init__(self, api_url: Optional[str] = None, timeout: Optional[float] = None, session=None):
        self.api_url = api_url or os.getenv("RAILWAY_API_URL", DEFAULT_RAILWAY_API_URL)
        self.timeout = timeout or float(
            os.getenv("DEPLOYMENT_TIMEOUT_SECONDS", DEFAULT_DEPLOYMENT_TIMEOUT_SECONDS)
        )
        self.session = session or requests.Session()

    def create_service(
        self,
        api_key: str,
        project_id: str,
        name: str,
        container_image: str,
        variables: List[Variable]
    ) -> str:
        """Creates a service running container_image and returns its Railway id"""
        data = self._execute(api_key, SERVICE_CREATE_MUTATION, {
            "input": {
                "projectId": project_id,
                "name": name,
                "source": {"image": container_image},
                "variables": {v.name: v.value for v in variables},
            }
        })

        service = data.get("serviceCreate")
        service_id = service.get("id") if isinstance(service, dict) else None
        if not service_id:
            raise DeploymentFailedError(
                f"Railway returned no service id for '{name}'",
                service_name=name
            )

        logging.info("Railway service created", extra={"service_id": service_id, "service_name": name})
        return service_id

    def delete_service(self, api_key: str, service_id: str) -> None:
        self._execute(api_key, SERVICE_DELETE_MUTATION, {"id": service_id})
        logging.info("Railway service deleted", extra={"service_id": service_id})

    def create_project_webhook(self, api_key: str, project_id: str, url: str) -> Dict[str, Any]:
        data = self._execute(api_key, WEBHOOK_CREATE_MUTATION, {"projectId": project_id, "url": url})
        return data.get("webhookCreate") or {}

    def _execute(self, api_key: str, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = self.session.post(
                self.api_url,
                json={"query": query, "variables": variables},
                headers={"Authorization": f"Bearer {api_key}"},
                timeout=self.timeout
            )

            if response.status_code in RETRYABLE_HTTP_STATUS_CODES:
                raise DeploymentFailedError(
                    f"Railway HTTP {response.status_code}: {response.reason}",
                    is_retryable=True,
                    http_status_code=response.status_code
                )

            response.raise_for_status()
            body = response.json()

        except (Timeout, ConnectionError) as e:
            # Network errors are retryable
            raise DeploymentFailedError(
                f"Network error talking to Railway: {str(e)}",
                is_retryable=True,
                error_class=type(e).__name__
            )

        except RequestException as e:
            raise DeploymentFailedError(f"Railway request failed: {str(e)}")

        except ValueError as e:
            raise DeploymentFailedError(f"Railway returned an invalid response: {str(e)}")

        if not isinstance(body, dict):
            raise DeploymentFailedError(
                f"Railway returned an unexpected response: {type(body).__name__}"
            )

        errors = body.get("errors")
        if errors:
            if not isinstance(errors, list):
                errors = [errors]
            messages = "; ".join(
                err.get("message", "unknown error") if isinstance(err, dict) else str(err)
                for err in errors
            )
            raise DeploymentFailedError(f"Railway rejected the request: {messages}")

        data = body.get("data")
        return data if isinstance(data, dict) else {}
