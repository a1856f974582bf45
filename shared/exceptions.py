"""Structured exception hierarchy for the run engine."""

from enum import Enum
from typing import Optional, Dict, Any, List
from pydantic import BaseModel


class ErrorKind(str, Enum):
    GRAPH_INVALID = "GRAPH_INVALID"
    NOT_RUNNABLE = "NOT_RUNNABLE"
    UNKNOWN_SERVICE = "UNKNOWN_SERVICE"
    DEPLOYMENT_FAILED = "DEPLOYMENT_FAILED"
    NOT_FOUND = "NOT_FOUND"
    CONCURRENT_UPDATE = "CONCURRENT_UPDATE"


class ErrorDetail(BaseModel):
    """Structured error body returned to API and webhook callers"""
    error_type: ErrorKind
    error_message: str
    http_status_code: Optional[int] = None
    is_retryable: bool = False
    context: Dict[str, Any] = {}

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class WorkflowError(Exception):
    """Base exception for workflow errors"""
    kind: ErrorKind = ErrorKind.GRAPH_INVALID
    is_retryable: bool = False

    def __init__(self, message: str, run_id: str = "", **context):
        self.message = message
        self.run_id = run_id
        self.context = context
        super().__init__(message)

    def to_detail(self, http_status_code: Optional[int] = None) -> ErrorDetail:
        context = dict(self.context)
        if self.run_id:
            context["run_id"] = self.run_id
        return ErrorDetail(
            error_type=self.kind,
            error_message=self.message,
            http_status_code=http_status_code,
            is_retryable=self.is_retryable,
            context=context,
        )


class GraphInvalidError(WorkflowError):
    kind = ErrorKind.GRAPH_INVALID

    def __init__(self, rule: str, message: str, **context):
        self.rule = rule
        super().__init__(message, rule=rule, **context)


class NotRunnableError(WorkflowError):
    kind = ErrorKind.NOT_RUNNABLE


class UnknownServiceError(WorkflowError):
    kind = ErrorKind.UNKNOWN_SERVICE


class DeploymentFailedError(WorkflowError):
    kind = ErrorKind.DEPLOYMENT_FAILED

    def __init__(
        self,
        message: str,
        run_id: str = "",
        is_retryable: bool = False,
        failed_nodes: Optional[List[str]] = None,
        **context
    ):
        self.is_retryable = is_retryable
        self.failed_nodes = failed_nodes or []
        if self.failed_nodes:
            context["failed_nodes"] = self.failed_nodes
        super().__init__(message, run_id=run_id, **context)


class WorkflowNotFoundError(WorkflowError):
    kind = ErrorKind.NOT_FOUND


class RunNotFoundError(WorkflowError):
    kind = ErrorKind.NOT_FOUND


class ConcurrentUpdateError(WorkflowError):
    kind = ErrorKind.CONCURRENT_UPDATE
    is_retryable = True
