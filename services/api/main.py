"""API service for workflow runs and deployment webhooks."""

import logging
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from services.api.routes.workflow import router as workflow_router
from services.api.routes.runs import router as runs_router
from services.api.routes.webhooks import router as webhooks_router
from services.api.middleware import CorrelationIdMiddleware
from shared.exceptions import DeploymentFailedError, ErrorKind, WorkflowError
from shared.logging_config import setup_logging

setup_logging("api")

ERROR_STATUS_CODES = {
    ErrorKind.GRAPH_INVALID: status.HTTP_400_BAD_REQUEST,
    ErrorKind.NOT_RUNNABLE: status.HTTP_400_BAD_REQUEST,
    ErrorKind.UNKNOWN_SERVICE: status.HTTP_404_NOT_FOUND,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CONCURRENT_UPDATE: status.HTTP_409_CONFLICT,
    ErrorKind.DEPLOYMENT_FAILED: status.HTTP_502_BAD_GATEWAY,
}

app = FastAPI(title="TinyFlow Run API", version="1.0.0")
app.add_middleware(CorrelationIdMiddleware)

app.include_router(workflow_router, tags=["Workflows"])
app.include_router(runs_router, tags=["Runs"])
app.include_router(webhooks_router, tags=["Webhooks"])


@app.exception_handler(WorkflowError)
async def workflow_error_handler(request: Request, exc: WorkflowError):
    status_code = ERROR_STATUS_CODES.get(exc.kind, status.HTTP_500_INTERNAL_SERVER_ERROR)
    if isinstance(exc, DeploymentFailedError) and exc.is_retryable:
        status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    logging.warning("Request failed", extra={
        "path": request.url.path,
        "error_type": exc.kind.value,
        "error": exc.message,
        "status_code": status_code
    })
    return JSONResponse(status_code=status_code, content=exc.to_detail(status_code).to_dict())


@app.get("/")
async def root():
    return {"service": "api", "status": "running"}


@app.get("/health")
async def health():
    return {"status": "healthy"}
