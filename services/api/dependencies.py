"""FastAPI dependency providers for the store, deployment client and engine."""

from functools import lru_cache
from fastapi import Depends
from services.orchestrator.engine.orchestrator import RunOrchestrator
from services.orchestrator.infra.railway_client import RailwayClient
from services.orchestrator.infra.redis_store import RedisStore
from services.orchestrator.main import create_orchestrator


@lru_cache
def get_store() -> RedisStore:
    return RedisStore()


@lru_cache
def get_deployer() -> RailwayClient:
    return RailwayClient()


def get_orchestrator(
    store: RedisStore = Depends(get_store),
    deployer: RailwayClient = Depends(get_deployer)
) -> RunOrchestrator:
    return create_orchestrator(store, deployer)
