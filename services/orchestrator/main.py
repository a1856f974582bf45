"""Run engine wiring."""

from services.orchestrator.infra.railway_client import RailwayClient
from services.orchestrator.infra.redis_store import RedisStore
from services.orchestrator.engine.orchestrator import RunOrchestrator


def create_orchestrator(store=None, deployer=None) -> RunOrchestrator:
    return RunOrchestrator(store or RedisStore(), deployer or RailwayClient())
