"""Shared utilities."""

import uuid
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _prefixed_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex}"


def generate_workflow_id() -> str:
    return _prefixed_id("wf")


def generate_node_id() -> str:
    return _prefixed_id("wfn")


def generate_edge_id() -> str:
    return _prefixed_id("wfe")


def generate_run_id() -> str:
    return _prefixed_id("wfr")


def generate_service_name(node_name: str, started_at: datetime) -> str:
    """Service names embed the run start time so every run gets fresh services"""
    return f"{node_name} at {int(started_at.timestamp() * 1000)}"


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC; aware ones are converted to UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
