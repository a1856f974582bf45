"""
Tests for the Redis document store's compare-and-swap run updates.
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from redis.exceptions import WatchError
from services.orchestrator.infra.redis_store import RedisStore
from shared.constants import MAX_CAS_ATTEMPTS, REDIS_KEY_TTL_SECONDS
from shared.exceptions import ConcurrentUpdateError, RunNotFoundError, WorkflowNotFoundError
from shared.types import RunStatus, ServiceMapping, WorkflowNode, WorkflowRun


def _run(**overrides):
    data = dict(
        id="wfr_1",
        workflow_id="wf_1",
        started_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        status=RunStatus.RUNNING,
        nodes=[WorkflowNode(id="A", name="A", is_input=True)],
        edges=[],
    )
    data.update(overrides)
    return WorkflowRun(**data)


def _store_with_pipeline(stored_run):
    client = MagicMock()
    pipe = MagicMock()
    client.pipeline.return_value.__enter__.return_value = pipe
    pipe.get.return_value = stored_run.model_dump_json().encode('utf-8')
    return RedisStore(client=client), client, pipe


def test_update_run_writes_new_version_and_service_index():
    store, client, pipe = _store_with_pipeline(_run())

    def add_mapping(run):
        run.service_mappings.append(ServiceMapping(node_id="A", service_id="svc-a"))
        return run

    updated = store.update_run("wfr_1", add_mapping)

    assert updated.version == 1
    pipe.watch.assert_called_once_with("run:wfr_1")
    pipe.multi.assert_called_once()
    pipe.set.assert_any_call("run:wfr_1", updated.model_dump_json(), ex=REDIS_KEY_TTL_SECONDS)
    pipe.set.assert_any_call("service:svc-a:run", "wfr_1", ex=REDIS_KEY_TTL_SECONDS)
    pipe.execute.assert_called_once()


def test_update_run_only_indexes_new_mappings():
    existing = _run(service_mappings=[ServiceMapping(node_id="A", service_id="svc-a")])
    store, client, pipe = _store_with_pipeline(existing)

    def touch(run):
        run.status = RunStatus.COMPLETED
        return run

    store.update_run("wfr_1", touch)

    keys = [c.args[0] for c in pipe.set.call_args_list]
    assert keys == ["run:wfr_1"]


def test_update_run_skips_write_when_mutation_returns_none():
    store, client, pipe = _store_with_pipeline(_run(version=4))

    result = store.update_run("wfr_1", lambda run: None)

    assert result.version == 4
    pipe.multi.assert_not_called()
    pipe.execute.assert_not_called()


def test_update_run_retries_on_watch_error():
    """A concurrent writer forces a re-read and a second mutation attempt"""
    store, client, pipe = _store_with_pipeline(_run())
    pipe.execute.side_effect = [WatchError(), None]
    calls = []

    def mutate(run):
        calls.append(run.version)
        run.status = RunStatus.FAILED
        return run

    updated = store.update_run("wfr_1", mutate)

    assert len(calls) == 2
    assert pipe.execute.call_count == 2
    assert updated.status == RunStatus.FAILED


def test_update_run_gives_up_after_max_attempts():
    store, client, pipe = _store_with_pipeline(_run())
    pipe.execute.side_effect = WatchError()

    with pytest.raises(ConcurrentUpdateError):
        store.update_run("wfr_1", lambda run: run)

    assert pipe.execute.call_count == MAX_CAS_ATTEMPTS


def test_update_run_missing_run():
    store, client, pipe = _store_with_pipeline(_run())
    pipe.get.return_value = None

    with pytest.raises(RunNotFoundError):
        store.update_run("wfr_1", lambda run: run)


def test_mutation_receives_private_copy():
    stored = _run()
    store, client, pipe = _store_with_pipeline(stored)
    seen = []

    def mutate(run):
        seen.append(run)
        return None

    result = store.update_run("wfr_1", mutate)

    assert seen[0] is not result


def test_list_runs_newest_first_skips_expired():
    client = MagicMock()
    store = RedisStore(client=client)
    newer = _run(id="wfr_2")
    older = _run(id="wfr_1")
    client.zrevrange.return_value = [b"wfr_2", b"wfr_3", b"wfr_1"]
    client.mget.return_value = [newer.model_dump_json().encode(), None, older.model_dump_json().encode()]

    runs = store.list_runs("wf_1", limit=50)

    client.zrevrange.assert_called_once_with("workflow:wf_1:runs", 0, 49)
    client.mget.assert_called_once_with(["run:wfr_2", "run:wfr_3", "run:wfr_1"])
    assert [r.id for r in runs] == ["wfr_2", "wfr_1"]


def test_create_run_indexes_by_workflow():
    client = MagicMock()
    pipe = MagicMock()
    client.pipeline.return_value = pipe
    store = RedisStore(client=client)
    run = _run()

    store.create_run(run)

    pipe.set.assert_called_once_with("run:wfr_1", run.model_dump_json(), ex=REDIS_KEY_TTL_SECONDS)
    pipe.zadd.assert_called_once_with("workflow:wf_1:runs", {"wfr_1": run.started_at.timestamp()})
    pipe.execute.assert_called_once()


def test_find_run_by_service():
    client = MagicMock()
    client.get.return_value = b"wfr_9"
    store = RedisStore(client=client)

    assert store.find_run_id_by_service("svc-x") == "wfr_9"
    client.get.assert_called_once_with("service:svc-x:run")

    client.get.return_value = None
    assert store.find_run_id_by_service("svc-y") is None


def test_get_workflow_missing():
    client = MagicMock()
    client.get.return_value = None
    store = RedisStore(client=client)

    with pytest.raises(WorkflowNotFoundError):
        store.get_workflow("wf_missing")
