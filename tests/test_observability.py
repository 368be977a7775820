"""
Tests for settings, logging setup, execution logs and the gateway wiring
"""

import json
from pathlib import Path

import pytest

from chain_gateway import Settings, build_chain_manager, build_resource_resolver, configure_logging
from chain_gateway.clients import HttpResourceResolver
from chain_gateway.database import DEFAULT_DATABASE_URL
from chain_gateway.observability import (
    ExecutionLogReader,
    ExecutionLogger,
    create_execution_logger_factory,
    find_execution_logs,
)
from chain_sdk.chains import InMemoryChainRepository, InMemoryResourceResolver


# --- settings -------------------------------------------------------------


def test_settings_defaults():
    settings = Settings.from_env({})

    assert settings.database_url == DEFAULT_DATABASE_URL
    assert settings.resource_api_url is None
    assert settings.max_concurrency is None
    assert settings.execution_log_dir is None
    assert settings.log_level == "INFO"
    assert settings.log_json is False


def test_settings_from_env():
    settings = Settings.from_env({
        "DATABASE_URL": "sqlite://",
        "RESOURCE_API_URL": "http://prompts.local",
        "RESOURCE_API_KEY": "secret",
        "RESOURCE_API_TIMEOUT": "5.5",
        "CHAIN_MAX_CONCURRENCY": "4",
        "EXECUTION_LOG_DIR": "/tmp/chain-logs",
        "LOG_LEVEL": "debug",
        "LOG_JSON": "yes",
    })

    assert settings.database_url == "sqlite://"
    assert settings.resource_api_key == "secret"
    assert settings.resource_api_timeout == 5.5
    assert settings.max_concurrency == 4
    assert settings.execution_log_dir == Path("/tmp/chain-logs")
    assert settings.log_level == "DEBUG"
    assert settings.log_json is True


def test_settings_reject_bad_numbers():
    with pytest.raises(ValueError):
        Settings.from_env({"CHAIN_MAX_CONCURRENCY": "many"})


def test_configure_logging_rejects_unknown_level():
    with pytest.raises(ValueError, match="Unknown log level"):
        configure_logging("chatty")


# --- wiring ---------------------------------------------------------------


def test_resolver_selection():
    assert isinstance(build_resource_resolver(Settings()), InMemoryResourceResolver)
    assert isinstance(
        build_resource_resolver(Settings(resource_api_url="http://prompts.local")),
        HttpResourceResolver,
    )


@pytest.mark.anyio
async def test_build_chain_manager_writes_execution_logs(tmp_path, runner, step_def):
    resolver = InMemoryResourceResolver()
    resolver.register_prompt("a-res")
    resolver.register_prompt("b-res")
    settings = Settings(database_url="sqlite://", execution_log_dir=tmp_path, max_concurrency=2)
    runner.failures = {"b"}

    manager = build_chain_manager(settings, runner=runner, resolver=resolver, repository=InMemoryChainRepository())
    chain = await manager.create_chain({
        "name": "logged",
        "execution_order": "parallel",
        "steps": [step_def("a"), step_def("b")],
    })
    result = await manager.execute_chain({"chain_id": chain.id})

    (log_file,) = find_execution_logs(tmp_path, chain_id=chain.id)
    summary = ExecutionLogReader(log_file).get_summary()
    assert manager.engine.max_concurrency == 2
    assert summary["execution_id"] == result.execution_id
    assert summary["status"] == "partial"
    assert summary["completed_steps"] == ["a"]
    assert summary["failed_steps"] == ["b"]


def test_build_chain_manager_applies_logging_settings(monkeypatch):
    calls = []
    monkeypatch.setattr("chain_gateway.bootstrap.configure_logging", lambda *args: calls.append(args))

    build_chain_manager(
        Settings(database_url="sqlite://", log_level="DEBUG", log_json=True),
        repository=InMemoryChainRepository(),
    )

    assert calls == [("DEBUG", True)]


def test_build_chain_manager_rejects_unknown_log_level():
    with pytest.raises(ValueError, match="Unknown log level"):
        build_chain_manager(Settings(database_url="sqlite://", log_level="chatty"))


@pytest.mark.anyio
async def test_manager_close_releases_http_client_and_database(monkeypatch):
    monkeypatch.setattr("chain_gateway.bootstrap.configure_logging", lambda *args: None)
    disposed = []
    settings = Settings(database_url="sqlite://", resource_api_url="http://prompts.local")

    async with build_chain_manager(settings) as manager:
        monkeypatch.setattr(manager.repository, "dispose", lambda: disposed.append(True))
        assert not manager.resolver.client.is_closed

    assert manager.resolver.client.is_closed
    assert disposed == [True]


# --- execution logs -------------------------------------------------------


def test_execution_logger_writes_jsonl(tmp_path):
    execution_logger = ExecutionLogger("chain-1", "exec-1", log_dir=tmp_path / "logs")

    execution_logger.log_chain_started("demo", "sequential", 2)
    execution_logger.log_step_started("a", "prompt", {"z": 1, "y": 2})
    execution_logger.log_step_completed("a", 12.34567)
    execution_logger.log_step_skipped("b", "dependency 'a' did not succeed (error)")
    execution_logger.log_chain_completed("partial", 20.0, "1 of 2 step(s) did not succeed")

    lines = execution_logger.log_file.read_text().splitlines()
    entries = [json.loads(line) for line in lines]
    assert [e["event"] for e in entries] == [
        "chain.started", "step.started", "step.completed", "step.skipped", "chain.completed",
    ]
    assert all(e["execution_id"] == "exec-1" for e in entries)
    assert entries[1]["input_keys"] == ["y", "z"]
    assert entries[2]["duration_ms"] == 12.346


def test_execution_logger_without_directory_writes_nothing(tmp_path):
    execution_logger = create_execution_logger_factory()("chain-1", "exec-1")

    execution_logger.log_chain_started("demo", "parallel", 1)

    assert execution_logger.log_file is None
    assert list(tmp_path.iterdir()) == []


def test_log_reader(tmp_path):
    log_file = tmp_path / "run.jsonl"
    log_file.write_text("\n".join([
        json.dumps({"event": "chain.started", "chain_id": "c", "execution_id": "e", "chain_name": "demo"}),
        "not json",
        json.dumps({"event": "step.completed", "step_name": "a"}),
        json.dumps({"event": "step.failed", "step_name": "b", "error": "boom"}),
        "",
        json.dumps({"event": "step.skipped", "step_name": "c"}),
        json.dumps({"event": "chain.completed", "status": "partial", "duration_ms": 3.0}),
    ]))

    reader = ExecutionLogReader(log_file)

    assert len(reader.entries) == 5
    assert reader.get_completed_steps() == ["a"]
    assert reader.get_failed_steps()[0]["error"] == "boom"
    assert reader.get_skipped_steps() == ["c"]
    assert reader.get_final_status() == "partial"
    assert reader.get_summary()["chain_name"] == "demo"


def test_log_reader_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        ExecutionLogReader(tmp_path / "missing.jsonl")


def test_find_execution_logs_filters_by_chain(tmp_path):
    ExecutionLogger("chain-1", "e1", log_dir=tmp_path).log_chain_started("one", "sequential", 1)
    ExecutionLogger("chain-2", "e2", log_dir=tmp_path).log_chain_started("two", "sequential", 1)

    assert len(find_execution_logs(tmp_path)) == 2
    (only,) = find_execution_logs(tmp_path, chain_id="chain-2")
    assert only.name.endswith("_e2.jsonl")
    assert find_execution_logs(tmp_path / "absent") == []
