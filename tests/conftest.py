"""
Shared fixtures for the chain engine tests
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import pytest

from chain_sdk.chains import (
    Chain,
    ChainManager,
    ChainStep,
    DataMappingEdge,
    ExecutionOrder,
    InMemoryChainRepository,
    ResourceDescriptor,
    ResourceNotFoundError,
    StepExecutionError,
    StepOutcome,
    StepType,
)


@pytest.fixture
def anyio_backend():
    return "asyncio"


class PermissiveResolver:
    """Resolves every resource except the ids listed in `missing`"""

    def __init__(self):
        self.missing = set()
        self.broken = set()
        self.calls = []

    async def resolve(self, resource_type, resource_id, resource_version=None):
        self.calls.append((StepType(resource_type), resource_id, resource_version))
        if resource_id in self.broken:
            raise ConnectionError("prompt service unreachable")
        if resource_id in self.missing:
            raise ResourceNotFoundError(resource_type, resource_id, resource_version)
        return ResourceDescriptor(
            type=StepType(resource_type),
            resource_id=resource_id,
            version=resource_version,
            data={"content": f"content of {resource_id}"},
        )


class ScriptedRunner:
    """
    Step runner fake

    Records start/end events so tests can assert ordering, fails the steps
    named in `failures` and returns `outputs[name]` (default {"value": name}).
    """

    def __init__(self):
        self.failures = set()
        self.soft_failures = set()
        self.outputs: Dict[str, Any] = {}
        self.delays: Dict[str, float] = {}
        self.calls = []
        self.events = []
        self.running = 0
        self.max_running = 0

    async def run(self, step, resource, input_data):
        self.calls.append((step.name, dict(input_data)))
        self.events.append(("start", step.name))
        self.running += 1
        self.max_running = max(self.max_running, self.running)
        try:
            await asyncio.sleep(self.delays.get(step.name, 0))
        finally:
            self.running -= 1
            self.events.append(("end", step.name))

        if step.name in self.failures:
            raise StepExecutionError(f"{step.name} exploded")
        if step.name in self.soft_failures:
            return StepOutcome.failure(f"{step.name} reported failure")
        return StepOutcome.success(self.outputs.get(step.name, {"value": step.name}))

    def called_steps(self):
        return [name for name, _ in self.calls]


@pytest.fixture
def resolver():
    return PermissiveResolver()


@pytest.fixture
def runner():
    return ScriptedRunner()


@pytest.fixture
def repository():
    return InMemoryChainRepository()


@pytest.fixture
def manager(repository, resolver, runner):
    return ChainManager(repository, resolver, runner=runner)


def _make_step(
    name: str,
    order: int,
    step_type: StepType = StepType.PROMPT,
    resource_id: Optional[str] = None,
    **extra
) -> ChainStep:
    return ChainStep(
        id=f"id-{name}",
        name=name,
        type=step_type,
        resource_ref={"resource_id": resource_id or f"{name}-res"},
        order=order,
        **extra
    )


def _make_edge(from_step: str, to_step: str, **field_mapping) -> DataMappingEdge:
    return DataMappingEdge(from_step=from_step, to_step=to_step, field_mapping=field_mapping)


def _make_chain(
    steps,
    mappings=(),
    execution_order: ExecutionOrder = ExecutionOrder.SEQUENTIAL,
    version: str = "1.0.0",
    chain_id: str = "chain-1",
) -> Chain:
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    return Chain(
        id=chain_id,
        name="test-chain",
        steps=list(steps),
        data_mapping=list(mappings),
        execution_order=execution_order,
        created_at=now,
        updated_at=now,
        version=version,
    )


def _step_def(name: str, order: Optional[int] = None, step_type: str = "prompt", resource_id: Optional[str] = None, **extra):
    definition = {
        "name": name,
        "type": step_type,
        "resource_ref": {"resource_id": resource_id or f"{name}-res"},
        **extra,
    }
    if order is not None:
        definition["order"] = order
    return definition


@pytest.fixture
def make_step():
    return _make_step


@pytest.fixture
def make_edge():
    return _make_edge


@pytest.fixture
def make_chain():
    return _make_chain


@pytest.fixture
def step_def():
    return _step_def
