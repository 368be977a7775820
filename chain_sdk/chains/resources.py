"""
Chain Collaborators

Interfaces the chain engine consumes (resource resolution and step
execution) together with in-process implementations.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol, Tuple, runtime_checkable

from chain_sdk.chains.models import ChainStep, StepStatus, StepType

logger = logging.getLogger(__name__)


class ResourceNotFoundError(LookupError):
    """Raised when a step references a prompt/template that does not exist"""

    def __init__(self, resource_type: StepType, resource_id: str, version: Optional[str] = None):
        self.resource_type = StepType(resource_type)
        self.resource_id = resource_id
        self.version = version
        suffix = f" (version {version})" if version else ""
        super().__init__(f"{self.resource_type.value} '{resource_id}' not found{suffix}")


class StepExecutionError(Exception):
    """Raised by a step runner when a step cannot be executed"""
    pass


@dataclass
class ResourceDescriptor:
    """
    A resolved prompt or template

    Attributes:
        type: prompt or template
        resource_id: Resource identifier
        version: Resolved version, if the backend reports one
        data: Backend payload, opaque to the engine
    """
    type: StepType
    resource_id: str
    version: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class StepOutcome:
    """
    What a step runner reports for one step

    Attributes:
        status: success or error
        output: Step output; dict outputs can feed dependent steps
        error: Error message when status is error
    """
    status: StepStatus = StepStatus.SUCCESS
    output: Any = None
    error: Optional[str] = None

    def __post_init__(self):
        self.status = StepStatus(self.status)
        if self.status == StepStatus.SKIPPED:
            raise ValueError("A step runner reports success or error, not skipped")

    @classmethod
    def success(cls, output: Any = None) -> "StepOutcome":
        return cls(status=StepStatus.SUCCESS, output=output)

    @classmethod
    def failure(cls, error: str) -> "StepOutcome":
        return cls(status=StepStatus.ERROR, error=error)


@runtime_checkable
class ResourceResolver(Protocol):
    async def resolve(
        self,
        resource_type: StepType,
        resource_id: str,
        resource_version: Optional[str] = None
    ) -> ResourceDescriptor:
        """Resolve a resource or raise ResourceNotFoundError"""
        ...


@runtime_checkable
class StepRunner(Protocol):
    async def run(
        self,
        step: ChainStep,
        resource: ResourceDescriptor,
        input_data: Dict[str, Any]
    ) -> StepOutcome:
        """Run one step; may raise StepExecutionError"""
        ...


class InMemoryResourceResolver:
    """
    Resolver backed by a dict of registered prompts and templates

    Resources registered without a version resolve for any requested
    version; versioned registrations only match that exact version, and a
    request without a version gets the most recently registered one.
    """

    def __init__(self):
        self._resources: Dict[Tuple[StepType, str], Dict[Optional[str], ResourceDescriptor]] = {}

    def register(
        self,
        resource_type: StepType,
        resource_id: str,
        version: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None
    ) -> ResourceDescriptor:
        descriptor = ResourceDescriptor(
            type=StepType(resource_type),
            resource_id=resource_id,
            version=version,
            data=data or {}
        )
        versions = self._resources.setdefault((descriptor.type, resource_id), {})
        versions.pop(version, None)
        versions[version] = descriptor
        return descriptor

    def register_prompt(self, resource_id: str, version: Optional[str] = None, **data) -> ResourceDescriptor:
        return self.register(StepType.PROMPT, resource_id, version, data)

    def register_template(self, resource_id: str, version: Optional[str] = None, **data) -> ResourceDescriptor:
        return self.register(StepType.TEMPLATE, resource_id, version, data)

    def unregister(self, resource_type: StepType, resource_id: str) -> None:
        self._resources.pop((StepType(resource_type), resource_id), None)

    async def resolve(
        self,
        resource_type: StepType,
        resource_id: str,
        resource_version: Optional[str] = None
    ) -> ResourceDescriptor:
        versions = self._resources.get((StepType(resource_type), resource_id))
        if not versions:
            raise ResourceNotFoundError(resource_type, resource_id, resource_version)

        if resource_version is None:
            # Latest registration wins
            return list(versions.values())[-1]
        if resource_version in versions:
            return versions[resource_version]
        if None in versions:
            return versions[None]

        raise ResourceNotFoundError(resource_type, resource_id, resource_version)


class EchoStepRunner:
    """
    Placeholder runner: reports success and echoes the step input

    Model invocation happens outside this package; this runner lets chains be
    planned and dry-run end to end.
    """

    async def run(
        self,
        step: ChainStep,
        resource: ResourceDescriptor,
        input_data: Dict[str, Any]
    ) -> StepOutcome:
        logger.debug(f"Echo runner executing step '{step.name}' ({resource.type.value} {resource.resource_id})")
        return StepOutcome.success({
            "output": f"Executed step: {step.name}",
            "input": dict(input_data),
        })
