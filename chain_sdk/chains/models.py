"""
Chain Models

Data models for chain definitions, execution plans and execution results.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, NewType, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from chain_sdk.chains.versioning import is_valid_version


# Mappings reference steps by name, plans and results by id
StepName = NewType("StepName", str)
StepId = NewType("StepId", str)

CHAIN_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")
MAX_TAGS = 10
MAX_TAG_LENGTH = 30


class StepType(str, Enum):
    """Kind of resource a step refers to"""
    PROMPT = "prompt"
    TEMPLATE = "template"


class ExecutionOrder(str, Enum):
    """How the steps of a chain are scheduled"""
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"


class StepStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    SKIPPED = "skipped"


class ExecutionStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    PARTIAL = "partial"


def _check_version(value: Optional[str]) -> Optional[str]:
    if value is not None and not is_valid_version(value):
        raise ValueError(f"Invalid version format: {value}")
    return value


def _check_tags(tags: List[str]) -> List[str]:
    if len(tags) > MAX_TAGS:
        raise ValueError(f"A chain may carry at most {MAX_TAGS} tags")
    for tag in tags:
        if len(tag) > MAX_TAG_LENGTH:
            raise ValueError(f"Tag '{tag}' exceeds {MAX_TAG_LENGTH} characters")
    # Tags behave like a set, keep first occurrence order
    return list(dict.fromkeys(tags))


class ResourceRef(BaseModel):
    """
    Opaque pointer to a prompt or template

    Attributes:
        resource_id: Identifier of the prompt/template
        resource_version: Optional pinned version (latest when omitted)
    """
    model_config = ConfigDict(frozen=True)

    resource_id: str = Field(..., min_length=1, description="Prompt or template identifier")
    resource_version: Optional[str] = Field(None, description="Pinned resource version")

    @field_validator("resource_version")
    @classmethod
    def validate_resource_version(cls, v):
        return _check_version(v)


class ChainStepDefinition(BaseModel):
    """
    A step as supplied by a caller, before it is assigned an id

    Attributes:
        name: Step name, unique within the chain; data mappings refer to it
        type: prompt or template
        resource_ref: Resource the step executes
        input_mapping: Runner input key -> key of the assembled input data
        output_mapping: Raw output key -> key published to dependents
        condition: Predicate expression handed through to the step runner
        order: Position for sequential chains (list position when omitted)
    """
    name: str = Field(..., min_length=1, max_length=100, description="Step name")
    type: StepType = Field(..., description="Step type")
    resource_ref: ResourceRef = Field(..., description="Referenced prompt or template")
    input_mapping: Optional[Dict[str, str]] = Field(None, description="Input field mapping")
    output_mapping: Optional[Dict[str, str]] = Field(None, description="Output field mapping")
    condition: Optional[str] = Field(None, description="Opaque condition expression")
    order: Optional[int] = Field(None, ge=0, description="Sequential position")


class ChainStep(ChainStepDefinition):
    """A persisted step. Immutable once created."""
    model_config = ConfigDict(frozen=True)

    id: StepId = Field(..., description="Step identifier assigned at creation")
    order: int = Field(..., ge=0, description="Sequential position")

    def to_definition(self) -> ChainStepDefinition:
        """Strip the id so the step can be re-submitted (e.g. when cloning)"""
        return ChainStepDefinition(**self.model_dump(exclude={"id"}))


class DataMappingEdge(BaseModel):
    """
    Directed data flow between two steps of the same chain

    Attributes:
        from_step: Name of the producing step
        to_step: Name of the consuming step
        field_mapping: Output field of from_step -> input field of to_step
    """
    model_config = ConfigDict(frozen=True)

    from_step: StepName = Field(..., min_length=1, description="Producing step name")
    to_step: StepName = Field(..., min_length=1, description="Consuming step name")
    field_mapping: Dict[str, str] = Field(default_factory=dict, description="Field mapping")


class Chain(BaseModel):
    """
    A stored chain snapshot

    Every update produces a new snapshot with a bumped version; snapshots
    themselves are never modified.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: Optional[str] = None
    label: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    steps: List[ChainStep] = Field(default_factory=list)
    execution_order: ExecutionOrder = ExecutionOrder.SEQUENTIAL
    data_mapping: List[DataMappingEdge] = Field(default_factory=list)
    author: str = "system"
    created_at: datetime
    updated_at: datetime
    version: str = "1.0.0"

    def get_step(self, name: str) -> Optional[ChainStep]:
        """Get step by name"""
        for step in self.steps:
            if step.name == name:
                return step
        return None

    @property
    def step_count(self) -> int:
        return len(self.steps)


class CreateChainRequest(BaseModel):
    """Payload for creating a chain"""
    name: str = Field(..., min_length=1, max_length=100, description="Chain name")
    description: Optional[str] = Field(None, max_length=500)
    label: Optional[str] = Field(None, max_length=50)
    tags: List[str] = Field(default_factory=list)
    steps: List[ChainStepDefinition] = Field(default_factory=list)
    execution_order: ExecutionOrder = Field(..., description="sequential or parallel")
    data_mapping: List[DataMappingEdge] = Field(default_factory=list)
    author: str = Field("system", min_length=1)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        """Ensure chain name is alphanumeric with _ or -"""
        if not CHAIN_NAME_PATTERN.match(v):
            raise ValueError(f"Invalid chain name: {v}. Must be alphanumeric with _ or -")
        return v

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v):
        return _check_tags(v)


class UpdateChainRequest(BaseModel):
    """Payload for updating a chain. At least one field must be set."""
    description: Optional[str] = Field(None, max_length=500)
    label: Optional[str] = Field(None, max_length=50)
    tags: Optional[List[str]] = None
    steps: Optional[List[ChainStepDefinition]] = None
    execution_order: Optional[ExecutionOrder] = None
    data_mapping: Optional[List[DataMappingEdge]] = None

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v):
        return _check_tags(v) if v is not None else v

    @model_validator(mode="after")
    def validate_not_empty(self):
        if not self.model_fields_set:
            raise ValueError("Update request must change at least one field")
        return self


class ChainExecutionRequest(BaseModel):
    """
    Request to execute a chain

    Attributes:
        chain_id: Chain to execute
        version: Optional stored version to execute (latest when omitted)
        initial_data: Data every step starts from
        step_overrides: Step name -> values overlaid on that step's input
    """
    chain_id: str
    version: Optional[str] = None
    initial_data: Dict[str, Any] = Field(default_factory=dict)
    step_overrides: Dict[str, Dict[str, Any]] = Field(default_factory=dict)


class ChainFilters(BaseModel):
    """Filters shared by list_chains and search_chains"""
    name: Optional[str] = None
    tags: Optional[List[str]] = None
    author: Optional[str] = None
    execution_order: Optional[ExecutionOrder] = None
    has_step_type: Optional[StepType] = None
    step_count_min: Optional[int] = Field(None, ge=0)
    step_count_max: Optional[int] = Field(None, ge=0)
    created_after: Optional[datetime] = None
    created_before: Optional[datetime] = None


class ChainListOptions(BaseModel):
    """Pagination, sorting and filtering for list_chains"""
    page: int = Field(1, ge=1)
    limit: int = Field(50, ge=1, le=100)
    sort_by: Literal["name", "created_at", "updated_at", "step_count"] = "created_at"
    sort_order: Literal["asc", "desc"] = "desc"
    filters: Optional[ChainFilters] = None


@dataclass
class PlanEntry:
    """
    One step of an execution plan

    Attributes:
        step_id: Step identifier
        step_name: Step name
        order: Sequential position
        dependencies: Ids of the steps this step consumes data from
        dependents: Ids of the steps consuming this step's data
    """
    step_id: StepId
    step_name: StepName
    order: int
    dependencies: List[StepId] = field(default_factory=list)
    dependents: List[StepId] = field(default_factory=list)


@dataclass
class ExecutionPlan:
    """
    Dependency listing used to schedule a chain

    Attributes:
        chain_id: Chain identifier
        chain_name: Chain name
        execution_order: sequential or parallel
        steps: One entry per step, in chain step order
        estimated_execution_time_ms: Not estimated yet, always None
    """
    chain_id: str
    chain_name: str
    execution_order: ExecutionOrder
    steps: List[PlanEntry]
    estimated_execution_time_ms: Optional[float] = None

    def get_entry(self, step_id: str) -> Optional[PlanEntry]:
        """Get plan entry by step ID"""
        for entry in self.steps:
            if entry.step_id == step_id:
                return entry
        return None

    def get_parallel_groups(self) -> List[List[StepId]]:
        """
        Get groups of steps that can run in parallel

        Level 0 holds steps without dependencies, level N steps whose
        dependencies all sit in levels < N. Steps trapped in (or behind) a
        cycle never become ready and are left out.

        Returns:
            List of lists of step IDs
        """
        remaining = {entry.step_id: set(entry.dependencies) for entry in self.steps}
        groups = []
        while remaining:
            ready = [step_id for step_id, deps in remaining.items() if not deps]
            if not ready:
                break
            groups.append(ready)
            for step_id in ready:
                del remaining[step_id]
            for deps in remaining.values():
                deps.difference_update(ready)
        return groups

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chain_id": self.chain_id,
            "chain_name": self.chain_name,
            "execution_order": self.execution_order.value,
            "steps": [
                {
                    "step_id": entry.step_id,
                    "step_name": entry.step_name,
                    "order": entry.order,
                    "dependencies": list(entry.dependencies),
                    "dependents": list(entry.dependents),
                }
                for entry in self.steps
            ],
            "estimated_execution_time_ms": self.estimated_execution_time_ms,
        }


@dataclass(frozen=True)
class StepResult:
    """
    Result of executing a single step

    Attributes:
        step_id: Step identifier
        step_name: Step name
        status: success, error or skipped
        result: Published step output (success only)
        error: Error message if failed or skipped
        execution_time_ms: Wall-clock time spent in the runner
    """
    step_id: StepId
    step_name: StepName
    status: StepStatus
    result: Any = None
    error: Optional[str] = None
    execution_time_ms: float = 0.0


@dataclass(frozen=True)
class ChainExecutionResult:
    """
    Result of executing an entire chain

    Attributes:
        chain_id: Chain identifier
        execution_id: Unique id of this run
        status: success, error or partial
        results: Step name -> published output of every successful step
        step_results: Per-step results in plan order
        total_execution_time_ms: Total wall-clock time
        error: Summary of what went wrong if not successful
    """
    chain_id: str
    execution_id: str
    status: ExecutionStatus
    results: Dict[str, Any] = field(default_factory=dict)
    step_results: Tuple[StepResult, ...] = ()
    total_execution_time_ms: float = 0.0
    error: Optional[str] = None

    def get_step_result(self, step_id: str) -> Optional[StepResult]:
        """Get result for a specific step"""
        for result in self.step_results:
            if result.step_id == step_id:
                return result
        return None

    def get_successful_steps(self) -> List[StepId]:
        """Get list of step IDs that completed successfully"""
        return [r.step_id for r in self.step_results if r.status == StepStatus.SUCCESS]

    def get_failed_steps(self) -> List[StepId]:
        """Get list of step IDs that failed"""
        return [r.step_id for r in self.step_results if r.status == StepStatus.ERROR]

    def get_skipped_steps(self) -> List[StepId]:
        return [r.step_id for r in self.step_results if r.status == StepStatus.SKIPPED]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chain_id": self.chain_id,
            "execution_id": self.execution_id,
            "status": self.status.value,
            "results": self.results,
            "step_results": [
                {
                    "step_id": r.step_id,
                    "step_name": r.step_name,
                    "status": r.status.value,
                    "result": r.result,
                    "error": r.error,
                    "execution_time_ms": r.execution_time_ms,
                }
                for r in self.step_results
            ],
            "total_execution_time_ms": self.total_execution_time_ms,
            "error": self.error,
        }


@dataclass
class ValidationReport:
    """
    Outcome of validating a chain

    Attributes:
        errors: Problems that make the chain invalid
        warnings: Advisory findings, never affect validity
        skipped_checks: Checks that did not apply to this chain, with reason
    """
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    skipped_checks: List[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return len(self.errors) == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "skipped_checks": list(self.skipped_checks),
        }
