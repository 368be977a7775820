"""
Chain SDK

Provides tools for defining, validating, planning and executing prompt and
template chains.

Usage:
    from chain_sdk.chains import (
        ChainManager,
        InMemoryChainRepository,
        InMemoryResourceResolver,
        load_chain,
    )

    resolver = InMemoryResourceResolver()
    resolver.register_prompt("summarize-v1")

    manager = ChainManager(InMemoryChainRepository(), resolver)
    chain = await manager.create_chain(load_chain("chains/summarize.yaml"))

    report = await manager.validate_chain(chain.id)
    plan = await manager.get_chain_execution_plan(chain.id)
    result = await manager.execute_chain({"chain_id": chain.id})
"""

from chain_sdk.chains.models import (
    StepName,
    StepId,
    StepType,
    ExecutionOrder,
    StepStatus,
    ExecutionStatus,
    ResourceRef,
    ChainStepDefinition,
    ChainStep,
    DataMappingEdge,
    Chain,
    CreateChainRequest,
    UpdateChainRequest,
    ChainExecutionRequest,
    ChainFilters,
    ChainListOptions,
    PlanEntry,
    ExecutionPlan,
    StepResult,
    ChainExecutionResult,
    ValidationReport,
)

from chain_sdk.chains.graph import (
    DependencyGraph,
    GraphNode,
    ReachabilityResult,
    build_dependency_graph,
    detect_circular_dependencies,
    find_entry_step,
    find_unreachable_steps,
    check_reachability,
    check_sequential_order,
)

from chain_sdk.chains.interpreter import (
    ChainInterpreter,
    ChainValidationError,
)

from chain_sdk.chains.resources import (
    ResourceDescriptor,
    ResourceResolver,
    ResourceNotFoundError,
    StepOutcome,
    StepRunner,
    StepExecutionError,
    InMemoryResourceResolver,
    EchoStepRunner,
)

from chain_sdk.chains.repository import (
    ChainRepository,
    InMemoryChainRepository,
)

from chain_sdk.chains.engine import ChainEngine

from chain_sdk.chains.manager import (
    ChainManager,
    ChainNotFoundError,
    ChainUsageError,
)

from chain_sdk.chains.service import (
    load_chain,
    load_chain_from_dict,
    create_execution_plan,
    validate_chain,
    get_execution_summary,
    discover_chains,
)

__all__ = [
    # Models
    "StepName",
    "StepId",
    "StepType",
    "ExecutionOrder",
    "StepStatus",
    "ExecutionStatus",
    "ResourceRef",
    "ChainStepDefinition",
    "ChainStep",
    "DataMappingEdge",
    "Chain",
    "CreateChainRequest",
    "UpdateChainRequest",
    "ChainExecutionRequest",
    "ChainFilters",
    "ChainListOptions",
    "PlanEntry",
    "ExecutionPlan",
    "StepResult",
    "ChainExecutionResult",
    "ValidationReport",

    # Graph
    "DependencyGraph",
    "GraphNode",
    "ReachabilityResult",
    "build_dependency_graph",
    "detect_circular_dependencies",
    "find_entry_step",
    "find_unreachable_steps",
    "check_reachability",
    "check_sequential_order",

    # Interpreter
    "ChainInterpreter",
    "ChainValidationError",

    # Collaborators
    "ResourceDescriptor",
    "ResourceResolver",
    "ResourceNotFoundError",
    "StepOutcome",
    "StepRunner",
    "StepExecutionError",
    "InMemoryResourceResolver",
    "EchoStepRunner",

    # Storage
    "ChainRepository",
    "InMemoryChainRepository",

    # Engine
    "ChainEngine",

    # Manager
    "ChainManager",
    "ChainNotFoundError",
    "ChainUsageError",

    # Service functions
    "load_chain",
    "load_chain_from_dict",
    "create_execution_plan",
    "validate_chain",
    "get_execution_summary",
    "discover_chains",
]
