"""
Chain Dependency Graph

Builds the step dependency graph from a chain's data mappings and runs the
graph checks used by chain validation: cycle detection, reachability from
the entry step and sequential-order gap detection.

The graph is keyed by step *name* because data mappings refer to steps by
name. It is rebuilt on every call and never cached.
"""

from collections import deque
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from chain_sdk.chains.models import (
    ChainStep,
    DataMappingEdge,
    ExecutionOrder,
    StepName,
)


@dataclass
class GraphNode:
    """Immediate neighbours of a step, in mapping order and without duplicates"""
    dependencies: List[StepName] = field(default_factory=list)
    dependents: List[StepName] = field(default_factory=list)


@dataclass
class DependencyGraph:
    """
    Name-keyed dependency graph

    Attributes:
        nodes: Step name -> GraphNode, one entry per step (isolated ones included)
        skipped_edges: Mapping edges that referenced unknown step names
    """
    nodes: Dict[StepName, GraphNode] = field(default_factory=dict)
    skipped_edges: List[DataMappingEdge] = field(default_factory=list)

    def __contains__(self, name) -> bool:
        return name in self.nodes

    def __len__(self) -> int:
        return len(self.nodes)

    def dependencies_of(self, name: str) -> List[StepName]:
        node = self.nodes.get(name)
        return list(node.dependencies) if node else []

    def dependents_of(self, name: str) -> List[StepName]:
        node = self.nodes.get(name)
        return list(node.dependents) if node else []


@dataclass
class ReachabilityResult:
    """
    Outcome of the reachability check

    Attributes:
        applicable: False when there is no well-defined entry step
        entry_step: Name of the entry step (order 0) when applicable
        unreachable: Steps never reached from the entry step
        reason: Why the check did not apply
    """
    applicable: bool
    entry_step: Optional[StepName] = None
    unreachable: List[StepName] = field(default_factory=list)
    reason: Optional[str] = None


def build_dependency_graph(
    steps: Iterable[ChainStep],
    mappings: Iterable[DataMappingEdge]
) -> DependencyGraph:
    """
    Build the name-keyed dependency graph

    Edges referencing unknown step names are not added; they are kept in
    ``skipped_edges`` so validation can report them.

    Args:
        steps: Chain steps
        mappings: Data mapping edges

    Returns:
        DependencyGraph with an entry for every step
    """
    graph = DependencyGraph()
    for step in steps:
        graph.nodes.setdefault(StepName(step.name), GraphNode())

    for edge in mappings:
        source = graph.nodes.get(edge.from_step)
        target = graph.nodes.get(edge.to_step)
        if source is None or target is None:
            graph.skipped_edges.append(edge)
            continue
        if edge.to_step not in source.dependents:
            source.dependents.append(edge.to_step)
        if edge.from_step not in target.dependencies:
            target.dependencies.append(edge.from_step)

    return graph


def detect_circular_dependencies(
    steps: Iterable[ChainStep],
    graph: DependencyGraph
) -> List[str]:
    """
    Find circular data dependencies

    Depth-first search from every unvisited step with a recursion stack.
    Each back edge is reported as ``"node -> neighbor"``. The traversal is
    iterative and visits every node and edge once.

    Args:
        steps: Chain steps, traversal roots are tried in this order
        graph: Dependency graph from build_dependency_graph

    Returns:
        List of back edges, empty when the graph is acyclic
    """
    if graph is None:
        raise ValueError("graph is required")

    visited = set()
    on_stack = set()
    cycles = []

    roots = [StepName(step.name) for step in steps]
    # Also cover nodes the caller did not pass as steps
    known = set(roots)
    roots.extend(name for name in graph.nodes if name not in known)

    for root in roots:
        if root in visited:
            continue

        visited.add(root)
        on_stack.add(root)
        stack = [(root, iter(graph.dependents_of(root)))]

        while stack:
            node, neighbors = stack[-1]
            advanced = False

            for neighbor in neighbors:
                if neighbor in on_stack:
                    cycles.append(f"{node} -> {neighbor}")
                elif neighbor not in visited:
                    visited.add(neighbor)
                    on_stack.add(neighbor)
                    stack.append((neighbor, iter(graph.dependents_of(neighbor))))
                    advanced = True
                    break

            if not advanced:
                stack.pop()
                on_stack.discard(node)

    return cycles


def find_entry_step(
    steps: List[ChainStep],
    execution_order: ExecutionOrder
) -> ReachabilityResult:
    """
    Determine the entry step used for reachability

    Only sequential chains with exactly one step of order 0 have an entry
    step. Anything else yields a non-applicable result with a reason.
    """
    if execution_order != ExecutionOrder.SEQUENTIAL:
        return ReachabilityResult(
            applicable=False,
            reason="reachability check not applicable: chain executes in parallel"
        )

    entries = [step for step in steps if step.order == 0]
    if not entries:
        return ReachabilityResult(
            applicable=False,
            reason="reachability check not applicable: no step has order 0"
        )
    if len(entries) > 1:
        names = ", ".join(step.name for step in entries)
        return ReachabilityResult(
            applicable=False,
            reason=f"reachability check not applicable: several steps have order 0 ({names})"
        )

    return ReachabilityResult(applicable=True, entry_step=StepName(entries[0].name))


def find_unreachable_steps(
    steps: List[ChainStep],
    graph: DependencyGraph,
    entry_step: str
) -> List[StepName]:
    """
    Breadth-first search over dependents starting at the entry step

    Returns:
        Names of steps never visited, in step order
    """
    if graph is None:
        raise ValueError("graph is required")
    if len(steps) <= 1:
        return []

    reachable = {entry_step}
    queue = deque([entry_step])
    while queue:
        current = queue.popleft()
        for neighbor in graph.dependents_of(current):
            if neighbor not in reachable:
                reachable.add(neighbor)
                queue.append(neighbor)

    return [StepName(step.name) for step in steps if step.name not in reachable]


def check_reachability(
    steps: List[ChainStep],
    graph: DependencyGraph,
    execution_order: ExecutionOrder
) -> ReachabilityResult:
    """Run the reachability check if the chain has a well-defined entry step"""
    result = find_entry_step(steps, execution_order)
    if result.applicable:
        result.unreachable = find_unreachable_steps(steps, graph, result.entry_step)
    return result


def check_sequential_order(steps: List[ChainStep]) -> List[str]:
    """
    Report gaps and duplicates in sequential step order

    Advisory only: the returned messages are warnings.
    """
    warnings = []
    ordered = sorted(steps, key=lambda s: s.order)

    for current, following in zip(ordered, ordered[1:]):
        if following.order - current.order > 1:
            warnings.append(
                f"Gap in sequential order between steps '{current.name}' and "
                f"'{following.name}' (order {current.order} -> {following.order})"
            )
        elif following.order == current.order:
            warnings.append(
                f"Steps '{current.name}' and '{following.name}' share sequential "
                f"order {current.order}"
            )

    return warnings
