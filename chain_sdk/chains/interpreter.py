"""
Chain Interpreter

Parses chain definitions (YAML or dicts), validates their structure, runs the
dependency graph checks and creates execution plans.
"""

import yaml
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

from pydantic import ValidationError

from chain_sdk.chains.graph import (
    build_dependency_graph,
    check_reachability,
    check_sequential_order,
    detect_circular_dependencies,
)
from chain_sdk.chains.models import (
    Chain,
    ChainStep,
    ChainStepDefinition,
    CreateChainRequest,
    DataMappingEdge,
    ExecutionOrder,
    ExecutionPlan,
    PlanEntry,
    StepId,
    StepName,
    ValidationReport,
)
from chain_sdk.chains.versioning import is_valid_version


class ChainValidationError(Exception):
    """Raised when a chain definition is invalid"""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = list(errors) if errors else [message]


class ChainInterpreter:
    """
    Interprets chain definitions and creates execution plans

    Responsibilities:
    1. Parse YAML / dict chain definitions
    2. Validate step lists and data mappings
    3. Run graph checks (cycles, reachability, sequential order)
    4. Create ExecutionPlan objects for the Chain Engine
    5. Assemble the input data for a step at run time
    """

    def load_from_yaml(self, yaml_path: Path) -> CreateChainRequest:
        """
        Load and parse chain definition from YAML file

        Args:
            yaml_path: Path to YAML file

        Returns:
            CreateChainRequest object

        Raises:
            ChainValidationError: If YAML is invalid or chain structure is wrong
        """
        try:
            with open(yaml_path, 'r') as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ChainValidationError(f"Invalid YAML: {e}")
        except FileNotFoundError:
            raise ChainValidationError(f"Chain file not found: {yaml_path}")

        if not isinstance(data, dict):
            raise ChainValidationError(f"Chain file must contain a mapping: {yaml_path}")

        return self.load_from_dict(data)

    def load_from_dict(self, data: Dict[str, Any]) -> CreateChainRequest:
        """
        Load chain definition from dictionary

        Raises:
            ChainValidationError: If chain structure is invalid
        """
        try:
            return CreateChainRequest(**data)
        except ValidationError as e:
            errors = [
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                for err in e.errors()
            ]
            raise ChainValidationError(f"Invalid chain definition: {'; '.join(errors)}", errors)

    def materialize_steps(self, definitions: Sequence[ChainStepDefinition], id_factory) -> List[ChainStep]:
        """
        Turn step definitions into steps with ids

        Steps without an explicit order take their list position.
        """
        steps = []
        for index, definition in enumerate(definitions):
            values = definition.model_dump()
            if values.get("order") is None:
                values["order"] = index
            steps.append(ChainStep(id=StepId(id_factory()), **values))
        return steps

    def validate_steps(self, steps: Sequence[ChainStepDefinition]) -> List[str]:
        """
        Validate a step list on its own

        Returns:
            List of error messages (empty when valid)
        """
        errors = []
        if not steps:
            errors.append("Chain must have at least one step")
            return errors

        seen = set()
        for step in steps:
            if step.name in seen:
                errors.append(f"Duplicate step name: {step.name}")
            seen.add(step.name)

        return errors

    def validate_data_mapping(
        self,
        mappings: Iterable[DataMappingEdge],
        steps: Sequence[ChainStepDefinition]
    ) -> List[str]:
        """
        Validate that mapping edges join two different, existing steps

        Returns:
            List of error messages (empty when valid)
        """
        errors = []
        step_names = {step.name for step in steps}

        for mapping in mappings:
            if mapping.from_step not in step_names:
                errors.append(f"Data mapping references non-existent step: {mapping.from_step}")
            if mapping.to_step not in step_names:
                errors.append(f"Data mapping references non-existent step: {mapping.to_step}")
            if mapping.from_step == mapping.to_step:
                errors.append(f"Data mapping cannot map step to itself: {mapping.from_step}")

        return errors

    def validate_definition(
        self,
        steps: Sequence[ChainStepDefinition],
        mappings: Iterable[DataMappingEdge]
    ) -> List[str]:
        """Structural checks run when a chain is created or updated"""
        return self.validate_steps(steps) + self.validate_data_mapping(mappings, steps)

    def analyze(self, chain: Chain) -> ValidationReport:
        """
        Run every check that does not need external collaborators

        Covers step count, duplicate names, mapping endpoints, circular
        dependencies, reachability, sequential order and the chain version.
        Domain problems are reported, never raised.

        Args:
            chain: Chain snapshot

        Returns:
            ValidationReport
        """
        report = ValidationReport()
        report.errors.extend(self.validate_definition(chain.steps, chain.data_mapping))

        graph = build_dependency_graph(chain.steps, chain.data_mapping)

        cycles = detect_circular_dependencies(chain.steps, graph)
        if cycles:
            report.errors.append(f"Circular dependencies detected: {', '.join(cycles)}")

        reachability = check_reachability(chain.steps, graph, chain.execution_order)
        if not reachability.applicable:
            report.skipped_checks.append(reachability.reason)
        elif reachability.unreachable:
            report.warnings.append(
                f"Potentially unreachable steps: {', '.join(reachability.unreachable)}"
            )

        if chain.execution_order == ExecutionOrder.SEQUENTIAL:
            report.warnings.extend(check_sequential_order(chain.steps))

        if not is_valid_version(chain.version):
            report.errors.append(f"Invalid version format: {chain.version}")

        return report

    def create_execution_plan(self, chain: Chain) -> ExecutionPlan:
        """
        Create execution plan from a chain snapshot

        Builds the name-keyed dependency graph and resolves names to step ids.
        Mappings naming unknown steps are left out; the plan does not
        validate and does not sort.

        Args:
            chain: Chain snapshot

        Returns:
            ExecutionPlan with one entry per step, in chain step order
        """
        graph = build_dependency_graph(chain.steps, chain.data_mapping)
        ids_by_name: Dict[str, StepId] = {}
        for step in chain.steps:
            ids_by_name.setdefault(step.name, step.id)

        entries = []
        for step in chain.steps:
            entries.append(PlanEntry(
                step_id=step.id,
                step_name=StepName(step.name),
                order=step.order,
                dependencies=[ids_by_name[name] for name in graph.dependencies_of(step.name)],
                dependents=[ids_by_name[name] for name in graph.dependents_of(step.name)],
            ))

        return ExecutionPlan(
            chain_id=chain.id,
            chain_name=chain.name,
            execution_order=chain.execution_order,
            steps=entries,
        )

    def publish_output(self, step: ChainStep, output: Any) -> Any:
        """
        Rename a step's raw output keys according to its output mapping

        Non-dict outputs are published unchanged.
        """
        if isinstance(output, dict) and step.output_mapping:
            return {step.output_mapping.get(key, key): value for key, value in output.items()}
        return output

    def build_step_input(
        self,
        step: ChainStep,
        chain: Chain,
        published_outputs: Dict[str, Any],
        initial_data: Optional[Dict[str, Any]] = None,
        step_overrides: Optional[Dict[str, Dict[str, Any]]] = None
    ) -> Dict[str, Any]:
        """
        Assemble the input data for a step

        Order of precedence (later wins): initial data, fields mapped from
        dependency outputs, the step's input mapping, step overrides.

        Args:
            step: Step about to run
            chain: Chain snapshot the step belongs to
            published_outputs: Step name -> published output of finished steps
            initial_data: Execution-wide initial data
            step_overrides: Step name -> values overlaid on that step's input

        Returns:
            Input data dict

        Example:
            >>> # fetch published {"body": "..."}; mapping fetch -> parse {"body": "text"}
            >>> build_step_input(parse_step, chain, {"fetch": {"body": "hi"}})
            {"text": "hi"}
        """
        data = dict(initial_data or {})

        for edge in chain.data_mapping:
            if edge.to_step != step.name or edge.from_step not in published_outputs:
                continue
            published = published_outputs[edge.from_step]

            if not edge.field_mapping:
                if isinstance(published, dict):
                    data.update(published)
                else:
                    data[edge.from_step] = published
                continue

            if not isinstance(published, dict):
                continue
            for output_field, input_field in edge.field_mapping.items():
                if output_field in published:
                    data[input_field] = published[output_field]

        for input_key, source_key in (step.input_mapping or {}).items():
            if source_key in data:
                data[input_key] = data[source_key]

        if step_overrides and step.name in step_overrides:
            data.update(step_overrides[step.name])

        return data

    def get_execution_summary(self, plan: ExecutionPlan) -> Dict[str, Any]:
        """
        Get human-readable summary of execution plan

        Args:
            plan: Execution plan

        Returns:
            Summary dict with execution details
        """
        names = {entry.step_id: entry.step_name for entry in plan.steps}
        groups = plan.get_parallel_groups()
        return {
            "chain_name": plan.chain_name,
            "execution_order": plan.execution_order.value,
            "total_steps": len(plan.steps),
            "total_levels": len(groups),
            "parallel_groups": [[names[step_id] for step_id in group] for group in groups],
            "sequence": [entry.step_name for entry in sorted(plan.steps, key=lambda e: e.order)],
        }
