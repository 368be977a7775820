"""
Chain Service Layer

Provides convenient functions for loading, validating and planning chains
without wiring a ChainManager.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List

from chain_sdk.chains.interpreter import ChainInterpreter, ChainValidationError
from chain_sdk.chains.models import Chain, CreateChainRequest, ExecutionPlan, ValidationReport

logger = logging.getLogger(__name__)

# Global interpreter instance
_interpreter = ChainInterpreter()


def load_chain(yaml_path: str | Path) -> CreateChainRequest:
    """
    Load a chain definition from a YAML file

    Args:
        yaml_path: Path to chain YAML file

    Returns:
        CreateChainRequest ready for ChainManager.create_chain

    Raises:
        ChainValidationError: If chain file is invalid

    Example:
        request = load_chain("chains/summarize.yaml")
        chain = await manager.create_chain(request)
    """
    return _interpreter.load_from_yaml(Path(yaml_path))


def load_chain_from_dict(data: Dict[str, Any]) -> CreateChainRequest:
    """
    Load a chain definition from a dictionary

    Raises:
        ChainValidationError: If chain structure is invalid

    Example:
        request = load_chain_from_dict({
            "name": "summarize",
            "execution_order": "sequential",
            "steps": [
                {"name": "fetch", "type": "prompt", "resource_ref": {"resource_id": "p1"}}
            ]
        })
    """
    return _interpreter.load_from_dict(data)


def create_execution_plan(chain: Chain) -> ExecutionPlan:
    """
    Create an execution plan from a chain snapshot

    Example:
        plan = create_execution_plan(chain)
        print(f"Parallel groups: {plan.get_parallel_groups()}")
    """
    return _interpreter.create_execution_plan(chain)


def validate_chain(chain: Chain) -> ValidationReport:
    """
    Validate a chain snapshot without checking resource references

    Use ChainManager.validate_chain for the full validation including
    resource lookups.

    Example:
        report = validate_chain(chain)
        if not report.valid:
            print(f"Errors: {report.errors}")
    """
    return _interpreter.analyze(chain)


def get_execution_summary(plan: ExecutionPlan) -> Dict[str, Any]:
    """
    Get a human-readable summary of an execution plan

    Example:
        summary = get_execution_summary(create_execution_plan(chain))
        print(f"Total steps: {summary['total_steps']}")
        print(f"Parallel groups: {summary['parallel_groups']}")
    """
    return _interpreter.get_execution_summary(plan)


def discover_chains(directory: str | Path) -> List[Dict[str, Any]]:
    """
    Discover all chain YAML files in a directory

    Invalid files are logged and skipped.

    Args:
        directory: Directory to search for chain files

    Returns:
        List of chain summaries with name, path, and basic info
    """
    directory = Path(directory)

    if not directory.exists():
        return []

    chain_files = sorted(list(directory.glob("**/*.yaml")) + list(directory.glob("**/*.yml")))

    chains = []
    for yaml_file in chain_files:
        try:
            request = load_chain(yaml_file)
        except ChainValidationError as e:
            logger.warning(f"Skipping invalid chain file {yaml_file}: {e}")
            continue

        chains.append({
            "name": request.name,
            "description": request.description,
            "path": str(yaml_file),
            "steps": len(request.steps),
            "execution_order": request.execution_order.value,
            "tags": request.tags,
        })

    return chains
