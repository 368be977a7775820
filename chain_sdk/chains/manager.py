"""
Chain Manager

Create, read, update, delete, validate, plan and execute chains. The manager
owns the lifecycle rules (validation before persisting, version bumps,
per-chain serialization of writes) and delegates storage to a
ChainRepository, resource lookups to a ResourceResolver and execution to
the ChainEngine.
"""

import asyncio
import inspect
import logging
import uuid
import weakref
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from chain_sdk.chains.engine import ChainEngine
from chain_sdk.chains.interpreter import ChainInterpreter, ChainValidationError
from chain_sdk.chains.models import (
    Chain,
    ChainExecutionRequest,
    ChainExecutionResult,
    ChainFilters,
    ChainListOptions,
    ChainStep,
    CreateChainRequest,
    ExecutionPlan,
    StepType,
    UpdateChainRequest,
    ValidationReport,
)
from chain_sdk.chains.repository import ChainRepository
from chain_sdk.chains.resources import (
    EchoStepRunner,
    ResourceNotFoundError,
    ResourceResolver,
    StepRunner,
)
from chain_sdk.chains.versioning import INITIAL_VERSION, increment_version, is_valid_version

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class ChainUsageError(ValueError):
    """Raised when a caller passes a malformed id, version or payload"""
    pass


class ChainNotFoundError(LookupError):
    """Raised when a chain (or a chain version) does not exist"""

    def __init__(self, chain_id: str, version: Optional[str] = None):
        self.chain_id = chain_id
        self.version = version
        if version:
            super().__init__(f"Chain with id '{chain_id}' has no version '{version}'")
        else:
            super().__init__(f"Chain with id '{chain_id}' not found")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChainManager:
    """
    Entry point for working with chains

    Example:
        manager = ChainManager(InMemoryChainRepository(), resolver, runner)
        chain = await manager.create_chain({...})
        report = await manager.validate_chain(chain.id)
        result = await manager.execute_chain({"chain_id": chain.id})
    """

    def __init__(
        self,
        repository: ChainRepository,
        resolver: ResourceResolver,
        runner: Optional[StepRunner] = None,
        engine: Optional[ChainEngine] = None,
        interpreter: Optional[ChainInterpreter] = None,
        clock: Callable[[], datetime] = _utcnow,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4())
    ):
        self.repository = repository
        self.resolver = resolver
        self.interpreter = interpreter or ChainInterpreter()
        self.engine = engine or ChainEngine(
            resolver,
            runner or EchoStepRunner(),
            interpreter=self.interpreter
        )
        self.clock = clock
        self.id_factory = id_factory
        # Locks live only while some caller holds them
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    async def aclose(self) -> None:
        """Release the resolver's HTTP client and the repository's engine, when they have one"""
        close = getattr(self.resolver, "close", None)
        if close is not None:
            result = close()
            if inspect.isawaitable(result):
                await result
        dispose = getattr(self.repository, "dispose", None)
        if dispose is not None:
            dispose()
        logger.info("Chain manager closed")

    async def __aenter__(self) -> "ChainManager":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    async def create_chain(self, request: Union[CreateChainRequest, Dict[str, Any]]) -> Chain:
        """
        Validate and persist a new chain

        Raises:
            ChainUsageError: If the payload is malformed
            ChainValidationError: If steps, mappings or resource references are invalid
        """
        request = _coerce(CreateChainRequest, request)

        errors = self.interpreter.validate_definition(request.steps, request.data_mapping)
        if errors:
            raise ChainValidationError(f"Chain validation failed: {', '.join(errors)}", errors)

        steps = self.interpreter.materialize_steps(request.steps, self.id_factory)
        await self._require_resources(steps)

        now = self.clock()
        chain = Chain(
            id=self.id_factory(),
            name=request.name,
            description=request.description,
            label=request.label,
            tags=request.tags,
            steps=steps,
            execution_order=request.execution_order,
            data_mapping=request.data_mapping,
            author=request.author,
            created_at=now,
            updated_at=now,
            version=INITIAL_VERSION,
        )
        stored = self.repository.put(chain)
        logger.info(f"Chain created: {stored.id} ({stored.name}) with {len(steps)} step(s)")
        return stored

    async def get_chain(self, chain_id: str, version: Optional[str] = None) -> Chain:
        """
        Get a chain snapshot

        Raises:
            ChainUsageError: If the id is empty or the version malformed
            ChainNotFoundError: If the chain/version does not exist
        """
        _require_chain_id(chain_id)
        _require_version(version)
        return self._load(chain_id, version)

    async def update_chain(
        self,
        chain_id: str,
        request: Union[UpdateChainRequest, Dict[str, Any]]
    ) -> Chain:
        """
        Apply an update and store it as a new minor version

        The update is validated as a whole against the merged chain; a
        rejected update stores nothing. Updates of the same chain are
        serialized.

        Raises:
            ChainUsageError: If the id or payload is malformed
            ChainNotFoundError: If the chain does not exist
            ChainValidationError: If the merged chain is invalid
        """
        _require_chain_id(chain_id)
        request = _coerce(UpdateChainRequest, request)
        changed = request.model_fields_set

        async with self._lock_for(chain_id):
            existing = self._load(chain_id)

            steps: Sequence[ChainStep] = existing.steps
            if "steps" in changed and request.steps is not None:
                steps = self.interpreter.materialize_steps(request.steps, self.id_factory)
            data_mapping = existing.data_mapping
            if "data_mapping" in changed and request.data_mapping is not None:
                data_mapping = request.data_mapping

            if changed & {"steps", "data_mapping"}:
                errors = self.interpreter.validate_definition(steps, data_mapping)
                if errors:
                    raise ChainValidationError(f"Chain validation failed: {', '.join(errors)}", errors)
            if "steps" in changed:
                await self._require_resources(steps)

            updates: Dict[str, Any] = {
                "steps": list(steps),
                "data_mapping": list(data_mapping),
                "updated_at": self.clock(),
                "version": increment_version(existing.version, "minor"),
            }
            # description/label may be cleared, tags/execution_order only replaced
            for name in ("description", "label"):
                if name in changed:
                    updates[name] = getattr(request, name)
            for name in ("tags", "execution_order"):
                if name in changed and getattr(request, name) is not None:
                    updates[name] = getattr(request, name)

            stored = self.repository.put(existing.model_copy(update=updates))

        logger.info(f"Chain updated: {stored.id} {existing.version} -> {stored.version}")
        return stored

    async def delete_chain(self, chain_id: str) -> None:
        """
        Delete a chain with all its versions

        Raises:
            ChainUsageError: If the id is empty
            ChainNotFoundError: If the chain does not exist
        """
        _require_chain_id(chain_id)
        async with self._lock_for(chain_id):
            if not self.repository.delete(chain_id):
                raise ChainNotFoundError(chain_id)
        self._locks.pop(chain_id, None)
        logger.info(f"Chain deleted: {chain_id}")

    async def list_chains(
        self,
        options: Union[ChainListOptions, Dict[str, Any], None] = None
    ) -> List[Chain]:
        """List chains with filtering, sorting and pagination"""
        options = _coerce(ChainListOptions, options) if options is not None else ChainListOptions()

        chains = self.repository.list()
        if options.filters:
            chains = [c for c in chains if _matches(c, options.filters, case_sensitive=True)]

        sort_keys = {
            "name": lambda c: c.name,
            "created_at": lambda c: c.created_at,
            "updated_at": lambda c: c.updated_at,
            "step_count": lambda c: c.step_count,
        }
        chains.sort(key=sort_keys[options.sort_by], reverse=options.sort_order == "desc")

        start = (options.page - 1) * options.limit
        return chains[start:start + options.limit]

    async def search_chains(self, query: Union[ChainFilters, Dict[str, Any]]) -> List[Chain]:
        """Search every chain; name matching is case-insensitive"""
        query = _coerce(ChainFilters, query)
        return [c for c in self.repository.list() if _matches(c, query, case_sensitive=False)]

    async def clone_chain(
        self,
        source_id: str,
        new_name: str,
        version: Optional[str] = None,
        description: Optional[str] = None,
        tags: Optional[List[str]] = None
    ) -> Chain:
        """Create a new chain from a stored snapshot"""
        source = await self.get_chain(source_id, version)
        return await self.create_chain({
            "name": new_name,
            "description": description or f"Clone of {source.name}",
            "label": source.label,
            "tags": tags if tags is not None else source.tags,
            "steps": [step.to_definition() for step in source.steps],
            "execution_order": source.execution_order,
            "data_mapping": source.data_mapping,
            "author": source.author,
        })

    async def list_chain_versions(self, chain_id: str) -> List[str]:
        _require_chain_id(chain_id)
        versions = self.repository.versions(chain_id)
        if not versions:
            raise ChainNotFoundError(chain_id)
        return versions

    # ------------------------------------------------------------------
    # Validation, planning, execution
    # ------------------------------------------------------------------

    async def validate_chain(self, chain_id: str, version: Optional[str] = None) -> ValidationReport:
        """
        Validate a stored chain

        Domain problems (missing chain, dangling resources, cycles, empty
        chain) are reported in the result; only usage errors raise.

        Raises:
            ChainUsageError: If the id is empty or the version malformed
        """
        _require_chain_id(chain_id)
        _require_version(version)

        try:
            chain = self._load(chain_id, version)
        except ChainNotFoundError as e:
            return ValidationReport(errors=[f"Failed to retrieve chain: {e}"])

        return await self.validate_chain_snapshot(chain)

    async def validate_chain_snapshot(self, chain: Chain) -> ValidationReport:
        """Validate an already loaded snapshot (resources + graph checks)"""
        resource_errors = await self._check_resources(chain.steps)
        report = self.interpreter.analyze(chain)
        report.errors[:0] = resource_errors
        return report

    async def get_chain_execution_plan(self, chain_id: str, version: Optional[str] = None) -> ExecutionPlan:
        chain = await self.get_chain(chain_id, version)
        return self.interpreter.create_execution_plan(chain)

    async def get_chain_dependencies(self, chain_id: str, version: Optional[str] = None) -> Dict[str, Any]:
        """
        List the prompts and templates a chain references

        Returns:
            Dict with 'prompts', 'templates' (id, version, step_name) and 'total_dependencies'
        """
        chain = await self.get_chain(chain_id, version)

        prompts = []
        templates = []
        for step in chain.steps:
            reference = {
                "id": step.resource_ref.resource_id,
                "version": step.resource_ref.resource_version,
                "step_name": step.name,
            }
            if step.type == StepType.PROMPT:
                prompts.append(reference)
            else:
                templates.append(reference)

        return {
            "prompts": prompts,
            "templates": templates,
            "total_dependencies": len(prompts) + len(templates),
        }

    async def execute_chain(
        self,
        request: Union[ChainExecutionRequest, Dict[str, Any]]
    ) -> ChainExecutionResult:
        """
        Validate and execute a chain

        The chain is read once; validation and execution both use that
        snapshot.

        Raises:
            ChainUsageError: If the request is malformed
            ChainNotFoundError: If the chain/version does not exist
            ChainValidationError: If the chain is invalid; no step runs
        """
        request = _coerce(ChainExecutionRequest, request)
        _require_chain_id(request.chain_id)
        _require_version(request.version)

        chain = self._load(request.chain_id, request.version)

        report = await self.validate_chain_snapshot(chain)
        if not report.valid:
            logger.info(f"Refusing to execute invalid chain {chain.id}: {report.errors}")
            raise ChainValidationError(
                f"Chain validation failed: {', '.join(report.errors)}",
                report.errors
            )

        return await self.engine.execute(chain, request)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _load(self, chain_id: str, version: Optional[str] = None) -> Chain:
        chain = self.repository.get(chain_id, version)
        if chain is None:
            raise ChainNotFoundError(chain_id, version)
        return chain

    def _lock_for(self, chain_id: str) -> asyncio.Lock:
        lock = self._locks.get(chain_id)
        if lock is None:
            lock = self._locks[chain_id] = asyncio.Lock()
        return lock

    async def _check_resources(self, steps: Sequence[ChainStep]) -> List[str]:
        """Resolve every step's resource concurrently; one error line per failing step"""

        async def check(step: ChainStep) -> Optional[str]:
            try:
                await self.resolver.resolve(
                    step.type,
                    step.resource_ref.resource_id,
                    step.resource_ref.resource_version,
                )
            except ResourceNotFoundError:
                return (
                    f"Step '{step.name}' references non-existent "
                    f"{step.type.value}: {step.resource_ref.resource_id}"
                )
            except Exception as e:
                logger.warning(f"Resolving {step.type.value} '{step.resource_ref.resource_id}' failed: {e}")
                return (
                    f"Step '{step.name}' could not resolve {step.type.value} "
                    f"'{step.resource_ref.resource_id}': {e}"
                )
            return None

        results = await asyncio.gather(*(check(step) for step in steps))
        return [error for error in results if error]

    async def _require_resources(self, steps: Sequence[ChainStep]) -> None:
        errors = await self._check_resources(steps)
        if errors:
            raise ChainValidationError(f"Resource validation failed: {', '.join(errors)}", errors)


def _require_chain_id(chain_id) -> None:
    if not isinstance(chain_id, str) or not chain_id.strip():
        raise ChainUsageError("Chain ID is required")


def _require_version(version) -> None:
    if version is not None and not is_valid_version(version):
        raise ChainUsageError(f"Invalid version format: {version}")


def _coerce(model: Type[ModelT], payload) -> ModelT:
    """Accept a model instance or a plain dict"""
    if isinstance(payload, model):
        return payload
    if payload is None:
        raise ChainUsageError(f"{model.__name__} is required")
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        details = ", ".join(
            f"{'.'.join(str(p) for p in err['loc']) or model.__name__}: {err['msg']}"
            for err in e.errors()
        )
        raise ChainUsageError(f"Validation failed: {details}") from e


def _matches(chain: Chain, filters: ChainFilters, case_sensitive: bool) -> bool:
    if filters.name:
        if case_sensitive:
            if filters.name not in chain.name:
                return False
        elif filters.name.lower() not in chain.name.lower():
            return False

    if filters.tags and not any(tag in chain.tags for tag in filters.tags):
        return False
    if filters.author and chain.author != filters.author:
        return False
    if filters.execution_order and chain.execution_order != filters.execution_order:
        return False
    if filters.has_step_type and not any(s.type == filters.has_step_type for s in chain.steps):
        return False
    if filters.step_count_min is not None and chain.step_count < filters.step_count_min:
        return False
    if filters.step_count_max is not None and chain.step_count > filters.step_count_max:
        return False
    if filters.created_after and chain.created_at < filters.created_after:
        return False
    if filters.created_before and chain.created_at > filters.created_before:
        return False

    return True
