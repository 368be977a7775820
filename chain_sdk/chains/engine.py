"""
Chain Engine

Executes chain plans with asyncio, either strictly in sequence or with each
step waiting only on the steps it depends on.
"""

import asyncio
import logging
import time
import uuid
from typing import Any, Callable, Dict, List, Optional

from chain_sdk.chains.interpreter import ChainInterpreter
from chain_sdk.chains.models import (
    Chain,
    ChainExecutionRequest,
    ChainExecutionResult,
    ChainStep,
    ExecutionOrder,
    ExecutionPlan,
    ExecutionStatus,
    PlanEntry,
    StepId,
    StepResult,
    StepStatus,
)
from chain_sdk.chains.resources import ResourceResolver, StepOutcome, StepRunner

logger = logging.getLogger(__name__)


class ChainEngine:
    """
    Engine for executing chains

    The engine does not validate: callers run validation first. It still
    never deadlocks on a cyclic plan, steps it cannot order are skipped.
    """

    def __init__(
        self,
        resolver: ResourceResolver,
        runner: StepRunner,
        interpreter: Optional[ChainInterpreter] = None,
        max_concurrency: Optional[int] = None,
        execution_logger_factory: Optional[Callable[[str, str], Any]] = None
    ):
        """
        Initialize chain engine

        Args:
            resolver: Resolves each step's prompt/template before it runs
            runner: Executes a step
            interpreter: Used for planning and input assembly
            max_concurrency: Cap on simultaneously running steps (parallel chains)
            execution_logger_factory: Called with (chain_id, execution_id) to get
                a per-execution event logger
        """
        if max_concurrency is not None and max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.resolver = resolver
        self.runner = runner
        self.interpreter = interpreter or ChainInterpreter()
        self.max_concurrency = max_concurrency
        self.execution_logger_factory = execution_logger_factory

    async def execute(self, chain: Chain, request: ChainExecutionRequest) -> ChainExecutionResult:
        """
        Execute a chain snapshot

        Args:
            chain: Chain snapshot, not re-read during execution
            request: Execution request (initial data, step overrides)

        Returns:
            ChainExecutionResult; step failures never raise
        """
        execution_id = str(uuid.uuid4())
        plan = self.interpreter.create_execution_plan(chain)
        run = _ChainRun(self, chain, plan, request, execution_id)

        logger.info(
            f"Executing chain {chain.id} ({chain.name}) as {execution_id}: "
            f"{len(chain.steps)} step(s), {chain.execution_order.value}"
        )
        run.event("log_chain_started", chain.name, chain.execution_order.value, len(chain.steps))

        start = time.perf_counter()
        if chain.execution_order == ExecutionOrder.SEQUENTIAL:
            await run.run_sequential()
        else:
            await run.run_parallel()
        total_ms = (time.perf_counter() - start) * 1000

        result = run.build_result(total_ms)
        logger.info(f"Chain {chain.id} execution {execution_id} finished: {result.status.value}")
        run.event("log_chain_completed", result.status.value, total_ms, result.error)
        return result


class _ChainRun:
    """State of one execution; discarded afterwards"""

    def __init__(
        self,
        engine: ChainEngine,
        chain: Chain,
        plan: ExecutionPlan,
        request: ChainExecutionRequest,
        execution_id: str
    ):
        self.engine = engine
        self.chain = chain
        self.plan = plan
        self.request = request
        self.execution_id = execution_id
        self.steps_by_id: Dict[StepId, ChainStep] = {step.id: step for step in chain.steps}
        self.results: Dict[StepId, StepResult] = {}
        self.published: Dict[str, Any] = {}
        self.execution_logger = None
        if engine.execution_logger_factory:
            self.execution_logger = engine.execution_logger_factory(chain.id, execution_id)

    def event(self, method: str, *args) -> None:
        """Forward an event to the execution logger; logging failures never stop the run"""
        if self.execution_logger is None:
            return
        try:
            getattr(self.execution_logger, method)(*args)
        except Exception as e:
            logger.warning(f"Execution logger {method} failed for {self.execution_id}: {e}")

    async def run_sequential(self) -> None:
        """Run steps one at a time by ascending order"""
        entries = sorted(self.plan.steps, key=lambda e: e.order)
        for entry in entries:
            blocker = self._blocking_dependency(entry)
            if blocker is not None:
                self._skip(entry, blocker)
                continue
            self._record(entry, await self._run_step(entry))

    async def run_parallel(self) -> None:
        """Run every step as soon as its own dependencies have finished"""
        schedulable = self._schedulable_steps()
        for entry in self.plan.steps:
            if entry.step_id not in schedulable:
                self._skip(entry, "unresolved or circular dependency")

        loop = asyncio.get_running_loop()
        done: Dict[StepId, asyncio.Future] = {
            step_id: loop.create_future() for step_id in schedulable
        }
        semaphore = (
            asyncio.Semaphore(self.engine.max_concurrency)
            if self.engine.max_concurrency else None
        )

        async def run_when_ready(entry: PlanEntry) -> None:
            try:
                if entry.dependencies:
                    await asyncio.gather(*(done[dep] for dep in entry.dependencies))
                blocker = self._blocking_dependency(entry)
                if blocker is not None:
                    self._skip(entry, blocker)
                elif semaphore is not None:
                    async with semaphore:
                        self._record(entry, await self._run_step(entry))
                else:
                    self._record(entry, await self._run_step(entry))
            finally:
                if not done[entry.step_id].done():
                    done[entry.step_id].set_result(None)

        await asyncio.gather(*(
            run_when_ready(entry) for entry in self.plan.steps if entry.step_id in schedulable
        ))

    def _schedulable_steps(self) -> set:
        """
        Steps whose dependency closure is acyclic (Kahn's algorithm)

        Steps on a cycle, or downstream of one, never reach in-degree zero.
        """
        pending = {entry.step_id: len(entry.dependencies) for entry in self.plan.steps}
        ready = [step_id for step_id, count in pending.items() if count == 0]
        schedulable = set()
        while ready:
            step_id = ready.pop()
            schedulable.add(step_id)
            for dependent in self.plan.get_entry(step_id).dependents:
                pending[dependent] -= 1
                if pending[dependent] == 0:
                    ready.append(dependent)
        return schedulable

    def _blocking_dependency(self, entry: PlanEntry) -> Optional[str]:
        """Reason the step cannot run, or None when every dependency succeeded"""
        for dep_id in entry.dependencies:
            dep_result = self.results.get(dep_id)
            dep_name = self.steps_by_id[dep_id].name
            if dep_result is None:
                return f"dependency '{dep_name}' has not run"
            if dep_result.status != StepStatus.SUCCESS:
                return f"dependency '{dep_name}' did not succeed ({dep_result.status.value})"
        return None

    def _skip(self, entry: PlanEntry, reason: str) -> None:
        logger.info(f"Skipping step '{entry.step_name}': {reason}")
        self.results[entry.step_id] = StepResult(
            step_id=entry.step_id,
            step_name=entry.step_name,
            status=StepStatus.SKIPPED,
            error=reason,
        )
        self.event("log_step_skipped", entry.step_name, reason)

    def _record(self, entry: PlanEntry, result: StepResult) -> None:
        self.results[entry.step_id] = result
        if result.status == StepStatus.SUCCESS:
            self.published[entry.step_name] = result.result

    async def _run_step(self, entry: PlanEntry) -> StepResult:
        """Resolve the step's resource and hand it to the runner"""
        step = self.steps_by_id[entry.step_id]
        input_data = self.engine.interpreter.build_step_input(
            step,
            self.chain,
            self.published,
            self.request.initial_data,
            self.request.step_overrides,
        )
        self.event("log_step_started", step.name, step.type.value, input_data)

        start = time.perf_counter()
        try:
            resource = await self.engine.resolver.resolve(
                step.type,
                step.resource_ref.resource_id,
                step.resource_ref.resource_version,
            )
            outcome = await self.engine.runner.run(step, resource, input_data)
            if not isinstance(outcome, StepOutcome):
                outcome = StepOutcome.success(outcome)
        except Exception as e:
            outcome = StepOutcome.failure(str(e) or type(e).__name__)
        elapsed_ms = (time.perf_counter() - start) * 1000

        if outcome.status == StepStatus.SUCCESS:
            published = self.engine.interpreter.publish_output(step, outcome.output)
            self.event("log_step_completed", step.name, elapsed_ms)
            return StepResult(
                step_id=step.id,
                step_name=entry.step_name,
                status=StepStatus.SUCCESS,
                result=published,
                execution_time_ms=elapsed_ms,
            )

        error = outcome.error or "step failed"
        logger.warning(f"Step '{step.name}' of chain {self.chain.id} failed: {error}")
        self.event("log_step_failed", step.name, error, elapsed_ms)
        return StepResult(
            step_id=step.id,
            step_name=entry.step_name,
            status=StepStatus.ERROR,
            error=error,
            execution_time_ms=elapsed_ms,
        )

    def build_result(self, total_ms: float) -> ChainExecutionResult:
        ordered: List[StepResult] = [self.results[entry.step_id] for entry in self.plan.steps]
        status = self._aggregate_status(ordered)

        error = None
        if status != ExecutionStatus.SUCCESS:
            failed = [r.step_name for r in ordered if r.status == StepStatus.ERROR]
            skipped = [r.step_name for r in ordered if r.status == StepStatus.SKIPPED]
            parts = []
            if failed:
                parts.append(f"failed: {', '.join(failed)}")
            if skipped:
                parts.append(f"skipped: {', '.join(skipped)}")
            error = f"{len(failed) + len(skipped)} of {len(ordered)} step(s) did not succeed ({'; '.join(parts)})"

        return ChainExecutionResult(
            chain_id=self.chain.id,
            execution_id=self.execution_id,
            status=status,
            results=dict(self.published),
            step_results=tuple(ordered),
            total_execution_time_ms=total_ms,
            error=error,
        )

    def _aggregate_status(self, ordered: List[StepResult]) -> ExecutionStatus:
        """
        success: every step succeeded
        error: nothing succeeded, or the first sequential step failed
        partial: anything else
        """
        if all(r.status == StepStatus.SUCCESS for r in ordered):
            return ExecutionStatus.SUCCESS
        if not any(r.status == StepStatus.SUCCESS for r in ordered):
            return ExecutionStatus.ERROR

        if self.chain.execution_order == ExecutionOrder.SEQUENTIAL:
            first = min(self.plan.steps, key=lambda e: e.order)
            if self.results[first.step_id].status == StepStatus.ERROR:
                return ExecutionStatus.ERROR

        return ExecutionStatus.PARTIAL
