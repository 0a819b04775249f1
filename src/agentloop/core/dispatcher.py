"""
Tool Dispatcher

Executes a batch of tool calls concurrently under a parallelism bound and
returns exactly one ToolResult per call, in call order. Each call is
resolved through the registry, validated against its schema, authorized by
the policy gate (possibly waiting for approval) and then invoked under the
tool timeout. Handler faults become failed results; they never escape.

On stop, in-flight handlers get the cancellation signal and a bounded grace
period to unwind. Handlers still running afterwards are left alone (never
force-terminated) and their slots are recorded as cancelled-timeout.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable, Sequence

import structlog

from agentloop.core.cancellation import CancellationToken
from agentloop.core.domain.config import AgentConfig
from agentloop.core.domain.errors import PolicyDenied, ToolCancelledError, ToolNotFound
from agentloop.core.domain.events import OutputEvent
from agentloop.core.domain.messages import ToolCall, ToolResult
from agentloop.core.interfaces.tools import ToolProtocol
from agentloop.core.policy import APPROVAL_FLAG, ApprovalBroker, PolicyGate, Verdict
from agentloop.core.registry import ToolRegistry, validate_arguments

EventSink = Callable[[OutputEvent], Awaitable[None]]


class ToolDispatcher:
    """Concurrent, cancellable executor for tool call batches."""

    def __init__(
        self,
        registry: ToolRegistry,
        policy_gate: PolicyGate,
        config: AgentConfig,
        cancel_token: CancellationToken,
        approval_broker: ApprovalBroker | None = None,
        emit: EventSink | None = None,
    ):
        """
        Args:
            registry: Registry used to resolve tool names
            policy_gate: Gate applied to every call before execution
            config: Session configuration (policies, timeouts, parallelism)
            cancel_token: Session-wide cancellation signal
            approval_broker: Parking place for calls awaiting approval
            emit: Async sink for ApprovalRequest events
        """
        self.registry = registry
        self.policy_gate = policy_gate
        self.config = config
        self.cancel_token = cancel_token
        self.approval_broker = approval_broker or ApprovalBroker()
        self._emit = emit
        self._orphans: set[asyncio.Task] = set()
        self.logger = structlog.get_logger().bind(component="tool_dispatcher")

    @property
    def orphaned_tasks(self) -> int:
        """Handlers that ignored cancellation and are still running."""
        return len(self._orphans)

    async def execute_batch(self, calls: Sequence[ToolCall], turn_id: int = 0) -> list[ToolResult]:
        """
        Execute a batch of calls.

        Args:
            calls: Ordered tool calls from one model response
            turn_id: Turn the batch belongs to (tagged on emitted events)

        Returns:
            Results with the same length and order as ``calls``
        """
        if not calls:
            return []

        limit = min(len(calls), self.config.max_parallel_tools)
        semaphore = asyncio.Semaphore(limit)
        results: list[ToolResult | None] = [None] * len(calls)

        async def run(index: int, call: ToolCall) -> None:
            async with semaphore:
                if self.cancel_token.is_cancelled:
                    results[index] = ToolResult.cancelled_result()
                    return
                results[index] = await self._execute_one(call, turn_id)

        self.logger.info("batch_started", turn_id=turn_id, calls=len(calls), parallelism=limit)
        tasks = [asyncio.create_task(run(i, call)) for i, call in enumerate(calls)]
        try:
            unfinished = await self._join(tasks)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            raise

        for task in unfinished:
            self._orphans.add(task)
            task.add_done_callback(self._orphans.discard)
        if unfinished:
            self.logger.warning(
                "tool_grace_period_exceeded",
                turn_id=turn_id,
                unfinished=len(unfinished),
                grace_period=self.config.cancel_grace_period,
            )

        final: list[ToolResult] = []
        for index, (task, result) in enumerate(zip(tasks, results)):
            if task in unfinished:
                final.append(ToolResult.cancelled_result(timed_out=True))
            elif result is None:
                error = task.exception() if not task.cancelled() else None
                self.logger.error("tool_task_crashed", call_id=calls[index].id, error=str(error))
                final.append(ToolResult.failure(f"Tool execution crashed: {error}"))
            else:
                final.append(result)

        self.logger.info(
            "batch_completed",
            turn_id=turn_id,
            succeeded=sum(1 for r in final if r.success),
            failed=sum(1 for r in final if not r.success),
        )
        return final

    async def _join(self, tasks: list[asyncio.Task]) -> set[asyncio.Task]:
        """Wait for all tasks; once cancelled, wait at most the grace period."""
        pending: set[asyncio.Task] = set(tasks)
        cancel_wait = asyncio.ensure_future(self.cancel_token.wait())
        try:
            while pending:
                done, _ = await asyncio.wait(
                    pending | {cancel_wait}, return_when=asyncio.FIRST_COMPLETED
                )
                pending -= done
                if cancel_wait in done and pending:
                    self.logger.info("batch_cancelling", in_flight=len(pending))
                    _, pending = await asyncio.wait(pending, timeout=self.config.cancel_grace_period)
                    break
        finally:
            cancel_wait.cancel()
        return pending

    async def _execute_one(self, call: ToolCall, turn_id: int) -> ToolResult:
        if call.argument_error:
            return ToolResult.failure(call.argument_error)

        try:
            tool = self.registry.resolve(call.name)
        except ToolNotFound as e:
            self.logger.warning("tool_not_found", tool=call.name, call_id=call.id)
            return ToolResult.failure(str(e))

        arguments = {k: v for k, v in call.arguments.items() if k != APPROVAL_FLAG}
        error = validate_arguments(tool.parameters_schema, arguments)
        if error:
            return ToolResult.failure(f"Invalid parameters: {error}")

        decision = self.policy_gate.authorize(
            call, tool, self.config.sandbox_policy, self.config.approval_policy
        )
        if decision.verdict == Verdict.DENY:
            return ToolResult.denied(PolicyDenied(call.name, decision.reason or "not allowed"))
        if decision.verdict == Verdict.REQUIRE_APPROVAL:
            refusal = await self._await_approval(call, decision.token, turn_id)
            if refusal is not None:
                return refusal

        if self.cancel_token.is_cancelled:
            return ToolResult.cancelled_result()
        return await self._invoke(tool, call, arguments)

    async def _await_approval(self, call: ToolCall, token: str, turn_id: int) -> ToolResult | None:
        """Park the call until decided. Returns None when approved."""
        future = self.approval_broker.register(token, call)
        cancel_wait = asyncio.ensure_future(self.cancel_token.wait())
        try:
            if self._emit is not None:
                await self._emit(OutputEvent.approval_request(call, token, turn_id))
            done, _ = await asyncio.wait(
                {future, cancel_wait},
                timeout=self.config.approval_timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            self.approval_broker.discard(token, "cancelled")
            raise
        finally:
            cancel_wait.cancel()

        if future in done and not future.cancelled():
            decision = future.result()
            if decision.approved:
                return None
            return ToolResult.denied(PolicyDenied(call.name, decision.reason or "approval denied"))

        if self.cancel_token.is_cancelled:
            self.approval_broker.discard(token, "cancelled")
            return ToolResult.cancelled_result()

        self.approval_broker.discard(token, "timed_out")
        return ToolResult.denied(PolicyDenied(call.name, "approval request timed out"))

    async def _invoke(self, tool: ToolProtocol, call: ToolCall, arguments: dict) -> ToolResult:
        start = time.perf_counter()
        self.logger.info("tool_execute", tool=call.name, call_id=call.id, args=arguments)
        try:
            result = await asyncio.wait_for(
                tool.invoke(arguments, self.cancel_token), timeout=self.config.tool_timeout
            )
        except asyncio.TimeoutError:
            result = ToolResult.failure(f"Tool timed out after {self.config.tool_timeout}s")
        except ToolCancelledError:
            result = ToolResult.cancelled_result()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.error(
                "tool_execution_exception",
                tool=call.name,
                call_id=call.id,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            result = ToolResult.failure(f"{type(e).__name__}: {e}")

        if not isinstance(result, ToolResult):
            result = ToolResult.failure(f"Tool returned invalid type: {type(result).__name__}")

        self.logger.info(
            "tool_complete",
            tool=call.name,
            call_id=call.id,
            status=result.status.value,
            duration_ms=round((time.perf_counter() - start) * 1000, 1),
        )
        return result
