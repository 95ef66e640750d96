from typing import Dict, Any, Optional
import asyncio
import inspect
import time
import structlog

from tabpilot.domain.models.agent_state import AgentContext
from tabpilot.domain.models.tool import Tool, ToolResult, error_result
from tabpilot.infrastructure.observability.logging import agent_logger, MetricsCollector

logger = structlog.get_logger(__name__)

DEFAULT_TOOL_TIMEOUT = 15.0


class ToolTimeoutError(Exception):
    """Raised when a capability does not settle within its execution bound"""


# Execution with a timeout race & monitoring
class ToolExecutor:
    """Runs a tool capability against a fixed execution bound.

    The capability runs as its own task and is raced against the timeout with
    ``asyncio.wait``. When the timeout wins the task is left running: its
    eventual result is discarded. Capabilities that never observe
    cancellation can therefore keep holding resources after dispatch has
    given up on them.
    """

    def __init__(self, timeout: float = DEFAULT_TOOL_TIMEOUT, metrics: Optional[MetricsCollector] = None):
        self.timeout = timeout
        self.metrics = metrics or MetricsCollector()

    async def execute_tool(
        self,
        tool: Tool,
        parameters: Dict[str, Any],
        context: AgentContext,
        call_id: str = ""
    ) -> ToolResult:
        started = time.perf_counter()

        try:
            with structlog.contextvars.bound_contextvars(call_id=call_id or None):
                result = await self._run_with_timeout(tool, parameters, context)

        except ToolTimeoutError:
            logger.warning("Tool timed out", tool_name=tool.name, timeout=self.timeout)
            result = error_result(
                f'Tool "{tool.name}" timed out. The operation took too long.',
                ["Try with simpler input", "Check your network connection"]
            )
            self.metrics.increment_counter("tool.timeout", tags={"tool": tool.name})
        except Exception as e:
            logger.error("Tool execution failed", tool_name=tool.name, error=str(e))
            result = error_result(
                f"Tool execution failed: {e}",
                ["Try again or use a different approach"]
            )
            self.metrics.increment_counter("tool.failure", tags={"tool": tool.name})

        duration_ms = (time.perf_counter() - started) * 1000
        self.metrics.record_latency(f"tool.{tool.name}", duration_ms)
        agent_logger.tool_executed(
            tool_name=tool.name,
            call_id=call_id,
            parameters=parameters,
            duration_ms=duration_ms,
            success=result.success,
            display_text=result.display_text,
            error=result.error
        )
        return result

    async def _run_with_timeout(self, tool: Tool, parameters: Dict[str, Any], context: AgentContext) -> ToolResult:
        outcome = tool.execute(parameters, context)
        if not inspect.isawaitable(outcome):
            return _coerce_result(outcome)

        task = asyncio.ensure_future(outcome)
        done, _ = await asyncio.wait({task}, timeout=self.timeout)
        if task not in done:
            # left running; late result is dropped
            task.add_done_callback(_discard_late_result)
            raise ToolTimeoutError(tool.name)

        return _coerce_result(task.result())


def _coerce_result(outcome: Any) -> ToolResult:
    if isinstance(outcome, ToolResult):
        return outcome
    if isinstance(outcome, dict):
        return ToolResult(**outcome)
    raise TypeError(f"tool returned {type(outcome).__name__}, expected ToolResult")


def _discard_late_result(task: "asyncio.Future") -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug("Late tool failure discarded", error=str(exc))
