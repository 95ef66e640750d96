from typing import Dict, Any, List, Optional, Callable
from pydantic import BaseModel, Field
import uuid
import structlog

from tabpilot.domain.context.state.state_manager import StateManager
from tabpilot.domain.context.state.workflow_variables import WorkflowVariables, VariableSource
from tabpilot.domain.models.agent_state import AgentContext
from tabpilot.domain.models.tool import ToolResult, create_tool_call
from tabpilot.domain.tool.tool_registry import ToolRegistry
from tabpilot.infrastructure.observability.logging import agent_logger

logger = structlog.get_logger(__name__)


class ChainStep(BaseModel):
    """One tool invocation in a multi-step chain"""
    tool: str
    parameters: Dict[str, Any] = Field(default_factory=dict, description="Values may contain {{placeholders}}")
    save_as: Optional[str] = Field(None, description="Variable receiving the result data")
    condition: Optional[str] = Field(None, description="Step is skipped when this evaluates false")
    for_each: Optional[str] = Field(None, description="Placeholder or variable name of a list to iterate")
    loop_variable: str = "item"


class StepOutcome(BaseModel):
    step: int
    tool: str
    skipped: bool = False
    loop_index: Optional[int] = None
    result: Optional[ToolResult] = None


class ChainRunResult(BaseModel):
    success: bool
    completed: bool = Field(description="False when the chain was stopped or failed before its last step")
    stopped: bool = False
    outcomes: List[StepOutcome] = Field(default_factory=list)
    variables: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None


class ToolChainRunner:
    """Runs tool chains through the registry, threading variables between steps.

    Each run uses the WorkflowVariables instance it is given; concurrent runs
    must not share one, since the loop stack is plain mutable state. With a
    StateManager, a run with a known ``workflow_id`` and no variables resumes
    from the stored map, and every run stores its exported map when it ends.
    """

    def __init__(self, registry: ToolRegistry, state_manager: Optional[StateManager] = None):
        self.registry = registry
        self.state_manager = state_manager

    async def run(
        self,
        steps: List[ChainStep],
        context: AgentContext,
        variables: Optional[WorkflowVariables] = None,
        should_stop: Optional[Callable[[], bool]] = None,
        workflow_id: Optional[str] = None
    ) -> ChainRunResult:
        if variables is None and workflow_id and self.state_manager is not None:
            variables = self.state_manager.restore_variables(workflow_id)
        variables = variables or WorkflowVariables()
        workflow_id = workflow_id or f"chain_{uuid.uuid4().hex[:12]}"

        with structlog.contextvars.bound_contextvars(workflow_id=workflow_id):
            result = await self._run(steps, context, variables, should_stop or (lambda: False), workflow_id)

        if self.state_manager is not None:
            self.state_manager.save_variables(workflow_id, variables)
        return result

    async def _run(
        self,
        steps: List[ChainStep],
        context: AgentContext,
        variables: WorkflowVariables,
        should_stop: Callable[[], bool],
        workflow_id: str
    ) -> ChainRunResult:
        outcomes: List[StepOutcome] = []

        for index, step in enumerate(steps):
            if should_stop():
                return self._finish(workflow_id, variables, outcomes, stopped=True)

            if step.condition and not variables.evaluate(step.condition):
                logger.debug("Chain step skipped", workflow_id=workflow_id, step=index, tool=step.tool)
                outcomes.append(StepOutcome(step=index, tool=step.tool, skipped=True))
                continue

            if step.for_each:
                failure, stopped = await self._run_loop(index, step, context, variables, should_stop, outcomes)
            else:
                result = await self._run_step(step, context, variables)
                outcomes.append(StepOutcome(step=index, tool=step.tool, result=result))
                failure = None if result.success else result
                stopped = False

            if stopped:
                return self._finish(workflow_id, variables, outcomes, stopped=True)
            if failure is not None:
                return self._finish(workflow_id, variables, outcomes, error=failure.error)

            agent_logger.workflow_transition(
                workflow_id=workflow_id,
                from_node=f"step_{index}",
                to_node=f"step_{index + 1}" if index + 1 < len(steps) else "end",
                condition=step.condition
            )

        return self._finish(workflow_id, variables, outcomes, completed=True)

    async def _run_loop(
        self,
        index: int,
        step: ChainStep,
        context: AgentContext,
        variables: WorkflowVariables,
        should_stop: Callable[[], bool],
        outcomes: List[StepOutcome]
    ):
        items = self._loop_items(step.for_each, variables)
        if not items:
            return None, False

        collected = []
        variables.enter_loop(step.loop_variable, items)
        try:
            while True:
                result = await self._run_step(step, context, variables, save=False)
                outcomes.append(StepOutcome(
                    step=index,
                    tool=step.tool,
                    loop_index=variables.get_loop_index(),
                    result=result
                ))
                if not result.success:
                    return result, False
                collected.append(result.data)

                if not variables.next_loop_item():
                    break
                if should_stop():
                    return None, True
        finally:
            variables.exit_loop()

        if step.save_as:
            variables.set(step.save_as, collected, source=VariableSource.COMPUTED)
        return None, False

    async def _run_step(
        self,
        step: ChainStep,
        context: AgentContext,
        variables: WorkflowVariables,
        save: bool = True
    ) -> ToolResult:
        params = variables.resolve(step.parameters)
        result = await self.registry.execute(create_tool_call(step.tool, params), context)

        if save and result.success and step.save_as:
            variables.set(step.save_as, result.data, source=VariableSource.COMPUTED)
        return result

    def _loop_items(self, source: str, variables: WorkflowVariables) -> List[Any]:
        value = variables.resolve(source) if "{{" in source else variables.get(source)
        if isinstance(value, (list, tuple)):
            return list(value)
        logger.warning("Loop source is not a list", source=source)
        return []

    def _finish(
        self,
        workflow_id: str,
        variables: WorkflowVariables,
        outcomes: List[StepOutcome],
        completed: bool = False,
        stopped: bool = False,
        error: Optional[str] = None
    ) -> ChainRunResult:
        if stopped:
            logger.info("Chain stopped", workflow_id=workflow_id, steps_run=len(outcomes))
        elif error:
            logger.warning("Chain failed", workflow_id=workflow_id, error=error)

        return ChainRunResult(
            success=error is None and not stopped,
            completed=completed,
            stopped=stopped,
            outcomes=outcomes,
            variables=variables.export(),
            error=error
        )
