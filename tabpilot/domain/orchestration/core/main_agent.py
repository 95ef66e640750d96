from typing import TypedDict, List, Dict, Any, Optional, Literal
from langgraph.graph import StateGraph, END
import structlog
import uuid

from tabpilot.domain.intent.intent_tracker import IntentTracker
from tabpilot.domain.models.agent_state import AgentContext, AgentTurnResult, Intent
from tabpilot.domain.models.tool import Tool, ToolCall, ToolResult, create_tool_call
from tabpilot.domain.tool.tool_registry import ToolRegistry
from tabpilot.infrastructure.observability.logging import agent_logger

logger = structlog.get_logger(__name__)


class WorkflowState(TypedDict):
    """State for the turn graph"""
    turn_id: str
    message: str
    context: AgentContext
    intent: Optional[Intent]
    tool: Optional[Tool]
    tool_call: Optional[ToolCall]
    tool_result: Optional[ToolResult]
    fallback_to_chat: bool
    stopped: bool
    trace: List[str]


class AgentOrchestrator:
    """Drives one utterance: intent -> tool lookup -> bounded dispatch, or chat fallback"""

    def __init__(self, intent_tracker: IntentTracker, registry: ToolRegistry):
        self.intent_tracker = intent_tracker
        self.registry = registry
        self.stop_requested = False
        self.workflow = self._create_workflow()

    def _create_workflow(self):
        """Create the turn graph"""

        workflow = StateGraph(WorkflowState)

        workflow.add_node("intent_analyzer", self.intent_analysis_node)
        workflow.add_node("stop_handler", self.stop_node)
        workflow.add_node("tool_selector", self.tool_selection_node)
        workflow.add_node("tool_executor", self.tool_execution_node)
        workflow.add_node("conversation_fallback", self.fallback_node)

        workflow.set_entry_point("intent_analyzer")

        workflow.add_conditional_edges(
            "intent_analyzer",
            self.route_after_intent,
            {
                "stop": "stop_handler",
                "select_tool": "tool_selector"
            }
        )

        workflow.add_conditional_edges(
            "tool_selector",
            self.route_after_selection,
            {
                "execute": "tool_executor",
                "fallback": "conversation_fallback"
            }
        )

        workflow.add_edge("stop_handler", END)
        workflow.add_edge("tool_executor", END)
        workflow.add_edge("conversation_fallback", END)

        return workflow.compile()

    async def intent_analysis_node(self, state: WorkflowState) -> Dict[str, Any]:
        """Classify the utterance against the recent conversation"""

        intent = self.intent_tracker.analyze_intent(state["message"], state["context"].chat_history)
        logger.info(
            "Intent analyzed",
            turn_id=state["turn_id"],
            intent_type=intent.type.value,
            action=intent.action,
            confidence=intent.confidence
        )
        return {"intent": intent, "trace": state["trace"] + ["intent_analyzer"]}

    async def stop_node(self, state: WorkflowState) -> Dict[str, Any]:
        self.stop_requested = True
        logger.info("Stop requested", turn_id=state["turn_id"])
        return {"stopped": True, "trace": state["trace"] + ["stop_handler"]}

    async def tool_selection_node(self, state: WorkflowState) -> Dict[str, Any]:
        """Look up the tool matching the intent and build its call"""

        intent = state["intent"]
        tool = self.registry.find_by_intent(intent)
        update: Dict[str, Any] = {"tool": tool, "trace": state["trace"] + ["tool_selector"]}

        if tool is not None:
            declared = {p.name for p in tool.parameters}
            params = {k: v for k, v in intent.parameters.items() if k in declared}
            update["tool_call"] = create_tool_call(tool.name, params)

        return update

    async def tool_execution_node(self, state: WorkflowState) -> Dict[str, Any]:
        result = await self.registry.execute(state["tool_call"], state["context"])
        return {"tool_result": result, "trace": state["trace"] + ["tool_executor"]}

    async def fallback_node(self, state: WorkflowState) -> Dict[str, Any]:
        """No tool applies; the message goes to the language backend as chat"""
        return {"fallback_to_chat": True, "trace": state["trace"] + ["conversation_fallback"]}

    def route_after_intent(self, state: WorkflowState) -> Literal["stop", "select_tool"]:
        if self.intent_tracker.is_stop_command(state["message"]):
            route = "stop"
        else:
            route = "select_tool"
        self._log_transition(state, "intent_analyzer", route)
        return route

    def route_after_selection(self, state: WorkflowState) -> Literal["execute", "fallback"]:
        route = "execute" if state.get("tool") is not None else "fallback"
        self._log_transition(state, "tool_selector", route)
        return route

    def _log_transition(self, state: WorkflowState, from_node: str, route: str):
        intent = state.get("intent")
        agent_logger.workflow_transition(
            workflow_id=state["turn_id"],
            from_node=from_node,
            to_node=route,
            intent_type=intent.type.value if intent else None,
            action=intent.action if intent else None
        )

    def should_stop(self) -> bool:
        """Stop flag for multi-step chains, set by a stop command"""
        return self.stop_requested

    def reset_stop(self):
        self.stop_requested = False

    async def process_message(self, message: str, context: Optional[AgentContext] = None) -> AgentTurnResult:
        """Process a user message through the turn graph"""

        initial_state: WorkflowState = {
            "turn_id": f"turn_{uuid.uuid4().hex[:12]}",
            "message": message,
            "context": context or AgentContext(),
            "intent": None,
            "tool": None,
            "tool_call": None,
            "tool_result": None,
            "fallback_to_chat": False,
            "stopped": False,
            "trace": []
        }

        final_state = await self.workflow.ainvoke(initial_state)

        return AgentTurnResult(
            intent=final_state["intent"],
            tool_call=final_state.get("tool_call"),
            tool_result=final_state.get("tool_result"),
            fallback_to_chat=final_state.get("fallback_to_chat", False),
            stopped=final_state.get("stopped", False)
        )
