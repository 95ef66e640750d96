from typing import Dict, List, Any, Optional, Tuple
import structlog

from tabpilot.domain.models.agent_state import AgentContext, Intent
from tabpilot.domain.models.tool import (
    Tool, ToolCall, ToolResult, ToolCategory, ToolDescription,
    ParameterDescription, ValidationResult, error_result
)
from .tool_executor import ToolExecutor
from .tool_validator import ToolParameterValidator

logger = structlog.get_logger(__name__)


# First listed wins when an action contains keywords of several tools.
INTENT_TOOL_KEYWORDS: List[Tuple[str, Tuple[str, ...]]] = [
    ("summarize", ("summarize", "summary", "tldr", "总结", "概括", "要約")),
    ("extract_data", ("extract", "scrape", "get data", "提取", "抓取", "抽出")),
    ("generate_reply", ("reply", "respond", "answer", "回复", "回答", "返信")),
    ("search_memory", ("search", "find", "recall", "搜索", "查找", "検索")),
    ("page_action", ("click", "fill", "scroll", "type", "点击", "填写", "クリック")),
]


class ToolRegistry:
    """Registry for managing available tools"""

    def __init__(self, executor: Optional[ToolExecutor] = None):
        self.tools: Dict[str, Tool] = {}
        self.executor = executor or ToolExecutor()

    def register(self, tool: Tool):
        """Register a tool, replacing any tool with the same name"""

        if tool.name in self.tools:
            logger.warning("Tool already registered, overwriting", tool_name=tool.name)
        self.tools[tool.name] = tool

    def register_all(self, tools: List[Tool]):
        for tool in tools:
            self.register(tool)

    def get(self, name: str) -> Optional[Tool]:
        return self.tools.get(name)

    def has(self, name: str) -> bool:
        return name in self.tools

    def list(self) -> List[Tool]:
        return list(self.tools.values())

    def list_names(self) -> List[str]:
        return list(self.tools.keys())

    def list_by_category(self, category: ToolCategory) -> List[Tool]:
        return [t for t in self.tools.values() if t.category == category]

    def unregister(self, name: str) -> bool:
        return self.tools.pop(name, None) is not None

    def clear(self):
        self.tools.clear()

    def find_by_intent(self, intent: Intent) -> Optional[Tool]:
        """Find the tool best matching an intent's action.

        An exact (case-insensitive) tool name wins; otherwise the keyword
        table is scanned in order and the first registered tool whose
        keyword occurs in the action is returned.
        """

        if not intent.action:
            return None

        action_lower = intent.action.lower()

        direct = self.get(action_lower)
        if direct:
            return direct

        for tool_name, keywords in INTENT_TOOL_KEYWORDS:
            if any(kw in action_lower for kw in keywords):
                tool = self.get(tool_name)
                if tool:
                    return tool

        return None

    def validate_parameters(self, tool: Tool, params: Dict[str, Any]) -> ValidationResult:
        return ToolParameterValidator.validate_tool_call(tool, params)

    async def execute(self, tool_call: ToolCall, context: AgentContext) -> ToolResult:
        """Dispatch a tool call; every failure comes back as a ToolResult"""

        tool = self.get(tool_call.tool)

        if tool is None:
            logger.info("Unknown tool requested", tool_name=tool_call.tool)
            return error_result(
                f'Tool "{tool_call.tool}" not found',
                self.list_names()
            )

        if tool.requires_page_context and context.page_context is None:
            return error_result(
                f'Tool "{tool.name}" requires page context, but none is available',
                ["Please navigate to a webpage first"]
            )

        validation = self.validate_parameters(tool, tool_call.parameters)
        if not validation.valid:
            return error_result(
                f"Invalid parameters: {'; '.join(validation.errors)}",
                ["Check the parameter requirements and try again"]
            )

        params = dict(tool_call.parameters)
        for param in tool.parameters:
            if params.get(param.name) is None and param.default is not None:
                params[param.name] = param.default

        return await self.executor.execute_tool(tool, params, context, call_id=tool_call.call_id)

    def get_tool_descriptions(self) -> List[ToolDescription]:
        return [
            ToolDescription(
                name=tool.name,
                description=tool.description,
                parameters=[
                    ParameterDescription(
                        name=p.name,
                        type=p.type,
                        description=p.description,
                        required=p.required
                    )
                    for p in tool.parameters
                ]
            )
            for tool in self.tools.values()
        ]

    def get_tool_descriptions_text(self) -> str:
        """Render the catalog as plain text for backend prompts"""

        if not self.tools:
            return "No tools available."

        blocks = []
        for tool in self.tools.values():
            if tool.parameters:
                params_text = "\n".join(
                    f"  - {p.name} ({p.type.value}{', required' if p.required else ''}): {p.description}"
                    for p in tool.parameters
                )
            else:
                params_text = "  No parameters"
            blocks.append(f"{tool.name}: {tool.description}\nParameters:\n{params_text}")

        return "\n\n".join(blocks)
