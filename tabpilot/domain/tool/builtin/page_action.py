from typing import Dict, Any
import re
import structlog

from tabpilot.domain.models.agent_state import AgentContext
from tabpilot.domain.models.session import PageAction
from tabpilot.domain.models.tool import (
    Tool, ToolCategory, ToolParameter, ParameterType, ToolResult, success_result, error_result
)
from tabpilot.domain.session.session_controller import SessionController

logger = structlog.get_logger(__name__)

PAGE_ACTIONS = ["click", "fill", "scroll", "select", "hover", "focus"]

_SELECTOR_PATTERNS = [
    re.compile(r"^#[\w-]+$"),
    re.compile(r"^\.[\w-]+$"),
    re.compile(r"^\[[\w-]+.*\]$"),
    re.compile(r"^[\w-]+$"),
    re.compile(r"^[\w-]+\.[\w-]+$"),
    re.compile(r"^[\w-]+#[\w-]+$"),
]

_DESCRIPTIONS = {
    "click": "Clicked on element: {target}",
    "fill": 'Filled "{value}" into: {target}',
    "scroll": "Scrolled {target}",
    "hover": "Hovered over: {target}",
    "focus": "Focused on: {target}",
    "select": "Selected: {target}",
}


def is_valid_selector(selector: str) -> bool:
    """Accept id/class/attribute/tag selectors and descendant combinations"""
    if not selector or not selector.strip():
        return False
    return any(p.match(selector) for p in _SELECTOR_PATTERNS) or " " in selector


def create_page_action_tool(controller: SessionController) -> Tool:
    """page_action tool bound to a session controller"""

    async def execute_page_action(params: Dict[str, Any], context: AgentContext) -> ToolResult:
        action = params.get("action")
        target = params.get("target")
        value = params.get("value")

        if not target and action != "scroll":
            return error_result(
                "Target selector is required for this action.",
                ['Provide a selector for the element (e.g. "#submit-btn")']
            )
        if target and not is_valid_selector(target):
            return error_result(
                f"Invalid selector format: {target}",
                ['Use selectors like "#id", ".class", or "tag"']
            )
        if action == "fill" and not value:
            return error_result("Value is required for fill action.", ["Provide the text to fill in the field"])

        tab_id = controller.get_active_tab_id()
        if tab_id is None:
            current = await controller.get_current_tab()
            if current is None:
                return error_result("No active tab to act on.", ["Navigate to a webpage first"])
            tab_id = current.id

        page_action = PageAction(
            type=action,
            target=target,
            value=value,
            options={
                "human_like": params.get("human_like", True),
                "wait_for_visible": True,
                "scroll_into_view": True
            }
        )
        outcome = await controller.execute_in_tab(tab_id, page_action)

        if not outcome.success:
            logger.warning("Page action failed", action=action, target=target, error=outcome.error)
            return error_result(
                outcome.error or f"Failed to {action} on {target}",
                ["Check if the element exists", "Try a different selector", "Make sure the page is fully loaded"]
            )

        description = _DESCRIPTIONS[action].format(target=target or "page", value=value)
        return success_result(
            {"action": action, "target": target, "value": value, "tab_id": tab_id, "result": outcome.data},
            description
        )

    return Tool(
        name="page_action",
        description="Execute actions on the current webpage like clicking buttons, filling forms, or scrolling.",
        category=ToolCategory.ACTION,
        requires_page_context=True,
        parameters=[
            ToolParameter(
                name="action",
                type=ParameterType.STRING,
                description="The type of action to perform: " + ", ".join(PAGE_ACTIONS),
                required=True,
                enum=PAGE_ACTIONS
            ),
            ToolParameter(
                name="target",
                type=ParameterType.STRING,
                description='Selector for the target element (e.g. "#submit-btn", ".input-field")'
            ),
            ToolParameter(
                name="value",
                type=ParameterType.STRING,
                description="The value to fill (required for fill action)"
            ),
            ToolParameter(
                name="human_like",
                type=ParameterType.BOOLEAN,
                description="Whether the page agent should pace the action like a person",
                default=True
            ),
        ],
        execute=execute_page_action
    )
