from tabpilot.domain.session.context_synthesizer import SessionContextSynthesizer
from tabpilot.domain.session.session_controller import SessionController
from tabpilot.domain.tool.tool_registry import ToolRegistry
from .cross_session import create_compare_tabs_tool
from .extract_data import create_extract_data_tool
from .page_action import create_page_action_tool


def register_builtin_tools(
    registry: ToolRegistry,
    controller: SessionController,
    synthesizer: SessionContextSynthesizer
):
    """Register the tools that ship with the agent core"""
    registry.register_all([
        create_extract_data_tool(),
        create_page_action_tool(controller),
        create_compare_tabs_tool(synthesizer),
    ])


__all__ = [
    "register_builtin_tools",
    "create_extract_data_tool",
    "create_page_action_tool",
    "create_compare_tabs_tool",
]
