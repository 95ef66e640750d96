from typing import Dict, Any

from tabpilot.domain.models.agent_state import AgentContext
from tabpilot.domain.models.session import SynthesisOptions
from tabpilot.domain.models.tool import (
    Tool, ToolCategory, ToolParameter, ParameterType, ToolResult, success_result, error_result
)
from tabpilot.domain.session.context_synthesizer import SessionContextSynthesizer


def create_compare_tabs_tool(synthesizer: SessionContextSynthesizer) -> Tool:
    """compare_tabs tool: compare and report over several open tabs"""

    async def execute_compare_tabs(params: Dict[str, Any], context: AgentContext) -> ToolResult:
        result = await synthesizer.synthesize(SynthesisOptions(
            tab_ids=params.get("tab_ids"),
            compare=True,
            synthesize=True,
            language=params.get("language") or "en"
        ))

        if not result.success:
            return error_result(
                result.error or "Could not collect tab contexts",
                ["Open the pages you want to compare", "Make sure the pages have finished loading"]
            )

        return success_result(result.model_dump(mode="json"), result.synthesis)

    return Tool(
        name="compare_tabs",
        description="Collect content from several open tabs, compare them and write a combined report.",
        category=ToolCategory.DATA,
        parameters=[
            ToolParameter(
                name="tab_ids",
                type=ParameterType.ARRAY,
                description="Tabs to compare; every open web page when omitted"
            ),
            ToolParameter(
                name="language",
                type=ParameterType.STRING,
                description="Report language",
                enum=["en", "zh"],
                default="en"
            ),
        ],
        execute=execute_compare_tabs
    )
