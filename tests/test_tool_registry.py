"""Tests for tool registration, lookup, validation and dispatch."""

import asyncio
import re

import pytest

from tabpilot.domain.models.agent_state import Intent, IntentType
from tabpilot.domain.models.tool import (
    ParameterType,
    Tool,
    ToolCategory,
    ToolParameter,
    ToolResult,
    create_tool_call,
    create_tool_call_id,
    success_result,
)


def make_tool(name: str, execute=None, **kwargs) -> Tool:
    return Tool(
        name=name,
        description=f"{name} tool",
        execute=execute or (lambda params, context: success_result(params)),
        **kwargs,
    )


@pytest.fixture
def typed_tool() -> Tool:
    return make_tool(
        "typed",
        parameters=[
            ToolParameter(name="query", type=ParameterType.STRING, required=True),
            ToolParameter(name="limit", type=ParameterType.NUMBER),
            ToolParameter(name="mode", type=ParameterType.STRING, enum=["fast", "full"]),
            ToolParameter(name="tags", type=ParameterType.ARRAY),
            ToolParameter(name="extra", type=ParameterType.OBJECT),
        ],
    )


def intent_for(action):
    return Intent(type=IntentType.COMMAND, action=action, confidence=0.7, raw_message=action or "")


class TestRegistration:
    """Tests for the tool catalog."""

    def test_register_and_lookup(self, registry, echo_tool):
        registry.register(echo_tool)

        assert registry.get("echo") is echo_tool
        assert registry.has("echo")
        assert registry.list_names() == ["echo"]
        assert registry.list_by_category(ToolCategory.UTILITY) == [echo_tool]
        assert registry.list_by_category(ToolCategory.DATA) == []

    def test_register_overwrites(self, registry):
        registry.register(make_tool("dup"))
        replacement = make_tool("dup")
        registry.register(replacement)

        assert registry.get("dup") is replacement
        assert len(registry.list()) == 1

    def test_unregister_and_clear(self, registry):
        registry.register_all([make_tool("a"), make_tool("b")])

        assert registry.unregister("a") is True
        assert registry.unregister("a") is False
        registry.clear()
        assert registry.list() == []


class TestFindByIntent:
    """Tests for intent-driven tool lookup."""

    def test_no_action(self, registry):
        registry.register(make_tool("summarize"))
        assert registry.find_by_intent(intent_for(None)) is None

    def test_exact_name_case_insensitive(self, registry):
        registry.register(make_tool("translate"))
        assert registry.find_by_intent(intent_for("TRANSLATE")).name == "translate"

    def test_keyword_table(self, registry):
        registry.register_all([make_tool("extract_data"), make_tool("search_memory")])

        assert registry.find_by_intent(intent_for("extract")).name == "extract_data"
        assert registry.find_by_intent(intent_for("搜索")).name == "search_memory"

    def test_first_registered_match_in_table_order(self, registry):
        registry.register_all([make_tool("page_action"), make_tool("summarize")])
        # "summary" and "click" both appear; summarize comes first in the table
        assert registry.find_by_intent(intent_for("click for summary")).name == "summarize"

    def test_skips_unregistered_entries(self, registry):
        registry.register(make_tool("page_action"))
        assert registry.find_by_intent(intent_for("click for summary")).name == "page_action"
        assert registry.find_by_intent(intent_for("dance")) is None


class TestValidation:
    """Tests for parameter validation."""

    def test_valid(self, registry, typed_tool):
        result = registry.validate_parameters(
            typed_tool, {"query": "phones", "limit": 3, "mode": "fast", "tags": ["a"], "extra": 5}
        )
        assert result.valid
        assert result.errors == []

    def test_missing_required_is_single_error(self, registry, typed_tool):
        result = registry.validate_parameters(typed_tool, {})
        assert result.errors == ["Missing required parameter: query"]

    def test_none_counts_as_missing(self, registry, typed_tool):
        result = registry.validate_parameters(typed_tool, {"query": None})
        assert result.errors == ["Missing required parameter: query"]

    def test_all_errors_reported_in_parameter_order(self, registry, typed_tool):
        result = registry.validate_parameters(typed_tool, {"limit": "three", "mode": "slow", "tags": {"a": 1}})

        assert not result.valid
        assert result.errors == [
            "Missing required parameter: query",
            'Parameter "limit" should be number, got string',
            'Parameter "mode" must be one of: fast, full',
            'Parameter "tags" should be array, got object',
        ]

    def test_boolean_is_not_a_number(self, registry, typed_tool):
        result = registry.validate_parameters(typed_tool, {"query": "q", "limit": True})
        assert result.errors == ['Parameter "limit" should be number, got boolean']

    def test_object_accepts_anything(self, registry, typed_tool):
        for value in ("text", 1, [1], {"k": "v"}, False):
            assert registry.validate_parameters(typed_tool, {"query": "q", "extra": value}).valid


class TestExecute:
    """Tests for guarded, time-bounded dispatch."""

    @pytest.mark.asyncio
    async def test_unknown_tool_lists_every_tool(self, registry, agent_context):
        registry.register_all([make_tool("a"), make_tool("b")])

        result = await registry.execute(create_tool_call("missing", {}), agent_context)

        assert result.success is False
        assert "missing" in result.error
        assert result.suggestions == ["a", "b"]

    @pytest.mark.asyncio
    async def test_requires_page_context(self, registry, empty_context):
        registry.register(make_tool("clicker", requires_page_context=True))

        result = await registry.execute(create_tool_call("clicker", {}), empty_context)

        assert result.success is False
        assert "Please navigate to a webpage first" in result.suggestions

    @pytest.mark.asyncio
    async def test_invalid_parameters_joined(self, registry, typed_tool, agent_context):
        registry.register(typed_tool)

        result = await registry.execute(create_tool_call("typed", {"limit": "x"}), agent_context)

        assert result.error == (
            "Invalid parameters: Missing required parameter: query; "
            'Parameter "limit" should be number, got string'
        )

    @pytest.mark.asyncio
    async def test_defaults_are_merged(self, registry, echo_tool, agent_context):
        registry.register(echo_tool)

        result = await registry.execute(create_tool_call("echo", {"text": "hi"}), agent_context)

        assert result.success
        assert result.data == {"text": "hi", "times": 1}
        assert result.display_text == "echo hi"

    @pytest.mark.asyncio
    async def test_async_capability(self, registry, agent_context):
        async def execute(params, context):
            await asyncio.sleep(0)
            return {"success": True, "data": context.page_context.title}

        registry.register(make_tool("async_tool", execute=execute))
        result = await registry.execute(create_tool_call("async_tool", {}), agent_context)

        assert isinstance(result, ToolResult)
        assert result.data == "Phone A"

    @pytest.mark.asyncio
    async def test_timeout(self, registry, agent_context):
        finished = asyncio.Event()

        async def slow(params, context):
            await asyncio.sleep(0.5)
            finished.set()
            return success_result("late")

        registry.register(make_tool("slow", execute=slow))
        result = await registry.execute(create_tool_call("slow", {}), agent_context)

        assert result.success is False
        assert result.error == 'Tool "slow" timed out. The operation took too long.'
        assert result.suggestions == ["Try with simpler input", "Check your network connection"]

        # the capability is not cancelled by the timeout
        await asyncio.wait_for(finished.wait(), timeout=2)

    @pytest.mark.asyncio
    async def test_capability_exception(self, registry, agent_context):
        def boom(params, context):
            raise RuntimeError("backend unavailable")

        registry.register(make_tool("boom", execute=boom))
        result = await registry.execute(create_tool_call("boom", {}), agent_context)

        assert result.error == "Tool execution failed: backend unavailable"
        assert result.suggestions == ["Try again or use a different approach"]

    @pytest.mark.asyncio
    async def test_metrics_recorded(self, registry, echo_tool, agent_context):
        registry.register(echo_tool)
        await registry.execute(create_tool_call("echo", {"text": "hi"}), agent_context)

        summary = registry.executor.metrics.get_metrics_summary()
        assert summary["latency.tool.echo"]["count"] == 1


class TestDescriptions:
    """Tests for catalog rendering and helpers."""

    def test_empty_catalog(self, registry):
        assert registry.get_tool_descriptions() == []
        assert registry.get_tool_descriptions_text() == "No tools available."

    def test_descriptions(self, registry, echo_tool):
        registry.register(echo_tool)

        descriptions = registry.get_tool_descriptions()
        assert descriptions[0].name == "echo"
        assert [p.name for p in descriptions[0].parameters] == ["text", "times"]

        text = registry.get_tool_descriptions_text()
        assert "echo: Echo the given text back" in text
        assert "text (string, required): Text to echo" in text

    def test_call_id_format(self):
        assert re.fullmatch(r"tc_\d+_[0-9a-z]{9}", create_tool_call_id())
        assert create_tool_call_id() != create_tool_call_id()

    def test_result_cannot_be_both_success_and_error(self):
        with pytest.raises(ValueError):
            ToolResult(success=True, error="nope")
