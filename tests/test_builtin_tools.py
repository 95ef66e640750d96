"""Tests for the tools registered by default."""

import pytest

from tabpilot.domain.models.agent_state import AgentContext
from tabpilot.domain.models.tool import create_tool_call
from tabpilot.domain.tool.builtin import register_builtin_tools
from tabpilot.domain.tool.builtin.extract_data import (
    extract_entities,
    extract_from_dom_tree,
    format_as_table,
)
from tabpilot.domain.tool.builtin.page_action import is_valid_selector


@pytest.fixture
def builtin_registry(registry, controller, synthesizer):
    register_builtin_tools(registry, controller, synthesizer)
    return registry


class TestExtractHelpers:
    """Tests for entity and DOM extraction helpers."""

    def test_extract_entities(self):
        text = "Mail a@b.io or a@b.io, visit https://x.dev/p, pay $19.99 by 2024-05-01 #sale @shop 15%"
        entities = {(e["type"], e["value"]): e["count"] for e in extract_entities(text)}

        assert entities[("email", "a@b.io")] == 2
        assert ("url", "https://x.dev/p,") in entities or ("url", "https://x.dev/p") in entities
        assert ("price", "$19.99") in entities
        assert ("date", "2024-05-01") in entities
        assert ("hashtag", "#sale") in entities
        assert ("percentage", "15%") in entities

    def test_extract_single_type(self):
        entities = extract_entities("a@b.io call 555-123-4567", ["phone"])
        assert entities == [{"type": "phone", "value": "555-123-4567", "count": 1}]

    def test_dom_selector(self, page_context):
        assert extract_from_dom_tree(page_context.dom_tree, ".price") == [
            {"tag": "span", "text": "$199.99", "classes": ["price"], "attributes": None}
        ]

    def test_dom_without_selector_keeps_longer_text(self, page_context):
        nodes = extract_from_dom_tree(page_context.dom_tree)
        assert [n["text"] for n in nodes] == ["$199.99", "Ships within two days"]

    def test_table(self):
        assert format_as_table([]) == "No data found."
        table = format_as_table([{"type": "email", "value": "a@b.io", "count": 1}])
        assert table.splitlines()[-1] == "| email | a@b.io | 1 |"


class TestExtractDataTool:
    """Tests for the extract_data tool."""

    @pytest.mark.asyncio
    async def test_uses_page_content(self, builtin_registry, agent_context):
        result = await builtin_registry.execute(
            create_tool_call("extract_data", {"entity_type": "email"}), agent_context
        )

        assert result.success
        assert result.data["source"] == "page"
        assert result.data["entities"][0]["value"] == "sales@example.com"
        assert result.display_text.startswith("Found 1 items:")

    @pytest.mark.asyncio
    async def test_selection_beats_page(self, builtin_registry, agent_context):
        context = agent_context.model_copy(update={"selection": "write to me@home.net"})
        result = await builtin_registry.execute(
            create_tool_call("extract_data", {"entity_type": "email", "format": "table"}), context
        )

        assert result.data["source"] == "selection"
        assert "| email | me@home.net | 1 |" in result.display_text

    @pytest.mark.asyncio
    async def test_selector_over_dom(self, builtin_registry, agent_context):
        result = await builtin_registry.execute(
            create_tool_call("extract_data", {"entity_type": "hashtag", "selector": ".price"}), agent_context
        )

        assert result.data["raw_data"][0]["text"] == "$199.99"
        assert result.data["total_found"] == 1

    @pytest.mark.asyncio
    async def test_nothing_found(self, builtin_registry):
        result = await builtin_registry.execute(
            create_tool_call("extract_data", {"content": "plain words", "entity_type": "url"}), AgentContext()
        )
        assert result.success
        assert result.display_text == "No url found in the content."

    @pytest.mark.asyncio
    async def test_no_content(self, builtin_registry):
        result = await builtin_registry.execute(create_tool_call("extract_data", {}), AgentContext())
        assert result.success is False
        assert "No content to extract from" in result.error

    @pytest.mark.asyncio
    async def test_rejects_unknown_entity_type(self, builtin_registry, agent_context):
        result = await builtin_registry.execute(
            create_tool_call("extract_data", {"entity_type": "ssn"}), agent_context
        )
        assert result.success is False
        assert result.error.startswith('Invalid parameters: Parameter "entity_type" must be one of: email')


class TestPageActionTool:
    """Tests for the page_action tool."""

    @pytest.mark.parametrize("selector", ["#buy", ".btn", "[data-id=1]", "button", "a.link", "form#login", "div span"])
    def test_valid_selectors(self, selector):
        assert is_valid_selector(selector)

    @pytest.mark.parametrize("selector", ["", "   ", "buy!", "<script>"])
    def test_invalid_selectors(self, selector):
        assert not is_valid_selector(selector)

    @pytest.mark.asyncio
    async def test_click_on_current_tab(self, builtin_registry, agent_context, fake_host):
        fake_host.responses[1] = {"success": True}

        result = await builtin_registry.execute(
            create_tool_call("page_action", {"action": "click", "target": "#buy"}), agent_context
        )

        assert result.success
        assert result.display_text == "Clicked on element: #buy"
        sent = fake_host.sent[-1]
        assert sent["session_id"] == 1
        assert sent["type"] == "EXECUTE_ACTION"
        assert sent["payload"]["options"]["human_like"] is True

    @pytest.mark.asyncio
    async def test_requires_page_context(self, builtin_registry):
        result = await builtin_registry.execute(
            create_tool_call("page_action", {"action": "click", "target": "#buy"}), AgentContext()
        )
        assert "Please navigate to a webpage first" in result.suggestions

    @pytest.mark.asyncio
    async def test_fill_needs_value(self, builtin_registry, agent_context):
        result = await builtin_registry.execute(
            create_tool_call("page_action", {"action": "fill", "target": "#q"}), agent_context
        )
        assert result.error == "Value is required for fill action."

    @pytest.mark.asyncio
    async def test_page_failure(self, builtin_registry, agent_context, fake_host):
        fake_host.unreachable.add(1)
        result = await builtin_registry.execute(
            create_tool_call("page_action", {"action": "scroll"}), agent_context
        )
        assert result.success is False
        assert "Check if the element exists" in result.suggestions


class TestCompareTabsTool:
    """Tests for the compare_tabs tool."""

    @pytest.mark.asyncio
    async def test_compare(self, builtin_registry, fake_host, make_page_response, empty_context):
        fake_host.responses[1] = make_page_response("camera battery screen")
        fake_host.responses[2] = make_page_response("camera stylus screen")

        result = await builtin_registry.execute(
            create_tool_call("compare_tabs", {"tab_ids": [1, 2], "language": "zh"}), empty_context
        )

        assert result.success
        assert result.data["comparison"]["similarities"] == ["camera", "screen"]
        assert result.display_text.startswith("## 多页面综合报告")

    @pytest.mark.asyncio
    async def test_no_tabs(self, builtin_registry, empty_context):
        result = await builtin_registry.execute(
            create_tool_call("compare_tabs", {"tab_ids": [77]}), empty_context
        )
        assert result.error == "No valid tabs found"
