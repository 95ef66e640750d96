from typing import Dict, Any, List, Optional
import json
import re
import structlog

from tabpilot.domain.models.agent_state import AgentContext
from tabpilot.domain.models.tool import (
    Tool, ToolCategory, ToolParameter, ParameterType, ToolResult, success_result, error_result
)

logger = structlog.get_logger(__name__)

ENTITY_PATTERNS: Dict[str, "re.Pattern[str]"] = {
    "email": re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}"),
    "phone": re.compile(r"(?:\+\d{1,3}[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}(?!\d)"),
    "url": re.compile(r"https?://[^\s<>\"{}|\\^`\[\]]+"),
    "price": re.compile(r"(?:\$|¥|€|£)[\d,]+(?:\.\d{2})?|\d+(?:\.\d{2})?\s*(?:USD|CNY|EUR|GBP|元|美元)"),
    "date": re.compile(r"\d{4}[-/]\d{1,2}[-/]\d{1,2}|\d{1,2}[-/]\d{1,2}[-/]\d{4}"),
    "hashtag": re.compile(r"#[\w一-鿿]+"),
    "mention": re.compile(r"@\w+"),
    "percentage": re.compile(r"\d+(?:\.\d+)?%"),
}

# DOM nodes without a selector must carry more text than this to be kept
MIN_NODE_TEXT = 5


def extract_entities(text: str, entity_types: Optional[List[str]] = None) -> List[Dict[str, Any]]:
    """Find entities by regex; one entry per distinct (type, value) with its count"""

    entities = []
    for entity_type in entity_types or list(ENTITY_PATTERNS):
        pattern = ENTITY_PATTERNS.get(entity_type)
        if pattern is None:
            continue

        counts: Dict[str, int] = {}
        for match in pattern.findall(text):
            counts[match] = counts.get(match, 0) + 1

        for value, count in counts.items():
            entities.append({"type": entity_type, "value": value, "count": count})

    return entities


def extract_from_dom_tree(dom_tree: List[Dict[str, Any]], selector: Optional[str] = None) -> List[Dict[str, Any]]:
    """Walk the DOM summary depth-first, keeping nodes matched by a tag/.class/#id selector"""

    results = []

    def traverse(nodes):
        for node in nodes:
            text = node.get("text")
            if selector:
                attributes = node.get("attributes") or {}
                matches = (
                    node.get("tag") == selector
                    or selector.lstrip(".") in (node.get("classes") or [])
                    or attributes.get("id") == selector.lstrip("#")
                )
                if matches and text:
                    results.append({
                        "tag": node.get("tag"),
                        "text": text,
                        "classes": node.get("classes"),
                        "attributes": node.get("attributes")
                    })
            elif text and len(text) > MIN_NODE_TEXT:
                results.append({"tag": node.get("tag"), "text": text, "classes": node.get("classes")})

            if node.get("children"):
                traverse(node["children"])

    traverse(dom_tree)
    return results


def format_as_table(entities: List[Dict[str, Any]]) -> str:
    if not entities:
        return "No data found."

    rows = ["| Type | Value | Count |", "|------|-------|-------|"]
    rows.extend(f"| {e['type']} | {e['value']} | {e['count']} |" for e in entities)
    return "\n".join(rows)


def execute_extract_data(params: Dict[str, Any], context: AgentContext) -> ToolResult:
    entity_type = params.get("entity_type")
    selector = params.get("selector")
    output_format = params.get("format") or "json"

    text = params.get("content")
    source = "provided"
    if not text:
        if context.selection:
            text, source = context.selection, "selection"
        elif context.page_context and context.page_context.main_content:
            text, source = context.page_context.main_content, "page"
        else:
            return error_result(
                "No content to extract from. Please provide content, select text, or navigate to a page.",
                ["Select some text on the page", "Navigate to a webpage"]
            )

    entities = extract_entities(text, [entity_type] if entity_type else None)

    raw_data = None
    if selector and context.page_context and context.page_context.dom_tree:
        raw_data = extract_from_dom_tree(context.page_context.dom_tree, selector)

    result = {
        "entities": entities,
        "raw_data": raw_data,
        "total_found": len(entities) + len(raw_data or []),
        "source": source
    }
    logger.debug("Data extracted", source=source, total_found=result["total_found"])

    if result["total_found"] == 0:
        return success_result(result, f"No {entity_type or 'entities'} found in the content.")

    if output_format == "table":
        display_text = format_as_table(entities)
    else:
        display_text = f"Found {result['total_found']} items:\n{json.dumps(result, indent=2, ensure_ascii=False)}"
    return success_result(result, display_text)


def create_extract_data_tool() -> Tool:
    return Tool(
        name="extract_data",
        description=(
            "Extract structured data from page content, including emails, phones, URLs, "
            "prices, dates, hashtags, and mentions."
        ),
        category=ToolCategory.DATA,
        parameters=[
            ToolParameter(
                name="entity_type",
                type=ParameterType.STRING,
                description="Type of entity to extract: " + ", ".join(ENTITY_PATTERNS),
                enum=list(ENTITY_PATTERNS)
            ),
            ToolParameter(
                name="selector",
                type=ParameterType.STRING,
                description='Selector for specific elements (e.g. ".product-price", "#contact-info")'
            ),
            ToolParameter(
                name="content",
                type=ParameterType.STRING,
                description="Content to extract from. Defaults to the selection, then the page content."
            ),
            ToolParameter(
                name="format",
                type=ParameterType.STRING,
                description="Output format: json or table",
                enum=["json", "table"],
                default="json"
            ),
        ],
        execute=execute_extract_data
    )
