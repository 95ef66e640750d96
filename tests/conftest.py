"""Shared fixtures: an in-memory browser host, agent contexts and wired services."""

import asyncio
from typing import Any, Dict, List, Optional

import pytest

from tabpilot.domain.intent.intent_tracker import IntentTracker
from tabpilot.domain.models.agent_state import AgentContext, ChatMessage, PageContext
from tabpilot.domain.models.session import SessionEvent, SessionInfo
from tabpilot.domain.models.tool import Tool, ToolCategory, ToolParameter, ParameterType, success_result
from tabpilot.domain.session.channel import SessionChannelError, SessionHost
from tabpilot.domain.session.context_synthesizer import SessionContextSynthesizer
from tabpilot.domain.session.session_controller import SessionController
from tabpilot.domain.tool.tool_executor import ToolExecutor
from tabpilot.domain.tool.tool_registry import ToolRegistry


class FakeSessionHost(SessionHost):
    """In-memory host: tabs in a dict, scripted answers per tab.

    ``responses[tab_id]`` is the dict a tab answers with; a tab listed in
    ``hanging`` never answers; a tab listed in ``unreachable`` fails at once.
    """

    def __init__(self, tabs: Optional[List[SessionInfo]] = None):
        super().__init__()
        self.tabs: Dict[int, SessionInfo] = {t.id: t for t in tabs or []}
        self.responses: Dict[int, Dict[str, Any]] = {}
        self.hanging: set = set()
        self.unreachable: set = set()
        self.sent: List[Dict[str, Any]] = []
        self.next_id = 100

    async def query_sessions(self, active_only: bool = False) -> List[SessionInfo]:
        tabs = list(self.tabs.values())
        if active_only:
            return [t for t in tabs if t.active][:1]
        return tabs

    async def create_session(self, url: str, active: bool = True) -> SessionInfo:
        self.next_id += 1
        tab = SessionInfo(id=self.next_id, url=url, title=url, active=active, status="loading")
        self.tabs[tab.id] = tab
        return tab

    async def remove_session(self, session_id: int) -> None:
        if session_id not in self.tabs:
            raise SessionChannelError(f"No tab with id: {session_id}")
        del self.tabs[session_id]

    async def update_session(self, session_id: int, url: Optional[str] = None, active: Optional[bool] = None) -> SessionInfo:
        if session_id not in self.tabs:
            raise SessionChannelError(f"No tab with id: {session_id}")
        changes = {k: v for k, v in {"url": url, "active": active}.items() if v is not None}
        self.tabs[session_id] = self.tabs[session_id].model_copy(update=changes)
        return self.tabs[session_id]

    async def reload_session(self, session_id: int) -> None:
        if session_id not in self.tabs:
            raise SessionChannelError(f"No tab with id: {session_id}")

    async def _dispatch(self, session_id: int, message: Dict[str, Any]) -> Dict[str, Any]:
        self.sent.append({"session_id": session_id, **message})
        if session_id in self.unreachable:
            raise SessionChannelError("Could not establish connection. Receiving end does not exist.")
        if session_id in self.hanging:
            await asyncio.Event().wait()
        return self.responses.get(session_id, {"success": True})


def page_response(content: str, metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {"success": True, "context": {"main_content": content, "metadata": metadata or {}}}


@pytest.fixture
def tabs() -> List[SessionInfo]:
    return [
        SessionInfo(id=1, url="https://shop.example.com/phone-a", title="Phone A", active=True, status="complete"),
        SessionInfo(id=2, url="https://shop.example.com/phone-b", title="Phone B", status="complete"),
        SessionInfo(id=3, url="chrome://extensions", title="Extensions", status="complete"),
    ]


@pytest.fixture
def fake_host(tabs) -> FakeSessionHost:
    return FakeSessionHost(tabs)


@pytest.fixture
def controller(fake_host) -> SessionController:
    return SessionController(fake_host, action_timeout=0.2)


@pytest.fixture
def synthesizer(controller) -> SessionContextSynthesizer:
    return SessionContextSynthesizer(controller, timeout=0.1)


@pytest.fixture
def page_context() -> PageContext:
    return PageContext(
        url="https://shop.example.com/phone-a",
        title="Phone A",
        main_content="Contact sales@example.com or call 555-123-4567. Now only $199.99, 20% off.",
        dom_tree=[
            {"tag": "div", "classes": ["product"], "children": [
                {"tag": "span", "classes": ["price"], "text": "$199.99"},
                {"tag": "p", "text": "Ships within two days"},
            ]},
        ],
    )


@pytest.fixture
def agent_context(page_context) -> AgentContext:
    return AgentContext(
        page_context=page_context,
        chat_history=[
            ChatMessage(id="m1", role="user", content="What is on this page?"),
            ChatMessage(id="m2", role="assistant", content="The page sells Phone A with a 20% discount this week."),
        ],
    )


@pytest.fixture
def empty_context() -> AgentContext:
    return AgentContext()


@pytest.fixture
def echo_tool() -> Tool:
    def execute(params, context):
        return success_result(params, display_text=f"echo {params.get('text')}")

    return Tool(
        name="echo",
        description="Echo the given text back",
        category=ToolCategory.UTILITY,
        parameters=[
            ToolParameter(name="text", type=ParameterType.STRING, description="Text to echo", required=True),
            ToolParameter(name="times", type=ParameterType.NUMBER, description="Repetitions", default=1),
        ],
        execute=execute,
    )


@pytest.fixture
def registry() -> ToolRegistry:
    return ToolRegistry(ToolExecutor(timeout=0.2))


@pytest.fixture
def intent_tracker() -> IntentTracker:
    return IntentTracker()


@pytest.fixture
def session_event():
    def make(event_type: str, session_id: Optional[int] = None) -> SessionEvent:
        return SessionEvent(type=event_type, session_id=session_id)
    return make


@pytest.fixture
def make_page_response():
    return page_response
