from typing import Optional
import structlog

from tabpilot.application.websocket.host_bridge import WebSocketSessionHost
from tabpilot.domain.context.state.state_manager import StateManager
from tabpilot.domain.intent.intent_tracker import IntentTracker
from tabpilot.domain.orchestration.chain_runner import ToolChainRunner
from tabpilot.domain.orchestration.core.main_agent import AgentOrchestrator
from tabpilot.domain.session.channel import SessionHost
from tabpilot.domain.session.context_synthesizer import SessionContextSynthesizer
from tabpilot.domain.session.session_controller import SessionController
from tabpilot.domain.tool.builtin import register_builtin_tools
from tabpilot.domain.tool.tool_executor import ToolExecutor
from tabpilot.domain.tool.tool_registry import ToolRegistry
from tabpilot.infrastructure.config.settings import Settings, get_settings
from tabpilot.infrastructure.observability.logging import MetricsCollector

logger = structlog.get_logger(__name__)


class AgentContainer:
    """Composition root: builds every service once and wires them together.

    Pass a ``host`` to run against something other than the WebSocket bridge
    (tests use an in-memory host).
    """

    def __init__(self, settings: Optional[Settings] = None, host: Optional[SessionHost] = None):
        self.settings = settings or get_settings()
        self.metrics = MetricsCollector()

        self.host = host or WebSocketSessionHost(command_timeout=self.settings.host_command_timeout_seconds)
        self.controller = SessionController(
            self.host,
            action_timeout=self.settings.session_action_timeout_seconds
        )
        self.synthesizer = SessionContextSynthesizer(
            self.controller,
            timeout=self.settings.session_context_timeout_seconds
        )

        self.registry = ToolRegistry(
            ToolExecutor(timeout=self.settings.tool_timeout_seconds, metrics=self.metrics)
        )
        register_builtin_tools(self.registry, self.controller, self.synthesizer)

        self.intent_tracker = IntentTracker(max_history=self.settings.intent_history_limit)
        self.orchestrator = AgentOrchestrator(self.intent_tracker, self.registry)
        self.state_manager = StateManager()
        self.chain_runner = ToolChainRunner(self.registry, self.state_manager)

        logger.info("Agent container ready", tools=self.registry.list_names())
