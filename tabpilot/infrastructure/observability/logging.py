import structlog
import logging
import sys
from typing import Dict, Any, List, Optional
from pydantic import BaseModel

PREVIEW_LIMIT = 200

# Run identifiers bound through structlog contextvars
RUN_ID_KEYS = ("workflow_id", "call_id")


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    service_name: str = "tabpilot-agent"
) -> None:
    """Configure structlog on top of stdlib logging for the agent process"""

    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    renderer = (
        structlog.processors.JSONRenderer(ensure_ascii=False)
        if log_format == "json"
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            drop_unset_run_ids,
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(service=service_name)


def drop_unset_run_ids(logger: logging.Logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Remove workflow and tool call ids that were bound without a value"""

    for key in RUN_ID_KEYS:
        if key in event_dict and event_dict[key] is None:
            del event_dict[key]
    return event_dict


def preview(value: Any, limit: int = PREVIEW_LIMIT) -> Optional[str]:
    if value is None:
        return None
    text = value if isinstance(value, str) else repr(value)
    return text if len(text) <= limit else text[:limit] + "..."


class AgentEventLogger:
    """Domain events of the agent core: tool dispatch, graph/chain steps, tab fan-out"""

    def __init__(self, name: str):
        self.logger = structlog.get_logger(name)

    def tool_executed(
        self,
        tool_name: str,
        call_id: str,
        parameters: Dict[str, Any],
        duration_ms: float,
        success: bool,
        display_text: Optional[str] = None,
        error: Optional[str] = None
    ):
        log = self.logger.info if success else self.logger.warning
        log(
            "tool_executed",
            tool_name=tool_name,
            call_id=call_id,
            parameters=sorted(parameters),
            duration_ms=round(duration_ms, 2),
            success=success,
            display_text=preview(display_text),
            error=error
        )

    def workflow_transition(
        self,
        workflow_id: str,
        from_node: str,
        to_node: str,
        condition: Optional[str] = None,
        **summary: Any
    ):
        self.logger.info(
            "workflow_transition",
            workflow_id=workflow_id,
            from_node=from_node,
            to_node=to_node,
            condition=condition,
            **summary
        )

    def tabs_collected(self, tab_ids: List[int], failed: List[int], parallel: bool):
        self.logger.info(
            "tabs_collected",
            tab_ids=tab_ids,
            failed=failed,
            parallel=parallel
        )


agent_logger = AgentEventLogger("tabpilot.agent")


class LatencyStats(BaseModel):
    count: int = 0
    total_ms: float = 0.0
    min_ms: Optional[float] = None
    max_ms: float = 0.0

    def observe(self, duration_ms: float):
        self.count += 1
        self.total_ms += duration_ms
        self.min_ms = duration_ms if self.min_ms is None else min(self.min_ms, duration_ms)
        self.max_ms = max(self.max_ms, duration_ms)

    def summary(self) -> Dict[str, float]:
        return {
            "count": self.count,
            "avg": self.total_ms / self.count if self.count else 0,
            "min": self.min_ms or 0,
            "max": self.max_ms
        }


class MetricsCollector:
    """In-process latency and counter metrics, exposed on the health endpoint"""

    def __init__(self):
        self.latencies: Dict[str, LatencyStats] = {}
        self.counters: Dict[str, int] = {}

    def record_latency(self, operation: str, duration_ms: float, tags: Optional[Dict[str, str]] = None):
        self.latencies.setdefault(operation, LatencyStats()).observe(duration_ms)
        agent_logger.logger.debug("metric_latency", operation=operation, duration_ms=duration_ms, **(tags or {}))

    def increment_counter(self, name: str, value: int = 1, tags: Optional[Dict[str, str]] = None):
        self.counters[name] = self.counters.get(name, 0) + value
        agent_logger.logger.debug("metric_counter", name=name, value=value, **(tags or {}))

    def get_metrics_summary(self) -> Dict[str, Any]:
        """Latencies under ``latency.<operation>``, counters under their own name"""

        summary: Dict[str, Any] = {f"latency.{op}": stats.summary() for op, stats in self.latencies.items()}
        summary.update(self.counters)
        return summary
