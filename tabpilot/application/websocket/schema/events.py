from typing import Dict, Any, Optional, Literal
from pydantic import BaseModel, Field
from datetime import datetime, timezone
from enum import Enum

from tabpilot.domain.models.agent_state import AgentContext
from tabpilot.domain.models.session import SessionEventType


class EventType(str, Enum):
    """Host protocol message types"""
    REQUEST = "request"
    RESPONSE = "response"
    SESSION_EVENT = "session_event"
    CONNECTION = "connection"
    ERROR = "error"


class HostCommand(str, Enum):
    """Tab management commands executed by the host itself"""
    QUERY_SESSIONS = "QUERY_SESSIONS"
    CREATE_SESSION = "CREATE_SESSION"
    REMOVE_SESSION = "REMOVE_SESSION"
    UPDATE_SESSION = "UPDATE_SESSION"
    RELOAD_SESSION = "RELOAD_SESSION"


class BaseEvent(BaseModel):
    """Base model for all host WebSocket messages"""
    type: EventType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class HostRequest(BaseEvent):
    """Server -> host: run a command or forward a message to a tab"""
    type: Literal[EventType.REQUEST] = EventType.REQUEST
    request_id: str
    session_id: Optional[int] = Field(None, description="Target tab; None for host commands")
    payload: Dict[str, Any]


class HostResponse(BaseEvent):
    """Host -> server: answer to a HostRequest"""
    type: Literal[EventType.RESPONSE] = EventType.RESPONSE
    request_id: str
    payload: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class SessionEventMessage(BaseEvent):
    """Host -> server: the tab list changed"""
    type: Literal[EventType.SESSION_EVENT] = EventType.SESSION_EVENT
    event: SessionEventType
    session_id: Optional[int] = None


class ConnectionEvent(BaseEvent):
    """Connection status event"""
    type: Literal[EventType.CONNECTION] = EventType.CONNECTION
    status: Literal["connected", "disconnected"]
    host_id: str


class ErrorEvent(BaseEvent):
    """Error event"""
    type: Literal[EventType.ERROR] = EventType.ERROR
    payload: Dict[str, Any]
    error_code: Optional[str] = None


class ChatRequest(BaseModel):
    """Body of the chat endpoint"""
    message: str = Field(min_length=1)
    context: AgentContext = Field(default_factory=AgentContext)
