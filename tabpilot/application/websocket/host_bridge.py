from typing import Dict, Any, List, Optional, Set
from fastapi import WebSocket
from pydantic import ValidationError
import asyncio
import uuid
from datetime import datetime, timezone
import structlog

from tabpilot.domain.models.session import SessionEvent, SessionInfo
from tabpilot.domain.session.channel import SessionHost, SessionChannelError, SessionTimeoutError
from .schema.events import (
    EventType, HostCommand, HostRequest, HostResponse,
    SessionEventMessage, ConnectionEvent, ErrorEvent
)

logger = structlog.get_logger(__name__)

DEFAULT_COMMAND_TIMEOUT = 10.0


class WebSocketSessionHost(SessionHost):
    """SessionHost backed by browser hosts connected over WebSocket.

    Requests go to the most recently connected host and are correlated with
    their responses by ``request_id``. Session events from the host are
    emitted on their own task so the receive loop keeps reading responses
    while listeners query the host again.
    """

    def __init__(self, command_timeout: float = DEFAULT_COMMAND_TIMEOUT):
        super().__init__()
        self.command_timeout = command_timeout
        self.active_connections: Dict[str, WebSocket] = {}
        self.connection_metadata: Dict[str, Dict[str, Any]] = {}
        self.pending: Dict[str, asyncio.Future] = {}
        self.request_hosts: Dict[str, str] = {}
        self.primary_host_id: Optional[str] = None
        self._event_tasks: Set[asyncio.Task] = set()

    async def connect(self, websocket: WebSocket, host_id: str):
        """Accept a host connection and make it the request target"""
        await websocket.accept()

        self.active_connections[host_id] = websocket
        self.connection_metadata[host_id] = {"connected_at": datetime.now(timezone.utc)}
        self.primary_host_id = host_id

        await websocket.send_json(ConnectionEvent(status="connected", host_id=host_id).model_dump(mode="json"))
        logger.info("Host connected", host_id=host_id)

    async def disconnect(self, host_id: str):
        """Drop a host connection and fail its outstanding requests"""
        websocket = self.active_connections.pop(host_id, None)
        self.connection_metadata.pop(host_id, None)

        for request_id, owner in list(self.request_hosts.items()):
            future = self.pending.get(request_id)
            if owner == host_id and future is not None and not future.done():
                future.set_exception(SessionChannelError(f"Host {host_id} disconnected"))

        if self.primary_host_id == host_id:
            self.primary_host_id = next(reversed(self.active_connections), None)

        if websocket is not None:
            try:
                await websocket.close()
            except RuntimeError as e:
                logger.debug("Host socket already closed", host_id=host_id, error=str(e))

        logger.info("Host disconnected", host_id=host_id)

    def is_connected(self) -> bool:
        return self.primary_host_id is not None

    async def handle_message(self, host_id: str, data: Any):
        """Route one message received from a host"""

        if not isinstance(data, dict):
            logger.warning("Non-object host frame", host_id=host_id, frame_type=type(data).__name__)
            await self.send_error(host_id, "Message must be a JSON object", "invalid_message")
            return

        event_type = data.get("type")

        if event_type == EventType.RESPONSE:
            response = HostResponse(**data)
            future = self.pending.get(response.request_id)
            if future is None or future.done():
                logger.warning("Response for unknown request", host_id=host_id, request_id=response.request_id)
                return
            if response.error:
                future.set_exception(SessionChannelError(response.error))
            else:
                future.set_result(response.payload or {})

        elif event_type == EventType.SESSION_EVENT:
            message = SessionEventMessage(**data)
            event = SessionEvent(type=message.event, session_id=message.session_id)
            task = asyncio.create_task(self.emit(event))
            self._event_tasks.add(task)
            task.add_done_callback(self._event_tasks.discard)

        else:
            logger.warning("Unsupported host message", host_id=host_id, message_type=event_type)
            await self.send_error(host_id, f"Unsupported message type: {event_type}", "unsupported_type")

    async def send_error(self, host_id: str, error_message: str, error_code: Optional[str] = None):
        websocket = self.active_connections.get(host_id)
        if websocket is None:
            return
        event = ErrorEvent(payload={"message": error_message}, error_code=error_code)
        await websocket.send_json(event.model_dump(mode="json"))

    async def _send(self, session_id: Optional[int], payload: Dict[str, Any]) -> Dict[str, Any]:
        if self.primary_host_id is None:
            raise SessionChannelError("No host connected")

        host_id = self.primary_host_id
        websocket = self.active_connections[host_id]
        request_id = uuid.uuid4().hex
        future = asyncio.get_running_loop().create_future()
        self.pending[request_id] = future
        self.request_hosts[request_id] = host_id

        try:
            request = HostRequest(request_id=request_id, session_id=session_id, payload=payload)
            await websocket.send_json(request.model_dump(mode="json"))
            return await future
        finally:
            self.pending.pop(request_id, None)
            self.request_hosts.pop(request_id, None)

    async def _dispatch(self, session_id: int, message: Dict[str, Any]) -> Dict[str, Any]:
        return await self._send(session_id, message)

    async def _command(self, command: HostCommand, **payload) -> Dict[str, Any]:
        try:
            return await asyncio.wait_for(
                self._send(None, {"type": command.value, "payload": payload}),
                timeout=self.command_timeout
            )
        except asyncio.TimeoutError:
            raise SessionTimeoutError(f"Host did not answer {command.value}") from None

    async def query_sessions(self, active_only: bool = False) -> List[SessionInfo]:
        response = await self._command(HostCommand.QUERY_SESSIONS, active_only=active_only)
        return [SessionInfo(**s) for s in response.get("sessions", [])]

    async def create_session(self, url: str, active: bool = True) -> SessionInfo:
        response = await self._command(HostCommand.CREATE_SESSION, url=url, active=active)
        return _session_from(response)

    async def remove_session(self, session_id: int) -> None:
        await self._command(HostCommand.REMOVE_SESSION, session_id=session_id)

    async def update_session(
        self,
        session_id: int,
        url: Optional[str] = None,
        active: Optional[bool] = None
    ) -> SessionInfo:
        changes = {k: v for k, v in {"url": url, "active": active}.items() if v is not None}
        response = await self._command(HostCommand.UPDATE_SESSION, session_id=session_id, **changes)
        return _session_from(response)

    async def reload_session(self, session_id: int) -> None:
        await self._command(HostCommand.RELOAD_SESSION, session_id=session_id)


def _session_from(response: Dict[str, Any]) -> SessionInfo:
    try:
        return SessionInfo(**response["session"])
    except (KeyError, TypeError, ValidationError) as e:
        raise SessionChannelError(f"Malformed session in host response: {e}") from e
