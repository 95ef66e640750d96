from abc import ABC, abstractmethod
from typing import Dict, Any, List, Optional, Callable, Awaitable
import asyncio
import structlog

from tabpilot.domain.models.session import SessionInfo, SessionEvent

logger = structlog.get_logger(__name__)

SessionEventListener = Callable[[SessionEvent], Awaitable[None]]

# Request payload types understood by the page-resident agent
REQUEST_PAGE_CONTEXT = "REQUEST_PAGE_CONTEXT"
EXECUTE_ACTION = "EXECUTE_ACTION"


class SessionChannelError(Exception):
    """The host could not deliver a request or answered with an error"""


class SessionTimeoutError(SessionChannelError):
    """The host did not answer within the request bound"""


class SessionHost(ABC):
    """Host environment owning the browser tabs.

    Implementations provide tab enumeration/control and a raw request
    transport (``_dispatch``). ``request`` adds the per-call timeout; the
    pending dispatch is cancelled when the bound expires or the caller is
    cancelled.
    """

    def __init__(self):
        self._listeners: List[SessionEventListener] = []

    @abstractmethod
    async def query_sessions(self, active_only: bool = False) -> List[SessionInfo]:
        """Enumerate tabs; with active_only, the active tab of the current window"""
        pass

    @abstractmethod
    async def create_session(self, url: str, active: bool = True) -> SessionInfo:
        pass

    @abstractmethod
    async def remove_session(self, session_id: int) -> None:
        pass

    @abstractmethod
    async def update_session(
        self,
        session_id: int,
        url: Optional[str] = None,
        active: Optional[bool] = None
    ) -> SessionInfo:
        pass

    @abstractmethod
    async def reload_session(self, session_id: int) -> None:
        pass

    @abstractmethod
    async def _dispatch(self, session_id: int, message: Dict[str, Any]) -> Dict[str, Any]:
        """Deliver a message to the agent inside a tab and await its answer"""
        pass

    async def request(self, session_id: int, message: Dict[str, Any], timeout: float) -> Dict[str, Any]:
        try:
            return await asyncio.wait_for(self._dispatch(session_id, message), timeout=timeout)
        except asyncio.TimeoutError:
            raise SessionTimeoutError(
                f"No response from tab {session_id} within {timeout:g}s"
            ) from None

    def subscribe(self, listener: SessionEventListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def emit(self, event: SessionEvent):
        """Deliver a host event to every listener"""
        for listener in list(self._listeners):
            try:
                await listener(event)
            except Exception as e:
                logger.error("Error in session event listener", event=event.type.value, error=str(e))
