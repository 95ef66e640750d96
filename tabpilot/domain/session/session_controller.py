from typing import Dict, Any, List, Optional, Callable, Union
import inspect
import re
import structlog

from tabpilot.domain.models.session import (
    PageAction, SessionEvent, SessionEventType, SessionInfo, SessionOperationResult
)
from .channel import SessionHost, EXECUTE_ACTION, REQUEST_PAGE_CONTEXT

logger = structlog.get_logger(__name__)

TabsChangeCallback = Callable[[List[SessionInfo]], Any]

DEFAULT_ACTION_TIMEOUT = 15.0
DEFAULT_CONTEXT_TIMEOUT = 10.0


class SessionController:
    """Lists and controls browser tabs through a SessionHost.

    Nothing raises past this boundary: lookups return empty values and
    operations return a ``SessionOperationResult`` carrying the error.
    """

    def __init__(self, host: SessionHost, action_timeout: float = DEFAULT_ACTION_TIMEOUT):
        self.host = host
        self.action_timeout = action_timeout
        self.active_tab_id: Optional[int] = None
        self.tab_listeners: List[TabsChangeCallback] = []
        self._unsubscribe_host = host.subscribe(self._on_host_event)

    async def _on_host_event(self, event: SessionEvent):
        if event.type == SessionEventType.ACTIVATED and event.session_id is not None:
            self.active_tab_id = event.session_id
        await self._notify_tab_change()

    async def list_tabs(self) -> List[SessionInfo]:
        try:
            return await self.host.query_sessions()
        except Exception as e:
            logger.error("Failed to list tabs", error=str(e))
            return []

    async def get_current_tab(self) -> Optional[SessionInfo]:
        try:
            tabs = await self.host.query_sessions(active_only=True)
        except Exception as e:
            logger.error("Failed to get current tab", error=str(e))
            return None
        if tabs:
            return tabs[0].model_copy(update={"active": True})
        return None

    async def open_tab(self, url: str, active: bool = True) -> SessionOperationResult:
        try:
            tab = await self.host.create_session(url, active=active)
            return SessionOperationResult(success=True, tab_id=tab.id)
        except Exception as e:
            return _failure(e)

    async def close_tab(self, tab_id: int) -> SessionOperationResult:
        try:
            await self.host.remove_session(tab_id)
            return SessionOperationResult(success=True, tab_id=tab_id)
        except Exception as e:
            return _failure(e)

    async def switch_to_tab(self, tab_id: int) -> SessionOperationResult:
        try:
            await self.host.update_session(tab_id, active=True)
            self.active_tab_id = tab_id
            return SessionOperationResult(success=True, tab_id=tab_id)
        except Exception as e:
            return _failure(e)

    async def reload_tab(self, tab_id: Optional[int] = None) -> SessionOperationResult:
        target_id = tab_id if tab_id is not None else self.active_tab_id
        if target_id is None:
            return SessionOperationResult(success=False, error="No tab specified")

        try:
            await self.host.reload_session(target_id)
            return SessionOperationResult(success=True, tab_id=target_id)
        except Exception as e:
            return _failure(e)

    async def navigate_to(self, url: str, tab_id: Optional[int] = None) -> SessionOperationResult:
        target_id = tab_id if tab_id is not None else self.active_tab_id
        if target_id is None:
            return await self.open_tab(url)

        try:
            await self.host.update_session(target_id, url=url)
            return SessionOperationResult(success=True, tab_id=target_id)
        except Exception as e:
            return _failure(e)

    async def execute_in_tab(
        self,
        tab_id: int,
        action: Union[PageAction, Dict[str, Any]]
    ) -> SessionOperationResult:
        """Ask the page agent in a tab to perform a UI action"""

        payload = action.model_dump(exclude_none=True) if isinstance(action, PageAction) else dict(action)
        try:
            response = await self.host.request(
                tab_id,
                {"type": EXECUTE_ACTION, "payload": payload},
                timeout=self.action_timeout
            )
        except Exception as e:
            return _failure(e)

        return SessionOperationResult(
            success=bool(response.get("success", False)),
            tab_id=tab_id,
            data=response
        )

    async def request_page_context(
        self,
        tab_id: int,
        timeout: float = DEFAULT_CONTEXT_TIMEOUT,
        include_dom_tree: bool = False
    ) -> SessionOperationResult:
        """Fetch the semantic page summary of a tab"""

        try:
            response = await self.host.request(
                tab_id,
                {"type": REQUEST_PAGE_CONTEXT, "payload": {"include_dom_tree": include_dom_tree}},
                timeout=timeout
            )
        except Exception as e:
            return _failure(e)

        context = response.get("context")
        if not response.get("success") or not context:
            return SessionOperationResult(success=False, tab_id=tab_id, error="Failed to get context")
        return SessionOperationResult(success=True, tab_id=tab_id, data=context)

    async def find_tab_by_url(self, url_pattern: str) -> Optional[SessionInfo]:
        try:
            regex = re.compile(url_pattern)
        except re.error:
            regex = None

        for tab in await self.list_tabs():
            if url_pattern in tab.url or (regex is not None and regex.search(tab.url)):
                return tab
        return None

    async def find_tab_by_title(self, title_pattern: str) -> Optional[SessionInfo]:
        pattern = title_pattern.lower()
        for tab in await self.list_tabs():
            if pattern in tab.title.lower():
                return tab
        return None

    def on_tabs_change(self, callback: TabsChangeCallback) -> Callable[[], None]:
        """Subscribe to tab list snapshots; returns the unsubscribe function"""

        self.tab_listeners.append(callback)

        def unsubscribe():
            if callback in self.tab_listeners:
                self.tab_listeners.remove(callback)

        return unsubscribe

    async def _notify_tab_change(self):
        if not self.tab_listeners:
            return

        tabs = await self.list_tabs()
        for listener in list(self.tab_listeners):
            try:
                outcome = listener(tabs)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.error("Error in tab change listener", error=str(e))

    def get_active_tab_id(self) -> Optional[int]:
        return self.active_tab_id

    def close(self):
        """Detach from host events"""
        self._unsubscribe_host()


def _failure(error: Exception) -> SessionOperationResult:
    return SessionOperationResult(success=False, error=str(error) or type(error).__name__)
