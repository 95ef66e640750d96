from fastapi import FastAPI, WebSocket, WebSocketDisconnect, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError
from typing import Optional
from datetime import datetime, timezone
import structlog

from tabpilot.application.container import AgentContainer
from tabpilot.application.websocket.host_bridge import WebSocketSessionHost
from tabpilot.domain.models.agent_state import AgentTurnResult
from tabpilot.domain.models.session import SynthesisOptions, SynthesisResult
from tabpilot.infrastructure.config.settings import get_settings
from tabpilot.infrastructure.observability.logging import setup_logging
from .schema.events import ChatRequest

logger = structlog.get_logger(__name__)


def create_app(container: Optional[AgentContainer] = None) -> FastAPI:
    """Build the agent server around a container"""

    app = FastAPI(title="TabPilot Agent Server")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.container = container or AgentContainer()

    @app.on_event("startup")
    async def startup_event():
        settings = app.state.container.settings
        setup_logging(settings.log_level, settings.log_format, settings.service_name)
        logger.info("Agent server started")

    @app.on_event("shutdown")
    async def shutdown_event():
        host = app.state.container.host
        if isinstance(host, WebSocketSessionHost):
            for host_id in list(host.active_connections):
                await host.disconnect(host_id)
        logger.info("Agent server shutdown")

    @app.websocket("/ws/host/{host_id}")
    async def host_websocket(websocket: WebSocket, host_id: str):
        """Endpoint the browser host connects to"""

        host = app.state.container.host
        if not isinstance(host, WebSocketSessionHost):
            await websocket.close(code=1008, reason="Host bridge not enabled")
            return

        await host.connect(websocket, host_id)

        try:
            while True:
                data = await websocket.receive_json()
                try:
                    await host.handle_message(host_id, data)
                except ValidationError as e:
                    logger.error("Malformed host message", host_id=host_id, error=str(e))
                    await host.send_error(host_id, f"Malformed message: {e}", "invalid_message")

        except WebSocketDisconnect:
            logger.info("Host socket closed", host_id=host_id)
        finally:
            await host.disconnect(host_id)

    @app.post("/api/v1/agent/chat", response_model=AgentTurnResult)
    async def chat_endpoint(request: ChatRequest):
        try:
            return await app.state.container.orchestrator.process_message(request.message, request.context)
        except Exception as e:
            logger.error("Agent turn failed", error=str(e))
            raise HTTPException(status_code=500, detail=f"Agent turn failed: {e}")

    @app.post("/api/v1/sessions/synthesize", response_model=SynthesisResult)
    async def synthesize_endpoint(options: SynthesisOptions):
        return await app.state.container.synthesizer.synthesize(options)

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        container = app.state.container
        host = container.host
        return {
            "status": "healthy",
            "host_connected": host.is_connected() if isinstance(host, WebSocketSessionHost) else True,
            "tools": container.registry.list_names(),
            "metrics": container.metrics.get_metrics_summary(),
            "timestamp": datetime.now(timezone.utc).isoformat()
        }

    return app


def main():
    import uvicorn

    settings = get_settings()
    uvicorn.run(create_app(), host=settings.server_host, port=settings.server_port)


if __name__ == "__main__":
    main()
