"""
Broadcast HTTP Server for the TON Swap Watcher

Streams emitted swap records to realtime subscribers as server-sent events
and exposes the watcher's health.
"""

import asyncio
from typing import AsyncIterator, Optional
from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse, StreamingResponse
import uvicorn
import structlog

from models.swap import csv_header
from services.broadcaster import SwapBroadcaster
from services.watcher import SwapWatcherService


logger = structlog.get_logger()


class BroadcastServer:
    """HTTP server for the swap event stream and health checks."""

    def __init__(
        self,
        service: SwapWatcherService,
        broadcaster: SwapBroadcaster,
        host: str = "localhost",
        port: int = 8080,
        keepalive_seconds: float = 15.0
    ):
        self.service = service
        self.broadcaster = broadcaster
        self.host = host
        self.port = port
        self.keepalive_seconds = keepalive_seconds
        self.server: Optional[uvicorn.Server] = None
        self.app = FastAPI(
            title="TON Swap Watcher Broadcast API",
            description="Realtime swap events and health endpoints",
            version="1.0.0"
        )
        self._setup_routes()

    async def event_stream(self, queue: asyncio.Queue) -> AsyncIterator[str]:
        """Yield SSE frames for one subscriber until it disconnects."""
        try:
            yield f": {csv_header()}\n\n"
            while True:
                try:
                    record = await asyncio.wait_for(queue.get(), timeout=self.keepalive_seconds)
                except asyncio.TimeoutError:
                    yield ": keep-alive\n\n"
                    continue
                yield f"data: {record}\n\n"
        finally:
            self.broadcaster.unsubscribe(queue)

    def _setup_routes(self):
        """Setup HTTP routes."""

        @self.app.get("/events")
        async def events():
            """Server-sent events stream, one CSV record per swap."""
            queue = self.broadcaster.subscribe()
            return StreamingResponse(
                self.event_stream(queue),
                media_type="text/event-stream",
                headers={"Cache-Control": "no-cache", "Connection": "keep-alive"}
            )

        @self.app.get("/health", response_class=JSONResponse)
        async def health_check():
            """Main health check endpoint."""
            try:
                health_status = await self.service.health_check()
                health_status["subscribers"] = self.broadcaster.subscriber_count

                status_code = 200 if health_status.get("status") == "healthy" else 503

                return JSONResponse(
                    content=health_status,
                    status_code=status_code
                )
            except Exception as e:
                logger.error("Health check failed", error=str(e))
                raise HTTPException(
                    status_code=503,
                    detail={"status": "unhealthy", "error": str(e)}
                )

    async def serve(self):
        """Start the broadcast server."""
        config = uvicorn.Config(
            self.app,
            host=self.host,
            port=self.port,
            log_level="warning",
            access_log=False
        )
        self.server = uvicorn.Server(config)

        logger.info("Starting broadcast server", host=self.host, port=self.port)
        await self.server.serve()

    def shutdown(self):
        if self.server is not None:
            self.server.should_exit = True
