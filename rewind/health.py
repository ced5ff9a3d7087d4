"""Health check endpoints for monitoring and readiness probes."""

import time
from typing import Any, Dict, Optional

import uvicorn
from fastapi import FastAPI, Response
from fastapi.responses import JSONResponse


def create_app(services, start_time: Optional[float] = None) -> FastAPI:
    """
    Build the health app around the shared services.

    Args:
        services: object exposing ``rotator``, ``monitor`` and ``cache``
        start_time: process start (epoch seconds), defaults to now
    """
    app = FastAPI(title="Rewind Health Check")
    started = time.time() if start_time is None else start_time

    @app.get("/health")
    async def health_check() -> JSONResponse:
        return JSONResponse({
            "status": "healthy",
            "uptime_seconds": int(time.time() - started),
            "service": "rewind-bot",
        })

    @app.get("/liveness")
    async def liveness_check() -> Response:
        return Response(status_code=200, content="Alive")

    @app.get("/readiness")
    async def readiness_check() -> Response:
        """
        Kubernetes-style readiness probe.

        Returns:
            200 if at least one API key is usable
            503 otherwise
        """
        if services.rotator.has_alternative(()):
            return Response(status_code=200, content="Ready")
        return Response(status_code=503, content="Not ready: no usable API key")

    @app.get("/metrics")
    async def metrics() -> Dict[str, Any]:
        return {
            "uptime_seconds": int(time.time() - started),
            "start_time": started,
            "usage": services.monitor.snapshot(),
            "api_keys": services.rotator.stats(),
            "cache": services.cache.stats(),
        }

    return app


async def serve(app: FastAPI, port: int, host: str = "0.0.0.0") -> None:
    """Run the health app inside the bot's event loop."""
    server = uvicorn.Server(uvicorn.Config(app, host=host, port=port, log_level="warning"))
    await server.serve()
