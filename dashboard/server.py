#!/usr/bin/env python3
"""
Autopilot Dashboard Server
==========================

Status API for the autonomous orchestrator. Serves the orchestrator
status, decision history and metrics to the dashboard front end.

Usage:
    python -m dashboard.server
"""

import os
import logging

from fastapi import FastAPI
import uvicorn

from autopilot.config import load_settings, orchestrator_config_from_settings
from autopilot.orchestrator import AutonomousOrchestrator
from integrations.codegen_client import CodegenClient

from dashboard import orchestrator_api
from dashboard.orchestrator_api import router as orchestrator_router, set_orchestrator

logger = logging.getLogger(__name__)

app = FastAPI(title="Codegen Autopilot Dashboard", version="1.0.0")

# Register routers
app.include_router(orchestrator_router)

# Client created at startup, closed at shutdown
_client = None


@app.get("/health")
async def health_check():
    """Health check endpoint for Docker/load balancer."""
    return {
        "status": "healthy",
        "service": "autopilot",
        "version": "1.0.0",
        "orchestrator": orchestrator_api.orchestrator is not None,
    }


@app.on_event("startup")
async def startup():
    """Build the API client and orchestrator from settings."""
    global _client

    if orchestrator_api.orchestrator is not None:
        return

    settings = load_settings()
    try:
        config = orchestrator_config_from_settings(settings)
        client = CodegenClient.from_settings(settings)
    except ValueError as e:
        logger.error(f"Failed to initialize orchestrator: {e}")
        # Server can still run for health checks
        logger.warning("Running in degraded mode without orchestrator")
        return

    _client = client
    orchestrator = AutonomousOrchestrator(client, config)
    set_orchestrator(orchestrator)
    logger.info("Orchestrator initialized")

    if (settings.get('autopilot') or {}).get('autostart', False):
        orchestrator.start()


@app.on_event("shutdown")
async def shutdown():
    """Stop the loop, let in-flight cycles finish, then release the HTTP client."""
    global _client

    if orchestrator_api.orchestrator is not None:
        orchestrator_api.orchestrator.stop()
        await orchestrator_api.orchestrator.wait_idle()
    if _client is not None:
        await _client.aclose()
        _client = None


def main():
    """Run the dashboard server."""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    host = os.environ.get("DASHBOARD_HOST", "0.0.0.0")
    port = int(os.environ.get("DASHBOARD_PORT", "8080"))

    logger.info(f"Starting dashboard server on {host}:{port}")

    uvicorn.run(
        "dashboard.server:app",
        host=host,
        port=port,
        reload=False,
        log_level="info"
    )


if __name__ == "__main__":
    main()
