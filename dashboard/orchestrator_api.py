"""
Orchestrator Endpoints
======================

API endpoints for observing and controlling the autonomous orchestrator.
"""

from typing import Optional, Dict, Any

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

# Set by the main server (or by tests)
orchestrator = None

router = APIRouter(prefix="/api/orchestrator", tags=["orchestrator"])


def set_orchestrator(orch):
    """Set the orchestrator instance (called from main server)."""
    global orchestrator
    orchestrator = orch


def _require_orchestrator():
    if not orchestrator:
        raise HTTPException(status_code=500, detail="Orchestrator not initialized")
    return orchestrator


class StartRequest(BaseModel):
    """Optional configuration overrides applied before starting."""
    check_interval: Optional[float] = Field(default=None, gt=0, description="Seconds between cycles")
    max_concurrent_tasks: Optional[int] = Field(default=None, gt=0)
    auto_repair: Optional[bool] = None
    auto_optimize: Optional[bool] = None
    auto_scale: Optional[bool] = None
    intelligence_level: Optional[str] = Field(default=None, pattern="^(basic|advanced|expert)$")
    live_actions: Optional[bool] = None


@router.get("/status")
async def get_status() -> Dict[str, Any]:
    """Get orchestrator status, last decision and metrics."""
    orch = _require_orchestrator()
    status = orch.get_status()
    status['config'] = orch.config.to_dict()
    return status


@router.get("/decisions")
async def list_decisions(limit: int = Query(default=20, ge=1, le=100)) -> Dict[str, Any]:
    """List the most recent decisions, oldest first."""
    orch = _require_orchestrator()
    decisions = orch.get_decisions(limit=limit)
    return {
        "decisions": [d.to_dict() for d in decisions],
        "total": orch.get_status()['decision_count'],
        "limit": limit,
    }


@router.get("/metrics")
async def list_metrics() -> Dict[str, Any]:
    """Get the current metric table."""
    orch = _require_orchestrator()
    return {"metrics": orch.get_status()['metrics']}


@router.post("/start")
async def start_orchestrator(overrides: Optional[StartRequest] = None) -> Dict[str, Any]:
    """Start the orchestrator, optionally with config overrides."""
    orch = _require_orchestrator()
    updates = overrides.model_dump(exclude_none=True) if overrides else {}

    if orch.is_running:
        if updates:
            raise HTTPException(status_code=409, detail="Stop the orchestrator before changing its configuration")
        return {"status": "already_running"}

    if updates:
        try:
            orch.reconfigure(orch.config.replace(**updates))
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

    orch.start()
    return {"status": "started", "config": orch.config.to_dict()}


@router.post("/stop")
async def stop_orchestrator() -> Dict[str, Any]:
    """Stop the orchestrator. In-flight cycles finish on their own."""
    orch = _require_orchestrator()
    if not orch.is_running:
        return {"status": "not_running"}
    orch.stop()
    return {"status": "stopped"}


@router.post("/cycle")
async def run_cycle_now() -> Dict[str, Any]:
    """Run one orchestration cycle immediately and return the resulting status."""
    orch = _require_orchestrator()
    await orch.run_cycle()
    return orch.get_status()
