"""
api_server.py
QuickServer Shield - read-only status API

Provides REST access to:
- Shield state (active flag, rollback deadline, counters)
- Detector statistics
- Recent incidents

Enabled by setting STATUS_API_PORT; served by uvicorn on a daemon thread
next to the detection loop.
"""

import threading
from datetime import datetime
from typing import Any, Dict, List, Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel

from incident_log import IncidentKind
from quickshield import QuickShield

VERSION = "1.0.0"


# === Pydantic Models ===

class IncidentResponse(BaseModel):
    kind: str
    message: str
    timestamp: str
    metadata: Dict[str, Any]


class ShieldStatusResponse(BaseModel):
    active: bool
    shield_duration_seconds: float
    activations: int
    aborted_activations: int
    deactivations: int
    failed_restores: int
    activated_at: Optional[float]
    rollback_deadline: Optional[float]
    rollback_remaining_seconds: Optional[float]


class DetectorStatusResponse(BaseModel):
    interface: str
    max_bytes: int
    threshold_seconds: float
    poll_interval_seconds: float
    polls: int
    fetch_failures: int
    detections: int
    last_delta: Optional[int]
    above_threshold: bool


def create_app(engine: QuickShield) -> FastAPI:
    """Build the status API over a running (or about to run) engine."""
    app = FastAPI(
        title="QuickServer Shield API",
        description="Status of the traffic detector and the ingress shield",
        version=VERSION,
    )

    # === Health Check ===

    @app.get("/", tags=["Health"])
    async def root():
        """API health check."""
        return {
            "status": "online",
            "service": "QuickServer Shield API",
            "version": VERSION,
            "timestamp": datetime.now().isoformat(),
        }

    @app.get("/health", tags=["Health"])
    async def health_check():
        """Detection loop liveness."""
        return {
            "status": "healthy" if engine.is_running else "stopped",
            "monitoring": engine.is_running,
            "shield_active": engine.shield.is_active,
        }

    # === Shield / Detector ===

    @app.get("/shield", response_model=ShieldStatusResponse, tags=["Shield"])
    async def get_shield_status():
        return ShieldStatusResponse(**engine.shield.get_statistics())

    @app.get("/detector", response_model=DetectorStatusResponse, tags=["Detector"])
    async def get_detector_status():
        return DetectorStatusResponse(**engine.detector.get_statistics())

    # === Incidents ===

    @app.get("/incidents/latest", response_model=List[IncidentResponse], tags=["Incidents"])
    async def get_latest_incidents(
        limit: int = Query(50, ge=1, le=200, description="Number of incidents to return"),
        kind: Optional[str] = Query(None, description="Filter by incident kind"),
    ):
        """
        Get the most recent incidents, newest first.

        - **limit**: Maximum number of incidents to return (1-200)
        - **kind**: Optional kind filter (e.g. shield_activated)
        """
        kind_filter = None
        if kind:
            try:
                kind_filter = IncidentKind(kind.lower())
            except ValueError:
                raise HTTPException(status_code=400, detail=f"Unknown incident kind: {kind}")

        return [IncidentResponse(**incident.to_dict())
                for incident in engine.incidents.latest(limit, kind_filter)]

    @app.get("/incidents/count", tags=["Incidents"])
    async def get_incident_count():
        """Count of incidents by kind since start."""
        counts = engine.incidents.counts()
        return {"total": sum(counts.values()), "by_kind": counts}

    return app


def serve_in_background(app: FastAPI, host: str, port: int) -> threading.Thread:
    """Run uvicorn on a daemon thread; it dies with the process."""
    config = uvicorn.Config(app, host=host, port=port, log_level="warning")
    server = uvicorn.Server(config)
    thread = threading.Thread(target=server.run, name="StatusAPI", daemon=True)
    thread.start()
    return thread
