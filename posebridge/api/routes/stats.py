"""Stats endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from posebridge.api.schemas.models import StatsSchema
from posebridge.api.services.engine import PoseEngine
from posebridge.api.services.state import get_engine

router = APIRouter()


@router.get("/stats", response_model=StatsSchema)
def stats(engine: PoseEngine = Depends(get_engine)) -> StatsSchema:
    """Return high-level streaming statistics."""

    summary = engine.latest_summary()
    return StatsSchema(
        active_tracks=len(summary.tracks) if summary is not None else 0,
        fps=summary.fps if summary is not None else 0.0,
        stream_fps=engine.stream_fps(),
        next_id=engine.tracker.next_id,
        error=engine.last_error,
    )
