"""Tracking control endpoints.

Changes are validated immediately and take effect at the next frame boundary.
Out-of-range values return 422 and leave the previous value in force.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from posebridge.api.schemas.models import (
    CountUpdate,
    KeypointSchema,
    ThresholdUpdate,
    TrackingConfigSchema,
    TrackSchema,
)
from posebridge.api.services.engine import PoseEngine
from posebridge.api.services.state import get_engine
from posebridge.core.tracking.errors import ConfigurationError
from posebridge.core.tracking.pose_tracker import TrackingConfig

router = APIRouter(prefix="/tracking")

logger = logging.getLogger(__name__)


def _config_payload(engine: PoseEngine, cfg: TrackingConfig) -> TrackingConfigSchema:
    return TrackingConfigSchema(
        distance_threshold=cfg.distance_threshold,
        max_missing_frames=cfg.max_missing_frames,
        max_tracked_identities=cfg.max_tracked_identities,
        active_tracks=len(engine.tracker.tracks),
        next_id=engine.tracker.next_id,
    )


def _configure(engine: PoseEngine, **changes: object) -> TrackingConfigSchema:
    try:
        cfg = engine.configure_tracking(**changes)
    except ConfigurationError as exc:
        logger.warning("Rejected tracking configuration %s: %s", changes, exc)
        raise HTTPException(status_code=422, detail=str(exc)) from None
    return _config_payload(engine, cfg)


@router.get("", response_model=TrackingConfigSchema)
def get_tracking(engine: PoseEngine = Depends(get_engine)) -> TrackingConfigSchema:
    """Return the tracking configuration currently in force."""

    return _config_payload(engine, engine.tracker.config)


@router.get("/tracks", response_model=list[TrackSchema])
def get_tracks(engine: PoseEngine = Depends(get_engine)) -> list[TrackSchema]:
    """Return the active tracks, stale ones included."""

    return [
        TrackSchema(
            id=track.id,
            keypoints=[KeypointSchema(**kp.to_dict()) for kp in track.keypoints],
            missing_frames=track.missing_frames,
            last_seen_at=track.last_seen_at,
        )
        for track in engine.tracker.tracks
    ]


@router.post("/distance-threshold", response_model=TrackingConfigSchema)
def set_distance_threshold(
    body: ThresholdUpdate, engine: PoseEngine = Depends(get_engine)
) -> TrackingConfigSchema:
    return _configure(engine, distance_threshold=body.value)


@router.post("/max-poses", response_model=TrackingConfigSchema)
def set_max_poses(body: CountUpdate, engine: PoseEngine = Depends(get_engine)) -> TrackingConfigSchema:
    return _configure(engine, max_tracked_identities=body.value)


@router.post("/max-missing-frames", response_model=TrackingConfigSchema)
def set_max_missing_frames(
    body: CountUpdate, engine: PoseEngine = Depends(get_engine)
) -> TrackingConfigSchema:
    return _configure(engine, max_missing_frames=body.value)


@router.post("/reset")
def reset_tracking(engine: PoseEngine = Depends(get_engine)) -> dict[str, str]:
    """Clear all identities and restart ids at the next frame."""

    engine.reset_tracking()
    return {"status": "reset scheduled"}
