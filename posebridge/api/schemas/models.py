"""Pydantic models for the HTTP/WS API."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator


class KeypointSchema(BaseModel):
    """Normalized keypoint payload."""

    x: float
    y: float
    score: float
    name: str


class TrackSchema(BaseModel):
    """Active track as exposed by `/tracking/tracks`."""

    id: int
    keypoints: list[KeypointSchema]
    missing_frames: int
    last_seen_at: float


class TrackingConfigSchema(BaseModel):
    """Effective tracking configuration."""

    distance_threshold: float
    max_missing_frames: int
    max_tracked_identities: int | None = None
    active_tracks: int = 0
    next_id: int = 0


class ThresholdUpdate(BaseModel):
    value: float


class CountUpdate(BaseModel):
    value: int


class StatsSchema(BaseModel):
    """High-level summary stats payload."""

    active_tracks: int
    fps: float
    stream_fps: float | None = None
    next_id: int
    error: str | None = None


class ConfigSchema(BaseModel):
    """Runtime configuration payload."""

    video_source: str
    camera_index: int = Field(default=0, ge=0)
    video_path: str | None = None
    frame_width: int = Field(default=640, gt=0)
    frame_height: int = Field(default=480, gt=0)
    model_name: str
    confidence: float = Field(gt=0.0, le=1.0)
    distance_threshold: float = Field(default=0.5, gt=0.0, allow_inf_nan=False)
    max_missing_frames: int = Field(default=5, ge=0)
    max_num_poses: int = Field(default=5, ge=1)
    emit_stale_tracks: bool = True
    keypoint_draw_threshold: float = Field(default=0.3, ge=0.0, le=1.0)
    enable_backend_overlays: bool = True
    jpeg_quality: int = Field(default=70, ge=10, le=100)
    target_fps: float | None = Field(default=None, ge=0)

    @field_validator("video_source")
    @classmethod
    def _validate_source(cls, v: str) -> str:
        if v not in {"webcam", "file"}:
            raise ValueError("video_source must be webcam|file")
        return v
