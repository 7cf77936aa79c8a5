"""Backend configuration.

Settings are loaded from YAML defaults and overridden by environment variables
prefixed with `PB_`.
"""

from __future__ import annotations

import math
import os
from pathlib import Path
from typing import Any, cast

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from posebridge.core.tracking.pose_tracker import TrackingConfig


class BackendSettings(BaseSettings):
    """Runtime configuration loaded from YAML defaults and `PB_` env overrides."""

    video_source: str = Field("webcam", description="webcam|file")
    camera_index: int = 0
    video_path: str | None = None
    frame_width: int = 640
    frame_height: int = 480

    # Any Ultralytics pose model (COCO 17-keypoint schema) or its ONNX export.
    model_name: str = Field("yolo11n-pose.pt")
    confidence: float = 0.25

    # Tracking
    distance_threshold: float = 0.5
    max_missing_frames: int = 5
    # Per-frame pose limit, applied by the detector and the tracker alike.
    max_num_poses: int = 5

    # Relay: retained (currently unmatched) tracks are sent with their last
    # known keypoints unless this is disabled.
    emit_stale_tracks: bool = True

    # Rendering
    keypoint_draw_threshold: float = 0.3
    enable_backend_overlays: bool = True
    jpeg_quality: int = 70
    # Optional cap for processing loop FPS. Use 0 to run as fast as possible.
    # If None, engine picks a sensible default based on the source.
    target_fps: float | None = None

    model_config = SettingsConfigDict(env_prefix="PB_", validate_assignment=True)

    @field_validator("video_source")
    @classmethod
    def _validate_source(cls, v: str) -> str:
        if v not in {"webcam", "file"}:
            raise ValueError("video_source must be webcam|file")
        return v

    @field_validator("camera_index")
    @classmethod
    def _validate_camera_index(cls, v: int) -> int:
        if v < 0:
            raise ValueError("camera_index must be >= 0")
        return v

    @field_validator("frame_width", "frame_height")
    @classmethod
    def _validate_frame_size(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("frame size must be > 0")
        return v

    @field_validator("confidence")
    @classmethod
    def _validate_confidence(cls, v: float) -> float:
        if not 0.0 < v <= 1.0:
            raise ValueError("confidence must be in (0, 1]")
        return v

    @field_validator("distance_threshold")
    @classmethod
    def _validate_distance_threshold(cls, v: float) -> float:
        if not v > 0.0 or not math.isfinite(v):
            raise ValueError("distance_threshold must be a finite value > 0")
        return float(v)

    @field_validator("max_missing_frames")
    @classmethod
    def _validate_max_missing_frames(cls, v: int) -> int:
        if v < 0:
            raise ValueError("max_missing_frames must be >= 0")
        return v

    @field_validator("max_num_poses")
    @classmethod
    def _validate_max_num_poses(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_num_poses must be >= 1")
        return v

    @field_validator("keypoint_draw_threshold")
    @classmethod
    def _validate_keypoint_draw_threshold(cls, v: float) -> float:
        if not 0.0 <= float(v) <= 1.0:
            raise ValueError("keypoint_draw_threshold must be in [0, 1]")
        return float(v)

    @field_validator("jpeg_quality")
    @classmethod
    def _validate_jpeg_quality(cls, v: int) -> int:
        if not 10 <= v <= 100:
            raise ValueError("jpeg_quality must be in [10, 100]")
        return v

    @field_validator("target_fps")
    @classmethod
    def _validate_target_fps(cls, v: float | None) -> float | None:
        if v is None:
            return v
        if v < 0:
            raise ValueError("target_fps must be >= 0")
        return float(v)


def settings_to_dict(settings: BackendSettings) -> dict[str, Any]:
    """Convert settings to a plain dict."""

    return cast(dict[str, Any], settings.model_dump())


def tracking_config_from_settings(settings: BackendSettings) -> TrackingConfig:
    """Build the tracker configuration from backend settings."""

    return TrackingConfig(
        distance_threshold=float(settings.distance_threshold),
        max_missing_frames=int(settings.max_missing_frames),
        max_tracked_identities=int(settings.max_num_poses),
    )


def _config_path() -> Path:
    """Return the YAML configuration path (defaults to config/posebridge.config.yml)."""

    return Path(os.getenv("PB_CONFIG", "config/posebridge.config.yml"))


def load_settings() -> BackendSettings:
    """Load settings from YAML and environment variables.

    YAML provides defaults; environment variables override.
    """

    data: dict[str, Any] = {}
    path = _config_path()
    if path.exists():
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

    env_settings = BackendSettings()
    env_overrides: dict[str, Any] = {
        name: getattr(env_settings, name) for name in env_settings.model_fields_set
    }

    merged = {**data, **env_overrides}
    return BackendSettings(**merged)
