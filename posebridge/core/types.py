"""Shared type definitions used across the backend.

This module centralizes the small, stable types (keypoints, poses, tracks and
per-frame summaries) so detector/tracker/relay code can stay strongly typed.
Coordinates are always normalized to the frame size, i.e. in [0, 1].
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

import numpy as np

Frame = np.ndarray

Point = tuple[float, float]


class KeypointName(str, Enum):
    """COCO body-part labels in the order pose models emit them."""

    NOSE = "nose"
    LEFT_EYE = "left_eye"
    RIGHT_EYE = "right_eye"
    LEFT_EAR = "left_ear"
    RIGHT_EAR = "right_ear"
    LEFT_SHOULDER = "left_shoulder"
    RIGHT_SHOULDER = "right_shoulder"
    LEFT_ELBOW = "left_elbow"
    RIGHT_ELBOW = "right_elbow"
    LEFT_WRIST = "left_wrist"
    RIGHT_WRIST = "right_wrist"
    LEFT_HIP = "left_hip"
    RIGHT_HIP = "right_hip"
    LEFT_KNEE = "left_knee"
    RIGHT_KNEE = "right_knee"
    LEFT_ANKLE = "left_ankle"
    RIGHT_ANKLE = "right_ankle"


KEYPOINT_ORDER: tuple[KeypointName, ...] = tuple(KeypointName)
NUM_KEYPOINTS = len(KEYPOINT_ORDER)


@dataclass(frozen=True)
class Keypoint:
    """One labelled body landmark with a confidence score."""

    name: KeypointName
    x: float
    y: float
    score: float

    def to_dict(self) -> dict[str, Any]:
        """Return the relay wire form of this keypoint."""

        return {"x": self.x, "y": self.y, "score": self.score, "name": self.name.value}


def keypoints_from_array(arr: np.ndarray) -> tuple[Keypoint, ...]:
    """Build keypoints from an already normalized `(N, 3)` array of x, y, score."""

    data = np.asarray(arr, dtype=np.float64)
    if data.ndim != 2 or data.shape[1] < 3:
        raise ValueError("keypoint array must have shape (N, 3)")
    if data.shape[0] > NUM_KEYPOINTS:
        raise ValueError(f"expected at most {NUM_KEYPOINTS} keypoints, got {data.shape[0]}")
    if not np.isfinite(data[:, :3]).all():
        raise ValueError("keypoint array contains non-finite values")
    return tuple(
        Keypoint(name=name, x=float(row[0]), y=float(row[1]), score=float(row[2]))
        for name, row in zip(KEYPOINT_ORDER, data)
    )


@dataclass
class DetectedPose:
    """One detection in the current frame. Has no identity."""

    keypoints: tuple[Keypoint, ...]
    confidence: float | None = None

    @classmethod
    def from_normalized(cls, arr: np.ndarray, confidence: float | None = None) -> DetectedPose:
        return cls(keypoints=keypoints_from_array(arr), confidence=confidence)

    @classmethod
    def from_array(
        cls,
        arr: np.ndarray,
        width: int,
        height: int,
        confidence: float | None = None,
    ) -> DetectedPose:
        """Build a pose from pixel coordinates by normalizing to the frame size."""

        if width <= 0 or height <= 0:
            raise ValueError("frame size must be positive")
        data = np.array(arr, dtype=np.float64)
        if data.ndim != 2 or data.shape[1] < 3:
            raise ValueError("keypoint array must have shape (N, 3)")
        data[:, 0] /= float(width)
        data[:, 1] /= float(height)
        return cls.from_normalized(data, confidence=confidence)


@dataclass
class Track:
    """A persistent identity aggregating one subject's pose across frames."""

    id: int
    keypoints: tuple[Keypoint, ...]
    last_seen_at: float
    missing_frames: int = 0

    def to_message(self) -> dict[str, Any]:
        """Return the `{personId, keypoints}` payload sent downstream."""

        return {"personId": self.id, "keypoints": [kp.to_dict() for kp in self.keypoints]}


@dataclass
class FrameSummary:
    """Metadata payload associated with a processed frame."""

    frame_id: int
    timestamp: float
    tracks: list[Track]
    fps: float
    frame_size: tuple[int, int] = (0, 0)
    detections: int = 0
