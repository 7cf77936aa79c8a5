"""Pose pipeline orchestration.

Ties detection and identity tracking together into a single per-frame step.
"""

from __future__ import annotations

import time
from typing import Any, Protocol

import numpy as np

from posebridge.core.tracking.pose_tracker import PoseTracker
from posebridge.core.types import DetectedPose, FrameSummary


class PoseDetector(Protocol):
    """Minimal detector interface expected by `PosePipeline`."""

    def detect(self, frame: np.ndarray, **kwargs: Any) -> list[DetectedPose]:
        """Return poses with keypoints normalized to the frame size."""


class PosePipeline:
    """End-to-end per-frame processing: detect poses, then update identities."""

    def __init__(self, detector: PoseDetector, tracker: PoseTracker | None = None) -> None:
        self.detector = detector
        self.tracker = tracker or PoseTracker()
        self.frame_id = 0
        # Monotonic clock for FPS deltas; wall-clock timestamps for payloads.
        self._last_fps_at = time.perf_counter()
        self._fps = 0.0

    def _update_fps(self) -> float:
        now = time.perf_counter()
        dt = now - self._last_fps_at
        self._last_fps_at = now
        if dt > 0:
            instant = 1.0 / dt
            self._fps = instant if self._fps == 0.0 else 0.9 * self._fps + 0.1 * instant
        return self._fps

    def process(self, frame: np.ndarray) -> tuple[FrameSummary, np.ndarray]:
        """Process a frame and return `(summary, frame)`."""

        # Apply queued control signals first so the detector sees the same pose limit.
        self.tracker.apply_pending()
        limit = self.tracker.config.max_tracked_identities
        if limit is not None:
            poses = self.detector.detect(frame, max_poses=limit)
        else:
            poses = self.detector.detect(frame)
        tracks = self.tracker.process_frame(poses, apply_pending=False)

        self.frame_id += 1
        h, w = frame.shape[:2]
        summary = FrameSummary(
            frame_id=self.frame_id,
            timestamp=time.time(),
            tracks=tracks,
            fps=self._update_fps(),
            frame_size=(int(w), int(h)),
            detections=len(poses),
        )
        return summary, frame
