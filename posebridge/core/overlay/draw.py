"""Overlay drawing helpers (OpenCV).

Tracks carry normalized keypoints; they are scaled back to pixel coordinates of
the frame being annotated.
"""

from __future__ import annotations

import cv2
import numpy as np

from posebridge.core.relay import visible_tracks
from posebridge.core.types import FrameSummary, KeypointName, Track

KEYPOINT_COLOR = (0, 0, 255)  # red
SKELETON_COLOR = (0, 128, 0)  # green
STALE_COLOR = (128, 128, 128)
TEXT_COLOR = (255, 255, 255)

# COCO skeleton edges by keypoint index.
SKELETON_EDGES: tuple[tuple[int, int], ...] = (
    (0, 1), (0, 2), (1, 3), (2, 4),
    (5, 6), (5, 7), (7, 9), (6, 8), (8, 10),
    (5, 11), (6, 12), (11, 12),
    (11, 13), (13, 15), (12, 14), (14, 16),
)


def _pixel(x: float, y: float, w: int, h: int) -> tuple[int, int]:
    return int(round(x * w)), int(round(y * h))


def draw_track(img: np.ndarray, track: Track, min_confidence: float = 0.3) -> None:
    """Draw one track's keypoints, skeleton and id label in place."""

    h, w = img.shape[:2]
    kps = track.keypoints
    stale = track.missing_frames > 0
    line_color = STALE_COLOR if stale else SKELETON_COLOR
    point_color = STALE_COLOR if stale else KEYPOINT_COLOR

    for i, j in SKELETON_EDGES:
        if i >= len(kps) or j >= len(kps):
            continue
        a, b = kps[i], kps[j]
        if a.score >= min_confidence and b.score >= min_confidence:
            cv2.line(img, _pixel(a.x, a.y, w, h), _pixel(b.x, b.y, w, h), line_color, 2, cv2.LINE_AA)

    for kp in kps:
        if kp.score >= min_confidence:
            cv2.circle(img, _pixel(kp.x, kp.y, w, h), 5, point_color, -1)

    anchor = next((kp for kp in kps if kp.name == KeypointName.NOSE and kp.score >= min_confidence), None)
    if anchor is None:
        anchor = next((kp for kp in kps if kp.score >= min_confidence), None)
    if anchor is not None:
        x, y = _pixel(anchor.x, anchor.y, w, h)
        cv2.putText(
            img,
            f"ID {track.id}",
            (x, max(y - 12, 0)),
            cv2.FONT_HERSHEY_SIMPLEX,
            0.5,
            TEXT_COLOR,
            1,
            cv2.LINE_AA,
        )


def draw_overlays(
    frame: np.ndarray,
    summary: FrameSummary,
    min_confidence: float = 0.3,
    emit_stale: bool = True,
) -> np.ndarray:
    """Return a copy of `frame` with the active tracks drawn on it.

    Stale tracks are drawn in grey, or skipped when `emit_stale` is False.
    """

    tracks = visible_tracks(summary.tracks, emit_stale)
    if not tracks:
        return frame

    img = frame.copy()
    for track in tracks:
        draw_track(img, track, min_confidence)
    return img
