"""Pose dissimilarity used to associate detections with tracks.

The cost blends centroid distance with the mean per-keypoint distance. Keypoint
shape dominates so that two different people standing close together stay
apart, while the same person moving between frames still scores low.
"""

from __future__ import annotations

import math
from collections.abc import Sequence

import numpy as np

from posebridge.core.types import DetectedPose, Keypoint, Point, Track

VISIBILITY_THRESHOLD = 0.3
CENTROID_WEIGHT = 0.1
KEYPOINT_WEIGHT = 0.9


def centroid(keypoints: Sequence[Keypoint]) -> Point | None:
    """Mean (x, y) of visible keypoints, or `None` when nothing is visible."""

    sum_x = 0.0
    sum_y = 0.0
    count = 0
    for kp in keypoints:
        if kp.score > VISIBILITY_THRESHOLD:
            sum_x += kp.x
            sum_y += kp.y
            count += 1
    if count == 0:
        return None
    return sum_x / count, sum_y / count


def average_keypoint_distance(a: Sequence[Keypoint], b: Sequence[Keypoint]) -> float:
    """Mean distance over index-aligned keypoints visible in both poses (`inf` if none)."""

    total = 0.0
    count = 0
    for kp_a, kp_b in zip(a, b):
        if kp_a.score > VISIBILITY_THRESHOLD and kp_b.score > VISIBILITY_THRESHOLD:
            total += math.hypot(kp_a.x - kp_b.x, kp_a.y - kp_b.y)
            count += 1
    if count == 0:
        return math.inf
    return total / count


def pose_cost(detected: DetectedPose, track_keypoints: Sequence[Keypoint]) -> float:
    """Return the dissimilarity between a detection and a track's last known pose."""

    c_det = centroid(detected.keypoints)
    c_track = centroid(track_keypoints)
    if c_det is None or c_track is None:
        return math.inf

    d_centroid = math.hypot(c_det[0] - c_track[0], c_det[1] - c_track[1])
    d_keypoints = average_keypoint_distance(detected.keypoints, track_keypoints)
    return CENTROID_WEIGHT * d_centroid + KEYPOINT_WEIGHT * d_keypoints


def build_cost_matrix(detections: Sequence[DetectedPose], tracks: Sequence[Track]) -> np.ndarray:
    """Cost matrix with one row per detection and one column per track."""

    matrix = np.empty((len(detections), len(tracks)), dtype=np.float64)
    for i, det in enumerate(detections):
        for j, track in enumerate(tracks):
            matrix[i, j] = pose_cost(det, track.keypoints)
    return matrix
