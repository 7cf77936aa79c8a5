from __future__ import annotations

import pytest

from posebridge.core.types import KEYPOINT_ORDER, DetectedPose, Keypoint

# Fixed body layout around the pose centre (normalized units).
_OFFSETS = [
    (0.0, -0.20), (-0.02, -0.22), (0.02, -0.22), (-0.04, -0.21), (0.04, -0.21),
    (-0.08, -0.12), (0.08, -0.12), (-0.12, -0.04), (0.12, -0.04), (-0.14, 0.04),
    (0.14, 0.04), (-0.05, 0.05), (0.05, 0.05), (-0.05, 0.15), (0.05, 0.15),
    (-0.05, 0.25), (0.05, 0.25),
]


def build_pose(cx: float, cy: float, score: float = 0.9) -> DetectedPose:
    return DetectedPose(
        keypoints=tuple(
            Keypoint(name=name, x=cx + dx, y=cy + dy, score=score)
            for name, (dx, dy) in zip(KEYPOINT_ORDER, _OFFSETS)
        )
    )


@pytest.fixture()
def make_pose():
    return build_pose
