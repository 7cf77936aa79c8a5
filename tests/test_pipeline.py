from __future__ import annotations

import numpy as np

from posebridge.core.pipeline import PosePipeline
from posebridge.core.tracking.pose_tracker import PoseTracker, TrackingConfig


class _ScriptedDetector:
    def __init__(self, frames):
        self.frames = list(frames)
        self.calls = []

    def detect(self, frame, max_poses=None):
        self.calls.append(max_poses)
        return self.frames.pop(0) if self.frames else []


def test_pipeline_tracks_identities_across_frames(make_pose):
    detector = _ScriptedDetector(
        [
            [make_pose(0.2, 0.5), make_pose(0.7, 0.5)],
            [make_pose(0.72, 0.5), make_pose(0.21, 0.5)],
            [],
        ]
    )
    pipeline = PosePipeline(detector=detector, tracker=PoseTracker())
    frame = np.zeros((48, 64, 3), dtype=np.uint8)

    s1, out = pipeline.process(frame)
    s2, _ = pipeline.process(frame)
    s3, _ = pipeline.process(frame)

    assert out is frame
    assert [s.frame_id for s in (s1, s2, s3)] == [1, 2, 3]
    assert s1.frame_size == (64, 48)
    assert [t.id for t in s2.tracks] == [1, 0]
    assert s2.detections == 2
    assert [t.missing_frames for t in s3.tracks] == [1, 1]


def test_pipeline_passes_pose_limit_to_detector(make_pose):
    detector = _ScriptedDetector([[make_pose(0.5, 0.5)]])
    tracker = PoseTracker(TrackingConfig(max_tracked_identities=3))
    pipeline = PosePipeline(detector=detector, tracker=tracker)

    tracker.configure(max_tracked_identities=2)
    pipeline.process(np.zeros((8, 8, 3), dtype=np.uint8))

    assert detector.calls == [2]


def test_pipeline_without_pose_limit(make_pose):
    detector = _ScriptedDetector([[make_pose(0.5, 0.5)]])
    pipeline = PosePipeline(detector=detector)
    pipeline.process(np.zeros((8, 8, 3), dtype=np.uint8))
    assert detector.calls == [None]


class _ReconfiguringDetector(_ScriptedDetector):
    """Queues a new pose limit while the frame is being detected."""

    def __init__(self, tracker, frames):
        super().__init__(frames)
        self.tracker = tracker

    def detect(self, frame, max_poses=None):
        poses = super().detect(frame, max_poses=max_poses)
        if len(self.calls) == 1:
            self.tracker.configure(max_tracked_identities=1)
        return poses


def test_pose_limit_change_during_a_frame_applies_to_the_next_one(make_pose):
    tracker = PoseTracker(TrackingConfig(max_tracked_identities=3))
    poses = [make_pose(0.2, 0.5), make_pose(0.5, 0.5), make_pose(0.8, 0.5)]
    detector = _ReconfiguringDetector(tracker, [poses, poses])
    pipeline = PosePipeline(detector=detector, tracker=tracker)
    frame = np.zeros((8, 8, 3), dtype=np.uint8)

    s1, _ = pipeline.process(frame)
    assert tracker.config.max_tracked_identities == 3
    assert len(s1.tracks) == 3

    pipeline.process(frame)
    assert detector.calls == [3, 1]
    assert tracker.config.max_tracked_identities == 1
