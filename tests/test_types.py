import numpy as np
import pytest

from posebridge.core.types import (
    KEYPOINT_ORDER,
    NUM_KEYPOINTS,
    DetectedPose,
    KeypointName,
    Track,
)


def test_from_array_normalizes_pixel_coordinates():
    arr = np.zeros((NUM_KEYPOINTS, 3))
    arr[0] = [320.0, 120.0, 0.9]
    arr[16] = [640.0, 480.0, 0.5]
    pose = DetectedPose.from_array(arr, width=640, height=480, confidence=0.8)

    assert len(pose.keypoints) == NUM_KEYPOINTS
    assert pose.keypoints[0].name is KeypointName.NOSE
    assert pose.keypoints[0].x == pytest.approx(0.5)
    assert pose.keypoints[0].y == pytest.approx(0.25)
    assert pose.keypoints[16].name is KeypointName.RIGHT_ANKLE
    assert (pose.keypoints[16].x, pose.keypoints[16].y) == (1.0, 1.0)
    assert pose.confidence == 0.8
    # Input is not modified in place.
    assert arr[0, 0] == 320.0


def test_from_array_rejects_bad_shapes():
    with pytest.raises(ValueError):
        DetectedPose.from_array(np.zeros((17, 2)), 640, 480)
    with pytest.raises(ValueError):
        DetectedPose.from_array(np.zeros((17, 3)), 0, 480)
    with pytest.raises(ValueError):
        DetectedPose.from_normalized(np.zeros((18, 3)))


def test_keypoint_order_is_coco():
    assert NUM_KEYPOINTS == 17
    assert KEYPOINT_ORDER[5] is KeypointName.LEFT_SHOULDER
    assert KEYPOINT_ORDER[12] is KeypointName.RIGHT_HIP


def test_track_message_payload(make_pose):
    track = Track(id=3, keypoints=make_pose(0.5, 0.5).keypoints, last_seen_at=1.0)
    msg = track.to_message()
    assert msg["personId"] == 3
    assert len(msg["keypoints"]) == 17
    assert msg["keypoints"][0] == {"x": 0.5, "y": pytest.approx(0.3), "score": 0.9, "name": "nose"}


@pytest.mark.parametrize("column", [0, 1, 2])
def test_from_array_rejects_non_finite_values(column):
    arr = np.full((NUM_KEYPOINTS, 3), 10.0)
    arr[3, column] = np.nan
    with pytest.raises(ValueError):
        DetectedPose.from_array(arr, 100, 100)
    arr[3, column] = np.inf
    with pytest.raises(ValueError):
        DetectedPose.from_array(arr, 100, 100)
