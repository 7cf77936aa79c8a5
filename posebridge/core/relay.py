"""Messages relayed to the downstream control surface.

One `poseData` message is produced per active track and frame. Retained tracks
(matched in an earlier frame but not this one) are included with their last
known keypoints unless `emit_stale` is False.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from posebridge.core.types import FrameSummary, Track
from posebridge.core.video_sources.base import CameraDevice


def visible_tracks(tracks: Iterable[Track], emit_stale: bool = True) -> list[Track]:
    if emit_stale:
        return list(tracks)
    return [track for track in tracks if track.missing_frames == 0]


def pose_messages(summary: FrameSummary, emit_stale: bool = True) -> list[dict[str, Any]]:
    """Build the per-track `poseData` messages for one frame."""

    out: list[dict[str, Any]] = []
    for track in visible_tracks(summary.tracks, emit_stale):
        msg = track.to_message()
        msg["type"] = "poseData"
        msg["frameId"] = summary.frame_id
        out.append(msg)
    return out


def camera_list_message(devices: Iterable[CameraDevice]) -> dict[str, dict[str, str]]:
    """Camera list keyed by list position, as expected by `changeCamera`."""

    return {str(d.index): {"label": d.label, "deviceId": d.device_id} for d in devices}
