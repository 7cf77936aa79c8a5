"""Identity tracking across per-frame pose detections.

`PoseTracker` owns the active track set. Each cycle builds a detection x track
cost matrix, solves it optimally with Kuhn-Munkres, vetoes pairs whose cost is
not strictly below the distance threshold, then ages out unmatched tracks and
opens new ones for unmatched detections.

Active tracks are kept in this order after every cycle: matched tracks (in
detection order), then retained unmatched tracks (in their previous order),
then newly created tracks (in detection order).
"""

from __future__ import annotations

import logging
import math
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, fields, replace
from typing import Any

from posebridge.core.tracking.assignment import solve
from posebridge.core.tracking.cost import build_cost_matrix
from posebridge.core.tracking.errors import ConfigurationError, CostMatrixError
from posebridge.core.types import DetectedPose, Track

logger = logging.getLogger(__name__)

INITIAL_TRACK_ID = 0


@dataclass(frozen=True)
class TrackingConfig:
    """Tracking parameters. Instances are immutable; use `replace()` to change one."""

    distance_threshold: float = 0.5
    max_missing_frames: int = 5
    # None = unbounded (the detector's own per-frame pose limit still applies).
    max_tracked_identities: int | None = None

    def __post_init__(self) -> None:
        threshold = self.distance_threshold
        if isinstance(threshold, bool) or not isinstance(threshold, (int, float)):
            raise ConfigurationError("distance_threshold must be a number")
        if not threshold > 0.0 or not math.isfinite(threshold):
            raise ConfigurationError("distance_threshold must be a finite value > 0")
        if isinstance(self.max_missing_frames, bool) or not isinstance(self.max_missing_frames, int):
            raise ConfigurationError("max_missing_frames must be an integer")
        if self.max_missing_frames < 0:
            raise ConfigurationError("max_missing_frames must be >= 0")
        limit = self.max_tracked_identities
        if limit is not None:
            if isinstance(limit, bool) or not isinstance(limit, int):
                raise ConfigurationError("max_tracked_identities must be an integer or None")
            if limit < 1:
                raise ConfigurationError("max_tracked_identities must be >= 1")

    def replace(self, **changes: Any) -> TrackingConfig:
        """Return a validated copy with `changes` applied."""

        known = {f.name for f in fields(self)}
        unknown = set(changes) - known
        if unknown:
            raise ConfigurationError(f"unknown tracking setting(s): {', '.join(sorted(unknown))}")
        return replace(self, **changes)


@dataclass
class TrackerState:
    """Mutable state owned by one tracker instance."""

    tracks: list[Track] = field(default_factory=list)
    next_id: int = INITIAL_TRACK_ID


def is_finite_pose(pose: DetectedPose) -> bool:
    """True when every keypoint coordinate and score is a finite number."""

    return all(
        math.isfinite(kp.x) and math.isfinite(kp.y) and math.isfinite(kp.score)
        for kp in pose.keypoints
    )


class PoseTracker:
    """Hungarian-assignment tracker with a hard distance veto and missed-frame expiry.

    `update()` is the raw state transition. Hosts should drive the tracker via
    `process_frame()`, which first applies configuration/reset signals queued by
    `configure()` and `request_reset()` so that they only ever take effect
    between cycles.
    """

    def __init__(
        self,
        config: TrackingConfig | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config or TrackingConfig()
        self._state = TrackerState()
        self._clock = clock
        # Guards the read of the active set through the write-back of the new set.
        self._lock = threading.RLock()
        self._pending_lock = threading.Lock()
        self._pending: dict[str, Any] = {}
        self._reset_requested = False
        self.last_error: str | None = None

    @property
    def config(self) -> TrackingConfig:
        """Configuration used by the current/next cycle (pending changes excluded)."""

        return self._config

    @property
    def tracks(self) -> list[Track]:
        """Snapshot of the active tracks."""

        with self._lock:
            return [replace(track) for track in self._state.tracks]

    @property
    def next_id(self) -> int:
        with self._lock:
            return self._state.next_id

    def configure(self, **changes: Any) -> TrackingConfig:
        """Validate and queue configuration changes for the next cycle boundary.

        Returns the configuration that will be in force once the changes apply.

        Raises:
            ConfigurationError: a value is out of range. Nothing is queued and the
                previous configuration stays in force.
        """

        with self._pending_lock:
            candidate = self._config.replace(**{**self._pending, **changes})
            self._pending.update(changes)
        logger.info("Tracking configuration change queued: %s", changes)
        return candidate

    def request_reset(self) -> None:
        """Queue a reset (clear tracks, restart ids) for the next cycle boundary."""

        with self._pending_lock:
            self._reset_requested = True
        logger.info("Tracking reset requested")

    def reset(self) -> None:
        """Clear all tracks and restart the id counter immediately."""

        with self._lock:
            self._state.tracks = []
            self._state.next_id = INITIAL_TRACK_ID
        logger.info("Tracking state reset")

    def apply_pending(self) -> None:
        """Apply queued configuration changes and reset requests."""

        with self._pending_lock:
            pending = self._pending
            reset_requested = self._reset_requested
            self._pending = {}
            self._reset_requested = False
        if not pending and not reset_requested:
            return
        with self._lock:
            if pending:
                try:
                    self._config = self._config.replace(**pending)
                except ConfigurationError:
                    # Validated when queued; only reachable through racing changes.
                    logger.exception("Discarding tracking configuration change %s", pending)
                else:
                    logger.info("Tracking configuration applied: %s", self._config)
            if reset_requested:
                self.reset()

    def process_frame(
        self, detected_poses: Iterable[DetectedPose], apply_pending: bool = True
    ) -> list[Track]:
        """Process one frame: apply queued signals, then run one tracking cycle.

        Pass `apply_pending=False` when the host already drained the queue at
        the start of this frame.
        """

        if apply_pending:
            self.apply_pending()
        return self.update(detected_poses)

    def update(self, detected_poses: Iterable[DetectedPose]) -> list[Track]:
        """Run one tracking cycle and return a snapshot of the active tracks.

        Never raises on empty input. Detections with non-finite keypoints are
        dropped before matching so they can never become tracks. A malformed
        cost matrix skips the cycle and leaves the previous track set untouched.
        """

        poses = list(detected_poses)
        detections = [pose for pose in poses if is_finite_pose(pose)]
        if len(detections) != len(poses):
            logger.warning("Dropped %d detection(s) with non-finite keypoints", len(poses) - len(detections))
        with self._lock:
            cfg = self._config
            if cfg.max_tracked_identities is not None:
                detections = detections[: cfg.max_tracked_identities]

            state = self._state
            previous = state.tracks
            now = self._clock()

            accepted: list[tuple[int, int]] = []
            if previous and detections:
                cost_matrix = build_cost_matrix(detections, previous)
                try:
                    pairs = solve(cost_matrix)
                except CostMatrixError:
                    self.last_error = "Tracking cycle skipped: malformed cost matrix"
                    logger.exception(self.last_error)
                    return [replace(track) for track in previous]
                accepted = [
                    (di, ti) for di, ti in pairs if cost_matrix[di, ti] < cfg.distance_threshold
                ]

            updated: list[Track] = []
            matched_tracks: set[int] = set()
            matched_dets: set[int] = set()
            for di, ti in accepted:
                track = previous[ti]
                track.keypoints = detections[di].keypoints
                track.missing_frames = 0
                track.last_seen_at = now
                updated.append(track)
                matched_tracks.add(ti)
                matched_dets.add(di)

            for ti, track in enumerate(previous):
                if ti in matched_tracks:
                    continue
                track.missing_frames += 1
                if track.missing_frames > cfg.max_missing_frames:
                    logger.info(
                        "Track %d removed after missing for %d frames",
                        track.id,
                        track.missing_frames,
                    )
                    continue
                updated.append(track)

            for di, det in enumerate(detections):
                if di in matched_dets:
                    continue
                track = Track(
                    id=state.next_id,
                    keypoints=det.keypoints,
                    last_seen_at=now,
                    missing_frames=0,
                )
                state.next_id += 1
                updated.append(track)
                logger.info("New track created with id %d", track.id)

            state.tracks = updated
            self.last_error = None
            return [replace(track) for track in updated]
