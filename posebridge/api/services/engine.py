from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import AsyncGenerator
from pathlib import Path
from queue import Empty, Queue

import cv2
import numpy as np

from posebridge.core.config.settings import BackendSettings, tracking_config_from_settings
from posebridge.core.detectors.yolo_pose import YoloPoseDetector
from posebridge.core.overlay.draw import draw_overlays
from posebridge.core.pipeline import PosePipeline
from posebridge.core.tracking.pose_tracker import PoseTracker, TrackingConfig
from posebridge.core.types import FrameSummary
from posebridge.core.video_sources.base import (
    CameraDevice,
    FileSource,
    VideoSource,
    WebcamSource,
    list_video_devices,
)

logger = logging.getLogger(__name__)


class PoseEngine:
    """Runs the capture -> track -> encode loop.

    - capture thread continuously reads frames
    - process thread runs `PosePipeline.process()` and draws overlays (optional)
    - encode thread JPEG-encodes frames and drops old frames under load

    The tracker is only touched by the process thread; control signals are
    queued on it and applied between frames.
    """

    def __init__(self, settings: BackendSettings) -> None:
        self.settings = settings
        self.tracker = PoseTracker(tracking_config_from_settings(settings))
        self.pipeline = PosePipeline(
            detector=YoloPoseDetector(
                settings.model_name,
                conf=settings.confidence,
                max_poses=settings.max_num_poses,
            ),
            tracker=self.tracker,
        )
        if settings.target_fps is not None:
            self._target_fps = float(settings.target_fps)
        elif settings.video_source == "file":
            # FileSource paces playback to the file's FPS.
            self._target_fps = 0.0
        else:
            self._target_fps = 30.0
        self.camera_index = settings.camera_index
        self._cameras: list[CameraDevice] = []
        self.source: VideoSource | None = None
        self.running = False
        self._capture_thread: threading.Thread | None = None
        self._process_thread: threading.Thread | None = None
        self._encode_thread: threading.Thread | None = None
        self._lock = threading.Lock()
        self._source_lock = threading.Lock()
        self._latest_frame: bytes | None = None
        self._latest_summary: FrameSummary | None = None
        self._capture_lock = threading.Lock()
        self._capture_event = threading.Event()
        self._latest_captured_frame: np.ndarray | None = None
        self._encode_queue: Queue[tuple[np.ndarray, FrameSummary]] = Queue(maxsize=1)
        self._encode_event = threading.Event()
        self._camera_fps = 0.0
        self._camera_alpha = 0.2
        self._last_captured_at: float | None = None
        self.last_error: str | None = None

    def _make_source(self) -> VideoSource:
        """Instantiate the configured `VideoSource`."""

        if self.settings.video_source == "file" and self.settings.video_path:
            video_path = Path(self.settings.video_path)
            if not video_path.exists():
                raise RuntimeError(f"Video path not found: {video_path}")
            return FileSource(str(video_path))
        return WebcamSource(self.camera_index, self.settings.frame_width, self.settings.frame_height)

    def start(self) -> None:
        """Start background threads.

        Safe to call multiple times; subsequent calls while running are ignored.
        """

        if self.running:
            return
        try:
            self.source = self._make_source()
        except Exception:
            self.last_error = "Failed to initialize video source"
            logger.exception(self.last_error)
            return
        self.running = True
        self.last_error = None
        self._capture_event.clear()
        self._encode_event.clear()
        self._capture_thread = threading.Thread(target=self._capture_loop, daemon=True)
        self._process_thread = threading.Thread(target=self._process_loop, daemon=True)
        self._encode_thread = threading.Thread(target=self._encode_loop, daemon=True)
        self._capture_thread.start()
        self._process_thread.start()
        self._encode_thread.start()

    def stop(self) -> None:
        """Stop background threads and close the video source."""

        self.running = False
        self._capture_event.set()
        self._encode_event.set()
        for thread in (self._capture_thread, self._process_thread, self._encode_thread):
            if thread and thread.is_alive():
                thread.join(timeout=2)
        with self._source_lock:
            if self.source:
                self.source.close()
                self.source = None

    # -- control signals -------------------------------------------------

    def configure_tracking(self, **changes) -> TrackingConfig:
        """Queue tracking configuration changes; raises `ConfigurationError` when invalid."""

        return self.tracker.configure(**changes)

    def reset_tracking(self) -> None:
        """Clear identities at the next frame boundary."""

        self.tracker.request_reset()

    def list_cameras(self, refresh: bool = True) -> list[CameraDevice]:
        """Return (and cache) the available video input devices."""

        if refresh or not self._cameras:
            self._cameras = list_video_devices()
        return list(self._cameras)

    def change_camera(self, index: int) -> CameraDevice:
        """Switch to camera `index` of the last camera list and reset tracking.

        Raises:
            KeyError: no camera at that position.
        """

        cameras = self._cameras or self.list_cameras()
        if not 0 <= index < len(cameras):
            raise KeyError(index)
        device = cameras[index]
        camera_index = int(device.device_id)
        with self._source_lock:
            old = self.source
            try:
                self.source = WebcamSource(
                    camera_index, self.settings.frame_width, self.settings.frame_height
                )
            except Exception:
                self.last_error = f"Failed to open camera {device.label}"
                logger.exception(self.last_error)
                raise
            if old is not None:
                old.close()
            self.camera_index = camera_index
        self.reset_tracking()
        logger.info("Switched to camera %s (%s)", index, device.label)
        return device

    # -- loops ------------------------------------------------------------

    def _capture_loop(self) -> None:
        """Continuously read frames from the configured source."""

        logger.debug("Capture loop started")
        while self.running:
            with self._source_lock:
                frame = self.source.read() if self.source else None
            now = time.perf_counter()
            if frame is None:
                time.sleep(0.01)
                continue
            with self._lock:
                if self._last_captured_at is not None:
                    dt = now - self._last_captured_at
                    if dt > 0:
                        instant = 1.0 / dt
                        self._camera_fps = (
                            instant
                            if self._camera_fps == 0.0
                            else self._camera_fps * (1.0 - self._camera_alpha) + instant * self._camera_alpha
                        )
                self._last_captured_at = now
            with self._capture_lock:
                self._latest_captured_frame = frame
            self._capture_event.set()

    def _process_loop(self) -> None:
        """Run the pose pipeline on captured frames and enqueue frames for encoding."""

        logger.debug("Process loop started")
        while self.running:
            if not self._capture_event.wait(timeout=0.5):
                continue
            with self._capture_lock:
                frame = self._latest_captured_frame
                self._latest_captured_frame = None
                self._capture_event.clear()
            if frame is None:
                continue

            start = time.perf_counter()
            try:
                summary, processed_frame = self.pipeline.process(frame)
                self.last_error = self.tracker.last_error
            except Exception:
                self.last_error = "Pipeline processing failed"
                logger.exception(self.last_error)
                continue
            duration = time.perf_counter() - start

            with self._lock:
                self._latest_summary = summary

            if self.settings.enable_backend_overlays:
                annotated = draw_overlays(
                    processed_frame,
                    summary,
                    self.settings.keypoint_draw_threshold,
                    self.settings.emit_stale_tracks,
                )
            else:
                annotated = processed_frame

            if self._encode_queue.full():
                try:
                    self._encode_queue.get_nowait()
                except Empty:
                    pass
            self._encode_queue.put_nowait((annotated, summary))
            self._encode_event.set()

            if self._target_fps > 0:
                desired_interval = max(0.0, (1.0 / self._target_fps) - duration)
                if desired_interval > 0:
                    time.sleep(desired_interval)

    def _encode_loop(self) -> None:
        """JPEG-encode processed frames, dropping old frames under load."""

        logger.debug("Encode loop started")
        while self.running:
            if not self._encode_event.wait(timeout=0.5):
                continue
            try:
                annotated, _summary = self._encode_queue.get_nowait()
            except Empty:
                self._encode_event.clear()
                continue
            if self._encode_queue.empty():
                self._encode_event.clear()

            try:
                encode_param = [int(cv2.IMWRITE_JPEG_QUALITY), self.settings.jpeg_quality]
                ok, jpg = cv2.imencode(".jpg", annotated, encode_param)
                if not ok:
                    continue
                with self._lock:
                    self._latest_frame = jpg.tobytes()
            except Exception:
                logger.exception("JPEG encoding failed")

    # -- accessors ----------------------------------------------------------

    def latest_frame(self) -> bytes | None:
        """Return the latest encoded JPEG bytes (or `None` if not ready)."""

        with self._lock:
            return self._latest_frame

    def latest_summary(self) -> FrameSummary | None:
        """Return the latest processed summary."""

        with self._lock:
            return self._latest_summary

    def stream_fps(self) -> float:
        """Approximate input FPS based on capture timestamps."""

        with self._lock:
            return float(self._camera_fps)

    async def mjpeg_generator(self) -> AsyncGenerator[bytes, None]:
        """Yield MJPEG multipart chunks for HTTP streaming."""

        last_sent = None
        while True:
            frame = self.latest_frame()
            if frame is not None and frame != last_sent:
                yield (b"--frame\r\n" b"Content-Type: image/jpeg\r\n\r\n" + frame + b"\r\n")
                last_sent = frame
            await asyncio.sleep(0.02)
