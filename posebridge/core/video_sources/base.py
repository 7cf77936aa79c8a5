"""Video source abstractions and camera enumeration.

The backend consumes frames through a small interface (`VideoSource`) so the
capture implementation (webcam/file) can be swapped without affecting the pose
pipeline.
"""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass

import cv2

from posebridge.core.types import Frame

logger = logging.getLogger(__name__)

MAX_PROBED_CAMERAS = 8


@dataclass
class CameraDevice:
    """A video input device discovered by probing OpenCV indices."""

    index: int
    label: str
    device_id: str


def list_video_devices(max_devices: int = MAX_PROBED_CAMERAS) -> list[CameraDevice]:
    """Probe camera indices and return the ones that open.

    OpenCV exposes no device names, so labels follow the `Camera N` fallback.
    """

    devices: list[CameraDevice] = []
    for idx in range(max_devices):
        cap = None
        try:
            cap = cv2.VideoCapture(idx)
            if cap.isOpened():
                devices.append(CameraDevice(index=len(devices), label=f"Camera {idx + 1}", device_id=str(idx)))
        except Exception:
            logger.debug("Probing camera index %s failed", idx, exc_info=True)
        finally:
            if cap is not None:
                cap.release()
    return devices


class VideoSource(ABC):
    """Base interface for anything that can produce video frames."""

    @abstractmethod
    def read(self) -> Frame | None:
        """Return the next frame, or `None` when unavailable."""

        raise NotImplementedError

    @abstractmethod
    def close(self) -> None:
        """Release any underlying resources."""

        raise NotImplementedError


class OpenCVSource(VideoSource):
    """A `VideoSource` backed by `cv2.VideoCapture`."""

    def __init__(self, source: str | int) -> None:
        self.cap = cv2.VideoCapture(source)
        if not self.cap.isOpened():
            raise RuntimeError(f"Failed to open video source: {source}")

    def read(self) -> Frame | None:
        """Read the next frame from the underlying OpenCV capture."""

        ok, frame = self.cap.read()
        if not ok:
            return None
        return frame

    def close(self) -> None:
        """Release the underlying OpenCV capture."""

        self.cap.release()


class WebcamSource(OpenCVSource):
    """Webcam capture that keeps only the newest frame."""

    def __init__(self, index: int = 0, width: int = 640, height: int = 480) -> None:
        """Open camera `index` and start a reader thread draining the driver buffer."""

        super().__init__(index)
        try:
            self.cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)
        except Exception:
            pass
        self.cap.set(cv2.CAP_PROP_FRAME_WIDTH, width)
        self.cap.set(cv2.CAP_PROP_FRAME_HEIGHT, height)
        logger.info("Opened camera index=%s", index)

        self._lock = threading.Lock()
        self._running = True
        self._latest_frame: Frame | None = None
        self._latest_seq = 0
        self._delivered_seq = 0
        self._reader_thread = threading.Thread(target=self._reader_loop, daemon=True)
        self._reader_thread.start()

    def _reader_loop(self) -> None:
        """Continuously drain the driver buffer and keep only the newest frame."""

        while self._running:
            ok, frame = self.cap.read()
            if not ok:
                time.sleep(0.01)
                continue
            with self._lock:
                self._latest_frame = frame
                self._latest_seq += 1

    def read(self) -> Frame | None:
        """Return the most recent frame, or `None` if nothing new was captured."""

        with self._lock:
            frame = self._latest_frame
            seq = self._latest_seq
        if frame is None or seq == self._delivered_seq:
            return None
        self._delivered_seq = seq
        return frame

    def close(self) -> None:
        """Stop the background reader thread and release the camera."""

        self._running = False
        try:
            if self._reader_thread.is_alive():
                self._reader_thread.join(timeout=1)
        finally:
            self.cap.release()


class FileSource(OpenCVSource):
    """Video file source played back at the file's FPS, looping at EOF."""

    def __init__(self, path: str) -> None:
        self._path = path
        self._start_perf: float | None = None
        self._frame_index = 0
        super().__init__(path)
        fps = float(self.cap.get(cv2.CAP_PROP_FPS) or 0.0)
        self._source_fps: float | None = fps if fps > 0.0 else None

    def _pace(self) -> None:
        if self._source_fps and self._start_perf is not None:
            delay = self._frame_index / self._source_fps - (time.perf_counter() - self._start_perf)
            if delay > 0:
                time.sleep(delay)

    def read(self) -> Frame | None:
        """Read the next frame in real time; when EOF is reached, rewind and continue."""

        if self._start_perf is None:
            self._start_perf = time.perf_counter()
            self._frame_index = 0

        ok, frame = self.cap.read()
        if not ok:
            if not self.cap.set(cv2.CAP_PROP_POS_FRAMES, 0):
                return None
            self._start_perf = time.perf_counter()
            self._frame_index = 0
            ok, frame = self.cap.read()
            if not ok:
                return None
        self._frame_index += 1
        self._pace()
        return frame
