"""Ultralytics YOLO pose detector integration.

The detector is a black box to the tracker: it turns one frame into a list of
`DetectedPose` with keypoints already normalized to the frame size. Torch is an
optional runtime dependency; ONNX exports run without importing it.
"""

from __future__ import annotations

import importlib
import logging
from contextlib import nullcontext
from typing import Any

import numpy as np
from ultralytics import YOLO

from posebridge.core.types import NUM_KEYPOINTS, DetectedPose

logger = logging.getLogger(__name__)

DEFAULT_POSE_MODEL = "yolo11n-pose.pt"


def _to_numpy(value: Any) -> np.ndarray:
    if hasattr(value, "cpu"):
        value = value.cpu()
    return value.numpy() if hasattr(value, "numpy") else np.asarray(value)


class YoloPoseDetector:
    """Multi-person pose detector wrapper around Ultralytics YOLO pose models."""

    def __init__(
        self,
        model_name: str = DEFAULT_POSE_MODEL,
        conf: float = 0.25,
        max_poses: int = 5,
    ) -> None:
        """Create a detector.

        Args:
            model_name: Model path/name understood by Ultralytics (e.g.
                `yolo11n-pose.pt` or an `.onnx` export of it).
            conf: Confidence threshold applied inside the Ultralytics predictor.
            max_poses: Maximum number of poses returned per frame.
        """

        self.model_name = model_name
        self.is_onnx = model_name.lower().endswith(".onnx")
        self.device: str = "cpu"
        self._torch_inference_mode: Any | None = None
        if not self.is_onnx:
            try:
                torch = importlib.import_module("torch")
                self._torch_inference_mode = torch.inference_mode
            except Exception:
                self._torch_inference_mode = None
        self.model = YOLO(model_name, task="pose")
        if not self.is_onnx:
            try:
                self.model.to(self.device)
            except Exception:
                # predict(device='cpu') still enforces CPU.
                pass
        self.conf = conf
        self.max_poses = max_poses

    def detect(self, frame: np.ndarray, max_poses: int | None = None) -> list[DetectedPose]:
        """Run inference on one frame and return normalized poses, best first."""

        limit = int(max_poses if max_poses is not None else self.max_poses)
        infer_ctx = (
            self._torch_inference_mode()
            if self._torch_inference_mode is not None
            else nullcontext()
        )
        with infer_ctx:
            results = self.model.predict(
                frame,
                conf=self.conf,
                classes=[0],
                max_det=limit,
                device=self.device,
                verbose=False,
            )
        if not results:
            return []

        result = results[0]
        kpts = getattr(result, "keypoints", None)
        if kpts is None or getattr(kpts, "data", None) is None:
            return []
        kpts_np = _to_numpy(kpts.data)
        if kpts_np.ndim != 3 or kpts_np.shape[0] == 0 or kpts_np.shape[1] != NUM_KEYPOINTS:
            return []

        confs_np: np.ndarray | None = None
        boxes = getattr(result, "boxes", None)
        if boxes is not None and getattr(boxes, "conf", None) is not None:
            confs_np = _to_numpy(boxes.conf)

        h, w = frame.shape[:2]
        poses: list[DetectedPose] = []
        for i, kp in enumerate(kpts_np[:limit]):
            if kp.shape[1] < 3:
                # Models without visibility output: treat every keypoint as visible.
                kp = np.concatenate([kp, np.ones((kp.shape[0], 1), dtype=kp.dtype)], axis=1)
            conf_v = float(confs_np[i]) if confs_np is not None and i < len(confs_np) else None
            try:
                poses.append(DetectedPose.from_array(kp, w, h, confidence=conf_v))
            except ValueError:
                logger.warning("Dropping pose %d with malformed keypoints", i, exc_info=True)
        return poses
