from __future__ import annotations

import argparse
import json
import logging
from dataclasses import asdict, is_dataclass
from enum import Enum
from pathlib import Path

import cv2
import numpy as np

from posebridge.core.pipeline import PosePipeline
from posebridge.core.tracking.pose_tracker import PoseTracker, TrackingConfig


class _DummyDetector:
    def detect(self, frame, **_kwargs):  # pragma: no cover - trivial
        return []


def _to_jsonable(obj):
    if is_dataclass(obj):
        return _to_jsonable(asdict(obj))
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, dict):
        return {str(k): _to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_to_jsonable(v) for v in obj]
    return obj


def run(args):
    cap = cv2.VideoCapture(args.input)
    if not cap.isOpened():
        raise SystemExit(f"Cannot open video {args.input}")
    if args.mock:
        detector = _DummyDetector()
    else:
        from posebridge.core.detectors.yolo_pose import YoloPoseDetector

        detector = YoloPoseDetector(args.model, conf=args.conf, max_poses=args.max_poses)
    tracker = PoseTracker(
        TrackingConfig(
            distance_threshold=args.distance_threshold,
            max_missing_frames=args.max_missing_frames,
            max_tracked_identities=args.max_poses,
        )
    )
    pipeline = PosePipeline(detector=detector, tracker=tracker)
    outputs = []
    while True:
        ok, frame = cap.read()
        if not ok:
            break
        summary, _ = pipeline.process(frame)
        outputs.append(_to_jsonable(summary))
        if args.max_frames and len(outputs) >= args.max_frames:
            break
    cap.release()
    out_path = Path(args.output)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    with open(out_path, "w", encoding="utf-8") as f:
        json.dump(outputs, f, indent=2)
    print(f"Wrote {len(outputs)} frame summaries to {out_path}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Track poses in a video and dump per-frame JSON")
    parser.add_argument("--input", required=True, help="Path to video file")
    parser.add_argument("--output", required=True, help="Where to save JSON output")
    parser.add_argument("--model", default="yolo11n-pose.pt")
    parser.add_argument("--conf", type=float, default=0.25)
    parser.add_argument("--distance-threshold", type=float, default=0.5)
    parser.add_argument("--max-missing-frames", type=int, default=5)
    parser.add_argument("--max-poses", type=int, default=5)
    parser.add_argument("--max-frames", type=int, default=0, help="Limit frames for quick tests")
    parser.add_argument(
        "--mock", action="store_true", help="Use dummy detector (no model download)"
    )
    parser.add_argument("--verbose", action="store_true", help="Log track creation/removal")
    cli_args = parser.parse_args()
    logging.basicConfig(level=logging.INFO if cli_args.verbose else logging.WARNING)
    run(cli_args)
