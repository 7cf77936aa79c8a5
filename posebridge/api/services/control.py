"""Control-channel message handling.

The downstream control surface sends small JSON messages over the pose
websocket (`{"type": "setDistanceThreshold", "value": 0.4}` ...). This module
maps them onto engine calls and builds the reply, if any.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from posebridge.core.relay import camera_list_message
from posebridge.core.tracking.errors import ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_MESSAGES: dict[str, tuple[str, type]] = {
    "setDistanceThreshold": ("distance_threshold", float),
    "setMaxNumPoses": ("max_tracked_identities", int),
    "setMaxMissingFrames": ("max_missing_frames", int),
}


def _error(detail: str) -> dict[str, Any]:
    return {"type": "error", "detail": detail}


def handle_control_message(engine: Any, msg: Any) -> dict[str, Any] | None:
    """Apply one control message to `engine` and return the reply to send back."""

    if not isinstance(msg, dict):
        return _error("control messages must be JSON objects")
    kind = msg.get("type")

    if kind == "ping":
        return {"type": "pong", "t": msg.get("t"), "server_time": time.time()}

    if kind in CONFIG_MESSAGES:
        field, cast = CONFIG_MESSAGES[kind]
        try:
            value = cast(msg.get("value"))
        except (TypeError, ValueError):
            return _error(f"{kind}: invalid value {msg.get('value')!r}")
        logger.info("%s -> %s", kind, value)
        try:
            cfg = engine.configure_tracking(**{field: value})
        except ConfigurationError as exc:
            return _error(f"{kind}: {exc}")
        return {"type": "config", field: getattr(cfg, field)}

    if kind == "resetPersonId":
        logger.info("Resetting person ids")
        engine.reset_tracking()
        return {"type": "reset"}

    if kind == "cameraList":
        return {"type": "cameraList", "cameras": camera_list_message(engine.list_cameras())}

    if kind == "changeCamera":
        try:
            index = int(msg.get("value"))
        except (TypeError, ValueError):
            return _error(f"changeCamera: invalid index {msg.get('value')!r}")
        try:
            device = engine.change_camera(index)
        except KeyError:
            return _error(f"No camera found at index {index}")
        except RuntimeError as exc:
            return _error(str(exc))
        return {"type": "cameraChanged", "index": index, "label": device.label}

    return _error(f"unknown message type {kind!r}")
