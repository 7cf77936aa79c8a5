from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from fastapi.responses import StreamingResponse

from posebridge.api.services.control import handle_control_message
from posebridge.api.services.engine import PoseEngine
from posebridge.api.services.state import get_engine
from posebridge.core.relay import pose_messages

router = APIRouter()

logger = logging.getLogger(__name__)


@router.get("/stream/video")
async def stream_video():
    engine: PoseEngine = await asyncio.to_thread(get_engine)
    return StreamingResponse(
        engine.mjpeg_generator(),
        media_type="multipart/x-mixed-replace; boundary=frame",
        headers={
            "Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
            "Pragma": "no-cache",
            # Helps avoid proxy buffering (e.g., nginx) in front of the stream.
            "X-Accel-Buffering": "no",
        },
    )


def _is_closed_send_error(exc: BaseException) -> bool:
    # Uvicorn raises this when an ASGI websocket.send happens after close.
    if not isinstance(exc, RuntimeError):
        return False
    msg = str(exc)
    return "Unexpected ASGI message 'websocket.send'" in msg or "response already completed" in msg


@router.websocket("/stream/poses")
async def stream_poses(ws: WebSocket):
    """Relay one `poseData` message per active track and frame; accept control messages."""

    await ws.accept()

    async def _poll_control() -> None:
        # Called from the main loop only, so sends never run concurrently.
        while True:
            try:
                msg = await asyncio.wait_for(ws.receive_json(), timeout=0.001)
            except asyncio.TimeoutError:
                return
            except WebSocketDisconnect:
                raise
            except ValueError:
                await ws.send_json({"type": "error", "detail": "invalid JSON"})
                continue
            engine = await asyncio.to_thread(get_engine)
            reply = await asyncio.to_thread(handle_control_message, engine, msg)
            if reply is not None:
                await ws.send_json(reply)

    last_id = -1
    try:
        while True:
            await _poll_control()
            engine = await asyncio.to_thread(get_engine)
            summary = engine.latest_summary()
            if summary is not None and summary.frame_id != last_id:
                last_id = summary.frame_id
                emit_stale = bool(getattr(engine.settings, "emit_stale_tracks", True))
                try:
                    for msg in pose_messages(summary, emit_stale):
                        await ws.send_json(msg)
                except WebSocketDisconnect:
                    raise
                except Exception as e:
                    if _is_closed_send_error(e):
                        return
                    # Keep the websocket alive even if one frame fails serialization.
                    logger.exception("Failed to send pose messages")
            await asyncio.sleep(0.01)
    except WebSocketDisconnect:
        return
    except Exception:
        logger.exception("Pose websocket crashed")
        try:
            await ws.close(code=1011)
        except Exception:
            pass
