"""Camera enumeration and selection endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from posebridge.api.services.engine import PoseEngine
from posebridge.api.services.state import get_engine
from posebridge.core.relay import camera_list_message

router = APIRouter(prefix="/cameras")


@router.get("")
def list_cameras(engine: PoseEngine = Depends(get_engine)) -> dict[str, dict[str, dict[str, str]]]:
    """Return available cameras keyed by the index `POST /cameras/{index}` expects."""

    return {"cameras": camera_list_message(engine.list_cameras())}


@router.post("/{index}")
def change_camera(index: int, engine: PoseEngine = Depends(get_engine)) -> dict[str, object]:
    """Switch to another camera; tracked identities are reset."""

    try:
        device = engine.change_camera(index)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"No camera found at index {index}") from None
    except RuntimeError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from None
    return {"index": index, "label": device.label, "deviceId": device.device_id}
