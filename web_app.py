from __future__ import annotations

import asyncio
import base64
import concurrent.futures
import json
import logging
import time
from typing import Any, Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from repcoach.pose import Frame, create_pose_detector, frame_from_dicts, process_frame
from repcoach.report import summarize_results
from repcoach.session import AnalysisSession, event_to_dict

# Ensure session and report logging is visible when running under uvicorn
_pkg_logger = logging.getLogger("repcoach")
_pkg_logger.setLevel(logging.INFO)
if not _pkg_logger.handlers:
    _handler = logging.StreamHandler()
    _handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
    _pkg_logger.addHandler(_handler)

logger = logging.getLogger("repcoach.web")

app = FastAPI(title="RepCoach")

# Pose detection runs off the event loop so it can keep answering pings.
# One worker: frames of a connection are processed strictly in order.
_LIVE_EXECUTOR = concurrent.futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix="live_pose")


def _decode_image(image_data: str):
    """Base64 (optionally a data: URL) -> BGR array, or None."""
    import cv2
    import numpy as np

    if image_data.startswith("data:"):
        image_data = image_data.split(",", 1)[1]
    try:
        img_bytes = base64.b64decode(image_data)
    except (ValueError, TypeError):
        return None
    np_arr = np.frombuffer(img_bytes, np.uint8)
    if np_arr.size == 0:
        return None
    return cv2.imdecode(np_arr, cv2.IMREAD_COLOR)


def _timestamp(payload: dict[str, Any], started: float) -> float:
    ts = payload.get("timestamp")
    if isinstance(ts, (int, float)) and not isinstance(ts, bool):
        return float(ts)
    return (time.perf_counter() - started) * 1000.0


def _summary(session: AnalysisSession) -> dict[str, Any]:
    out = {"type": "summary", "exercise": session.exercise.value, "camera_mode": session.camera_mode.value}
    out.update(summarize_results(session.history))
    return out


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.websocket("/ws/live")
async def live_socket(websocket: WebSocket) -> None:
    """
    One AnalysisSession per connection. Client messages (JSON text):
      {"type": "config", "exercise": "...", "camera_mode": "front|side"}
      {"type": "landmarks", "landmarks": [33 x {x, y, z, visibility, presence}], "timestamp": ms}
      {"type": "frame", "image": "<base64>", "timestamp": ms?}
      {"type": "reset"}
      {"type": "stop"}  -> replies with a summary and closes
    Every analyzed frame is answered with its event plus rep_count/average_score.
    """
    await websocket.accept()
    params = websocket.query_params
    try:
        session = AnalysisSession(params.get("exercise", "squat"), params.get("camera_mode"))
    except ValueError as e:
        await websocket.send_text(json.dumps({"type": "error", "message": str(e)}))
        await websocket.close()
        return
    logger.info("live: session started (%s)", session.exercise.value)
    pose = None
    started = time.perf_counter()
    last_ts: Optional[float] = None
    frames = 0
    loop = asyncio.get_running_loop()
    try:
        while True:
            msg = await websocket.receive_text()
            try:
                payload = json.loads(msg)
            except json.JSONDecodeError:
                continue
            if not isinstance(payload, dict):
                continue
            kind = payload.get("type")

            if kind == "stop":
                logger.info("live: stop received, rep_count=%d", session.rep_count)
                await websocket.send_text(json.dumps(_summary(session)))
                await websocket.close()
                return

            if kind == "reset":
                session.reset()
                last_ts = None
                await websocket.send_text(json.dumps({"type": "reset"}))
                continue

            if kind == "config":
                try:
                    session.configure(payload.get("exercise"), payload.get("camera_mode"))
                except ValueError as e:
                    await websocket.send_text(json.dumps({"type": "error", "message": str(e)}))
                    continue
                last_ts = None
                await websocket.send_text(
                    json.dumps(
                        {
                            "type": "config",
                            "exercise": session.exercise.value,
                            "camera_mode": session.camera_mode.value,
                        }
                    )
                )
                continue

            frame: Optional[Frame] = None
            ts = _timestamp(payload, started)
            if ts == last_ts:
                continue
            if kind == "landmarks":
                items = payload.get("landmarks")
                if isinstance(items, list):
                    frame = frame_from_dicts(items)
            elif kind == "frame":
                image_data = payload.get("image")
                if not isinstance(image_data, str) or not image_data:
                    continue
                if pose is None:
                    pose = await loop.run_in_executor(_LIVE_EXECUTOR, create_pose_detector)

                def _detect_sync(data: str = image_data) -> Optional[Frame]:
                    frame_bgr = _decode_image(data)
                    if frame_bgr is None:
                        return None
                    return process_frame(frame_bgr, pose)

                frame = await loop.run_in_executor(_LIVE_EXECUTOR, _detect_sync)
            if frame is None:
                continue

            last_ts = ts
            event = session.analyze(frame, ts)
            frames += 1
            if frames % 60 == 0:
                logger.info("live: frame %d (rep_count=%d)", frames, session.rep_count)
            reply = event_to_dict(event)
            reply["rep_count"] = session.rep_count
            reply["average_score"] = session.average_score()
            await websocket.send_text(json.dumps(reply))
    except WebSocketDisconnect:
        logger.info("live: client disconnected (frames=%d, rep_count=%d)", frames, session.rep_count)
    except Exception as e:
        # Normal client close (e.g. code 1000) can surface as ConnectionClosedError from websockets
        if "ConnectionClosed" in type(e).__name__ or "1000" in str(e):
            logger.info("live: connection closed (frames=%d, rep_count=%d)", frames, session.rep_count)
            return
        raise
    finally:
        if pose is not None:
            pose.close()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("web_app:app", host="0.0.0.0", port=8000, reload=True)
