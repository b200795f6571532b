"""
Frame sources for the hosts: video files and webcams.
Every source yields StreamFrame(image, index, timestamp_ms) and releases its
capture when the consumer stops iterating.
"""
from __future__ import annotations

import logging
import time
from typing import Callable, Iterable, Iterator, NamedTuple, Optional

import cv2
import numpy as np

logger = logging.getLogger(__name__)

# Requested webcam resolution; drivers may pick the nearest mode.
WEBCAM_WIDTH = 1280
WEBCAM_HEIGHT = 720
DEFAULT_VIDEO_FPS = 30.0


class StreamFrame(NamedTuple):
    image: np.ndarray
    index: int
    timestamp_ms: float


def _read_all(
    cap: "cv2.VideoCapture",
    clock: Callable[[int], float],
    mirror: bool = False,
) -> Iterator[StreamFrame]:
    try:
        idx = 0
        while True:
            ok, image = cap.read()
            if not ok:
                break
            if mirror:
                image = cv2.flip(image, 1)
            yield StreamFrame(image, idx, clock(idx))
            idx += 1
    finally:
        cap.release()


def video_frames(video_path: str) -> Iterator[StreamFrame]:
    """
    Timestamps are derived from the container frame rate (frame_idx * 1000 / fps).
    The capture is opened on the first next(), so an unstarted generator holds nothing.
    """
    cap = cv2.VideoCapture(video_path)
    if not cap.isOpened():
        raise FileNotFoundError(f"Cannot open video: {video_path}")
    fps = cap.get(cv2.CAP_PROP_FPS) or DEFAULT_VIDEO_FPS
    logger.info("io: video %s at %.1f fps", video_path, fps)
    yield from _read_all(cap, lambda idx: idx * 1000.0 / fps)


def webcam_frames(camera_id: int = 0, target_fps: float = 20, mirror: bool = True) -> Iterator[StreamFrame]:
    """
    Wall-clock timestamps (ms since the first read). Frames are mirrored
    (selfie view) by default; the front-camera valgus check assumes it.
    """
    cap = cv2.VideoCapture(camera_id)
    if not cap.isOpened():
        raise RuntimeError(f"Cannot open camera {camera_id}. Check permissions and that no other app is using it.")
    cap.set(cv2.CAP_PROP_FRAME_WIDTH, WEBCAM_WIDTH)
    cap.set(cv2.CAP_PROP_FRAME_HEIGHT, WEBCAM_HEIGHT)
    cap.set(cv2.CAP_PROP_FPS, target_fps)
    t_start = time.perf_counter()
    yield from _read_all(cap, lambda idx: (time.perf_counter() - t_start) * 1000.0, mirror=mirror)


def advancing(frames: Iterable[StreamFrame]) -> Iterator[StreamFrame]:
    """Drop frames whose timestamp does not move past the previous one."""
    last_ts: Optional[float] = None
    dropped = 0
    for frame in frames:
        if last_ts is not None and frame.timestamp_ms <= last_ts:
            dropped += 1
            continue
        last_ts = frame.timestamp_ms
        yield frame
    if dropped:
        logger.debug("io: dropped %d frames with stale timestamps", dropped)
