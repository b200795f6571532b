"""
Pose landmarks and the MediaPipe detector adapter.
Frames are tuples of 33 landmarks in normalized [0,1] image coordinates.
"""
from __future__ import annotations

import os
import urllib.request
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional

import numpy as np


# MediaPipe Pose landmark indices (same as PoseLandmark)
class LandmarkIdx:
    NOSE = 0
    LEFT_EYE_INNER = 1
    LEFT_EYE = 2
    LEFT_EYE_OUTER = 3
    RIGHT_EYE_INNER = 4
    RIGHT_EYE = 5
    RIGHT_EYE_OUTER = 6
    LEFT_EAR = 7
    RIGHT_EAR = 8
    MOUTH_LEFT = 9
    MOUTH_RIGHT = 10
    LEFT_SHOULDER = 11
    RIGHT_SHOULDER = 12
    LEFT_ELBOW = 13
    RIGHT_ELBOW = 14
    LEFT_WRIST = 15
    RIGHT_WRIST = 16
    LEFT_PINKY = 17
    RIGHT_PINKY = 18
    LEFT_INDEX = 19
    RIGHT_INDEX = 20
    LEFT_THUMB = 21
    RIGHT_THUMB = 22
    LEFT_HIP = 23
    RIGHT_HIP = 24
    LEFT_KNEE = 25
    RIGHT_KNEE = 26
    LEFT_ANKLE = 27
    RIGHT_ANKLE = 28
    LEFT_HEEL = 29
    RIGHT_HEEL = 30
    LEFT_FOOT_INDEX = 31
    RIGHT_FOOT_INDEX = 32


NUM_LANDMARKS = 33


@dataclass(frozen=True)
class Landmark:
    x: float
    y: float
    z: float = 0.0
    visibility: float = 1.0  # occlusion confidence
    presence: float = 1.0  # existence confidence


Frame = tuple[Landmark, ...]


def make_frame(landmarks: Iterable[Landmark]) -> Optional[Frame]:
    """Freeze landmarks into a Frame. Wrong landmark count means "no frame"."""
    frame = tuple(landmarks)
    if len(frame) != NUM_LANDMARKS:
        return None
    return frame


def _landmark_from_obj(lm: Any) -> Landmark:
    presence = getattr(lm, "presence", None)
    visibility = getattr(lm, "visibility", None)
    return Landmark(
        x=float(lm.x),
        y=float(lm.y),
        z=float(getattr(lm, "z", 0.0) or 0.0),
        visibility=float(visibility) if visibility is not None else 1.0,
        presence=float(presence) if presence is not None else 1.0,
    )


def frame_from_landmarks(landmarks: Iterable[Any]) -> Optional[Frame]:
    """Convert detector landmark objects (anything with .x/.y/...) to a Frame."""
    return make_frame(_landmark_from_obj(lm) for lm in landmarks)


def frame_from_dicts(items: Iterable[Mapping[str, Any]]) -> Optional[Frame]:
    """
    Build a Frame from JSON-style dicts {x, y, z?, visibility?, presence?}.
    Returns None for the wrong count or any non-numeric or non-finite value.
    Visibility and presence are clamped to [0, 1].
    """
    out: list[Landmark] = []
    try:
        for item in items:
            values = np.array(
                [
                    float(item["x"]),
                    float(item["y"]),
                    float(item.get("z", 0.0) or 0.0),
                    float(item.get("visibility", 1.0)),
                    float(item.get("presence", 1.0)),
                ]
            )
            # json.loads accepts NaN/Infinity
            if not np.isfinite(values).all():
                return None
            x, y, z = values[:3]
            visibility, presence = np.clip(values[3:], 0.0, 1.0)
            out.append(
                Landmark(
                    x=float(x),
                    y=float(y),
                    z=float(z),
                    visibility=float(visibility),
                    presence=float(presence),
                )
            )
    except (KeyError, TypeError, ValueError):
        return None
    return make_frame(out)


def frame_to_dicts(frame: Frame) -> list[dict[str, float]]:
    return [
        {
            "x": round(lm.x, 4),
            "y": round(lm.y, 4),
            "z": round(lm.z, 4),
            "visibility": round(lm.visibility, 3),
            "presence": round(lm.presence, 3),
        }
        for lm in frame
    ]


# Pose Landmarker model URL (lite = faster, CPU-friendly)
_POSE_MODEL_URL = "https://storage.googleapis.com/mediapipe-models/pose_landmarker/pose_landmarker_lite/float16/1/pose_landmarker_lite.task"
_POSE_MODEL_FILENAME = "pose_landmarker_lite.task"


def _get_model_path(cache_dir: Optional[str] = None) -> str:
    """Return path to pose landmarker model, downloading if needed."""
    if cache_dir is None:
        cache_dir = os.getenv(
            "REPCOACH_MODEL_DIR",
            os.path.join(os.path.dirname(__file__), "..", "outputs"),
        )
    os.makedirs(cache_dir, exist_ok=True)
    path = os.path.join(cache_dir, _POSE_MODEL_FILENAME)
    if not os.path.isfile(path):
        urllib.request.urlretrieve(_POSE_MODEL_URL, path)
    return path


def create_pose_detector(
    min_detection_confidence: float = 0.5,
    min_presence_confidence: float = 0.5,
    min_tracking_confidence: float = 0.5,
    cache_dir: Optional[str] = None,
):
    """Create a single-pose MediaPipe PoseLandmarker (tasks API, IMAGE mode)."""
    from mediapipe.tasks.python.core import base_options
    from mediapipe.tasks.python.vision import PoseLandmarker, PoseLandmarkerOptions
    from mediapipe.tasks.python.vision.core import vision_task_running_mode

    model_path = _get_model_path(cache_dir)
    base = base_options.BaseOptions(model_asset_path=model_path)
    options = PoseLandmarkerOptions(
        base_options=base,
        running_mode=vision_task_running_mode.VisionTaskRunningMode.IMAGE,
        num_poses=1,
        min_pose_detection_confidence=min_detection_confidence,
        min_pose_presence_confidence=min_presence_confidence,
        min_tracking_confidence=min_tracking_confidence,
    )
    return PoseLandmarker.create_from_options(options)


def process_frame(frame_bgr: np.ndarray, pose) -> Optional[Frame]:
    """
    Run pose estimation on one BGR frame.
    Returns a normalized Frame for the first detected person, or None if no pose.
    """
    import cv2
    from mediapipe.tasks.python.vision.core import image as mp_image

    rgb = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2RGB)
    mp_img = mp_image.Image(image_format=mp_image.ImageFormat.SRGB, data=rgb)
    result = pose.detect(mp_img)
    if not result.pose_landmarks:
        return None
    return frame_from_landmarks(result.pose_landmarks[0])
