"""
Draw skeleton, session panel and feedback lines on BGR frames (in-place).
"""
from __future__ import annotations

from typing import Optional, Sequence

import cv2
import numpy as np

from .pose import Frame, NUM_LANDMARKS
from .scoring import FeedbackMessage, Severity
from .session import AnalysisEvent, InProgress, Invalid, RepCompleted

# Pose skeleton connections (33 landmarks); compatible with any MediaPipe version
_POSE_CONNECTIONS = frozenset([
    (0, 1), (1, 2), (2, 3), (3, 7), (0, 4), (4, 5), (5, 6), (6, 8), (9, 10),
    (11, 12), (11, 13), (13, 15), (15, 17), (15, 19), (15, 21), (17, 19),
    (12, 14), (14, 16), (16, 18), (16, 20), (16, 22), (18, 20),
    (11, 23), (12, 24), (23, 24), (23, 25), (24, 26), (25, 27), (26, 28),
    (27, 29), (28, 30), (29, 31), (30, 32), (27, 31), (28, 32),
])

# BGR
_SEVERITY_COLORS = {
    Severity.INFO: (255, 255, 255),
    Severity.WARNING: (0, 200, 255),
    Severity.ERROR: (0, 0, 255),
}
MAX_FEEDBACK_LINES = 3


def _to_pixels(frame: Frame, w: int, h: int) -> list[tuple[int, int]]:
    return [(int(round(lm.x * w)), int(round(lm.y * h))) for lm in frame]


def draw_skeleton(
    image: np.ndarray,
    frame: Frame,
    color: tuple[int, int, int] = (0, 255, 0),
    thickness: int = 2,
) -> None:
    """Draw the pose skeleton for a normalized Frame."""
    if not frame or len(frame) < NUM_LANDMARKS:
        return
    h, w = image.shape[:2]
    pts = _to_pixels(frame, w, h)
    for (i, j) in _POSE_CONNECTIONS:
        cv2.line(image, pts[i], pts[j], color, thickness)
    for p in pts:
        cv2.circle(image, p, 3, color, -1)


def draw_realtime_overlay(
    image: np.ndarray,
    frame: Optional[Frame],
    exercise_name: str,
    rep_count: int,
    event: Optional[AnalysisEvent],
    feedback: Sequence[FeedbackMessage] = (),
    last_score: Optional[int] = None,
    message: Optional[str] = None,
) -> None:
    """
    Panel: exercise, rep count, phase, ROM, last score; then feedback lines
    colored by severity. `message` is drawn centered (e.g. "Move into frame").
    """
    h, w = image.shape[:2]
    if frame:
        draw_skeleton(image, frame, color=(0, 255, 0), thickness=2)

    panel_h = 150
    overlay = image.copy()
    cv2.rectangle(overlay, (0, 0), (w, panel_h), (40, 40, 40), -1)
    cv2.addWeighted(overlay, 0.6, image, 0.4, 0, image)

    font = cv2.FONT_HERSHEY_SIMPLEX
    y0, dy = 28, 28

    def put(line: str, y: int, color: tuple[int, int, int] = (255, 255, 255)) -> None:
        cv2.putText(image, line, (12, y), font, 0.6, color, 2, cv2.LINE_AA)

    phase = "--"
    rom = "--"
    confidence = "--"
    if isinstance(event, (InProgress, RepCompleted)):
        phase = event.phase.value
    if isinstance(event, InProgress):
        confidence = event.confidence.value
        if event.rom_pct is not None:
            rom = f"{event.rom_pct:.0f}%"
    elif isinstance(event, Invalid):
        message = message or event.message

    put(f"{exercise_name}  Rep: {rep_count}", y0)
    put(f"Phase: {phase}  ROM: {rom}", y0 + dy)
    put(f"Confidence: {confidence}", y0 + 2 * dy)
    put(f"Last score: {last_score if last_score is not None else '--'}", y0 + 3 * dy)

    y = panel_h + 30
    for fb in list(feedback)[:MAX_FEEDBACK_LINES]:
        put(fb.message, y, _SEVERITY_COLORS[fb.severity])
        y += dy

    if message:
        cv2.putText(
            image, message, (max(10, w // 2 - 200), h // 2),
            font, 0.8, (0, 200, 255), 2, cv2.LINE_AA
        )
