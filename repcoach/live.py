"""
Live webcam pipeline: capture, pose, AnalysisSession, overlay window.
Writes the session report on exit (q).
"""
from __future__ import annotations

import logging
import os
import time
from typing import Optional

import cv2

from .exercises import DISPLAY_NAMES, CameraMode, Exercise
from .io_stream import advancing, webcam_frames
from .overlay import draw_realtime_overlay
from .pose import Frame, create_pose_detector, process_frame
from .report import write_session_report
from .scoring import FeedbackMessage
from .session import AnalysisEvent, AnalysisSession, InProgress, RepCompleted

logger = logging.getLogger(__name__)

# Target resize width for faster inference
LIVE_RESIZE_WIDTH = 960
# No-pose warning after this many seconds
NO_POSE_WARN_SEC = 2.0
# Keep a finished rep's feedback on screen this long
REP_FEEDBACK_SEC = 3.0


def run_live_pipeline(
    exercise: Exercise | str = Exercise.SQUAT,
    camera_mode: CameraMode | str | None = None,
    camera_id: int = 0,
    target_fps: float = 20,
    record: bool = False,
    output_dir: str = "outputs",
) -> None:
    """
    Run live capture loop. q=quit, r=reset, s=snapshot.
    On quit: write the session report; optionally keep a recording.
    """
    os.makedirs(output_dir, exist_ok=True)
    session = AnalysisSession(exercise, camera_mode)
    pose = create_pose_detector()

    last_pose_time = time.perf_counter()
    last_frame: Optional[Frame] = None
    last_event: Optional[AnalysisEvent] = None
    feedback: tuple[FeedbackMessage, ...] = ()
    rep_feedback_until = 0.0
    message: Optional[str] = None
    video_writer: Optional[cv2.VideoWriter] = None
    win_name = f"{DISPLAY_NAMES[session.exercise]} Coach (q=quit, r=reset, s=snapshot)"

    cv2.namedWindow(win_name, cv2.WINDOW_NORMAL)

    try:
        for frame_bgr, frame_idx, ts in advancing(webcam_frames(camera_id, target_fps=target_fps)):
            h, w = frame_bgr.shape[:2]
            if w > LIVE_RESIZE_WIDTH:
                scale = LIVE_RESIZE_WIDTH / w
                small = cv2.resize(frame_bgr, (LIVE_RESIZE_WIDTH, int(round(h * scale))))
            else:
                small = frame_bgr

            # Landmarks are normalized, so the resize needs no rescaling.
            frame = process_frame(small, pose)
            now = time.perf_counter()
            if frame is not None:
                last_pose_time = now
                last_frame = frame
                last_event = session.analyze(frame, ts)
                if isinstance(last_event, RepCompleted):
                    feedback = last_event.feedback
                    rep_feedback_until = now + REP_FEEDBACK_SEC
                elif isinstance(last_event, InProgress) and now > rep_feedback_until:
                    feedback = last_event.live_feedback

            if now - last_pose_time > NO_POSE_WARN_SEC:
                message = "Move into frame"
                last_frame = None
            elif message == "Move into frame":
                message = None

            last_score = session.history[-1].score if session.history else None
            out_frame = frame_bgr.copy()
            draw_realtime_overlay(
                out_frame,
                last_frame,
                DISPLAY_NAMES[session.exercise],
                session.rep_count,
                last_event,
                feedback,
                last_score,
                message,
            )

            if record and video_writer is None:
                fourcc = cv2.VideoWriter_fourcc(*"mp4v")
                rec_path = os.path.join(output_dir, "live_recording.mp4")
                video_writer = cv2.VideoWriter(
                    rec_path,
                    fourcc,
                    max(1, int(target_fps)),
                    (out_frame.shape[1], out_frame.shape[0]),
                )
            if video_writer is not None:
                video_writer.write(out_frame)

            cv2.imshow(win_name, out_frame)
            key = cv2.waitKey(1) & 0xFF
            if key == ord("q"):
                break
            if key == ord("r"):
                session.reset()
                last_event = None
                feedback = ()
                message = None
            if key == ord("s"):
                snap_path = os.path.join(output_dir, f"snapshot_{frame_idx}.jpg")
                cv2.imwrite(snap_path, out_frame)
                message = "Saved snapshot"
    finally:
        cv2.destroyAllWindows()
        if video_writer is not None:
            video_writer.release()
        pose.close()

    report_path = write_session_report(
        session.history,
        output_dir,
        exercise=session.exercise,
        camera_mode=session.camera_mode,
        source="live",
    )
    logger.info("live: %d reps, average score %d, report %s", session.rep_count, session.average_score(), report_path)
