#!/usr/bin/env python3
"""
Exercise form analysis: offline (video) or live (webcam).
Usage:
  Offline: python run.py --video path/to/video.mp4 [--exercise squat] [--camera-mode side]
  Live:    python run.py --live [--exercise lat_pulldown] [--camera 0] [--record]

Defaults come from the environment (or a .env file):
  REPCOACH_EXERCISE, REPCOACH_CAMERA_MODE, REPCOACH_OUTPUT_DIR, REPCOACH_LOG_LEVEL
"""
from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from repcoach.exercises import CameraMode, Exercise
from repcoach.io_stream import advancing, video_frames
from repcoach.live import run_live_pipeline
from repcoach.pose import create_pose_detector, process_frame
from repcoach.report import write_session_report
from repcoach.session import AnalysisSession, RepCompleted

logger = logging.getLogger("repcoach.run")


def run_offline(
    video_path: str,
    exercise: Exercise = Exercise.SQUAT,
    camera_mode: Optional[CameraMode] = None,
    output_dir: str = "outputs",
) -> AnalysisSession:
    """Process video file: pose -> session -> report."""
    os.makedirs(output_dir, exist_ok=True)
    session = AnalysisSession(exercise, camera_mode)
    pose = create_pose_detector()
    try:
        for frame_bgr, frame_idx, ts in advancing(video_frames(video_path)):
            frame = process_frame(frame_bgr, pose)
            if frame is None:
                continue
            event = session.analyze(frame, ts)
            if isinstance(event, RepCompleted):
                logger.info("offline: rep %d at frame %d -> %d", event.rep_count, frame_idx, event.score)
    finally:
        pose.close()
    write_session_report(
        session.history,
        output_dir,
        exercise=session.exercise,
        camera_mode=session.camera_mode,
        source="offline",
    )
    return session


def _configure_logging() -> None:
    level = os.getenv("REPCOACH_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main(argv: Optional[list[str]] = None) -> None:
    _root = Path(__file__).resolve().parent
    load_dotenv()
    load_dotenv(_root / ".env")
    _configure_logging()

    ap = argparse.ArgumentParser(description="Exercise form analysis: offline video or live webcam")
    ap.add_argument("--video", type=str, default=None, help="Path to video file (offline mode)")
    ap.add_argument("--live", action="store_true", help="Use live webcam")
    ap.add_argument(
        "--exercise",
        type=str,
        default=os.getenv("REPCOACH_EXERCISE", Exercise.SQUAT.value),
        help="squat, lat_pulldown, seated_row, straight_arm or rear_delt",
    )
    ap.add_argument(
        "--camera-mode",
        type=str,
        default=os.getenv("REPCOACH_CAMERA_MODE") or None,
        help="front or side (default: recommended for the exercise)",
    )
    ap.add_argument("--camera", type=int, default=0, help="Camera device id (default 0)")
    ap.add_argument("--record", action="store_true", help="Save live_recording.mp4 in live mode")
    ap.add_argument(
        "--output-dir",
        type=str,
        default=os.getenv("REPCOACH_OUTPUT_DIR", "outputs"),
        help="Output directory",
    )
    args = ap.parse_args(argv)

    if args.live and args.video:
        print("Error: provide exactly one of --video or --live", file=sys.stderr)
        sys.exit(1)
    if not args.live and not args.video:
        print("Error: provide --video PATH or --live", file=sys.stderr)
        sys.exit(1)
    try:
        exercise = Exercise.parse(args.exercise)
        camera_mode = CameraMode.parse(args.camera_mode) if args.camera_mode else None
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if args.live:
        run_live_pipeline(
            exercise=exercise,
            camera_mode=camera_mode,
            camera_id=args.camera,
            target_fps=20,
            record=args.record,
            output_dir=args.output_dir,
        )
    else:
        if not os.path.isfile(args.video):
            print(f"Error: video file not found: {args.video}", file=sys.stderr)
            sys.exit(1)
        session = run_offline(args.video, exercise, camera_mode, output_dir=args.output_dir)
        print(
            f"Offline done. Reps: {session.rep_count}. Average score: {session.average_score()}. "
            f"Report: {args.output_dir}/report.html"
        )


if __name__ == "__main__":
    main()
