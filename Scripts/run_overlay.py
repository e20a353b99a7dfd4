from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Iterable, Optional, Tuple

import cv2
import numpy as np

from yolo_overlay import DetectionPipeline, PipelineConfig, load_class_names, load_engine, load_pipeline_config
from yolo_overlay.log import setup_logging

logger = logging.getLogger("run_overlay")


def _iter_frames(args: argparse.Namespace) -> Iterable[np.ndarray]:
    if args.image is not None:
        img = cv2.imread(args.image)
        if img is None:
            raise FileNotFoundError(f"Could not read image at path: {args.image}")
        # A still image is fed every tick until enough cycles have been emitted.
        while True:
            yield img

    if args.video is not None:
        cap = cv2.VideoCapture(args.video)
        if not cap.isOpened():
            raise FileNotFoundError(f"Could not open video: {args.video}")
    else:
        cam_index = 0 if args.webcam is None else int(args.webcam)
        cap = cv2.VideoCapture(cam_index)
        if not cap.isOpened():
            raise RuntimeError(f"Could not open webcam index: {cam_index}")

    try:
        while True:
            ok, frame = cap.read()
            if not ok or frame is None:
                break
            yield frame
    finally:
        cap.release()


def _parse_dest(value: Optional[str]) -> Optional[Tuple[int, int]]:
    if value is None:
        return None
    w, sep, h = value.lower().partition("x")
    if not sep or not w.isdigit() or not h.isdigit():
        raise ValueError(f"--dest must look like 1080x1920, got {value!r}")
    return int(w), int(h)


def main() -> int:
    parser = argparse.ArgumentParser(description="Run frame-sliced YOLO detection and log overlay draw commands.")
    src = parser.add_mutually_exclusive_group(required=True)
    src.add_argument("--image", default=None, help="Path to an input image.")
    src.add_argument("--video", default=None, help="Path to an input video file.")
    src.add_argument("--webcam", type=int, default=None, help="Webcam index (e.g., 0).")

    parser.add_argument("--model", default="Models/yolov8n.onnx", help="Path to a YOLO model (.onnx).")
    parser.add_argument("--config", default=None, help="Pipeline config JSON (defaults apply when omitted).")
    parser.add_argument("--labels", default=None, help="Class names: metadata.yaml or one label per line.")
    parser.add_argument("--dest", default=None, help="Overlay size WxH (defaults to the frame size).")
    parser.add_argument(
        "--onnx-providers",
        default=None,
        help='Comma-separated ORT providers, e.g. "CUDAExecutionProvider,CPUExecutionProvider".',
    )
    parser.add_argument("--cycles", type=int, default=0, help="Stop after N detection cycles (0 = no limit).")
    parser.add_argument("--log-level", default="INFO", help="Logging level.")
    parser.add_argument("--log-file", default=None, help="Also write logs to this file.")
    args = parser.parse_args()

    setup_logging(args.log_level, args.log_file)

    if args.cycles < 0:
        raise ValueError("--cycles must be >= 0")
    if args.image is not None and args.cycles == 0:
        args.cycles = 1

    cfg = load_pipeline_config(Path(args.config)) if args.config else PipelineConfig()
    class_names = load_class_names(args.labels) if args.labels else None
    dest_override = _parse_dest(args.dest)

    onnx_providers = None
    if args.onnx_providers:
        onnx_providers = [p.strip() for p in str(args.onnx_providers).split(",") if p.strip()]

    engine = load_engine(args.model, onnx_providers=onnx_providers)

    def log_commands(commands) -> None:
        for cmd in commands:
            b = cmd.box
            logger.info("%-20s x=%.1f y=%.1f w=%.1f h=%.1f", cmd.label, b.x, b.y, b.width, b.height)

    with DetectionPipeline(engine, cfg, sink=log_commands, class_names=class_names) as pipeline:
        for frame in _iter_frames(args):
            h, w = frame.shape[:2]
            out = pipeline.tick(frame, dest_override or (w, h))
            stats = pipeline.stats
            if out is not None:
                logger.info(
                    "cycle %d: %d/%d boxes kept, %d ticks, %.1f fps",
                    stats.cycles_completed,
                    stats.last_detection_count,
                    stats.last_candidate_count,
                    stats.last_cycle_ticks,
                    pipeline.frame_rate.fps,
                )
            # Skipped cycles count too, so a bad model cannot loop forever on a still image.
            if args.cycles and stats.cycles_completed + stats.cycles_skipped >= args.cycles:
                break

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
