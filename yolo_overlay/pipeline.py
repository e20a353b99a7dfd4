from __future__ import annotations

import logging
from typing import Callable, Dict, Optional, Tuple

import numpy as np

from .config import PipelineConfig
from .engines.base import InferenceEngine
from .errors import SchedulerStateError, ShapeMismatch
from .mapping import CoordinateMapper
from .nms import suppress
from .postprocess import YoloDecoder
from .scheduler import IncrementalScheduler, InferenceSession, SchedulerState
from .stats import FrameRateMeter, PipelineStats
from .types import DrawCommand

logger = logging.getLogger(__name__)

DrawSink = Callable[[Tuple[DrawCommand, ...]], None]


def frame_to_tensor(frame: np.ndarray, input_size: Tuple[int, int] = (640, 640)) -> np.ndarray:
    """
    Convert a BGR frame (H, W, 3) into a (1, 3, H_in, W_in) float32 blob in [0, 1].

    The frame is stretched to the model input size. A blob that already has the
    model input shape is passed through as float32; integer blobs are scaled
    by 1/255 like frames.
    """

    if frame is None or not hasattr(frame, "shape"):
        raise TypeError("frame must be a NumPy array.")

    in_w, in_h = input_size
    if frame.ndim == 4:
        if frame.shape != (1, 3, in_h, in_w):
            raise ValueError(f"Expected blob shape (1, 3, {in_h}, {in_w}), got {frame.shape}")
        if np.issubdtype(frame.dtype, np.integer):
            # Raw 8-bit pixels in NCHW order.
            return frame.astype(np.float32) / 255.0
        return frame.astype(np.float32, copy=False)

    if frame.ndim != 3 or frame.shape[2] != 3:
        raise ValueError(f"Expected frame shape (H, W, 3), got {getattr(frame, 'shape', None)}")

    if frame.shape[:2] != (in_h, in_w):
        try:
            import cv2  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError("OpenCV is required to resize frames. Install with `pip install opencv-python`.") from e
        frame = cv2.resize(frame, (in_w, in_h), interpolation=cv2.INTER_LINEAR)

    # BGR -> RGB, normalize, HWC -> CHW, add batch
    blob = frame[:, :, ::-1].astype(np.float32) / 255.0
    return np.ascontiguousarray(np.transpose(blob, (2, 0, 1))[None, ...])


class DetectionPipeline:
    """
    Per-frame coordinator: frame -> scheduler -> decode -> NMS -> mapping -> draw commands.

    Driven from the host loop with `tick()` once per display frame:
    - no session in flight: the frame is converted and submitted
    - session in flight: the scheduler advances by `layers_per_tick` steps
    - session complete: the output is decoded, suppressed, mapped to the
      destination size and emitted to `sink`, and all per-cycle buffers are dropped

    The only state kept between cycles is the scheduler's session state and
    the counters in `stats`.
    """

    def __init__(
        self,
        engine: InferenceEngine,
        cfg: PipelineConfig = PipelineConfig(),
        *,
        sink: Optional[DrawSink] = None,
        class_names: Optional[Dict[int, str]] = None,
        frame_rate: Optional[FrameRateMeter] = None,
    ):
        self.engine = engine
        self.cfg = cfg
        self.sink = sink
        self.class_names = class_names
        self.frame_rate = frame_rate or FrameRateMeter()
        self.stats = PipelineStats()
        self.decoder = YoloDecoder(cfg.decode, input_size=cfg.input_size)
        self._scheduler: Optional[IncrementalScheduler] = None
        self._cycle_ticks = 0
        self._torn_down = False

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #
    def init(self) -> "DetectionPipeline":
        if self._torn_down:
            raise SchedulerStateError("Pipeline was torn down and its engine closed; build a new pipeline.")
        if self._scheduler is None:
            self._scheduler = IncrementalScheduler(self.engine, policy=self.cfg.preemption_policy)
        return self

    def teardown(self) -> None:
        """Drop any session and close the engine. The pipeline cannot be re-initialised afterwards."""
        self._torn_down = True
        if self._scheduler is not None:
            self._scheduler.reset()
            self._scheduler = None
        self.engine.close()

    def reset(self) -> None:
        """Recover from an EngineFault; the next tick submits a fresh frame."""
        self.scheduler.reset()
        self._cycle_ticks = 0

    def __enter__(self) -> "DetectionPipeline":
        return self.init()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.teardown()

    @property
    def scheduler(self) -> IncrementalScheduler:
        if self._scheduler is None:
            raise SchedulerStateError("Pipeline is not initialised; call init() first.")
        return self._scheduler

    # ------------------------------------------------------------------ #
    # Per-frame entry points
    # ------------------------------------------------------------------ #
    def tick(self, frame: Optional[np.ndarray], dest_size: Tuple[int, int]) -> Optional[Tuple[DrawCommand, ...]]:
        """
        Advance detection by one display frame.

        Args:
            frame: the current BGR frame (or a ready blob); only used when no
                session is in flight. None means "no new frame".
            dest_size: (width, height) of the overlay destination

        Returns:
            the draw commands of a cycle that completed on this tick, else None
        """

        scheduler = self.scheduler
        self.frame_rate.update()

        if scheduler.state is SchedulerState.FAILED:
            raise SchedulerStateError("Scheduler is FAILED after an engine fault; call reset() first.")

        if scheduler.state is SchedulerState.IDLE:
            if frame is not None:
                self._submit(frame)
            return None

        self._cycle_ticks += 1
        state = scheduler.tick(self.cfg.layers_per_tick)
        if state is not SchedulerState.COMPLETE:
            return None
        return self._finish_cycle(dest_size)

    def restart(self, frame: np.ndarray) -> InferenceSession:
        """
        Submit `frame` now, preempting an in-flight session when the policy allows.

        Under PreemptionPolicy.REJECT this raises SubmissionRejected while a
        session is in flight.
        """

        return self._submit(frame)

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #
    def _submit(self, frame: np.ndarray) -> InferenceSession:
        blob = frame_to_tensor(frame, self.cfg.input_size)
        session = self.scheduler.submit(blob)
        self._cycle_ticks = 1
        return session

    def _finish_cycle(self, dest_size: Tuple[int, int]) -> Optional[Tuple[DrawCommand, ...]]:
        output = self.scheduler.take_output()
        self.stats.last_cycle_ticks = self._cycle_ticks
        self._cycle_ticks = 0

        try:
            batch = self.decoder.decode(output, self.cfg.confidence_threshold, self.cfg.tensor_layout)
        except ShapeMismatch as exc:
            self.stats.cycles_skipped += 1
            logger.warning("Skipping detection cycle: %s", exc)
            return None

        keep = suppress(
            batch,
            self.cfg.iou_threshold,
            max_detections=self.cfg.max_detections,
            class_agnostic=self.cfg.class_agnostic_nms,
        )

        mapper = CoordinateMapper(
            model_size=self.cfg.input_size,
            dest_size=dest_size,
            letterbox=self.cfg.letterbox,
            flip_y=self.cfg.flip_y,
            clip=self.cfg.clip_to_dest,
        )
        commands = tuple(
            DrawCommand.from_detection(batch[i], mapper.map(batch[i].box), self._class_name(batch[i].class_id))
            for i in keep
        )

        self.stats.cycles_completed += 1
        self.stats.last_candidate_count = len(batch)
        self.stats.last_detection_count = len(commands)
        logger.debug(
            "cycle %d: %d candidates, %d kept, %d ticks",
            self.stats.cycles_completed,
            len(batch),
            len(commands),
            self.stats.last_cycle_ticks,
        )

        if self.sink is not None:
            self.sink(commands)
        return commands

    def _class_name(self, class_id: int) -> Optional[str]:
        if not self.class_names:
            return None
        return self.class_names.get(class_id, str(class_id))

