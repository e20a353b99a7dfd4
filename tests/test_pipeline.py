import importlib.util
import unittest

import numpy as np

from yolo_overlay.config import DecodeConfig, PipelineConfig, PreemptionPolicy
from yolo_overlay.engines import LayeredEngine
from yolo_overlay.errors import EngineFault, SchedulerStateError, SubmissionRejected
from yolo_overlay.pipeline import DetectionPipeline, frame_to_tensor
from yolo_overlay.scheduler import SchedulerState

HAS_CV2 = importlib.util.find_spec("cv2") is not None


def _raw_output(num_anchors: int = 8) -> np.ndarray:
    """
    (1, 7, N) channel-first output: [cx, cy, w, h, conf, score_cls0, score_cls1].
    """

    t = np.zeros((1, 7, num_anchors), dtype=np.float32)
    t[0, :, 0] = [20, 20, 10, 10, 0.9, 0.9, 0.1]
    # Overlaps anchor 0 with IoU ~0.68.
    t[0, :, 1] = [21, 21, 10, 10, 0.8, 0.9, 0.1]
    t[0, :, 2] = [50, 40, 8, 6, 0.7, 0.2, 0.8]
    # Below the confidence threshold.
    t[0, :, 3] = [30, 30, 10, 10, 0.3, 0.9, 0.1]
    return t


def _identity(x: np.ndarray) -> np.ndarray:
    return x


class _ClosableEngine(LayeredEngine):
    def __init__(self, layers):
        super().__init__(layers)
        self.closed = False

    def close(self) -> None:
        self.closed = True


class _FailOnce:
    def __init__(self):
        self.failed = False

    def __call__(self, x: np.ndarray) -> np.ndarray:
        if not self.failed:
            self.failed = True
            raise RuntimeError("device lost")
        return x


def _engine(output: np.ndarray, extra_layers=()) -> _ClosableEngine:
    return _ClosableEngine([_identity] * 4 + list(extra_layers) + [lambda _x: output.copy()])


def _cfg(**overrides) -> PipelineConfig:
    base = dict(
        confidence_threshold=0.5,
        iou_threshold=0.5,
        layers_per_tick=2,
        input_size=(64, 64),
        decode=DecodeConfig(num_anchors=8, num_classes=2),
    )
    base.update(overrides)
    return PipelineConfig(**base)


BLOB = np.zeros((1, 3, 64, 64), dtype=np.float32)


class TestDetectionPipeline(unittest.TestCase):
    def test_full_cycle(self) -> None:
        emitted = []
        pipeline = DetectionPipeline(
            _engine(_raw_output()),
            _cfg(),
            sink=emitted.append,
            class_names={0: "person", 1: "car"},
        ).init()

        results = [pipeline.tick(BLOB, (128, 128)) for _ in range(4)]
        self.assertEqual(results[:3], [None, None, None])
        commands = results[3]
        self.assertEqual(len(commands), 2)
        self.assertEqual(emitted, [commands])

        first, second = commands
        self.assertEqual(first.box.as_xywh(), (30.0, 30.0, 20.0, 20.0))
        self.assertEqual(first.class_id, 0)
        self.assertEqual(first.label, "person 0.90")
        self.assertEqual(second.box.as_xywh(), (92.0, 74.0, 16.0, 12.0))
        self.assertEqual(second.label, "car 0.70")

        self.assertEqual(pipeline.stats.cycles_completed, 1)
        self.assertEqual(pipeline.stats.last_cycle_ticks, 4)
        self.assertEqual(pipeline.stats.last_candidate_count, 3)
        self.assertEqual(pipeline.stats.last_detection_count, 2)
        self.assertEqual(pipeline.scheduler.state, SchedulerState.IDLE)

        # The next tick starts a fresh cycle.
        self.assertIsNone(pipeline.tick(BLOB, (128, 128)))
        self.assertEqual(pipeline.scheduler.state, SchedulerState.STEPPING)

    def test_default_label_without_class_names(self) -> None:
        pipeline = DetectionPipeline(_engine(_raw_output()), _cfg()).init()
        out = None
        while out is None:
            out = pipeline.tick(BLOB, (64, 64))
        self.assertEqual([c.label for c in out], ["Score: 0.90", "Score: 0.70"])

    def test_letterbox_and_flip(self) -> None:
        pipeline = DetectionPipeline(_engine(_raw_output()), _cfg(letterbox=True, flip_y=True)).init()
        out = None
        while out is None:
            out = pipeline.tick(BLOB, (256, 128))
        self.assertEqual(out[0].box.as_xywh(), (94.0, 78.0, 20.0, 20.0))

    def test_no_frame_no_submission(self) -> None:
        pipeline = DetectionPipeline(_engine(_raw_output()), _cfg()).init()
        self.assertIsNone(pipeline.tick(None, (64, 64)))
        self.assertEqual(pipeline.scheduler.state, SchedulerState.IDLE)

    def test_shape_mismatch_skips_cycle(self) -> None:
        pipeline = DetectionPipeline(_engine(_raw_output(num_anchors=5)), _cfg()).init()
        results = [pipeline.tick(BLOB, (64, 64)) for _ in range(4)]
        self.assertEqual(results, [None] * 4)
        self.assertEqual(pipeline.stats.cycles_skipped, 1)
        self.assertEqual(pipeline.stats.cycles_completed, 0)
        self.assertEqual(pipeline.scheduler.state, SchedulerState.IDLE)
        pipeline.tick(BLOB, (64, 64))
        self.assertEqual(pipeline.scheduler.state, SchedulerState.STEPPING)

    def test_engine_fault_requires_reset(self) -> None:
        pipeline = DetectionPipeline(_engine(_raw_output(), extra_layers=[_FailOnce()]), _cfg()).init()
        # submit, then layers 1-2 and 3-4; the fifth layer fails.
        for _ in range(3):
            pipeline.tick(BLOB, (64, 64))
        with self.assertRaises(EngineFault):
            pipeline.tick(BLOB, (64, 64))
        with self.assertRaises(SchedulerStateError):
            pipeline.tick(BLOB, (64, 64))

        pipeline.reset()
        out = None
        for _ in range(10):
            out = pipeline.tick(BLOB, (64, 64))
            if out is not None:
                break
        self.assertIsNotNone(out)

    def test_restart_respects_policy(self) -> None:
        pipeline = DetectionPipeline(_engine(_raw_output()), _cfg()).init()
        pipeline.tick(BLOB, (64, 64))
        with self.assertRaises(SubmissionRejected):
            pipeline.restart(BLOB)

        pipeline = DetectionPipeline(
            _engine(_raw_output()), _cfg(preemption_policy=PreemptionPolicy.DISCARD_AND_RESTART)
        ).init()
        pipeline.tick(BLOB, (64, 64))
        pipeline.tick(BLOB, (64, 64))
        first_id = pipeline.scheduler.session.session_id
        session = pipeline.restart(BLOB)
        self.assertNotEqual(session.session_id, first_id)
        self.assertEqual(session.steps_consumed, 0)

    def test_tick_before_init(self) -> None:
        pipeline = DetectionPipeline(_engine(_raw_output()), _cfg())
        with self.assertRaises(SchedulerStateError):
            pipeline.tick(BLOB, (64, 64))

    def test_context_manager_teardown(self) -> None:
        engine = _engine(_raw_output())
        with DetectionPipeline(engine, _cfg()) as pipeline:
            pipeline.tick(BLOB, (64, 64))
            self.assertTrue(pipeline.scheduler.in_flight)
        self.assertTrue(engine.closed)
        with self.assertRaises(SchedulerStateError):
            pipeline.tick(BLOB, (64, 64))

    def test_no_reuse_after_teardown(self) -> None:
        engine = _engine(_raw_output())
        pipeline = DetectionPipeline(engine, _cfg()).init()
        pipeline.teardown()
        self.assertTrue(engine.closed)
        with self.assertRaises(SchedulerStateError):
            pipeline.init()
        with self.assertRaises(SchedulerStateError):
            with pipeline:
                pass


class TestFrameToTensor(unittest.TestCase):
    def test_bgr_frame_same_size(self) -> None:
        frame = np.zeros((64, 64, 3), dtype=np.uint8)
        frame[:, :, 2] = 255  # red in BGR
        blob = frame_to_tensor(frame, (64, 64))
        self.assertEqual(blob.shape, (1, 3, 64, 64))
        self.assertEqual(blob.dtype, np.float32)
        self.assertTrue(np.all(blob[0, 0] == 1.0))
        self.assertTrue(np.all(blob[0, 1:] == 0.0))

    def test_blob_passthrough(self) -> None:
        blob = frame_to_tensor(BLOB, (64, 64))
        self.assertEqual(blob.shape, BLOB.shape)

    def test_uint8_blob_is_normalized(self) -> None:
        raw = np.full((1, 3, 64, 64), 255, dtype=np.uint8)
        raw[0, 1] = 51
        blob = frame_to_tensor(raw, (64, 64))
        self.assertEqual(blob.dtype, np.float32)
        self.assertTrue(np.all(blob[0, 0] == 1.0))
        self.assertTrue(np.allclose(blob[0, 1], 0.2))

    def test_bad_shapes(self) -> None:
        with self.assertRaises(ValueError):
            frame_to_tensor(np.zeros((64, 64), dtype=np.uint8), (64, 64))
        with self.assertRaises(ValueError):
            frame_to_tensor(np.zeros((1, 3, 32, 32), dtype=np.float32), (64, 64))
        with self.assertRaises(TypeError):
            frame_to_tensor(None, (64, 64))

    @unittest.skipUnless(HAS_CV2, "OpenCV not installed")
    def test_resize(self) -> None:
        frame = np.full((48, 32, 3), 128, dtype=np.uint8)
        blob = frame_to_tensor(frame, (64, 80))
        self.assertEqual(blob.shape, (1, 3, 80, 64))
        self.assertTrue(np.allclose(blob, 128 / 255.0))


if __name__ == "__main__":
    unittest.main()
