"""
Detection post-processing for real-time overlays.

Turns raw YOLO output tensors into a few labeled, de-duplicated boxes in
display coordinates, with the forward pass sliced across display frames so
the host loop never waits for a whole inference. Core modules need only
NumPy; OpenCV is used for frame conversion and ONNX Runtime is optional.
"""

from .types import Box, Detection, DetectionBatch, DrawCommand
from .errors import (
    EngineFault,
    InvalidConfiguration,
    OverlayError,
    SchedulerStateError,
    ShapeMismatch,
    SubmissionRejected,
)
from .geometry import area, clamp_box, iou, iou_many
from .config import (
    ClassEncoding,
    DecodeConfig,
    PipelineConfig,
    PreemptionPolicy,
    TensorLayout,
    load_pipeline_config,
    pipeline_config_from_dict,
)
from .postprocess import YoloDecoder, decode
from .nms import NMSConfig, nms, suppress
from .mapping import CoordinateMapper, content_rect, map_box, unmap_box
from .scheduler import IncrementalScheduler, InferenceSession, SchedulerState
from .engines import LayeredEngine
from .pipeline import DetectionPipeline, frame_to_tensor
from .runtime import find_project_root, load_engine, resolve_path
from .metadata import load_class_names
from .stats import FrameRateMeter, PipelineStats

__all__ = [
    "Box",
    "Detection",
    "DetectionBatch",
    "DrawCommand",
    "EngineFault",
    "InvalidConfiguration",
    "OverlayError",
    "SchedulerStateError",
    "ShapeMismatch",
    "SubmissionRejected",
    "area",
    "clamp_box",
    "iou",
    "iou_many",
    "ClassEncoding",
    "DecodeConfig",
    "PipelineConfig",
    "PreemptionPolicy",
    "TensorLayout",
    "load_pipeline_config",
    "pipeline_config_from_dict",
    "YoloDecoder",
    "decode",
    "NMSConfig",
    "nms",
    "suppress",
    "CoordinateMapper",
    "content_rect",
    "map_box",
    "unmap_box",
    "IncrementalScheduler",
    "InferenceSession",
    "SchedulerState",
    "LayeredEngine",
    "DetectionPipeline",
    "frame_to_tensor",
    "find_project_root",
    "load_engine",
    "resolve_path",
    "load_class_names",
    "FrameRateMeter",
    "PipelineStats",
]
