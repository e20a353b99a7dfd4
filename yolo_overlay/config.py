from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Tuple

from .errors import InvalidConfiguration


class TensorLayout(str, Enum):
    # [1, C, N]
    CHANNEL_FIRST = "channel_first"
    # [1, N, C]
    CHANNEL_LAST = "channel_last"


class ClassEncoding(str, Enum):
    # Channels 5..C-1 are per-class scores; the class is their argmax.
    SCORES = "scores"
    # Channel 5 already holds the class index.
    INDEX = "index"


class PreemptionPolicy(str, Enum):
    REJECT = "reject"
    DISCARD_AND_RESTART = "discard_and_restart"


def _check_unit_interval(name: str, value: float) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidConfiguration(f"{name} must be a number")
    if not (0.0 <= float(value) <= 1.0):
        raise InvalidConfiguration(f"{name} must be within [0, 1], got {value}")


def _check_size(name: str, value: Tuple[int, int]) -> None:
    if len(value) != 2:
        raise InvalidConfiguration(f"{name} must be a (width, height) pair")
    for v in value:
        if isinstance(v, bool) or not isinstance(v, int) or v <= 0:
            raise InvalidConfiguration(f"{name} must contain positive integers, got {value}")


@dataclass(frozen=True)
class DecodeConfig:
    """
    Where the decoder finds things in one anchor's channel vector.

    Defaults match the common YOLO export: [cx, cy, w, h, objectness, class...]
    with 8400 anchors for a 640x640 input.
    """

    num_anchors: Optional[int] = 8400
    # None accepts any class count (C >= 6).
    num_classes: Optional[int] = None
    class_encoding: ClassEncoding = ClassEncoding.SCORES
    cx_channel: int = 0
    cy_channel: int = 1
    w_channel: int = 2
    h_channel: int = 3
    objectness_channel: int = 4
    class_channel: int = 5
    # Box channels in 0..1, scaled by the model input size before use.
    normalized_coords: bool = False
    class_ids: Optional[Sequence[int]] = None

    def __post_init__(self) -> None:
        if self.num_anchors is not None and self.num_anchors <= 0:
            raise InvalidConfiguration("num_anchors must be > 0")
        if self.num_classes is not None and self.num_classes <= 0:
            raise InvalidConfiguration("num_classes must be > 0")
        channels = (
            self.cx_channel,
            self.cy_channel,
            self.w_channel,
            self.h_channel,
            self.objectness_channel,
            self.class_channel,
        )
        if any(c < 0 for c in channels):
            raise InvalidConfiguration("channel offsets must be >= 0")
        if len(set(channels)) != len(channels):
            raise InvalidConfiguration(f"channel offsets must be distinct, got {channels}")
        if not isinstance(self.class_encoding, ClassEncoding):
            raise InvalidConfiguration(f"Unsupported class_encoding: {self.class_encoding!r}")

    @property
    def expected_channels(self) -> Optional[int]:
        """Exact channel count when class scores run to the end of the vector."""
        if self.class_encoding is ClassEncoding.SCORES and self.num_classes is not None:
            return self.class_channel + self.num_classes
        return None

    @property
    def min_channels(self) -> int:
        return max(
            self.cx_channel,
            self.cy_channel,
            self.w_channel,
            self.h_channel,
            self.objectness_channel,
            self.class_channel,
        ) + 1


@dataclass(frozen=True)
class PipelineConfig:
    confidence_threshold: float = 0.5
    iou_threshold: float = 0.5
    layers_per_tick: int = 10
    tensor_layout: TensorLayout = TensorLayout.CHANNEL_FIRST
    letterbox: bool = False
    flip_y: bool = False
    preemption_policy: PreemptionPolicy = PreemptionPolicy.REJECT
    # (width, height) of the model input.
    input_size: Tuple[int, int] = (640, 640)
    decode: DecodeConfig = field(default_factory=DecodeConfig)
    max_detections: Optional[int] = None
    class_agnostic_nms: bool = True
    clip_to_dest: bool = False

    def __post_init__(self) -> None:
        _check_unit_interval("confidence_threshold", self.confidence_threshold)
        _check_unit_interval("iou_threshold", self.iou_threshold)
        if isinstance(self.layers_per_tick, bool) or not isinstance(self.layers_per_tick, int):
            raise InvalidConfiguration("layers_per_tick must be an integer")
        if self.layers_per_tick <= 0:
            raise InvalidConfiguration("layers_per_tick must be > 0")
        _check_size("input_size", self.input_size)
        if self.max_detections is not None and self.max_detections <= 0:
            raise InvalidConfiguration("max_detections must be > 0")
        if not isinstance(self.tensor_layout, TensorLayout):
            raise InvalidConfiguration(f"Unsupported tensor_layout: {self.tensor_layout!r}")
        if not isinstance(self.preemption_policy, PreemptionPolicy):
            raise InvalidConfiguration(f"Unsupported preemption_policy: {self.preemption_policy!r}")


_ENUM_KEYS = {
    "tensor_layout": TensorLayout,
    "preemption_policy": PreemptionPolicy,
}
_FLOAT_KEYS = {"confidence_threshold", "iou_threshold"}
_INT_KEYS = {"layers_per_tick", "max_detections"}
_BOOL_KEYS = {"letterbox", "flip_y", "class_agnostic_nms", "clip_to_dest"}

_DECODE_INT_KEYS = {
    "num_anchors",
    "num_classes",
    "cx_channel",
    "cy_channel",
    "w_channel",
    "h_channel",
    "objectness_channel",
    "class_channel",
}


def _require_bool(key: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise InvalidConfiguration(f"{key} must be a boolean")
    return value


def _require_int(key: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidConfiguration(f"{key} must be an integer")
    return value


def _require_enum(key: str, value: Any, enum_cls: type) -> Enum:
    try:
        return enum_cls(value)
    except ValueError as exc:
        allowed = [m.value for m in enum_cls]
        raise InvalidConfiguration(f"{key} must be one of {allowed}, got {value!r}") from exc


def _parse_decode(payload: Any) -> DecodeConfig:
    if not isinstance(payload, dict):
        raise InvalidConfiguration("decode must be a JSON object")
    allowed = _DECODE_INT_KEYS | {"class_encoding", "normalized_coords", "class_ids"}
    unknown = sorted(set(payload.keys()) - allowed)
    if unknown:
        raise InvalidConfiguration(f"Unknown decode keys: {unknown}")

    kwargs: Dict[str, Any] = {}
    for key, value in payload.items():
        if key in _DECODE_INT_KEYS:
            kwargs[key] = None if value is None and key in ("num_anchors", "num_classes") else _require_int(key, value)
        elif key == "class_encoding":
            kwargs[key] = _require_enum(key, value, ClassEncoding)
        elif key == "normalized_coords":
            kwargs[key] = _require_bool(key, value)
        elif key == "class_ids":
            if value is not None:
                if not isinstance(value, list):
                    raise InvalidConfiguration("class_ids must be a list of integers")
                value = tuple(_require_int("class_ids", v) for v in value)
            kwargs[key] = value
    return DecodeConfig(**kwargs)


def pipeline_config_from_dict(payload: Dict[str, Any]) -> PipelineConfig:
    allowed = _FLOAT_KEYS | _INT_KEYS | _BOOL_KEYS | set(_ENUM_KEYS) | {"input_size", "decode"}
    unknown = sorted(set(payload.keys()) - allowed)
    if unknown:
        raise InvalidConfiguration(f"Unknown pipeline config keys: {unknown}")

    kwargs: Dict[str, Any] = {}
    for key, value in payload.items():
        if key in _FLOAT_KEYS:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise InvalidConfiguration(f"{key} must be a number")
            kwargs[key] = float(value)
        elif key in _INT_KEYS:
            kwargs[key] = None if value is None and key == "max_detections" else _require_int(key, value)
        elif key in _BOOL_KEYS:
            kwargs[key] = _require_bool(key, value)
        elif key in _ENUM_KEYS:
            kwargs[key] = _require_enum(key, value, _ENUM_KEYS[key])
        elif key == "input_size":
            if not isinstance(value, list) or len(value) != 2:
                raise InvalidConfiguration("input_size must be a [width, height] list")
            kwargs[key] = (_require_int(key, value[0]), _require_int(key, value[1]))
        elif key == "decode":
            kwargs[key] = _parse_decode(value)
    return PipelineConfig(**kwargs)


def load_pipeline_config(path: Path) -> PipelineConfig:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Pipeline config not found: {path}")
    raw = path.read_text(encoding="utf-8")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise InvalidConfiguration(f"Invalid pipeline config JSON: {path}") from exc
    if not isinstance(payload, dict):
        raise InvalidConfiguration("Pipeline config must be a JSON object")
    return pipeline_config_from_dict(payload)
