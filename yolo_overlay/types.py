from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple


@dataclass(frozen=True)
class Box:
    """
    Axis-aligned box as top-left corner plus size.

    The coordinate space is implicit: decode produces model-input space, the
    mapper produces destination space.
    """

    x: float
    y: float
    width: float
    height: float

    def __post_init__(self) -> None:
        if self.width < 0 or self.height < 0:
            raise ValueError(f"Box size must be >= 0, got ({self.width}, {self.height})")

    @property
    def x_max(self) -> float:
        return self.x + self.width

    @property
    def y_max(self) -> float:
        return self.y + self.height

    @property
    def center(self) -> Tuple[float, float]:
        return self.x + self.width / 2, self.y + self.height / 2

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        return self.x, self.y, self.x_max, self.y_max

    def as_xywh(self) -> Tuple[float, float, float, float]:
        return self.x, self.y, self.width, self.height

    @classmethod
    def from_xyxy(cls, x1: float, y1: float, x2: float, y2: float) -> "Box":
        return cls(x=x1, y=y1, width=x2 - x1, height=y2 - y1)


@dataclass(frozen=True)
class Detection:
    box: Box
    score: float
    class_id: int


# Raw anchor-index order, as produced by decode.
DetectionBatch = List[Detection]


@dataclass(frozen=True)
class DrawCommand:
    """
    One overlay rectangle for the rendering side, in destination coordinates.
    """

    box: Box
    score: float
    class_id: int
    label: str

    @classmethod
    def from_detection(cls, det: Detection, box: Box, class_name: Optional[str] = None) -> "DrawCommand":
        if class_name is None:
            label = f"Score: {det.score:.2f}"
        else:
            label = f"{class_name} {det.score:.2f}"
        return cls(box=box, score=det.score, class_id=det.class_id, label=label)
