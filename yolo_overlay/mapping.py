from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

from .errors import InvalidConfiguration
from .geometry import clamp_box
from .types import Box


Size = Tuple[float, float]


def _check_size(name: str, size: Size) -> None:
    w, h = size
    if w <= 0 or h <= 0:
        raise InvalidConfiguration(f"{name} must be positive, got {size}")


def content_rect(model_size: Size, dest_size: Size, letterbox: bool) -> Tuple[float, float, float, float]:
    """
    Where model-input content lands in the destination.

    Returns:
        (offset_x, offset_y, scale_x, scale_y)

    Plain mode stretches the model input over the whole destination. Letterbox
    mode keeps the input aspect ratio: when the destination is wider than the
    input the content is a horizontally centred strip of full destination
    height, otherwise a vertically centred strip of full destination width.
    """

    _check_size("model_size", model_size)
    _check_size("dest_size", dest_size)
    model_w, model_h = model_size
    dest_w, dest_h = dest_size

    if not letterbox:
        return 0.0, 0.0, dest_w / model_w, dest_h / model_h

    r = min(dest_w / model_w, dest_h / model_h)
    content_w, content_h = model_w * r, model_h * r
    return (dest_w - content_w) / 2, (dest_h - content_h) / 2, r, r


def map_box(
    box: Box,
    model_size: Size,
    dest_size: Size,
    *,
    letterbox: bool = False,
    flip_y: bool = False,
    clip: bool = False,
) -> Box:
    """
    Map a box from model-input space into destination space.

    Args:
        flip_y: the destination Y axis runs the other way from model space
        clip: intersect the result with the destination rectangle
    """

    ox, oy, sx, sy = content_rect(model_size, dest_size, letterbox)
    dest_w, dest_h = dest_size

    x = ox + box.x * sx
    y = oy + box.y * sy
    w = max(0.0, box.width * sx)
    h = max(0.0, box.height * sy)

    if flip_y:
        y = dest_h - (y + h)

    if clip:
        x1, y1 = min(max(x, 0.0), dest_w), min(max(y, 0.0), dest_h)
        x2, y2 = min(max(x + w, 0.0), dest_w), min(max(y + h, 0.0), dest_h)
        x, y, w, h = x1, y1, x2 - x1, y2 - y1

    return clamp_box(x, y, w, h)


def unmap_box(
    box: Box,
    model_size: Size,
    dest_size: Size,
    *,
    letterbox: bool = False,
    flip_y: bool = False,
) -> Box:
    """
    Inverse of map_box (without clipping): destination space back to model space.
    """

    ox, oy, sx, sy = content_rect(model_size, dest_size, letterbox)
    _, dest_h = dest_size

    y = box.y
    if flip_y:
        y = dest_h - (box.y + box.height)

    return clamp_box((box.x - ox) / sx, (y - oy) / sy, box.width / sx, box.height / sy)


@dataclass(frozen=True)
class CoordinateMapper:
    model_size: Size
    dest_size: Size
    letterbox: bool = False
    flip_y: bool = False
    clip: bool = False

    def __post_init__(self) -> None:
        _check_size("model_size", self.model_size)
        _check_size("dest_size", self.dest_size)

    def map(self, box: Box) -> Box:
        return map_box(
            box,
            self.model_size,
            self.dest_size,
            letterbox=self.letterbox,
            flip_y=self.flip_y,
            clip=self.clip,
        )

    def unmap(self, box: Box) -> Box:
        return unmap_box(box, self.model_size, self.dest_size, letterbox=self.letterbox, flip_y=self.flip_y)
