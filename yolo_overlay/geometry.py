from __future__ import annotations

import numpy as np

from .types import Box


def area(box: Box) -> float:
    return box.width * box.height


def clamp_box(x: float, y: float, width: float, height: float) -> Box:
    """
    Build a Box, clamping negative sizes to zero instead of rejecting them.
    """

    return Box(x=float(x), y=float(y), width=max(0.0, float(width)), height=max(0.0, float(height)))


def iou(a: Box, b: Box) -> float:
    """
    Intersection-over-union of two boxes. Two zero-area boxes give 0.0.
    """

    x1 = max(a.x, b.x)
    y1 = max(a.y, b.y)
    x2 = min(a.x_max, b.x_max)
    y2 = min(a.y_max, b.y_max)

    intersection = max(0.0, x2 - x1) * max(0.0, y2 - y1)
    union = area(a) + area(b) - intersection
    if union <= 0.0:
        return 0.0
    return intersection / union


def iou_many(box: np.ndarray, others: np.ndarray) -> np.ndarray:
    """
    IoU of one box against K boxes, all as xywh rows.

    Args:
        box: shape (4,) as (x, y, w, h)
        others: shape (K, 4) as (x, y, w, h)

    Returns:
        shape (K,) float64, 0.0 wherever the union is zero
    """

    others = np.asarray(others, dtype=np.float64).reshape(-1, 4)
    if others.shape[0] == 0:
        return np.empty((0,), dtype=np.float64)

    bx, by, bw, bh = (float(v) for v in box)
    ox, oy, ow, oh = others[:, 0], others[:, 1], others[:, 2], others[:, 3]

    xx1 = np.maximum(bx, ox)
    yy1 = np.maximum(by, oy)
    xx2 = np.minimum(bx + bw, ox + ow)
    yy2 = np.minimum(by + bh, oy + oh)

    inter = np.maximum(0.0, xx2 - xx1) * np.maximum(0.0, yy2 - yy1)
    union = bw * bh + ow * oh - inter

    out = np.zeros_like(union)
    np.divide(inter, union, out=out, where=union > 0.0)
    return out
