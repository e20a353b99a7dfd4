from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from .geometry import iou_many
from .types import Detection


@dataclass(frozen=True)
class NMSConfig:
    iou_threshold: float = 0.5
    max_detections: Optional[int] = None
    # If False, runs the greedy pass per class and merges results by score.
    class_agnostic: bool = True


def _score_order(scores: np.ndarray) -> np.ndarray:
    # Stable sort on the negated scores: descending score, ties by index ascending.
    return np.argsort(-scores, kind="stable")


def _greedy(boxes: np.ndarray, scores: np.ndarray, iou_threshold: float, max_detections: Optional[int]) -> List[int]:
    """
    Greedy NMS over xywh rows. Returns accepted indices in acceptance order.

    Worst case is O(K^2) for K candidates: every accepted box is compared with
    every remaining one. That is fine for the tens to low hundreds of boxes
    left after the confidence filter; a spatial grid or BVH would be needed to
    keep it fast for much larger K.
    """

    order = _score_order(scores)
    keep: List[int] = []

    while order.size > 0:
        if max_detections is not None and len(keep) >= max_detections:
            break
        cur = int(order[0])
        keep.append(cur)

        rest = order[1:]
        overlaps = iou_many(boxes[cur], boxes[rest])
        order = rest[overlaps <= iou_threshold]

    return keep


def suppress(
    batch: Sequence[Detection],
    iou_threshold: float,
    *,
    max_detections: Optional[int] = None,
    class_agnostic: bool = True,
) -> List[int]:
    """
    Greedy non-maximum suppression over a DetectionBatch.

    The batch is not modified. Returns indices into `batch`, in the order the
    boxes were accepted (descending score, ties by lower index first), not in
    decode order. Identical input always yields identical output.
    """

    if len(batch) == 0:
        return []

    boxes = np.array([d.box.as_xywh() for d in batch], dtype=np.float64)
    scores = np.array([d.score for d in batch], dtype=np.float64)

    if class_agnostic:
        return _greedy(boxes, scores, iou_threshold, max_detections)

    class_ids = np.array([d.class_id for d in batch], dtype=np.int64)
    kept: List[int] = []
    for cls in np.unique(class_ids):
        idx = np.flatnonzero(class_ids == cls)
        keep_local = _greedy(boxes[idx], scores[idx], iou_threshold, None)
        kept.extend(int(i) for i in idx[keep_local])

    if not kept:
        return []

    kept_arr = np.array(sorted(kept), dtype=np.int64)
    merged = kept_arr[_score_order(scores[kept_arr])]
    if max_detections is not None:
        merged = merged[:max_detections]
    return [int(i) for i in merged]


def nms(batch: Sequence[Detection], cfg: NMSConfig) -> List[int]:
    return suppress(
        batch,
        cfg.iou_threshold,
        max_detections=cfg.max_detections,
        class_agnostic=cfg.class_agnostic,
    )
