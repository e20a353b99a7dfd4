from __future__ import annotations

import logging
from typing import List, Optional, Tuple

import numpy as np

from .config import ClassEncoding, DecodeConfig, TensorLayout
from .errors import ShapeMismatch
from .types import Detection, DetectionBatch, Box

logger = logging.getLogger(__name__)


class YoloDecoder:
    """
    Decode a raw YOLO output tensor into a DetectionBatch.

    Supported layouts (per image, layout given by configuration, never guessed):
    - TensorLayout.CHANNEL_FIRST: (1, C, N), e.g. 85 x 8400
    - TensorLayout.CHANNEL_LAST:  (1, N, C)

    The channel vector of one anchor is [cx, cy, w, h, objectness, class...]
    at the offsets in DecodeConfig. Class identity is either the argmax of the
    class-score channels or a class index already stored in one channel.

    The output keeps raw anchor order; only anchors whose objectness is
    strictly above the threshold are emitted, with score = objectness.
    """

    def __init__(self, cfg: DecodeConfig = DecodeConfig(), input_size: Tuple[int, int] = (640, 640)):
        self.cfg = cfg
        self.input_size = input_size

    def decode(
        self,
        tensor: np.ndarray,
        confidence_threshold: float,
        layout: TensorLayout,
    ) -> DetectionBatch:
        rows = self._anchor_rows(tensor, layout)

        conf = rows[:, self.cfg.objectness_channel]
        keep = np.flatnonzero(conf > confidence_threshold)
        if keep.size == 0:
            return []

        sel = rows[keep].astype(np.float64)
        boxes = self._corner_boxes(sel)
        scores = sel[:, self.cfg.objectness_channel]
        class_ids = self._class_ids(sel)

        if self.cfg.class_ids is not None:
            mask = np.isin(class_ids, np.asarray(self.cfg.class_ids))
            boxes, scores, class_ids = boxes[mask], scores[mask], class_ids[mask]

        out: DetectionBatch = []
        for (x, y, w, h), score, cls_id in zip(boxes.tolist(), scores.tolist(), class_ids.tolist()):
            out.append(Detection(box=Box(x=x, y=y, width=w, height=h), score=score, class_id=int(cls_id)))
        logger.debug("decoded %d of %d anchors above %.3f", len(out), rows.shape[0], confidence_threshold)
        return out

    __call__ = decode

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #
    def _anchor_rows(self, tensor: np.ndarray, layout: TensorLayout) -> np.ndarray:
        """
        Validate the tensor shape and return an (N, C) view, one row per anchor.
        """

        p = np.asarray(tensor)
        if p.ndim == 3:
            if p.shape[0] != 1:
                raise ShapeMismatch(f"Batch > 1 is not supported (got shape {p.shape}). Pass one image at a time.")
            p = p[0]
        if p.ndim != 2:
            raise ShapeMismatch(f"Expected a (1, C, N) or (1, N, C) tensor, got shape {np.shape(tensor)}")

        if layout is TensorLayout.CHANNEL_FIRST:
            rows = p.T
        elif layout is TensorLayout.CHANNEL_LAST:
            rows = p
        else:
            raise ShapeMismatch(f"Unsupported tensor layout: {layout!r}")

        n, c = rows.shape
        if self.cfg.num_anchors is not None and n != self.cfg.num_anchors:
            raise ShapeMismatch(
                f"Expected {self.cfg.num_anchors} anchors for layout {layout.value}, got {n} (shape {np.shape(tensor)})"
            )
        expected_c = self.cfg.expected_channels
        if expected_c is not None and c != expected_c:
            raise ShapeMismatch(f"Expected {expected_c} channels, got {c} (shape {np.shape(tensor)})")
        if c < self.cfg.min_channels:
            raise ShapeMismatch(f"Expected at least {self.cfg.min_channels} channels, got {c} (shape {np.shape(tensor)})")
        return rows

    def _corner_boxes(self, sel: np.ndarray) -> np.ndarray:
        """
        cxcywh -> xywh with the top-left corner at centre minus half size.
        """

        cx = sel[:, self.cfg.cx_channel]
        cy = sel[:, self.cfg.cy_channel]
        w = sel[:, self.cfg.w_channel]
        h = sel[:, self.cfg.h_channel]

        if self.cfg.normalized_coords:
            in_w, in_h = self.input_size
            cx, w = cx * in_w, w * in_w
            cy, h = cy * in_h, h * in_h

        w = np.maximum(w, 0.0)
        h = np.maximum(h, 0.0)
        return np.stack([cx - w / 2, cy - h / 2, w, h], axis=1)

    def _class_ids(self, sel: np.ndarray) -> np.ndarray:
        if self.cfg.class_encoding is ClassEncoding.INDEX:
            return np.rint(sel[:, self.cfg.class_channel]).astype(np.int64)

        end = self.cfg.expected_channels
        class_scores = sel[:, self.cfg.class_channel:end]
        # argmax returns the first maximum, so ties go to the lower class id.
        return np.argmax(class_scores, axis=1).astype(np.int64)


def decode(
    tensor: np.ndarray,
    confidence_threshold: float,
    layout: TensorLayout,
    cfg: Optional[DecodeConfig] = None,
    input_size: Tuple[int, int] = (640, 640),
) -> List[Detection]:
    """
    Functional form of YoloDecoder.decode.
    """

    return YoloDecoder(cfg or DecodeConfig(), input_size=input_size).decode(tensor, confidence_threshold, layout)
