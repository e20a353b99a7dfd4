from __future__ import annotations

import argparse
import statistics
import time
from dataclasses import dataclass
from typing import List

import numpy as np

from yolo_overlay import DecodeConfig, TensorLayout, YoloDecoder, suppress


@dataclass(frozen=True)
class TimingSummary:
    n: int
    mean_ms: float
    p50_ms: float
    p90_ms: float
    p95_ms: float


def _percentile(sorted_values: List[float], q: float) -> float:
    if not sorted_values:
        raise ValueError("No values provided.")
    if q < 0.0 or q > 100.0:
        raise ValueError("q must be in [0, 100].")
    if len(sorted_values) == 1:
        return float(sorted_values[0])
    # Linear interpolation between closest ranks.
    pos = (q / 100.0) * (len(sorted_values) - 1)
    lo = int(np.floor(pos))
    hi = int(np.ceil(pos))
    if lo == hi:
        return float(sorted_values[lo])
    t = pos - lo
    return float(sorted_values[lo] * (1.0 - t) + sorted_values[hi] * t)


def _summarize_ms(values_s: List[float]) -> TimingSummary:
    ms_sorted = sorted(v * 1000.0 for v in values_s)
    return TimingSummary(
        n=len(ms_sorted),
        mean_ms=float(statistics.fmean(ms_sorted)) if ms_sorted else 0.0,
        p50_ms=_percentile(ms_sorted, 50.0) if ms_sorted else 0.0,
        p90_ms=_percentile(ms_sorted, 90.0) if ms_sorted else 0.0,
        p95_ms=_percentile(ms_sorted, 95.0) if ms_sorted else 0.0,
    )


def _format_summary(label: str, s: TimingSummary) -> str:
    return (
        f"{label}: n={s.n} mean={s.mean_ms:.3f}ms p50={s.p50_ms:.3f}ms "
        f"p90={s.p90_ms:.3f}ms p95={s.p95_ms:.3f}ms"
    )


def _synthetic_tensor(anchors: int, classes: int, above: int, conf: float, seed: int) -> np.ndarray:
    """
    (1, 5 + classes, anchors) channel-first tensor with `above` anchors over `conf`.
    """

    rng = np.random.default_rng(seed)
    t = np.zeros((1, 5 + classes, anchors), dtype=np.float32)
    t[0, 0:2, :] = rng.uniform(0, 640, size=(2, anchors))
    t[0, 2:4, :] = rng.uniform(5, 120, size=(2, anchors))
    t[0, 4, :] = rng.uniform(0.0, conf, size=anchors)
    hot = rng.choice(anchors, size=min(above, anchors), replace=False)
    t[0, 4, hot] = rng.uniform(conf + 1e-3, 1.0, size=hot.size)
    t[0, 5:, :] = rng.uniform(0.0, 1.0, size=(classes, anchors))
    return t


def main() -> int:
    parser = argparse.ArgumentParser(description="Benchmark decode and greedy NMS on synthetic YOLO output.")
    parser.add_argument("--anchors", type=int, default=8400, help="Anchors per tensor (N).")
    parser.add_argument("--classes", type=int, default=80, help="Class-score channels.")
    parser.add_argument(
        "--candidates",
        default="10,50,100,300",
        help="Comma-separated counts of anchors above the confidence threshold (K).",
    )
    parser.add_argument("--conf", type=float, default=0.5, help="Confidence threshold.")
    parser.add_argument("--iou", type=float, default=0.5, help="IoU threshold for NMS.")
    parser.add_argument("--repeats", type=int, default=100, help="Timed runs per K.")
    parser.add_argument("--warmup", type=int, default=5, help="Untimed runs per K.")
    args = parser.parse_args()

    if args.repeats < 1:
        raise ValueError("--repeats must be >= 1")
    if args.warmup < 0:
        raise ValueError("--warmup must be >= 0")

    decoder = YoloDecoder(DecodeConfig(num_anchors=int(args.anchors), num_classes=int(args.classes)))
    counts = [int(c) for c in str(args.candidates).split(",") if c.strip()]

    for k in counts:
        tensor = _synthetic_tensor(int(args.anchors), int(args.classes), k, float(args.conf), seed=k)
        t_dec: List[float] = []
        t_nms: List[float] = []
        kept = 0
        for i in range(int(args.warmup) + int(args.repeats)):
            t0 = time.perf_counter()
            batch = decoder.decode(tensor, float(args.conf), TensorLayout.CHANNEL_FIRST)
            t1 = time.perf_counter()
            keep = suppress(batch, float(args.iou))
            t2 = time.perf_counter()
            if i >= int(args.warmup):
                t_dec.append(t1 - t0)
                t_nms.append(t2 - t1)
                kept = len(keep)

        print(f"K={k} kept={kept}")
        print("  " + _format_summary("decode", _summarize_ms(t_dec)))
        print("  " + _format_summary("suppress", _summarize_ms(t_nms)))

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
