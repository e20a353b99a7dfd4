from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Union

import numpy as np


PathLike = Union[str, Path]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OnnxRuntimeEngineConfig:
    """
    Configuration for ONNX Runtime inference.

    - providers: ORT execution providers (e.g., ["CUDAExecutionProvider", "CPUExecutionProvider"])
    - input_name/output_name: override auto-selected I/O names if needed
    - intra_op_num_threads: ORT thread count for one forward pass (0 = ORT default)
    """

    providers: Optional[Sequence[str]] = None
    input_name: Optional[str] = None
    output_name: Optional[str] = None
    intra_op_num_threads: int = 0


class _OrtHandle:
    """
    A forward pass running on the engine's worker thread.

    ORT cannot pause inside a graph, so one step is one non-blocking poll of the
    worker; the pass completes on the first poll that finds it finished.

    `close()` cancels a pass that has not started yet. A pass that is already
    running cannot be interrupted, so `close()` blocks until it finishes and
    then drops the input feed. Preempting a session therefore costs up to one
    remaining forward pass on the driving thread, and the abandoned blob is
    never alive next to the new one.
    """

    def __init__(self, future: "Future[Any]", inputs: Dict[str, Any]):
        self._future: Optional["Future[Any]"] = future
        self._inputs: Optional[Dict[str, Any]] = inputs

    @property
    def closed(self) -> bool:
        return self._future is None

    def step(self) -> bool:
        if self._future is None:
            raise RuntimeError("Execution handle is closed.")
        if not self._future.done():
            return False
        # Re-raise a worker-side failure on the driving thread.
        exc = self._future.exception()
        if exc is not None:
            raise exc
        return True

    def output(self) -> np.ndarray:
        if self._future is None:
            raise RuntimeError("Execution handle is closed.")
        if not self._future.done():
            raise RuntimeError("Output requested before the forward pass finished.")
        return self._future.result()[0]

    def close(self) -> None:
        future, inputs = self._future, self._inputs
        self._future = None
        self._inputs = None
        if future is None:
            return
        if not future.cancel():
            wait([future])
        # The executor's work item still references this dict.
        if inputs is not None:
            inputs.clear()


class OnnxRuntimeEngine:
    """
    ONNX Runtime engine with a single background worker.

    Passes run one at a time; `close()` on a handle waits for its pass (see
    `_OrtHandle`), so a new `schedule()` after a discard never queues behind
    a run that still holds the old blob.

    Expects an NCHW float32 blob, typically shaped (1, 3, H, W), and produces
    the primary output as a NumPy array.
    """

    def __init__(self, model_path: PathLike, cfg: OnnxRuntimeEngineConfig = OnnxRuntimeEngineConfig()):
        try:
            import onnxruntime as ort  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError(
                "onnxruntime is required for the ONNX engine. Install it with `pip install onnxruntime` "
                "(or `onnxruntime-gpu`)."
            ) from e

        self._ort = ort
        self.model_path = Path(model_path)
        if not self.model_path.exists():
            raise FileNotFoundError(str(self.model_path))

        sess_opts = ort.SessionOptions()
        if cfg.intra_op_num_threads:
            sess_opts.intra_op_num_threads = int(cfg.intra_op_num_threads)
        providers = list(cfg.providers) if cfg.providers is not None else None
        self.session = ort.InferenceSession(str(self.model_path), sess_options=sess_opts, providers=providers)

        self.input_name = cfg.input_name or self.session.get_inputs()[0].name
        # If output_name not provided, pick first output.
        self.output_name = cfg.output_name or self.session.get_outputs()[0].name

        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ort-engine")
        logger.info("Loaded %s with providers %s", self.model_path.name, list(self.providers_in_use))

    @property
    def providers_in_use(self) -> Sequence[str]:
        # ORT returns providers in priority order for this session.
        return tuple(self.session.get_providers())

    @property
    def available_providers(self) -> Sequence[str]:
        return tuple(self._ort.get_available_providers())

    def _run(self, inputs: Dict[str, Any]) -> Any:
        return self.session.run([self.output_name], inputs)

    def schedule(self, blob: np.ndarray, extra_inputs: Optional[Dict[str, Any]] = None) -> _OrtHandle:
        inputs: Dict[str, Any] = {self.input_name: blob}
        if extra_inputs:
            inputs.update(extra_inputs)
        return _OrtHandle(self._executor.submit(self._run, inputs), inputs)

    def close(self) -> None:
        self._executor.shutdown(wait=True)
