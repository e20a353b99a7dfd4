from __future__ import annotations

from typing import Protocol

import numpy as np


class ExecutionHandle(Protocol):
    """
    One scheduled forward pass that advances one internal step at a time.
    """

    def step(self) -> bool:
        """Run one step. Returns True once the pass is complete."""
        ...

    def output(self) -> np.ndarray:
        ...

    def close(self) -> None:
        ...


class InferenceEngine(Protocol):
    def schedule(self, blob: np.ndarray) -> ExecutionHandle:
        ...

    def close(self) -> None:
        ...
