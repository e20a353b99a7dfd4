from __future__ import annotations

from typing import Callable, List, Optional, Sequence

import numpy as np


Layer = Callable[[np.ndarray], np.ndarray]


class _LayeredHandle:
    def __init__(self, layers: Sequence[Layer], blob: np.ndarray):
        self._layers = layers
        self._x: Optional[np.ndarray] = blob
        self._next = 0

    @property
    def steps_taken(self) -> int:
        return self._next

    @property
    def closed(self) -> bool:
        return self._x is None

    def step(self) -> bool:
        if self._x is None:
            raise RuntimeError("Execution handle is closed.")
        if self._next < len(self._layers):
            self._x = self._layers[self._next](self._x)
            self._next += 1
        return self._next >= len(self._layers)

    def output(self) -> np.ndarray:
        if self._x is None:
            raise RuntimeError("Execution handle is closed.")
        if self._next < len(self._layers):
            raise RuntimeError(f"Output requested after {self._next}/{len(self._layers)} layers.")
        return self._x

    def close(self) -> None:
        self._x = None


class LayeredEngine:
    """
    Engine made of an ordered list of NumPy layers, executed one layer per step.

    This is the layer-wise execution model the scheduler slices across frames:
    a model with L layers completes on its L-th step.
    """

    def __init__(self, layers: Sequence[Layer]):
        if not layers:
            raise ValueError("LayeredEngine needs at least one layer.")
        self.layers: List[Layer] = list(layers)

    @property
    def num_steps(self) -> int:
        return len(self.layers)

    def schedule(self, blob: np.ndarray) -> _LayeredHandle:
        return _LayeredHandle(self.layers, blob)

    def close(self) -> None:
        pass
