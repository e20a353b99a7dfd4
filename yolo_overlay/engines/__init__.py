"""
Step-able inference engines for yolo_overlay.

Runtime-specific engines are imported lazily (see runtime.load_engine) so the
post-processing core stays usable without installing inference runtimes.
"""

from __future__ import annotations

from .base import ExecutionHandle, InferenceEngine
from .layered import LayeredEngine

__all__ = ["ExecutionHandle", "InferenceEngine", "LayeredEngine"]
