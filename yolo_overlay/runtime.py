from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence, Union

from .engines.base import InferenceEngine


PathLike = Union[str, Path]

_ROOT_MARKERS = ("pyproject.toml", ".git")


def find_project_root(start: Optional[PathLike] = None) -> Path:
    """Nearest ancestor of `start` (default: cwd) holding a pyproject.toml or .git."""

    here = Path(start or Path.cwd()).resolve()
    if here.is_file():
        here = here.parent
    return next((d for d in (here, *here.parents) if any((d / m).exists() for m in _ROOT_MARKERS)), here)


def resolve_path(path: PathLike, root: Optional[PathLike] = "auto") -> Path:
    p = Path(path)
    if p.is_absolute():
        return p
    base = find_project_root() if root in ("auto", None) else Path(root).resolve()
    return (base / p).resolve()


def load_engine(
    model_path: PathLike,
    *,
    backend: Optional[str] = None,
    root: Optional[PathLike] = "auto",
    onnx_providers: Optional[Sequence[str]] = None,
    onnx_input_name: Optional[str] = None,
    onnx_output_name: Optional[str] = None,
    onnx_threads: int = 0,
) -> InferenceEngine:
    """
    Create a step-able engine for a model on disk.

        engine = load_engine("models/yolov8n.onnx")  # resolves from project root by default

    Args:
        model_path: model file; relative paths resolve against `root`
        backend: "onnxruntime", or None to infer it from the file extension
    """

    resolved = resolve_path(model_path, root=root)
    chosen = backend
    if chosen is None:
        suffix = resolved.suffix.lower()
        if suffix == ".onnx":
            chosen = "onnxruntime"
        else:
            raise ValueError(f"Could not infer backend from extension '{suffix}'. Pass backend=... explicitly.")

    if chosen.lower() == "onnxruntime":
        from .engines.onnxruntime_engine import OnnxRuntimeEngine, OnnxRuntimeEngineConfig

        return OnnxRuntimeEngine(
            resolved,
            OnnxRuntimeEngineConfig(
                providers=onnx_providers,
                input_name=onnx_input_name,
                output_name=onnx_output_name,
                intra_op_num_threads=onnx_threads,
            ),
        )

    raise ValueError(f"Unsupported backend: {backend!r}")
