from __future__ import annotations

from pathlib import Path
from typing import Dict, Union


def _parse_names_block(lines) -> Dict[int, str]:
    """
    Parse the `names:` mapping of an Ultralytics-style metadata.yaml:

        names:
          0: person
          1: bicycle
    """

    names: Dict[int, str] = {}
    in_names = False
    for raw in lines:
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line == "names:":
            in_names = True
            continue
        if not in_names:
            continue
        # A new top-level key ends the block.
        if not raw[:1].isspace() and not line[:1].isdigit():
            break
        left, sep, right = line.partition(":")
        if not sep or not left.strip().isdigit():
            continue
        names[int(left.strip())] = right.strip().strip("'").strip('"')
    return names


def load_class_names(path: Union[str, Path]) -> Dict[int, str]:
    """
    Load {class_id: name} for overlay labels.

    `.yaml`/`.yml` files are read as the `names:` block of a model metadata file;
    anything else is a plain label list with one name per line (line 0 -> class 0).
    """

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Class names file not found: {path}")
    lines = path.read_text(encoding="utf-8").splitlines()

    if path.suffix.lower() in (".yaml", ".yml"):
        return _parse_names_block(lines)

    return {i: line.strip() for i, line in enumerate(lines) if line.strip()}
