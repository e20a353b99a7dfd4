import tempfile
import unittest
from pathlib import Path

from yolo_overlay.metadata import load_class_names
from yolo_overlay.runtime import find_project_root, load_engine, resolve_path
from yolo_overlay.stats import FrameRateMeter


class TestLoadClassNames(unittest.TestCase):
    def _write(self, name: str, text: str) -> Path:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        path = Path(tmpdir.name) / name
        path.write_text(text, encoding="utf-8")
        return path

    def test_yaml_names_block(self) -> None:
        path = self._write(
            "metadata.yaml",
            "description: test\nnames:\n  0: person\n  1: 'bicycle'\n  2: \"car\"\nimgsz: [640, 640]\n",
        )
        self.assertEqual(load_class_names(path), {0: "person", 1: "bicycle", 2: "car"})

    def test_label_list(self) -> None:
        path = self._write("labels.txt", "person\nbicycle\n\n")
        self.assertEqual(load_class_names(path), {0: "person", 1: "bicycle"})

    def test_missing(self) -> None:
        with self.assertRaises(FileNotFoundError):
            load_class_names("no/such/labels.txt")


class TestFrameRateMeter(unittest.TestCase):
    def test_average_over_interval(self) -> None:
        meter = FrameRateMeter(interval_s=0.5)
        for _ in range(3):
            self.assertEqual(meter.update(0.125), 0.0)
        self.assertAlmostEqual(meter.update(0.125), 8.0)

    def test_clock_driven(self) -> None:
        ticks = iter([0.0, 0.25, 0.5, 0.75, 1.0])
        meter = FrameRateMeter(interval_s=0.5, clock=lambda: next(ticks))
        for _ in range(4):
            meter.update()
        self.assertAlmostEqual(meter.fps, 4.0)

    def test_invalid_interval(self) -> None:
        with self.assertRaises(ValueError):
            FrameRateMeter(interval_s=0)


class TestRuntime(unittest.TestCase):
    def test_resolve_path(self) -> None:
        self.assertEqual(resolve_path("/abs/model.onnx"), Path("/abs/model.onnx"))
        self.assertEqual(resolve_path("m.onnx", root="/tmp"), Path("/tmp").resolve() / "m.onnx")

    def test_find_project_root(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp).resolve()
            (root / "pyproject.toml").write_text("", encoding="utf-8")
            nested = root / "models" / "v8"
            nested.mkdir(parents=True)
            model = nested / "yolov8n.onnx"
            model.write_bytes(b"")
            self.assertEqual(find_project_root(nested), root)
            self.assertEqual(find_project_root(model), root)

    def test_unknown_extension(self) -> None:
        with self.assertRaises(ValueError):
            load_engine("model.tflite", root="/tmp")


if __name__ == "__main__":
    unittest.main()
