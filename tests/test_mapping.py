import unittest

import numpy as np

from yolo_overlay.errors import InvalidConfiguration
from yolo_overlay.mapping import CoordinateMapper, content_rect, map_box, unmap_box
from yolo_overlay.types import Box


def _assert_box_close(tc: unittest.TestCase, a: Box, b: Box, places: int = 6) -> None:
    for x, y in zip(a.as_xywh(), b.as_xywh()):
        tc.assertAlmostEqual(x, y, places=places)


class TestCoordinateMapping(unittest.TestCase):
    def test_plain_scale(self) -> None:
        out = map_box(Box(320, 320, 64, 64), (640, 640), (1280, 720))
        self.assertEqual(out.as_xywh(), (640.0, 360.0, 128.0, 72.0))

    def test_letterbox_wide_destination(self) -> None:
        # 640x640 content in 1280x720: centred 720x720 strip starting at x=280
        self.assertEqual(content_rect((640, 640), (1280, 720), letterbox=True), (280.0, 0.0, 1.125, 1.125))
        out = map_box(Box(0, 0, 640, 640), (640, 640), (1280, 720), letterbox=True)
        self.assertEqual(out.as_xywh(), (280.0, 0.0, 720.0, 720.0))

    def test_letterbox_tall_destination(self) -> None:
        out = map_box(Box(0, 0, 640, 640), (640, 640), (720, 1280), letterbox=True)
        self.assertEqual(out.as_xywh(), (0.0, 280.0, 720.0, 720.0))

    def test_letterbox_matching_aspect_is_plain(self) -> None:
        self.assertEqual(
            content_rect((640, 480), (1280, 960), letterbox=True),
            content_rect((640, 480), (1280, 960), letterbox=False),
        )

    def test_flip_y(self) -> None:
        out = map_box(Box(10, 20, 30, 40), (100, 100), (100, 100), flip_y=True)
        self.assertEqual(out.as_xywh(), (10.0, 40.0, 30.0, 40.0))

    def test_clip(self) -> None:
        out = map_box(Box(-10, 90, 30, 30), (100, 100), (100, 100), clip=True)
        self.assertEqual(out.as_xywh(), (0.0, 90.0, 20.0, 10.0))
        gone = map_box(Box(200, 200, 10, 10), (100, 100), (100, 100), clip=True)
        self.assertEqual((gone.width, gone.height), (0.0, 0.0))

    def test_zero_size_stays_non_negative(self) -> None:
        out = map_box(Box(5, 5, 0, 0), (640, 640), (1080, 1920), letterbox=True, flip_y=True)
        self.assertGreaterEqual(out.width, 0.0)
        self.assertGreaterEqual(out.height, 0.0)

    def test_round_trip(self) -> None:
        rng = np.random.default_rng(7)
        dests = [(1280, 720), (720, 1280), (1080, 1080), (333, 777)]
        for _ in range(50):
            x, y = rng.uniform(0, 600, size=2)
            w, h = rng.uniform(0, 200, size=2)
            box = Box(float(x), float(y), float(w), float(h))
            for dest in dests:
                for letterbox in (False, True):
                    for flip_y in (False, True):
                        mapped = map_box(box, (640, 640), dest, letterbox=letterbox, flip_y=flip_y)
                        back = unmap_box(mapped, (640, 640), dest, letterbox=letterbox, flip_y=flip_y)
                        _assert_box_close(self, back, box)

    def test_mapper_object(self) -> None:
        mapper = CoordinateMapper(model_size=(640, 640), dest_size=(1280, 720), letterbox=True)
        box = Box(100, 200, 50, 60)
        _assert_box_close(self, mapper.unmap(mapper.map(box)), box)

    def test_invalid_sizes(self) -> None:
        with self.assertRaises(InvalidConfiguration):
            map_box(Box(0, 0, 1, 1), (0, 640), (100, 100))
        with self.assertRaises(InvalidConfiguration):
            CoordinateMapper(model_size=(640, 640), dest_size=(100, -1))


if __name__ == "__main__":
    unittest.main()
