import unittest
import numpy as np
from grainpy.domain.errors import InvalidInputError
from grainpy.domain.models import FilmType, GrainSettings
from grainpy.features.color.logic import srgb_to_linear, get_luminance
from grainpy.features.generation.logic import GrainGenerator
from grainpy.kernel.random import SeededRandom
from grainpy.services.rendering.engine import GrainEngine, coerce_raster


def _solid(width, height, value, alpha=255):
    buf = np.full((height, width, 4), value, dtype=np.uint8)
    buf[..., 3] = alpha
    return buf


def _mean_linear_lightness(rgba):
    lin = srgb_to_linear(rgba[..., :3].astype(np.float64) / 255.0)
    return float(np.mean(get_luminance(lin)))


class TestGrainEngine(unittest.TestCase):
    def _settings(self, **kwargs):
        base = {"iso": 400.0, "film_type": FilmType.KODAK, "seed": 1}
        base.update(kwargs)
        return GrainSettings(**base)

    def test_mid_gray_scenario(self):
        """100x100 gray 128 keeps size and opacity and stays near its lightness."""
        src = _solid(100, 100, 128, alpha=90)
        result = GrainEngine(self._settings()).process(src, 100, 100)

        self.assertEqual(result.buffer.shape, (100 * 100 * 4,))
        self.assertEqual(result.buffer.dtype, np.uint8)
        img = result.image
        self.assertTrue(np.all(img[..., 3] == 255))
        self.assertTrue(np.any(img[..., :3] != 128))

        ref = _mean_linear_lightness(src)
        out = _mean_linear_lightness(img)
        self.assertLess(abs(out - ref) / ref, 0.05)
        self.assertLess(abs(float(img[..., 0].mean()) - 128.0), 30.0)

        self.assertGreater(result.metrics["grain_count"], 0)
        self.assertLessEqual(result.metrics["iterations"], 5)

    def test_single_pixel(self):
        result = GrainEngine(self._settings()).process(_solid(1, 1, 200), 1, 1)
        self.assertEqual(len(result.buffer), 4)
        self.assertEqual(result.buffer[3], 255)
        self.assertEqual(result.metrics["grain_count"], 1)

    def test_black_stays_black(self):
        result = GrainEngine(self._settings()).process(_solid(60, 40, 0), 60, 40)
        self.assertLessEqual(int(result.image[..., :3].max()), 2)

    def test_deep_shadow_keeps_its_lightness(self):
        """Gray 30 develops nothing at the initial factor; output must not go black."""
        src = _solid(80, 80, 30)
        result = GrainEngine(self._settings(film_type=FilmType.FUJI)).process(src, 80, 80)

        self.assertGreaterEqual(result.metrics["iterations"], 2)
        self.assertGreater(float(result.image[..., 0].mean()), 10.0)
        ref = _mean_linear_lightness(src)
        out = _mean_linear_lightness(result.image)
        self.assertLess(abs(out - ref) / ref, 0.3)

    def test_seeds_change_grain_not_lightness(self):
        src = _solid(80, 80, 128)
        a = GrainEngine(self._settings(seed=1)).process(src, 80, 80)
        b = GrainEngine(self._settings(seed=2)).process(src, 80, 80)
        self.assertFalse(np.array_equal(a.buffer, b.buffer))

        la = _mean_linear_lightness(a.image)
        lb = _mean_linear_lightness(b.image)
        self.assertLess(abs(la - lb) / la, 0.05)

    def test_same_seed_is_reproducible(self):
        src = _solid(50, 30, 100)
        a = GrainEngine(self._settings(seed=5)).process(src, 50, 30)
        b = GrainEngine(self._settings(seed=5)).process(src, 50, 30)
        np.testing.assert_array_equal(a.buffer, b.buffer)

    def test_injected_rng_wins_over_seed(self):
        src = _solid(40, 40, 128)
        a = GrainEngine(self._settings(seed=5), rng=SeededRandom(8)).process(src, 40, 40)
        b = GrainEngine(self._settings(seed=8)).process(src, 40, 40)
        np.testing.assert_array_equal(a.buffer, b.buffer)

    def test_accepts_flat_bytes(self):
        src = _solid(20, 10, 128)
        result = GrainEngine(self._settings()).process(src.tobytes(), 20, 10)
        self.assertEqual(result.image.shape, (10, 20, 4))

    def test_progress_checkpoints(self):
        events = []
        settings = self._settings(max_iterations=3)
        GrainEngine(settings, progress=lambda s, p: events.append((s, p))).process(
            _solid(30, 30, 128), 30, 30
        )
        stages = [s for s, _ in events]
        for stage in ("generation", "indexing", "sampling", "development", "compositing"):
            self.assertIn(stage, stages)
        self.assertNotIn("debug", stages)
        self.assertEqual(events[-1], ("complete", 100))
        percents = [p for _, p in events]
        self.assertEqual(percents, sorted(percents))
        dev = [p for s, p in events if s == "development"]
        self.assertTrue(all(20 <= p <= 80 for p in dev))

    def test_broken_progress_callback_is_ignored(self):
        def explode(stage, percent):
            raise RuntimeError("listener went away")

        result = GrainEngine(self._settings(), progress=explode).process(
            _solid(10, 10, 128), 10, 10
        )
        self.assertEqual(len(result.buffer), 400)

    def test_debug_overlay_only_adds_markers(self):
        src = _solid(60, 60, 128)
        plain = GrainEngine(self._settings(seed=3)).process(src, 60, 60).image
        events = []
        debug = (
            GrainEngine(
                self._settings(seed=3, debug_grain_centers=True),
                progress=lambda s, p: events.append(s),
            )
            .process(src, 60, 60)
            .image
        )
        self.assertIn("debug", events)

        grains = GrainGenerator(
            60, 60, self._settings(seed=3), SeededRandom(3)
        ).generate_grain_structure()
        x = int(np.floor(grains.x[0] + 0.5))
        y = int(np.floor(grains.y[0] + 0.5))
        if x < 60 and y < 60:
            np.testing.assert_array_equal(debug[y, x], [255, 0, 255, 255])

        magenta = np.all(debug == np.array([255, 0, 255, 255], dtype=np.uint8), axis=-1)
        self.assertTrue(magenta.any())
        np.testing.assert_array_equal(debug[~magenta], plain[~magenta])


class TestInputValidation(unittest.TestCase):
    def test_bad_dimensions(self):
        for w, h in ((0, 10), (10, -1), (2.5, 4), (True, 4)):
            with self.assertRaises(InvalidInputError):
                coerce_raster(np.zeros(160, dtype=np.uint8), w, h)

    def test_size_mismatch(self):
        with self.assertRaises(InvalidInputError):
            coerce_raster(np.zeros(10, dtype=np.uint8), 2, 2)

    def test_wrong_dtype(self):
        with self.assertRaises(InvalidInputError):
            coerce_raster(np.zeros(16, dtype=np.float32), 2, 2)

    def test_wrong_type(self):
        with self.assertRaises(InvalidInputError):
            coerce_raster([0] * 16, 2, 2)

    def test_shapes(self):
        flat = coerce_raster(bytes(range(16)), 2, 2)
        self.assertEqual(flat.shape, (2, 2, 4))
        self.assertEqual(flat[0, 1, 0], 4)
