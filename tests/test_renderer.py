"""Tests for the scanline render scheduler.

Tests cover:
- RenderParams validation and derived sizes
- ScanlineRenderer configuration
- End-to-end rendering of a small scene
- Parallel and sequential modes producing identical images
- Progress reporting and stream lifetime
- Recovery from exhausted random streams
- Rendering a World after another one replaced it in the fields
"""

import logging

import numpy as np
import pytest


def _small_sphere_scene():
    """A diffuse sphere in front of a camera at the origin."""
    from src.rtweekend.camera.thin_lens import ThinLensCamera
    from src.rtweekend.scene.world import World

    world = World()
    world.add_lambertian_sphere((0.0, 0.0, -1.0), 0.5, (0.5, 0.5, 0.5))
    camera = ThinLensCamera(
        lookfrom=(0.0, 0.0, 0.0),
        lookat=(0.0, 0.0, -1.0),
        vfov=90.0,
        aspect_ratio=1.0,
    )
    return world, camera


class TestRenderParams:
    """Tests for render configuration."""

    def test_defaults(self):
        from src.rtweekend.core.renderer import RenderParams

        params = RenderParams()
        assert params.image_width == 1200
        assert params.image_height == 800
        assert params.samples_per_px == 200
        assert params.max_depth == 50
        assert params.buffer_size == 3 * 1200 * 800

    def test_height_truncates(self):
        from src.rtweekend.core.renderer import RenderParams

        assert RenderParams(image_width=100, aspect_ratio=16 / 9).image_height == 56

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"image_width": 0},
            {"aspect_ratio": 0.0},
            {"aspect_ratio": -1.5},
            {"samples_per_px": 0},
            {"max_depth": -1},
            {"image_width": 1, "aspect_ratio": 2.0},
            {"image_width": 4096, "aspect_ratio": 4.0},
        ],
    )
    def test_invalid_values_raise(self, kwargs):
        from src.rtweekend.core.renderer import RenderParams

        with pytest.raises(ValueError):
            RenderParams(**kwargs)

    def test_zero_depth_is_allowed(self):
        from src.rtweekend.core.renderer import RenderParams

        assert RenderParams(max_depth=0).max_depth == 0


class TestRendererConfig:
    """Tests for ScanlineRenderer construction."""

    def test_invalid_mode_raises(self):
        from src.rtweekend.core.renderer import RenderParams, ScanlineRenderer

        with pytest.raises(ValueError, match="execution mode"):
            ScanlineRenderer(RenderParams(), mode="threads")

    @pytest.mark.parametrize("num_workers", [0, 17])
    def test_worker_count_bounds(self, num_workers):
        from src.rtweekend.core.renderer import RenderParams, ScanlineRenderer

        with pytest.raises(ValueError, match="num_workers"):
            ScanlineRenderer(RenderParams(), num_workers=num_workers)

    def test_default_worker_count(self):
        from src.rtweekend.core.renderer import ScanlineRenderer, RenderParams, default_worker_count
        from src.rtweekend.core.sampler import MAX_STREAMS

        assert 1 <= default_worker_count() <= MAX_STREAMS
        assert ScanlineRenderer(RenderParams()).num_workers == default_worker_count()

    def test_repr(self):
        from src.rtweekend.core.renderer import RenderParams, ScanlineRenderer

        renderer = ScanlineRenderer(RenderParams(image_width=30), mode="sequential", num_workers=2)
        assert "width=30" in repr(renderer)
        assert "sequential" in repr(renderer)
        assert "FAST" in repr(renderer)


class TestEndToEnd:
    """Tests rendering whole images."""

    def test_sphere_center_darker_than_sky(self):
        """Test a 1-bounce render shows a black sphere against the sky."""
        from src.rtweekend.core.renderer import RenderParams, ScanlineRenderer

        world, camera = _small_sphere_scene()
        params = RenderParams(image_width=11, aspect_ratio=1.0, samples_per_px=1, max_depth=1)
        renderer = ScanlineRenderer(params, num_workers=4)
        buffer = renderer.render(world, camera)

        assert buffer.shape == (params.buffer_size,)
        assert buffer.dtype == np.uint8
        image = buffer.reshape(11, 11, 3).astype(int)
        center = image[5, 5].sum()
        corner = image[0, 0].sum()
        assert center < corner
        assert tuple(image[5, 5]) == (0, 0, 0)

    def test_world_is_frozen_by_render(self):
        from src.rtweekend.core.renderer import RenderParams, ScanlineRenderer

        world, camera = _small_sphere_scene()
        renderer = ScanlineRenderer(RenderParams(image_width=4, aspect_ratio=1.0, samples_per_px=1))
        renderer.render(world, camera)
        assert world.frozen
        with pytest.raises(RuntimeError):
            world.add_lambertian_material((0.5, 0.5, 0.5))

    def test_parallel_matches_sequential(self):
        """Test both execution modes produce identical buffers for the same seed."""
        from src.rtweekend.core.renderer import RenderParams, ScanlineRenderer
        from src.rtweekend.scene.weekend import normal_scene
        from src.rtweekend.camera.thin_lens import ThinLensCamera

        params = RenderParams(image_width=24, aspect_ratio=1.5, samples_per_px=4, max_depth=10)
        camera = ThinLensCamera(
            lookfrom=(0.0, 0.0, 0.5),
            lookat=(0.0, 0.0, -1.0),
            vfov=90.0,
            aspect_ratio=1.5,
        )

        buffers = {}
        for mode in ("parallel", "sequential"):
            renderer = ScanlineRenderer(params, mode=mode, num_workers=4, seed=3)
            buffers[mode] = renderer.render(normal_scene(), camera)

        np.testing.assert_array_equal(buffers["parallel"], buffers["sequential"])

    def test_seed_changes_image(self):
        from src.rtweekend.core.renderer import RenderParams, ScanlineRenderer

        params = RenderParams(image_width=12, aspect_ratio=1.0, samples_per_px=2, max_depth=5)
        first = ScanlineRenderer(params, num_workers=2, seed=1).render(*_small_sphere_scene())
        again = ScanlineRenderer(params, num_workers=2, seed=1).render(*_small_sphere_scene())
        other = ScanlineRenderer(params, num_workers=2, seed=2).render(*_small_sphere_scene())

        np.testing.assert_array_equal(first, again)
        assert not np.array_equal(first, other)

    def test_crypto_backend_renders(self, monkeypatch):
        from src.rtweekend.core import renderer as renderer_module
        from src.rtweekend.core.renderer import RenderParams, ScanlineRenderer
        from src.rtweekend.core.sampler import RandomBackend

        blocks = []
        original_trace = renderer_module.trace_sample_block

        def recording_trace(first_row, num_workers, col_start, col_end, *args):
            blocks.append((first_row, col_start, col_end))
            original_trace(first_row, num_workers, col_start, col_end, *args)

        monkeypatch.setattr(renderer_module, "trace_sample_block", recording_trace)

        world, camera = _small_sphere_scene()
        params = RenderParams(image_width=9, aspect_ratio=1.0, samples_per_px=100, max_depth=1)
        renderer = ScanlineRenderer(params, num_workers=3, backend=RandomBackend.CRYPTO)
        image = renderer.render(world, camera).reshape(9, 9, 3)

        # 100 samples per pixel -> blocks of 2 columns, 3 passes
        assert blocks[:2] == [(0, 0, 2), (0, 2, 4)]
        assert blocks[4] == (0, 8, 9)
        assert len(blocks) == 15
        assert tuple(image[4, 4]) == (0, 0, 0)
        assert image[0, 0].sum() > 0

    def test_crypto_pixel_needing_more_than_one_buffer(self, monkeypatch):
        """Test a pixel whose samples outrun one stream buffer still renders."""
        from src.rtweekend.camera.thin_lens import ThinLensCamera
        from src.rtweekend.core import renderer as renderer_module
        from src.rtweekend.core.renderer import RenderParams, ScanlineRenderer
        from src.rtweekend.core.sampler import RandomBackend
        from src.rtweekend.scene.world import World

        launch_samples = []
        original_trace = renderer_module.trace_sample_block

        def recording_trace(first_row, num_workers, col_start, col_end, num_samples, *args):
            launch_samples.append(num_samples)
            original_trace(first_row, num_workers, col_start, col_end, num_samples, *args)

        monkeypatch.setattr(renderer_module, "trace_sample_block", recording_trace)

        # The camera sits inside a closed diffuse sphere: every path bounces
        # max_depth times, drawing several numbers per bounce
        world = World()
        world.add_lambertian_sphere((0.0, 0.0, 0.0), 10.0, (0.5, 0.5, 0.5))
        camera = ThinLensCamera(
            lookfrom=(0.0, 0.0, 0.0), lookat=(0.0, 0.0, -1.0), aspect_ratio=1.0
        )
        params = RenderParams(image_width=1, aspect_ratio=1.0, samples_per_px=500, max_depth=50)
        renderer = ScanlineRenderer(params, num_workers=1, backend=RandomBackend.CRYPTO)
        buffer = renderer.render(world, camera)

        # No path escapes, so the pixel is black
        assert tuple(buffer) == (0, 0, 0)
        assert len(launch_samples) >= 2
        assert max(launch_samples) <= 256
        assert sum(launch_samples) >= 500

class TestProgress:
    """Tests for progress reporting and stream lifetime."""

    def test_callback_counts_down_per_pass(self):
        from src.rtweekend.core.renderer import RenderParams, ScanlineRenderer

        world, camera = _small_sphere_scene()
        params = RenderParams(image_width=10, aspect_ratio=1.0, samples_per_px=1, max_depth=2)
        calls = []
        ScanlineRenderer(params, num_workers=4).render(
            world, camera, callback=lambda remaining, total: calls.append((remaining, total))
        )
        assert calls == [(6, 10), (2, 10), (0, 10)]

    def test_streams_released_after_render(self):
        from src.rtweekend.core.renderer import RenderParams, ScanlineRenderer
        from src.rtweekend.core.sampler import get_stream_count

        world, camera = _small_sphere_scene()
        params = RenderParams(image_width=4, aspect_ratio=1.0, samples_per_px=1)
        ScanlineRenderer(params, num_workers=2).render(world, camera)
        assert get_stream_count() == 0

    def test_progressive_closed_early_releases_streams(self):
        from src.rtweekend.core.renderer import RenderParams, ScanlineRenderer
        from src.rtweekend.core.sampler import get_stream_count

        world, camera = _small_sphere_scene()
        params = RenderParams(image_width=8, aspect_ratio=1.0, samples_per_px=1)
        renderer = ScanlineRenderer(params, num_workers=2)

        progress = renderer.render_progressive(world, camera)
        assert next(progress) == (6, 8)
        assert get_stream_count() == 2
        progress.close()
        assert get_stream_count() == 0
        # The rows rendered so far are kept
        assert renderer.get_buffer()[: 3 * 8 * 2].sum() > 0

    def test_aspect_mismatch_warns(self, caplog):
        from src.rtweekend.core.renderer import RenderParams, ScanlineRenderer

        world, camera = _small_sphere_scene()
        params = RenderParams(image_width=8, aspect_ratio=2.0, samples_per_px=1)
        with caplog.at_level(logging.WARNING, logger="src.rtweekend.core.renderer"):
            ScanlineRenderer(params, num_workers=1).render(world, camera)
        assert "aspect ratio" in caplog.text


class TestStreamExhaustion:
    """Tests for redoing work done with exhausted streams."""

    def _record_launches(self, monkeypatch, reports):
        from src.rtweekend.core import renderer as renderer_module

        reports = iter(reports)
        monkeypatch.setattr(
            renderer_module, "take_exhausted_streams", lambda: next(reports, [])
        )
        launches = []
        original_trace = renderer_module.trace_sample_block

        def recording_trace(first_row, num_workers, col_start, col_end, num_samples, *args):
            launches.append((first_row, col_start, col_end, num_samples))
            original_trace(first_row, num_workers, col_start, col_end, num_samples, *args)

        monkeypatch.setattr(renderer_module, "trace_sample_block", recording_trace)
        return launches

    def test_exhausted_block_is_redone_with_fewer_samples(self, monkeypatch):
        from src.rtweekend.core.renderer import RenderParams, ScanlineRenderer
        from src.rtweekend.core.sampler import RandomBackend

        launches = self._record_launches(monkeypatch, [[0]])

        world, camera = _small_sphere_scene()
        params = RenderParams(image_width=1, aspect_ratio=1.0, samples_per_px=300, max_depth=1)
        ScanlineRenderer(params, num_workers=1, backend=RandomBackend.CRYPTO).render(world, camera)
        # 256 samples ran dry, so the pixel restarts with 128 per launch
        assert launches == [(0, 0, 1, 256), (0, 0, 1, 128), (0, 0, 1, 128), (0, 0, 1, 44)]

    def test_single_sample_launch_gets_one_fresh_retry(self, monkeypatch):
        from src.rtweekend.core import renderer as renderer_module
        from src.rtweekend.core.renderer import RenderParams, ScanlineRenderer
        from src.rtweekend.core.sampler import RandomBackend

        monkeypatch.setattr(renderer_module, "CRYPTO_SAMPLES_PER_LAUNCH", 1)
        launches = self._record_launches(monkeypatch, [[0]])

        world, camera = _small_sphere_scene()
        params = RenderParams(image_width=1, aspect_ratio=1.0, samples_per_px=2, max_depth=1)
        ScanlineRenderer(params, num_workers=1, backend=RandomBackend.CRYPTO).render(world, camera)
        assert [n for *_, n in launches] == [1, 1, 1]

    def test_repeated_exhaustion_raises(self, monkeypatch):
        from src.rtweekend.core import renderer as renderer_module
        from src.rtweekend.core.renderer import RenderParams, ScanlineRenderer
        from src.rtweekend.core.sampler import RandomBackend, RandomSourceError, get_stream_count

        monkeypatch.setattr(renderer_module, "take_exhausted_streams", lambda: [0])

        world, camera = _small_sphere_scene()
        params = RenderParams(image_width=4, aspect_ratio=1.0, samples_per_px=4, max_depth=1)
        renderer = ScanlineRenderer(params, num_workers=2, backend=RandomBackend.CRYPTO)
        with pytest.raises(RandomSourceError, match="full random buffer"):
            renderer.render(world, camera)
        assert get_stream_count() == 0

    def test_fast_backend_never_checks_exhaustion(self, monkeypatch):
        from src.rtweekend.core import renderer as renderer_module
        from src.rtweekend.core.renderer import RenderParams, ScanlineRenderer

        monkeypatch.setattr(renderer_module, "take_exhausted_streams", lambda: [0])

        world, camera = _small_sphere_scene()
        params = RenderParams(image_width=4, aspect_ratio=1.0, samples_per_px=1, max_depth=1)
        image = ScanlineRenderer(params, num_workers=2).render(world, camera)
        assert image.sum() > 0


class TestWorldSnapshots:
    """Tests that a render always sees the world it was given."""

    def test_older_world_renders_after_newer_one_is_built(self):
        from src.rtweekend.core.renderer import RenderParams, ScanlineRenderer
        from src.rtweekend.scene.intersection import get_sphere_count
        from src.rtweekend.scene.world import World

        world, camera = _small_sphere_scene()
        params = RenderParams(image_width=5, aspect_ratio=1.0, samples_per_px=1, max_depth=1)
        first = ScanlineRenderer(params, num_workers=1).render(world, camera)

        other = World()
        other.add_metal_sphere((0.0, 0.0, -3.0), 0.25, (0.9, 0.9, 0.9))
        other.add_dielectric_sphere((1.0, 0.0, -3.0), 0.25)
        assert not world.live

        again = ScanlineRenderer(params, num_workers=1).render(world, camera)
        assert world.live
        assert get_sphere_count() == 1
        np.testing.assert_array_equal(first, again)
        assert tuple(again.reshape(5, 5, 3)[2, 2]) == (0, 0, 0)

    def test_editing_stale_world_reloads_it(self):
        from src.rtweekend.scene.world import MaterialType, World, material_types

        first = World()
        first.add_metal_material((0.5, 0.5, 0.5), 0.2)
        second = World()
        second.add_lambertian_material((0.1, 0.2, 0.3))

        material = first.add_dielectric_material(1.5)
        assert first.live and not second.live
        assert material == 1
        assert material_types[0] == int(MaterialType.METAL)
        assert material_types[1] == int(MaterialType.DIELECTRIC)
        assert first.get_material_count() == 2
        assert second.get_material_count() == 1

    def test_frozen_world_survives_new_world(self):
        from src.rtweekend.scene.world import World

        frozen = World()
        frozen.add_lambertian_sphere((0.0, 0.0, -1.0), 0.5, (0.5, 0.5, 0.5))
        frozen.freeze()
        World()
        assert len(frozen) == 1
        assert frozen.upload() is frozen
        assert frozen.live
