"""Pytest configuration for path tracer tests.

This module provides shared fixtures for all test modules, including
Taichi initialization which must happen once per session.
"""

import pytest
import taichi as ti


@pytest.fixture(scope="session", autouse=True)
def init_taichi_session():
    """Initialize Taichi once for the entire test session.

    Using session scope prevents multiple ti.init() calls which can cause
    segmentation faults due to Taichi runtime conflicts. Double precision
    matches what the renderer runs with.
    """
    ti.init(arch=ti.cpu, default_fp=ti.f64, fast_math=False)
    yield


@pytest.fixture(autouse=True)
def clear_all_state():
    """Reset scene, material, camera, stream and render target state.

    This ensures tests are isolated from each other.
    """
    # Import here so the modules' fields are declared after ti.init
    from src.rtweekend.camera.thin_lens import clear_camera
    from src.rtweekend.core.integrator import release_render_target
    from src.rtweekend.core.sampler import release_random_streams
    from src.rtweekend.scene import world as world_module

    def _clear_all():
        world_module._clear_fields()
        # No World owns the emptied fields
        world_module._live_world_id = 0
        clear_camera()
        release_random_streams()
        release_render_target()

    _clear_all()

    yield

    _clear_all()


@pytest.fixture
def fast_streams():
    """Set up seeded FAST streams; returns the setup function for reseeding."""
    from src.rtweekend.core.sampler import RandomBackend, setup_random_streams

    def _setup(num_streams: int = 1, seed: int = 1):
        setup_random_streams(num_streams, RandomBackend.FAST, seed)

    _setup()
    return _setup
