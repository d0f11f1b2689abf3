"""Ready-made scenes and the camera they are usually viewed through.

Most scenes scatter small spheres over a 22 x 22 grid around a huge ground
sphere and place three large feature spheres (glass, diffuse, metal) in the
middle. The random ones draw from a host-side RandomSource; the order of the
draws is fixed, so a given stream seed always builds the same world.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu, default_fp=ti.f64, fast_math=False)
    >>> from src.rtweekend.core.sampler import RandomSource, setup_random_streams
    >>> from src.rtweekend.scene.weekend import final_camera, pastel_scene
    >>> setup_random_streams(1, seed=1)
    >>> world = pastel_scene(RandomSource(0))
    >>> camera = final_camera(3 / 2)
"""

import logging
import math
from collections.abc import Callable

from ..camera.thin_lens import ThinLensCamera
from ..core.sampler import RandomSource
from .world import World

logger = logging.getLogger(__name__)

# Grid of small spheres: a, b in [-11, 11)
GRID_RANGE = range(-11, 11)
SMALL_RADIUS = 0.2
GLASS_IOR = 1.5


def _random_color(rand: RandomSource) -> tuple[float, float, float]:
    return (rand.random_double(), rand.random_double(), rand.random_double())


def _random_color_range(rand: RandomSource, lo: float, hi: float) -> tuple[float, float, float]:
    return (
        rand.random_double_range(lo, hi),
        rand.random_double_range(lo, hi),
        rand.random_double_range(lo, hi),
    )


def _truncated_draw(rand: RandomSource) -> float:
    # A draw in [0, 1) truncated to an integer: always 0, but it still
    # advances the stream
    return float(int(rand.random_double()))


def _add_small_spheres(
    world: World,
    draw: Callable[[], float],
    diffuse_albedo: Callable[[], tuple[float, float, float]],
    metal_params: Callable[[], tuple[tuple[float, float, float], float]],
) -> None:
    """Fill the grid, choosing diffuse (80%), metal (15%) or glass (5%)."""
    for a in GRID_RANGE:
        for b in GRID_RANGE:
            choose_mat = draw()
            center = (a + 0.9 * draw(), SMALL_RADIUS, b + 0.9 * draw())
            if choose_mat < 0.8:
                world.add_lambertian_sphere(center, SMALL_RADIUS, diffuse_albedo())
            elif choose_mat < 0.95:
                albedo, fuzz = metal_params()
                world.add_metal_sphere(center, SMALL_RADIUS, albedo, fuzz)
            else:
                world.add_dielectric_sphere(center, SMALL_RADIUS, GLASS_IOR)


def _add_feature_spheres(world: World, diffuse_albedo, metal_albedo) -> None:
    world.add_dielectric_sphere((0.0, 1.0, 0.0), 1.0, GLASS_IOR)
    world.add_lambertian_sphere((-4.0, 1.0, 0.0), 1.0, diffuse_albedo)
    world.add_metal_sphere((4.0, 1.0, 0.0), 1.0, metal_albedo, 0.0)


def random_scene(rand: RandomSource) -> World:
    """The cover scene: random diffuse, metal and glass spheres on grey ground."""
    world = World()
    world.add_lambertian_sphere((0.0, -1000.0, 0.0), 1000.0, (0.5, 0.5, 0.5))

    def diffuse_albedo():
        first = _random_color(rand)
        second = _random_color(rand)
        return tuple(x * y for x, y in zip(first, second))

    def metal_params():
        albedo = _random_color_range(rand, 0.5, 1.0)
        return albedo, rand.random_double_range(0.0, 0.5)

    _add_small_spheres(world, rand.random_double, diffuse_albedo, metal_params)
    _add_feature_spheres(world, (0.4, 0.2, 0.1), (0.7, 0.6, 0.5))
    logger.debug("Built random scene with %d spheres", len(world))
    return world


def pastel_scene(rand: RandomSource) -> World:
    """The cover scene in near-white pastel tones."""
    world = World()
    world.add_lambertian_sphere((0.0, -1000.0, 0.0), 1000.0, (0.95, 0.95, 0.8))

    def metal_params():
        albedo = _random_color_range(rand, 0.9, 1.0)
        return albedo, rand.random_double_range(0.0, 0.5)

    _add_small_spheres(
        world,
        rand.random_double,
        lambda: _random_color_range(rand, 0.9, 1.0),
        metal_params,
    )
    _add_feature_spheres(world, (1.0, 0.9, 0.8), (0.6, 0.7, 0.8))
    logger.debug("Built pastel scene with %d spheres", len(world))
    return world


def moon_scene(rand: RandomSource) -> World:
    """Green and blue small spheres plus four giant 'moons' around the ground."""
    world = World()
    world.add_lambertian_sphere((0.0, -1000.0, 0.0), 1000.0, (0.95, 0.95, 0.8))

    def diffuse_albedo():
        red = _truncated_draw(rand)
        green = rand.random_double_range(0.9, 1.0)
        blue = _truncated_draw(rand)
        return (red, green, blue)

    def metal_params():
        red = _truncated_draw(rand)
        green = _truncated_draw(rand)
        blue = rand.random_double_range(0.9, 1.0)
        return (red, green, blue), rand.random_double_range(0.0, 0.5)

    _add_small_spheres(world, rand.random_double, diffuse_albedo, metal_params)
    _add_feature_spheres(world, (1.0, 0.9, 0.8), (0.6, 0.7, 0.8))

    world.add_lambertian_sphere((1000.0, 1000.0, -1700.0), 700.0, (0.4, 0.0, 0.0))
    world.add_lambertian_sphere((1000.0, 0.0, 0.0), 700.0, (0.0, 0.3, 0.0))
    world.add_lambertian_sphere((1000.0, 1300.0, 2000.0), 700.0, (0.0, 0.0, 0.5))
    world.add_lambertian_sphere((-1000.0, 0.0, 0.0), 700.0, (0.1, 0.2, 0.3))
    logger.debug("Built moon scene with %d spheres", len(world))
    return world


def red_blue_scene() -> World:
    """Two touching spheres, red and blue, for checking the field of view."""
    world = World()
    radius = math.cos(math.pi / 4.0)
    world.add_lambertian_sphere((-radius, 0.0, -1.0), radius, (1.0, 0.0, 0.0))
    world.add_lambertian_sphere((radius, 0.0, -1.0), radius, (0.0, 0.0, 1.0))
    return world


def normal_scene() -> World:
    """Ground, a diffuse center sphere, a hollow glass bubble and a gold mirror."""
    world = World()
    ground = world.add_lambertian_material((0.8, 0.8, 0.0))
    center = world.add_lambertian_material((0.1, 0.2, 0.5))
    glass = world.add_dielectric_material(GLASS_IOR)
    gold = world.add_metal_material((0.8, 0.6, 0.2), 0.0)

    world.add_sphere((0.0, -100.5, -1.0), 100.0, ground)
    world.add_sphere((0.0, 0.0, -1.0), 0.5, center)
    # Outer surface and inward-facing inner surface of the bubble
    world.add_sphere((-1.0, 0.0, -1.0), 0.5, glass)
    world.add_sphere((-1.0, 0.0, -1.0), -0.4, glass)
    world.add_sphere((1.0, 0.0, -1.0), 0.5, gold)
    return world


def _stepped_generator() -> Callable[[], float]:
    """Deterministic stand-in for a random source, cycling with period 100."""
    state = [0, 0, 0]

    def draw() -> float:
        state[0] = (state[0] + 1) % 100
        state[1] = (state[1] + 3) % 100
        state[2] = (state[2] + 7) % 100
        return (state[0] + state[1] + state[2]) / 300.0

    return draw


def perf_scene() -> World:
    """The cover scene layout built without any randomness, for benchmarking."""
    world = World()
    world.add_lambertian_sphere((0.0, -1000.0, 0.0), 1000.0, (0.5, 0.5, 0.5))
    draw = _stepped_generator()

    def diffuse_albedo():
        first = (draw(), draw(), draw())
        second = (draw(), draw(), draw())
        return tuple(x * y for x, y in zip(first, second))

    def metal_params():
        albedo = (0.5 + 0.5 * draw(), 0.5 + 0.5 * draw(), 0.5 + 0.5 * draw())
        return albedo, 0.5 * draw()

    _add_small_spheres(world, draw, diffuse_albedo, metal_params)
    _add_feature_spheres(world, (0.4, 0.2, 0.1), (0.7, 0.6, 0.5))
    return world


def final_camera(aspect_ratio: float) -> ThinLensCamera:
    """The camera of the cover image: from (13, 2, 3) toward the origin."""
    return ThinLensCamera(
        lookfrom=(13.0, 2.0, 3.0),
        lookat=(0.0, 0.0, 0.0),
        vup=(0.0, 1.0, 0.0),
        vfov=20.0,
        aspect_ratio=aspect_ratio,
        aperture=0.0,
        focus_dist=1.0,
    )


# Scene builders by name. Builders that take a RandomSource are marked True.
SCENES: dict[str, tuple[Callable[..., World], bool]] = {
    "random": (random_scene, True),
    "pastel": (pastel_scene, True),
    "moon": (moon_scene, True),
    "red_blue": (red_blue_scene, False),
    "normal": (normal_scene, False),
    "perf": (perf_scene, False),
}


def build_scene(name: str, rand: RandomSource | None = None) -> World:
    """Build a scene by name.

    Args:
        name: A key of SCENES.
        rand: Random source for the random scenes.

    Raises:
        ValueError: If the name is unknown, or a random scene gets no source.
    """
    if name not in SCENES:
        raise ValueError(f"Unknown scene {name!r}; choose from {', '.join(SCENES)}")
    builder, needs_random = SCENES[name]
    if not needs_random:
        return builder()
    if rand is None:
        raise ValueError(f"Scene {name!r} needs a random source")
    return builder(rand)
