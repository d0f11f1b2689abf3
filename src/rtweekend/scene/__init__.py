"""Scene module: world construction, intersection and ready-made scenes.

Components:
    intersection: Sphere storage in Taichi fields and the nearest-hit scan
    world: The World class mapping material ids to material registries
    weekend: Scene builders (random, pastel, moon, red_blue, normal, perf)
        and the camera they are viewed through
"""

from .intersection import (
    MAX_SPHERES,
    add_sphere,
    clear_scene,
    get_sphere_count,
    hit_world,
)
from .weekend import (
    SCENES,
    build_scene,
    final_camera,
    moon_scene,
    normal_scene,
    pastel_scene,
    perf_scene,
    random_scene,
    red_blue_scene,
)
from .world import (
    MAX_MATERIALS,
    MaterialInfo,
    MaterialType,
    SphereInfo,
    World,
    get_material_type,
    get_material_type_index,
)

__all__ = [
    # Intersection
    "MAX_SPHERES",
    "add_sphere",
    "clear_scene",
    "get_sphere_count",
    "hit_world",
    # World
    "World",
    "MaterialType",
    "MaterialInfo",
    "SphereInfo",
    "MAX_MATERIALS",
    "get_material_type",
    "get_material_type_index",
    # Scene builders
    "SCENES",
    "build_scene",
    "final_camera",
    "random_scene",
    "pastel_scene",
    "moon_scene",
    "red_blue_scene",
    "normal_scene",
    "perf_scene",
]
