"""World-level ray intersection over a flat list of spheres.

Spheres live in Taichi fields (structure of arrays) so every worker reads
the same storage without locks. The host fills the fields before rendering
and nothing writes to them while a render is running.

The query is a linear scan that keeps the nearest hit. When two spheres are
hit at exactly the same t, the one added first wins.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu, default_fp=ti.f64, fast_math=False)
    >>> from src.rtweekend.scene.intersection import add_sphere, clear_scene
    >>> clear_scene()
    >>> add_sphere((0.0, 0.0, -1.0), 0.5, material_id=0)
    0
    >>> # Use hit_world within a Taichi kernel
"""

import taichi as ti

from ..core.ray import as_vector, vec3
from ..geometry.sphere import HitRecord, Sphere, hit_sphere, miss_record

# Maximum number of spheres in the world
MAX_SPHERES = 1024

# Sphere storage: Structure of Arrays layout
sphere_centers = ti.Vector.field(3, dtype=ti.f64, shape=MAX_SPHERES)
sphere_radii = ti.field(dtype=ti.f64, shape=MAX_SPHERES)
sphere_material_ids = ti.field(dtype=ti.i32, shape=MAX_SPHERES)
num_spheres = ti.field(dtype=ti.i32, shape=())


def clear_scene() -> None:
    """Remove all spheres.

    Only the count is reset; stale entries are overwritten by later adds.
    """
    num_spheres[None] = 0


def add_sphere(center, radius: float, material_id: int = 0) -> int:
    """Append a sphere to the world.

    Args:
        center: The center point, any 3-element sequence or Taichi vector.
        radius: The radius. Negative values model a hollow shell.
        material_id: Global material ID of the sphere's surface.

    Returns:
        The index of the added sphere.

    Raises:
        RuntimeError: If the maximum number of spheres is exceeded.
    """
    idx = num_spheres[None]
    if idx >= MAX_SPHERES:
        raise RuntimeError(f"Maximum number of spheres ({MAX_SPHERES}) exceeded")
    sphere_centers[idx] = as_vector(center)
    sphere_radii[idx] = float(radius)
    sphere_material_ids[idx] = material_id
    num_spheres[None] = idx + 1
    return idx


def get_sphere_count() -> int:
    """Get the number of spheres in the world."""
    return int(num_spheres[None])


@ti.func
def get_sphere(idx: ti.i32) -> Sphere:
    return Sphere(center=sphere_centers[idx], radius=sphere_radii[idx])


@ti.func
def hit_world(
    ray_origin: vec3,
    ray_direction: vec3,
    t_min: ti.f64,
    t_max: ti.f64,
) -> HitRecord:
    """Find the nearest sphere hit by a ray within [t_min, t_max].

    Args:
        ray_origin: The starting point of the ray.
        ray_direction: The direction of the ray.
        t_min: Smallest accepted t.
        t_max: Largest accepted t.

    Returns:
        The closest HitRecord with its material_id filled in, or a miss
        record (hit == 0, t == -1) if nothing was hit.
    """
    closest_t = t_max
    result = miss_record()

    for i in range(num_spheres[None]):
        rec = hit_sphere(ray_origin, ray_direction, get_sphere(i), t_min, closest_t)
        # Strictly closer only: on equal t the earlier sphere stays
        if rec.hit == 1 and (result.hit == 0 or rec.t < closest_t):
            closest_t = rec.t
            result = rec
            result.material_id = sphere_material_ids[i]

    return result
