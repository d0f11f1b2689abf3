"""Lambertian (ideal diffuse) material.

The scattered direction is the surface normal plus a random unit vector,
which approximates a cosine-weighted distribution around the normal. The
attenuation is always the albedo and the material never absorbs a path.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu, default_fp=ti.f64, fast_math=False)
    >>> from src.rtweekend.materials.lambertian import add_lambertian_material
    >>> add_lambertian_material((0.5, 0.5, 0.5))
    0
    >>> # Within a Taichi kernel:
    >>> # direction, attenuation, did_scatter = scatter_lambertian(stream, albedo, normal)
"""

import taichi as ti

from ..core.ray import as_vector, near_zero, random_unit_vector, vec3


@ti.func
def scatter_lambertian(stream: ti.i32, albedo: vec3, normal: vec3):
    """Scatter a ray off a diffuse surface.

    Args:
        stream: The calling worker's random stream.
        albedo: The diffuse reflectance color.
        normal: The unit normal at the hit point, facing the incoming ray.

    Returns:
        A tuple of (scattered_direction, attenuation, did_scatter) where:
        - scattered_direction: normal + random unit vector, or the bare
          normal when that sum is numerically zero. Not normalized.
        - attenuation: The albedo.
        - did_scatter: Always 1.
    """
    scattered_direction = normal + random_unit_vector(stream)

    # Catch the degenerate case where the sample cancels the normal
    if near_zero(scattered_direction):
        scattered_direction = normal

    did_scatter = 1
    return scattered_direction, albedo, did_scatter


# =============================================================================
# Material Field Storage
# =============================================================================

# Maximum number of Lambertian materials in the world
MAX_LAMBERTIAN_MATERIALS = 1024

lambertian_albedos = ti.Vector.field(3, dtype=ti.f64, shape=MAX_LAMBERTIAN_MATERIALS)
num_lambertian_materials = ti.field(dtype=ti.i32, shape=())


def clear_lambertian_materials() -> None:
    """Clear all Lambertian materials."""
    num_lambertian_materials[None] = 0


def add_lambertian_material(albedo) -> int:
    """Add a Lambertian material to the registry.

    Args:
        albedo: The diffuse reflectance as an (R, G, B) sequence, each
            component in [0, 1].

    Returns:
        The index of the added material.

    Raises:
        RuntimeError: If the maximum number of materials is exceeded.
        ValueError: If any albedo component is outside [0, 1].
    """
    albedo = as_vector(albedo)
    for i, component in enumerate(albedo):
        if not 0.0 <= component <= 1.0:
            raise ValueError(f"Albedo component {i} = {component} is outside [0, 1]")

    idx = num_lambertian_materials[None]
    if idx >= MAX_LAMBERTIAN_MATERIALS:
        raise RuntimeError(
            f"Maximum number of Lambertian materials ({MAX_LAMBERTIAN_MATERIALS}) exceeded"
        )

    lambertian_albedos[idx] = albedo
    num_lambertian_materials[None] = idx + 1
    return idx


def get_lambertian_material_count() -> int:
    """Get the number of Lambertian materials in the registry."""
    return int(num_lambertian_materials[None])


@ti.func
def get_lambertian_albedo(material_idx: ti.i32) -> vec3:
    return lambertian_albedos[material_idx]


@ti.func
def scatter_lambertian_by_id(stream: ti.i32, material_idx: ti.i32, normal: vec3):
    """Look up a registered Lambertian material and scatter off it.

    Returns:
        A tuple of (scattered_direction, attenuation, did_scatter).
    """
    return scatter_lambertian(stream, get_lambertian_albedo(material_idx), normal)
