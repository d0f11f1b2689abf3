"""Metal (specular reflective) material with optional fuzz.

The incoming direction is normalized and mirrored about the normal:

    R = I - 2(I . N)N

then perturbed by ``fuzz`` times a random point in the unit sphere. A
perturbed direction that points into the surface is absorbed.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu, default_fp=ti.f64, fast_math=False)
    >>> from src.rtweekend.materials.metal import add_metal_material
    >>> add_metal_material((0.7, 0.6, 0.5), fuzz=0.0)
    0
    >>> # Within a Taichi kernel:
    >>> # direction, attenuation, did_scatter = scatter_metal(
    >>> #     stream, albedo, fuzz, incident_dir, normal
    >>> # )
"""

import logging

import taichi as ti
import taichi.math as tm

from ..core.ray import as_vector, normalize, random_in_unit_sphere, reflect, vec3

logger = logging.getLogger(__name__)

# Fuzz values above this are clamped on registration
MAX_FUZZ = 1.0


@ti.func
def scatter_metal(
    stream: ti.i32,
    albedo: vec3,
    fuzz: ti.f64,
    incident_direction: vec3,
    normal: vec3,
):
    """Scatter a ray off a metal surface.

    Args:
        stream: The calling worker's random stream.
        albedo: The reflective tint.
        fuzz: Perturbation radius in [0, 1]. 0 is a perfect mirror.
        incident_direction: The incoming ray direction (any length).
        normal: The unit normal at the hit point, facing the incoming ray.

    Returns:
        A tuple of (scattered_direction, attenuation, did_scatter) where:
        - scattered_direction: The fuzzed reflection. Not normalized.
        - attenuation: The albedo.
        - did_scatter: 1 if the direction leaves the surface, 0 if absorbed.
    """
    reflected = reflect(normalize(incident_direction), normal)
    scattered_direction = reflected + fuzz * random_in_unit_sphere(stream)

    did_scatter = 0
    if tm.dot(scattered_direction, normal) > 0.0:
        did_scatter = 1

    return scattered_direction, albedo, did_scatter


# =============================================================================
# Material Field Storage
# =============================================================================

# Maximum number of metal materials in the world
MAX_METAL_MATERIALS = 1024

metal_albedos = ti.Vector.field(3, dtype=ti.f64, shape=MAX_METAL_MATERIALS)
metal_fuzz = ti.field(dtype=ti.f64, shape=MAX_METAL_MATERIALS)
num_metal_materials = ti.field(dtype=ti.i32, shape=())


def clear_metal_materials() -> None:
    """Clear all metal materials."""
    num_metal_materials[None] = 0


def add_metal_material(albedo, fuzz: float = 0.0) -> int:
    """Add a metal material to the registry.

    Args:
        albedo: The reflective tint as an (R, G, B) sequence, each
            component in [0, 1].
        fuzz: Surface fuzziness. Values above 1 are clamped to 1.

    Returns:
        The index of the added material.

    Raises:
        RuntimeError: If the maximum number of materials is exceeded.
        ValueError: If any albedo component is outside [0, 1] or fuzz is
            negative.
    """
    albedo = as_vector(albedo)
    for i, component in enumerate(albedo):
        if not 0.0 <= component <= 1.0:
            raise ValueError(f"Albedo component {i} = {component} is outside [0, 1]")
    if fuzz < 0.0:
        raise ValueError(f"Fuzz = {fuzz} must be non-negative")
    if fuzz > MAX_FUZZ:
        logger.debug("Clamping metal fuzz %s to %s", fuzz, MAX_FUZZ)
        fuzz = MAX_FUZZ

    idx = num_metal_materials[None]
    if idx >= MAX_METAL_MATERIALS:
        raise RuntimeError(f"Maximum number of metal materials ({MAX_METAL_MATERIALS}) exceeded")

    metal_albedos[idx] = albedo
    metal_fuzz[idx] = float(fuzz)
    num_metal_materials[None] = idx + 1
    return idx


def get_metal_material_count() -> int:
    """Get the number of metal materials in the registry."""
    return int(num_metal_materials[None])


def get_metal_fuzz(material_idx: int) -> float:
    """Get the stored (clamped) fuzz of a metal material from the host."""
    return float(metal_fuzz[material_idx])


@ti.func
def scatter_metal_by_id(
    stream: ti.i32,
    material_idx: ti.i32,
    incident_direction: vec3,
    normal: vec3,
):
    """Look up a registered metal material and scatter off it.

    Returns:
        A tuple of (scattered_direction, attenuation, did_scatter).
    """
    return scatter_metal(
        stream,
        metal_albedos[material_idx],
        metal_fuzz[material_idx],
        incident_direction,
        normal,
    )
