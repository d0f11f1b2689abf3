"""Dielectric (clear glass) material.

Key physics:
    - Snell's law for refraction: n1 * sin(theta1) = n2 * sin(theta2)
    - Schlick's approximation for Fresnel reflectance
    - Total internal reflection when the ratio times sin(theta) exceeds 1

A ray hitting the front face enters the medium (ratio 1/index); a ray hitting
the back face leaves it (ratio index). The medium is colorless, so the
attenuation is always white and the material never absorbs.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu, default_fp=ti.f64, fast_math=False)
    >>> from src.rtweekend.materials.dielectric import add_dielectric_material
    >>> add_dielectric_material(1.5)
    0
    >>> # Within a Taichi kernel:
    >>> # direction, attenuation, did_scatter = scatter_dielectric(
    >>> #     stream, ior, incident_dir, normal, front_face
    >>> # )
"""

import taichi as ti
import taichi.math as tm

from ..core.ray import normalize, reflect, refract, schlick_fresnel, vec3
from ..core.sampler import random_double


@ti.func
def refraction_ratio(ior: ti.f64, front_face: ti.i32) -> ti.f64:
    ratio = ior
    if front_face == 1:
        ratio = 1.0 / ior
    return ratio


@ti.func
def will_reflect(ior: ti.f64, incident_direction: vec3, normal: vec3, front_face: ti.i32) -> ti.i32:
    """Return 1 if the ray is totally internally reflected."""
    ratio = refraction_ratio(ior, front_face)
    cos_theta = ti.min(-tm.dot(normalize(incident_direction), normal), 1.0)
    sin_theta = ti.sqrt(1.0 - cos_theta * cos_theta)
    result = 0
    if ratio * sin_theta > 1.0:
        result = 1
    return result


@ti.func
def scatter_dielectric(
    stream: ti.i32,
    ior: ti.f64,
    incident_direction: vec3,
    normal: vec3,
    front_face: ti.i32,
):
    """Reflect or refract a ray at a dielectric surface.

    Total internal reflection always reflects. Otherwise the Schlick
    reflectance is compared against a fresh draw from the stream: the ray
    reflects when the reflectance is greater, else it refracts. No draw is
    taken when total internal reflection already decided the outcome.

    Args:
        stream: The calling worker's random stream.
        ior: Index of refraction of the material.
        incident_direction: The incoming ray direction (any length).
        normal: The unit normal at the hit point, facing the incoming ray.
        front_face: 1 if the ray arrives from outside the medium.

    Returns:
        A tuple of (scattered_direction, attenuation, did_scatter) where:
        - scattered_direction: The reflected or refracted direction.
        - attenuation: White.
        - did_scatter: Always 1.
    """
    ratio = refraction_ratio(ior, front_face)
    unit_direction = normalize(incident_direction)
    cos_theta = ti.min(tm.dot(-unit_direction, normal), 1.0)

    do_reflect = 0
    if will_reflect(ior, unit_direction, normal, front_face) == 1:
        do_reflect = 1
    elif schlick_fresnel(cos_theta, ratio) > random_double(stream):
        do_reflect = 1

    scattered_direction = vec3(0.0, 0.0, 0.0)
    if do_reflect:
        scattered_direction = reflect(unit_direction, normal)
    else:
        scattered_direction = refract(unit_direction, normal, ratio)

    attenuation = vec3(1.0, 1.0, 1.0)
    did_scatter = 1
    return scattered_direction, attenuation, did_scatter


# =============================================================================
# Material Field Storage
# =============================================================================

# Maximum number of dielectric materials in the world
MAX_DIELECTRIC_MATERIALS = 1024

dielectric_iors = ti.field(dtype=ti.f64, shape=MAX_DIELECTRIC_MATERIALS)
num_dielectric_materials = ti.field(dtype=ti.i32, shape=())


def clear_dielectric_materials() -> None:
    """Clear all dielectric materials."""
    num_dielectric_materials[None] = 0


def add_dielectric_material(ior: float = 1.5) -> int:
    """Add a dielectric material to the registry.

    Args:
        ior: Index of refraction. Common values:
            - Water: 1.33
            - Glass: 1.5
            - Diamond: 2.4

    Returns:
        The index of the added material.

    Raises:
        RuntimeError: If the maximum number of materials is exceeded.
        ValueError: If the index of refraction is not positive.
    """
    if not ior > 0.0:
        raise ValueError(f"Index of refraction = {ior} must be positive")

    idx = num_dielectric_materials[None]
    if idx >= MAX_DIELECTRIC_MATERIALS:
        raise RuntimeError(
            f"Maximum number of dielectric materials ({MAX_DIELECTRIC_MATERIALS}) exceeded"
        )

    dielectric_iors[idx] = float(ior)
    num_dielectric_materials[None] = idx + 1
    return idx


def get_dielectric_material_count() -> int:
    """Get the number of dielectric materials in the registry."""
    return int(num_dielectric_materials[None])


@ti.func
def get_dielectric_ior(material_idx: ti.i32) -> ti.f64:
    return dielectric_iors[material_idx]


@ti.func
def scatter_dielectric_by_id(
    stream: ti.i32,
    material_idx: ti.i32,
    incident_direction: vec3,
    normal: vec3,
    front_face: ti.i32,
):
    """Look up a registered dielectric material and scatter off it.

    Returns:
        A tuple of (scattered_direction, attenuation, did_scatter).
    """
    return scatter_dielectric(
        stream, get_dielectric_ior(material_idx), incident_direction, normal, front_face
    )
