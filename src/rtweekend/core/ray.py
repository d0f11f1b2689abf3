"""Ray type, double-precision vector helpers and Monte Carlo sampling.

Vectors are plain Taichi 3-vectors of f64, so arithmetic operators return new
values and nothing here mutates its inputs. NaN and Inf are not trapped;
degenerate inputs propagate to the output stage, which clamps them away.

Sampling helpers take the index of the caller's random stream explicitly
instead of using Taichi's global generator, so a worker's results depend
only on its own stream.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu, default_fp=ti.f64, fast_math=False)
    >>> from src.rtweekend.core.ray import Ray, ray_at, vec3
    >>> ray = Ray(origin=vec3(0.0, 0.0, 0.0), direction=vec3(0.0, 0.0, -2.0))
    >>> point = ray_at(ray, 0.5)  # (0, 0, -1): t scales with direction length
"""

import taichi as ti
import taichi.math as tm

from .sampler import random_double, random_double_range

# Double-precision 3-vector. Declared explicitly rather than via tm.vec3,
# whose element type follows default_fp at import time.
vec3 = ti.types.vector(3, ti.f64)


def as_vector(value) -> list:
    """Convert a host-side 3-vector (tuple, list, numpy or Taichi) to floats.

    Raises:
        ValueError: If the value does not have exactly three components.
    """
    if hasattr(value, "to_numpy"):
        value = value.to_numpy()
    components = [float(c) for c in value]
    if len(components) != 3:
        raise ValueError(f"Expected 3 components, got {len(components)}")
    return components


@ti.dataclass
class Ray:
    """A ray with an origin point and direction vector.

    Attributes:
        origin: The starting point of the ray.
        direction: The direction of the ray. Not required to be unit length;
            t values are only meaningful for the ray they were computed on.
    """

    origin: vec3
    direction: vec3


@ti.func
def ray_at(ray: Ray, t: ti.f64) -> vec3:
    """Compute the point ``origin + t * direction``."""
    return ray.origin + t * ray.direction


@ti.func
def make_ray(origin: vec3, direction: vec3) -> Ray:
    """Create a ray inside a Taichi function or kernel."""
    return Ray(origin=origin, direction=direction)


# =============================================================================
# Vector Utility Functions
# =============================================================================


@ti.func
def length(v: vec3) -> ti.f64:
    return ti.sqrt(tm.dot(v, v))


@ti.func
def length_squared(v: vec3) -> ti.f64:
    return tm.dot(v, v)


@ti.func
def normalize(v: vec3) -> vec3:
    """Scale a vector to unit length.

    A zero vector yields NaN components; callers that can produce one
    guard with near_zero first.
    """
    return v / length(v)


@ti.func
def dot(a: vec3, b: vec3) -> ti.f64:
    return tm.dot(a, b)


@ti.func
def cross(a: vec3, b: vec3) -> vec3:
    return tm.cross(a, b)


@ti.func
def reflect(incident: vec3, normal: vec3) -> vec3:
    """Mirror a direction about a unit normal.

    Args:
        incident: The incoming direction (pointing toward the surface).
        normal: The unit surface normal.

    Returns:
        ``incident - 2 * dot(incident, normal) * normal``.
    """
    return incident - 2.0 * tm.dot(incident, normal) * normal


@ti.func
def refract(unit_incident: vec3, normal: vec3, etai_over_etat: ti.f64) -> vec3:
    """Bend a unit direction through a surface by Snell's law.

    The result is split into components perpendicular and parallel to the
    normal. Callers must rule out total internal reflection beforehand;
    this function does not check for it.

    Args:
        unit_incident: The incoming direction, unit length.
        normal: The unit normal on the incoming side of the surface.
        etai_over_etat: Ratio of the refractive indices (incident over
            transmitted).

    Returns:
        The refracted direction.
    """
    cos_theta = ti.min(tm.dot(-unit_incident, normal), 1.0)
    r_out_perp = etai_over_etat * (unit_incident + cos_theta * normal)
    r_out_parallel = -ti.sqrt(ti.abs(1.0 - length_squared(r_out_perp))) * normal
    return r_out_perp + r_out_parallel


@ti.func
def schlick_fresnel(cosine: ti.f64, ref_idx: ti.f64) -> ti.f64:
    """Approximate the Fresnel reflectance with Schlick's polynomial.

    Args:
        cosine: Cosine of the angle between the reversed incident direction
            and the normal.
        ref_idx: Ratio of refractive indices.

    Returns:
        ``r0 + (1 - r0) * (1 - cosine)^5`` with ``r0 = ((1 - ref_idx) / (1 + ref_idx))^2``.
    """
    r0 = (1.0 - ref_idx) / (1.0 + ref_idx)
    r0 = r0 * r0
    return r0 + (1.0 - r0) * ((1.0 - cosine) ** 5)


@ti.func
def near_zero(v: vec3) -> ti.i32:
    """Return 1 if every component has magnitude below 1e-8."""
    s = 1e-8
    return ti.abs(v.x) < s and ti.abs(v.y) < s and ti.abs(v.z) < s


# =============================================================================
# Random Sampling Utilities for Monte Carlo
# =============================================================================


@ti.func
def random_vec3(stream: ti.i32) -> vec3:
    """Draw a vector with each component uniform in [0, 1)."""
    x = random_double(stream)
    y = random_double(stream)
    z = random_double(stream)
    return vec3(x, y, z)


@ti.func
def random_vec3_range(stream: ti.i32, min_value: ti.f64, max_value: ti.f64) -> vec3:
    """Draw a vector with each component uniform in [min_value, max_value).

    Components are drawn in x, y, z order.
    """
    x = random_double_range(stream, min_value, max_value)
    y = random_double_range(stream, min_value, max_value)
    z = random_double_range(stream, min_value, max_value)
    return vec3(x, y, z)


@ti.func
def random_in_unit_sphere(stream: ti.i32) -> vec3:
    """Draw a point uniformly inside the unit sphere by rejection sampling.

    Candidates come from the cube [-1, 1)^3. The loop is bounded; with a
    rejection rate near 48% the cap is never reached in practice.

    Returns:
        A point with squared length < 1.
    """
    p = vec3(0.0, 0.0, 0.0)
    found = False
    for _ in range(100):
        if not found:
            p = random_vec3_range(stream, -1.0, 1.0)
            if length_squared(p) < 1.0:
                found = True
    return p


@ti.func
def random_unit_vector(stream: ti.i32) -> vec3:
    """Draw a random direction by normalizing a point in the unit sphere."""
    return normalize(random_in_unit_sphere(stream))


@ti.func
def random_in_unit_disk(stream: ti.i32) -> vec3:
    """Draw a point uniformly inside the unit disk in the xy-plane.

    Used for lens sampling in the thin-lens camera.

    Returns:
        A point (x, y, 0) with x^2 + y^2 < 1.
    """
    p = vec3(0.0, 0.0, 0.0)
    found = False
    for _ in range(100):
        if not found:
            x = random_double_range(stream, -1.0, 1.0)
            y = random_double_range(stream, -1.0, 1.0)
            p = vec3(x, y, 0.0)
            if length_squared(p) < 1.0:
                found = True
    return p
