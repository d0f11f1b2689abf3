"""Sphere primitive and the per-hit record it produces.

Intersection solves the half-b form of the ray-sphere quadratic

    a*t^2 + 2*h*t + c = 0,   a = |d|^2,  h = d . (o - center),
                             c = |o - center|^2 - radius^2

and accepts the nearer root when it lies in [t_min, t_max], otherwise the
farther one. A sphere with negative radius has its outward normal pointing
inward, which is how a hollow glass shell is modelled.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu, default_fp=ti.f64, fast_math=False)
    >>> from src.rtweekend.geometry.sphere import Sphere, hit_sphere
    >>> from src.rtweekend.core.ray import vec3
    >>> sphere = Sphere(center=vec3(0.0, 0.0, -1.0), radius=0.5)
    >>> # Use hit_sphere within a Taichi kernel
"""

import taichi as ti
import taichi.math as tm

from ..core.ray import vec3

# Sentinel t of a record that holds no hit
NO_HIT_T = -1.0


@ti.dataclass
class Sphere:
    """A sphere defined by center point and radius.

    Attributes:
        center: The center point of the sphere.
        radius: The radius. Negative values invert the outward normal.
    """

    center: vec3
    radius: ti.f64


@ti.dataclass
class HitRecord:
    """Record of a ray-surface intersection.

    Attributes:
        hit: 1 if the ray intersected a surface, 0 otherwise.
        t: Ray parameter of the intersection, NO_HIT_T when hit == 0.
        point: The intersection point.
        normal: Unit surface normal, always facing against the ray.
        front_face: 1 if the ray arrived from the outside (the geometric
            outward normal was kept), 0 if it was flipped.
        material_id: Index of the surface's material in the world's
            material table, -1 when unknown.
    """

    hit: ti.i32
    t: ti.f64
    point: vec3
    normal: vec3
    front_face: ti.i32
    material_id: ti.i32


@ti.func
def miss_record() -> HitRecord:
    """Return the empty record used before any surface has been hit."""
    return HitRecord(
        hit=0,
        t=NO_HIT_T,
        point=vec3(0.0, 0.0, 0.0),
        normal=vec3(0.0, 0.0, 0.0),
        front_face=0,
        material_id=-1,
    )


@ti.func
def hit_sphere(
    ray_origin: vec3,
    ray_direction: vec3,
    sphere: Sphere,
    t_min: ti.f64,
    t_max: ti.f64,
) -> HitRecord:
    """Intersect a ray with a sphere.

    Args:
        ray_origin: The starting point of the ray.
        ray_direction: The direction of the ray (any non-zero length).
        sphere: The sphere to test.
        t_min: Smallest accepted t, inclusive.
        t_max: Largest accepted t, inclusive.

    Returns:
        A HitRecord with hit == 1 on intersection. Its material_id is left
        at -1; the caller attaches the material.
    """
    oc = ray_origin - sphere.center
    a = tm.dot(ray_direction, ray_direction)
    half_b = tm.dot(oc, ray_direction)
    c = tm.dot(oc, oc) - sphere.radius * sphere.radius
    discriminant = half_b * half_b - a * c

    rec = miss_record()

    if discriminant >= 0.0:
        sqrt_d = ti.sqrt(discriminant)

        root = (-half_b - sqrt_d) / a
        valid = not (root < t_min or root > t_max)
        if not valid:
            root = (-half_b + sqrt_d) / a
            valid = not (root < t_min or root > t_max)

        if valid:
            rec.hit = 1
            rec.t = root
            rec.point = ray_origin + root * ray_direction
            outward_normal = (rec.point - sphere.center) / sphere.radius

            # Keep the normal facing against the ray
            if tm.dot(ray_direction, outward_normal) < 0.0:
                rec.front_face = 1
                rec.normal = outward_normal
            else:
                rec.front_face = 0
                rec.normal = -outward_normal

    return rec
