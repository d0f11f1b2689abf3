"""Geometry module: the sphere primitive.

Ray-object intersection follows the pattern:
    rec = hit_sphere(ray_origin, ray_direction, sphere, t_min, t_max)

where ``rec.hit`` tells whether a root was found in [t_min, t_max].
"""

from .sphere import NO_HIT_T, HitRecord, Sphere, hit_sphere, miss_record

__all__ = [
    "Sphere",
    "HitRecord",
    "NO_HIT_T",
    "hit_sphere",
    "miss_record",
]
