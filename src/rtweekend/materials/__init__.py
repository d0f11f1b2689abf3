"""Materials module: scattering models.

Components:
    lambertian: Ideal diffuse reflection
    metal: Mirror reflection with optional fuzz
    dielectric: Clear glass with Fresnel-weighted reflection and refraction

Each material keeps its parameters in a registry of Taichi fields and
provides ``scatter_<type>(stream, ...)`` returning
``(scattered_direction, attenuation, did_scatter)``; did_scatter == 0 means
the path is absorbed.
"""

from .dielectric import (
    add_dielectric_material,
    clear_dielectric_materials,
    get_dielectric_ior,
    get_dielectric_material_count,
    scatter_dielectric,
    scatter_dielectric_by_id,
    will_reflect,
)
from .lambertian import (
    add_lambertian_material,
    clear_lambertian_materials,
    get_lambertian_albedo,
    get_lambertian_material_count,
    scatter_lambertian,
    scatter_lambertian_by_id,
)
from .metal import (
    MAX_FUZZ,
    add_metal_material,
    clear_metal_materials,
    get_metal_fuzz,
    get_metal_material_count,
    scatter_metal,
    scatter_metal_by_id,
)

__all__ = [
    # Lambertian
    "add_lambertian_material",
    "clear_lambertian_materials",
    "get_lambertian_albedo",
    "get_lambertian_material_count",
    "scatter_lambertian",
    "scatter_lambertian_by_id",
    # Metal
    "MAX_FUZZ",
    "add_metal_material",
    "clear_metal_materials",
    "get_metal_fuzz",
    "get_metal_material_count",
    "scatter_metal",
    "scatter_metal_by_id",
    # Dielectric
    "add_dielectric_material",
    "clear_dielectric_materials",
    "get_dielectric_ior",
    "get_dielectric_material_count",
    "scatter_dielectric",
    "scatter_dielectric_by_id",
    "will_reflect",
]
