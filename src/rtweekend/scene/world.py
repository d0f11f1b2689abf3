"""World: the sphere list plus the materials the spheres reference.

The World gives every material a unified material_id, whichever registry
(Lambertian, Metal, Dielectric) actually stores its parameters, and records
in Taichi fields which registry and which type-local slot each id maps to.
The integrator uses those fields to dispatch to the right scatter function.

Once handed to a renderer a World is frozen: nothing may be added while
rendering workers read the fields.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu, default_fp=ti.f64, fast_math=False)
    >>> from src.rtweekend.scene.world import World
    >>> world = World()
    >>> ground = world.add_lambertian_material(albedo=(0.5, 0.5, 0.5))
    >>> world.add_sphere((0.0, -1000.0, 0.0), 1000.0, ground)
    0
    >>> world.add_dielectric_sphere((0.0, 1.0, 0.0), 1.0, ior=1.5)
    (1, 1)
"""

import itertools
import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import Any

import taichi as ti

from ..core.ray import as_vector
from ..materials.dielectric import add_dielectric_material, clear_dielectric_materials
from ..materials.lambertian import add_lambertian_material, clear_lambertian_materials
from ..materials.metal import add_metal_material, clear_metal_materials, get_metal_fuzz
from .intersection import add_sphere, clear_scene

logger = logging.getLogger(__name__)


class MaterialType(IntEnum):
    """Material variants, used as the dispatch tag in the integrator."""

    LAMBERTIAN = 0
    METAL = 1
    DIELECTRIC = 2


# Maximum number of materials across all types
MAX_MATERIALS = 1024

# material_types[i] is the MaterialType of material_id i
material_types = ti.field(dtype=ti.i32, shape=MAX_MATERIALS)
# material_type_indices[i] is the slot of material_id i in its type's registry
material_type_indices = ti.field(dtype=ti.i32, shape=MAX_MATERIALS)
num_materials = ti.field(dtype=ti.i32, shape=())


# Identifies the World whose spheres and materials the fields hold
_world_ids = itertools.count(1)
_live_world_id = 0


def _clear_material_tracking() -> None:
    num_materials[None] = 0


def _clear_fields() -> None:
    clear_scene()
    clear_lambertian_materials()
    clear_metal_materials()
    clear_dielectric_materials()
    _clear_material_tracking()


def _track_material(material_id: int, material_type: MaterialType, type_index: int) -> None:
    material_types[material_id] = int(material_type)
    material_type_indices[material_id] = type_index
    num_materials[None] = material_id + 1


@ti.func
def get_material_type(material_id: ti.i32) -> ti.i32:
    """Get the MaterialType of a material id, or -1 for an invalid id."""
    result = -1
    if 0 <= material_id < num_materials[None]:
        result = material_types[material_id]
    return result


@ti.func
def get_material_type_index(material_id: ti.i32) -> ti.i32:
    """Get the type-local registry slot of a material id, or -1 if invalid."""
    result = -1
    if 0 <= material_id < num_materials[None]:
        result = material_type_indices[material_id]
    return result


@dataclass
class MaterialInfo:
    """Host-side record of a registered material.

    Attributes:
        material_id: The unified material ID.
        material_type: Which registry holds the parameters.
        type_index: The slot within that registry.
        params: The parameters as stored (fuzz after clamping).
    """

    material_id: int
    material_type: MaterialType
    type_index: int
    params: dict[str, Any]


@dataclass
class SphereInfo:
    """Host-side record of a sphere in the world."""

    sphere_index: int
    center: tuple[float, float, float]
    radius: float
    material_id: int


class World:
    """Ordered collection of spheres and the materials they use.

    Kernels read spheres and materials from shared Taichi fields, which hold
    one World at a time. Each World keeps host-side records of everything
    added to it and reloads them into the fields whenever it is modified or
    rendered while another World is live.

    Attributes:
        materials: MaterialInfo for every registered material, by id.
        spheres: SphereInfo for every sphere, in insertion order.
    """

    def __init__(self) -> None:
        self.materials: list[MaterialInfo] = []
        self.spheres: list[SphereInfo] = []
        self._frozen = False
        self._world_id = next(_world_ids)
        self._load_fields()

    def _load_fields(self) -> None:
        global _live_world_id

        _clear_fields()
        for info in self.materials:
            if info.material_type == MaterialType.LAMBERTIAN:
                type_index = add_lambertian_material(info.params["albedo"])
            elif info.material_type == MaterialType.METAL:
                type_index = add_metal_material(info.params["albedo"], info.params["fuzz"])
            else:
                type_index = add_dielectric_material(info.params["ior"])
            _track_material(info.material_id, info.material_type, type_index)
        for sphere in self.spheres:
            add_sphere(sphere.center, sphere.radius, sphere.material_id)
        _live_world_id = self._world_id

    @property
    def live(self) -> bool:
        """True if the shared fields currently hold this world."""
        return _live_world_id == self._world_id

    def upload(self) -> "World":
        """Load this world into the shared fields unless it is already live.

        Returns the world for chaining.
        """
        if not self.live:
            logger.debug(
                "Reloading world with %d spheres and %d materials",
                len(self.spheres),
                len(self.materials),
            )
            self._load_fields()
        return self

    def clear(self) -> None:
        """Remove every sphere and material.

        Raises:
            RuntimeError: If the world is frozen.
        """
        self._check_mutable()
        self.materials.clear()
        self.spheres.clear()
        self._load_fields()

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> "World":
        """Mark the world read-only. Returns the world for chaining."""
        if not self._frozen:
            logger.debug(
                "Freezing world with %d spheres and %d materials",
                len(self.spheres),
                len(self.materials),
            )
        self._frozen = True
        return self

    def _check_mutable(self) -> None:
        if self._frozen:
            raise RuntimeError("World is frozen and cannot be modified")
        self.upload()

    # =========================================================================
    # Material Management
    # =========================================================================

    def _register_material(
        self, material_type: MaterialType, type_index: int, params: dict[str, Any]
    ) -> int:
        material_id = len(self.materials)
        _track_material(material_id, material_type, type_index)
        self.materials.append(
            MaterialInfo(
                material_id=material_id,
                material_type=material_type,
                type_index=type_index,
                params=params,
            )
        )
        return material_id

    def _check_material_capacity(self) -> None:
        if len(self.materials) >= MAX_MATERIALS:
            raise RuntimeError(f"Maximum number of materials ({MAX_MATERIALS}) exceeded")

    def add_lambertian_material(self, albedo) -> int:
        """Add a diffuse material.

        Args:
            albedo: (R, G, B) reflectance, each component in [0, 1].

        Returns:
            The unified material ID.

        Raises:
            RuntimeError: If the world is frozen or a capacity is exceeded.
            ValueError: If any albedo component is outside [0, 1].
        """
        self._check_mutable()
        self._check_material_capacity()
        type_index = add_lambertian_material(albedo)
        return self._register_material(
            MaterialType.LAMBERTIAN, type_index, {"albedo": tuple(as_vector(albedo))}
        )

    def add_metal_material(self, albedo, fuzz: float = 0.0) -> int:
        """Add a reflective material.

        Args:
            albedo: (R, G, B) tint, each component in [0, 1].
            fuzz: Surface fuzziness, clamped to at most 1.

        Returns:
            The unified material ID.

        Raises:
            RuntimeError: If the world is frozen or a capacity is exceeded.
            ValueError: If any albedo component is outside [0, 1] or fuzz is
                negative.
        """
        self._check_mutable()
        self._check_material_capacity()
        type_index = add_metal_material(albedo, fuzz)
        return self._register_material(
            MaterialType.METAL,
            type_index,
            {"albedo": tuple(as_vector(albedo)), "fuzz": get_metal_fuzz(type_index)},
        )

    def add_dielectric_material(self, ior: float = 1.5) -> int:
        """Add a clear glass-like material.

        Args:
            ior: Index of refraction, positive.

        Returns:
            The unified material ID.

        Raises:
            RuntimeError: If the world is frozen or a capacity is exceeded.
            ValueError: If the index of refraction is not positive.
        """
        self._check_mutable()
        self._check_material_capacity()
        type_index = add_dielectric_material(ior)
        return self._register_material(MaterialType.DIELECTRIC, type_index, {"ior": float(ior)})

    def get_material_count(self) -> int:
        return len(self.materials)

    def get_material_info(self, material_id: int) -> MaterialInfo | None:
        """Get the host-side record of a material, or None if unknown."""
        if 0 <= material_id < len(self.materials):
            return self.materials[material_id]
        return None

    # =========================================================================
    # Sphere Management
    # =========================================================================

    def add_sphere(self, center, radius: float, material_id: int) -> int:
        """Add a sphere that uses an already registered material.

        Args:
            center: The center point as an (x, y, z) sequence.
            radius: The radius. Negative values model a hollow shell.
            material_id: A material ID returned by one of the add_*_material
                methods.

        Returns:
            The index of the sphere.

        Raises:
            RuntimeError: If the world is frozen or full.
            ValueError: If the material ID is unknown.
        """
        self._check_mutable()
        if not 0 <= material_id < len(self.materials):
            raise ValueError(f"Invalid material_id: {material_id}")

        center = tuple(as_vector(center))
        sphere_index = add_sphere(center, radius, material_id)
        self.spheres.append(
            SphereInfo(
                sphere_index=sphere_index,
                center=center,
                radius=float(radius),
                material_id=material_id,
            )
        )
        return sphere_index

    def add_lambertian_sphere(self, center, radius: float, albedo) -> tuple[int, int]:
        """Add a diffuse sphere with its own material.

        Returns:
            A tuple of (sphere_index, material_id).
        """
        material_id = self.add_lambertian_material(albedo)
        return self.add_sphere(center, radius, material_id), material_id

    def add_metal_sphere(
        self, center, radius: float, albedo, fuzz: float = 0.0
    ) -> tuple[int, int]:
        """Add a metal sphere with its own material.

        Returns:
            A tuple of (sphere_index, material_id).
        """
        material_id = self.add_metal_material(albedo, fuzz)
        return self.add_sphere(center, radius, material_id), material_id

    def add_dielectric_sphere(self, center, radius: float, ior: float = 1.5) -> tuple[int, int]:
        """Add a glass sphere with its own material.

        Returns:
            A tuple of (sphere_index, material_id).
        """
        material_id = self.add_dielectric_material(ior)
        return self.add_sphere(center, radius, material_id), material_id

    def get_sphere_count(self) -> int:
        return len(self.spheres)

    def __len__(self) -> int:
        return len(self.spheres)

    def __repr__(self) -> str:
        return (
            f"World(spheres={len(self.spheres)}, materials={len(self.materials)}, "
            f"frozen={self._frozen})"
        )
