"""Tests for world construction and world-level intersection.

Tests cover:
- Material registration and unified material IDs
- Sphere registration and validation
- Freezing and reloading a replaced world
- Nearest-hit queries, including ties
"""

import pytest
import taichi as ti


def _hit_world(origin, direction, t_min=0.001, t_max=float("inf")):
    """Run hit_world once and return (hit, t, material_id, front_face)."""
    from src.rtweekend.core.ray import vec3
    from src.rtweekend.scene.intersection import hit_world

    out_hit = ti.field(dtype=ti.i32, shape=())
    out_t = ti.field(dtype=ti.f64, shape=())
    out_material = ti.field(dtype=ti.i32, shape=())
    out_front = ti.field(dtype=ti.i32, shape=())

    @ti.kernel
    def test_kernel(o: vec3, d: vec3, lo: ti.f64, hi: ti.f64):
        # The sphere scan must stay sequential
        ti.loop_config(serialize=True)
        for _ in range(1):
            rec = hit_world(o, d, lo, hi)
            out_hit[None] = rec.hit
            out_t[None] = rec.t
            out_material[None] = rec.material_id
            out_front[None] = rec.front_face

    test_kernel(vec3(*origin), vec3(*direction), t_min, t_max)
    return out_hit[None], out_t[None], out_material[None], out_front[None]


class TestMaterials:
    """Tests for material registration through the World."""

    def test_unified_ids_across_types(self):
        from src.rtweekend.scene.world import MaterialType, World

        world = World()
        diffuse = world.add_lambertian_material((0.5, 0.5, 0.5))
        metal = world.add_metal_material((0.8, 0.8, 0.8), 0.3)
        glass = world.add_dielectric_material(1.5)

        assert (diffuse, metal, glass) == (0, 1, 2)
        assert world.get_material_count() == 3
        assert world.get_material_info(metal).material_type == MaterialType.METAL
        assert world.get_material_info(glass).params == {"ior": 1.5}
        assert world.get_material_info(7) is None

    def test_type_tracking_fields(self):
        from src.rtweekend.scene.world import (
            MaterialType,
            World,
            material_type_indices,
            material_types,
        )

        world = World()
        world.add_metal_material((0.5, 0.5, 0.5))
        world.add_lambertian_material((0.5, 0.5, 0.5))
        world.add_metal_material((0.6, 0.6, 0.6))

        assert material_types[2] == int(MaterialType.METAL)
        # Second metal goes into slot 1 of the metal registry
        assert material_type_indices[2] == 1
        assert material_type_indices[1] == 0

    def test_fuzz_is_clamped(self):
        from src.rtweekend.scene.world import World

        world = World()
        metal = world.add_metal_material((0.5, 0.5, 0.5), fuzz=3.0)
        assert world.get_material_info(metal).params["fuzz"] == 1.0

    def test_negative_fuzz_raises(self):
        from src.rtweekend.scene.world import World

        with pytest.raises(ValueError, match="Fuzz"):
            World().add_metal_material((0.5, 0.5, 0.5), fuzz=-0.1)

    @pytest.mark.parametrize("albedo", [(1.5, 0.5, 0.5), (0.5, -0.1, 0.5)])
    def test_albedo_out_of_range_raises(self, albedo):
        from src.rtweekend.scene.world import World

        with pytest.raises(ValueError, match="Albedo"):
            World().add_lambertian_material(albedo)

    @pytest.mark.parametrize("ior", [0.0, -1.5])
    def test_non_positive_ior_raises(self, ior):
        from src.rtweekend.scene.world import World

        with pytest.raises(ValueError):
            World().add_dielectric_material(ior)


class TestSpheres:
    """Tests for sphere registration."""

    def test_add_sphere_requires_known_material(self):
        from src.rtweekend.scene.world import World

        world = World()
        with pytest.raises(ValueError, match="Invalid material_id"):
            world.add_sphere((0.0, 0.0, -1.0), 0.5, 0)

    def test_convenience_methods_return_indices(self):
        from src.rtweekend.scene.world import World

        world = World()
        assert world.add_lambertian_sphere((0, 0, -1), 0.5, (0.5, 0.5, 0.5)) == (0, 0)
        assert world.add_metal_sphere((1, 0, -1), 0.5, (0.8, 0.6, 0.2), 0.0) == (1, 1)
        assert world.add_dielectric_sphere((-1, 0, -1), 0.5, 1.5) == (2, 2)
        assert len(world) == 3
        assert world.get_sphere_count() == 3
        assert world.spheres[1].center == (1.0, 0.0, -1.0)

    def test_new_world_resets_fields(self):
        from src.rtweekend.scene.intersection import get_sphere_count
        from src.rtweekend.scene.world import World

        first = World()
        first.add_lambertian_sphere((0, 0, -1), 0.5, (0.5, 0.5, 0.5))
        World()
        assert get_sphere_count() == 0

    def test_clear(self):
        from src.rtweekend.scene.world import World

        world = World()
        world.add_lambertian_sphere((0, 0, -1), 0.5, (0.5, 0.5, 0.5))
        world.clear()
        assert len(world) == 0
        assert world.get_material_count() == 0


class TestFreeze:
    """Tests for freezing a world before rendering."""

    def test_frozen_world_rejects_changes(self):
        from src.rtweekend.scene.world import World

        world = World()
        material = world.add_lambertian_material((0.5, 0.5, 0.5))
        assert world.freeze() is world
        assert world.frozen

        with pytest.raises(RuntimeError, match="frozen"):
            world.add_sphere((0, 0, -1), 0.5, material)
        with pytest.raises(RuntimeError, match="frozen"):
            world.add_metal_material((0.5, 0.5, 0.5))
        with pytest.raises(RuntimeError, match="frozen"):
            world.clear()

    def test_upload_restores_replaced_world(self):
        from src.rtweekend.scene.intersection import get_sphere_count
        from src.rtweekend.scene.world import World

        first = World()
        first.add_metal_sphere((0, 0, -1), 0.5, (0.8, 0.8, 0.8), 0.3)
        first.add_dielectric_sphere((1, 0, -1), 0.5, 1.5)
        first.freeze()
        second = World()
        assert not first.live
        assert second.live

        assert first.upload() is first
        assert first.live
        assert not second.live
        assert get_sphere_count() == 2
        assert first.get_material_count() == 2


class TestHitWorld:
    """Tests for the nearest-hit query over all spheres."""

    def test_empty_world_misses(self):
        from src.rtweekend.scene.world import World

        World()
        hit, t, material, _ = _hit_world((0, 0, 0), (0, 0, -1))
        assert hit == 0
        assert t == -1.0
        assert material == -1

    def test_nearest_sphere_wins(self):
        from src.rtweekend.scene.world import World

        world = World()
        far = world.add_lambertian_material((0.1, 0.1, 0.1))
        near = world.add_lambertian_material((0.9, 0.9, 0.9))
        # Added far first so order alone would pick the wrong one
        world.add_sphere((0, 0, -5), 0.5, far)
        world.add_sphere((0, 0, -2), 0.5, near)

        hit, t, material, front = _hit_world((0, 0, 0), (0, 0, -1))
        assert hit == 1
        assert abs(t - 1.5) < 1e-12
        assert material == near
        assert front == 1

    def test_tie_goes_to_first_added(self):
        """Test two coincident spheres resolve to the one added first."""
        from src.rtweekend.scene.world import World

        world = World()
        first = world.add_lambertian_material((0.2, 0.2, 0.2))
        second = world.add_lambertian_material((0.8, 0.8, 0.8))
        world.add_sphere((0, 0, -1), 0.5, first)
        world.add_sphere((0, 0, -1), 0.5, second)

        hit, _, material, _ = _hit_world((0, 0, 0), (0, 0, -1))
        assert hit == 1
        assert material == first

    def test_t_min_ignores_surface_at_origin(self):
        """Test a ray leaving a surface does not re-hit it at t ~ 0."""
        from src.rtweekend.scene.world import World

        world = World()
        world.add_lambertian_sphere((0, 0, 0), 1.0, (0.5, 0.5, 0.5))
        hit, t, _, front = _hit_world((0, 0, 1.0), (0, 0, 1))
        assert hit == 0

        # Pointing back in, the far side is found
        hit, t, _, front = _hit_world((0, 0, 1.0), (0, 0, -1))
        assert hit == 1
        assert abs(t - 2.0) < 1e-12
        assert front == 0
