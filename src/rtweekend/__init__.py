"""Monte Carlo path tracer for sphere scenes, built on Taichi.

This package renders still images by casting many jittered camera rays per
pixel, tracing them through a scene of spheres and averaging the returned
radiance into gamma-corrected 8-bit RGB. It supports:
- Lambertian, metal and dielectric (glass) materials
- A thin-lens camera with depth of field
- Scanline-parallel rendering with one independent random stream per worker
- A fast C-library style random generator and an OS-entropy backed one

Subpackages:
    core: Vector utilities, random streams, the path integrator and the
        scanline renderer
    geometry: The sphere primitive and its hit record
    materials: Scattering models (Lambertian, metal, dielectric)
    scene: World construction, scene-level intersection and scene builders
    camera: Thin-lens camera ray generation
    preview: Serialisation of the rendered byte buffer (PPM, PNG)

Taichi must be initialised before importing any subpackage, because modules
declare their Taichi fields at import time:

    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu, default_fp=ti.f64, fast_math=False)
    >>> from src.rtweekend.core.renderer import ScanlineRenderer
"""

__version__ = "0.1.0"
