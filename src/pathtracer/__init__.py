"""CPU path tracer built on Taichi.

This package renders images by Monte Carlo path tracing on the CPU, with support for:
- A bounding volume hierarchy over spheres and triangle meshes
- Lambertian, metal, dielectric and emissive materials
- Solid, checker, image and Perlin noise textures
- Thin lens depth of field and motion blur
- Skybox (environment) lighting
- Tile-based scheduling across a worker thread pool, including animation

Subpackages:
    core: Ray math, sampling, the path integrator and the render scheduler
    geometry: Bounding boxes, primitives and the BVH
    textures: Texture registry and procedural noise
    materials: Scattering models
    camera: Thin lens camera with shutter timing
    environment: Skybox lookups for escaped rays
    scene: Scene management, keyframe timelines and demo scenes
    preview: Image export

Field-backed modules allocate Taichi fields on import, so call
``pathtracer.runtime.init_runtime()`` before importing them.
"""

__version__ = "0.1.0"
