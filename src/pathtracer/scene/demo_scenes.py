"""Demo scenes as plain data factories.

Each factory fills a fresh SceneManager and returns it with a camera framed
for the requested aspect ratio. Random placement uses a seeded NumPy
generator, so a demo scene is the same on every run.

Available scenes (see DEMO_SCENES):

- spheres: the classic field of small random spheres around three large ones
- motion_blur: the same field with the diffuse spheres bouncing upward
- checker: two large spheres with a checker texture
- mesh: a triangle-mesh pyramid and cube on a checkered ground
- emissive: a dark scene lit only by an emissive sphere

Example:
    >>> from pathtracer.scene.demo_scenes import build_demo_scene
    >>> scene, camera = build_demo_scene("checker", aspect_ratio=16 / 9)
"""

from collections.abc import Callable

import numpy as np

from pathtracer.camera.thin_lens import ThinLensCamera
from pathtracer.errors import ConfigurationError
from pathtracer.scene.manager import SceneManager
from pathtracer.scene.timeline import Interpolation

DemoFactory = Callable[..., tuple[SceneManager, ThinLensCamera]]

# Ground and three feature spheres of the sphere field
GROUND_ALBEDO = (0.5, 0.5, 0.5)
CHECKER_EVEN = (0.2, 0.3, 0.1)
CHECKER_ODD = (0.9, 0.9, 0.9)
CHECKER_SCALE = 0.32


def _field_camera(aspect_ratio: float) -> ThinLensCamera:
    return ThinLensCamera(
        lookfrom=(13.0, 2.0, 3.0),
        lookat=(0.0, 0.0, 0.0),
        vup=(0.0, 1.0, 0.0),
        vfov=20.0,
        aspect_ratio=aspect_ratio,
        defocus_angle=0.6,
        focus_dist=10.0,
    )


def _sphere_field(scene: SceneManager, seed: int, grid: int, bounce: bool) -> None:
    """Small random spheres on a (2 * grid) x (2 * grid) lattice plus three large ones."""
    rng = np.random.default_rng(seed)
    counter = 0
    for a in range(-grid, grid):
        for b in range(-grid, grid):
            choose_mat = rng.random()
            center = np.array([a + 0.9 * rng.random(), 0.2, b + 0.9 * rng.random()])
            if np.linalg.norm(center - np.array([4.0, 0.2, 0.0])) <= 0.9:
                continue

            alias = f"small{counter}"
            counter += 1
            if choose_mat < 0.8:
                albedo = tuple(rng.random(3) * rng.random(3))
                material = scene.add_lambertian_material(albedo=albedo)
                scene.add_sphere(tuple(center), 0.2, material, alias=alias)
                if bounce:
                    rise = float(rng.uniform(0.0, 0.5))
                    scene.translate(alias, (0.0, rise, 0.0), keyframe=1.0)
            elif choose_mat < 0.95:
                albedo = tuple(rng.uniform(0.5, 1.0, 3))
                fuzz = float(rng.uniform(0.0, 0.5))
                material = scene.add_metal_material(albedo=albedo, fuzz=fuzz)
                scene.add_sphere(tuple(center), 0.2, material, alias=alias)
            else:
                material = scene.add_dielectric_material(ior=1.5)
                scene.add_sphere(tuple(center), 0.2, material, alias=alias)

    glass = scene.add_dielectric_material(ior=1.5)
    scene.add_sphere((0.0, 1.0, 0.0), 1.0, glass, alias="large_dielectric")
    brown = scene.add_lambertian_material(albedo=(0.4, 0.2, 0.1))
    scene.add_sphere((-4.0, 1.0, 0.0), 1.0, brown, alias="large_lambertian")
    bronze = scene.add_metal_material(albedo=(0.7, 0.6, 0.5), fuzz=0.0)
    scene.add_sphere((4.0, 1.0, 0.0), 1.0, bronze, alias="large_metal")


def spheres_scene(
    aspect_ratio: float = 16.0 / 9.0, seed: int = 0, grid: int = 11
) -> tuple[SceneManager, ThinLensCamera]:
    """Random sphere field on a checkered ground."""
    scene = SceneManager()
    checker = scene.add_checker_colors(CHECKER_SCALE, CHECKER_EVEN, CHECKER_ODD)
    ground = scene.add_lambertian_material(texture_id=checker)
    scene.add_sphere((0.0, -1000.0, 0.0), 1000.0, ground, alias="ground")
    _sphere_field(scene, seed, grid, bounce=False)
    return scene, _field_camera(aspect_ratio)


def motion_blur_scene(
    aspect_ratio: float = 16.0 / 9.0, seed: int = 0, grid: int = 11
) -> tuple[SceneManager, ThinLensCamera]:
    """Sphere field whose diffuse spheres rise during the first second.

    The camera's shutter covers [0, 1] so a still render is blurred.
    """
    scene = SceneManager()
    ground = scene.add_lambertian_material(albedo=GROUND_ALBEDO)
    scene.add_sphere((0.0, -1000.0, 0.0), 1000.0, ground, alias="ground")
    _sphere_field(scene, seed, grid, bounce=True)
    return scene, _field_camera(aspect_ratio).with_shutter(0.0, 1.0)


def checker_scene(aspect_ratio: float = 16.0 / 9.0) -> tuple[SceneManager, ThinLensCamera]:
    """Two large checkered spheres."""
    scene = SceneManager()
    checker = scene.add_checker_colors(CHECKER_SCALE, CHECKER_EVEN, CHECKER_ODD)
    material = scene.add_lambertian_material(texture_id=checker)
    scene.add_sphere((0.0, -10.0, 0.0), 10.0, material, alias="bottom")
    scene.add_sphere((0.0, 10.0, 0.0), 10.0, material, alias="top")
    camera = ThinLensCamera(
        lookfrom=(13.0, 2.0, 3.0),
        lookat=(0.0, 0.0, 0.0),
        vfov=20.0,
        aspect_ratio=aspect_ratio,
    )
    return scene, camera


# Square pyramid: four base corners and the apex
PYRAMID_VERTICES = np.array(
    [
        [-1.0, 0.0, -1.0],
        [1.0, 0.0, -1.0],
        [1.0, 0.0, 1.0],
        [-1.0, 0.0, 1.0],
        [0.0, 1.6, 0.0],
    ]
)
PYRAMID_FACES = np.array([[0, 4, 1], [1, 4, 2], [2, 4, 3], [3, 4, 0], [0, 1, 2], [0, 2, 3]])

CUBE_VERTICES = np.array(
    [[x, y, z] for x in (-0.5, 0.5) for y in (0.0, 1.0) for z in (-0.5, 0.5)]
)
CUBE_FACES = np.array(
    [
        [0, 1, 3], [0, 3, 2],  # -x
        [4, 6, 7], [4, 7, 5],  # +x
        [0, 4, 5], [0, 5, 1],  # -y
        [2, 3, 7], [2, 7, 6],  # +y
        [0, 2, 6], [0, 6, 4],  # -z
        [1, 5, 7], [1, 7, 3],  # +z
    ]
)


def mesh_scene(aspect_ratio: float = 16.0 / 9.0) -> tuple[SceneManager, ThinLensCamera]:
    """A glass-topped pyramid, a metal cube and a diffuse sphere on a checker floor."""
    scene = SceneManager()
    checker = scene.add_checker_colors(0.5, (0.1, 0.1, 0.1), (0.8, 0.8, 0.8))
    floor = scene.add_lambertian_material(texture_id=checker)
    scene.add_mesh(
        np.array([[-20.0, 0.0, -20.0], [20.0, 0.0, -20.0], [20.0, 0.0, 20.0], [-20.0, 0.0, 20.0]]),
        np.array([[0, 2, 1], [0, 3, 2]]),
        floor,
        uvs=np.array([[0.0, 0.0], [1.0, 0.0], [1.0, 1.0], [0.0, 1.0]]),
        alias="floor",
    )

    clay = scene.add_lambertian_material(albedo=(0.8, 0.3, 0.2))
    scene.add_mesh(PYRAMID_VERTICES + [-1.5, 0.0, 0.0], PYRAMID_FACES, clay, alias="pyramid")
    steel = scene.add_metal_material(albedo=(0.8, 0.8, 0.9), fuzz=0.05)
    scene.add_mesh(CUBE_VERTICES * 1.2 + [1.5, 0.0, 0.0], CUBE_FACES, steel, alias="cube")
    glass = scene.add_dielectric_material(ior=1.5)
    scene.add_sphere((0.0, 0.5, 1.5), 0.5, glass, alias="marble")

    camera = ThinLensCamera(
        lookfrom=(0.0, 3.0, 8.0),
        lookat=(0.0, 0.6, 0.0),
        vfov=35.0,
        aspect_ratio=aspect_ratio,
    )
    return scene, camera


def emissive_scene(aspect_ratio: float = 16.0 / 9.0) -> tuple[SceneManager, ThinLensCamera]:
    """Marble-textured spheres lit only by a glowing sphere that drifts sideways."""
    scene = SceneManager()
    scene.set_skybox_none()
    marble = scene.add_noise_texture(scale=4.0)
    ground = scene.add_lambertian_material(texture_id=marble)
    scene.add_sphere((0.0, -1000.0, 0.0), 1000.0, ground, alias="ground")
    scene.add_sphere((0.0, 2.0, 0.0), 2.0, ground, alias="marble")

    lamp = scene.add_diffuse_light_material(color=(4.0, 4.0, 4.0))
    scene.add_sphere((0.0, 7.0, 0.0), 2.0, lamp, alias="lamp")
    scene.translate("lamp", (3.0, 0.0, 0.0), keyframe=2.0, interpolation=Interpolation.LERP)

    camera = ThinLensCamera(
        lookfrom=(26.0, 3.0, 6.0),
        lookat=(0.0, 2.0, 0.0),
        vfov=20.0,
        aspect_ratio=aspect_ratio,
    )
    return scene, camera


DEMO_SCENES: dict[str, DemoFactory] = {
    "spheres": spheres_scene,
    "motion_blur": motion_blur_scene,
    "checker": checker_scene,
    "mesh": mesh_scene,
    "emissive": emissive_scene,
}


def build_demo_scene(name: str, aspect_ratio: float = 16.0 / 9.0, **kwargs) -> tuple[SceneManager, ThinLensCamera]:
    """Build a demo scene by name.

    Raises:
        ConfigurationError: If no demo scene has that name.
    """
    try:
        factory = DEMO_SCENES[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown scene {name!r}; choose one of {', '.join(DEMO_SCENES)}"
        ) from None
    return factory(aspect_ratio, **kwargs)
