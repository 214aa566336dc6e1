"""Unified scene manager coordinating textures, materials and primitives.

The SceneManager maintains:

- A unified material_id space across all material types, with a Taichi-side
  mapping from material_id to (material_type, type_local_index) used for
  dispatch in the path tracer
- Textures shared by id between materials and the skybox
- Scene objects (spheres and triangle meshes), optionally named by an alias
  so they can be animated or hidden later
- A build step that evaluates every object's timeline over a frame's shutter
  interval, uploads the primitives and builds the BVH

Materials and textures are immutable once created and referenced by id, so
any number of primitives can share them. Only one scene is active at a time:
all storage lives in module-level Taichi fields, and creating a SceneManager
resets them.

Example:
    >>> from pathtracer.scene.manager import SceneManager
    >>> scene = SceneManager()
    >>> ground = scene.add_lambertian_material(albedo=(0.5, 0.5, 0.5))
    >>> scene.add_sphere((0, -1000, 0), 1000, ground)
    >>> glass = scene.add_dielectric_material(ior=1.5)
    >>> scene.add_sphere((0, 1, 0), 1.0, glass, alias="glass_ball")
    >>> scene.translate("glass_ball", (0, 0.5, 0), keyframe=1.0)
    >>> scene.build((0.0, 0.5))
"""

import logging
import math
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any

import numpy as np
import numpy.typing as npt
import taichi as ti

from pathtracer.environment.skybox import (
    set_skybox_gradient,
    set_skybox_none,
    set_skybox_texture,
)
from pathtracer.errors import InvalidScene
from pathtracer.geometry.aabb import AABB
from pathtracer.geometry.bvh import build_bvh, clear_bvh, upload_bvh
from pathtracer.geometry.sphere import sphere_bounds
from pathtracer.geometry.triangle import DEGENERATE_AREA, triangle_areas, triangle_bounds
from pathtracer.materials.dielectric import add_dielectric_material, clear_dielectric_materials
from pathtracer.materials.diffuse_light import (
    add_diffuse_light_material,
    clear_diffuse_light_materials,
)
from pathtracer.materials.lambertian import add_lambertian_material, clear_lambertian_materials
from pathtracer.materials.metal import add_metal_material, clear_metal_materials
from pathtracer.scene.intersection import (
    MAX_SPHERES,
    MAX_TRIANGLES,
    SphereArrays,
    TriangleArrays,
    WorldMode,
    clear_scene,
    set_world_mode,
    upload_primitives,
)
from pathtracer.scene.motion import MotionTable, upload_motions
from pathtracer.scene.timeline import Interpolation, Track, sample_tracks
from pathtracer.textures.texture import (
    add_checker_texture,
    add_image_texture,
    add_noise_texture,
    add_solid_texture,
    clear_textures,
    validate_texture_id,
)

logger = logging.getLogger(__name__)


class MaterialType(IntEnum):
    """Enumeration of supported material types.

    Used for material dispatch in the path tracer to determine which
    scattering function to call.
    """

    LAMBERTIAN = 0
    METAL = 1
    DIELECTRIC = 2
    DIFFUSE_LIGHT = 3


MAX_MATERIALS = 4096

# material_types[i] stores the MaterialType for material_id i
material_types = ti.field(dtype=ti.i32, shape=MAX_MATERIALS)
# material_type_indices[i] stores the type-local index for material_id i
material_type_indices = ti.field(dtype=ti.i32, shape=MAX_MATERIALS)
num_materials = ti.field(dtype=ti.i32, shape=())


def _clear_material_tracking() -> None:
    num_materials[None] = 0


def reset_scene_storage() -> None:
    """Clear every field-backed registry: primitives, BVH, materials, textures.

    The skybox goes back to the default gradient.
    """
    clear_scene()
    clear_bvh()
    clear_lambertian_materials()
    clear_metal_materials()
    clear_dielectric_materials()
    clear_diffuse_light_materials()
    clear_textures()
    _clear_material_tracking()
    set_skybox_gradient()


@ti.func
def get_material_type(material_id: ti.i32) -> ti.i32:
    """Material type for a material id, -1 for invalid ids."""
    result = -1
    if 0 <= material_id < num_materials[None]:
        result = material_types[material_id]
    return result


@ti.func
def get_material_type_index(material_id: ti.i32) -> ti.i32:
    """Index into the type-specific material arrays, -1 for invalid ids."""
    result = -1
    if 0 <= material_id < num_materials[None]:
        result = material_type_indices[material_id]
    return result


@dataclass
class MaterialInfo:
    """Information about a registered material.

    Attributes:
        material_id: The unified material ID.
        material_type: The type of material.
        type_index: The index within the type-specific material array.
        params: The material parameters as provided during creation.
    """

    material_id: int
    material_type: MaterialType
    type_index: int
    params: dict[str, Any]


@dataclass
class SphereObject:
    """A sphere and its animation.

    Attributes:
        center: Center before translation.
        radius: Radius track, one component.
        material_id: Unified material id.
        alias: Optional name for later edits.
        translation: Offset track added to the center.
        hidden: Hidden objects are skipped by build().
    """

    center: tuple[float, float, float]
    radius: Track
    material_id: int
    alias: str | None = None
    translation: Track = field(default_factory=lambda: Track((0.0, 0.0, 0.0)))
    hidden: bool = False


@dataclass
class MeshObject:
    """A triangle mesh and its animation.

    Attributes:
        vertices: Vertex positions, shape (n, 3).
        faces: Vertex indices per triangle, shape (m, 3).
        material_id: Unified material id.
        normals: Optional per-vertex normals, shape (n, 3).
        uvs: Optional per-vertex texture coordinates, shape (n, 2).
        alias: Optional name for later edits.
        translation: Offset track added to every vertex.
        scale: Per-axis scale track applied about the vertex centroid.
        hidden: Hidden objects are skipped by build().
    """

    vertices: npt.NDArray[np.float64]
    faces: npt.NDArray[np.int64]
    material_id: int
    normals: npt.NDArray[np.float64] | None = None
    uvs: npt.NDArray[np.float64] | None = None
    alias: str | None = None
    translation: Track = field(default_factory=lambda: Track((0.0, 0.0, 0.0)))
    scale: Track = field(default_factory=lambda: Track((1.0, 1.0, 1.0)))
    hidden: bool = False

    @property
    def triangle_count(self) -> int:
        return int(self.faces.shape[0])

    def centroid(self) -> npt.NDArray[np.float64]:
        return self.vertices.mean(axis=0)


@dataclass
class BuildStats:
    """Summary of the last build()."""

    spheres: int
    triangles: int
    bvh_nodes: int
    time_interval: tuple[float, float]


def _as_point(value, what: str) -> tuple[float, float, float]:
    try:
        point = tuple(float(x) for x in np.ravel(value))
    except (TypeError, ValueError):
        raise InvalidScene(f"{what} must be 3 finite numbers, got {value!r}") from None
    if np.ndim(value) != 1 or len(point) != 3 or not all(math.isfinite(x) for x in point):
        raise InvalidScene(f"{what} must be 3 finite numbers, got {value}")
    return point


class SceneManager:
    """Scene builder with unified material tracking and animation.

    Attributes:
        materials: MaterialInfo for every registered material.
        objects: Every sphere and mesh in insertion order.
        aliases: Alias -> object.
        last_build: Stats of the most recent build(), or None.

    Example:
        >>> scene = SceneManager()
        >>> red = scene.add_lambertian_material(albedo=(0.8, 0.1, 0.1))
        >>> gold = scene.add_metal_material(albedo=(0.8, 0.6, 0.2), fuzz=0.3)
        >>> lamp = scene.add_diffuse_light_material(color=(4.0, 4.0, 4.0))
        >>> scene.add_sphere((0, 0, -1), 0.5, red)
        >>> scene.add_sphere((1, 0, -1), 0.5, gold)
        >>> scene.add_sphere((0, 3, -1), 0.5, lamp)
        >>> scene.set_skybox_none()
        >>> scene.build()
    """

    def __init__(self) -> None:
        self.materials: list[MaterialInfo] = []
        self.objects: list[SphereObject | MeshObject] = []
        self.aliases: dict[str, SphereObject | MeshObject] = {}
        self.last_build: BuildStats | None = None
        self._clear_all()

    def _clear_all(self) -> None:
        reset_scene_storage()
        self.materials.clear()
        self.objects.clear()
        self.aliases.clear()
        self.last_build = None

    def clear(self) -> None:
        """Clear the entire scene, including textures and the skybox."""
        self._clear_all()

    # =========================================================================
    # Textures
    # =========================================================================

    def add_solid_texture(self, color: tuple[float, float, float]) -> int:
        return add_solid_texture(color)

    def add_checker_texture(self, scale: float, even_id: int, odd_id: int) -> int:
        return add_checker_texture(scale, even_id, odd_id)

    def add_checker_colors(
        self,
        scale: float,
        even: tuple[float, float, float],
        odd: tuple[float, float, float],
    ) -> int:
        """Checker between two solid colors."""
        return add_checker_texture(scale, add_solid_texture(even), add_solid_texture(odd))

    def add_image_texture(self, pixels: npt.ArrayLike) -> int:
        """Image texture from decoded pixels (see preview.export.load_image)."""
        return add_image_texture(pixels)

    def add_noise_texture(
        self,
        scale: float,
        color: tuple[float, float, float] = (1.0, 1.0, 1.0),
        seed: int = 0,
    ) -> int:
        return add_noise_texture(scale, color, seed)

    def _resolve_texture(self, color: tuple[float, float, float] | None, texture_id: int | None) -> int:
        if texture_id is not None:
            validate_texture_id(texture_id)
            return texture_id
        if color is None:
            raise InvalidScene("A material needs either a color or a texture_id")
        return add_solid_texture(color)

    # =========================================================================
    # Material Management
    # =========================================================================

    def _register_material(
        self,
        material_type: MaterialType,
        type_index: int,
        params: dict[str, Any],
    ) -> int:
        material_id = num_materials[None]
        if material_id >= MAX_MATERIALS:
            raise RuntimeError(f"Maximum number of materials ({MAX_MATERIALS}) exceeded")

        material_types[material_id] = int(material_type)
        material_type_indices[material_id] = type_index
        num_materials[None] = material_id + 1

        self.materials.append(
            MaterialInfo(
                material_id=material_id,
                material_type=material_type,
                type_index=type_index,
                params=params,
            )
        )
        return material_id

    def add_lambertian_material(
        self,
        albedo: tuple[float, float, float] | None = None,
        texture_id: int | None = None,
        scatter_probability: float = 1.0,
    ) -> int:
        """Add a Lambertian (diffuse) material.

        Args:
            albedo: Solid diffuse color, used when texture_id is not given.
            texture_id: Texture supplying the albedo.
            scatter_probability: Probability in (0, 1] that a hit scatters.

        Returns:
            The unified material ID.

        Raises:
            TextureLoadError: If texture_id is unknown.
            InvalidScene: If the parameters are invalid.
            RuntimeError: If the maximum number of materials is exceeded.
        """
        tex = self._resolve_texture(albedo, texture_id)
        type_index = add_lambertian_material(tex, scatter_probability)
        return self._register_material(
            MaterialType.LAMBERTIAN,
            type_index,
            {"texture_id": tex, "scatter_probability": scatter_probability},
        )

    def add_metal_material(
        self,
        albedo: tuple[float, float, float] | None = None,
        fuzz: float = 0.0,
        texture_id: int | None = None,
    ) -> int:
        """Add a metal (specular reflective) material.

        Args:
            albedo: Solid reflective color, used when texture_id is not given.
            fuzz: Perturbation radius, clamped to [0, 1].
            texture_id: Texture supplying the albedo.

        Returns:
            The unified material ID.
        """
        tex = self._resolve_texture(albedo, texture_id)
        type_index = add_metal_material(tex, fuzz)
        return self._register_material(
            MaterialType.METAL, type_index, {"texture_id": tex, "fuzz": fuzz}
        )

    def add_dielectric_material(self, ior: float = 1.5) -> int:
        """Add a dielectric (glass/water) material.

        Args:
            ior: Index of refraction. Air=1.0, Water=1.33, Glass=1.5.

        Returns:
            The unified material ID.

        Raises:
            InvalidScene: If ior is not positive.
        """
        type_index = add_dielectric_material(ior)
        return self._register_material(MaterialType.DIELECTRIC, type_index, {"ior": ior})

    def add_diffuse_light_material(
        self,
        color: tuple[float, float, float] | None = (1.0, 1.0, 1.0),
        intensity: float = 1.0,
        texture_id: int | None = None,
        two_sided: bool = False,
    ) -> int:
        """Add an emissive material.

        Args:
            color: Emitted color, used when texture_id is not given. May
                exceed 1 for bright lights.
            intensity: Multiplier on the color.
            texture_id: Texture supplying the emitted color.
            two_sided: Emit from back faces too.

        Returns:
            The unified material ID.
        """
        tex = self._resolve_texture(color, texture_id)
        type_index = add_diffuse_light_material(tex, intensity, two_sided)
        return self._register_material(
            MaterialType.DIFFUSE_LIGHT,
            type_index,
            {"texture_id": tex, "intensity": intensity, "two_sided": two_sided},
        )

    def get_material_count(self) -> int:
        return int(num_materials[None])

    def get_material_info(self, material_id: int) -> MaterialInfo | None:
        if 0 <= material_id < len(self.materials):
            return self.materials[material_id]
        return None

    def get_material_type_python(self, material_id: int) -> MaterialType | None:
        """Material type for an id from Python, None for invalid ids."""
        info = self.get_material_info(material_id)
        return info.material_type if info else None

    def _check_material(self, material_id: int) -> None:
        if not 0 <= material_id < num_materials[None]:
            raise InvalidScene(f"Invalid material_id: {material_id}")

    # =========================================================================
    # Objects
    # =========================================================================

    def _register_object(self, obj: SphereObject | MeshObject) -> int:
        if obj.alias is not None:
            if obj.alias in self.aliases:
                raise InvalidScene(f"Duplicate alias: {obj.alias!r}")
            self.aliases[obj.alias] = obj
        self.objects.append(obj)
        return len(self.objects) - 1

    def add_sphere(
        self,
        center: tuple[float, float, float],
        radius: float,
        material_id: int,
        alias: str | None = None,
    ) -> int:
        """Add a sphere.

        Args:
            center: Center point (x, y, z).
            radius: Radius. Negative radii make a hollow shell (inward normals).
            material_id: Unified material id.
            alias: Optional unique name for translate/scale_radius/set_hidden.

        Returns:
            The object index.

        Raises:
            InvalidScene: On a zero or non-finite radius, an invalid material
                or a duplicate alias.
        """
        self._check_material(material_id)
        if not math.isfinite(radius) or radius == 0.0:
            raise InvalidScene(f"Sphere radius must be finite and non-zero, got {radius}")
        obj = SphereObject(
            center=_as_point(center, "Sphere center"),
            radius=Track((float(radius),)),
            material_id=material_id,
            alias=alias,
        )
        return self._register_object(obj)

    def add_triangle(
        self,
        v0: tuple[float, float, float],
        v1: tuple[float, float, float],
        v2: tuple[float, float, float],
        material_id: int,
        normals: npt.ArrayLike | None = None,
        uvs: npt.ArrayLike | None = None,
        alias: str | None = None,
    ) -> int:
        """Add a single triangle (a one-face mesh)."""
        return self.add_mesh(
            np.array([v0, v1, v2], dtype=np.float64),
            np.array([[0, 1, 2]]),
            material_id,
            normals=normals,
            uvs=uvs,
            alias=alias,
        )

    def add_mesh(
        self,
        vertices: npt.ArrayLike,
        faces: npt.ArrayLike,
        material_id: int,
        normals: npt.ArrayLike | None = None,
        uvs: npt.ArrayLike | None = None,
        alias: str | None = None,
    ) -> int:
        """Add a triangle mesh from already-parsed arrays.

        Args:
            vertices: Vertex positions, shape (n, 3).
            faces: Triangle vertex indices, shape (m, 3), counter-clockwise
                when seen from the front.
            material_id: Unified material id for every face.
            normals: Optional per-vertex normals, shape (n, 3).
            uvs: Optional per-vertex texture coordinates, shape (n, 2).
            alias: Optional unique name.

        Returns:
            The object index.

        Raises:
            InvalidScene: On malformed arrays, out-of-range indices,
                zero-area faces, an invalid material or a duplicate alias.
        """
        self._check_material(material_id)
        verts = np.asarray(vertices, dtype=np.float64)
        tris = np.asarray(faces)
        if verts.ndim != 2 or verts.shape[1] != 3 or verts.shape[0] < 3:
            raise InvalidScene(f"Mesh vertices must have shape (n>=3, 3), got {verts.shape}")
        if not np.all(np.isfinite(verts)):
            raise InvalidScene("Mesh vertices must be finite")
        if tris.ndim != 2 or tris.shape[1] != 3 or tris.shape[0] == 0:
            raise InvalidScene(f"Mesh faces must have shape (m>=1, 3), got {tris.shape}")
        if not np.issubdtype(tris.dtype, np.integer):
            raise InvalidScene("Mesh faces must be integer vertex indices")
        if tris.min() < 0 or tris.max() >= verts.shape[0]:
            raise InvalidScene("Mesh face references a vertex that does not exist")

        areas = triangle_areas(verts[tris])
        degenerate = np.flatnonzero(areas <= DEGENERATE_AREA)
        if degenerate.size:
            raise InvalidScene(f"Mesh has {degenerate.size} degenerate face(s), first is {degenerate[0]}")

        mesh_normals = None
        if normals is not None:
            mesh_normals = np.asarray(normals, dtype=np.float64)
            if mesh_normals.shape != verts.shape or not np.all(np.isfinite(mesh_normals)):
                raise InvalidScene(f"Mesh normals must be finite with shape {verts.shape}")
        mesh_uvs = None
        if uvs is not None:
            mesh_uvs = np.asarray(uvs, dtype=np.float64)
            if mesh_uvs.shape != (verts.shape[0], 2) or not np.all(np.isfinite(mesh_uvs)):
                raise InvalidScene(f"Mesh uvs must be finite with shape ({verts.shape[0]}, 2)")

        obj = MeshObject(
            vertices=verts,
            faces=tris.astype(np.int64),
            material_id=material_id,
            normals=mesh_normals,
            uvs=mesh_uvs,
            alias=alias,
        )
        return self._register_object(obj)

    def get_object(self, alias: str) -> SphereObject | MeshObject:
        """Look up an object by alias.

        Raises:
            InvalidScene: If no object has that alias.
        """
        try:
            return self.aliases[alias]
        except KeyError:
            raise InvalidScene(f"Unknown alias: {alias!r}") from None

    # =========================================================================
    # Animation
    # =========================================================================

    def translate(
        self,
        alias: str,
        offset: tuple[float, float, float],
        keyframe: float,
        interpolation: Interpolation = Interpolation.LERP,
    ) -> None:
        """Key an object's offset from its original position at a time.

        Args:
            alias: Object to move.
            offset: Offset (x, y, z) reached at the keyframe.
            keyframe: Scene time of the keyframe.
            interpolation: How the offset travels from the previous keyframe.
        """
        obj = self.get_object(alias)
        point = _as_point(offset, "Offset")
        if not obj.translation.is_animated():
            # Pin the starting position at time 0 unless the first key is at 0
            if keyframe != 0.0:
                obj.translation.add_keyframe(0.0, obj.translation.initial, Interpolation.NERP)
        obj.translation.add_keyframe(keyframe, point, interpolation)

    def scale_radius(
        self,
        alias: str,
        radius: float,
        keyframe: float,
        interpolation: Interpolation = Interpolation.LERP,
    ) -> None:
        """Key a sphere's radius at a time.

        Raises:
            InvalidScene: If the object is not a sphere or the radius is zero.
        """
        obj = self.get_object(alias)
        if not isinstance(obj, SphereObject):
            raise InvalidScene(f"scale_radius only applies to spheres, {alias!r} is a mesh")
        if not math.isfinite(radius) or radius == 0.0:
            raise InvalidScene(f"Sphere radius must be finite and non-zero, got {radius}")
        if not obj.radius.is_animated() and keyframe != 0.0:
            obj.radius.add_keyframe(0.0, obj.radius.initial, Interpolation.NERP)
        obj.radius.add_keyframe(keyframe, (float(radius),), interpolation)

    def _mesh(self, alias: str, operation: str) -> MeshObject:
        obj = self.get_object(alias)
        if not isinstance(obj, MeshObject):
            raise InvalidScene(f"{operation} does not apply to spheres, {alias!r} is a sphere")
        return obj

    def scale_all(
        self,
        alias: str,
        scale: tuple[float, float, float],
        keyframe: float,
        interpolation: Interpolation = Interpolation.LERP,
    ) -> None:
        """Key a mesh's per-axis scale about its vertex centroid at a time.

        Raises:
            InvalidScene: If the object is a sphere, or a component is zero
                or not finite.
        """
        obj = self._mesh(alias, "scale_all")
        factors = _as_point(scale, "Scale")
        if 0.0 in factors:
            raise InvalidScene(f"Scale components must be non-zero, got {factors}")
        if not obj.scale.is_animated() and keyframe != 0.0:
            obj.scale.add_keyframe(0.0, obj.scale.initial, Interpolation.NERP)
        obj.scale.add_keyframe(keyframe, factors, interpolation)

    def scale_all_uniform(
        self,
        alias: str,
        scale: float,
        keyframe: float,
        interpolation: Interpolation = Interpolation.LERP,
    ) -> None:
        self.scale_all(alias, (scale, scale, scale), keyframe, interpolation)

    def _scale_axis(
        self, alias: str, axis: int, value: float, keyframe: float, interpolation: Interpolation
    ) -> None:
        # The other axes keep whatever the track gives them at that time
        factors = list(self._mesh(alias, "scale_" + "xyz"[axis]).scale.value_at(keyframe))
        factors[axis] = value
        self.scale_all(alias, tuple(factors), keyframe, interpolation)

    def scale_x(
        self, alias: str, x: float, keyframe: float, interpolation: Interpolation = Interpolation.LERP
    ) -> None:
        self._scale_axis(alias, 0, x, keyframe, interpolation)

    def scale_y(
        self, alias: str, y: float, keyframe: float, interpolation: Interpolation = Interpolation.LERP
    ) -> None:
        self._scale_axis(alias, 1, y, keyframe, interpolation)

    def scale_z(
        self, alias: str, z: float, keyframe: float, interpolation: Interpolation = Interpolation.LERP
    ) -> None:
        self._scale_axis(alias, 2, z, keyframe, interpolation)

    def set_hidden(self, alias: str, hidden: bool = True) -> None:
        self.get_object(alias).hidden = hidden

    # =========================================================================
    # Skybox
    # =========================================================================

    def set_skybox_none(self) -> None:
        set_skybox_none()

    def set_skybox_gradient(self, intensity: float = 1.0) -> None:
        set_skybox_gradient(intensity)

    def set_skybox_texture(self, texture_id: int, intensity: float = 1.0) -> None:
        set_skybox_texture(texture_id, intensity)

    def set_skybox_image(self, pixels: npt.ArrayLike, intensity: float = 1.0) -> int:
        """Use decoded pixels as an equirectangular environment map."""
        texture_id = add_image_texture(pixels)
        set_skybox_texture(texture_id, intensity)
        return texture_id

    # =========================================================================
    # Build
    # =========================================================================

    def build(
        self,
        time_interval: tuple[float, float] = (0.0, 0.0),
        accelerate: bool = True,
    ) -> BuildStats:
        """Evaluate animation over an interval and upload the scene.

        Every object's tracks are sampled at both ends of the interval and at
        each keyframe inside it. Rays evaluate those samples at their own
        time, so interior keyframes and NERP holds show up within a frame.
        BVH bounds cover every sample.

        Args:
            time_interval: (start, end) of the shutter interval.
            accelerate: Build a BVH. When False, queries scan every primitive.

        Returns:
            Counts of uploaded primitives and BVH nodes.

        Raises:
            InvalidScene: If no visible primitive remains or the interval is
                reversed.
        """
        t0, t1 = float(time_interval[0]), float(time_interval[1])
        if not (math.isfinite(t0) and math.isfinite(t1)) or t1 < t0:
            raise InvalidScene(f"Invalid time interval ({t0}, {t1})")

        visible = [obj for obj in self.objects if not obj.hidden]
        spheres = [obj for obj in visible if isinstance(obj, SphereObject)]
        meshes = [obj for obj in visible if isinstance(obj, MeshObject)]
        triangle_count = sum(mesh.triangle_count for mesh in meshes)
        if not spheres and not meshes:
            raise InvalidScene("Scene has no visible primitives")
        if len(spheres) > MAX_SPHERES:
            raise RuntimeError(f"Maximum number of spheres ({MAX_SPHERES}) exceeded")
        if triangle_count > MAX_TRIANGLES:
            raise RuntimeError(f"Maximum number of triangles ({MAX_TRIANGLES}) exceeded")

        motions = MotionTable()
        sphere_arrays, sphere_boxes = self._evaluate_spheres(spheres, motions, t0, t1)
        triangle_arrays, triangle_boxes = self._evaluate_meshes(meshes, motions, t0, t1)

        upload_motions(motions)
        upload_primitives(sphere_arrays, triangle_arrays)

        nodes = 0
        if accelerate:
            # Global primitive order: spheres, then triangles
            arena = build_bvh(sphere_boxes + triangle_boxes)
            upload_bvh(arena)
            set_world_mode(WorldMode.BVH)
            nodes = arena.node_count
        else:
            clear_bvh()
            set_world_mode(WorldMode.LIST)

        self.last_build = BuildStats(
            spheres=len(spheres),
            triangles=triangle_count,
            bvh_nodes=nodes,
            time_interval=(t0, t1),
        )
        logger.debug(
            "Scene built for [%g, %g]: %d spheres, %d triangles, %d motion keys, %d BVH nodes",
            t0, t1, len(spheres), triangle_count, motions.knot_count, nodes,
        )
        return self.last_build

    @staticmethod
    def _evaluate_spheres(
        spheres: list[SphereObject], motions: MotionTable, t0: float, t1: float
    ) -> tuple[SphereArrays, list[AABB]]:
        n = len(spheres)
        center = np.zeros((n, 3), dtype=np.float64)
        motion = np.zeros(n, dtype=np.int32)
        material_id = np.zeros(n, dtype=np.int32)
        boxes = []
        for i, sphere in enumerate(spheres):
            knots = sample_tracks([sphere.translation, sphere.radius], t0, t1)
            motion[i] = motions.add(knots, pivot=sphere.center)
            center[i] = sphere.center
            material_id[i] = sphere.material_id
            boxes.append(
                sphere_bounds(motions.positions(motion[i], center[i]), motions.scale_values(motion[i])[:, 0])
            )
        return SphereArrays(center=center, motion=motion, material_id=material_id), boxes

    @staticmethod
    def _evaluate_meshes(
        meshes: list[MeshObject], motions: MotionTable, t0: float, t1: float
    ) -> tuple[TriangleArrays, list[AABB]]:
        vertices, normals, uvs = [], [], []
        has_normals, has_uvs, motion, material_id = [], [], [], []
        boxes = []
        for mesh in meshes:
            m = mesh.triangle_count
            knots = sample_tracks([mesh.translation, mesh.scale], t0, t1)
            mesh_motion = motions.add(knots, pivot=mesh.centroid())
            corners = mesh.vertices[mesh.faces]
            # (knots, m, 3, 3): every triangle at every knot
            moved = motions.positions(mesh_motion, corners)
            boxes.extend(triangle_bounds(moved[:, j]) for j in range(m))

            vertices.append(corners)
            if mesh.normals is not None:
                normals.append(mesh.normals[mesh.faces])
            else:
                normals.append(np.zeros((m, 3, 3)))
            if mesh.uvs is not None:
                uvs.append(mesh.uvs[mesh.faces])
            else:
                uvs.append(np.zeros((m, 3, 2)))
            has_normals.append(np.full(m, int(mesh.normals is not None), dtype=np.int32))
            has_uvs.append(np.full(m, int(mesh.uvs is not None), dtype=np.int32))
            motion.append(np.full(m, mesh_motion, dtype=np.int32))
            material_id.append(np.full(m, mesh.material_id, dtype=np.int32))

        if not meshes:
            return TriangleArrays(
                vertices=np.zeros((0, 3, 3)),
                normals=np.zeros((0, 3, 3)),
                uvs=np.zeros((0, 3, 2)),
                has_normals=np.zeros(0, dtype=np.int32),
                has_uvs=np.zeros(0, dtype=np.int32),
                motion=np.zeros(0, dtype=np.int32),
                material_id=np.zeros(0, dtype=np.int32),
            ), boxes
        return TriangleArrays(
            vertices=np.concatenate(vertices),
            normals=np.concatenate(normals),
            uvs=np.concatenate(uvs),
            has_normals=np.concatenate(has_normals),
            has_uvs=np.concatenate(has_uvs),
            motion=np.concatenate(motion),
            material_id=np.concatenate(material_id),
        ), boxes
