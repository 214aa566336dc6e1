"""Texture registry and lookup.

Textures are a closed set of variants identified by an integer texture id:

- SOLID: a constant color.
- CHECKER: a 3D spatial checker choosing between two other textures by the
  parity of floor(p / scale) summed over the axes.
- IMAGE: decoded pixels stored in a shared texel pool, sampled at the nearest
  texel with clamped (u, v).
- NOISE: Perlin marble pattern scaled by a base color, from a noise table
  owned by its seed.

Textures are immutable once added and shared by id between any number of
materials and the skybox. Checkers may only reference textures that already
exist, so chains are acyclic and are resolved with a bounded loop.

Example:
    >>> from pathtracer.textures.texture import (
    ...     add_solid_texture, add_checker_texture, sample_texture
    ... )
    >>> white = add_solid_texture((0.9, 0.9, 0.9))
    >>> green = add_solid_texture((0.2, 0.3, 0.1))
    >>> checker = add_checker_texture(0.32, white, green)
    >>> # Within a Taichi kernel:
    >>> # color = sample_texture(checker, u, v, point)
"""

from enum import IntEnum

import numpy as np
import numpy.typing as npt
import taichi as ti
import taichi.math as tm

from pathtracer.errors import InvalidScene, TextureLoadError
from pathtracer.textures.noise import add_noise_table, clear_noise_tables, marble

vec3 = tm.vec3


class TextureType(IntEnum):
    """Supported texture variants."""

    SOLID = 0
    CHECKER = 1
    IMAGE = 2
    NOISE = 3


MAX_TEXTURES = 1024

# Deepest chain of checkers nested inside checkers
MAX_CHECKER_DEPTH = 8

# Shared storage for every image texture (2048 x 1024 RGB)
MAX_TEXELS = 2048 * 1024

# Texture storage: Structure of Arrays
tex_types = ti.field(dtype=ti.i32, shape=MAX_TEXTURES)
# Solid color, noise base color
tex_colors = ti.Vector.field(3, dtype=ti.f32, shape=MAX_TEXTURES)
# Checker inverse cell size, noise frequency
tex_scale = ti.field(dtype=ti.f32, shape=MAX_TEXTURES)
# Checker children
tex_even = ti.field(dtype=ti.i32, shape=MAX_TEXTURES)
tex_odd = ti.field(dtype=ti.i32, shape=MAX_TEXTURES)
# Image placement in the texel pool
tex_image_offset = ti.field(dtype=ti.i32, shape=MAX_TEXTURES)
tex_image_width = ti.field(dtype=ti.i32, shape=MAX_TEXTURES)
tex_image_height = ti.field(dtype=ti.i32, shape=MAX_TEXTURES)
# Noise table index
tex_noise_table = ti.field(dtype=ti.i32, shape=MAX_TEXTURES)
num_textures = ti.field(dtype=ti.i32, shape=())

texels = ti.Vector.field(3, dtype=ti.f32, shape=MAX_TEXELS)
num_texels = ti.field(dtype=ti.i32, shape=())

# Host mirror of nesting depth per texture (0 for non-checkers)
_checker_depths: list[int] = []


def clear_textures() -> None:
    """Remove every texture and release the texel pool."""
    num_textures[None] = 0
    num_texels[None] = 0
    _checker_depths.clear()
    clear_noise_tables()


def get_texture_count() -> int:
    return int(num_textures[None])


def get_texture_type_python(texture_id: int) -> TextureType:
    """Texture variant for an id, from Python.

    Raises:
        TextureLoadError: If the id does not name a texture.
    """
    validate_texture_id(texture_id)
    return TextureType(int(tex_types[texture_id]))


def validate_texture_id(texture_id: int) -> None:
    """Fail fast on a reference to a texture that does not exist.

    Raises:
        TextureLoadError: If the id does not name a texture.
    """
    if not isinstance(texture_id, (int, np.integer)) or not 0 <= texture_id < num_textures[None]:
        raise TextureLoadError(f"Unknown texture id: {texture_id}")


def _allocate_texture(kind: TextureType) -> int:
    idx = num_textures[None]
    if idx >= MAX_TEXTURES:
        raise RuntimeError(f"Maximum number of textures ({MAX_TEXTURES}) exceeded")
    tex_types[idx] = int(kind)
    tex_colors[idx] = vec3(0.0, 0.0, 0.0)
    tex_scale[idx] = 1.0
    tex_even[idx] = -1
    tex_odd[idx] = -1
    tex_image_offset[idx] = 0
    tex_image_width[idx] = 0
    tex_image_height[idx] = 0
    tex_noise_table[idx] = 0
    num_textures[None] = idx + 1
    _checker_depths.append(0)
    return idx


def _validate_color(color: tuple[float, float, float], what: str) -> None:
    if len(color) != 3:
        raise InvalidScene(f"{what} must have 3 components, got {len(color)}")
    for i, component in enumerate(color):
        if not np.isfinite(component) or component < 0.0:
            raise InvalidScene(f"{what} component {i} = {component} must be finite and >= 0")


def add_solid_texture(color: tuple[float, float, float]) -> int:
    """Add a constant-color texture.

    Args:
        color: RGB color. Components must be finite and non-negative.

    Returns:
        The texture id.

    Raises:
        InvalidScene: If the color is malformed.
        RuntimeError: If the maximum number of textures is exceeded.
    """
    _validate_color(color, "Texture color")
    idx = _allocate_texture(TextureType.SOLID)
    tex_colors[idx] = vec3(color[0], color[1], color[2])
    return idx


def add_checker_texture(scale: float, even_id: int, odd_id: int) -> int:
    """Add a 3D checker alternating between two existing textures.

    Args:
        scale: Edge length of one checker cell in world units.
        even_id: Texture used where the cell parity is even.
        odd_id: Texture used where the cell parity is odd.

    Returns:
        The texture id.

    Raises:
        TextureLoadError: If either child id is unknown.
        InvalidScene: If scale is not positive or nesting is too deep.
    """
    validate_texture_id(even_id)
    validate_texture_id(odd_id)
    if not scale > 0.0:
        raise InvalidScene(f"Checker scale must be positive, got {scale}")
    depth = 1 + max(_checker_depths[even_id], _checker_depths[odd_id])
    if depth > MAX_CHECKER_DEPTH:
        raise InvalidScene(f"Checker textures nested deeper than {MAX_CHECKER_DEPTH} levels")

    idx = _allocate_texture(TextureType.CHECKER)
    tex_scale[idx] = 1.0 / scale
    tex_even[idx] = even_id
    tex_odd[idx] = odd_id
    _checker_depths[idx] = depth
    return idx


def validate_image(pixels: npt.ArrayLike) -> npt.NDArray[np.float32]:
    """Normalise decoded pixels to a float32 (height, width, 3) array.

    Accepts RGB or RGBA (alpha is dropped). Integer arrays are scaled from
    [0, 255] to [0, 1].

    Raises:
        TextureLoadError: If the array is empty, wrongly shaped or contains
            non-finite values.
    """
    try:
        array = np.asarray(pixels)
    except (TypeError, ValueError) as e:
        raise TextureLoadError(f"Image data is not an array: {e}") from e

    if array.ndim != 3 or array.shape[2] not in (3, 4):
        raise TextureLoadError(f"Image data must have shape (H, W, 3|4), got {array.shape}")
    if array.shape[0] == 0 or array.shape[1] == 0:
        raise TextureLoadError("Image data is empty")
    if not (np.issubdtype(array.dtype, np.integer) or np.issubdtype(array.dtype, np.floating)):
        raise TextureLoadError(f"Unsupported image dtype {array.dtype}")

    rgb = array[:, :, :3]
    if np.issubdtype(rgb.dtype, np.integer):
        rgb = rgb.astype(np.float32) / 255.0
    else:
        rgb = rgb.astype(np.float32)
    if not np.all(np.isfinite(rgb)):
        raise TextureLoadError("Image data contains NaN or infinite values")
    return rgb


@ti.kernel
def _copy_texels(pixels: ti.types.ndarray(), offset: ti.i32, count: ti.i32):
    for k in range(count):
        texels[offset + k] = vec3(pixels[k, 0], pixels[k, 1], pixels[k, 2])


def add_image_texture(pixels: npt.ArrayLike) -> int:
    """Add an image texture from already-decoded pixels.

    Row 0 of the array is the top of the image.

    Args:
        pixels: Array of shape (height, width, 3) or (height, width, 4).

    Returns:
        The texture id.

    Raises:
        TextureLoadError: If the pixel data is unusable.
        RuntimeError: If the texel pool or texture table is full.
    """
    rgb = validate_image(pixels)
    height, width = rgb.shape[:2]
    count = height * width
    offset = int(num_texels[None])
    if offset + count > MAX_TEXELS:
        raise RuntimeError(f"Texel pool exhausted ({offset + count} > {MAX_TEXELS})")

    idx = _allocate_texture(TextureType.IMAGE)
    _copy_texels(np.ascontiguousarray(rgb.reshape(count, 3)), offset, count)
    tex_image_offset[idx] = offset
    tex_image_width[idx] = width
    tex_image_height[idx] = height
    num_texels[None] = offset + count
    return idx


def add_noise_texture(
    scale: float,
    color: tuple[float, float, float] = (1.0, 1.0, 1.0),
    seed: int = 0,
) -> int:
    """Add a Perlin marble texture.

    Args:
        scale: Spatial frequency of the pattern.
        color: Base color modulated by the pattern.
        seed: Seed of the noise pattern. Textures with the same seed
            share a pattern; other noise textures are never affected.

    Returns:
        The texture id.
    """
    _validate_color(color, "Noise color")
    if not np.isfinite(scale):
        raise InvalidScene(f"Noise scale must be finite, got {scale}")
    table = add_noise_table(seed)
    idx = _allocate_texture(TextureType.NOISE)
    tex_noise_table[idx] = table
    tex_colors[idx] = vec3(color[0], color[1], color[2])
    tex_scale[idx] = scale
    return idx


# =============================================================================
# Lookup (Taichi)
# =============================================================================


@ti.func
def _texel(texture_id: ti.i32, i: ti.i32, j: ti.i32) -> vec3:
    return texels[tex_image_offset[texture_id] + j * tex_image_width[texture_id] + i]


@ti.func
def sample_image_nearest(texture_id: ti.i32, u: ti.f32, v: ti.f32) -> vec3:
    """Nearest texel with u, v clamped to [0, 1]; v = 1 is the top row."""
    width = tex_image_width[texture_id]
    height = tex_image_height[texture_id]
    uc = tm.clamp(u, 0.0, 1.0)
    vc = 1.0 - tm.clamp(v, 0.0, 1.0)
    i = tm.clamp(ti.cast(uc * width, ti.i32), 0, width - 1)
    j = tm.clamp(ti.cast(vc * height, ti.i32), 0, height - 1)
    return _texel(texture_id, i, j)


@ti.func
def sample_image_bilinear(texture_id: ti.i32, u: ti.f32, v: ti.f32) -> vec3:
    """Bilinear lookup that wraps u around and clamps v.

    Used for environment maps, where u is longitude and v latitude.
    """
    width = tex_image_width[texture_id]
    height = tex_image_height[texture_id]

    x = (u - tm.floor(u)) * width - 0.5
    y = (1.0 - tm.clamp(v, 0.0, 1.0)) * height - 0.5
    x0 = tm.floor(x)
    y0 = tm.floor(y)
    fx = x - x0
    fy = y - y0

    i0 = ti.cast(x0, ti.i32)
    i0 = ((i0 % width) + width) % width
    i1 = (i0 + 1) % width
    j0 = tm.clamp(ti.cast(y0, ti.i32), 0, height - 1)
    j1 = tm.clamp(ti.cast(y0, ti.i32) + 1, 0, height - 1)

    top = (1.0 - fx) * _texel(texture_id, i0, j0) + fx * _texel(texture_id, i1, j0)
    bottom = (1.0 - fx) * _texel(texture_id, i0, j1) + fx * _texel(texture_id, i1, j1)
    return (1.0 - fy) * top + fy * bottom


@ti.func
def _checker_pick(texture_id: ti.i32, p: vec3) -> ti.i32:
    cell = tm.floor(tex_scale[texture_id] * p)
    parity = (ti.cast(cell.x, ti.i32) + ti.cast(cell.y, ti.i32) + ti.cast(cell.z, ti.i32)) & 1
    return ti.select(parity == 0, tex_even[texture_id], tex_odd[texture_id])


@ti.func
def sample_texture(texture_id: ti.i32, u: ti.f32, v: ti.f32, p: vec3) -> vec3:
    """Evaluate a texture at surface coordinates (u, v) and point p.

    Args:
        texture_id: The texture to evaluate.
        u: Surface u coordinate.
        v: Surface v coordinate.
        p: World-space hit point.

    Returns:
        The RGB color. Unknown ids evaluate to black.
    """
    current = texture_id
    for _ in range(MAX_CHECKER_DEPTH):
        if current >= 0 and tex_types[current] == int(TextureType.CHECKER):
            current = _checker_pick(current, p)

    color = vec3(0.0, 0.0, 0.0)
    if 0 <= current < num_textures[None]:
        kind = tex_types[current]
        if kind == int(TextureType.SOLID):
            color = tex_colors[current]
        elif kind == int(TextureType.IMAGE):
            color = sample_image_nearest(current, u, v)
        elif kind == int(TextureType.NOISE):
            color = marble(tex_noise_table[current], tex_colors[current], tex_scale[current], p)
    return color
