"""Textures addressed by integer id: solid, checker, image and Perlin noise."""

from .noise import add_noise_table, clear_noise_tables, marble, perlin_noise, turbulence
from .texture import (
    MAX_TEXTURES,
    TextureType,
    add_checker_texture,
    add_image_texture,
    add_noise_texture,
    add_solid_texture,
    clear_textures,
    get_texture_count,
    get_texture_type_python,
    sample_image_bilinear,
    sample_image_nearest,
    sample_texture,
    validate_image,
    validate_texture_id,
)

__all__ = [
    "MAX_TEXTURES",
    "TextureType",
    "add_solid_texture",
    "add_checker_texture",
    "add_image_texture",
    "add_noise_texture",
    "clear_textures",
    "get_texture_count",
    "get_texture_type_python",
    "validate_image",
    "validate_texture_id",
    "sample_texture",
    "sample_image_nearest",
    "sample_image_bilinear",
    "add_noise_table",
    "clear_noise_tables",
    "perlin_noise",
    "turbulence",
    "marble",
]
