"""Perlin gradient noise and turbulence for procedural textures.

Every seed gets its own permutation and gradient table, generated on the
host with a seeded NumPy generator. Tables are never rewritten once created,
so a noise texture keeps its pattern however many other noise textures are
added after it. Textures with the same seed share a table.

Example:
    >>> from pathtracer.textures.noise import add_noise_table, turbulence
    >>> table = add_noise_table(seed=7)
    >>> # Within a Taichi kernel:
    >>> # t = turbulence(table, p, 7)
"""

import numpy as np
import taichi as ti
import taichi.math as tm

vec3 = tm.vec3

POINT_COUNT = 256

# Distinct noise seeds alive at once
MAX_NOISE_TABLES = 64

# Default number of octaves summed by turbulence()
TURBULENCE_DEPTH = 7

_perm = ti.field(dtype=ti.i32, shape=(MAX_NOISE_TABLES, 3, POINT_COUNT))
_ranvec = ti.Vector.field(3, dtype=ti.f32, shape=(MAX_NOISE_TABLES, POINT_COUNT))

# Host map from seed to table index
_tables: dict[int, int] = {}


def clear_noise_tables() -> None:
    _tables.clear()


def get_noise_table_count() -> int:
    return len(_tables)


def add_noise_table(seed: int = 0) -> int:
    """Table index for a seed, generating the table on first use.

    Args:
        seed: Seed for the NumPy generator.

    Returns:
        Index of the table, passed to perlin_noise() and friends.

    Raises:
        RuntimeError: If the maximum number of tables is exceeded.
    """
    seed = int(seed)
    if seed in _tables:
        return _tables[seed]
    table = len(_tables)
    if table >= MAX_NOISE_TABLES:
        raise RuntimeError(f"Maximum number of noise tables ({MAX_NOISE_TABLES}) exceeded")

    rng = np.random.default_rng(seed)
    vectors = rng.uniform(-1.0, 1.0, size=(POINT_COUNT, 3))
    norms = np.linalg.norm(vectors, axis=1, keepdims=True)
    norms[norms < 1e-8] = 1.0
    perms = np.stack([rng.permutation(POINT_COUNT) for _ in range(3)]).astype(np.int32)
    _write_table(table, (vectors / norms).astype(np.float32), perms)

    _tables[seed] = table
    return table


@ti.kernel
def _write_table(table: ti.i32, vectors: ti.types.ndarray(), perms: ti.types.ndarray()):
    for i in range(POINT_COUNT):
        _ranvec[table, i] = vec3(vectors[i, 0], vectors[i, 1], vectors[i, 2])
        for axis in ti.static(range(3)):
            _perm[table, axis, i] = perms[axis, i]


@ti.func
def perlin_noise(table: ti.i32, p: vec3) -> ti.f32:
    """Gradient noise in roughly [-1, 1] with Hermite-smoothed interpolation."""
    fp = tm.floor(p)
    u = p.x - fp.x
    v = p.y - fp.y
    w = p.z - fp.z
    i = ti.cast(fp.x, ti.i32)
    j = ti.cast(fp.y, ti.i32)
    k = ti.cast(fp.z, ti.i32)

    uu = u * u * (3.0 - 2.0 * u)
    vv = v * v * (3.0 - 2.0 * v)
    ww = w * w * (3.0 - 2.0 * w)

    accum = 0.0
    for di in ti.static(range(2)):
        for dj in ti.static(range(2)):
            for dk in ti.static(range(2)):
                index = (
                    _perm[table, 0, (i + di) & 255]
                    ^ _perm[table, 1, (j + dj) & 255]
                    ^ _perm[table, 2, (k + dk) & 255]
                )
                weight = vec3(u - di, v - dj, w - dk)
                accum += (
                    (di * uu + (1 - di) * (1.0 - uu))
                    * (dj * vv + (1 - dj) * (1.0 - vv))
                    * (dk * ww + (1 - dk) * (1.0 - ww))
                    * tm.dot(_ranvec[table, index], weight)
                )
    return accum


@ti.func
def turbulence(table: ti.i32, p: vec3, depth: ti.i32) -> ti.f32:
    """Sum of |depth| octaves of noise with halving weights."""
    accum = 0.0
    temp_p = p
    weight = 1.0
    for _ in range(depth):
        accum += weight * perlin_noise(table, temp_p)
        weight *= 0.5
        temp_p *= 2.0
    return ti.abs(accum)


@ti.func
def marble(table: ti.i32, color: vec3, scale: ti.f32, p: vec3) -> vec3:
    """Marble-like veins: color * 0.5 * (1 + sin(scale * z + 10 * turbulence))."""
    return color * 0.5 * (1.0 + ti.sin(scale * p.z + 10.0 * turbulence(table, p, TURBULENCE_DEPTH)))
