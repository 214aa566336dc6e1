"""Exceptions raised while building scenes and render configurations.

All of these are raised before any render kernel is launched. Problems that
appear inside a single sample (NaN radiance and the like) are sanitized in the
integrator instead of being raised.
"""


class RenderError(Exception):
    """Base exception for all renderer errors."""

    pass


class InvalidScene(RenderError, ValueError):
    """The scene or camera cannot be rendered.

    Raised for an empty or malformed primitive set, unknown object aliases,
    invalid material parameters and degenerate camera bases.
    """

    pass


class TextureLoadError(RenderError):
    """A texture's backing resource could not be resolved into usable data."""

    pass


class ConfigurationError(RenderError, ValueError):
    """A render configuration value is out of range."""

    pass
