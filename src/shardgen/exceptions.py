"""Custom exceptions for world generation."""


class WorldGenError(Exception):
    """Base exception for world generation errors."""

    pass


class ConfigurationError(WorldGenError):
    """Raised before any work when a stage is misconfigured.

    Covers non-positive grid dimensions, grids that disagree across a
    stage's inputs, and parameter overrides that fail validation.
    """

    pass
