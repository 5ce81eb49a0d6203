"""GhostClip: matte post-processing (crop, stroke, background) for background removal."""

__version__ = "1.0.0"
