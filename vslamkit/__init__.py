"""Geometry and data helpers for feature-based visual SLAM."""

__version__ = "0.1.0"

__all__ = [
    "ar_plane",
    "converter",
    "datasets",
    "frame",
    "initializer",
    "tracking_state",
    "two_view",
    "vslamlab",
]