"""
Venue Image Generation

Image-generation orchestration for venue seat-section photos: provider
routing, reference conditioning, bounded polling, WebP post-processing,
object storage upload and reproducible generation records.
"""

__version__ = "0.1.0"

try:
    import importlib.metadata

    __version__ = importlib.metadata.version("venue-imagegen")
except (importlib.metadata.PackageNotFoundError, ImportError):
    # Fallback for development mode
    pass

__all__ = ["__version__"]
