"""
multifile_arrays - lazily-loaded arrays spread over many files.

This package uses lazy imports to minimize startup time. Heavy dependencies
like numpy, dask, and tifffile are only loaded when actually needed.
"""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("multifile_arrays")
except PackageNotFoundError:
    # fallback for source checkouts
    __version__ = "0.0.0"


__all__ = [
    # Core
    "MultifileArray",
    # File series
    "select_series",
    "load_series",
    "load_chunked",
    "read_tiff",
    # Errors
    "MultifileError",
    "ShapeMismatchError",
    "IndexOutOfRangeError",
    "NoFilesMatchedError",
]


def __getattr__(name):
    """Lazy import attributes to avoid loading heavy dependencies at startup."""
    # Core (multifile_array -> numpy, dask)
    if name == "MultifileArray":
        from . import multifile_array
        return getattr(multifile_array, name)

    # File series (file_io -> tifffile)
    if name in ("select_series", "load_series", "load_chunked", "read_tiff"):
        from . import file_io
        return getattr(file_io, name)

    # Errors (lightweight, no heavy deps)
    if name in (
        "MultifileError",
        "ShapeMismatchError",
        "IndexOutOfRangeError",
        "NoFilesMatchedError",
    ):
        from . import exceptions
        return getattr(exceptions, name)

    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
