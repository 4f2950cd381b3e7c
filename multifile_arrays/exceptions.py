"""
Exceptions raised by multifile_arrays.

Each one derives from the builtin a caller would catch for the same problem,
so ``except IndexError`` keeps working. Loader failures are never wrapped.
"""


class MultifileError(Exception):
    """Base class for all exceptions raised by multifile_arrays."""


class ShapeMismatchError(MultifileError, ValueError):
    """
    Dimensionality of the buffer and the file grid disagree with a declared
    total, or a copy destination has the wrong shape.
    """


class IndexOutOfRangeError(MultifileError, IndexError):
    """An index or range component falls outside the array bounds."""


class NoFilesMatchedError(MultifileError, FileNotFoundError):
    """A filename pattern matched nothing in the searched directory."""
