"""
Lazily-loaded array spread over many files.

This module provides MultifileArray, which presents a grid of files as one
large N-dimensional array. Only one file ("chunk") is held in memory at a
time, in a reusable buffer that is refilled on demand by a caller-supplied
loader.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np
import dask.array as da

from multifile_arrays import log
from multifile_arrays._protocols import BUFFER_ATTRS, BufferProtocol, Loader
from multifile_arrays.exceptions import IndexOutOfRangeError, ShapeMismatchError

logger = log.get("multifile_array")


def _range_to_slice(r: range) -> slice:
    """Convert a normalized, in-bounds range to an equivalent slice."""
    if len(r) == 0:
        return slice(0, 0)
    stop = r[-1] + (1 if r.step > 0 else -1)
    # a descending range ending at 0 has no non-negative stop
    return slice(r.start, stop if stop >= 0 else None, r.step)


def _normalize_key(key, shape: tuple[int, ...]) -> tuple[int | range, ...]:
    """
    Expand ``key`` to one component per axis and validate it.

    Integers are wrapped into ``[0, n)``, slices become ranges, explicit
    ranges must lie inside the axis. Nothing is loaded here, so a failure
    leaves the array untouched.
    """
    if not isinstance(key, tuple):
        key = (key,)

    n_ellipsis = sum(1 for k in key if k is Ellipsis)
    if n_ellipsis > 1:
        raise IndexOutOfRangeError("an index can only have a single ellipsis ('...')")
    n_given = len(key) - n_ellipsis
    if n_given > len(shape):
        raise IndexOutOfRangeError(
            f"too many indices for array: array is {len(shape)}-dimensional, "
            f"but {n_given} were indexed"
        )
    if n_ellipsis:
        i = key.index(Ellipsis)
        fill = (slice(None),) * (len(shape) - n_given)
        key = key[:i] + fill + key[i + 1:]
    else:
        key = key + (slice(None),) * (len(shape) - n_given)

    out = []
    for axis, (k, n) in enumerate(zip(key, shape)):
        if isinstance(k, (bool, np.bool_)):
            raise TypeError(f"boolean index on axis {axis} is not supported")
        if isinstance(k, (int, np.integer)):
            i = int(k)
            if i < 0:
                i += n
            if not 0 <= i < n:
                raise IndexOutOfRangeError(
                    f"index {int(k)} is out of bounds for axis {axis} with size {n}"
                )
            out.append(i)
        elif isinstance(k, slice):
            out.append(range(*k.indices(n)))
        elif isinstance(k, range):
            if len(k) and not (0 <= min(k[0], k[-1]) and max(k[0], k[-1]) < n):
                raise IndexOutOfRangeError(
                    f"range {k} is out of bounds for axis {axis} with size {n}"
                )
            out.append(k)
        else:
            raise TypeError(
                f"unsupported index type {type(k).__name__!r} on axis {axis}; "
                f"use integers, slices, ranges or '...'"
            )
    return tuple(out)


def _result_shape(components: Sequence[int | range]) -> tuple[int, ...]:
    # integer components are squeezed out
    return tuple(len(c) for c in components if isinstance(c, range))


class MultifileArray:
    """
    N-dimensional array whose trailing axes index a grid of files.

    The leading ``buffer.ndim`` axes range over the buffer, the trailing
    ``filenames.ndim`` axes range over the file grid. Reading an element
    loads the file it lives in into ``buffer`` (unless that file is already
    resident) and then reads from the buffer.

    Parameters
    ----------
    filenames : array-like
        Grid of file identifiers, usually paths. Any nested sequence or
        ndarray; it is stored as a read-only object array. Nested
        sequences are unpacked down to scalars, so pass an object ndarray
        to use tuples or other sequences as identifiers.
    buffer : array-like
        Preallocated container matching the shape and dtype of one file's
        contents. The array takes ownership of it.
    loader : callable
        ``loader(buffer, identifier)`` fills ``buffer`` in place with the
        contents of ``identifier``. Its return value is ignored.
    ndim : int, optional
        Expected total dimensionality. Must equal
        ``buffer.ndim + filenames.ndim``.
    dtype : dtype-like, optional
        Expected element type. Must equal ``buffer.dtype``.

    Raises
    ------
    ShapeMismatchError
        If ``ndim`` is given and disagrees with the buffer and grid.
    TypeError
        If an argument is missing or of the wrong kind, or if ``dtype``
        disagrees with the buffer.

    Notes
    -----
    Not thread-safe. The resident index and the buffer form a one-entry
    cache shared by every read; guard an instance with a lock, or use one
    instance per thread. :meth:`to_dask` takes care of this for dask.

    Examples
    --------
    >>> import numpy as np
    >>> def load(buf, fn):
    ...     buf[...] = np.load(fn)
    >>> arr = MultifileArray(["a.npy", "b.npy", "c.npy"], np.empty((64, 64)), load)
    >>> arr.shape
    (64, 64, 3)
    >>> arr[:, :, 1].shape  # loads b.npy once
    (64, 64)
    """

    def __init__(
        self,
        filenames,
        buffer: BufferProtocol,
        loader: Loader,
        *,
        ndim: int | None = None,
        dtype=None,
    ):
        if filenames is None:
            raise TypeError("filenames must be an array-like of file identifiers, got None")
        if buffer is None:
            raise TypeError("buffer must be a preallocated array, got None")
        if not isinstance(buffer, BufferProtocol):
            missing = [a for a in BUFFER_ATTRS if not hasattr(buffer, a)]
            raise TypeError(
                f"buffer of type {type(buffer).__name__} is missing {missing}"
            )
        if not callable(loader):
            raise TypeError(f"loader must be callable, got {type(loader).__name__}")

        if isinstance(filenames, np.ndarray) and filenames.dtype == object:
            # prebuilt grids keep their shape, even for tuple identifiers
            grid = filenames.copy()
        else:
            grid = np.array(filenames, dtype=object)
        grid.setflags(write=False)

        total = buffer.ndim + grid.ndim
        if ndim is not None and ndim != total:
            raise ShapeMismatchError(
                f"ndim={ndim} should be the sum of the number of dimensions in "
                f"buffer ({buffer.ndim}) and filenames ({grid.ndim})"
            )
        if dtype is not None and np.dtype(dtype) != np.dtype(buffer.dtype):
            raise TypeError(
                f"dtype {np.dtype(dtype)} does not match buffer dtype {buffer.dtype}"
            )

        self._filenames = grid
        self._buffer = buffer
        self._loader = loader
        self._nbuf = buffer.ndim
        self._current: tuple[int, ...] | None = None

    @property
    def filenames(self) -> np.ndarray:
        return self._filenames

    @property
    def buffer(self) -> BufferProtocol:
        return self._buffer

    @property
    def loader(self) -> Loader:
        return self._loader

    @property
    def current_index(self) -> tuple[int, ...] | None:
        """Grid index of the resident chunk, or None before the first load."""
        return self._current

    @property
    def shape(self) -> tuple[int, ...]:
        return tuple(self._buffer.shape) + self._filenames.shape

    @property
    def axis_ranges(self) -> tuple[range, ...]:
        return tuple(range(n) for n in self.shape)

    @property
    def ndim(self) -> int:
        return self._nbuf + self._filenames.ndim

    @property
    def dtype(self) -> np.dtype:
        return np.dtype(self._buffer.dtype)

    @property
    def size(self) -> int:
        return int(np.prod(self.shape, dtype=np.int64))

    def __len__(self) -> int:
        if self.ndim == 0:
            raise TypeError("len() of unsized object")
        return self.shape[0]

    def __repr__(self) -> str:
        return (
            f"<MultifileArray shape={self.shape} dtype={self.dtype} "
            f"files={self._filenames.shape} current={self._current}>"
        )

    def split_index(self, index: Sequence) -> tuple[tuple, tuple]:
        """Split a full index into its (buffer, file grid) parts."""
        index = tuple(index)
        if len(index) != self.ndim:
            raise IndexOutOfRangeError(
                f"expected {self.ndim} index components, got {len(index)}"
            )
        return index[:self._nbuf], index[self._nbuf:]

    def _setbuffer(self, selector: tuple[int, ...]) -> None:
        if selector == self._current:
            return
        filename = self._filenames[selector]
        logger.debug(f"loading chunk {selector} from {filename}")
        self._loader(self._buffer, filename)
        # only a successful load marks the chunk resident
        self._current = selector

    def invalidate(self) -> None:
        """Forget the resident chunk so the next access reloads it."""
        logger.debug(f"invalidating chunk {self._current}")
        self._current = None

    def get(self, *index):
        """Return the single element at ``index`` (one integer per axis)."""
        if len(index) != self.ndim:
            raise IndexOutOfRangeError(
                f"expected {self.ndim} integer indices, got {len(index)}"
            )
        for axis, i in enumerate(index):
            if isinstance(i, (bool, np.bool_)) or not isinstance(i, (int, np.integer)):
                raise TypeError(f"index on axis {axis} must be an integer, got {i!r}")
        components = _normalize_key(tuple(index), self.shape)
        bufidx, selector = self.split_index(components)
        self._setbuffer(selector)
        return self._buffer[bufidx]

    def __getitem__(self, key):
        components = _normalize_key(key, self.shape)
        if not any(isinstance(c, range) for c in components) and key is not Ellipsis:
            bufidx, selector = self.split_index(components)
            self._setbuffer(selector)
            return self._buffer[bufidx]
        out = np.empty(_result_shape(components), dtype=self.dtype)
        return self._copy(out, components)

    def read(self, key=Ellipsis) -> np.ndarray:
        """Materialize the region addressed by ``key`` as a new ndarray."""
        components = _normalize_key(key, self.shape)
        out = np.empty(_result_shape(components), dtype=self.dtype)
        return self._copy(out, components)

    def copyto(self, dest, key=Ellipsis):
        """
        Copy the region addressed by ``key`` into ``dest``.

        Each file touched by the region is loaded at most once; the buffer
        sub-region is copied wholesale for every file, rather than element
        by element.

        Parameters
        ----------
        dest : array-like
            Destination with exactly the shape of the selected region.
            Axes selected with an integer do not appear in it.
        key : int, slice, range, Ellipsis or tuple thereof
            Region to copy. Slices are clamped like numpy's; ranges must
            lie inside the array.

        Returns
        -------
        dest
            The populated destination.

        Raises
        ------
        IndexOutOfRangeError
            Before any load, if a component is out of bounds.
        ShapeMismatchError
            If ``dest.shape`` differs from the region's shape.
        """
        components = _normalize_key(key, self.shape)
        return self._copy(dest, components)

    def _copy(self, dest, components):
        expected = _result_shape(components)
        if tuple(dest.shape) != expected:
            raise ShapeMismatchError(
                f"destination shape {tuple(dest.shape)} does not match selection shape {expected}"
            )
        if 0 in expected:
            return dest

        bufsel, filesel = self.split_index(components)
        bufkey = tuple(_range_to_slice(c) if isinstance(c, range) else c for c in bufsel)
        prefix = (slice(None),) * sum(isinstance(c, range) for c in bufsel)

        keep = [isinstance(c, range) for c in filesel]
        file_ranges = [c if k else range(c, c + 1) for c, k in zip(filesel, keep)]

        for pos in np.ndindex(*(len(r) for r in file_ranges)):
            selector = tuple(r[p] for r, p in zip(file_ranges, pos))
            self._setbuffer(selector)
            suffix = tuple(p for p, k in zip(pos, keep) if k)
            dest[prefix + suffix] = self._buffer[bufkey]
        return dest

    def __array__(self, dtype=None, copy=None):
        if copy is False:
            raise ValueError("a MultifileArray cannot be viewed without copying")
        out = np.empty(self.shape, dtype=self.dtype)
        self._copy(out, _normalize_key(Ellipsis, self.shape))
        if dtype is not None:
            out = out.astype(dtype, copy=False)
        return out

    def to_dask(self) -> da.Array:
        """
        Wrap the array in a dask array with one block per file.

        Reads are serialized with a lock, so the single-chunk cache stays
        consistent under dask's threaded scheduler.
        """
        chunks = tuple(self._buffer.shape) + (1,) * self._filenames.ndim
        return da.from_array(
            self,
            chunks=chunks,
            lock=True,
            name=False,
            meta=np.empty((0,) * self.ndim, dtype=self.dtype),
        )
