import re
from collections.abc import Callable
from pathlib import Path

import numpy as np
import dask.array as da
import tifffile

from . import log
from .exceptions import NoFilesMatchedError
from .multifile_array import MultifileArray

DEFAULT_WILDCARD = r"(\d+)"

logger = log.get("file_io")


def pattern_to_regex(filepattern: str) -> re.Pattern:
    """
    Compile a ``*`` wildcard pattern into a regular expression.

    Each ``*`` becomes one digit-capturing group, everything else is matched
    literally and the whole filename must match.

    Examples
    --------
    >>> pattern_to_regex("image_z=*_t=*.tiff").pattern
    'image_z=(\\\\d+)_t=(\\\\d+)\\\\.tiff'
    """
    parts = [re.escape(p) for p in filepattern.split("*")]
    return re.compile(DEFAULT_WILDCARD.join(parts))


def _grid_shape(order: list[tuple[int, ...]]) -> tuple[int, ...]:
    """Number of distinct values at each position of the order tuples."""
    return tuple(len({o[i] for o in order}) for i in range(len(order[0])))


def select_series(filepattern: str | re.Pattern, dir: str | Path | None = None) -> np.ndarray:
    """
    Collect files matching ``filepattern``, ordered by their numeric parts.

    Parameters
    ----------
    filepattern : str or re.Pattern
        A string where each ``*`` matches one integer (``"myimage_*.png"``),
        or a compiled regular expression whose groups capture digits
        (``re.compile(r"myimage_(\\d+)\\.png")``). An absolute string
        pattern also supplies the directory when ``dir`` is not given.
    dir : str or Path, optional
        Directory to search. Defaults to the current working directory.

    Returns
    -------
    numpy.ndarray
        Object array of paths. With several captures forming a complete
        grid, the array has one axis per capture, last capture first, e.g.
        ``(n_t, n_z)`` for ``"image_z=*_t=*.tiff"``. Otherwise it is 1-D.

    Raises
    ------
    NoFilesMatchedError
        If nothing in ``dir`` matches.
    FileNotFoundError
        If ``dir`` does not exist.

    Notes
    -----
    Ordering is numeric, so ``myimage_9`` precedes ``myimage_10`` and zero
    padding is optional. The last capture varies slowest.

    Examples
    --------
    With ``myimage_1.png`` ... ``myimage_12.png`` in the current directory:

    >>> [Path(fn).name for fn in select_series("myimage_*.png")[:3]]
    ['myimage_1.png', 'myimage_2.png', 'myimage_3.png']
    """
    if isinstance(filepattern, (str, Path)):
        filepattern = str(filepattern)
        if dir is None and Path(filepattern).is_absolute():
            dir, filepattern = Path(filepattern).parent, Path(filepattern).name
        rex = pattern_to_regex(filepattern)
        match = rex.fullmatch
    elif isinstance(filepattern, re.Pattern):
        rex = filepattern
        match = rex.search
    else:
        raise TypeError(
            f"filepattern must be a str or compiled regex, got {type(filepattern).__name__}"
        )

    path = Path.cwd() if dir is None else Path(dir)
    if not path.is_dir():
        raise FileNotFoundError(f"Directory not found: {path}")

    filenames = []
    order = []
    for name in sorted(p.name for p in path.iterdir()):
        m = match(name)
        if m is None:
            continue
        try:
            captures = tuple(int(c) for c in m.groups())
        except (TypeError, ValueError) as e:
            raise ValueError(
                f"pattern {rex.pattern!r} must capture only digits; {name!r} gave {m.groups()}"
            ) from e
        filenames.append(str(path / name))
        # reversed so that the last capture varies slowest
        order.append(captures[::-1])

    if not filenames:
        raise NoFilesMatchedError(f"no files in {path} matched {rex.pattern!r}")
    logger.debug(f"{len(filenames)} files in {path} matched {rex.pattern!r}")

    perm = sorted(range(len(order)), key=order.__getitem__)
    filenames = np.array([filenames[i] for i in perm], dtype=object)
    order = [order[i] for i in perm]

    if len(order[0]) <= 1:
        return filenames

    shape = _grid_shape(order)
    if int(np.prod(shape)) == len(filenames) and len(set(order)) == len(order):
        return filenames.reshape(shape)

    logger.warning(
        "filenames are not in a grid-like arrangement; returning a vector instead"
    )
    return filenames


def read_tiff(buffer: np.ndarray, filename: str | Path) -> None:
    """
    Decode ``filename`` with tifffile into ``buffer``.

    Suitable as the loader of a MultifileArray over TIFF files.
    """
    data = tifffile.imread(filename)
    if data.shape != buffer.shape:
        raise ValueError(
            f"{filename} holds an array of shape {data.shape}, expected {buffer.shape}"
        )
    buffer[...] = data


def load_series(f: Callable, filepattern, buffer=None, *, dir: str | Path | None = None) -> MultifileArray:
    """
    Create a lazily-loaded array from a set of files.

    Two forms are supported:

    ``load_series(f, filepattern, dir=None)``
        ``f(filename)`` returns the array stored in ``filename``;
        ``filepattern`` is resolved with :func:`select_series`. The first
        file is read to size the buffer.

    ``load_series(f, filenames, buffer)``
        ``f(buffer, filename)`` fills ``buffer`` in place. ``filenames`` is
        the grid of files, shaped like the trailing axes of the result.

    Parameters
    ----------
    f : callable
        Reader (pattern form) or in-place loader (explicit form).
    filepattern : str, re.Pattern or array-like
        Pattern, or the explicit grid of filenames when ``buffer`` is given.
    buffer : array-like, optional
        Preallocated buffer; selects the explicit form.
    dir : str or Path, optional
        Directory searched by the pattern form.

    Returns
    -------
    MultifileArray

    Examples
    --------
    With ``image01.tiff`` ... ``image12.tiff`` in the current directory:

    >>> img = load_series(tifffile.imread, "image*.tiff")

    Files named ``image_z=1_t=1.tiff`` ... ``image_z=5_t=30.tiff`` give a
    4-D array with the ``t`` axis before the ``z`` axis:

    >>> img = load_series(tifffile.imread, "image_z=*_t=*.tiff")
    >>> img.shape[2:]
    (30, 5)

    Choosing the grid and loading in place:

    >>> fls = select_series("image_z=*_t=*.tiff").T  # (z, t)
    >>> img = load_series(read_tiff, fls, np.empty((512, 512), np.uint16))
    """
    if isinstance(buffer, (str, Path)):
        raise TypeError(
            f"buffer must be a preallocated array, got {buffer!r}; "
            f"pass the search directory as dir={str(buffer)!r}"
        )
    if buffer is not None:
        return MultifileArray(filepattern, buffer, f)

    filenames = select_series(filepattern, dir=dir)
    # copy, so a memory-mapped result is never written through
    buffer = np.array(f(filenames.flat[0]))

    def _load(buf, fn):
        buf[...] = f(fn)

    return MultifileArray(filenames, buffer, _load)


def load_chunked(lazyloader: Callable, filenames) -> da.Array:
    """
    Concatenate the arrays stored in ``filenames`` into one dask array.

    ``filenames`` must be shaped so that it is "extended" along the axes of
    concatenation; its axes line up with the trailing axes of each block.
    Unlike :func:`load_series`, chunks may differ in size along those axes,
    and no chunk is cached.

    Examples
    --------
    Two files storing 1000 and 555 images of shape (512, 512):

    >>> fns = np.array(["myimage_1.tiff", "myimage_2.tiff"], dtype=object).reshape(1, 1, 2)
    >>> img = load_chunked(lambda fn: tifffile.memmap(fn, mode="r"), fns)
    >>> img.shape
    (512, 512, 1555)
    """
    grid = np.array(filenames, dtype=object)
    if grid.size == 0:
        raise ValueError("filenames cannot be empty")

    blocks = np.empty(grid.shape, dtype=object)
    for idx in np.ndindex(grid.shape):
        arr = lazyloader(grid[idx])
        blocks[idx] = da.from_array(arr, chunks=arr.shape)
    if grid.ndim == 0:
        return blocks[()]
    return da.block(blocks.tolist())
