"""
Shared pytest fixtures for multifile_arrays tests.

Usage:
    pytest tests/ -v                              # Run all tests
    pytest tests/test_multifile_array.py -v       # Run specific test file
    MFA_DEBUG=1 pytest tests/                     # Log every chunk load
"""

import numpy as np
import pytest
import tifffile


class CountingLoader:
    """
    Loader that fills the buffer from a table of chunks and records calls.

    ``chunks`` maps identifier -> array; ``fail`` holds identifiers that
    raise ``OSError`` instead of loading.
    """

    def __init__(self, chunks: dict, fail=()):
        self.chunks = chunks
        self.fail = set(fail)
        self.calls = []

    def __call__(self, buffer, identifier):
        self.calls.append(identifier)
        if identifier in self.fail:
            raise OSError(f"cannot read {identifier}")
        buffer[...] = self.chunks[identifier]


def make_chunk(shape, sel):
    """Chunk whose values encode both the in-buffer position and the grid index."""
    base = np.arange(int(np.prod(shape)), dtype=np.float64).reshape(shape)
    offset = sum(1000 * 10**k * (i + 1) for k, i in enumerate(sel))
    return base + offset


@pytest.fixture
def grid_factory():
    """
    Build (filenames, chunks) for a grid of the given shape.

    Identifiers are "f_<i>_<j>..." strings laid out in the grid.
    """

    def _make(buffer_shape, grid_shape):
        filenames = np.empty(grid_shape, dtype=object)
        chunks = {}
        for sel in np.ndindex(*grid_shape):
            name = "f_" + "_".join(str(i) for i in sel)
            filenames[sel] = name
            chunks[name] = make_chunk(buffer_shape, sel)
        return filenames, chunks

    return _make


@pytest.fixture
def series_dir(tmp_path):
    """myimage_1.tiff ... myimage_12.tiff, each a (5, 7) uint8 image filled with its number."""
    for i in range(1, 13):
        tifffile.imwrite(tmp_path / f"myimage_{i}.tiff", np.full((5, 7), i, dtype=np.uint8))
    (tmp_path / "junk.txt").write_text("blah blah")
    return tmp_path


def encode(z, t):
    return np.uint16(z | (t << 8))


@pytest.fixture
def zt_dir(tmp_path):
    """myimage_z=<z>_t=<t>.tiff for z in 1..4, t in 1..5, (5, 7) uint16 filled with encode(z, t)."""
    for z in range(1, 5):
        for t in range(1, 6):
            tifffile.imwrite(
                tmp_path / f"myimage_z={z}_t={t}.tiff",
                np.full((5, 7), encode(z, t), dtype=np.uint16),
            )
    return tmp_path


@pytest.fixture
def loader_cls():
    return CountingLoader


@pytest.fixture
def chunk():
    return make_chunk


@pytest.fixture
def zt_encode():
    return encode
