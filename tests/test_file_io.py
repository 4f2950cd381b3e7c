import re
from pathlib import Path

import numpy as np
import pytest
import tifffile

from multifile_arrays import log
from multifile_arrays.exceptions import NoFilesMatchedError
from multifile_arrays.file_io import (
    load_chunked,
    load_series,
    pattern_to_regex,
    read_tiff,
    select_series,
)


def test_select_series_orders_numerically(tmp_path):
    for name in ("img_2.dat", "img_10.dat", "img_1.dat", "other_3.dat"):
        (tmp_path / name).write_text("x")
    fls = select_series("img_*.dat", dir=tmp_path)
    assert fls.shape == (3,)
    assert [Path(f).name for f in fls] == ["img_1.dat", "img_2.dat", "img_10.dat"]


def test_select_series_skips_extraneous_files(series_dir):
    fls = select_series("myimage_*.tiff", dir=series_dir)
    assert fls.shape == (12,)
    assert fls[1] == str(series_dir / "myimage_2.tiff")
    assert fls[10] == str(series_dir / "myimage_11.tiff")


def test_select_series_absolute_pattern(series_dir):
    fls = select_series("myimage_*.tiff", dir=series_dir)
    fls2 = select_series(str(series_dir / "myimage_*.tiff"))
    np.testing.assert_array_equal(fls, fls2)


def test_select_series_regex(series_dir):
    fls = select_series(re.compile(r"myimage_(\d+)\.tiff"), dir=series_dir)
    assert [Path(f).name for f in fls] == [f"myimage_{i}.tiff" for i in range(1, 13)]


def test_select_series_regex_must_capture_digits(series_dir):
    with pytest.raises(ValueError, match="capture only digits"):
        select_series(re.compile(r"(\w+)\.txt"), dir=series_dir)


def test_pattern_is_literal_outside_wildcards(tmp_path):
    (tmp_path / "a_1.tif").write_text("x")
    (tmp_path / "a_2xtif").write_text("x")
    (tmp_path / "a_3.tif.bak").write_text("x")
    fls = select_series("a_*.tif", dir=tmp_path)
    assert [Path(f).name for f in fls] == ["a_1.tif"]
    assert pattern_to_regex("a_*.tif").fullmatch("a_12.tif")


def test_select_series_grid(zt_dir):
    fls = select_series("myimage_z=*_t=*.tiff", dir=zt_dir)
    # last wildcard first
    assert fls.shape == (5, 4)
    for z in range(1, 5):
        for t in range(1, 6):
            assert fls[t - 1, z - 1] == str(zt_dir / f"myimage_z={z}_t={t}.tiff")


def test_select_series_incomplete_grid_is_flat(zt_dir, caplog):
    (zt_dir / "myimage_z=2_t=3.tiff").unlink()
    log.attach(caplog.handler)
    try:
        fls = select_series("myimage_z=*_t=*.tiff", dir=zt_dir)
    finally:
        log.detach(caplog.handler)

    assert fls.shape == (19,)
    names = [Path(f).name for f in fls]
    assert names[:4] == [f"myimage_z={z}_t=1.tiff" for z in range(1, 5)]
    assert any("grid-like" in r.getMessage() for r in caplog.records)


def test_select_series_no_match(tmp_path):
    (tmp_path / "unrelated.txt").write_text("x")
    with pytest.raises(NoFilesMatchedError, match="no files"):
        select_series("myimage_*.tiff", dir=tmp_path)
    with pytest.raises(FileNotFoundError):
        select_series("myimage_*.tiff", dir=tmp_path)


def test_select_series_missing_directory(tmp_path):
    with pytest.raises(FileNotFoundError, match="Directory not found"):
        select_series("myimage_*.tiff", dir=tmp_path / "nope")


def test_select_series_bad_pattern_type(tmp_path):
    with pytest.raises(TypeError):
        select_series(42, dir=tmp_path)


def test_load_series_from_pattern(series_dir):
    img = load_series(tifffile.imread, "myimage_*.tiff", dir=series_dir)
    assert img.shape == (5, 7, 12)
    assert img.dtype == np.uint8
    for i in range(12):
        assert np.all(img[:, :, i] == i + 1)


def test_load_series_explicit_grid(zt_dir, zt_encode):
    fls = select_series("myimage_z=*_t=*.tiff", dir=zt_dir).T
    img = load_series(read_tiff, fls, np.zeros((5, 7), dtype=np.uint16))
    assert img.shape == (5, 7, 4, 5)
    for z in range(1, 5):
        for t in range(1, 6):
            assert np.all(img[:, :, z - 1, t - 1] == zt_encode(z, t))


def test_load_series_grid_pattern(zt_dir, zt_encode):
    img = load_series(tifffile.imread, str(zt_dir / "myimage_z=*_t=*.tiff"))
    assert img.shape == (5, 7, 5, 4)
    for z in range(1, 5):
        for t in range(1, 6):
            assert np.all(img[:, :, t - 1, z - 1] == zt_encode(z, t))


def test_read_tiff_shape_mismatch(series_dir):
    with pytest.raises(ValueError, match="expected"):
        read_tiff(np.zeros((3, 3), dtype=np.uint8), series_dir / "myimage_1.tiff")


def test_load_chunked(tmp_path):
    fns = [tmp_path / "myimage_1.tiff", tmp_path / "myimage_2.tiff"]
    rng = np.random.default_rng(0)
    img1 = rng.integers(0, 255, (8, 7, 10), dtype=np.uint8)
    img2 = rng.integers(0, 255, (8, 7, 4), dtype=np.uint8)
    tifffile.imwrite(fns[0], img1)
    tifffile.imwrite(fns[1], img2)

    filenames = np.array([str(f) for f in fns], dtype=object).reshape(1, 1, 2)
    img = load_chunked(lambda fn: tifffile.memmap(fn, mode="r"), filenames)
    assert img.shape == (8, 7, 14)
    np.testing.assert_array_equal(img[:, :, :10].compute(), img1)
    np.testing.assert_array_equal(img[:, :, 10:].compute(), img2)


def test_load_chunked_stacks_along_leading_grid_axis():
    blocks = {"a": np.zeros((2, 3)), "b": np.ones((4, 3))}
    img = load_chunked(blocks.__getitem__, np.array(["a", "b"], dtype=object).reshape(2, 1))
    assert img.shape == (6, 3)
    np.testing.assert_array_equal(img.compute()[2:], 1)


def test_load_chunked_empty():
    with pytest.raises(ValueError, match="cannot be empty"):
        load_chunked(lambda fn: np.zeros(3), [])


def test_load_series_rejects_directory_as_buffer(series_dir):
    with pytest.raises(TypeError, match="dir="):
        load_series(tifffile.imread, "myimage_*.tiff", str(series_dir))
    with pytest.raises(TypeError, match="dir="):
        load_series(tifffile.imread, "myimage_*.tiff", series_dir)
