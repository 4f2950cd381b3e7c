"""
CLI entry point for multifile_arrays.

Resolves a filename pattern into a file grid and reports what a lazily
loaded array over it would look like.
"""
import sys
from pathlib import Path

import click

from multifile_arrays import log


@click.command()
@click.argument("pattern")
@click.option(
    "--dir",
    "directory",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory to search. Defaults to the current directory, "
         "or to the directory of an absolute PATTERN.",
)
@click.option(
    "--shape",
    "show_shape",
    is_flag=True,
    help="Open the series as TIFF files and print the full array shape and dtype.",
)
@click.option(
    "--list",
    "list_files",
    is_flag=True,
    help="Print every matched filename in grid order.",
)
@click.option("--debug", is_flag=True, help="Enable debug logging.")
def main(pattern, directory=None, show_shape=False, list_files=False, debug=False):
    """
    Inspect a numbered file series.

    Each * in PATTERN matches one integer; files are ordered numerically.

    \b
    Examples:
      mfa "image_*.tiff"                    # count files in the current dir
      mfa "image_z=*_t=*.tiff" --dir data   # 2-D grid of files
      mfa "/data/image_*.tiff" --shape      # full lazy array shape
    """
    if debug:
        log.set_level("DEBUG")

    from multifile_arrays.file_io import select_series, load_series, read_tiff

    try:
        filenames = select_series(pattern, dir=directory)
    except FileNotFoundError as e:  # includes NoFilesMatchedError
        click.secho(str(e), fg="red", err=True)
        sys.exit(1)

    click.echo(f"{filenames.size} files, grid shape {filenames.shape}")

    if list_files:
        for fn in filenames.flat:
            click.echo(f"  {fn}")

    if show_shape:
        import numpy as np
        import tifffile

        first = tifffile.imread(filenames.flat[0])
        arr = load_series(read_tiff, filenames, np.empty_like(first))
        click.echo(f"array shape {arr.shape}, dtype {arr.dtype}")


if __name__ == "__main__":
    main()
