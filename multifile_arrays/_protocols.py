from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

import numpy as np

BUFFER_ATTRS = ["shape", "ndim", "dtype", "__getitem__", "__setitem__"]


@runtime_checkable
class BufferProtocol(Protocol):
    """
    Protocol for the reusable chunk buffer of a MultifileArray.

    Must implement:
    - __getitem__    (method)
    - __setitem__    (method)
    - ndim           (property)
    - shape          (property)
    - dtype          (property)
    """

    @property
    def ndim(self) -> int: ...

    @property
    def shape(self) -> tuple[int, ...]: ...

    @property
    def dtype(self) -> np.dtype: ...

    def __getitem__(self, key): ...

    def __setitem__(self, key, value): ...


class Loader(Protocol):
    """Fills ``buffer`` in place with the contents of ``identifier``."""

    def __call__(self, buffer: Any, identifier: Any, /) -> None: ...
