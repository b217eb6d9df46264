from typing import Any, Sequence, Tuple

import numpy as np

from revgrad.errors import ShapeMismatchError

Shape = Tuple[int, ...]
Strides = Tuple[int, ...]


def normalize_shape(shape: Sequence[int]) -> Shape:
    """
    Return ``shape`` as a tuple of positive ints.

    A rank-0 shape ``()`` is normalized to ``(1,)`` so that every tensor has
    at least one axis.

    Raises
    ------
    ShapeMismatchError
        If any axis size is not positive.
    """
    shape = tuple(int(s) for s in shape)
    if not shape:
        return (1,)
    if any(s <= 0 for s in shape):
        raise ShapeMismatchError(f"axis sizes must be positive, got {shape}")
    return shape


def shape_size(shape: Sequence[int]) -> int:
    """Number of elements in a tensor of ``shape``."""
    size = 1
    for s in shape:
        if s <= 0:
            raise ShapeMismatchError(f"axis sizes must be positive, got {tuple(shape)}")
        size *= int(s)
    return size


def strides_from_shape(shape: Sequence[int]) -> Strides:
    """
    Row-major strides for ``shape``.

    The last axis has stride 1 and ``stride[d] = stride[d + 1] * shape[d + 1]``.

    Examples
    --------
    >>> strides_from_shape((2, 3, 4))
    (12, 4, 1)
    """
    strides = [0] * len(shape)
    stride = 1
    for d in range(len(shape) - 1, -1, -1):
        strides[d] = stride
        stride *= int(shape[d])
    return tuple(strides)


def broadcast_shape(a: Sequence[int], b: Sequence[int]) -> Shape:
    """
    Result shape of broadcasting ``a`` against ``b``.

    Shapes are aligned from the trailing axis. Each aligned pair must be equal
    or contain a 1; the result takes the larger size. Leading axes of the
    longer shape pass through unchanged.

    Raises
    ------
    ShapeMismatchError
        If an aligned pair differs and neither size is 1.

    Examples
    --------
    >>> broadcast_shape((3, 1), (4,))
    (3, 4)
    """
    n = max(len(a), len(b))
    out = [0] * n
    i, j = len(a) - 1, len(b) - 1
    for k in range(n - 1, -1, -1):
        if i >= 0 and j >= 0:
            if a[i] != b[j] and a[i] != 1 and b[j] != 1:
                raise ShapeMismatchError(f"cannot broadcast shapes {tuple(a)} and {tuple(b)}")
            out[k] = max(a[i], b[j])
        elif i >= 0:
            out[k] = a[i]
        else:
            out[k] = b[j]
        i -= 1
        j -= 1
    return tuple(int(s) for s in out)


def unravel(index: Any, shape: Sequence[int], strides: Sequence[int]) -> Tuple[Any, ...]:
    """
    Convert a flat index into a coordinate.

    ``index`` may be an int or an integer array, in which case every
    component of the returned coordinate is an array of the same length.
    """
    return tuple((index // stride) % size for size, stride in zip(shape, strides))


def ravel(coordinate: Sequence[Any], strides: Sequence[int]) -> Any:
    """Convert a coordinate into a flat index (dot product with ``strides``)."""
    offset = 0
    for c, stride in zip(coordinate, strides):
        offset = offset + c * stride
    return offset


def reshape_indices(coordinate: Sequence[Any], shape: Sequence[int]) -> Tuple[Any, ...]:
    """
    Map a coordinate of a broadcast output back into an operand of ``shape``.

    The leading ``len(coordinate) - len(shape)`` components are dropped and the
    rest are taken modulo the operand's axis sizes, which pins size-1 axes to 0.
    """
    delta = len(coordinate) - len(shape)
    return tuple(coordinate[delta + d] % shape[d] for d in range(len(shape)))


def broadcast_indices(out_shape: Sequence[int], shape: Sequence[int]) -> np.ndarray:
    """
    Flat operand index for every flat index of a broadcast output.

    Returns an ``int64`` array ``idx`` of length ``shape_size(out_shape)`` such
    that output element ``i`` reads operand element ``idx[i]``.
    """
    index = np.arange(shape_size(out_shape), dtype=np.int64)
    coordinate = unravel(index, out_shape, strides_from_shape(out_shape))
    flat = ravel(reshape_indices(coordinate, shape), strides_from_shape(shape))
    return np.broadcast_to(np.asarray(flat, dtype=np.int64), index.shape)
