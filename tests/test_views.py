import numpy as np
import pytest

from revgrad.errors import ShapeMismatchError
from revgrad.views import (
    broadcast_indices,
    broadcast_shape,
    normalize_shape,
    ravel,
    reshape_indices,
    shape_size,
    strides_from_shape,
    unravel,
)


@pytest.mark.parametrize("shape", [(1,), (5,), (2, 3), (3, 1, 4), (2, 3, 4, 5)])
def test_ravel_unravel_round_trip(shape):
    strides = strides_from_shape(shape)
    for i in range(shape_size(shape)):
        assert ravel(unravel(i, shape, strides), strides) == i


def test_unravel_accepts_index_arrays():
    shape = (2, 3, 4)
    strides = strides_from_shape(shape)
    index = np.arange(shape_size(shape))

    coordinate = unravel(index, shape, strides)

    expected = np.unravel_index(index, shape)
    for got, want in zip(coordinate, expected):
        np.testing.assert_array_equal(got, want)
    np.testing.assert_array_equal(ravel(coordinate, strides), index)


def test_strides_row_major():
    assert strides_from_shape((2, 3, 4)) == (12, 4, 1)
    assert strides_from_shape((7,)) == (1,)
    assert strides_from_shape((3, 1)) == (1, 1)


def test_shape_size():
    assert shape_size((2, 3, 4)) == 24
    assert shape_size((1,)) == 1
    with pytest.raises(ShapeMismatchError):
        shape_size((2, 0))


def test_normalize_shape():
    assert normalize_shape(()) == (1,)
    assert normalize_shape([2, 3]) == (2, 3)
    with pytest.raises(ShapeMismatchError):
        normalize_shape((3, -1))


@pytest.mark.parametrize(
    "a, b, expected",
    [
        ((2, 3), (2, 3), (2, 3)),
        ((2, 3), (3,), (2, 3)),
        ((3, 1), (4,), (3, 4)),
        ((1,), (5, 2, 3), (5, 2, 3)),
        ((4, 1, 2), (3, 1), (4, 3, 2)),
    ],
)
def test_broadcast_shape(a, b, expected):
    assert broadcast_shape(a, b) == expected
    assert broadcast_shape(b, a) == expected


def test_broadcast_shape_commutative(rng):
    for _ in range(50):
        nd = int(rng.integers(1, 5))
        a = tuple(int(rng.choice([1, s])) for s in rng.integers(1, 5, size=nd))
        b = tuple(int(rng.choice([1, s])) for s in rng.integers(1, 5, size=nd))
        b = tuple(1 if x != y and x != 1 and y != 1 else y for x, y in zip(a, b))
        b = b[int(rng.integers(0, nd)):]
        assert broadcast_shape(a, b) == broadcast_shape(b, a)
        assert broadcast_shape(a, b) == np.broadcast_shapes(a, b)


@pytest.mark.parametrize("a, b", [((2, 3), (4,)), ((2, 3), (3, 3)), ((5,), (2, 4))])
def test_broadcast_shape_mismatch(a, b):
    with pytest.raises(ShapeMismatchError):
        broadcast_shape(a, b)


def test_reshape_indices_drops_leading_axes_and_pins_size_one():
    assert reshape_indices((1, 2, 3), (4, 5)) == (2, 3)
    assert reshape_indices((1, 2, 3), (1, 5)) == (0, 3)
    assert reshape_indices((1, 2), (1,)) == (0,)


def test_broadcast_indices_matches_numpy(rng):
    out_shape = (3, 4, 5)
    for shape in [(3, 4, 5), (4, 1), (1, 5), (5,), (1,), (3, 1, 5)]:
        operand = rng.normal(size=shape)
        idx = broadcast_indices(out_shape, shape)
        np.testing.assert_array_equal(
            operand.reshape(-1)[idx].reshape(out_shape),
            np.broadcast_to(operand, out_shape),
        )
