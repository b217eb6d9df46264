import numpy as np
import pytest

from revgrad.errors import ShapeMismatchError
from revgrad.tensor import Tensor
from tests.utils import make_tensor, tdata, tgrad, assert_close


def test_reshape_in_place_keeps_row_major_order(rng):
    x_np = rng.normal(size=(2, 3, 4)).astype(np.float32)
    x = make_tensor(x_np)
    x.grads = np.arange(24, dtype=np.float32)

    result = x.reshape(6, 4)

    assert result is None
    assert x.shape == (6, 4)
    assert x.strides == (4, 1)
    assert_close(tdata(x), x_np.reshape(6, 4))
    assert_close(tgrad(x), np.arange(24, dtype=np.float32).reshape(6, 4))


def test_reshape_accepts_tuple_and_is_seen_by_every_handle():
    x = Tensor([1.0, 2.0, 3.0, 4.0])
    alias = x

    x.reshape((2, 2))

    assert alias.shape == (2, 2)
    assert alias.value((1, 0)) == 3.0


def test_reshape_size_mismatch():
    x = Tensor.zeros(2, 3)
    with pytest.raises(ShapeMismatchError):
        x.reshape(4, 2)
    assert x.shape == (2, 3)


def test_flatten(rng):
    x_np = rng.normal(size=(3, 2, 2)).astype(np.float32)
    x = make_tensor(x_np)

    x.flatten()

    assert x.shape == (12,)
    assert x.strides == (1,)
    assert_close(tdata(x), x_np.reshape(-1))


def test_transpose_moves_values_and_grads_together(rng):
    x_np = rng.normal(size=(2, 3)).astype(np.float32)
    g_np = rng.normal(size=(2, 3)).astype(np.float32)
    x = make_tensor(x_np)
    x.grads = g_np

    x.transpose()

    assert x.shape == (3, 2)
    assert x.strides == (2, 1)
    assert_close(tdata(x), x_np.T)
    assert_close(tgrad(x), g_np.T)
    assert x.value((2, 1)) == x_np[1, 2]


def test_transpose_twice_restores(rng):
    x_np = rng.normal(size=(4, 1)).astype(np.float32)
    x = make_tensor(x_np)

    x.transpose()
    x.transpose()

    assert_close(tdata(x), x_np)


def test_transpose_requires_rank2():
    with pytest.raises(ShapeMismatchError):
        Tensor.zeros(2, 3, 4).transpose()


def test_slice_copies_block():
    x = Tensor(np.arange(12, dtype=np.float32).reshape(3, 4))

    block = x.slice([(1, 3), (0, 2)])

    assert block.shape == (2, 2)
    assert_close(tdata(block), np.array([[4, 5], [8, 9]], dtype=np.float32))
    assert block.edges == []
    assert block.op is None

    block.values[0] = -1.0
    assert x.value((1, 0)) == 4.0


@pytest.mark.parametrize(
    "ranges",
    [
        [(0, 2)],
        [(0, 4), (0, 2)],
        [(1, 1), (0, 2)],
        [(2, 1), (0, 2)],
        [(-1, 2), (0, 2)],
        [(0, 3), (0, 5)],
    ],
)
def test_slice_rejects_bad_ranges(ranges):
    x = Tensor.zeros(3, 4)
    with pytest.raises(ShapeMismatchError):
        x.slice(ranges)


def test_value_and_grad_access():
    x = Tensor([[1.0, 2.0, 3.0], [4.0, 5.0, 6.0]])
    (x * 3.0).sum().backward()

    assert x.value((1, 2)) == 6.0
    assert x.grad((0, 1)) == 3.0
    with pytest.raises(IndexError):
        x.value((2, 0))
    with pytest.raises(IndexError):
        x.grad((0,))


def test_values_setter_checks_length():
    x = Tensor.zeros(2, 2)
    x.values = [[1.0, 2.0], [3.0, 4.0]]
    assert_close(tdata(x), np.array([[1, 2], [3, 4]], dtype=np.float32))

    with pytest.raises(ShapeMismatchError):
        x.values = [1.0, 2.0, 3.0]


def test_item():
    assert Tensor(2.5).item() == 2.5
    with pytest.raises(ShapeMismatchError):
        Tensor.zeros(2).item()


def test_repr():
    x = Tensor([[1, 2, 3], [4, 5, 6]])
    assert repr(x) == "Tensor(shape=(2, 3), data=[[1, 2, 3], [4, 5, 6]])"
    assert repr(Tensor(0.5)) == "Tensor(shape=(1,), data=[0.5])"


def test_clone_copies_node(rng):
    x = make_tensor(rng.normal(size=(2, 2)).astype(np.float32))
    y = x.exp()

    c = y.clone()

    assert c != y
    assert c.op is y.op
    assert c.edges == [x]
    assert_close(tdata(c), tdata(y))

    c.backward()
    assert_close(tgrad(x), tdata(y))

    c.values[0] = 0.0
    assert y.values[0] != 0.0


@pytest.mark.parametrize("op", ["sum", "max"])
def test_relayout_after_reduction_is_reported_at_backward(op):
    x = Tensor.zeros(2, 3)
    y = getattr(x, op)(axis=1)

    x.reshape(3, 2)

    with pytest.raises(ShapeMismatchError, match="relaid out"):
        y.backward()


def test_transpose_after_reduction_is_reported_at_backward():
    x = Tensor.ones(2, 3)
    y = x.sum(axis=1)

    x.transpose()

    with pytest.raises(ShapeMismatchError):
        y.backward()
