import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np

from revgrad import autograd
from revgrad.errors import DomainError, FormatError, ShapeMismatchError
from revgrad.node import Node, Op
from revgrad.views import (
    Shape,
    Strides,
    broadcast_indices,
    broadcast_shape,
    normalize_shape,
    ravel,
    shape_size,
)

logger = logging.getLogger(__name__)

ALL_AXES = -1
"""int: ``meta_data["axis"]`` value recorded by a sum over every element."""

_rng = np.random.default_rng()
"""numpy.random.Generator: Process-wide generator for weight initialization,
seeded from OS entropy at import time."""


def manual_seed(seed: int) -> None:
    """
    Replace the process-wide generator with one seeded from ``seed``.

    Calls that are meant to produce different draws must not reseed in between.
    """
    global _rng
    _rng = np.random.default_rng(seed)


class Tensor:
    """
    Handle to one node of the computation graph.

    A tensor holds a flat ``float32`` value buffer, an equally sized gradient
    buffer, its shape and strides, and the operands it was computed from.
    Handles are cheap: copying one (assigning it, storing it in a list) shares
    the underlying node, so every handle observes the same values and
    gradients. Two handles compare equal, hash equal and order by the identity
    of their node.

    Operations never modify their operands; each returns a tensor over a new
    node whose ``edges`` point back at the operands. Call :meth:`backward` on
    the output to accumulate gradients into every tensor it depends on.

    Notes
    -----
    - Rank-0 data is stored with shape ``(1,)``.
    - Gradients accumulate across :meth:`backward` calls. Use
      :meth:`zero_grad` (or ``Module.zero_grad``) between steps.
    """
    def __init__(
        self,
        data: Any = 0.0,
        shape: Optional[Sequence[int]] = None,
        _node: Optional[Node] = None,
    ) -> None:
        """
        Construct a source tensor.

        Parameters
        ----------
        data : float or array-like, default 0.0
            A scalar, a flat sequence of values or a nested list/ndarray. The
            data is copied and converted to ``float32``.
        shape : sequence of int, optional
            Shape of the tensor. With a scalar ``data`` every element is set
            to that scalar. With sequence ``data`` the element count must
            match. If omitted, the shape is taken from ``data``.
        _node : Node, optional
            Internal: wrap an existing node instead of creating one.

        Raises
        ------
        ShapeMismatchError
            If ``data`` does not have exactly ``shape_size(shape)`` elements,
            or ``shape`` has a non-positive axis.

        Examples
        --------
        >>> Tensor(2.0).shape
        (1,)
        >>> Tensor(0.5, shape=(2, 3)).shape
        (2, 3)
        >>> Tensor([1, 2, 3, 4], shape=(2, 2)).value((1, 0))
        3.0
        """
        if _node is None:
            array = np.array(data, dtype=np.float32)
            if shape is None:
                _node = Node(array.shape, array)
            elif array.ndim == 0:
                shape = normalize_shape(shape)
                _node = Node(shape, np.full(shape_size(shape), array, dtype=np.float32))
            else:
                _node = Node(shape, array)
        self._node = _node

    @property
    def shape(self) -> Shape:
        """tuple of int: The tensor's shape."""
        return self._node.shape

    @property
    def strides(self) -> Strides:
        """tuple of int: Row-major strides of the value and gradient buffers."""
        return self._node.strides

    @property
    def ndim(self) -> int:
        """int: Number of axes."""
        return len(self._node.shape)

    @property
    def size(self) -> int:
        """int: Total number of elements."""
        return self._node.values.size

    @property
    def values(self) -> np.ndarray:
        """numpy.ndarray: Flat value buffer, shared by every handle to this node."""
        return self._node.values

    @values.setter
    def values(self, new_values: Any) -> None:
        self._node.values[:] = self._flat_like(new_values)

    @property
    def grads(self) -> np.ndarray:
        """numpy.ndarray: Flat gradient buffer, shared by every handle to this node."""
        return self._node.grads

    @grads.setter
    def grads(self, new_grads: Any) -> None:
        self._node.grads[:] = self._flat_like(new_grads)

    @property
    def edges(self) -> List["Tensor"]:
        """list of Tensor: Operands this tensor was computed from."""
        return self._node.edges

    @property
    def op(self) -> Optional[Op]:
        """Op or None: Operation that produced this tensor."""
        return self._node.op

    @property
    def meta_data(self) -> Dict[str, int]:
        """dict: Per-operation annotations (e.g. ``{"axis": 1}``)."""
        return self._node.meta_data

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Tensor) and self._node.id == other._node.id

    def __hash__(self) -> int:
        return hash(self._node.id)

    def __lt__(self, other: "Tensor") -> bool:
        return self._node.id < other._node.id

    def value(self, coordinate: Sequence[int]) -> float:
        """Value at ``coordinate`` (one index per axis)."""
        return float(self._node.values[self._offset(coordinate)])

    def grad(self, coordinate: Sequence[int]) -> float:
        """Gradient at ``coordinate`` (one index per axis)."""
        return float(self._node.grads[self._offset(coordinate)])

    def item(self) -> float:
        """Return the single value of a one-element tensor as a Python float."""
        if self.size != 1:
            raise ShapeMismatchError(f"item() needs exactly one element, tensor has shape {self.shape}")
        return float(self._node.values[0])

    def numpy(self) -> np.ndarray:
        """Return a copy of the values shaped as ``self.shape``."""
        return self._view().copy()

    def clone(self) -> "Tensor":
        """
        Copy this tensor into a new node.

        Values, gradients, layout, edges, operation tag and metadata are all
        copied, so the clone can be backpropagated like ``self``.
        """
        node = Node(self.shape, self._node.values.copy())
        node.grads[:] = self._node.grads
        node.edges = list(self._node.edges)
        node.op = self._node.op
        node.meta_data = dict(self._node.meta_data)
        return Tensor(_node=node)

    def __add__(self, other: Union["Tensor", Any]) -> "Tensor":
        """
        Elementwise addition with broadcasting.

        Notes
        -----
        Gradient: ``out.grad`` routed unchanged to both operands and summed
        over the positions each operand was broadcast to.
        """
        return self._binary(other, Op.ADD)

    def __sub__(self, other: Union["Tensor", Any]) -> "Tensor":
        """Elementwise subtraction with broadcasting."""
        return self._binary(other, Op.SUB)

    def __mul__(self, other: Union["Tensor", Any]) -> "Tensor":
        """
        Elementwise multiplication with broadcasting.

        Notes
        -----
        Gradients: ``dL/dself = out.grad * other`` and ``dL/dother = out.grad * self``.
        """
        return self._binary(other, Op.MUL)

    def __truediv__(self, other: Union["Tensor", Any]) -> "Tensor":
        """
        Elementwise division with broadcasting.

        Notes
        -----
        Gradients: ``dL/dself = out.grad / other`` and
        ``dL/dother = -out.grad * self / other**2``.
        """
        return self._binary(other, Op.DIV)

    def __matmul__(self, other: Union["Tensor", Any]) -> "Tensor":
        """Matrix product; see :meth:`matmul`."""
        return self.matmul(other)

    def __neg__(self) -> "Tensor":
        """Elementwise negation, computed as ``0 - self``."""
        return Tensor(0.0) - self

    def __radd__(self, other: Union["Tensor", Any]) -> "Tensor":
        """Right-hand addition: ``other + self``."""
        return Tensor._ensure_tensor(other) + self

    def __rsub__(self, other: Union["Tensor", Any]) -> "Tensor":
        """Right-hand subtraction: ``other - self``."""
        return Tensor._ensure_tensor(other) - self

    def __rmul__(self, other: Union["Tensor", Any]) -> "Tensor":
        """Right-hand multiplication: ``other * self``."""
        return Tensor._ensure_tensor(other) * self

    def __rtruediv__(self, other: Union["Tensor", Any]) -> "Tensor":
        """Right-hand division: ``other / self``."""
        return Tensor._ensure_tensor(other) / self

    def sum(self, axis: Optional[int] = None) -> "Tensor":
        """
        Sum over one axis or over all elements.

        Parameters
        ----------
        axis : int, optional
            Axis to reduce; it is removed from the shape. If ``None``, all
            elements are summed into a tensor of shape ``(1,)``.

        Returns
        -------
        Tensor
            The summed values. A reduction that leaves no axes has shape ``(1,)``.

        Raises
        ------
        ShapeMismatchError
            If ``axis`` is out of range.

        Notes
        -----
        The upstream gradient is broadcast back over the summed axis unchanged.

        Examples
        --------
        >>> x = Tensor([[1., 2.], [3., 4.]])
        >>> x.sum(axis=1).values
        array([3., 7.], dtype=float32)
        """
        if axis is None:
            total = np.array([self._node.values.sum(dtype=np.float32)], dtype=np.float32)
            return Tensor._from_op((1,), total, Op.SUM, (self,), axis=ALL_AXES)
        axis = self._normalize_axis(axis)
        reduced = self._view().sum(axis=axis, dtype=np.float32)
        return Tensor._from_op(reduced.shape, reduced, Op.SUM, (self,), axis=axis)

    def mean(self) -> "Tensor":
        """Mean of all elements, as ``sum() / size``."""
        return self.sum() / float(self.size)

    def max(self, axis: int = 0) -> "Tensor":
        """
        Maximum along one axis.

        Parameters
        ----------
        axis : int, default 0
            Axis to reduce; it is removed from the shape.

        Notes
        -----
        **Gradient behavior:** each output gradient is split equally among
        *all* positions along ``axis`` that attain the maximum, so
        ``max([3, 3, 1])`` passes ``[0.5, 0.5, 0]`` back for an upstream 1.

        Examples
        --------
        >>> x = Tensor([[1., 3., 2.], [4., 0., 5.]])
        >>> x.max(axis=1).values
        array([3., 5.], dtype=float32)
        """
        axis = self._normalize_axis(axis)
        reduced = self._view().max(axis=axis)
        return Tensor._from_op(reduced.shape, reduced, Op.MAX, (self,), axis=axis)

    def exp(self) -> "Tensor":
        """
        Element-wise exponential.

        Notes
        -----
        **Gradient:** ``out * out.grad``.
        """
        return Tensor._from_op(self.shape, np.exp(self._node.values), Op.EXP, (self,))

    def log(self) -> "Tensor":
        """
        Element-wise natural logarithm.

        Raises
        ------
        DomainError
            If any element is non-positive, NaN or infinite.

        Notes
        -----
        **Gradient:** ``out.grad / self``.
        """
        x = self._node.values
        if not (np.all(np.isfinite(x)) and np.all(x > 0)):
            raise DomainError("log requires strictly positive, finite input")
        return Tensor._from_op(self.shape, np.log(x), Op.LOG, (self,))

    def relu(self) -> "Tensor":
        """Element-wise ``max(0, x)``; the gradient passes where ``x > 0``."""
        return Tensor._from_op(self.shape, np.maximum(self._node.values, 0.0), Op.RELU, (self,))

    def sigmoid(self) -> "Tensor":
        """
        Element-wise logistic sigmoid.

        The forward pass branches on the sign of the input, ``1 / (1 + e^-x)``
        for positive ``x`` and ``e^x / (1 + e^x)`` otherwise, so ``exp`` is only
        ever evaluated at non-positive arguments and cannot overflow.

        Notes
        -----
        **Gradient:** ``out * (1 - out) * out.grad``.

        Examples
        --------
        >>> Tensor([-1.0, 0.0, 1.0]).sigmoid().values
        array([0.26894143, 0.5       , 0.7310586 ], dtype=float32)
        """
        x = self._node.values
        out = np.empty_like(x)
        positive = x > 0
        out[positive] = 1.0 / (1.0 + np.exp(-x[positive]))
        e = np.exp(x[~positive])
        out[~positive] = e / (1.0 + e)
        return Tensor._from_op(self.shape, out, Op.SIGMOID, (self,))

    def softmax(self) -> "Tensor":
        """
        Softmax over the feature axis of a ``(features, batch)`` tensor.

        Each batch column is shifted by its maximum before exponentiation.

        Raises
        ------
        ShapeMismatchError
            If the tensor is not rank 2.

        Notes
        -----
        **Gradient:** the full Jacobian per column,
        ``dL/dx_i = sum_j out.grad_j * s_i * ([i == j] - s_j)``.
        """
        self._require_rank2("softmax")
        return Tensor._from_op(self.shape, _softmax_columns(self._view()), Op.SOFTMAX, (self,))

    def log_softmax(self) -> "Tensor":
        """
        Log of :meth:`softmax`, computed as ``x - max - log(sum(exp(x - max)))``.

        Raises
        ------
        ShapeMismatchError
            If the tensor is not rank 2.

        Notes
        -----
        **Gradient:** ``dL/dx_i = sum_j out.grad_j * ([i == j] - s_i)``, where
        the softmax ``s`` is recomputed from the input during backward.
        """
        self._require_rank2("log_softmax")
        shifted = self._view() - self._view().max(axis=0, keepdims=True)
        out = shifted - np.log(np.exp(shifted).sum(axis=0, keepdims=True))
        return Tensor._from_op(self.shape, out, Op.LOG_SOFTMAX, (self,))

    def matmul(self, other: Union["Tensor", Any]) -> "Tensor":
        """
        Dense matrix product ``(m, k) @ (k, n) -> (m, n)``.

        Raises
        ------
        ShapeMismatchError
            If either operand is not rank 2 or the inner dimensions differ.

        Notes
        -----
        Gradients: ``dL/dself = out.grad @ other^T`` and
        ``dL/dother = self^T @ out.grad``.

        Examples
        --------
        >>> w = Tensor.random((4, 3), in_degree=3)
        >>> x = Tensor.zeros(3, 1)
        >>> (w @ x).shape
        (4, 1)
        """
        other = Tensor._ensure_tensor(other)
        if self.ndim != 2 or other.ndim != 2:
            raise ShapeMismatchError(f"matmul needs rank-2 operands, got {self.shape} and {other.shape}")
        if self.shape[1] != other.shape[0]:
            raise ShapeMismatchError(f"matmul inner dimensions differ: {self.shape} @ {other.shape}")
        out = np.matmul(self._view(), other._view())
        return Tensor._from_op(out.shape, out, Op.MATMUL, (self, other))

    def reshape(self, *shape: Union[int, Sequence[int]]) -> None:
        """
        Give the tensor a new shape in place.

        Values and gradients keep their row-major order; strides are
        recomputed. The element count must not change.

        Raises
        ------
        ShapeMismatchError
            If the new shape has a different number of elements.

        Notes
        -----
        Backward reads operand shapes at the time it runs. Do not relayout a
        tensor that an existing graph has already consumed; its consumers'
        backward raises :class:`ShapeMismatchError` or misroutes gradients.
        """
        shape = normalize_shape(_shape_args(shape))
        if shape_size(shape) != self.size:
            raise ShapeMismatchError(f"cannot reshape {self.shape} into {shape}")
        self._node.set_layout(shape)

    def flatten(self) -> None:
        """Reshape in place to a single axis."""
        self._node.set_layout((self.size,))

    def transpose(self) -> None:
        """
        Transpose a rank-2 tensor in place.

        Values and gradients are physically reordered so the buffers stay
        row-major for the new shape.

        Like :meth:`reshape`, only safe before the tensor is consumed by
        another operation.
        """
        self._require_rank2("transpose")
        rows, cols = self.shape
        self._node.set_layout(
            (cols, rows),
            self._view().T,
            self._node.grads.reshape(self.shape).T,
        )

    def slice(self, ranges: Sequence[Tuple[int, int]]) -> "Tensor":
        """
        Copy out a block of the tensor.

        Parameters
        ----------
        ranges : sequence of (int, int)
            One half-open ``(start, end)`` range per axis with
            ``0 <= start < end <= shape[axis]``.

        Returns
        -------
        Tensor
            A new source tensor holding copies of the selected values. It has
            no edges, so gradients do not flow back through it.

        Raises
        ------
        ShapeMismatchError
            If the number of ranges differs from the rank or a range is empty
            or out of bounds.
        """
        ranges = [(int(start), int(end)) for start, end in ranges]
        if len(ranges) != self.ndim:
            raise ShapeMismatchError(f"expected {self.ndim} ranges, got {len(ranges)}")
        for (start, end), size in zip(ranges, self.shape):
            if not 0 <= start < end <= size:
                raise ShapeMismatchError(f"range ({start}, {end}) outside axis of size {size}")
        index = tuple(slice(start, end) for start, end in ranges)
        return Tensor(self._view()[index])

    def backward(self) -> None:
        """
        Backpropagate from this tensor into every tensor it depends on.

        Every gradient slot of ``self`` is set to 1 (a non-scalar output is
        therefore treated as the sum of its elements). The reachable graph is
        discovered breadth-first, ordered so that each tensor is processed
        only after all of its consumers, and each derived tensor then adds its
        contribution into its operands' gradients.

        Notes
        -----
        - Gradients are accumulated, never overwritten, in leaves and in
          intermediate tensors alike. Only ``self`` is reset to 1. Calling
          ``backward`` twice without :meth:`zero_grad` therefore doubles
          the gradient of a leaf feeding ``self`` directly, while a leaf
          behind an intermediate tensor receives that tensor's already
          accumulated gradient again (``(x * x).sum()`` gives ``3 * 2x``).
        - A tensor reached through several paths is processed once and
          receives the sum of all paths' contributions.

        Examples
        --------
        >>> x = Tensor([2.0, 3.0])
        >>> (x * x).sum().backward()
        >>> x.grads
        array([4., 6.], dtype=float32)
        """
        self._node.grads[:] = 1.0
        adjacency = autograd.build_adjacency(self)
        order = autograd.topological_order(self, adjacency)
        logger.debug("backward: %d tensors reachable from shape %s", len(order), self.shape)

        for t in order:
            if t.op is not None:
                _BACKWARD_FNS[t.op](t)

    def zero_grad(self) -> None:
        """Reset this tensor's gradient buffer to zero in place."""
        self._node.grads[:] = 0.0

    def __repr__(self) -> str:
        """
        Nested, axis-by-axis rendering of the values.

        Examples
        --------
        >>> Tensor([[1, 2, 3], [4, 5, 6]])
        Tensor(shape=(2, 3), data=[[1, 2, 3], [4, 5, 6]])
        """
        return f"Tensor(shape={self.shape}, data={self._format(())})"

    def _format(self, coordinate: Tuple[int, ...]) -> str:
        axis = len(coordinate)
        if axis == self.ndim:
            return f"{self.value(coordinate):g}"
        items = (self._format(coordinate + (i,)) for i in range(self.shape[axis]))
        return "[" + ", ".join(items) + "]"

    def _view(self) -> np.ndarray:
        return self._node.values.reshape(self.shape)

    def _offset(self, coordinate: Sequence[int]) -> int:
        coordinate = tuple(int(c) for c in coordinate)
        if len(coordinate) != self.ndim or any(not 0 <= c < s for c, s in zip(coordinate, self.shape)):
            raise IndexError(f"coordinate {coordinate} out of range for shape {self.shape}")
        return ravel(coordinate, self.strides)

    def _flat_like(self, array: Any) -> np.ndarray:
        array = np.asarray(array, dtype=np.float32).reshape(-1)
        if array.size != self.size:
            raise ShapeMismatchError(f"expected {self.size} elements, got {array.size}")
        return array

    def _normalize_axis(self, axis: int) -> int:
        if not -self.ndim <= axis < self.ndim:
            raise ShapeMismatchError(f"axis {axis} out of range for shape {self.shape}")
        return axis % self.ndim

    def _require_rank2(self, name: str) -> None:
        if self.ndim != 2:
            raise ShapeMismatchError(f"{name} needs a rank-2 tensor, got shape {self.shape}")

    def _binary(self, other: Union["Tensor", Any], op: Op) -> "Tensor":
        other = Tensor._ensure_tensor(other)
        shape = broadcast_shape(self.shape, other.shape)
        u = self._node.values[broadcast_indices(shape, self.shape)]
        v = other._node.values[broadcast_indices(shape, other.shape)]
        return Tensor._from_op(shape, _BINARY_FORWARD[op](u, v), op, (self, other))

    @staticmethod
    def _from_op(
        shape: Sequence[int],
        values: Any,
        op: Op,
        edges: Iterable["Tensor"],
        **meta_data: int,
    ) -> "Tensor":
        """Wrap freshly computed ``values`` in a new node tagged with ``op``."""
        node = Node(shape, np.asarray(values, dtype=np.float32))
        node.op = op
        node.edges = list(edges)
        node.meta_data.update(meta_data)
        return Tensor(_node=node)

    @staticmethod
    def _ensure_tensor(x: Union["Tensor", Any]) -> "Tensor":
        """
        Ensure that ``x`` is a :class:`Tensor`.

        Python scalars and array-likes are wrapped in a new source tensor so
        that mixed expressions such as ``1 - t`` or ``t / 2`` work.
        """
        if isinstance(x, Tensor):
            return x
        return Tensor(x)

    @staticmethod
    def zeros(*shape: Union[int, Sequence[int]]) -> "Tensor":
        """Tensor of ``shape`` filled with zeros; accepts ``zeros(2, 3)`` or ``zeros((2, 3))``."""
        return Tensor(0.0, shape=_shape_args(shape))

    @staticmethod
    def ones(*shape: Union[int, Sequence[int]]) -> "Tensor":
        """Tensor of ``shape`` filled with ones."""
        return Tensor(1.0, shape=_shape_args(shape))

    @staticmethod
    def full(shape: Sequence[int], value: float) -> "Tensor":
        """Tensor of ``shape`` with every element set to ``value``."""
        return Tensor(value, shape=shape)

    @staticmethod
    def random(shape: Sequence[int], in_degree: int) -> "Tensor":
        """
        He-initialized tensor.

        Samples i.i.d. values from ``N(0, 2 / in_degree)`` using the
        process-wide generator.

        Parameters
        ----------
        shape : sequence of int
            Shape of the output tensor.
        in_degree : int
            Fan-in of the layer the tensor parameterizes.

        Notes
        -----
        - Suited to layers followed by ReLU.
        - See :func:`manual_seed` for reproducible draws.
        """
        if in_degree <= 0:
            raise ValueError(f"in_degree must be positive, got {in_degree}")
        shape = normalize_shape(shape)
        data = _rng.normal(0.0, np.sqrt(2.0 / in_degree), size=shape)
        return Tensor(data)

    @staticmethod
    def parse_csv(text: str) -> "Tensor":
        """
        Parse a comma separated table into a rank-2 tensor.

        One row per line; blank lines are skipped.

        Raises
        ------
        FormatError
            If the table is empty, a cell is not a number, or rows have
            different column counts.

        Examples
        --------
        >>> Tensor.parse_csv("1,2,3\\n4,5,6\\n").shape
        (2, 3)
        """
        rows = []
        for lineno, line in enumerate(text.splitlines(), start=1):
            line = line.strip()
            if not line:
                continue
            try:
                row = [float(cell) for cell in line.split(",")]
            except ValueError as e:
                raise FormatError(f"line {lineno}: non-numeric cell in {line!r}") from e
            if rows and len(row) != len(rows[0]):
                raise FormatError(f"line {lineno}: expected {len(rows[0])} columns, got {len(row)}")
            rows.append(row)
        if not rows:
            raise FormatError("table has no rows")
        return Tensor(rows)

    @staticmethod
    def from_csv(path: str) -> "Tensor":
        """
        Read a comma separated table from ``path``; see :meth:`parse_csv`.

        Raises
        ------
        OSError
            If the file cannot be opened.
        FormatError
            If the table is malformed.
        """
        with open(path, "r", encoding="utf-8") as f:
            return Tensor.parse_csv(f.read())


def _shape_args(shape: Tuple[Any, ...]) -> Tuple[Any, ...]:
    """Accept both ``f(2, 3)`` and ``f((2, 3))`` for shape varargs."""
    if len(shape) == 1 and isinstance(shape[0], (tuple, list)):
        return tuple(shape[0])
    return shape


def _softmax_columns(x: np.ndarray) -> np.ndarray:
    e = np.exp(x - x.max(axis=0, keepdims=True))
    return e / e.sum(axis=0, keepdims=True)


def _expand_like(x: np.ndarray, target_shape: Shape, axis: int) -> np.ndarray:
    """
    Broadcast the flat result of a reduction over ``axis`` back to ``target_shape``.
    """
    reduced_shape = target_shape[:axis] + target_shape[axis + 1:]
    if axis >= len(target_shape) or shape_size(reduced_shape) != x.size:
        raise ShapeMismatchError(
            f"operand of a reduction over axis {axis} now has shape {target_shape}; "
            "it was relaid out after being consumed"
        )
    x = np.expand_dims(x.reshape(reduced_shape), axis=axis)
    return np.broadcast_to(x, target_shape)


def _accumulate_grad(tensor: Tensor, grad: Any, index: Optional[np.ndarray] = None) -> None:
    """
    Add a gradient contribution into ``tensor``'s gradient buffer.

    With ``index``, ``grad[i]`` is added at flat position ``index[i]``; repeated
    positions (a broadcast operand) receive the sum of their contributions.
    """
    grad = np.asarray(grad, dtype=np.float32).reshape(-1)
    if index is None:
        tensor._node.grads += grad
    else:
        np.add.at(tensor._node.grads, index, grad)


def _add_backward(out: Tensor) -> None:
    u, v = out.edges
    _accumulate_grad(u, out.grads, broadcast_indices(out.shape, u.shape))
    _accumulate_grad(v, out.grads, broadcast_indices(out.shape, v.shape))


def _sub_backward(out: Tensor) -> None:
    u, v = out.edges
    _accumulate_grad(u, out.grads, broadcast_indices(out.shape, u.shape))
    _accumulate_grad(v, -out.grads, broadcast_indices(out.shape, v.shape))


def _mul_backward(out: Tensor) -> None:
    u, v = out.edges
    iu = broadcast_indices(out.shape, u.shape)
    iv = broadcast_indices(out.shape, v.shape)
    u_values, v_values = u.values[iu], v.values[iv]
    _accumulate_grad(u, out.grads * v_values, iu)
    _accumulate_grad(v, out.grads * u_values, iv)


def _div_backward(out: Tensor) -> None:
    u, v = out.edges
    iu = broadcast_indices(out.shape, u.shape)
    iv = broadcast_indices(out.shape, v.shape)
    u_values, v_values = u.values[iu], v.values[iv]
    _accumulate_grad(u, out.grads * (1.0 / v_values), iu)
    _accumulate_grad(v, out.grads * (-u_values / (v_values * v_values)), iv)


def _sum_backward(out: Tensor) -> None:
    (u,) = out.edges
    axis = out.meta_data["axis"]
    if axis == ALL_AXES:
        _accumulate_grad(u, np.full(u.size, out.grads[0], dtype=np.float32))
        return
    _accumulate_grad(u, _expand_like(out.grads, u.shape, axis))


def _max_backward(out: Tensor) -> None:
    (u,) = out.edges
    axis = out.meta_data["axis"]
    peak = _expand_like(out.values, u.shape, axis)
    mask = (u._view() == peak).astype(np.float32)
    # NaN never equals the peak, so a NaN slice has no winner and gets no gradient.
    count = np.maximum(mask.sum(axis=axis, keepdims=True), 1.0)
    _accumulate_grad(u, mask / count * _expand_like(out.grads, u.shape, axis))


def _exp_backward(out: Tensor) -> None:
    (u,) = out.edges
    _accumulate_grad(u, out.grads * out.values)


def _log_backward(out: Tensor) -> None:
    (u,) = out.edges
    _accumulate_grad(u, out.grads / u.values)


def _relu_backward(out: Tensor) -> None:
    (u,) = out.edges
    _accumulate_grad(u, out.grads * (u.values > 0))


def _sigmoid_backward(out: Tensor) -> None:
    (u,) = out.edges
    y = out.values
    _accumulate_grad(u, out.grads * (y * (1.0 - y)))


def _softmax_backward(out: Tensor) -> None:
    (u,) = out.edges
    s = out._view()
    g = out.grads.reshape(out.shape)
    _accumulate_grad(u, s * (g - (g * s).sum(axis=0, keepdims=True)))


def _log_softmax_backward(out: Tensor) -> None:
    (u,) = out.edges
    s = _softmax_columns(u._view())
    g = out.grads.reshape(out.shape)
    _accumulate_grad(u, g - s * g.sum(axis=0, keepdims=True))


def _matmul_backward(out: Tensor) -> None:
    u, v = out.edges
    g = out.grads.reshape(out.shape)
    grad_u = np.matmul(g, v._view().T)
    grad_v = np.matmul(u._view().T, g)
    _accumulate_grad(u, grad_u)
    _accumulate_grad(v, grad_v)


_BINARY_FORWARD: Dict[Op, Callable[[np.ndarray, np.ndarray], np.ndarray]] = {
    Op.ADD: np.add,
    Op.SUB: np.subtract,
    Op.MUL: np.multiply,
    Op.DIV: np.divide,
}

_BACKWARD_FNS: Dict[Op, Callable[[Tensor], None]] = {
    Op.ADD: _add_backward,
    Op.SUB: _sub_backward,
    Op.MUL: _mul_backward,
    Op.DIV: _div_backward,
    Op.SUM: _sum_backward,
    Op.MAX: _max_backward,
    Op.EXP: _exp_backward,
    Op.LOG: _log_backward,
    Op.RELU: _relu_backward,
    Op.SIGMOID: _sigmoid_backward,
    Op.SOFTMAX: _softmax_backward,
    Op.LOG_SOFTMAX: _log_softmax_backward,
    Op.MATMUL: _matmul_backward,
}
