import enum
import itertools
from typing import Dict, List, Optional, Sequence

import numpy as np

from revgrad.errors import ShapeMismatchError
from revgrad.views import Shape, normalize_shape, shape_size, strides_from_shape

_node_ids = itertools.count()


class Op(enum.Enum):
    """Operation that produced a node; selects the node's backward function."""
    ADD = "add"
    SUB = "sub"
    MUL = "mul"
    DIV = "div"
    SUM = "sum"
    MAX = "max"
    EXP = "exp"
    LOG = "log"
    RELU = "relu"
    SIGMOID = "sigmoid"
    SOFTMAX = "softmax"
    LOG_SOFTMAX = "log_softmax"
    MATMUL = "matmul"


class Node:
    """
    Storage behind one tensor.

    Attributes
    ----------
    id : int
        Stable identity, unique for the life of the process. Tensor handles
        compare and hash by it.
    values : numpy.ndarray
        Flat ``float32`` buffer in row-major order.
    grads : numpy.ndarray
        Flat ``float32`` gradient buffer, same length as ``values``.
    shape, strides : tuple[int, ...]
        Layout of ``values`` and ``grads``.
    edges : list[Tensor]
        Operands this node was computed from, in the order its backward reads them.
    op : Op or None
        Producing operation; ``None`` for source tensors.
    meta_data : dict[str, int]
        Small per-op annotations, e.g. the reduced axis.
    """
    def __init__(self, shape: Sequence[int], values: Optional[np.ndarray] = None) -> None:
        self.id = next(_node_ids)
        shape = normalize_shape(shape)
        size = shape_size(shape)
        if values is None:
            values = np.zeros(size, dtype=np.float32)
        else:
            values = np.ascontiguousarray(values, dtype=np.float32).reshape(-1)
            if values.size != size:
                raise ShapeMismatchError(f"{values.size} values do not fill shape {shape}")
        self.values = values
        self.grads = np.zeros(size, dtype=np.float32)
        self.shape: Shape = shape
        self.strides = strides_from_shape(shape)
        self.edges: List = []
        self.op: Optional[Op] = None
        self.meta_data: Dict[str, int] = {}

    def set_layout(
        self,
        shape: Sequence[int],
        values: Optional[np.ndarray] = None,
        grads: Optional[np.ndarray] = None,
    ) -> None:
        """Replace shape and strides, and optionally the buffers, in one step."""
        shape = normalize_shape(shape)
        size = shape_size(shape)
        values = self.values if values is None else np.ascontiguousarray(values, dtype=np.float32).reshape(-1)
        grads = self.grads if grads is None else np.ascontiguousarray(grads, dtype=np.float32).reshape(-1)
        if values.size != size or grads.size != size:
            raise ShapeMismatchError(f"cannot lay out {self.values.size} elements as {shape}")
        self.shape = shape
        self.strides = strides_from_shape(shape)
        self.values = values
        self.grads = grads
