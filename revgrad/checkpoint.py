import logging
from typing import List, Sequence

import numpy as np

from revgrad.errors import FormatError
from revgrad.tensor import Tensor

logger = logging.getLogger(__name__)


def save_parameters(path: str, parameters: Sequence[Tensor]) -> None:
    """
    Write parameter values to a plain-text file.

    Each parameter takes two lines: its element count, then its values in
    row-major order separated by commas::

        6
        0.1,-0.25,0.5,1,0,2

    Parameters
    ----------
    path : str
        File path to write.
    parameters : sequence of Tensor
        Parameters in registration order. Names and shapes are not stored, so
        the same order must be used when loading.

    Raises
    ------
    OSError
        If the file cannot be opened for writing.
    """
    with open(path, "w", encoding="utf-8") as f:
        for param in parameters:
            f.write(f"{param.size}\n")
            f.write(",".join(str(v) for v in param.values) + "\n")
    logger.info("saved %d parameters to %s", len(parameters), path)


def load_parameters(path: str, parameters: Sequence[Tensor]) -> None:
    """
    Load values written by :func:`save_parameters` into ``parameters``.

    The whole file is parsed and checked before any parameter is modified.

    Parameters
    ----------
    path : str
        File path to read.
    parameters : sequence of Tensor
        Live parameters, in the order they were saved. Values are written into
        their existing buffers.

    Raises
    ------
    OSError
        If the file cannot be opened.
    FormatError
        If the file holds fewer or more records than ``parameters``, a line is
        not numeric, or a recorded element count disagrees with the live
        parameter or with the number of values on the following line.

    Notes
    -----
    The text form of ``float32`` values is not guaranteed to round-trip
    bit for bit.
    """
    with open(path, "r", encoding="utf-8") as f:
        lines = [line.strip() for line in f]
    while lines and not lines[-1]:
        lines.pop()

    if len(lines) % 2 != 0:
        raise FormatError(f"{path}: element count on line {len(lines)} has no values line")
    if len(lines) // 2 != len(parameters):
        raise FormatError(f"{path}: holds {len(lines) // 2} parameters, model has {len(parameters)}")

    loaded: List[np.ndarray] = []
    for index, param in enumerate(parameters):
        count_line, values_line = lines[2 * index], lines[2 * index + 1]
        try:
            count = int(count_line)
            values = np.array([float(v) for v in values_line.split(",")], dtype=np.float32)
        except ValueError as e:
            raise FormatError(f"{path}: parameter {index} is not numeric") from e
        if count != param.size:
            raise FormatError(f"{path}: parameter {index} has {count} elements, expected {param.size}")
        if values.size != count:
            raise FormatError(f"{path}: parameter {index} lists {values.size} values, expected {count}")
        loaded.append(values)

    for param, values in zip(parameters, loaded):
        param.values = values
    logger.info("loaded %d parameters from %s", len(parameters), path)
