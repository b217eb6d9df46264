from collections import deque
from typing import Any, Dict, List


def build_adjacency(root: Any) -> Dict[Any, List[Any]]:
    """
    Discover the graph reachable from ``root``.

    Breadth-first traversal over ``edges``. Each tensor is expanded once even
    when several paths lead to it, so shared operands (e.g. a parameter used
    twice) appear as a single key.

    Parameters
    ----------
    root : Tensor
        Output tensor the traversal starts from.

    Returns
    -------
    dict[Tensor, list[Tensor]]
        Maps every reachable tensor to its direct operands.
    """
    adjacency: Dict[Any, List[Any]] = {}
    queue = deque([root])
    while queue:
        t = queue.popleft()
        if t in adjacency:
            continue
        adjacency[t] = list(t.edges)
        queue.extend(t.edges)
    return adjacency


def topological_order(root: Any, adjacency: Dict[Any, List[Any]]) -> List[Any]:
    """
    Order tensors so that every tensor comes before the operands it consumes.

    Iterative depth-first post-order from ``root`` (operands before consumers),
    reversed. Uses an explicit stack so long operation chains do not hit the
    interpreter's recursion limit.

    Returns
    -------
    list[Tensor]
        ``root`` first, leaves last.
    """
    order = []
    visited = {root}
    stack = [(root, iter(adjacency.get(root, ())))]
    while stack:
        t, operands = stack[-1]
        for operand in operands:
            if operand not in visited:
                visited.add(operand)
                stack.append((operand, iter(adjacency.get(operand, ()))))
                break
        else:
            stack.pop()
            order.append(t)
    order.reverse()
    return order
