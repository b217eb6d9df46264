import textwrap
from typing import Any, List

from revgrad import checkpoint
from revgrad.tensor import Tensor


class Module:
    """
    Base class for models and layers.

    Modules can contain:
    - submodules (instances of :class:`Module`)
    - parameters (instances of :class:`Tensor`)

    Submodules and parameters assigned as attributes are registered
    automatically via :meth:`__setattr__`, in assignment order. That order is
    the order of :meth:`parameters` and of the saved parameter file.
    """
    def __init__(self) -> None:
        """
        Initialize an empty module.

        Attributes
        ----------
        _modules : dict[str, Module]
            Registered child modules.
        _parameters : dict[str, Tensor]
            Registered parameters.
        """
        self._modules = {}
        self._parameters = {}

    def parameters(self) -> List[Tensor]:
        """
        Return a flat list of all parameters in this module and its submodules.

        Returns
        -------
        list[Tensor]
            Parameters in a deterministic traversal order: local parameters first,
            then parameters of children in insertion order.
        """
        params = list(self._parameters.values())
        for module in self._modules.values():
            params.extend(module.parameters())
        return params

    def zero_grad(self) -> None:
        """Set gradients of all parameters to zero."""
        for param in self.parameters():
            param.zero_grad()

    def save_parameters(self, path: str) -> None:
        """Write :meth:`parameters` to ``path``; see :func:`revgrad.checkpoint.save_parameters`."""
        checkpoint.save_parameters(path, self.parameters())

    def load_parameters(self, path: str) -> None:
        """Load :meth:`parameters` from ``path``; see :func:`revgrad.checkpoint.load_parameters`."""
        checkpoint.load_parameters(path, self.parameters())

    def __setattr__(self, name: str, value: Any) -> None:
        """
        Register submodules and parameters assigned as attributes.

        Notes
        -----
        - Assigning a :class:`Module` registers it in ``self._modules``.
        - Assigning a :class:`Tensor` registers it in ``self._parameters``.
        - Everything is still set as a normal attribute via ``super().__setattr__``.
        """
        if isinstance(value, Module):
            self._modules[name] = value
        elif isinstance(value, Tensor):
            self._parameters[name] = value
        super().__setattr__(name, value)

    def __repr__(self):
        name = type(self).__name__
        if not self._modules:
            return f"{name}()"
        children = "\n".join(f"({key}): {module!r}" for key, module in self._modules.items())
        return f"{name}(\n{textwrap.indent(children, '  ')}\n)"

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        return self.forward(*args, **kwargs)

    def forward(self, *args: Any, **kwargs: Any) -> Any:
        raise NotImplementedError


class Linear(Module):
    """
    Fully-connected layer over column batches.

    Computes ``y = W @ x + b`` for ``x`` of shape ``(in_features, batch)``.
    ``W`` is He-initialized; ``b`` starts at zero and broadcasts over the batch.

    Parameters
    ----------
    in_features : int
        Number of input features.
    out_features : int
        Number of output features.

    Notes
    -----
    The weight is registered before the bias.
    """
    def __init__(self, in_features: int, out_features: int) -> None:
        super().__init__()
        self.in_features = in_features
        self.out_features = out_features
        self.weight = Tensor.random((out_features, in_features), in_degree=in_features)
        self.bias = Tensor.zeros(out_features, 1)

    def __repr__(self):
        return f"{self.__class__.__name__}(in_features={self.in_features}, out_features={self.out_features})"

    def forward(self, x: Tensor) -> Tensor:
        """
        Parameters
        ----------
        x : Tensor
            Input tensor of shape ``(in_features, batch)``.

        Returns
        -------
        Tensor
            Output tensor of shape ``(out_features, batch)``.
        """
        return self.weight @ x + self.bias


class ReLU(Module):
    """Element-wise ReLU activation: ``max(0, x)``."""
    def forward(self, x: Tensor) -> Tensor:
        return x.relu()


class Sigmoid(Module):
    """Element-wise logistic sigmoid activation."""
    def forward(self, x: Tensor) -> Tensor:
        return x.sigmoid()


class Sequential(Module):
    """
    A container module that applies submodules in sequence.

    Parameters
    ----------
    *modules : Module
        Modules applied in the given order. Their parameters are registered
        in the same order.
    """
    def __init__(self, *modules: Module) -> None:
        super().__init__()
        for idx, module in enumerate(modules):
            if not isinstance(module, Module):
                raise TypeError(f"Sequential takes Module instances, got {type(module).__name__}")
            self._modules[str(idx)] = module

    def forward(self, x: Tensor) -> Tensor:
        """Apply each module to the output of the previous one."""
        for module in self._modules.values():
            x = module(x)
        return x

