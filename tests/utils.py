import numpy as np
import torch

from revgrad.tensor import Tensor

ATOL = 1e-6
RTOL = 1e-5


def tdata(t: Tensor):
    return t.numpy()


def tgrad(t: Tensor):
    return t.grads.reshape(t.shape).copy()


def make_tensor(x_np: np.ndarray) -> Tensor:
    return Tensor(np.asarray(x_np, dtype=np.float32))


def make_torch(x_np: np.ndarray, requires_grad: bool = True) -> torch.Tensor:
    return torch.tensor(np.asarray(x_np, dtype=np.float32), requires_grad=requires_grad)


def assert_close(a, b, atol=ATOL, rtol=RTOL):
    a = np.asarray(a)
    b = np.asarray(b)
    assert a.shape == b.shape, f"shape {a.shape} != {b.shape}"
    assert np.allclose(a, b, atol=atol, rtol=rtol), f"max|diff|={np.max(np.abs(a-b))}"


def assert_grad_close(t: Tensor, tt: torch.Tensor, atol=ATOL, rtol=RTOL):
    assert tt.grad is not None, "Torch grad is None"
    assert_close(tgrad(t), tt.grad.detach().cpu().numpy(), atol=atol, rtol=rtol)
