"""
Sequential tensor blobs inside a model file.

Each parameter is written with np.save right after the previous one, so a
reader walks the stream in the same order the writer used. Network parts
mix in ParameterBlobMixin to get save()/load() over their ordered
param_list().
"""

import numpy as np
import torch


def write_tensor(stream, tensor):
    """Append one tensor blob to a binary stream."""
    np.save(stream, tensor.detach().cpu().numpy(), allow_pickle=False)


@torch.no_grad()
def read_tensor_into(stream, tensor):
    """
    Read the next blob from `stream` and copy it into `tensor` in place.

    Raises:
        ValueError: If the blob shape does not match the tensor shape
    """
    array = np.load(stream, allow_pickle=False)
    if tuple(array.shape) != tuple(tensor.shape):
        raise ValueError(
            f"Tensor blob shape {tuple(array.shape)} does not match "
            f"parameter shape {tuple(tensor.shape)}"
        )
    tensor.copy_(torch.from_numpy(array).to(dtype=tensor.dtype, device=tensor.device))


class ParameterBlobMixin:
    """
    save()/load() for nn.Module subclasses in registration order.

    Subclasses control blob order by the order they register parameters,
    or by overriding param_list().
    """

    def param_list(self):
        return list(self.parameters())

    def save(self, stream):
        for p in self.param_list():
            write_tensor(stream, p)

    def load(self, stream):
        for p in self.param_list():
            read_tensor_into(stream, p)
