"""
Array module ambivalent helpers for slicing along a single axis and allocating
buffers. numpy and cupy are interchangeable and treated the same.
"""

from typing import TYPE_CHECKING, Tuple, Union

import numpy as np
from numpy.typing import DTypeLike

from axisfields.core import config
from axisfields.core.exceptions import AxisError

if TYPE_CHECKING:
    import cupy as cp
else:
    if config.get("has_cupy"):
        import cupy as cp

ArrayLike = Union[np.ndarray, "cp.ndarray"]


def get_array_module(array: ArrayLike):
    """Returns np or cp depending on the array type."""
    if config.get("has_cupy"):
        if isinstance(array, cp.ndarray):
            return cp
    if isinstance(array, np.ndarray):
        return np
    raise TypeError(f"Unsupported array type for get_array_module: {type(array)}")


def get_device_module(device: str):
    if device == "cpu":
        return np
    if device == "gpu":
        if not config.get("has_cupy"):
            raise RuntimeError("device='gpu' requires cupy, which is not available")
        return cp
    raise ValueError(f"device must be 'cpu' or 'gpu', got {device!r}")


def axis_index(ndim: int, axis: int, index: Union[int, slice]) -> Tuple[Union[int, slice], ...]:
    """Index tuple selecting ``index`` on ``axis`` and everything on the other axes."""
    return (slice(None),) * axis + (index,) + (slice(None),) * (ndim - axis - 1)


def take_block(array: ArrayLike, axis: int, start: int, stop: int) -> ArrayLike:
    """Basic-indexing slice ``start:stop`` along ``axis``, always a view."""
    return array[axis_index(array.ndim, axis, slice(start, stop))]


def take_position(array: ArrayLike, axis: int, position: int) -> ArrayLike:
    """Drop ``axis`` by selecting one position on it, a view unless the result is 0-d."""
    return array[axis_index(array.ndim, axis, position)]


def fold_block(block: ArrayLike, axis: int, shape: Tuple[int, ...]) -> ArrayLike:
    """
    Move ``axis`` to the front and split it into ``shape``.

    Splitting one axis can always be expressed with strides, so the result
    stays a view of ``block``.
    """
    xp = get_array_module(block)
    moved = xp.moveaxis(block, axis, 0)
    return moved.reshape(shape + moved.shape[1:])


def insert_axis_dim(dims: Tuple[int, ...], axis: int, length: int) -> Tuple[int, ...]:
    """Shape with ``length`` inserted at ``axis``; negative axes count from the end of the result."""
    ndim = len(dims) + 1
    if not -ndim <= axis < ndim:
        raise AxisError(f"axis {axis} is out of bounds for array of dimension {ndim}")
    axis = axis % ndim
    return dims[:axis] + (length,) + dims[axis:]


def remove_axis_dim(shape: Tuple[int, ...], axis: int) -> Tuple[int, ...]:
    return shape[:axis] + shape[axis + 1 :]


def allocate(
    shape: Tuple[int, ...],
    dtype: DTypeLike,
    fill_value=None,
    device: str = "cpu",
) -> ArrayLike:
    """Uninitialized buffer, or one filled with ``fill_value`` when given."""
    xp = get_device_module(device)
    if fill_value is None:
        return xp.empty(shape, dtype=dtype)
    return xp.full(shape, fill_value, dtype=dtype)
