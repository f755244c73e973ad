from typing import TYPE_CHECKING, Any, List, Sequence, Tuple, Union
from warnings import warn

import numpy as np
from numpy.typing import DTypeLike

from axisfields.core import config
from axisfields.core.exceptions import AxisError, DuplicateFieldError, FieldSpecError

if TYPE_CHECKING:
    import cupy as cp
else:
    if config.get("has_cupy"):
        import cupy as cp


# --- Schema Validation Functions ---
def validate_shape(shape: Union[Tuple[int, ...], int]) -> Tuple[int, ...]:
    """
    Validate and convert a field shape to a tuple of integers.

    Parameters
    ----------
    shape : Tuple[int, ...] or int
        The shape to validate, a bare int is treated as a 1-tuple

    Returns
    -------
    Tuple[int, ...]
        The validated shape

    Raises
    ------
    ValueError
        If shape is empty or contains non-positive integers
    TypeError
        If shape is not a tuple or contains non-integer values
    """
    if isinstance(shape, (int, np.integer)) and not isinstance(shape, bool):
        shape = (int(shape),)
    if not isinstance(shape, tuple):
        raise TypeError(f"Shape must be a tuple, got {type(shape)}")
    if len(shape) == 0:
        raise ValueError("Shape must have at least one dimension")

    validated = []
    for dim in shape:
        if isinstance(dim, bool) or not isinstance(dim, (int, np.integer)):
            raise TypeError(f"Shape dimensions must be integers, got {type(dim)}")
        if dim <= 0:
            raise ValueError(f"Shape dimensions must be positive, got {dim}")
        validated.append(int(dim))

    return tuple(validated)


def validate_name(name: Any) -> str:
    if not isinstance(name, str):
        raise FieldSpecError(f"Field names must be strings, got {type(name).__name__}")
    if not name:
        raise FieldSpecError("Field names must not be empty")
    return name


def validate_fields(fields: Sequence[str]) -> Tuple[str, ...]:
    """Check names are unique, and warn about names attribute access cannot reach."""
    if not isinstance(fields, (list, tuple)):
        raise TypeError(f"fields must be a list or tuple, got {type(fields)}")
    names = tuple(validate_name(field) for field in fields)

    seen = set()
    duplicates: List[str] = []
    for name in names:
        if name in seen and name not in duplicates:
            duplicates.append(name)
        seen.add(name)
    if duplicates:
        raise DuplicateFieldError(duplicates)

    hidden = [name for name in names if not name.isidentifier() or name.startswith("_")]
    if hidden:
        warn(f"Fields {hidden} are only reachable with item access, e.g. view[{hidden[0]!r}]")
    return names


def validate_axis(axis: int, ndim: int, name: str = "axis") -> int:
    """
    Normalize a possibly negative axis against ``ndim``.

    Raises
    ------
    AxisError
        If the axis is out of range
    TypeError
        If the axis is not an integer
    """
    if isinstance(axis, bool) or not isinstance(axis, (int, np.integer)):
        raise TypeError(f"{name} must be an integer, got {type(axis)}")
    if not -ndim <= axis < ndim:
        raise AxisError(f"{name} {axis} is out of bounds for array of dimension {ndim}")
    return int(axis) % ndim


def validate_schema_axis(axis: int) -> int:
    if isinstance(axis, bool) or not isinstance(axis, (int, np.integer)):
        raise TypeError(f"axis must be an integer, got {type(axis)}")
    return int(axis)


def validate_dims(dims: Sequence[int]) -> Tuple[int, ...]:
    validated = []
    for dim in dims:
        if isinstance(dim, bool) or not isinstance(dim, (int, np.integer)):
            raise TypeError(f"Dimensions must be integers, got {type(dim)}")
        if dim < 0:
            raise ValueError(f"Dimensions must be non-negative, got {dim}")
        validated.append(int(dim))
    return tuple(validated)


# --- Buffer Validation Functions ---
def validate_buffer(value: Any, name: str = "buffer") -> "np.ndarray | cp.ndarray":
    """
    Return ``value`` unchanged if it is a numpy (or cupy) array, otherwise convert it.

    Converted buffers are copies, so writes through a view never reach the
    original object. A warning is emitted unless ``warn_on_copy`` is disabled.

    Raises
    ------
    TypeError
        If the value could not be converted to a numpy array
    """
    if isinstance(value, np.ndarray):
        return value
    if config.get("has_cupy"):
        if isinstance(value, cp.ndarray):
            return value
    try:
        converted = np.asarray(value)
    except (ValueError, TypeError) as e:
        raise TypeError(f"{name} must be array like, got type {type(value)}: {e}") from e
    if converted.ndim < 1:
        raise TypeError(f"{name} must be at least 1D, got a scalar of type {type(value)}")
    if config.get("warn_on_copy"):
        warn(
            f"{name} of type {type(value).__name__} was copied into a numpy array, "
            "writes will not propagate to the original object"
        )
    return converted


def validate_dtype(dtype: "DTypeLike | None") -> np.dtype:
    dtype = config.get("default_dtype", override_with=dtype)
    try:
        return np.dtype(dtype)
    except TypeError as e:
        raise TypeError(f"Could not interpret {dtype!r} as a dtype: {e}") from e
