from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Tuple, Union

import numpy as np
from numpy.typing import DTypeLike, NDArray

from axisfields.core.datastructures.schema import OffsetDescriptor, Schema
from axisfields.core.exceptions import BroadcastError, SizeMismatchError, UnknownFieldError
from axisfields.core.utils import array_funcs as arr
from axisfields.core.utils.validators import (
    validate_axis,
    validate_buffer,
    validate_dims,
    validate_dtype,
)

if TYPE_CHECKING:
    import cupy as cp


class BoundView:
    """
    A buffer paired with a Schema, reading and writing named fields in place.

    Every read returns an alias of the buffer: plain fields give the slice at
    their position (a scalar for a 1-D buffer), sized fields give the block
    reshaped to ``shape + remaining_dims``, nested fields give a new BoundView
    over their block, and repeated nested fields give an object array of
    BoundViews. Writes broadcast the value into the same slices.

    Basic Usage:
    -----------
    s = build_schema("a", "b")
    x = np.arange(10).reshape(2, 5)
    view = BoundView(x, s)  # or s(x), or bind(x, s)
    view.a                  # array([0, 1, 2, 3, 4]), a view of x[0]
    view.b = 7              # x[1] is now all 7
    view.buffer is x        # True

    Notes:
    -----
    - Views derived from one buffer share its storage. Nothing is locked, the
      caller coordinates concurrent writers.
    - Field names that clash with attributes of this class are reachable with
      ``view["name"]``, ``view.get("name")`` and ``view.set("name", value)``.
    """

    def __init__(self, buffer: Any, schema: Schema) -> None:
        if not isinstance(schema, Schema):
            raise TypeError(f"schema must be a Schema, got {type(schema).__name__}")
        buffer = validate_buffer(buffer)
        axis = validate_axis(schema.axis, buffer.ndim)
        if buffer.shape[axis] != schema.length:
            raise SizeMismatchError(
                "Buffer does not match schema length",
                axis=axis,
                shape=tuple(buffer.shape),
                length=schema.length,
            )
        object.__setattr__(self, "_buffer", buffer)
        object.__setattr__(self, "_schema", schema if schema.intercept == 0 else schema.rebase(0))
        object.__setattr__(self, "_axis", axis)

    # --- field access ---

    def get(self, name: str) -> Union[Any, NDArray, "BoundView", NDArray[np.object_]]:
        """
        Read a field.

        Raises
        ------
        UnknownFieldError
            If the schema has no field ``name``
        """
        return self._read(self._schema.resolve(name))

    def set(self, name: str, value: Any) -> None:
        """
        Write ``value`` into a field, broadcasting it across the field's slice.

        Raises
        ------
        UnknownFieldError
            If the schema has no field ``name``
        BroadcastError
            If ``value`` cannot be broadcast to the field's slice. The buffer
            may be partially written in that case.
        """
        descriptor = self._schema.resolve(name)
        if isinstance(value, BoundView):
            value = value.buffer
        try:
            self._write(descriptor, value)
        except ValueError as e:
            shape = getattr(value, "shape", ())
            raise BroadcastError(
                f"Cannot assign value of shape {tuple(shape)} to field {name!r}: {e}"
            ) from e

    def _read(self, descriptor: OffsetDescriptor) -> Any:
        buffer, axis = self._buffer, self._axis
        if isinstance(descriptor, Schema):
            return self._wrap(descriptor)
        if isinstance(descriptor, np.ndarray):
            if descriptor.dtype == object:
                views = np.empty(descriptor.shape, dtype=object)
                for idx, inner in np.ndenumerate(descriptor):
                    views[idx] = self._wrap(inner)
                return views
            block = arr.take_block(buffer, axis, int(descriptor.flat[0]), int(descriptor.flat[-1]) + 1)
            return arr.fold_block(block, axis, descriptor.shape)
        res = arr.take_position(buffer, axis, int(descriptor))
        if res.ndim == 0:
            return res[()]
        return res

    def _wrap(self, schema: Schema) -> "BoundView":
        block = arr.take_block(self._buffer, self._axis, schema.intercept, schema.intercept + schema.length)
        return BoundView(block, schema.rebase(0))

    def _write(self, descriptor: OffsetDescriptor, value: Any) -> None:
        buffer, axis = self._buffer, self._axis
        if isinstance(descriptor, Schema):
            block = arr.take_block(buffer, axis, descriptor.intercept, descriptor.intercept + descriptor.length)
            block[...] = value
        elif isinstance(descriptor, np.ndarray) and descriptor.dtype == object:
            if isinstance(value, np.ndarray) and value.dtype == object:
                # one value per copy, each written in the layout of its own view
                if value.shape != descriptor.shape:
                    raise ValueError(f"expected {descriptor.shape} values, got {value.shape}")
                for idx, item in np.ndenumerate(value):
                    self._wrap(descriptor[idx]).buffer[...] = (
                        item.buffer if isinstance(item, BoundView) else item
                    )
            else:
                first, last = descriptor.flat[0], descriptor.flat[-1]
                block = arr.take_block(buffer, axis, first.intercept, last.intercept + last.length)
                arr.fold_block(block, axis, descriptor.shape + (first.length,))[...] = value
        elif isinstance(descriptor, np.ndarray):
            block = arr.take_block(buffer, axis, int(descriptor.flat[0]), int(descriptor.flat[-1]) + 1)
            arr.fold_block(block, axis, descriptor.shape)[...] = value
        else:
            buffer[arr.axis_index(buffer.ndim, axis, int(descriptor))] = value

    def __getattr__(self, name: str) -> Any:
        # only reached when normal lookup fails
        if name.startswith("_"):
            raise AttributeError(name)
        return self.get(name)

    def __setattr__(self, name: str, value: Any) -> None:
        if hasattr(type(self), name):
            raise AttributeError(
                f"{name!r} is an attribute of BoundView, use view[{name!r}] = value to assign the field"
            )
        if name not in self._schema:
            raise UnknownFieldError(name, self._schema.names)
        self.set(name, value)

    def __getitem__(self, idx: Any) -> Any:
        if isinstance(idx, str):
            return self.get(idx)
        return self._buffer[idx]

    def __setitem__(self, idx: Any, value: Any) -> None:
        if isinstance(idx, str):
            self.set(idx, value)
        else:
            self._buffer[idx] = value

    # --- allocation ---

    def similar(
        self,
        dtype: "DTypeLike | None" = None,
        *dims: int,
        fill_value: Any = None,
    ) -> "BoundView":
        """
        New independent view with the same schema.

        Parameters
        ----------
        dtype : DTypeLike, optional
            Element type of the new buffer, defaults to this buffer's dtype
        *dims : int or tuple of int
            Dimensions other than the schema axis, defaults to this buffer's.
            A single tuple is taken as the dims, so ``similar(dtype, ())``
            allocates along the schema axis only.
        fill_value : optional
            Fill the new buffer, otherwise it is left uninitialized
        """
        if dtype is None:
            dtype = self._buffer.dtype
        if len(dims) == 1 and isinstance(dims[0], tuple):
            dims = dims[0]
        elif not dims:
            dims = arr.remove_axis_dim(tuple(self._buffer.shape), self._axis)
        device = "gpu" if arr.get_array_module(self._buffer) is not np else "cpu"
        return allocate(self._schema, dtype, *dims, fill_value=fill_value, device=device)

    # --- introspection ---

    @property
    def buffer(self) -> "np.ndarray | cp.ndarray":
        return self._buffer

    @property
    def schema(self) -> Schema:
        return self._schema

    @property
    def axis(self) -> int:
        return self._axis

    @property
    def shape(self) -> Tuple[int, ...]:
        return tuple(self._buffer.shape)

    @property
    def dtype(self) -> np.dtype:
        return self._buffer.dtype

    @property
    def ndim(self) -> int:
        return self._buffer.ndim

    @property
    def size(self) -> int:
        return self._buffer.size

    def keys(self) -> Tuple[str, ...]:
        return self._schema.names

    def items(self) -> Iterator[Tuple[str, Any]]:
        for name in self._schema.names:
            yield name, self.get(name)

    def to_dict(self) -> Dict[str, Any]:
        """Read every field, nested views become dicts and repeated views nested lists of dicts."""
        out: Dict[str, Any] = {}
        for name, value in self.items():
            if isinstance(value, BoundView):
                out[name] = value.to_dict()
            elif isinstance(value, np.ndarray) and value.dtype == object:
                out[name] = _views_to_lists(value)
            else:
                out[name] = value
        return out

    def __iter__(self) -> Iterator[str]:
        return iter(self._schema.names)

    def __contains__(self, name: object) -> bool:
        return name in self._schema

    def __len__(self) -> int:
        return len(self._schema.names)

    def __dir__(self) -> List[str]:
        return sorted(set(super().__dir__()) | {n for n in self._schema.names if n.isidentifier()})

    def __array__(self, dtype: "DTypeLike | None" = None, copy: "bool | None" = None) -> np.ndarray:
        if copy:
            return np.array(self._buffer, dtype=dtype, copy=True)
        return np.asarray(self._buffer, dtype=dtype)

    def __repr__(self) -> str:
        return f"BoundView(shape={self.shape}, dtype={self.dtype}, names={self._schema.names})"


def _views_to_lists(views: NDArray[np.object_]) -> List[Any]:
    if views.ndim == 1:
        return [view.to_dict() for view in views]
    return [_views_to_lists(sub) for sub in views]


def bind(buffer: Any, schema: Schema) -> BoundView:
    """Pair ``buffer`` with ``schema``, failing with SizeMismatchError if they disagree."""
    return BoundView(buffer, schema)


def allocate(
    schema: Schema,
    dtype: "DTypeLike | None" = None,
    *dims: int,
    fill_value: Any = None,
    device: str = "cpu",
) -> BoundView:
    """
    Allocate a buffer for ``schema`` and bind it.

    The buffer shape is ``dims`` with ``schema.length`` inserted at
    ``schema.axis``. It is uninitialized unless ``fill_value`` is given.

    Parameters
    ----------
    schema : Schema
        Layout of the new buffer
    dtype : DTypeLike, optional
        Element type, defaults to config ``default_dtype``
    *dims : int
        Dimensions other than the schema axis
    fill_value : optional
        Value to fill the buffer with
    device : str
        "cpu" for numpy, "gpu" for cupy
    """
    shape = arr.insert_axis_dim(validate_dims(dims), schema.axis, schema.length)
    buffer = arr.allocate(shape, validate_dtype(dtype), fill_value=fill_value, device=device)
    return BoundView(buffer, schema)


def similar_view(
    view: BoundView, dtype: "DTypeLike | None" = None, *dims: int, fill_value: Any = None
) -> BoundView:
    return view.similar(dtype, *dims, fill_value=fill_value)


def underlying_buffer(view: BoundView) -> "np.ndarray | cp.ndarray":
    return view.buffer


def get_field(view: BoundView, name: str) -> Any:
    return view.get(name)


def set_field(view: BoundView, name: str, value: Any) -> None:
    view.set(name, value)
