import copy
import math
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional, Sequence, Tuple, Union
from warnings import warn

import numpy as np
from numpy.typing import DTypeLike, NDArray

from axisfields.core import config
from axisfields.core.exceptions import FieldSpecError, ShapeMismatchError, UnknownFieldError
from axisfields.core.utils.validators import (
    validate_fields,
    validate_name,
    validate_schema_axis,
    validate_shape,
)


# region --- field specifications ---


@dataclass(frozen=True)
class Plain:
    """Scalar field, one position wide."""

    name: str

    def __post_init__(self) -> None:
        validate_name(self.name)

    @property
    def shape(self) -> Tuple[int, ...]:
        return (1,)

    @property
    def width(self) -> int:
        return 1


@dataclass(frozen=True)
class Sized:
    """Field of ``prod(shape)`` consecutive positions, addressed as an array of ``shape``."""

    name: str
    shape: Tuple[int, ...]

    def __post_init__(self) -> None:
        validate_name(self.name)
        object.__setattr__(self, "shape", validate_shape(self.shape))

    @property
    def width(self) -> int:
        return math.prod(self.shape)


@dataclass(frozen=True)
class Nested:
    """Field addressed through another schema."""

    name: str
    schema: "Schema"

    def __post_init__(self) -> None:
        validate_name(self.name)
        if not isinstance(self.schema, Schema):
            raise FieldSpecError(
                f"Nested field {self.name!r} needs a Schema, got {type(self.schema).__name__}"
            )

    @property
    def shape(self) -> Tuple[int, ...]:
        return (1,)

    @property
    def width(self) -> int:
        return self.schema.length


@dataclass(frozen=True)
class NestedRepeated:
    """``prod(shape)`` consecutive copies of a schema, addressed as an array of schemas."""

    name: str
    schema: "Schema"
    shape: Tuple[int, ...]

    def __post_init__(self) -> None:
        validate_name(self.name)
        if not isinstance(self.schema, Schema):
            raise FieldSpecError(
                f"Repeated field {self.name!r} needs a Schema, got {type(self.schema).__name__}"
            )
        object.__setattr__(self, "shape", validate_shape(self.shape))

    @property
    def width(self) -> int:
        return math.prod(self.shape) * self.schema.length


FieldSpec = Union[Plain, Sized, Nested, NestedRepeated]
OffsetDescriptor = Union[int, NDArray[np.int64], "Schema", NDArray[np.object_]]


def as_field_spec(field: Any) -> FieldSpec:
    """
    Normalize a field declaration.

    Accepted forms
    --------------
    "a"                         -> Plain("a")
    ("a", (2, 3)) or ("a", 4)   -> Sized("a", ...)
    ("a", schema)               -> Nested("a", schema)
    ("a", schema, (3,))         -> NestedRepeated("a", schema, (3,))
    ("a", (schema, (3,)))       -> NestedRepeated("a", schema, (3,))
    """
    if isinstance(field, (Plain, Sized, Nested, NestedRepeated)):
        return field
    if isinstance(field, str):
        return Plain(field)
    if isinstance(field, tuple):
        if len(field) == 3:
            name, schema, shape = field
            return NestedRepeated(name, schema, shape)
        if len(field) == 2:
            name, size = field
            if isinstance(size, Schema):
                return Nested(name, size)
            if isinstance(size, tuple) and len(size) == 2 and isinstance(size[0], Schema):
                return NestedRepeated(name, size[0], size[1])
            return Sized(name, size)
    raise FieldSpecError(f"Cannot interpret {field!r} as a field declaration")


def _on_axis(schema: "Schema", axis: int) -> "Schema":
    """Re-express a nested schema (and everything it nests) on ``axis``."""
    if schema.axis == axis and all(
        _on_axis(spec.schema, axis) is spec.schema
        for spec in schema.field_specs
        if isinstance(spec, (Nested, NestedRepeated))
    ):
        return schema
    specs = []
    for spec in schema.field_specs:
        if isinstance(spec, Nested):
            spec = Nested(spec.name, _on_axis(spec.schema, axis))
        elif isinstance(spec, NestedRepeated):
            spec = NestedRepeated(spec.name, _on_axis(spec.schema, axis), spec.shape)
        specs.append(spec)
    return Schema(axis, specs, intercept=schema.intercept, _token=Schema._token)


# endregion


class _Uninitialized:
    def __repr__(self) -> str:
        return "UNINITIALIZED"


UNINITIALIZED = _Uninitialized()


class Schema:
    """
    Immutable description of named fields laid out consecutively along one axis.

    Fields are placed left to right with no gaps. Each field owns a contiguous
    run of positions: one for a plain field, ``prod(shape)`` for a sized
    field, ``schema.length`` for a nested schema and ``prod(shape) *
    schema.length`` for a repeated nested schema. A schema holds no data; it is
    applied to a buffer to obtain a BoundView.

    Basic Usage:
    -----------
    s = build_schema("a", "b")
    s.length                    # 2
    s.resolve("b")              # 1

    inner = build_schema("x", "y")
    outer = build_schema("t", ("pos", inner), ("w", (2, 2)), ("hist", inner, (3,)))
    outer.resolve("pos")        # Schema with intercept 1
    outer.resolve("w")          # array([[3, 4], [5, 6]])
    outer.offset_range("hist")  # range(7, 13)

    view = outer(np.zeros((13, 5)))
    view.pos.x = 1.0

    Notes:
    -----
    - Offsets are 0-based and absolute, i.e. include the intercept.
    - Multi-dimensional shapes expand in C order.
    - ``rebase`` returns a shifted copy, the offset table itself is stored
      relative to 0 and shared between rebased copies.
    - Equality ignores the intercept.
    """

    _token = object()

    def __init__(
        self,
        axis: int,
        fields: Sequence[FieldSpec],
        intercept: int = 0,
        _token: object | None = None,
    ) -> None:
        if _token is not self._token:
            raise RuntimeError("Use build_schema() or Schema.from_fields() to instantiate this class.")

        self._axis = validate_schema_axis(axis)
        self._field_specs: Tuple[FieldSpec, ...] = tuple(fields)
        if len(self._field_specs) == 0:
            raise ShapeMismatchError("A schema needs at least one field")
        self._names = validate_fields([spec.name for spec in self._field_specs])
        self._sizes = tuple(spec.shape for spec in self._field_specs)
        if intercept < 0:
            raise ValueError(f"intercept must be non-negative, got {intercept}")
        self._intercept = int(intercept)

        self._starts: Dict[str, int] = {}
        self._specs: Dict[str, FieldSpec] = {}
        self._relative: Dict[str, OffsetDescriptor] = {}
        cursor = 0
        for spec in self._field_specs:
            self._starts[spec.name] = cursor
            self._specs[spec.name] = spec
            self._relative[spec.name] = self._relative_offsets(spec, cursor)
            cursor += spec.width
        self._length = cursor

    @staticmethod
    def _relative_offsets(spec: FieldSpec, cursor: int) -> OffsetDescriptor:
        if isinstance(spec, Plain):
            return cursor
        if isinstance(spec, Sized):
            offsets = np.arange(cursor, cursor + spec.width, dtype=np.int64).reshape(spec.shape)
            offsets.flags.writeable = False
            return offsets
        if isinstance(spec, Nested):
            return spec.schema.rebase(cursor)
        repeated = np.empty(spec.shape, dtype=object)
        for k in range(math.prod(spec.shape)):
            repeated[np.unravel_index(k, spec.shape)] = spec.schema.rebase(
                cursor + k * spec.schema.length
            )
        repeated.flags.writeable = False
        return repeated

    @classmethod
    def from_fields(cls, *fields: Any, axis: Optional[int] = None) -> "Schema":
        """
        Factory method to create a Schema from field declarations.

        Parameters
        ----------
        *fields : str, tuple or FieldSpec
            Field declarations in layout order, see ``as_field_spec``
        axis : Optional[int]
            Axis the fields are laid out along, defaults to config ``default_axis``

        Returns
        -------
        Schema
            A new Schema with intercept 0

        Raises
        ------
        DuplicateFieldError
            If two fields share a name
        ShapeMismatchError
            If no fields are given
        FieldSpecError
            If a declaration cannot be interpreted
        """
        axis = validate_schema_axis(config.get("default_axis", override_with=axis))
        specs = []
        moved = []
        for field in fields:
            spec = as_field_spec(field)
            if isinstance(spec, (Nested, NestedRepeated)):
                inner = _on_axis(spec.schema, axis)
                if inner is not spec.schema:
                    moved.append(spec.name)
                    if isinstance(spec, Nested):
                        spec = Nested(spec.name, inner)
                    else:
                        spec = NestedRepeated(spec.name, inner, spec.shape)
            specs.append(spec)
        if moved:
            warn(f"Nested fields {moved} declared on another axis are laid out on axis {axis}")
        return cls(axis, specs, intercept=0, _token=cls._token)

    @classmethod
    def from_names(
        cls,
        names: Sequence[str],
        sizes: Sequence[Any],
        axis: Optional[int] = None,
    ) -> "Schema":
        """
        Factory method to create a Schema from parallel lists of names and sizes.

        Each size is a shape (int or tuple), a Schema, or a ``(Schema, shape)``
        pair; ``None`` declares a plain field. Sizes are read the same way
        ``build_schema`` reads them, so ``1`` is a sized field of one element.

        Raises
        ------
        ShapeMismatchError
            If ``names`` and ``sizes`` differ in length
        """
        names = list(names)
        sizes = list(sizes)
        if len(names) != len(sizes):
            raise ShapeMismatchError(
                f"Number of names ({len(names)}) does not match length of sizes list ({len(sizes)})"
            )
        fields = []
        for name, size in zip(names, sizes):
            if size is None:
                fields.append(Plain(name))
            else:
                fields.append((name, size))
        return cls.from_fields(*fields, axis=axis)

    # --- offset algebra ---

    def rebase(self, intercept: int) -> "Schema":
        """Copy of this schema starting at ``intercept``; nested structure is shared."""
        if intercept < 0:
            raise ValueError(f"intercept must be non-negative, got {intercept}")
        rebased = copy.copy(self)
        rebased._intercept = int(intercept)
        return rebased

    def resolve(self, name: str) -> OffsetDescriptor:
        """
        Absolute offset descriptor of a field.

        Returns
        -------
        int
            For a plain field
        NDArray[np.int64]
            For a sized field, an array of the declared shape
        Schema
            For a nested field, rebased to its absolute start
        NDArray[np.object_]
            For a repeated nested field, an array of the declared shape of
            rebased schemas

        Raises
        ------
        UnknownFieldError
            If the schema has no field ``name``
        """
        relative = self._lookup(name, self._relative)
        shift = self._intercept
        if isinstance(relative, Schema):
            return relative.rebase(relative.intercept + shift)
        if isinstance(relative, np.ndarray):
            if relative.dtype == object:
                resolved = np.empty(relative.shape, dtype=object)
                for idx, inner in np.ndenumerate(relative):
                    resolved[idx] = inner.rebase(inner.intercept + shift)
                return resolved
            return relative + shift
        return relative + shift

    offsets = resolve

    def offset_range(self, name: str) -> range:
        """The contiguous absolute positions owned by ``name``."""
        start = self._lookup(name, self._starts) + self._intercept
        return range(start, start + self._specs[name].width)

    def field_spec(self, name: str) -> FieldSpec:
        return self._lookup(name, self._specs)

    def size_of(self, name: str) -> Tuple[int, ...]:
        return self._lookup(name, self._specs).shape

    def _lookup(self, name: str, table: Dict[str, Any]) -> Any:
        try:
            return table[name]
        except (KeyError, TypeError):
            raise UnknownFieldError(name, self._names) from None

    # --- binding ---

    def bind(self, buffer: Any):
        from axisfields.core.datastructures.bound_view import BoundView

        return BoundView(buffer, self)

    def allocate(
        self,
        dtype: "DTypeLike | None" = None,
        *dims: int,
        fill_value: Any = None,
        device: str = "cpu",
    ):
        from axisfields.core.datastructures.bound_view import allocate

        return allocate(self, dtype, *dims, fill_value=fill_value, device=device)

    def __call__(self, buffer: Any, *args: Any, **kwargs: Any):
        """``schema(buffer)`` binds, ``schema(UNINITIALIZED, dtype, *dims)`` allocates."""
        if buffer is UNINITIALIZED:
            return self.allocate(*args, **kwargs)
        if args or kwargs:
            raise TypeError("Binding takes a single buffer, pass UNINITIALIZED first to allocate")
        return self.bind(buffer)

    # --- introspection ---

    @property
    def axis(self) -> int:
        return self._axis

    @property
    def names(self) -> Tuple[str, ...]:
        return self._names

    @property
    def sizes(self) -> Tuple[Tuple[int, ...], ...]:
        return self._sizes

    @property
    def intercept(self) -> int:
        return self._intercept

    @property
    def length(self) -> int:
        return self._length

    @property
    def field_specs(self) -> Tuple[FieldSpec, ...]:
        return self._field_specs

    def keys(self) -> Tuple[str, ...]:
        return self._names

    def __len__(self) -> int:
        return self._length

    def __iter__(self) -> Iterator[str]:
        return iter(self._names)

    def __contains__(self, name: object) -> bool:
        return name in self._specs

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Schema):
            return NotImplemented
        return self._axis == other._axis and self._field_specs == other._field_specs

    def __hash__(self) -> int:
        return hash((self._axis, self._field_specs))

    def __repr__(self) -> str:
        intercept = f", intercept={self._intercept}" if self._intercept else ""
        return f"Schema(axis={self._axis}, length={self._length}{intercept}, names={self._names})"


def build_schema(*fields: Any, axis: Optional[int] = None) -> Schema:
    """Build a Schema from field declarations, see ``Schema.from_fields``."""
    return Schema.from_fields(*fields, axis=axis)


def rebase(schema: Schema, intercept: int) -> Schema:
    return schema.rebase(intercept)


def resolve(schema: Schema, name: str) -> OffsetDescriptor:
    return schema.resolve(name)
