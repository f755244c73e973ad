"""Custom exceptions raised by schema construction and bound views."""

from __future__ import annotations


class AxisFieldsError(Exception):
    """Base exceptions class."""


class FieldSpecError(AxisFieldsError, TypeError):
    """Raised when a field declaration cannot be interpreted."""


class DuplicateFieldError(AxisFieldsError, ValueError):
    """Raised when two fields of one schema share a name.

    Args:
        names: The duplicated field names.
    """

    def __init__(self, names: list[str] | tuple[str, ...]):
        self.names = tuple(names)
        super().__init__(f"Duplicate field names are not allowed: {list(self.names)}")


class ShapeMismatchError(AxisFieldsError, ValueError):
    """Raised when field names and declared sizes do not line up."""


class SizeMismatchError(AxisFieldsError, ValueError):
    """Raised when a buffer's extent on the schema axis differs from the schema length.

    Args:
        message: Message to show with the exception.
        axis: Axis the schema lays its fields out on.
        shape: Shape of the offending buffer.
        length: Length of the schema.
    """

    def __init__(
        self,
        message: str,
        axis: int | None = None,
        shape: tuple[int, ...] | None = None,
        length: int | None = None,
    ):
        if axis is not None and shape is not None and length is not None:
            message = f"{message} - buffer shape: {shape} <> schema length on axis {axis}: {length}"

        super().__init__(message)


class UnknownFieldError(AxisFieldsError, KeyError, AttributeError):
    """Raised when a name is not a field of the schema.

    Subclasses both ``KeyError`` and ``AttributeError`` so item and attribute
    style lookups fail the way callers expect (``hasattr`` returns False).
    """

    def __init__(self, name: str, names: tuple[str, ...] | None = None):
        self.field = name
        message = f"No field named {name!r}"
        if names is not None:
            message = f"{message}, available fields: {list(names)}"
        super().__init__(message)

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return str(self.args[0])


class BroadcastError(AxisFieldsError, ValueError):
    """Raised when an assigned value cannot be broadcast into a field's slice."""


class AxisError(AxisFieldsError, IndexError):
    """Raised when a schema axis is out of range for a buffer."""
