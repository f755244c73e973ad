import numpy as np
import pytest

from axisfields.core import config
from axisfields.core.exceptions import AxisError, DuplicateFieldError, FieldSpecError
from axisfields.core.utils import array_funcs as arr
from axisfields.core.utils.validators import (
    validate_axis,
    validate_buffer,
    validate_dims,
    validate_dtype,
    validate_fields,
    validate_name,
    validate_shape,
)


# --- Tests ---
def test_validate_shape():
    """Shapes are positive int tuples; bare ints are promoted."""
    assert validate_shape((2, 3)) == (2, 3)
    assert validate_shape(4) == (4,)
    assert validate_shape((np.int64(2),)) == (2,)

    with pytest.raises(TypeError):
        validate_shape([2, 3])
    with pytest.raises(TypeError):
        validate_shape((True,))
    with pytest.raises(ValueError, match="at least one dimension"):
        validate_shape(())
    with pytest.raises(ValueError):
        validate_shape((2, -1))


def test_validate_fields():
    assert validate_fields(["a", "b"]) == ("a", "b")

    with pytest.raises(DuplicateFieldError) as excinfo:
        validate_fields(["a", "b", "a", "b", "c"])
    assert excinfo.value.names == ("a", "b")

    with pytest.raises(FieldSpecError):
        validate_fields(["a", 1])
    with pytest.raises(TypeError):
        validate_fields("ab")

    with pytest.raises(FieldSpecError, match="must not be empty"):
        validate_name("")


def test_validate_axis():
    assert validate_axis(0, 2) == 0
    assert validate_axis(-1, 3) == 2

    with pytest.raises(AxisError, match="out of bounds"):
        validate_axis(2, 2)
    with pytest.raises(IndexError):
        validate_axis(-3, 2)
    with pytest.raises(TypeError):
        validate_axis(1.0, 2)


def test_validate_dims():
    assert validate_dims((1, 0, np.int32(3))) == (1, 0, 3)
    with pytest.raises(ValueError):
        validate_dims((-2,))


def test_validate_buffer():
    x = np.zeros(3)
    assert validate_buffer(x) is x

    with pytest.warns(UserWarning, match="copied into a numpy array"):
        converted = validate_buffer([1, 2, 3])
    assert isinstance(converted, np.ndarray)

    with pytest.raises(TypeError, match="at least 1D"):
        validate_buffer(5.0)


def test_validate_dtype():
    assert validate_dtype(np.int8) == np.dtype(np.int8)
    assert validate_dtype(None) == np.dtype(config.get("default_dtype"))
    with pytest.raises(TypeError, match="Could not interpret") as excinfo:
        validate_dtype("not a dtype")
    assert isinstance(excinfo.value.__cause__, TypeError)


def test_axis_helpers():
    """Slices along one axis are views, folding keeps them views."""
    x = np.arange(24).reshape(2, 4, 3)
    assert arr.axis_index(3, 1, 2) == (slice(None), 2, slice(None))

    block = arr.take_block(x, 1, 1, 3)
    assert block.shape == (2, 2, 3)
    assert np.shares_memory(block, x)

    folded = arr.fold_block(arr.take_block(x, 1, 0, 4), 1, (2, 2))
    assert folded.shape == (2, 2, 2, 3)
    assert np.shares_memory(folded, x)
    np.testing.assert_array_equal(folded[1, 0], x[:, 2])

    np.testing.assert_array_equal(arr.take_position(x, 2, 1), x[:, :, 1])

    assert arr.insert_axis_dim((5, 6), 0, 3) == (3, 5, 6)
    assert arr.insert_axis_dim((5, 6), 2, 3) == (5, 6, 3)
    assert arr.insert_axis_dim((5, 6), -2, 3) == (5, 3, 6)
    with pytest.raises(AxisError):
        arr.insert_axis_dim((5,), 2, 3)
    assert arr.remove_axis_dim((5, 3, 6), 1) == (5, 6)


def test_get_array_module():
    assert arr.get_array_module(np.zeros(1)) is np
    with pytest.raises(TypeError, match="Unsupported array type"):
        arr.get_array_module([0.0])
