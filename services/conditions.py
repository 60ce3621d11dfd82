"""
Dependency evaluator: visibility / requiredness / read-only state of each
field for one snapshot of form values.

Pure functions of the snapshot. Malformed conditions never raise out of here;
they are logged and fail closed (hidden, not required).
"""

import logging
from typing import Any, Callable, Dict, Mapping, Optional

from pydantic import BaseModel

from models.schema import BaseField, Condition, FormSchema, ReadOnlyField
from utils import expressions
from utils.errors import ConditionError

logger = logging.getLogger(__name__)


class FieldState(BaseModel):
    visible: bool = True
    required: bool = False
    read_only: bool = False


def _getter(values: Mapping[str, Any]) -> Callable[[str], Any]:
    return lambda name: values.get(name)


def _object_map(condition: Dict[str, Any], values: Mapping[str, Any]) -> bool:
    """`True` means "has a non-empty value"; any other expectation must match exactly, type included."""
    for key, expected in condition.items():
        actual = values.get(key)
        if expected is True:
            if not expressions.is_truthy(actual):
                return False
        elif not expressions.strict_equal(actual, expected):
            return False
    return True


def check(condition: Optional[Condition], values: Mapping[str, Any],
          default: bool = True, field_name: str = "?") -> bool:
    """
    Resolves one condition against `values`.
    Returns `default` when there is no condition and False when it is broken.
    """
    if condition is None:
        return default
    try:
        if isinstance(condition, dict):
            return _object_map(condition, values)
        if isinstance(condition, str):
            return expressions.evaluate(condition, _getter(values))
        if callable(condition):
            return bool(condition(_getter(values)))
        raise ConditionError(f"Unsupported condition type {type(condition).__name__}")
    except ConditionError as e:
        logger.warning(f"Condition on '{field_name}' is malformed, treating as false: {e}")
        return False
    except Exception as e:
        logger.warning(f"Condition callback on '{field_name}' raised {e!r}, treating as false")
        return False


def evaluate(field: BaseField, values: Mapping[str, Any]) -> FieldState:
    visible = check(field.display_depends_on, values, True, field.name)
    required = visible and (
        field.required or check(field.required_depends_on, values, False, field.name)
    )
    read_only = (
        field.read_only
        or isinstance(field, ReadOnlyField)
        or check(field.read_only_depends_on, values, False, field.name)
    )
    return FieldState(visible=visible, required=required, read_only=read_only)


def evaluate_all(schema: FormSchema, values: Mapping[str, Any]) -> Dict[str, FieldState]:
    """Single pass over every field, in schema order."""
    return {field.name: evaluate(field, values) for field in schema.iter_fields()}
