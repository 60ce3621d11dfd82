import re
from typing import Any, List

from models.schema import BaseField, DataField, NumberField, SelectField, TableField
from utils.expressions import is_empty


def to_number(value: Any, integer: bool = False):
    """Parses a form value as a number; raises ValueError when it is not one."""
    if isinstance(value, bool):
        raise ValueError(value)
    if isinstance(value, (int, float)):
        number = value
    else:
        number = float(str(value).strip().replace(",", ""))
    if integer:
        if float(number) != int(number):
            raise ValueError(value)
        return int(number)
    return number


def field_errors(field: BaseField, value: Any, required: bool) -> List[str]:
    """
    Client-side checks for one value: required, numeric bounds, pattern and
    select options. Messages are phrased for the end user.
    """
    label = field.label
    if isinstance(field, TableField):
        if required and not value:
            return [f"{label} is required"]
        return []

    if is_empty(value):
        return [f"{label} is required"] if required else []

    errors = []
    if isinstance(field, NumberField):
        try:
            number = to_number(value, integer=field.type == "Int")
        except (TypeError, ValueError):
            return [f"{label} must be a number"]
        if field.min is not None and number < field.min:
            errors.append(f"{label} must be >= {field.min:g}")
        if field.max is not None and number > field.max:
            errors.append(f"{label} must be <= {field.max:g}")
    elif isinstance(field, DataField) and field.pattern:
        if not re.search(field.pattern, str(value)):
            errors.append(field.pattern_message or f"{label} format is invalid")
    elif isinstance(field, SelectField) and field.options:
        if str(value) not in {option.value for option in field.options}:
            errors.append(f"{label} must be one of: {', '.join(o.value for o in field.options)}")
    return errors
