"""
Ready-made on-change hooks.

A hook is called as `hook(form, value)` right after the field it is attached
to changes. Clearing happens only where a schema wires one of these in.
"""

from typing import Any, Callable


def clear_fields(*names: str) -> Callable[[Any, Any], None]:
    def hook(form, value):
        for name in names:
            form.set_value(name, None)
    return hook


def clear_fields_unless(expected: Any, *names: str) -> Callable[[Any, Any], None]:
    """Clears `names` whenever the new value is anything other than `expected`."""
    def hook(form, value):
        if value != expected:
            for name in names:
                form.set_value(name, None)
    return hook
