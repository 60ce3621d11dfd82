# Form schemas supplied in-process, keyed by the slug used in URLs.

from typing import Dict

from models.schema import FormSchema

from . import asset_interchange
from . import designation
from . import maintenance_checklist
from . import spare_indent

SCHEMAS: Dict[str, FormSchema] = {
    "asset-interchange": asset_interchange.schema,
    "designation": designation.schema,
    "maintenance-checklist": maintenance_checklist.schema,
    "spare-indent": spare_indent.schema,
}


def get_schema(slug: str) -> FormSchema:
    """Raises KeyError for an unknown slug."""
    return SCHEMAS[slug]
