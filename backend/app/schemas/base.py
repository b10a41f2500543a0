"""Base schema classes with camelCase alias generation.

Python code stays snake_case; JSON on the wire is camelCase
(``originalName``, ``sizeBytes``, ``downloadUrl``), as the frontend expects.
"""
from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base for envelopes built from plain dicts. Accepts either key style."""
    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
        "protected_namespaces": (),
    }


class CamelORMModel(BaseModel):
    """Base for schemas read straight off ORM rows."""
    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
        "from_attributes": True,
        "protected_namespaces": (),
    }
