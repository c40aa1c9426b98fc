"""
queryrunner Configuration

YAML configuration documents and application settings.
"""

from .document import (
    Attribute,
    AttributeSchema,
    Block,
    Body,
    Document,
    load_document,
    parse_document,
)
from .settings import AppSettings, get_settings

__all__ = [
    "AppSettings",
    "Attribute",
    "AttributeSchema",
    "Block",
    "Body",
    "Document",
    "get_settings",
    "load_document",
    "parse_document",
]
