from __future__ import annotations

from .manifest import iter_documents, load_resource_set, parse_resource
from .schema import ResourceSet

__all__ = [
    "ResourceSet",
    "iter_documents",
    "load_resource_set",
    "parse_resource",
]
