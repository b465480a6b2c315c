from __future__ import annotations

from .builder import GraphBuilder
from .document import Edge, GraphDocument, Node, Subgraph

__all__ = [
    "Edge",
    "GraphBuilder",
    "GraphDocument",
    "Node",
    "Subgraph",
]
