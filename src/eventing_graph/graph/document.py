from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional


@dataclass(eq=False)
class Node:
    id: str
    name: str
    attrs: Dict[str, str] = field(default_factory=dict)

    def set(self, key: str, value: str) -> None:
        self.attrs[key] = value

    @property
    def label(self) -> str:
        return self.attrs.get("label", self.name)


@dataclass(eq=False)
class Subgraph:
    name: str
    attrs: Dict[str, str] = field(default_factory=dict)
    nodes: List[Node] = field(default_factory=list)

    def set(self, key: str, value: str) -> None:
        self.attrs[key] = value

    def add_node(self, node: Node) -> None:
        self.nodes.append(node)


@dataclass(eq=False)
class Edge:
    src: Node
    dst: Node
    attrs: Dict[str, str] = field(default_factory=dict)

    def set(self, key: str, value: str) -> None:
        self.attrs[key] = value


class GraphDocument:
    """
    In-memory graph handed to a rendering backend once a build pass is done.

    Nodes are vertices by identity: two nodes sharing a name stay two
    vertices, each with its own generated id.
    """

    def __init__(self, name: str, attrs: Optional[Dict[str, str]] = None) -> None:
        self.name = name
        self.attrs: Dict[str, str] = dict(attrs or {})
        self.node_attrs: Dict[str, str] = {}
        self.nodes: List[Node] = []
        self.subgraphs: List[Subgraph] = []
        self.edges: List[Edge] = []
        self._node_seq = 0
        self._subgraph_seq = 0

    def set(self, key: str, value: str) -> None:
        self.attrs[key] = value

    def new_node(self, name: str) -> Node:
        node = Node(id=f"n{self._node_seq}", name=name)
        self._node_seq += 1
        return node

    def new_subgraph(self) -> Subgraph:
        subgraph = Subgraph(name=f"cluster_{self._subgraph_seq}")
        self._subgraph_seq += 1
        return subgraph

    def add_node(self, node: Node) -> None:
        self.nodes.append(node)

    def add_subgraph(self, subgraph: Subgraph) -> None:
        self.subgraphs.append(subgraph)

    def add_edge(self, edge: Edge) -> None:
        self.edges.append(edge)

    def iter_nodes(self) -> Iterator[Node]:
        yield from self.nodes
        for subgraph in self.subgraphs:
            yield from subgraph.nodes

    def cluster_of(self, node: Node) -> Optional[Subgraph]:
        for subgraph in self.subgraphs:
            if any(n is node for n in subgraph.nodes):
                return subgraph
        return None
