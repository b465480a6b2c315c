from __future__ import annotations

from pathlib import Path
from typing import Dict

import graphviz

from ..graph.document import GraphDocument, Node
from ..logging import get_logger
from ..util.errors import ExportError, RenderError

LOG = get_logger(__name__)

RENDER_FORMATS = {"dot", "svg", "png", "pdf"}


def _dot_value(value: str) -> str:
    # Line breaks in labels use the DOT escape rather than raw newlines.
    return value.replace("\n", "\\n")


def _dot_attrs(attrs: Dict[str, str]) -> Dict[str, str]:
    return {k: _dot_value(v) for k, v in attrs.items()}


def _node_attrs(node: Node) -> Dict[str, str]:
    attrs = dict(node.attrs)
    attrs["label"] = node.label
    return _dot_attrs(attrs)


def to_digraph(document: GraphDocument) -> graphviz.Digraph:
    dot = graphviz.Digraph(
        document.name,
        graph_attr=_dot_attrs(document.attrs),
        node_attr=_dot_attrs(document.node_attrs),
    )
    for subgraph in document.subgraphs:
        with dot.subgraph(name=subgraph.name) as cluster:
            cluster.attr(**_dot_attrs(subgraph.attrs))
            for node in subgraph.nodes:
                cluster.node(node.id, **_node_attrs(node))
    for node in document.nodes:
        dot.node(node.id, **_node_attrs(node))
    for edge in document.edges:
        dot.edge(edge.src.id, edge.dst.id, **_dot_attrs(edge.attrs))
    return dot


def dot_source(document: GraphDocument) -> str:
    return to_digraph(document).source


def write_dot(document: GraphDocument, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        path.write_text(dot_source(document), encoding="utf-8")
    except OSError as e:
        raise ExportError(f"Failed to write DOT file {path}: {e}") from e
    return path


def render(document: GraphDocument, path: Path, fmt: str) -> Path:
    """
    Render through the Graphviz executables. path is the final output file;
    "dot" only writes the source and needs no executables.
    """
    if fmt not in RENDER_FORMATS:
        raise RenderError(f"Unsupported render format: {fmt}")
    if fmt == "dot":
        return write_dot(document, path)
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        rendered = to_digraph(document).render(outfile=path, format=fmt, cleanup=True)
    except graphviz.ExecutableNotFound as e:
        raise RenderError("Graphviz executables not found on PATH; install graphviz or use --format dot") from e
    except graphviz.CalledProcessError as e:
        raise RenderError(f"Graphviz failed to render {path}: {e}") from e
    LOG.debug("Rendered diagram", extra={"path": str(rendered), "format": fmt})
    return Path(rendered)
