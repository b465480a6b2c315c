from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Tuple

from ..graph.document import GraphDocument
from ..util.errors import ExportError

NodeRow = Dict[str, Any]
EdgeRow = Dict[str, Any]


def stable_json_dumps(obj: Any) -> str:
    """
    Dump JSON with sort_keys=True and separators to ensure stable output.
    """
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def graph_rows(document: GraphDocument) -> Tuple[List[NodeRow], List[EdgeRow]]:
    nodes: List[NodeRow] = []
    for node in document.iter_nodes():
        cluster = document.cluster_of(node)
        nodes.append(
            {
                "nodeId": node.id,
                "name": node.name,
                "label": node.label,
                "cluster": cluster.name if cluster is not None else None,
                "attrs": dict(node.attrs),
            }
        )
    edges: List[EdgeRow] = [
        {"source": edge.src.id, "target": edge.dst.id, "attrs": dict(edge.attrs)} for edge in document.edges
    ]
    return nodes, edges


def write_graph(outdir: Path, document: GraphDocument) -> Tuple[Path, Path]:
    nodes, edges = graph_rows(document)
    nodes_path = outdir / "graph_nodes.jsonl"
    edges_path = outdir / "graph_edges.jsonl"
    try:
        outdir.mkdir(parents=True, exist_ok=True)
        with nodes_path.open("w", encoding="utf-8") as f:
            for node in nodes:
                f.write(stable_json_dumps(node))
                f.write("\n")
        with edges_path.open("w", encoding="utf-8") as f:
            for edge in edges:
                f.write(stable_json_dumps(edge))
                f.write("\n")
    except OSError as e:
        raise ExportError(f"Failed to write graph files to {outdir}: {e}") from e
    return nodes_path, edges_path
