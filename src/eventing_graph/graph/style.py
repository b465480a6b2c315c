from __future__ import annotations

from .document import Node

SERVING_API_VERSION = "serving.knative.dev/v1beta1"

DEFAULT_SHAPE = "box"
INGRESS_SHAPE = "oval"
SERVICE_SHAPE = "septagon"

EDGE_PALETTE = (
    "#e6194b",
    "#f58231",
    "#ffe119",
    "#3cb44b",
    "#42d4f4",
    "#4363d8",
    "#911eb4",
    "#f032e6",
)


def set_node_shape_for_kind(node: Node, kind: str, api_version: str) -> None:
    if api_version == SERVING_API_VERSION and kind == "Service":
        node.set("shape", SERVICE_SHAPE)


def color_at(edge_index: int) -> str:
    return EDGE_PALETTE[edge_index % len(EDGE_PALETTE)]
