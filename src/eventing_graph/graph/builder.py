from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from ..logging import get_logger
from ..resources.schema import (
    Broker,
    Channel,
    KnService,
    ReplyStrategy,
    ResourceSet,
    Sequence,
    Source,
    SubscriberSpec,
    Subscription,
    Trigger,
)
from .document import Edge, GraphDocument, Node, Subgraph
from .keys import (
    UNKNOWN_KEY,
    broker_key,
    channel_key,
    gvk_key,
    key as resource_key,
    normalize_address,
    ref_key,
    sequence_key,
    sequence_step_key,
    serving_key,
    subscription_key,
    trigger_key,
    uri_key,
)
from .style import DEFAULT_SHAPE, INGRESS_SHAPE, SERVICE_SHAPE, color_at, set_node_shape_for_kind

LOG = get_logger(__name__)

SINK_ENV_NAMES = ("SINK", "TARGET")


class GraphBuilder:
    """
    Turns typed eventing resources into nodes, clusters and edges.

    Resolution is best-effort and order-dependent: a reference to a resource
    that has not been added yet gets a placeholder node, and a real resource
    added later under the same key gets its own node; the two are never
    merged. Add producers (brokers, channels, sequences) before the resources
    that point at them, as add_resources() does, for stable diagrams.

    One builder serves one build pass; it is not thread-safe.
    """

    def __init__(self, namespace: str, *, rainbow: bool = True, show_unknown_replies: bool = False) -> None:
        self.namespace = namespace
        self.rainbow = rainbow
        self.show_unknown_replies = show_unknown_replies

        self.document = GraphDocument("G")
        self.document.set("label", f"Triggers in {namespace}")
        self.document.set("rankdir", "LR")
        self.document.node_attrs["shape"] = DEFAULT_SHAPE

        self.nodes: Dict[str, Node] = {}
        self.subgraphs: Dict[str, Subgraph] = {}
        self.address_to_key: Dict[str, str] = {}
        self.placeholders: List[Node] = []
        self.edge_count = 0

    # ----------------
    # Graph primitives
    # ----------------

    def new_edge(self, src: Node, dst: Node) -> Edge:
        edge = Edge(src, dst)
        if self.rainbow:
            edge.set("color", color_at(self.edge_count))
            self.edge_count += 1
        self.document.add_edge(edge)
        return edge

    def _new_cluster(self, key: str, label: str) -> Subgraph:
        cluster = self.document.new_subgraph()
        cluster.set("label", label)
        self.subgraphs[key] = cluster
        return cluster

    def _placeholder(self, name: str, key: str) -> Node:
        node = self.document.new_node(name)
        self.document.add_node(node)
        self.nodes[key] = node
        self.placeholders.append(node)
        LOG.debug("Created placeholder node", extra={"node": name, "key": key})
        return node

    def _register_address(self, address: str, key: str) -> None:
        if address:
            self.address_to_key[address] = key

    # ----------------------
    # Per-resource additions
    # ----------------------

    def add_channel(self, channel: Channel) -> Node:
        ck = channel_key(channel.name)
        address = normalize_address(channel.address.get_url())

        node = self.document.new_node(f"Channel {channel.name}")
        set_node_shape_for_kind(node, channel.kind, channel.api_version)
        node.set("shape", INGRESS_SHAPE)
        node.set("label", "Ingress")

        self.nodes[ck] = node
        self._register_address(address, ck)

        cluster = self._new_cluster(ck, f"Channel {channel.name}\n{address}")
        cluster.add_node(node)
        self.document.add_subgraph(cluster)
        return node

    def add_subscription(self, subscription: Subscription) -> Node:
        node = self.document.new_node(f"Subscription {subscription.name}")

        cluster = self.subgraphs.get(gvk_key(subscription.channel))
        if cluster is None:
            self.document.add_node(node)
        else:
            cluster.add_node(node)
        self.nodes[subscription_key(subscription.name)] = node

        subscriber = self.get_or_create_subscriber(subscription.subscriber)
        self.new_edge(node, subscriber).set("dir", "both")

        reply = self.get_or_create_reply(subscription.reply)
        if reply is not None:
            self.new_edge(node, reply).set("dir", "forward")
        return node

    def add_broker(self, broker: Broker) -> Node:
        bk = broker_key(broker.name)
        address = normalize_address(broker.address.get_url())

        node = self.document.new_node(f"Broker {address}")
        node.set("shape", INGRESS_SHAPE)
        node.set("label", "Ingress")

        self.nodes[bk] = node
        self._register_address(address, bk)

        cluster = self._new_cluster(bk, f"Broker {broker.name}\n{address}")
        cluster.add_node(node)
        self.document.add_subgraph(cluster)
        return node

    def add_source(self, source: Source) -> Node:
        node = self.document.new_node(f"Source {source.name}\nKind: {source.kind}\n{source.api_version}")
        node.set("shape", "box")
        self.document.add_node(node)
        self.nodes[resource_key(source.group, source.version, source.kind, source.name)] = node

        sink = normalize_address(source.sink_uri or "")
        if sink:
            target, target_key = self._resolve_sink(sink)
            edge = self.new_edge(node, target)
            cluster = self.subgraphs.get(target_key) if target_key else None
            if cluster is not None:
                # Only honored by graphviz when the graph is compound.
                edge.set("lhead", cluster.name)
        return node

    def add_trigger(self, trigger: Trigger) -> Node:
        bk = broker_key(trigger.broker)
        if bk not in self.nodes:
            self._placeholder(f"UnknownBroker {trigger.broker}", bk)

        node = self.document.new_node(f"Trigger {trigger.name}")
        node.set("shape", "box")

        cluster = self.subgraphs.get(bk)
        if cluster is None:
            self.document.add_node(node)
        else:
            cluster.add_node(node)
        self.nodes[trigger_key(trigger.name)] = node

        if trigger.filter is not None:
            node.set("label", f"{node.name}\nSource:{trigger.filter.source}\nType:{trigger.filter.type}")

        subscriber = self.get_or_create_subscriber(trigger.subscriber)
        self.new_edge(node, subscriber).set("dir", "both")
        return node

    def add_service(self, service: KnService) -> Node:
        key = serving_key(service.kind, service.name)

        node = self.nodes.get(key)
        if node is None:
            node = self.document.new_node(f"{service.name}\nKind: {service.kind}\n{service.api_version}")
            set_node_shape_for_kind(node, service.kind, service.api_version)
            node.set("shape", SERVICE_SHAPE)
            self.nodes[key] = node
            self.document.add_node(node)

        if not service.containers:
            LOG.debug("Service has no containers; skipping sink edges", extra={"service": service.name})
            return node

        for env in service.containers[0].env:
            if env.name in SINK_ENV_NAMES:
                target = self.get_or_create_sink(env.value)
                self.new_edge(node, target)
        return node

    def add_sequence(self, sequence: Sequence) -> Node:
        key = sequence_key(sequence.name)
        address = normalize_address(sequence.address.get_url())

        cluster = self._new_cluster(key, f"Sequence {sequence.name}\n{address}")
        self._register_address(address, key)

        start = self.document.new_node(f"Sequence {address}")
        start.set("label", "Start")
        self.nodes[key] = start
        cluster.add_node(start)

        previous = start
        for index, step in enumerate(sequence.steps):
            step_key = sequence_step_key(sequence.name, index)
            step_node = self.document.new_node(step_key)
            step_node.set("label", f"Step {index}")
            step_node.set("shape", "box")
            cluster.add_node(step_node)
            self.nodes[step_key] = step_node

            subscriber = self.get_or_create_subscriber(step)
            self.new_edge(step_node, subscriber).set("dir", "both")

            self.new_edge(previous, step_node)
            previous = step_node

        if sequence.reply is not None:
            reply = self.document.new_node(f"Reply {address}")
            reply.set("label", "Reply")
            cluster.add_node(reply)
            self.new_edge(previous, reply)

            target = self.nodes.get(gvk_key(sequence.reply))
            if target is not None:
                self.new_edge(reply, target)

        self.document.add_subgraph(cluster)
        return start

    def add_resources(self, resources: ResourceSet) -> None:
        """Add a whole resource set, producers first."""
        for broker in resources.brokers:
            self.add_broker(broker)
        for channel in resources.channels:
            self.add_channel(channel)
        # Sequences register their address before services look up sinks.
        for sequence in resources.sequences:
            self.add_sequence(sequence)
        for service in resources.services:
            self.add_service(service)
        for source in resources.sources:
            self.add_source(source)
        for trigger in resources.triggers:
            self.add_trigger(trigger)
        for subscription in resources.subscriptions:
            self.add_subscription(subscription)

    # ----------
    # Resolution
    # ----------

    def get_or_create_subscriber(self, subscriber: Optional[SubscriberSpec]) -> Node:
        key = UNKNOWN_KEY
        label = UNKNOWN_KEY

        if subscriber is not None:
            if subscriber.uri is not None:
                label = subscriber.uri
                key = uri_key(subscriber.uri)
            elif subscriber.ref is not None:
                ref = subscriber.ref
                label = f"{ref.name}\nKind: {ref.kind}\n{ref.api_version}"
                key = ref_key(ref.api_version, ref.kind, ref.name)

        node = self.nodes.get(key)
        if node is None:
            node = self.document.new_node(label)
            if subscriber is not None and subscriber.uri is None and subscriber.ref is not None:
                set_node_shape_for_kind(node, subscriber.ref.kind, subscriber.ref.api_version)
            self.nodes[key] = node
            self.document.add_node(node)
        return node

    def get_or_create_reply(self, reply: Optional[ReplyStrategy]) -> Optional[Node]:
        """
        Resolve a channel-typed reply. A reply channel that has not been added
        yields None (the edge is dropped) unless show_unknown_replies is set,
        in which case an "Unknown Channel" placeholder stands in for it.
        """
        if reply is None or reply.channel is None:
            return None
        ck = channel_key(reply.channel.name)
        node = self.nodes.get(ck)
        if node is not None:
            return node
        if not self.show_unknown_replies:
            LOG.debug("Reply channel not found; edge dropped", extra={"channel": reply.channel.name})
            return None
        return self._placeholder(f"Unknown Channel {reply.channel.name}", ck)

    def get_or_create_sink(self, uri: str) -> Node:
        return self._resolve_sink(normalize_address(uri))[0]

    def _resolve_sink(self, address: str) -> Tuple[Node, Optional[str]]:
        key = self.address_to_key.get(address)
        if key is not None:
            node = self.nodes.get(key)
            if node is not None:
                return node, key
        placeholder_key = uri_key(address)
        node = self.nodes.get(placeholder_key)
        if node is None:
            node = self._placeholder(f"UnknownSink {address}", placeholder_key)
        return node, key

    def stats(self) -> Dict[str, int]:
        return {
            "nodes": sum(1 for _ in self.document.iter_nodes()),
            "clusters": len(self.document.subgraphs),
            "edges": len(self.document.edges),
            "placeholders": len(self.placeholders),
        }
