from __future__ import annotations

from eventing_graph.graph.builder import GraphBuilder
from eventing_graph.graph.keys import (
    UNKNOWN_KEY,
    broker_key,
    channel_key,
    sequence_key,
    sequence_step_key,
    serving_key,
)
from eventing_graph.graph.style import EDGE_PALETTE
from eventing_graph.resources.schema import (
    Addressable,
    Broker,
    Channel,
    Container,
    EnvVar,
    KnService,
    ObjectReference,
    ReplyStrategy,
    ResourceSet,
    Sequence,
    Source,
    SubscriberSpec,
    Subscription,
    Trigger,
    TriggerFilter,
)

CHANNEL_REF = ObjectReference("eventing.knative.dev/v1alpha1", "Channel", "orders")
SERVICE_REF = ObjectReference("serving.knative.dev/v1beta1", "Service", "billing")


def _nodes_named(builder: GraphBuilder, name: str) -> list:
    return [n for n in builder.document.iter_nodes() if n.name == name]


def _edges_from(builder: GraphBuilder, node) -> list:
    return [e for e in builder.document.edges if e.src is node]


def test_graph_level_attributes() -> None:
    builder = GraphBuilder("prod")

    assert builder.document.attrs["label"] == "Triggers in prod"
    assert builder.document.attrs["rankdir"] == "LR"
    assert builder.document.node_attrs["shape"] == "box"


def test_add_channel_creates_ingress_node_cluster_and_address() -> None:
    builder = GraphBuilder("default")
    node = builder.add_channel(Channel("orders", address=Addressable(url="http://orders.default.svc.cluster.local/")))

    assert node.name == "Channel orders"
    assert node.label == "Ingress"
    assert node.attrs["shape"] == "oval"
    assert builder.nodes[channel_key("orders")] is node
    assert builder.address_to_key["http://orders.default.svc.cluster.local"] == channel_key("orders")

    cluster = builder.subgraphs[channel_key("orders")]
    assert cluster.name == "cluster_0"
    assert cluster.attrs["label"] == "Channel orders\nhttp://orders.default.svc.cluster.local"
    assert cluster.nodes == [node]


def test_add_broker_uses_hostname_address() -> None:
    builder = GraphBuilder("default")
    node = builder.add_broker(Broker("default", address=Addressable(hostname="default-broker.default.svc.cluster.local")))

    assert node.name == "Broker http://default-broker.default.svc.cluster.local"
    assert node.label == "Ingress"
    assert builder.address_to_key["http://default-broker.default.svc.cluster.local"] == broker_key("default")
    assert builder.subgraphs[broker_key("default")].attrs["label"] == (
        "Broker default\nhttp://default-broker.default.svc.cluster.local"
    )


def test_source_sink_resolves_channel_despite_trailing_slash() -> None:
    builder = GraphBuilder("default")
    channel = builder.add_channel(Channel("orders", address=Addressable(url="http://chan.ns.svc.cluster.local/")))
    source = builder.add_source(
        Source(
            "ping",
            sink_uri="http://chan.ns.svc.cluster.local",
            api_version="sources.eventing.knative.dev/v1alpha1",
            kind="CronJobSource",
        )
    )

    edges = _edges_from(builder, source)
    assert len(edges) == 1
    assert edges[0].dst is channel
    assert edges[0].attrs["lhead"] == "cluster_0"
    assert source.name == "Source ping\nKind: CronJobSource\nsources.eventing.knative.dev/v1alpha1"
    assert source.attrs["shape"] == "box"


def test_source_sink_with_trailing_slash_resolves_channel_without_one() -> None:
    builder = GraphBuilder("default")
    channel = builder.add_channel(Channel("orders", address=Addressable(url="http://chan.ns.svc.cluster.local")))
    source = builder.add_source(Source("ping", sink_uri="http://chan.ns.svc.cluster.local/", kind="PingSource"))

    assert _edges_from(builder, source)[0].dst is channel


def test_source_without_sink_has_no_edges() -> None:
    builder = GraphBuilder("default")
    source = builder.add_source(Source("idle", kind="PingSource"))

    assert _edges_from(builder, source) == []
    assert builder.placeholders == []


def test_unknown_sink_placeholder_is_shared_and_never_merged() -> None:
    builder = GraphBuilder("default")
    first = builder.add_source(Source("a", sink_uri="http://late.ns.svc.cluster.local/", kind="PingSource"))
    second = builder.add_source(Source("b", sink_uri="http://late.ns.svc.cluster.local", kind="PingSource"))

    placeholder = _edges_from(builder, first)[0].dst
    assert placeholder.name == "UnknownSink http://late.ns.svc.cluster.local"
    assert _edges_from(builder, second)[0].dst is placeholder
    assert "lhead" not in _edges_from(builder, first)[0].attrs
    assert len(_nodes_named(builder, "UnknownSink http://late.ns.svc.cluster.local")) == 1

    # The real channel arrives later: it gets its own node, the placeholder stays.
    channel = builder.add_channel(Channel("late", address=Addressable(url="http://late.ns.svc.cluster.local")))
    assert channel is not placeholder
    assert _edges_from(builder, first)[0].dst is placeholder

    third = builder.add_source(Source("c", sink_uri="http://late.ns.svc.cluster.local", kind="PingSource"))
    assert _edges_from(builder, third)[0].dst is channel


def test_subscription_inside_channel_cluster_with_subscriber_and_reply() -> None:
    builder = GraphBuilder("default")
    builder.add_channel(Channel("orders", address=Addressable(url="http://orders.default.svc.cluster.local")))
    replies = builder.add_channel(Channel("replies", address=Addressable(url="http://replies.default.svc.cluster.local")))

    sub = builder.add_subscription(
        Subscription(
            "orders-to-billing",
            channel=CHANNEL_REF,
            subscriber=SubscriberSpec(ref=SERVICE_REF),
            reply=ReplyStrategy(channel=ObjectReference("eventing.knative.dev/v1alpha1", "Channel", "replies")),
        )
    )

    assert sub.name == "Subscription orders-to-billing"
    assert sub in builder.subgraphs[channel_key("orders")].nodes
    assert sub not in builder.document.nodes

    subscriber_edge, reply_edge = _edges_from(builder, sub)
    assert subscriber_edge.attrs["dir"] == "both"
    assert subscriber_edge.dst.name == "billing\nKind: Service\nserving.knative.dev/v1beta1"
    assert subscriber_edge.dst.attrs["shape"] == "septagon"
    assert reply_edge.attrs["dir"] == "forward"
    assert reply_edge.dst is replies


def test_subscription_without_channel_cluster_is_top_level() -> None:
    builder = GraphBuilder("default")
    sub = builder.add_subscription(Subscription("lonely", channel=CHANNEL_REF, subscriber=SubscriberSpec(uri="http://x")))

    assert sub in builder.document.nodes
    assert _edges_from(builder, sub)[0].dst.name == "http://x"


def test_reply_to_missing_channel_drops_edge_by_default() -> None:
    builder = GraphBuilder("default")
    sub = builder.add_subscription(
        Subscription(
            "s",
            channel=CHANNEL_REF,
            subscriber=SubscriberSpec(uri="http://svc"),
            reply=ReplyStrategy(channel=ObjectReference("eventing.knative.dev/v1alpha1", "Channel", "missing")),
        )
    )

    edges = _edges_from(builder, sub)
    assert [e.attrs["dir"] for e in edges] == ["both"]
    assert _nodes_named(builder, "Unknown Channel missing") == []
    assert channel_key("missing") not in builder.nodes


def test_reply_to_missing_channel_placeholder_when_enabled() -> None:
    builder = GraphBuilder("default", show_unknown_replies=True)
    reply = ReplyStrategy(channel=ObjectReference("eventing.knative.dev/v1alpha1", "Channel", "missing"))
    first = builder.add_subscription(Subscription("s1", channel=CHANNEL_REF, reply=reply))
    second = builder.add_subscription(Subscription("s2", channel=CHANNEL_REF, reply=reply))

    placeholder = builder.nodes[channel_key("missing")]
    assert placeholder.name == "Unknown Channel missing"
    assert _edges_from(builder, first)[-1].dst is placeholder
    assert _edges_from(builder, second)[-1].dst is placeholder
    assert len(_nodes_named(builder, "Unknown Channel missing")) == 1


def test_reply_without_channel_is_ignored() -> None:
    builder = GraphBuilder("default", show_unknown_replies=True)

    assert builder.get_or_create_reply(None) is None
    assert builder.get_or_create_reply(ReplyStrategy()) is None


def test_absent_subscriber_resolves_to_shared_unknown_node() -> None:
    builder = GraphBuilder("default")
    trigger = builder.add_trigger(Trigger("t", broker="default"))
    sub = builder.add_subscription(Subscription("s", channel=CHANNEL_REF))
    empty = builder.get_or_create_subscriber(SubscriberSpec())

    unknown = builder.nodes[UNKNOWN_KEY]
    assert unknown.label == "?"
    assert _edges_from(builder, trigger)[0].dst is unknown
    assert _edges_from(builder, sub)[0].dst is unknown
    assert builder.get_or_create_subscriber(None) is unknown
    assert empty is unknown
    assert len(_nodes_named(builder, "?")) == 1


def test_subscriber_resolution_is_stable_across_resources() -> None:
    builder = GraphBuilder("default")
    first = builder.get_or_create_subscriber(SubscriberSpec(ref=SERVICE_REF))
    second = builder.get_or_create_subscriber(SubscriberSpec(ref=SERVICE_REF))
    by_uri = builder.get_or_create_subscriber(SubscriberSpec(uri="http://Billing.default"))

    assert first is second
    assert by_uri is builder.get_or_create_subscriber(SubscriberSpec(uri="http://billing.default"))
    assert by_uri is not first


def test_non_serving_subscriber_ref_keeps_default_shape() -> None:
    builder = GraphBuilder("default")
    node = builder.get_or_create_subscriber(SubscriberSpec(ref=ObjectReference("v1", "Service", "plain")))

    assert "shape" not in node.attrs


def test_trigger_with_missing_broker_reuses_one_placeholder() -> None:
    builder = GraphBuilder("default")
    t1 = builder.add_trigger(Trigger("t1", broker="ghost", subscriber=SubscriberSpec(uri="http://a")))
    t2 = builder.add_trigger(Trigger("t2", broker="ghost", subscriber=SubscriberSpec(uri="http://b")))

    placeholders = _nodes_named(builder, "UnknownBroker ghost")
    assert len(placeholders) == 1
    assert builder.nodes[broker_key("ghost")] is placeholders[0]
    assert t1 in builder.document.nodes
    assert t2 in builder.document.nodes


def test_trigger_inside_broker_cluster_with_filter_label() -> None:
    builder = GraphBuilder("default")
    builder.add_broker(Broker("default", address=Addressable(url="http://default-broker.default.svc.cluster.local")))
    trigger = builder.add_trigger(
        Trigger(
            "billing",
            broker="default",
            filter=TriggerFilter(source="orders", type="dev.example.order"),
            subscriber=SubscriberSpec(ref=SERVICE_REF),
        )
    )

    assert trigger in builder.subgraphs[broker_key("default")].nodes
    assert trigger.attrs["shape"] == "box"
    assert trigger.label == "Trigger billing\nSource:orders\nType:dev.example.order"
    assert _edges_from(builder, trigger)[0].attrs["dir"] == "both"
    assert builder.placeholders == []


def test_service_reuses_subscriber_node_and_links_sink_env() -> None:
    builder = GraphBuilder("default")
    broker = builder.add_broker(Broker("default", address=Addressable(url="http://default-broker.default.svc.cluster.local")))
    subscriber = builder.get_or_create_subscriber(SubscriberSpec(ref=SERVICE_REF))

    service = builder.add_service(
        KnService(
            "billing",
            containers=[
                Container(
                    env=[
                        EnvVar("TARGET", "http://default-broker.default.svc.cluster.local/"),
                        EnvVar("SINK", "http://nowhere.default.svc.cluster.local"),
                        EnvVar("OTHER", "http://default-broker.default.svc.cluster.local"),
                    ]
                ),
                Container(env=[EnvVar("SINK", "http://ignored")]),
            ],
        )
    )

    assert service is subscriber
    targets = [e.dst for e in _edges_from(builder, service)]
    assert targets[0] is broker
    assert targets[1].name == "UnknownSink http://nowhere.default.svc.cluster.local"
    assert len(targets) == 2


def test_service_without_containers_adds_node_only() -> None:
    builder = GraphBuilder("default")
    service = builder.add_service(KnService("bare", containers=None))

    assert service.name == "bare\nKind: Service\nserving.knative.dev/v1beta1"
    assert service.attrs["shape"] == "septagon"
    assert builder.document.edges == []


def test_sequence_steps_chain_in_declaration_order() -> None:
    builder = GraphBuilder("default")
    steps = [SubscriberSpec(uri=f"http://step-{name}") for name in ("a", "b", "c")]
    start = builder.add_sequence(
        Sequence("pipeline", address=Addressable(url="http://pipeline.default.svc.cluster.local/"), steps=steps)
    )

    assert start.label == "Start"
    assert builder.address_to_key["http://pipeline.default.svc.cluster.local"] == builder_key(builder, start)

    chain = [(e.src.label, e.dst.label) for e in builder.document.edges if "dir" not in e.attrs]
    assert chain == [("Start", "Step 0"), ("Step 0", "Step 1"), ("Step 1", "Step 2")]

    for index, name in enumerate(("a", "b", "c")):
        step = builder.nodes[sequence_step_key("pipeline", index)]
        assert step.attrs["shape"] == "box"
        (edge,) = _edges_from(builder, step)[:1]
        assert edge.attrs["dir"] == "both"
        assert edge.dst.name == f"http://step-{name}"

    cluster = builder.document.subgraphs[0]
    assert cluster.attrs["label"] == "Sequence pipeline\nhttp://pipeline.default.svc.cluster.local"
    assert [n.label for n in cluster.nodes] == ["Start", "Step 0", "Step 1", "Step 2"]


def test_sequence_reply_links_to_known_resource() -> None:
    builder = GraphBuilder("default")
    replies = builder.add_channel(Channel("replies", address=Addressable(url="http://replies.default")))
    builder.add_sequence(
        Sequence(
            "pipeline",
            address=Addressable(url="http://pipeline.default"),
            steps=[SubscriberSpec(uri="http://only")],
            reply=ObjectReference("eventing.knative.dev/v1alpha1", "Channel", "replies"),
        )
    )

    reply = next(n for n in builder.document.iter_nodes() if n.label == "Reply")
    last_step = builder.nodes[sequence_step_key("pipeline", 0)]
    assert any(e.src is last_step and e.dst is reply for e in builder.document.edges)
    assert [e.dst for e in _edges_from(builder, reply)] == [replies]


def test_sequence_reply_to_unknown_resource_stops_at_reply_node() -> None:
    builder = GraphBuilder("default")
    start = builder.add_sequence(
        Sequence(
            "pipeline",
            address=Addressable(url="http://pipeline.default"),
            reply=ObjectReference("eventing.knative.dev/v1alpha1", "Channel", "missing"),
        )
    )

    reply = next(n for n in builder.document.iter_nodes() if n.label == "Reply")
    assert [e.dst for e in _edges_from(builder, start)] == [reply]
    assert _edges_from(builder, reply) == []


def test_rainbow_edges_cycle_palette_in_creation_order() -> None:
    builder = GraphBuilder("default")
    steps = [SubscriberSpec(uri=f"http://s{i}") for i in range(len(EDGE_PALETTE))]
    builder.add_sequence(Sequence("long", address=Addressable(url="http://long"), steps=steps))

    colors = [e.attrs["color"] for e in builder.document.edges]
    assert len(colors) == 2 * len(EDGE_PALETTE)
    assert colors == [EDGE_PALETTE[i % len(EDGE_PALETTE)] for i in range(len(colors))]
    assert builder.edge_count == len(colors)


def test_rainbow_disabled_leaves_edges_uncolored() -> None:
    builder = GraphBuilder("default", rainbow=False)
    builder.add_trigger(Trigger("t", subscriber=SubscriberSpec(uri="http://a")))

    assert all("color" not in e.attrs for e in builder.document.edges)
    assert builder.edge_count == 0


def test_add_resources_adds_producers_first() -> None:
    resources = ResourceSet()
    resources.add(Trigger("t", broker="default", subscriber=SubscriberSpec(ref=SERVICE_REF)))
    resources.add(Subscription("s", channel=CHANNEL_REF, subscriber=SubscriberSpec(ref=SERVICE_REF)))
    resources.add(Source("ping", sink_uri="http://default-broker.default/", kind="PingSource"))
    resources.add(KnService("billing", containers=[Container(env=[EnvVar("SINK", "http://orders.default")])]))
    resources.add(Channel("orders", address=Addressable(url="http://orders.default/")))
    resources.add(Broker("default", address=Addressable(url="http://default-broker.default")))

    builder = GraphBuilder("default")
    builder.add_resources(resources)

    assert builder.placeholders == []
    assert UNKNOWN_KEY not in builder.nodes
    service_nodes = [n for n in builder.document.iter_nodes() if n.name.startswith("billing\n")]
    assert len(service_nodes) == 1
    assert builder.stats() == {"nodes": 6, "clusters": 2, "edges": 4, "placeholders": 0}


def test_add_resources_adds_sequences_before_services() -> None:
    resources = ResourceSet()
    resources.add(KnService("emitter", containers=[Container(env=[EnvVar("TARGET", "http://pipe.default")])]))
    resources.add(KnService("worker", containers=[Container()]))
    resources.add(
        Sequence(
            "pipe",
            address=Addressable(url="http://pipe.default/"),
            steps=[SubscriberSpec(ref=ObjectReference("serving.knative.dev/v1beta1", "Service", "worker"))],
        )
    )

    builder = GraphBuilder("default")
    builder.add_resources(resources)

    assert builder.placeholders == []
    assert not [n for n in builder.document.iter_nodes() if n.name.startswith("UnknownSink")]

    start = builder.nodes[sequence_key("pipe")]
    emitter = builder.nodes[serving_key("Service", "emitter")]
    assert [e.dst for e in _edges_from(builder, emitter)] == [start]

    worker = builder.nodes[serving_key("Service", "worker")]
    step = builder.nodes[sequence_step_key("pipe", 0)]
    step_subscribers = [e.dst for e in _edges_from(builder, step) if e.attrs.get("dir") == "both"]
    assert step_subscribers == [worker]
    assert len([n for n in builder.document.iter_nodes() if n.name.startswith("worker\n")]) == 1


def builder_key(builder: GraphBuilder, node) -> str:
    return next(k for k, v in builder.nodes.items() if v is node)
