from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union


def split_api_version(api_version: str) -> Tuple[str, str]:
    """
    Split "group/version" into (group, version). Core-group versions such as
    "v1" have an empty group.
    """
    group, sep, version = (api_version or "").rpartition("/")
    if not sep:
        return "", api_version or ""
    return group, version


@dataclass(frozen=True)
class ObjectReference:
    api_version: str
    kind: str
    name: str
    namespace: Optional[str] = None

    @property
    def group(self) -> str:
        return split_api_version(self.api_version)[0]

    @property
    def version(self) -> str:
        return split_api_version(self.api_version)[1]


@dataclass(frozen=True)
class Addressable:
    url: Optional[str] = None
    hostname: Optional[str] = None

    def get_url(self) -> str:
        if self.url:
            return self.url
        if self.hostname:
            return f"http://{self.hostname}"
        return ""


@dataclass(frozen=True)
class SubscriberSpec:
    uri: Optional[str] = None
    ref: Optional[ObjectReference] = None


@dataclass(frozen=True)
class ReplyStrategy:
    channel: Optional[ObjectReference] = None


@dataclass(frozen=True)
class TriggerFilter:
    source: str = ""
    type: str = ""


@dataclass(frozen=True)
class EnvVar:
    name: str
    value: str = ""


@dataclass(frozen=True)
class Container:
    name: str = ""
    env: List[EnvVar] = field(default_factory=list)


@dataclass
class _Resource:
    name: str
    namespace: Optional[str] = field(default=None, kw_only=True)
    api_version: str = field(default="", kw_only=True)
    kind: str = field(default="", kw_only=True)

    @property
    def group(self) -> str:
        return split_api_version(self.api_version)[0]

    @property
    def version(self) -> str:
        return split_api_version(self.api_version)[1]


@dataclass
class Channel(_Resource):
    address: Addressable = field(default_factory=Addressable)
    api_version: str = field(default="eventing.knative.dev/v1alpha1", kw_only=True)
    kind: str = field(default="Channel", kw_only=True)


@dataclass
class Subscription(_Resource):
    channel: ObjectReference
    subscriber: Optional[SubscriberSpec] = None
    reply: Optional[ReplyStrategy] = None
    api_version: str = field(default="eventing.knative.dev/v1alpha1", kw_only=True)
    kind: str = field(default="Subscription", kw_only=True)


@dataclass
class Broker(_Resource):
    address: Addressable = field(default_factory=Addressable)
    api_version: str = field(default="eventing.knative.dev/v1alpha1", kw_only=True)
    kind: str = field(default="Broker", kw_only=True)


@dataclass
class Trigger(_Resource):
    broker: str = "default"
    filter: Optional[TriggerFilter] = None
    subscriber: Optional[SubscriberSpec] = None
    api_version: str = field(default="eventing.knative.dev/v1alpha1", kw_only=True)
    kind: str = field(default="Trigger", kw_only=True)


@dataclass
class Source(_Resource):
    """Any duck-typed event source: only its identity and resolved sink matter."""

    sink_uri: Optional[str] = None


@dataclass
class KnService(_Resource):
    containers: Optional[List[Container]] = None
    api_version: str = field(default="serving.knative.dev/v1beta1", kw_only=True)
    kind: str = field(default="Service", kw_only=True)


@dataclass
class Sequence(_Resource):
    address: Addressable = field(default_factory=Addressable)
    steps: List[SubscriberSpec] = field(default_factory=list)
    reply: Optional[ObjectReference] = None
    api_version: str = field(default="messaging.knative.dev/v1alpha1", kw_only=True)
    kind: str = field(default="Sequence", kw_only=True)


Resource = Union[Channel, Subscription, Broker, Trigger, Source, KnService, Sequence]

_SET_FIELDS: Dict[type, str] = {
    Channel: "channels",
    Subscription: "subscriptions",
    Broker: "brokers",
    Trigger: "triggers",
    Source: "sources",
    KnService: "services",
    Sequence: "sequences",
}


@dataclass
class ResourceSet:
    channels: List[Channel] = field(default_factory=list)
    subscriptions: List[Subscription] = field(default_factory=list)
    brokers: List[Broker] = field(default_factory=list)
    triggers: List[Trigger] = field(default_factory=list)
    sources: List[Source] = field(default_factory=list)
    services: List[KnService] = field(default_factory=list)
    sequences: List[Sequence] = field(default_factory=list)

    def add(self, resource: Resource) -> None:
        attr = _SET_FIELDS.get(type(resource))
        if attr is None:
            raise TypeError(f"Unsupported resource type: {type(resource).__name__}")
        getattr(self, attr).append(resource)

    def counts(self) -> Dict[str, int]:
        return {attr: len(getattr(self, attr)) for attr in _SET_FIELDS.values()}

    def __len__(self) -> int:
        return sum(self.counts().values())
