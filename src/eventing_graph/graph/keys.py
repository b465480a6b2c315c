from __future__ import annotations

from ..resources.schema import ObjectReference

EVENTING_GROUP = "eventing.knative.dev"
EVENTING_VERSION = "v1alpha1"
MESSAGING_GROUP = "messaging.knative.dev"
MESSAGING_VERSION = "v1alpha1"
SERVING_GROUP = "serving.knative.dev"
SERVING_VERSION = "v1beta1"

# Catch-all key shared by every subscriber lookup that has nothing to resolve.
UNKNOWN_KEY = "?"


def key(group: str, version: str, kind: str, name: str) -> str:
    return f"{group}/{version}/{kind}/{name}".lower()


def gvk_key(ref: ObjectReference) -> str:
    return key(ref.group, ref.version, ref.kind, ref.name)


def ref_key(api_version: str, kind: str, name: str) -> str:
    return f"{api_version}/{kind}/{name}".lower()


def uri_key(uri: str) -> str:
    return f"uri/{uri}".lower()


def eventing_key(kind: str, name: str) -> str:
    return key(EVENTING_GROUP, EVENTING_VERSION, kind, name)


def messaging_key(kind: str, name: str) -> str:
    return key(MESSAGING_GROUP, MESSAGING_VERSION, kind, name)


def serving_key(kind: str, name: str) -> str:
    return key(SERVING_GROUP, SERVING_VERSION, kind, name)


def channel_key(name: str) -> str:
    return eventing_key("channel", name)


def subscription_key(name: str) -> str:
    return eventing_key("subscription", name)


def broker_key(name: str) -> str:
    return eventing_key("broker", name)


def trigger_key(name: str) -> str:
    return eventing_key("trigger", name)


def sequence_key(name: str) -> str:
    return messaging_key("sequence", name)


def sequence_step_key(name: str, step: int) -> str:
    return messaging_key("sequencestep", f"{name}-{step}")


def normalize_address(uri: str) -> str:
    if uri.endswith("/"):
        return uri[:-1]
    return uri
