from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence as Seq, Union

import yaml

from ..logging import get_logger
from ..util.errors import ManifestError
from .schema import (
    Addressable,
    Broker,
    Channel,
    Container,
    EnvVar,
    KnService,
    ObjectReference,
    ReplyStrategy,
    Resource,
    ResourceSet,
    Sequence,
    Source,
    SubscriberSpec,
    Subscription,
    Trigger,
    TriggerFilter,
    split_api_version,
)

LOG = get_logger(__name__)

MANIFEST_SUFFIXES = {".yaml", ".yml", ".json"}


def _mapping(value: Any, where: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ManifestError(f"{where} must be an object")
    return value


def _list(value: Any, where: str) -> List[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ManifestError(f"{where} must be a list")
    return value


def _opt_str(value: Any, where: str) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ManifestError(f"{where} must be a string")
    return value


def _object_reference(value: Any, where: str) -> Optional[ObjectReference]:
    if value is None:
        return None
    data = _mapping(value, where)
    name = _opt_str(data.get("name"), f"{where}.name")
    if not name:
        raise ManifestError(f"{where}.name is required")
    return ObjectReference(
        api_version=_opt_str(data.get("apiVersion"), f"{where}.apiVersion") or "",
        kind=_opt_str(data.get("kind"), f"{where}.kind") or "",
        name=name,
        namespace=_opt_str(data.get("namespace"), f"{where}.namespace"),
    )


def _addressable(status: Mapping[str, Any], where: str) -> Addressable:
    address = _mapping(status.get("address"), f"{where}.status.address")
    return Addressable(
        url=_opt_str(address.get("url"), f"{where}.status.address.url"),
        hostname=_opt_str(address.get("hostname"), f"{where}.status.address.hostname"),
    )


def _subscriber(value: Any, where: str) -> Optional[SubscriberSpec]:
    if value is None:
        return None
    data = _mapping(value, where)
    return SubscriberSpec(
        uri=_opt_str(data.get("uri"), f"{where}.uri"),
        ref=_object_reference(data.get("ref"), f"{where}.ref"),
    )


def _containers(spec: Mapping[str, Any], where: str) -> Optional[List[Container]]:
    # v1beta1 inline template, falling back to the older runLatest shape.
    template_spec = _mapping(_mapping(spec.get("template"), f"{where}.spec.template").get("spec"), where)
    raw = template_spec.get("containers")
    if raw is None:
        run_latest = _mapping(spec.get("runLatest"), f"{where}.spec.runLatest")
        configuration = _mapping(run_latest.get("configuration"), f"{where}.spec.runLatest.configuration")
        revision = _mapping(configuration.get("revisionTemplate"), where)
        container = _mapping(revision.get("spec"), where).get("container")
        if container is None:
            return None
        raw = [container]

    containers: List[Container] = []
    for i, item in enumerate(_list(raw, f"{where}.containers")):
        data = _mapping(item, f"{where}.containers[{i}]")
        env: List[EnvVar] = []
        for j, entry in enumerate(_list(data.get("env"), f"{where}.containers[{i}].env")):
            env_data = _mapping(entry, f"{where}.containers[{i}].env[{j}]")
            name = _opt_str(env_data.get("name"), f"{where}.containers[{i}].env[{j}].name")
            if not name:
                continue
            value = env_data.get("value")
            env.append(EnvVar(name=name, value="" if value is None else str(value)))
        containers.append(Container(name=str(data.get("name") or ""), env=env))
    return containers


def _is_source(kind: str, status: Mapping[str, Any]) -> bool:
    return kind.endswith("Source") or "sinkUri" in status


def parse_resource(doc: Any) -> Optional[Resource]:
    """
    Map one manifest document to a typed resource.

    Returns None for kinds the graph does not draw. Raises ManifestError for
    documents that are not objects or lack required fields.
    """
    if not isinstance(doc, Mapping):
        raise ManifestError("Manifest document must be an object")
    api_version = _opt_str(doc.get("apiVersion"), "apiVersion") or ""
    kind = _opt_str(doc.get("kind"), "kind") or ""
    metadata = _mapping(doc.get("metadata"), f"{kind}.metadata")
    name = _opt_str(metadata.get("name"), f"{kind}.metadata.name")
    if not name:
        raise ManifestError(f"{kind or 'document'} is missing metadata.name")

    where = f"{kind}/{name}"
    group, _ = split_api_version(api_version)
    spec = _mapping(doc.get("spec"), f"{where}.spec")
    status = _mapping(doc.get("status"), f"{where}.status")
    common: Dict[str, Any] = {
        "namespace": _opt_str(metadata.get("namespace"), f"{where}.metadata.namespace"),
        "api_version": api_version,
        "kind": kind,
    }

    if kind == "Channel":
        return Channel(name, address=_addressable(status, where), **common)

    if kind == "Subscription":
        channel = _object_reference(spec.get("channel"), f"{where}.spec.channel")
        if channel is None:
            raise ManifestError(f"{where}.spec.channel is required")
        reply_data = spec.get("reply")
        reply = None
        if reply_data is not None:
            reply_map = _mapping(reply_data, f"{where}.spec.reply")
            reply = ReplyStrategy(channel=_object_reference(reply_map.get("channel"), f"{where}.spec.reply.channel"))
        return Subscription(
            name,
            channel=channel,
            subscriber=_subscriber(spec.get("subscriber"), f"{where}.spec.subscriber"),
            reply=reply,
            **common,
        )

    if kind == "Broker":
        return Broker(name, address=_addressable(status, where), **common)

    if kind == "Trigger":
        filter_map = _mapping(spec.get("filter"), f"{where}.spec.filter")
        source_and_type = filter_map.get("sourceAndType")
        trigger_filter = None
        if source_and_type is not None:
            sat = _mapping(source_and_type, f"{where}.spec.filter.sourceAndType")
            trigger_filter = TriggerFilter(
                source=str(sat.get("source") or ""),
                type=str(sat.get("type") or ""),
            )
        return Trigger(
            name,
            broker=_opt_str(spec.get("broker"), f"{where}.spec.broker") or "default",
            filter=trigger_filter,
            subscriber=_subscriber(spec.get("subscriber"), f"{where}.spec.subscriber"),
            **common,
        )

    if kind == "Sequence":
        steps: List[SubscriberSpec] = []
        for i, step in enumerate(_list(spec.get("steps"), f"{where}.spec.steps")):
            steps.append(_subscriber(step, f"{where}.spec.steps[{i}]") or SubscriberSpec())
        return Sequence(
            name,
            address=_addressable(status, where),
            steps=steps,
            reply=_object_reference(spec.get("reply"), f"{where}.spec.reply"),
            **common,
        )

    if kind == "Service" and group == "serving.knative.dev":
        return KnService(name, containers=_containers(spec, where), **common)

    if _is_source(kind, status):
        return Source(name, sink_uri=_opt_str(status.get("sinkUri"), f"{where}.status.sinkUri"), **common)

    LOG.debug("Skipping unsupported kind", extra={"kind": kind, "apiVersion": api_version, "name": name})
    return None


def _flatten(doc: Any) -> Iterator[Any]:
    if isinstance(doc, Mapping) and isinstance(doc.get("items"), list) and (
        doc.get("kind") is None or str(doc.get("kind")).endswith("List")
    ):
        for item in doc["items"]:
            yield from _flatten(item)
        return
    yield doc


def iter_documents(path: Path) -> Iterator[Any]:
    """
    Yield manifest documents from a YAML or JSON file. Multi-document YAML and
    List wrappers are flattened; empty documents are skipped.
    """
    if not path.exists():
        raise ManifestError(f"Manifest file not found: {path}")
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() == ".json":
            docs: Iterable[Any] = [json.loads(text)]
        else:
            docs = list(yaml.safe_load_all(text))
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ManifestError(f"Failed to parse manifest file {path}: {e}") from e
    for doc in docs:
        if doc is None:
            continue
        yield from _flatten(doc)


def _expand_paths(paths: Seq[Union[str, Path]]) -> List[Path]:
    out: List[Path] = []
    for raw in paths:
        path = Path(raw)
        if path.is_dir():
            out.extend(sorted(p for p in path.iterdir() if p.is_file() and p.suffix.lower() in MANIFEST_SUFFIXES))
        else:
            out.append(path)
    return out


def load_resource_set(paths: Seq[Union[str, Path]], namespace: Optional[str] = None) -> ResourceSet:
    """
    Read every manifest under paths into a ResourceSet, keeping only resources
    in namespace when one is given. Resources without a namespace are kept.
    """
    resources = ResourceSet()
    skipped = 0
    for path in _expand_paths(paths):
        for doc in iter_documents(path):
            try:
                resource = parse_resource(doc)
            except ManifestError as e:
                raise ManifestError(f"{path}: {e}") from e
            if resource is None:
                skipped += 1
                continue
            if namespace and resource.namespace and resource.namespace != namespace:
                skipped += 1
                continue
            resources.add(resource)
    LOG.info(
        "Loaded resources",
        extra={"resources": len(resources), "skipped": skipped, "counts": resources.counts()},
    )
    return resources
