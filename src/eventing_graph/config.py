from __future__ import annotations

import argparse
import json
import os
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .export.dot import RENDER_FORMATS
from .util.errors import ConfigError

# --------
# Defaults
# --------
DEFAULT_NAMESPACE = "default"
DEFAULT_FORMAT = "dot"
DEFAULT_OUTDIR = Path("out")
# Output suffixes that pick the render format when none is configured.
SUFFIX_FORMATS = {".dot": "dot", ".gv": "dot", ".svg": "svg", ".png": "png", ".pdf": "pdf"}
ALLOWED_CONFIG_KEYS = {
    "manifests",
    "namespace",
    "output",
    "format",
    "outdir",
    "rainbow",
    "show_unknown_replies",
    "json_logs",
    "log_level",
}
BOOL_CONFIG_KEYS = {"rainbow", "show_unknown_replies", "json_logs"}
PATH_CONFIG_KEYS = {"output", "outdir"}
STR_CONFIG_KEYS = {"namespace", "format", "log_level"}


@dataclass(frozen=True)
class RenderConfig:
    manifests: List[Path] = field(default_factory=list)
    namespace: str = DEFAULT_NAMESPACE
    output: Optional[Path] = None  # None writes DOT to stdout
    format: str = DEFAULT_FORMAT
    outdir: Path = DEFAULT_OUTDIR

    # Styling
    rainbow: bool = True
    show_unknown_replies: bool = False

    # Logging
    json_logs: bool = False
    log_level: str = "INFO"


def _parse_config_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text) or {}
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ValueError(f"Failed to parse config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ValueError("Top-level config must be an object")
    return data


def _env_str(name: str) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None:
        return None
    raw = raw.strip()
    if not raw:
        return None
    return raw


def _env_bool(name: str) -> Optional[bool]:
    raw = _env_str(name)
    if raw is None:
        return None
    return raw.lower() in {"1", "true", "yes", "on"}


def _coerce_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        raw = value.strip().lower()
        if raw in {"1", "true", "yes", "on"}:
            return True
        if raw in {"0", "false", "no", "off"}:
            return False
    raise ValueError(f"Config field '{key}' must be a boolean")


def _split_paths(value: Any) -> List[str]:
    if isinstance(value, str):
        return [p.strip() for p in value.split(",") if p.strip()]
    if isinstance(value, list) and all(isinstance(p, (str, Path)) for p in value):
        return [str(p).strip() for p in value if str(p).strip()]
    raise ValueError("Config field 'manifests' must be a list of paths or comma-separated string")


def _normalize_config_file(data: Dict[str, Any]) -> Dict[str, Any]:
    unknown = sorted(set(data.keys()) - ALLOWED_CONFIG_KEYS)
    if unknown:
        warnings.warn(f"Unknown config keys ignored: {', '.join(unknown)}")
    normalized: Dict[str, Any] = {}
    for key, value in data.items():
        if key not in ALLOWED_CONFIG_KEYS:
            continue
        if value is None:
            normalized[key] = None
        elif key == "manifests":
            normalized[key] = _split_paths(value)
        elif key in BOOL_CONFIG_KEYS:
            normalized[key] = _coerce_bool(key, value)
        elif key in PATH_CONFIG_KEYS:
            if isinstance(value, (str, Path)):
                normalized[key] = value
            else:
                raise ValueError(f"Config field '{key}' must be a string path")
        elif key in STR_CONFIG_KEYS:
            if isinstance(value, str):
                normalized[key] = value
            else:
                raise ValueError(f"Config field '{key}' must be a string")
    return _compact_dict(normalized)


def _compact_dict(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Drop keys with None values so they don't override lower-precedence config.
    """
    return {k: v for k, v in data.items() if v is not None}


def _merge_dicts(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
    """
    Shallow merge: values in b override a.
    """
    merged = dict(a)
    merged.update(b)
    return merged


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="evgraph", description="Eventing topology graph")
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common(p: argparse.ArgumentParser) -> None:
        p.add_argument("--config", type=Path, help="Optional YAML/JSON config file")
        p.add_argument(
            "-f",
            "--filename",
            dest="manifests",
            action="append",
            default=None,
            help="Manifest file or directory (repeatable)",
        )
        p.add_argument("-n", "--namespace", default=None, help=f"Namespace to draw (default {DEFAULT_NAMESPACE})")
        p.add_argument(
            "--rainbow",
            action=argparse.BooleanOptionalAction,
            default=None,
            help="Color edges from a cycling palette (default on)",
        )
        p.add_argument(
            "--show-unknown-replies",
            action=argparse.BooleanOptionalAction,
            default=None,
            help="Draw unresolved reply channels as placeholders instead of dropping the edge",
        )
        p.add_argument(
            "--json-logs",
            action=argparse.BooleanOptionalAction,
            default=None,
            help="Enable JSON logs",
        )
        p.add_argument("--log-level", default=None, help="Log level (INFO, DEBUG, ...)")

    p_render = subparsers.add_parser("render", help="Render the topology diagram")
    add_common(p_render)
    p_render.add_argument("-o", "--output", type=Path, default=None, help="Output file (default: DOT on stdout)")
    p_render.add_argument(
        "--format",
        default=None,
        choices=sorted(RENDER_FORMATS),
        help=(
            f"Output format (default: from the --output suffix, else {DEFAULT_FORMAT}); "
            "image formats need the Graphviz binaries"
        ),
    )

    p_export = subparsers.add_parser("export", help="Write graph nodes/edges as JSON Lines")
    add_common(p_export)
    p_export.add_argument("--outdir", type=Path, default=None, help=f"Output directory (default {DEFAULT_OUTDIR})")

    return parser


def load_run_config(
    args: Optional[argparse.Namespace] = None,
    argv: Optional[list[str]] = None,
) -> Tuple[str, RenderConfig]:
    """
    Build RenderConfig by merging defaults, optional config file, env vars, and CLI args.
    Precedence (low -> high): defaults < config file < env < CLI.

    Returns:
      (command, RenderConfig) where command is render|export
    """
    ns = args if args is not None else build_parser().parse_args(argv)
    command = ns.command

    base: Dict[str, Any] = {
        "manifests": [],
        "namespace": DEFAULT_NAMESPACE,
        "output": None,
        "format": DEFAULT_FORMAT,
        "outdir": DEFAULT_OUTDIR,
        "rainbow": True,
        "show_unknown_replies": False,
        "json_logs": False,
        "log_level": "INFO",
    }

    file_cfg: Dict[str, Any] = {}
    if getattr(ns, "config", None):
        file_cfg = _normalize_config_file(_parse_config_file(Path(ns.config)))

    env_manifests = _env_str("EVGRAPH_MANIFESTS")
    env_cfg: Dict[str, Any] = _compact_dict(
        {
            "manifests": _split_paths(env_manifests) if env_manifests else None,
            "namespace": _env_str("EVGRAPH_NAMESPACE"),
            "output": _env_str("EVGRAPH_OUTPUT"),
            "format": _env_str("EVGRAPH_FORMAT"),
            "outdir": _env_str("EVGRAPH_OUTDIR"),
            "rainbow": _env_bool("EVGRAPH_RAINBOW"),
            "show_unknown_replies": _env_bool("EVGRAPH_SHOW_UNKNOWN_REPLIES"),
            "json_logs": _env_bool("EVGRAPH_JSON_LOGS"),
            "log_level": _env_str("EVGRAPH_LOG_LEVEL"),
        }
    )

    cli_cfg: Dict[str, Any] = _compact_dict(
        {
            "manifests": getattr(ns, "manifests", None),
            "namespace": getattr(ns, "namespace", None),
            "output": getattr(ns, "output", None),
            "format": getattr(ns, "format", None),
            "outdir": getattr(ns, "outdir", None),
            "rainbow": getattr(ns, "rainbow", None),
            "show_unknown_replies": getattr(ns, "show_unknown_replies", None),
            "json_logs": getattr(ns, "json_logs", None),
            "log_level": getattr(ns, "log_level", None),
        }
    )

    overrides = _merge_dicts(file_cfg, _merge_dicts(env_cfg, cli_cfg))
    merged = _merge_dicts(base, overrides)

    output = Path(merged["output"]) if merged.get("output") else None
    fmt = str(merged.get("format") or DEFAULT_FORMAT).lower()
    if "format" not in overrides and output is not None:
        fmt = SUFFIX_FORMATS.get(output.suffix.lower(), fmt)
    if fmt not in RENDER_FORMATS:
        raise ConfigError(f"Format must be one of: {', '.join(sorted(RENDER_FORMATS))}")
    if command == "render" and fmt != "dot" and output is None:
        raise ConfigError(f"--output is required for format '{fmt}'")

    cfg = RenderConfig(
        manifests=[Path(p) for p in merged["manifests"]],
        namespace=str(merged.get("namespace") or DEFAULT_NAMESPACE),
        output=output,
        format=fmt,
        outdir=Path(merged.get("outdir") or DEFAULT_OUTDIR),
        rainbow=bool(merged["rainbow"]),
        show_unknown_replies=bool(merged["show_unknown_replies"]),
        json_logs=bool(merged["json_logs"]),
        log_level=(merged.get("log_level") or "INFO").upper(),
    )
    return command, cfg


def dump_config(cfg: RenderConfig) -> Dict[str, Any]:
    return {
        "manifests": [str(p) for p in cfg.manifests],
        "namespace": cfg.namespace,
        "output": str(cfg.output) if cfg.output else None,
        "format": cfg.format,
        "outdir": str(cfg.outdir),
        "rainbow": cfg.rainbow,
        "show_unknown_replies": cfg.show_unknown_replies,
        "json_logs": cfg.json_logs,
        "log_level": cfg.log_level,
    }
