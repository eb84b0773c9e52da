from __future__ import annotations

import argparse
import json
import os
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

# --------
# Defaults
# --------
ITEM_PLACEHOLDER = "{item}"
ALLOWED_CONFIG_KEYS = {
    "command",
    "items",
    "items_file",
    "output",
    "timeout",
    "progress",
    "json_logs",
    "log_level",
}
BOOL_CONFIG_KEYS = {"progress", "json_logs"}
FLOAT_CONFIG_KEYS = {"timeout"}
PATH_CONFIG_KEYS = {"items_file", "output"}
STR_CONFIG_KEYS = {"command", "log_level"}


@dataclass(frozen=True)
class RunConfig:
    command: Optional[str] = None
    items: List[str] = field(default_factory=list)
    items_file: Optional[Path] = None
    output: Optional[Path] = None
    timeout: Optional[float] = None  # per item, seconds
    progress: bool = True

    json_logs: bool = False
    log_level: str = "INFO"


def _parse_config_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text) or {}
    except Exception as e:
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


def _env_float(name: str) -> Optional[float]:
    raw = _env_str(name)
    if raw is None:
        return None
    try:
        return float(raw)
    except ValueError:
        return None


def _split_items(raw: str) -> List[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


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


def _coerce_float(key: str, value: Any) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    if isinstance(value, str) and value.strip():
        try:
            return float(value)
        except ValueError:
            pass
    raise ValueError(f"Config field '{key}' must be a number")


def _normalize_config_file(data: Dict[str, Any]) -> Dict[str, Any]:
    unknown = sorted(set(data.keys()) - ALLOWED_CONFIG_KEYS)
    if unknown:
        warnings.warn(f"Unknown config keys ignored: {', '.join(unknown)}")
    normalized: Dict[str, Any] = {}
    for key, value in data.items():
        if key not in ALLOWED_CONFIG_KEYS or value is None:
            continue
        if key == "items":
            if isinstance(value, str):
                normalized[key] = _split_items(value)
            elif isinstance(value, list) and all(isinstance(v, (str, int, float)) for v in value):
                normalized[key] = [str(v) for v in value]
            else:
                raise ValueError("Config field 'items' must be a list of scalars or comma-separated string")
        elif key in BOOL_CONFIG_KEYS:
            normalized[key] = _coerce_bool(key, value)
        elif key in FLOAT_CONFIG_KEYS:
            normalized[key] = _coerce_float(key, value)
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
    return normalized


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
    parser = argparse.ArgumentParser(prog="continuity", description="Run work items strictly one at a time")
    subparsers = parser.add_subparsers(dest="command_name", required=True)

    p_run = subparsers.add_parser("run", help="Run a command once per item, in order")
    p_run.add_argument("items", nargs="*", help="Items to process")
    p_run.add_argument("--config", type=Path, help="Optional YAML/JSON config file")
    p_run.add_argument(
        "--command",
        "-c",
        dest="command",
        default=None,
        help=f"Command template; {ITEM_PLACEHOLDER} is replaced by the item",
    )
    p_run.add_argument("--items-file", type=Path, default=None, help="File with one item per line")
    p_run.add_argument("--output", type=Path, default=None, help="Write results as JSON to this path")
    p_run.add_argument("--timeout", type=float, default=None, help="Per-item timeout in seconds")
    p_run.add_argument(
        "--progress",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Show a progress bar and summary table",
    )
    p_run.add_argument(
        "--json-logs",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Enable JSON logs",
    )
    p_run.add_argument("--log-level", default=None, help="Log level (INFO, DEBUG, ...)")
    return parser


def load_run_config(
    args: Optional[argparse.Namespace] = None,
    argv: Optional[list[str]] = None,
) -> Tuple[str, RunConfig]:
    """
    Build RunConfig by merging defaults, optional config file, env vars, and CLI args.
    Precedence (low -> high): defaults < config file < env < CLI.

    Returns:
      (subcommand, RunConfig)
    """
    ns = args if args is not None else build_parser().parse_args(argv)
    subcommand = ns.command_name

    base: Dict[str, Any] = {
        "command": None,
        "items": [],
        "items_file": None,
        "output": None,
        "timeout": None,
        "progress": True,
        "json_logs": False,
        "log_level": "INFO",
    }

    file_cfg: Dict[str, Any] = {}
    if getattr(ns, "config", None):
        file_cfg = _normalize_config_file(_parse_config_file(Path(ns.config)))

    env_items = _env_str("CONTINUITY_ITEMS")
    env_cfg: Dict[str, Any] = _compact_dict(
        {
            "command": _env_str("CONTINUITY_COMMAND"),
            "items": _split_items(env_items) if env_items else None,
            "items_file": _env_str("CONTINUITY_ITEMS_FILE"),
            "output": _env_str("CONTINUITY_OUTPUT"),
            "timeout": _env_float("CONTINUITY_TIMEOUT"),
            "progress": _env_bool("CONTINUITY_PROGRESS"),
            "json_logs": _env_bool("CONTINUITY_JSON_LOGS"),
            "log_level": _env_str("CONTINUITY_LOG_LEVEL"),
        }
    )

    cli_items = getattr(ns, "items", None)
    cli_cfg: Dict[str, Any] = _compact_dict(
        {
            "command": getattr(ns, "command", None),
            "items": list(cli_items) if cli_items else None,
            "items_file": getattr(ns, "items_file", None),
            "output": getattr(ns, "output", None),
            "timeout": getattr(ns, "timeout", None),
            "progress": getattr(ns, "progress", None),
            "json_logs": getattr(ns, "json_logs", None),
            "log_level": getattr(ns, "log_level", None),
        }
    )

    merged = _merge_dicts(base, _merge_dicts(file_cfg, _merge_dicts(env_cfg, cli_cfg)))

    timeout = merged.get("timeout")
    if timeout is not None and timeout <= 0:
        raise ValueError("timeout must be greater than zero")

    cfg = RunConfig(
        command=str(merged["command"]) if merged.get("command") else None,
        items=[str(item) for item in merged.get("items") or []],
        items_file=Path(merged["items_file"]) if merged.get("items_file") else None,
        output=Path(merged["output"]) if merged.get("output") else None,
        timeout=float(timeout) if timeout is not None else None,
        progress=bool(merged["progress"]),
        json_logs=bool(merged["json_logs"]),
        log_level=str(merged.get("log_level") or "INFO").upper(),
    )
    return subcommand, cfg


def dump_config(cfg: RunConfig) -> Dict[str, Any]:
    return {
        "command": cfg.command,
        "items": list(cfg.items),
        "items_file": str(cfg.items_file) if cfg.items_file else None,
        "output": str(cfg.output) if cfg.output else None,
        "timeout": cfg.timeout,
        "progress": cfg.progress,
        "json_logs": cfg.json_logs,
        "log_level": cfg.log_level,
    }
