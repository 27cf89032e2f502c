from __future__ import annotations

import argparse
import json
import os
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .lookups.http import DEFAULT_HTTP_TIMEOUT
from .lookups.memory import SERVICE_NAMES

# --------
# Defaults
# --------
DEFAULT_WORKERS = 4
OUTPUT_FORMATS = {"table", "json", "jsonl"}
ALLOWED_CONFIG_KEYS = {
    "data",
    "base_url",
    "http_timeout",
    "pool_size",
    "workers",
    "output_format",
    "fail",
    "progress",
    "json_logs",
    "log_level",
}
BOOL_CONFIG_KEYS = {"progress", "json_logs"}
INT_CONFIG_KEYS = {"pool_size", "workers"}
FLOAT_CONFIG_KEYS = {"http_timeout"}
PATH_CONFIG_KEYS = {"data"}
STR_CONFIG_KEYS = {"base_url", "output_format", "log_level"}


@dataclass(frozen=True)
class AggregatorConfig:
    # Lookup backend: fixture file or HTTP base URL
    data: Optional[Path] = None
    base_url: Optional[str] = None
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    pool_size: Optional[int] = None
    fail: Tuple[str, ...] = ()

    # Requests
    seller_ids: Tuple[int, ...] = ()
    workers: int = DEFAULT_WORKERS

    # Output
    output_format: str = "table"
    progress: bool = False
    json_logs: bool = False
    log_level: str = "INFO"

    @property
    def dependent_pool_size(self) -> int:
        """Two dependent lookups per concurrent request."""
        return 2 * self.workers


def _parse_config_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() in {".yaml", ".yml"}:
            data = yaml.safe_load(text) or {}
        elif path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            # Try YAML first then JSON
            try:
                data = yaml.safe_load(text) or {}
            except yaml.YAMLError:
                data = json.loads(text)
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
    raw = os.getenv(name)
    if raw is None:
        return None
    raw = raw.strip().lower()
    if not raw:
        return None
    return raw in {"1", "true", "yes", "on"}


def _env_int(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def _env_float(name: str) -> Optional[float]:
    raw = os.getenv(name)
    if raw is None:
        return None
    try:
        return float(raw)
    except ValueError:
        return None


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


def _coerce_int(key: str, value: Any) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return int(value)
        except ValueError:
            pass
    raise ValueError(f"Config field '{key}' must be an integer")


def _coerce_float(key: str, value: Any) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    if isinstance(value, str) and value.strip():
        try:
            return float(value)
        except ValueError:
            pass
    raise ValueError(f"Config field '{key}' must be a number")


def _split_names(key: str, value: Any) -> List[str]:
    if isinstance(value, str):
        return [v.strip().lower() for v in value.split(",") if v.strip()]
    if isinstance(value, (list, tuple)) and all(isinstance(v, str) for v in value):
        return [v.strip().lower() for v in value if v.strip()]
    raise ValueError(f"Config field '{key}' must be a list of strings or comma-separated string")


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
            continue
        if key == "fail":
            normalized[key] = _split_names(key, value)
        elif key in BOOL_CONFIG_KEYS:
            normalized[key] = _coerce_bool(key, value)
        elif key in INT_CONFIG_KEYS:
            normalized[key] = _coerce_int(key, value)
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
        else:
            normalized[key] = value
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
    parser = argparse.ArgumentParser(prog="order-agg", description="Enrich orders with offer and product details")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # common flags builder
    def add_common(p: argparse.ArgumentParser) -> None:
        p.add_argument("--config", type=Path, help="Optional YAML/JSON config file")
        p.add_argument(
            "--json-logs",
            action=argparse.BooleanOptionalAction,
            default=None,
            help="Enable JSON logs",
        )
        p.add_argument("--log-level", default=None, help="Log level (INFO, DEBUG, ...)")
        p.add_argument("--data", type=Path, default=None, help="YAML/JSON fixture with orders, offers and products")
        p.add_argument("--base-url", default=None, help="Base URL of the order/offer/product HTTP services")
        p.add_argument(
            "--http-timeout",
            type=float,
            default=None,
            help=f"Per-request HTTP timeout in seconds (default {DEFAULT_HTTP_TIMEOUT})",
        )
        p.add_argument("--pool-size", type=int, default=None, help="HTTP connection pool size")

    # enrich
    p_enrich = subparsers.add_parser("enrich", help="Enrich the orders of one or more sellers")
    add_common(p_enrich)
    p_enrich.add_argument("seller_ids", nargs="+", type=int, metavar="SELLER_ID", help="Seller id(s) to enrich")
    p_enrich.add_argument(
        "--workers", type=int, default=None, help=f"Max concurrent enrich requests (default {DEFAULT_WORKERS})"
    )
    p_enrich.add_argument(
        "--format",
        dest="output_format",
        default=None,
        choices=sorted(OUTPUT_FORMATS),
        help="Output format (default: table)",
    )
    p_enrich.add_argument(
        "--fail",
        action="append",
        default=None,
        choices=list(SERVICE_NAMES),
        help="Simulate an outage of a fixture-backed service (repeatable)",
    )
    p_enrich.add_argument(
        "--progress",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Show a progress bar while enriching",
    )

    # show-config
    p_show = subparsers.add_parser("show-config", help="Print the resolved configuration as JSON")
    add_common(p_show)
    return parser


def load_run_config(
    args: Optional[argparse.Namespace] = None,
    argv: Optional[list[str]] = None,
) -> Tuple[str, AggregatorConfig]:
    """
    Build AggregatorConfig by merging defaults, optional config file, env vars, and CLI args.
    Precedence (low -> high): defaults < config file < env < CLI.

    Returns:
      (command, AggregatorConfig) where command is the subcommand selected: enrich|show-config
    """
    ns = args if args is not None else build_parser().parse_args(argv)
    command = ns.command

    # defaults
    base: Dict[str, Any] = {
        "data": None,
        "base_url": None,
        "http_timeout": DEFAULT_HTTP_TIMEOUT,
        "pool_size": None,
        "workers": DEFAULT_WORKERS,
        "output_format": "table",
        "fail": [],
        "progress": False,
        "json_logs": False,
        "log_level": "INFO",
    }

    # config file
    file_cfg: Dict[str, Any] = {}
    if getattr(ns, "config", None):
        file_cfg = _normalize_config_file(_parse_config_file(Path(ns.config)))

    # env
    env_fail = _env_str("ORDER_AGG_FAIL")
    env_cfg: Dict[str, Any] = _compact_dict(
        {
            "data": _env_str("ORDER_AGG_DATA"),
            "base_url": _env_str("ORDER_AGG_BASE_URL"),
            "http_timeout": _env_float("ORDER_AGG_HTTP_TIMEOUT"),
            "pool_size": _env_int("ORDER_AGG_POOL_SIZE"),
            "workers": _env_int("ORDER_AGG_WORKERS"),
            "output_format": _env_str("ORDER_AGG_FORMAT"),
            "fail": _split_names("fail", env_fail) if env_fail else None,
            "progress": _env_bool("ORDER_AGG_PROGRESS"),
            "json_logs": _env_bool("ORDER_AGG_JSON_LOGS"),
            "log_level": _env_str("ORDER_AGG_LOG_LEVEL"),
        }
    )

    # CLI
    cli_cfg: Dict[str, Any] = _compact_dict(
        {
            "data": getattr(ns, "data", None),
            "base_url": getattr(ns, "base_url", None),
            "http_timeout": getattr(ns, "http_timeout", None),
            "pool_size": getattr(ns, "pool_size", None),
            "workers": getattr(ns, "workers", None),
            "output_format": getattr(ns, "output_format", None),
            "fail": getattr(ns, "fail", None),
            "progress": getattr(ns, "progress", None),
            "json_logs": getattr(ns, "json_logs", None),
            "log_level": getattr(ns, "log_level", None),
        }
    )

    merged = _merge_dicts(base, _merge_dicts(file_cfg, _merge_dicts(env_cfg, cli_cfg)))

    # Normalize/construct types
    output_format = str(merged.get("output_format") or "table").lower()
    if output_format not in OUTPUT_FORMATS:
        raise ValueError(f"Output format must be one of: {', '.join(sorted(OUTPUT_FORMATS))}")
    fail = tuple(sorted({str(name).lower() for name in merged.get("fail") or []}))
    unknown_fail = sorted(set(fail) - set(SERVICE_NAMES))
    if unknown_fail:
        raise ValueError(f"Unknown service names to fail: {', '.join(unknown_fail)}")
    workers = int(merged["workers"]) if merged.get("workers") is not None else DEFAULT_WORKERS
    if workers < 1:
        raise ValueError("workers must be at least 1")
    http_timeout = (
        float(merged["http_timeout"]) if merged.get("http_timeout") is not None else DEFAULT_HTTP_TIMEOUT
    )
    if http_timeout <= 0:
        raise ValueError("http_timeout must be positive")
    pool_size = merged.get("pool_size")
    if pool_size is not None and int(pool_size) < 1:
        raise ValueError("pool_size must be at least 1")

    cfg = AggregatorConfig(
        data=Path(merged["data"]) if merged.get("data") else None,
        base_url=str(merged["base_url"]) if merged.get("base_url") else None,
        http_timeout=http_timeout,
        pool_size=int(pool_size) if pool_size is not None else None,
        fail=fail,
        seller_ids=tuple(getattr(ns, "seller_ids", None) or ()),
        workers=workers,
        output_format=output_format,
        progress=bool(merged["progress"]),
        json_logs=bool(merged["json_logs"]),
        log_level=(merged.get("log_level") or "INFO").upper(),
    )
    return command, cfg


def dump_config(cfg: AggregatorConfig) -> Dict[str, Any]:
    return {
        "data": str(cfg.data) if cfg.data else None,
        "base_url": cfg.base_url,
        "http_timeout": cfg.http_timeout,
        "pool_size": cfg.pool_size,
        "fail": list(cfg.fail),
        "seller_ids": list(cfg.seller_ids),
        "workers": cfg.workers,
        "output_format": cfg.output_format,
        "progress": cfg.progress,
        "json_logs": cfg.json_logs,
        "log_level": cfg.log_level,
    }
