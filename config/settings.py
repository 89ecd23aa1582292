"""Run configuration: frozen dataclass merged from defaults, YAML file, environment and CLI flags."""

import os
from dataclasses import dataclass, fields
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# keys accepted in the YAML file besides the Settings field names
KEY_ALIASES = {"type": "doc_type", "bulk-size": "bulk_size", "verify-ssl": "verify_ssl"}


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class Settings:
    vhost: str
    log: str
    host: Optional[str] = None
    index: str = "logs"
    doc_type: str = "access_log_entry"
    nodes: Tuple[str, ...] = ("localhost:9200",)
    username: Optional[str] = None
    password: Optional[str] = None
    bulk_size: int = 500
    verify_ssl: bool = True
    dry_run: bool = False
    log_level: str = "INFO"


FIELD_NAMES = tuple(f.name for f in fields(Settings))


def load_yaml_config(path: str) -> Dict[str, Any]:
    """Read a YAML mapping of Settings values. `type` is accepted for doc_type."""
    try:
        with open(path, "r") as fh:
            data = yaml.safe_load(fh)
    except OSError as exc:
        raise ConfigError(f"cannot read config file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid YAML in {path}: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"config file {path} must contain a mapping, got {type(data).__name__}")

    values = {}
    for key, value in data.items():
        name = KEY_ALIASES.get(key, key)
        if name not in FIELD_NAMES:
            raise ConfigError(f"unknown key {key!r} in config file {path}")
        values[name] = value
    return values


def _from_environ(environ: Mapping[str, str]) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    if environ.get("ES_NODES"):
        values["nodes"] = [n.strip() for n in environ["ES_NODES"].split(",") if n.strip()]
    if environ.get("ES_USERNAME"):
        values["username"] = environ["ES_USERNAME"]
    if environ.get("ES_PASSWORD"):
        values["password"] = environ["ES_PASSWORD"]
    return values


def _from_args(args: Any) -> Dict[str, Any]:
    # argparse leaves unset options as None, those must not shadow lower layers
    values = {}
    for name in FIELD_NAMES:
        value = getattr(args, name, None)
        if value is not None:
            values[name] = value
    return values


def _check_readable(path: str):
    if not os.path.isfile(path):
        raise ConfigError(f"log file {path} does not exist or is not a file")
    if not os.access(path, os.R_OK):
        raise ConfigError(f"log file {path} is not readable")


def load_settings(args: Any, environ: Mapping[str, str] = os.environ) -> Settings:
    """Build Settings from (lowest to highest) defaults, --config file, ES_* environment and flags."""
    values: Dict[str, Any] = {}
    config_path = getattr(args, "config", None)
    if config_path:
        values.update(load_yaml_config(config_path))
    values.update(_from_environ(environ))
    values.update(_from_args(args))

    for required in ("vhost", "log"):
        if not values.get(required):
            raise ConfigError(f"missing required option --{required}")

    nodes = values.get("nodes", Settings.nodes)
    if isinstance(nodes, str):
        nodes = [nodes]
    if not isinstance(nodes, (list, tuple)):
        raise ConfigError(f"nodes must be a list of addresses, got {nodes!r}")
    if not all(isinstance(n, str) and n for n in nodes):
        raise ConfigError(f"nodes must be non-empty strings, got {list(nodes)!r}")
    values["nodes"] = tuple(nodes)
    if not values["nodes"]:
        raise ConfigError("at least one Elasticsearch node is required")

    index = values.get("index", Settings.index)
    if not isinstance(index, str) or not index:
        raise ConfigError(f"index must be a non-empty string, got {index!r}")
    doc_type = values.get("doc_type", Settings.doc_type)
    if doc_type is not None and not isinstance(doc_type, str):
        raise ConfigError(f"type must be a string, got {doc_type!r}")

    try:
        values["bulk_size"] = int(values.get("bulk_size", Settings.bulk_size))
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"bulk_size must be an integer: {exc}") from exc
    if values["bulk_size"] < 1:
        raise ConfigError("bulk_size must be at least 1")

    values["log_level"] = str(values.get("log_level", Settings.log_level)).upper()
    if values["log_level"] not in LOG_LEVELS:
        raise ConfigError(f"log_level must be one of {', '.join(LOG_LEVELS)}")

    values["vhost"] = str(values["vhost"])
    values["log"] = str(values["log"])
    if values.get("host") is not None:
        values["host"] = str(values["host"])
    if "doc_type" in values and values["doc_type"] is None:
        # "type: null" in the YAML file disables _type
        values["doc_type"] = ""

    _check_readable(values["log"])
    return Settings(**values)
