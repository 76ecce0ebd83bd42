"""
Process configuration: YAML file + environment override, built once at startup.

Priority: environment variable > YAML file > default. The environment name of a dotted
key is the key upper-cased with dots turned into underscores (bucket.raw -> BUCKET_RAW).
The resulting FlowstatsConfig is passed explicitly to every component.
"""
import os
from dataclasses import dataclass, field

import yaml

from flowstats.errors import ConfigError

CONFIG_ENV = "FLOWSTATS_CONFIG"

BACKENDS = {"local", "aws", "memory"}

_DEFAULTS = {
    "backend": "local",
    "data_dir": "flowstats_data",
    "aws.region": "us-east-1",
    "bucket.raw": None,
    "bucket.interim": None,
    "bucket.state": None,
    "queue.summarize": None,
    "queue.consolidate": None,
    "worker.wait_seconds": 20,
    "worker.error_backoff_sec": 5.0,
    "worker.visibility_timeout_sec": 30,
    "worker.idempotent_updates": False,
    "worker.metrics_file": None,
    "report.path": "report.csv",
}

_INT_KEYS = {"worker.wait_seconds", "worker.visibility_timeout_sec"}
_FLOAT_KEYS = {"worker.error_backoff_sec"}
_BOOL_KEYS = {"worker.idempotent_updates"}

# dotted key -> FlowstatsConfig attribute
_ATTRS = {
    "backend": "backend",
    "data_dir": "data_dir",
    "aws.region": "aws_region",
    "bucket.raw": "bucket_raw",
    "bucket.interim": "bucket_interim",
    "bucket.state": "bucket_state",
    "queue.summarize": "queue_summarize",
    "queue.consolidate": "queue_consolidate",
    "worker.wait_seconds": "wait_seconds",
    "worker.error_backoff_sec": "error_backoff_sec",
    "worker.visibility_timeout_sec": "visibility_timeout_sec",
    "worker.idempotent_updates": "idempotent_updates",
    "worker.metrics_file": "metrics_file",
    "report.path": "report_path",
}


@dataclass(frozen=True)
class FlowstatsConfig:
    backend: str = "local"
    data_dir: str = "flowstats_data"
    aws_region: str = "us-east-1"
    bucket_raw: str | None = None
    bucket_interim: str | None = None
    bucket_state: str | None = None
    queue_summarize: str | None = None
    queue_consolidate: str | None = None
    wait_seconds: int = 20
    error_backoff_sec: float = 5.0
    visibility_timeout_sec: int = 30
    idempotent_updates: bool = False
    metrics_file: str | None = None
    report_path: str = "report.csv"
    csv_columns: dict = field(default_factory=dict)
    source_path: str | None = None

    def get(self, key: str):
        if key not in _ATTRS:
            raise KeyError(f"unknown config key: {key}")
        return getattr(self, _ATTRS[key])

    def require(self, *keys: str) -> "FlowstatsConfig":
        """Raise ConfigError naming every listed key that is unset."""
        missing = [k for k in keys if self.get(k) in (None, "")]
        if missing:
            hint = ", ".join(f"{k} (env {env_name(k)})" for k in missing)
            raise ConfigError(f"missing required configuration: {hint}", keys=missing)
        return self


def env_name(key: str) -> str:
    return key.upper().replace(".", "_")


def _flatten(payload, prefix=""):
    out = {}
    for k, v in (payload or {}).items():
        name = f"{prefix}.{k}" if prefix else str(k)
        if isinstance(v, dict) and name != "csv.columns":
            out.update(_flatten(v, name))
        else:
            out[name] = v
    return out


def _coerce(key, value):
    if value is None:
        return None
    try:
        if key in _INT_KEYS:
            return int(value)
        if key in _FLOAT_KEYS:
            return float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"config {key} must be numeric, got {value!r}", keys=[key])
    if key in _BOOL_KEYS:
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() in ("1", "true", "yes", "on")
    return str(value)


def _validate(values):
    if values["backend"] not in BACKENDS:
        raise ConfigError(f"backend must be one of: {', '.join(sorted(BACKENDS))}", keys=["backend"])
    wait = values["worker.wait_seconds"]
    if not 0 <= wait <= 20:
        raise ConfigError("worker.wait_seconds must be between 0 and 20", keys=["worker.wait_seconds"])
    if values["worker.error_backoff_sec"] < 0:
        raise ConfigError("worker.error_backoff_sec must be >= 0", keys=["worker.error_backoff_sec"])
    if values["worker.visibility_timeout_sec"] <= 0:
        raise ConfigError("worker.visibility_timeout_sec must be > 0", keys=["worker.visibility_timeout_sec"])
    columns = values.get("csv.columns") or {}
    if not isinstance(columns, dict):
        raise ConfigError("csv.columns must be a mapping of field -> header names", keys=["csv.columns"])


def load_config(path: str | None = None, environ=None) -> FlowstatsConfig:
    """Build the process configuration. path falls back to $FLOWSTATS_CONFIG; a missing file is an error."""
    environ = os.environ if environ is None else environ
    path = path or environ.get(CONFIG_ENV) or None
    file_values = {}
    if path:
        if not os.path.isfile(path):
            raise ConfigError(f"config file not found: {path}")
        with open(path, "r") as f:
            payload = yaml.safe_load(f) or {}
        if not isinstance(payload, dict):
            raise ConfigError(f"config file {path} must contain a mapping")
        file_values = _flatten(payload)

    values = {}
    for key, default in _DEFAULTS.items():
        raw = environ.get(env_name(key))
        if raw is None or raw == "":
            raw = file_values.get(key, default)
        values[key] = _coerce(key, raw)
    values["csv.columns"] = file_values.get("csv.columns") or {}
    _validate(values)

    kwargs = {attr: values[key] for key, attr in _ATTRS.items()}
    return FlowstatsConfig(csv_columns=dict(values["csv.columns"]), source_path=path, **kwargs)
