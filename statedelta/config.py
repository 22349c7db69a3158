"""
statedelta.config — Start-up configuration.

Configuration decides which normalization rules exist and how the
library logs.  It is read once, before any comparison runs.

Example `statedelta.yml`:

    logging:
      level: DEBUG
    normalization:
      builtin: true
      folding:
        - name: blob-plain
          source: stringData
          target: binaryData
          encoding: base64
          match: {apiVersion: example.io/v1, kind: Blob}
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .errors import ConfigError
from .transform import (
    ENCODINGS,
    FieldFoldingRule,
    NormalizerRegistry,
    default_registry,
)


# ---------- Typed sections ----------

@dataclass
class LoggingSection:
    level: str = "INFO"
    mask_secrets: bool = True


@dataclass
class FoldingSpec:
    name: str
    source: str
    target: str
    encoding: str = "base64"
    match: Dict[str, Any] = field(default_factory=dict)

    def build(self) -> FieldFoldingRule:
        return FieldFoldingRule(
            self.name,
            source=self.source,
            target=self.target,
            encoding=self.encoding,
            match=self.match,
        )


@dataclass
class NormalizationSection:
    builtin: bool = True
    folding: List[FoldingSpec] = field(default_factory=list)


@dataclass
class DeltaConfig:
    """Typed configuration object built by `load_config`."""
    logging: LoggingSection
    normalization: NormalizationSection


# ---------- Defaults ----------

_DEFAULT_FILES: Tuple[str, ...] = (
    "./statedelta.yml",
    os.path.expanduser("~/.config/statedelta/config.yml"),
    "/etc/statedelta/config.yml",
)

_DEFAULTS: Dict[str, Any] = {
    "logging": {"level": "INFO", "mask_secrets": True},
    "normalization": {"builtin": True, "folding": []},
}

_BOOL_KEYS = {("logging", "mask_secrets"), ("normalization", "builtin")}


# ---------- Utilities ----------

def _deep_merge(base: Dict[str, Any], ext: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Deep-merge for dicts: maps merge recursively, lists/scalars override.
    `ext` wins over `base`. Returns a new dict.
    """
    if not ext:
        return dict(base)
    out: Dict[str, Any] = dict(base)
    for k, v in ext.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def _read_yaml_file(path: str) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"Top-level YAML must be a mapping: {path}")
    return data


def _load_first_existing(files: Tuple[str, ...]) -> Dict[str, Any]:
    for p in files:
        if os.path.exists(p):
            return _read_yaml_file(p)
    return {}


def _env_to_dict(prefix: str = "STATEDELTA_") -> Dict[str, Any]:
    """
    Convert STATEDELTA_FOO__BAR=val to {"foo": {"bar": "val"}} (lowercased keys).
    """
    out: Dict[str, Any] = {}
    plen = len(prefix)
    for key, val in os.environ.items():
        if not key.startswith(prefix):
            continue
        path = key[plen:].lower().split("__")
        cursor = out
        for part in path[:-1]:
            cursor = cursor.setdefault(part, {})
        cursor[path[-1]] = val
    return out


def _interpolate_env(cfg: Any) -> Any:
    """
    Replace values like "${VAR}" with os.environ["VAR"] when present.
    """
    if isinstance(cfg, dict):
        return {k: _interpolate_env(v) for k, v in cfg.items()}
    if isinstance(cfg, list):
        return [_interpolate_env(x) for x in cfg]
    if isinstance(cfg, str) and cfg.startswith("${") and cfg.endswith("}"):
        return os.environ.get(cfg[2:-1], "")
    return cfg


def _to_bool(x: Any) -> bool:
    if isinstance(x, bool):
        return x
    return str(x).strip().lower() in {"1", "true", "yes", "y", "on"}


def _coerce_types(cfg: Dict[str, Any]) -> Dict[str, Any]:
    for section, key in _BOOL_KEYS:
        values = cfg.get(section)
        if isinstance(values, dict) and key in values:
            values[key] = _to_bool(values[key])
    return cfg


def _parse_folding(entries: Any) -> List[FoldingSpec]:
    if not isinstance(entries, list):
        raise ConfigError("normalization.folding must be a list")
    specs: List[FoldingSpec] = []
    for i, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise ConfigError(f"normalization.folding[{i}] must be a mapping")
        missing = [k for k in ("name", "source", "target") if not entry.get(k)]
        if missing:
            raise ConfigError(
                f"normalization.folding[{i}] missing: " + ", ".join(missing)
            )
        unknown = set(entry) - {"name", "source", "target", "encoding", "match"}
        if unknown:
            raise ConfigError(
                f"normalization.folding[{i}] unknown keys: " + ", ".join(sorted(unknown))
            )
        encoding = entry.get("encoding", "base64")
        if encoding not in ENCODINGS:
            raise ConfigError(
                f"normalization.folding[{i}] unknown encoding {encoding!r}"
            )
        match = entry.get("match") or {}
        if not isinstance(match, dict):
            raise ConfigError(f"normalization.folding[{i}].match must be a mapping")
        spec = FoldingSpec(
            name=str(entry["name"]),
            source=str(entry["source"]),
            target=str(entry["target"]),
            encoding=encoding,
            match=match,
        )
        try:
            spec.build()
        except ValueError as exc:
            raise ConfigError(f"normalization.folding[{i}]: {exc}") from exc
        specs.append(spec)
    return specs


def _validate(cfg: Dict[str, Any]) -> None:
    for section in _DEFAULTS:
        if not isinstance(cfg.get(section), dict):
            raise ConfigError(f"{section} must be a mapping")
    level = str(cfg["logging"].get("level", "INFO")).upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ConfigError(f"logging.level is not a valid level: {level!r}")
    cfg["logging"]["level"] = level


# ---------- Public API ----------

def load_config(
    overrides: Optional[Dict[str, Any]] = None,
    files: Tuple[str, ...] = _DEFAULT_FILES,
    env_prefix: str = "STATEDELTA_",
) -> DeltaConfig:
    """
    Build a DeltaConfig from (in precedence order):
      1) explicit overrides
      2) Environment variables (prefix STATEDELTA_, nested via __)
      3) YAML file (first existing)
      4) Built-in defaults

    Also performs ${ENV_VAR} interpolation, bool coercion and validation.
    """
    file_cfg = _load_first_existing(files)
    env_cfg = _env_to_dict(env_prefix)

    merged = _deep_merge(_DEFAULTS, file_cfg)
    merged = _deep_merge(merged, env_cfg)
    merged = _deep_merge(merged, overrides or {})

    merged = _interpolate_env(merged)
    merged = _coerce_types(merged)
    _validate(merged)

    log_cfg = merged.get("logging", {})
    norm_cfg = merged.get("normalization", {})
    for section, values in (("logging", log_cfg), ("normalization", norm_cfg)):
        unknown = set(values) - set(_DEFAULTS[section])
        if unknown:
            raise ConfigError(f"{section}: unknown keys: " + ", ".join(sorted(unknown)))

    return DeltaConfig(
        logging=LoggingSection(**log_cfg),
        normalization=NormalizationSection(
            builtin=norm_cfg.get("builtin", True),
            folding=_parse_folding(norm_cfg.get("folding", [])),
        ),
    )


def build_registry(cfg: DeltaConfig) -> NormalizerRegistry:
    """
    Registry with the built-in rules (unless disabled) followed by every
    configured folding rule, in file order.  Left unfrozen so the
    embedding system can still add its own rules.

    Overlapping predicates are not rejected.  A configured rule that
    also matches Secrets runs after the built-in one and sees
    `stringData` already folded into `data`.
    """
    registry = default_registry() if cfg.normalization.builtin else NormalizerRegistry()
    for spec in cfg.normalization.folding:
        registry.register(spec.build())
    return registry
