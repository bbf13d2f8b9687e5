"""Load, validate, and hot-reload the sync tunables.

The config lives in ``sync_config.yaml`` alongside this module.  At startup
it is loaded once and cached.  Call ``reload_sync_config()`` to re-read from
disk; engines built afterwards pick up the new values.

Usage::

    from photisnadi.sync.config_loader import get_sync_config

    config = get_sync_config()
    policy = config.retry.to_policy()
    config.collection("rituals").resolve_conflicts   # False
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from photisnadi.sync.collections import COLLECTION_REGISTRY
from photisnadi.sync.retry import RetryPolicy

logger = logging.getLogger("photisnadi.sync.config")

# Path to the YAML file sitting next to this module
_CONFIG_PATH = Path(__file__).parent / "sync_config.yaml"

KNOWN_COLLECTIONS = tuple(COLLECTION_REGISTRY)


def has_modified_at(name: str) -> bool:
    """True if the collection's records carry a ``modified_at`` to compare."""
    spec = COLLECTION_REGISTRY.get(name)
    return spec is not None and "modified_at" in spec.codec.model.model_fields


# ---------------------------------------------------------------------------
# Typed config sections
# ---------------------------------------------------------------------------


@dataclass
class RetryConfig:
    """Retry/backoff settings for remote operations (milliseconds on disk)."""

    max_attempts: int
    timeout_seconds: float
    initial_delay_ms: int
    max_delay_ms: int
    backoff_multiplier: float
    jitter_step_ms: int

    def to_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            timeout=self.timeout_seconds,
            initial_delay=self.initial_delay_ms / 1000.0,
            max_delay=self.max_delay_ms / 1000.0,
            backoff_multiplier=self.backoff_multiplier,
            jitter_step=self.jitter_step_ms / 1000.0,
        )


@dataclass
class RealtimeConfig:
    """Change-notification settings."""

    debounce_ms: int
    channel_suffix: str

    @property
    def debounce_seconds(self) -> float:
        return self.debounce_ms / 1000.0


@dataclass
class CollectionConfig:
    """Per-collection merge settings."""

    name: str
    resolve_conflicts: bool = True


@dataclass
class SyncConfig:
    """Complete, validated sync configuration.

    Attributes:
        version:     Config schema version string.
        retry:       Retry/backoff settings.
        realtime:    Change-notification settings.
        collections: Per-collection settings keyed by table name.
    """

    version: str
    retry: RetryConfig
    realtime: RealtimeConfig
    collections: dict[str, CollectionConfig]
    _raw: dict = field(default_factory=dict, repr=False)

    def collection(self, name: str) -> CollectionConfig:
        """Return settings for a collection.

        Unlisted collections resolve conflicts only if their records have a
        ``modified_at``.
        """
        default = CollectionConfig(name=name, resolve_conflicts=has_modified_at(name))
        return self.collections.get(name, default)


# ---------------------------------------------------------------------------
# Loader / validation
# ---------------------------------------------------------------------------


class ConfigValidationError(ValueError):
    """Raised when sync_config.yaml fails validation."""


def _load_yaml(path: Path) -> dict:
    """Read and parse a YAML file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigValidationError: If the YAML is malformed.
    """
    if not path.exists():
        raise FileNotFoundError(f"Sync config not found: {path}")

    with path.open("r", encoding="utf-8") as fh:
        try:
            data = yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigValidationError(f"YAML parse error in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigValidationError(f"{path} must contain a mapping at the top level")
    return data


def _validate_and_build(raw: dict) -> SyncConfig:
    """Validate the raw YAML dict and construct a SyncConfig.

    Raises:
        ConfigValidationError: If values are missing, malformed or out of range.
    """
    errors: list[str] = []

    def _number(section: dict, key: str, default: float, cast: type, minimum: float) -> float:
        value = section.get(key, default)
        try:
            num = cast(value)
        except (TypeError, ValueError):
            errors.append(f"{key} must be a number, got {value!r}")
            return default
        if num < minimum:
            errors.append(f"{key} = {num} must be >= {minimum}")
        return num

    version = str(raw.get("version", "1.0"))

    # ── Retry ──
    rt_raw = raw.get("retry") or {}
    retry = RetryConfig(
        max_attempts=int(_number(rt_raw, "max_attempts", 3, int, 1)),
        timeout_seconds=_number(rt_raw, "timeout_seconds", 30.0, float, 0.001),
        initial_delay_ms=int(_number(rt_raw, "initial_delay_ms", 1000, int, 0)),
        max_delay_ms=int(_number(rt_raw, "max_delay_ms", 10000, int, 0)),
        backoff_multiplier=_number(rt_raw, "backoff_multiplier", 2.0, float, 1.0),
        jitter_step_ms=int(_number(rt_raw, "jitter_step_ms", 100, int, 0)),
    )
    if retry.initial_delay_ms > retry.max_delay_ms:
        errors.append(
            f"initial_delay_ms ({retry.initial_delay_ms}) exceeds max_delay_ms ({retry.max_delay_ms})"
        )

    # ── Realtime ──
    rl_raw = raw.get("realtime") or {}
    realtime = RealtimeConfig(
        debounce_ms=int(_number(rl_raw, "debounce_ms", 0, int, 0)),
        channel_suffix=str(rl_raw.get("channel_suffix", "_changes_")),
    )

    # ── Collections ──
    collections: dict[str, CollectionConfig] = {}
    for name, cfg in (raw.get("collections") or {}).items():
        if name not in KNOWN_COLLECTIONS:
            errors.append(f"collections.{name} is not a known collection {KNOWN_COLLECTIONS}")
            continue
        if not isinstance(cfg, dict):
            errors.append(f"collections.{name} must be a mapping")
            continue
        resolve = cfg.get("resolve_conflicts", has_modified_at(name))
        if not isinstance(resolve, bool):
            errors.append(f"collections.{name}.resolve_conflicts must be true or false, got {resolve!r}")
            continue
        if resolve and not has_modified_at(name):
            errors.append(
                f"collections.{name}.resolve_conflicts requires a modified_at field, "
                f"which {name} records do not have"
            )
            continue
        collections[name] = CollectionConfig(name=name, resolve_conflicts=resolve)

    if errors:
        raise ConfigValidationError(
            f"sync_config.yaml has {len(errors)} validation error(s):\n"
            + "\n".join(f"  • {e}" for e in errors)
        )

    return SyncConfig(
        version=version,
        retry=retry,
        realtime=realtime,
        collections=collections,
        _raw=raw,
    )


def load_sync_config(path: Path | None = None) -> SyncConfig:
    """Load and validate the sync config from disk.

    Args:
        path: Override path to YAML. Uses the bundled sync_config.yaml by default.
    """
    target = path or _CONFIG_PATH
    raw = _load_yaml(target)
    config = _validate_and_build(raw)
    logger.info("Loaded sync config v%s from %s", config.version, target)
    return config


# ---------------------------------------------------------------------------
# Global singleton with hot-reload support
# ---------------------------------------------------------------------------

_config: SyncConfig | None = None
_config_lock = threading.Lock()


def get_sync_config() -> SyncConfig:
    """Return the global SyncConfig singleton, loading it on first call."""
    global _config
    if _config is None:
        with _config_lock:
            if _config is None:  # double-checked locking
                _config = load_sync_config()
    return _config


def reload_sync_config(path: Path | None = None) -> SyncConfig:
    """Reload the sync config from disk and replace the global singleton.

    If validation fails, the old config is retained and the error is re-raised.

    Raises:
        ConfigValidationError: If the new config is invalid.
        FileNotFoundError:     If the config file is missing.
    """
    global _config
    new_config = load_sync_config(path)  # validate before acquiring lock
    with _config_lock:
        old_version = _config.version if _config else "none"
        _config = new_config
    logger.info("Reloaded sync config: %s → %s", old_version, new_config.version)
    return new_config
