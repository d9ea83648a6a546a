"""Default thresholds and config-file loading for slurm-node-stats."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional

import yaml

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

# CPU load tolerance around the ideal load interval
DEFAULT_LOAD_DELTA_CRITICAL = 2.0
DEFAULT_LOAD_DELTA_WARNING = 0.5

# Free memory thresholds as fractions of total node memory
DEFAULT_MEM_CRITICAL_FRACTION = 0.1
DEFAULT_MEM_WARNING_FRACTION = 0.2

# Nodes whose newest job is younger than this are never flagged (seconds)
DEFAULT_GRACE_PERIOD_S = 300

DEFAULT_PROBLEM_STATES = frozenset({
    "drained", "draining", "drain",
    "down",
    "error",
    "reserved", "resv",
    "maint",
    "reboot", "reboot_issued", "reboot_requested",
    "completing",
    "fail", "failing",
    "inval",
})

CONFIG_ENV_VAR = "HPC_NODESTAT_CONFIG"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass(frozen=True)
class HealthSettings:
    """Thresholds consumed by the health evaluator."""
    load_delta_critical: float = DEFAULT_LOAD_DELTA_CRITICAL
    load_delta_warning: float = DEFAULT_LOAD_DELTA_WARNING
    mem_critical_fraction: float = DEFAULT_MEM_CRITICAL_FRACTION
    mem_warning_fraction: float = DEFAULT_MEM_WARNING_FRACTION
    grace_period_s: int = DEFAULT_GRACE_PERIOD_S
    problem_states: FrozenSet[str] = field(default_factory=lambda: DEFAULT_PROBLEM_STATES)

    def validate(self) -> "HealthSettings":
        if self.load_delta_warning < 0 or self.load_delta_critical <= self.load_delta_warning:
            raise ConfigurationError(
                f"load_delta_critical ({self.load_delta_critical}) must exceed "
                f"load_delta_warning ({self.load_delta_warning}) and both must be >= 0"
            )
        if not 0 <= self.mem_critical_fraction < self.mem_warning_fraction <= 1:
            raise ConfigurationError(
                f"need 0 <= mem_critical_fraction ({self.mem_critical_fraction}) "
                f"< mem_warning_fraction ({self.mem_warning_fraction}) <= 1"
            )
        if self.grace_period_s < 0:
            raise ConfigurationError("grace_period_s must be >= 0")
        return self


def default_config_paths() -> List[Path]:
    paths: List[Path] = []
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        paths.append(Path(xdg) / "hpc-nodestat" / "config.yaml")
    paths.append(Path.home() / ".config" / "hpc-nodestat" / "config.yaml")
    paths.append(Path("/etc/hpc-nodestat/config.yaml"))
    return paths


def find_config_file(explicit: Optional[str] = None) -> Optional[Path]:
    """Return the config file to use, or None when no default location exists.

    An explicitly requested file (argument or $HPC_NODESTAT_CONFIG) must exist.
    """
    requested = explicit or os.environ.get(CONFIG_ENV_VAR)
    if requested:
        path = Path(requested).expanduser()
        if not path.is_file():
            raise ConfigurationError(f"config file not found: {path}")
        return path
    for path in default_config_paths():
        if path.is_file():
            return path
    return None


def load_config_file(path: Path) -> Dict[str, Any]:
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"failed to load {path}: {e}") from e
    if data is None:
        logger.warning("Empty configuration file at %s", path)
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path}: top level must be a mapping")
    logger.debug("Loaded configuration from %s", path)
    return data


def _coerce(key: str, value: Any, kind: type) -> Any:
    if kind is float and isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    if kind is int and isinstance(value, int) and not isinstance(value, bool):
        return value
    raise ConfigurationError(f"config key {key!r} expects {kind.__name__}, got {value!r}")


def settings_from_mapping(data: Dict[str, Any], base: Optional[HealthSettings] = None) -> HealthSettings:
    """Overlay a parsed config mapping on top of ``base`` (defaults if None)."""
    base = base or HealthSettings()
    known = {f.name for f in fields(HealthSettings)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigurationError(f"unknown config key(s): {', '.join(unknown)}")

    updates: Dict[str, Any] = {}
    for key, value in data.items():
        if key == "problem_states":
            if not isinstance(value, list) or not all(isinstance(s, str) for s in value):
                raise ConfigurationError("config key 'problem_states' expects a list of state names")
            updates[key] = frozenset(s.strip().lower() for s in value if s.strip())
        elif key == "grace_period_s":
            updates[key] = _coerce(key, value, int)
        else:
            updates[key] = _coerce(key, value, float)
    return replace(base, **updates).validate()


def load_settings(explicit: Optional[str] = None) -> HealthSettings:
    path = find_config_file(explicit)
    if path is None:
        return HealthSettings()
    return settings_from_mapping(load_config_file(path))
