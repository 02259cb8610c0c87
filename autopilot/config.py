"""
Autopilot configuration.

Settings come from settings.yaml (``autopilot`` and ``codegen`` sections),
with a few environment overrides for deployment.
"""

import os
import logging
from pathlib import Path
from typing import Optional, Dict, Any
from dataclasses import dataclass, asdict, fields, replace as dc_replace

import yaml

logger = logging.getLogger(__name__)

INTELLIGENCE_LEVELS = ('basic', 'advanced', 'expert')

# camelCase names used by the dashboard front end
_CAMEL_CASE_KEYS = {
    'maxConcurrentTasks': 'max_concurrent_tasks',
    'autoRepair': 'auto_repair',
    'autoOptimize': 'auto_optimize',
    'autoScale': 'auto_scale',
    'intelligenceLevel': 'intelligence_level',
    'historyLimit': 'history_limit',
    'liveActions': 'live_actions',
    'retryBackoff': 'retry_backoff',
}


@dataclass(frozen=True)
class OrchestratorConfig:
    """Immutable orchestrator settings. Use replace() to derive a new one."""
    check_interval: float = 30.0  # seconds between cycles
    max_concurrent_tasks: int = 5
    auto_repair: bool = True
    auto_optimize: bool = True
    auto_scale: bool = True
    intelligence_level: str = 'expert'
    history_limit: int = 100
    live_actions: bool = False
    retry_backoff: float = 1.0  # seconds, doubled per retried task

    def __post_init__(self):
        if self.check_interval <= 0:
            raise ValueError(f"check_interval must be positive, got {self.check_interval}")
        if self.max_concurrent_tasks <= 0:
            raise ValueError(f"max_concurrent_tasks must be positive, got {self.max_concurrent_tasks}")
        if self.history_limit <= 0:
            raise ValueError(f"history_limit must be positive, got {self.history_limit}")
        if self.retry_backoff < 0:
            raise ValueError(f"retry_backoff must not be negative, got {self.retry_backoff}")
        if self.intelligence_level not in INTELLIGENCE_LEVELS:
            raise ValueError(
                f"intelligence_level must be one of {', '.join(INTELLIGENCE_LEVELS)}, "
                f"got {self.intelligence_level!r}"
            )

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'OrchestratorConfig':
        """
        Build a config from a settings dict.

        Accepts snake_case keys and the front end's camelCase names;
        ``checkInterval`` is given in milliseconds. Unknown keys are ignored.
        """
        return cls(**_normalize_keys(data or {}))

    def replace(self, **overrides) -> 'OrchestratorConfig':
        """Return a validated copy with the given overrides applied."""
        return dc_replace(self, **_normalize_keys(overrides))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _normalize_keys(data: Dict[str, Any]) -> Dict[str, Any]:
    known = {f.name for f in fields(OrchestratorConfig)}
    normalized: Dict[str, Any] = {}
    for key, value in data.items():
        if value is None:
            continue
        if key == 'checkInterval':
            normalized['check_interval'] = float(value) / 1000
            continue
        key = _CAMEL_CASE_KEYS.get(key, key)
        if key in known:
            normalized[key] = value
        else:
            logger.debug(f"Ignoring unknown orchestrator setting: {key}")
    return normalized


def _default_config_paths():
    env_path = os.environ.get('AUTOPILOT_CONFIG')
    if env_path:
        yield Path(env_path)
    yield Path('/autopilot/config/settings.yaml')
    yield Path(__file__).parent.parent / 'config' / 'settings.yaml'


def load_settings(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Load settings.yaml. Returns an empty dict if none is found or it is invalid."""
    if config_path is None:
        for path in _default_config_paths():
            if path.exists():
                config_path = str(path)
                break

    if not config_path or not Path(config_path).exists():
        logger.warning("No settings.yaml found, using defaults")
        return {}

    try:
        with open(config_path) as f:
            settings = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Failed to load settings from {config_path}: {e}")
        return {}

    if not isinstance(settings, dict):
        logger.error(f"Settings file {config_path} must contain a mapping")
        return {}

    logger.info(f"Loaded settings from {config_path}")
    return settings


def orchestrator_config_from_settings(settings: Dict[str, Any]) -> OrchestratorConfig:
    """Build the orchestrator config from the ``autopilot`` section."""
    section = dict(settings.get('autopilot') or {})
    section.pop('autostart', None)

    interval = os.environ.get('AUTOPILOT_CHECK_INTERVAL')
    if interval:
        section['check_interval'] = float(interval)

    return OrchestratorConfig.from_dict(section)
