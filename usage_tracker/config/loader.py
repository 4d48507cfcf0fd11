"""
Configuration management and loading.

Handles tracker settings, notification policy and pricing overrides.
"""

import socket
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from usage_tracker.core.pricing import RateCard
from usage_tracker.storage.db import DEFAULT_DB_PATH

CONFIG_SECTION = "usage_tracker"


class TriggerMode(Enum):
    """What a usage notification is triggered by."""
    MESSAGES = "messages"
    COST = "cost"
    TIME = "time"


@dataclass(frozen=True)
class NotificationConfig:
    """Policy for periodic usage notifications.

    Exactly one trigger mode is active; the thresholds of the other modes
    are kept but ignored.
    """
    enabled: bool = False
    trigger: TriggerMode = TriggerMode.MESSAGES
    messages_interval: int = 5
    cost_threshold: float = 0.10
    time_interval_minutes: float = 10

    def __post_init__(self):
        """Validate thresholds are positive."""
        if self.messages_interval <= 0:
            raise ValueError("messages_interval must be > 0")
        if self.cost_threshold <= 0:
            raise ValueError("cost_threshold must be > 0")
        if self.time_interval_minutes <= 0:
            raise ValueError("time_interval_minutes must be > 0")


@dataclass(frozen=True)
class TrackerConfig:
    """Complete tracker configuration, resolved once at startup."""
    enabled: bool = True
    db_path: str = str(Path(DEFAULT_DB_PATH).expanduser())
    machine_id: str = field(default_factory=socket.gethostname)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    pricing: Dict[str, RateCard] = field(default_factory=dict)


def default_config() -> TrackerConfig:
    """Configuration with every setting at its default."""
    return TrackerConfig()


def load_tracker_config(path: str) -> TrackerConfig:
    """Load and validate tracker configuration from a YAML file.

    The settings may sit under a top-level ``usage_tracker`` key or make up
    the whole document.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated TrackerConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Tracker config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if raw_config is None:
        return default_config()
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a dictionary")

    return parse_tracker_config(raw_config)


def parse_tracker_config(raw_config: Mapping[str, Any]) -> TrackerConfig:
    """Validate a configuration mapping, e.g. one handed over by the host.

    Args:
        raw_config: Settings, optionally nested under ``usage_tracker``

    Returns:
        Validated TrackerConfig object

    Raises:
        ValueError: If configuration is invalid
    """
    if CONFIG_SECTION in raw_config:
        raw_config = raw_config[CONFIG_SECTION] or {}
        if not isinstance(raw_config, dict):
            raise ValueError(f"'{CONFIG_SECTION}' must be a dictionary")

    allowed_top_keys = {'enabled', 'db_path', 'machine_id', 'notifications', 'pricing'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    enabled = raw_config.get('enabled', True)
    if not isinstance(enabled, bool):
        raise ValueError("'enabled' must be a boolean")

    db_path = raw_config.get('db_path') or DEFAULT_DB_PATH
    if not isinstance(db_path, str):
        raise ValueError("'db_path' must be a string")

    machine_id: Optional[str] = raw_config.get('machine_id')
    if machine_id is not None and (not isinstance(machine_id, str) or not machine_id.strip()):
        raise ValueError("'machine_id' must be a non-empty string")

    notifications_data = raw_config.get('notifications') or {}
    if not isinstance(notifications_data, dict):
        raise ValueError("'notifications' must be a dictionary")

    pricing_data = raw_config.get('pricing') or {}
    if not isinstance(pricing_data, dict):
        raise ValueError("'pricing' must be a dictionary")

    pricing = {}
    for model, rates in pricing_data.items():
        if not isinstance(rates, dict):
            raise ValueError(f"Pricing for '{model}' must be a dictionary")
        pricing[str(model)] = _parse_rate_card(rates, f"pricing.{model}")

    return TrackerConfig(
        enabled=enabled,
        db_path=str(Path(db_path).expanduser()),
        machine_id=machine_id or socket.gethostname(),
        notifications=_parse_notification_config(notifications_data),
        pricing=pricing
    )


def _parse_notification_config(data: Dict) -> NotificationConfig:
    """Parse and validate the notification policy.

    Args:
        data: Notification configuration data

    Returns:
        Validated NotificationConfig

    Raises:
        ValueError: If configuration is invalid
    """
    allowed_keys = {
        'enabled', 'trigger', 'messages_interval', 'cost_threshold', 'time_interval_minutes'
    }
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in notifications: {unknown_keys}")

    defaults = NotificationConfig()

    enabled = data.get('enabled', defaults.enabled)
    if not isinstance(enabled, bool):
        raise ValueError("'enabled' in notifications must be a boolean")

    trigger_str = data.get('trigger', defaults.trigger.value)
    if not isinstance(trigger_str, str):
        raise ValueError("'trigger' in notifications must be a string")
    try:
        trigger = TriggerMode(trigger_str.lower())
    except ValueError:
        valid_triggers = [mode.value for mode in TriggerMode]
        raise ValueError(f"'trigger' in notifications must be one of: {valid_triggers}")

    messages_interval = data.get('messages_interval', defaults.messages_interval)
    if isinstance(messages_interval, bool) or not isinstance(messages_interval, int):
        raise ValueError("'messages_interval' in notifications must be an integer")

    thresholds = {}
    for key in ('cost_threshold', 'time_interval_minutes'):
        value = data.get(key, getattr(defaults, key))
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"'{key}' in notifications must be a number")
        thresholds[key] = float(value)

    return NotificationConfig(
        enabled=enabled,
        trigger=trigger,
        messages_interval=messages_interval,
        **thresholds
    )


def _parse_rate_card(data: Dict, path: str) -> RateCard:
    """Parse and validate one pricing override.

    Rates are per one million tokens; an omitted rate is zero.

    Args:
        data: Rate configuration data
        path: Path for error messages

    Returns:
        Validated RateCard

    Raises:
        ValueError: If configuration is invalid
    """
    allowed_keys = {'input', 'output', 'cache_read', 'cache_write'}
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")

    rates = {}
    for key in sorted(allowed_keys):
        value = data.get(key, 0)
        if isinstance(value, bool) or not isinstance(value, (int, float, str)):
            raise ValueError(f"'{key}' in {path} must be a number")
        try:
            rate = Decimal(str(value))
        except InvalidOperation:
            raise ValueError(f"'{key}' in {path} must be a number")
        if not rate.is_finite() or rate < 0:
            raise ValueError(f"'{key}' in {path} must be >= 0")
        rates[key] = rate

    return RateCard(**rates)
