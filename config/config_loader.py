"""
config_loader.py
-----------------
Singleton config loader. Reads config.yaml once and caches it.
Components take an optional config dict and fall back to these accessors,
so callers can override thresholds without touching the cached file.
"""

import os
import yaml
from typing import Any, Dict


_CONFIG_CACHE: Dict[str, Any] = {}

DETECTOR_MODES = ("metric_history", "day_aligned")


def load_config(config_path: str | None = None) -> Dict[str, Any]:
    """
    Load and cache the YAML configuration file.

    Args:
        config_path: Path to config.yaml. Defaults to config/ relative to this file.

    Returns:
        Full config dictionary.
    """
    global _CONFIG_CACHE

    if _CONFIG_CACHE:
        return _CONFIG_CACHE

    if config_path is None:
        config_path = os.path.join(os.path.dirname(__file__), "config.yaml")

    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, "r") as f:
        _CONFIG_CACHE = yaml.safe_load(f)

    return _CONFIG_CACHE


def get_currency_config() -> Dict[str, Any]:
    """Returns the currency block (code, minor_units)."""
    return load_config()["currency"]


def get_forecasting_config() -> Dict[str, Any]:
    """Returns the forecasting block."""
    return load_config()["forecasting"]


def get_anomaly_detection_config(mode: str) -> Dict[str, Any]:
    """
    Returns the anomaly detection block for one detector mode.

    Raises:
        KeyError: If mode is not a configured detector mode.
    """
    detection = load_config()["anomaly_detection"]
    if mode not in detection:
        raise KeyError(
            f"No anomaly detection config for '{mode}'. "
            f"Available: {list(detection.keys())}"
        )
    return detection[mode]


def get_anomaly_recommendations() -> Dict[str, Dict[str, str]]:
    """Returns the metric x anomaly type recommendation table."""
    return load_config()["anomaly_recommendations"]


def get_alert_config() -> Dict[str, Any]:
    """Returns alert routing config."""
    return load_config()["alerts"]


def get_insights_config() -> Dict[str, Any]:
    """Returns the insights block."""
    return load_config()["insights"]


def reset_config() -> None:
    """Clears cached config. Useful for testing."""
    global _CONFIG_CACHE
    _CONFIG_CACHE = {}
