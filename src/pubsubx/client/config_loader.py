"""
Configuration Loader.

Responsible for reading the optional YAML configuration file and merging
it over the built-in defaults.
"""
import copy
import yaml
import logging
from pathlib import Path
from typing import Dict, Any, Optional

from pubsubx.client.models import DELIMITER

logger = logging.getLogger(__name__)

DEFAULT_CONFIG: Dict[str, Any] = {
    'broker': {
        'host': 'localhost',
    },
    'framing': {
        'buffer_size': 1024,
        'delimit_fragments': True,  # delimiter after every chunk, as brokers expect
    },
    'logging': {
        'level': 'WARNING',
    },
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: Optional[str] = "pubsubx.yaml") -> Dict[str, Any]:
    """
    Loads the YAML configuration file and returns it merged over the defaults.
    """
    if config_path is None:
        return copy.deepcopy(DEFAULT_CONFIG)

    path = Path(config_path)
    if not path.exists():
        logger.warning(f"Config file not found at {path}. Using defaults.")
        return copy.deepcopy(DEFAULT_CONFIG)

    try:
        with open(path, 'r') as f:
            config = yaml.safe_load(f) or {}
            logger.info(f"Loaded configuration from {path}")
    except Exception as e:
        logger.error(f"Failed to parse config file: {e}")
        raise

    if not isinstance(config, dict):
        raise ValueError(f"Config file {path} must contain a mapping, got {type(config).__name__}")
    merged = _merge(DEFAULT_CONFIG, config)
    _validate_framing(merged['framing'])
    return merged


def _validate_framing(framing: Dict[str, Any]):
    """
    Raises:
        ValueError: If the buffer cannot hold at least one payload byte
            next to the delimiter.
    """
    buffer_size = framing['buffer_size']
    # bool is an int subclass, reject it explicitly
    if isinstance(buffer_size, bool) or not isinstance(buffer_size, int):
        raise ValueError(f"framing.buffer_size must be an integer, got {buffer_size!r}")
    if buffer_size <= len(DELIMITER):
        raise ValueError(f"framing.buffer_size must be greater than {len(DELIMITER)}, got {buffer_size}")
