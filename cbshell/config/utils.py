"""
Configuration file utilities for cbshell.

The cluster configuration file is YAML or JSON, selected by file suffix.
"""

import json
import yaml
from typing import Dict, Any


def parse_config(text: str, suffix: str) -> Dict[str, Any]:
    """
    Parse configuration text (JSON or YAML).

    Args:
        text: Raw file content
        suffix: File suffix used to select the format

    Returns:
        Dictionary containing configuration data

    Raises:
        ValueError: If the format is not supported or the content is invalid
    """
    try:
        if suffix.lower() == '.json':
            data = json.loads(text) if text.strip() else {}
        elif suffix.lower() in ['.yml', '.yaml']:
            data = yaml.safe_load(text) or {}
        else:
            raise ValueError(f"Unsupported file format: {suffix}")
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ValueError(f"Invalid configuration file format: {e}")

    if not isinstance(data, dict):
        raise ValueError("Configuration file must contain a mapping at the top level")
    return data


def dump_config(config: Dict[str, Any], suffix: str) -> str:
    """
    Serialize configuration to text (JSON or YAML).

    Args:
        config: Configuration dictionary
        suffix: File suffix used to select the format

    Returns:
        Serialized configuration

    Raises:
        ValueError: If the format is not supported
    """
    if suffix.lower() == '.json':
        return json.dumps(config, indent=2, default=str)
    elif suffix.lower() in ['.yml', '.yaml']:
        return yaml.safe_dump(config, default_flow_style=False, indent=2, sort_keys=False)
    raise ValueError(f"Unsupported file format: {suffix}")


