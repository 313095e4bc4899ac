import json
import os
from typing import Any, Dict, Mapping, Optional

from ..exceptions import ConfigurationError
from ..logging_utils import get_logger

logger = get_logger("MotionConfig")


def load_config(name: str, config_path: Optional[str] = None) -> Dict[str, Any]:
    """Load a bundled threshold table (``<name>.json``) or an explicit override file."""
    if config_path is None:
        config_path = os.path.join(os.path.dirname(__file__), f"{name}.json")
    try:
        with open(config_path, "r") as f:
            config = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Could not load config '{name}' from {config_path}: {e}")
        raise ConfigurationError(f"Could not load config '{name}' from {config_path}") from e
    if not isinstance(config, dict) or "version" not in config:
        logger.error(f"Config '{name}' has no version field")
        raise ConfigurationError(f"Config '{name}' is missing its version field")
    return config


def require(config: Mapping[str, Any], *keys: str) -> Any:
    """Walk nested keys, raising ConfigurationError on the first missing one."""
    node: Any = config
    path = []
    for key in keys:
        path.append(key)
        if not isinstance(node, Mapping) or key not in node:
            dotted = ".".join(path)
            logger.error(f"Missing config entry: {dotted}")
            raise ConfigurationError(f"Missing config entry: {dotted}")
        node = node[key]
    return node


def load_squat_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    return load_config("squat_config", config_path)


def load_pushup_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    return load_config("pushup_config", config_path)


def load_static_posture_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    return load_config("static_posture_config", config_path)


def load_lunge_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    return load_config("lunge_config", config_path)


def load_deadlift_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    return load_config("deadlift_config", config_path)


def load_plank_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    return load_config("plank_config", config_path)
