import os
from pathlib import Path
from typing import Any, Dict

import yaml

from .models import FrameChainConfig

DEFAULT_CONFIG_PATH = Path("config/default.yaml")
LOCAL_CONFIG_PATH = Path("config/local.yaml")


def load_yaml(path: Path) -> Dict[str, Any]:
    """Load YAML file, returning empty dict if not found."""
    if not path.exists():
        return {}
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def merge_dicts(base: Dict, override: Dict) -> Dict:
    """Recursive merge of two dictionaries."""
    result = base.copy()
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = merge_dicts(result[k], v)
        else:
            result[k] = v
    return result


def resolve_config(cli_args: Dict[str, Any] = None) -> FrameChainConfig:
    """
    Resolve config: Default < Local < Environment < CLI

    DATABASE_URL in the environment wins over both YAML files; explicit CLI
    arguments win over everything.
    """
    cli_args = dict(cli_args or {})

    config_data = load_yaml(DEFAULT_CONFIG_PATH)
    config_data = merge_dicts(config_data, load_yaml(LOCAL_CONFIG_PATH))

    config = FrameChainConfig.from_dict(config_data)

    if cli_args.get("database_url") is None and os.getenv("DATABASE_URL"):
        cli_args["database_url"] = os.environ["DATABASE_URL"]

    return config.merge_cli_overrides(cli_args)
